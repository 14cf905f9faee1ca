"""
Shared fixtures for Anime Notifier tests.

Provides common test fixtures for use across all test modules.
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from anime_notifier.config import (
    BeamsConfig,
    DesktopConfig,
    DiscordConfig,
    SentryConfig,
    WatchEntry,
)
from anime_notifier.counter import MemoryCounter
from anime_notifier.matcher import FeedItem, MatchResult, TitleMatcher


# Path to test fixtures directory
FIXTURES_DIR = Path(__file__).parent / "fixtures"

MOB_PSYCHO_TITLE = "[HorribleSubs] Mob Psycho 100 - 05 [1080p].mkv"


@pytest.fixture
def fixtures_dir() -> Path:
    """Return path to fixtures directory."""
    return FIXTURES_DIR


@pytest.fixture
def sample_rss_path(fixtures_dir: Path) -> Path:
    """Return path to sample nyaa RSS feed file."""
    return fixtures_dir / "sample_rss.xml"


@pytest.fixture
def sample_config_path(fixtures_dir: Path) -> Path:
    """Return path to sample config file."""
    return fixtures_dir / "sample_config.yaml"


@pytest.fixture
def sample_rss_content(sample_rss_path: Path) -> str:
    """Return contents of sample RSS feed."""
    return sample_rss_path.read_text()


@pytest.fixture
def watchlist() -> list[WatchEntry]:
    """
    Create a small watch-list.

    Returns
    -------
    list[WatchEntry]
        Entries for an unrestricted show, a HorribleSubs-only show
        and a show whose title holds a season number.
    """
    return [
        WatchEntry(title="Mob Psycho 100", slug="mob-psycho-100"),
        WatchEntry(title="Boruto", slug="boruto", feed="hs"),
        WatchEntry(title="Date A Live III", slug="date-a-live", episode_index=1),
    ]


@pytest.fixture
def matcher(watchlist: list[WatchEntry]) -> TitleMatcher:
    """Create a matcher over the sample watch-list."""
    return TitleMatcher(watchlist)


@pytest.fixture
def sample_feed_item() -> FeedItem:
    """
    Create a sample nyaa feed item.

    Returns
    -------
    FeedItem
        A fully populated feed item.
    """
    return FeedItem(
        title=MOB_PSYCHO_TITLE,
        description=(
            '<a href="https://nyaa.si/view/1111">#1111 | Mob Psycho 100</a>'
            " | 1.3 GiB | Anime - English-translated | No information."
        ),
        link="https://nyaa.si/download/1111.torrent",
        guid="https://nyaa.si/view/1111",
        published=datetime(2019, 2, 4, 16, 30, tzinfo=timezone.utc),
        feed_url="https://nyaa.si/?page=rss&u=HorribleSubs&q=1080",
        provider_fields={
            "nyaa_seeders": "1200",
            "nyaa_leechers": "300",
            "nyaa_downloads": "5000",
        },
    )


@pytest.fixture
def sample_match(sample_feed_item: FeedItem) -> MatchResult:
    """Create a match for the sample feed item."""
    return MatchResult(
        entry=WatchEntry(title="Mob Psycho 100", slug="mob-psycho-100"),
        episode="05",
        raw_title=sample_feed_item.title,
        stripped_title="Mob Psycho 100",
        item=sample_feed_item,
    )


@pytest.fixture
def beams_config() -> BeamsConfig:
    """Create a minimal valid Beams configuration."""
    return BeamsConfig(instance_id="test-instance", secret_key="test-secret")


@pytest.fixture
def discord_config() -> DiscordConfig:
    """Create a minimal valid Discord configuration."""
    return DiscordConfig(webhook_id="123456", webhook_token="test-token")


@pytest.fixture
def desktop_config() -> DesktopConfig:
    """Create an enabled desktop configuration."""
    return DesktopConfig(enabled=True)


@pytest.fixture
def sentry_config() -> SentryConfig:
    """Create a Sentry configuration with a DSN."""
    return SentryConfig(dsn="https://public@sentry.example.com/1")


@pytest.fixture
def memory_counter() -> MemoryCounter:
    """Create an in-memory notification counter."""
    return MemoryCounter()


@pytest.fixture
def minimal_config_dict() -> dict[str, Any]:
    """
    Create a minimal valid configuration dictionary.

    Returns
    -------
    dict
        Configuration dictionary that can be used to create AppConfig.
    """
    return {
        "watchlist": [
            {"title": "Mob Psycho 100", "slug": "mob-psycho-100"},
        ],
        "discord": {
            "webhook_id": "123456",
            "webhook_token": "test-token",
        },
    }


@pytest.fixture
def mock_notifier() -> MagicMock:
    """
    Create a mock notifier.

    Returns
    -------
    MagicMock
        A notifier whose async methods succeed.
    """
    notifier = MagicMock()
    notifier.name = "mock"
    notifier.send = AsyncMock(return_value=True)
    notifier.test_connection = AsyncMock(return_value=True)
    notifier.close = AsyncMock()
    return notifier
