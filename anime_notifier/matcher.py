"""
Title matching and episode extraction.

Turns a free-form feed item title such as
``[HorribleSubs] Mob Psycho 100 - 05 [1080p].mkv`` into the watch-list
entry it refers to and the episode number it announces.
"""

import logging
import re
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, TypeVar

from anime_notifier.config import ANY_FEED, DEFAULT_PROVIDERS, WatchEntry

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Episode reported when the title holds no digits at the wanted position
DEFAULT_EPISODE = "00"

# Namespaces whose elements are kept as provider fields (nyaa:seeders -> nyaa_seeders)
PROVIDER_NAMESPACES = ("nyaa",)

_RELEASE_TAG = re.compile(r"^\s*\[[^\]]*\]\s*")
_RELEASE_SUFFIX = re.compile(
    r"\s+-\s+[0-9]+(?:v[0-9]+)?\s*(?:\[[^\]]*\]\s*)*(?:\.[A-Za-z0-9]{2,4})?\s*$"
)
_SEPARATOR = re.compile(r"(?<!-)---(?!-)")
# ASCII only, full-width digits are not episode numbers
_DIGITS = re.compile(r"[0-9]+")


@dataclass
class FeedItem:
    """
    A single entry of a polled feed.

    Attributes
    ----------
    title : str
        Raw item title.
    description : str
        HTML description.
    link : str
        Item URL (torrent link for nyaa).
    guid : str
        Unique identifier for the item.
    published : datetime | None
        Publication time in UTC.
    feed_url : str
        URL of the feed the item came from.
    provider_fields : dict[str, Any]
        Provider specific values such as seeders or downloads.
    raw : dict
        Original feedparser entry data.
    """

    title: str = ""
    description: str = ""
    link: str = ""
    guid: str = ""
    published: datetime | None = None
    feed_url: str = ""
    provider_fields: dict[str, Any] = field(default_factory=dict)
    raw: dict = field(default_factory=dict)

    @classmethod
    def from_feedparser(cls, entry: Any, feed_url: str = "") -> "FeedItem":
        """
        Create a FeedItem from a feedparser entry.

        Parameters
        ----------
        entry : Any
            A feedparser entry object.
        feed_url : str
            URL of the source feed.

        Returns
        -------
        FeedItem
            Normalized item instance.
        """
        description = entry.get("summary", "") or ""
        if not description and entry.get("content"):
            description = entry["content"][0].get("value", "")

        published = None
        parsed_time = entry.get("published_parsed")
        if parsed_time:
            published = datetime(*parsed_time[:6], tzinfo=timezone.utc)

        provider_fields = {
            key: value
            for key, value in entry.items()
            if key.split("_", 1)[0] in PROVIDER_NAMESPACES
        }

        return cls(
            title=entry.get("title", ""),
            description=description,
            link=entry.get("link", ""),
            guid=entry.get("id", "") or entry.get("link", ""),
            published=published,
            feed_url=feed_url,
            provider_fields=provider_fields,
            raw=dict(entry),
        )


@dataclass(frozen=True)
class MatchResult:
    """
    A feed item recognized as an episode of a watched show.

    Attributes
    ----------
    entry : WatchEntry
        The watch-list entry that matched.
    episode : str
        Episode number as it appears in the title.
    raw_title : str
        The unmodified item title.
    stripped_title : str
        The title without release tag and quality suffix.
    item : FeedItem | None
        The feed item, for rendering.
    """

    entry: WatchEntry
    episode: str
    raw_title: str
    stripped_title: str = ""
    item: FeedItem | None = None

    @property
    def display_title(self) -> str:
        """Name of the show as shown to the user."""
        return self.entry.title or self.stripped_title or self.entry.slug


def strip_title(title: str) -> str:
    """
    Remove the release group tag and the episode/quality suffix.

    Parameters
    ----------
    title : str
        Raw item title.

    Returns
    -------
    str
        The show part of the title, or the trimmed input when nothing matched.
    """
    stripped = _RELEASE_TAG.sub("", title, count=1)
    stripped = _RELEASE_SUFFIX.sub("", stripped, count=1)
    return stripped.strip()


def normalize_title(title: str) -> str:
    """
    Build the key slugs are looked up in.

    Lowercases, turns spaces into hyphens, then folds every run of exactly
    three hyphens (what `` - `` becomes) into one.

    Parameters
    ----------
    title : str
        Raw item title.

    Returns
    -------
    str
        Normalized key.
    """
    return _SEPARATOR.sub("-", title.lower().replace(" ", "-"))


def extract_numbers(title: str) -> list[str]:
    """Return every run of ASCII digits in the title, in order."""
    return _DIGITS.findall(title)


def extract_episode(title: str, index: int = 0) -> str:
    """
    Pick the episode number out of a raw title.

    Parameters
    ----------
    title : str
        Raw, un-normalized item title.
    index : int
        Position of the wanted digit run among all digit runs.

    Returns
    -------
    str
        The digit run, or ``"00"`` when there is none at that position.
    """
    numbers = extract_numbers(title)
    if 0 <= index < len(numbers):
        return numbers[index]
    return DEFAULT_EPISODE


def passes_feed_filter(
    entry: WatchEntry, title: str, providers: Mapping[str, str]
) -> bool:
    """
    Check that the item comes from the provider the entry is restricted to.

    Parameters
    ----------
    entry : WatchEntry
        The matched watch-list entry.
    title : str
        Raw item title.
    providers : Mapping[str, str]
        Feed tag to marker string.

    Returns
    -------
    bool
        True for unrestricted entries or when the marker is in the title.
    """
    if entry.feed == ANY_FEED:
        return True

    marker = providers.get(entry.feed)
    if not marker:
        return False

    return marker.lower() in title.lower()


def last_match(items: Iterable[T], predicate: Callable[[T], bool]) -> T | None:
    """Return the last item, in iteration order, satisfying the predicate."""
    found = None
    for item in items:
        if predicate(item):
            found = item
    return found


class TitleMatcher:
    """
    Matches feed item titles against the watch-list.

    When several slugs are contained in the same title, the entry listed
    last wins.
    """

    def __init__(
        self,
        watchlist: Sequence[WatchEntry],
        providers: Mapping[str, str] | None = None,
    ):
        """
        Initialize the matcher.

        Parameters
        ----------
        watchlist : Sequence[WatchEntry]
            Watched shows in priority order.
        providers : Mapping[str, str] | None
            Feed tag to marker string. Defaults to the built-in providers.
        """
        self.watchlist = tuple(watchlist)
        self.providers = dict(DEFAULT_PROVIDERS if providers is None else providers)

    def find_entry(self, title: str) -> WatchEntry | None:
        """
        Find the watch-list entry whose slug appears in the title.

        Parameters
        ----------
        title : str
            Raw item title.

        Returns
        -------
        WatchEntry | None
            The last entry whose slug is contained in the normalized title.
        """
        key = normalize_title(title)
        return last_match(self.watchlist, lambda entry: entry.slug in key)

    def match(self, title: str, item: FeedItem | None = None) -> MatchResult | None:
        """
        Match a title against the watch-list.

        Parameters
        ----------
        title : str
            Raw item title.
        item : FeedItem | None
            The feed item the title belongs to.

        Returns
        -------
        MatchResult | None
            The match, or None when no slug matched or the feed filter
            rejected the item.
        """
        entry = self.find_entry(title)
        if entry is None:
            return None

        if not passes_feed_filter(entry, title, self.providers):
            logger.debug(
                "Title '%s' matched '%s' but is not from feed '%s'",
                title[:80],
                entry.slug,
                entry.feed,
            )
            return None

        return MatchResult(
            entry=entry,
            episode=extract_episode(title, entry.episode_index),
            raw_title=title,
            stripped_title=strip_title(title),
            item=item,
        )
