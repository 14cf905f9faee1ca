"""
Main entry point for Anime Notifier.

Runs the async loop that polls feeds, matches new items against the
watch-list and sends notifications.
"""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path
from urllib.parse import urlparse

import aiohttp
import coloredlogs

from anime_notifier import __title__, __version__
from anime_notifier.config import WatchEntry, load_config
from anime_notifier.counter import FileCounter, NotificationCounter
from anime_notifier.desktop import ToastNotifier
from anime_notifier.discord import DiscordNotifier
from anime_notifier.kitsu import KitsuClient, KitsuError, merge_watchlist
from anime_notifier.matcher import FeedItem, MatchResult, TitleMatcher
from anime_notifier.notifier import Notifier
from anime_notifier.push import BeamsNotifier
from anime_notifier.reporting import ErrorReporter
from anime_notifier.rss_parser import (
    FeedEmitter,
    FeedErrorEvent,
    FeedEvent,
    FeedParser,
    FeedSubscription,
    ItemEvent,
)

logger = logging.getLogger(__name__)

# Startup connection checks per notifier, and the pause between them
CONNECTION_ATTEMPTS = 3
CONNECTION_RETRY_DELAY = 10


def redact_proxy_url(proxy_url: str) -> str:
    """
    Redact credentials from a proxy URL for safe logging.

    Parameters
    ----------
    proxy_url : str
        The proxy URL potentially containing credentials.

    Returns
    -------
    str
        The proxy URL with password redacted.
    """
    try:
        parsed = urlparse(proxy_url)
        if parsed.password:
            netloc = parsed.hostname or ""
            if parsed.port:
                netloc = f"{netloc}:{parsed.port}"
            if parsed.username:
                netloc = f"{parsed.username}:****@{netloc}"
            return f"{parsed.scheme}://{netloc}{parsed.path}"
        return proxy_url
    except ValueError:
        return "<proxy url>"


class AnimeNotifier:
    """
    Main application.

    Feed polling tasks publish events into one queue; a single consumer
    matches each new item and fans matches out to the notifiers.
    """

    def __init__(self, config_path: str | Path):
        """
        Initialize the application.

        Parameters
        ----------
        config_path : str | Path
            Path to the YAML configuration file.
        """
        self.config = load_config(config_path)
        self.reporter: ErrorReporter | None = None
        self.parser: FeedParser | None = None
        self.emitter: FeedEmitter | None = None
        self.matcher: TitleMatcher | None = None
        self.counter: NotificationCounter | None = None
        self.notifiers: list[Notifier] = []
        self.queue: asyncio.Queue = asyncio.Queue()
        self._running = False
        self._consumer: asyncio.Task | None = None

    @property
    def user_agent(self) -> str:
        return self.config.defaults.user_agent or f"{__title__}/v{__version__}"

    def _create_notifiers(self) -> list[Notifier]:
        """Instantiate every configured delivery channel."""
        defaults = self.config.defaults
        notifiers: list[Notifier] = []

        if self.config.beams:
            notifiers.append(
                BeamsNotifier(
                    self.config.beams,
                    self.counter,
                    timeout=defaults.request_timeout,
                    proxy_url=defaults.proxy,
                )
            )
        if self.config.discord:
            notifiers.append(
                DiscordNotifier(
                    self.config.discord,
                    timeout=defaults.request_timeout,
                    proxy_url=defaults.proxy,
                )
            )
        if self.config.desktop.enabled:
            notifiers.append(ToastNotifier(self.config.desktop))

        return notifiers

    async def _load_watchlist(self) -> list[WatchEntry]:
        """Return the configured watch-list extended with the Kitsu library."""
        watchlist = list(self.config.watchlist)
        if self.config.kitsu is None:
            return watchlist

        client = KitsuClient(
            self.config.kitsu,
            timeout=self.config.defaults.request_timeout,
            user_agent=self.user_agent,
            proxy_url=self.config.defaults.proxy,
        )
        try:
            watchlist = merge_watchlist(watchlist, await client.fetch_watching())
        except (KitsuError, aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning("Failed to import the Kitsu library: %s", e)
            if self.reporter:
                self.reporter.handle_exception(e)
        finally:
            await client.close()

        return watchlist

    async def _check_notifier(self, notifier: Notifier) -> bool:
        """
        Test a notifier, retrying to ride out a short outage at boot.

        Parameters
        ----------
        notifier : Notifier
            The notifier to test.

        Returns
        -------
        bool
            True if one of the attempts succeeded.
        """
        for attempt in range(1, CONNECTION_ATTEMPTS + 1):
            if await notifier.test_connection():
                return True
            if attempt < CONNECTION_ATTEMPTS:
                logger.info(
                    "Notifier '%s' not reachable (attempt %d/%d), retrying in %ss",
                    notifier.name,
                    attempt,
                    CONNECTION_ATTEMPTS,
                    CONNECTION_RETRY_DELAY,
                )
                await asyncio.sleep(CONNECTION_RETRY_DELAY)
        return False

    async def start(self) -> None:
        """Start polling and processing events."""
        logger.info("Starting Anime Notifier")
        defaults = self.config.defaults

        self.reporter = ErrorReporter(
            self.config.sentry,
            environment=self.config.environment,
            release=__version__,
            debug=self.config.is_development,
        )

        if defaults.proxy:
            logger.info("Using proxy: %s", redact_proxy_url(defaults.proxy))

        self.parser = FeedParser(
            timeout=defaults.request_timeout,
            user_agent=self.user_agent,
            proxy_url=defaults.proxy,
        )

        watchlist = await self._load_watchlist()
        if not watchlist:
            logger.warning("Watch-list is empty, no item will match")
        self.matcher = TitleMatcher(watchlist, self.config.providers)
        logger.info("Watching %d show(s)", len(watchlist))

        self.counter = FileCounter(self.config.storage.counter_path)

        self.notifiers = []
        for notifier in self._create_notifiers():
            if await self._check_notifier(notifier):
                self.notifiers.append(notifier)
            else:
                logger.warning(
                    "Notifier '%s' unavailable, skipping it until restart", notifier.name
                )
                await notifier.close()

        if not self.notifiers:
            logger.error("No notifier available, exiting; restart once one is reachable")
            await self.stop()
            sys.exit(1)

        self.emitter = FeedEmitter(self.parser, self.queue)
        for url in self.config.rss.urls:
            self.emitter.add(
                FeedSubscription(
                    url=url,
                    ignore_first=self.config.rss.ignore_first,
                    refresh=self.config.rss.refresh,
                )
            )

        self._running = True
        self.emitter.start()
        self._consumer = asyncio.create_task(self._consume())

        logger.info(
            "Anime Notifier started with %d notifier(s) and %d feed(s)",
            len(self.notifiers),
            len(self.config.rss.urls),
        )

        try:
            await self._consumer
        except asyncio.CancelledError:
            logger.info("Event consumer cancelled")

    async def stop(self) -> None:
        """Stop the application gracefully."""
        logger.info("Stopping Anime Notifier")
        self._running = False

        if self.emitter:
            await self.emitter.stop()

        if self._consumer and not self._consumer.done():
            self._consumer.cancel()
            await asyncio.gather(self._consumer, return_exceptions=True)

        if self.parser:
            await self.parser.close()
        for notifier in self.notifiers:
            await notifier.close()
        if self.reporter:
            self.reporter.flush()

        logger.info("Anime Notifier stopped")

    async def _consume(self) -> None:
        """Handle queued events one at a time, in order."""
        while self._running:
            event = await self.queue.get()
            try:
                await self.handle_event(event)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("Error handling event: %s", e)
                if self.reporter:
                    self.reporter.handle_exception(e)
            finally:
                self.queue.task_done()

    async def handle_event(self, event: FeedEvent) -> None:
        """
        Dispatch a single feed event.

        Parameters
        ----------
        event : FeedEvent
            A new item or a feed error.
        """
        if isinstance(event, FeedErrorEvent):
            if self.reporter is None:
                raise RuntimeError("Components not initialized")
            self.reporter.handle_exception(event.error)
        elif isinstance(event, ItemEvent):
            await self.handle_item(event.item)

    async def handle_item(self, item: FeedItem) -> MatchResult | None:
        """
        Match a new feed item and notify about it.

        Parameters
        ----------
        item : FeedItem
            The new item.

        Returns
        -------
        MatchResult | None
            The match, or None if the item is not on the watch-list.
        """
        if self.matcher is None:
            raise RuntimeError("Components not initialized")

        match = self.matcher.match(item.title, item)
        if match is None:
            logger.debug("No match for '%s'", item.title[:80])
            return None

        logger.info("New episode: %s #%s", match.display_title, match.episode)
        await self.dispatch(match)
        return match

    async def dispatch(self, match: MatchResult) -> int:
        """
        Send a match to every notifier.

        A failing notifier does not prevent the others from running.

        Parameters
        ----------
        match : MatchResult
            The match to deliver.

        Returns
        -------
        int
            Number of notifiers that delivered the notification.
        """
        delivered = 0
        for notifier in self.notifiers:
            try:
                if await notifier.send(match):
                    delivered += 1
            except Exception as e:
                logger.error("Notifier '%s' failed: %s", notifier.name, e)
                if self.reporter:
                    self.reporter.handle_exception(e)

        return delivered


def setup_logging(verbose: bool = False) -> None:
    """
    Configure application logging.

    Parameters
    ----------
    verbose : bool
        If True, set log level to DEBUG.
    """
    level = logging.DEBUG if verbose else logging.INFO

    coloredlogs.install(
        level=level,
        fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # Reduce noise from third-party libraries
    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    logging.getLogger("sentry_sdk").setLevel(logging.WARNING)
    logging.getLogger("desktop_notifier").setLevel(logging.WARNING)


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Anime release notifier for torrent tracker feeds",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        "-c",
        "--config",
        default="config.yaml",
        help="Path to configuration file",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    args = parser.parse_args()

    setup_logging(args.verbose)

    config_path = Path(args.config)
    if not config_path.exists():
        logger.error("Configuration file not found: %s", config_path)
        sys.exit(1)

    app = AnimeNotifier(config_path)

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    def signal_handler():
        logger.info("Received shutdown signal")
        asyncio.create_task(app.stop())

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler)

    try:
        loop.run_until_complete(app.start())
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    finally:
        loop.run_until_complete(app.stop())
        loop.close()


if __name__ == "__main__":
    main()
