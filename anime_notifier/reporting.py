"""
Central exception handling.

Logs every reported exception and forwards it to Sentry together with
the identity of the machine it happened on.
"""

import getpass
import logging
import os
import socket

import sentry_sdk

from anime_notifier.config import SentryConfig
from anime_notifier.rss_parser import FeedError

logger = logging.getLogger(__name__)


def local_ips() -> list[str]:
    """Return the non-loopback IPv4 addresses of this host."""
    try:
        _, _, addresses = socket.gethostbyname_ex(socket.gethostname())
    except OSError:
        return []
    return [address for address in addresses if not address.startswith("127.")]


def current_user() -> dict[str, str]:
    """Describe the user running the process."""
    try:
        username = getpass.getuser()
    except (KeyError, OSError):
        username = "unknown"

    uid = str(os.getuid()) if hasattr(os, "getuid") else username
    ips = local_ips()

    return {
        "id": uid,
        "username": username,
        "ip_address": ips[0] if ips else "unknown",
    }


class ErrorReporter:
    """
    Reports exceptions to the log and to Sentry.

    Without a DSN, exceptions are only logged.
    """

    def __init__(
        self,
        config: SentryConfig,
        environment: str = "production",
        release: str | None = None,
        debug: bool = False,
    ):
        """
        Initialize the reporter.

        Parameters
        ----------
        config : SentryConfig
            DSN and server name.
        environment : str
            Environment name attached to events.
        release : str | None
            Application version.
        debug : bool
            Enable Sentry SDK debug output.
        """
        self.config = config
        self.enabled = bool(config.dsn)

        if self.enabled:
            sentry_sdk.init(
                dsn=config.dsn,
                debug=debug,
                release=release,
                environment=environment,
                server_name=config.server_name,
            )
            logger.info("Error reporting enabled (%s)", environment)

    def handle_exception(self, exception: BaseException) -> None:
        """
        Report an exception.

        Parameters
        ----------
        exception : BaseException
            The exception to report.
        """
        if isinstance(exception, FeedError):
            logger.error("Feed error (%s) for %s: %s", exception.kind, exception.feed_url, exception)
        else:
            logger.error("Unhandled %s: %s", type(exception).__name__, exception)

        if not self.enabled:
            return

        with sentry_sdk.new_scope() as scope:
            scope.set_user(current_user())

            if isinstance(exception, FeedError):
                scope.set_extra("feed", exception.feed_url)
                scope.set_extra("type", exception.kind)
                scope.set_extra("name", type(exception).__name__)
                scope.set_tag("type", exception.kind)
            else:
                scope.set_extra("name", type(exception).__name__)
                scope.set_tag("type", "generic_error")

            sentry_sdk.capture_exception(exception)

    def flush(self, timeout: float = 2.0) -> None:
        """Wait for queued events to be sent."""
        if self.enabled:
            sentry_sdk.flush(timeout=timeout)
