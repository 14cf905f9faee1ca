"""
Desktop toast notifications.
"""

import logging

from desktop_notifier import DesktopNotifier

from anime_notifier.config import DesktopConfig
from anime_notifier.matcher import MatchResult

logger = logging.getLogger(__name__)


class ToastNotifier:
    """Shows a native desktop notification for each match."""

    name = "desktop"

    def __init__(self, config: DesktopConfig):
        """
        Initialize the toast notifier.

        Parameters
        ----------
        config : DesktopConfig
            Application name used as the toast title.
        """
        self.config = config
        self._notifier = DesktopNotifier(app_name=config.app_name)

    def format_message(self, match: MatchResult) -> str:
        """
        Build the toast body.

        Parameters
        ----------
        match : MatchResult
            The matched feed item.

        Returns
        -------
        str
            Show and episode, followed by the item link when there is one.
        """
        message = f"{match.display_title} episode #{match.episode} just aired"
        if match.item and match.item.link:
            message = f"{message}\n{match.item.link}"
        return message

    async def send(self, match: MatchResult) -> bool:
        """
        Show a toast for a match.

        Parameters
        ----------
        match : MatchResult
            The matched feed item.

        Returns
        -------
        bool
            True if the toast was shown.
        """
        try:
            await self._notifier.send(
                title=self.config.app_name,
                message=self.format_message(match),
            )
        except Exception as e:
            # Backends raise their own error types (dbus, winrt, ...)
            logger.error("Failed to show desktop notification: %s", e)
            return False

        logger.info("Shown desktop notification for: %s", match.raw_title[:50])
        return True

    async def test_connection(self) -> bool:
        """
        Ask the platform for permission to show notifications.

        Returns
        -------
        bool
            True if notifications are authorised.
        """
        try:
            return await self._notifier.request_authorisation()
        except Exception as e:
            logger.error("Desktop notifications unavailable: %s", e)
            return False

    async def close(self) -> None:
        """Release the notifier. The backend holds no connection to close."""
        logger.debug("Desktop notifier closed")
