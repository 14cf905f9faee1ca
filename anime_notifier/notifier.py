"""
Protocol definition for notification backends.

Defines the common interface that all notifiers must implement.
"""

from typing import Protocol, runtime_checkable

from anime_notifier.matcher import MatchResult


@runtime_checkable
class Notifier(Protocol):
    """
    Protocol defining the interface for notification backends.

    Push, Discord and desktop notifiers implement these methods so the
    application can fan a match out to all of them the same way.
    """

    name: str

    async def test_connection(self) -> bool:
        """
        Test the connection to the notification backend.

        Returns
        -------
        bool
            True if the backend is reachable and messages can be sent.
        """
        ...

    async def send(self, match: MatchResult) -> bool:
        """
        Deliver a notification for a new episode.

        Parameters
        ----------
        match : MatchResult
            The matched feed item.

        Returns
        -------
        bool
            True if the notification was delivered.
        """
        ...

    async def close(self) -> None:
        """Release any resources held by the notifier."""
        ...
