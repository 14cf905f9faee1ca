"""
Pusher Beams push notification client.

Publishes new-episode notifications to the interests the mobile
app subscribes to.
"""

import asyncio
import logging
from typing import Any

import aiohttp
from aiohttp_socks import ProxyConnector

from anime_notifier.config import BeamsConfig
from anime_notifier.counter import NotificationCounter
from anime_notifier.matcher import MatchResult

logger = logging.getLogger(__name__)

BEAMS_URL = "https://{instance_id}.pushnotifications.pusher.com/publish_api/v1/instances/{instance_id}"


class BeamsNotifier:
    """
    Push notification client for Pusher Beams.

    Each notification carries an id from the notification counter.
    """

    name = "beams"

    def __init__(
        self,
        config: BeamsConfig,
        counter: NotificationCounter,
        timeout: int = 30,
        proxy_url: str | None = None,
    ):
        """
        Initialize the Beams notifier.

        Parameters
        ----------
        config : BeamsConfig
            Beams instance id, secret key and interests.
        counter : NotificationCounter
            Source of notification ids.
        timeout : int
            HTTP request timeout in seconds.
        proxy_url : str | None
            Optional SOCKS proxy URL.
        """
        self.config = config
        self.counter = counter
        self.timeout = timeout
        self.proxy_url = proxy_url
        self.base_url = BEAMS_URL.format(instance_id=config.instance_id)
        self._session: aiohttp.ClientSession | None = None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create the HTTP session."""
        if self._session is None or self._session.closed:
            connector = None
            if self.proxy_url:
                connector = ProxyConnector.from_url(self.proxy_url)

            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                headers={"Authorization": f"Bearer {self.config.secret_key}"},
                connector=connector,
            )
        return self._session

    @staticmethod
    def format_message(match: MatchResult) -> tuple[str, str]:
        """Return the notification title and body for a match."""
        title = f"{match.display_title} - {match.episode}"
        body = f"Episode #{match.episode} just got uploaded"
        return title, body

    def build_payload(self, title: str, body: str, notification_id: int) -> dict[str, Any]:
        """
        Build the publish request body.

        Parameters
        ----------
        title : str
            Notification title.
        body : str
            Notification body.
        notification_id : int
            Id used by the app to keep notifications apart.

        Returns
        -------
        dict[str, Any]
            JSON payload for the publish endpoint.
        """
        return {
            "interests": list(self.config.interests),
            "fcm": {
                "notification": {"title": title, "body": body},
                "data": {"notificationId": notification_id},
            },
        }

    async def publish(self, title: str, body: str) -> str:
        """
        Publish a notification to the configured interests.

        Parameters
        ----------
        title : str
            Notification title.
        body : str
            Notification body.

        Returns
        -------
        str
            The publish id returned by Beams.

        Raises
        ------
        aiohttp.ClientError
            If the request fails.
        """
        notification_id = await self.counter.next()
        payload = self.build_payload(title, body, notification_id)
        session = await self._get_session()

        async with session.post(f"{self.base_url}/publishes/interests", json=payload) as response:
            response.raise_for_status()
            data = await response.json()

        return data.get("publishId", "")

    async def send(self, match: MatchResult) -> bool:
        """
        Push a notification for a match.

        Parameters
        ----------
        match : MatchResult
            The matched feed item.

        Returns
        -------
        bool
            True if Beams accepted the notification.
        """
        title, body = self.format_message(match)

        try:
            publish_id = await self.publish(title, body)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error("Failed to send push notification: %s", e)
            return False

        logger.info("Sent push notification for: %s (%s)", title, publish_id)
        return True

    async def test_connection(self) -> bool:
        """Beams has no cheap read endpoint; only check the credentials are set."""
        return bool(self.config.instance_id and self.config.secret_key)

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None
        logger.debug("Beams client closed")
