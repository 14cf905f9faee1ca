"""
Discord webhook notification client.

Renders a matched feed item as a Discord embed and posts it
through a channel webhook.
"""

import asyncio
import logging
from typing import Any

import aiohttp
from aiohttp_socks import ProxyConnector
from markdownify import MarkdownConverter

from anime_notifier.config import DiscordConfig
from anime_notifier.matcher import MatchResult

logger = logging.getLogger(__name__)

WEBHOOK_URL = "https://discord.com/api/webhooks/{webhook_id}/{webhook_token}"

EMBED_COLOR = 0xDC143C

# Discord limit for embed descriptions
MAX_DESCRIPTION_LENGTH = 4096

# Embed field name -> nyaa provider field
STAT_FIELDS = (
    ("Seeders", "nyaa_seeders"),
    ("Leechers", "nyaa_leechers"),
    ("Downloads", "nyaa_downloads"),
)


class DescriptionConverter(MarkdownConverter):
    """HTML to Markdown converter rendering ``<cite>`` as emphasis."""

    def convert_cite(self, el, text, *args, **kwargs):
        return self.convert_em(el, text, *args, **kwargs)


def html_to_markdown(content: str) -> str:
    """Convert an HTML description to Discord flavoured Markdown."""
    converter = DescriptionConverter(
        heading_style="ATX",
        bullets="-",
        strong_em_symbol="*",
        escape_misc=False,
    )
    return converter.convert(content).strip()


def format_description(content: str) -> str:
    """
    Lay out a feed item description for an embed.

    Nyaa descriptions are ``link | size | category | hash``; the link part
    itself contains one ``|``, so the first two segments stay together and
    every other segment goes on its own line.

    Parameters
    ----------
    content : str
        HTML description.

    Returns
    -------
    str
        Markdown description.
    """
    segments = html_to_markdown(content).split("|")
    head = "|".join(segments[:2]).strip()
    lines = [segment.strip() for segment in segments[2:] if segment.strip()]

    description = "\n".join([head, *lines]) if lines else head
    if len(description) > MAX_DESCRIPTION_LENGTH:
        description = description[: MAX_DESCRIPTION_LENGTH - 3] + "..."
    return description


class DiscordNotifier:
    """
    Discord webhook client.

    Posts one embed per match. Retries once when rate limited.
    """

    name = "discord"

    def __init__(
        self,
        config: DiscordConfig,
        timeout: int = 30,
        proxy_url: str | None = None,
    ):
        """
        Initialize the Discord notifier.

        Parameters
        ----------
        config : DiscordConfig
            Webhook credentials and presentation settings.
        timeout : int
            HTTP request timeout in seconds.
        proxy_url : str | None
            Optional SOCKS proxy URL.
        """
        self.config = config
        self.timeout = timeout
        self.proxy_url = proxy_url
        self.webhook_url = WEBHOOK_URL.format(
            webhook_id=config.webhook_id, webhook_token=config.webhook_token
        )
        self._session: aiohttp.ClientSession | None = None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create the HTTP session."""
        if self._session is None or self._session.closed:
            connector = None
            if self.proxy_url:
                connector = ProxyConnector.from_url(self.proxy_url)

            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                connector=connector,
            )
        return self._session

    def _show_url(self, match: MatchResult) -> str:
        if self.config.show_url:
            return self.config.show_url.format(slug=match.entry.slug, episode=match.episode)
        return match.item.link if match.item else ""

    def build_embed(self, match: MatchResult) -> dict[str, Any]:
        """
        Render a match as a Discord embed.

        Parameters
        ----------
        match : MatchResult
            The matched feed item.

        Returns
        -------
        dict[str, Any]
            Embed object.
        """
        item = match.item
        embed: dict[str, Any] = {
            "title": f"{match.display_title} #{match.episode}",
            "color": EMBED_COLOR,
        }

        url = self._show_url(match)
        if url:
            embed["url"] = url

        if item is None:
            return embed

        if item.description:
            embed["description"] = format_description(item.description)

        fields = [
            {"name": name, "value": str(item.provider_fields[key]), "inline": True}
            for name, key in STAT_FIELDS
            if item.provider_fields.get(key) not in (None, "")
        ]
        if fields:
            embed["fields"] = fields

        if item.published:
            embed["timestamp"] = item.published.isoformat()

        return embed

    def build_payload(self, match: MatchResult) -> dict[str, Any]:
        """Build the webhook execution body."""
        payload: dict[str, Any] = {"embeds": [self.build_embed(match)]}
        if self.config.username:
            payload["username"] = self.config.username
        if self.config.avatar_url:
            payload["avatar_url"] = self.config.avatar_url
        return payload

    async def _execute(self, payload: dict[str, Any]) -> None:
        """
        Execute the webhook, waiting once on a rate limit.

        Raises
        ------
        aiohttp.ClientResponseError
            If Discord rejects the request.
        """
        session = await self._get_session()

        async with session.post(self.webhook_url, json=payload) as response:
            if response.status != 429:
                response.raise_for_status()
                return
            data = await response.json()

        retry_after = float(data.get("retry_after", 1))
        logger.warning("Rate limited, waiting %.1f seconds", retry_after)
        await asyncio.sleep(retry_after)

        async with session.post(self.webhook_url, json=payload) as response:
            response.raise_for_status()

    async def send(self, match: MatchResult) -> bool:
        """
        Post a match to the webhook.

        Parameters
        ----------
        match : MatchResult
            The matched feed item.

        Returns
        -------
        bool
            True if the message was posted.
        """
        try:
            await self._execute(self.build_payload(match))
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error("Failed to execute Discord webhook: %s", e)
            return False

        logger.info("Sent Discord notification for: %s", match.raw_title[:50])
        return True

    async def test_connection(self) -> bool:
        """
        Check that the webhook exists.

        Returns
        -------
        bool
            True if Discord knows the webhook.
        """
        session = await self._get_session()

        try:
            async with session.get(self.webhook_url) as response:
                response.raise_for_status()
                data = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error("Failed to reach Discord webhook: %s", e)
            return False

        logger.info("Connected to Discord webhook '%s'", data.get("name", ""))
        return True

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None
        logger.debug("Discord client closed")
