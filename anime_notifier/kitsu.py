"""
Kitsu library import.

Builds watch-list entries from the anime a Kitsu user is currently watching.
"""

import logging
from collections.abc import Iterable
from typing import Any

import aiohttp
from aiohttp_socks import ProxyConnector

from anime_notifier.config import KitsuConfig, WatchEntry

logger = logging.getLogger(__name__)

JSON_API = "application/vnd.api+json"


class KitsuError(Exception):
    """Raised when the Kitsu library cannot be imported."""


def entry_from_anime(anime: dict[str, Any]) -> WatchEntry:
    """
    Convert an included Kitsu anime resource to a watch-list entry.

    Parameters
    ----------
    anime : dict[str, Any]
        JSON:API resource of type ``anime``.

    Returns
    -------
    WatchEntry
        Entry matching on the Kitsu slug.
    """
    attributes = anime.get("attributes", {})
    titles = attributes.get("titles") or {}
    slug = attributes.get("slug", "")
    title = (
        attributes.get("canonicalTitle")
        or titles.get("en_jp")
        or titles.get("en")
        or slug
    )
    return WatchEntry(title=title, slug=slug)


def merge_watchlist(
    configured: Iterable[WatchEntry], imported: Iterable[WatchEntry]
) -> list[WatchEntry]:
    """Append imported entries whose slug is not configured already."""
    merged = list(configured)
    slugs = {entry.slug for entry in merged}
    for entry in imported:
        if entry.slug not in slugs:
            merged.append(entry)
            slugs.add(entry.slug)
    return merged


class KitsuClient:
    """Minimal Kitsu JSON:API client."""

    def __init__(
        self,
        config: KitsuConfig,
        timeout: int = 30,
        user_agent: str = "Anime-Notifier/1.0",
        proxy_url: str | None = None,
    ):
        """
        Initialize the Kitsu client.

        Parameters
        ----------
        config : KitsuConfig
            User name, API root and page size.
        timeout : int
            HTTP request timeout in seconds.
        user_agent : str
            User-Agent header for HTTP requests.
        proxy_url : str | None
            Optional SOCKS proxy URL.
        """
        self.config = config
        self.timeout = timeout
        self.user_agent = user_agent
        self.proxy_url = proxy_url
        self._session: aiohttp.ClientSession | None = None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create the HTTP session."""
        if self._session is None or self._session.closed:
            connector = None
            if self.proxy_url:
                connector = ProxyConnector.from_url(self.proxy_url)

            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                headers={
                    "User-Agent": self.user_agent,
                    "Accept": JSON_API,
                },
                connector=connector,
            )
        return self._session

    async def _get(self, path: str, params: dict[str, str]) -> dict[str, Any]:
        """GET a JSON:API document relative to the API root."""
        session = await self._get_session()
        async with session.get(f"{self.config.base_url}/{path}", params=params) as response:
            response.raise_for_status()
            return await response.json(content_type=None)

    async def fetch_user_id(self) -> str:
        """
        Look up the configured user.

        Returns
        -------
        str
            The Kitsu user id.

        Raises
        ------
        KitsuError
            If no user has that name.
        """
        data = await self._get("users", {"filter[name]": self.config.username})
        users = data.get("data") or []
        if not users:
            raise KitsuError(f"Kitsu user not found: {self.config.username}")
        return str(users[0]["id"])

    async def fetch_watching(self) -> list[WatchEntry]:
        """
        Fetch the anime the user is currently watching.

        Returns
        -------
        list[WatchEntry]
            One entry per anime, in library order.

        Raises
        ------
        KitsuError
            If the user does not exist.
        aiohttp.ClientError
            If a request fails.
        """
        user_id = await self.fetch_user_id()
        data = await self._get(
            "library-entries",
            {
                "fields[anime]": "slug,canonicalTitle,titles",
                "fields[users]": "id",
                "filter[kind]": "anime",
                "filter[status]": "current",
                "filter[userId]": user_id,
                "include": "anime,user",
                "page[offset]": "0",
                "page[limit]": str(self.config.limit),
            },
        )

        entries = [
            entry_from_anime(resource)
            for resource in data.get("included", [])
            if resource.get("type") == "anime" and resource.get("attributes", {}).get("slug")
        ]
        logger.info(
            "Imported %d show(s) from the Kitsu library of %s",
            len(entries),
            self.config.username,
        )
        return entries

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None
