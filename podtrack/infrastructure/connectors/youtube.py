"""YouTube Data API v3 connector.

Free metadata source for YouTube channels. Requests cost quota units, not
money, so metrics produced here always carry a cost of zero and bypass the
paid provider chain whenever a YouTube API key is configured.

Channel URL formats resolved to a channel id:
- youtube.com/channel/UC...   direct id
- youtube.com/@handle         channels?forHandle, falling back to search
- youtube.com/c/CustomName    search
- youtube.com/user/Username   channels?forUsername
- anything else               the stored handle, when present
"""

import re
from typing import Any

from podtrack.config import get_logger, resilient_operation
from podtrack.domain.entities import NormalizedMetrics, Platform
from podtrack.domain.errors import (
    NoDataError,
    UnsupportedProfileTypeError,
    UpstreamError,
)
from podtrack.infrastructure.connectors.base_connector import HttpSource

logger = get_logger(__name__).bind(service="youtube")

API_BASE = "https://www.googleapis.com/youtube/v3"

# YouTube's own channel, used to prove the key works
VALIDATION_CHANNEL_ID = "UCBR8-60-B28hp2BmDPdntcQ"

_CHANNEL_ID = re.compile(r"youtube\.com/channel/(UC[a-zA-Z0-9_-]+)")
_HANDLE = re.compile(r"youtube\.com/@([a-zA-Z0-9_.-]+)")
_CUSTOM = re.compile(r"youtube\.com/c/([a-zA-Z0-9_-]+)")
_USER = re.compile(r"youtube\.com/user/([a-zA-Z0-9_-]+)")


class YouTubeDataClient(HttpSource):
    """Channel statistics from the YouTube Data API."""

    NAME = "youtube"
    API_KEY_SETTING = "youtube_api_key"

    async def _get(self, resource: str, **params: Any) -> dict[str, Any]:
        api_key = self.require_api_key(Platform.YOUTUBE)
        response = await self.request(
            "GET",
            f"{API_BASE}/{resource}",
            platform=Platform.YOUTUBE,
            timeout=self.validate_timeout,
            params={**params, "key": api_key},
        )
        self.raise_for_status(response, Platform.YOUTUBE)
        body = self.parse_json(response, Platform.YOUTUBE)
        if not isinstance(body, dict):
            raise UpstreamError(
                "YouTube API returned an unexpected payload",
                provider=self.NAME,
                platform=Platform.YOUTUBE,
            )
        if "error" in body:
            message = (body["error"] or {}).get("message", "YouTube API error")
            raise UpstreamError(message, provider=self.NAME, platform=Platform.YOUTUBE)
        return body

    async def _search_channel(self, name: str) -> str:
        body = await self._get("search", part="snippet", q=name, type="channel", maxResults=1)
        items = body.get("items") or []
        if not items:
            raise NoDataError(
                f"Channel not found: {name}", provider=self.NAME, platform=Platform.YOUTUBE
            )
        first = items[0]
        return first.get("snippet", {}).get("channelId") or first.get("id", {}).get("channelId", "")

    async def _resolve_handle(self, handle: str) -> str:
        body = await self._get("channels", part="id", forHandle=handle)
        items = body.get("items") or []
        if not items:
            return await self._search_channel(handle)
        return items[0]["id"]

    async def _resolve_username(self, username: str) -> str:
        body = await self._get("channels", part="id", forUsername=username)
        items = body.get("items") or []
        if not items:
            raise NoDataError(
                f"Channel not found for username: {username}",
                provider=self.NAME,
                platform=Platform.YOUTUBE,
            )
        return items[0]["id"]

    async def resolve_channel_id(self, profile_url: str, handle: str = "") -> str:
        if match := _CHANNEL_ID.search(profile_url):
            return match.group(1)
        if match := _HANDLE.search(profile_url):
            return await self._resolve_handle(match.group(1))
        if match := _CUSTOM.search(profile_url):
            return await self._search_channel(match.group(1))
        if match := _USER.search(profile_url):
            return await self._resolve_username(match.group(1))
        if handle:
            return await self._resolve_handle(handle.lstrip("@"))

        raise UnsupportedProfileTypeError(
            f"Could not extract channel ID from URL: {profile_url}",
            provider=self.NAME,
            platform=Platform.YOUTUBE,
        )

    async def fetch_metrics(self, profile_url: str, handle: str = "") -> NormalizedMetrics:
        """Subscriber, video and view counts for the channel behind a URL."""
        self.require_api_key(Platform.YOUTUBE)
        channel_id = await self.resolve_channel_id(profile_url, handle)

        body = await self._get("channels", part="statistics,snippet", id=channel_id)
        items = body.get("items") or []
        if not items:
            raise NoDataError(
                f"Channel not found: {channel_id}",
                provider=self.NAME,
                platform=Platform.YOUTUBE,
            )

        channel = items[0]
        statistics = channel.get("statistics") or {}
        snippet = channel.get("snippet") or {}

        logger.debug(f"Fetched YouTube channel {channel_id}")
        return NormalizedMetrics(
            followers=int(statistics.get("subscriberCount") or 0),
            posts=int(statistics.get("videoCount") or 0),
            total_views=int(statistics.get("viewCount") or 0),
            name=snippet.get("title", ""),
            bio=snippet.get("description", ""),
            raw_data={
                "channel_id": channel_id,
                "statistics": statistics,
                "custom_url": snippet.get("customUrl", ""),
            },
            provider=self.NAME,
            cost=0,
        )

    @resilient_operation("youtube_validate_credentials")
    async def validate_credentials(self) -> None:
        body = await self._get("channels", part="statistics", id=VALIDATION_CHANNEL_ID)
        if not body.get("items"):
            raise UpstreamError(
                "YouTube API returned an empty response",
                provider=self.NAME,
                platform=Platform.YOUTUBE,
            )
