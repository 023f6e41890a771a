"""ScrapingDog enrichment provider.

ScrapingDog exposes one REST endpoint per platform and answers synchronously,
so a single GET yields the profile payload. Pricing is credit based; the
per-1k costs below assume the LITE plan.

Quirks handled here:
- LinkedIn only supports personal profiles (/in/), company pages are rejected
- X/Twitter takes a bare handle in the ``profile`` parameter, not a URL
- Facebook sometimes omits the follower count and reports it inside a text
  field instead ("19M followers")
"""

from typing import Any

from attrs import evolve

from podtrack.config import get_logger, resilient_operation
from podtrack.domain.entities import NormalizedMetrics, Platform
from podtrack.domain.errors import (
    InvalidCredentialsError,
    NoDataError,
    UnsupportedProfileTypeError,
    UpstreamError,
)
from podtrack.infrastructure.providers.base import (
    BaseEnrichmentProvider,
    PlatformConfig,
    extract_handle_from_url,
    parse_abbreviated_count,
)

logger = get_logger(__name__).bind(service="scrapingdog")

VALIDATION_TARGET = "https://httpbin.org/ip"

# Text fields that can carry the follower count on Facebook pages
_FACEBOOK_COUNT_FIELDS = ("location", "intro", "about")


class ScrapingDogProvider(BaseEnrichmentProvider):
    """Direct-request provider backed by ScrapingDog's per-platform endpoints."""

    NAME = "scrapingdog"
    API_KEY_SETTING = "scrapingdog_api_key"
    BASE_URL = "https://api.scrapingdog.com"

    PLATFORM_CONFIG = {
        Platform.LINKEDIN: PlatformConfig(
            endpoint="/linkedin",
            cost_per_1k="10.00",
            extra_params={"parsed": "true"},
            field_map=(
                ("followers", ("followers", "connections", "follower_count")),
                ("name", ("full_name", "name", "firstName")),
                ("bio", ("about", "summary", "headline", "bio")),
                ("location", ("location", "city")),
                ("posts", ("posts_count", "activities")),
            ),
        ),
        Platform.TWITTER: PlatformConfig(
            endpoint="/x/profile",
            cost_per_1k="1.00",
            param_name="profile",
            field_map=(
                ("followers", ("followers_count", "followersCount", "followers")),
                ("following", ("following_count", "followingCount", "friends_count")),
                ("posts", ("tweets_count", "tweetsCount", "statuses_count")),
                ("name", ("name", "displayName", "full_name")),
                ("bio", ("description", "bio")),
                ("location", ("location",)),
                ("verified", ("verified", "is_verified")),
            ),
        ),
        Platform.INSTAGRAM: PlatformConfig(
            endpoint="/instagram",
            cost_per_1k="3.00",
            field_map=(
                ("followers", ("followers", "follower_count", "edge_followed_by.count")),
                ("following", ("following", "following_count", "edge_follow.count")),
                ("posts", ("posts", "media_count", "edge_owner_to_timeline_media.count")),
                ("name", ("full_name", "name")),
                ("bio", ("biography", "bio")),
                ("verified", ("is_verified", "verified")),
            ),
        ),
        Platform.FACEBOOK: PlatformConfig(
            endpoint="/facebook",
            cost_per_1k="1.00",
            field_map=(
                ("followers", ("followers", "likes", "follower_count")),
                ("name", ("name", "page_name")),
                ("bio", ("about", "description")),
                ("location", ("location",)),
            ),
        ),
        Platform.YOUTUBE: PlatformConfig(
            endpoint="/youtube",
            cost_per_1k="1.00",
            field_map=(
                ("followers", ("subscribers", "subscriber_count", "subscriberCount")),
                ("posts", ("videos", "video_count", "videoCount")),
                ("total_views", ("views", "view_count", "viewCount")),
                ("name", ("name", "channel_name", "title")),
                ("bio", ("description", "about")),
            ),
        ),
    }

    def _profile_value(self, platform: Platform, profile_url: str, handle: str) -> str:
        if platform == Platform.LINKEDIN and "/company/" in profile_url:
            raise UnsupportedProfileTypeError(
                "ScrapingDog does not support LinkedIn company pages, only personal profiles (/in/)",
                provider=self.NAME,
                platform=platform,
                details={"profile_type": "company"},
            )

        if platform != Platform.TWITTER:
            return profile_url

        value = handle.lstrip("@") or extract_handle_from_url(profile_url, platform)
        if not value:
            raise UnsupportedProfileTypeError(
                f"Could not extract Twitter handle from URL: {profile_url}",
                provider=self.NAME,
                platform=platform,
            )
        return value

    async def fetch_metrics(
        self, platform: Platform | str, profile_url: str, handle: str = ""
    ) -> NormalizedMetrics:
        config = self.require_ready(platform)
        platform = Platform(platform)
        profile_value = self._profile_value(platform, profile_url, handle)

        params = {
            "api_key": self.get_api_key(),
            config.param_name: profile_value,
            **config.extra_params,
        }
        response = await self.request(
            "GET", f"{self.BASE_URL}{config.endpoint}", platform=platform, params=params
        )
        self.raise_for_status(response, platform)

        data: Any = self.parse_json(response, platform)
        if isinstance(data, list):
            data = data[0] if data else {}
        if not isinstance(data, dict) or not data:
            raise NoDataError(
                f"ScrapingDog returned no data for {profile_url}",
                provider=self.NAME,
                platform=platform,
            )

        metrics = self.map_response(platform, data)
        if platform == Platform.FACEBOOK and not metrics.followers:
            metrics = self._recover_facebook_followers(metrics, data)

        logger.debug(
            f"Fetched {platform} profile",
            followers=metrics.followers,
            cost=str(metrics.cost),
        )
        return metrics

    @staticmethod
    def _recover_facebook_followers(
        metrics: NormalizedMetrics, data: dict[str, Any]
    ) -> NormalizedMetrics:
        """Pull the follower count out of a free-text field like '19M followers'."""
        for key in _FACEBOOK_COUNT_FIELDS:
            text = data.get(key)
            if not isinstance(text, str) or "follower" not in text.lower():
                continue
            followers = parse_abbreviated_count(text)
            if not followers:
                continue
            if key == "location" and metrics.location == text.strip():
                return evolve(metrics, followers=followers, location="")
            return evolve(metrics, followers=followers)
        return metrics

    @resilient_operation("scrapingdog_validate_credentials")
    async def validate_credentials(self) -> None:
        api_key = self.require_api_key()
        response = await self.request(
            "GET",
            f"{self.BASE_URL}/scrape",
            params={"api_key": api_key, "url": VALIDATION_TARGET},
            timeout=self.validate_timeout,
        )

        match response.status_code:
            case 200:
                return
            case 401 | 403:
                raise InvalidCredentialsError(
                    "Invalid ScrapingDog API key", provider=self.NAME
                )
            case 402:
                raise InvalidCredentialsError(
                    "ScrapingDog account has no credits remaining", provider=self.NAME
                )
            case status:
                raise UpstreamError(
                    f"Failed to validate ScrapingDog API key. Status: {status}",
                    status_code=status,
                    provider=self.NAME,
                )
