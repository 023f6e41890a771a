"""Apify enrichment provider.

Apify runs marketplace "actors" asynchronously: a run is started, polled until
it reaches a terminal status, and its default dataset is then read. Actors can
be deprecated or removed from the marketplace, so Apify is a fallback after
ScrapingDog in the default priorities.

Run lifecycle:
1. POST /acts/{actor}/runs            -> run id + default dataset id
2. GET  /actor-runs/{id} (bounded)    -> SUCCEEDED | FAILED | ABORTED | TIMED-OUT
3. GET  /datasets/{id}/items          -> result items

Only the status poll is retried on connection errors and 5xx responses: it
is not billed. Starting a run is never retried here.
"""

import asyncio
from decimal import Decimal
from typing import Any

import backoff

from podtrack.config import get_logger, resilient_operation, settings
from podtrack.domain.entities import NormalizedMetrics, Platform, ProfileReference
from podtrack.domain.errors import (
    FetchTimeoutError,
    InvalidCredentialsError,
    NoDataError,
    UnsupportedProfileTypeError,
    UpstreamError,
)
from podtrack.infrastructure.providers.base import (
    BaseEnrichmentProvider,
    BatchFetchResult,
    PlatformConfig,
    extract_handle_from_url,
    get_nested_value,
)

logger = get_logger(__name__).bind(service="apify")

TERMINAL_FAILURE_STATUSES = frozenset({"FAILED", "ABORTED", "TIMED-OUT"})

# Actor inputs built from handles rather than URLs
HANDLE_INPUT_FORMATS = frozenset({"twitter_handles", "profiles"})

_ITEM_URL_FIELDS = (
    "url",
    "inputUrl",
    "profileUrl",
    "linkedinUrl",
    "twitterUrl",
    "instagramUrl",
    "pageUrl",
    "facebookUrl",
    "tiktokUrl",
    "authorMeta.profileUrl",
)
_ITEM_HANDLE_FIELDS = (
    "username",
    "userName",
    "screen_name",
    "uniqueId",
    "author.userName",
    "authorMeta.name",
)


def normalize_actor_id(actor_id: str) -> str:
    """Apify addresses actors as ``username~actor-name`` in URLs."""
    if "~" in actor_id:
        return actor_id
    return actor_id.replace("/", "~", 1)


def _url_key(url: str) -> str:
    return url.strip().rstrip("/").lower()


def _handle_key(handle: str) -> str:
    return handle.strip().lstrip("@").lower()


def _is_client_error(e: Exception) -> bool:
    status_code = getattr(e, "status_code", None)
    return status_code is not None and status_code < 500


class ApifyProvider(BaseEnrichmentProvider):
    """Actor-based provider backed by the Apify marketplace."""

    NAME = "apify"
    API_KEY_SETTING = "apify_api_token"
    BASE_URL = "https://api.apify.com/v2"

    PLATFORM_CONFIG = {
        Platform.LINKEDIN: PlatformConfig(
            actor="dev_fusion/linkedin-profile-scraper",
            cost_per_1k="10.00",
            input_format="profile_urls",
            field_map=(
                ("followers", ("followersCount", "connectionsCount", "followerCount", "connections")),
                ("name", ("fullName", "name", "firstName")),
                ("bio", ("about", "summary", "headline", "bio")),
                ("location", ("location", "locationName", "city")),
            ),
        ),
        Platform.TWITTER: PlatformConfig(
            actor="apidojo/tweet-scraper",
            cost_per_1k="3.00",
            input_format="twitter_handles",
            field_map=(
                ("followers", ("followersCount", "followers_count", "author.followers")),
                ("following", ("followingCount", "friends_count", "author.following")),
                ("posts", ("tweetsCount", "statuses_count", "author.statusesCount")),
                ("name", ("name", "displayName", "author.name")),
                ("bio", ("description", "bio", "author.description")),
                ("location", ("location", "author.location")),
                ("verified", ("verified", "isVerified", "author.isVerified")),
            ),
        ),
        Platform.INSTAGRAM: PlatformConfig(
            actor="apify/instagram-profile-scraper",
            cost_per_1k="5.00",
            input_format="direct_urls",
            field_map=(
                ("followers", ("followersCount", "edge_followed_by.count")),
                ("following", ("followsCount", "edge_follow.count")),
                ("posts", ("postsCount", "edge_owner_to_timeline_media.count")),
                ("name", ("fullName", "full_name")),
                ("bio", ("biography", "bio")),
                ("verified", ("isVerified", "is_verified")),
            ),
        ),
        Platform.FACEBOOK: PlatformConfig(
            actor="apify/facebook-pages-scraper",
            cost_per_1k="5.00",
            input_format="start_urls",
            field_map=(
                ("followers", ("likes", "followersCount", "followers")),
                ("name", ("name", "title")),
                ("bio", ("about", "description", "intro")),
                ("location", ("address", "location")),
            ),
        ),
        Platform.TIKTOK: PlatformConfig(
            actor="clockworks/tiktok-profile-scraper",
            cost_per_1k="3.00",
            input_format="profiles",
            field_map=(
                ("followers", ("followerCount", "fans", "followersCount", "authorMeta.fans")),
                ("following", ("followingCount", "following", "authorMeta.following")),
                ("posts", ("videoCount", "video", "videosCount", "authorMeta.video")),
                ("total_views", ("heartCount", "heart", "likesCount", "authorMeta.heart")),
                ("name", ("nickname", "name", "authorMeta.nickName")),
                ("bio", ("signature", "bio", "description", "authorMeta.signature")),
                ("verified", ("verified", "isVerified", "authorMeta.verified")),
            ),
        ),
    }

    def __init__(
        self,
        *args: Any,
        poll_interval: float | None = None,
        max_poll_attempts: int | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(*args, **kwargs)
        self.poll_interval = (
            poll_interval if poll_interval is not None else settings.providers.apify_poll_interval
        )
        self.max_poll_attempts = (
            max_poll_attempts
            if max_poll_attempts is not None
            else settings.providers.apify_max_poll_attempts
        )

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.get_api_key()}",
            "Content-Type": "application/json",
        }

    def build_input(self, platform: Platform, profiles: list[ProfileReference]) -> dict[str, Any]:
        """Actor input for one or more profiles of a platform."""
        config = self.get_platform_config(platform)
        urls = [profile.url for profile in profiles if profile.url]
        handles = [
            handle
            for handle in (
                profile.handle.lstrip("@") or extract_handle_from_url(profile.url, platform)
                for profile in profiles
            )
            if handle
        ]
        if config.input_format in HANDLE_INPUT_FORMATS and not handles:
            raise UnsupportedProfileTypeError(
                f"Could not extract a {platform} handle from: "
                f"{', '.join(profile.url for profile in profiles) or 'no profile URL'}",
                provider=self.NAME,
                platform=platform,
            )

        match config.input_format:
            case "profile_urls":
                return {"profileUrls": urls}
            case "twitter_handles":
                return {
                    "twitterHandles": handles,
                    "getFollowers": True,
                    "maxItems": max(len(handles), 1),
                }
            case "direct_urls":
                return {"directUrls": urls, "resultsType": "details", "resultsLimit": 1}
            case "start_urls":
                return {"startUrls": [{"url": url} for url in urls], "maxPosts": 0}
            case "profiles":
                return {"profiles": handles, "resultsPerPage": 1}
            case _:
                return {"urls": urls}

    # -------------------------------------------------------------------------
    # RUN LIFECYCLE
    # -------------------------------------------------------------------------

    async def _start_run(self, platform: Platform, actor: str, run_input: dict[str, Any]) -> dict[str, Any]:
        actor_id = normalize_actor_id(actor)
        response = await self.request(
            "POST",
            f"{self.BASE_URL}/acts/{actor_id}/runs",
            platform=platform,
            headers=self._headers(),
            json=run_input,
        )
        self.raise_for_status(response, platform, expected=(200, 201))

        run = (self.parse_json(response, platform) or {}).get("data") or {}
        if not run.get("id"):
            raise UpstreamError(
                f"Apify run id missing (actor: {actor_id})",
                provider=self.NAME,
                platform=platform,
            )
        logger.debug(f"Started Apify run {run['id']}", actor=actor_id, platform=platform)
        return run

    async def _get_run(self, platform: Platform, run_id: str) -> dict[str, Any]:
        def on_backoff(details):
            logger.warning(
                f"Retrying Apify run status after {details['wait']:.1f}s",
                run_id=run_id,
                tries=details["tries"],
            )

        def on_giveup(details):
            logger.error(
                f"Giving up on Apify run status after {details['tries']} tries",
                run_id=run_id,
            )

        @backoff.on_exception(
            backoff.expo,
            UpstreamError,
            max_tries=settings.providers.poll_retry_count,
            max_value=settings.providers.poll_retry_max_delay,
            giveup=_is_client_error,
            jitter=backoff.full_jitter,
            on_backoff=on_backoff,
            on_giveup=on_giveup,
        )
        async def fetch_status() -> dict[str, Any]:
            response = await self.request(
                "GET",
                f"{self.BASE_URL}/actor-runs/{run_id}",
                platform=platform,
                headers=self._headers(),
            )
            self.raise_for_status(response, platform)
            return (self.parse_json(response, platform) or {}).get("data") or {}

        return await fetch_status()

    async def _wait_for_run(self, platform: Platform, run_id: str) -> dict[str, Any]:
        """Poll a run until it finishes. Cancellation propagates out of the sleep."""
        for _ in range(self.max_poll_attempts):
            run = await self._get_run(platform, run_id)
            status = run.get("status", "")

            if status == "SUCCEEDED":
                return run
            if status in TERMINAL_FAILURE_STATUSES:
                raise UpstreamError(
                    f"Actor run failed: {status}",
                    detail=status,
                    provider=self.NAME,
                    platform=platform,
                    details={"run_id": run_id},
                )
            await asyncio.sleep(self.poll_interval)

        raise FetchTimeoutError(
            f"Actor run timed out after {self.max_poll_attempts * self.poll_interval:.0f}s",
            provider=self.NAME,
            platform=platform,
            details={"run_id": run_id},
        )

    async def _fetch_dataset(self, platform: Platform, dataset_id: str) -> list[dict[str, Any]]:
        response = await self.request(
            "GET",
            f"{self.BASE_URL}/datasets/{dataset_id}/items",
            platform=platform,
            headers=self._headers(),
        )
        self.raise_for_status(response, platform)
        items = self.parse_json(response, platform)
        if not isinstance(items, list):
            return []
        return [item for item in items if isinstance(item, dict)]

    async def run_actor(
        self, platform: Platform, profiles: list[ProfileReference]
    ) -> list[dict[str, Any]]:
        """Run the platform's actor for the given profiles and return its items."""
        config = self.get_platform_config(platform)
        run = await self._start_run(platform, config.actor, self.build_input(platform, profiles))
        finished = await self._wait_for_run(platform, run["id"])
        dataset_id = finished.get("defaultDatasetId") or run.get("defaultDatasetId")
        if not dataset_id:
            raise UpstreamError(
                "Apify run finished without a dataset",
                provider=self.NAME,
                platform=platform,
            )
        return await self._fetch_dataset(platform, dataset_id)

    # -------------------------------------------------------------------------
    # PROVIDER CONTRACT
    # -------------------------------------------------------------------------

    async def fetch_metrics(
        self, platform: Platform | str, profile_url: str, handle: str = ""
    ) -> NormalizedMetrics:
        self.require_ready(platform)
        platform = Platform(platform)

        items = await self.run_actor(
            platform, [ProfileReference(platform=platform, url=profile_url, handle=handle)]
        )
        if not items:
            raise NoDataError(
                "No data returned from Apify actor",
                provider=self.NAME,
                platform=platform,
            )
        return self.map_response(platform, items[0])

    async def batch_fetch(
        self, platform: Platform | str, profiles: list[ProfileReference]
    ) -> BatchFetchResult:
        """One actor run for all profiles; items are matched back by URL or handle."""
        self.require_ready(platform)
        platform = Platform(platform)
        requested = [profile for profile in profiles if profile.url]
        if not requested:
            return BatchFetchResult()

        lookup: dict[str, str] = {}
        for profile in requested:
            lookup[_url_key(profile.url)] = profile.url
            handle = profile.handle or extract_handle_from_url(profile.url, platform)
            if handle:
                lookup[_handle_key(handle)] = profile.url

        items = await self.run_actor(platform, requested)

        results: dict[str, NormalizedMetrics] = {}
        for item in items:
            profile_url = self._match_item(item, lookup)
            if profile_url and profile_url not in results:
                results[profile_url] = self.map_response(platform, item)

        errors = {
            profile.url: "No matching result returned by Apify actor"
            for profile in requested
            if profile.url not in results
        }
        total_cost = self.cost_per_profile(platform) * len(results)

        logger.info(
            f"Apify batch matched {len(results)}/{len(requested)} {platform} profiles",
            total_cost=str(total_cost),
        )
        return BatchFetchResult(results=results, total_cost=Decimal(total_cost), errors=errors)

    @staticmethod
    def _match_item(item: dict[str, Any], lookup: dict[str, str]) -> str | None:
        for path in _ITEM_URL_FIELDS:
            value = get_nested_value(item, path)
            if isinstance(value, str) and _url_key(value) in lookup:
                return lookup[_url_key(value)]
        for path in _ITEM_HANDLE_FIELDS:
            value = get_nested_value(item, path)
            if isinstance(value, str) and _handle_key(value) in lookup:
                return lookup[_handle_key(value)]
        return None

    @resilient_operation("apify_validate_credentials")
    async def validate_credentials(self) -> None:
        self.require_api_key()
        response = await self.request(
            "GET",
            f"{self.BASE_URL}/users/me",
            headers=self._headers(),
            timeout=self.validate_timeout,
        )
        if response.status_code in (401, 403):
            raise InvalidCredentialsError("Invalid Apify API token", provider=self.NAME)
        self.raise_for_status(response)
