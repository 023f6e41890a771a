"""Metrics fetcher: one (podcast, platform) fetch from link lookup to ledger.

Routing by platform:
- youtube: free YouTube Data API when a key is configured, else paid providers
- spotify, apple_podcasts: public page scrapers (no auth, no cost)
- other social platforms: the enrichment manager's paid provider chain

A successful fetch stores a metric record and appends its cost log entry in
one transaction. A failed fetch writes nothing; the error propagates to the
caller unchanged.
"""

import asyncio
from collections import Counter
from datetime import UTC, datetime, timedelta
from decimal import Decimal
import time
from typing import Protocol

from attrs import define, field

from podtrack.config import get_logger, settings
from podtrack.domain.entities import (
    SOCIAL_PLATFORMS,
    CostLogEntry,
    MetricRecord,
    NormalizedMetrics,
    Platform,
    to_decimal,
)
from podtrack.domain.errors import NoLinkError, UnsupportedPlatformError
from podtrack.domain.repositories import UnitOfWorkFactory

logger = get_logger(__name__).bind(service="metrics_fetcher")


ENRICHMENT_ACTION = "enrichment"


class ProviderChain(Protocol):
    """Paid provider selection, as implemented by the enrichment manager."""

    async def fetch_metrics(
        self,
        platform: Platform | str,
        profile_url: str,
        handle: str = "",
        preferred_provider: str | None = None,
    ) -> NormalizedMetrics: ...


class MetricsSource(Protocol):
    """Single-platform data source outside the provider chain."""

    def is_configured(self) -> bool: ...

    async def fetch_metrics(self, profile_url: str, handle: str = "") -> NormalizedMetrics: ...


@define(frozen=True, slots=True)
class FetchOutcome:
    """Result of one successful fetch."""

    metrics_id: int
    cost: Decimal = field(converter=to_decimal)
    duration: float
    metrics: NormalizedMetrics
    provider: str


class MetricsFetcher:
    """Fetches, stores and accounts for one platform's metrics at a time."""

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        manager: ProviderChain,
        *,
        youtube_client: MetricsSource | None = None,
        spotify_scraper: MetricsSource | None = None,
        apple_scraper: MetricsSource | None = None,
        ttl: timedelta | None = None,
    ) -> None:
        self.uow_factory = uow_factory
        self.manager = manager
        self.youtube_client = youtube_client
        self.directory_sources: dict[Platform, MetricsSource | None] = {
            Platform.SPOTIFY: spotify_scraper,
            Platform.APPLE_PODCASTS: apple_scraper,
        }
        self.ttl = ttl or timedelta(days=settings.cache.metric_ttl_days)
        self._locks: dict[tuple[int, Platform], asyncio.Lock] = {}
        self._lock_users: Counter[tuple[int, Platform]] = Counter()

    async def fetch(self, podcast_id: int, platform: Platform | str) -> FetchOutcome:
        """Fetch, persist and log one platform for one podcast.

        Concurrent calls for the same (podcast, platform) run one at a time.

        Raises:
            NoLinkError: The podcast has no stored profile for the platform
            UnsupportedPlatformError: No route exists for the platform
            EnrichmentError: Any upstream failure, unchanged
        """
        platform = self._to_platform(platform)
        key = (podcast_id, platform)

        lock = self._locks.setdefault(key, asyncio.Lock())
        self._lock_users[key] += 1
        try:
            async with lock:
                with logger.contextualize(podcast_id=podcast_id, platform=str(platform)):
                    return await self._fetch_locked(podcast_id, platform)
        finally:
            # Locks live only while someone holds or waits on them
            self._lock_users[key] -= 1
            if not self._lock_users[key]:
                del self._lock_users[key]
                del self._locks[key]

    async def _fetch_locked(self, podcast_id: int, platform: Platform) -> FetchOutcome:
        link = await self._get_link(podcast_id, platform)

        started = time.perf_counter()
        metrics = await self._route(platform, link.profile_url, link.profile_handle)
        duration = round(time.perf_counter() - started, 3)

        record = MetricRecord.from_metrics(
            podcast_id, platform, metrics, duration=duration, ttl=self.ttl
        )
        # A paid result must not be lost to cancellation once it exists
        stored = await asyncio.shield(self._persist(record, metrics))

        logger.info(
            f"Fetched {platform} metrics via {metrics.provider}",
            followers=metrics.followers,
            cost=str(metrics.cost),
            duration=duration,
        )
        return FetchOutcome(
            metrics_id=stored.id,
            cost=metrics.cost,
            duration=duration,
            metrics=metrics,
            provider=metrics.provider,
        )

    @staticmethod
    def _to_platform(platform: Platform | str) -> Platform:
        try:
            return Platform(platform)
        except ValueError as e:
            raise UnsupportedPlatformError(
                f"Unsupported platform: {platform}", platform=str(platform)
            ) from e

    async def _get_link(self, podcast_id: int, platform: Platform):
        async with self.uow_factory() as uow:
            links = await uow.get_podcast_repository().get_social_links(podcast_id)

        link = next((link for link in links if link.platform == platform), None)
        if link is None or not link.profile_url:
            raise NoLinkError(
                f"No {platform} link found for podcast {podcast_id}",
                platform=str(platform),
            )
        return link

    async def _route(self, platform: Platform, profile_url: str, handle: str) -> NormalizedMetrics:
        if platform == Platform.YOUTUBE and self.youtube_client is not None:
            if self.youtube_client.is_configured():
                return await self.youtube_client.fetch_metrics(profile_url, handle)

        if platform in self.directory_sources:
            source = self.directory_sources[platform]
            if source is None:
                raise UnsupportedPlatformError(
                    f"No scraper available for {platform}", platform=str(platform)
                )
            return await source.fetch_metrics(profile_url, handle)

        if platform in SOCIAL_PLATFORMS:
            return await self.manager.fetch_metrics(platform, profile_url, handle)

        raise UnsupportedPlatformError(f"Unsupported platform: {platform}", platform=str(platform))

    async def _persist(self, record: MetricRecord, metrics: NormalizedMetrics) -> MetricRecord:
        async with self.uow_factory() as uow:
            stored = await uow.get_metric_repository().insert(record)
            await uow.get_cost_ledger().append(
                CostLogEntry(
                    entity_id=record.podcast_id,
                    action_type=ENRICHMENT_ACTION,
                    platform=record.platform.value,
                    cost_usd=metrics.cost,
                    provider=metrics.provider,
                    success=True,
                    metadata={"metrics_id": stored.id},
                    logged_at=record.fetched_at,
                )
            )
        return stored

    # -------------------------------------------------------------------------
    # CACHE
    # -------------------------------------------------------------------------

    async def get_cached(
        self, podcast_id: int, platform: Platform | str, now: datetime | None = None
    ) -> MetricRecord | None:
        """Latest record if it has not expired yet."""
        async with self.uow_factory() as uow:
            record = await uow.get_metric_repository().get_latest(podcast_id, Platform(platform))
        if record is None or not record.is_fresh(now):
            return None
        return record

    async def is_cached(
        self, podcast_id: int, platform: Platform | str, now: datetime | None = None
    ) -> bool:
        return await self.get_cached(podcast_id, platform, now) is not None

    async def invalidate_cache(self, podcast_id: int, platform: Platform | str | None = None) -> int:
        """Expire stored records so the next read treats them as stale."""
        async with self.uow_factory() as uow:
            expired = await uow.get_metric_repository().expire(
                podcast_id,
                Platform(platform) if platform is not None else None,
                datetime.now(UTC),
            )
        logger.debug(f"Expired {expired} metric records", podcast_id=podcast_id)
        return expired

    async def get_latest_for_podcast(self, podcast_id: int) -> dict[Platform, MetricRecord]:
        async with self.uow_factory() as uow:
            return await uow.get_metric_repository().get_latest_for_podcast(podcast_id)
