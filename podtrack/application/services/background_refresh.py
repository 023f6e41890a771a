"""Keeps stored metrics fresh by enqueueing refresh jobs.

Three entry points: a budget-aware sweep over tracked podcasts, a manual
refresh for one podcast, and a read-through helper that returns whatever is
stored and queues a fetch when it has gone stale.
"""

from datetime import UTC, datetime
from decimal import Decimal

from attrs import define, field

from podtrack.application.services.cost_tracker import CostTracker
from podtrack.application.services.job_queue import JobQueue, estimate_platform_cost
from podtrack.application.services.metrics_fetcher import MetricsFetcher
from podtrack.config import get_logger, settings
from podtrack.domain.entities import (
    CostPeriod,
    Job,
    JobType,
    MetricRecord,
    Platform,
)
from podtrack.domain.refresh_policy import needs_refresh
from podtrack.domain.repositories import UnitOfWorkFactory

logger = get_logger(__name__).bind(service="background_refresh")


@define(slots=True)
class RefreshSummary:
    """What one refresh sweep did."""

    podcasts_checked: int = 0
    jobs_queued: list[int] = field(factory=list)
    skipped_over_budget: list[int] = field(factory=list)
    estimated_cost: Decimal = Decimal("0")
    budget_exhausted: bool = False


class BackgroundRefreshService:
    """Schedules refresh jobs without ever fetching inline."""

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        job_queue: JobQueue,
        fetcher: MetricsFetcher,
        cost_tracker: CostTracker,
    ) -> None:
        self.uow_factory = uow_factory
        self.job_queue = job_queue
        self.fetcher = fetcher
        self.cost_tracker = cost_tracker

    async def _stale_platforms(self, podcast_id: int, now: datetime) -> list[Platform]:
        async with self.uow_factory() as uow:
            links = await uow.get_podcast_repository().get_social_links(podcast_id)
            latest = await uow.get_metric_repository().get_latest_for_podcast(podcast_id)

        stale = []
        for link in links:
            record = latest.get(link.platform)
            if record is None or not record.is_fresh(now):
                stale.append(link.platform)
        return stale

    async def run_refresh(self, now: datetime | None = None) -> RefreshSummary:
        """Enqueue background refreshes for tracked podcasts with stale data.

        The weekly budget is checked against spend so far plus the estimate
        of every job queued in this sweep. A podcast whose estimate would
        overflow is skipped; the sweep stops once the budget is used up.
        """
        now = now or datetime.now(UTC)
        summary = RefreshSummary()

        async with self.uow_factory() as uow:
            podcast_ids = await uow.get_podcast_repository().get_tracked_podcast_ids(
                limit=settings.refresh.max_podcasts
            )

        budget = await self.cost_tracker.get_budget_status(CostPeriod.WEEK)
        committed = budget.spent
        unlimited = budget.budget <= 0

        for podcast_id in podcast_ids:
            if not unlimited and committed >= budget.budget:
                logger.warning("Weekly budget reached, stopping refresh sweep")
                summary.budget_exhausted = True
                break

            summary.podcasts_checked += 1
            platforms = await self._stale_platforms(podcast_id, now)
            if not platforms:
                continue

            estimate = estimate_platform_cost(platforms)
            if not unlimited and committed + estimate > budget.budget:
                logger.info(
                    f"Skipping podcast {podcast_id}: refresh would exceed weekly budget",
                    committed=str(committed),
                    budget=str(budget.budget),
                )
                summary.skipped_over_budget.append(podcast_id)
                continue

            job = await self.job_queue.enqueue(
                podcast_id,
                JobType.BACKGROUND_REFRESH,
                platforms,
                priority=settings.refresh.background_priority,
            )
            if job is not None:
                committed += estimate
                summary.estimated_cost += estimate
                summary.jobs_queued.append(job.id)

        logger.info(
            f"Refresh sweep queued {len(summary.jobs_queued)} jobs",
            checked=summary.podcasts_checked,
            skipped=len(summary.skipped_over_budget),
            estimated_cost=str(summary.estimated_cost),
        )
        return summary

    async def manual_refresh(self, podcast_id: int, platforms=None) -> Job | None:
        """Expire cached metrics and enqueue a high-priority refresh."""
        async with self.uow_factory() as uow:
            podcast = await uow.get_podcast_repository().get_podcast(podcast_id)
        if podcast is None:
            logger.warning(f"Manual refresh requested for unknown podcast {podcast_id}")
            return None

        if platforms:
            for platform in platforms:
                await self.fetcher.invalidate_cache(podcast_id, platform)
        else:
            await self.fetcher.invalidate_cache(podcast_id)

        return await self.job_queue.enqueue(
            podcast_id,
            JobType.MANUAL_REFRESH,
            platforms or None,
            priority=settings.refresh.manual_priority,
        )

    async def queue_fetch_if_needed(self, podcast_id: int, platform: Platform | str) -> Job | None:
        """Enqueue a single-platform fetch unless an active job already covers it."""
        if await self.job_queue.has_active_job(podcast_id, platform):
            logger.debug(f"Fetch already queued for {platform}", podcast_id=podcast_id)
            return None

        return await self.job_queue.enqueue(
            podcast_id,
            JobType.BACKGROUND_REFRESH,
            [platform],
            priority=settings.refresh.auto_fetch_priority,
        )

    async def get_or_fetch(
        self,
        podcast_id: int,
        platform: Platform | str,
        queue_if_stale: bool = True,
        now: datetime | None = None,
    ) -> MetricRecord | None:
        """Latest stored record, stale or not, queueing a refresh when due."""
        async with self.uow_factory() as uow:
            record = await uow.get_metric_repository().get_latest(podcast_id, Platform(platform))

        if queue_if_stale and needs_refresh(record, now):
            await self.queue_fetch_if_needed(podcast_id, platform)
        return record
