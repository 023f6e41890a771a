"""Durable job queue for podcast enrichment.

A job covers one podcast and a list of platforms. Processing walks the
platforms in order, tolerating partial failure: one successful platform is
enough to complete the job. Total failure sends the platforms that may still
succeed back to the queue until attempts run out; when no failure is
retryable the job fails at once. A job stuck in processing past the claim
timeout is returned to the queue by the next claim.

Every state transition is its own unit of work so a crash mid-job leaves the
last committed state, never a half-written one.
"""

import asyncio
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from typing import Protocol

import backoff
from sqlalchemy.exc import OperationalError

from podtrack.config import get_logger, settings
from podtrack.domain.entities import (
    CANCELLED_MESSAGE,
    MAX_ATTEMPTS_MESSAGE,
    NO_PLATFORMS_MESSAGE,
    Job,
    JobStatistics,
    JobStatus,
    JobType,
    Platform,
    TrackingStatus,
)
from podtrack.domain.errors import EnrichmentError
from podtrack.domain.repositories import UnitOfWorkFactory

logger = get_logger(__name__).bind(service="job_queue")


class PlatformFetcher(Protocol):
    """Single-platform fetch, as implemented by the metrics fetcher."""

    async def fetch(self, podcast_id: int, platform: Platform | str): ...


def estimate_platform_cost(platforms) -> Decimal:
    """Static per-platform estimate used when a job is created."""
    free = set(settings.queue.free_platforms)
    return sum(
        (
            Decimal("0") if Platform(platform).value in free else settings.queue.paid_platform_estimate
            for platform in platforms
        ),
        Decimal("0"),
    )


def _unique(platforms) -> tuple[Platform, ...]:
    return tuple(dict.fromkeys(Platform(platform) for platform in platforms))


class JobQueue:
    """Enqueue, claim, process, cancel and retry enrichment jobs."""

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        fetcher: PlatformFetcher,
        *,
        platform_delay: float | None = None,
        max_attempts: int | None = None,
        default_priority: int | None = None,
    ) -> None:
        self.uow_factory = uow_factory
        self.fetcher = fetcher
        self.platform_delay = (
            settings.queue.platform_delay if platform_delay is None else platform_delay
        )
        self.max_attempts = max_attempts or settings.queue.max_attempts
        self.default_priority = (
            settings.queue.default_priority if default_priority is None else default_priority
        )

    # -------------------------------------------------------------------------
    # ENQUEUE
    # -------------------------------------------------------------------------

    async def enqueue(
        self,
        podcast_id: int,
        job_type: JobType = JobType.INITIAL_TRACKING,
        platforms=None,
        priority: int | None = None,
        max_attempts: int | None = None,
    ) -> Job | None:
        """Create a queued job for a podcast.

        Args:
            podcast_id: Podcast to enrich
            job_type: What triggered the job
            platforms: Platforms to fetch; defaults to every linked platform
            priority: 0-100, higher runs first
            max_attempts: Attempts before the job fails for good

        Returns:
            The created job, or None when there is nothing to fetch
        """
        async with self.uow_factory() as uow:
            podcast_repo = uow.get_podcast_repository()

            if platforms is None:
                links = await podcast_repo.get_social_links(podcast_id)
                platforms = [link.platform for link in links]

            to_fetch = _unique(platforms)
            if not to_fetch:
                logger.info("No platforms to enqueue", podcast_id=podcast_id)
                return None

            job = await uow.get_job_repository().create(
                Job(
                    podcast_id=podcast_id,
                    platforms_to_fetch=to_fetch,
                    job_type=job_type,
                    priority=self.default_priority if priority is None else priority,
                    max_attempts=max_attempts or self.max_attempts,
                    estimated_cost=estimate_platform_cost(to_fetch),
                )
            )
            await podcast_repo.set_tracking_status(podcast_id, TrackingStatus.QUEUED)

        logger.info(
            f"Enqueued {job.job_type} job {job.id}",
            podcast_id=podcast_id,
            platforms=[str(p) for p in to_fetch],
            estimated_cost=str(job.estimated_cost),
        )
        return job

    # -------------------------------------------------------------------------
    # PROCESS
    # -------------------------------------------------------------------------

    async def process_next(self) -> Job | None:
        """Claim and run the next eligible job.

        Returns:
            The job as stored after processing, or None when the queue is idle
        """
        job = await self._claim()
        if job is None:
            return None

        with logger.contextualize(job_id=job.id, podcast_id=job.podcast_id):
            if job.attempts_exhausted:
                logger.warning("Job claimed with no attempts left")
                await self._fail(job, MAX_ATTEMPTS_MESSAGE)
                return await self.get_job(job.id)

            try:
                await self._run(job)
            except asyncio.CancelledError:
                logger.warning("Job interrupted, returning it to the queue")
                await asyncio.shield(self._requeue_interrupted(job))
                raise

        return await self.get_job(job.id)

    async def _claim(self) -> Job | None:
        def on_backoff(details):
            logger.warning(
                f"Database busy during claim, retrying in {details['wait']:.1f}s",
                tries=details["tries"],
            )

        @backoff.on_exception(
            backoff.expo,
            OperationalError,
            max_tries=settings.queue.claim_retry_count,
            jitter=backoff.full_jitter,
            on_backoff=on_backoff,
        )
        async def claim() -> Job | None:
            stale_before = datetime.now(UTC) - timedelta(seconds=settings.queue.claim_timeout)
            async with self.uow_factory() as uow:
                return await uow.get_job_repository().claim_next(stale_before)

        return await claim()

    async def _run(self, job: Job) -> None:
        async with self.uow_factory() as uow:
            await uow.get_job_repository().update(
                job.id,
                expected_status=JobStatus.PROCESSING,
                attempts=job.attempts + 1,
                started_at=datetime.now(UTC),
                progress_percent=0,
            )
            await uow.get_podcast_repository().set_tracking_status(
                job.podcast_id, TrackingStatus.PROCESSING
            )
        attempt = job.attempts + 1

        platforms = job.platforms_to_fetch
        if not platforms:
            await self._fail(job, NO_PLATFORMS_MESSAGE)
            return

        successes = 0
        total_cost = Decimal("0")
        errors: list[str] = []
        retryable: list[Platform] = []

        for index, platform in enumerate(platforms):
            await self._set_progress(job.id, round(index / len(platforms) * 100))
            try:
                outcome = await self.fetcher.fetch(job.podcast_id, platform)
            except EnrichmentError as e:
                logger.warning("{} fetch failed: {}", platform, e.message, code=e.code)
                errors.append(f"{platform}: {e.message}")
                if e.retryable:
                    retryable.append(platform)
            except Exception as e:
                logger.exception(f"Unexpected error fetching {platform}")
                errors.append(f"{platform}: {e}")
                retryable.append(platform)
            else:
                successes += 1
                total_cost += outcome.cost

            if index < len(platforms) - 1 and self.platform_delay > 0:
                await asyncio.sleep(self.platform_delay)

        error_message = "; ".join(errors) or None

        if successes:
            await self._complete(job, total_cost, error_message)
        elif not retryable:
            logger.info("No platform failure is retryable, failing without requeue")
            await self._fail(job, error_message)
        elif attempt < job.max_attempts:
            logger.info(
                f"All platforms failed, requeueing (attempt {attempt}/{job.max_attempts})",
                retry_platforms=[str(p) for p in retryable],
            )
            async with self.uow_factory() as uow:
                await uow.get_job_repository().update(
                    job.id,
                    expected_status=JobStatus.PROCESSING,
                    status=JobStatus.QUEUED,
                    platforms_to_fetch=tuple(retryable),
                    error_message=error_message,
                )
        else:
            await self._fail(job, error_message)

    async def _set_progress(self, job_id: int, progress: int) -> None:
        async with self.uow_factory() as uow:
            await uow.get_job_repository().update(
                job_id, expected_status=JobStatus.PROCESSING, progress_percent=progress
            )

    async def _complete(self, job: Job, total_cost: Decimal, error_message: str | None) -> None:
        async with self.uow_factory() as uow:
            await uow.get_job_repository().update(
                job.id,
                expected_status=JobStatus.PROCESSING,
                status=JobStatus.COMPLETED,
                progress_percent=100,
                actual_cost=total_cost,
                error_message=error_message,
                completed_at=datetime.now(UTC),
            )
            await uow.get_podcast_repository().set_tracking_status(
                job.podcast_id, TrackingStatus.TRACKED, is_tracked=True
            )
        logger.info("Job completed", actual_cost=str(total_cost), partial_errors=error_message)

    async def _fail(self, job: Job, error_message: str | None) -> None:
        async with self.uow_factory() as uow:
            await uow.get_job_repository().update(
                job.id,
                expected_status=JobStatus.PROCESSING,
                status=JobStatus.FAILED,
                error_message=error_message,
                completed_at=datetime.now(UTC),
            )
            await uow.get_podcast_repository().set_tracking_status(
                job.podcast_id, TrackingStatus.FAILED
            )
        logger.error(f"Job failed: {error_message}")

    async def _requeue_interrupted(self, job: Job) -> None:
        # The interrupted attempt does not count against the job
        async with self.uow_factory() as uow:
            await uow.get_job_repository().update(
                job.id,
                expected_status=JobStatus.PROCESSING,
                status=JobStatus.QUEUED,
                attempts=job.attempts,
            )
            await uow.get_podcast_repository().set_tracking_status(
                job.podcast_id, TrackingStatus.QUEUED
            )

    # -------------------------------------------------------------------------
    # OPERATOR ACTIONS
    # -------------------------------------------------------------------------

    async def cancel(self, job_id: int) -> bool:
        """Cancel a job that has not started yet.

        Returns:
            True if the job was queued and is now failed
        """
        async with self.uow_factory() as uow:
            cancelled = await uow.get_job_repository().update(
                job_id,
                expected_status=JobStatus.QUEUED,
                status=JobStatus.FAILED,
                error_message=CANCELLED_MESSAGE,
                completed_at=datetime.now(UTC),
            )
        if cancelled:
            logger.info(f"Cancelled job {job_id}")
        return cancelled

    async def retry(self, job_id: int) -> bool:
        """Give a failed job a fresh set of attempts.

        Returns:
            True if the job was failed and is now queued
        """
        async with self.uow_factory() as uow:
            retried = await uow.get_job_repository().update(
                job_id,
                expected_status=JobStatus.FAILED,
                status=JobStatus.QUEUED,
                attempts=0,
                error_message=None,
                progress_percent=0,
                completed_at=None,
            )
        if retried:
            logger.info(f"Requeued failed job {job_id}")
        return retried

    # -------------------------------------------------------------------------
    # QUERIES
    # -------------------------------------------------------------------------

    async def get_job(self, job_id: int) -> Job | None:
        async with self.uow_factory() as uow:
            return await uow.get_job_repository().get(job_id)

    async def get_podcast_jobs(self, podcast_id: int, limit: int = 10) -> list[Job]:
        async with self.uow_factory() as uow:
            return await uow.get_job_repository().list_for_podcast(podcast_id, limit)

    async def list_jobs(self, status: JobStatus | None = None, limit: int = 20) -> list[Job]:
        async with self.uow_factory() as uow:
            return await uow.get_job_repository().list_recent(status, limit)

    async def get_statistics(self) -> JobStatistics:
        async with self.uow_factory() as uow:
            return await uow.get_job_repository().get_statistics()

    async def has_active_job(self, podcast_id: int, platform: Platform | str) -> bool:
        async with self.uow_factory() as uow:
            return await uow.get_job_repository().has_active_job(podcast_id, Platform(platform))

    @staticmethod
    def estimate_platform_cost(platforms) -> Decimal:
        return estimate_platform_cost(platforms)
