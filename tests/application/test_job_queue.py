"""Tests for the enrichment job lifecycle."""

import asyncio
from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from podtrack.application.services import FetchOutcome, JobQueue
from podtrack.domain.entities import (
    CANCELLED_MESSAGE,
    MAX_ATTEMPTS_MESSAGE,
    NO_PLATFORMS_MESSAGE,
    Job,
    JobStatus,
    JobType,
    NormalizedMetrics,
    Platform,
    TrackingStatus,
)
from podtrack.domain.errors import (
    NoLinkError,
    RateLimitedError,
    UnsupportedPlatformError,
    UpstreamError,
)
from tests.fixtures.memory import MemoryJobRepository


class ScriptedFetcher:
    """Per-platform outcomes: a cost string means success, an exception means failure."""

    def __init__(self, outcomes=None, default="0.01"):
        self.outcomes = outcomes or {}
        self.default = default
        self.calls: list[tuple[int, Platform]] = []

    async def fetch(self, podcast_id, platform):
        platform = Platform(platform)
        self.calls.append((podcast_id, platform))
        outcome = self.outcomes.get(platform, self.default)
        if isinstance(outcome, Exception):
            raise outcome
        return FetchOutcome(
            metrics_id=len(self.calls),
            cost=outcome,
            duration=0.1,
            metrics=NormalizedMetrics(),
            provider="fake",
        )


class BlockingFetcher:
    """Fetcher that waits until the test releases or cancels it."""

    def __init__(self):
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def fetch(self, podcast_id, platform):
        self.started.set()
        await self.release.wait()
        return FetchOutcome(1, "0", 0.0, NormalizedMetrics(), "fake")


def _seed_job(store, **kwargs) -> Job:
    job = Job(id=store.new_id(), **kwargs)
    store.jobs[job.id] = job
    return job


@pytest.fixture
def podcast(store):
    podcast = store.add_podcast("Pod Show")
    store.add_link(podcast.id, Platform.TWITTER, "https://twitter.com/podshow")
    store.add_link(podcast.id, Platform.LINKEDIN, "https://linkedin.com/in/host")
    store.add_link(podcast.id, Platform.YOUTUBE, "https://youtube.com/@podshow")
    return podcast


class TestEnqueue:
    async def test_defaults_to_linked_platforms(self, store, uow_factory, podcast):
        queue = JobQueue(uow_factory, ScriptedFetcher())

        job = await queue.enqueue(podcast.id)

        assert job.status == JobStatus.QUEUED
        assert job.job_type == JobType.INITIAL_TRACKING
        assert job.platforms_to_fetch == (Platform.TWITTER, Platform.LINKEDIN, Platform.YOUTUBE)
        assert job.priority == 50
        assert job.max_attempts == 3
        # YouTube is free, the two paid platforms are estimated at 0.05 each
        assert job.estimated_cost == Decimal("0.10")
        assert store.podcasts[podcast.id].tracking_status == TrackingStatus.QUEUED

    async def test_explicit_platforms_are_deduplicated(self, uow_factory, podcast):
        queue = JobQueue(uow_factory, ScriptedFetcher())

        job = await queue.enqueue(
            podcast.id, JobType.MANUAL_REFRESH, ["twitter", "twitter", "youtube"], priority=80
        )

        assert job.platforms_to_fetch == (Platform.TWITTER, Platform.YOUTUBE)
        assert job.priority == 80
        assert job.estimated_cost == Decimal("0.05")

    async def test_nothing_to_fetch(self, store, uow_factory):
        podcast = store.add_podcast("No Links")
        queue = JobQueue(uow_factory, ScriptedFetcher())

        assert await queue.enqueue(podcast.id) is None
        assert store.jobs == {}
        assert store.podcasts[podcast.id].tracking_status == TrackingStatus.NOT_TRACKED

    def test_static_cost_estimate(self):
        assert JobQueue.estimate_platform_cost(["spotify", "apple_podcasts"]) == 0
        assert JobQueue.estimate_platform_cost(["tiktok", "facebook"]) == Decimal("0.10")


class TestProcessNext:
    async def test_idle_queue(self, uow_factory):
        assert await JobQueue(uow_factory, ScriptedFetcher()).process_next() is None

    async def test_all_platforms_succeed(self, store, uow_factory, podcast):
        fetcher = ScriptedFetcher({Platform.TWITTER: "0.001", Platform.LINKEDIN: "0.01"})
        queue = JobQueue(uow_factory, fetcher)
        await queue.enqueue(podcast.id, platforms=["twitter", "linkedin"])

        job = await queue.process_next()

        assert job.status == JobStatus.COMPLETED
        assert job.attempts == 1
        assert job.progress_percent == 100
        assert job.actual_cost == Decimal("0.011")
        assert job.error_message is None
        assert job.started_at is not None
        assert job.completed_at is not None
        assert [platform for _, platform in fetcher.calls] == [Platform.TWITTER, Platform.LINKEDIN]

        tracked = store.podcasts[podcast.id]
        assert tracked.tracking_status == TrackingStatus.TRACKED
        assert tracked.is_tracked

    async def test_partial_success_completes_with_errors(self, uow_factory, podcast):
        fetcher = ScriptedFetcher({Platform.LINKEDIN: UpstreamError("Bad gateway")})
        queue = JobQueue(uow_factory, fetcher)
        await queue.enqueue(podcast.id, platforms=["twitter", "linkedin"])

        job = await queue.process_next()

        assert job.status == JobStatus.COMPLETED
        assert job.actual_cost == Decimal("0.01")
        assert job.error_message == "linkedin: Bad gateway"

    async def test_failed_attempts_requeue_until_exhausted(self, store, uow_factory, podcast):
        fetcher = ScriptedFetcher(
            {
                Platform.TWITTER: RateLimitedError("rate limited"),
                Platform.LINKEDIN: UpstreamError("down"),
            }
        )
        queue = JobQueue(uow_factory, fetcher)
        created = await queue.enqueue(podcast.id, platforms=["twitter", "linkedin"])

        first = await queue.process_next()
        assert first.status == JobStatus.QUEUED
        assert first.attempts == 1
        assert first.error_message == "twitter: rate limited; linkedin: down"
        assert first.completed_at is None

        second = await queue.process_next()
        assert second.status == JobStatus.QUEUED
        assert second.attempts == 2

        third = await queue.process_next()
        assert third.id == created.id
        assert third.status == JobStatus.FAILED
        assert third.attempts == 3
        assert third.completed_at is not None
        assert store.podcasts[podcast.id].tracking_status == TrackingStatus.FAILED

        assert await queue.process_next() is None
        assert len(fetcher.calls) == 6

    async def test_non_retryable_failures_fail_at_once(self, store, uow_factory, podcast):
        fetcher = ScriptedFetcher(
            {
                Platform.TWITTER: NoLinkError("No twitter link found"),
                Platform.LINKEDIN: UnsupportedPlatformError("No scraper available"),
            }
        )
        queue = JobQueue(uow_factory, fetcher)
        await queue.enqueue(podcast.id, platforms=["twitter", "linkedin"])

        job = await queue.process_next()

        assert job.status == JobStatus.FAILED
        assert job.attempts == 1
        assert job.error_message == "twitter: No twitter link found; linkedin: No scraper available"
        assert store.podcasts[podcast.id].tracking_status == TrackingStatus.FAILED
        assert await queue.process_next() is None
        assert len(fetcher.calls) == 2

    async def test_requeue_keeps_only_retryable_platforms(self, uow_factory, podcast):
        fetcher = ScriptedFetcher(
            {
                Platform.TWITTER: NoLinkError("No twitter link found"),
                Platform.LINKEDIN: UpstreamError("down"),
            }
        )
        queue = JobQueue(uow_factory, fetcher)
        await queue.enqueue(podcast.id, platforms=["twitter", "linkedin"])

        first = await queue.process_next()
        assert first.status == JobStatus.QUEUED
        assert first.platforms_to_fetch == (Platform.LINKEDIN,)
        assert first.error_message == "twitter: No twitter link found; linkedin: down"

        fetcher.calls.clear()
        fetcher.outcomes[Platform.LINKEDIN] = "0.01"
        second = await queue.process_next()

        assert second.status == JobStatus.COMPLETED
        assert second.attempts == 2
        assert [platform for _, platform in fetcher.calls] == [Platform.LINKEDIN]

    async def test_unexpected_error_is_recorded(self, uow_factory, podcast):
        fetcher = ScriptedFetcher({Platform.TWITTER: RuntimeError("kaboom")})
        queue = JobQueue(uow_factory, fetcher, max_attempts=1)
        await queue.enqueue(podcast.id, platforms=["twitter"])

        job = await queue.process_next()

        assert job.status == JobStatus.FAILED
        assert job.error_message == "twitter: kaboom"

    async def test_claimed_job_with_no_attempts_left(self, store, uow_factory, podcast):
        fetcher = ScriptedFetcher()
        seeded = _seed_job(
            store, podcast_id=podcast.id, platforms_to_fetch=["twitter"], attempts=3, max_attempts=3
        )

        job = await JobQueue(uow_factory, fetcher).process_next()

        assert job.id == seeded.id
        assert job.status == JobStatus.FAILED
        assert job.error_message == MAX_ATTEMPTS_MESSAGE
        assert fetcher.calls == []

    async def test_job_without_platforms(self, store, uow_factory, podcast):
        _seed_job(store, podcast_id=podcast.id)

        job = await JobQueue(uow_factory, ScriptedFetcher()).process_next()

        assert job.status == JobStatus.FAILED
        assert job.error_message == NO_PLATFORMS_MESSAGE

    async def test_highest_priority_first(self, store, uow_factory):
        low = store.add_podcast("Low")
        high = store.add_podcast("High")
        store.add_link(low.id, "twitter", "https://twitter.com/low")
        store.add_link(high.id, "twitter", "https://twitter.com/high")
        queue = JobQueue(uow_factory, ScriptedFetcher())
        await queue.enqueue(low.id, priority=10)
        await queue.enqueue(high.id, priority=90)

        first = await queue.process_next()

        assert first.podcast_id == high.id

    async def test_claim_retried_when_database_is_busy(self, uow_factory, podcast, monkeypatch):
        queue = JobQueue(uow_factory, ScriptedFetcher())
        await queue.enqueue(podcast.id, platforms=["twitter"])

        original = MemoryJobRepository.claim_next
        calls = []

        async def flaky_claim(self, *args, **kwargs):
            calls.append(1)
            if len(calls) == 1:
                raise OperationalError("UPDATE jobs", {}, Exception("database is locked"))
            return await original(self, *args, **kwargs)

        monkeypatch.setattr(MemoryJobRepository, "claim_next", flaky_claim)

        job = await queue.process_next()

        assert len(calls) == 2
        assert job.status == JobStatus.COMPLETED

    async def test_stale_processing_job_no_longer_blocks_podcast(self, store, uow_factory, podcast):
        stuck = _seed_job(
            store,
            podcast_id=podcast.id,
            platforms_to_fetch=["twitter"],
            status=JobStatus.PROCESSING,
            attempts=1,
            started_at=datetime.now(UTC) - timedelta(days=1),
        )
        fetcher = ScriptedFetcher()
        queue = JobQueue(uow_factory, fetcher)
        await queue.enqueue(podcast.id, platforms=["linkedin"])

        job = await queue.process_next()

        assert job.id == stuck.id
        assert job.status == JobStatus.COMPLETED
        assert job.attempts == 2
        assert (await queue.process_next()).status == JobStatus.COMPLETED
        assert [platform for _, platform in fetcher.calls] == [Platform.TWITTER, Platform.LINKEDIN]

    async def test_stale_job_without_attempts_left_fails(self, store, uow_factory, podcast):
        stuck = _seed_job(
            store,
            podcast_id=podcast.id,
            platforms_to_fetch=["twitter"],
            status=JobStatus.PROCESSING,
            attempts=3,
            max_attempts=3,
            started_at=datetime.now(UTC) - timedelta(days=1),
        )
        fetcher = ScriptedFetcher()

        job = await JobQueue(uow_factory, fetcher).process_next()

        assert job.id == stuck.id
        assert job.status == JobStatus.FAILED
        assert job.error_message == MAX_ATTEMPTS_MESSAGE
        assert fetcher.calls == []

    async def test_recent_processing_job_still_blocks_podcast(self, store, uow_factory, podcast):
        _seed_job(
            store,
            podcast_id=podcast.id,
            platforms_to_fetch=["twitter"],
            status=JobStatus.PROCESSING,
            attempts=1,
            started_at=datetime.now(UTC) - timedelta(minutes=5),
        )
        queue = JobQueue(uow_factory, ScriptedFetcher())
        await queue.enqueue(podcast.id, platforms=["linkedin"])

        assert await queue.process_next() is None

    async def test_cancellation_returns_job_to_queue(self, store, uow_factory, podcast):
        fetcher = BlockingFetcher()
        queue = JobQueue(uow_factory, fetcher)
        created = await queue.enqueue(podcast.id, platforms=["twitter"])

        task = asyncio.create_task(queue.process_next())
        await fetcher.started.wait()
        assert store.jobs[created.id].attempts == 1

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        job = store.jobs[created.id]
        assert job.status == JobStatus.QUEUED
        assert job.attempts == 0
        assert store.podcasts[podcast.id].tracking_status == TrackingStatus.QUEUED


class TestOperatorActions:
    async def test_cancel_only_queued_jobs(self, store, uow_factory, podcast):
        queue = JobQueue(uow_factory, ScriptedFetcher())
        queued = await queue.enqueue(podcast.id, platforms=["twitter"])
        processing = _seed_job(store, podcast_id=podcast.id, status=JobStatus.PROCESSING)

        assert await queue.cancel(queued.id)
        assert not await queue.cancel(processing.id)
        assert not await queue.cancel(9999)

        cancelled = await queue.get_job(queued.id)
        assert cancelled.status == JobStatus.FAILED
        assert cancelled.error_message == CANCELLED_MESSAGE
        assert cancelled.completed_at is not None
        assert (await queue.get_job(processing.id)).status == JobStatus.PROCESSING

    async def test_retry_only_failed_jobs(self, store, uow_factory, podcast):
        queue = JobQueue(uow_factory, ScriptedFetcher())
        failed = _seed_job(
            store,
            podcast_id=podcast.id,
            platforms_to_fetch=["twitter"],
            status=JobStatus.FAILED,
            attempts=3,
            progress_percent=50,
            error_message="twitter: down",
        )
        completed = _seed_job(store, podcast_id=podcast.id, status=JobStatus.COMPLETED)

        assert await queue.retry(failed.id)
        assert not await queue.retry(completed.id)

        retried = await queue.get_job(failed.id)
        assert retried.status == JobStatus.QUEUED
        assert retried.attempts == 0
        assert retried.error_message is None
        assert retried.progress_percent == 0
        assert retried.completed_at is None

        processed = await queue.process_next()
        assert processed.status == JobStatus.COMPLETED


class TestQueries:
    async def test_statistics_and_listing(self, uow_factory, podcast):
        queue = JobQueue(uow_factory, ScriptedFetcher(default="0.02"))
        done = await queue.enqueue(podcast.id, platforms=["twitter"])
        await queue.process_next()
        pending = await queue.enqueue(podcast.id, platforms=["linkedin"])

        stats = await queue.get_statistics()
        assert (stats.queued, stats.completed, stats.total) == (1, 1, 2)
        assert stats.total_cost == Decimal("0.02")

        assert [job.id for job in await queue.list_jobs()] == [pending.id, done.id]
        assert [job.id for job in await queue.list_jobs(JobStatus.QUEUED)] == [pending.id]
        assert len(await queue.get_podcast_jobs(podcast.id)) == 2

        assert await queue.has_active_job(podcast.id, "linkedin")
        assert not await queue.has_active_job(podcast.id, "twitter")
