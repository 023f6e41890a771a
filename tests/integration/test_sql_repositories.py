"""SQL repositories against an in-memory SQLite database."""

from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest

from podtrack.application.services import FetchOutcome, JobQueue
from podtrack.domain.entities import (
    CostLogEntry,
    Job,
    JobStatus,
    MetricRecord,
    NormalizedMetrics,
    Platform,
    SocialLink,
    TrackingStatus,
)
from podtrack.infrastructure.persistence.database import (
    create_db_engine,
    create_session_factory,
    init_db,
)
from podtrack.infrastructure.persistence.unit_of_work import create_unit_of_work_factory

pytestmark = pytest.mark.integration


@pytest.fixture
async def db_uow_factory():
    engine = create_db_engine("sqlite+aiosqlite:///:memory:")
    await init_db(engine)
    yield create_unit_of_work_factory(create_session_factory(engine))
    await engine.dispose()


async def _podcast_with_links(uow_factory, name="Pod Show", platforms=("twitter",)):
    async with uow_factory() as uow:
        repo = uow.get_podcast_repository()
        podcast = await repo.create_podcast(name)
        for platform in platforms:
            await repo.add_social_link(
                SocialLink(podcast.id, platform, f"https://{platform}.com/podshow", "podshow")
            )
    return podcast


class TestPodcastRepository:
    async def test_links_are_replaced_per_platform(self, db_uow_factory):
        podcast = await _podcast_with_links(db_uow_factory)

        async with db_uow_factory() as uow:
            repo = uow.get_podcast_repository()
            await repo.add_social_link(
                SocialLink(podcast.id, "twitter", "https://x.com/renamed", "renamed")
            )
            links = await repo.get_social_links(podcast.id)

        assert len(links) == 1
        assert links[0].profile_url == "https://x.com/renamed"
        assert links[0].platform == Platform.TWITTER

    async def test_tracking_status_and_tracked_ids(self, db_uow_factory):
        first = await _podcast_with_links(db_uow_factory, "First")
        second = await _podcast_with_links(db_uow_factory, "Second")

        async with db_uow_factory() as uow:
            await uow.get_podcast_repository().set_tracking_status(
                second.id, TrackingStatus.TRACKED, is_tracked=True
            )

        async with db_uow_factory() as uow:
            repo = uow.get_podcast_repository()
            tracked = await repo.get_tracked_podcast_ids()
            stored = await repo.get_podcast(second.id)
            everyone = await repo.list_podcasts()

        assert tracked == [second.id]
        assert stored.tracking_status == TrackingStatus.TRACKED
        assert [p.id for p in everyone] == [first.id, second.id]


class TestUnitOfWork:
    async def test_rollback_discards_metric_and_cost_together(self, db_uow_factory):
        podcast = await _podcast_with_links(db_uow_factory)
        now = datetime.now(UTC)
        record = MetricRecord.from_metrics(
            podcast.id, Platform.TWITTER, NormalizedMetrics(followers=5, cost="0.001"), duration=0.1
        )

        with pytest.raises(RuntimeError):
            async with db_uow_factory() as uow:
                await uow.get_metric_repository().insert(record)
                await uow.get_cost_ledger().append(
                    CostLogEntry(podcast.id, "enrichment", "twitter", "0.001", logged_at=now)
                )
                raise RuntimeError("crash before commit")

        async with db_uow_factory() as uow:
            assert await uow.get_metric_repository().get_latest(podcast.id, Platform.TWITTER) is None
            assert await uow.get_cost_ledger().entries() == []


class TestMetricRepository:
    async def test_latest_and_expiry(self, db_uow_factory):
        podcast = await _podcast_with_links(db_uow_factory, platforms=("twitter", "linkedin"))
        now = datetime.now(UTC)

        async with db_uow_factory() as uow:
            repo = uow.get_metric_repository()
            for days_ago, followers in ((3, 100), (1, 200)):
                await repo.insert(
                    MetricRecord.from_metrics(
                        podcast.id,
                        Platform.TWITTER,
                        NormalizedMetrics(followers=followers, raw_data={"n": followers}),
                        duration=0.2,
                        fetched_at=now - timedelta(days=days_ago),
                    )
                )
            await repo.insert(
                MetricRecord.from_metrics(
                    podcast.id, Platform.LINKEDIN, NormalizedMetrics(followers=7), duration=0.2
                )
            )

        async with db_uow_factory() as uow:
            repo = uow.get_metric_repository()
            latest = await repo.get_latest(podcast.id, Platform.TWITTER)
            by_platform = await repo.get_latest_for_podcast(podcast.id)

        assert latest.followers == 200
        assert latest.api_response == {"n": 200}
        assert latest.fetched_at.tzinfo is not None
        assert by_platform[Platform.TWITTER].followers == 200
        assert by_platform[Platform.LINKEDIN].followers == 7

        async with db_uow_factory() as uow:
            expired = await uow.get_metric_repository().expire(podcast.id, Platform.TWITTER, now)
        assert expired == 2

        async with db_uow_factory() as uow:
            latest = await uow.get_metric_repository().get_latest(podcast.id, Platform.TWITTER)
        assert not latest.is_fresh(now)


class TestCostLedger:
    async def test_totals_and_entries(self, db_uow_factory):
        now = datetime.now(UTC)
        async with db_uow_factory() as uow:
            ledger = uow.get_cost_ledger()
            await ledger.append(
                CostLogEntry(1, "enrichment", "twitter", "0.001", "scrapingdog", logged_at=now - timedelta(days=10))
            )
            await ledger.append(
                CostLogEntry(1, "enrichment", "linkedin", "0.01", "apify", metadata={"metrics_id": 4}, logged_at=now)
            )
            await ledger.append(
                CostLogEntry(2, "enrichment", "tiktok", "0.003", "apify", success=False, logged_at=now)
            )

        async with db_uow_factory() as uow:
            ledger = uow.get_cost_ledger()
            all_time = await ledger.total()
            this_week = await ledger.total(since=now - timedelta(days=7))
            including_failures = await ledger.total(success_only=False)
            entries = await ledger.entries(since=now - timedelta(days=7))

        assert all_time == Decimal("0.0110")
        assert this_week == Decimal("0.0100")
        assert including_failures == Decimal("0.0140")
        assert [e.platform for e in entries] == ["linkedin", "tiktok"]
        assert entries[0].metadata == {"metrics_id": 4}
        assert entries[0].cost_usd == Decimal("0.01")


class TestJobRepository:
    async def test_claim_order_and_busy_podcast_exclusion(self, db_uow_factory):
        first = await _podcast_with_links(db_uow_factory, "First")
        second = await _podcast_with_links(db_uow_factory, "Second")

        async with db_uow_factory() as uow:
            repo = uow.get_job_repository()
            low = await repo.create(Job(first.id, ["twitter"], priority=10))
            high = await repo.create(Job(first.id, ["twitter"], priority=90))
            other = await repo.create(Job(second.id, ["twitter"], priority=50))

        async with db_uow_factory() as uow:
            claimed = await uow.get_job_repository().claim_next()
        assert claimed.id == high.id
        assert claimed.status == JobStatus.PROCESSING

        # First podcast is busy, so its remaining job must wait
        async with db_uow_factory() as uow:
            claimed = await uow.get_job_repository().claim_next()
        assert claimed.id == other.id

        async with db_uow_factory() as uow:
            assert await uow.get_job_repository().claim_next() is None

        async with db_uow_factory() as uow:
            repo = uow.get_job_repository()
            assert await repo.update(high.id, expected_status=JobStatus.PROCESSING, status=JobStatus.COMPLETED)
            assert not await repo.update(high.id, expected_status=JobStatus.PROCESSING, status=JobStatus.FAILED)

        async with db_uow_factory() as uow:
            claimed = await uow.get_job_repository().claim_next()
        assert claimed.id == low.id

    async def test_stale_processing_job_is_reclaimed(self, db_uow_factory):
        podcast = await _podcast_with_links(db_uow_factory, "Stuck")

        async with db_uow_factory() as uow:
            repo = uow.get_job_repository()
            stuck = await repo.create(Job(podcast.id, ["twitter"], attempts=1))
            waiting = await repo.create(Job(podcast.id, ["youtube"]))

        async with db_uow_factory() as uow:
            claimed = await uow.get_job_repository().claim_next()
        assert claimed.id == stuck.id
        assert claimed.started_at is not None

        # The worker holding the claim is gone; a fresh claim leaves it alone
        async with db_uow_factory() as uow:
            repo = uow.get_job_repository()
            assert await repo.claim_next(datetime.now(UTC) - timedelta(minutes=30)) is None
            await repo.update(stuck.id, started_at=datetime.now(UTC) - timedelta(hours=2))

        async with db_uow_factory() as uow:
            reclaimed = await uow.get_job_repository().claim_next(
                datetime.now(UTC) - timedelta(minutes=30)
            )
        assert reclaimed.id == stuck.id
        assert reclaimed.status == JobStatus.PROCESSING
        assert reclaimed.attempts == 1

        async with db_uow_factory() as uow:
            assert (await uow.get_job_repository().get(waiting.id)).status == JobStatus.QUEUED

    async def test_queue_runs_end_to_end(self, db_uow_factory):
        podcast = await _podcast_with_links(db_uow_factory, platforms=("twitter", "youtube"))

        class Fetcher:
            async def fetch(self, podcast_id, platform):
                if Platform(platform) == Platform.YOUTUBE:
                    return FetchOutcome(1, "0", 0.1, NormalizedMetrics(), "youtube")
                return FetchOutcome(2, "0.001", 0.1, NormalizedMetrics(), "scrapingdog")

        queue = JobQueue(db_uow_factory, Fetcher())
        created = await queue.enqueue(podcast.id)
        job = await queue.process_next()

        assert job.id == created.id
        assert job.status == JobStatus.COMPLETED
        assert job.actual_cost == Decimal("0.001")
        assert job.platforms_to_fetch == (Platform.TWITTER, Platform.YOUTUBE)

        stats = await queue.get_statistics()
        assert stats.completed == 1
        assert stats.total_cost == Decimal("0.0010")
        assert not await queue.has_active_job(podcast.id, "twitter")
