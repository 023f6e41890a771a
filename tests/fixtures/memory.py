"""In-memory implementations of the repository protocols.

Each unit of work snapshots the store on entry and restores it if the block
raises, which is enough to observe the all-or-nothing behaviour application
services rely on.
"""

import copy
from datetime import UTC, datetime, timedelta
from decimal import Decimal

from attrs import define, evolve, field

from podtrack.domain.entities import (
    CostLogEntry,
    Job,
    JobStatistics,
    JobStatus,
    MetricRecord,
    Platform,
    Podcast,
    SocialLink,
    TrackingStatus,
)


@define
class MemoryStore:
    podcasts: dict[int, Podcast] = field(factory=dict)
    links: list[SocialLink] = field(factory=list)
    jobs: dict[int, Job] = field(factory=dict)
    metrics: list[MetricRecord] = field(factory=list)
    costs: list[CostLogEntry] = field(factory=list)
    next_id: int = 1
    commits: int = 0
    rollbacks: int = 0

    def new_id(self) -> int:
        value = self.next_id
        self.next_id += 1
        return value

    def snapshot(self) -> dict:
        return {
            "podcasts": copy.copy(self.podcasts),
            "links": list(self.links),
            "jobs": copy.copy(self.jobs),
            "metrics": list(self.metrics),
            "costs": list(self.costs),
        }

    def restore(self, state: dict) -> None:
        self.podcasts = state["podcasts"]
        self.links = state["links"]
        self.jobs = state["jobs"]
        self.metrics = state["metrics"]
        self.costs = state["costs"]

    # Seeding helpers for tests

    def add_podcast(self, name: str = "Test Podcast", **kwargs) -> Podcast:
        podcast = Podcast(name=name, id=self.new_id(), **kwargs)
        self.podcasts[podcast.id] = podcast
        return podcast

    def add_link(self, podcast_id: int, platform: Platform | str, url: str, handle: str = "") -> SocialLink:
        link = SocialLink(
            podcast_id=podcast_id,
            platform=platform,
            profile_url=url,
            profile_handle=handle,
            id=self.new_id(),
        )
        self.links.append(link)
        return link

    def add_metric(
        self,
        podcast_id: int,
        platform: Platform | str,
        *,
        fetched_at: datetime,
        ttl: timedelta = timedelta(days=7),
        followers: int = 0,
    ) -> MetricRecord:
        record = MetricRecord(
            podcast_id=podcast_id,
            platform=platform,
            fetched_at=fetched_at,
            expires_at=fetched_at + ttl,
            followers=followers,
            id=self.new_id(),
        )
        self.metrics.append(record)
        return record


class MemoryPodcastRepository:
    def __init__(self, store: MemoryStore) -> None:
        self.store = store

    async def create_podcast(self, name: str) -> Podcast:
        return self.store.add_podcast(name)

    async def get_podcast(self, podcast_id: int) -> Podcast | None:
        return self.store.podcasts.get(podcast_id)

    async def list_podcasts(self) -> list[Podcast]:
        return sorted(self.store.podcasts.values(), key=lambda podcast: podcast.id)

    async def get_social_links(self, podcast_id: int) -> list[SocialLink]:
        return [link for link in self.store.links if link.podcast_id == podcast_id]

    async def add_social_link(self, link: SocialLink) -> SocialLink:
        self.store.links = [
            existing
            for existing in self.store.links
            if not (existing.podcast_id == link.podcast_id and existing.platform == link.platform)
        ]
        stored = evolve(link, id=self.store.new_id())
        self.store.links.append(stored)
        return stored

    async def set_tracking_status(
        self, podcast_id: int, status: TrackingStatus, is_tracked: bool | None = None
    ) -> None:
        podcast = self.store.podcasts.get(podcast_id)
        if podcast is None:
            return
        changes = {"tracking_status": status}
        if is_tracked is not None:
            changes["is_tracked"] = is_tracked
        self.store.podcasts[podcast_id] = evolve(podcast, **changes)

    async def get_tracked_podcast_ids(self, limit: int | None = None) -> list[int]:
        ids = sorted(pid for pid, podcast in self.store.podcasts.items() if podcast.is_tracked)
        return ids[:limit] if limit is not None else ids


class MemoryJobRepository:
    def __init__(self, store: MemoryStore) -> None:
        self.store = store

    async def create(self, job: Job) -> Job:
        stored = evolve(job, id=self.store.new_id())
        self.store.jobs[stored.id] = stored
        return stored

    async def get(self, job_id: int) -> Job | None:
        return self.store.jobs.get(job_id)

    async def claim_next(self, stale_before: datetime | None = None) -> Job | None:
        if stale_before is not None:
            for job in list(self.store.jobs.values()):
                if (
                    job.status == JobStatus.PROCESSING
                    and job.started_at is not None
                    and job.started_at < stale_before
                ):
                    self.store.jobs[job.id] = evolve(job, status=JobStatus.QUEUED)

        busy = {
            job.podcast_id for job in self.store.jobs.values() if job.status == JobStatus.PROCESSING
        }
        candidates = sorted(
            (
                job
                for job in self.store.jobs.values()
                if job.status == JobStatus.QUEUED and job.podcast_id not in busy
            ),
            key=lambda job: (-job.priority, job.created_at, job.id),
        )
        if not candidates:
            return None
        claimed = evolve(candidates[0], status=JobStatus.PROCESSING, started_at=datetime.now(UTC))
        self.store.jobs[claimed.id] = claimed
        return claimed

    async def update(self, job_id: int, expected_status: JobStatus | None = None, **fields) -> bool:
        job = self.store.jobs.get(job_id)
        if job is None:
            return False
        if expected_status is not None and job.status != expected_status:
            return False
        self.store.jobs[job_id] = evolve(job, **fields)
        return True

    async def list_for_podcast(self, podcast_id: int, limit: int = 10) -> list[Job]:
        jobs = [job for job in self.store.jobs.values() if job.podcast_id == podcast_id]
        return sorted(jobs, key=lambda job: job.id, reverse=True)[:limit]

    async def list_recent(self, status: JobStatus | None = None, limit: int = 20) -> list[Job]:
        jobs = [job for job in self.store.jobs.values() if status is None or job.status == status]
        return sorted(jobs, key=lambda job: job.id, reverse=True)[:limit]

    async def has_active_job(self, podcast_id: int, platform: Platform) -> bool:
        return any(
            job.podcast_id == podcast_id
            and job.status in (JobStatus.QUEUED, JobStatus.PROCESSING)
            and job.covers(platform)
            for job in self.store.jobs.values()
        )

    async def get_statistics(self) -> JobStatistics:
        jobs = list(self.store.jobs.values())

        def count(status: JobStatus) -> int:
            return sum(1 for job in jobs if job.status == status)

        return JobStatistics(
            queued=count(JobStatus.QUEUED),
            processing=count(JobStatus.PROCESSING),
            completed=count(JobStatus.COMPLETED),
            failed=count(JobStatus.FAILED),
            total_cost=sum(
                (job.actual_cost for job in jobs if job.status == JobStatus.COMPLETED),
                Decimal("0"),
            ),
        )


class MemoryMetricRepository:
    def __init__(self, store: MemoryStore) -> None:
        self.store = store

    async def insert(self, record: MetricRecord) -> MetricRecord:
        stored = evolve(record, id=self.store.new_id())
        self.store.metrics.append(stored)
        return stored

    async def get_latest(self, podcast_id: int, platform: Platform) -> MetricRecord | None:
        records = [
            record
            for record in self.store.metrics
            if record.podcast_id == podcast_id and record.platform == platform
        ]
        return max(records, key=lambda record: record.fetched_at, default=None)

    async def get_latest_for_podcast(self, podcast_id: int) -> dict[Platform, MetricRecord]:
        latest: dict[Platform, MetricRecord] = {}
        for record in self.store.metrics:
            if record.podcast_id != podcast_id:
                continue
            current = latest.get(record.platform)
            if current is None or record.fetched_at > current.fetched_at:
                latest[record.platform] = record
        return latest

    async def expire(
        self, podcast_id: int, platform: Platform | None = None, now: datetime | None = None
    ) -> int:
        now = now or datetime.now(UTC)
        expired = 0
        for index, record in enumerate(self.store.metrics):
            if record.podcast_id != podcast_id:
                continue
            if platform is not None and record.platform != platform:
                continue
            if record.expires_at > now:
                self.store.metrics[index] = evolve(record, expires_at=now - timedelta(seconds=1))
                expired += 1
        return expired


class MemoryCostLedger:
    def __init__(self, store: MemoryStore) -> None:
        self.store = store

    async def append(self, entry: CostLogEntry) -> CostLogEntry:
        stored = evolve(entry, id=self.store.new_id())
        self.store.costs.append(stored)
        return stored

    async def total(self, since: datetime | None = None, success_only: bool = True) -> Decimal:
        return sum(
            (
                entry.cost_usd
                for entry in self.store.costs
                if (since is None or entry.logged_at >= since)
                and (entry.success or not success_only)
            ),
            Decimal("0"),
        )

    async def entries(self, since: datetime | None = None) -> list[CostLogEntry]:
        return sorted(
            (entry for entry in self.store.costs if since is None or entry.logged_at >= since),
            key=lambda entry: (entry.logged_at, entry.id),
        )


class MemoryUnitOfWork:
    def __init__(self, store: MemoryStore) -> None:
        self.store = store
        self._snapshot: dict | None = None

    async def __aenter__(self):
        self._snapshot = self.store.snapshot()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if exc_type is not None:
            await self.rollback()
        else:
            await self.commit()

    async def commit(self) -> None:
        self.store.commits += 1
        self._snapshot = self.store.snapshot()

    async def rollback(self) -> None:
        self.store.rollbacks += 1
        if self._snapshot is not None:
            self.store.restore(self._snapshot)

    def get_podcast_repository(self) -> MemoryPodcastRepository:
        return MemoryPodcastRepository(self.store)

    def get_job_repository(self) -> MemoryJobRepository:
        return MemoryJobRepository(self.store)

    def get_metric_repository(self) -> MemoryMetricRepository:
        return MemoryMetricRepository(self.store)

    def get_cost_ledger(self) -> MemoryCostLedger:
        return MemoryCostLedger(self.store)


def memory_uow_factory(store: MemoryStore):
    def open_unit_of_work() -> MemoryUnitOfWork:
        return MemoryUnitOfWork(store)

    return open_unit_of_work
