"""Tests for the cooperative queue workers."""

import asyncio

import pytest

from podtrack.application.services import FetchOutcome, JobQueue, QueueWorker
from podtrack.domain.entities import JobStatus, NormalizedMetrics


class InstantFetcher:
    async def fetch(self, podcast_id, platform):
        return FetchOutcome(podcast_id, "0.001", 0.0, NormalizedMetrics(), "fake")


async def _queue_with_jobs(store, uow_factory, count):
    queue = JobQueue(uow_factory, InstantFetcher())
    for index in range(count):
        podcast = store.add_podcast(f"Show {index}")
        store.add_link(podcast.id, "twitter", f"https://twitter.com/show{index}")
        await queue.enqueue(podcast.id)
    return queue


class TestQueueWorker:
    async def test_tick_processes_one_job(self, store, uow_factory):
        worker = QueueWorker(await _queue_with_jobs(store, uow_factory, 2))

        job = await worker.tick()

        assert job.status == JobStatus.COMPLETED
        assert worker.processed == 1
        assert sum(1 for j in store.jobs.values() if j.status == JobStatus.QUEUED) == 1

    async def test_tick_on_idle_queue(self, uow_factory):
        worker = QueueWorker(JobQueue(uow_factory, InstantFetcher()))

        assert await worker.tick() is None
        assert worker.processed == 0

    async def test_run_drains_queue_with_bounded_ticks(self, store, uow_factory):
        worker = QueueWorker(await _queue_with_jobs(store, uow_factory, 3))

        processed = await worker.run(interval=0, max_ticks=5, workers=1)

        assert processed == 3
        assert all(job.status == JobStatus.COMPLETED for job in store.jobs.values())

    async def test_several_workers_share_the_queue(self, store, uow_factory):
        worker = QueueWorker(await _queue_with_jobs(store, uow_factory, 4))

        processed = await worker.run(interval=0, max_ticks=3, workers=2)

        assert processed == 4
        assert all(job.attempts == 1 for job in store.jobs.values())

    async def test_run_stops_when_cancelled(self, uow_factory):
        worker = QueueWorker(JobQueue(uow_factory, InstantFetcher()))

        task = asyncio.create_task(worker.run(interval=0.01))
        await asyncio.sleep(0.05)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert task.cancelled()
