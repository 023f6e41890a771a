"""Cooperative queue workers.

In production an external timer calls ``tick``; ``run`` is a convenience
loop for the CLI. Workers share nothing but the job store, whose claim is a
compare-and-swap, so any number of them can run side by side.
"""

import asyncio

from podtrack.application.services.job_queue import JobQueue
from podtrack.config import get_logger, settings
from podtrack.domain.entities import Job

logger = get_logger(__name__).bind(service="scheduler")


class QueueWorker:
    """Drains the job queue one job at a time per worker."""

    def __init__(self, job_queue: JobQueue) -> None:
        self.job_queue = job_queue
        self.processed = 0

    async def tick(self) -> Job | None:
        """Process at most one job."""
        job = await self.job_queue.process_next()
        if job is not None:
            self.processed += 1
        return job

    async def _worker(self, worker_id: int, interval: float, max_ticks: int | None) -> None:
        ticks = 0
        with logger.contextualize(worker=worker_id):
            while max_ticks is None or ticks < max_ticks:
                ticks += 1
                job = await self.tick()
                if job is None:
                    logger.debug(f"Queue idle, sleeping {interval}s")
                    await asyncio.sleep(interval)
                else:
                    logger.info(f"Processed job {job.id}: {job.status}")

    async def run(
        self,
        interval: float | None = None,
        max_ticks: int | None = None,
        workers: int | None = None,
    ) -> int:
        """Run workers until cancelled, or until each has done ``max_ticks`` ticks.

        Returns:
            Number of jobs processed
        """
        interval = settings.queue.tick_interval if interval is None else interval
        workers = workers or settings.queue.workers

        logger.info(f"Starting {workers} queue worker(s)", interval=interval)
        async with asyncio.TaskGroup() as group:
            for worker_id in range(1, workers + 1):
                group.create_task(self._worker(worker_id, interval, max_ticks))

        logger.info(f"Workers stopped after {self.processed} jobs")
        return self.processed
