"""Job repository with compare-and-swap claiming.

Workers share no memory, so every transition that must not race is a
conditional UPDATE whose WHERE clause re-checks the expected state. A claim
succeeds only if the row was still queued and its podcast had no job in
processing at the moment of the write.
"""

from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from podtrack.config import get_logger
from podtrack.domain.entities import (
    Job,
    JobStatistics,
    JobStatus,
    Platform,
    ensure_utc,
)
from podtrack.infrastructure.persistence.database.db_models import DBJob
from podtrack.infrastructure.persistence.repositories.costs import MONEY_PRECISION
from podtrack.infrastructure.persistence.repositories.repo_decorator import db_operation

logger = get_logger(__name__)

# Lost CAS races before giving up on this claim round
CLAIM_CANDIDATES = 5

_ACTIVE_STATUSES = (JobStatus.QUEUED.value, JobStatus.PROCESSING.value)


def job_to_domain(db_job: DBJob) -> Job:
    return Job(
        id=db_job.id,
        podcast_id=db_job.podcast_id,
        platforms_to_fetch=db_job.platforms or (),
        job_type=db_job.job_type,
        status=db_job.status,
        priority=db_job.priority,
        attempts=db_job.attempts,
        max_attempts=db_job.max_attempts,
        progress_percent=db_job.progress_percent,
        estimated_cost=db_job.estimated_cost,
        actual_cost=db_job.actual_cost,
        error_message=db_job.error_message,
        created_at=ensure_utc(db_job.created_at),
        started_at=ensure_utc(db_job.started_at),
        completed_at=ensure_utc(db_job.completed_at),
    )


def _column_values(fields: dict[str, Any]) -> dict[str, Any]:
    values = dict(fields)
    if "platforms_to_fetch" in values:
        values["platforms"] = [Platform(p).value for p in values.pop("platforms_to_fetch")]
    for key in ("status", "job_type"):
        if key in values:
            values[key] = str(values[key])
    return values


class SQLJobRepository:
    """Durable job storage."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    @db_operation("create_job")
    async def create(self, job: Job) -> Job:
        db_job = DBJob(
            podcast_id=job.podcast_id,
            job_type=job.job_type.value,
            platforms=[platform.value for platform in job.platforms_to_fetch],
            status=job.status.value,
            priority=job.priority,
            attempts=job.attempts,
            max_attempts=job.max_attempts,
            progress_percent=job.progress_percent,
            estimated_cost=job.estimated_cost,
            actual_cost=job.actual_cost,
            error_message=job.error_message,
            created_at=job.created_at,
        )
        self.session.add(db_job)
        await self.session.flush()
        return job_to_domain(db_job)

    @db_operation("get_job")
    async def get(self, job_id: int) -> Job | None:
        db_job = await self.session.get(DBJob, job_id, populate_existing=True)
        return job_to_domain(db_job) if db_job else None

    @db_operation("claim_next_job")
    async def claim_next(self, stale_before: datetime | None = None) -> Job | None:
        if stale_before is not None:
            await self._release_stale(stale_before)

        busy = aliased(DBJob)
        busy_podcasts = select(busy.podcast_id).where(busy.status == JobStatus.PROCESSING.value)

        candidate_ids = (
            await self.session.scalars(
                select(DBJob.id)
                .where(
                    DBJob.status == JobStatus.QUEUED.value,
                    DBJob.podcast_id.not_in(busy_podcasts),
                )
                .order_by(DBJob.priority.desc(), DBJob.created_at.asc(), DBJob.id.asc())
                .limit(CLAIM_CANDIDATES)
            )
        ).all()

        for job_id in candidate_ids:
            result = await self.session.execute(
                update(DBJob)
                .where(
                    DBJob.id == job_id,
                    DBJob.status == JobStatus.QUEUED.value,
                    DBJob.podcast_id.not_in(busy_podcasts),
                )
                .values(status=JobStatus.PROCESSING.value, started_at=datetime.now(UTC))
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:
                return await self.get(job_id)
            logger.debug(f"Lost claim race for job {job_id}")

        return None

    async def _release_stale(self, stale_before: datetime) -> None:
        # Processing jobs whose worker vanished; attempts already count the lost run
        result = await self.session.execute(
            update(DBJob)
            .where(
                DBJob.status == JobStatus.PROCESSING.value,
                DBJob.started_at < stale_before,
            )
            .values(status=JobStatus.QUEUED.value)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount:
            logger.warning(f"Returned {result.rowcount} stale processing jobs to the queue")

    @db_operation("update_job")
    async def update(
        self,
        job_id: int,
        expected_status: JobStatus | None = None,
        **fields: Any,
    ) -> bool:
        stmt = update(DBJob).where(DBJob.id == job_id)
        if expected_status is not None:
            stmt = stmt.where(DBJob.status == JobStatus(expected_status).value)
        result = await self.session.execute(
            stmt.values(**_column_values(fields)).execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    @db_operation("list_jobs_for_podcast")
    async def list_for_podcast(self, podcast_id: int, limit: int = 10) -> list[Job]:
        result = await self.session.scalars(
            select(DBJob)
            .where(DBJob.podcast_id == podcast_id)
            .order_by(DBJob.created_at.desc(), DBJob.id.desc())
            .limit(limit)
        )
        return [job_to_domain(db_job) for db_job in result]

    @db_operation("list_jobs")
    async def list_recent(self, status: JobStatus | None = None, limit: int = 20) -> list[Job]:
        stmt = select(DBJob).order_by(DBJob.created_at.desc(), DBJob.id.desc()).limit(limit)
        if status is not None:
            stmt = stmt.where(DBJob.status == JobStatus(status).value)
        result = await self.session.scalars(stmt)
        return [job_to_domain(db_job) for db_job in result]

    @db_operation("has_active_job")
    async def has_active_job(self, podcast_id: int, platform: Platform) -> bool:
        result = await self.session.scalars(
            select(DBJob.platforms).where(
                DBJob.podcast_id == podcast_id,
                DBJob.status.in_(_ACTIVE_STATUSES),
            )
        )
        target = Platform(platform).value
        return any(target in (platforms or []) for platforms in result)

    @db_operation("get_job_statistics")
    async def get_statistics(self) -> JobStatistics:
        rows = await self.session.execute(
            select(
                DBJob.status,
                func.count(DBJob.id),
                func.coalesce(
                    func.sum(
                        case(
                            (DBJob.status == JobStatus.COMPLETED.value, DBJob.actual_cost),
                            else_=0,
                        )
                    ),
                    0,
                ),
            ).group_by(DBJob.status)
        )
        counts: dict[str, int] = {}
        total_cost = Decimal("0")
        for status, count, cost in rows:
            counts[status] = count
            total_cost += Decimal(str(cost or 0)).quantize(MONEY_PRECISION)

        return JobStatistics(
            queued=counts.get(JobStatus.QUEUED.value, 0),
            processing=counts.get(JobStatus.PROCESSING.value, 0),
            completed=counts.get(JobStatus.COMPLETED.value, 0),
            failed=counts.get(JobStatus.FAILED.value, 0),
            total_cost=total_cost,
        )
