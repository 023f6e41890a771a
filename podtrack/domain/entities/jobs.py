"""Enrichment job domain entities.

A job is the durable unit of work "enrich podcast P across platforms [...]".
Its lifecycle is queued -> processing -> completed | failed, with failed
attempts going back to queued while attempts remain.
"""

from datetime import UTC, datetime
from decimal import Decimal
from enum import StrEnum

from attrs import define, field, validators

from podtrack.domain.entities.metrics import Platform, to_decimal

CANCELLED_MESSAGE = "Cancelled by user"
MAX_ATTEMPTS_MESSAGE = "Maximum retry attempts exceeded"
NO_PLATFORMS_MESSAGE = "No platforms to fetch"


class JobStatus(StrEnum):
    """Job lifecycle states."""

    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class JobType(StrEnum):
    """What triggered the job."""

    INITIAL_TRACKING = "initial_tracking"
    BACKGROUND_REFRESH = "background_refresh"
    MANUAL_REFRESH = "manual_refresh"


def _to_platforms(values) -> tuple[Platform, ...]:
    return tuple(Platform(value) for value in values or ())


@define(frozen=True, slots=True)
class Job:
    """Durable, retryable enrichment job for one podcast."""

    podcast_id: int
    platforms_to_fetch: tuple[Platform, ...] = field(factory=tuple, converter=_to_platforms)
    job_type: JobType = field(default=JobType.INITIAL_TRACKING, converter=JobType)
    status: JobStatus = field(default=JobStatus.QUEUED, converter=JobStatus)
    priority: int = field(default=50, validator=[validators.ge(0), validators.le(100)])
    attempts: int = field(default=0, validator=validators.ge(0))
    max_attempts: int = field(default=3, validator=validators.ge(1))
    progress_percent: int = field(default=0, validator=[validators.ge(0), validators.le(100)])
    estimated_cost: Decimal = field(default=Decimal("0"), converter=to_decimal)
    actual_cost: Decimal = field(default=Decimal("0"), converter=to_decimal)
    error_message: str | None = None
    created_at: datetime = field(factory=lambda: datetime.now(UTC))
    started_at: datetime | None = None
    completed_at: datetime | None = None
    id: int | None = None

    @property
    def is_terminal(self) -> bool:
        """Completed and failed jobs are never picked up again."""
        return self.status in (JobStatus.COMPLETED, JobStatus.FAILED)

    @property
    def attempts_exhausted(self) -> bool:
        return self.attempts >= self.max_attempts

    def covers(self, platform: Platform) -> bool:
        return Platform(platform) in self.platforms_to_fetch


@define(frozen=True, slots=True)
class JobStatistics:
    """Queue health snapshot."""

    queued: int = 0
    processing: int = 0
    completed: int = 0
    failed: int = 0
    total_cost: Decimal = field(default=Decimal("0"), converter=to_decimal)

    @property
    def total(self) -> int:
        return self.queued + self.processing + self.completed + self.failed
