"""Domain repository interfaces following Clean Architecture principles.

These interfaces define the contracts for the collaborators the enrichment
core talks to (settings, podcasts and links, jobs, metrics, cost ledger)
without depending on infrastructure implementations.
"""

from collections.abc import Awaitable
from typing import TYPE_CHECKING, Any, Protocol, Self

if TYPE_CHECKING:
    from datetime import datetime
    from decimal import Decimal

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


class SettingsStoreProtocol(Protocol):
    """Read-only settings/credential store. Core never persists secrets."""

    def get_setting(self, key: str) -> str | None:
        """Return the setting value, or None when unset."""
        ...


class PodcastRepositoryProtocol(Protocol):
    """Repository interface for podcasts and their social links."""

    def get_social_links(self, podcast_id: int) -> Awaitable[list["SocialLink"]]:
        """Get all stored social profiles for a podcast."""
        ...

    def set_tracking_status(
        self,
        podcast_id: int,
        status: "TrackingStatus",
        is_tracked: bool | None = None,
    ) -> Awaitable[None]:
        """Update tracking status in a single write."""
        ...

    def get_tracked_podcast_ids(self, limit: int | None = None) -> Awaitable[list[int]]:
        """Get IDs of podcasts that are currently tracked."""
        ...

    def create_podcast(self, name: str) -> Awaitable["Podcast"]:
        """Create a podcast record."""
        ...

    def get_podcast(self, podcast_id: int) -> Awaitable["Podcast | None"]:
        """Get podcast by ID."""
        ...

    def list_podcasts(self) -> Awaitable[list["Podcast"]]:
        """All podcasts, oldest first."""
        ...

    def add_social_link(self, link: "SocialLink") -> Awaitable["SocialLink"]:
        """Store or replace the podcast's link for the link's platform."""
        ...


class JobRepositoryProtocol(Protocol):
    """Repository interface for durable enrichment jobs."""

    def create(self, job: "Job") -> Awaitable["Job"]:
        """Persist a new job and return it with its ID."""
        ...

    def get(self, job_id: int) -> Awaitable["Job | None"]:
        """Get job by ID."""
        ...

    def claim_next(self, stale_before: "datetime | None" = None) -> Awaitable["Job | None"]:
        """Atomically claim the next eligible job.

        Eligible jobs are queued and belong to a podcast with no job in
        processing. Ordering is priority descending, then oldest first. The
        claim is a compare-and-swap of status queued -> processing that also
        stamps ``started_at``; a lost race moves on to the next candidate.

        Args:
            stale_before: Jobs still processing with ``started_at`` before this
                instant are returned to the queue before candidates are picked

        Returns:
            The claimed job (status processing), or None if nothing is eligible
        """
        ...

    def update(
        self,
        job_id: int,
        expected_status: "JobStatus | None" = None,
        **fields: Any,
    ) -> Awaitable[bool]:
        """Conditionally write fields on a job.

        Args:
            job_id: Job to update
            expected_status: Only write if the job currently has this status
            **fields: Column values to write

        Returns:
            True if a row was updated
        """
        ...

    def list_for_podcast(self, podcast_id: int, limit: int = 10) -> Awaitable[list["Job"]]:
        """Most recent jobs for a podcast, newest first."""
        ...

    def list_recent(
        self, status: "JobStatus | None" = None, limit: int = 20
    ) -> Awaitable[list["Job"]]:
        """Most recent jobs overall, optionally filtered by status."""
        ...

    def has_active_job(self, podcast_id: int, platform: "Platform") -> Awaitable[bool]:
        """Whether a queued or processing job already covers this platform."""
        ...

    def get_statistics(self) -> Awaitable["JobStatistics"]:
        """Counts per status and total actual cost of completed jobs."""
        ...


class MetricRepositoryProtocol(Protocol):
    """Repository interface for fetched metric records."""

    def insert(self, record: "MetricRecord") -> Awaitable["MetricRecord"]:
        """Insert a record and return it with its ID."""
        ...

    def get_latest(
        self, podcast_id: int, platform: "Platform"
    ) -> Awaitable["MetricRecord | None"]:
        """Record with the greatest fetched_at for the pair."""
        ...

    def get_latest_for_podcast(
        self, podcast_id: int
    ) -> Awaitable[dict["Platform", "MetricRecord"]]:
        """Latest record per platform for a podcast."""
        ...

    def expire(
        self,
        podcast_id: int,
        platform: "Platform | None" = None,
        now: "datetime | None" = None,
    ) -> Awaitable[int]:
        """Move expiry into the past for a podcast (optionally one platform)."""
        ...


class CostLedgerProtocol(Protocol):
    """Append-only spend ledger."""

    def append(self, entry: "CostLogEntry") -> Awaitable["CostLogEntry"]:
        """Append an entry."""
        ...

    def total(
        self, since: "datetime | None" = None, success_only: bool = True
    ) -> Awaitable["Decimal"]:
        """Sum of cost since a point in time (or all time)."""
        ...

    def entries(self, since: "datetime | None" = None) -> Awaitable[list["CostLogEntry"]]:
        """Entries since a point in time, oldest first."""
        ...


class UnitOfWorkProtocol(Protocol):
    """Unit of Work interface for transaction boundary management.

    Every repository handed out by one unit of work shares its transaction;
    exiting the context commits, an exception rolls back.
    """

    async def __aenter__(self) -> Self:
        """Enter async context manager."""
        ...

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        """Exit async context manager with commit/rollback."""
        ...

    async def commit(self) -> None:
        """Explicitly commit the current transaction."""
        ...

    async def rollback(self) -> None:
        """Explicitly rollback the current transaction."""
        ...

    def get_podcast_repository(self) -> PodcastRepositoryProtocol:
        """Get podcast repository using this unit of work's transaction."""
        ...

    def get_job_repository(self) -> JobRepositoryProtocol:
        """Get job repository using this unit of work's transaction."""
        ...

    def get_metric_repository(self) -> MetricRepositoryProtocol:
        """Get metric repository using this unit of work's transaction."""
        ...

    def get_cost_ledger(self) -> CostLedgerProtocol:
        """Get cost ledger using this unit of work's transaction."""
        ...
