"""Database Unit of Work implementation for transaction boundary management.

Each unit of work owns one session. Every repository it hands out shares that
session's transaction, so a metric insert and its cost log entry commit or
roll back together.
"""

from collections.abc import Callable
from typing import Self

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from podtrack.domain.repositories import (
    CostLedgerProtocol,
    JobRepositoryProtocol,
    MetricRepositoryProtocol,
    PodcastRepositoryProtocol,
)
from podtrack.infrastructure.persistence.database.db_connection import get_session_factory
from podtrack.infrastructure.persistence.repositories import (
    SQLCostLedger,
    SQLJobRepository,
    SQLMetricRepository,
    SQLPodcastRepository,
)


class DatabaseUnitOfWork:
    """Database implementation of the Unit of Work pattern.

    The unit of work commits on successful exit or rolls back on exceptions,
    and also allows explicit commit/rollback control.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._committed = False

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        try:
            if exc_type is not None:
                await self.rollback()
            elif not self._committed:
                await self.commit()
        finally:
            await self._session.close()

    async def commit(self) -> None:
        """Explicitly commit the current transaction."""
        await self._session.commit()
        self._committed = True

    async def rollback(self) -> None:
        """Explicitly rollback the current transaction."""
        await self._session.rollback()

    def get_podcast_repository(self) -> PodcastRepositoryProtocol:
        return SQLPodcastRepository(self._session)

    def get_job_repository(self) -> JobRepositoryProtocol:
        return SQLJobRepository(self._session)

    def get_metric_repository(self) -> MetricRepositoryProtocol:
        return SQLMetricRepository(self._session)

    def get_cost_ledger(self) -> CostLedgerProtocol:
        return SQLCostLedger(self._session)


def create_unit_of_work_factory(
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> Callable[[], DatabaseUnitOfWork]:
    """Factory opening a fresh unit of work (and session) per call."""
    factory = session_factory or get_session_factory()

    def open_unit_of_work() -> DatabaseUnitOfWork:
        return DatabaseUnitOfWork(factory())

    return open_unit_of_work
