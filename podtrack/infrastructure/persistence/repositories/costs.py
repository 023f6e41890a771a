"""Append-only cost ledger repository."""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from podtrack.domain.entities import CostLogEntry, ensure_utc
from podtrack.infrastructure.persistence.database.db_models import DBCostLog
from podtrack.infrastructure.persistence.repositories.repo_decorator import db_operation

# Money columns carry four decimal places
MONEY_PRECISION = Decimal("0.0001")


def entry_to_domain(db_entry: DBCostLog) -> CostLogEntry:
    return CostLogEntry(
        id=db_entry.id,
        entity_id=db_entry.entity_id,
        action_type=db_entry.action_type,
        platform=db_entry.platform or "",
        provider=db_entry.provider or "",
        cost_usd=db_entry.cost_usd,
        success=db_entry.success,
        metadata=db_entry.extra or {},
        logged_at=ensure_utc(db_entry.logged_at),
    )


class SQLCostLedger:
    """Spend ledger. Rows are only ever inserted."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    @db_operation("append_cost")
    async def append(self, entry: CostLogEntry) -> CostLogEntry:
        db_entry = DBCostLog(
            entity_id=entry.entity_id,
            action_type=entry.action_type,
            platform=str(entry.platform),
            provider=entry.provider,
            cost_usd=entry.cost_usd,
            success=entry.success,
            extra=entry.metadata,
            logged_at=entry.logged_at,
        )
        self.session.add(db_entry)
        await self.session.flush()
        return entry_to_domain(db_entry)

    @db_operation("cost_total")
    async def total(self, since: datetime | None = None, success_only: bool = True) -> Decimal:
        stmt = select(func.coalesce(func.sum(DBCostLog.cost_usd), 0))
        if since is not None:
            stmt = stmt.where(DBCostLog.logged_at >= since)
        if success_only:
            stmt = stmt.where(DBCostLog.success.is_(True))
        value = await self.session.scalar(stmt)
        return Decimal(str(value or 0)).quantize(MONEY_PRECISION)

    @db_operation("cost_entries")
    async def entries(self, since: datetime | None = None) -> list[CostLogEntry]:
        stmt = select(DBCostLog).order_by(DBCostLog.logged_at.asc(), DBCostLog.id.asc())
        if since is not None:
            stmt = stmt.where(DBCostLog.logged_at >= since)
        result = await self.session.scalars(stmt)
        return [entry_to_domain(db_entry) for db_entry in result]
