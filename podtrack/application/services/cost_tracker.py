"""Spend reporting over the append-only cost ledger.

Totals, breakdowns, budget health, a naive forecast and CSV export. Nothing
here writes to the ledger except ``log_enrichment``.
"""

import csv
from datetime import UTC, datetime, timedelta
from decimal import Decimal
import io
from typing import Any

from attrs import define, field
from toolz import groupby

from podtrack.config import get_logger, settings
from podtrack.domain.entities import (
    BudgetStatus,
    CostLogEntry,
    CostPeriod,
    to_decimal,
)
from podtrack.domain.repositories import UnitOfWorkFactory

logger = get_logger(__name__).bind(service="cost_tracker")

CSV_HEADER = ["Date", "Podcast", "Action", "Platform", "Provider", "Cost (USD)", "Success"]
FORECAST_WINDOW_DAYS = 30


@define(frozen=True, slots=True)
class CostBucket:
    """Spend and call count for one grouping key."""

    key: str
    total_cost: Decimal = field(converter=to_decimal)
    api_calls: int


@define(frozen=True, slots=True)
class CostBreakdown:
    period: CostPeriod
    by_platform: list[CostBucket]
    by_action: list[CostBucket]
    by_provider: list[CostBucket]
    daily: list[CostBucket]

    @property
    def total(self) -> Decimal:
        return sum((bucket.total_cost for bucket in self.by_platform), Decimal("0"))


@define(frozen=True, slots=True)
class CostForecast:
    daily_average: Decimal
    week_forecast: Decimal
    month_forecast: Decimal


@define(frozen=True, slots=True)
class TopSpender:
    podcast_id: int
    podcast_name: str
    total_cost: Decimal
    api_calls: int


def _buckets(entries: list[CostLogEntry], key_fn) -> list[CostBucket]:
    grouped = groupby(key_fn, entries)
    buckets = [
        CostBucket(
            key=key,
            total_cost=sum((entry.cost_usd for entry in group), Decimal("0")),
            api_calls=len(group),
        )
        for key, group in grouped.items()
    ]
    return sorted(buckets, key=lambda bucket: bucket.total_cost, reverse=True)


class CostTracker:
    """Read side of the cost ledger, plus the enrichment log helper."""

    def __init__(self, uow_factory: UnitOfWorkFactory) -> None:
        self.uow_factory = uow_factory

    async def log_enrichment(
        self,
        podcast_id: int,
        platform: str,
        cost: Decimal | float | str,
        provider: str = "",
        *,
        success: bool = True,
        metadata: dict[str, Any] | None = None,
    ) -> CostLogEntry:
        """Append one enrichment entry to the ledger."""
        async with self.uow_factory() as uow:
            return await uow.get_cost_ledger().append(
                CostLogEntry(
                    entity_id=podcast_id,
                    action_type="enrichment",
                    platform=str(platform),
                    cost_usd=cost,
                    provider=provider,
                    success=success,
                    metadata=metadata or {},
                )
            )

    async def get_total(self, period: CostPeriod = CostPeriod.MONTH) -> Decimal:
        async with self.uow_factory() as uow:
            return await uow.get_cost_ledger().total(since=CostPeriod(period).start())

    async def _entries(self, since: datetime | None) -> list[CostLogEntry]:
        async with self.uow_factory() as uow:
            return await uow.get_cost_ledger().entries(since=since)

    async def get_breakdown(self, period: CostPeriod = CostPeriod.MONTH) -> CostBreakdown:
        """Spend by platform, action and provider, plus a daily trend."""
        period = CostPeriod(period)
        entries = await self._entries(period.start())

        daily = _buckets(entries, lambda entry: entry.logged_at.date().isoformat())
        return CostBreakdown(
            period=period,
            by_platform=_buckets(entries, lambda entry: entry.platform or "unknown"),
            by_action=_buckets(entries, lambda entry: entry.action_type),
            by_provider=_buckets(entries, lambda entry: entry.provider or "unknown"),
            daily=sorted(daily, key=lambda bucket: bucket.key),
        )

    async def get_budget_status(self, period: CostPeriod = CostPeriod.WEEK) -> BudgetStatus:
        """Spend against the configured weekly or monthly cap."""
        period = CostPeriod(period)
        budgets = {
            CostPeriod.WEEK: settings.budget.weekly_budget,
            CostPeriod.MONTH: settings.budget.monthly_budget,
        }
        if period not in budgets:
            raise ValueError(f"No budget configured for period: {period}")

        spent = await self.get_total(period)
        return BudgetStatus(period=period, spent=spent, budget=to_decimal(budgets[period]))

    async def get_forecast(self, now: datetime | None = None) -> CostForecast:
        """Project recent daily spend over the next week and month."""
        now = now or datetime.now(UTC)
        entries = await self._entries(now - timedelta(days=FORECAST_WINDOW_DAYS))

        daily = _buckets(entries, lambda entry: entry.logged_at.date())
        if daily:
            average = sum((bucket.total_cost for bucket in daily), Decimal("0")) / len(daily)
        else:
            average = Decimal("0")
        average = average.quantize(Decimal("0.0001"))

        return CostForecast(
            daily_average=average,
            week_forecast=average * CostPeriod.WEEK.days,
            month_forecast=average * CostPeriod.MONTH.days,
        )

    async def get_top_spenders(self, limit: int = 10) -> list[TopSpender]:
        entries = await self._entries(None)
        buckets = _buckets(entries, lambda entry: entry.entity_id)[:limit]

        async with self.uow_factory() as uow:
            podcast_repo = uow.get_podcast_repository()
            spenders = []
            for bucket in buckets:
                podcast = await podcast_repo.get_podcast(bucket.key)
                spenders.append(
                    TopSpender(
                        podcast_id=bucket.key,
                        podcast_name=podcast.name if podcast else "N/A",
                        total_cost=bucket.total_cost,
                        api_calls=bucket.api_calls,
                    )
                )
        return spenders

    async def export_csv(self, period: CostPeriod = CostPeriod.MONTH) -> str:
        """Ledger rows for the period as CSV, newest first."""
        entries = await self._entries(CostPeriod(period).start())

        async with self.uow_factory() as uow:
            podcast_repo = uow.get_podcast_repository()
            names: dict[int, str] = {}
            for podcast_id in {entry.entity_id for entry in entries}:
                podcast = await podcast_repo.get_podcast(podcast_id)
                names[podcast_id] = podcast.name if podcast else "N/A"

        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(CSV_HEADER)
        for entry in reversed(entries):
            writer.writerow(
                [
                    entry.logged_at.strftime("%Y-%m-%d %H:%M:%S"),
                    names.get(entry.entity_id, "N/A"),
                    entry.action_type,
                    entry.platform or "N/A",
                    entry.provider or "N/A",
                    f"{entry.cost_usd:.4f}",
                    "Yes" if entry.success else "No",
                ]
            )

        logger.debug(f"Exported {len(entries)} cost entries", period=str(period))
        return buffer.getvalue()
