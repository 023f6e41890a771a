"""Cost ledger entities.

Pure domain types for spend reporting: append-only ledger entries, reporting
periods and budget health classification.
"""

from datetime import UTC, datetime, timedelta
from decimal import Decimal
from enum import StrEnum
from typing import Any

from attrs import define, field

from podtrack.domain.entities.metrics import to_decimal


class CostPeriod(StrEnum):
    """Rolling reporting windows."""

    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"
    ALL = "all"

    @property
    def days(self) -> int | None:
        return {
            CostPeriod.DAY: 1,
            CostPeriod.WEEK: 7,
            CostPeriod.MONTH: 30,
            CostPeriod.YEAR: 365,
            CostPeriod.ALL: None,
        }[self]

    def start(self, now: datetime | None = None) -> datetime | None:
        """Window start for this period, or None when unbounded."""
        if self.days is None:
            return None
        return (now or datetime.now(UTC)) - timedelta(days=self.days)


class BudgetHealth(StrEnum):
    UNLIMITED = "unlimited"
    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"
    EXCEEDED = "exceeded"


@define(frozen=True, slots=True)
class CostLogEntry:
    """One metered action. Never mutated or deleted once written."""

    entity_id: int
    action_type: str
    platform: str
    cost_usd: Decimal = field(converter=to_decimal)
    provider: str = ""
    success: bool = True
    metadata: dict[str, Any] = field(factory=dict)
    logged_at: datetime = field(factory=lambda: datetime.now(UTC))
    id: int | None = None


@define(frozen=True, slots=True)
class BudgetStatus:
    """Spend against a budget cap for one period."""

    period: CostPeriod
    spent: Decimal
    budget: Decimal

    @property
    def remaining(self) -> Decimal:
        if self.budget <= 0:
            return Decimal("Infinity")
        return max(self.budget - self.spent, Decimal("0"))

    @property
    def percent_used(self) -> float:
        if self.budget <= 0:
            return 0.0
        return round(float(self.spent / self.budget * 100), 1)

    @property
    def health(self) -> BudgetHealth:
        if self.budget <= 0:
            return BudgetHealth.UNLIMITED
        if self.percent_used >= 100:
            return BudgetHealth.EXCEEDED
        if self.percent_used >= 90:
            return BudgetHealth.CRITICAL
        if self.percent_used >= 75:
            return BudgetHealth.WARNING
        return BudgetHealth.HEALTHY

    def allows(self, amount: Decimal) -> bool:
        """Whether spending ``amount`` more stays within the budget."""
        return self.budget <= 0 or self.spent + amount <= self.budget
