"""Tiered refresh policy for stored metrics.

Small accounts change slowly and are refreshed rarely; large accounts are
refreshed weekly. The hard cache TTL on each record still applies on top.
"""

from datetime import UTC, datetime, timedelta

from podtrack.domain.entities.metrics import MetricRecord

# (exclusive follower threshold, refresh interval in days)
REFRESH_TIERS: tuple[tuple[int, int], ...] = (
    (1_000, 90),
    (10_000, 60),
    (100_000, 30),
    (1_000_000, 14),
)
TOP_TIER_REFRESH_DAYS = 7

_TIER_NAMES = {
    90: "Small (< 1K)",
    60: "Growing (1K - 10K)",
    30: "Active (10K - 100K)",
    14: "Popular (100K - 1M)",
    7: "High-profile (1M+)",
}


def get_refresh_days(followers: int) -> int:
    """Refresh interval in days for an account of this size."""
    for threshold, days in REFRESH_TIERS:
        if followers < threshold:
            return days
    return TOP_TIER_REFRESH_DAYS


def get_refresh_tier_description(followers: int) -> str:
    return _TIER_NAMES.get(get_refresh_days(followers), "Standard")


def needs_refresh(record: MetricRecord | None, now: datetime | None = None) -> bool:
    """Whether a platform should be fetched again.

    True when nothing was ever fetched, when the record has expired, or when
    it is older than its follower tier allows.
    """
    if record is None:
        return True
    now = now or datetime.now(UTC)
    if not record.is_fresh(now):
        return True
    tier_cutoff = now - timedelta(days=get_refresh_days(record.followers))
    return record.fetched_at < tier_cutoff
