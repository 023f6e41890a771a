"""Domain entities for the enrichment pipeline."""

from podtrack.domain.entities.costs import (
    BudgetHealth,
    BudgetStatus,
    CostLogEntry,
    CostPeriod,
)
from podtrack.domain.entities.jobs import (
    CANCELLED_MESSAGE,
    MAX_ATTEMPTS_MESSAGE,
    NO_PLATFORMS_MESSAGE,
    Job,
    JobStatistics,
    JobStatus,
    JobType,
)
from podtrack.domain.entities.metrics import (
    DEFAULT_METRIC_TTL,
    SOCIAL_PLATFORMS,
    MetricRecord,
    NormalizedMetrics,
    Platform,
    ProfileReference,
    to_decimal,
)
from podtrack.domain.entities.podcasts import Podcast, SocialLink, TrackingStatus
from podtrack.domain.entities.shared import ensure_utc

__all__ = [
    "CANCELLED_MESSAGE",
    "DEFAULT_METRIC_TTL",
    "MAX_ATTEMPTS_MESSAGE",
    "NO_PLATFORMS_MESSAGE",
    "SOCIAL_PLATFORMS",
    "BudgetHealth",
    "BudgetStatus",
    "CostLogEntry",
    "CostPeriod",
    "Job",
    "JobStatistics",
    "JobStatus",
    "JobType",
    "MetricRecord",
    "NormalizedMetrics",
    "Platform",
    "Podcast",
    "ProfileReference",
    "SocialLink",
    "TrackingStatus",
    "ensure_utc",
    "to_decimal",
]
