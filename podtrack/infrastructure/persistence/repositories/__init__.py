"""SQL implementations of the domain repository interfaces."""

from podtrack.infrastructure.persistence.repositories.costs import SQLCostLedger
from podtrack.infrastructure.persistence.repositories.jobs import SQLJobRepository
from podtrack.infrastructure.persistence.repositories.metrics import SQLMetricRepository
from podtrack.infrastructure.persistence.repositories.podcasts import SQLPodcastRepository

__all__ = [
    "SQLCostLedger",
    "SQLJobRepository",
    "SQLMetricRepository",
    "SQLPodcastRepository",
]
