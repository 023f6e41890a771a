"""Domain repository interfaces."""

from collections.abc import Callable

from podtrack.domain.repositories.interfaces import (
    CostLedgerProtocol,
    JobRepositoryProtocol,
    MetricRepositoryProtocol,
    PodcastRepositoryProtocol,
    SettingsStoreProtocol,
    UnitOfWorkProtocol,
)

# Each call opens a fresh transaction boundary
UnitOfWorkFactory = Callable[[], UnitOfWorkProtocol]

__all__ = [
    "CostLedgerProtocol",
    "JobRepositoryProtocol",
    "MetricRepositoryProtocol",
    "PodcastRepositoryProtocol",
    "SettingsStoreProtocol",
    "UnitOfWorkFactory",
    "UnitOfWorkProtocol",
]
