"""Application services orchestrating fetches, jobs, costs and refreshes."""

from podtrack.application.services.background_refresh import (
    BackgroundRefreshService,
    RefreshSummary,
)
from podtrack.application.services.cost_tracker import CostTracker
from podtrack.application.services.job_queue import JobQueue, estimate_platform_cost
from podtrack.application.services.metrics_fetcher import FetchOutcome, MetricsFetcher
from podtrack.application.services.scheduler import QueueWorker

__all__ = [
    "BackgroundRefreshService",
    "CostTracker",
    "FetchOutcome",
    "JobQueue",
    "MetricsFetcher",
    "QueueWorker",
    "RefreshSummary",
    "estimate_platform_cost",
]
