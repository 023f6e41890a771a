"""Composition root wiring infrastructure into the application services.

Application services only know domain protocols. This module is the one
place that picks the concrete implementations: SQL units of work, the
environment settings store, the shipped providers and free data sources,
all sharing a single HTTP client.
"""

from collections.abc import AsyncIterator
import contextlib

from attrs import define
import httpx

from podtrack.application.services import (
    BackgroundRefreshService,
    CostTracker,
    JobQueue,
    MetricsFetcher,
    QueueWorker,
)
from podtrack.config import get_logger, settings
from podtrack.domain.repositories import SettingsStoreProtocol, UnitOfWorkFactory
from podtrack.infrastructure.connectors import (
    ApplePodcastsScraper,
    SpotifyShowScraper,
    YouTubeDataClient,
)
from podtrack.infrastructure.persistence.database import dispose_engine, init_db
from podtrack.infrastructure.persistence.unit_of_work import create_unit_of_work_factory
from podtrack.infrastructure.providers import ProviderRegistry, create_default_registry
from podtrack.infrastructure.services import EnrichmentManager
from podtrack.infrastructure.settings_store import EnvironmentSettingsStore

logger = get_logger(__name__)


@define(slots=True)
class Services:
    """Every service a command or worker may need, built once per process."""

    uow_factory: UnitOfWorkFactory
    settings_store: SettingsStoreProtocol
    registry: ProviderRegistry
    manager: EnrichmentManager
    fetcher: MetricsFetcher
    job_queue: JobQueue
    cost_tracker: CostTracker
    refresh: BackgroundRefreshService
    worker: QueueWorker


def build_services(
    uow_factory: UnitOfWorkFactory | None = None,
    settings_store: SettingsStoreProtocol | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> Services:
    """Wire the service graph. Nothing touches the network or database here."""
    uow_factory = uow_factory or create_unit_of_work_factory()
    settings_store = settings_store or EnvironmentSettingsStore()

    registry = create_default_registry(settings_store, http_client=http_client)
    manager = EnrichmentManager(registry)
    fetcher = MetricsFetcher(
        uow_factory,
        manager,
        youtube_client=YouTubeDataClient(settings_store, http_client=http_client),
        spotify_scraper=SpotifyShowScraper(settings_store, http_client=http_client),
        apple_scraper=ApplePodcastsScraper(settings_store, http_client=http_client),
    )
    job_queue = JobQueue(uow_factory, fetcher)
    cost_tracker = CostTracker(uow_factory)

    return Services(
        uow_factory=uow_factory,
        settings_store=settings_store,
        registry=registry,
        manager=manager,
        fetcher=fetcher,
        job_queue=job_queue,
        cost_tracker=cost_tracker,
        refresh=BackgroundRefreshService(uow_factory, job_queue, fetcher, cost_tracker),
        worker=QueueWorker(job_queue),
    )


@contextlib.asynccontextmanager
async def open_services(
    uow_factory: UnitOfWorkFactory | None = None,
    settings_store: SettingsStoreProtocol | None = None,
) -> AsyncIterator[Services]:
    """Create the schema, open a shared HTTP client and yield wired services.

    With the default database the engine is disposed on exit, since its
    connections belong to the event loop that is about to close.
    """
    owns_engine = uow_factory is None
    if owns_engine:
        await init_db()

    try:
        async with httpx.AsyncClient(
            timeout=settings.providers.request_timeout, follow_redirects=True
        ) as http_client:
            services = build_services(uow_factory, settings_store, http_client)
            logger.debug(
                "Services ready",
                providers=services.registry.names(),
                configured=[provider.name for provider in services.registry.configured()],
            )
            yield services
    finally:
        if owns_engine:
            await dispose_engine()
