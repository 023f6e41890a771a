"""Provider registry.

Central lookup for enrichment providers by name. Registration is idempotent
by name: registering a provider under an existing name replaces the earlier
one. The registry is an ordinary object handed to the enrichment manager; it
holds no process-wide state.
"""

import httpx

from podtrack.config import get_logger
from podtrack.domain.repositories import SettingsStoreProtocol
from podtrack.infrastructure.providers.apify import ApifyProvider
from podtrack.infrastructure.providers.base import (
    BaseEnrichmentProvider,
    EnrichmentProvider,
)
from podtrack.infrastructure.providers.scrapingdog import ScrapingDogProvider

logger = get_logger(__name__).bind(service="providers")

PROVIDER_CLASSES: dict[str, type[BaseEnrichmentProvider]] = {
    ScrapingDogProvider.NAME: ScrapingDogProvider,
    ApifyProvider.NAME: ApifyProvider,
}


class ProviderRegistry:
    """Name-keyed collection of enrichment providers, in registration order."""

    def __init__(self, providers: list[EnrichmentProvider] | None = None) -> None:
        self._providers: dict[str, EnrichmentProvider] = {}
        for provider in providers or []:
            self.register(provider)

    def register(self, provider: EnrichmentProvider) -> None:
        if provider.name in self._providers:
            logger.debug(f"Replacing registered provider '{provider.name}'")
        self._providers[provider.name] = provider

    def get(self, name: str) -> EnrichmentProvider | None:
        return self._providers.get(name)

    def all(self) -> list[EnrichmentProvider]:
        return list(self._providers.values())

    def configured(self) -> list[EnrichmentProvider]:
        return [provider for provider in self._providers.values() if provider.is_configured()]

    def names(self) -> list[str]:
        return list(self._providers)

    def __contains__(self, name: object) -> bool:
        return name in self._providers

    def __len__(self) -> int:
        return len(self._providers)


def get_available_providers() -> list[str]:
    """Names of the provider implementations shipped with podtrack."""
    return list(PROVIDER_CLASSES)


def create_provider(
    name: str,
    settings_store: SettingsStoreProtocol,
    *,
    http_client: httpx.AsyncClient | None = None,
) -> BaseEnrichmentProvider:
    """Instantiate a shipped provider by name.

    Raises:
        ValueError: If no provider with that name exists
    """
    provider_class = PROVIDER_CLASSES.get(name)
    if provider_class is None:
        raise ValueError(
            f"Unknown provider '{name}'. Available: {', '.join(get_available_providers())}"
        )
    return provider_class(settings_store, http_client=http_client)


def create_default_registry(
    settings_store: SettingsStoreProtocol,
    http_client: httpx.AsyncClient | None = None,
) -> ProviderRegistry:
    """Registry holding every shipped provider, configured or not."""
    return ProviderRegistry(
        [
            create_provider(name, settings_store, http_client=http_client)
            for name in get_available_providers()
        ]
    )
