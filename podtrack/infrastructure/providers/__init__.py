"""Paid enrichment providers and their registry."""

from podtrack.infrastructure.providers.apify import ApifyProvider
from podtrack.infrastructure.providers.base import (
    BaseEnrichmentProvider,
    BatchFetchResult,
    EnrichmentProvider,
    PlatformConfig,
    extract_handle_from_url,
    get_nested_value,
    normalize_response,
    parse_abbreviated_count,
)
from podtrack.infrastructure.providers.registry import (
    ProviderRegistry,
    create_default_registry,
    create_provider,
    get_available_providers,
)
from podtrack.infrastructure.providers.scrapingdog import ScrapingDogProvider

__all__ = [
    "ApifyProvider",
    "BaseEnrichmentProvider",
    "BatchFetchResult",
    "EnrichmentProvider",
    "PlatformConfig",
    "ProviderRegistry",
    "ScrapingDogProvider",
    "create_default_registry",
    "create_provider",
    "extract_handle_from_url",
    "get_available_providers",
    "get_nested_value",
    "normalize_response",
    "parse_abbreviated_count",
]
