"""Infrastructure services."""

from podtrack.infrastructure.services.enrichment_manager import (
    CostEstimate,
    CredentialStatus,
    EnrichmentManager,
    ProviderEstimate,
)

__all__ = [
    "CostEstimate",
    "CredentialStatus",
    "EnrichmentManager",
    "ProviderEstimate",
]
