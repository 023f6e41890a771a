"""Enrichment manager: provider selection with priority-ordered fallback.

For each platform the manager walks an ordered list of provider names and
returns the first successful result. Candidates are tried sequentially, one
upstream call each, because every call carries real monetary cost. Providers
that are unregistered, unconfigured or that do not support the platform are
skipped silently; only real fetch failures are remembered, and the last one
is raised if nothing succeeds.

The priority table is plain instance state, seeded from settings and
changed only through ``set_platform_priority``.
"""

from collections.abc import Callable, Iterable
from decimal import Decimal
from typing import Any

from attrs import define, field

from podtrack.config import get_logger, settings
from podtrack.domain.entities import (
    SOCIAL_PLATFORMS,
    NormalizedMetrics,
    Platform,
    ProfileReference,
    to_decimal,
)
from podtrack.domain.errors import EnrichmentError, NoProviderAvailableError
from podtrack.infrastructure.providers.base import BatchFetchResult, EnrichmentProvider
from podtrack.infrastructure.providers.registry import ProviderRegistry

logger = get_logger(__name__).bind(service="enrichment_manager")

EventCallback = Callable[[str, dict[str, Any]], None]

PROVIDER_SUCCEEDED = "provider_succeeded"
PROVIDER_FAILED = "provider_failed"
PROVIDER_SKIPPED = "provider_skipped"


@define(frozen=True, slots=True)
class ProviderEstimate:
    """Estimated spend with one provider."""

    cost_per_profile: Decimal = field(converter=to_decimal)
    total_cost: Decimal = field(converter=to_decimal)
    configured: bool


@define(frozen=True, slots=True)
class CostEstimate:
    """Per-provider estimates plus the cheapest configured recommendation."""

    platform: str
    count: int
    estimates: dict[str, ProviderEstimate] = field(factory=dict)
    recommended: str | None = None
    recommended_cost: Decimal | None = None


@define(frozen=True, slots=True)
class CredentialStatus:
    """Health-check outcome for one provider's credential."""

    status: str  # not_configured | invalid | valid
    message: str


class EnrichmentManager:
    """Routes metric fetches through registered providers by platform priority."""

    def __init__(
        self,
        registry: ProviderRegistry,
        platform_priorities: dict[str, list[str]] | None = None,
        event_callback: EventCallback | None = None,
    ) -> None:
        self.registry = registry
        source = (
            platform_priorities
            if platform_priorities is not None
            else settings.providers.platform_priorities
        )
        self._priorities: dict[str, list[str]] = {
            str(platform): list(names) for platform, names in source.items()
        }
        self._event_callback = event_callback

    # -------------------------------------------------------------------------
    # PRIORITIES
    # -------------------------------------------------------------------------

    def get_platform_priority(self, platform: Platform | str) -> list[str]:
        """Ordered provider names for a platform; all registered names if unset."""
        names = self._priorities.get(str(platform))
        if names is None:
            return self.registry.names()
        return list(names)

    def set_platform_priority(self, platform: Platform | str, providers: Iterable[str]) -> None:
        names = list(dict.fromkeys(providers))
        self._priorities[str(platform)] = names
        logger.info(f"Provider priority for {platform} set to {names}")

    # -------------------------------------------------------------------------
    # SELECTION
    # -------------------------------------------------------------------------

    def _emit(self, event: str, **payload: Any) -> None:
        if event == PROVIDER_FAILED:
            logger.warning(f"Enrichment {event}", **payload)
        else:
            logger.debug(f"Enrichment {event}", **payload)
        if self._event_callback is not None:
            self._event_callback(event, payload)

    def _eligible(self, name: str, platform: Platform | str) -> EnrichmentProvider | None:
        provider = self.registry.get(name)
        if provider is None:
            reason = "not_registered"
        elif not provider.is_configured():
            reason = "not_configured"
        elif not provider.supports_platform(platform):
            reason = "unsupported_platform"
        else:
            return provider
        self._emit(PROVIDER_SKIPPED, provider=name, platform=str(platform), reason=reason)
        return None

    def _no_provider(self, platform: Platform | str) -> NoProviderAvailableError:
        return NoProviderAvailableError(
            f"No configured provider available for platform: {platform}",
            platform=str(platform),
        )

    async def fetch_metrics(
        self,
        platform: Platform | str,
        profile_url: str,
        handle: str = "",
        preferred_provider: str | None = None,
    ) -> NormalizedMetrics:
        """Fetch one profile through the first provider that succeeds.

        An eligible preferred provider is tried exactly once and its outcome,
        success or failure, is returned without consulting the priority list.

        Raises:
            EnrichmentError: The last provider failure, or NoProviderAvailableError
                when no candidate was eligible
        """
        if preferred_provider:
            provider = self._eligible(preferred_provider, platform)
            if provider is not None:
                return await self._fetch_from(provider, platform, profile_url, handle)

        last_error: EnrichmentError | None = None

        for name in self.get_platform_priority(platform):
            provider = self._eligible(name, platform)
            if provider is None:
                continue

            try:
                return await self._fetch_from(provider, platform, profile_url, handle)
            except EnrichmentError as e:
                last_error = e

        raise last_error or self._no_provider(platform)

    async def _fetch_from(
        self,
        provider: EnrichmentProvider,
        platform: Platform | str,
        profile_url: str,
        handle: str,
    ) -> NormalizedMetrics:
        """One provider attempt, reported as succeeded or failed."""
        try:
            metrics = await provider.fetch_metrics(platform, profile_url, handle)
        except EnrichmentError as e:
            self._emit(
                PROVIDER_FAILED,
                provider=provider.name,
                platform=str(platform),
                profile_url=profile_url,
                error=str(e),
                code=e.code,
            )
            raise

        self._emit(
            PROVIDER_SUCCEEDED,
            provider=provider.name,
            platform=str(platform),
            profile_url=profile_url,
        )
        return metrics

    async def batch_fetch(
        self,
        platform: Platform | str,
        profiles: list[ProfileReference],
        preferred_provider: str | None = None,
    ) -> BatchFetchResult:
        """Delegate a multi-profile fetch to the first eligible provider that succeeds."""
        names = self.get_platform_priority(platform)
        if preferred_provider:
            names = list(dict.fromkeys([preferred_provider, *names]))

        last_error: EnrichmentError | None = None
        for name in names:
            provider = self._eligible(name, platform)
            if provider is None:
                continue
            try:
                result = await provider.batch_fetch(platform, profiles)
            except EnrichmentError as e:
                last_error = e
                self._emit(
                    PROVIDER_FAILED,
                    provider=name,
                    platform=str(platform),
                    error=str(e),
                    code=e.code,
                    batch_size=len(profiles),
                )
                continue

            self._emit(
                PROVIDER_SUCCEEDED,
                provider=name,
                platform=str(platform),
                batch_size=len(profiles),
            )
            return result

        raise last_error or self._no_provider(platform)

    # -------------------------------------------------------------------------
    # REPORTING
    # -------------------------------------------------------------------------

    def estimate_cost(
        self, platform: Platform | str, count: int = 1, provider: str | None = None
    ) -> CostEstimate:
        """Cost of fetching ``count`` profiles, per provider.

        Only configured providers are ever recommended, even when an
        unconfigured one is nominally cheaper.
        """
        if provider is not None:
            candidate = self.registry.get(provider)
            candidates = [candidate] if candidate is not None else []
        else:
            candidates = self.registry.all()

        estimates: dict[str, ProviderEstimate] = {}
        for candidate in candidates:
            if not candidate.supports_platform(platform):
                continue
            cost_per_profile = candidate.cost_per_profile(platform)
            estimates[candidate.name] = ProviderEstimate(
                cost_per_profile=cost_per_profile,
                total_cost=cost_per_profile * count,
                configured=candidate.is_configured(),
            )

        configured = [(name, est) for name, est in estimates.items() if est.configured]
        if not configured:
            return CostEstimate(platform=str(platform), count=count, estimates=estimates)

        recommended, best = min(configured, key=lambda item: item[1].cost_per_profile)
        return CostEstimate(
            platform=str(platform),
            count=count,
            estimates=estimates,
            recommended=recommended,
            recommended_cost=best.total_cost,
        )

    async def validate_all_credentials(self) -> dict[str, CredentialStatus]:
        """Classify every registered provider's credential with a live check."""
        results: dict[str, CredentialStatus] = {}
        for provider in self.registry.all():
            if not provider.is_configured():
                results[provider.name] = CredentialStatus("not_configured", "API key not set")
                continue
            try:
                await provider.validate_credentials()
            except EnrichmentError as e:
                results[provider.name] = CredentialStatus("invalid", str(e))
            else:
                results[provider.name] = CredentialStatus("valid", "Credentials verified")
        return results

    def get_platform_support(self) -> dict[str, list[str]]:
        return {
            str(platform): [
                provider.name
                for provider in self.registry.all()
                if provider.supports_platform(platform)
            ]
            for platform in SOCIAL_PLATFORMS
        }

    def get_pricing_comparison(self) -> dict[str, dict[str, Decimal]]:
        return {
            str(platform): {
                provider.name: provider.cost_per_profile(platform)
                for provider in self.registry.all()
                if provider.supports_platform(platform)
            }
            for platform in SOCIAL_PLATFORMS
        }
