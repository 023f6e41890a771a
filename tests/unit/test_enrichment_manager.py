"""Unit tests for provider selection and fallback in the enrichment manager."""

from decimal import Decimal

import pytest

from podtrack.domain.entities import NormalizedMetrics, Platform, ProfileReference
from podtrack.domain.errors import (
    NoProviderAvailableError,
    RateLimitedError,
    UpstreamError,
)
from podtrack.infrastructure.providers import BatchFetchResult, ProviderRegistry
from podtrack.infrastructure.services import EnrichmentManager


class FakeProvider:
    """Provider double recording every call it receives."""

    def __init__(
        self,
        name: str,
        platforms=(Platform.TWITTER,),
        *,
        configured: bool = True,
        cost: str = "0.001",
        error: Exception | None = None,
        followers: int = 100,
    ):
        self.name = name
        self.supported_platforms = frozenset(platforms)
        self.configured = configured
        self.cost = Decimal(cost)
        self.error = error
        self.followers = followers
        self.calls: list[tuple[str, str]] = []
        self.validated = 0

    def supports_platform(self, platform):
        return Platform(platform) in self.supported_platforms

    def is_configured(self):
        return self.configured

    def cost_per_profile(self, platform):
        return self.cost if self.supports_platform(platform) else Decimal("0")

    async def fetch_metrics(self, platform, profile_url, handle=""):
        self.calls.append((str(platform), profile_url))
        if self.error is not None:
            raise self.error
        return NormalizedMetrics(followers=self.followers).with_provider(self.name, self.cost)

    async def batch_fetch(self, platform, profiles):
        self.calls.append((str(platform), "batch"))
        if self.error is not None:
            raise self.error
        return BatchFetchResult(
            results={p.url: NormalizedMetrics(followers=self.followers) for p in profiles},
            total_cost=self.cost * len(profiles),
        )

    async def validate_credentials(self):
        self.validated += 1
        if self.error is not None:
            raise self.error


def _manager(*providers, priorities=None, events=None):
    callback = (lambda event, payload: events.append((event, payload))) if events is not None else None
    return EnrichmentManager(
        ProviderRegistry(list(providers)),
        platform_priorities=priorities if priorities is not None else {},
        event_callback=callback,
    )


URL = "https://twitter.com/podshow"


class TestFetchMetrics:
    async def test_first_provider_success_stops_the_walk(self):
        first = FakeProvider("first", followers=1)
        second = FakeProvider("second", followers=2)
        manager = _manager(first, second, priorities={"twitter": ["first", "second"]})

        metrics = await manager.fetch_metrics(Platform.TWITTER, URL)

        assert metrics.followers == 1
        assert metrics.provider == "first"
        assert second.calls == []

    async def test_falls_back_after_failure(self):
        failing = FakeProvider("first", error=RateLimitedError("throttled", provider="first"))
        backup = FakeProvider("second", followers=7)
        events = []
        manager = _manager(
            failing, backup, priorities={"twitter": ["first", "second"]}, events=events
        )

        metrics = await manager.fetch_metrics(Platform.TWITTER, URL)

        assert metrics.provider == "second"
        assert len(failing.calls) == 1
        assert [event for event, _ in events] == ["provider_failed", "provider_succeeded"]

    async def test_skips_unconfigured_and_unsupported_without_calling(self):
        unconfigured = FakeProvider("a", configured=False)
        unsupported = FakeProvider("b", platforms=(Platform.LINKEDIN,))
        working = FakeProvider("c")
        events = []
        manager = _manager(
            unconfigured,
            unsupported,
            working,
            priorities={"twitter": ["missing", "a", "b", "c"]},
            events=events,
        )

        metrics = await manager.fetch_metrics(Platform.TWITTER, URL)

        assert metrics.provider == "c"
        assert unconfigured.calls == [] and unsupported.calls == []
        reasons = [payload["reason"] for event, payload in events if event == "provider_skipped"]
        assert reasons == ["not_registered", "not_configured", "unsupported_platform"]

    async def test_raises_last_failure_when_all_fail(self):
        first = FakeProvider("first", error=RateLimitedError("throttled"))
        second = FakeProvider("second", error=UpstreamError("bad gateway", status_code=502))
        manager = _manager(first, second, priorities={"twitter": ["first", "second"]})

        with pytest.raises(UpstreamError, match="bad gateway"):
            await manager.fetch_metrics(Platform.TWITTER, URL)

    async def test_no_eligible_provider(self):
        manager = _manager(FakeProvider("only", configured=False))

        with pytest.raises(NoProviderAvailableError) as exc_info:
            await manager.fetch_metrics(Platform.TWITTER, URL)
        assert exc_info.value.code == "no_provider"

    async def test_preferred_provider_outcome_is_final(self):
        """An eligible preferred provider's failure is not retried elsewhere."""
        preferred = FakeProvider("preferred", error=UpstreamError("down"))
        other = FakeProvider("other")
        manager = _manager(preferred, other, priorities={"twitter": ["other"]})

        with pytest.raises(UpstreamError):
            await manager.fetch_metrics(Platform.TWITTER, URL, preferred_provider="preferred")
        assert other.calls == []

    async def test_preferred_provider_reports_events(self):
        events = []
        preferred = FakeProvider("preferred")
        manager = _manager(preferred, priorities={"twitter": []}, events=events)

        await manager.fetch_metrics(Platform.TWITTER, URL, preferred_provider="preferred")

        preferred.error = UpstreamError("down")
        with pytest.raises(UpstreamError):
            await manager.fetch_metrics(Platform.TWITTER, URL, preferred_provider="preferred")

        assert [event for event, _ in events] == ["provider_succeeded", "provider_failed"]
        assert all(payload["provider"] == "preferred" for _, payload in events)
        assert events[1][1]["code"] == "upstream_error"

    async def test_ineligible_preferred_provider_uses_priority_list(self):
        preferred = FakeProvider("preferred", configured=False)
        other = FakeProvider("other")
        manager = _manager(preferred, other, priorities={"twitter": ["other"]})

        metrics = await manager.fetch_metrics(Platform.TWITTER, URL, preferred_provider="preferred")
        assert metrics.provider == "other"

    async def test_unset_priority_uses_registration_order(self):
        first = FakeProvider("first")
        second = FakeProvider("second")
        manager = _manager(first, second)

        assert manager.get_platform_priority(Platform.TWITTER) == ["first", "second"]
        assert (await manager.fetch_metrics(Platform.TWITTER, URL)).provider == "first"


class TestBatchFetch:
    async def test_delegates_to_first_eligible_provider(self):
        failing = FakeProvider("first", error=UpstreamError("down"))
        working = FakeProvider("second", cost="0.003")
        manager = _manager(failing, working, priorities={"twitter": ["first", "second"]})
        profiles = [
            ProfileReference(Platform.TWITTER, "https://twitter.com/a"),
            ProfileReference(Platform.TWITTER, "https://twitter.com/b"),
        ]

        result = await manager.batch_fetch(Platform.TWITTER, profiles)

        assert set(result.results) == {p.url for p in profiles}
        assert result.total_cost == Decimal("0.006")


class TestPriorities:
    def test_set_platform_priority_deduplicates(self):
        manager = _manager(FakeProvider("a"), FakeProvider("b"))
        manager.set_platform_priority("twitter", ["b", "a", "b"])
        assert manager.get_platform_priority(Platform.TWITTER) == ["b", "a"]

    def test_defaults_come_from_settings(self):
        manager = EnrichmentManager(ProviderRegistry())
        assert manager.get_platform_priority(Platform.LINKEDIN) == ["scrapingdog", "apify"]
        assert manager.get_platform_priority(Platform.TIKTOK) == ["apify"]


class TestEstimateCost:
    def test_recommends_cheapest_configured_provider(self):
        cheap_unconfigured = FakeProvider("cheap", configured=False, cost="0.0001")
        mid = FakeProvider("mid", cost="0.003")
        pricey = FakeProvider("pricey", cost="0.005")
        manager = _manager(cheap_unconfigured, mid, pricey)

        estimate = manager.estimate_cost(Platform.TWITTER, count=100)

        assert estimate.recommended == "mid"
        assert estimate.recommended_cost == Decimal("0.3")
        assert set(estimate.estimates) == {"cheap", "mid", "pricey"}
        assert estimate.estimates["pricey"].total_cost == Decimal("0.5")

    def test_no_configured_provider_means_no_recommendation(self):
        manager = _manager(FakeProvider("a", configured=False))

        estimate = manager.estimate_cost(Platform.TWITTER)

        assert estimate.recommended is None
        assert estimate.recommended_cost is None

    def test_single_provider_estimate(self):
        manager = _manager(FakeProvider("a"), FakeProvider("b", cost="0.002"))
        estimate = manager.estimate_cost(Platform.TWITTER, count=10, provider="b")

        assert list(estimate.estimates) == ["b"]
        assert estimate.recommended == "b"


class TestCredentialValidation:
    async def test_classifies_each_provider(self):
        manager = _manager(
            FakeProvider("missing", configured=False),
            FakeProvider("broken", error=UpstreamError("Invalid API key")),
            FakeProvider("good"),
        )

        results = await manager.validate_all_credentials()

        assert results["missing"].status == "not_configured"
        assert results["broken"].status == "invalid"
        assert results["broken"].message == "Invalid API key"
        assert results["good"].status == "valid"


class TestReporting:
    def test_pricing_and_support_tables(self):
        manager = _manager(
            FakeProvider("a", platforms=(Platform.TWITTER, Platform.LINKEDIN), cost="0.01"),
            FakeProvider("b", platforms=(Platform.TWITTER,), cost="0.003"),
        )

        support = manager.get_platform_support()
        pricing = manager.get_pricing_comparison()

        assert support["twitter"] == ["a", "b"]
        assert support["linkedin"] == ["a"]
        assert support["tiktok"] == []
        assert pricing["twitter"] == {"a": Decimal("0.01"), "b": Decimal("0.003")}
