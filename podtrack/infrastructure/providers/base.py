"""Enrichment provider contract and shared normalization.

Every paid provider translates one upstream service's response into the
same NormalizedMetrics shape. Each provider owns a typed PlatformConfig per
platform whose field map lists, for every target field, the candidate source
paths to try in order. The first candidate that resolves to a non-null value
wins; everything else keeps its default.

Key Components:
- EnrichmentProvider: Protocol the enrichment manager routes through
- BaseEnrichmentProvider: Shared configuration, normalization and batch loop
- PlatformConfig: Typed per-platform endpoint/actor, cost and field map
- normalize_response / get_nested_value: Field-map evaluation
- extract_handle_from_url / parse_abbreviated_count: Input/value helpers
"""

import asyncio
from collections.abc import Mapping, Sequence
from decimal import Decimal
import re
from typing import Any, ClassVar, Protocol

from attrs import define, evolve, field
import httpx

from podtrack.config import get_logger, settings
from podtrack.domain.entities import (
    NormalizedMetrics,
    Platform,
    ProfileReference,
    to_decimal,
)
from podtrack.domain.errors import (
    EnrichmentError,
    UnsupportedPlatformError,
)
from podtrack.domain.repositories import SettingsStoreProtocol
from podtrack.infrastructure.connectors.base_connector import HttpSource

logger = get_logger(__name__).bind(service="providers")

# Ordered (target_field, candidate_paths) pairs
FieldMap = tuple[tuple[str, tuple[str, ...]], ...]

INT_FIELDS = frozenset({"followers", "following", "posts", "total_views"})
FLOAT_FIELDS = frozenset({"avg_likes", "avg_comments", "avg_shares", "engagement_rate"})
STR_FIELDS = frozenset({"name", "bio", "location"})
BOOL_FIELDS = frozenset({"verified"})
METRIC_FIELDS = INT_FIELDS | FLOAT_FIELDS | STR_FIELDS | BOOL_FIELDS


def _validate_field_map(_instance: Any, _attribute: Any, value: FieldMap) -> None:
    unknown = [target for target, _ in value if target not in METRIC_FIELDS]
    if unknown:
        raise ValueError(f"Unknown field map targets: {unknown}")


@define(frozen=True, slots=True)
class PlatformConfig:
    """Typed configuration for one platform of one provider.

    Attributes:
        cost_per_1k: USD cost per 1,000 profiles
        field_map: Ordered candidate source paths per normalized field
        endpoint: HTTP path for direct-request providers
        actor: Actor identifier for job-based providers
        param_name: Query parameter carrying the profile reference
        extra_params: Additional fixed query parameters
        input_format: Actor input shape for job-based providers
    """

    cost_per_1k: Decimal = field(converter=to_decimal)
    field_map: FieldMap = field(validator=_validate_field_map)
    endpoint: str = ""
    actor: str = ""
    param_name: str = "link"
    extra_params: dict[str, str] = field(factory=dict)
    input_format: str = ""

    @property
    def cost_per_profile(self) -> Decimal:
        return self.cost_per_1k / 1000


@define(frozen=True, slots=True)
class BatchFetchResult:
    """Outcome of a multi-profile fetch keyed by profile URL."""

    results: dict[str, NormalizedMetrics] = field(factory=dict)
    total_cost: Decimal = field(default=Decimal("0"), converter=to_decimal)
    errors: dict[str, str] = field(factory=dict)


class EnrichmentProvider(Protocol):
    """Adapter to one external enrichment service."""

    @property
    def name(self) -> str:
        """Unique provider name."""
        ...

    @property
    def supported_platforms(self) -> frozenset[Platform]:
        """Platforms this provider can fetch."""
        ...

    def supports_platform(self, platform: Platform | str) -> bool:
        """Whether the platform is supported."""
        ...

    def is_configured(self) -> bool:
        """True iff the required credential is non-empty."""
        ...

    async def fetch_metrics(
        self, platform: Platform | str, profile_url: str, handle: str = ""
    ) -> NormalizedMetrics:
        """Fetch one profile. Raises an EnrichmentError subclass on failure."""
        ...

    async def batch_fetch(
        self, platform: Platform | str, profiles: list[ProfileReference]
    ) -> BatchFetchResult:
        """Fetch several profiles of one platform."""
        ...

    def cost_per_profile(self, platform: Platform | str) -> Decimal:
        """USD cost of fetching one profile."""
        ...

    async def validate_credentials(self) -> None:
        """Network round-trip proving the credential works. Raises on failure."""
        ...


# -------------------------------------------------------------------------
# NORMALIZATION
# -------------------------------------------------------------------------

_COUNT_PATTERN = re.compile(r"(\d[\d,]*(?:\.\d+)?)\s*([KMB])?\b", re.IGNORECASE)
_MULTIPLIERS = {"K": 1_000, "M": 1_000_000, "B": 1_000_000_000}


def parse_abbreviated_count(text: str) -> int:
    """Parse counts like '1,234', '19M followers' or '2.5K'. Returns 0 if none."""
    match = _COUNT_PATTERN.search(text)
    if not match:
        return 0
    number = float(match.group(1).replace(",", ""))
    suffix = (match.group(2) or "").upper()
    return int(number * _MULTIPLIERS.get(suffix, 1))


def get_nested_value(data: Any, path: str) -> Any:
    """Resolve a candidate path against a JSON-like tree.

    A literal key match wins over dotted traversal, so keys that themselves
    contain dots still resolve. Numeric path segments index into lists.
    """
    if isinstance(data, Mapping) and path in data:
        return data[path]

    current = data
    for part in path.split("."):
        if isinstance(current, Mapping) and part in current:
            current = current[part]
        elif (
            isinstance(current, Sequence)
            and not isinstance(current, str)
            and part.isdigit()
            and int(part) < len(current)
        ):
            current = current[int(part)]
        else:
            return None
    return current


def _coerce(target: str, value: Any) -> Any:
    if target in INT_FIELDS:
        match value:
            case bool():
                return int(value)
            case int():
                return value
            case float():
                return int(value)
            case str():
                return parse_abbreviated_count(value)
            case Sequence():
                return len(value)
            case _:
                return 0

    if target in FLOAT_FIELDS:
        if isinstance(value, str):
            value = value.replace(",", "").rstrip("%").strip()
        try:
            return float(value)
        except (TypeError, ValueError):
            return 0.0

    if target in BOOL_FIELDS:
        if isinstance(value, str):
            return value.strip().lower() in {"true", "1", "yes"}
        return bool(value)

    match value:
        case str():
            return value.strip()
        case list():
            return ", ".join(str(item) for item in value if item is not None)
        case dict():
            return str(value.get("name") or value.get("title") or "")
        case _:
            return str(value)


def normalize_response(data: Mapping[str, Any], field_map: FieldMap) -> NormalizedMetrics:
    """Map an upstream payload onto NormalizedMetrics using a field map.

    Engagement rate is derived from average likes and comments when the
    upstream does not report it and the follower count is known.
    """
    values: dict[str, Any] = {}
    for target, candidates in field_map:
        for path in candidates:
            raw = get_nested_value(data, path)
            if raw is not None:
                values[target] = _coerce(target, raw)
                break

    metrics = NormalizedMetrics(**values, raw_data=dict(data))

    if not metrics.engagement_rate and metrics.followers > 0:
        interactions = metrics.avg_likes + metrics.avg_comments
        if interactions:
            metrics = evolve(
                metrics,
                engagement_rate=round(interactions / metrics.followers * 100, 2),
            )
    return metrics


_HANDLE_PATTERNS = {
    Platform.LINKEDIN: re.compile(r"linkedin\.com/in/([^/?#]+)", re.IGNORECASE),
    Platform.TWITTER: re.compile(r"(?:^|[/.])(?:twitter|x)\.com/([^/?#]+)", re.IGNORECASE),
    Platform.INSTAGRAM: re.compile(r"instagram\.com/([^/?#]+)", re.IGNORECASE),
    Platform.FACEBOOK: re.compile(r"facebook\.com/([^/?#]+)", re.IGNORECASE),
    Platform.TIKTOK: re.compile(r"tiktok\.com/@?([^/?#]+)", re.IGNORECASE),
    Platform.YOUTUBE: re.compile(
        r"youtube\.com/(?:@|channel/|user/|c/)?([^/?#]+)", re.IGNORECASE
    ),
}


def extract_handle_from_url(url: str, platform: Platform | str) -> str:
    """Extract the account handle from a profile URL, without a leading '@'."""
    try:
        pattern = _HANDLE_PATTERNS.get(Platform(platform))
    except ValueError:
        return ""
    if pattern is None:
        return ""
    match = pattern.search(url)
    return match.group(1).lstrip("@") if match else ""


# -------------------------------------------------------------------------
# BASE PROVIDER
# -------------------------------------------------------------------------


class BaseEnrichmentProvider(HttpSource):
    """Shared implementation for paid enrichment providers.

    Subclasses define NAME, API_KEY_SETTING and PLATFORM_CONFIG, and implement
    fetch_metrics and validate_credentials. The default batch_fetch loops over
    profiles with a pacing delay; providers with a native multi-profile call
    override it.
    """

    PLATFORM_CONFIG: ClassVar[dict[Platform, PlatformConfig]] = {}

    def __init__(
        self,
        settings_store: SettingsStoreProtocol,
        *,
        http_client: httpx.AsyncClient | None = None,
        request_timeout: float | None = None,
        validate_timeout: float | None = None,
        batch_request_delay: float | None = None,
    ) -> None:
        super().__init__(
            settings_store,
            http_client=http_client,
            request_timeout=request_timeout,
            validate_timeout=validate_timeout,
        )
        self.batch_request_delay = (
            batch_request_delay
            if batch_request_delay is not None
            else settings.providers.batch_request_delay
        )

    @property
    def supported_platforms(self) -> frozenset[Platform]:
        return frozenset(self.PLATFORM_CONFIG)

    def supports_platform(self, platform: Platform | str) -> bool:
        try:
            return Platform(platform) in self.PLATFORM_CONFIG
        except ValueError:
            return False

    def cost_per_profile(self, platform: Platform | str) -> Decimal:
        if not self.supports_platform(platform):
            return Decimal("0")
        return self.PLATFORM_CONFIG[Platform(platform)].cost_per_profile

    def get_platform_config(self, platform: Platform | str) -> PlatformConfig:
        if not self.supports_platform(platform):
            raise UnsupportedPlatformError(
                f"Platform '{platform}' is not supported by the {self.NAME} provider",
                provider=self.NAME,
                platform=str(platform),
            )
        return self.PLATFORM_CONFIG[Platform(platform)]

    def require_ready(self, platform: Platform | str) -> PlatformConfig:
        """Check credential then platform support, in that order."""
        self.require_api_key(str(platform))
        return self.get_platform_config(platform)

    def map_response(self, platform: Platform | str, data: Mapping[str, Any]) -> NormalizedMetrics:
        config = self.get_platform_config(platform)
        metrics = normalize_response(data, config.field_map)
        return metrics.with_provider(self.NAME, config.cost_per_profile)

    async def fetch_metrics(
        self, platform: Platform | str, profile_url: str, handle: str = ""
    ) -> NormalizedMetrics:
        raise NotImplementedError

    async def validate_credentials(self) -> None:
        raise NotImplementedError

    async def batch_fetch(
        self, platform: Platform | str, profiles: list[ProfileReference]
    ) -> BatchFetchResult:
        """Fetch profiles one at a time with a pacing delay between requests."""
        self.require_ready(platform)

        results: dict[str, NormalizedMetrics] = {}
        errors: dict[str, str] = {}
        total_cost = Decimal("0")
        requested = [profile for profile in profiles if profile.url]

        for index, profile in enumerate(requested):
            if index and self.batch_request_delay > 0:
                await asyncio.sleep(self.batch_request_delay)
            try:
                metrics = await self.fetch_metrics(platform, profile.url, profile.handle)
            except EnrichmentError as e:
                errors[profile.url] = str(e)
                continue
            results[profile.url] = metrics
            total_cost += metrics.cost

        logger.info(
            f"{self.NAME} batch fetched {len(results)}/{len(requested)} {platform} profiles",
            total_cost=str(total_cost),
            error_count=len(errors),
        )
        return BatchFetchResult(results=results, total_cost=total_cost, errors=errors)
