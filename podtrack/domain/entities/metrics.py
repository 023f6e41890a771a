"""Profile metrics domain entities.

Pure domain types for the enrichment pipeline with zero infrastructure
dependencies: platforms, profile references, the normalized metrics shape
every provider emits, and the persisted metric record.
"""

from datetime import UTC, datetime, timedelta
from decimal import Decimal
from enum import StrEnum
from typing import Any

from attrs import define, evolve, field


DEFAULT_METRIC_TTL = timedelta(days=7)


class Platform(StrEnum):
    """External networks metrics are fetched from."""

    LINKEDIN = "linkedin"
    TWITTER = "twitter"
    INSTAGRAM = "instagram"
    FACEBOOK = "facebook"
    YOUTUBE = "youtube"
    TIKTOK = "tiktok"
    SPOTIFY = "spotify"
    APPLE_PODCASTS = "apple_podcasts"


SOCIAL_PLATFORMS: tuple[Platform, ...] = (
    Platform.LINKEDIN,
    Platform.TWITTER,
    Platform.INSTAGRAM,
    Platform.FACEBOOK,
    Platform.YOUTUBE,
    Platform.TIKTOK,
)


def to_decimal(value: Any) -> Decimal:
    """Convert a cost value to Decimal without float artifacts."""
    if isinstance(value, Decimal):
        return value
    if value is None:
        return Decimal("0")
    return Decimal(str(value))


@define(frozen=True, slots=True)
class ProfileReference:
    """One external account to enrich."""

    platform: Platform = field(converter=Platform)
    url: str
    handle: str = ""


@define(frozen=True, slots=True)
class NormalizedMetrics:
    """Canonical cross-provider result for a single profile fetch.

    Unset numeric fields are 0, unset strings are empty and ``verified`` is
    False, regardless of which upstream produced the data.
    """

    followers: int = 0
    following: int = 0
    posts: int = 0
    avg_likes: float = 0.0
    avg_comments: float = 0.0
    avg_shares: float = 0.0
    engagement_rate: float = 0.0
    total_views: int = 0
    name: str = ""
    bio: str = ""
    location: str = ""
    verified: bool = False
    raw_data: dict[str, Any] = field(factory=dict)
    provider: str = ""
    cost: Decimal = field(default=Decimal("0"), converter=to_decimal)

    def with_provider(self, provider: str, cost: Decimal | float | str) -> "NormalizedMetrics":
        """Return a copy stamped with the provider that produced it."""
        return evolve(self, provider=provider, cost=to_decimal(cost))

    def as_dict(self) -> dict[str, Any]:
        """Serialize metric fields (without raw data) for display or storage."""
        return {
            "followers": self.followers,
            "following": self.following,
            "posts": self.posts,
            "avg_likes": self.avg_likes,
            "avg_comments": self.avg_comments,
            "avg_shares": self.avg_shares,
            "engagement_rate": self.engagement_rate,
            "total_views": self.total_views,
            "name": self.name,
            "bio": self.bio,
            "location": self.location,
            "verified": self.verified,
            "provider": self.provider,
            "cost": str(self.cost),
        }


@define(frozen=True, slots=True)
class MetricRecord:
    """Persisted result of one fetch for a podcast on a platform.

    Several historical records may exist per (podcast, platform); the latest
    is the one with the greatest ``fetched_at``.
    """

    podcast_id: int
    platform: Platform = field(converter=Platform)
    fetched_at: datetime
    expires_at: datetime
    followers: int = 0
    following: int = 0
    posts: int = 0
    avg_likes: float = 0.0
    avg_comments: float = 0.0
    avg_shares: float = 0.0
    engagement_rate: float = 0.0
    total_views: int = 0
    name: str = ""
    bio: str = ""
    location: str = ""
    verified: bool = False
    api_response: dict[str, Any] = field(factory=dict)
    cost_usd: Decimal = field(default=Decimal("0"), converter=to_decimal)
    fetch_duration_seconds: float = 0.0
    id: int | None = None

    @classmethod
    def from_metrics(
        cls,
        podcast_id: int,
        platform: Platform,
        metrics: NormalizedMetrics,
        *,
        duration: float,
        fetched_at: datetime | None = None,
        ttl: timedelta = DEFAULT_METRIC_TTL,
    ) -> "MetricRecord":
        """Build a record from a fetch result, expiring ``ttl`` after fetch."""
        fetched = fetched_at or datetime.now(UTC)
        return cls(
            podcast_id=podcast_id,
            platform=platform,
            fetched_at=fetched,
            expires_at=fetched + ttl,
            followers=metrics.followers,
            following=metrics.following,
            posts=metrics.posts,
            avg_likes=metrics.avg_likes,
            avg_comments=metrics.avg_comments,
            avg_shares=metrics.avg_shares,
            engagement_rate=metrics.engagement_rate,
            total_views=metrics.total_views,
            name=metrics.name,
            bio=metrics.bio,
            location=metrics.location,
            verified=metrics.verified,
            api_response=metrics.raw_data,
            cost_usd=metrics.cost,
            fetch_duration_seconds=duration,
        )

    def is_fresh(self, now: datetime | None = None) -> bool:
        """A record is fresh while its expiry lies in the future."""
        return self.expires_at > (now or datetime.now(UTC))
