"""SQLAlchemy database models for podtrack.

Tables:
- podcasts: tracked podcasts and their tracking status
- social_links: one stored profile per (podcast, platform)
- jobs: durable enrichment jobs
- metrics: historical metric records, latest by fetched_at
- cost_log: append-only spend ledger
"""

from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.ext.asyncio import AsyncAttrs
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# Define naming convention for constraints
convention = {
    "ix": "ix_%(table_name)s_%(column_0_name)s",
    "uq": "uq_%(table_name)s_%(column_0_N_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

metadata = MetaData(naming_convention=convention)

Money = Numeric(10, 4, asdecimal=True)


def utc_now() -> datetime:
    return datetime.now(UTC)


class PodtrackDBBase(AsyncAttrs, DeclarativeBase):
    """Base class for all database models with timestamps."""

    metadata = metadata

    id: Mapped[int] = mapped_column(primary_key=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        onupdate=utc_now,
        nullable=False,
    )


class DBPodcast(PodtrackDBBase):
    """Podcast being tracked."""

    __tablename__ = "podcasts"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    tracking_status: Mapped[str] = mapped_column(String(20), default="not_tracked")
    is_tracked: Mapped[bool] = mapped_column(Boolean, default=False, index=True)


class DBSocialLink(PodtrackDBBase):
    """Social profile of a podcast on one platform."""

    __tablename__ = "social_links"

    podcast_id: Mapped[int] = mapped_column(
        ForeignKey("podcasts.id", ondelete="CASCADE"), nullable=False
    )
    platform: Mapped[str] = mapped_column(String(32), nullable=False)
    profile_url: Mapped[str] = mapped_column(String(1024), nullable=False)
    profile_handle: Mapped[str] = mapped_column(String(255), default="")

    __table_args__ = (UniqueConstraint("podcast_id", "platform"),)


class DBJob(PodtrackDBBase):
    """Durable enrichment job."""

    __tablename__ = "jobs"

    podcast_id: Mapped[int] = mapped_column(
        ForeignKey("podcasts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    job_type: Mapped[str] = mapped_column(String(32), nullable=False)
    platforms: Mapped[list[str]] = mapped_column(JSON, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="queued")
    priority: Mapped[int] = mapped_column(Integer, default=50)
    attempts: Mapped[int] = mapped_column(Integer, default=0)
    max_attempts: Mapped[int] = mapped_column(Integer, default=3)
    progress_percent: Mapped[int] = mapped_column(Integer, default=0)
    estimated_cost: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    actual_cost: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    error_message: Mapped[str | None] = mapped_column(Text)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    __table_args__ = (Index("ix_jobs_status_priority", "status", "priority"),)


class DBMetric(PodtrackDBBase):
    """One fetched snapshot of a podcast's profile on a platform."""

    __tablename__ = "metrics"

    podcast_id: Mapped[int] = mapped_column(
        ForeignKey("podcasts.id", ondelete="CASCADE"), nullable=False
    )
    platform: Mapped[str] = mapped_column(String(32), nullable=False)
    followers: Mapped[int] = mapped_column(Integer, default=0)
    following: Mapped[int] = mapped_column(Integer, default=0)
    posts: Mapped[int] = mapped_column(Integer, default=0)
    avg_likes: Mapped[float] = mapped_column(Float, default=0.0)
    avg_comments: Mapped[float] = mapped_column(Float, default=0.0)
    avg_shares: Mapped[float] = mapped_column(Float, default=0.0)
    engagement_rate: Mapped[float] = mapped_column(Float, default=0.0)
    total_views: Mapped[int] = mapped_column(Integer, default=0)
    name: Mapped[str] = mapped_column(String(255), default="")
    bio: Mapped[str] = mapped_column(Text, default="")
    location: Mapped[str] = mapped_column(String(255), default="")
    verified: Mapped[bool] = mapped_column(Boolean, default=False)
    api_response: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    cost_usd: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    fetch_duration_seconds: Mapped[float] = mapped_column(Float, default=0.0)
    fetched_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("ix_metrics_podcast_platform_fetched", "podcast_id", "platform", "fetched_at"),
    )


class DBCostLog(PodtrackDBBase):
    """Append-only record of one metered action."""

    __tablename__ = "cost_log"

    entity_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    action_type: Mapped[str] = mapped_column(String(32), nullable=False)
    platform: Mapped[str] = mapped_column(String(32), default="")
    provider: Mapped[str] = mapped_column(String(32), default="")
    cost_usd: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    success: Mapped[bool] = mapped_column(Boolean, default=True)
    # "metadata" is reserved on declarative classes
    extra: Mapped[dict[str, Any]] = mapped_column("metadata", JSON, default=dict)
    logged_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False, index=True
    )
