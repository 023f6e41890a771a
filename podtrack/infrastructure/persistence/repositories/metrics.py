"""Metric record repository."""

from datetime import UTC, datetime, timedelta

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from podtrack.domain.entities import MetricRecord, Platform, ensure_utc
from podtrack.infrastructure.persistence.database.db_models import DBMetric
from podtrack.infrastructure.persistence.repositories.repo_decorator import db_operation


def metric_to_domain(db_metric: DBMetric) -> MetricRecord:
    return MetricRecord(
        id=db_metric.id,
        podcast_id=db_metric.podcast_id,
        platform=db_metric.platform,
        fetched_at=ensure_utc(db_metric.fetched_at),
        expires_at=ensure_utc(db_metric.expires_at),
        followers=db_metric.followers,
        following=db_metric.following,
        posts=db_metric.posts,
        avg_likes=db_metric.avg_likes,
        avg_comments=db_metric.avg_comments,
        avg_shares=db_metric.avg_shares,
        engagement_rate=db_metric.engagement_rate,
        total_views=db_metric.total_views,
        name=db_metric.name or "",
        bio=db_metric.bio or "",
        location=db_metric.location or "",
        verified=db_metric.verified,
        api_response=db_metric.api_response or {},
        cost_usd=db_metric.cost_usd,
        fetch_duration_seconds=db_metric.fetch_duration_seconds,
    )


def _latest_first(stmt):
    return stmt.order_by(DBMetric.fetched_at.desc(), DBMetric.id.desc())


class SQLMetricRepository:
    """Historical metric snapshots; the newest per platform is current."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    @db_operation("insert_metric")
    async def insert(self, record: MetricRecord) -> MetricRecord:
        db_metric = DBMetric(
            podcast_id=record.podcast_id,
            platform=record.platform.value,
            followers=record.followers,
            following=record.following,
            posts=record.posts,
            avg_likes=record.avg_likes,
            avg_comments=record.avg_comments,
            avg_shares=record.avg_shares,
            engagement_rate=record.engagement_rate,
            total_views=record.total_views,
            name=record.name,
            bio=record.bio,
            location=record.location,
            verified=record.verified,
            api_response=record.api_response,
            cost_usd=record.cost_usd,
            fetch_duration_seconds=record.fetch_duration_seconds,
            fetched_at=record.fetched_at,
            expires_at=record.expires_at,
        )
        self.session.add(db_metric)
        await self.session.flush()
        return metric_to_domain(db_metric)

    @db_operation("get_latest_metric")
    async def get_latest(self, podcast_id: int, platform: Platform) -> MetricRecord | None:
        db_metric = await self.session.scalar(
            _latest_first(
                select(DBMetric).where(
                    DBMetric.podcast_id == podcast_id,
                    DBMetric.platform == Platform(platform).value,
                )
            )
            .limit(1)
            .execution_options(populate_existing=True)
        )
        return metric_to_domain(db_metric) if db_metric else None

    @db_operation("get_latest_metrics_for_podcast")
    async def get_latest_for_podcast(self, podcast_id: int) -> dict[Platform, MetricRecord]:
        result = await self.session.scalars(
            _latest_first(select(DBMetric).where(DBMetric.podcast_id == podcast_id))
            .execution_options(populate_existing=True)
        )
        latest: dict[Platform, MetricRecord] = {}
        for db_metric in result:
            platform = Platform(db_metric.platform)
            if platform not in latest:
                latest[platform] = metric_to_domain(db_metric)
        return latest

    @db_operation("expire_metrics")
    async def expire(
        self,
        podcast_id: int,
        platform: Platform | None = None,
        now: datetime | None = None,
    ) -> int:
        now = now or datetime.now(UTC)
        stmt = update(DBMetric).where(
            DBMetric.podcast_id == podcast_id,
            DBMetric.expires_at > now,
        )
        if platform is not None:
            stmt = stmt.where(DBMetric.platform == Platform(platform).value)
        result = await self.session.execute(
            stmt.values(expires_at=now - timedelta(seconds=1)).execution_options(
                synchronize_session=False
            )
        )
        return result.rowcount
