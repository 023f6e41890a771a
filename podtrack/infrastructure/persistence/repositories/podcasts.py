"""Podcast and social link repository."""

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from podtrack.domain.entities import Platform, Podcast, SocialLink, TrackingStatus
from podtrack.infrastructure.persistence.database.db_models import DBPodcast, DBSocialLink
from podtrack.infrastructure.persistence.repositories.repo_decorator import db_operation


def podcast_to_domain(db_podcast: DBPodcast) -> Podcast:
    return Podcast(
        id=db_podcast.id,
        name=db_podcast.name,
        tracking_status=db_podcast.tracking_status,
        is_tracked=db_podcast.is_tracked,
    )


def link_to_domain(db_link: DBSocialLink) -> SocialLink:
    return SocialLink(
        id=db_link.id,
        podcast_id=db_link.podcast_id,
        platform=db_link.platform,
        profile_url=db_link.profile_url,
        profile_handle=db_link.profile_handle or "",
    )


class SQLPodcastRepository:
    """Podcasts, their social links and tracking status."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    @db_operation("create_podcast")
    async def create_podcast(self, name: str) -> Podcast:
        db_podcast = DBPodcast(name=name, tracking_status=TrackingStatus.NOT_TRACKED)
        self.session.add(db_podcast)
        await self.session.flush()
        return podcast_to_domain(db_podcast)

    @db_operation("get_podcast")
    async def get_podcast(self, podcast_id: int) -> Podcast | None:
        db_podcast = await self.session.get(DBPodcast, podcast_id)
        return podcast_to_domain(db_podcast) if db_podcast else None

    @db_operation("list_podcasts")
    async def list_podcasts(self) -> list[Podcast]:
        result = await self.session.scalars(select(DBPodcast).order_by(DBPodcast.id))
        return [podcast_to_domain(db_podcast) for db_podcast in result]

    @db_operation("get_social_links")
    async def get_social_links(self, podcast_id: int) -> list[SocialLink]:
        result = await self.session.scalars(
            select(DBSocialLink)
            .where(DBSocialLink.podcast_id == podcast_id)
            .order_by(DBSocialLink.id)
        )
        return [link_to_domain(db_link) for db_link in result]

    @db_operation("add_social_link")
    async def add_social_link(self, link: SocialLink) -> SocialLink:
        """Insert the link, replacing any existing link for the same platform."""
        existing = await self.session.scalar(
            select(DBSocialLink).where(
                DBSocialLink.podcast_id == link.podcast_id,
                DBSocialLink.platform == Platform(link.platform).value,
            )
        )
        if existing is None:
            existing = DBSocialLink(
                podcast_id=link.podcast_id,
                platform=Platform(link.platform).value,
            )
            self.session.add(existing)
        existing.profile_url = link.profile_url
        existing.profile_handle = link.profile_handle
        await self.session.flush()
        return link_to_domain(existing)

    @db_operation("set_tracking_status")
    async def set_tracking_status(
        self,
        podcast_id: int,
        status: TrackingStatus,
        is_tracked: bool | None = None,
    ) -> None:
        values: dict = {"tracking_status": TrackingStatus(status).value}
        if is_tracked is not None:
            values["is_tracked"] = is_tracked
        await self.session.execute(
            update(DBPodcast).where(DBPodcast.id == podcast_id).values(**values)
        )

    @db_operation("get_tracked_podcast_ids")
    async def get_tracked_podcast_ids(self, limit: int | None = None) -> list[int]:
        stmt = select(DBPodcast.id).where(DBPodcast.is_tracked.is_(True)).order_by(DBPodcast.id)
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await self.session.scalars(stmt)
        return list(result)
