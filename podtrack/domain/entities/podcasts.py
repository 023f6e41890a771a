"""Podcast tracking entities.

Podcasts and their social links belong to the CRUD layer; the enrichment
core only reads links and flips the tracking status.
"""

from enum import StrEnum

from attrs import define, field

from podtrack.domain.entities.metrics import Platform, ProfileReference


class TrackingStatus(StrEnum):
    """Podcast-level tracking state driven by job outcomes."""

    NOT_TRACKED = "not_tracked"
    QUEUED = "queued"
    PROCESSING = "processing"
    TRACKED = "tracked"
    FAILED = "failed"


@define(frozen=True, slots=True)
class Podcast:
    """Tracked podcast."""

    name: str
    tracking_status: TrackingStatus = field(
        default=TrackingStatus.NOT_TRACKED, converter=TrackingStatus
    )
    is_tracked: bool = False
    id: int | None = None


@define(frozen=True, slots=True)
class SocialLink:
    """Stored profile of a podcast on one platform."""

    podcast_id: int
    platform: Platform = field(converter=Platform)
    profile_url: str
    profile_handle: str = ""
    id: int | None = None

    def to_profile(self) -> ProfileReference:
        return ProfileReference(
            platform=self.platform, url=self.profile_url, handle=self.profile_handle
        )
