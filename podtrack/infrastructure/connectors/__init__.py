"""Upstream data sources outside the paid provider chain."""

from podtrack.infrastructure.connectors.base_connector import HttpSource
from podtrack.infrastructure.connectors.public_pages import (
    ApplePodcastsScraper,
    SpotifyShowScraper,
)
from podtrack.infrastructure.connectors.youtube import YouTubeDataClient

__all__ = [
    "ApplePodcastsScraper",
    "HttpSource",
    "SpotifyShowScraper",
    "YouTubeDataClient",
]
