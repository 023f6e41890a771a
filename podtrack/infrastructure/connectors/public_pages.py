"""Public podcast directory page scrapers.

Spotify and Apple Podcasts expose no follower counts through a public API,
so their show pages are read directly with a browser user agent. Neither
scraper needs a credential and both report a cost of zero.

What each page yields:
- Spotify: episode count, plus name/description/publisher from JSON-LD
- Apple Podcasts: ratings count (used as a popularity proxy for followers),
  average rating scaled to a percentage as engagement rate, episode count
"""

import contextlib
import html
import json
import re
from typing import Any

from podtrack.config import get_logger, settings
from podtrack.domain.entities import NormalizedMetrics, Platform
from podtrack.infrastructure.connectors.base_connector import HttpSource

logger = get_logger(__name__).bind(service="public_pages")

_BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
}

_OG_TITLE = re.compile(r'<meta property="og:title" content="([^"]+)"')
_JSON_LD = re.compile(r'<script type="application/ld\+json">(.*?)</script>', re.DOTALL)


def _count(text: str) -> int:
    return int(text.replace(",", ""))


class PublicPageScraper(HttpSource):
    """Fetches a public HTML page and extracts metrics from it."""

    PLATFORM: Platform

    def __init__(self, settings_store=None, **kwargs: Any) -> None:
        kwargs.setdefault("request_timeout", settings.providers.scrape_timeout)
        super().__init__(settings_store, **kwargs)

    def normalize_url(self, url: str) -> str:
        return url

    async def fetch_page(self, url: str) -> str:
        response = await self.request(
            "GET", url, platform=self.PLATFORM, headers=_BROWSER_HEADERS
        )
        self.raise_for_status(response, self.PLATFORM)
        return response.text

    def parse(self, url: str, page: str) -> NormalizedMetrics:
        raise NotImplementedError

    async def fetch_metrics(self, profile_url: str, handle: str = "") -> NormalizedMetrics:
        url = self.normalize_url(profile_url)
        page = await self.fetch_page(url)
        metrics = self.parse(url, page)
        logger.debug(
            f"Scraped {self.PLATFORM} page",
            followers=metrics.followers,
            posts=metrics.posts,
        )
        return metrics.with_provider(self.NAME, 0)


class SpotifyShowScraper(PublicPageScraper):
    """Spotify show page scraper. Spotify hides follower counts."""

    NAME = "spotify_public"
    PLATFORM = Platform.SPOTIFY

    _SHOW_ID = re.compile(r"show/([a-zA-Z0-9]+)")
    _EPISODES = re.compile(r"(\d+)\s*episodes?", re.IGNORECASE)

    def normalize_url(self, url: str) -> str:
        if url.startswith("spotify:show:"):
            return f"https://open.spotify.com/show/{url.removeprefix('spotify:show:')}"
        if url.startswith("http://"):
            return "https://" + url.removeprefix("http://")
        return url

    def parse(self, url: str, page: str) -> NormalizedMetrics:
        raw: dict[str, Any] = {}
        name = description = ""
        posts = 0

        if match := self._SHOW_ID.search(url):
            raw["show_id"] = match.group(1)

        if match := _JSON_LD.search(page):
            json_ld: Any = None
            with contextlib.suppress(ValueError):
                json_ld = json.loads(match.group(1))
            if isinstance(json_ld, dict) and json_ld.get("@type") == "PodcastSeries":
                name = json_ld.get("name", "")
                description = json_ld.get("description", "")
                raw["publisher"] = (json_ld.get("publisher") or {}).get("name", "")
                if isinstance(json_ld.get("episode"), list):
                    posts = len(json_ld["episode"])

        if match := self._EPISODES.search(page):
            posts = max(posts, int(match.group(1)))

        if match := _OG_TITLE.search(page):
            raw["title"] = html.unescape(match.group(1))
            name = name or raw["title"]

        raw["note"] = "Spotify does not publicly expose follower counts"
        return NormalizedMetrics(posts=posts, name=name, bio=description, raw_data=raw)


class ApplePodcastsScraper(PublicPageScraper):
    """Apple Podcasts page scraper using ratings as a popularity proxy."""

    NAME = "apple_public"
    PLATFORM = Platform.APPLE_PODCASTS

    _PODCAST_ID = re.compile(r"id(\d+)")
    _RATING_PATTERNS = (
        re.compile(r"(\d+(?:,\d+)*)\s+Ratings?", re.IGNORECASE),
        re.compile(r"(\d+(?:,\d+)*)\s+reviews?", re.IGNORECASE),
        re.compile(r'"ratingCount"[:\s]*(\d+)', re.IGNORECASE),
        re.compile(r"data-test-rating-count[^>]*>(\d+(?:,\d+)*)", re.IGNORECASE),
    )
    _AVERAGE_PATTERNS = (
        re.compile(r"(\d+(?:\.\d+)?)\s*out of\s*5", re.IGNORECASE),
        re.compile(r'"ratingValue"[:\s]*"?(\d+(?:\.\d+)?)"?', re.IGNORECASE),
    )
    _EPISODE_PATTERNS = (
        re.compile(r"(\d+(?:,\d+)*)\s+episodes?", re.IGNORECASE),
        re.compile(r'"numberOfEpisodes"[:\s]*(\d+)', re.IGNORECASE),
    )
    _AUTHOR = re.compile(r'"author"[:\s]*\{[^}]*"name"[:\s]*"([^"]+)"', re.IGNORECASE)
    _GENRE = re.compile(r'"genre"[:\s]*"([^"]+)"', re.IGNORECASE)

    def parse(self, url: str, page: str) -> NormalizedMetrics:
        raw: dict[str, Any] = {}
        name = ""
        engagement_rate = 0.0
        posts = 0

        if match := self._PODCAST_ID.search(url):
            raw["podcast_id"] = match.group(1)

        # Several places report the count; the largest is the total
        ratings = 0
        for pattern in self._RATING_PATTERNS:
            if match := pattern.search(page):
                ratings = max(ratings, _count(match.group(1)))
        raw["ratings_count"] = ratings

        for pattern in self._AVERAGE_PATTERNS:
            if match := pattern.search(page):
                average = float(match.group(1))
                raw["average_rating"] = average
                engagement_rate = round(average * 20, 2)
                break

        for pattern in self._EPISODE_PATTERNS:
            if match := pattern.search(page):
                posts = _count(match.group(1))
                break

        if match := _OG_TITLE.search(page):
            name = html.unescape(match.group(1))
        if match := self._AUTHOR.search(page):
            raw["publisher"] = match.group(1)
        if match := self._GENRE.search(page):
            raw["category"] = match.group(1)

        raw["note"] = "Apple Podcasts does not expose subscriber counts; ratings used as proxy"
        return NormalizedMetrics(
            followers=ratings,
            posts=posts,
            engagement_rate=engagement_rate,
            name=name,
            raw_data=raw,
        )
