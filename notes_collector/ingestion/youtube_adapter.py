"""
YouTube channel adapter.

Uses the public per-channel Atom feed, which needs no API key and lists the
latest uploads with view and rating counts in media:group.
"""

import re
from typing import Any

from notes_collector.ingestion.base_adapter import FetchError
from notes_collector.ingestion.rss_adapter import RSSAdapter
from notes_collector.ingestion.schemas import EngagementMetrics, Platform

YOUTUBE_FEED_URL = "https://www.youtube.com/feeds/videos.xml"

CHANNEL_ID_PATTERN = re.compile(r"(UC[\w-]{22})")


def parse_channel_id(identifier: str) -> str | None:
    """Pull a channel ID out of a bare ID or any /channel/ URL."""
    match = CHANNEL_ID_PATTERN.search(identifier)
    return match.group(1) if match else None


class YouTubeAdapter(RSSAdapter):
    """Adapter for YouTube channels, identified by channel ID or channel URL."""

    @property
    def platform(self) -> Platform:
        return Platform.YOUTUBE

    def normalize_identifier(self, identifier: str) -> str:
        return parse_channel_id(identifier) or identifier.strip()

    def _get_feed_url(self, identifier: str) -> str:
        channel_id = parse_channel_id(identifier)
        if channel_id is None:
            raise FetchError.permanent(f"Not a YouTube channel ID: {identifier}")
        return f"{YOUTUBE_FEED_URL}?channel_id={channel_id}"

    def _engagement(self, entry: dict[str, Any]) -> EngagementMetrics:
        stats = entry.get("media_statistics") or {}
        rating = entry.get("media_starrating") or {}
        try:
            views = int(stats.get("views", 0))
            likes = int(rating.get("count", 0))
        except (TypeError, ValueError):
            return EngagementMetrics()
        return EngagementMetrics(likes=likes, views=views)
