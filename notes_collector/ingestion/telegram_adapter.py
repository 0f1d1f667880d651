"""
Telegram public channel adapter.

Reads the channel's web preview at t.me/s/<channel>, which lists the latest
public posts without needing a user session or bot membership. Only public
channels are reachable this way.
"""

import logging
import re
from collections.abc import AsyncIterator
from datetime import datetime
from typing import Any

from bs4 import BeautifulSoup

from notes_collector.ingestion.base_adapter import (
    BaseAdapter,
    FetchError,
    clean_text,
    extract_hashtags,
    first_line,
)
from notes_collector.ingestion.http_client import HTTPClient, RetryConfig
from notes_collector.ingestion.schemas import EngagementMetrics, Platform, RawItem

logger = logging.getLogger(__name__)

TELEGRAM_PREVIEW_BASE = "https://t.me/s"

CHANNEL_PATTERN = re.compile(
    r"^(?:https?://)?(?:t\.me/|telegram\.me/)?(?:s/)?@?([A-Za-z][A-Za-z0-9_]{3,31})/?$"
)

BACKGROUND_URL_PATTERN = re.compile(r"background-image:url\('([^']+)'\)")


def parse_channel(identifier: str) -> str | None:
    """Return the channel username for '@name', 'name' or a t.me link."""
    match = CHANNEL_PATTERN.match(identifier.strip())
    return match.group(1) if match else None


def parse_count(value: str) -> int:
    """Parse Telegram's abbreviated counters ('1.2K', '3M')."""
    value = value.strip().upper()
    multiplier = 1
    if value.endswith("K"):
        multiplier, value = 1_000, value[:-1]
    elif value.endswith("M"):
        multiplier, value = 1_000_000, value[:-1]
    try:
        return int(float(value) * multiplier)
    except ValueError:
        return 0


class TelegramChannelAdapter(BaseAdapter):
    """Adapter for public Telegram channels via the t.me preview page."""

    def __init__(
        self,
        rate_limit: int = 20,
        max_items: int = 50,
        retry_config: RetryConfig | None = None,
        user_agent: str = "NotesCollector/1.0",
        timeout: float = 20.0,
    ):
        super().__init__(rate_limit=rate_limit, max_items=max_items, retry_config=retry_config)
        self._user_agent = user_agent
        self._timeout = timeout

    @property
    def platform(self) -> Platform:
        return Platform.TELEGRAM

    def normalize_identifier(self, identifier: str) -> str:
        return parse_channel(identifier) or identifier.strip().lstrip("@")

    async def _fetch_raw(
        self,
        identifier: str,
        since: datetime,
    ) -> AsyncIterator[dict[str, Any]]:
        async with HTTPClient(
            self._retry_config,
            timeout=self._timeout,
            headers={"User-Agent": self._user_agent},
            follow_redirects=False,
        ) as client:
            await self._rate_limiter.acquire()
            response = await client.get(f"{TELEGRAM_PREVIEW_BASE}/{identifier}")

        # Private or missing channels redirect to the plain t.me landing page
        if response.is_redirect:
            raise FetchError.permanent(f"Telegram channel has no public preview: {identifier}")

        soup = BeautifulSoup(response.text, "html.parser")
        messages = soup.select(".tgme_widget_message[data-post]")
        logger.debug(f"Fetched {len(messages)} posts from t.me/{identifier}")

        # The preview lists oldest first
        for message in reversed(messages):
            yield {"channel": identifier, "message": message}

    def _transform(self, raw: dict[str, Any]) -> RawItem | None:
        message = raw["message"]
        post_ref = message.get("data-post", "")
        if "/" not in post_ref:
            return None
        channel, post_id = post_ref.split("/", 1)

        text_node = message.select_one(".tgme_widget_message_text")
        text = clean_text(text_node.get_text(separator=" ")) if text_node else ""

        media_url = None
        photo = message.select_one(".tgme_widget_message_photo_wrap")
        if photo is not None:
            match = BACKGROUND_URL_PATTERN.search(photo.get("style", ""))
            media_url = match.group(1) if match else None

        if not text and media_url is None:
            return None

        published_at = None
        time_node = message.select_one("time[datetime]")
        if time_node is not None:
            try:
                published_at = datetime.fromisoformat(time_node["datetime"])
            except ValueError:
                published_at = None

        views_node = message.select_one(".tgme_widget_message_views")
        views = parse_count(views_node.get_text()) if views_node else 0

        author_node = message.select_one(".tgme_widget_message_owner_name")
        author = clean_text(author_node.get_text()) if author_node else channel

        return RawItem(
            source_id=f"telegram_{channel}_{post_id}",
            title=first_line(text) if text else f"Post in @{channel}",
            content=text,
            url=f"https://t.me/{channel}/{post_id}",
            author=author,
            published_at=published_at,
            tags=extract_hashtags(text),
            has_media=media_url is not None,
            media_url=media_url,
            engagement=EngagementMetrics(views=views),
            raw={"channel": channel, "post": post_id},
        )
