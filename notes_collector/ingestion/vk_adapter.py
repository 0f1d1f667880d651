"""
VK adapter for community and user wall subscriptions.

Uses the wall.get method with a service token. Identifiers may be a screen
name ("durov"), a community URL ("https://vk.com/apiclub") or a numeric owner
id ("-1", "id1").
"""

import logging
import re
from collections.abc import AsyncIterator
from datetime import datetime, timezone
from typing import Any

from notes_collector.config.settings import get_settings
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

VK_API_BASE = "https://api.vk.com/method"

SOURCE_PATTERN = re.compile(r"^(?:https?://(?:m\.)?vk\.com/)?([A-Za-z0-9_.\-]{2,64})/?$")

# VK API error codes meaning the wall is gone, private or the token is bad
PERMANENT_VK_ERRORS = {5, 15, 18, 30, 100, 113}


def parse_vk_source(identifier: str) -> str | None:
    """Return the screen name or owner id referenced by an identifier."""
    match = SOURCE_PATTERN.match(identifier.strip())
    return match.group(1) if match else None


class VKAdapter(BaseAdapter):
    """VK wall adapter returning the newest posts of one user or community."""

    def __init__(
        self,
        service_token: str | None = None,
        api_version: str | None = None,
        rate_limit: int = 60,
        max_items: int = 50,
        retry_config: RetryConfig | None = None,
        timeout: float = 20.0,
    ):
        super().__init__(rate_limit=rate_limit, max_items=max_items, retry_config=retry_config)

        settings = get_settings()
        self._token = service_token or settings.vk_service_token
        self._api_version = api_version or settings.vk_api_version
        self._timeout = timeout

    @property
    def platform(self) -> Platform:
        return Platform.VK

    def normalize_identifier(self, identifier: str) -> str:
        return parse_vk_source(identifier) or identifier.strip()

    def _owner_params(self, identifier: str) -> dict[str, str]:
        if re.fullmatch(r"-?\d+", identifier):
            return {"owner_id": identifier}
        match = re.fullmatch(r"(id|club|public)(\d+)", identifier)
        if match:
            prefix = "" if match.group(1) == "id" else "-"
            return {"owner_id": f"{prefix}{match.group(2)}"}
        return {"domain": identifier}

    async def _fetch_raw(
        self,
        identifier: str,
        since: datetime,
    ) -> AsyncIterator[dict[str, Any]]:
        if not self._token:
            raise FetchError.permanent("VK service token not configured")

        params = {
            **self._owner_params(identifier),
            "count": min(self._max_items, 100),
            "access_token": self._token,
            "v": self._api_version,
        }

        async with HTTPClient(self._retry_config, timeout=self._timeout) as client:
            await self._rate_limiter.acquire()
            response = await client.get(f"{VK_API_BASE}/wall.get", params=params)
            data = response.json()

        if "error" in data:
            error = data["error"]
            code = error.get("error_code")
            message = f"VK API error {code}: {error.get('error_msg', '')}"
            if code in PERMANENT_VK_ERRORS:
                raise FetchError.permanent(message)
            raise FetchError.transient(message)

        posts = data.get("response", {}).get("items", [])
        logger.debug(f"Fetched {len(posts)} VK posts for {identifier}")

        for post in posts:
            yield {"source": identifier, "post": post}

    def _transform(self, raw: dict[str, Any]) -> RawItem | None:
        post = raw["post"]
        if post.get("is_pinned") or post.get("marked_as_ads"):
            return None

        owner_id = post.get("owner_id")
        post_id = post.get("id")
        text = clean_text(post.get("text", ""))
        if owner_id is None or post_id is None:
            return None

        media_url = None
        for attachment in post.get("attachments", []):
            if attachment.get("type") == "photo":
                sizes = attachment.get("photo", {}).get("sizes", [])
                if sizes:
                    media_url = sizes[-1].get("url")
                    break

        if not text and media_url is None:
            return None

        date = post.get("date")
        return RawItem(
            source_id=f"vk_{owner_id}_{post_id}",
            title=first_line(text) if text else f"VK post from {raw['source']}",
            content=text,
            url=f"https://vk.com/wall{owner_id}_{post_id}",
            author=raw["source"],
            published_at=datetime.fromtimestamp(date, tz=timezone.utc) if date else None,
            tags=extract_hashtags(text),
            has_media=bool(post.get("attachments")),
            media_url=media_url,
            engagement=EngagementMetrics(
                likes=post.get("likes", {}).get("count", 0),
                comments=post.get("comments", {}).get("count", 0),
                views=post.get("views", {}).get("count", 0),
            ),
            raw={"reposts": post.get("reposts", {}).get("count", 0)},
        )

    async def health_check(self) -> bool:
        return self._token is not None
