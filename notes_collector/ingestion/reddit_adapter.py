"""
Reddit adapter for subreddit subscriptions.

Reads the public JSON listing of a subreddit's newest posts. Handles:
- r/ prefix and URL stripping in identifiers
- Stickied/removed post filtering
- Reddit markdown cleanup
"""

import logging
import re
from collections.abc import AsyncIterator
from datetime import datetime, timezone
from typing import Any

from notes_collector.ingestion.base_adapter import BaseAdapter, clean_text, extract_hashtags
from notes_collector.ingestion.http_client import HTTPClient, RetryConfig
from notes_collector.ingestion.schemas import EngagementMetrics, Platform, RawItem

logger = logging.getLogger(__name__)

REDDIT_BASE = "https://www.reddit.com"

SUBREDDIT_PATTERN = re.compile(r"^(?:https?://(?:www\.|old\.)?reddit\.com)?/?(?:r/)?([A-Za-z0-9_]{2,21})/?$")


def parse_subreddit(identifier: str) -> str | None:
    """Return the bare subreddit name for 'python', 'r/python' or a subreddit URL."""
    match = SUBREDDIT_PATTERN.match(identifier.strip())
    return match.group(1) if match else None


class RedditAdapter(BaseAdapter):
    """
    Reddit adapter fetching the newest posts of one subreddit.

    Rate Limits:
        - ~60 requests per minute for unauthenticated JSON listings

    Content Handling:
        - Posts: title + selftext
        - Link posts keep the outbound URL as media when it points at an image
    """

    def __init__(
        self,
        rate_limit: int = 60,
        max_items: int = 50,
        retry_config: RetryConfig | None = None,
        user_agent: str = "notes-collector/1.0",
        timeout: float = 20.0,
    ):
        super().__init__(rate_limit=rate_limit, max_items=max_items, retry_config=retry_config)
        self._user_agent = user_agent
        self._timeout = timeout

    @property
    def platform(self) -> Platform:
        return Platform.REDDIT

    def normalize_identifier(self, identifier: str) -> str:
        return parse_subreddit(identifier) or identifier.strip()

    async def _fetch_raw(
        self,
        identifier: str,
        since: datetime,
    ) -> AsyncIterator[dict[str, Any]]:
        async with HTTPClient(
            self._retry_config,
            timeout=self._timeout,
            headers={"User-Agent": self._user_agent},
        ) as client:
            await self._rate_limiter.acquire()
            response = await client.get(
                f"{REDDIT_BASE}/r/{identifier}/new.json",
                params={"limit": self._max_items, "raw_json": 1},
            )
            data = response.json()

        posts = data.get("data", {}).get("children", [])
        logger.debug(f"Fetched {len(posts)} posts from r/{identifier}")

        for post in posts:
            yield {
                "subreddit": identifier,
                "post": post.get("data", {}),
            }

    def _transform(self, raw: dict[str, Any]) -> RawItem | None:
        post = raw["post"]

        if post.get("stickied") or post.get("removed_by_category"):
            return None

        post_id = post.get("id")
        if not post_id:
            return None

        title = clean_text(post.get("title", ""))
        body = clean_text(self._clean_reddit_markdown(post.get("selftext", "")))

        permalink = post.get("permalink", "")
        url = f"{REDDIT_BASE}{permalink}" if permalink else post.get("url")

        media_url = None
        if post.get("post_hint") == "image" or re.search(r"\.(jpe?g|png|gif|webp)$", post.get("url", "")):
            media_url = post.get("url")

        created = post.get("created_utc")
        published_at = datetime.fromtimestamp(created, tz=timezone.utc) if created else None

        return RawItem(
            source_id=f"reddit_{post_id}",
            title=title,
            content=body or title,
            url=url,
            author=post.get("author"),
            published_at=published_at,
            tags=[t for t in [post.get("link_flair_text")] if t] + extract_hashtags(body),
            has_media=media_url is not None,
            media_url=media_url,
            engagement=EngagementMetrics(
                likes=max(post.get("ups", 0), 0),
                comments=post.get("num_comments", 0),
            ),
            raw={
                "subreddit": raw["subreddit"],
                "flair": post.get("link_flair_text"),
                "domain": post.get("domain"),
            },
        )

    def _clean_reddit_markdown(self, text: str) -> str:
        """Strip Reddit markdown formatting, keeping link text."""
        text = re.sub(r'^>+\s*', '', text, flags=re.MULTILINE)
        text = re.sub(r'\*{1,2}([^*]+)\*{1,2}', r'\1', text)
        text = re.sub(r'\[([^\]]+)\]\([^)]+\)', r'\1', text)
        text = re.sub(r'```[^`]*```', '', text)
        text = re.sub(r'~~([^~]+)~~', r'\1', text)
        text = re.sub(r'^#{1,6}\s+', '', text, flags=re.MULTILINE)
        return text
