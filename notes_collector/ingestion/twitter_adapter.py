"""
Twitter API v2 adapter for account subscriptions.

Resolves a username to a user ID, then reads that user's timeline with
start_time set to the subscription's watermark. Handles:
- @-prefix and profile URL stripping
- Public metrics mapping
- Hashtag extraction from entities
"""

import logging
import re
from collections.abc import AsyncIterator
from datetime import datetime, timezone
from typing import Any

from notes_collector.config.settings import get_settings
from notes_collector.ingestion.base_adapter import BaseAdapter, FetchError, clean_text, first_line
from notes_collector.ingestion.http_client import HTTPClient, RetryConfig
from notes_collector.ingestion.schemas import EngagementMetrics, Platform, RawItem

logger = logging.getLogger(__name__)

TWITTER_API_BASE = "https://api.twitter.com/2"

USERNAME_PATTERN = re.compile(
    r"^(?:https?://(?:www\.)?(?:twitter|x)\.com/)?@?([A-Za-z0-9_]{1,15})/?$"
)


def parse_username(identifier: str) -> str | None:
    """Return the bare handle for '@alice', 'alice' or a profile URL."""
    match = USERNAME_PATTERN.match(identifier.strip())
    return match.group(1) if match else None


class TwitterAdapter(BaseAdapter):
    """
    Twitter API v2 adapter fetching one account's recent tweets.

    Rate Limits:
        - User timeline: 1500 requests / 15 min (app auth, Basic tier)
        - max_results 5-100 per request
    """

    def __init__(
        self,
        bearer_token: str | None = None,
        rate_limit: int = 30,
        max_items: int = 50,
        retry_config: RetryConfig | None = None,
        timeout: float = 20.0,
    ):
        super().__init__(rate_limit=rate_limit, max_items=max_items, retry_config=retry_config)

        settings = get_settings()
        self._bearer_token = bearer_token or settings.twitter_bearer_token
        self._timeout = timeout
        self._user_ids: dict[str, str] = {}

        if not self._bearer_token:
            logger.warning(
                "Twitter bearer token not configured. "
                "Adapter will fail every fetch permanently."
            )

    @property
    def platform(self) -> Platform:
        return Platform.TWITTER

    def normalize_identifier(self, identifier: str) -> str:
        return parse_username(identifier) or identifier.strip().lstrip("@")

    async def _resolve_user_id(self, client: HTTPClient, username: str) -> str:
        if username in self._user_ids:
            return self._user_ids[username]

        await self._rate_limiter.acquire()
        response = await client.get(f"{TWITTER_API_BASE}/users/by/username/{username}")
        user = response.json().get("data")
        if not user or not user.get("id"):
            raise FetchError.permanent(f"Twitter user not found: @{username}")

        self._user_ids[username] = user["id"]
        return user["id"]

    async def _fetch_raw(
        self,
        identifier: str,
        since: datetime,
    ) -> AsyncIterator[dict[str, Any]]:
        if not self._bearer_token:
            raise FetchError.permanent("Twitter bearer token not configured")

        headers = {
            "Authorization": f"Bearer {self._bearer_token}",
            "User-Agent": "NotesCollector/1.0",
        }

        async with HTTPClient(self._retry_config, timeout=self._timeout, headers=headers) as client:
            user_id = await self._resolve_user_id(client, identifier)

            await self._rate_limiter.acquire()
            response = await client.get(
                f"{TWITTER_API_BASE}/users/{user_id}/tweets",
                params={
                    "max_results": max(5, min(self._max_items, 100)),
                    "start_time": since.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
                    "tweet.fields": "created_at,public_metrics,entities,attachments",
                    "expansions": "attachments.media_keys",
                    "media.fields": "url,preview_image_url",
                },
            )
            data = response.json()

        media = {
            m["media_key"]: m
            for m in data.get("includes", {}).get("media", [])
            if "media_key" in m
        }

        tweets = data.get("data", [])
        logger.debug(f"Fetched {len(tweets)} tweets for @{identifier}")

        for tweet in tweets:
            yield {
                "username": identifier,
                "tweet": tweet,
                "media": media,
            }

    def _transform(self, raw: dict[str, Any]) -> RawItem | None:
        tweet = raw["tweet"]
        username = raw["username"]

        tweet_id = tweet.get("id")
        text = clean_text(tweet.get("text", ""))
        if not tweet_id or not text:
            return None

        created_at = tweet.get("created_at")
        published_at = (
            datetime.fromisoformat(created_at.replace("Z", "+00:00")) if created_at else None
        )

        metrics = tweet.get("public_metrics", {})
        entities = tweet.get("entities", {})
        hashtags = [h.get("tag", "") for h in entities.get("hashtags", []) if h.get("tag")]

        media_keys = tweet.get("attachments", {}).get("media_keys", [])
        media_url = None
        for key in media_keys:
            item = raw["media"].get(key, {})
            media_url = item.get("url") or item.get("preview_image_url")
            if media_url:
                break

        return RawItem(
            source_id=f"twitter_{tweet_id}",
            title=f"@{username}: {first_line(text, 80)}",
            content=text,
            url=f"https://twitter.com/{username}/status/{tweet_id}",
            author=username,
            published_at=published_at,
            tags=hashtags,
            has_media=bool(media_keys) or bool(entities.get("urls")),
            media_url=media_url,
            engagement=EngagementMetrics(
                likes=metrics.get("like_count", 0),
                comments=metrics.get("reply_count", 0),
                views=metrics.get("impression_count", 0),
            ),
            raw={
                "retweets": metrics.get("retweet_count", 0),
                "lang": tweet.get("lang"),
            },
        )

    async def health_check(self) -> bool:
        return self._bearer_token is not None
