"""
Single web page adapter.

Scrapes one page per subscription and returns it as one item. Title and
description come from OpenGraph tags, the body from the first content
container that looks like an article, and author/date from common meta tags.
"""

import logging
from collections.abc import AsyncIterator
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any
from urllib.parse import urlparse

from bs4 import BeautifulSoup

from notes_collector.ingestion.base_adapter import (
    BaseAdapter,
    FetchError,
    clean_text,
    html_to_text,
    stable_hash,
)
from notes_collector.ingestion.http_client import HTTPClient, RetryConfig
from notes_collector.ingestion.schemas import Platform, RawItem

logger = logging.getLogger(__name__)

# Tried in order; the first match with enough text wins
CONTENT_SELECTORS = [
    "article",
    "div[class*='content']",
    "div[class*='article']",
    "div[class*='post']",
    "main",
    "div[role='main']",
]

MIN_CONTENT_LENGTH = 200

DATE_SELECTORS = [
    "meta[property='article:published_time']",
    "meta[name='publish_date']",
    "time",
    "span[class*='date']",
]

AUTHOR_SELECTORS = [
    "meta[name='author']",
    "a[rel*='author']",
    "span[class*='author']",
]

DEFAULT_TITLE = "Untitled"


def web_source_id(url: str) -> str:
    """Derive a stable item ID from the page host and path."""
    parsed = urlparse(url)
    return f"web_{parsed.netloc.lower()}_{stable_hash(parsed.path or '/')}"


def parse_page_date(value: str) -> datetime | None:
    """Parse ISO-8601 or RFC 2822 dates found in page markup."""
    value = value.strip()
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        try:
            parsed = parsedate_to_datetime(value)
        except (TypeError, ValueError):
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class WebAdapter(BaseAdapter):
    """Adapter that turns one web page URL into one note."""

    respects_since = False

    def __init__(
        self,
        rate_limit: int = 20,
        retry_config: RetryConfig | None = None,
        user_agent: str = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36",
        timeout: float = 20.0,
    ):
        super().__init__(rate_limit=rate_limit, max_items=1, retry_config=retry_config)
        self._user_agent = user_agent
        self._timeout = timeout

    @property
    def platform(self) -> Platform:
        return Platform.WEB

    async def _fetch_raw(
        self,
        identifier: str,
        since: datetime,
    ) -> AsyncIterator[dict[str, Any]]:
        if urlparse(identifier).scheme not in ("http", "https"):
            raise FetchError.permanent(f"Not a web page URL: {identifier}")

        async with HTTPClient(
            self._retry_config,
            timeout=self._timeout,
            headers={"User-Agent": self._user_agent},
            follow_redirects=True,
        ) as client:
            await self._rate_limiter.acquire()
            response = await client.get(identifier)

        yield {"url": identifier, "html": response.text}

    def _transform(self, raw: dict[str, Any]) -> RawItem | None:
        soup = BeautifulSoup(raw["html"], "html.parser")

        title = self._meta(soup, "meta[property='og:title']")
        if not title and soup.title and soup.title.string:
            title = clean_text(soup.title.string)

        description = self._meta(soup, "meta[property='og:description']") or self._meta(
            soup, "meta[name='description']"
        )

        content = self._extract_main_content(soup)

        return RawItem(
            source_id=web_source_id(raw["url"]),
            title=title or DEFAULT_TITLE,
            content=content or description or "",
            url=raw["url"],
            author=self._extract_author(soup),
            published_at=self._extract_date(soup),
            has_media=soup.find("img") is not None,
            media_url=self._meta(soup, "meta[property='og:image']"),
            raw={"description": description},
        )

    @staticmethod
    def _meta(soup: BeautifulSoup, selector: str) -> str | None:
        node = soup.select_one(selector)
        if node is None or not node.get("content"):
            return None
        return clean_text(node["content"])

    def _extract_main_content(self, soup: BeautifulSoup) -> str:
        for selector in CONTENT_SELECTORS:
            node = soup.select_one(selector)
            if node is not None:
                text = html_to_text(str(node))
                if len(text) > MIN_CONTENT_LENGTH:
                    return text

        body = soup.body or soup
        return html_to_text(str(body))

    def _extract_date(self, soup: BeautifulSoup) -> datetime | None:
        for selector in DATE_SELECTORS:
            node = soup.select_one(selector)
            if node is None:
                continue
            value = node.get("content") or node.get("datetime") or node.get_text()
            parsed = parse_page_date(value)
            if parsed is not None:
                return parsed
        return None

    def _extract_author(self, soup: BeautifulSoup) -> str | None:
        for selector in AUTHOR_SELECTORS:
            node = soup.select_one(selector)
            if node is not None:
                author = clean_text(node.get("content") or node.get_text())
                if author:
                    return author
        return None
