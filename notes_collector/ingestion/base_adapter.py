"""
Base adapter interface and shared functionality for platform adapters.

Each platform adapter turns one source identifier (a username, subreddit,
feed URL, ...) into a batch of RawItem instances. The base class provides:
- Rate limiting
- All-or-nothing batch semantics with failure classification
- "Fetch since" watermark filtering
- Common text utilities
"""

import asyncio
import hashlib
import html
import logging
import re
import time
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

import httpx
from bs4 import BeautifulSoup

from notes_collector.ingestion.http_client import HTTPClientError, RetryConfig
from notes_collector.ingestion.schemas import Platform, RawItem

logger = logging.getLogger(__name__)

# Status codes meaning the source itself is gone or forbidden
PERMANENT_STATUS_CODES = frozenset({400, 401, 403, 404, 410})


class FailureKind(str, Enum):
    """Whether a failed fetch is worth retrying on the next interval."""

    TRANSIENT = "transient"
    PERMANENT = "permanent"


class FetchError(Exception):
    """
    Raised when an adapter cannot return a batch for a source.

    `transient` failures (timeouts, rate limits, 5xx) never count toward
    deactivating a subscription; `permanent` ones (not found, forbidden,
    missing credentials) do once they repeat.
    """

    def __init__(
        self,
        message: str,
        kind: FailureKind = FailureKind.TRANSIENT,
        status_code: int | None = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.status_code = status_code

    @property
    def is_permanent(self) -> bool:
        return self.kind == FailureKind.PERMANENT

    @classmethod
    def permanent(cls, message: str, status_code: int | None = None) -> "FetchError":
        return cls(message, kind=FailureKind.PERMANENT, status_code=status_code)

    @classmethod
    def transient(cls, message: str, status_code: int | None = None) -> "FetchError":
        return cls(message, kind=FailureKind.TRANSIENT, status_code=status_code)


def classify_exception(exc: Exception) -> FetchError:
    """Map HTTP-layer exceptions onto the adapter failure taxonomy."""
    if isinstance(exc, FetchError):
        return exc

    status_code: int | None = None
    if isinstance(exc, HTTPClientError):
        status_code = exc.status_code
    elif isinstance(exc, httpx.HTTPStatusError):
        status_code = exc.response.status_code

    if status_code in PERMANENT_STATUS_CODES:
        return FetchError.permanent(str(exc), status_code=status_code)
    return FetchError.transient(str(exc) or type(exc).__name__, status_code=status_code)


@dataclass
class RateLimiter:
    """
    Simple token bucket rate limiter.

    Allows `rate` requests per minute with burst capacity.
    """

    rate: int  # requests per minute
    _tokens: float = field(init=False)
    _last_update: float = field(init=False)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    def __post_init__(self) -> None:
        self._tokens = float(self.rate)
        self._last_update = time.monotonic()

    async def acquire(self) -> None:
        """Wait until a token is available, then consume it."""
        async with self._lock:
            now = time.monotonic()
            elapsed = now - self._last_update
            self._last_update = now

            # Refill tokens based on elapsed time
            self._tokens = min(
                float(self.rate),
                self._tokens + elapsed * (self.rate / 60.0),
            )

            if self._tokens < 1:
                wait_time = (1 - self._tokens) * 60.0 / self.rate
                logger.debug(f"Rate limited, waiting {wait_time:.2f}s")
                await asyncio.sleep(wait_time)
                self._tokens = 0
            else:
                self._tokens -= 1


@dataclass
class AdapterStats:
    """Statistics for one adapter call."""

    items_fetched: int = 0
    items_filtered: int = 0
    errors: int = 0
    start_time: float = field(default_factory=time.monotonic)

    @property
    def elapsed_seconds(self) -> float:
        return time.monotonic() - self.start_time


class BaseAdapter(ABC):
    """
    Abstract base class for platform adapters.

    Subclasses must implement:
        - platform: Platform enum value
        - _fetch_raw(): Async generator yielding raw payload dicts
        - _transform(): Convert one payload to RawItem

    The base class handles:
        - Rate limiting (via RateLimiter)
        - Failure classification into FetchError
        - Dropping items published before the watermark
        - Logging
    """

    # Single-item sources (a web page) are always returned; dedup decides.
    respects_since: bool = True

    def __init__(
        self,
        rate_limit: int = 60,
        max_items: int = 50,
        retry_config: RetryConfig | None = None,
    ):
        """
        Initialize adapter with rate limiting.

        Args:
            rate_limit: Maximum requests per minute
            max_items: Cap on items returned per fetch
            retry_config: HTTP retry behaviour for subclasses using HTTPClient
        """
        self._rate_limiter = RateLimiter(rate=rate_limit)
        self._max_items = max_items
        self._retry_config = retry_config or RetryConfig(max_retries=1)
        self._stats = AdapterStats()

    @property
    @abstractmethod
    def platform(self) -> Platform:
        """Return the platform this adapter handles."""
        ...

    @property
    def name(self) -> str:
        """Human-readable adapter name."""
        return f"{self.platform.value}_adapter"

    def normalize_identifier(self, identifier: str) -> str:
        """Strip decorations users commonly type around an identifier."""
        return identifier.strip()

    @abstractmethod
    def _fetch_raw(
        self,
        identifier: str,
        since: datetime,
    ) -> AsyncIterator[dict[str, Any]]:
        """
        Fetch raw payloads for one source.

        Subclasses MUST call `await self._rate_limiter.acquire()` before each
        HTTP request, and should raise (not swallow) transport errors so the
        whole batch fails.
        """
        ...

    @abstractmethod
    def _transform(self, raw: dict[str, Any]) -> RawItem | None:
        """
        Transform one raw payload to a RawItem.

        Returns None for payloads that should be skipped. Should not raise.
        """
        ...

    async def fetch(self, identifier: str, since: datetime) -> list[RawItem]:
        """
        Fetch all items for `identifier` published after `since`.

        This is the contract used by the ingestion pipeline: either the full
        batch is returned or FetchError is raised and nothing is returned.

        Raises:
            FetchError: transient or permanent failure for this source
        """
        stats = AdapterStats()
        identifier = self.normalize_identifier(identifier)
        if since.tzinfo is None:
            since = since.replace(tzinfo=timezone.utc)

        logger.debug(f"Starting fetch for {self.name}: {identifier}")
        items: list[RawItem] = []

        try:
            async for raw in self._fetch_raw(identifier, since):
                try:
                    item = self._transform(raw)
                except Exception as e:
                    stats.errors += 1
                    logger.warning(f"Error transforming item in {self.name}: {e}")
                    continue

                if item is None or (self.respects_since and self._is_before(item, since)):
                    stats.items_filtered += 1
                    continue

                items.append(item)
                stats.items_fetched += 1
                if len(items) >= self._max_items:
                    break

        except Exception as e:
            stats.errors += 1
            error = classify_exception(e)
            logger.warning(
                f"{self.name} fetch failed for {identifier}: "
                f"{error.kind.value} ({error})"
            )
            raise error from e

        logger.info(
            f"{self.name} completed for {identifier}: "
            f"fetched={stats.items_fetched}, "
            f"filtered={stats.items_filtered}, "
            f"errors={stats.errors}, "
            f"elapsed={stats.elapsed_seconds:.2f}s"
        )
        self._stats = stats
        return items

    @staticmethod
    def _is_before(item: RawItem, since: datetime) -> bool:
        if item.published_at is None:
            return False
        published = item.published_at
        if published.tzinfo is None:
            published = published.replace(tzinfo=timezone.utc)
        return published < since

    @property
    def stats(self) -> AdapterStats:
        """Statistics of the most recently completed fetch."""
        return self._stats

    async def health_check(self) -> bool:
        """
        Check if the adapter can reach its platform.

        Override in subclasses for platform-specific health checks.
        """
        return True


# Common preprocessing utilities used across adapters

def clean_text(text: str) -> str:
    """
    Clean text content by removing excessive whitespace and control chars.

    Args:
        text: Raw text content

    Returns:
        Cleaned text
    """
    text = " ".join(text.split())
    text = re.sub(r'[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]', '', text)
    return text.strip()


def html_to_text(html_content: str) -> str:
    """
    Extract clean text from an HTML fragment.

    Args:
        html_content: Raw HTML string

    Returns:
        Plain text with scripts, styles and page chrome removed
    """
    if not html_content:
        return ""

    soup = BeautifulSoup(html_content, "html.parser")
    for element in soup(["script", "style", "nav", "footer", "header"]):
        element.decompose()

    text = html.unescape(soup.get_text(separator=" "))
    return clean_text(text)


def extract_hashtags(text: str) -> list[str]:
    """
    Extract #hashtags from text, in order of first appearance.

    Args:
        text: Text to search

    Returns:
        Hashtags without the '#' prefix
    """
    tags: list[str] = []
    for match in re.findall(r'#(\w+)', text):
        if match not in tags:
            tags.append(match)
    return tags


def stable_hash(value: str) -> str:
    """
    Generate a stable, deterministic hash from a string.

    Uses SHA256 truncated to 16 hex characters. Unlike Python's built-in
    hash(), this is deterministic across process restarts, so IDs derived
    from URLs stay the same between fetches.

    Args:
        value: String to hash (typically a URL or guid)

    Returns:
        16-character hex string
    """
    return hashlib.sha256(value.encode("utf-8")).hexdigest()[:16]


def first_line(text: str, limit: int = 120) -> str:
    """Derive a title from the first line of a text body."""
    line = text.strip().split("\n", 1)[0].strip()
    if len(line) > limit:
        line = line[: limit - 3].rstrip() + "..."
    return line
