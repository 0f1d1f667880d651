"""
Mock adapter for testing and development.

Generates synthetic posts that mimic real platform data. Useful for:
- Running the bot and scheduler without API credentials
- Exercising filters and categorization
- Development and debugging
"""

import random
from collections.abc import AsyncIterator
from datetime import datetime, timedelta, timezone
from typing import Any

from notes_collector.ingestion.base_adapter import BaseAdapter, extract_hashtags
from notes_collector.ingestion.schemas import EngagementMetrics, Platform, RawItem

# Sample content templates for realistic mock data
TEMPLATES = [
    "New release of {topic} is out, with faster startup and a cleaner API. #release",
    "Thread: ten things I learned shipping {topic} to production this year.",
    "Why {topic} is quietly becoming the default choice for small teams.",
    "Weekly digest: the best {topic} articles, talks and repos. #digest",
    "Benchmark results for {topic} look surprisingly good on older hardware.",
    "Tutorial: getting started with {topic} in under an hour. #tutorial",
    "Opinion: {topic} is overhyped, here is what actually matters.",
]

TOPICS = [
    "python",
    "postgres",
    "rust",
    "kubernetes",
    "machine learning",
    "home automation",
    "photography",
    "travel hacking",
]

SAMPLE_AUTHORS = [
    "daily_dev",
    "tech_notes",
    "open_source_fan",
    "weekend_hacker",
    "data_digest",
]


class MockAdapter(BaseAdapter):
    """
    Mock adapter that generates synthetic posts for any platform.

    Items get IDs derived from the identifier and a per-identifier counter,
    so repeated fetches produce new items while a fixed `seed` keeps output
    reproducible in tests.
    """

    def __init__(
        self,
        platform: Platform = Platform.RSS,
        items_per_fetch: int = 5,
        rate_limit: int = 1000,
        seed: int | None = None,
    ):
        """
        Initialize mock adapter.

        Args:
            platform: Which platform to mimic
            items_per_fetch: Number of items to generate per fetch
            rate_limit: Rate limit (not really needed for mock, but for consistency)
            seed: Optional random seed for reproducible output
        """
        super().__init__(rate_limit=rate_limit, max_items=max(items_per_fetch, 1))
        self._platform = platform
        self._items_per_fetch = items_per_fetch
        self._counters: dict[str, int] = {}
        self._random = random.Random(seed)

    @property
    def platform(self) -> Platform:
        return self._platform

    async def _fetch_raw(
        self,
        identifier: str,
        since: datetime,
    ) -> AsyncIterator[dict[str, Any]]:
        """Generate mock raw data."""
        now = datetime.now(timezone.utc)
        window = max((now - since).total_seconds(), 60.0)

        for _ in range(self._items_per_fetch):
            counter = self._counters.get(identifier, 0) + 1
            self._counters[identifier] = counter

            topic = self._random.choice(TOPICS)
            content = self._random.choice(TEMPLATES).format(topic=topic)

            yield {
                "id": f"{identifier}_{counter}",
                "source": identifier,
                "content": content,
                "author": self._random.choice(SAMPLE_AUTHORS),
                "timestamp": now - timedelta(seconds=self._random.uniform(0, window)),
                "engagement": {
                    "likes": self._random.randint(0, 500),
                    "comments": self._random.randint(0, 50),
                    "views": self._random.randint(0, 10000),
                },
            }

    def _transform(self, raw: dict[str, Any]) -> RawItem | None:
        """Transform mock raw data to RawItem."""
        content = raw["content"]
        return RawItem(
            source_id=f"{self._platform.value}_mock_{raw['id']}",
            title=content.split(".")[0][:120],
            content=content,
            url=f"https://example.com/{self._platform.value}/{raw['id']}",
            author=raw["author"],
            published_at=raw["timestamp"],
            tags=extract_hashtags(content),
            engagement=EngagementMetrics(**raw["engagement"]),
            raw={"source": raw["source"], "mock": True},
        )

    async def health_check(self) -> bool:
        """Mock adapter is always healthy."""
        return True


def create_mock_adapters(
    items_per_fetch: int = 5,
    seed: int | None = None,
) -> dict[Platform, BaseAdapter]:
    """
    Create mock adapters for all platforms.

    Args:
        items_per_fetch: Number of items each adapter generates
        seed: Optional random seed shared by all adapters

    Returns:
        Dictionary mapping Platform to MockAdapter
    """
    return {
        platform: MockAdapter(platform=platform, items_per_fetch=items_per_fetch, seed=seed)
        for platform in Platform
    }
