"""Tests for the base adapter contract, mock adapters and the registry."""

import asyncio
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from notes_collector.ingestion.base_adapter import (
    FailureKind,
    FetchError,
    classify_exception,
    extract_hashtags,
    first_line,
    html_to_text,
    stable_hash,
)
from notes_collector.ingestion.http_client import HTTPClientError, RateLimitError
from notes_collector.ingestion.mock_adapter import MockAdapter, create_mock_adapters
from notes_collector.ingestion.registry import build_adapters
from notes_collector.ingestion.schemas import Platform, RawItem
from notes_collector.ingestion.twitter_adapter import TwitterAdapter
from notes_collector.ingestion.vk_adapter import VKAdapter
from notes_collector.ingestion.web_adapter import WebAdapter


class TestBaseAdapterFetch:
    """Tests for BaseAdapter.fetch batch semantics."""

    @pytest.mark.asyncio
    async def test_items_before_watermark_dropped(self, make_adapter, make_item, now):
        old = make_item(1, published_at=now - timedelta(hours=2))
        fresh = make_item(2, published_at=now - timedelta(minutes=5))
        undated = RawItem(source_id="rss_undated", title="No date")
        adapter = make_adapter(items=[old, fresh, undated])

        items = await adapter.fetch("feed", since=now - timedelta(hours=1))

        assert [i.source_id for i in items] == [fresh.source_id, "rss_undated"]
        assert adapter.stats.items_filtered == 1

    @pytest.mark.asyncio
    async def test_naive_since_treated_as_utc(self, make_adapter, make_item, now):
        item = make_item(1, published_at=now)
        adapter = make_adapter(items=[item])

        items = await adapter.fetch("feed", since=datetime(2026, 3, 1, 11, 0))

        assert len(items) == 1

    @pytest.mark.asyncio
    async def test_error_fails_whole_batch(self, make_adapter, make_item):
        adapter = make_adapter(
            items=[make_item(1)],
            error=HTTPClientError("boom", status_code=503),
        )

        with pytest.raises(FetchError) as exc_info:
            await adapter.fetch("feed", since=datetime.now(timezone.utc))

        assert exc_info.value.kind == FailureKind.TRANSIENT
        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio
    async def test_fetch_error_kind_preserved(self, make_adapter):
        adapter = make_adapter(error=FetchError.permanent("gone"))

        with pytest.raises(FetchError) as exc_info:
            await adapter.fetch("feed", since=datetime.now(timezone.utc))

        assert exc_info.value.is_permanent

    @pytest.mark.asyncio
    async def test_max_items_cap(self, make_adapter, make_item, now):
        adapter = make_adapter(items=[make_item(i) for i in range(10)])
        adapter._max_items = 3

        items = await adapter.fetch("feed", since=now - timedelta(days=1))

        assert len(items) == 3

    @pytest.mark.asyncio
    async def test_concurrent_fetches_keep_separate_stats(self, make_adapter, make_item):
        adapter = make_adapter(items=[make_item(1), make_item(2)], delay=0.01)
        since = datetime.now(timezone.utc) - timedelta(days=1)

        first, second = await asyncio.gather(
            adapter.fetch("feed-a", since=since),
            adapter.fetch("feed-b", since=since),
        )

        assert len(first) == len(second) == 2
        assert adapter.stats.items_fetched == 2


class TestClassifyException:
    """Tests for classify_exception."""

    @pytest.mark.parametrize("status", [400, 401, 403, 404, 410])
    def test_gone_or_forbidden_is_permanent(self, status):
        error = classify_exception(HTTPClientError("x", status_code=status))
        assert error.kind == FailureKind.PERMANENT
        assert error.status_code == status

    @pytest.mark.parametrize("status", [429, 500, 503, None])
    def test_other_statuses_are_transient(self, status):
        error = classify_exception(HTTPClientError("x", status_code=status))
        assert error.kind == FailureKind.TRANSIENT

    def test_rate_limit_is_transient(self):
        error = classify_exception(RateLimitError("slow down", status_code=429))
        assert error.kind == FailureKind.TRANSIENT

    def test_timeout_is_transient(self):
        error = classify_exception(httpx.ReadTimeout("slow"))
        assert error.kind == FailureKind.TRANSIENT
        assert str(error)

    def test_fetch_error_passthrough(self):
        original = FetchError.permanent("no such user")
        assert classify_exception(original) is original


class TestTextUtilities:
    """Tests for shared text helpers."""

    def test_html_to_text_strips_scripts(self):
        html = "<div><script>alert(1)</script><p>Hello&nbsp;<b>world</b></p></div>"
        assert html_to_text(html) == "Hello world"

    def test_extract_hashtags_keeps_first_appearance_order(self):
        assert extract_hashtags("#b then #a and #b again") == ["b", "a"]

    def test_stable_hash_deterministic(self):
        assert stable_hash("https://example.com/x") == stable_hash("https://example.com/x")
        assert len(stable_hash("anything")) == 16

    def test_first_line_truncates(self):
        text = "A" * 200 + "\nsecond line"
        line = first_line(text, limit=50)
        assert len(line) == 50
        assert line.endswith("...")


class TestMockAdapter:
    """Tests for MockAdapter."""

    @pytest.mark.asyncio
    async def test_fetch_returns_items(self):
        adapter = MockAdapter(platform=Platform.TWITTER, items_per_fetch=5, seed=1)

        items = await adapter.fetch("alice", since=datetime.now(timezone.utc) - timedelta(hours=1))

        assert len(items) == 5
        assert all(i.source_id.startswith("twitter_mock_alice_") for i in items)

    @pytest.mark.asyncio
    async def test_repeated_fetches_produce_new_ids(self):
        adapter = MockAdapter(items_per_fetch=3, seed=1)
        since = datetime.now(timezone.utc) - timedelta(hours=1)

        first = await adapter.fetch("feed", since)
        second = await adapter.fetch("feed", since)

        assert not {i.source_id for i in first} & {i.source_id for i in second}

    @pytest.mark.asyncio
    async def test_health_check(self):
        assert await MockAdapter().health_check() is True

    def test_create_mock_adapters_covers_all_platforms(self):
        adapters = create_mock_adapters(items_per_fetch=2)

        assert set(adapters) == set(Platform)
        assert all(a.platform == p for p, a in adapters.items())


class TestRegistry:
    """Tests for build_adapters."""

    def test_real_adapters_for_every_platform(self, test_settings):
        adapters = build_adapters(settings=test_settings)

        assert set(adapters) == set(Platform)
        assert isinstance(adapters[Platform.TWITTER], TwitterAdapter)
        assert isinstance(adapters[Platform.VK], VKAdapter)
        assert isinstance(adapters[Platform.WEB], WebAdapter)

    def test_mock_adapters(self, test_settings):
        adapters = build_adapters(settings=test_settings, use_mock=True)

        assert all(isinstance(a, MockAdapter) for a in adapters.values())

    @pytest.mark.asyncio
    async def test_unconfigured_twitter_fails_permanently(self, test_settings):
        adapters = build_adapters(settings=test_settings)

        with pytest.raises(FetchError) as exc_info:
            await adapters[Platform.TWITTER].fetch("alice", datetime.now(timezone.utc))

        assert exc_info.value.is_permanent
