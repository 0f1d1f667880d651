"""Tests for the ingestion pipeline."""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from notes_collector.ingestion.base_adapter import FailureKind, FetchError
from notes_collector.ingestion.pipeline import IngestionPipeline
from notes_collector.ingestion.schemas import NoteStatus, Platform
from notes_collector.storage.base import StoreUnavailableError
from notes_collector.subscriptions.schemas import Subscription

SINCE = datetime.now(timezone.utc) - timedelta(days=1)


def rss_subscription(user_id: int = 42, filters: list[str] | None = None) -> Subscription:
    return Subscription(
        id=user_id,
        user_id=user_id,
        platform=Platform.RSS,
        source_identifier="https://example.com/feed.xml",
        filters=filters or [],
    )


class TestIngestionPipeline:
    """Tests for IngestionPipeline.run."""

    @pytest.mark.asyncio
    async def test_inserts_new_items(self, store, make_adapter, make_item):
        adapter = make_adapter(items=[make_item(1), make_item(2), make_item(3)])
        pipeline = IngestionPipeline({Platform.RSS: adapter}, store)

        outcome = await pipeline.run(rss_subscription(), SINCE)

        assert outcome.ok
        assert outcome.inserted == 3
        assert outcome.duplicates == 0
        assert await store.count_notes(42) == 3
        assert adapter.calls == [("https://example.com/feed.xml", SINCE)]

    @pytest.mark.asyncio
    async def test_rerun_is_idempotent(self, store, make_adapter, make_item):
        adapter = make_adapter(items=[make_item(1), make_item(2)])
        pipeline = IngestionPipeline({Platform.RSS: adapter}, store)
        sub = rss_subscription()

        await pipeline.run(sub, SINCE)
        second = await pipeline.run(sub, SINCE)

        assert second.inserted == 0
        assert second.duplicates == 2
        assert await store.count_notes(42) == 2

    @pytest.mark.asyncio
    async def test_concurrent_runs_store_each_item_once(self, store, make_adapter, make_item):
        items = [make_item(i) for i in range(5)]
        adapter = make_adapter(items=items, delay=0.01)
        pipeline = IngestionPipeline({Platform.RSS: adapter}, store)
        sub = rss_subscription()

        outcomes = await asyncio.gather(*(pipeline.run(sub, SINCE) for _ in range(4)))

        assert sum(o.inserted for o in outcomes) == 5
        assert sum(o.duplicates for o in outcomes) == 15
        assert await store.count_notes(42) == 5

    @pytest.mark.asyncio
    async def test_same_item_for_two_users(self, store, make_adapter, make_item):
        adapter = make_adapter(items=[make_item(1)])
        pipeline = IngestionPipeline({Platform.RSS: adapter}, store)

        first = await pipeline.run(rss_subscription(user_id=1), SINCE)
        second = await pipeline.run(rss_subscription(user_id=2), SINCE)

        assert first.inserted == 1
        assert second.inserted == 1

    @pytest.mark.asyncio
    async def test_subscription_filters_applied(self, store, make_adapter, make_item):
        adapter = make_adapter(
            items=[
                make_item(1, title="Python 3.13 is out"),
                make_item(2, title="Python giveaway", content="Sponsored post"),
                make_item(3, title="Golang weekly"),
            ]
        )
        pipeline = IngestionPipeline({Platform.RSS: adapter}, store)

        outcome = await pipeline.run(rss_subscription(filters=["python", "-sponsored"]), SINCE)

        assert outcome.inserted == 1
        assert outcome.filtered == 2
        notes = await store.query_notes(42)
        assert [n.title for n in notes] == ["Python 3.13 is out"]

    @pytest.mark.asyncio
    async def test_blocked_authors_skipped(self, store, make_adapter, make_item):
        settings = await store.get_or_create_user_settings(42)
        settings.blocked_sources = ["@Spammer"]
        await store.save_user_settings(settings)

        adapter = make_adapter(items=[make_item(1, author="spammer"), make_item(2, author="friend")])
        pipeline = IngestionPipeline({Platform.RSS: adapter}, store)

        outcome = await pipeline.run(rss_subscription(), SINCE)

        assert outcome.inserted == 1
        assert outcome.filtered == 1

    @pytest.mark.asyncio
    async def test_auto_categorize_and_keyword_tags(self, store, make_adapter, make_item):
        settings = await store.get_or_create_user_settings(42)
        settings.keywords = ["Interpreter"]
        await store.save_user_settings(settings)

        adapter = make_adapter(
            items=[make_item(1, title="Python release notes", content="A faster interpreter")]
        )
        pipeline = IngestionPipeline({Platform.RSS: adapter}, store)

        await pipeline.run(rss_subscription(), SINCE)

        note = (await store.query_notes(42))[0]
        assert note.category == "technology"
        assert "python" in note.tags
        assert "interpreter" in note.tags
        assert note.status == NoteStatus.NEW

    @pytest.mark.asyncio
    async def test_categorization_disabled(self, store, make_adapter, make_item):
        settings = await store.get_or_create_user_settings(42)
        settings.auto_categorize = False
        await store.save_user_settings(settings)

        adapter = make_adapter(items=[make_item(1, title="Python release notes")])
        pipeline = IngestionPipeline({Platform.RSS: adapter}, store)

        await pipeline.run(rss_subscription(), SINCE)

        note = (await store.query_notes(42))[0]
        assert note.category is None

    @pytest.mark.asyncio
    async def test_adapter_failure_stores_nothing(self, store, make_adapter, make_item):
        adapter = make_adapter(items=[make_item(1)], error=FetchError.permanent("gone", 404))
        pipeline = IngestionPipeline({Platform.RSS: adapter}, store)

        outcome = await pipeline.run(rss_subscription(), SINCE)

        assert not outcome.ok
        assert outcome.is_permanent_failure
        assert outcome.failure.status_code == 404
        assert await store.count_notes(42) == 0

    @pytest.mark.asyncio
    async def test_unexpected_adapter_error_is_transient(self, store, make_adapter):
        adapter = make_adapter(error=KeyError("data"))
        pipeline = IngestionPipeline({Platform.RSS: adapter}, store)

        outcome = await pipeline.run(rss_subscription(), SINCE)

        assert outcome.failure.kind == FailureKind.TRANSIENT

    @pytest.mark.asyncio
    async def test_timeout_is_transient(self, store, make_adapter, make_item):
        adapter = make_adapter(items=[make_item(1)], delay=1.0)
        pipeline = IngestionPipeline({Platform.RSS: adapter}, store, fetch_timeout=0.05)

        outcome = await pipeline.run(rss_subscription(), SINCE)

        assert outcome.failure.kind == FailureKind.TRANSIENT
        assert "timed out" in str(outcome.failure)
        assert await store.count_notes(42) == 0

    @pytest.mark.asyncio
    async def test_missing_adapter_is_permanent(self, store):
        pipeline = IngestionPipeline({}, store)

        outcome = await pipeline.run(rss_subscription(), SINCE)

        assert outcome.is_permanent_failure

    @pytest.mark.asyncio
    async def test_store_outage_mid_batch_is_transient(self, store, make_adapter, make_item):
        adapter = make_adapter(items=[make_item(1), make_item(2)])
        original = type(store).insert_if_absent
        calls = 0

        async def flaky_insert(note):
            nonlocal calls
            calls += 1
            if calls > 1:
                raise StoreUnavailableError("connection reset")
            return await original(store, note)

        store.insert_if_absent = flaky_insert
        pipeline = IngestionPipeline({Platform.RSS: adapter}, store)

        outcome = await pipeline.run(rss_subscription(), SINCE)

        assert outcome.failure.kind == FailureKind.TRANSIENT
        assert outcome.inserted == 1

    @pytest.mark.asyncio
    async def test_settings_unavailable_is_transient(self, make_adapter, make_item):
        broken = AsyncMock()
        broken.get_or_create_user_settings.side_effect = StoreUnavailableError("down")
        adapter = make_adapter(items=[make_item(1)])
        pipeline = IngestionPipeline({Platform.RSS: adapter}, broken)

        outcome = await pipeline.run(rss_subscription(), SINCE)

        assert outcome.failure.kind == FailureKind.TRANSIENT
        assert adapter.calls == []

    @pytest.mark.asyncio
    async def test_disabled_platform_skipped(self, store, make_adapter, make_item):
        settings = await store.get_or_create_user_settings(42)
        settings.enabled_platforms["rss"] = False
        await store.save_user_settings(settings)

        adapter = make_adapter(items=[make_item(1)])
        pipeline = IngestionPipeline({Platform.RSS: adapter}, store)

        outcome = await pipeline.run(rss_subscription(), SINCE)

        assert outcome.skipped
        assert outcome.ok
        assert adapter.calls == []
        assert await store.count_notes(42) == 0
