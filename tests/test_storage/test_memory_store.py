"""Tests for the in-memory note store."""

import asyncio
from datetime import datetime, timezone

import pytest

from notes_collector.ingestion.schemas import Note, NoteStatus, Platform
from notes_collector.storage.base import InsertResult
from notes_collector.subscriptions.schemas import Subscription


def make_note(n: int, user_id: int = 1, **kwargs) -> Note:
    defaults = dict(
        user_id=user_id,
        platform=Platform.RSS,
        source_id=f"rss_{n}",
        title=f"Note {n}",
        content=f"Content {n}",
    )
    defaults.update(kwargs)
    return Note(**defaults)


class TestNotes:
    """Tests for note storage and queries."""

    @pytest.mark.asyncio
    async def test_insert_if_absent(self, store, sample_note):
        assert await store.insert_if_absent(sample_note) == InsertResult.INSERTED
        assert await store.insert_if_absent(sample_note) == InsertResult.DUPLICATE
        assert await store.count_notes(sample_note.user_id) == 1

    @pytest.mark.asyncio
    async def test_concurrent_inserts_of_same_key(self, store, sample_note):
        results = await asyncio.gather(*(store.insert_if_absent(sample_note) for _ in range(10)))

        assert results.count(InsertResult.INSERTED) == 1
        assert results.count(InsertResult.DUPLICATE) == 9

    @pytest.mark.asyncio
    async def test_store_assigns_id_and_capture_time(self, store, sample_note):
        await store.insert_if_absent(sample_note)

        stored = (await store.query_notes(sample_note.user_id))[0]
        assert stored.id is not None
        assert stored.created_at is not None
        assert sample_note.id is None

    @pytest.mark.asyncio
    async def test_query_newest_first_and_paged(self, store):
        for n in range(5):
            await store.insert_if_absent(make_note(n))

        first_page = await store.query_notes(1, page=0, page_size=2)
        second_page = await store.query_notes(1, page=1, page_size=2)
        last_page = await store.query_notes(1, page=2, page_size=2)

        assert [n.source_id for n in first_page] == ["rss_4", "rss_3"]
        assert [n.source_id for n in second_page] == ["rss_2", "rss_1"]
        assert [n.source_id for n in last_page] == ["rss_0"]

    @pytest.mark.asyncio
    async def test_query_filters_by_status_and_user(self, store):
        await store.insert_if_absent(make_note(1))
        await store.insert_if_absent(make_note(2, status=NoteStatus.ARCHIVED))
        await store.insert_if_absent(make_note(3, user_id=2))

        new_notes = await store.query_notes(1, NoteStatus.NEW)

        assert [n.source_id for n in new_notes] == ["rss_1"]
        assert await store.count_notes(1) == 2
        assert await store.count_notes(1, NoteStatus.ARCHIVED) == 1

    @pytest.mark.asyncio
    async def test_search_case_insensitive_and_excludes_deleted(self, store):
        await store.insert_if_absent(make_note(1, title="Learning RUST"))
        await store.insert_if_absent(make_note(2, content="rust in production"))
        await store.insert_if_absent(make_note(3, title="Rust", status=NoteStatus.DELETED))
        await store.insert_if_absent(make_note(4, title="Go"))

        results = await store.search_notes(1, "Rust")

        assert {n.source_id for n in results} == {"rss_1", "rss_2"}
        assert await store.search_notes(1, "   ") == []
        assert len(await store.search_notes(1, "rust", limit=1)) == 1

    @pytest.mark.asyncio
    async def test_note_stats(self, store):
        await store.insert_if_absent(make_note(1, category="technology"))
        await store.insert_if_absent(make_note(2, platform=Platform.REDDIT, category="technology"))
        await store.insert_if_absent(make_note(3, platform=Platform.REDDIT))

        stats = await store.note_stats(1)

        assert stats.total == 3
        assert stats.by_platform == {"rss": 1, "reddit": 2}
        assert stats.by_status == {"new": 3}
        assert stats.by_category == {"technology": 2}


class TestSubscriptions:
    """Tests for subscription storage."""

    @pytest.mark.asyncio
    async def test_upsert_assigns_id(self, store):
        stored = await store.upsert_subscription(
            Subscription(user_id=1, platform=Platform.TWITTER, source_identifier="alice")
        )

        assert stored.id is not None
        assert stored.is_active
        assert stored.source_name == "alice"

    @pytest.mark.asyncio
    async def test_upsert_same_key_reactivates(self, store):
        sub = Subscription(user_id=1, platform=Platform.TWITTER, source_identifier="alice")
        first = await store.upsert_subscription(sub)
        await store.set_subscription_active(first.id, False)

        second = await store.upsert_subscription(sub)

        assert second.id == first.id
        assert second.is_active
        assert len(await store.list_user_subscriptions(1, active_only=False)) == 1

    @pytest.mark.asyncio
    async def test_returned_copies_are_detached(self, store):
        stored = await store.upsert_subscription(
            Subscription(user_id=1, platform=Platform.RSS, source_identifier="https://a.example/feed")
        )
        stored.is_active = False

        active = await store.list_active_subscriptions()
        assert [s.id for s in active] == [stored.id]

    @pytest.mark.asyncio
    async def test_returned_filters_are_detached(self, store):
        await store.upsert_subscription(
            Subscription(
                user_id=1,
                platform=Platform.RSS,
                source_identifier="https://a.example/feed",
                filters=["python"],
            )
        )

        [listed] = await store.list_active_subscriptions()
        listed.filters.append("-rust")

        [again] = await store.list_user_subscriptions(1)
        assert again.filters == ["python"]

    @pytest.mark.asyncio
    async def test_reactivation_clears_fetch_history(self, store):
        sub = Subscription(user_id=1, platform=Platform.REDDIT, source_identifier="python")
        stored = await store.upsert_subscription(sub)
        await store.update_last_fetch(stored.id, datetime(2026, 3, 1, tzinfo=timezone.utc))

        # Re-adding an active subscription keeps its history
        assert (await store.upsert_subscription(sub)).last_fetched_at is not None

        await store.deactivate_subscription(1, Platform.REDDIT, "python")
        readded = await store.upsert_subscription(sub)

        assert readded.id == stored.id
        assert readded.last_fetched_at is None

    @pytest.mark.asyncio
    async def test_deactivate_by_natural_key(self, store):
        await store.upsert_subscription(
            Subscription(user_id=1, platform=Platform.REDDIT, source_identifier="python")
        )

        assert await store.deactivate_subscription(1, Platform.REDDIT, "python") is True
        assert await store.deactivate_subscription(1, Platform.REDDIT, "python") is False
        assert await store.deactivate_subscription(2, Platform.REDDIT, "python") is False
        assert await store.list_active_subscriptions() == []

    @pytest.mark.asyncio
    async def test_update_last_fetch(self, store):
        stored = await store.upsert_subscription(
            Subscription(user_id=1, platform=Platform.REDDIT, source_identifier="python")
        )
        fetched_at = datetime(2026, 3, 1, tzinfo=timezone.utc)

        await store.update_last_fetch(stored.id, fetched_at)

        [sub] = await store.list_user_subscriptions(1)
        assert sub.last_fetched_at == fetched_at

    @pytest.mark.asyncio
    async def test_user_subscriptions_sorted(self, store):
        for platform, identifier in [
            (Platform.TWITTER, "zed"),
            (Platform.REDDIT, "python"),
            (Platform.TWITTER, "alice"),
        ]:
            await store.upsert_subscription(
                Subscription(user_id=1, platform=platform, source_identifier=identifier)
            )

        subs = await store.list_user_subscriptions(1)

        assert [(s.platform.value, s.source_identifier) for s in subs] == [
            ("reddit", "python"),
            ("twitter", "alice"),
            ("twitter", "zed"),
        ]


class TestUserSettings:
    """Tests for lazily created user settings."""

    @pytest.mark.asyncio
    async def test_created_with_defaults(self, store):
        settings = await store.get_or_create_user_settings(7)

        assert settings.user_id == 7
        assert settings.items_per_page == 10
        assert settings.auto_categorize is True
        assert settings.enabled_platforms["telegram"] is True

    @pytest.mark.asyncio
    async def test_mutation_requires_save(self, store):
        settings = await store.get_or_create_user_settings(7)
        settings.keywords.append("python")

        assert (await store.get_or_create_user_settings(7)).keywords == []

        await store.save_user_settings(settings)
        assert (await store.get_or_create_user_settings(7)).keywords == ["python"]
