"""
In-memory note store for development and tests.

All state lives in dicts owned by one event loop. Every mutating method does
its check-and-set without awaiting in between, which makes each operation
atomic with respect to other coroutines on the same loop.
"""

import logging
from collections import Counter
from dataclasses import replace
from datetime import datetime, timedelta, timezone

from notes_collector.ingestion.schemas import Note, NoteStatus, Platform
from notes_collector.storage.base import InsertResult, NoteStats, NoteStore
from notes_collector.subscriptions.schemas import Subscription, UserSettings

logger = logging.getLogger(__name__)


class InMemoryNoteStore(NoteStore):
    """Dict-backed NoteStore. Not shared across processes."""

    def __init__(self) -> None:
        self._notes: dict[tuple[int, str], Note] = {}
        self._subscriptions: dict[int, Subscription] = {}
        self._subscription_keys: dict[tuple[int, Platform, str], int] = {}
        self._settings: dict[int, UserSettings] = {}
        self._next_note_id = 1
        self._next_subscription_id = 1
        self._last_created_at: datetime | None = None

    def _capture_time(self) -> datetime:
        """Wall-clock time, nudged forward so capture order is strict."""
        now = datetime.now(timezone.utc)
        if self._last_created_at is not None and now <= self._last_created_at:
            now = self._last_created_at + timedelta(microseconds=1)
        self._last_created_at = now
        return now

    # Notes

    async def insert_if_absent(self, note: Note) -> InsertResult:
        if note.key in self._notes:
            logger.debug(f"Duplicate note {note.source_id} for user {note.user_id}")
            return InsertResult.DUPLICATE

        stored = note.model_copy(
            update={"id": self._next_note_id, "created_at": self._capture_time()}
        )
        self._next_note_id += 1
        self._notes[note.key] = stored
        return InsertResult.INSERTED

    def _user_notes(self, user_id: int, status: NoteStatus | None = None) -> list[Note]:
        notes = [
            n for n in self._notes.values()
            if n.user_id == user_id and (status is None or n.status == status)
        ]
        notes.sort(key=lambda n: (n.created_at, n.id), reverse=True)
        return notes

    async def query_notes(
        self,
        user_id: int,
        status: NoteStatus = NoteStatus.NEW,
        page: int = 0,
        page_size: int = 10,
    ) -> list[Note]:
        start = max(page, 0) * page_size
        return self._user_notes(user_id, status)[start:start + page_size]

    async def count_notes(self, user_id: int, status: NoteStatus | None = None) -> int:
        return len(self._user_notes(user_id, status))

    async def search_notes(self, user_id: int, keyword: str, limit: int = 10) -> list[Note]:
        needle = keyword.strip().lower()
        if not needle:
            return []
        matches = [
            n for n in self._user_notes(user_id)
            if n.status != NoteStatus.DELETED and needle in n.text.lower()
        ]
        return matches[:limit]

    async def note_stats(self, user_id: int) -> NoteStats:
        notes = self._user_notes(user_id)
        return NoteStats(
            total=len(notes),
            by_platform=dict(Counter(n.platform.value for n in notes)),
            by_status=dict(Counter(n.status.value for n in notes)),
            by_category=dict(Counter(n.category for n in notes if n.category)),
        )

    # Subscriptions

    @staticmethod
    def _detached(subscription: Subscription) -> Subscription:
        return replace(subscription, filters=list(subscription.filters))

    async def list_active_subscriptions(self) -> list[Subscription]:
        return [self._detached(s) for s in self._subscriptions.values() if s.is_active]

    async def list_user_subscriptions(
        self, user_id: int, active_only: bool = True
    ) -> list[Subscription]:
        subs = [
            self._detached(s) for s in self._subscriptions.values()
            if s.user_id == user_id and (s.is_active or not active_only)
        ]
        subs.sort(key=lambda s: (s.platform.value, s.source_identifier))
        return subs

    async def upsert_subscription(self, subscription: Subscription) -> Subscription:
        existing_id = self._subscription_keys.get(subscription.key)
        if existing_id is not None:
            existing = self._subscriptions[existing_id]
            if not existing.is_active:
                # Re-added sources start over with no fetch history
                existing.last_fetched_at = None
            existing.is_active = True
            existing.source_name = subscription.source_name
            existing.fetch_interval_minutes = subscription.fetch_interval_minutes
            existing.filters = list(subscription.filters)
            return self._detached(existing)

        stored = replace(
            subscription,
            id=self._next_subscription_id,
            is_active=True,
            filters=list(subscription.filters),
            created_at=datetime.now(timezone.utc),
        )
        self._next_subscription_id += 1
        self._subscriptions[stored.id] = stored
        self._subscription_keys[stored.key] = stored.id
        return self._detached(stored)

    async def update_last_fetch(self, subscription_id: int, fetched_at: datetime) -> None:
        sub = self._subscriptions.get(subscription_id)
        if sub is not None:
            sub.last_fetched_at = fetched_at

    async def set_subscription_active(self, subscription_id: int, active: bool) -> None:
        sub = self._subscriptions.get(subscription_id)
        if sub is not None:
            sub.is_active = active

    async def deactivate_subscription(
        self, user_id: int, platform: Platform, source_identifier: str
    ) -> bool:
        sub_id = self._subscription_keys.get((user_id, platform, source_identifier))
        if sub_id is None or not self._subscriptions[sub_id].is_active:
            return False
        self._subscriptions[sub_id].is_active = False
        return True

    # User settings

    async def get_or_create_user_settings(self, user_id: int) -> UserSettings:
        settings = self._settings.get(user_id)
        if settings is None:
            settings = UserSettings(user_id=user_id, updated_at=datetime.now(timezone.utc))
            self._settings[user_id] = settings
        return replace(
            settings,
            enabled_platforms=dict(settings.enabled_platforms),
            keywords=list(settings.keywords),
            blocked_sources=list(settings.blocked_sources),
        )

    async def save_user_settings(self, settings: UserSettings) -> UserSettings:
        stored = replace(
            settings,
            enabled_platforms=dict(settings.enabled_platforms),
            keywords=list(settings.keywords),
            blocked_sources=list(settings.blocked_sources),
            updated_at=datetime.now(timezone.utc),
        )
        self._settings[settings.user_id] = stored
        return replace(stored)
