"""
Note store interface.

The store is the single source of truth for notes, subscriptions and user
settings. Every operation is atomic on its key; `insert_if_absent` is the
only deduplication primitive the ingestion pipeline relies on.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from notes_collector.ingestion.schemas import Note, NoteStatus, Platform
from notes_collector.subscriptions.schemas import Subscription, UserSettings


class StoreUnavailableError(Exception):
    """Raised when the backing store cannot be reached."""


class InsertResult(str, Enum):
    """Outcome of insert_if_absent."""

    INSERTED = "inserted"
    DUPLICATE = "duplicate"


@dataclass
class NoteStats:
    """Aggregate counts over one user's notes."""

    total: int = 0
    by_platform: dict[str, int] = field(default_factory=dict)
    by_status: dict[str, int] = field(default_factory=dict)
    by_category: dict[str, int] = field(default_factory=dict)


class NoteStore(ABC):
    """Abstract persistence interface shared by all store backends."""

    # Notes

    @abstractmethod
    async def insert_if_absent(self, note: Note) -> InsertResult:
        """Store the note unless (user_id, source_id) already exists."""
        ...

    @abstractmethod
    async def query_notes(
        self,
        user_id: int,
        status: NoteStatus = NoteStatus.NEW,
        page: int = 0,
        page_size: int = 10,
    ) -> list[Note]:
        """Return one page of the user's notes, newest capture first."""
        ...

    @abstractmethod
    async def count_notes(self, user_id: int, status: NoteStatus | None = None) -> int:
        ...

    @abstractmethod
    async def search_notes(self, user_id: int, keyword: str, limit: int = 10) -> list[Note]:
        """Case-insensitive substring search over title and content."""
        ...

    @abstractmethod
    async def note_stats(self, user_id: int) -> NoteStats:
        ...

    # Subscriptions

    @abstractmethod
    async def list_active_subscriptions(self) -> list[Subscription]:
        ...

    @abstractmethod
    async def list_user_subscriptions(
        self, user_id: int, active_only: bool = True
    ) -> list[Subscription]:
        ...

    @abstractmethod
    async def upsert_subscription(self, subscription: Subscription) -> Subscription:
        """
        Insert or reactivate a subscription keyed by
        (user_id, platform, source_identifier) and return the stored row.
        """
        ...

    @abstractmethod
    async def update_last_fetch(self, subscription_id: int, fetched_at: datetime) -> None:
        ...

    @abstractmethod
    async def set_subscription_active(self, subscription_id: int, active: bool) -> None:
        ...

    @abstractmethod
    async def deactivate_subscription(
        self, user_id: int, platform: Platform, source_identifier: str
    ) -> bool:
        """Deactivate by natural key. Returns True if an active row changed."""
        ...

    # User settings

    @abstractmethod
    async def get_or_create_user_settings(self, user_id: int) -> UserSettings:
        ...

    @abstractmethod
    async def save_user_settings(self, settings: UserSettings) -> UserSettings:
        ...

    # Lifecycle

    async def create_tables(self) -> None:
        """Ensure backing tables exist (no-op for non-SQL stores)."""

    async def health_check(self) -> bool:
        return True

    async def close(self) -> None:
        """Release backing resources."""
