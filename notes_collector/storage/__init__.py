"""Storage layer for notes, subscriptions and user settings."""

from notes_collector.storage.base import (
    InsertResult,
    NoteStats,
    NoteStore,
    StoreUnavailableError,
)
from notes_collector.storage.database import Database
from notes_collector.storage.memory_store import InMemoryNoteStore
from notes_collector.storage.repository import PostgresNoteStore

__all__ = [
    "Database",
    "InMemoryNoteStore",
    "InsertResult",
    "NoteStats",
    "NoteStore",
    "PostgresNoteStore",
    "StoreUnavailableError",
]
