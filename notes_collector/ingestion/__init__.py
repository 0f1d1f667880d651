"""Data ingestion module - adapters, schemas, filters and the ingestion pipeline."""

from notes_collector.ingestion.schemas import (
    EngagementMetrics,
    Note,
    NoteStatus,
    Platform,
    RawItem,
)

__all__ = [
    "EngagementMetrics",
    "Note",
    "NoteStatus",
    "Platform",
    "RawItem",
]
