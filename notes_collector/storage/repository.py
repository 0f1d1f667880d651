"""
PostgreSQL note store.

Implements NoteStore on top of asyncpg. Deduplication relies on the unique
(user_id, source_id) constraint: inserts use ON CONFLICT DO NOTHING, so two
concurrent runs delivering the same item store it exactly once.

Tables:
    - notes: captured items, one row per (user_id, source_id)
    - subscriptions: one row per (user_id, platform, source_identifier)
    - user_settings: one row per user
"""

import json
import logging
from datetime import datetime
from typing import Any

from notes_collector.ingestion.schemas import Note, NoteStatus, Platform
from notes_collector.storage.base import InsertResult, NoteStats, NoteStore
from notes_collector.storage.database import Database
from notes_collector.subscriptions.schemas import (
    DEFAULT_ENABLED_PLATFORMS,
    Subscription,
    UserSettings,
)

logger = logging.getLogger(__name__)

_CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS notes (
    id             BIGSERIAL PRIMARY KEY,
    user_id        BIGINT NOT NULL,
    platform       TEXT NOT NULL,
    source_id      TEXT NOT NULL,
    title          VARCHAR(500) NOT NULL DEFAULT '',
    content        VARCHAR(5000) NOT NULL DEFAULT '',
    url            VARCHAR(500),
    author         VARCHAR(200),
    published_at   TIMESTAMPTZ,
    created_at     TIMESTAMPTZ NOT NULL DEFAULT clock_timestamp(),
    status         TEXT NOT NULL DEFAULT 'new',
    category       VARCHAR(50),
    tags           TEXT[] NOT NULL DEFAULT '{}',
    has_media      BOOLEAN NOT NULL DEFAULT FALSE,
    media_url      VARCHAR(500),
    likes_count    INTEGER NOT NULL DEFAULT 0 CHECK (likes_count >= 0),
    comments_count INTEGER NOT NULL DEFAULT 0 CHECK (comments_count >= 0),
    views_count    INTEGER NOT NULL DEFAULT 0 CHECK (views_count >= 0),
    raw_data       VARCHAR(1000),
    UNIQUE (user_id, source_id)
);

CREATE INDEX IF NOT EXISTS idx_notes_user_status_created
    ON notes(user_id, status, created_at DESC);
CREATE INDEX IF NOT EXISTS idx_notes_user_platform
    ON notes(user_id, platform);

CREATE TABLE IF NOT EXISTS subscriptions (
    id                     BIGSERIAL PRIMARY KEY,
    user_id                BIGINT NOT NULL,
    platform               TEXT NOT NULL,
    source_identifier      TEXT NOT NULL,
    source_name            TEXT NOT NULL DEFAULT '',
    is_active              BOOLEAN NOT NULL DEFAULT TRUE,
    fetch_interval_minutes INTEGER NOT NULL DEFAULT 60 CHECK (fetch_interval_minutes > 0),
    last_fetched_at        TIMESTAMPTZ,
    filters                TEXT[] NOT NULL DEFAULT '{}',
    created_at             TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    UNIQUE (user_id, platform, source_identifier)
);

CREATE INDEX IF NOT EXISTS idx_subscriptions_active
    ON subscriptions(platform, source_identifier) WHERE is_active = TRUE;

CREATE TABLE IF NOT EXISTS user_settings (
    user_id            BIGINT PRIMARY KEY,
    time_zone          TEXT NOT NULL DEFAULT 'UTC',
    items_per_page     INTEGER NOT NULL DEFAULT 10,
    auto_categorize    BOOLEAN NOT NULL DEFAULT TRUE,
    send_notifications BOOLEAN NOT NULL DEFAULT TRUE,
    enabled_platforms  JSONB NOT NULL DEFAULT '{}',
    keywords           TEXT[] NOT NULL DEFAULT '{}',
    blocked_sources    TEXT[] NOT NULL DEFAULT '{}',
    language           TEXT NOT NULL DEFAULT 'ru',
    updated_at         TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
"""

_INSERT_NOTE_SQL = """
INSERT INTO notes (
    user_id, platform, source_id, title, content, url, author, published_at,
    status, category, tags, has_media, media_url,
    likes_count, comments_count, views_count, raw_data
)
VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14, $15, $16, $17)
ON CONFLICT (user_id, source_id) DO NOTHING
RETURNING id
"""

_UPSERT_SUBSCRIPTION_SQL = """
INSERT INTO subscriptions (
    user_id, platform, source_identifier, source_name, fetch_interval_minutes, filters
)
VALUES ($1, $2, $3, $4, $5, $6)
ON CONFLICT (user_id, platform, source_identifier) DO UPDATE SET
    source_name = EXCLUDED.source_name,
    fetch_interval_minutes = EXCLUDED.fetch_interval_minutes,
    filters = EXCLUDED.filters,
    last_fetched_at = CASE WHEN subscriptions.is_active THEN subscriptions.last_fetched_at END,
    is_active = TRUE
RETURNING *
"""

_GET_OR_CREATE_SETTINGS_SQL = """
WITH inserted AS (
    INSERT INTO user_settings (user_id, enabled_platforms)
    VALUES ($1, $2)
    ON CONFLICT (user_id) DO NOTHING
    RETURNING *
)
SELECT * FROM inserted
UNION ALL
SELECT * FROM user_settings WHERE user_id = $1
LIMIT 1
"""

_SAVE_SETTINGS_SQL = """
INSERT INTO user_settings (
    user_id, time_zone, items_per_page, auto_categorize, send_notifications,
    enabled_platforms, keywords, blocked_sources, language
)
VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
ON CONFLICT (user_id) DO UPDATE SET
    time_zone = EXCLUDED.time_zone,
    items_per_page = EXCLUDED.items_per_page,
    auto_categorize = EXCLUDED.auto_categorize,
    send_notifications = EXCLUDED.send_notifications,
    enabled_platforms = EXCLUDED.enabled_platforms,
    keywords = EXCLUDED.keywords,
    blocked_sources = EXCLUDED.blocked_sources,
    language = EXCLUDED.language,
    updated_at = NOW()
RETURNING *
"""


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _load_json(value: Any) -> dict:
    if value is None:
        return {}
    if isinstance(value, str):
        return json.loads(value)
    return dict(value)


def _record_to_note(record) -> Note:
    """Convert an asyncpg Record to a Note."""
    return Note(
        id=record["id"],
        user_id=record["user_id"],
        platform=Platform(record["platform"]),
        source_id=record["source_id"],
        title=record["title"],
        content=record["content"],
        url=record["url"],
        author=record["author"],
        published_at=record["published_at"],
        created_at=record["created_at"],
        status=NoteStatus(record["status"]),
        category=record["category"],
        tags=list(record["tags"] or []),
        has_media=record["has_media"],
        media_url=record["media_url"],
        likes_count=record["likes_count"],
        comments_count=record["comments_count"],
        views_count=record["views_count"],
        raw_data=record["raw_data"],
    )


def _record_to_subscription(record) -> Subscription:
    """Convert an asyncpg Record to a Subscription."""
    return Subscription(
        id=record["id"],
        user_id=record["user_id"],
        platform=Platform(record["platform"]),
        source_identifier=record["source_identifier"],
        source_name=record["source_name"],
        is_active=record["is_active"],
        fetch_interval_minutes=record["fetch_interval_minutes"],
        last_fetched_at=record["last_fetched_at"],
        filters=list(record["filters"] or []),
        created_at=record["created_at"],
    )


def _record_to_settings(record) -> UserSettings:
    """Convert an asyncpg Record to UserSettings."""
    enabled = dict(DEFAULT_ENABLED_PLATFORMS)
    enabled.update(_load_json(record["enabled_platforms"]))
    return UserSettings(
        user_id=record["user_id"],
        time_zone=record["time_zone"],
        items_per_page=record["items_per_page"],
        auto_categorize=record["auto_categorize"],
        send_notifications=record["send_notifications"],
        enabled_platforms=enabled,
        keywords=list(record["keywords"] or []),
        blocked_sources=list(record["blocked_sources"] or []),
        language=record["language"],
        updated_at=record["updated_at"],
    )


class PostgresNoteStore(NoteStore):
    """NoteStore backed by PostgreSQL via asyncpg."""

    def __init__(self, database: Database):
        self._db = database

    async def create_tables(self) -> None:
        """Create tables and indexes (idempotent)."""
        await self._db.execute(_CREATE_TABLES_SQL)
        logger.info("Note store tables ensured")

    async def health_check(self) -> bool:
        return await self._db.health_check()

    async def close(self) -> None:
        await self._db.close()

    # Notes

    async def insert_if_absent(self, note: Note) -> InsertResult:
        note_id = await self._db.fetchval(
            _INSERT_NOTE_SQL,
            note.user_id,
            note.platform.value,
            note.source_id,
            note.title,
            note.content,
            note.url,
            note.author,
            note.published_at,
            note.status.value,
            note.category,
            note.tags,
            note.has_media,
            note.media_url,
            note.likes_count,
            note.comments_count,
            note.views_count,
            note.raw_data,
        )
        if note_id is None:
            logger.debug(f"Duplicate note {note.source_id} for user {note.user_id}")
            return InsertResult.DUPLICATE
        return InsertResult.INSERTED

    async def query_notes(
        self,
        user_id: int,
        status: NoteStatus = NoteStatus.NEW,
        page: int = 0,
        page_size: int = 10,
    ) -> list[Note]:
        rows = await self._db.fetch(
            """
            SELECT * FROM notes
            WHERE user_id = $1 AND status = $2
            ORDER BY created_at DESC, id DESC
            LIMIT $3 OFFSET $4
            """,
            user_id, status.value, page_size, max(page, 0) * page_size,
        )
        return [_record_to_note(r) for r in rows]

    async def count_notes(self, user_id: int, status: NoteStatus | None = None) -> int:
        if status is None:
            total = await self._db.fetchval(
                "SELECT COUNT(*) FROM notes WHERE user_id = $1", user_id
            )
        else:
            total = await self._db.fetchval(
                "SELECT COUNT(*) FROM notes WHERE user_id = $1 AND status = $2",
                user_id, status.value,
            )
        return total or 0

    async def search_notes(self, user_id: int, keyword: str, limit: int = 10) -> list[Note]:
        keyword = keyword.strip()
        if not keyword:
            return []
        rows = await self._db.fetch(
            """
            SELECT * FROM notes
            WHERE user_id = $1
              AND status <> 'deleted'
              AND (title ILIKE $2 ESCAPE '\\' OR content ILIKE $2 ESCAPE '\\')
            ORDER BY created_at DESC, id DESC
            LIMIT $3
            """,
            user_id, f"%{_escape_like(keyword)}%", limit,
        )
        return [_record_to_note(r) for r in rows]

    async def note_stats(self, user_id: int) -> NoteStats:
        rows = await self._db.fetch(
            """
            SELECT platform, status, category, COUNT(*) AS n
            FROM notes WHERE user_id = $1
            GROUP BY platform, status, category
            """,
            user_id,
        )
        stats = NoteStats()
        for row in rows:
            n = row["n"]
            stats.total += n
            stats.by_platform[row["platform"]] = stats.by_platform.get(row["platform"], 0) + n
            stats.by_status[row["status"]] = stats.by_status.get(row["status"], 0) + n
            if row["category"]:
                stats.by_category[row["category"]] = stats.by_category.get(row["category"], 0) + n
        return stats

    # Subscriptions

    async def list_active_subscriptions(self) -> list[Subscription]:
        rows = await self._db.fetch(
            "SELECT * FROM subscriptions WHERE is_active = TRUE ORDER BY platform, source_identifier"
        )
        return [_record_to_subscription(r) for r in rows]

    async def list_user_subscriptions(
        self, user_id: int, active_only: bool = True
    ) -> list[Subscription]:
        sql = "SELECT * FROM subscriptions WHERE user_id = $1"
        if active_only:
            sql += " AND is_active = TRUE"
        sql += " ORDER BY platform, source_identifier"
        rows = await self._db.fetch(sql, user_id)
        return [_record_to_subscription(r) for r in rows]

    async def upsert_subscription(self, subscription: Subscription) -> Subscription:
        row = await self._db.fetchrow(
            _UPSERT_SUBSCRIPTION_SQL,
            subscription.user_id,
            subscription.platform.value,
            subscription.source_identifier,
            subscription.source_name,
            subscription.fetch_interval_minutes,
            subscription.filters,
        )
        return _record_to_subscription(row)

    async def update_last_fetch(self, subscription_id: int, fetched_at: datetime) -> None:
        await self._db.execute(
            "UPDATE subscriptions SET last_fetched_at = $2 WHERE id = $1",
            subscription_id, fetched_at,
        )

    async def set_subscription_active(self, subscription_id: int, active: bool) -> None:
        await self._db.execute(
            "UPDATE subscriptions SET is_active = $2 WHERE id = $1",
            subscription_id, active,
        )

    async def deactivate_subscription(
        self, user_id: int, platform: Platform, source_identifier: str
    ) -> bool:
        result = await self._db.execute(
            """
            UPDATE subscriptions SET is_active = FALSE
            WHERE user_id = $1 AND platform = $2 AND source_identifier = $3
              AND is_active = TRUE
            """,
            user_id, platform.value, source_identifier,
        )
        return result.split()[-1] != "0"

    # User settings

    async def get_or_create_user_settings(self, user_id: int) -> UserSettings:
        row = await self._db.fetchrow(
            _GET_OR_CREATE_SETTINGS_SQL,
            user_id,
            json.dumps(DEFAULT_ENABLED_PLATFORMS),
        )
        return _record_to_settings(row)

    async def save_user_settings(self, settings: UserSettings) -> UserSettings:
        row = await self._db.fetchrow(
            _SAVE_SETTINGS_SQL,
            settings.user_id,
            settings.time_zone,
            settings.items_per_page,
            settings.auto_categorize,
            settings.send_notifications,
            json.dumps(settings.enabled_platforms),
            settings.keywords,
            settings.blocked_sources,
            settings.language,
        )
        return _record_to_settings(row)
