"""
Canonical note schema for the notes-collector pipeline.

Adapters emit RawItem; the ingestion pipeline normalizes each one into a
Note owned by a single user. Field limits mirror the persisted column sizes,
and oversized text is truncated rather than rejected.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator

MAX_TITLE_LENGTH = 500
MAX_CONTENT_LENGTH = 5000
MAX_URL_LENGTH = 500
MAX_AUTHOR_LENGTH = 200
MAX_CATEGORY_LENGTH = 50
MAX_RAW_DATA_LENGTH = 1000


def _utc_now() -> datetime:
    """Return current UTC time with timezone info."""
    return datetime.now(timezone.utc)


def _truncate(value: str | None, limit: int) -> str | None:
    if value is None:
        return None
    return value if len(value) <= limit else value[:limit]


class Platform(str, Enum):
    """Supported source platforms."""

    TELEGRAM = "telegram"  # chat-source
    TWITTER = "twitter"  # microblog
    REDDIT = "reddit"  # forum
    YOUTUBE = "youtube"  # video
    VK = "vk"  # social network
    WEB = "web"  # single web page
    RSS = "rss"  # feed


class NoteStatus(str, Enum):
    """Lifecycle of a stored note."""

    NEW = "new"
    ARCHIVED = "archived"
    PROCESSED = "processed"
    DELETED = "deleted"


class EngagementMetrics(BaseModel):
    """
    Source-reported engagement counters.

    Best-effort only: many sources report none of these, and values are
    captured once at fetch time.
    """

    likes: int = Field(default=0, ge=0, description="Likes, favorites, or upvotes")
    comments: int = Field(default=0, ge=0, description="Comment or reply count")
    views: int = Field(default=0, ge=0, description="View count if available")


class RawItem(BaseModel):
    """
    One item returned by an adapter, before it is bound to a user.

    `source_id` is assigned by the source (tweet id, post id, feed guid hash)
    and is the dedup key together with the owning user.
    """

    source_id: str = Field(..., min_length=1, description="Source-assigned item ID")
    title: str = ""
    content: str = ""
    url: str | None = None
    author: str | None = None
    published_at: datetime | None = Field(
        default=None,
        description="Publish time if the source reports one",
    )
    tags: list[str] = Field(default_factory=list)
    has_media: bool = False
    media_url: str | None = None
    engagement: EngagementMetrics = Field(default_factory=EngagementMetrics)
    raw: dict[str, Any] = Field(
        default_factory=dict,
        description="Original payload fragment for debugging",
    )

    @property
    def text(self) -> str:
        """Title and body joined, used for filtering and categorization."""
        return f"{self.title}\n{self.content}"


class Note(BaseModel):
    """
    A captured item owned by one user.

    Identity is (user_id, source_id). `id` and `created_at` are assigned by
    the store at insertion time.
    """

    id: int | None = None
    user_id: int
    platform: Platform
    source_id: str = Field(..., min_length=1)
    title: str = ""
    content: str = ""
    url: str | None = None
    author: str | None = None
    published_at: datetime | None = None
    created_at: datetime | None = None
    status: NoteStatus = NoteStatus.NEW
    category: str | None = None
    tags: list[str] = Field(default_factory=list)
    has_media: bool = False
    media_url: str | None = None
    likes_count: int = Field(default=0, ge=0)
    comments_count: int = Field(default=0, ge=0)
    views_count: int = Field(default=0, ge=0)
    raw_data: str | None = None

    @field_validator("title")
    @classmethod
    def bound_title(cls, v: str) -> str:
        return _truncate(" ".join(v.split()), MAX_TITLE_LENGTH)

    @field_validator("content")
    @classmethod
    def bound_content(cls, v: str) -> str:
        return _truncate(v.strip(), MAX_CONTENT_LENGTH)

    @field_validator("url", "media_url")
    @classmethod
    def bound_url(cls, v: str | None) -> str | None:
        return _truncate(v, MAX_URL_LENGTH)

    @field_validator("author")
    @classmethod
    def bound_author(cls, v: str | None) -> str | None:
        return _truncate(v, MAX_AUTHOR_LENGTH)

    @field_validator("category")
    @classmethod
    def bound_category(cls, v: str | None) -> str | None:
        return _truncate(v, MAX_CATEGORY_LENGTH)

    @field_validator("raw_data")
    @classmethod
    def bound_raw_data(cls, v: str | None) -> str | None:
        return _truncate(v, MAX_RAW_DATA_LENGTH)

    @field_validator("tags")
    @classmethod
    def normalize_tags(cls, v: list[str]) -> list[str]:
        """Strip '#', lowercase, and drop repeats while keeping order."""
        normalized: list[str] = []
        for tag in v:
            t = tag.strip().lstrip("#").lower()
            if t and t not in normalized:
                normalized.append(t)
        return normalized

    @classmethod
    def from_raw(cls, user_id: int, platform: Platform, item: RawItem) -> "Note":
        """Bind an adapter item to its owning user."""
        raw_data = json.dumps(item.raw, ensure_ascii=False, default=str) if item.raw else None
        return cls(
            user_id=user_id,
            platform=platform,
            source_id=item.source_id,
            title=item.title,
            content=item.content,
            url=item.url,
            author=item.author,
            published_at=item.published_at,
            tags=list(item.tags),
            has_media=item.has_media,
            media_url=item.media_url,
            likes_count=item.engagement.likes,
            comments_count=item.engagement.comments,
            views_count=item.engagement.views,
            raw_data=raw_data,
        )

    @property
    def key(self) -> tuple[int, str]:
        """Dedup identity of the note."""
        return (self.user_id, self.source_id)

    @property
    def text(self) -> str:
        return f"{self.title}\n{self.content}"
