"""Data models for subscriptions and per-user settings."""

from dataclasses import dataclass, field
from datetime import datetime

from notes_collector.ingestion.schemas import Platform

DEFAULT_INTERVAL_MINUTES = 60

DEFAULT_ENABLED_PLATFORMS = {
    Platform.TELEGRAM.value: True,
    Platform.TWITTER.value: True,
    Platform.REDDIT.value: True,
    Platform.YOUTUBE.value: True,
    Platform.VK.value: True,
    Platform.WEB.value: True,
    Platform.RSS.value: True,
}


@dataclass
class Subscription:
    """A user's standing request to pull content from one external source.

    Uses composite key (user_id, platform, source_identifier) to uniquely
    identify a subscription; `id` is the surrogate key assigned by the store.
    """

    user_id: int
    platform: Platform
    source_identifier: str
    id: int | None = None
    source_name: str = ""
    is_active: bool = True
    fetch_interval_minutes: int = DEFAULT_INTERVAL_MINUTES
    last_fetched_at: datetime | None = None
    filters: list[str] = field(default_factory=list)
    created_at: datetime | None = None

    def __post_init__(self) -> None:
        if self.fetch_interval_minutes <= 0:
            raise ValueError("fetch_interval_minutes must be positive")
        if not self.source_name:
            self.source_name = self.source_identifier

    @property
    def key(self) -> tuple[int, Platform, str]:
        return (self.user_id, self.platform, self.source_identifier)

    def is_due(self, now: datetime) -> bool:
        """Due when never fetched or at least one interval has elapsed."""
        if self.last_fetched_at is None:
            return True
        elapsed = (now - self.last_fetched_at).total_seconds()
        return elapsed >= self.fetch_interval_minutes * 60


@dataclass
class UserSettings:
    """Per-user preferences, created lazily on first interaction."""

    user_id: int
    time_zone: str = "UTC"
    items_per_page: int = 10
    auto_categorize: bool = True
    send_notifications: bool = True
    enabled_platforms: dict[str, bool] = field(
        default_factory=lambda: dict(DEFAULT_ENABLED_PLATFORMS)
    )
    keywords: list[str] = field(default_factory=list)
    blocked_sources: list[str] = field(default_factory=list)
    language: str = "ru"
    updated_at: datetime | None = None

    def platform_enabled(self, platform: Platform) -> bool:
        """Disabled platforms are neither subscribed to nor fetched."""
        return self.enabled_platforms.get(platform.value, True)

    def is_blocked(self, author: str | None) -> bool:
        if not author:
            return False
        blocked = {s.lower().lstrip("@") for s in self.blocked_sources}
        return author.lower().lstrip("@") in blocked
