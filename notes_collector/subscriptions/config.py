"""Configuration for the subscription scheduler."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class SchedulerConfig(BaseSettings):
    """Settings for tick cadence, fetch concurrency and failure handling."""

    model_config = SettingsConfigDict(
        env_prefix="SCHEDULER_",
        case_sensitive=False,
        extra="ignore",
    )

    tick_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Seconds between scheduler ticks",
    )
    max_concurrent_fetches: int = Field(
        default=5,
        ge=1,
        le=100,
        description="Maximum adapter runs in flight within one tick",
    )
    fetch_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Deadline for one adapter call",
    )
    failure_threshold: int = Field(
        default=5,
        ge=1,
        description="Consecutive permanent failures before a subscription is deactivated",
    )
    lookback_hours: int = Field(
        default=24,
        ge=1,
        description="How far back a never-fetched subscription reads",
    )
    default_interval_minutes: int = Field(
        default=60,
        ge=1,
        description="Fetch interval for newly created subscriptions",
    )
