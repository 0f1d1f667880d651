"""Subscriptions module - subscription models and the fetch scheduler."""

from notes_collector.subscriptions.config import SchedulerConfig
from notes_collector.subscriptions.schemas import Subscription, UserSettings

__all__ = [
    "SchedulerConfig",
    "Subscription",
    "UserSettings",
]
