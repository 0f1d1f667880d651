"""
Prometheus metrics for monitoring the collection pipeline.

Defines and exposes metrics for:
- Note ingestion outcomes (inserted, duplicate, filtered)
- Adapter fetch latency and failures
- Scheduler ticks and deactivations
- Conversation step transitions
- New-note notifications delivered to users

Metrics are exposed via HTTP endpoint for Prometheus scraping.
"""

import logging

from prometheus_client import (
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    start_http_server,
)

from notes_collector.config.settings import get_settings
from notes_collector.ingestion.schemas import Platform

logger = logging.getLogger(__name__)

# Buckets for fetch latency histograms (in seconds)
LATENCY_BUCKETS = (0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0)


def _platform_label(platform: Platform | str) -> str:
    return platform.value if isinstance(platform, Platform) else platform


class MetricsCollector:
    """
    Prometheus metrics collector for the notes-collector pipeline.

    Usage:
        metrics = MetricsCollector()
        metrics.start_server()

        metrics.record_ingestion(Platform.RSS, inserted=3, duplicates=1)
        metrics.record_fetch_failure(Platform.RSS, "transient")
    """

    def __init__(self):
        """Initialize Prometheus metrics."""

        # Note counters
        self.notes_inserted = Counter(
            "notes_collector_notes_inserted_total",
            "Total number of new notes stored",
            ["platform"],
        )

        self.notes_duplicate = Counter(
            "notes_collector_notes_duplicate_total",
            "Total number of items already stored for the user",
            ["platform"],
        )

        self.notes_filtered = Counter(
            "notes_collector_notes_filtered_total",
            "Total number of items skipped by content filters",
            ["platform"],
        )

        # Adapter metrics
        self.fetch_failures = Counter(
            "notes_collector_fetch_failures_total",
            "Total adapter failures",
            ["platform", "kind"],  # kind: transient, permanent
        )

        self.fetch_latency = Histogram(
            "notes_collector_fetch_latency_seconds",
            "Time for one adapter fetch",
            ["platform"],
            buckets=LATENCY_BUCKETS,
        )

        # Scheduler metrics
        self.scheduler_ticks = Counter(
            "notes_collector_scheduler_ticks_total",
            "Total scheduler ticks executed",
        )

        self.due_subscriptions = Gauge(
            "notes_collector_due_subscriptions",
            "Subscriptions found due on the last tick",
        )

        self.subscriptions_deactivated = Counter(
            "notes_collector_subscriptions_deactivated_total",
            "Subscriptions deactivated after repeated failures",
            ["platform"],
        )

        # Conversation metrics
        self.conversation_transitions = Counter(
            "notes_collector_conversation_transitions_total",
            "Conversation step transitions",
            ["step"],
        )

        self.subscriptions_created = Counter(
            "notes_collector_subscriptions_created_total",
            "Subscriptions created through the chat flow",
            ["platform"],
        )

        self.notifications = Counter(
            "notes_collector_notifications_total",
            "New-note notifications by delivery result",
            ["result"],  # result: sent, failed
        )

        logger.info("Prometheus metrics initialized")

    def start_server(self, port: int | None = None) -> None:
        """
        Start Prometheus metrics HTTP server.

        Args:
            port: Port to expose metrics on (default from settings)
        """
        settings = get_settings()
        port = port or settings.metrics_port

        start_http_server(port, registry=REGISTRY)
        logger.info(f"Prometheus metrics server started on port {port}")

    # Convenience methods

    def record_ingestion(
        self,
        platform: Platform | str,
        inserted: int = 0,
        duplicates: int = 0,
        filtered: int = 0,
        latency: float | None = None,
    ) -> None:
        """
        Record the outcome of one ingestion run.

        Args:
            platform: Source platform
            inserted: Number of new notes stored
            duplicates: Number of items already present
            filtered: Number of items skipped by filters
            latency: Optional adapter fetch latency in seconds
        """
        label = _platform_label(platform)
        self.notes_inserted.labels(platform=label).inc(inserted)
        self.notes_duplicate.labels(platform=label).inc(duplicates)
        self.notes_filtered.labels(platform=label).inc(filtered)

        if latency is not None:
            self.fetch_latency.labels(platform=label).observe(latency)

    def record_fetch_failure(self, platform: Platform | str, kind: str) -> None:
        """Record an adapter failure of the given kind."""
        self.fetch_failures.labels(platform=_platform_label(platform), kind=kind).inc()

    def record_tick(self, due_count: int) -> None:
        """Record one scheduler tick."""
        self.scheduler_ticks.inc()
        self.due_subscriptions.set(due_count)

    def record_deactivation(self, platform: Platform | str) -> None:
        """Record a subscription deactivated by the scheduler."""
        self.subscriptions_deactivated.labels(platform=_platform_label(platform)).inc()

    def record_transition(self, step: str) -> None:
        """Record a conversation step transition."""
        self.conversation_transitions.labels(step=step).inc()

    def record_subscription_created(self, platform: Platform | str) -> None:
        """Record a subscription created from the chat flow."""
        self.subscriptions_created.labels(platform=_platform_label(platform)).inc()


    def record_notification(self, sent: bool) -> None:
        """Record one new-note notification attempt."""
        self.notifications.labels(result="sent" if sent else "failed").inc()

# Global metrics instance
_metrics: MetricsCollector | None = None


def get_metrics() -> MetricsCollector:
    """Get the global metrics collector instance."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics
