"""Observability layer - logging and metrics."""

from notes_collector.observability.logging import setup_logging
from notes_collector.observability.metrics import MetricsCollector, get_metrics

__all__ = ["setup_logging", "MetricsCollector", "get_metrics"]
