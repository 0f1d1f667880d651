"""Services that run the collector process."""

from notes_collector.services.collector_service import CollectorService, create_store

__all__ = ["CollectorService", "create_store"]
