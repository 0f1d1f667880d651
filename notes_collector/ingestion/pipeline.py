"""
Ingestion pipeline - one adapter run for one subscription.

Steps per run:
1. Look up the adapter for the subscription's platform
   (runs for platforms the user disabled are skipped)
2. Fetch the batch under a deadline (all-or-nothing)
3. Drop items rejected by the subscription's filters or the user's blocklist
4. Normalize into Notes and optionally categorize
5. Admit each note through the store's insert_if_absent

The pipeline keeps no record of what it has seen; deduplication is entirely
the store's atomic insert.
"""

import asyncio
import time
from dataclasses import dataclass
from datetime import datetime

import structlog

from notes_collector.ingestion.base_adapter import BaseAdapter, FailureKind, FetchError
from notes_collector.ingestion.categorizer import KeywordCategorizer
from notes_collector.ingestion.filters import ContentFilter
from notes_collector.ingestion.schemas import Note, Platform
from notes_collector.observability.metrics import get_metrics
from notes_collector.storage.base import InsertResult, NoteStore, StoreUnavailableError
from notes_collector.subscriptions.schemas import Subscription, UserSettings

logger = structlog.get_logger(__name__)

DEFAULT_FETCH_TIMEOUT = 30.0


@dataclass
class IngestionOutcome:
    """Counts for one run; `failure` is set when the run did not complete."""

    inserted: int = 0
    duplicates: int = 0
    filtered: int = 0
    failure: FetchError | None = None
    # The user turned the platform off; nothing was fetched
    skipped: bool = False

    @property
    def ok(self) -> bool:
        return self.failure is None

    @property
    def is_permanent_failure(self) -> bool:
        return self.failure is not None and self.failure.is_permanent


class IngestionPipeline:
    """
    Fetch, filter, categorize and store items for a subscription.

    Usage:
        pipeline = IngestionPipeline(adapters, store)
        outcome = await pipeline.run(subscription, since)
    """

    def __init__(
        self,
        adapters: dict[Platform, BaseAdapter],
        store: NoteStore,
        fetch_timeout: float = DEFAULT_FETCH_TIMEOUT,
        categorizer: KeywordCategorizer | None = None,
    ):
        self._adapters = adapters
        self._store = store
        self._fetch_timeout = fetch_timeout
        self._categorizer = categorizer or KeywordCategorizer()
        self._metrics = get_metrics()

    async def run(self, subscription: Subscription, since: datetime) -> IngestionOutcome:
        """
        Run one ingestion for `subscription`, reading items newer than `since`.

        Never raises for adapter or store failures; they are reported via
        IngestionOutcome.failure.
        """
        log = logger.bind(
            subscription_id=subscription.id,
            platform=subscription.platform.value,
            source=subscription.source_identifier,
        )

        adapter = self._adapters.get(subscription.platform)
        if adapter is None:
            return self._fail(
                subscription,
                FetchError.permanent(f"No adapter for platform {subscription.platform.value}"),
                IngestionOutcome(),
            )

        try:
            settings = await self._store.get_or_create_user_settings(subscription.user_id)
        except StoreUnavailableError as e:
            return self._fail(subscription, FetchError.transient(f"Store unavailable: {e}"), IngestionOutcome())

        if not settings.platform_enabled(subscription.platform):
            log.info("Platform disabled by user, skipping run")
            return IngestionOutcome(skipped=True)

        start = time.monotonic()
        try:
            items = await asyncio.wait_for(
                adapter.fetch(subscription.source_identifier, since),
                timeout=self._fetch_timeout,
            )
        except asyncio.TimeoutError:
            return self._fail(
                subscription,
                FetchError.transient(f"Fetch timed out after {self._fetch_timeout}s"),
                IngestionOutcome(),
            )
        except FetchError as e:
            return self._fail(subscription, e, IngestionOutcome())
        except Exception as e:
            return self._fail(subscription, FetchError.transient(str(e) or type(e).__name__), IngestionOutcome())
        latency = time.monotonic() - start

        content_filter = ContentFilter.parse(subscription.filters)
        outcome = IngestionOutcome()

        for item in items:
            if not content_filter.matches(item.text) or settings.is_blocked(item.author):
                outcome.filtered += 1
                continue

            note = self._prepare(Note.from_raw(subscription.user_id, subscription.platform, item), settings)

            try:
                result = await self._store.insert_if_absent(note)
            except StoreUnavailableError as e:
                return self._fail(subscription, FetchError.transient(f"Store unavailable: {e}"), outcome)

            if result == InsertResult.INSERTED:
                outcome.inserted += 1
            else:
                outcome.duplicates += 1

        self._metrics.record_ingestion(
            subscription.platform,
            inserted=outcome.inserted,
            duplicates=outcome.duplicates,
            filtered=outcome.filtered,
            latency=latency,
        )
        log.info(
            "Ingestion run completed",
            fetched=len(items),
            inserted=outcome.inserted,
            duplicates=outcome.duplicates,
            filtered=outcome.filtered,
            latency_s=round(latency, 3),
        )
        return outcome

    def _prepare(self, note: Note, settings: UserSettings) -> Note:
        """Apply per-user enrichment: categorization and keyword tags."""
        if settings.auto_categorize:
            note = self._categorizer.apply(note)

        if settings.keywords:
            text = note.text.lower()
            hits = [k for k in settings.keywords if k.strip() and k.lower() in text]
            if hits:
                note = Note.model_validate({**note.model_dump(), "tags": note.tags + hits})

        return note

    def _fail(
        self,
        subscription: Subscription,
        error: FetchError,
        outcome: IngestionOutcome,
    ) -> IngestionOutcome:
        outcome.failure = error
        self._metrics.record_fetch_failure(subscription.platform, error.kind.value)
        log_method = logger.warning if error.kind == FailureKind.PERMANENT else logger.info
        log_method(
            "Ingestion run failed",
            subscription_id=subscription.id,
            platform=subscription.platform.value,
            source=subscription.source_identifier,
            kind=error.kind.value,
            error=str(error),
            inserted=outcome.inserted,
        )
        return outcome
