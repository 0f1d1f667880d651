"""
Subscription scheduler - decides what to fetch on each tick.

On every tick the scheduler reads the active subscriptions, picks the ones
whose interval has elapsed, and runs the ingestion pipeline for each with
bounded concurrency. One subscription's failure never affects the others.

Failure bookkeeping:
- Consecutive permanent failures are counted per subscription in memory
- Reaching `failure_threshold` deactivates the subscription
- A successful run resets the count; transient failures are ignored
- Counts are dropped for subscriptions that leave the active set, and a
  subscription with no fetch history (new or re-added) starts from zero
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

import structlog

from notes_collector.ingestion.base_adapter import FetchError
from notes_collector.ingestion.pipeline import IngestionOutcome, IngestionPipeline
from notes_collector.observability.metrics import get_metrics
from notes_collector.storage.base import NoteStore, StoreUnavailableError
from notes_collector.subscriptions.config import SchedulerConfig
from notes_collector.subscriptions.schemas import Subscription

logger = structlog.get_logger(__name__)


@dataclass
class SubscriptionRunResult:
    """Outcome of one scheduled run."""

    subscription_id: int
    user_id: int
    platform: str
    source_identifier: str
    outcome: IngestionOutcome
    deactivated: bool = False


@dataclass
class TickReport:
    """Summary of one scheduler tick."""

    started_at: datetime
    due: int = 0
    results: list[SubscriptionRunResult] = field(default_factory=list)
    deactivated: list[int] = field(default_factory=list)
    error: str | None = None

    @property
    def inserted(self) -> int:
        return sum(r.outcome.inserted for r in self.results)

    @property
    def duplicates(self) -> int:
        return sum(r.outcome.duplicates for r in self.results)

    @property
    def filtered(self) -> int:
        return sum(r.outcome.filtered for r in self.results)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.outcome.ok)


TickListener = Callable[["TickReport"], Awaitable[Any]]


class SubscriptionScheduler:
    """
    Tick-driven scheduler over the store's active subscriptions.

    Usage:
        scheduler = SubscriptionScheduler(store, pipeline)
        report = await scheduler.tick()      # one pass
        await scheduler.run_forever()        # until stop()
    """

    def __init__(
        self,
        store: NoteStore,
        pipeline: IngestionPipeline,
        config: SchedulerConfig | None = None,
    ):
        self._store = store
        self._pipeline = pipeline
        self._config = config or SchedulerConfig()
        self._semaphore = asyncio.Semaphore(self._config.max_concurrent_fetches)
        self._failure_counts: dict[int, int] = {}
        self._stop_event = asyncio.Event()
        self._metrics = get_metrics()
        self._tick_listeners: list[TickListener] = []

    @property
    def config(self) -> SchedulerConfig:
        return self._config

    def add_tick_listener(self, listener: TickListener) -> None:
        """Call `listener` with the report of every tick that ran something."""
        self._tick_listeners.append(listener)

    def failure_count(self, subscription_id: int) -> int:
        """Current consecutive permanent-failure count for a subscription."""
        return self._failure_counts.get(subscription_id, 0)

    def due_subscriptions(
        self, subscriptions: list[Subscription], now: datetime
    ) -> list[Subscription]:
        """Filter to due subscriptions, ordered by (platform, identifier)."""
        due = [s for s in subscriptions if s.is_active and s.is_due(now)]
        due.sort(key=lambda s: (s.platform.value, s.source_identifier))
        return due

    def _since(self, subscription: Subscription, now: datetime) -> datetime:
        if subscription.last_fetched_at is not None:
            return subscription.last_fetched_at
        return now - timedelta(hours=self._config.lookback_hours)

    async def tick(self, now: datetime | None = None) -> TickReport:
        """
        Run every due subscription once.

        Never raises: a store outage while listing subscriptions yields an
        empty report with `error` set, and the next tick tries again.
        """
        now = now or datetime.now(timezone.utc)
        report = TickReport(started_at=now)

        try:
            subscriptions = await self._store.list_active_subscriptions()
        except StoreUnavailableError as e:
            logger.warning("Store unavailable, skipping tick", error=str(e))
            report.error = str(e)
            return report

        self._forget_inactive(subscriptions)
        due = self.due_subscriptions(subscriptions, now)
        report.due = len(due)
        self._metrics.record_tick(len(due))

        if not due:
            logger.debug("No subscriptions due", active=len(subscriptions))
            return report

        logger.info("Scheduler tick", due=len(due), active=len(subscriptions))

        results = await asyncio.gather(*(self._run_one(sub, now) for sub in due))

        report.results = list(results)
        report.deactivated = [r.subscription_id for r in results if r.deactivated]

        logger.info(
            "Scheduler tick completed",
            due=report.due,
            inserted=report.inserted,
            duplicates=report.duplicates,
            failed=report.failed,
            deactivated=len(report.deactivated),
        )

        for listener in self._tick_listeners:
            try:
                await listener(report)
            except Exception:
                logger.exception("Tick listener failed")
        return report

    def _forget_inactive(self, active: list[Subscription]) -> None:
        active_ids = {s.id for s in active}
        for subscription_id in self._failure_counts.keys() - active_ids:
            del self._failure_counts[subscription_id]

    async def fetch_now(
        self, subscription: Subscription, now: datetime | None = None
    ) -> SubscriptionRunResult:
        """Run one subscription immediately, regardless of due-ness."""
        return await self._run_one(subscription, now or datetime.now(timezone.utc))

    async def _run_one(self, subscription: Subscription, now: datetime) -> SubscriptionRunResult:
        async with self._semaphore:
            try:
                outcome = await self._pipeline.run(subscription, self._since(subscription, now))
            except Exception as e:
                logger.error(
                    "Unexpected pipeline error",
                    subscription_id=subscription.id,
                    error=str(e),
                )
                outcome = IngestionOutcome(failure=FetchError.transient(str(e) or type(e).__name__))

        result = SubscriptionRunResult(
            subscription_id=subscription.id,
            user_id=subscription.user_id,
            platform=subscription.platform.value,
            source_identifier=subscription.source_identifier,
            outcome=outcome,
        )

        try:
            await self._store.update_last_fetch(subscription.id, now)
        except StoreUnavailableError as e:
            logger.warning(
                "Failed to record fetch time",
                subscription_id=subscription.id,
                error=str(e),
            )

        result.deactivated = await self._record_outcome(subscription, outcome)
        return result

    async def _record_outcome(self, subscription: Subscription, outcome: IngestionOutcome) -> bool:
        """Update failure counts; returns True if the subscription was deactivated."""
        if outcome.skipped:
            return False

        if outcome.ok:
            self._failure_counts.pop(subscription.id, None)
            return False

        if not outcome.is_permanent_failure:
            return False

        previous = 0
        if subscription.last_fetched_at is not None:
            previous = self._failure_counts.get(subscription.id, 0)
        count = previous + 1
        self._failure_counts[subscription.id] = count
        if count < self._config.failure_threshold:
            return False

        try:
            await self._store.set_subscription_active(subscription.id, False)
        except StoreUnavailableError as e:
            # Count is kept, so the next permanent failure retries deactivation
            logger.warning(
                "Failed to deactivate subscription",
                subscription_id=subscription.id,
                error=str(e),
            )
            return False

        self._failure_counts.pop(subscription.id, None)
        self._metrics.record_deactivation(subscription.platform)
        logger.warning(
            "Subscription deactivated after repeated failures",
            subscription_id=subscription.id,
            platform=subscription.platform.value,
            source=subscription.source_identifier,
            failures=count,
        )
        return True

    async def run_forever(self) -> None:
        """Tick every `tick_seconds` until stop() is called."""
        self._stop_event.clear()
        logger.info(
            "Scheduler started",
            tick_seconds=self._config.tick_seconds,
            max_concurrent=self._config.max_concurrent_fetches,
        )

        while not self._stop_event.is_set():
            await self.tick()
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._config.tick_seconds)
            except asyncio.TimeoutError:
                pass

        logger.info("Scheduler stopped")

    def stop(self) -> None:
        self._stop_event.set()
