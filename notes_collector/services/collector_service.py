"""
Collector service - wires the store, scheduler and chat bot into one process.

The scheduler tick loop and the Telegram polling loop run as independent
asyncio tasks. Either can be run alone (scheduler-only deployments, tests).

Features:
- Postgres or in-memory store
- Real or mock adapters
- Graceful shutdown
"""

import asyncio

import structlog

from notes_collector.bot.commands import CommandHandlers
from notes_collector.bot.config import BotConfig
from notes_collector.bot.conversation import ConversationStateMachine
from notes_collector.bot.dispatcher import Dispatcher
from notes_collector.bot.notifications import NewNotesNotifier
from notes_collector.bot.telegram import TelegramTransport
from notes_collector.config.settings import get_settings
from notes_collector.ingestion.base_adapter import BaseAdapter
from notes_collector.ingestion.pipeline import IngestionPipeline
from notes_collector.ingestion.registry import build_adapters
from notes_collector.ingestion.schemas import Platform
from notes_collector.storage.base import NoteStore
from notes_collector.storage.database import Database
from notes_collector.storage.memory_store import InMemoryNoteStore
from notes_collector.storage.repository import PostgresNoteStore
from notes_collector.subscriptions.config import SchedulerConfig
from notes_collector.subscriptions.scheduler import SubscriptionScheduler, TickReport

logger = structlog.get_logger(__name__)


async def create_store(use_memory: bool = False) -> NoteStore:
    """Create and connect the configured note store."""
    if use_memory:
        logger.info("Using in-memory note store")
        return InMemoryNoteStore()

    db = Database()
    await db.connect()
    store = PostgresNoteStore(db)
    await store.create_tables()
    return store


class CollectorService:
    """
    Service that runs the subscription scheduler and the chat bot.

    Usage:
        service = CollectorService(store)
        await service.start()  # Runs until stopped
    """

    def __init__(
        self,
        store: NoteStore,
        adapters: dict[Platform, BaseAdapter] | None = None,
        use_mock: bool = False,
        scheduler_config: SchedulerConfig | None = None,
        bot_config: BotConfig | None = None,
    ):
        self._store = store
        self._scheduler_config = scheduler_config or SchedulerConfig()
        self._bot_config = bot_config or BotConfig()
        self._adapters = adapters or build_adapters(use_mock=use_mock)

        self.pipeline = IngestionPipeline(
            self._adapters,
            store,
            fetch_timeout=self._scheduler_config.fetch_timeout_seconds,
        )
        self.scheduler = SubscriptionScheduler(store, self.pipeline, self._scheduler_config)
        self.conversations = ConversationStateMachine(
            store,
            self._bot_config,
            default_interval_minutes=self._scheduler_config.default_interval_minutes,
        )
        self.dispatcher = Dispatcher(
            store,
            self.conversations,
            CommandHandlers(store, self.conversations, self.scheduler),
        )
        self._transport: TelegramTransport | None = None
        self._tasks: list[asyncio.Task] = []

        logger.info(
            "Collector service initialized",
            adapters=[p.value for p in self._adapters],
            tick_seconds=self._scheduler_config.tick_seconds,
            interrupt_policy=self._bot_config.interrupt_policy.value,
        )

    async def tick_once(self) -> TickReport:
        return await self.scheduler.tick()

    async def start(self, with_bot: bool = True) -> None:
        """
        Run the scheduler (and optionally the bot) until stop() is called.
        """
        self._tasks = [asyncio.create_task(self.scheduler.run_forever(), name="scheduler")]

        if with_bot:
            if not get_settings().telegram_configured:
                logger.warning("Telegram bot token not configured, running scheduler only")
            else:
                self._transport = TelegramTransport(self.dispatcher)
                notifier = NewNotesNotifier(self._store, self._transport.send_reply)
                self.scheduler.add_tick_listener(notifier.notify)
                self._tasks.append(asyncio.create_task(self._transport.run(), name="telegram"))

        logger.info("Collector service started", tasks=[t.get_name() for t in self._tasks])
        try:
            await asyncio.gather(*self._tasks)
        except asyncio.CancelledError:
            logger.info("Collector service cancelled")
        finally:
            await self._store.close()
            logger.info("Collector service stopped")

    async def stop(self) -> None:
        """Stop the scheduler and transport gracefully."""
        logger.info("Stopping collector service")
        self.scheduler.stop()
        if self._transport is not None:
            self._transport.stop()
