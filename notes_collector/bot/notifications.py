"""
New-note notifications.

After a scheduler tick that stored notes, each affected user whose settings
allow it gets one summary message listing how many notes every source added.
Delivery failures are logged and counted, never raised into the scheduler.
"""

from collections import Counter
from collections.abc import Awaitable, Callable

import httpx
import structlog

from notes_collector.bot import messages
from notes_collector.bot.schemas import Reply
from notes_collector.bot.telegram import TelegramAPIError
from notes_collector.observability.metrics import get_metrics
from notes_collector.storage.base import NoteStore, StoreUnavailableError
from notes_collector.subscriptions.scheduler import TickReport

logger = structlog.get_logger(__name__)

# Private chats with the bot share the user's id
SendReply = Callable[[int, Reply], Awaitable[None]]


class NewNotesNotifier:
    """
    Tick listener that tells users about freshly collected notes.

    Usage:
        notifier = NewNotesNotifier(store, transport.send_reply)
        scheduler.add_tick_listener(notifier.notify)
    """

    def __init__(self, store: NoteStore, send: SendReply):
        self._store = store
        self._send = send
        self._metrics = get_metrics()

    async def notify(self, report: TickReport) -> int:
        """Send summaries for one tick; returns the number delivered."""
        per_user: dict[int, Counter[str]] = {}
        for result in report.results:
            if result.outcome.inserted > 0:
                counts = per_user.setdefault(result.user_id, Counter())
                counts[result.source_identifier] += result.outcome.inserted

        delivered = 0
        for user_id, counts in per_user.items():
            if await self._notify_user(user_id, dict(counts)):
                delivered += 1
        return delivered

    async def _notify_user(self, user_id: int, counts: dict[str, int]) -> bool:
        try:
            settings = await self._store.get_or_create_user_settings(user_id)
        except StoreUnavailableError as e:
            logger.warning("Skipping notification, store unavailable", user_id=user_id, error=str(e))
            return False

        if not settings.send_notifications:
            return False

        try:
            await self._send(user_id, messages.new_notes_notification(counts))
        except (TelegramAPIError, httpx.HTTPError) as e:
            logger.warning("Failed to deliver notification", user_id=user_id, error=str(e))
            self._metrics.record_notification(sent=False)
            return False

        self._metrics.record_notification(sent=True)
        logger.info("New-note notification sent", user_id=user_id, notes=sum(counts.values()))
        return True
