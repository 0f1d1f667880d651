"""
Chat event dispatcher.

Routes each inbound ChatEvent to the conversation state machine, a command
handler, a callback handler, the forwarded-message handler, or the
manual-note fallback. Every event first ensures the user's settings row
exists. Failures are turned into a generic reply; nothing raised while
handling one event escapes to the transport.
"""

import re
from collections.abc import Awaitable, Callable

import structlog

from notes_collector.bot import messages
from notes_collector.bot.commands import CommandContext, CommandHandlers
from notes_collector.bot.conversation import ConversationStateMachine
from notes_collector.bot.schemas import ChatEvent, Reply
from notes_collector.bot.states import parse_command, parse_platform
from notes_collector.observability.logging import bind_context, clear_context
from notes_collector.storage.base import NoteStore, StoreUnavailableError
from notes_collector.subscriptions.schemas import UserSettings

logger = structlog.get_logger(__name__)

CommandHandler = Callable[[CommandContext], Awaitable[Reply]]

LIST_PAGE_PATTERN = re.compile(r"^list_page_(\d+)$")


class Dispatcher:
    """
    Event router for the chat bot.

    Usage:
        dispatcher = Dispatcher(store, conversations, handlers)
        reply = await dispatcher.handle(event)
    """

    def __init__(
        self,
        store: NoteStore,
        conversations: ConversationStateMachine,
        handlers: CommandHandlers,
    ):
        self._store = store
        self._conversations = conversations
        self._handlers = handlers
        self._commands: dict[str, CommandHandler] = {
            "start": handlers.start,
            "help": handlers.help,
            "add": handlers.add,
            "list": handlers.list_notes,
            "sources": handlers.sources,
            "search": handlers.search,
            "stats": handlers.stats,
            "settings": handlers.settings,
            "note": handlers.note,
            "fetch": handlers.fetch,
            "remove": handlers.remove,
            "cancel": handlers.cancel,
        }

    @property
    def commands(self) -> list[str]:
        return list(self._commands)

    async def handle(self, event: ChatEvent) -> Reply | None:
        """Process one event for its user; returns the reply to send, if any."""
        bind_context(user_id=event.user_id)
        async with self._conversations.lock(event.user_id):
            try:
                return await self._handle_locked(event)
            except StoreUnavailableError as e:
                logger.warning("Store unavailable while handling event", user_id=event.user_id, error=str(e))
                return Reply(messages.GENERIC_FAILURE)
            except Exception:
                logger.exception("Unhandled error while handling event", user_id=event.user_id)
                return Reply(messages.GENERIC_FAILURE)
            finally:
                clear_context()

    async def _handle_locked(self, event: ChatEvent) -> Reply | None:
        settings = await self._store.get_or_create_user_settings(event.user_id)

        if event.is_callback:
            return await self._handle_callback(event, settings)

        text = event.text or ""

        reply = await self._conversations.handle_text(
            event.user_id, text, settings, forward=event.forward
        )
        if reply is not None:
            return reply

        if event.forward is not None:
            if not text.strip():
                return None
            return await self._conversations.save_forwarded_note(
                event.user_id, text, event.forward, settings
            )

        command, args = parse_command(text)
        if command is not None:
            handler = self._commands.get(command)
            if handler is None:
                return Reply(messages.UNKNOWN_COMMAND)
            return await handler(CommandContext(event=event, args=args, settings=settings))

        if len(text.strip()) > self._conversations.config.min_manual_note_length:
            return await self._conversations.save_manual_note(event.user_id, text, settings)

        return None

    async def _handle_callback(self, event: ChatEvent, settings: UserSettings) -> Reply | None:
        data = event.callback_data or ""

        if data.startswith("add_"):
            platform = parse_platform(data[len("add_"):])
            if platform is None:
                logger.info("Unknown platform callback", data=data)
                return None
            return self._conversations.begin_add(event.user_id, platform, settings)

        match = LIST_PAGE_PATTERN.match(data)
        if match:
            ctx = CommandContext(event=event, args="", settings=settings)
            return await self._handlers.list_notes(ctx, page=int(match.group(1)))

        logger.info("Unknown callback", data=data)
        return None
