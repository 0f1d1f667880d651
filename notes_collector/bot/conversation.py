"""
Per-user conversation state machine.

Tracks which prompt, if any, each user is answering. Slots live only in
process memory and are never persisted; a restart returns every user to the
idle step.

All processing for one user happens under that user's lock, so two messages
from the same user are handled strictly one after the other while different
users proceed concurrently.
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

import structlog

from notes_collector.bot import messages
from notes_collector.bot.config import BotConfig, InterruptPolicy
from notes_collector.bot.schemas import ForwardOrigin, Reply
from notes_collector.bot.states import (
    COMMAND_NAMES,
    IDLE,
    PLATFORM_STEPS,
    ConversationState,
    ConversationStep,
    MalformedInputError,
    normalize_identifier,
    parse_command,
)
from notes_collector.ingestion.base_adapter import extract_hashtags, first_line, stable_hash
from notes_collector.ingestion.categorizer import KeywordCategorizer
from notes_collector.ingestion.schemas import Note, Platform
from notes_collector.observability.metrics import get_metrics
from notes_collector.storage.base import InsertResult, NoteStore, StoreUnavailableError
from notes_collector.subscriptions.schemas import (
    DEFAULT_INTERVAL_MINUTES,
    Subscription,
    UserSettings,
)

logger = structlog.get_logger(__name__)


def manual_source_id(content: str) -> str:
    """Dedup key for hand-written notes: same text, same note."""
    return f"manual_{stable_hash(content.strip())}"


def forwarded_source_id(content: str, forward: ForwardOrigin) -> str:
    """Channel posts share the channel adapter's key; anything else hashes its text."""
    if forward.chat_username and forward.message_id is not None:
        return f"telegram_{forward.chat_username}_{forward.message_id}"
    return manual_source_id(content)


@dataclass
class _UserLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    holders: int = 0


class ConversationStateMachine:
    """
    Multi-step input handling for the chat bot.

    Usage:
        machine = ConversationStateMachine(store)
        async with machine.lock(user_id):
            reply = await machine.handle_text(user_id, text, settings)
    """

    def __init__(
        self,
        store: NoteStore,
        config: BotConfig | None = None,
        default_interval_minutes: int = DEFAULT_INTERVAL_MINUTES,
        categorizer: KeywordCategorizer | None = None,
    ):
        self._store = store
        self._config = config or BotConfig()
        self._default_interval = default_interval_minutes
        self._categorizer = categorizer or KeywordCategorizer()
        self._states: dict[int, ConversationState] = {}
        self._locks: dict[int, _UserLock] = {}
        self._metrics = get_metrics()

    @property
    def config(self) -> BotConfig:
        return self._config

    @asynccontextmanager
    async def lock(self, user_id: int) -> AsyncIterator[None]:
        """Hold the exclusive lock serializing one user's events."""
        entry = self._locks.get(user_id)
        if entry is None:
            entry = self._locks[user_id] = _UserLock()
        entry.holders += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.holders -= 1
            # Nobody holds or waits for it; the pending step lives in _states
            if entry.holders == 0:
                self._locks.pop(user_id, None)

    def get_state(self, user_id: int) -> ConversationState:
        return self._states.get(user_id, IDLE)

    def _set_state(self, user_id: int, state: ConversationState) -> None:
        if state.is_idle:
            self._states.pop(user_id, None)
        else:
            self._states[user_id] = state
        self._metrics.record_transition(state.step.value)
        logger.debug("Conversation transition", user_id=user_id, step=state.step.value)

    def reset(self, user_id: int) -> bool:
        """Return the user to idle. Returns True if a prompt was pending."""
        pending = not self.get_state(user_id).is_idle
        if pending:
            self._set_state(user_id, IDLE)
        return pending

    # Entering steps

    def begin_add(
        self,
        user_id: int,
        platform: Platform,
        settings: UserSettings | None = None,
    ) -> Reply:
        if settings is not None and not settings.platform_enabled(platform):
            return messages.platform_disabled(platform)
        self._set_state(user_id, ConversationState(step=PLATFORM_STEPS[platform]))
        return messages.identifier_prompt(platform)

    def begin_search(self, user_id: int) -> Reply:
        self._set_state(user_id, ConversationState(step=ConversationStep.AWAITING_KEYWORD))
        return Reply(messages.ASK_KEYWORD)

    def begin_note(self, user_id: int) -> Reply:
        self._set_state(user_id, ConversationState(step=ConversationStep.AWAITING_NOTE_CONTENT))
        return Reply(messages.ASK_NOTE)

    # Answering

    async def handle_text(
        self,
        user_id: int,
        text: str,
        settings: UserSettings,
        forward: ForwardOrigin | None = None,
    ) -> Reply | None:
        """
        Treat `text` as the answer to the user's pending prompt.

        Returns None when nothing is pending, or when the interrupt policy
        lets a command escape the prompt; the caller then handles `text` as
        an ordinary message. Forwarded messages are never commands.
        """
        state = self.get_state(user_id)
        if state.is_idle:
            return None

        if forward is not None:
            return await self._answer(user_id, state, text, settings, forward)

        command, _ = parse_command(text)
        if command == "cancel":
            self.reset(user_id)
            return Reply(messages.CANCELLED)

        if (
            command in COMMAND_NAMES
            and self._config.interrupt_policy == InterruptPolicy.ESCAPE
        ):
            self.reset(user_id)
            return None

        return await self._answer(user_id, state, text, settings)

    async def _answer(
        self,
        user_id: int,
        state: ConversationState,
        text: str,
        settings: UserSettings,
        forward: ForwardOrigin | None = None,
    ) -> Reply:
        platform = state.step.platform
        if platform == Platform.TELEGRAM and forward is not None:
            # A post forwarded from a public channel names the channel
            return await self.add_subscription(user_id, platform, forward.chat_username or "")
        if platform is not None:
            return await self.add_subscription(user_id, platform, text)

        if state.step == ConversationStep.AWAITING_KEYWORD:
            if not text.strip():
                return Reply(messages.EMPTY_KEYWORD)
            self.reset(user_id)
            return await self.search(user_id, text)

        if state.step == ConversationStep.AWAITING_NOTE_CONTENT:
            if not text.strip():
                return Reply(messages.EMPTY_NOTE)
            self.reset(user_id)
            if forward is not None:
                return await self.save_forwarded_note(user_id, text, forward, settings)
            return await self.save_manual_note(user_id, text, settings)

        # Unreachable for known steps; recover rather than wedge the user
        logger.error("Unhandled conversation step", user_id=user_id, step=state.step.value)
        self.reset(user_id)
        return Reply(messages.GENERIC_FAILURE)

    async def add_subscription(self, user_id: int, platform: Platform, answer: str) -> Reply:
        """Validate the identifier and store the subscription."""
        try:
            identifier = normalize_identifier(platform, answer)
        except MalformedInputError as e:
            logger.info("Identifier rejected", user_id=user_id, platform=platform.value, reason=str(e))
            return messages.identifier_reprompt(platform)

        subscription = Subscription(
            user_id=user_id,
            platform=platform,
            source_identifier=identifier,
            fetch_interval_minutes=self._default_interval,
        )
        try:
            stored = await self._store.upsert_subscription(subscription)
        except StoreUnavailableError as e:
            logger.warning("Failed to store subscription", user_id=user_id, error=str(e))
            self.reset(user_id)
            return Reply(messages.GENERIC_FAILURE)

        self.reset(user_id)
        self._metrics.record_subscription_created(platform)
        logger.info(
            "Subscription added",
            user_id=user_id,
            platform=platform.value,
            source=identifier,
            subscription_id=stored.id,
        )
        return messages.subscription_added(stored)

    async def search(self, user_id: int, keyword: str) -> Reply:
        keyword = keyword.strip()
        try:
            notes = await self._store.search_notes(
                user_id, keyword, limit=self._config.search_result_limit
            )
        except StoreUnavailableError as e:
            logger.warning("Search failed", user_id=user_id, error=str(e))
            return Reply(messages.GENERIC_FAILURE)
        return messages.search_results(keyword, notes, self._config.preview_length)

    async def save_manual_note(self, user_id: int, content: str, settings: UserSettings) -> Reply:
        """Store user-typed text as a telegram note keyed by its content hash."""
        content = content.strip()
        note = Note(
            user_id=user_id,
            platform=Platform.TELEGRAM,
            source_id=manual_source_id(content),
            title=first_line(content, 100),
            content=content,
            tags=extract_hashtags(content),
        )
        return await self._store_note(note, settings)

    async def save_forwarded_note(
        self,
        user_id: int,
        content: str,
        forward: ForwardOrigin,
        settings: UserSettings,
    ) -> Reply:
        """Store a forwarded message, crediting its origin."""
        content = content.strip()
        note = Note(
            user_id=user_id,
            platform=Platform.TELEGRAM,
            source_id=forwarded_source_id(content, forward),
            title=first_line(content, 100),
            content=content,
            url=forward.url,
            author=forward.author,
            tags=extract_hashtags(content),
        )
        return await self._store_note(note, settings)

    async def _store_note(self, note: Note, settings: UserSettings) -> Reply:
        if settings.auto_categorize:
            note = self._categorizer.apply(note)

        try:
            result = await self._store.insert_if_absent(note)
        except StoreUnavailableError as e:
            logger.warning("Failed to store note", user_id=note.user_id, error=str(e))
            return Reply(messages.GENERIC_FAILURE)

        if result == InsertResult.DUPLICATE:
            return Reply(messages.NOTE_EXISTS)
        logger.info("Note saved from chat", user_id=note.user_id, source_id=note.source_id)
        return Reply(messages.NOTE_SAVED)
