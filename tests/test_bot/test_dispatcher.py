"""Tests for event routing and the slash-command handlers."""

from unittest.mock import AsyncMock

import pytest

from notes_collector.bot import messages
from notes_collector.bot.commands import CommandHandlers
from notes_collector.bot.conversation import ConversationStateMachine
from notes_collector.bot.dispatcher import Dispatcher
from notes_collector.bot.schemas import ChatEvent, ForwardOrigin
from notes_collector.bot.states import ConversationStep
from notes_collector.ingestion.pipeline import IngestionPipeline
from notes_collector.ingestion.schemas import Note, Platform
from notes_collector.storage.base import StoreUnavailableError
from notes_collector.subscriptions.config import SchedulerConfig
from notes_collector.subscriptions.scheduler import SubscriptionScheduler
from notes_collector.subscriptions.schemas import Subscription

USER = 42


def message(text: str, user_id: int = USER) -> ChatEvent:
    return ChatEvent(user_id=user_id, chat_id=user_id, text=text)


def callback(data: str, user_id: int = USER) -> ChatEvent:
    return ChatEvent(user_id=user_id, chat_id=user_id, callback_data=data, callback_id="cb1")


def build_dispatcher(store, scheduler=None) -> Dispatcher:
    conversations = ConversationStateMachine(store)
    handlers = CommandHandlers(store, conversations, scheduler)
    return Dispatcher(store, conversations, handlers)


@pytest.fixture
def dispatcher(store) -> Dispatcher:
    return build_dispatcher(store)


async def add_notes(store, count: int, user_id: int = USER) -> None:
    for n in range(1, count + 1):
        await store.insert_if_absent(
            Note(
                user_id=user_id,
                platform=Platform.RSS,
                source_id=f"rss_{n}",
                title=f"Note {n}",
                content=f"Content {n}",
            )
        )


class TestListFlow:
    """End-to-end: subscribe, fetch, list."""

    @pytest.mark.asyncio
    async def test_subscribe_fetch_and_list(self, store, make_adapter, make_item):
        adapter = make_adapter(items=[make_item(1), make_item(2), make_item(3)])
        pipeline = IngestionPipeline({Platform.RSS: adapter}, store)
        scheduler = SubscriptionScheduler(store, pipeline, SchedulerConfig())
        dispatcher = build_dispatcher(store, scheduler)

        reply = await dispatcher.handle(message("/list"))
        assert reply.text == messages.NO_NOTES

        reply = await dispatcher.handle(message("/add rss"))
        assert reply.text == messages.IDENTIFIER_PROMPTS[Platform.RSS]
        await dispatcher.handle(message("https://example.com/feed.xml"))

        reply = await dispatcher.handle(message("/fetch"))
        assert "Новых заметок: 3" in reply.text

        reply = await dispatcher.handle(message("/list"))
        assert reply.text.startswith("📚 Ваши заметки (1-3 из 3)")
        positions = [reply.text.index(f"Item number {n}") for n in (3, 2, 1)]
        assert positions == sorted(positions)
        assert reply.buttons == []

        # Everything already seen: a second fetch adds nothing
        reply = await dispatcher.handle(message("/fetch"))
        assert "Новых заметок: 0" in reply.text
        assert await store.count_notes(USER) == 3

    @pytest.mark.asyncio
    async def test_paging_callbacks(self, store):
        await add_notes(store, 3)
        settings = await store.get_or_create_user_settings(USER)
        settings.items_per_page = 2
        await store.save_user_settings(settings)
        dispatcher = build_dispatcher(store)

        first = await dispatcher.handle(message("/list"))
        assert first.text.startswith("📚 Ваши заметки (1-2 из 3)")
        assert [b.callback_data for b in first.buttons[0]] == ["list_page_1"]

        second = await dispatcher.handle(callback("list_page_1"))
        assert second.text.startswith("📚 Ваши заметки (3-3 из 3)")
        assert [b.callback_data for b in second.buttons[0]] == ["list_page_0"]

    @pytest.mark.asyncio
    async def test_fetch_without_scheduler(self, dispatcher):
        reply = await dispatcher.handle(message("/fetch"))
        assert reply.text == messages.GENERIC_FAILURE


class TestRouting:
    """Tests for command, callback and fallback routing."""

    @pytest.mark.asyncio
    async def test_first_event_creates_settings(self, store, dispatcher):
        await dispatcher.handle(message("/help"))

        settings = await store.get_or_create_user_settings(USER)
        assert settings.user_id == USER

    @pytest.mark.asyncio
    async def test_unknown_command(self, dispatcher):
        reply = await dispatcher.handle(message("/frobnicate"))
        assert reply.text == messages.UNKNOWN_COMMAND

    @pytest.mark.asyncio
    async def test_start_uses_markdown(self, dispatcher):
        reply = await dispatcher.handle(message("/start"))
        assert reply.markdown

    @pytest.mark.asyncio
    async def test_add_without_platform_shows_menu(self, dispatcher):
        reply = await dispatcher.handle(message("/add"))

        data = [b.callback_data for row in reply.buttons for b in row]
        assert data == [f"add_{p.value}" for p in Platform]

    @pytest.mark.asyncio
    async def test_add_callback_starts_flow(self, store):
        dispatcher = build_dispatcher(store)

        reply = await dispatcher.handle(callback("add_reddit"))
        assert reply.text == messages.IDENTIFIER_PROMPTS[Platform.REDDIT]

        await dispatcher.handle(message("r/python"))
        [sub] = await store.list_user_subscriptions(USER)
        assert (sub.platform, sub.source_identifier) == (Platform.REDDIT, "python")

    @pytest.mark.asyncio
    async def test_unknown_callback_ignored(self, dispatcher):
        assert await dispatcher.handle(callback("add_myspace")) is None
        assert await dispatcher.handle(callback("something_else")) is None

    @pytest.mark.asyncio
    async def test_callback_processed_during_prompt(self, store):
        await add_notes(store, 1)
        conversations = ConversationStateMachine(store)
        dispatcher = Dispatcher(store, conversations, CommandHandlers(store, conversations))
        await dispatcher.handle(message("/search"))

        reply = await dispatcher.handle(callback("list_page_0"))

        assert "Note 1" in reply.text
        assert conversations.get_state(USER).step == ConversationStep.AWAITING_KEYWORD

    @pytest.mark.asyncio
    async def test_long_text_saved_as_note(self, store, dispatcher):
        reply = await dispatcher.handle(message("Interesting idea about caching #perf"))

        assert reply.text == messages.NOTE_SAVED
        [note] = await store.query_notes(USER)
        assert note.tags[0] == "perf"

    @pytest.mark.asyncio
    async def test_short_text_ignored(self, store, dispatcher):
        assert await dispatcher.handle(message("hi")) is None
        assert await store.count_notes(USER) == 0

    @pytest.mark.asyncio
    async def test_cancel_when_idle(self, dispatcher):
        reply = await dispatcher.handle(message("/cancel"))
        assert reply.text == messages.NOTHING_TO_CANCEL

    @pytest.mark.asyncio
    async def test_search_with_argument(self, store, dispatcher):
        await add_notes(store, 2)

        reply = await dispatcher.handle(message("/search note 2"))

        assert "Note 2" in reply.text
        assert "Note 1" not in reply.text

    @pytest.mark.asyncio
    async def test_note_command_with_text(self, store, dispatcher):
        reply = await dispatcher.handle(message("/note buy milk"))

        assert reply.text == messages.NOTE_SAVED
        assert await store.count_notes(USER) == 1

    @pytest.mark.asyncio
    async def test_stats(self, store, dispatcher):
        await add_notes(store, 2)

        reply = await dispatcher.handle(message("/stats"))

        assert "Всего заметок: 2" in reply.text
        assert "Активных источников: 0" in reply.text


class TestFailures:
    """Tests for failure containment."""

    @pytest.mark.asyncio
    async def test_store_outage_gives_generic_reply(self):
        store = AsyncMock()
        store.get_or_create_user_settings.side_effect = StoreUnavailableError("down")
        dispatcher = build_dispatcher(store)

        reply = await dispatcher.handle(message("/list"))

        assert reply.text == messages.GENERIC_FAILURE

    @pytest.mark.asyncio
    async def test_unexpected_error_gives_generic_reply(self, store, dispatcher):
        store.note_stats = AsyncMock(side_effect=RuntimeError("boom"))

        reply = await dispatcher.handle(message("/stats"))

        assert reply.text == messages.GENERIC_FAILURE


class TestSourcesAndSettings:
    """Tests for /sources, /remove and /settings."""

    @pytest.mark.asyncio
    async def test_sources_listing(self, store, dispatcher):
        assert (await dispatcher.handle(message("/sources"))).text == messages.NO_SOURCES

        await store.upsert_subscription(
            Subscription(user_id=USER, platform=Platform.TWITTER, source_identifier="alice")
        )

        reply = await dispatcher.handle(message("/sources"))
        assert "alice" in reply.text

    @pytest.mark.asyncio
    async def test_remove(self, store, dispatcher):
        await store.upsert_subscription(
            Subscription(user_id=USER, platform=Platform.TWITTER, source_identifier="alice")
        )

        reply = await dispatcher.handle(message("/remove twitter @alice"))
        assert reply.text == messages.SOURCE_REMOVED.format(platform="twitter", identifier="alice")
        assert await store.list_user_subscriptions(USER) == []

        reply = await dispatcher.handle(message("/remove twitter @alice"))
        assert reply.text == messages.SOURCE_NOT_FOUND.format(platform="twitter", identifier="alice")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("text", ["/remove", "/remove twitter", "/remove myspace bob"])
    async def test_remove_usage(self, dispatcher, text):
        reply = await dispatcher.handle(message(text))
        assert reply.text == messages.REMOVE_USAGE

    @pytest.mark.asyncio
    async def test_settings_summary(self, dispatcher):
        reply = await dispatcher.handle(message("/settings"))
        assert "Заметок на странице: 10" in reply.text

    @pytest.mark.asyncio
    async def test_settings_updates_persist(self, store, dispatcher):
        for text in (
            "/settings page 5",
            "/settings autocat off",
            "/settings block @Spammer",
            "/settings platform vk off",
            "/settings keywords python, rust",
            "/settings lang EN",
        ):
            reply = await dispatcher.handle(message(text))
            assert reply.text == messages.SETTINGS_UPDATED, text

        settings = await store.get_or_create_user_settings(USER)
        assert settings.items_per_page == 5
        assert settings.auto_categorize is False
        assert settings.blocked_sources == ["Spammer"]
        assert settings.enabled_platforms["vk"] is False
        assert settings.keywords == ["python", "rust"]
        assert settings.language == "en"

        await dispatcher.handle(message("/settings unblock spammer"))
        assert (await store.get_or_create_user_settings(USER)).blocked_sources == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "text",
        [
            "/settings page 0",
            "/settings page 99",
            "/settings autocat maybe",
            "/settings tz Mars/Olympus_Mons",
            "/settings platform myspace on",
            "/settings colour blue",
        ],
    )
    async def test_invalid_settings_rejected(self, store, dispatcher, text):
        reply = await dispatcher.handle(message(text))

        assert reply.text == messages.SETTINGS_USAGE
        assert (await store.get_or_create_user_settings(USER)).items_per_page == 10


def forwarded(text: str, origin: ForwardOrigin, user_id: int = USER) -> ChatEvent:
    return ChatEvent(user_id=user_id, chat_id=user_id, text=text, forward=origin)


class TestForwardsAndPlatforms:
    """Tests for forwarded messages and per-user platform switches."""

    CHANNEL_POST = ForwardOrigin(chat_username="chan", chat_title="Channel", message_id=5)

    @pytest.mark.asyncio
    async def test_idle_forward_saved_with_origin(self, store, dispatcher):
        reply = await dispatcher.handle(forwarded("Short post", self.CHANNEL_POST))

        assert reply.text == messages.NOTE_SAVED
        [note] = await store.query_notes(USER)
        assert note.platform == Platform.TELEGRAM
        assert note.author == "@chan"
        assert note.url == "https://t.me/chan/5"
        assert note.source_id == "telegram_chan_5"

        again = await dispatcher.handle(forwarded("Short post", self.CHANNEL_POST))
        assert again.text == messages.NOTE_EXISTS
        assert await store.count_notes(USER) == 1

    @pytest.mark.asyncio
    async def test_forwarded_slash_text_is_not_a_command(self, store, dispatcher):
        reply = await dispatcher.handle(forwarded("/stats are up", self.CHANNEL_POST))

        assert reply.text == messages.NOTE_SAVED
        assert await store.count_notes(USER) == 1

    @pytest.mark.asyncio
    async def test_forward_answers_telegram_prompt(self, store, dispatcher):
        await dispatcher.handle(message("/add telegram"))

        await dispatcher.handle(forwarded("Some post", self.CHANNEL_POST))

        [sub] = await store.list_user_subscriptions(USER)
        assert (sub.platform, sub.source_identifier) == (Platform.TELEGRAM, "chan")
        assert await store.count_notes(USER) == 0

    @pytest.mark.asyncio
    async def test_disabled_platform_cannot_be_added(self, dispatcher):
        await dispatcher.handle(message("/settings platform twitter off"))

        reply = await dispatcher.handle(message("/add twitter"))

        assert reply.text == messages.platform_disabled(Platform.TWITTER).text
        assert dispatcher._conversations.get_state(USER).is_idle

        await dispatcher.handle(message("/settings platform twitter on"))
        reply = await dispatcher.handle(message("/add twitter"))
        assert reply.text == messages.IDENTIFIER_PROMPTS[Platform.TWITTER]
