"""
Slash-command handlers.

Each handler takes a CommandContext and returns one Reply. Handlers that
start a multi-step flow delegate to the ConversationStateMachine; the rest are
stateless reads or single writes against the store.
"""

import asyncio
from dataclasses import dataclass
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import structlog

from notes_collector.bot import messages
from notes_collector.bot.conversation import ConversationStateMachine
from notes_collector.bot.schemas import ChatEvent, Reply
from notes_collector.bot.states import MalformedInputError, normalize_identifier, parse_platform
from notes_collector.ingestion.schemas import NoteStatus
from notes_collector.storage.base import NoteStore
from notes_collector.subscriptions.scheduler import SubscriptionScheduler
from notes_collector.subscriptions.schemas import UserSettings

logger = structlog.get_logger(__name__)

MAX_ITEMS_PER_PAGE = 50

_SWITCH_VALUES = {
    "on": True, "off": False,
    "yes": True, "no": False,
    "true": True, "false": False,
    "1": True, "0": False,
    "вкл": True, "выкл": False,
}


@dataclass
class CommandContext:
    """Everything a handler needs about the triggering event."""

    event: ChatEvent
    args: str
    settings: UserSettings

    @property
    def user_id(self) -> int:
        return self.event.user_id


class CommandHandlers:
    """Implementations of the bot's slash commands."""

    def __init__(
        self,
        store: NoteStore,
        conversations: ConversationStateMachine,
        scheduler: SubscriptionScheduler | None = None,
    ):
        self._store = store
        self._conversations = conversations
        self._scheduler = scheduler

    @property
    def _preview_length(self) -> int:
        return self._conversations.config.preview_length

    async def start(self, ctx: CommandContext) -> Reply:
        return Reply(messages.WELCOME, markdown=True)

    async def help(self, ctx: CommandContext) -> Reply:
        return Reply(messages.HELP)

    async def add(self, ctx: CommandContext) -> Reply:
        if not ctx.args:
            return messages.platform_menu()
        platform = parse_platform(ctx.args)
        if platform is None:
            return messages.platform_menu()
        return self._conversations.begin_add(ctx.user_id, platform, ctx.settings)

    async def list_notes(self, ctx: CommandContext, page: int = 0) -> Reply:
        page_size = ctx.settings.items_per_page
        page = max(page, 0)
        notes = await self._store.query_notes(
            ctx.user_id, NoteStatus.NEW, page=page, page_size=page_size
        )
        total = await self._store.count_notes(ctx.user_id, NoteStatus.NEW)
        return messages.notes_page(notes, page, page_size, total, self._preview_length)

    async def sources(self, ctx: CommandContext) -> Reply:
        subscriptions = await self._store.list_user_subscriptions(ctx.user_id, active_only=False)
        return messages.sources_list(subscriptions)

    async def search(self, ctx: CommandContext) -> Reply:
        if ctx.args:
            return await self._conversations.search(ctx.user_id, ctx.args)
        return self._conversations.begin_search(ctx.user_id)

    async def note(self, ctx: CommandContext) -> Reply:
        if ctx.args:
            return await self._conversations.save_manual_note(ctx.user_id, ctx.args, ctx.settings)
        return self._conversations.begin_note(ctx.user_id)

    async def stats(self, ctx: CommandContext) -> Reply:
        stats = await self._store.note_stats(ctx.user_id)
        subscriptions = await self._store.list_user_subscriptions(ctx.user_id)
        return messages.stats_summary(stats, len(subscriptions))

    async def cancel(self, ctx: CommandContext) -> Reply:
        if self._conversations.reset(ctx.user_id):
            return Reply(messages.CANCELLED)
        return Reply(messages.NOTHING_TO_CANCEL)

    async def remove(self, ctx: CommandContext) -> Reply:
        platform_arg, _, identifier_arg = ctx.args.partition(" ")
        platform = parse_platform(platform_arg) if platform_arg else None
        if platform is None or not identifier_arg.strip():
            return Reply(messages.REMOVE_USAGE)

        try:
            identifier = normalize_identifier(platform, identifier_arg)
        except MalformedInputError:
            return messages.identifier_reprompt(platform)

        removed = await self._store.deactivate_subscription(ctx.user_id, platform, identifier)
        template = messages.SOURCE_REMOVED if removed else messages.SOURCE_NOT_FOUND
        return Reply(template.format(platform=platform.value, identifier=identifier))

    async def fetch(self, ctx: CommandContext) -> Reply:
        """Fetch every active subscription of the user right now."""
        if self._scheduler is None:
            return Reply(messages.GENERIC_FAILURE)

        subscriptions = await self._store.list_user_subscriptions(ctx.user_id)
        results = await asyncio.gather(
            *(self._scheduler.fetch_now(sub) for sub in subscriptions)
        )
        inserted = sum(r.outcome.inserted for r in results)
        failed = sum(1 for r in results if not r.outcome.ok)
        logger.info(
            "Manual fetch completed",
            user_id=ctx.user_id,
            sources=len(subscriptions),
            inserted=inserted,
            failed=failed,
        )
        return messages.fetch_summary(inserted, failed, len(subscriptions))

    async def settings(self, ctx: CommandContext) -> Reply:
        if not ctx.args:
            return messages.settings_summary(ctx.settings)

        option, _, value = ctx.args.partition(" ")
        updated = self._apply_setting(ctx.settings, option.lower(), value.strip())
        if updated is None:
            return Reply(messages.SETTINGS_USAGE)

        await self._store.save_user_settings(updated)
        logger.info("User settings updated", user_id=ctx.user_id, option=option.lower())
        return Reply(messages.SETTINGS_UPDATED)

    @staticmethod
    def _apply_setting(settings: UserSettings, option: str, value: str) -> UserSettings | None:
        """Return settings with one option changed, or None if the input is invalid."""
        if option == "page":
            if not value.isdigit() or not 1 <= int(value) <= MAX_ITEMS_PER_PAGE:
                return None
            settings.items_per_page = int(value)
        elif option in ("autocat", "notify"):
            switch = _SWITCH_VALUES.get(value.lower())
            if switch is None:
                return None
            if option == "autocat":
                settings.auto_categorize = switch
            else:
                settings.send_notifications = switch
        elif option == "tz":
            try:
                ZoneInfo(value)
            except (ZoneInfoNotFoundError, ValueError, OSError):
                return None
            settings.time_zone = value
        elif option == "lang":
            if not value.isalpha() or not 2 <= len(value) <= 5:
                return None
            settings.language = value.lower()
        elif option == "keywords":
            settings.keywords = [k.strip() for k in value.split(",") if k.strip()]
        elif option in ("block", "unblock"):
            author = value.lstrip("@")
            if not author:
                return None
            blocked = [s for s in settings.blocked_sources if s.lower() != author.lower()]
            if option == "block":
                blocked.append(author)
            settings.blocked_sources = blocked
        elif option == "platform":
            name, _, switch_value = value.partition(" ")
            platform = parse_platform(name)
            switch = _SWITCH_VALUES.get(switch_value.strip().lower())
            if platform is None or switch is None:
                return None
            settings.enabled_platforms[platform.value] = switch
        else:
            return None
        return settings
