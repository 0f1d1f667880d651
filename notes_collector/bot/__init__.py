"""Chat bot module - conversation state, commands and the Telegram transport."""

from notes_collector.bot.config import BotConfig, InterruptPolicy
from notes_collector.bot.conversation import ConversationStateMachine
from notes_collector.bot.dispatcher import Dispatcher
from notes_collector.bot.schemas import Button, ChatEvent, ForwardOrigin, Reply
from notes_collector.bot.states import ConversationState, ConversationStep

__all__ = [
    "BotConfig",
    "Button",
    "ChatEvent",
    "ConversationState",
    "ConversationStateMachine",
    "ConversationStep",
    "Dispatcher",
    "ForwardOrigin",
    "InterruptPolicy",
    "Reply",
]
