"""
Conversation steps and per-platform identifier rules.

A user is always at exactly one step. NONE means no prompt is pending; every
other step names the answer the next message is expected to carry.
"""

import re
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from urllib.parse import urlparse

from notes_collector.ingestion.reddit_adapter import parse_subreddit
from notes_collector.ingestion.schemas import Platform
from notes_collector.ingestion.telegram_adapter import parse_channel
from notes_collector.ingestion.twitter_adapter import parse_username
from notes_collector.ingestion.vk_adapter import parse_vk_source
from notes_collector.ingestion.youtube_adapter import parse_channel_id


class MalformedInputError(ValueError):
    """An answer that cannot be used; the user is re-prompted."""


class ConversationStep(str, Enum):
    NONE = "none"
    AWAITING_TELEGRAM_IDENTIFIER = "awaiting_telegram_identifier"
    AWAITING_TWITTER_IDENTIFIER = "awaiting_twitter_identifier"
    AWAITING_REDDIT_IDENTIFIER = "awaiting_reddit_identifier"
    AWAITING_YOUTUBE_IDENTIFIER = "awaiting_youtube_identifier"
    AWAITING_VK_IDENTIFIER = "awaiting_vk_identifier"
    AWAITING_WEB_IDENTIFIER = "awaiting_web_identifier"
    AWAITING_RSS_IDENTIFIER = "awaiting_rss_identifier"
    AWAITING_KEYWORD = "awaiting_keyword"
    AWAITING_NOTE_CONTENT = "awaiting_note_content"

    @property
    def platform(self) -> Platform | None:
        """Platform whose identifier this step awaits, if any."""
        return STEP_PLATFORMS.get(self)


PLATFORM_STEPS: dict[Platform, ConversationStep] = {
    Platform.TELEGRAM: ConversationStep.AWAITING_TELEGRAM_IDENTIFIER,
    Platform.TWITTER: ConversationStep.AWAITING_TWITTER_IDENTIFIER,
    Platform.REDDIT: ConversationStep.AWAITING_REDDIT_IDENTIFIER,
    Platform.YOUTUBE: ConversationStep.AWAITING_YOUTUBE_IDENTIFIER,
    Platform.VK: ConversationStep.AWAITING_VK_IDENTIFIER,
    Platform.WEB: ConversationStep.AWAITING_WEB_IDENTIFIER,
    Platform.RSS: ConversationStep.AWAITING_RSS_IDENTIFIER,
}

STEP_PLATFORMS: dict[ConversationStep, Platform] = {v: k for k, v in PLATFORM_STEPS.items()}


@dataclass(frozen=True)
class ConversationState:
    """One user's slot: the pending step plus any partial input."""

    step: ConversationStep = ConversationStep.NONE
    partial: dict[str, Any] = field(default_factory=dict)

    @property
    def is_idle(self) -> bool:
        return self.step == ConversationStep.NONE


IDLE = ConversationState()


def _http_url(value: str) -> str | None:
    parsed = urlparse(value)
    if parsed.scheme in ("http", "https") and parsed.netloc and "." in parsed.netloc:
        return value
    return None


def _youtube(value: str) -> str | None:
    return parse_channel_id(value)


def _vk(value: str) -> str | None:
    if value.startswith(("http://", "https://")) and "vk.com" not in value:
        return None
    return parse_vk_source(value)


@dataclass(frozen=True)
class IdentifierRule:
    """How one platform's identifier is normalized and what to ask for."""

    parse: Callable[[str], str | None]
    example: str


IDENTIFIER_RULES: dict[Platform, IdentifierRule] = {
    Platform.TELEGRAM: IdentifierRule(parse_channel, "@durov"),
    Platform.TWITTER: IdentifierRule(parse_username, "@elonmusk"),
    Platform.REDDIT: IdentifierRule(parse_subreddit, "r/programming"),
    Platform.YOUTUBE: IdentifierRule(_youtube, "https://www.youtube.com/channel/UC_x5XG1OV2P6uZZ5FSM9Ttw"),
    Platform.VK: IdentifierRule(_vk, "https://vk.com/apiclub"),
    Platform.WEB: IdentifierRule(_http_url, "https://example.com/article"),
    Platform.RSS: IdentifierRule(_http_url, "https://example.com/feed.xml"),
}


def normalize_identifier(platform: Platform, answer: str) -> str:
    """
    Normalize a user-typed identifier for `platform`.

    Raises:
        MalformedInputError: if the answer is empty or implausible
    """
    value = answer.strip()
    if not value:
        raise MalformedInputError("empty identifier")

    # Whitespace never appears inside any supported identifier
    if re.search(r"\s", value):
        raise MalformedInputError(f"identifier contains whitespace: {value!r}")

    normalized = IDENTIFIER_RULES[platform].parse(value)
    if not normalized:
        raise MalformedInputError(f"not a valid {platform.value} identifier: {value!r}")
    return normalized


def parse_platform(value: str) -> Platform | None:
    try:
        return Platform(value.strip().lower())
    except ValueError:
        return None


COMMAND_NAMES = frozenset({
    "start",
    "help",
    "add",
    "list",
    "sources",
    "search",
    "stats",
    "settings",
    "note",
    "fetch",
    "remove",
    "cancel",
})


def parse_command(text: str) -> tuple[str | None, str]:
    """
    Split '/cmd@bot args' into ('cmd', 'args').

    Returns (None, text) when the text is not a command.
    """
    stripped = text.strip()
    if not stripped.startswith("/"):
        return None, text
    head, _, args = stripped.partition(" ")
    name = head[1:].split("@", 1)[0].lower()
    return (name or None), args.strip()
