"""Tests for conversation steps, identifier rules and command parsing."""

import pytest

from notes_collector.bot.states import (
    IDLE,
    PLATFORM_STEPS,
    ConversationStep,
    MalformedInputError,
    normalize_identifier,
    parse_command,
    parse_platform,
)
from notes_collector.ingestion.schemas import Platform


class TestConversationStep:
    """Tests for ConversationStep."""

    def test_every_platform_has_a_step(self):
        assert set(PLATFORM_STEPS) == set(Platform)

    def test_step_platform_roundtrip(self):
        for platform, step in PLATFORM_STEPS.items():
            assert step.platform == platform

    def test_non_identifier_steps_have_no_platform(self):
        assert ConversationStep.NONE.platform is None
        assert ConversationStep.AWAITING_KEYWORD.platform is None
        assert ConversationStep.AWAITING_NOTE_CONTENT.platform is None

    def test_idle(self):
        assert IDLE.is_idle
        assert IDLE.step == ConversationStep.NONE


class TestNormalizeIdentifier:
    """Tests for normalize_identifier."""

    @pytest.mark.parametrize(
        "platform,answer,expected",
        [
            (Platform.TWITTER, "@alice", "alice"),
            (Platform.TWITTER, " https://x.com/alice ", "alice"),
            (Platform.REDDIT, "r/programming", "programming"),
            (Platform.TELEGRAM, "https://t.me/durov", "durov"),
            (Platform.YOUTUBE, "https://www.youtube.com/channel/UC_x5XG1OV2P6uZZ5FSM9Ttw", "UC_x5XG1OV2P6uZZ5FSM9Ttw"),
            (Platform.VK, "https://vk.com/apiclub", "apiclub"),
            (Platform.RSS, "https://example.com/feed.xml", "https://example.com/feed.xml"),
            (Platform.WEB, "https://example.com/article", "https://example.com/article"),
        ],
    )
    def test_accepts_valid_answers(self, platform, answer, expected):
        assert normalize_identifier(platform, answer) == expected

    @pytest.mark.parametrize(
        "platform,answer",
        [
            (Platform.TWITTER, ""),
            (Platform.TWITTER, "   "),
            (Platform.TWITTER, "alice bob"),
            (Platform.TWITTER, "@" + "a" * 20),
            (Platform.YOUTUBE, "@handle"),
            (Platform.VK, "https://example.com/apiclub"),
            (Platform.RSS, "example.com/feed"),
            (Platform.WEB, "ftp://example.com/file"),
            (Platform.TELEGRAM, "@ab"),
        ],
    )
    def test_rejects_malformed_answers(self, platform, answer):
        with pytest.raises(MalformedInputError):
            normalize_identifier(platform, answer)


class TestParsing:
    """Tests for command and platform parsing."""

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("/list", ("list", "")),
            ("/search rust lang", ("search", "rust lang")),
            ("/add@NotesBot twitter", ("add", "twitter")),
            ("  /HELP  ", ("help", "")),
            ("hello", (None, "hello")),
            ("/", (None, "")),
        ],
    )
    def test_parse_command(self, text, expected):
        assert parse_command(text) == expected

    def test_parse_platform(self):
        assert parse_platform(" Twitter ") == Platform.TWITTER
        assert parse_platform("myspace") is None
