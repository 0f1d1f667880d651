"""Tests for content filters and keyword categorization."""

import pytest

from notes_collector.ingestion.categorizer import UNCATEGORIZED, KeywordCategorizer
from notes_collector.ingestion.filters import ContentFilter
from notes_collector.ingestion.schemas import Note, Platform


class TestContentFilter:
    """Tests for ContentFilter."""

    def test_parse_splits_allow_and_deny(self):
        f = ContentFilter.parse(["Python", "-crypto", "!Giveaway", "  ", "-"])

        assert f.allow == ("python",)
        assert f.deny == ("crypto", "giveaway")

    def test_empty_filter_keeps_everything(self):
        f = ContentFilter.parse([])

        assert f.is_empty
        assert f.matches("anything at all")

    def test_allow_requires_a_match(self):
        f = ContentFilter.parse(["python", "rust"])

        assert f.matches("New RUST compiler released")
        assert not f.matches("Golang news")

    def test_deny_wins_over_allow(self):
        f = ContentFilter.parse(["python", "-sponsored"])

        assert not f.matches("Python tips (Sponsored)")
        assert f.matches("Python tips")

    def test_deny_only(self):
        f = ContentFilter.parse(["-nsfw"])

        assert f.matches("A normal post")
        assert not f.matches("NSFW content")


class TestKeywordCategorizer:
    """Tests for KeywordCategorizer."""

    def test_first_matching_rule_wins(self):
        result = KeywordCategorizer().categorize("A new Python release for machine learning")

        assert result.category == "technology"
        assert "python" in result.matched_keywords

    def test_russian_keywords(self):
        result = KeywordCategorizer().categorize("Инвестиции и акции: обзор недели")

        assert result.category == "finance"

    def test_word_start_boundary(self):
        # "api" must not match inside "capital"
        result = KeywordCategorizer().categorize("Venture capital weekly")

        assert result.category == UNCATEGORIZED
        assert result.matched_keywords == []

    def test_custom_rules(self):
        categorizer = KeywordCategorizer(rules={"cooking": ["pasta"]})

        assert categorizer.categorize("Fresh pasta recipe").category == "cooking"
        assert categorizer.categorize("Python").category == UNCATEGORIZED

    def test_apply_sets_category_and_tags(self):
        note = Note(
            user_id=1,
            platform=Platform.RSS,
            source_id="rss_1",
            title="Open source database news",
            content="Postgres 17 is out",
            tags=["weekly"],
        )

        result = KeywordCategorizer().apply(note)

        assert result.category == "technology"
        assert result.tags[0] == "weekly"
        assert "open_source" in result.tags
        assert "postgres" in result.tags
        assert note.category is None

    def test_apply_never_raises(self, monkeypatch):
        categorizer = KeywordCategorizer()

        def boom(text):
            raise RuntimeError("bad rule")

        monkeypatch.setattr(categorizer, "categorize", boom)
        note = Note(user_id=1, platform=Platform.RSS, source_id="rss_1", title="x")

        assert categorizer.apply(note).category == UNCATEGORIZED


class TestNoteSchema:
    """Tests for Note field bounds."""

    def test_oversized_fields_truncated(self):
        note = Note(
            user_id=1,
            platform=Platform.WEB,
            source_id="web_x",
            title="t" * 600,
            content="c" * 6000,
            category="k" * 80,
        )

        assert len(note.title) == 500
        assert len(note.content) == 5000
        assert len(note.category) == 50

    def test_tags_normalized(self):
        note = Note(
            user_id=1,
            platform=Platform.WEB,
            source_id="web_x",
            tags=["#Python", "python", " Rust ", ""],
        )

        assert note.tags == ["python", "rust"]

    @pytest.mark.parametrize("field", ["likes_count", "comments_count", "views_count"])
    def test_negative_counters_rejected(self, field):
        with pytest.raises(ValueError):
            Note(user_id=1, platform=Platform.WEB, source_id="web_x", **{field: -1})
