"""
Keyword-based note categorization.

Assigns a single category from an ordered rule table and extends the note's
tags with the rule keywords found in its text. Rule-based on purpose: it runs
inline in the ingestion path and must never block a batch.
"""

import logging
import re
from dataclasses import dataclass

from notes_collector.ingestion.schemas import MAX_CATEGORY_LENGTH, Note

logger = logging.getLogger(__name__)

UNCATEGORIZED = "uncategorized"

# category -> keywords; first category with a hit wins
DEFAULT_RULES: dict[str, list[str]] = {
    "technology": [
        "python", "rust", "golang", "javascript", "programming", "software",
        "kubernetes", "docker", "postgres", "database", "api", "open source",
        "release", "developer", "программирование", "разработка",
    ],
    "ai": [
        "machine learning", "neural", "llm", "gpt", "artificial intelligence",
        "deep learning", "нейросет", "искусственный интеллект",
    ],
    "science": [
        "research", "study", "physics", "biology", "space", "nasa",
        "исследование", "наука",
    ],
    "finance": [
        "stock", "market", "crypto", "bitcoin", "invest", "economy",
        "биржа", "акции", "инвест", "экономик",
    ],
    "news": [
        "breaking", "announces", "report", "election", "government",
        "новости", "срочно",
    ],
    "lifestyle": [
        "travel", "recipe", "photography", "fitness", "health",
        "путешеств", "рецепт", "здоровье",
    ],
}


@dataclass
class Categorization:
    """Result of categorizing one note."""

    category: str
    matched_keywords: list[str]


class KeywordCategorizer:
    """
    Rule table categorizer.

    Usage:
        categorizer = KeywordCategorizer()
        note = categorizer.apply(note)
    """

    def __init__(self, rules: dict[str, list[str]] | None = None):
        self._rules = {
            category[:MAX_CATEGORY_LENGTH]: [k.lower() for k in keywords]
            for category, keywords in (rules or DEFAULT_RULES).items()
        }

    def categorize(self, text: str) -> Categorization:
        haystack = text.lower()
        for category, keywords in self._rules.items():
            matched = [k for k in keywords if self._contains(haystack, k)]
            if matched:
                return Categorization(category=category, matched_keywords=matched)
        return Categorization(category=UNCATEGORIZED, matched_keywords=[])

    @staticmethod
    def _contains(haystack: str, keyword: str) -> bool:
        # Word-start boundary so "api" does not match "capital"
        return re.search(rf"(?<!\w){re.escape(keyword)}", haystack) is not None

    def apply(self, note: Note) -> Note:
        """
        Return a copy of the note with category and tags assigned.

        Never raises: any error in the rule evaluation falls back to
        the uncategorized bucket.
        """
        try:
            result = self.categorize(note.text)
        except Exception as e:
            logger.warning(f"Categorization failed for {note.source_id}: {e}")
            return note.model_copy(update={"category": UNCATEGORIZED})

        tags = list(note.tags) + [k.replace(" ", "_") for k in result.matched_keywords]
        return Note.model_validate(
            {**note.model_dump(), "category": result.category, "tags": tags}
        )
