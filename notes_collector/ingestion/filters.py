"""
Per-subscription content filters.

A subscription carries an ordered list of filter words. Words prefixed with
'-' or '!' are deny filters; any other word is an allow filter. Matching is a
case-insensitive substring test over the item's title and body:

- an item matching any deny filter is skipped
- if at least one allow filter exists, an item must match one of them
"""

from dataclasses import dataclass, field

DENY_PREFIXES = ("-", "!")


@dataclass(frozen=True)
class ContentFilter:
    """Compiled allow/deny word lists for one subscription."""

    allow: tuple[str, ...] = field(default_factory=tuple)
    deny: tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def parse(cls, filters: list[str] | None) -> "ContentFilter":
        """Build a filter from raw filter strings, ignoring blanks."""
        allow: list[str] = []
        deny: list[str] = []
        for raw in filters or []:
            word = raw.strip().lower()
            if word.startswith(DENY_PREFIXES):
                word = word[1:].strip()
                if word:
                    deny.append(word)
            elif word:
                allow.append(word)
        return cls(allow=tuple(allow), deny=tuple(deny))

    @property
    def is_empty(self) -> bool:
        return not self.allow and not self.deny

    def matches(self, text: str) -> bool:
        """Return True if an item with this text should be kept."""
        if self.is_empty:
            return True

        haystack = text.lower()
        if any(word in haystack for word in self.deny):
            return False
        if self.allow:
            return any(word in haystack for word in self.allow)
        return True
