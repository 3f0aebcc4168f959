"""
KeywordMatcher — whole-token phrase matching on prompt text.

Text and keywords are lowercased and split on anything that is not a word
character. A keyword matches when its tokens appear as a contiguous run of
prompt tokens, so "use case" matches "a use-case for" but not "abuse cases".
"""

import re
from typing import Iterable

from .errors import MatchError

__all__ = [
    "KeywordMatcher",
    "tokenize",
]

_TOKEN_RE = re.compile(r"\w+")


def tokenize(text: str) -> list[str]:
    """Lowercase and split text into word tokens."""
    return _TOKEN_RE.findall(text.lower())


def _contains_run(tokens: list[str], needle: list[str]) -> bool:
    width = len(needle)
    if width == 0 or width > len(tokens):
        return False
    first = needle[0]
    for start in range(len(tokens) - width + 1):
        if tokens[start] == first and tokens[start:start + width] == needle:
            return True
    return False


class KeywordMatcher:
    """Matches keyword phrases and intent regexes against prompt text."""

    def __init__(self) -> None:
        self._intent_cache: dict[str, re.Pattern[str]] = {}

    def matches(self, keywords: Iterable[str], text: str) -> set[str]:
        """Return the subset of keywords found in the text.

        Keywords are returned in their configured spelling so callers can
        report why a skill activated.
        """
        tokens = tokenize(text)
        if not tokens:
            return set()
        return {kw for kw in keywords if _contains_run(tokens, tokenize(kw))}

    def compile_intent(self, pattern: str) -> re.Pattern[str]:
        """Compile (and cache) an intent regex, case-insensitively.

        Raises:
            MatchError: If the regex does not compile.
        """
        compiled = self._intent_cache.get(pattern)
        if compiled is None:
            try:
                compiled = re.compile(pattern, re.IGNORECASE)
            except re.error as e:
                raise MatchError(f"invalid intent regex ({e})", pattern) from e
            self._intent_cache[pattern] = compiled
        return compiled

    def matches_intents(self, patterns: Iterable[str], text: str) -> list[str]:
        """Return the intent regexes that match anywhere in the text."""
        return [p for p in patterns if self.compile_intent(p).search(text)]
