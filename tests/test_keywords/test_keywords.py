"""
Tests for KeywordMatcher.

Covers:
- whole-token phrase matching, case-insensitive
- no matches on partial words or split letters
- punctuation and hyphen handling
- intent regexes
"""

import pytest

from skillguard.rules.errors import MatchError
from skillguard.rules.keywords import KeywordMatcher, tokenize


@pytest.fixture
def matcher() -> KeywordMatcher:
    return KeywordMatcher()


class TestTokenize:
    def test_lowercases_and_splits_on_punctuation(self):
        assert tokenize("Backend, GUIDELINES!") == ["backend", "guidelines"]

    def test_hyphen_splits(self):
        assert tokenize("error-handling") == ["error", "handling"]

    def test_empty(self):
        assert tokenize("  ...  ") == []


class TestKeywordMatching:
    def test_phrase_match(self, matcher: KeywordMatcher):
        found = matcher.matches(
            {"backend guidelines"}, "Following backend guidelines, create an endpoint"
        )
        assert found == {"backend guidelines"}

    def test_case_insensitive(self, matcher: KeywordMatcher):
        assert matcher.matches({"React Component"}, "build a REACT component") == {"React Component"}

    def test_partial_word_does_not_match(self, matcher: KeywordMatcher):
        assert matcher.matches({"use case"}, "list the abuse cases") == set()

    def test_split_letters_do_not_match(self, matcher: KeywordMatcher):
        assert matcher.matches({"use case"}, "I used a cased die") == set()

    def test_tokens_must_be_contiguous(self, matcher: KeywordMatcher):
        assert matcher.matches({"use case"}, "use this case") == set()

    def test_punctuation_between_tokens(self, matcher: KeywordMatcher):
        assert matcher.matches({"use case"}, "the use-case is clear") == {"use case"}

    def test_single_word_needs_whole_token(self, matcher: KeywordMatcher):
        assert matcher.matches({"api"}, "rapid development") == set()
        assert matcher.matches({"api"}, "call the API.") == {"api"}

    def test_returns_matched_subset(self, matcher: KeywordMatcher):
        found = matcher.matches({"prisma", "sentry", "controller"}, "add a controller using prisma")
        assert found == {"prisma", "controller"}

    def test_empty_text(self, matcher: KeywordMatcher):
        assert matcher.matches({"anything"}, "") == set()

    def test_keyword_longer_than_text(self, matcher: KeywordMatcher):
        assert matcher.matches({"a b c d"}, "a b") == set()


class TestIntentPatterns:
    def test_intent_match(self, matcher: KeywordMatcher):
        patterns = [r"(create|add).*?(route|endpoint)"]
        assert matcher.matches_intents(patterns, "Please CREATE a new endpoint") == patterns

    def test_intent_no_match(self, matcher: KeywordMatcher):
        assert matcher.matches_intents([r"(create|add).*?route"], "delete the route") == []

    def test_invalid_intent_raises(self, matcher: KeywordMatcher):
        with pytest.raises(MatchError):
            matcher.matches_intents(["(unclosed"], "text")
