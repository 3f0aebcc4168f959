"""
Skill rules — loading (RuleStore) and the two matchers it is validated against.
"""

from .errors import ConfigError, MatchError
from .keywords import KeywordMatcher, tokenize
from .paths import PathMatcher, translate_glob, validate_glob
from .store import RuleStore

__all__ = [
    "ConfigError",
    "KeywordMatcher",
    "MatchError",
    "PathMatcher",
    "RuleStore",
    "tokenize",
    "translate_glob",
    "validate_glob",
]
