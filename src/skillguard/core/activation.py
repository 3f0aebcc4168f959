"""
Activation Engine — decides which skills are relevant to an event.

For a prompt event the engine runs the KeywordMatcher (keywords and intent
regexes) over every rule; for a file edit it runs the PathMatcher (path
patterns minus exclusions, plus content regexes when a rule declares them).

Ranking:
- both    (1.0)  matched now and through the session history
- path    (0.75)
- keyword (0.5)
Ties keep declaration order.

A skill activated in the same session within the repeat window, with an
equal or stronger reason, is suppressed so the host is not reminded on
every keystroke. A failing pattern only skips its own rule.
"""

import re
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

import structlog

from ..config.schema import SkillRuleConfig
from ..features.sessions import SessionState
from ..rules.errors import MatchError
from ..rules.keywords import KeywordMatcher
from ..rules.paths import PathMatcher
from ..rules.store import RuleStore
from .events import ActivationEvent, EventKind

logger = structlog.get_logger()

__all__ = [
    "ActivationEngine",
    "ActivationResult",
    "MatchReason",
    "SkillMatch",
    "render_activation",
]


class MatchReason(Enum):
    """Why a skill activated."""

    KEYWORD = "keyword"
    PATH = "path"
    BOTH = "both"

    @property
    def confidence(self) -> float:
        return _CONFIDENCE[self]


_CONFIDENCE = {
    MatchReason.KEYWORD: 0.5,
    MatchReason.PATH: 0.75,
    MatchReason.BOTH: 1.0,
}


@dataclass
class SkillMatch:
    """One activated skill."""

    skill_id: str
    match_reason: MatchReason
    confidence: float
    matched_terms: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "skill_id": self.skill_id,
            "match_reason": self.match_reason.value,
            "confidence": self.confidence,
            "matched_terms": list(self.matched_terms),
        }


@dataclass
class ActivationResult:
    """Ranked skills for one event, plus the ones held back as repeats."""

    matches: list[SkillMatch] = field(default_factory=list)
    suppressed: list[str] = field(default_factory=list)

    def skill_ids(self) -> list[str]:
        return [m.skill_id for m in self.matches]

    def to_dict(self) -> dict[str, Any]:
        return {
            "skills": [m.to_dict() for m in self.matches],
            "suppressed": list(self.suppressed),
        }


class ActivationEngine:
    """Combines path and keyword matching into ranked suggestions.

    Args:
        path_matcher: Matcher bound to the project root.
        keyword_matcher: Prompt matcher (a fresh one by default).
        repeat_window_seconds: Suppression window for repeated activations.
        clock: Time source, injectable for tests.
    """

    def __init__(
        self,
        path_matcher: PathMatcher,
        keyword_matcher: KeywordMatcher | None = None,
        repeat_window_seconds: float = 600,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.paths = path_matcher
        self.keywords = keyword_matcher or KeywordMatcher()
        self.repeat_window_seconds = repeat_window_seconds
        self.clock = clock
        self._content_cache: dict[str, re.Pattern[str]] = {}
        self.log = logger.bind(component="activation")

    def activate(
        self,
        event: ActivationEvent,
        store: RuleStore,
        session: SessionState | None = None,
    ) -> ActivationResult:
        """Compute the skills relevant to an event.

        Args:
            event: Prompt or file-edit event.
            store: Validated rules.
            session: Session history for ranking and suppression (optional).

        Returns:
            ActivationResult sorted by confidence, then declaration order.
            Empty when nothing matches.
        """
        now = self.clock()
        matched: list[SkillMatch] = []
        suppressed: list[str] = []

        for rule in store:
            try:
                if event.kind is EventKind.FILE_EDIT:
                    match = self._match_file(rule, event, session)
                else:
                    match = self._match_prompt(rule, event, session)
            except MatchError as e:
                self.log.warning("activation.rule_skipped", rule=rule.id, error=str(e))
                continue

            if match is None:
                continue
            if session is not None and self._is_repeat(match, session, now):
                suppressed.append(match.skill_id)
                continue
            matched.append(match)

        # sort() is stable, so equal confidences keep declaration order
        matched.sort(key=lambda m: -m.confidence)

        if matched or suppressed:
            self.log.info(
                "activation.result",
                kind=event.kind.value,
                skills=[m.skill_id for m in matched],
                suppressed=suppressed,
            )
        return ActivationResult(matches=matched, suppressed=suppressed)

    # -- matching -----------------------------------------------------------

    def _content_regex(self, pattern: str) -> re.Pattern[str]:
        compiled = self._content_cache.get(pattern)
        if compiled is None:
            try:
                compiled = re.compile(pattern)
            except re.error as e:
                raise MatchError(f"invalid content regex ({e})", pattern) from e
            self._content_cache[pattern] = compiled
        return compiled

    def _path_applies(self, rule: SkillRuleConfig, path: str) -> str | None:
        """Pattern matching the path for this rule, None if unmatched or excluded."""
        pattern = self.paths.first_match(rule.path_patterns, path)
        if pattern is None:
            return None
        if rule.path_exclusions and self.paths.matches_any(rule.path_exclusions, path):
            return None
        return pattern

    def _match_file(
        self,
        rule: SkillRuleConfig,
        event: ActivationEvent,
        session: SessionState | None,
    ) -> SkillMatch | None:
        pattern = self._path_applies(rule, event.file_path or "")
        if pattern is None:
            return None

        terms = [pattern]
        if rule.content_patterns:
            content = event.file_content or ""
            hits = [p for p in rule.content_patterns if self._content_regex(p).search(content)]
            if not hits:
                return None
            terms.extend(hits)

        reason = MatchReason.PATH
        if session is not None and any(
            a.skill_id == rule.id and a.reason in (MatchReason.KEYWORD.value, MatchReason.BOTH.value)
            for a in session.recent_activations
        ):
            reason = MatchReason.BOTH
        return SkillMatch(rule.id, reason, reason.confidence, terms)

    def _match_prompt(
        self,
        rule: SkillRuleConfig,
        event: ActivationEvent,
        session: SessionState | None,
    ) -> SkillMatch | None:
        text = event.prompt_text or ""
        found = self.keywords.matches(rule.keywords, text)
        intents = self.keywords.matches_intents(rule.intent_patterns, text)
        if not found and not intents:
            return None

        terms = [kw for kw in rule.keywords if kw in found] + intents

        reason = MatchReason.KEYWORD
        if session is not None and rule.path_patterns and any(
            self._path_applies(rule, path) for path in session.file_paths()
        ):
            reason = MatchReason.BOTH
        return SkillMatch(rule.id, reason, reason.confidence, terms)

    def _is_repeat(self, match: SkillMatch, session: SessionState, now: float) -> bool:
        """True if the skill was already signalled recently with an equal or stronger reason."""
        if self.repeat_window_seconds <= 0:
            return False
        last = session.last_activation(match.skill_id)
        if last is None or now - last.timestamp >= self.repeat_window_seconds:
            return False
        try:
            previous = MatchReason(last.reason)
        except ValueError:
            return False
        return previous.confidence >= match.confidence


_PRIORITY_SECTIONS = [
    ("critical", "CRITICAL SKILLS (REQUIRED)"),
    ("high", "RECOMMENDED SKILLS"),
    ("medium", "SUGGESTED SKILLS"),
    ("low", "OPTIONAL SKILLS"),
]


def render_activation(result: ActivationResult, store: RuleStore) -> str:
    """Render the reminder block injected into the host's context.

    Skills are grouped by priority; inside a group the ranking order is kept.

    Returns:
        The block, or "" when nothing activated.
    """
    if not result.matches:
        return ""

    rule_width = 50
    lines = ["─" * rule_width, "SKILL ACTIVATION CHECK", "─" * rule_width, ""]
    for priority, title in _PRIORITY_SECTIONS:
        group = [
            m for m in result.matches
            if (rule := store.get(m.skill_id)) is not None and rule.priority == priority
        ]
        if not group:
            continue
        lines.append(f"{title}:")
        for match in group:
            rule = store.get(match.skill_id)
            description = f": {rule.description}" if rule and rule.description else ""
            lines.append(f"  → {match.skill_id}{description}")
        lines.append("")

    lines.append("ACTION: Use the Skill tool BEFORE responding")
    lines.append("─" * rule_width)
    return "\n".join(lines)
