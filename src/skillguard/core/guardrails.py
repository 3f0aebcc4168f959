"""
Guardrail Enforcer — deterministic allow / warn / block decisions for edits.

For each guardrail rule whose path patterns match the edited file, the
proposed content is scanned line by line against every forbidden regex.

Escape hatches, checked in this order:
- the rule's disable env var is set: allow every file of the rule
- the rule's bypass marker appears at or before the first violation line:
  allow this file only (violations are still reported for audit)

Invariants:
- Either every violation is reported and the edit is blocked, or it is
  allowed. There is no partial block.
- The decision depends only on the rule, the path, the content and the
  environment. Session state is never consulted.
- Every decision is logged with structlog.
"""

import os
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping

import structlog

from ..config.schema import SkillRuleConfig
from ..rules.errors import MatchError
from ..rules.paths import PathMatcher
from ..rules.store import RuleStore
from .events import ActivationEvent, EventKind

logger = structlog.get_logger()

__all__ = [
    "EnforcementDecision",
    "GuardrailEnforcer",
    "Outcome",
    "Violation",
    "format_decision",
    "is_env_flag_set",
    "most_severe",
]

SNIPPET_MAX_CHARS = 120

_FALSY_ENV_VALUES = frozenset({"", "0", "false", "no", "off"})


def is_env_flag_set(env: Mapping[str, str], name: str) -> bool:
    """Boolean-like env var check: set and not one of '', 0, false, no, off."""
    if not name or name not in env:
        return False
    return env[name].strip().lower() not in _FALSY_ENV_VALUES


class Outcome(Enum):
    """Terminal state of a guardrail check."""

    ALLOW = "allow"
    WARN = "warn"
    BLOCK = "block"

    @property
    def severity(self) -> int:
        return _SEVERITY[self]


_SEVERITY = {Outcome.ALLOW: 0, Outcome.WARN: 1, Outcome.BLOCK: 2}


@dataclass(frozen=True)
class Violation:
    """A forbidden pattern found on a line."""

    pattern: str
    line_number: int
    snippet: str

    def to_dict(self) -> dict[str, Any]:
        return {"pattern": self.pattern, "line_number": self.line_number, "snippet": self.snippet}


@dataclass
class EnforcementDecision:
    """Outcome of one guardrail rule for one file."""

    skill_id: str
    outcome: Outcome
    file_path: str
    violations: list[Violation] = field(default_factory=list)
    bypass: str | None = None  # "marker" | "env"
    message: str = ""

    @property
    def blocked(self) -> bool:
        return self.outcome is Outcome.BLOCK

    def to_dict(self) -> dict[str, Any]:
        return {
            "skill_id": self.skill_id,
            "outcome": self.outcome.value,
            "file_path": self.file_path,
            "violations": [v.to_dict() for v in self.violations],
            "bypass": self.bypass,
            "message": self.message,
        }


def _lines(content: str) -> list[str]:
    """Split on LF only, the way editors number lines. A trailing CR is dropped."""
    lines = content.split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    return [line[:-1] if line.endswith("\r") else line for line in lines]


def _snippet(line: str) -> str:
    text = line.strip()
    if len(text) > SNIPPET_MAX_CHARS:
        return text[: SNIPPET_MAX_CHARS - 3] + "..."
    return text


def most_severe(decisions: list[EnforcementDecision]) -> EnforcementDecision | None:
    """First decision with the highest severity (block > warn > allow), None if empty."""
    worst: EnforcementDecision | None = None
    for decision in decisions:
        if worst is None or decision.outcome.severity > worst.outcome.severity:
            worst = decision
    return worst


def format_decision(decision: EnforcementDecision, rule: SkillRuleConfig) -> str:
    """Build the user-facing message for a decision.

    Args:
        decision: The decision to describe.
        rule: The guardrail rule that produced it.

    Returns:
        Message listing violations, the replacement hint and how to bypass.
        Empty string for a clean allow.
    """
    enforcement = rule.enforcement
    if enforcement is None or (not decision.violations and decision.bypass is None):
        return ""

    if decision.bypass == "env":
        return (
            f"Guardrail '{rule.id}' disabled by ${enforcement.disable_env_var}; "
            f"{decision.file_path} not checked."
        )

    if decision.bypass == "marker":
        return (
            f"Guardrail '{rule.id}' bypassed by marker {enforcement.bypass_marker!r} in "
            f"{decision.file_path} ({len(decision.violations)} violation(s) recorded)."
        )

    if enforcement.block_message:
        header = enforcement.block_message.replace("{file_path}", decision.file_path).replace(
            "{skill_id}", rule.id
        )
    else:
        verb = "blocked" if decision.outcome is Outcome.BLOCK else "warning"
        header = f"Guardrail '{rule.id}' {verb}: deprecated pattern(s) in {decision.file_path}"

    lines = [header]
    for violation in decision.violations:
        lines.append(f"  line {violation.line_number}: {violation.snippet}  [{violation.pattern}]")
    if enforcement.allowed_replacement_hint:
        lines.append(f"Use instead: {enforcement.allowed_replacement_hint}")
    hatches: list[str] = []
    if enforcement.bypass_marker:
        hatches.append(f"add {enforcement.bypass_marker!r} to the file")
    if enforcement.disable_env_var:
        hatches.append(f"set {enforcement.disable_env_var}=1")
    if hatches:
        lines.append("To skip this check: " + " or ".join(hatches) + ".")
    return "\n".join(lines)


class GuardrailEnforcer:
    """Scans proposed file content against guardrail rules.

    Args:
        path_matcher: Matcher bound to the project root.
        env: Environment mapping read for disable switches (os.environ by default).
    """

    def __init__(self, path_matcher: PathMatcher, env: Mapping[str, str] | None = None) -> None:
        self.paths = path_matcher
        self.env = os.environ if env is None else env
        self._regex_cache: dict[str, re.Pattern[str]] = {}
        self.log = logger.bind(component="guardrails")

    def _regex(self, pattern: str) -> re.Pattern[str]:
        compiled = self._regex_cache.get(pattern)
        if compiled is None:
            try:
                compiled = re.compile(pattern)
            except re.error as e:
                raise MatchError(f"invalid forbidden regex ({e})", pattern) from e
            self._regex_cache[pattern] = compiled
        return compiled

    def applies(self, rule: SkillRuleConfig, file_path: str) -> bool:
        """True if the guardrail covers this file."""
        if rule.enforcement is None:
            return False
        if not self.paths.matches_any(rule.path_patterns, file_path):
            return False
        return not (rule.path_exclusions and self.paths.matches_any(rule.path_exclusions, file_path))

    def scan(self, rule: SkillRuleConfig, content: str) -> list[Violation]:
        """Every forbidden-pattern hit in the content, in line order.

        Raises:
            MatchError: If a forbidden regex cannot be compiled.
        """
        if rule.enforcement is None:
            return []
        compiled = [(p, self._regex(p)) for p in rule.enforcement.forbidden_patterns]
        violations: list[Violation] = []
        for line_number, line in enumerate(_lines(content), start=1):
            for pattern, regex in compiled:
                if regex.search(line):
                    violations.append(Violation(pattern, line_number, _snippet(line)))
        return violations

    def _marker_line(self, marker: str, content: str) -> int | None:
        if not marker:
            return None
        for line_number, line in enumerate(_lines(content), start=1):
            if marker in line:
                return line_number
        return None

    def check(self, rule: SkillRuleConfig, file_path: str, content: str) -> EnforcementDecision:
        """Decide one guardrail rule for one file.

        The rule is assumed to apply to the file (see applies()).

        Raises:
            MatchError: If a forbidden regex cannot be compiled.
        """
        enforcement = rule.enforcement
        if enforcement is None:
            return EnforcementDecision(rule.id, Outcome.ALLOW, file_path)

        if is_env_flag_set(self.env, enforcement.disable_env_var):
            decision = EnforcementDecision(rule.id, Outcome.ALLOW, file_path, bypass="env")
            decision.message = format_decision(decision, rule)
            self.log.info(
                "guardrail.disabled_by_env", rule=rule.id, env_var=enforcement.disable_env_var
            )
            return decision

        violations = self.scan(rule, content)
        if not violations:
            return EnforcementDecision(rule.id, Outcome.ALLOW, file_path)

        marker_line = self._marker_line(enforcement.bypass_marker, content)
        if marker_line is not None and marker_line <= violations[0].line_number:
            decision = EnforcementDecision(
                rule.id, Outcome.ALLOW, file_path, violations=violations, bypass="marker"
            )
            decision.message = format_decision(decision, rule)
            self.log.info(
                "guardrail.bypassed",
                rule=rule.id,
                file=file_path,
                violations=len(violations),
            )
            return decision

        outcome = Outcome.BLOCK if enforcement.level == "block" else Outcome.WARN
        decision = EnforcementDecision(rule.id, outcome, file_path, violations=violations)
        decision.message = format_decision(decision, rule)
        self.log.warning(
            "guardrail.blocked" if outcome is Outcome.BLOCK else "guardrail.warned",
            rule=rule.id,
            file=file_path,
            violations=len(violations),
            first_line=violations[0].line_number,
        )
        return decision

    def enforce_all(self, event: ActivationEvent, store: RuleStore) -> list[EnforcementDecision]:
        """Decisions of every guardrail that covers the edited file, in declaration order.

        A rule whose patterns fail to evaluate is logged and skipped.
        """
        if event.kind is not EventKind.FILE_EDIT or not event.file_path:
            return []

        content = event.file_content or ""
        decisions: list[EnforcementDecision] = []
        for rule in store.guardrails():
            try:
                if not self.applies(rule, event.file_path):
                    continue
                decisions.append(self.check(rule, event.file_path, content))
            except MatchError as e:
                self.log.warning("guardrail.rule_skipped", rule=rule.id, error=str(e))
                continue
        return decisions

    def enforce(self, event: ActivationEvent, store: RuleStore) -> EnforcementDecision | None:
        """The most severe decision for the edited file.

        Returns:
            The decision (block > warn > allow, ties by declaration order),
            or None when no guardrail covers the file.
        """
        return most_severe(self.enforce_all(event, store))
