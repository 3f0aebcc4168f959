"""
RuleStore — loads and validates skill-rules.json.

The store is loaded fresh on every hook invocation and never mutated. Any
problem in the file (bad JSON, unknown keys, malformed globs or regexes,
duplicated ids) aborts the load with a ConfigError naming the rule and the
field, so there is never a partially loaded store.

Accepted layouts for "skills":
- a JSON array of rules, each with an "id"
- a JSON object keyed by id (the layout of Claude Code plugin rule files)
"""

import json
import re
from pathlib import Path
from typing import Any, Iterator

import structlog
from pydantic import ValidationError

from ..config.schema import SkillRuleConfig, SkillRulesFile
from .errors import ConfigError, MatchError
from .keywords import tokenize
from .paths import validate_glob

logger = structlog.get_logger()

__all__ = [
    "RuleStore",
]

_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")
_ENV_VAR_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_TOP_LEVEL_KEYS = {"version", "skills", "description", "$schema"}


def _json_pairs_hook(source: str):
    def hook(pairs: list[tuple[str, Any]]) -> dict[str, Any]:
        result: dict[str, Any] = {}
        for key, value in pairs:
            if key in result:
                raise ConfigError(f"duplicate key '{key}' in JSON object", source=source)
            result[key] = value
        return result

    return hook


def _error_field(error: dict[str, Any]) -> str:
    return ".".join(str(part) for part in error.get("loc", ())) or "<rule>"


def _normalize_entries(skills: Any, source: str) -> list[dict[str, Any]]:
    """Turn the "skills" value into a list of raw rule dicts, in declaration order."""
    if isinstance(skills, list):
        entries = skills
    elif isinstance(skills, dict):
        entries = []
        for key, value in skills.items():
            if not isinstance(value, dict):
                raise ConfigError("rule must be a JSON object", rule_id=key, source=source)
            declared = value.get("id")
            if declared is not None and declared != key:
                raise ConfigError(
                    f"id '{declared}' does not match its key", rule_id=key, field="id", source=source
                )
            entries.append({**value, "id": key})
    else:
        raise ConfigError("'skills' must be a JSON array or object", field="skills", source=source)

    for index, entry in enumerate(entries):
        if not isinstance(entry, dict):
            raise ConfigError(
                "rule must be a JSON object", rule_id=f"#{index}", source=source
            )
    return entries


def _check_regexes(rule: SkillRuleConfig, field: str, patterns: list[str], source: str) -> None:
    for pattern in patterns:
        if not pattern:
            raise ConfigError("empty regex", rule_id=rule.id, field=field, source=source)
        try:
            re.compile(pattern)
        except re.error as e:
            raise ConfigError(
                f"invalid regex {pattern!r}: {e}", rule_id=rule.id, field=field, source=source
            ) from e


def _check_globs(rule: SkillRuleConfig, field: str, patterns: list[str], source: str) -> None:
    for pattern in patterns:
        try:
            validate_glob(pattern)
        except MatchError as e:
            raise ConfigError(str(e), rule_id=rule.id, field=field, source=source) from e


def _check_rule(rule: SkillRuleConfig, source: str) -> None:
    """Semantic checks that the pydantic shape cannot express."""
    if not rule.id:
        raise ConfigError("rule id must not be empty", field="id", source=source)
    if not _ID_RE.match(rule.id):
        raise ConfigError(
            "rule id must be a slug (letters, digits, '.', '_', '-')",
            rule_id=rule.id,
            field="id",
            source=source,
        )

    _check_globs(rule, "pathPatterns", rule.path_patterns, source)
    _check_globs(rule, "pathExclusions", rule.path_exclusions, source)
    _check_regexes(rule, "contentPatterns", rule.content_patterns, source)
    _check_regexes(rule, "intentPatterns", rule.intent_patterns, source)

    for keyword in rule.keywords:
        if not tokenize(keyword):
            raise ConfigError(
                f"keyword {keyword!r} has no word characters",
                rule_id=rule.id,
                field="keywords",
                source=source,
            )

    if rule.type == "guardrail" and rule.enforcement is None:
        raise ConfigError(
            "guardrail rule requires an 'enforcement' section",
            rule_id=rule.id,
            field="enforcement",
            source=source,
        )

    enforcement = rule.enforcement
    if enforcement is None:
        return
    if not enforcement.forbidden_patterns:
        raise ConfigError(
            "enforcement requires at least one forbidden pattern",
            rule_id=rule.id,
            field="enforcement.forbiddenPatterns",
            source=source,
        )
    _check_regexes(rule, "enforcement.forbiddenPatterns", enforcement.forbidden_patterns, source)
    if "\n" in enforcement.bypass_marker:
        raise ConfigError(
            "bypass marker must be a single line",
            rule_id=rule.id,
            field="enforcement.bypassMarker",
            source=source,
        )
    if enforcement.disable_env_var and not _ENV_VAR_RE.match(enforcement.disable_env_var):
        raise ConfigError(
            f"invalid environment variable name {enforcement.disable_env_var!r}",
            rule_id=rule.id,
            field="enforcement.disableEnvVar",
            source=source,
        )
    if not rule.path_patterns:
        logger.warning("rules.guardrail_without_paths", rule=rule.id, source=source)


class RuleStore:
    """Immutable, validated collection of skill rules.

    Rules keep their declaration order, which breaks ranking ties.
    """

    def __init__(
        self,
        rules: list[SkillRuleConfig],
        source: str = "<memory>",
        version: str = "1.0",
    ) -> None:
        self.source = source
        self.version = version
        self._rules: tuple[SkillRuleConfig, ...] = tuple(rules)
        self._index: dict[str, int] = {}
        for position, rule in enumerate(self._rules):
            if rule.id in self._index:
                raise ConfigError("duplicate rule id", rule_id=rule.id, field="id", source=source)
            self._index[rule.id] = position

    @classmethod
    def load(cls, config_path: str | Path) -> "RuleStore":
        """Load and validate a skill-rules.json file.

        Args:
            config_path: Path to the rules file.

        Returns:
            A validated RuleStore.

        Raises:
            ConfigError: If the file is missing, unreadable or invalid.
        """
        path = Path(config_path)
        source = str(path)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError as e:
            raise ConfigError("rules file not found", source=source) from e
        except OSError as e:
            raise ConfigError(f"cannot read rules file: {e}", source=source) from e

        try:
            data = json.loads(text, object_pairs_hook=_json_pairs_hook(source))
        except json.JSONDecodeError as e:
            raise ConfigError(
                f"invalid JSON at line {e.lineno}, column {e.colno}: {e.msg}", source=source
            ) from e

        store = cls.from_dict(data, source=source)
        logger.info("rules.loaded", source=source, rules=len(store), guardrails=len(store.guardrails()))
        return store

    @classmethod
    def from_dict(cls, data: Any, source: str = "<memory>") -> "RuleStore":
        """Validate an already-parsed rules document.

        Raises:
            ConfigError: On the first invalid rule or field.
        """
        if not isinstance(data, dict):
            raise ConfigError("rules file must contain a JSON object", source=source)
        unknown = sorted(set(data) - _TOP_LEVEL_KEYS)
        if unknown:
            raise ConfigError(f"unknown top-level keys: {unknown}", source=source)

        entries = _normalize_entries(data.get("skills", []), source)

        rules: list[SkillRuleConfig] = []
        for index, entry in enumerate(entries):
            rule_id = str(entry.get("id") or f"#{index}")
            try:
                rule = SkillRuleConfig.model_validate(entry)
            except ValidationError as e:
                first = e.errors()[0]
                raise ConfigError(
                    first.get("msg", "invalid value"),
                    rule_id=rule_id,
                    field=_error_field(first),
                    source=source,
                ) from e
            _check_rule(rule, source)
            rules.append(rule)

        document = SkillRulesFile(version=str(data.get("version", "1.0")), skills=rules)
        return cls(document.skills, source=source, version=document.version)

    @property
    def rules(self) -> tuple[SkillRuleConfig, ...]:
        return self._rules

    def get(self, skill_id: str) -> SkillRuleConfig | None:
        position = self._index.get(skill_id)
        return None if position is None else self._rules[position]

    def index_of(self, skill_id: str) -> int:
        """Declaration position of a rule (len(store) for unknown ids)."""
        return self._index.get(skill_id, len(self._rules))

    def guardrails(self) -> list[SkillRuleConfig]:
        """Enforcement-capable rules, in declaration order."""
        return [rule for rule in self._rules if rule.is_guardrail]

    def __len__(self) -> int:
        return len(self._rules)

    def __iter__(self) -> Iterator[SkillRuleConfig]:
        return iter(self._rules)
