"""
Pydantic models for skillguard configuration.

Two families of schemas live here:
- Engine settings (AppConfig and its sections), loaded from an optional
  YAML file, environment variables and CLI flags.
- The skill rules file (skill-rules.json), validated shape-first here and
  semantically (globs, regexes, unique ids) by the RuleStore.
"""

import os
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator

DEFAULT_RULES_PATH = Path(".claude/skills/skill-rules.json")


# -- Engine settings --------------------------------------------------------


class RulesConfig(BaseModel):
    """Location of the skill rules file."""

    path: Path | None = Field(
        default=None,
        description=(
            "Path to skill-rules.json. Relative paths resolve against the "
            "workspace root. None = .claude/skills/skill-rules.json"
        ),
    )

    model_config = {"extra": "forbid"}


class WorkspaceConfig(BaseModel):
    """Workspace (project root) configuration."""

    root: Path = Field(
        default=Path("."),
        validate_default=True,
        description="Project root. Made absolute against the current directory; symlinks are kept.",
    )

    model_config = {"extra": "forbid"}

    @field_validator("root")
    @classmethod
    def _absolute_root(cls, value: Path) -> Path:
        return Path(os.path.abspath(value))


class SessionsConfig(BaseModel):
    """Per-session state persistence.

    Session state is an advisory cache: it drives repeat suppression and the
    end-of-turn reminder, never a guardrail decision.
    """

    enabled: bool = Field(
        default=True,
        description="If False, no session state is read or written.",
    )
    state_dir: Path = Field(
        default=Path(".claude/skillguard/sessions"),
        description="Directory for <session_id>.json files (relative to the workspace root).",
    )
    repeat_window_seconds: int = Field(
        default=600,
        ge=0,
        description="A skill re-activated within this window is suppressed.",
    )
    retention_seconds: int = Field(
        default=86400,
        ge=1,
        description="Entries older than this are pruned when the state is read.",
    )
    max_entries: int = Field(
        default=200,
        ge=1,
        le=10000,
        description="Maximum entries kept per list in the session state.",
    )
    cleanup_after_days: int = Field(
        default=7,
        ge=1,
        le=365,
        description="Days after which whole session files are removed by `cleanup`.",
    )

    model_config = {"extra": "forbid"}


class ReminderConfig(BaseModel):
    """End-of-turn error-handling reminder."""

    enabled: bool = True
    skip_env_var: str = Field(
        default="SKIP_ERROR_REMINDER",
        description="If this env var is set, the reminder is skipped.",
    )
    max_files: int = Field(default=20, ge=1, le=500)

    model_config = {"extra": "forbid"}


class LoggingConfig(BaseModel):
    """Logging system configuration."""

    level: Literal["debug", "info", "warn", "error"] = "warn"
    file: Path | None = None
    verbose: int = 0

    model_config = {"extra": "forbid"}


class AppConfig(BaseModel):
    """Complete engine configuration.

    This is the root of the settings tree and the entry point for validation.
    """

    rules: RulesConfig = Field(default_factory=RulesConfig)
    workspace: WorkspaceConfig = Field(default_factory=WorkspaceConfig)
    sessions: SessionsConfig = Field(default_factory=SessionsConfig)
    reminder: ReminderConfig = Field(default_factory=ReminderConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"extra": "forbid"}

    def rules_path(self) -> Path:
        """Resolve the rules file against the workspace root."""
        path = self.rules.path or DEFAULT_RULES_PATH
        return path if path.is_absolute() else self.workspace.root / path

    def state_dir(self) -> Path:
        """Resolve the session state directory against the workspace root."""
        path = self.sessions.state_dir
        return path if path.is_absolute() else self.workspace.root / path


# -- skill-rules.json -------------------------------------------------------


class EnforcementConfig(BaseModel):
    """Guardrail part of a skill rule.

    Its presence turns the skill into a guardrail that can block an edit.
    """

    forbidden_patterns: list[str] = Field(
        default_factory=list,
        alias="forbiddenPatterns",
        description="Regexes scanned line by line in the proposed file content.",
    )
    allowed_replacement_hint: str = Field(
        default="",
        alias="allowedReplacementHint",
        description="What to write instead, shown when the edit is blocked.",
    )
    bypass_marker: str = Field(
        default="",
        alias="bypassMarker",
        description="In-file token that opts a single file out (e.g. '// @skip-validation').",
    )
    disable_env_var: str = Field(
        default="",
        alias="disableEnvVar",
        description="Env var that disables this guardrail for every file.",
    )
    level: Literal["block", "warn"] = Field(
        default="block",
        description="'block' rejects the edit, 'warn' lets it through with a message.",
    )
    block_message: str = Field(
        default="",
        alias="blockMessage",
        description="Optional message template; {file_path} and {skill_id} are substituted.",
    )

    model_config = {"extra": "forbid", "populate_by_name": True}


class SkillRuleConfig(BaseModel):
    """Activation (and optionally enforcement) rules of one skill."""

    id: str = Field(default="", description="Unique skill slug")
    description: str = ""
    type: Literal["domain", "guardrail"] = "domain"
    priority: Literal["critical", "high", "medium", "low"] = "medium"
    path_patterns: list[str] = Field(default_factory=list, alias="pathPatterns")
    path_exclusions: list[str] = Field(default_factory=list, alias="pathExclusions")
    content_patterns: list[str] = Field(default_factory=list, alias="contentPatterns")
    keywords: list[str] = Field(default_factory=list)
    intent_patterns: list[str] = Field(default_factory=list, alias="intentPatterns")
    enforcement: EnforcementConfig | None = None

    model_config = {"extra": "forbid", "populate_by_name": True}

    @field_validator("id")
    @classmethod
    def _strip_id(cls, value: str) -> str:
        return value.strip()

    @property
    def is_guardrail(self) -> bool:
        return self.enforcement is not None


class SkillRulesFile(BaseModel):
    """Top level of skill-rules.json."""

    version: str = "1.0"
    skills: list[SkillRuleConfig] = Field(default_factory=list)

    model_config = {"extra": "forbid"}
