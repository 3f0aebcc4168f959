"""
Error-handling reminder — end-of-turn self-check for risky edits.

Runs on the host's Stop event. Looks at the files touched in the session,
detects code that usually needs careful error handling (try/catch blocks,
async code, database access, controllers, API routes) and returns a short
list of questions the assistant should answer before finishing.

The reminder is skipped when the configured env var (SKIP_ERROR_REMINDER by
default) is set.
"""

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import structlog

from .sessions import SessionState

logger = structlog.get_logger()

__all__ = [
    "RISK_CATEGORIES",
    "Reminder",
    "RiskCategory",
    "build_reminder",
    "detect_risks",
]

CODE_EXTENSIONS = frozenset(
    {".ts", ".tsx", ".js", ".jsx", ".mjs", ".cjs", ".py", ".go", ".java", ".kt", ".rb", ".rs", ".cs"}
)
MAX_FILE_BYTES = 512 * 1024


@dataclass(frozen=True)
class RiskCategory:
    """A family of code patterns and the question to ask about them."""

    name: str
    question: str
    content_patterns: tuple[str, ...] = ()
    path_patterns: tuple[str, ...] = ()


RISK_CATEGORIES: tuple[RiskCategory, ...] = (
    RiskCategory(
        name="error-handling",
        question="Are caught errors reported or re-raised instead of silently swallowed?",
        content_patterns=(r"\btry\s*[:{]", r"\bcatch\s*\(", r"\bexcept\b"),
    ),
    RiskCategory(
        name="async",
        question="Are rejected promises / failed awaits handled?",
        content_patterns=(r"\basync\s+(def|function|\()", r"\bawait\b", r"\.then\s*\("),
    ),
    RiskCategory(
        name="database",
        question="Are database failures handled and transactions rolled back?",
        content_patterns=(
            r"\bprisma\.",
            r"\.(findMany|findUnique|findFirst|create|update|delete|upsert)\s*\(",
            r"\b(session|cursor)\.(execute|commit)\s*\(",
            r"\bSELECT\b.+\bFROM\b",
        ),
    ),
    RiskCategory(
        name="controller",
        question="Do controllers return proper error responses and log failures?",
        content_patterns=(r"\bclass\s+\w*Controller\b", r"@Controller\b"),
        path_patterns=(r"(^|/)controllers?/",),
    ),
    RiskCategory(
        name="api-route",
        question="Do API routes validate input and map errors to status codes?",
        content_patterns=(r"\b(router|app)\.(get|post|put|patch|delete)\s*\(", r"@(app|router)\.(get|post|put|patch|delete)\b"),
        path_patterns=(r"(^|/)(routes?|api)/",),
    ),
)


@dataclass
class Reminder:
    """Files with risky code and the questions to ask about them."""

    files: dict[str, list[str]] = field(default_factory=dict)
    skip_env_var: str = "SKIP_ERROR_REMINDER"

    @property
    def categories(self) -> list[str]:
        names: list[str] = []
        for found in self.files.values():
            for name in found:
                if name not in names:
                    names.append(name)
        return names

    def render(self) -> str:
        questions = {c.name: c.question for c in RISK_CATEGORIES}
        lines = ["ERROR HANDLING SELF-CHECK", ""]
        lines.append("Changed files with risky patterns:")
        for path, found in self.files.items():
            lines.append(f"  - {path} ({', '.join(found)})")
        lines.append("")
        for name in self.categories:
            lines.append(f"  ? {questions[name]}")
        lines.append("")
        lines.append(f"Set {self.skip_env_var}=1 to disable this reminder.")
        return "\n".join(lines)

    def to_dict(self) -> dict[str, Any]:
        return {"files": dict(self.files), "categories": self.categories, "reminder": self.render()}


def detect_risks(path: str, content: str) -> list[str]:
    """Names of the risk categories present in a file."""
    normalized = path.replace("\\", "/")
    found: list[str] = []
    for category in RISK_CATEGORIES:
        if any(re.search(p, normalized) for p in category.path_patterns) or any(
            re.search(p, content) for p in category.content_patterns
        ):
            found.append(category.name)
    return found


def _read_code_file(path: Path) -> str | None:
    if path.suffix.lower() not in CODE_EXTENSIONS:
        return None
    try:
        if path.stat().st_size > MAX_FILE_BYTES:
            return None
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        return None


def build_reminder(
    state: SessionState,
    env: Mapping[str, str],
    skip_env_var: str = "SKIP_ERROR_REMINDER",
    max_files: int = 20,
) -> Reminder | None:
    """Build the reminder for the files touched in a session.

    Args:
        state: Session whose recent files are inspected.
        env: Environment, checked for the skip variable.
        skip_env_var: Variable that disables the reminder.
        max_files: Only the most recent files are inspected.

    Returns:
        The reminder, or None if skipped or nothing risky was touched.
    """
    if skip_env_var and env.get(skip_env_var):
        logger.debug("reminder.skipped", env_var=skip_env_var)
        return None

    reminder = Reminder(skip_env_var=skip_env_var or "SKIP_ERROR_REMINDER")
    for file_path in reversed(state.file_paths()[-max_files:]):
        content = _read_code_file(Path(file_path))
        if content is None:
            continue
        found = detect_risks(file_path, content)
        if found:
            reminder.files[file_path] = found

    if not reminder.files:
        return None
    logger.info("reminder.built", files=len(reminder.files), categories=reminder.categories)
    return reminder
