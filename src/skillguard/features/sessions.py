"""
Session context — per-session state persisted between hook invocations.

Each session is saved in `<state_dir>/<session_id>.json`. The state is an
advisory cache: it feeds repeat suppression and the end-of-turn reminder.
Concurrent invocations do read-modify-write with last-writer-wins; files
are replaced atomically so a reader never sees a torn file.

A missing, unreadable or corrupt file is treated as an empty session. The
tracker never propagates I/O errors to the hook.
"""

import json
import os
import re
import tempfile
import time
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable

import structlog

if TYPE_CHECKING:
    from ..core.events import ActivationEvent
    from ..core.activation import ActivationResult
    from ..core.guardrails import EnforcementDecision

logger = structlog.get_logger()

__all__ = [
    "FileTouch",
    "GuardrailRecord",
    "SessionContextTracker",
    "SessionState",
    "SkillActivation",
    "StateIOError",
]

_UNSAFE_ID_RE = re.compile(r"[^A-Za-z0-9._-]")


class StateIOError(OSError):
    """The session state file cannot be read or written."""


@dataclass
class FileTouch:
    path: str
    timestamp: float


@dataclass
class SkillActivation:
    skill_id: str
    reason: str  # "path" | "keyword" | "both"
    timestamp: float


@dataclass
class GuardrailRecord:
    skill_id: str
    outcome: str  # "allow" | "warn" | "block"
    file_path: str
    bypass: str | None
    violations: int
    timestamp: float


@dataclass
class SessionState:
    """Serializable state of one host session."""

    session_id: str
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)
    recent_files: list[FileTouch] = field(default_factory=list)
    recent_activations: list[SkillActivation] = field(default_factory=list)
    recent_decisions: list[GuardrailRecord] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dict."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SessionState":
        """Create an instance from a deserialized dict.

        Raises:
            KeyError, TypeError, ValueError: If the data is not a session state.
        """
        return cls(
            session_id=str(data["session_id"]),
            created_at=float(data.get("created_at", 0.0)),
            updated_at=float(data.get("updated_at", 0.0)),
            recent_files=[
                FileTouch(path=str(item["path"]), timestamp=float(item["timestamp"]))
                for item in data.get("recent_files", [])
            ],
            recent_activations=[
                SkillActivation(
                    skill_id=str(item["skill_id"]),
                    reason=str(item["reason"]),
                    timestamp=float(item["timestamp"]),
                )
                for item in data.get("recent_activations", [])
            ],
            recent_decisions=[
                GuardrailRecord(
                    skill_id=str(item["skill_id"]),
                    outcome=str(item["outcome"]),
                    file_path=str(item["file_path"]),
                    bypass=None if item.get("bypass") is None else str(item["bypass"]),
                    violations=int(item.get("violations", 0)),
                    timestamp=float(item["timestamp"]),
                )
                for item in data.get("recent_decisions", [])
            ],
        )

    def last_activation(self, skill_id: str) -> SkillActivation | None:
        """Most recent activation of a skill, if any."""
        for activation in reversed(self.recent_activations):
            if activation.skill_id == skill_id:
                return activation
        return None

    def file_paths(self) -> list[str]:
        return [touch.path for touch in self.recent_files]


class SessionContextTracker:
    """Loads, updates and persists SessionState files.

    Args:
        state_dir: Directory holding one JSON file per session.
        retention_seconds: Entries older than this are pruned on load.
        max_entries: Maximum entries kept per list.
        clock: Time source, injectable for tests.
    """

    def __init__(
        self,
        state_dir: str | Path,
        retention_seconds: float = 86400,
        max_entries: int = 200,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.state_dir = Path(state_dir)
        self.retention_seconds = retention_seconds
        self.max_entries = max_entries
        self.clock = clock
        self.log = logger.bind(component="sessions")

    def path_for(self, session_id: str) -> Path:
        """State file of a session; the id is sanitized into a file name."""
        safe = _UNSAFE_ID_RE.sub("_", session_id)[:128].lstrip(".") or "default"
        return self.state_dir / f"{safe}.json"

    # -- raw I/O ------------------------------------------------------------

    def _read(self, path: Path) -> dict[str, Any] | None:
        if not path.exists():
            return None
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError) as e:
            raise StateIOError(f"cannot read {path}: {e}") from e

    def _write(self, path: Path, data: dict[str, Any]) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=str(path.parent), prefix=".tmp-", suffix=".json")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(data, f, indent=2, ensure_ascii=False)
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise StateIOError(f"cannot write {path}: {e}") from e

    # -- public API ---------------------------------------------------------

    def load(self, session_id: str) -> SessionState:
        """Load a session, pruned to the retention window.

        Returns an empty state when the file is missing, unreadable or corrupt.
        """
        path = self.path_for(session_id)
        try:
            data = self._read(path)
        except StateIOError as e:
            self.log.warning("session.state_io_error", session_id=session_id, error=str(e))
            data = None
        except json.JSONDecodeError as e:
            self.log.warning("session.corrupt_state", session_id=session_id, error=str(e))
            data = None

        if data is None:
            now = self.clock()
            return SessionState(session_id=session_id, created_at=now, updated_at=now)

        try:
            state = SessionState.from_dict(data)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            self.log.warning("session.corrupt_state", session_id=session_id, error=str(e))
            now = self.clock()
            return SessionState(session_id=session_id, created_at=now, updated_at=now)

        state.session_id = session_id
        return self.prune(state, self.retention_seconds)

    def prune(self, state: SessionState, retention_window: float) -> SessionState:
        """Drop entries older than the retention window and cap list sizes.

        Args:
            state: State to prune (not modified).
            retention_window: Maximum entry age in seconds.

        Returns:
            A new, pruned SessionState.
        """
        cutoff = self.clock() - retention_window
        limit = self.max_entries
        return SessionState(
            session_id=state.session_id,
            created_at=state.created_at,
            updated_at=state.updated_at,
            recent_files=[t for t in state.recent_files if t.timestamp >= cutoff][-limit:],
            recent_activations=[
                a for a in state.recent_activations if a.timestamp >= cutoff
            ][-limit:],
            recent_decisions=[
                d for d in state.recent_decisions if d.timestamp >= cutoff
            ][-limit:],
        )

    def save(self, state: SessionState) -> None:
        """Persist a session. Failures are logged, never raised."""
        state.updated_at = self.clock()
        try:
            self._write(self.path_for(state.session_id), state.to_dict())
        except StateIOError as e:
            self.log.warning("session.state_io_error", session_id=state.session_id, error=str(e))
            return
        self.log.debug(
            "session.saved",
            session_id=state.session_id,
            files=len(state.recent_files),
            activations=len(state.recent_activations),
        )

    def record(
        self,
        event: "ActivationEvent",
        result: "ActivationResult | None" = None,
        decisions: "list[EnforcementDecision] | None" = None,
        state: SessionState | None = None,
    ) -> SessionState:
        """Record an event, its activations and guardrail decisions.

        Args:
            event: The processed event.
            result: Activation result for the event, if any.
            decisions: Guardrail decisions for the event, if any.
            state: Already loaded state; loaded from disk when None.

        Returns:
            The updated (and saved) state.
        """
        if state is None:
            state = self.load(event.session_id)
        now = self.clock()

        if event.file_path:
            state.recent_files = [t for t in state.recent_files if t.path != event.file_path]
            state.recent_files.append(FileTouch(path=event.file_path, timestamp=now))

        if result is not None:
            for match in result.matches:
                state.recent_activations.append(
                    SkillActivation(
                        skill_id=match.skill_id,
                        reason=match.match_reason.value,
                        timestamp=now,
                    )
                )

        for decision in decisions or []:
            state.recent_decisions.append(
                GuardrailRecord(
                    skill_id=decision.skill_id,
                    outcome=decision.outcome.value,
                    file_path=decision.file_path,
                    bypass=decision.bypass,
                    violations=len(decision.violations),
                    timestamp=now,
                )
            )

        limit = self.max_entries
        state.recent_files = state.recent_files[-limit:]
        state.recent_activations = state.recent_activations[-limit:]
        state.recent_decisions = state.recent_decisions[-limit:]

        self.save(state)
        return state

    def summarize(self, state: SessionState, max_items: int = 10) -> str:
        """Human-readable summary of a session."""
        lines = [
            f"Session {state.session_id}: {len(state.recent_files)} file(s) touched, "
            f"{len(state.recent_activations)} skill activation(s), "
            f"{len(state.recent_decisions)} guardrail decision(s)."
        ]
        if state.recent_files:
            lines.append("Recent files:")
            lines.extend(f"  - {t.path}" for t in state.recent_files[-max_items:])
        if state.recent_activations:
            lines.append("Activated skills:")
            seen: dict[str, str] = {}
            for activation in state.recent_activations:
                seen[activation.skill_id] = activation.reason
            lines.extend(f"  - {skill} ({reason})" for skill, reason in list(seen.items())[-max_items:])
        if state.recent_decisions:
            lines.append("Guardrail decisions:")
            for record in state.recent_decisions[-max_items:]:
                suffix = f", bypass={record.bypass}" if record.bypass else ""
                lines.append(
                    f"  - {record.skill_id}: {record.outcome} {record.file_path} "
                    f"({record.violations} violation(s){suffix})"
                )
        return "\n".join(lines)

    def cleanup(self, older_than_days: int = 7) -> int:
        """Remove session files not updated in the last N days.

        Returns:
            Number of session files deleted.
        """
        if not self.state_dir.exists():
            return 0

        cutoff = self.clock() - (older_than_days * 86400)
        removed = 0
        for path in self.state_dir.glob("*.json"):
            try:
                if path.stat().st_mtime < cutoff:
                    path.unlink()
                    removed += 1
            except OSError:
                continue

        if removed > 0:
            self.log.info("session.cleanup", removed=removed, older_than_days=older_than_days)
        return removed

    def delete(self, session_id: str) -> bool:
        """Delete a session file. True if it existed."""
        path = self.path_for(session_id)
        if path.exists():
            path.unlink()
            self.log.info("session.deleted", session_id=session_id)
            return True
        return False
