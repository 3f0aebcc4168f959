"""
Hook events — parsing of the JSON payloads the host writes to stdin.

Prompt payload:
    {"session_id": "...", "prompt": "..."}

Tool payload (PreToolUse):
    {"session_id": "...", "tool_name": "Write" | "Edit" | "MultiEdit",
     "tool_input": {"file_path": "...", ...}}

For Edit and MultiEdit the host only sends the replaced fragments. The
post-edit content is rebuilt from the file on disk so that violations get
real line numbers; when that is not possible only the new fragments are
scanned.
"""

import json
import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import IO, Any

import structlog

logger = structlog.get_logger()

__all__ = [
    "ActivationEvent",
    "EDIT_TOOLS",
    "EventError",
    "EventKind",
    "parse_prompt_event",
    "parse_tool_event",
    "read_payload",
    "session_id_of",
]

EDIT_TOOLS = frozenset({"Write", "Edit", "MultiEdit"})
DEFAULT_SESSION_ID = "default"


class EventError(ValueError):
    """The hook payload is malformed."""


class EventKind(Enum):
    """What triggered the hook."""

    PROMPT = "prompt"
    FILE_EDIT = "fileEdit"


@dataclass(frozen=True)
class ActivationEvent:
    """One prompt submission or one proposed file edit.

    Exactly one of prompt_text / file_path is populated, depending on kind.
    """

    kind: EventKind
    session_id: str
    prompt_text: str | None = None
    file_path: str | None = None
    file_content: str | None = None
    tool_name: str | None = None

    def __post_init__(self) -> None:
        if self.kind is EventKind.PROMPT:
            if self.prompt_text is None or self.file_path is not None:
                raise EventError("prompt events carry prompt_text and no file_path")
        elif self.file_path is None or self.prompt_text is not None:
            raise EventError("fileEdit events carry file_path and no prompt_text")

    @classmethod
    def prompt(cls, session_id: str, text: str) -> "ActivationEvent":
        return cls(EventKind.PROMPT, session_id, prompt_text=text)

    @classmethod
    def file_edit(
        cls,
        session_id: str,
        file_path: str,
        content: str | None = None,
        tool_name: str | None = None,
    ) -> "ActivationEvent":
        return cls(
            EventKind.FILE_EDIT,
            session_id,
            file_path=file_path,
            file_content=content,
            tool_name=tool_name,
        )


def read_payload(stream: IO[str]) -> dict[str, Any]:
    """Read a single JSON object from a stream.

    Raises:
        EventError: If the input is empty, not JSON, or not an object.
    """
    raw = stream.read()
    if not raw.strip():
        raise EventError("empty hook payload on stdin")
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise EventError(f"hook payload is not valid JSON: {e.msg}") from e
    if not isinstance(data, dict):
        raise EventError("hook payload must be a JSON object")
    return data


def session_id_of(payload: dict[str, Any]) -> str:
    session_id = payload.get("session_id")
    if isinstance(session_id, str) and session_id.strip():
        return session_id.strip()
    return DEFAULT_SESSION_ID


def parse_prompt_event(payload: dict[str, Any]) -> ActivationEvent:
    """Build a prompt event from a UserPromptSubmit payload.

    Raises:
        EventError: If the payload has no prompt string.
    """
    prompt = payload.get("prompt")
    if not isinstance(prompt, str):
        raise EventError("prompt payload requires a 'prompt' string")
    return ActivationEvent.prompt(session_id_of(payload), prompt)


def _read_current(path: Path) -> str | None:
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        return None


def _apply_replacement(current: str | None, edit: dict[str, Any]) -> str | None:
    """Apply one old_string -> new_string replacement, None if it does not apply."""
    old = edit.get("old_string")
    new = edit.get("new_string")
    if current is None or not isinstance(old, str) or not isinstance(new, str):
        return None
    if not old or old not in current:
        return None
    if edit.get("replace_all"):
        return current.replace(old, new)
    return current.replace(old, new, 1)


def _fragments(edits: list[dict[str, Any]]) -> str:
    return "\n".join(str(e.get("new_string", "")) for e in edits)


def _proposed_content(tool_name: str, tool_input: dict[str, Any], path: Path) -> str:
    if tool_name == "Write":
        content = tool_input.get("content", "")
        if not isinstance(content, str):
            raise EventError("Write payload requires a 'content' string")
        return content

    if tool_name == "Edit":
        edits = [tool_input]
    else:
        edits = tool_input.get("edits")
        if not isinstance(edits, list) or not all(isinstance(e, dict) for e in edits):
            raise EventError("MultiEdit payload requires an 'edits' list")

    current = _read_current(path)
    for edit in edits:
        current = _apply_replacement(current, edit)
        if current is None:
            logger.debug("event.edit_not_applicable", file=str(path), tool=tool_name)
            return _fragments(edits)
    return current if current is not None else _fragments(edits)


def parse_tool_event(
    payload: dict[str, Any], project_root: str | Path = "."
) -> ActivationEvent | None:
    """Build a fileEdit event from a PreToolUse payload.

    Args:
        payload: Decoded hook payload.
        project_root: Root used to resolve relative file paths.

    Returns:
        The event, or None when the tool does not write files.

    Raises:
        EventError: If a file-writing payload is malformed.
    """
    tool_name = payload.get("tool_name")
    if tool_name not in EDIT_TOOLS:
        return None

    tool_input = payload.get("tool_input")
    if not isinstance(tool_input, dict):
        raise EventError(f"{tool_name} payload requires a 'tool_input' object")
    file_path = tool_input.get("file_path")
    if not isinstance(file_path, str) or not file_path:
        raise EventError(f"{tool_name} payload requires 'tool_input.file_path'")

    path = Path(file_path)
    if not path.is_absolute():
        path = Path(os.path.abspath(project_root)) / path

    content = _proposed_content(tool_name, tool_input, path)
    return ActivationEvent.file_edit(
        session_id_of(payload), str(path), content=content, tool_name=tool_name
    )
