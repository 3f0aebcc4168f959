"""
Tests for hook payload parsing.

Covers:
- read_payload: empty, invalid and non-object input
- prompt payloads and the session id default
- Write / Edit / MultiEdit payloads, content rebuilt from the file on disk
- non-edit tools are ignored
- ActivationEvent invariant (prompt text xor file path)
"""

import io
from pathlib import Path

import pytest

from skillguard.core.events import (
    ActivationEvent,
    EventError,
    EventKind,
    parse_prompt_event,
    parse_tool_event,
    read_payload,
)


class TestReadPayload:
    def test_reads_object(self):
        assert read_payload(io.StringIO('{"prompt": "hi"}')) == {"prompt": "hi"}

    @pytest.mark.parametrize("raw", ["", "   \n", "{oops", "[1, 2]", '"text"'])
    def test_rejects_bad_input(self, raw: str):
        with pytest.raises(EventError):
            read_payload(io.StringIO(raw))


class TestPromptEvents:
    def test_prompt_event(self):
        event = parse_prompt_event({"session_id": "abc", "prompt": "Add a route"})
        assert event.kind is EventKind.PROMPT
        assert event.session_id == "abc"
        assert event.prompt_text == "Add a route"
        assert event.file_path is None

    def test_missing_session_id_defaults(self):
        assert parse_prompt_event({"prompt": "x"}).session_id == "default"

    def test_missing_prompt(self):
        with pytest.raises(EventError):
            parse_prompt_event({"session_id": "abc"})


class TestToolEvents:
    def test_write(self, tmp_path: Path):
        payload = {
            "session_id": "abc",
            "tool_name": "Write",
            "tool_input": {"file_path": "src/App.tsx", "content": "<Grid xs={6}>"},
        }
        event = parse_tool_event(payload, tmp_path)
        assert event.kind is EventKind.FILE_EDIT
        assert event.file_path == str(tmp_path / "src" / "App.tsx")
        assert event.file_content == "<Grid xs={6}>"
        assert event.tool_name == "Write"

    def test_relative_root_gives_absolute_path(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ):
        monkeypatch.chdir(tmp_path)
        payload = {"tool_name": "Write", "tool_input": {"file_path": "src/App.tsx", "content": ""}}
        event = parse_tool_event(payload, "proj")
        assert event.file_path == str(tmp_path / "proj" / "src" / "App.tsx")

    def test_absolute_path_is_kept(self, tmp_path: Path):
        target = tmp_path / "a.ts"
        payload = {"tool_name": "Write", "tool_input": {"file_path": str(target), "content": ""}}
        assert parse_tool_event(payload, "/elsewhere").file_path == str(target)

    def test_edit_rebuilds_content(self, tmp_path: Path):
        target = tmp_path / "App.tsx"
        target.write_text("line one\n<Grid size={6}>\nline three\n", encoding="utf-8")
        payload = {
            "tool_name": "Edit",
            "tool_input": {
                "file_path": str(target),
                "old_string": "<Grid size={6}>",
                "new_string": "<Grid xs={6}>",
            },
        }
        event = parse_tool_event(payload, tmp_path)
        assert event.file_content == "line one\n<Grid xs={6}>\nline three\n"

    def test_edit_replace_all(self, tmp_path: Path):
        target = tmp_path / "a.txt"
        target.write_text("a a a", encoding="utf-8")
        payload = {
            "tool_name": "Edit",
            "tool_input": {
                "file_path": str(target),
                "old_string": "a",
                "new_string": "b",
                "replace_all": True,
            },
        }
        assert parse_tool_event(payload, tmp_path).file_content == "b b b"

    def test_edit_on_missing_file_uses_fragment(self, tmp_path: Path):
        payload = {
            "tool_name": "Edit",
            "tool_input": {
                "file_path": "new.tsx",
                "old_string": "x",
                "new_string": "<Grid xs={6}>",
            },
        }
        assert parse_tool_event(payload, tmp_path).file_content == "<Grid xs={6}>"

    def test_multi_edit_applies_in_order(self, tmp_path: Path):
        target = tmp_path / "a.txt"
        target.write_text("one two", encoding="utf-8")
        payload = {
            "tool_name": "MultiEdit",
            "tool_input": {
                "file_path": str(target),
                "edits": [
                    {"old_string": "one", "new_string": "1"},
                    {"old_string": "two", "new_string": "2"},
                ],
            },
        }
        assert parse_tool_event(payload, tmp_path).file_content == "1 2"

    def test_multi_edit_falls_back_to_fragments(self, tmp_path: Path):
        target = tmp_path / "a.txt"
        target.write_text("one two", encoding="utf-8")
        payload = {
            "tool_name": "MultiEdit",
            "tool_input": {
                "file_path": str(target),
                "edits": [
                    {"old_string": "one", "new_string": "1"},
                    {"old_string": "absent", "new_string": "X"},
                ],
            },
        }
        assert parse_tool_event(payload, tmp_path).file_content == "1\nX"

    def test_non_edit_tool_is_ignored(self, tmp_path: Path):
        payload = {"tool_name": "Bash", "tool_input": {"command": "ls"}}
        assert parse_tool_event(payload, tmp_path) is None

    @pytest.mark.parametrize(
        "payload",
        [
            {"tool_name": "Write"},
            {"tool_name": "Write", "tool_input": {"content": "x"}},
            {"tool_name": "Write", "tool_input": {"file_path": "a", "content": 3}},
            {"tool_name": "MultiEdit", "tool_input": {"file_path": "a", "edits": "x"}},
        ],
    )
    def test_malformed_payloads(self, tmp_path: Path, payload: dict):
        with pytest.raises(EventError):
            parse_tool_event(payload, tmp_path)


class TestActivationEvent:
    def test_prompt_cannot_carry_file(self):
        with pytest.raises(EventError):
            ActivationEvent(EventKind.PROMPT, "s", prompt_text="x", file_path="a")

    def test_file_edit_requires_path(self):
        with pytest.raises(EventError):
            ActivationEvent(EventKind.FILE_EDIT, "s")

    def test_events_are_frozen(self):
        event = ActivationEvent.prompt("s", "x")
        with pytest.raises(AttributeError):
            event.prompt_text = "y"
