"""
Tests for SessionContextTracker.

Covers:
- missing, corrupt and unreadable state files load as empty sessions
- record: files, activations and guardrail decisions
- prune by retention window and max_entries
- atomic save, failures logged instead of raised
- summarize, cleanup and delete
- session id sanitization
"""

import json
import os
import time
from pathlib import Path

import pytest

from skillguard.core.activation import ActivationResult, MatchReason, SkillMatch
from skillguard.core.events import ActivationEvent
from skillguard.core.guardrails import EnforcementDecision, Outcome, Violation
from skillguard.features.sessions import (
    FileTouch,
    SessionContextTracker,
    SessionState,
    SkillActivation,
)


class FakeClock:
    def __init__(self, now: float = 1_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def tracker(tmp_path: Path, clock: FakeClock) -> SessionContextTracker:
    return SessionContextTracker(
        tmp_path / "sessions", retention_seconds=3600, max_entries=5, clock=clock
    )


def _match(skill_id: str, reason: MatchReason = MatchReason.PATH) -> SkillMatch:
    return SkillMatch(skill_id, reason, reason.confidence, [])


# ── Tests: load ─────────────────────────────────────────────────────────


class TestLoad:
    def test_missing_file_is_empty(self, tracker: SessionContextTracker, clock: FakeClock):
        state = tracker.load("abc")
        assert state.session_id == "abc"
        assert state.recent_files == []
        assert state.created_at == clock.now

    def test_corrupt_json_is_empty(self, tracker: SessionContextTracker):
        path = tracker.path_for("abc")
        path.parent.mkdir(parents=True)
        path.write_text("{not json", encoding="utf-8")
        assert tracker.load("abc").recent_activations == []

    def test_wrong_shape_is_empty(self, tracker: SessionContextTracker):
        path = tracker.path_for("abc")
        path.parent.mkdir(parents=True)
        path.write_text(json.dumps({"recent_files": "nope"}), encoding="utf-8")
        assert tracker.load("abc").recent_files == []

    @pytest.mark.parametrize("timestamp", ["yesterday", None, [1]])
    def test_bad_timestamp_is_empty(self, tracker: SessionContextTracker, timestamp):
        path = tracker.path_for("s1")
        path.parent.mkdir(parents=True)
        data = {"session_id": "s1", "recent_files": [{"path": "a.ts", "timestamp": timestamp}]}
        path.write_text(json.dumps(data), encoding="utf-8")
        state = tracker.load("s1")
        assert state.session_id == "s1"
        assert state.recent_files == []

    def test_bad_activation_timestamp_does_not_break_record(
        self, tracker: SessionContextTracker
    ):
        path = tracker.path_for("s1")
        path.parent.mkdir(parents=True)
        data = {
            "session_id": "s1",
            "recent_activations": [{"skill_id": "a", "reason": "path", "timestamp": "soon"}],
        }
        path.write_text(json.dumps(data), encoding="utf-8")
        state = tracker.record(ActivationEvent.file_edit("s1", "/p/a.ts"))
        assert state.recent_activations == []
        assert tracker.load("s1").file_paths() == ["/p/a.ts"]

    def test_numeric_strings_are_converted(self, tracker: SessionContextTracker, clock: FakeClock):
        path = tracker.path_for("s1")
        path.parent.mkdir(parents=True)
        data = {"session_id": "s1", "recent_files": [{"path": "a.ts", "timestamp": str(clock.now)}]}
        path.write_text(json.dumps(data), encoding="utf-8")
        assert tracker.load("s1").recent_files == [FileTouch("a.ts", clock.now)]

    def test_list_payload_is_empty(self, tracker: SessionContextTracker):
        path = tracker.path_for("abc")
        path.parent.mkdir(parents=True)
        path.write_text("[1, 2, 3]", encoding="utf-8")
        assert tracker.load("abc").session_id == "abc"

    def test_roundtrip_through_disk(self, tracker: SessionContextTracker):
        tracker.record(ActivationEvent.file_edit("abc", "/p/a.ts"))
        reloaded = tracker.load("abc")
        assert reloaded.file_paths() == ["/p/a.ts"]
        assert isinstance(reloaded.recent_files[0], FileTouch)


# ── Tests: record ───────────────────────────────────────────────────────


class TestRecord:
    def test_records_file_activation_and_decision(
        self, tracker: SessionContextTracker, clock: FakeClock
    ):
        event = ActivationEvent.file_edit("s1", "/p/src/App.tsx", "<Grid xs={6}>")
        result = ActivationResult(matches=[_match("frontend")])
        decision = EnforcementDecision(
            "frontend",
            Outcome.BLOCK,
            "/p/src/App.tsx",
            violations=[Violation("x", 1, "<Grid xs={6}>")],
        )
        state = tracker.record(event, result, [decision])

        assert state.file_paths() == ["/p/src/App.tsx"]
        assert state.recent_activations == [SkillActivation("frontend", "path", clock.now)]
        record = state.recent_decisions[0]
        assert record.outcome == "block"
        assert record.violations == 1
        assert record.bypass is None
        assert tracker.path_for("s1").exists()

    def test_prompt_event_records_no_file(self, tracker: SessionContextTracker):
        event = ActivationEvent.prompt("s1", "backend guidelines")
        result = ActivationResult(matches=[_match("backend", MatchReason.KEYWORD)])
        state = tracker.record(event, result)
        assert state.recent_files == []
        assert state.last_activation("backend").reason == "keyword"

    def test_repeated_file_moves_to_end(self, tracker: SessionContextTracker, clock: FakeClock):
        tracker.record(ActivationEvent.file_edit("s1", "/p/a.ts"))
        clock.now += 1
        tracker.record(ActivationEvent.file_edit("s1", "/p/b.ts"))
        clock.now += 1
        state = tracker.record(ActivationEvent.file_edit("s1", "/p/a.ts"))
        assert state.file_paths() == ["/p/b.ts", "/p/a.ts"]

    def test_lists_are_capped(self, tracker: SessionContextTracker, clock: FakeClock):
        for i in range(8):
            clock.now += 1
            tracker.record(ActivationEvent.file_edit("s1", f"/p/{i}.ts"))
        state = tracker.load("s1")
        assert state.file_paths() == [f"/p/{i}.ts" for i in range(3, 8)]

    def test_last_activation_is_latest(self, tracker: SessionContextTracker, clock: FakeClock):
        tracker.record(
            ActivationEvent.prompt("s1", "x"),
            ActivationResult(matches=[_match("a", MatchReason.KEYWORD)]),
        )
        clock.now += 10
        state = tracker.record(
            ActivationEvent.file_edit("s1", "/p/a.ts"),
            ActivationResult(matches=[_match("a", MatchReason.BOTH)]),
        )
        assert state.last_activation("a").reason == "both"
        assert state.last_activation("missing") is None


# ── Tests: prune ────────────────────────────────────────────────────────


class TestPrune:
    def test_old_entries_dropped_on_load(self, tracker: SessionContextTracker, clock: FakeClock):
        tracker.record(ActivationEvent.file_edit("s1", "/p/old.ts"))
        clock.now += 3000
        tracker.record(ActivationEvent.file_edit("s1", "/p/new.ts"))
        clock.now += 1000
        assert tracker.load("s1").file_paths() == ["/p/new.ts"]

    def test_prune_returns_new_state(self, tracker: SessionContextTracker, clock: FakeClock):
        state = SessionState(
            session_id="s1",
            recent_files=[FileTouch("/p/a", clock.now - 100), FileTouch("/p/b", clock.now - 10)],
        )
        pruned = tracker.prune(state, retention_window=50)
        assert pruned.file_paths() == ["/p/b"]
        assert state.file_paths() == ["/p/a", "/p/b"]


# ── Tests: I/O failures ─────────────────────────────────────────────────


class TestFailures:
    def test_save_failure_is_logged_not_raised(self, tmp_path: Path, clock: FakeClock):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("file in the way")
        tracker = SessionContextTracker(blocker / "sessions", clock=clock)
        state = tracker.record(ActivationEvent.file_edit("s1", "/p/a.ts"))
        assert state.file_paths() == ["/p/a.ts"]
        assert not (blocker / "sessions").exists()

    def test_no_temp_files_left(self, tracker: SessionContextTracker):
        tracker.record(ActivationEvent.file_edit("s1", "/p/a.ts"))
        names = [p.name for p in tracker.state_dir.iterdir()]
        assert names == ["s1.json"]


# ── Tests: ids, summary, cleanup ────────────────────────────────────────


class TestMaintenance:
    def test_path_for_sanitizes(self, tracker: SessionContextTracker):
        assert tracker.path_for("../../etc/passwd").parent == tracker.state_dir
        assert tracker.path_for("a b/c").name == "a_b_c.json"
        assert tracker.path_for("").name == "default.json"

    def test_summarize(self, tracker: SessionContextTracker):
        state = tracker.record(
            ActivationEvent.file_edit("s1", "/p/src/App.tsx"),
            ActivationResult(matches=[_match("frontend")]),
            [EnforcementDecision("frontend", Outcome.ALLOW, "/p/src/App.tsx", bypass="marker")],
        )
        text = tracker.summarize(state)
        assert "Session s1: 1 file(s) touched" in text
        assert "/p/src/App.tsx" in text
        assert "frontend (path)" in text
        assert "bypass=marker" in text

    def test_cleanup_removes_old_files(self, tracker: SessionContextTracker, clock: FakeClock):
        tracker.record(ActivationEvent.file_edit("old", "/p/a.ts"))
        tracker.record(ActivationEvent.file_edit("new", "/p/a.ts"))
        old_time = clock.now - 10 * 86400
        os.utime(tracker.path_for("old"), (old_time, old_time))
        os.utime(tracker.path_for("new"), (clock.now, clock.now))

        assert tracker.cleanup(older_than_days=7) == 1
        assert not tracker.path_for("old").exists()
        assert tracker.path_for("new").exists()

    def test_cleanup_without_dir(self, tmp_path: Path):
        tracker = SessionContextTracker(tmp_path / "missing", clock=time.time)
        assert tracker.cleanup() == 0

    def test_delete(self, tracker: SessionContextTracker):
        tracker.record(ActivationEvent.file_edit("s1", "/p/a.ts"))
        assert tracker.delete("s1") is True
        assert tracker.delete("s1") is False
