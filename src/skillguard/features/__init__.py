"""
Session-level features — persisted session context and the end-of-turn
error-handling reminder.
"""

from .reminder import Reminder, build_reminder, detect_risks
from .sessions import SessionContextTracker, SessionState, StateIOError

__all__ = [
    "Reminder",
    "SessionContextTracker",
    "SessionState",
    "StateIOError",
    "build_reminder",
    "detect_risks",
]
