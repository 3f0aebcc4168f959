"""
Core of skillguard — hook events, skill activation and guardrail enforcement.
"""

from .activation import (
    ActivationEngine,
    ActivationResult,
    MatchReason,
    SkillMatch,
    render_activation,
)
from .events import (
    ActivationEvent,
    EventError,
    EventKind,
    parse_prompt_event,
    parse_tool_event,
    read_payload,
)
from .guardrails import (
    EnforcementDecision,
    GuardrailEnforcer,
    Outcome,
    Violation,
    format_decision,
    most_severe,
)

__all__ = [
    "ActivationEngine",
    "ActivationEvent",
    "ActivationResult",
    "EnforcementDecision",
    "EventError",
    "EventKind",
    "GuardrailEnforcer",
    "MatchReason",
    "Outcome",
    "SkillMatch",
    "Violation",
    "format_decision",
    "most_severe",
    "parse_prompt_event",
    "parse_tool_event",
    "read_payload",
    "render_activation",
]
