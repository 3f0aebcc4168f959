"""
Main CLI for skillguard using Click.

Each hook subcommand is a one-shot process: read one JSON payload from
stdin, load settings and skill-rules.json, decide, write one JSON line to
stdout and exit. Logs and user-facing block messages go to stderr.

Hook wiring (host settings):
    UserPromptSubmit -> skillguard prompt
    PreToolUse       -> skillguard guard   (matcher: Write|Edit|MultiEdit)
    Stop             -> skillguard remind
"""

import json
import os
import sys
from pathlib import Path
from typing import Any, Callable, NoReturn

import click
from pydantic import ValidationError

from . import __version__
from .config import AppConfig, load_config
from .core import (
    ActivationEngine,
    EventError,
    GuardrailEnforcer,
    Outcome,
    most_severe,
    parse_prompt_event,
    parse_tool_event,
    read_payload,
    render_activation,
)
from .core.events import session_id_of
from .features import SessionContextTracker, build_reminder
from .logging import configure_logging
from .rules import ConfigError, PathMatcher, RuleStore

# Exit codes
EXIT_SUCCESS = 0
EXIT_FAILED = 1
EXIT_BLOCKED = 2
EXIT_CONFIG_ERROR = 3
EXIT_BAD_EVENT = 4


def _config_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Options shared by every subcommand."""
    options = [
        click.option(
            "-c",
            "--config",
            "config_path",
            type=click.Path(exists=True, dir_okay=False, path_type=Path),
            envvar="SKILLGUARD_CONFIG",
            default=None,
            help="Path to the YAML settings file",
        ),
        click.option(
            "--rules",
            type=click.Path(dir_okay=False),
            default=None,
            help="Path to skill-rules.json (default: .claude/skills/skill-rules.json)",
        ),
        click.option(
            "--project-root",
            type=click.Path(file_okay=False),
            default=None,
            help="Project root that glob patterns are relative to",
        ),
        click.option(
            "--state-dir",
            type=click.Path(file_okay=False),
            default=None,
            help="Directory for per-session state files",
        ),
        click.option("-v", "--verbose", count=True, help="Verbose logging on stderr (-v, -vv)"),
        click.option("--log-file", type=click.Path(dir_okay=False), default=None, help="JSON log file"),
        click.option("--quiet", is_flag=True, help="No log output on stderr"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _fail(message: str, code: int) -> NoReturn:
    click.echo(message, err=True)
    sys.exit(code)


def _bootstrap(kwargs: dict[str, Any]) -> AppConfig:
    """Load settings and configure logging. Exits with EXIT_CONFIG_ERROR on failure."""
    try:
        config = load_config(config_path=kwargs.get("config_path"), cli_args=kwargs)
    except FileNotFoundError as e:
        _fail(f"Configuration error: {e}", EXIT_CONFIG_ERROR)
    except ValidationError as e:
        _fail(f"Invalid settings:\n{e}", EXIT_CONFIG_ERROR)
    configure_logging(config.logging, quiet=bool(kwargs.get("quiet")))
    return config


def _load_rules(config: AppConfig) -> RuleStore:
    try:
        return RuleStore.load(config.rules_path())
    except ConfigError as e:
        _fail(f"Configuration error: {e}", EXIT_CONFIG_ERROR)


def _tracker(config: AppConfig) -> SessionContextTracker | None:
    if not config.sessions.enabled:
        return None
    return SessionContextTracker(
        config.state_dir(),
        retention_seconds=config.sessions.retention_seconds,
        max_entries=config.sessions.max_entries,
    )


def _read_event_payload() -> dict[str, Any]:
    try:
        return read_payload(sys.stdin)
    except EventError as e:
        _fail(f"Invalid hook payload: {e}", EXIT_BAD_EVENT)


def _emit(output: dict[str, Any]) -> None:
    click.echo(json.dumps(output, ensure_ascii=False))


@click.group()
@click.version_option(version=__version__, prog_name="skillguard")
def main() -> None:
    """skillguard — skill activation and guardrail hooks for coding assistants.

    Suggests documentation skills for prompts and edits, and blocks edits
    that reintroduce deprecated code patterns.
    """


@main.command()
@_config_options
def prompt(**kwargs: Any) -> None:
    """UserPromptSubmit hook: suggest skills relevant to the prompt."""
    config = _bootstrap(kwargs)
    store = _load_rules(config)
    payload = _read_event_payload()

    try:
        event = parse_prompt_event(payload)
    except EventError as e:
        _fail(f"Invalid hook payload: {e}", EXIT_BAD_EVENT)

    tracker = _tracker(config)
    state = tracker.load(event.session_id) if tracker else None

    engine = ActivationEngine(
        PathMatcher(config.workspace.root),
        repeat_window_seconds=config.sessions.repeat_window_seconds,
    )
    result = engine.activate(event, store, state)
    if tracker:
        tracker.record(event, result, state=state)

    output: dict[str, Any] = result.to_dict()
    context = render_activation(result, store)
    if context:
        output["hookSpecificOutput"] = {
            "hookEventName": "UserPromptSubmit",
            "additionalContext": context,
        }
    _emit(output)
    sys.exit(EXIT_SUCCESS)


@main.command()
@_config_options
def guard(**kwargs: Any) -> None:
    """PreToolUse hook: block edits that match a guardrail's forbidden patterns.

    Exit code 2 tells the host to reject the edit; the reason is on stderr.
    """
    config = _bootstrap(kwargs)
    store = _load_rules(config)
    payload = _read_event_payload()

    try:
        event = parse_tool_event(payload, config.workspace.root)
    except EventError as e:
        _fail(f"Invalid hook payload: {e}", EXIT_BAD_EVENT)

    if event is None:
        _emit({"decision": Outcome.ALLOW.value, "decisions": [], "skills": [], "suppressed": []})
        sys.exit(EXIT_SUCCESS)

    matcher = PathMatcher(config.workspace.root)
    decisions = GuardrailEnforcer(matcher).enforce_all(event, store)
    worst = most_severe(decisions)

    tracker = _tracker(config)
    state = tracker.load(event.session_id) if tracker else None
    engine = ActivationEngine(matcher, repeat_window_seconds=config.sessions.repeat_window_seconds)
    result = engine.activate(event, store, state)
    if tracker:
        tracker.record(event, result, decisions, state=state)

    outcome = worst.outcome if worst else Outcome.ALLOW
    output: dict[str, Any] = {
        "decision": outcome.value,
        "decisions": [d.to_dict() for d in decisions],
        **result.to_dict(),
    }

    if outcome is Outcome.BLOCK:
        reason = "\n\n".join(d.message for d in decisions if d.blocked)
        output["hookSpecificOutput"] = {
            "hookEventName": "PreToolUse",
            "permissionDecision": "deny",
            "permissionDecisionReason": reason,
        }
        _emit(output)
        click.echo(reason, err=True)
        sys.exit(EXIT_BLOCKED)

    notes = [d.message for d in decisions if d.message]
    if notes:
        output["systemMessage"] = "\n\n".join(notes)
    _emit(output)
    sys.exit(EXIT_SUCCESS)


@main.command()
@_config_options
def remind(**kwargs: Any) -> None:
    """Stop hook: error-handling self-check for files edited in the session."""
    config = _bootstrap(kwargs)
    payload = _read_event_payload()

    tracker = _tracker(config)
    if not config.reminder.enabled or tracker is None:
        sys.exit(EXIT_SUCCESS)

    state = tracker.load(session_id_of(payload))
    reminder = build_reminder(
        state,
        os.environ,
        skip_env_var=config.reminder.skip_env_var,
        max_files=config.reminder.max_files,
    )
    if reminder is not None:
        _emit(reminder.to_dict())
    sys.exit(EXIT_SUCCESS)


@main.command("validate-config")
@_config_options
def validate_config(**kwargs: Any) -> None:
    """Validate the settings and skill-rules.json without processing an event."""
    config = _bootstrap(kwargs)
    store = _load_rules(config)
    guardrails = store.guardrails()
    click.echo(
        f"OK: {len(store)} skill rule(s), {len(guardrails)} guardrail(s) in {store.source}"
    )
    for rule in store:
        kind = "guardrail" if rule.is_guardrail else "domain"
        click.echo(
            f"  {rule.id:<28} {kind:<10} {rule.priority:<9} "
            f"paths={len(rule.path_patterns)} keywords={len(rule.keywords)}"
        )
    sys.exit(EXIT_SUCCESS)


@main.command()
@click.argument("session_id")
@_config_options
def session(session_id: str, **kwargs: Any) -> None:
    """Show the recorded context of a session."""
    config = _bootstrap(kwargs)
    tracker = _tracker(config)
    if tracker is None:
        _fail("Session tracking is disabled (sessions.enabled: false).", EXIT_FAILED)
    click.echo(tracker.summarize(tracker.load(session_id)))


@main.command()
@click.option(
    "--older-than-days",
    type=int,
    default=None,
    help="Remove session files older than N days (default: sessions.cleanup_after_days)",
)
@_config_options
def cleanup(older_than_days: int | None, **kwargs: Any) -> None:
    """Remove old session state files."""
    config = _bootstrap(kwargs)
    tracker = _tracker(config)
    if tracker is None:
        click.echo("Session tracking is disabled; nothing to clean.")
        return
    days = older_than_days if older_than_days is not None else config.sessions.cleanup_after_days
    removed = tracker.cleanup(older_than_days=days)
    click.echo(f"Removed {removed} session file(s) older than {days} day(s).")


if __name__ == "__main__":
    main()
