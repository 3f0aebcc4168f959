"""
Builds AppConfig from four layers: schema defaults, the YAML file,
SKILLGUARD_* environment variables and CLI flags. Later layers win key by key.
"""

import os
from pathlib import Path
from typing import Any

import yaml

from .schema import AppConfig

# CLI flag -> (section, key)
_CLI_KEYS: dict[str, tuple[str, str]] = {
    "rules": ("rules", "path"),
    "project_root": ("workspace", "root"),
    "state_dir": ("sessions", "state_dir"),
    "log_file": ("logging", "file"),
    "verbose": ("logging", "verbose"),
}


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Merge ``override`` into a copy of ``base``; nested sections merge too."""
    result = base.copy()
    for key, value in override.items():
        if isinstance(result.get(key), dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_yaml_config(config_path: Path | None) -> dict[str, Any]:
    """Read the settings file. No path means no file layer; an empty file is ``{}``."""
    if not config_path:
        return {}
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def load_env_overrides(environ: dict[str, str] | None = None) -> dict[str, Any]:
    """Overrides from SKILLGUARD_RULES, SKILLGUARD_PROJECT_ROOT (or
    CLAUDE_PROJECT_DIR), SKILLGUARD_STATE_DIR, SKILLGUARD_LOG_LEVEL and
    SKILLGUARD_LOG_FILE."""
    env = os.environ if environ is None else environ
    overrides: dict[str, Any] = {}

    if rules := env.get("SKILLGUARD_RULES"):
        overrides.setdefault("rules", {})["path"] = rules
    if root := env.get("SKILLGUARD_PROJECT_ROOT") or env.get("CLAUDE_PROJECT_DIR"):
        overrides.setdefault("workspace", {})["root"] = root
    if state_dir := env.get("SKILLGUARD_STATE_DIR"):
        overrides.setdefault("sessions", {})["state_dir"] = state_dir
    if log_level := env.get("SKILLGUARD_LOG_LEVEL"):
        overrides.setdefault("logging", {})["level"] = log_level.lower()
    if log_file := env.get("SKILLGUARD_LOG_FILE"):
        overrides.setdefault("logging", {})["file"] = log_file

    return overrides


def apply_cli_overrides(config_dict: dict[str, Any], cli_args: dict[str, Any]) -> dict[str, Any]:
    # Unset flags arrive as None or 0 and leave the lower layers alone.
    overrides: dict[str, Any] = {}
    for flag, (section, key) in _CLI_KEYS.items():
        if cli_args.get(flag):
            overrides.setdefault(section, {})[key] = cli_args[flag]
    return deep_merge(config_dict, overrides)


def load_config(
    config_path: Path | None = None,
    cli_args: dict[str, Any] | None = None,
    environ: dict[str, str] | None = None,
) -> AppConfig:
    """Merge every layer and validate. Raises FileNotFoundError or pydantic's ValidationError."""
    merged = deep_merge(load_yaml_config(config_path), load_env_overrides(environ))
    merged = apply_cli_overrides(merged, cli_args or {})
    return AppConfig(**merged)
