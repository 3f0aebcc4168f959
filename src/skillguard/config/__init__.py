"""
Configuration module for skillguard.

Exports the main components for convenient imports.
"""

from .loader import load_config
from .schema import (
    AppConfig,
    EnforcementConfig,
    LoggingConfig,
    ReminderConfig,
    RulesConfig,
    SessionsConfig,
    SkillRuleConfig,
    SkillRulesFile,
    WorkspaceConfig,
)

__all__ = [
    "load_config",
    "AppConfig",
    "EnforcementConfig",
    "LoggingConfig",
    "ReminderConfig",
    "RulesConfig",
    "SessionsConfig",
    "SkillRuleConfig",
    "SkillRulesFile",
    "WorkspaceConfig",
]
