"""Custom exceptions for SkillGate."""

from typing import Any


class SkillGateError(Exception):
    """Base exception for all SkillGate errors."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.details = details or {}


class MalformedRuleError(SkillGateError):
    """Raised when a rule source fails parsing or validation."""


class DuplicateRuleError(SkillGateError):
    """Raised when two rules share the same skill name."""


class PatternCompileError(SkillGateError):
    """Raised when a trigger regex cannot be compiled."""

    def __init__(
        self,
        message: str,
        skill_name: str,
        pattern: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.skill_name = skill_name
        self.pattern = pattern


class ContentLookupError(SkillGateError):
    """Raised when instructional content for a skill cannot be found."""


class ConfigError(SkillGateError):
    """Raised when the project configuration file is invalid."""
