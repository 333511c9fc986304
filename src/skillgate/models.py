"""Core data models for the SkillGate activation pipeline."""

from __future__ import annotations

from enum import Enum

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_serializer,
    field_validator,
    model_validator,
)


class RuleKind(str, Enum):
    """Whether a skill restricts behaviour or offers capability guidance."""

    GUARDRAIL = "guardrail"
    DOMAIN = "domain"


class Enforcement(str, Enum):
    """Action taken when a rule matches."""

    BLOCK = "block"
    WARN = "warn"
    SUGGEST = "suggest"


class Priority(str, Enum):
    """Ordering weight among simultaneously matched rules."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def weight(self) -> int:
        """Numeric sort weight, higher sorts first."""
        return _PRIORITY_WEIGHTS[self]


_PRIORITY_WEIGHTS = {
    Priority.CRITICAL: 1000,
    Priority.HIGH: 100,
    Priority.MEDIUM: 10,
    Priority.LOW: 1,
}


class Action(str, Enum):
    """Overall outcome of one activation pass."""

    BLOCK = "block"
    WARN = "warn"
    SUGGEST = "suggest"
    NONE = "none"


class MatchVia(str, Enum):
    """Trigger category that caused a rule to match."""

    KEYWORD = "keyword"
    INTENT_PATTERN = "intentPattern"
    PATH_PATTERN = "pathPattern"
    CONTENT_PATTERN = "contentPattern"


class PromptTriggers(BaseModel):
    """Conditions evaluated against the prompt text."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    keywords: list[str] = Field(
        default_factory=list,
        description="Case-insensitive substrings",
    )
    intent_patterns: list[str] = Field(
        default_factory=list,
        alias="intentPatterns",
        description="Regular expressions searched in the prompt",
    )

    @field_validator("keywords")
    @classmethod
    def drop_blank_keywords(cls, v: list[str]) -> list[str]:
        """Discard empty keywords, which would match every prompt."""
        return [k for k in v if k.strip()]


class FileTriggers(BaseModel):
    """Conditions evaluated against the files in view."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    path_patterns: list[str] = Field(
        default_factory=list,
        alias="pathPatterns",
        description="Globs matched against file paths",
    )
    content_patterns: list[str] = Field(
        default_factory=list,
        alias="contentPatterns",
        description="Regular expressions searched in file contents",
    )
    path_exclusions: list[str] = Field(
        default_factory=list,
        alias="pathExclusions",
        description="Globs that suppress path and content matches",
    )


class SkillRule(BaseModel):
    """Activation triggers and enforcement policy for one skill."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    name: str = Field(..., min_length=1, description="Unique skill identifier")
    kind: RuleKind = Field(..., alias="type", description="guardrail or domain")
    enforcement: Enforcement = Field(..., description="Action taken on match")
    priority: Priority = Field(..., description="Ordering weight")
    description: str | None = Field(
        default=None,
        description="Human-readable summary used in notices",
    )
    prompt_triggers: PromptTriggers | None = Field(
        default=None,
        alias="promptTriggers",
    )
    file_triggers: FileTriggers | None = Field(
        default=None,
        alias="fileTriggers",
    )

    @property
    def has_triggers(self) -> bool:
        """Whether any trigger list is non-empty."""
        prompt = self.prompt_triggers
        files = self.file_triggers
        return bool(
            (prompt and (prompt.keywords or prompt.intent_patterns))
            or (files and (files.path_patterns or files.content_patterns)),
        )

    @model_validator(mode="after")
    def require_triggers(self) -> SkillRule:
        """Reject rules that could never match."""
        if not self.has_triggers:
            msg = f"Rule '{self.name}' must define at least one prompt or file trigger"
            raise ValueError(msg)
        return self


class VisibleFile(BaseModel):
    """A file in view for the current turn."""

    model_config = ConfigDict(frozen=True)

    path: str
    content: str = ""


class PromptContext(BaseModel):
    """Ambient signal for one prompt submission."""

    prompt_text: str = ""
    visible_files: list[VisibleFile] = Field(default_factory=list)

    @field_validator("visible_files")
    @classmethod
    def validate_unique_paths(cls, v: list[VisibleFile]) -> list[VisibleFile]:
        """Ensure no two visible files share a path."""
        seen: set[str] = set()
        for f in v:
            if f.path in seen:
                msg = f"Duplicate visible file path: {f.path}"
                raise ValueError(msg)
            seen.add(f.path)
        return v


class MatchResult(BaseModel):
    """A rule that matched, and the trigger categories that fired."""

    skill_name: str
    matched_via: set[MatchVia]
    rule: SkillRule

    @field_serializer("matched_via")
    def serialize_matched_via(self, v: set[MatchVia]) -> list[str]:
        """Serialize categories in a stable order."""
        return sorted(m.value for m in v)


class MatchReport(BaseModel):
    """Output of one matching pass."""

    matches: list[MatchResult] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    @property
    def matched_names(self) -> list[str]:
        """Names of matched skills in declaration order."""
        return [m.skill_name for m in self.matches]


class Resolution(BaseModel):
    """Enforcement decision and skill ordering for a set of matches."""

    action: Action
    ordered_skills: list[str] = Field(default_factory=list)
    blocking_rules: list[SkillRule] = Field(default_factory=list)
    warning_rules: list[SkillRule] = Field(default_factory=list)


class AugmentedPrompt(BaseModel):
    """Prompt text with skill sections appended."""

    text: str
    sections: str = Field(
        default="",
        description="Appended skill sections without the original prompt",
    )
    included_skills: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class ActivationResult(BaseModel):
    """Final outcome of the pipeline for one prompt."""

    action: Action
    prompt: str | None = Field(
        default=None,
        description="Prompt to continue with, None when blocked",
    )
    message: str | None = Field(
        default=None,
        description="Block or warning notice",
    )
    context: str = Field(
        default="",
        description="Appended skill sections without the original prompt",
    )
    matches: list[MatchResult] = Field(default_factory=list)
    ordered_skills: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    @property
    def blocked(self) -> bool:
        """Whether the request must not continue."""
        return self.action == Action.BLOCK
