"""Project configuration and root discovery."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError

from .exceptions import ConfigError
from .matcher import MatcherConfig

CLAUDE_DIR = ".claude"
CONFIG_FILE_NAME = "skillgate.yaml"
PROJECT_DIR_ENV = "CLAUDE_PROJECT_DIR"


class SkillGateConfig(BaseModel):
    """Settings for one project, loaded from .claude/skillgate.yaml."""

    rules_file: Path = Field(
        default=Path(CLAUDE_DIR) / "skills" / "skill-rules.json",
        description="Rule source, relative to the project root",
    )
    skills_dir: Path = Field(
        default=Path(CLAUDE_DIR) / "skills",
        description="Directory holding <name>/SKILL.md content files",
    )
    max_file_size_bytes: int = Field(default=1024 * 1024, gt=0)
    max_visible_files: int = Field(default=50, gt=0)
    regex_budget_seconds: float = Field(default=2.0, gt=0)
    read_workers: int = Field(default=4, gt=0)
    include_prompt_references: bool = Field(
        default=True,
        description="Treat files mentioned by path in the prompt as visible",
    )

    def resolve_paths(self, project_root: Path) -> SkillGateConfig:
        """Return a copy with relative paths anchored at the project root."""
        return self.model_copy(update={
            "rules_file": _anchor(self.rules_file, project_root),
            "skills_dir": _anchor(self.skills_dir, project_root),
        })

    def matcher_config(self) -> MatcherConfig:
        """Bounds for the trigger matcher."""
        return MatcherConfig(
            max_content_bytes=self.max_file_size_bytes,
            regex_budget_seconds=self.regex_budget_seconds,
        )


def _anchor(path: Path, root: Path) -> Path:
    path = path.expanduser()
    return path if path.is_absolute() else root / path


def discover_project_root(start: Path | None = None) -> Path:
    """Find the project root for the current invocation.

    Uses CLAUDE_PROJECT_DIR when set, otherwise the nearest ancestor of
    ``start`` containing a .claude directory, otherwise ``start`` itself.
    """
    env_dir = os.environ.get(PROJECT_DIR_ENV)
    if env_dir:
        return Path(env_dir)

    origin = (start or Path.cwd()).resolve()
    current = origin
    while current != current.parent:
        if (current / CLAUDE_DIR).is_dir():
            return current
        current = current.parent

    return origin


def load_config(project_root: Path, config_path: Path | None = None) -> SkillGateConfig:
    """Load project configuration with paths resolved against the root.

    Args:
        project_root: Project root directory
        config_path: Explicit config file; defaults to .claude/skillgate.yaml

    Returns:
        Configuration, defaults when no file exists

    Raises:
        ConfigError: If the file cannot be parsed or validated
    """
    path = config_path or project_root / CLAUDE_DIR / CONFIG_FILE_NAME
    data: dict[str, Any] = {}

    if path.exists():
        try:
            with path.open(encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            msg = f"Failed to parse config YAML: {e}"
            raise ConfigError(msg, details={"path": str(path)}) from e
        except OSError as e:
            msg = f"Failed to read config file: {e}"
            raise ConfigError(msg, details={"path": str(path)}) from e
        except UnicodeDecodeError as e:
            msg = f"Config file is not valid UTF-8: {e}"
            raise ConfigError(msg, details={"path": str(path)}) from e
        if not isinstance(data, dict):
            msg = f"Config file must contain a mapping: {path}"
            raise ConfigError(msg, details={"path": str(path)})
    elif config_path is not None:
        msg = f"Config file not found: {path}"
        raise ConfigError(msg)

    try:
        config = SkillGateConfig.model_validate(data)
    except ValidationError as e:
        msg = f"Config validation failed: {e}"
        raise ConfigError(msg, details={"path": str(path)}) from e

    return config.resolve_paths(project_root)
