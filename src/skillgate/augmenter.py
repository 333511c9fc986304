"""Prompt augmentation with skill content and enforcement notices."""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from pathlib import Path
from typing import Any

import yaml

from .exceptions import ContentLookupError
from .models import AugmentedPrompt, SkillRule

logger = logging.getLogger(__name__)

SKILL_BEGIN_MARKER = "<!-- BEGIN SKILL: {name} -->"
SKILL_END_MARKER = "<!-- END SKILL: {name} -->"

SKILL_FILE_NAME = "SKILL.md"

FRONTMATTER_PATTERN = re.compile(r"^---\s*\n(.*?)\n---\s*(?:\n|$)(.*)$", re.DOTALL)

ContentLookup = Callable[[str], str]


def split_frontmatter(text: str) -> tuple[dict[str, Any], str]:
    """Separate YAML front matter from a markdown body.

    Returns:
        Parsed front matter (empty when absent) and the stripped body
    """
    match = FRONTMATTER_PATTERN.match(text)
    if not match:
        return {}, text.strip()
    try:
        meta = yaml.safe_load(match.group(1)) or {}
    except yaml.YAMLError as e:
        msg = f"Invalid YAML front matter: {e}"
        raise ContentLookupError(msg) from e
    if not isinstance(meta, dict):
        meta = {}
    return meta, match.group(2).strip()


class SkillContentStore:
    """Flat-file lookup of skill instructions.

    Looks for ``<skills_dir>/<name>/SKILL.md`` first and falls back to
    ``<skills_dir>/<name>.md``. YAML front matter is stripped.
    """

    def __init__(self, skills_dir: Path) -> None:
        self.skills_dir = Path(skills_dir)

    def __call__(self, name: str) -> str:
        return self.load(name)

    def path_for(self, name: str) -> Path | None:
        """Locate the content file for a skill, if any."""
        if not name or "/" in name or "\\" in name or name in {".", ".."}:
            return None
        for candidate in (
            self.skills_dir / name / SKILL_FILE_NAME,
            self.skills_dir / f"{name}.md",
        ):
            if candidate.is_file():
                return candidate
        return None

    def load(self, name: str) -> str:
        """Return the instructional body for a skill.

        Raises:
            ContentLookupError: If the file is missing, unreadable or empty
        """
        _meta, body = self._read(name)
        if not body:
            msg = f"Skill content is empty: {name}"
            raise ContentLookupError(msg, details={"skill": name})
        return body

    def describe(self, name: str) -> str | None:
        """Return the front matter description for a skill, if present."""
        try:
            meta, _body = self._read(name)
        except ContentLookupError:
            return None
        description = meta.get("description")
        return str(description) if description else None

    def _read(self, name: str) -> tuple[dict[str, Any], str]:
        path = self.path_for(name)
        if path is None:
            msg = f"Skill content not found: {name}"
            raise ContentLookupError(
                msg,
                details={"skill": name, "skills_dir": str(self.skills_dir)},
            )
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as e:
            msg = f"Failed to read skill content for {name}: {e}"
            raise ContentLookupError(msg, details={"path": str(path)}) from e
        except UnicodeDecodeError as e:
            msg = f"Skill content for {name} is not valid UTF-8: {e}"
            raise ContentLookupError(msg, details={"path": str(path)}) from e
        return split_frontmatter(text)


def format_section(name: str, content: str) -> str:
    """Wrap skill content in begin/end markers."""
    return "\n".join([
        SKILL_BEGIN_MARKER.format(name=name),
        f"## Skill: {name}",
        "",
        content.strip(),
        SKILL_END_MARKER.format(name=name),
    ])


def _rule_line(rule: SkillRule) -> str:
    line = f"- {rule.name} ({rule.kind.value}, {rule.priority.value} priority)"
    if rule.description:
        line += f": {rule.description}"
    return line


def build_block_message(blocking_rules: list[SkillRule]) -> str:
    """Human-readable notice for a blocked request."""
    lines = ["Request blocked by skill policy.", "", "Blocking rules:"]
    lines.extend(_rule_line(r) for r in blocking_rules)
    lines.extend(["", "Revise the request or adjust the rules before continuing."])
    return "\n".join(lines)


def build_warning_message(warning_rules: list[SkillRule]) -> str:
    """Human-readable notice for a request that proceeds with warnings."""
    lines = ["Skill policy warning: review these rules before proceeding.", ""]
    lines.extend(_rule_line(r) for r in warning_rules)
    return "\n".join(lines)


class PromptAugmenter:
    """Appends skill sections to a prompt in a fixed order."""

    def __init__(self, content_lookup: ContentLookup) -> None:
        """Initialize augmenter.

        Args:
            content_lookup: Callable returning instructional text for a skill name,
                raising ContentLookupError when none exists
        """
        self.content_lookup = content_lookup

    def augment(self, prompt_text: str, ordered_skills: list[str]) -> AugmentedPrompt:
        """Append one delimited section per skill, in the given order.

        Args:
            prompt_text: Original prompt
            ordered_skills: Skill names in resolved priority order

        Returns:
            Augmented prompt; skills whose content cannot be found are skipped
        """
        sections: list[str] = []
        included: list[str] = []
        warnings: list[str] = []

        for name in ordered_skills:
            try:
                content = self.content_lookup(name)
            except ContentLookupError as e:
                message = f"Skipping skill '{name}': {e}"
                logger.warning("%s", message)
                warnings.append(message)
                continue
            sections.append(format_section(name, content))
            included.append(name)

        appended = "\n\n".join(sections)
        text = f"{prompt_text}\n\n{appended}" if appended else prompt_text
        return AugmentedPrompt(
            text=text,
            sections=appended,
            included_skills=included,
            warnings=warnings,
        )
