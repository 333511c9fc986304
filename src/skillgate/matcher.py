"""Trigger matching against prompt text and visible files.

Every rule is evaluated independently across four trigger categories:
keywords, intent patterns, path globs and content patterns. A rule matches
when any category fires. Invalid regular expressions are skipped with a
warning so that one broken rule never prevents the others from matching.
"""

from __future__ import annotations

import fnmatch
import logging
import time
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from functools import lru_cache

import regex

from .exceptions import PatternCompileError
from .models import (
    FileTriggers,
    MatchReport,
    MatchResult,
    MatchVia,
    PromptContext,
    SkillRule,
    VisibleFile,
)

logger = logging.getLogger(__name__)

INTENT_FLAGS = regex.IGNORECASE | regex.MULTILINE
CONTENT_FLAGS = regex.MULTILINE
GLOBSTAR = "**"


@dataclass
class MatcherConfig:
    """Bounds on regex evaluation for one matching pass."""

    max_content_bytes: int = 1024 * 1024  # 1MB
    regex_budget_seconds: float = 2.0


@lru_cache(maxsize=512)
def split_glob(pattern: str) -> tuple[str, ...]:
    """Split a glob into path segments, collapsing repeated ``**``."""
    segments: list[str] = []
    for segment in normalize_path(pattern).split("/"):
        if segment == GLOBSTAR and segments and segments[-1] == GLOBSTAR:
            continue
        segments.append(segment)
    return tuple(segments)


def _match_segments(pattern: tuple[str, ...], parts: tuple[str, ...]) -> bool:
    if not pattern:
        return not parts
    head, rest = pattern[0], pattern[1:]
    if head == GLOBSTAR:
        # a trailing ** needs at least one segment, an inner one may match none
        if not rest:
            return bool(parts)
        return any(_match_segments(rest, parts[i:]) for i in range(len(parts) + 1))
    if not parts or not fnmatch.fnmatchcase(parts[0], head):
        return False
    return _match_segments(rest, parts[1:])


def glob_match(pattern: str, path: str) -> bool:
    """Match a full path against a glob.

    ``*``, ``?`` and ``[...]`` / ``[!...]`` follow fnmatch within a single
    path segment. A ``**`` segment spans any number of directories, and
    ``**/`` also matches zero directories.
    """
    return _match_segments(split_glob(pattern), tuple(normalize_path(path).split("/")))


def normalize_path(path: str) -> str:
    """Use forward slashes and drop a leading ``./``."""
    path = path.replace("\\", "/")
    while path.startswith("./"):
        path = path[2:]
    return path


def path_matches(path: str, patterns: Iterable[str]) -> bool:
    """Check whether a path matches any glob."""
    return any(glob_match(p, path) for p in patterns)


class _MatchPass:
    """Warnings and regex time accounting for a single call to match()."""

    def __init__(self, config: MatcherConfig) -> None:
        self.config = config
        self.elapsed = 0.0
        self.exhausted = False
        self.warnings: list[str] = []
        self._seen: set[str] = set()

    def warn(self, message: str) -> None:
        if message in self._seen:
            return
        self._seen.add(message)
        self.warnings.append(message)
        logger.warning("%s", message)

    def compile(self, rule_name: str, patterns: list[str], flags: int) -> list[regex.Pattern]:
        compiled = []
        for pattern in patterns:
            try:
                compiled.append(regex.compile(pattern, flags))
            except regex.error as e:
                error = PatternCompileError(
                    f"Skipping invalid pattern {pattern!r} in rule '{rule_name}': {e}",
                    skill_name=rule_name,
                    pattern=pattern,
                )
                self.warn(str(error))
        return compiled

    def _exhaust(self) -> None:
        self.exhausted = True
        self.warn(
            f"Regex time budget of {self.config.regex_budget_seconds}s exceeded; "
            "remaining pattern checks skipped",
        )

    def search_any(self, regexes: list[regex.Pattern], text: str) -> bool:
        for pattern in regexes:
            if self.exhausted:
                return False
            remaining = self.config.regex_budget_seconds - self.elapsed
            if remaining <= 0:
                self._exhaust()
                return False
            start = time.perf_counter()
            try:
                found = pattern.search(text, timeout=remaining) is not None
            except TimeoutError:
                found = False
            self.elapsed += time.perf_counter() - start
            if self.elapsed >= self.config.regex_budget_seconds:
                self._exhaust()
            if found:
                return True
        return False


class TriggerMatcher:
    """Evaluates rule triggers against a prompt context."""

    def __init__(self, config: MatcherConfig | None = None) -> None:
        """Initialize the matcher.

        Args:
            config: Evaluation bounds, uses defaults if not provided
        """
        self.config = config or MatcherConfig()

    def match(
        self,
        rules: Mapping[str, SkillRule] | Iterable[SkillRule],
        context: PromptContext,
    ) -> MatchReport:
        """Find every rule whose triggers fire for the context.

        Args:
            rules: Rule store (or any name-keyed mapping) or rules in declaration order
            context: Prompt text and visible files

        Returns:
            Matches in declaration order plus any warnings raised along the way
        """
        rule_list = list(rules.values()) if isinstance(rules, Mapping) else list(rules)
        run = _MatchPass(self.config)
        folded_prompt = context.prompt_text.casefold()
        matches: list[MatchResult] = []

        for rule in rule_list:
            if not rule.has_triggers:
                continue
            via: set[MatchVia] = set()

            prompt_triggers = rule.prompt_triggers
            if prompt_triggers is not None:
                if any(k.casefold() in folded_prompt for k in prompt_triggers.keywords):
                    via.add(MatchVia.KEYWORD)
                intents = run.compile(rule.name, prompt_triggers.intent_patterns, INTENT_FLAGS)
                if intents and run.search_any(intents, context.prompt_text):
                    via.add(MatchVia.INTENT_PATTERN)

            if rule.file_triggers is not None and context.visible_files:
                via |= self._match_files(rule.name, rule.file_triggers, context.visible_files, run)

            if via:
                matches.append(MatchResult(skill_name=rule.name, matched_via=via, rule=rule))

        return MatchReport(matches=matches, warnings=run.warnings)

    def _match_files(
        self,
        rule_name: str,
        triggers: FileTriggers,
        files: list[VisibleFile],
        run: _MatchPass,
    ) -> set[MatchVia]:
        via: set[MatchVia] = set()
        eligible = [f for f in files if not path_matches(f.path, triggers.path_exclusions)]
        if not eligible:
            return via

        if triggers.path_patterns and any(
            path_matches(f.path, triggers.path_patterns) for f in eligible
        ):
            via.add(MatchVia.PATH_PATTERN)

        contents = run.compile(rule_name, triggers.content_patterns, CONTENT_FLAGS)
        if not contents:
            return via

        for f in eligible:
            if len(f.content.encode("utf-8", errors="replace")) > self.config.max_content_bytes:
                run.warn(f"File too large for content matching: {f.path}")
                continue
            if run.search_any(contents, f.content):
                via.add(MatchVia.CONTENT_PATTERN)
                break

        return via
