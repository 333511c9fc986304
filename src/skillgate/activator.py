"""Activation pipeline: match, resolve, then augment or block."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path

from .augmenter import (
    ContentLookup,
    PromptAugmenter,
    SkillContentStore,
    build_block_message,
    build_warning_message,
)
from .config import SkillGateConfig
from .matcher import MatcherConfig, TriggerMatcher
from .models import Action, ActivationResult, PromptContext, SkillRule
from .policy import PolicyResolver
from .registry import RuleStore

logger = logging.getLogger(__name__)


class SkillActivator:
    """Runs one prompt through matching, policy and augmentation.

    Holds only the immutable rule store and collaborators; each call to
    activate() is independent of every other.
    """

    def __init__(
        self,
        store: Mapping[str, SkillRule],
        content_lookup: ContentLookup,
        matcher_config: MatcherConfig | None = None,
    ) -> None:
        """Initialize activator.

        Args:
            store: Loaded rule store
            content_lookup: Returns instructional text for a skill name
            matcher_config: Regex evaluation bounds
        """
        self.store = store
        self.matcher = TriggerMatcher(matcher_config)
        self.resolver = PolicyResolver()
        self.augmenter = PromptAugmenter(content_lookup)

    @classmethod
    def from_config(cls, config: SkillGateConfig) -> SkillActivator:
        """Load the rule store and content store named by a configuration.

        Raises:
            MalformedRuleError: If the rules file is invalid
            DuplicateRuleError: If a skill name is declared twice
        """
        store = RuleStore.load(Path(config.rules_file))
        return cls(
            store,
            SkillContentStore(config.skills_dir),
            matcher_config=config.matcher_config(),
        )

    def activate(self, context: PromptContext) -> ActivationResult:
        """Process one prompt submission.

        Args:
            context: Gathered prompt text and visible files

        Returns:
            Block decision, or the prompt to continue with
        """
        report = self.matcher.match(self.store, context)
        resolution = self.resolver.resolve(report.matches)
        warnings = list(report.warnings)

        logger.debug(
            "Matched %s, action %s",
            resolution.ordered_skills or "nothing",
            resolution.action.value,
        )

        if resolution.action == Action.BLOCK:
            return ActivationResult(
                action=Action.BLOCK,
                message=build_block_message(resolution.blocking_rules),
                matches=report.matches,
                ordered_skills=resolution.ordered_skills,
                warnings=warnings,
            )

        if resolution.action == Action.NONE:
            return ActivationResult(
                action=Action.NONE,
                prompt=context.prompt_text,
                warnings=warnings,
            )

        augmented = self.augmenter.augment(context.prompt_text, resolution.ordered_skills)
        warnings.extend(augmented.warnings)

        message = None
        if resolution.action == Action.WARN:
            message = build_warning_message(resolution.warning_rules)

        return ActivationResult(
            action=resolution.action,
            prompt=augmented.text,
            message=message,
            context=augmented.sections,
            matches=report.matches,
            ordered_skills=resolution.ordered_skills,
            warnings=warnings,
        )
