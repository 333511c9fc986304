"""SkillGate: prompt-time skill activation and guardrails for AI coding agents."""

__version__ = "0.1.0"
__author__ = "SkillGate Contributors"
__description__ = "Prompt-time skill activation and guardrails for AI coding agents"

from .activator import SkillActivator
from .augmenter import PromptAugmenter, SkillContentStore
from .context import ContextGatherer
from .matcher import MatcherConfig, TriggerMatcher
from .models import Action, ActivationResult, Enforcement, Priority, PromptContext, SkillRule
from .policy import PolicyResolver
from .registry import RuleStore

__all__ = [
    "Action",
    "ActivationResult",
    "ContextGatherer",
    "Enforcement",
    "MatcherConfig",
    "PolicyResolver",
    "Priority",
    "PromptAugmenter",
    "PromptContext",
    "RuleStore",
    "SkillActivator",
    "SkillContentStore",
    "SkillRule",
    "TriggerMatcher",
]
