"""Tests for enforcement resolution and priority ordering."""

import pytest

from skillgate.matcher import TriggerMatcher
from skillgate.models import Action, MatchResult, PromptContext
from skillgate.policy import PolicyResolver
from skillgate.registry import RuleStore


def _matches(rules: dict, prompt: str = "go") -> list[MatchResult]:
    """Match every rule by giving each the keyword 'go'."""
    source = {
        name: {
            "type": "domain",
            "enforcement": enforcement,
            "priority": priority,
            "promptTriggers": {"keywords": ["go"]},
        }
        for name, (enforcement, priority) in rules.items()
    }
    store = RuleStore.load(source)
    return TriggerMatcher().match(store, PromptContext(prompt_text=prompt)).matches


class TestPolicyResolver:
    """Test PolicyResolver."""

    @pytest.fixture
    def resolver(self) -> PolicyResolver:
        """Create a resolver."""
        return PolicyResolver()

    def test_no_matches(self, resolver: PolicyResolver) -> None:
        """Test zero matches resolve to none."""
        resolution = resolver.resolve([])
        assert resolution.action == Action.NONE
        assert resolution.ordered_skills == []

    def test_priority_ordering(self, resolver: PolicyResolver) -> None:
        """Test declared [low, critical, high] resolve to [critical, high, low]."""
        matches = _matches({
            "low": ("suggest", "low"),
            "critical": ("suggest", "critical"),
            "high": ("suggest", "high"),
        })
        resolution = resolver.resolve(matches)
        assert resolution.ordered_skills == ["critical", "high", "low"]
        assert resolution.action == Action.SUGGEST

    def test_ties_keep_declaration_order(self, resolver: PolicyResolver) -> None:
        """Test equal priorities keep rule store order."""
        matches = _matches({
            "b": ("suggest", "medium"),
            "a": ("suggest", "medium"),
            "c": ("suggest", "high"),
            "d": ("suggest", "medium"),
        })
        resolution = resolver.resolve(matches)
        assert resolution.ordered_skills == ["c", "b", "a", "d"]

    def test_block_wins_regardless_of_priority(self, resolver: PolicyResolver) -> None:
        """Test a low-priority block beats a critical suggest."""
        matches = _matches({
            "helper": ("suggest", "critical"),
            "guard": ("block", "low"),
        })
        resolution = resolver.resolve(matches)
        assert resolution.action == Action.BLOCK
        assert [r.name for r in resolution.blocking_rules] == ["guard"]

    def test_all_blocking_rules_returned(self, resolver: PolicyResolver) -> None:
        """Test every matched block rule is reported in priority order."""
        matches = _matches({
            "guard-low": ("block", "low"),
            "guard-high": ("block", "high"),
            "warned": ("warn", "critical"),
        })
        resolution = resolver.resolve(matches)
        assert [r.name for r in resolution.blocking_rules] == ["guard-high", "guard-low"]

    def test_warn_beats_suggest(self, resolver: PolicyResolver) -> None:
        """Test warn is chosen when nothing blocks."""
        matches = _matches({
            "hint": ("suggest", "critical"),
            "careful": ("warn", "low"),
        })
        resolution = resolver.resolve(matches)
        assert resolution.action == Action.WARN
        assert [r.name for r in resolution.warning_rules] == ["careful"]
        assert resolution.ordered_skills == ["hint", "careful"]
