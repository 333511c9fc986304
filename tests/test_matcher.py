"""Tests for trigger matching."""

import time

import pytest

from skillgate.matcher import MatcherConfig, TriggerMatcher, glob_match, path_matches
from skillgate.models import MatchVia, PromptContext, VisibleFile
from skillgate.registry import RuleStore


def _rule(enforcement: str = "suggest", priority: str = "medium", **triggers) -> dict:
    rule = {"type": "domain", "enforcement": enforcement, "priority": priority}
    rule.update(triggers)
    return rule


class TestGlob:
    """Test glob matching."""

    @pytest.mark.parametrize(
        ("pattern", "path", "expected"),
        [
            ("*.py", "main.py", True),
            ("*.py", "src/main.py", False),
            ("src/*.py", "src/main.py", True),
            ("src/*.py", "src/pkg/main.py", False),
            ("src/**/*.py", "src/main.py", True),
            ("src/**/*.py", "src/a/b/c.py", True),
            ("**/*.py", "main.py", True),
            ("**/tests/**", "pkg/tests/test_a.py", True),
            ("file?.txt", "file1.txt", True),
            ("file?.txt", "file10.txt", False),
            ("file[0-9].txt", "file7.txt", True),
            ("file[!0-9].txt", "file7.txt", False),
            ("src/**", "src/deep/nested/file", True),
            ("src/**", "src", False),
            ("src/**/**/*.py", "src/main.py", True),
            ("src/*", "src/a/b", False),
            ("a.b", "axb", False),
        ],
    )
    def test_glob_semantics(self, pattern: str, path: str, expected: bool) -> None:
        """Test *, ** and ? follow standard glob semantics."""
        assert glob_match(pattern, path) is expected

    def test_unclosed_bracket_is_literal(self) -> None:
        """Test an unclosed character class matches literally."""
        assert path_matches("a[b", ["a[b"])

    def test_reversed_range_never_matches(self) -> None:
        """Test an empty character range is a valid glob that matches nothing."""
        assert not path_matches("filez.py", ["file[z-a].py"])
        assert not path_matches("filea.py", ["file[z-a].py"])

    def test_reversed_range_does_not_affect_other_rules(self) -> None:
        """Test a rule with an empty range leaves other rules matching."""
        store = RuleStore.load({
            "odd-glob": _rule(fileTriggers={"pathPatterns": ["file[z-a].py"]}),
            "greeting": _rule(promptTriggers={"keywords": ["hello"]}),
        })
        context = PromptContext(
            prompt_text="hello",
            visible_files=[VisibleFile(path="filez.py", content="")],
        )
        report = TriggerMatcher().match(store, context)
        assert report.matched_names == ["greeting"]

    def test_leading_dot_slash_ignored(self) -> None:
        """Test ./ prefixes and backslashes are normalised."""
        assert path_matches("./src/app.py", ["src/*.py"])
        assert path_matches("src\\app.py", ["src/*.py"])


class TestPromptTriggers:
    """Test keyword and intent pattern matching."""

    @pytest.fixture
    def matcher(self) -> TriggerMatcher:
        """Create a matcher with default bounds."""
        return TriggerMatcher()

    def test_keyword_case_insensitive(self, matcher: TriggerMatcher) -> None:
        """Test keyword 'endpoint' matches 'ENDPOINT'."""
        store = RuleStore.load({"api": _rule(promptTriggers={"keywords": ["endpoint"]})})
        report = matcher.match(store, PromptContext(prompt_text="Create an ENDPOINT now"))
        assert report.matched_names == ["api"]
        assert report.matches[0].matched_via == {MatchVia.KEYWORD}

    def test_keyword_substring(self, matcher: TriggerMatcher) -> None:
        """Test keywords match as substrings."""
        store = RuleStore.load({"api": _rule(promptTriggers={"keywords": ["point"]})})
        report = matcher.match(store, PromptContext(prompt_text="endpoints"))
        assert report.matched_names == ["api"]

    def test_keyword_miss(self, matcher: TriggerMatcher) -> None:
        """Test no match when no keyword occurs."""
        store = RuleStore.load({"api": _rule(promptTriggers={"keywords": ["endpoint"]})})
        report = matcher.match(store, PromptContext(prompt_text="fix the css"))
        assert report.matches == []

    def test_intent_pattern_unanchored(self, matcher: TriggerMatcher) -> None:
        """Test intent patterns search anywhere in the prompt."""
        store = RuleStore.load({"api": _rule(promptTriggers={"intentPatterns": ["(create).*endpoint"]})})
        report = matcher.match(store, PromptContext(prompt_text="please Create a POST endpoint"))
        assert report.matches[0].matched_via == {MatchVia.INTENT_PATTERN}

    def test_intent_pattern_multiline(self, matcher: TriggerMatcher) -> None:
        """Test ^ anchors at line starts."""
        store = RuleStore.load({"api": _rule(promptTriggers={"intentPatterns": ["^refactor"]})})
        report = matcher.match(store, PromptContext(prompt_text="first line\nrefactor this"))
        assert report.matched_names == ["api"]

    def test_keyword_and_intent_both_reported(self, matcher: TriggerMatcher) -> None:
        """Test a rule reports every category that fired."""
        store = RuleStore.load({
            "fastapi": _rule(
                priority="high",
                promptTriggers={"keywords": ["endpoint"], "intentPatterns": ["(create).*endpoint"]},
            ),
        })
        report = matcher.match(store, PromptContext(prompt_text="Create a POST endpoint"))
        assert report.matches[0].matched_via == {MatchVia.KEYWORD, MatchVia.INTENT_PATTERN}

    def test_invalid_pattern_skipped_with_warning(self, matcher: TriggerMatcher) -> None:
        """Test one bad regex does not stop other patterns or rules."""
        store = RuleStore.load({
            "broken": _rule(promptTriggers={"intentPatterns": ["(unclosed", "deploy"]}),
            "other": _rule(promptTriggers={"keywords": ["deploy"]}),
        })
        report = matcher.match(store, PromptContext(prompt_text="deploy it"))
        assert report.matched_names == ["broken", "other"]
        assert len(report.warnings) == 1
        assert "(unclosed" in report.warnings[0]
        assert "broken" in report.warnings[0]

    def test_accepts_plain_rule_list(self, matcher: TriggerMatcher) -> None:
        """Test rules can be passed as a sequence."""
        store = RuleStore.load({"api": _rule(promptTriggers={"keywords": ["api"]})})
        report = matcher.match(store.rules(), PromptContext(prompt_text="api"))
        assert report.matched_names == ["api"]


class TestFileTriggers:
    """Test path, content and exclusion matching."""

    @pytest.fixture
    def matcher(self) -> TriggerMatcher:
        """Create a matcher with default bounds."""
        return TriggerMatcher()

    @pytest.fixture
    def store(self) -> RuleStore:
        """Create a store with one file-triggered rule."""
        return RuleStore.load({
            "react": _rule(
                promptTriggers={"keywords": ["component"]},
                fileTriggers={
                    "pathPatterns": ["src/**/*.tsx"],
                    "contentPatterns": ["useState\\("],
                    "pathExclusions": ["**/*.test.tsx"],
                },
            ),
        })

    def test_path_match(self, matcher: TriggerMatcher, store: RuleStore) -> None:
        """Test a visible file matching a path glob."""
        context = PromptContext(
            prompt_text="fix it",
            visible_files=[VisibleFile(path="src/ui/Button.tsx", content="")],
        )
        report = matcher.match(store, context)
        assert report.matches[0].matched_via == {MatchVia.PATH_PATTERN}

    def test_content_match(self, matcher: TriggerMatcher, store: RuleStore) -> None:
        """Test file contents matched by regex."""
        context = PromptContext(
            prompt_text="fix it",
            visible_files=[VisibleFile(path="lib/hooks.ts", content="const [a] = useState(0)")],
        )
        report = matcher.match(store, context)
        assert report.matches[0].matched_via == {MatchVia.CONTENT_PATTERN}

    def test_exclusion_suppresses_path_and_content(
        self,
        matcher: TriggerMatcher,
        store: RuleStore,
    ) -> None:
        """Test an excluded file contributes neither path nor content matches."""
        context = PromptContext(
            prompt_text="fix it",
            visible_files=[VisibleFile(path="src/ui/Button.test.tsx", content="useState(1)")],
        )
        assert matcher.match(store, context).matches == []

    def test_exclusion_does_not_suppress_keyword(
        self,
        matcher: TriggerMatcher,
        store: RuleStore,
    ) -> None:
        """Test a keyword still matches when the only file is excluded."""
        context = PromptContext(
            prompt_text="update the component",
            visible_files=[VisibleFile(path="src/ui/Button.test.tsx", content="useState(1)")],
        )
        report = matcher.match(store, context)
        assert report.matched_names == ["react"]
        assert report.matches[0].matched_via == {MatchVia.KEYWORD}

    def test_exclusion_is_per_file(self, matcher: TriggerMatcher, store: RuleStore) -> None:
        """Test another non-excluded file can still match."""
        context = PromptContext(
            prompt_text="fix it",
            visible_files=[
                VisibleFile(path="src/ui/Button.test.tsx", content=""),
                VisibleFile(path="src/ui/Button.tsx", content=""),
            ],
        )
        report = matcher.match(store, context)
        assert report.matches[0].matched_via == {MatchVia.PATH_PATTERN}

    def test_no_files_prompt_only(self, matcher: TriggerMatcher, store: RuleStore) -> None:
        """Test prompt-only matching works with an empty file set."""
        report = matcher.match(store, PromptContext(prompt_text="new component"))
        assert report.matched_names == ["react"]

    def test_oversized_content_skipped(self, store: RuleStore) -> None:
        """Test content larger than the limit is not searched."""
        matcher = TriggerMatcher(MatcherConfig(max_content_bytes=10))
        context = PromptContext(
            prompt_text="fix it",
            visible_files=[VisibleFile(path="lib/a.ts", content="x" * 20 + "useState(")],
        )
        report = matcher.match(store, context)
        assert report.matches == []
        assert any("too large" in w for w in report.warnings)

    def test_regex_budget_exhausted(self) -> None:
        """Test regex checks stop once the time budget is spent."""
        store = RuleStore.load({
            "slow": _rule(promptTriggers={"intentPatterns": ["(a+)+$"], "keywords": ["zzz"]}),
        })
        matcher = TriggerMatcher(MatcherConfig(regex_budget_seconds=1e-9))
        report = matcher.match(store, PromptContext(prompt_text="a" * 18 + "b zzz"))
        assert report.matched_names == ["slow"]
        assert MatchVia.KEYWORD in report.matches[0].matched_via
        assert any("budget" in w for w in report.warnings)

    def test_regex_budget_bounds_single_search(self) -> None:
        """Test one catastrophic search is cut off near the time budget."""
        store = RuleStore.load({
            "slow": _rule(fileTriggers={"contentPatterns": ["(a+)+$"]}),
            "greeting": _rule(promptTriggers={"keywords": ["hello"]}),
        })
        matcher = TriggerMatcher(MatcherConfig(regex_budget_seconds=0.05))
        context = PromptContext(
            prompt_text="hello",
            visible_files=[VisibleFile(path="a.txt", content="a" * 40 + "b")],
        )
        start = time.perf_counter()
        report = matcher.match(store, context)
        assert time.perf_counter() - start < 1.0
        assert report.matched_names == ["greeting"]


class TestDeterminism:
    """Test matching is a pure function of its inputs."""

    def test_repeated_runs_identical(self) -> None:
        """Test identical inputs yield identical reports."""
        store = RuleStore.load({
            "a": _rule(promptTriggers={"keywords": ["x"], "intentPatterns": ["x+"]}),
            "b": _rule(fileTriggers={"pathPatterns": ["**/*.py"]}),
            "c": _rule(promptTriggers={"intentPatterns": ["("]}),
        })
        context = PromptContext(
            prompt_text="xx",
            visible_files=[VisibleFile(path="m.py", content="print()")],
        )
        matcher = TriggerMatcher()
        first = matcher.match(store, context).model_dump_json()
        for _ in range(5):
            assert matcher.match(store, context).model_dump_json() == first
