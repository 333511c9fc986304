"""Rule store loader with schema validation and duplicate detection."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator, Mapping
from functools import lru_cache
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from pydantic import ValidationError

from .exceptions import DuplicateRuleError, MalformedRuleError
from .models import SkillRule

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).parent / "schemas" / "skill-rules.schema.json"

# Top-level keys allowed beside "skills" in the wrapped rules layout
WRAPPER_KEYS = {"$schema", "version", "description", "skills"}
RULE_FIELDS = {"type", "enforcement", "priority", "promptTriggers", "fileTriggers"}

YAML_SUFFIXES = {".yaml", ".yml"}


class _TrackedDict(dict):
    """Dict that remembers keys assigned more than once during parsing."""

    def __init__(self) -> None:
        super().__init__()
        self.duplicates: list[str] = []


def _tracked_pairs(pairs: list[tuple[str, Any]]) -> _TrackedDict:
    result = _TrackedDict()
    for key, value in pairs:
        if key in result:
            result.duplicates.append(key)
        result[key] = value
    return result


class _TrackingLoader(yaml.SafeLoader):
    """Safe YAML loader that records duplicate mapping keys."""

    def construct_mapping(self, node: yaml.MappingNode, deep: bool = False) -> _TrackedDict:
        self.flatten_mapping(node)
        pairs = []
        for key_node, value_node in node.value:
            key = self.construct_object(key_node, deep=deep)
            try:
                hash(key)
            except TypeError as e:
                raise yaml.constructor.ConstructorError(
                    "while constructing a mapping",
                    node.start_mark,
                    "found unhashable key",
                    key_node.start_mark,
                ) from e
            pairs.append((key, self.construct_object(value_node, deep=deep)))
        return _tracked_pairs(pairs)


def _construct_tracked_map(loader: _TrackingLoader, node: yaml.MappingNode) -> _TrackedDict:
    return loader.construct_mapping(node, deep=True)


_TrackingLoader.add_constructor(
    yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG,
    _construct_tracked_map,
)


@lru_cache(maxsize=1)
def load_schema() -> dict[str, Any]:
    """Load the bundled rule source JSON schema."""
    with SCHEMA_PATH.open(encoding="utf-8") as f:
        return json.load(f)


def parse_rule_text(text: str, fmt: str | None = None) -> Any:
    """Parse rule source text as JSON or YAML.

    Args:
        text: Raw rule source
        fmt: "json" or "yaml"; sniffed from the first character when omitted

    Returns:
        Parsed data with duplicate keys recorded on each mapping

    Raises:
        MalformedRuleError: If the text is not well-formed
    """
    if fmt is None:
        fmt = "json" if text.lstrip().startswith("{") else "yaml"

    if fmt == "json":
        try:
            return json.loads(text, object_pairs_hook=_tracked_pairs)
        except json.JSONDecodeError as e:
            msg = f"Failed to parse rules JSON: {e}"
            raise MalformedRuleError(msg, details={"line": e.lineno}) from e

    try:
        return yaml.load(text, Loader=_TrackingLoader)
    except yaml.YAMLError as e:
        msg = f"Failed to parse rules YAML: {e}"
        raise MalformedRuleError(msg) from e


def _unwrap(data: Any) -> Any:
    """Return the name-keyed rule mapping from either supported layout.

    Without a ``version`` key, a ``skills`` entry carrying rule fields is a
    rule named "skills" rather than the wrapper.
    """
    if (
        isinstance(data, dict)
        and isinstance(data.get("skills"), dict)
        and set(data) <= WRAPPER_KEYS
        and ("version" in data or not RULE_FIELDS & set(data["skills"]))
    ):
        return data["skills"]
    return data


class RuleStore(Mapping[str, SkillRule]):
    """Immutable, declaration-ordered collection of skill rules."""

    def __init__(self, rules: list[SkillRule], source: str | None = None) -> None:
        """Initialize store from already validated rules.

        Args:
            rules: Rules in declaration order
            source: Description of where the rules came from

        Raises:
            DuplicateRuleError: If two rules share a name
        """
        self._rules: dict[str, SkillRule] = {}
        for rule in rules:
            if rule.name in self._rules:
                msg = f"Duplicate rule name: {rule.name}"
                raise DuplicateRuleError(msg, details={"name": rule.name, "source": source})
            self._rules[rule.name] = rule
        self._order = {name: i for i, name in enumerate(self._rules)}
        self.source = source

    @classmethod
    def load(
        cls,
        source: Path | str | Mapping[str, Any],
        fmt: str | None = None,
    ) -> RuleStore:
        """Load and validate a rule set.

        Args:
            source: Path to a JSON/YAML file, rule source text, or parsed mapping
            fmt: Force "json" or "yaml" parsing of text or files

        Returns:
            Validated rule store

        Raises:
            MalformedRuleError: If the source is unreadable or invalid
            DuplicateRuleError: If a skill name is declared twice
        """
        label = "<mapping>"
        if isinstance(source, Path):
            label = str(source)
            if fmt is None:
                fmt = "yaml" if source.suffix.lower() in YAML_SUFFIXES else "json"
            try:
                text = source.read_text(encoding="utf-8")
            except OSError as e:
                msg = f"Failed to read rules file: {e}"
                raise MalformedRuleError(msg, details={"path": label}) from e
            except UnicodeDecodeError as e:
                msg = f"Rules file is not valid UTF-8: {e}"
                raise MalformedRuleError(msg, details={"path": label}) from e
            data = parse_rule_text(text, fmt)
        elif isinstance(source, str):
            label = "<text>"
            data = parse_rule_text(source, fmt)
        else:
            data = source

        rules_data = _unwrap(data)
        if not isinstance(rules_data, Mapping):
            msg = "Rule source must be an object keyed by skill name"
            raise MalformedRuleError(msg, details={"source": label})

        duplicates = getattr(rules_data, "duplicates", [])
        if duplicates:
            msg = f"Duplicate rule name: {duplicates[0]}"
            raise DuplicateRuleError(msg, details={"names": duplicates, "source": label})

        try:
            jsonschema.validate(dict(rules_data), load_schema())
        except jsonschema.ValidationError as e:
            path = list(e.absolute_path)
            msg = f"Schema validation failed at {'/'.join(map(str, path)) or '<root>'}: {e.message}"
            raise MalformedRuleError(msg, details={"path": path, "source": label}) from e

        rules = []
        for name, value in rules_data.items():
            try:
                rules.append(SkillRule.model_validate({**value, "name": name}))
            except ValidationError as e:
                msg = f"Rule '{name}' is invalid: {e}"
                raise MalformedRuleError(msg, details={"name": name, "source": label}) from e

        store = cls(rules, source=label)
        logger.debug("Loaded %d rules from %s", len(store), label)
        return store

    def __getitem__(self, name: str) -> SkillRule:
        return self._rules[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._rules)

    def __len__(self) -> int:
        return len(self._rules)

    def rules(self) -> list[SkillRule]:
        """Rules in declaration order."""
        return list(self._rules.values())

    def names(self) -> list[str]:
        """Skill names in declaration order."""
        return list(self._rules)

    def declaration_index(self, name: str) -> int:
        """Position of a rule in declaration order."""
        return self._order[name]
