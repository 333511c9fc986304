"""Enforcement resolution and priority ordering for matched skills."""

from __future__ import annotations

from .models import Action, Enforcement, MatchResult, Resolution


class PolicyResolver:
    """Decides the overall action and skill order for a set of matches.

    Precedence is block > warn > suggest > none: any blocking match stops the
    request regardless of priority.
    """

    def resolve(self, matches: list[MatchResult]) -> Resolution:
        """Resolve enforcement for matches given in declaration order.

        Args:
            matches: Matched rules, in rule store declaration order

        Returns:
            Resolution with skills sorted by descending priority weight
        """
        if not matches:
            return Resolution(action=Action.NONE)

        # sorted() is stable, so equal weights keep declaration order
        ordered = sorted(matches, key=lambda m: m.rule.priority.weight, reverse=True)
        ordered_rules = [m.rule for m in ordered]

        blocking = [r for r in ordered_rules if r.enforcement == Enforcement.BLOCK]
        warning = [r for r in ordered_rules if r.enforcement == Enforcement.WARN]

        if blocking:
            action = Action.BLOCK
        elif warning:
            action = Action.WARN
        else:
            action = Action.SUGGEST

        return Resolution(
            action=action,
            ordered_skills=[r.name for r in ordered_rules],
            blocking_rules=blocking,
            warning_rules=warning,
        )
