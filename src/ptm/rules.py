"""Ordered decision tables.

Every heuristic cascade in the engine is a tuple of ``Rule`` objects evaluated
top to bottom; the first rule whose predicate holds decides the result.
"""

from dataclasses import dataclass
from typing import Any, Callable


@dataclass(frozen=True)
class Rule:
    """One row of a decision table.

    ``then`` is either the result itself or a callable that renders the
    result from the context (used for templated messages).
    """
    name: str
    when: Callable[[Any], bool]
    then: Any


def first_match(rules: tuple[Rule, ...] | list[Rule], ctx: Any, default: Any = None) -> Any:
    """Evaluate ``rules`` in order and return the first matching result."""
    for rule in rules:
        if rule.when(ctx):
            return rule.then(ctx) if callable(rule.then) else rule.then
    return default(ctx) if callable(default) else default


def matching_rule(rules: tuple[Rule, ...] | list[Rule], ctx: Any) -> Rule | None:
    """Return the first rule that matches, for diagnostics and tests."""
    for rule in rules:
        if rule.when(ctx):
            return rule
    return None
