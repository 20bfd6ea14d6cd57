"""
Conditional dependencies.

A rule reads one output of a source group and, when its comparison holds,
either forces the target group to run this pass (``run``) or excludes it
(``skip``). Rules are layered over the static graph; ``skip`` wins over
``run``, which wins over static readiness.
"""

from __future__ import annotations

import operator as op
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from modelflow.core.types import (
    VALID_ACTIONS,
    VALID_OPERATORS,
    Boolean,
    Number,
    Operator,
    OutputValue,
    RuleAction,
    Text,
)
from modelflow.core.units import Unit, UnitStatus
from modelflow.exceptions import ConfigurationError, TypeMismatchError
from modelflow.utils.logging import get_logger

logger = get_logger("modelflow.conditions")

_OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    ">": op.gt,
    "<": op.lt,
    ">=": op.ge,
    "<=": op.le,
    "==": op.eq,
    "!=": op.ne,
}

_EQUALITY = frozenset({"==", "!="})


class Eligibility(StrEnum):
    """Outcome of resolving all rules that target one group."""

    STATIC = "static"  # no active rule, static readiness decides
    RUN = "run"
    SKIP = "skip"


@dataclass(frozen=True)
class ConditionalDependencyRule:
    target_id: str
    source_id: str
    output_field: str
    operator: Operator
    value: OutputValue
    action: RuleAction = "run"

    def __post_init__(self) -> None:
        if self.operator not in VALID_OPERATORS:
            raise ConfigurationError(
                f"Invalid operator '{self.operator}' in rule for '{self.target_id}'. "
                f"Valid: {sorted(VALID_OPERATORS)}"
            )
        if self.action not in VALID_ACTIONS:
            raise ConfigurationError(
                f"Invalid action '{self.action}' in rule for '{self.target_id}'. Valid: {sorted(VALID_ACTIONS)}"
            )

    @classmethod
    def from_config(cls, data: Mapping[str, Any]) -> ConditionalDependencyRule:
        """Build a rule from a ``rules:`` entry of config.yaml."""
        try:
            return cls(
                target_id=data["target"],
                source_id=data["source"],
                output_field=data["output"],
                operator=str(data.get("operator", "==")),
                value=OutputValue.from_python(data["value"]),
                action=data.get("action", "run"),
            )
        except KeyError as e:
            raise ConfigurationError(f"Conditional rule is missing key {e}: {dict(data)}") from None
        except TypeMismatchError as e:
            raise ConfigurationError(f"Conditional rule value is not supported: {e}") from None

    def describe(self) -> str:
        return (
            f"if {self.source_id}.{self.output_field} {self.operator} "
            f"{self.value.to_python()!r} then {self.action} {self.target_id}"
        )


def compare(left: OutputValue, operator: str, right: OutputValue) -> bool:
    """
    Apply a comparison operator to two output values.

    Numbers support all operators; Text and Boolean only support equality.

    Raises:
        TypeMismatchError: kinds differ or the operator is undefined for them
    """
    if operator not in _OPERATORS:
        raise TypeMismatchError(f"Unknown operator '{operator}'")
    if isinstance(left, Number) and isinstance(right, Number):
        return _OPERATORS[operator](left.value, right.value)
    if (isinstance(left, Text) and isinstance(right, Text)) or (
        isinstance(left, Boolean) and isinstance(right, Boolean)
    ):
        if operator not in _EQUALITY:
            raise TypeMismatchError(f"Operator '{operator}' is not defined for {left.kind} values")
        return _OPERATORS[operator](left.value, right.value)
    raise TypeMismatchError(f"Cannot compare {left.kind} with {right.kind} using '{operator}'")


class ConditionalDependencyEvaluator:
    """Evaluates run/skip rules against the current outputs of source groups."""

    def __init__(self, rules: Iterable[ConditionalDependencyRule] = ()):
        self.rules: list[ConditionalDependencyRule] = list(rules)
        # Comparison errors seen while resolving, keyed by rule description
        self.errors: dict[str, str] = {}

    def add_rule(self, rule: ConditionalDependencyRule) -> None:
        self.rules.append(rule)

    def rules_for(self, target_id: str) -> list[ConditionalDependencyRule]:
        return [r for r in self.rules if r.target_id == target_id]

    def validate(self, known_ids: Iterable[str]) -> None:
        """Fail fast on rules that reference unknown groups or target themselves."""
        known = set(known_ids)
        for rule in self.rules:
            for ref in (rule.target_id, rule.source_id):
                if ref not in known:
                    raise ConfigurationError(f"Conditional rule references unknown group '{ref}': {rule.describe()}")
            if rule.target_id == rule.source_id:
                raise ConfigurationError(f"Conditional rule targets its own source: {rule.describe()}")

    def evaluate(self, rule: ConditionalDependencyRule, source_outputs: Mapping[str, OutputValue]) -> bool:
        """
        Evaluate one rule against a source's current outputs.

        A missing output field evaluates to False.

        Raises:
            TypeMismatchError: the comparison is not defined for the values
        """
        current = source_outputs.get(rule.output_field)
        if current is None:
            return False
        return compare(current, rule.operator, rule.value)

    def is_active(self, rule: ConditionalDependencyRule, units: Mapping[str, Unit]) -> bool:
        """A rule is active when its source has finished (or is frozen) and it evaluates true."""
        source = units.get(rule.source_id)
        if source is None:
            return False
        if source.status != UnitStatus.COMPLETED and not source.frozen:
            return False
        try:
            return self.evaluate(rule, source.output_map())
        except TypeMismatchError as e:
            key = rule.describe()
            if key not in self.errors:
                logger.warning(f"Ignoring conditional rule ({key}): {e}")
            self.errors[key] = str(e)
            return False

    def resolve(self, target_id: str, units: Mapping[str, Unit]) -> Eligibility:
        """Combine active rules for a target: skip > run > static."""
        actions = {r.action for r in self.rules_for(target_id) if self.is_active(r, units)}
        if "skip" in actions:
            return Eligibility.SKIP
        if "run" in actions:
            return Eligibility.RUN
        return Eligibility.STATIC
