"""
Type definitions for Modelflow.

Output values are a closed tagged union (Number, Text, Boolean, Struct, List)
rather than untyped blobs, so comparisons are only defined where they make
sense and anything else fails with TypeMismatchError.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Literal

from modelflow.exceptions import TypeMismatchError


class ValueKind(StrEnum):
    """Discriminator of an OutputValue."""

    NUMBER = "number"
    TEXT = "text"
    BOOLEAN = "boolean"
    STRUCT = "struct"
    LIST = "list"


class OutputValue:
    """Base of the output value union. Use ``OutputValue.from_python`` to build one."""

    kind: ValueKind

    def to_python(self) -> Any:
        raise NotImplementedError

    def to_dict(self) -> dict[str, Any]:
        """JSON-friendly tagged representation."""
        return {"kind": self.kind.value, "value": self.to_python()}

    @staticmethod
    def from_python(value: Any) -> OutputValue:
        """
        Wrap a plain Python value.

        bool is checked before int/float because ``isinstance(True, int)`` is
        True in Python.

        Raises:
            TypeMismatchError: if the value has no OutputValue variant
        """
        if isinstance(value, OutputValue):
            return value
        if isinstance(value, bool):
            return Boolean(value)
        if isinstance(value, (int, float)):
            return Number(value)
        if isinstance(value, str):
            return Text(value)
        if isinstance(value, Mapping):
            return Struct(tuple((str(k), OutputValue.from_python(v)) for k, v in value.items()))
        if isinstance(value, (list, tuple)):
            return ListValue(tuple(OutputValue.from_python(v) for v in value))
        raise TypeMismatchError(f"Unsupported output value type: {type(value).__name__}")

    @staticmethod
    def from_dict(data: Mapping[str, Any]) -> OutputValue:
        """Inverse of ``to_dict``."""
        kind = ValueKind(data["kind"])
        raw = data["value"]
        if kind is ValueKind.NUMBER:
            return Number(raw)
        if kind is ValueKind.TEXT:
            return Text(raw)
        if kind is ValueKind.BOOLEAN:
            return Boolean(raw)
        if kind is ValueKind.STRUCT:
            return Struct(tuple((k, OutputValue.from_python(v)) for k, v in raw.items()))
        return ListValue(tuple(OutputValue.from_python(v) for v in raw))


@dataclass(frozen=True)
class Number(OutputValue):
    value: int | float
    kind: ValueKind = field(default=ValueKind.NUMBER, init=False, repr=False)

    def to_python(self) -> int | float:
        return self.value


@dataclass(frozen=True)
class Text(OutputValue):
    value: str
    kind: ValueKind = field(default=ValueKind.TEXT, init=False, repr=False)

    def to_python(self) -> str:
        return self.value


@dataclass(frozen=True)
class Boolean(OutputValue):
    value: bool
    kind: ValueKind = field(default=ValueKind.BOOLEAN, init=False, repr=False)

    def to_python(self) -> bool:
        return self.value


@dataclass(frozen=True)
class Struct(OutputValue):
    fields: tuple[tuple[str, OutputValue], ...]
    kind: ValueKind = field(default=ValueKind.STRUCT, init=False, repr=False)

    def to_python(self) -> dict[str, Any]:
        return {name: value.to_python() for name, value in self.fields}


@dataclass(frozen=True)
class ListValue(OutputValue):
    items: tuple[OutputValue, ...]
    kind: ValueKind = field(default=ValueKind.LIST, init=False, repr=False)

    def to_python(self) -> list[Any]:
        return [item.to_python() for item in self.items]


@dataclass
class Output:
    """A named, unit-annotated output of a group or module."""

    name: str
    value: OutputValue | None = None
    unit: str | None = None
    # Declared value from configuration, used by the default compute
    default: OutputValue | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "value": self.value.to_dict() if self.value is not None else None,
            "unit": self.unit,
        }


#: Comparison operators accepted by conditional dependency rules
Operator = Literal[">", "<", ">=", "<=", "==", "!="]

#: Rule actions
RuleAction = Literal["run", "skip"]

#: Scheduling modes
ExecutionMode = Literal["sequential", "parallel"]

VALID_OPERATORS: frozenset[str] = frozenset({">", "<", ">=", "<=", "==", "!="})
VALID_ACTIONS: frozenset[str] = frozenset({"run", "skip"})


@dataclass(frozen=True)
class OperationResult:
    """
    Outcome of a user-facing operation.

    Rejected operations carry the error instead of raising it, and nothing is
    mutated. Truthy when the operation was applied.
    """

    ok: bool
    message: str = ""
    error: Exception | None = None

    def __bool__(self) -> bool:
        return self.ok

    @classmethod
    def success(cls, message: str = "") -> OperationResult:
        return cls(ok=True, message=message)

    @classmethod
    def rejected(cls, error: Exception) -> OperationResult:
        return cls(ok=False, message=str(error), error=error)
