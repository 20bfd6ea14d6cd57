"""
Model groups and modules.

A ModelGroup is a top-level schedulable unit; a Module is a nested unit of
work inside a group. Both share the same per-unit state machine:
idle -> running -> completed | failed, idle <-> disabled, and back to idle on
reset.
"""

import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from modelflow.core.types import Output, OutputValue
from modelflow.exceptions import ConfigurationError, TypeMismatchError


class UnitStatus(StrEnum):
    """Execution status of a group or module."""

    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    DISABLED = "disabled"


# Statuses that count as "processed" for one run pass
SETTLED_STATUSES = frozenset({UnitStatus.COMPLETED, UnitStatus.FAILED})


def _outputs_from_config(unit_id: str, entries: Any) -> list[Output]:
    outputs = []
    for entry in entries or []:
        if isinstance(entry, str):
            entry = {"name": entry}
        if not isinstance(entry, Mapping) or "name" not in entry:
            raise ConfigurationError(f"Output of '{unit_id}' must be a name or a mapping with 'name': {entry!r}")
        try:
            default = OutputValue.from_python(entry["value"]) if entry.get("value") is not None else None
        except TypeMismatchError as e:
            raise ConfigurationError(f"Output '{entry['name']}' of '{unit_id}': {e}") from None
        outputs.append(Output(name=str(entry["name"]), unit=entry.get("unit"), default=default))
    return outputs


def _common_fields(data: Mapping[str, Any], index: int, kind: str) -> dict[str, Any]:
    if not isinstance(data, Mapping) or not data.get("id"):
        raise ConfigurationError(f"Every {kind} needs an 'id': {data!r}")
    unit_id = str(data["id"])
    dependencies = data.get("dependencies") or []
    if isinstance(dependencies, str):
        dependencies = [dependencies]
    optional = bool(data.get("optional", True))
    enabled = bool(data.get("enabled", True))
    if not optional and not enabled:
        raise ConfigurationError(f"{kind.capitalize()} '{unit_id}' is not optional and cannot be disabled")
    return {
        "id": unit_id,
        "name": str(data.get("name") or unit_id),
        "enabled": enabled,
        "optional": optional,
        "frozen": bool(data.get("frozen", False)),
        "breakpoint": bool(data.get("breakpoint", False)),
        "dependencies": [str(d) for d in dependencies],
        "outputs": _outputs_from_config(unit_id, data.get("outputs")),
        "compute": data.get("compute"),
        "index": index,
    }


@dataclass
class Unit:
    """Fields and transitions shared by groups and modules."""

    id: str
    name: str = ""
    enabled: bool = True
    optional: bool = True
    frozen: bool = False
    breakpoint: bool = False
    status: UnitStatus = UnitStatus.IDLE
    progress: float = 0.0
    dependencies: list[str] = field(default_factory=list)
    outputs: list[Output] = field(default_factory=list)
    start_time: float | None = None
    end_time: float | None = None
    error: str | None = None
    compute: str | None = None  # "package.module:function" reference
    index: int = 0  # declaration index, used to break topological ties

    def __post_init__(self) -> None:
        if not self.name:
            self.name = self.id
        if not self.enabled:
            self.status = UnitStatus.DISABLED

    def start(self) -> None:
        """Mark unit as running."""
        self.status = UnitStatus.RUNNING
        self.progress = 0.0
        self.start_time = time.time()
        self.end_time = None
        self.error = None

    def complete(self) -> None:
        """Mark unit as completed."""
        self.status = UnitStatus.COMPLETED
        self.progress = 100.0
        self.end_time = time.time()

    def fail(self, message: str) -> None:
        """Mark unit as failed, keeping progress where it stopped."""
        self.status = UnitStatus.FAILED
        self.error = message
        self.end_time = time.time()

    def reset(self) -> None:
        """Return to idle with cleared outputs and timestamps."""
        self.status = UnitStatus.IDLE if self.enabled else UnitStatus.DISABLED
        self.progress = 0.0
        self.start_time = None
        self.end_time = None
        self.error = None
        for output in self.outputs:
            output.value = None

    def set_enabled(self, enabled: bool) -> None:
        self.enabled = enabled
        if not enabled:
            self.status = UnitStatus.DISABLED
        elif self.status == UnitStatus.DISABLED:
            self.status = UnitStatus.IDLE

    def output_map(self) -> dict[str, Any]:
        """Current output values keyed by name (unset outputs omitted)."""
        return {o.name: o.value for o in self.outputs if o.value is not None}

    def get_duration(self) -> float | None:
        """Get execution duration in seconds."""
        if self.start_time and self.end_time:
            return self.end_time - self.start_time
        elif self.start_time:
            return time.time() - self.start_time
        return None


@dataclass
class Module(Unit):
    """Nested unit of work inside a model group."""

    group_id: str = ""
    duration: float | None = None  # simulated seconds; None = engine default

    @classmethod
    def from_config(cls, data: Mapping[str, Any], group_id: str, index: int = 0) -> "Module":
        duration = data.get("duration")
        if duration is not None and (not isinstance(duration, (int, float)) or duration < 0):
            raise ConfigurationError(f"Module '{data.get('id')}' has an invalid duration: {duration!r}")
        return cls(**_common_fields(data, index, "module"), group_id=group_id, duration=duration)


@dataclass
class ModelGroup(Unit):
    """Top-level schedulable unit composed of modules."""

    modules: list[Module] = field(default_factory=list)
    module_order: list[str] = field(default_factory=list)  # ranks ties between ready modules

    @classmethod
    def from_config(cls, data: Mapping[str, Any], index: int = 0) -> "ModelGroup":
        """Build a group and its modules from a ``groups:`` entry of config.yaml."""
        fields = _common_fields(data, index, "group")
        modules = [Module.from_config(m, fields["id"], i) for i, m in enumerate(data.get("modules") or [])]
        module_order = data.get("module_order") or []
        if not isinstance(module_order, list):
            raise ConfigurationError(f"module_order of group '{fields['id']}' must be a list of module ids")
        return cls(**fields, modules=modules, module_order=[str(m) for m in module_order])

    def get_module(self, module_id: str) -> Module | None:
        for module in self.modules:
            if module.id == module_id:
                return module
        return None


# ---------------------------------------------------------------------------
# Immutable snapshots handed to readers
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class OutputSnapshot:
    name: str
    value: Any
    unit: str | None


@dataclass(frozen=True)
class UnitSnapshot:
    id: str
    name: str
    enabled: bool
    optional: bool
    frozen: bool
    breakpoint: bool
    status: UnitStatus
    progress: float
    dependencies: tuple[str, ...]
    outputs: tuple[OutputSnapshot, ...]
    start_time: float | None
    end_time: float | None
    error: str | None
    modules: tuple["UnitSnapshot", ...] = ()

    @classmethod
    def of(cls, unit: Unit) -> "UnitSnapshot":
        modules = tuple(cls.of(m) for m in unit.modules) if isinstance(unit, ModelGroup) else ()
        return cls(
            id=unit.id,
            name=unit.name,
            enabled=unit.enabled,
            optional=unit.optional,
            frozen=unit.frozen,
            breakpoint=unit.breakpoint,
            status=unit.status,
            progress=unit.progress,
            dependencies=tuple(unit.dependencies),
            outputs=tuple(
                OutputSnapshot(o.name, o.value.to_python() if o.value is not None else None, o.unit)
                for o in unit.outputs
            ),
            start_time=unit.start_time,
            end_time=unit.end_time,
            error=unit.error,
            modules=modules,
        )
