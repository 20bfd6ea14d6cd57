"""
Modelflow exception hierarchy.

All domain-specific exceptions inherit from ModelflowError, so callers can catch
any framework error with a single base class while still handling specific
failures when needed.

Hierarchy::

    ModelflowError
    ├── ConfigurationError              - config loading, parsing, validation
    │   └── CycleDetectedError          - static dependency graph has a cycle
    ├── InitializationError             - startup orchestration failures
    ├── ExecutionError                  - unit execution failures
    │   ├── ModuleExecutionError        - compute raised for a module or group
    │   └── DependencyUnsatisfiedError  - unit cannot start, dependencies open
    ├── InvalidStateTransitionError     - rejected lifecycle or toggle call
    │   └── BreakpointWithoutActiveRunError
    ├── UnknownEntityError              - id does not name a group or module
    ├── TypeMismatchError               - output value comparison/coercion
    └── StateStoreError                 - state document read/write

Runtime errors are recorded on entities and rejected operations are returned
inside an ``OperationResult``; only configuration errors are raised before a
run starts.
"""

from __future__ import annotations

from collections.abc import Iterable


class ModelflowError(Exception):
    """Base exception for all Modelflow errors."""

    def __init__(self, message: str, *, details: dict | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


# --- Configuration -----------------------------------------------------------


class ConfigurationError(ModelflowError):
    """Raised when configuration loading, parsing, or validation fails."""


class CycleDetectedError(ConfigurationError):
    """Raised when the static dependency graph contains a cycle."""

    def __init__(self, members: Iterable[str]) -> None:
        self.members = list(members)
        path = " -> ".join(self.members)
        super().__init__(f"Circular dependency detected: {path}", details={"members": self.members})


# --- Initialization ----------------------------------------------------------


class InitializationError(ModelflowError):
    """Raised during startup when a required component fails to initialize.

    Exception chaining is suppressed (``from None``) by the initializer to keep
    CLI output clean.
    """


# --- Execution ---------------------------------------------------------------


class ExecutionError(ModelflowError):
    """Raised when unit execution fails."""


class ModuleExecutionError(ExecutionError):
    """A compute function failed for a module or group."""

    def __init__(self, unit_id: str, message: str, *, cause: Exception | None = None) -> None:
        full = f"Unit '{unit_id}' failed: {message}"
        super().__init__(full, details={"unit": unit_id})
        self.unit_id = unit_id
        if cause is not None:
            self.__cause__ = cause


class DependencyUnsatisfiedError(ExecutionError):
    """A unit cannot start because some of its dependencies are not satisfied."""

    def __init__(self, unit_id: str, blocking: Iterable[str]) -> None:
        self.unit_id = unit_id
        self.blocking = list(blocking)
        super().__init__(
            f"Unit '{unit_id}' is blocked by: {', '.join(self.blocking) or 'unknown'}",
            details={"unit": unit_id, "blocking": self.blocking},
        )


# --- State transitions -------------------------------------------------------


class InvalidStateTransitionError(ModelflowError):
    """A lifecycle or toggle operation is not legal in the current state."""

    def __init__(self, operation: str, state: str, reason: str | None = None) -> None:
        message = f"Cannot {operation} in state {state}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message, details={"operation": operation, "state": state})
        self.operation = operation
        self.state = state


class BreakpointWithoutActiveRunError(InvalidStateTransitionError):
    """continue_after_breakpoint was called while no breakpoint holds the run."""

    def __init__(self, unit_id: str) -> None:
        super().__init__(
            "continue after breakpoint",
            "not paused",
            reason=f"no active breakpoint on '{unit_id}'",
        )
        self.unit_id = unit_id


# --- Lookup / values ---------------------------------------------------------


class UnknownEntityError(ModelflowError):
    """An id does not name any model group or module."""

    def __init__(self, entity_id: str, kind: str = "unit") -> None:
        super().__init__(f"Unknown {kind}: {entity_id}", details={"id": entity_id, "kind": kind})
        self.entity_id = entity_id


class TypeMismatchError(ModelflowError):
    """An output value cannot be compared or coerced as requested."""


# --- State store -------------------------------------------------------------


class StateStoreError(ModelflowError):
    """Raised when the state document cannot be read or written."""
