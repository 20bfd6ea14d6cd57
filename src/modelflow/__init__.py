"""
Modelflow - Dependency-aware orchestration of model groups and modules.
"""

__version__ = "0.1.0"

# Core exports
from modelflow.core.compute import ComputeRegistry, ComputeRequest
from modelflow.core.conditions import ConditionalDependencyRule
from modelflow.core.engine import EngineSnapshot, WorkflowEngine
from modelflow.core.execution.config import EngineConfig
from modelflow.core.initialization import initialize
from modelflow.core.lifecycle import RunPhase, RunRecord, RunState
from modelflow.core.types import OperationResult, Output
from modelflow.core.units import ModelGroup, Module, UnitStatus

# Exceptions
from modelflow.exceptions import (
    BreakpointWithoutActiveRunError,
    ConfigurationError,
    CycleDetectedError,
    DependencyUnsatisfiedError,
    ExecutionError,
    InitializationError,
    InvalidStateTransitionError,
    ModelflowError,
    ModuleExecutionError,
    StateStoreError,
    TypeMismatchError,
    UnknownEntityError,
)

# Logging utilities
from modelflow.utils.logging import get_logger, setup_logging, setup_logging_from_config

__all__ = [
    "__version__",
    "WorkflowEngine",
    "EngineSnapshot",
    "EngineConfig",
    "ComputeRegistry",
    "ComputeRequest",
    "ConditionalDependencyRule",
    "ModelGroup",
    "Module",
    "Output",
    "UnitStatus",
    "OperationResult",
    "RunPhase",
    "RunRecord",
    "RunState",
    "initialize",
    "ModelflowError",
    "ConfigurationError",
    "CycleDetectedError",
    "InitializationError",
    "ExecutionError",
    "ModuleExecutionError",
    "DependencyUnsatisfiedError",
    "InvalidStateTransitionError",
    "BreakpointWithoutActiveRunError",
    "UnknownEntityError",
    "TypeMismatchError",
    "StateStoreError",
    "get_logger",
    "setup_logging",
    "setup_logging_from_config",
]
