"""
Execution components: configuration, simulated work, unit runs, and the run loop.
"""

from modelflow.core.execution.config import EngineConfig
from modelflow.core.execution.coordinator import RunGate, TaskCoordinator
from modelflow.core.execution.execution_orchestrator import ExecutionOrchestrator
from modelflow.core.execution.unit_runner import UnitRunner

__all__ = [
    "EngineConfig",
    "RunGate",
    "TaskCoordinator",
    "ExecutionOrchestrator",
    "UnitRunner",
]
