"""
Run lifecycle.

Tracks run identity, phase, timestamps, iteration count, and run history.
Phases move IDLE -> INITIATED -> RUNNING -> MAIN_COMPLETE -> ADJUSTMENTS ->
FINALIZED; pausing is an orthogonal flag owned by the execution layer.

Run identity policy: ``increment_iteration_count()`` marks the next pass as an
iteration of the current run, which keeps the run id and run start time. A pass
started without a pending iteration gets a fresh run id and iteration 0.
"""

import time
import uuid
from dataclasses import asdict, dataclass, field
from enum import StrEnum
from typing import Any

from modelflow.core.types import OperationResult
from modelflow.exceptions import InvalidStateTransitionError
from modelflow.utils.logging import get_logger

logger = get_logger("modelflow.lifecycle")


class RunPhase(StrEnum):
    """Run lifecycle phase."""

    IDLE = "IDLE"
    INITIATED = "INITIATED"
    RUNNING = "RUNNING"
    MAIN_COMPLETE = "MAIN_COMPLETE"
    ADJUSTMENTS = "ADJUSTMENTS"
    FINALIZED = "FINALIZED"


@dataclass(frozen=True)
class RunState:
    """Immutable view of the run."""

    run_id: str | None
    phase: RunPhase
    paused: bool
    paused_on_id: str | None
    start_time: float | None
    end_time: float | None
    iteration_count: int
    frozen_ids: frozenset[str] = frozenset()


@dataclass(frozen=True)
class RunRecord:
    """History entry written when a run is finalized."""

    run_id: str
    start_time: float | None
    end_time: float | None
    duration: float
    completed_count: int
    total_count: int
    iteration_count: int
    phase: RunPhase
    frozen_ids: tuple[str, ...] = field(default_factory=tuple)


class RunLifecycle:
    """Phase state machine for one engine."""

    def __init__(self):
        self.phase = RunPhase.IDLE
        self.run_id: str | None = None
        self.start_time: float | None = None
        self.end_time: float | None = None
        self.iteration_count = 0
        self.iteration_pending = False
        self.history: list[RunRecord] = []
        self.last_completed_run_id: str | None = None

    def _reject(self, operation: str, reason: str | None = None) -> OperationResult:
        error = InvalidStateTransitionError(operation, self.phase.value, reason)
        logger.warning(error.message)
        return OperationResult.rejected(error)

    # --- pass control (driven by the engine) ---------------------------------

    def begin_pass(self) -> None:
        """Start a pass: a new run, or the next iteration of the current one."""
        if self.iteration_pending and self.run_id is not None:
            self.iteration_pending = False
            logger.info(f"Run {self.run_id[:8]} iteration {self.iteration_count} initiated")
        else:
            self.run_id = str(uuid.uuid4())
            self.iteration_count = 0
            self.iteration_pending = False
            self.start_time = time.time()
            logger.info(f"Run {self.run_id[:8]} initiated")
        self.end_time = None
        self.phase = RunPhase.INITIATED

    def mark_running(self) -> None:
        self.phase = RunPhase.RUNNING

    def mark_main_complete(self) -> None:
        self.phase = RunPhase.MAIN_COMPLETE
        self.end_time = time.time()
        logger.info(f"Run {self.run_id[:8] if self.run_id else '-'} main pass complete")

    def reset(self) -> None:
        """Back to IDLE after a reset of outputs; run id and history are kept."""
        self.phase = RunPhase.IDLE
        self.iteration_pending = False
        self.end_time = None

    # --- user-facing transitions ---------------------------------------------

    def transition_to_adjustments(self) -> OperationResult:
        if self.phase != RunPhase.MAIN_COMPLETE:
            return self._reject("transition to ADJUSTMENTS", "only legal from MAIN_COMPLETE")
        self.phase = RunPhase.ADJUSTMENTS
        logger.info("Run entered ADJUSTMENTS phase")
        return OperationResult.success("ADJUSTMENTS")

    def finalize(self, completed_count: int = 0, total_count: int = 0, frozen_ids=()) -> OperationResult:
        if self.phase not in (RunPhase.MAIN_COMPLETE, RunPhase.ADJUSTMENTS):
            return self._reject("finalize run", "only legal from MAIN_COMPLETE or ADJUSTMENTS")
        if self.end_time is None:
            self.end_time = time.time()
        self.phase = RunPhase.FINALIZED
        record = RunRecord(
            run_id=self.run_id or "",
            start_time=self.start_time,
            end_time=self.end_time,
            duration=self.get_run_duration(),
            completed_count=completed_count,
            total_count=total_count,
            iteration_count=self.iteration_count,
            phase=self.phase,
            frozen_ids=tuple(sorted(frozen_ids)),
        )
        self.history.append(record)
        self.last_completed_run_id = self.run_id
        logger.info(f"Run {record.run_id[:8]} finalized: {completed_count}/{total_count} groups completed")
        return OperationResult.success("FINALIZED")

    def increment_iteration_count(self) -> OperationResult:
        if self.phase not in (RunPhase.MAIN_COMPLETE, RunPhase.ADJUSTMENTS, RunPhase.FINALIZED):
            return self._reject("start a new iteration", "no completed pass to iterate on")
        self.iteration_count += 1
        self.iteration_pending = True
        logger.info(f"Iteration count is now {self.iteration_count}")
        return OperationResult.success(str(self.iteration_count))

    # --- queries -------------------------------------------------------------

    def is_locked(self) -> bool:
        """Results are locked after finalization."""
        return self.phase == RunPhase.FINALIZED

    def get_run_duration(self) -> float:
        """Seconds since run start, fixed once an end time is recorded."""
        if self.start_time is None:
            return 0.0
        end = self.end_time if self.end_time is not None else time.time()
        return max(0.0, end - self.start_time)

    def state(self, paused: bool = False, paused_on_id: str | None = None, frozen_ids=frozenset()) -> RunState:
        return RunState(
            run_id=self.run_id,
            phase=self.phase,
            paused=paused,
            paused_on_id=paused_on_id,
            start_time=self.start_time,
            end_time=self.end_time,
            iteration_count=self.iteration_count,
            frozen_ids=frozenset(frozen_ids),
        )

    def metadata(self, run_id: str | None = None) -> dict[str, Any] | None:
        """Metadata of the current run or of a finalized run from history."""
        target = run_id or self.run_id or self.last_completed_run_id
        if target is None:
            return None
        for record in reversed(self.history):
            if record.run_id == target and (target != self.run_id or self.phase == RunPhase.FINALIZED):
                return {**asdict(record), "is_active": False}
        if target == self.run_id:
            return {
                "run_id": self.run_id,
                "start_time": self.start_time,
                "end_time": self.end_time,
                "duration": self.get_run_duration(),
                "iteration_count": self.iteration_count,
                "phase": self.phase,
                "is_active": self.phase in (RunPhase.INITIATED, RunPhase.RUNNING),
            }
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "phase": self.phase.value,
            "iteration_count": self.iteration_count,
            "start_time": self.start_time,
            "end_time": self.end_time,
        }

    def restore(self, data: dict[str, Any]) -> None:
        self.run_id = data.get("run_id")
        self.phase = RunPhase(data.get("phase", RunPhase.IDLE.value))
        self.iteration_count = int(data.get("iteration_count", 0))
        self.start_time = data.get("start_time")
        self.end_time = data.get("end_time")
