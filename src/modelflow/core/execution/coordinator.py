"""
Pausable simulated work.

Every simulated unit of work is a SimulatedTask registered on one
TaskCoordinator instead of a free-running timer, so a global pause suspends all
in-flight work at once and resume continues from the last recorded progress.
"""

import asyncio
from collections.abc import Callable
from enum import StrEnum

from modelflow.utils.logging import get_logger

logger = get_logger("modelflow.execution.coordinator")


class WorkState(StrEnum):
    PENDING = "pending"
    RUNNING = "running"
    SUSPENDED = "suspended"
    DONE = "done"


class SimulatedTask:
    """
    A unit of simulated work that advances in ticks.

    Progress is recorded at tick boundaries; a tick interrupted by a pause is
    not counted, so resuming continues from the last recorded percentage.
    """

    def __init__(
        self,
        task_id: str,
        duration: float,
        coordinator: "TaskCoordinator",
        on_progress: Callable[[str, float], None] | None = None,
    ):
        self.task_id = task_id
        self.duration = max(0.0, duration)
        self.coordinator = coordinator
        self.on_progress = on_progress
        self.elapsed = 0.0
        self.state = WorkState.PENDING

    @property
    def progress(self) -> float:
        if self.duration == 0:
            return 100.0 if self.state == WorkState.DONE else 0.0
        return min(100.0, 100.0 * self.elapsed / self.duration)

    def finish(self) -> None:
        """Skip the remaining work; the task completes at its next tick."""
        self.elapsed = self.duration

    async def run(self) -> None:
        self.state = WorkState.RUNNING
        tick = self.coordinator.tick_interval
        while self.elapsed < self.duration:
            if self.coordinator.is_paused():
                self.state = WorkState.SUSPENDED
                await self.coordinator.wait_resumed()
                self.state = WorkState.RUNNING
            step = min(tick, self.duration - self.elapsed)
            await asyncio.sleep(step)
            if self.coordinator.is_paused():
                continue
            self.elapsed += step
            if self.on_progress:
                self.on_progress(self.task_id, self.progress)
        self.state = WorkState.DONE
        if self.on_progress:
            self.on_progress(self.task_id, 100.0)


class TaskCoordinator:
    """Registry of in-flight simulated tasks with global pause/resume."""

    DEFAULT_TICK_INTERVAL = 0.05

    def __init__(self, tick_interval: float = DEFAULT_TICK_INTERVAL):
        if tick_interval <= 0:
            raise ValueError(f"tick_interval must be positive, got {tick_interval}")
        self.tick_interval = tick_interval
        self._tasks: dict[str, SimulatedTask] = {}
        self._resumed = asyncio.Event()
        self._resumed.set()

    def is_paused(self) -> bool:
        return not self._resumed.is_set()

    def pause(self) -> bool:
        """Suspend all in-flight work. Returns False if already paused."""
        if self.is_paused():
            return False
        self._resumed.clear()
        logger.debug(f"Suspending {len(self._tasks)} in-flight task(s)")
        return True

    def resume(self) -> bool:
        """Let suspended work continue. Returns False if not paused."""
        if not self.is_paused():
            return False
        self._resumed.set()
        logger.debug(f"Resuming {len(self._tasks)} in-flight task(s)")
        return True

    async def wait_resumed(self) -> None:
        await self._resumed.wait()

    async def run(
        self,
        task_id: str,
        duration: float,
        on_progress: Callable[[str, float], None] | None = None,
    ) -> SimulatedTask:
        """Register and drive one task to completion."""
        task = SimulatedTask(task_id, duration, self, on_progress)
        self._tasks[task_id] = task
        try:
            await task.run()
        finally:
            self._tasks.pop(task_id, None)
        return task

    def finish_all(self) -> list[str]:
        """Finish every in-flight task early. Returns their ids."""
        for task in self._tasks.values():
            task.finish()
        if self._tasks:
            logger.debug(f"Finishing {len(self._tasks)} in-flight task(s) early")
        return list(self._tasks)

    def progress(self, task_id: str) -> float | None:
        task = self._tasks.get(task_id)
        return task.progress if task else None

    def active(self) -> list[str]:
        return list(self._tasks)

    def states(self) -> dict[str, WorkState]:
        return {task_id: task.state for task_id, task in self._tasks.items()}


class RunGate:
    """
    Decides whether a new unit may enter ``running``.

    The gate is closed while the run is globally paused or while any
    breakpoint hold is pending. Holds queue up in the order breakpoints were
    hit; the first one is reported as ``paused_on_id``. Only a global pause
    suspends in-flight simulated work.
    """

    def __init__(self, coordinator: TaskCoordinator):
        self.coordinator = coordinator
        self.paused = False
        self.holds: list[str] = []
        self._open = asyncio.Event()
        self._open.set()

    def _refresh(self) -> None:
        if self.is_open():
            self._open.set()
        else:
            self._open.clear()

    def is_open(self) -> bool:
        return not self.paused and not self.holds

    @property
    def paused_on_id(self) -> str | None:
        return self.holds[0] if self.holds else None

    def pause(self) -> bool:
        """Global pause. Returns False if already paused."""
        if self.paused:
            return False
        self.paused = True
        self.coordinator.pause()
        self._refresh()
        return True

    def resume(self) -> bool:
        """Clear the global pause and every breakpoint hold. Returns False if nothing was held."""
        held = self.paused or bool(self.holds)
        self.paused = False
        self.holds.clear()
        self.coordinator.resume()
        self._refresh()
        return held

    def hold(self, unit_id: str) -> None:
        if unit_id not in self.holds:
            self.holds.append(unit_id)
            logger.info(f"Breakpoint hit on '{unit_id}', holding further starts")
        self._refresh()

    def release(self, unit_id: str) -> bool:
        """Release the hold of one breakpoint. Returns False if it was not held."""
        if unit_id not in self.holds:
            return False
        self.holds.remove(unit_id)
        self._refresh()
        return True

    def clear(self) -> None:
        self.resume()

    async def wait_open(self) -> None:
        while not self.is_open():
            await self._open.wait()
