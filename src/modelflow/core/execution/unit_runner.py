"""
Execution of a single model group and its modules.

A group runs its modules through a module-level Scheduler (one at a time in
sequential mode, level batches in parallel mode). Every module does its
simulated work on the TaskCoordinator and then its compute; once all modules
have settled the group compute produces the group outputs.
"""

import asyncio
import time
from collections.abc import Callable, Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor

from modelflow.core.compute import ComputeInputs, ComputeRegistry, ComputeRequest, _format_duration
from modelflow.core.dependencies import DependencyGraph
from modelflow.core.execution.config import EngineConfig
from modelflow.core.execution.coordinator import RunGate, TaskCoordinator
from modelflow.core.freeze import FreezeRegistry
from modelflow.core.scheduler import Scheduler
from modelflow.core.types import Output, OutputValue
from modelflow.core.units import ModelGroup, Module, Unit, UnitStatus
from modelflow.exceptions import DependencyUnsatisfiedError, ExecutionError, ModuleExecutionError
from modelflow.utils.logging import get_logger

logger = get_logger("modelflow.execution.unit_runner")


class UnitRunner:
    """
    Drives groups and modules through the per-unit state machine.

    Runtime failures are recorded on the unit (``status=failed``, ``error``)
    and reported through the return value; they are never raised to the
    scheduling loop.
    """

    def __init__(
        self,
        groups: Mapping[str, ModelGroup],
        module_graphs: Mapping[str, DependencyGraph],
        freeze: FreezeRegistry,
        registry: ComputeRegistry,
        gate: RunGate,
        coordinator: TaskCoordinator,
        config: EngineConfig,
        executor_pool: ThreadPoolExecutor | None = None,
        on_change: Callable[[], None] | None = None,
    ):
        self.groups = groups
        self.module_graphs = module_graphs
        self.freeze = freeze
        self.registry = registry
        self.gate = gate
        self.coordinator = coordinator
        self.config = config
        self.executor_pool = executor_pool
        self.on_change = on_change or (lambda: None)
        self.modules: dict[str, Module] = {m.id: m for g in groups.values() for m in g.modules}
        self.run_id: str | None = None
        self.iteration = 0

    def bind(self, run_id: str | None, iteration: int) -> None:
        """Set the run identity handed to compute functions."""
        self.run_id = run_id
        self.iteration = iteration

    def module_scheduler(self, group: ModelGroup) -> Scheduler:
        """Scheduler over one group's modules; other groups' modules are external."""
        own = {m.id for m in group.modules}
        external = {mid: m for mid, m in self.modules.items() if mid not in own}
        return Scheduler(self.module_graphs[group.id], freeze=self.freeze, external=external)

    # --- progress ------------------------------------------------------------

    def update_group_progress(self, group: ModelGroup) -> None:
        """Group progress is the mean progress of its enabled modules."""
        active = [m for m in group.modules if m.enabled]
        if active:
            group.progress = sum(m.progress for m in active) / len(active)

    def _progress_callback(self, group: ModelGroup, module: Module) -> Callable[[str, float], None]:
        def on_progress(task_id: str, percent: float) -> None:
            module.progress = percent
            self.update_group_progress(group)
            self.on_change()

        return on_progress

    # --- compute -------------------------------------------------------------

    def _lookup(self, unit_id: str) -> Unit | None:
        return self.groups.get(unit_id) or self.modules.get(unit_id)

    def _inputs(self, unit: Unit, extra: Sequence[Unit] = ()) -> ComputeInputs:
        inputs = {}
        for dep_id in unit.dependencies:
            dep = self._lookup(dep_id)
            if dep is not None:
                inputs[dep_id] = dict(dep.output_map())
        for other in extra:
            inputs[other.id] = dict(other.output_map())
        return inputs

    async def _compute(self, unit: Unit, kind: str, inputs: ComputeInputs, group_id: str | None = None) -> None:
        request = ComputeRequest(
            unit_id=unit.id,
            name=unit.name,
            kind=kind,
            group_id=group_id,
            declared={o.name: o.default.to_python() if o.default is not None else None for o in unit.outputs},
            run_id=self.run_id,
            iteration=self.iteration,
        )
        fn = self.registry.resolve(unit.id, unit.compute)
        outputs = await self.registry.invoke(fn, request, inputs, self.executor_pool)
        self._apply_outputs(unit, outputs)

    @staticmethod
    def _apply_outputs(unit: Unit, outputs: Mapping[str, OutputValue]) -> None:
        by_name = {o.name: o for o in unit.outputs}
        for name, value in outputs.items():
            if name in by_name:
                by_name[name].value = value
            else:
                unit.outputs.append(Output(name=name, value=value))

    # --- modules -------------------------------------------------------------

    async def run_module(self, group: ModelGroup, module: Module) -> ExecutionError | None:
        """
        Run one module: wait for the gate, simulate its work, then compute.

        Returns:
            The recorded error if the module failed, else None
        """
        await self.gate.wait_open()
        module.start()
        self.on_change()
        logger.info(f"Starting module '{module.id}' of group '{group.id}'")

        duration = module.duration if module.duration is not None else self.config.default_duration
        await self.coordinator.run(module.id, duration, self._progress_callback(group, module))

        try:
            await self._compute(module, "module", self._inputs(module), group_id=group.id)
        except Exception as e:
            error = ModuleExecutionError(module.id, str(e) or type(e).__name__, cause=e)
            module.fail(error.message)
            self.update_group_progress(group)
            logger.error(error.message, exc_info=(type(e), e, e.__traceback__))
            self.on_change()
            return error

        module.complete()
        self.update_group_progress(group)
        logger.info(f"Module '{module.id}' completed in {_format_duration(module.get_duration() or 0.0)}")
        if module.breakpoint:
            self.gate.hold(module.id)
        self.on_change()
        return None

    async def _run_modules(self, group: ModelGroup, parallel: bool) -> ExecutionError | None:
        scheduler = self.module_scheduler(group)
        units = {m.id: m for m in group.modules}
        while True:
            if parallel:
                batch = scheduler.next_parallel_batch(units)
            else:
                next_id = scheduler.next_sequential(units)
                batch = [next_id] if next_id else []
            if not batch:
                break
            errors = await asyncio.gather(*(self.run_module(group, units[m]) for m in batch))
            failure = next((e for e in errors if e is not None), None)
            if failure is not None:
                return failure

        if not scheduler.is_settled(units):
            blocking = sorted({d for deps in scheduler.blocked(units).values() for d in deps})
            return DependencyUnsatisfiedError(group.id, blocking)
        return None

    # --- groups --------------------------------------------------------------

    async def run_group(self, group: ModelGroup, parallel: bool = False) -> bool:
        """
        Run a group through ``idle -> running -> completed | failed``.

        Returns:
            True if the group completed
        """
        group.start()
        self.on_change()
        start_time = time.time()
        logger.info(f"Starting group '{group.id}' ({len(group.modules)} modules)")

        failure = await self._run_modules(group, parallel)
        if failure is None:
            module_outputs = [m for m in group.modules if m.status == UnitStatus.COMPLETED or m.frozen]
            try:
                await self._compute(group, "group", self._inputs(group, module_outputs))
            except Exception as e:
                failure = ModuleExecutionError(group.id, str(e) or type(e).__name__, cause=e)
                logger.error(failure.message, exc_info=(type(e), e, e.__traceback__))

        if failure is not None:
            group.fail(failure.message)
            if not isinstance(failure, ModuleExecutionError) or failure.unit_id != group.id:
                logger.error(f"Group '{group.id}' failed: {failure.message}")
            self.on_change()
            return False

        group.complete()
        logger.info(f"Group '{group.id}' completed in {_format_duration(time.time() - start_time)}")
        if group.breakpoint:
            self.gate.hold(group.id)
        self.on_change()
        return True
