"""
Workflow engine.

WorkflowEngine owns the dependency graphs, conditional rules, frozen ids,
scheduler, run lifecycle, and execution layer of one workflow. It is the only
writer of entity state and exposes every user-facing operation:

- coroutines that execute work (``run_all``, ``continue_run``, ``run_model``,
  ``run_module``)
- plain methods that toggle flags, move the lifecycle, or pause/resume a run
  in progress (they only set events, so they are safe to call from callbacks
  or other tasks on the same loop)

Rejected operations return an ``OperationResult`` carrying the error and
mutate nothing. Query methods raise ``UnknownEntityError`` for unknown ids.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass
from typing import Any

from modelflow.core.compute import ComputeRegistry
from modelflow.core.conditions import ConditionalDependencyEvaluator, ConditionalDependencyRule, Eligibility
from modelflow.core.dependencies import DependencyGraph, build_group_graph, build_module_graph
from modelflow.core.execution.config import EngineConfig
from modelflow.core.execution.coordinator import RunGate, TaskCoordinator
from modelflow.core.execution.execution_orchestrator import ExecutionOrchestrator
from modelflow.core.execution.unit_runner import UnitRunner
from modelflow.core.freeze import FreezeRegistry
from modelflow.core.lifecycle import RunLifecycle, RunPhase, RunRecord, RunState
from modelflow.core.scheduler import Scheduler
from modelflow.core.state import StateStore
from modelflow.core.types import Output, OperationResult, OutputValue
from modelflow.core.units import ModelGroup, Module, Unit, UnitSnapshot, UnitStatus
from modelflow.exceptions import (
    BreakpointWithoutActiveRunError,
    ConfigurationError,
    DependencyUnsatisfiedError,
    ExecutionError,
    InvalidStateTransitionError,
    StateStoreError,
    UnknownEntityError,
)
from modelflow.utils.logging import get_logger

logger = get_logger("modelflow.engine")


@dataclass(frozen=True)
class EngineSnapshot:
    """Immutable view of the whole workflow handed to readers and subscribers."""

    run: RunState
    groups: tuple[UnitSnapshot, ...]

    def get_group(self, group_id: str) -> UnitSnapshot | None:
        for group in self.groups:
            if group.id == group_id:
                return group
        return None


Subscriber = Callable[[EngineSnapshot], None]


class WorkflowEngine:
    """
    Orchestrates model groups and modules through a run lifecycle.

    Attributes:
        name: Workflow name (from config.yaml ``name``)
        config: Execution settings
        groups: Model groups keyed by id, in declaration order
        modules: All modules of all groups keyed by id
        graph: Group-level dependency graph
        module_graphs: Module-level dependency graph per group id
        evaluator: Conditional run/skip rules
        freeze: Frozen group and module ids
        lifecycle: Run identity and phase machine
    """

    def __init__(
        self,
        groups: Sequence[ModelGroup],
        rules: Iterable[ConditionalDependencyRule] = (),
        config: EngineConfig | None = None,
        registry: ComputeRegistry | None = None,
        execution_order: Sequence[str] | None = None,
        state_store: StateStore | None = None,
        name: str = "modelflow",
    ):
        """
        Build and validate the workflow.

        Raises:
            ConfigurationError: duplicate or unknown ids, invalid rules or
                compute references
            CycleDetectedError: a group or module graph has a cycle
        """
        self.name = name
        self.config = config or EngineConfig()
        self.groups: dict[str, ModelGroup] = {}
        self.modules: dict[str, Module] = {}
        for index, group in enumerate(groups):
            self._register(group, self.groups)
            group.index = index
            for module_index, module in enumerate(group.modules):
                self._register(module, self.modules)
                module.group_id = group.id
                module.index = module_index

        self.graph: DependencyGraph = build_group_graph(list(self.groups.values()))
        all_module_ids = set(self.modules)
        self.module_graphs: dict[str, DependencyGraph] = {
            group.id: build_module_graph(group, all_module_ids) for group in self.groups.values()
        }
        for group in self.groups.values():
            if group.module_order:
                self._check_module_order(group, group.module_order)
                self.module_graphs[group.id].set_execution_order(group.module_order)

        self.evaluator = ConditionalDependencyEvaluator(rules)
        self.evaluator.validate(self.groups)
        self.freeze = FreezeRegistry(u.id for u in self._units() if u.frozen)
        if execution_order:
            self._check_order(execution_order)
            self.graph.set_execution_order(execution_order)

        self.registry = registry if registry is not None else ComputeRegistry()
        for unit in self._units():
            self.registry.resolve(unit.id, unit.compute)

        self.scheduler = Scheduler(self.graph, self.evaluator, self.freeze)
        self.lifecycle = RunLifecycle()
        self.coordinator = TaskCoordinator(self.config.tick_interval)
        self.gate = RunGate(self.coordinator)
        self.executor_pool = ThreadPoolExecutor(
            max_workers=self.config.thread_pool_size, thread_name_prefix="modelflow-compute"
        )
        self.runner = UnitRunner(
            self.groups,
            self.module_graphs,
            self.freeze,
            self.registry,
            self.gate,
            self.coordinator,
            self.config,
            executor_pool=self.executor_pool,
            on_change=self._notify,
        )
        self.orchestrator = ExecutionOrchestrator(self.runner, self.scheduler, self.gate, self.config)
        self.state_store = state_store
        self._active = False
        self._subscribers: list[Subscriber] = []

        logger.debug(
            f"Workflow '{self.name}' built: {len(self.groups)} groups, {len(self.modules)} modules, "
            f"{len(self.evaluator.rules)} rules"
        )

    @classmethod
    def from_config(
        cls,
        config: Mapping[str, Any],
        registry: ComputeRegistry | None = None,
        state_store: StateStore | None = None,
    ) -> WorkflowEngine:
        """
        Build an engine from a loaded config dict (``groups``, ``rules``,
        ``engine``, ``execution_order``, ``name``).
        """
        groups_config = config.get("groups") or []
        if not isinstance(groups_config, list):
            raise ConfigurationError("'groups' must be a list")
        groups = [ModelGroup.from_config(data, index) for index, data in enumerate(groups_config)]
        rules = [ConditionalDependencyRule.from_config(data) for data in config.get("rules") or []]
        return cls(
            groups,
            rules=rules,
            config=EngineConfig.from_config(dict(config)),
            registry=registry,
            execution_order=config.get("execution_order"),
            state_store=state_store,
            name=config.get("name") or "modelflow",
        )

    # --- internals -----------------------------------------------------------

    def _register(self, unit: Unit, target: dict) -> None:
        if unit.id in self.groups or unit.id in self.modules:
            raise ConfigurationError(f"Duplicate id '{unit.id}': ids must be unique across groups and modules")
        target[unit.id] = unit

    def _units(self) -> Iterable[Unit]:
        yield from self.groups.values()
        yield from self.modules.values()

    def _check_order(self, order: Sequence[str]) -> None:
        unknown = [g for g in order if g not in self.groups]
        if unknown:
            raise ConfigurationError(f"execution_order references unknown group(s): {', '.join(unknown)}")

    def _check_module_order(self, group: ModelGroup, order: Sequence[str]) -> None:
        unknown = [m for m in order if group.get_module(m) is None]
        if unknown:
            raise ConfigurationError(
                f"module_order of '{group.id}' references unknown module(s): {', '.join(unknown)}"
            )

    def _find(self, unit_id: str) -> Unit:
        unit = self.groups.get(unit_id) or self.modules.get(unit_id)
        if unit is None:
            raise UnknownEntityError(unit_id)
        return unit

    def _find_group(self, group_id: str) -> ModelGroup:
        group = self.groups.get(group_id)
        if group is None:
            raise UnknownEntityError(group_id, "group")
        return group

    def _find_module(self, group_id: str, module_id: str) -> Module:
        module = self._find_group(group_id).get_module(module_id)
        if module is None:
            raise UnknownEntityError(module_id, "module")
        return module

    def _reject(self, operation: str, reason: str | None = None) -> OperationResult:
        error = InvalidStateTransitionError(operation, self.lifecycle.phase.value, reason)
        logger.warning(error.message)
        return OperationResult.rejected(error)

    def _locked(self, operation: str) -> OperationResult | None:
        if self.lifecycle.is_locked():
            return self._reject(operation, "the run is finalized; start a new pass first")
        return None

    def _reset_units(self) -> None:
        """Reset every non-frozen group and module; frozen ones stay untouched."""
        for group in self.groups.values():
            if group.frozen:
                continue
            group.reset()
            for module in group.modules:
                if not module.frozen:
                    module.reset()
            self.runner.update_group_progress(group)

    def _persist(self) -> None:
        if self.state_store is None or not self.state_store.enabled:
            return
        try:
            self.state_store.save(self.to_document())
        except StateStoreError as e:
            logger.warning(f"State not saved: {e.message}")

    def _notify(self) -> None:
        if not self._subscribers:
            return
        snapshot = self.snapshot()
        for callback in list(self._subscribers):
            try:
                callback(snapshot)
            except Exception:
                logger.exception(f"Snapshot subscriber {callback!r} raised")

    async def _drive(self, parallel: bool) -> OperationResult:
        self._active = True
        try:
            settled = await self.orchestrator.execute(self.groups, parallel)
        finally:
            self._active = False
        if settled:
            self.lifecycle.mark_main_complete()
        self._persist()
        self._notify()
        if settled:
            return OperationResult.success(RunPhase.MAIN_COMPLETE.value)
        return OperationResult.success("stalled")

    # --- running -------------------------------------------------------------

    @property
    def is_active(self) -> bool:
        """True while a run loop or a single-unit run is executing."""
        return self._active

    async def run_all(self, parallel: bool | None = None) -> OperationResult:
        """
        Start a pass over the whole workflow and run it until nothing is ready.

        A pending iteration (``increment_iteration_count``) keeps the run id;
        otherwise a new run starts. Non-frozen units are reset first.

        Args:
            parallel: Level batches instead of one group at a time;
                defaults to ``engine.mode`` from config

        Returns:
            Success with message "MAIN_COMPLETE", or "stalled" when blocked
            groups remain (the phase stays RUNNING, see ``continue_run``)
        """
        if self._active:
            return self._reject("start a run", "a run is already executing")
        parallel = self.config.parallel if parallel is None else parallel

        self.lifecycle.begin_pass()
        self.gate.clear()
        self.evaluator.errors.clear()
        self._reset_units()
        self.runner.bind(self.lifecycle.run_id, self.lifecycle.iteration_count)
        self._persist()
        self._notify()

        self.lifecycle.mark_running()
        self._notify()
        return await self._drive(parallel)

    async def continue_run(self, parallel: bool | None = None) -> OperationResult:
        """Re-enter the loop of a stalled pass without resetting anything."""
        if self._active:
            return self._reject("continue the run", "a run is already executing")
        if self.lifecycle.phase != RunPhase.RUNNING:
            return self._reject("continue the run", "no stalled pass to continue")
        parallel = self.config.parallel if parallel is None else parallel
        logger.info("Continuing stalled run")
        return await self._drive(parallel)

    async def run_model(self, group_id: str) -> OperationResult:
        """
        Run one group outside the run loop if its dependencies are satisfied.

        Re-running a completed group is only allowed during ADJUSTMENTS.
        """
        try:
            group = self._find_group(group_id)
        except UnknownEntityError as e:
            return OperationResult.rejected(e)
        if self._active:
            return self._reject(f"run '{group_id}'", "a run is already executing")
        if rejected := self._locked(f"run '{group_id}'"):
            return rejected
        if group.frozen:
            return self._reject(f"run '{group_id}'", "the group is frozen; unfreeze it first")
        if not group.enabled:
            return self._reject(f"run '{group_id}'", "the group is disabled")
        if group.status == UnitStatus.COMPLETED and self.lifecycle.phase != RunPhase.ADJUSTMENTS:
            return self._reject(f"re-run '{group_id}'", "completed groups can only be re-run during ADJUSTMENTS")

        blocking = self.scheduler.unsatisfied_dependencies(group_id, self.groups)
        if blocking and self.evaluator.resolve(group_id, self.groups) != Eligibility.RUN:
            error = DependencyUnsatisfiedError(group_id, blocking)
            logger.warning(error.message)
            return OperationResult.rejected(error)

        if group.status != UnitStatus.IDLE:
            group.reset()
            for module in group.modules:
                if not module.frozen:
                    module.reset()
        self.runner.bind(self.lifecycle.run_id, self.lifecycle.iteration_count)
        self._active = True
        try:
            completed = await self.runner.run_group(group, parallel=self.config.parallel)
        finally:
            self._active = False
        self._persist()
        self._notify()
        if completed:
            return OperationResult.success(group.status.value)
        return OperationResult(ok=False, message=group.error or "", error=ExecutionError(group.error or "failed"))

    async def run_module(self, group_id: str, module_id: str) -> OperationResult:
        """Run one module of a group if its dependencies are satisfied."""
        try:
            group = self._find_group(group_id)
            module = self._find_module(group_id, module_id)
        except UnknownEntityError as e:
            return OperationResult.rejected(e)
        if self._active:
            return self._reject(f"run '{module_id}'", "a run is already executing")
        if rejected := self._locked(f"run '{module_id}'"):
            return rejected
        if module.frozen or group.frozen:
            return self._reject(f"run '{module_id}'", "the module or its group is frozen; unfreeze it first")
        if not module.enabled:
            return self._reject(f"run '{module_id}'", "the module is disabled")
        if module.status == UnitStatus.COMPLETED and self.lifecycle.phase != RunPhase.ADJUSTMENTS:
            return self._reject(f"re-run '{module_id}'", "completed modules can only be re-run during ADJUSTMENTS")

        scheduler = self.runner.module_scheduler(group)
        blocking = scheduler.unsatisfied_dependencies(module_id, {m.id: m for m in group.modules})
        if blocking:
            error = DependencyUnsatisfiedError(module_id, blocking)
            logger.warning(error.message)
            return OperationResult.rejected(error)

        module.reset()
        self.runner.bind(self.lifecycle.run_id, self.lifecycle.iteration_count)
        self._active = True
        try:
            error = await self.runner.run_module(group, module)
        finally:
            self._active = False
        self._persist()
        self._notify()
        if error is not None:
            return OperationResult(ok=False, message=error.message, error=error)
        return OperationResult.success(module.status.value)

    # --- pause / breakpoints -------------------------------------------------

    def pause_execution(self) -> OperationResult:
        """Globally pause: nothing new starts and in-flight simulated work suspends."""
        if not self.gate.pause():
            return OperationResult.success("already paused")
        logger.info("Execution paused")
        self._notify()
        return OperationResult.success("paused")

    def resume_execution(self) -> OperationResult:
        """Clear the global pause and every pending breakpoint hold."""
        if not self.gate.resume():
            return OperationResult.success("not paused")
        logger.info("Execution resumed")
        self._notify()
        return OperationResult.success("resumed")

    def continue_after_breakpoint(self, unit_id: str) -> OperationResult:
        """Release the hold of the breakpoint on ``unit_id``."""
        if not self.gate.release(unit_id):
            error = BreakpointWithoutActiveRunError(unit_id)
            logger.warning(error.message)
            return OperationResult.rejected(error)
        logger.info(f"Continuing after breakpoint on '{unit_id}'")
        self._notify()
        return OperationResult.success("continued")

    # --- reset / toggles -----------------------------------------------------

    def reset_outputs(self) -> OperationResult:
        """Return every non-frozen unit to idle with cleared outputs; history is kept."""
        if self._active:
            return self._reject("reset outputs", "a run is executing")
        if rejected := self._locked("reset outputs"):
            return rejected
        self._reset_units()
        self.gate.clear()
        self.lifecycle.reset()
        logger.info(f"Outputs reset ({len(self.freeze)} frozen unit(s) kept)")
        self._persist()
        self._notify()
        return OperationResult.success("reset")

    def reset_model(self, group_id: str) -> OperationResult:
        """Return one group and its non-frozen modules to idle with cleared outputs."""
        try:
            group = self._find_group(group_id)
        except UnknownEntityError as e:
            return OperationResult.rejected(e)
        operation = f"reset '{group_id}'"
        if self._active:
            return self._reject(operation, "a run is executing")
        if rejected := self._locked(operation):
            return rejected
        if group.frozen:
            return self._reject(operation, "the group is frozen; unfreeze it first")
        group.reset()
        for module in group.modules:
            if not module.frozen:
                module.reset()
                self.gate.release(module.id)
        self.gate.release(group_id)
        self.runner.update_group_progress(group)
        logger.info(f"'{group_id}' reset")
        self._persist()
        self._notify()
        return OperationResult.success("reset")

    def _toggle_enabled(self, unit: Unit, graph: DependencyGraph) -> OperationResult:
        operation = f"toggle enabled on '{unit.id}'"
        if rejected := self._locked(operation):
            return rejected
        if not unit.optional:
            return self._reject(operation, "the unit is not optional")
        if unit.frozen:
            return self._reject(operation, "the unit is frozen; unfreeze it first")
        if unit.status == UnitStatus.RUNNING:
            return self._reject(operation, "the unit is running")
        unit.set_enabled(not unit.enabled)
        graph.set_enabled(unit.id, unit.enabled)
        logger.info(f"'{unit.id}' {'enabled' if unit.enabled else 'disabled'}")
        self._notify()
        return OperationResult.success("enabled" if unit.enabled else "disabled")

    def toggle_model_enabled(self, group_id: str) -> OperationResult:
        try:
            group = self._find_group(group_id)
        except UnknownEntityError as e:
            return OperationResult.rejected(e)
        return self._toggle_enabled(group, self.graph)

    def toggle_module_enabled(self, group_id: str, module_id: str) -> OperationResult:
        try:
            module = self._find_module(group_id, module_id)
        except UnknownEntityError as e:
            return OperationResult.rejected(e)
        if self.groups[group_id].frozen:
            return self._reject(f"toggle enabled on '{module_id}'", f"group '{group_id}' is frozen")
        result = self._toggle_enabled(module, self.module_graphs[group_id])
        if result:
            self.runner.update_group_progress(self.groups[group_id])
        return result

    def toggle_breakpoint(self, unit_id: str) -> OperationResult:
        """Flip the breakpoint flag of a group or module."""
        try:
            unit = self._find(unit_id)
        except UnknownEntityError as e:
            return OperationResult.rejected(e)
        if rejected := self._locked(f"toggle breakpoint on '{unit_id}'"):
            return rejected
        unit.breakpoint = not unit.breakpoint
        self._notify()
        return OperationResult.success("on" if unit.breakpoint else "off")

    def toggle_module_breakpoint(self, group_id: str, module_id: str) -> OperationResult:
        try:
            self._find_module(group_id, module_id)
        except UnknownEntityError as e:
            return OperationResult.rejected(e)
        return self.toggle_breakpoint(module_id)

    def toggle_frozen(self, unit_id: str) -> OperationResult:
        """Flip the frozen flag of a group or module."""
        try:
            unit = self._find(unit_id)
        except UnknownEntityError as e:
            return OperationResult.rejected(e)
        operation = f"toggle frozen on '{unit_id}'"
        if rejected := self._locked(operation):
            return rejected
        if isinstance(unit, Module) and self.groups[unit.group_id].frozen:
            return self._reject(operation, f"group '{unit.group_id}' is frozen")
        if not unit.frozen and unit.status != UnitStatus.COMPLETED:
            return self._reject(operation, f"only completed units can be frozen (status: {unit.status.value})")
        unit.frozen = self.freeze.toggle(unit_id)
        logger.info(f"'{unit_id}' {'frozen' if unit.frozen else 'unfrozen'}")
        self._persist()
        self._notify()
        return OperationResult.success("frozen" if unit.frozen else "unfrozen")

    def can_model_be_frozen(self, group_id: str) -> bool:
        """Only completed groups can be frozen."""
        return self._find_group(group_id).status == UnitStatus.COMPLETED

    def get_frozen_models(self) -> list[str]:
        return [group_id for group_id in self.groups if self.freeze.is_frozen(group_id)]

    def force_complete_model(self, group_id: str) -> OperationResult:
        """Mark a group completed without running it."""
        try:
            group = self._find_group(group_id)
        except UnknownEntityError as e:
            return OperationResult.rejected(e)
        return self._force_complete(group)

    def force_complete_module(self, group_id: str, module_id: str) -> OperationResult:
        try:
            group = self._find_group(group_id)
            module = self._find_module(group_id, module_id)
        except UnknownEntityError as e:
            return OperationResult.rejected(e)
        if group.frozen:
            return self._reject(f"force-complete '{module_id}'", f"group '{group_id}' is frozen")
        result = self._force_complete(module)
        if result:
            self.runner.update_group_progress(group)
        return result

    def force_complete_all_running(self) -> OperationResult:
        """
        Skip the remaining simulated work of every running module.

        The modules then compute and complete as usual, and their groups with
        them. Work suspended by a global pause finishes once execution resumes.
        """
        if rejected := self._locked("force-complete running units"):
            return rejected
        finished = self.coordinator.finish_all()
        logger.info(f"Force-completing {len(finished)} running task(s)")
        return OperationResult.success(str(len(finished)))

    def _force_complete(self, unit: Unit) -> OperationResult:
        operation = f"force-complete '{unit.id}'"
        if rejected := self._locked(operation):
            return rejected
        if unit.status == UnitStatus.RUNNING:
            return self._reject(operation, "the unit is running")
        if unit.frozen:
            return self._reject(operation, "the unit is frozen")
        if not unit.enabled:
            return self._reject(operation, "the unit is disabled")
        if unit.start_time is None:
            unit.start()
        unit.error = None
        unit.complete()
        logger.info(f"'{unit.id}' force-completed")
        self._notify()
        return OperationResult.success("completed")

    def update_execution_order(self, order: Sequence[str]) -> OperationResult:
        """Rank topological ties by ``order``; dependency edges still win."""
        unknown = [g for g in order if g not in self.groups]
        if unknown:
            return OperationResult.rejected(UnknownEntityError(unknown[0], "group"))
        self.graph.set_execution_order(order)
        logger.info(f"Execution order updated: {', '.join(order)}")
        self._notify()
        return OperationResult.success()

    def update_module_execution_order(self, group_id: str, order: Sequence[str]) -> OperationResult:
        """Rank ties between ready modules of one group by ``order``."""
        try:
            group = self._find_group(group_id)
        except UnknownEntityError as e:
            return OperationResult.rejected(e)
        unknown = [m for m in order if group.get_module(m) is None]
        if unknown:
            return OperationResult.rejected(UnknownEntityError(unknown[0], "module"))
        group.module_order = list(order)
        self.module_graphs[group_id].set_execution_order(order)
        logger.info(f"Module order of '{group_id}' updated: {', '.join(order)}")
        self._notify()
        return OperationResult.success()

    # --- lifecycle -----------------------------------------------------------

    def transition_to_adjustments_phase(self) -> OperationResult:
        result = self.lifecycle.transition_to_adjustments()
        if result:
            self._persist()
            self._notify()
        return result

    def finalize_run(self) -> OperationResult:
        if self._active:
            return self._reject("finalize run", "a run is executing")
        completed = sum(1 for g in self.groups.values() if g.status == UnitStatus.COMPLETED)
        total = sum(1 for g in self.groups.values() if g.enabled)
        result = self.lifecycle.finalize(completed, total, self.freeze.frozen_ids())
        if result:
            self._persist()
            self._notify()
        return result

    def increment_iteration_count(self) -> OperationResult:
        if self._active:
            return self._reject("start a new iteration", "a run is executing")
        result = self.lifecycle.increment_iteration_count()
        if result:
            self._persist()
            self._notify()
        return result

    # --- queries -------------------------------------------------------------

    def get_run_state(self) -> RunState:
        return self.lifecycle.state(
            paused=self.gate.paused or bool(self.gate.holds),
            paused_on_id=self.gate.paused_on_id,
            frozen_ids=self.freeze.frozen_ids(),
        )

    def get_run_id(self) -> str | None:
        return self.lifecycle.run_id

    def get_run_duration(self) -> float:
        return self.lifecycle.get_run_duration()

    def get_run_history(self) -> list[RunRecord]:
        return list(self.lifecycle.history)

    def get_run_metadata(self, run_id: str | None = None) -> dict[str, Any] | None:
        return self.lifecycle.metadata(run_id)

    def get_execution_sequence(self) -> list[str]:
        """Enabled groups in deterministic topological order."""
        return self.graph.topological_sort()

    def get_parallel_execution_groups(self) -> list[list[str]]:
        """Enabled groups as parallel levels."""
        return self.graph.levels()

    def get_model_dependencies(self, group_id: str) -> list[str]:
        self._find_group(group_id)
        return list(self.graph.get_dependencies(group_id))

    def get_model_dependents(self, group_id: str) -> list[str]:
        self._find_group(group_id)
        return self.graph.get_dependents(group_id)

    def debug_dependency_chain(self, from_id: str, to_id: str) -> list[str]:
        """Dependency path from ``from_id`` down to ``to_id``; empty if unrelated."""
        self._find_group(from_id)
        self._find_group(to_id)
        return self.graph.dependency_chain(from_id, to_id)

    def get_current_running(self) -> list[str]:
        return [u.id for u in self._units() if u.status == UnitStatus.RUNNING]

    def get_failed_models(self) -> list[str]:
        return [g.id for g in self.groups.values() if g.status == UnitStatus.FAILED]

    def debug_model_dependency_status(self, group_id: str) -> dict[str, Any]:
        """
        Explain why a group can or cannot run.

        Returns:
            ``{"model", "dependency_status", "processed", "eligibility",
            "blocking", "rules"}``; ``processed`` is True once the group has
            started in the current pass
        """
        group = self._find_group(group_id)
        blocking = set(self.scheduler.unsatisfied_dependencies(group_id, self.groups))
        dependency_status = []
        for dep_id in self.graph.get_dependencies(group_id):
            dep = self.groups[dep_id]
            dependency_status.append(
                {
                    "id": dep.id,
                    "name": dep.name,
                    "status": dep.status.value,
                    "enabled": dep.enabled,
                    "frozen": dep.frozen,
                    "satisfied": dep_id not in blocking,
                }
            )
        rules = [
            {"rule": r.describe(), "active": self.evaluator.is_active(r, self.groups)}
            for r in self.evaluator.rules_for(group_id)
        ]
        return {
            "model": {
                "id": group.id,
                "name": group.name,
                "status": group.status.value,
                "enabled": group.enabled,
                "frozen": group.frozen,
            },
            "dependency_status": dependency_status,
            "processed": group.status in (UnitStatus.RUNNING, UnitStatus.COMPLETED, UnitStatus.FAILED),
            "eligibility": self.evaluator.resolve(group_id, self.groups).value,
            "blocking": sorted(blocking),
            "rules": rules,
        }

    # --- snapshots -----------------------------------------------------------

    def snapshot(self) -> EngineSnapshot:
        return EngineSnapshot(
            run=self.get_run_state(),
            groups=tuple(UnitSnapshot.of(g) for g in self.groups.values()),
        )

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """
        Call ``callback(snapshot)`` after every state change.

        Returns:
            A function that removes the subscription
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    # --- persistence ---------------------------------------------------------

    @staticmethod
    def _unit_document(unit: Unit) -> dict[str, Any]:
        return {
            "id": unit.id,
            "status": unit.status.value,
            "enabled": unit.enabled,
            "breakpoint": unit.breakpoint,
            "frozen": unit.frozen,
            "progress": unit.progress,
            "start_time": unit.start_time,
            "end_time": unit.end_time,
            "error": unit.error,
            "outputs": [o.to_dict() for o in unit.outputs],
        }

    def to_document(self) -> dict[str, Any]:
        """The persisted state document."""
        document = self.lifecycle.to_dict()
        document["frozen_ids"] = sorted(self.freeze.frozen_ids())
        document["history"] = [
            {**asdict(record), "phase": record.phase.value, "frozen_ids": list(record.frozen_ids)}
            for record in self.lifecycle.history
        ]
        document["groups"] = [
            {**self._unit_document(g), "modules": [self._unit_document(m) for m in g.modules]}
            for g in self.groups.values()
        ]
        return document

    def _restore_unit(self, unit: Unit, data: Mapping[str, Any], graph: DependencyGraph) -> None:
        if unit.optional:
            unit.set_enabled(bool(data.get("enabled", unit.enabled)))
            graph.set_enabled(unit.id, unit.enabled)
        unit.breakpoint = bool(data.get("breakpoint", unit.breakpoint))
        status = UnitStatus(data.get("status", unit.status.value))
        # Work that was in flight when the document was written did not finish
        unit.status = UnitStatus.IDLE if status == UnitStatus.RUNNING else status
        if not unit.enabled:
            unit.status = UnitStatus.DISABLED
        unit.progress = float(data.get("progress", 0.0)) if unit.status != UnitStatus.IDLE else 0.0
        unit.start_time = data.get("start_time")
        unit.end_time = data.get("end_time")
        unit.error = data.get("error")
        by_name = {o.name: o for o in unit.outputs}
        for entry in data.get("outputs") or []:
            value = OutputValue.from_dict(entry["value"]) if entry.get("value") is not None else None
            if entry["name"] in by_name:
                by_name[entry["name"]].value = value
            else:
                unit.outputs.append(Output(name=entry["name"], value=value, unit=entry.get("unit")))

    def restore_document(self, document: Mapping[str, Any]) -> OperationResult:
        """Load a persisted state document; ids not in the workflow are ignored."""
        if self._active:
            return self._reject("restore state", "a run is executing")
        self.lifecycle.restore(dict(document))
        self.lifecycle.history = [
            RunRecord(
                **{**record, "phase": RunPhase(record["phase"]), "frozen_ids": tuple(record.get("frozen_ids", ()))}
            )
            for record in document.get("history") or []
        ]
        if self.lifecycle.history:
            self.lifecycle.last_completed_run_id = self.lifecycle.history[-1].run_id
        if self.lifecycle.phase in (RunPhase.INITIATED, RunPhase.RUNNING):
            # The loop that owned the pass is gone; continue_run picks it up again
            self.lifecycle.phase = RunPhase.RUNNING

        frozen = set(document.get("frozen_ids") or [])
        for group_data in document.get("groups") or []:
            group = self.groups.get(group_data.get("id"))
            if group is None:
                logger.warning(f"Ignoring state of unknown group '{group_data.get('id')}'")
                continue
            self._restore_unit(group, group_data, self.graph)
            for module_data in group_data.get("modules") or []:
                module = group.get_module(module_data.get("id"))
                if module is not None:
                    self._restore_unit(module, module_data, self.module_graphs[group.id])
        for unit in self._units():
            unit.frozen = unit.id in frozen
            if unit.frozen:
                self.freeze.freeze(unit.id)
            else:
                self.freeze.unfreeze(unit.id)
        self.gate.clear()
        logger.info(f"Restored state of run {self.lifecycle.run_id or '-'} ({self.lifecycle.phase})")
        self._notify()
        return OperationResult.success("restored")

    def shutdown(self) -> None:
        """Release the compute thread pool."""
        self.executor_pool.shutdown(wait=False)
