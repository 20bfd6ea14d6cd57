"""
Ready-set computation.

Combines the static DependencyGraph, conditional rules, and frozen ids into
the set of units that may start now, in sequential or parallel form. The
scheduler never mutates units; the execution layer does.
"""

from __future__ import annotations

from collections.abc import Mapping

from modelflow.core.conditions import ConditionalDependencyEvaluator, Eligibility
from modelflow.core.dependencies import DependencyGraph
from modelflow.core.freeze import FreezeRegistry
from modelflow.core.units import SETTLED_STATUSES, Unit, UnitStatus


class Scheduler:
    """
    Decides which units are ready to run.

    A unit is ready iff it is enabled, idle this pass, not frozen, not
    excluded by an active skip rule, and either every enabled static
    dependency is completed/frozen/skipped or an active run rule overrides
    the static dependencies.

    Attributes:
        graph: Static dependency graph of the units being scheduled
        evaluator: Conditional rules (empty for module-level scheduling)
        freeze: Frozen ids
        external: Units referenced by id but scheduled elsewhere
            (cross-group module dependencies)
    """

    def __init__(
        self,
        graph: DependencyGraph,
        evaluator: ConditionalDependencyEvaluator | None = None,
        freeze: FreezeRegistry | None = None,
        external: Mapping[str, Unit] | None = None,
    ):
        self.graph = graph
        self.evaluator = evaluator if evaluator is not None else ConditionalDependencyEvaluator()
        self.freeze = freeze if freeze is not None else FreezeRegistry()
        self.external = external if external is not None else {}

    def _eligibility(self, units: Mapping[str, Unit]) -> dict[str, Eligibility]:
        return {
            unit_id: self.evaluator.resolve(unit_id, units)
            for unit_id, unit in units.items()
            if unit.enabled and unit.status == UnitStatus.IDLE and not self.freeze.is_frozen(unit_id)
        }

    def _dependency_satisfied(self, dep_id: str, units: Mapping[str, Unit], skipped: set[str]) -> bool:
        if self.freeze.is_frozen(dep_id) or dep_id in skipped:
            return True
        dep = units.get(dep_id) or self.external.get(dep_id)
        if dep is None:
            return False
        return dep.frozen or not dep.enabled or dep.status == UnitStatus.COMPLETED

    def _dependencies(self, unit_id: str) -> list[str]:
        active = self.graph.get_active_dependencies(unit_id)
        external = [d for d in self.graph.get_dependencies(unit_id) if d not in self.graph]
        return active + external

    def unsatisfied_dependencies(self, unit_id: str, units: Mapping[str, Unit]) -> list[str]:
        """Static dependencies of ``unit_id`` that do not allow it to start yet."""
        skipped = self.skipped(units)
        return [d for d in self._dependencies(unit_id) if not self._dependency_satisfied(d, units, skipped)]

    def skipped(self, units: Mapping[str, Unit]) -> set[str]:
        """Idle units excluded from this pass by an active skip rule."""
        return {u for u, e in self._eligibility(units).items() if e == Eligibility.SKIP}

    def ready_set(self, units: Mapping[str, Unit]) -> list[str]:
        """Ready units, in topological order."""
        eligibility = self._eligibility(units)
        skipped = {u for u, e in eligibility.items() if e == Eligibility.SKIP}
        ready = []
        for unit_id in self.graph.topological_sort():
            decision = eligibility.get(unit_id)
            if decision is None or decision == Eligibility.SKIP:
                continue
            if decision == Eligibility.RUN or all(
                self._dependency_satisfied(d, units, skipped) for d in self._dependencies(unit_id)
            ):
                ready.append(unit_id)
        return ready

    def next_sequential(self, units: Mapping[str, Unit]) -> str | None:
        """Exactly one ready unit, chosen by topological order."""
        ready = self.ready_set(units)
        return ready[0] if ready else None

    def next_parallel_batch(self, units: Mapping[str, Unit], limit: int | None = None) -> list[str]:
        """
        Ready units sharing the lowest dependency level present in the ready set.

        ``limit`` caps the batch size; None leaves it bounded by the level only.
        """
        ready = self.ready_set(units)
        if not ready:
            return []
        layers = self.graph.get_layers()
        lowest = min(layers.get(u, 0) for u in ready)
        batch = [u for u in ready if layers.get(u, 0) == lowest]
        return batch[:limit] if limit else batch

    def blocked(self, units: Mapping[str, Unit]) -> dict[str, list[str]]:
        """Idle, eligible units that cannot start, mapped to their blocking dependency ids."""
        ready = set(self.ready_set(units))
        skipped = self.skipped(units)
        result = {}
        for unit_id, unit in units.items():
            if unit_id in ready or unit_id in skipped:
                continue
            if unit.enabled and unit.status == UnitStatus.IDLE and not self.freeze.is_frozen(unit_id):
                result[unit_id] = [
                    d for d in self._dependencies(unit_id) if not self._dependency_satisfied(d, units, skipped)
                ]
        return result

    def is_settled(self, units: Mapping[str, Unit]) -> bool:
        """Every enabled, non-frozen unit is completed, failed, or skipped."""
        skipped = self.skipped(units)
        return all(
            unit.status in SETTLED_STATUSES or unit_id in skipped
            for unit_id, unit in units.items()
            if unit.enabled and not self.freeze.is_frozen(unit_id)
        )
