"""
Dependency graph building and management.

Builds the static DAG over model groups (and, per group, over modules),
detects cycles, and computes a reproducible topological order and the
parallel execution levels.
"""

import heapq
from collections import defaultdict
from collections.abc import Iterable, Sequence
from typing import Dict, List, Optional, Set

from modelflow.core.units import ModelGroup, Unit
from modelflow.exceptions import ConfigurationError, CycleDetectedError


class DependencyGraph:
    """Directed acyclic graph of unit dependencies."""

    def __init__(self):
        self._graph: Dict[str, List[str]] = {}  # unit -> dependencies
        self._reverse: Dict[str, List[str]] = defaultdict(list)  # unit -> dependents
        self._index: Dict[str, int] = {}
        self._enabled: Dict[str, bool] = {}
        self._rank: Dict[str, int] = {}

    def add_unit(
        self,
        unit_id: str,
        dependencies: Optional[Iterable[str]] = None,
        index: Optional[int] = None,
        enabled: bool = True,
    ):
        """Add a unit and its dependencies to the graph."""
        dependencies = list(dependencies or [])

        # Remove stale reverse edges from previous dependencies
        for old_dep in self._graph.get(unit_id, []):
            try:
                self._reverse[old_dep].remove(unit_id)
            except ValueError:
                pass

        self._graph[unit_id] = dependencies
        self._index[unit_id] = len(self._index) if index is None else index
        self._enabled[unit_id] = enabled

        for dep in dependencies:
            if unit_id not in self._reverse[dep]:
                self._reverse[dep].append(unit_id)

    def __contains__(self, unit_id: str) -> bool:
        return unit_id in self._graph

    def __len__(self) -> int:
        return len(self._graph)

    @property
    def units(self) -> List[str]:
        return list(self._graph)

    def set_enabled(self, unit_id: str, enabled: bool) -> None:
        if unit_id in self._graph:
            self._enabled[unit_id] = enabled

    def set_execution_order(self, order: Sequence[str]) -> None:
        """Rank ties in topological sorting by an explicit order (never overrides edges)."""
        self._rank = {unit_id: position for position, unit_id in enumerate(order)}

    def get_dependencies(self, unit_id: str) -> List[str]:
        """Get declared dependencies for a unit (including external ids)."""
        return self._graph.get(unit_id, [])

    def get_active_dependencies(self, unit_id: str) -> List[str]:
        """Dependencies that are enabled units of this graph."""
        return [d for d in self._graph.get(unit_id, []) if d in self._graph and self._enabled[d]]

    def get_dependents(self, unit_id: str) -> List[str]:
        """Get dependents (units that depend on this one)."""
        return [d for d in self._reverse.get(unit_id, []) if d in self._graph]

    def transitive_dependents(self, unit_id: str) -> Set[str]:
        """All units downstream of ``unit_id``."""
        seen: Set[str] = set()
        stack = list(self.get_dependents(unit_id))
        while stack:
            node = stack.pop()
            if node in seen:
                continue
            seen.add(node)
            stack.extend(self.get_dependents(node))
        return seen

    def transitive_dependencies(self, unit_id: str) -> Set[str]:
        """All units upstream of ``unit_id``."""
        seen: Set[str] = set()
        stack = [d for d in self.get_dependencies(unit_id) if d in self._graph]
        while stack:
            node = stack.pop()
            if node in seen:
                continue
            seen.add(node)
            stack.extend(d for d in self.get_dependencies(node) if d in self._graph)
        return seen

    def _sort_key(self, unit_id: str) -> tuple:
        return (self._rank.get(unit_id, len(self._rank)), self._index.get(unit_id, 0), unit_id)

    def topological_sort(self) -> List[str]:
        """
        Topological sort of enabled units.

        Kahn's algorithm with a priority queue, so ties are broken by explicit
        execution order, then declaration index, then id.
        """
        enabled = [u for u in self._graph if self._enabled[u]]
        in_degree = {u: len(self.get_active_dependencies(u)) for u in enabled}

        heap = [(self._sort_key(u), u) for u, degree in in_degree.items() if degree == 0]
        heapq.heapify(heap)
        result = []

        while heap:
            _, unit_id = heapq.heappop(heap)
            result.append(unit_id)
            for dependent in self.get_dependents(unit_id):
                if dependent in in_degree:
                    in_degree[dependent] -= 1
                    if in_degree[dependent] == 0:
                        heapq.heappush(heap, (self._sort_key(dependent), dependent))

        return result

    def detect_cycles(self) -> List[List[str]]:
        """
        Detect cycles in the dependency graph (enabled or not).

        Iterative DFS; each reported cycle starts and ends with the same id.
        """
        visited: Set[str] = set()
        cycles: List[List[str]] = []

        for root in sorted(self._graph, key=self._sort_key):
            if root in visited:
                continue
            path: List[str] = [root]
            on_path: Set[str] = {root}
            stack = [iter(d for d in self._graph[root] if d in self._graph)]
            visited.add(root)

            while stack:
                neighbor = next(stack[-1], None)
                if neighbor is None:
                    stack.pop()
                    on_path.discard(path.pop())
                    continue
                if neighbor in on_path:
                    cycle_start = path.index(neighbor)
                    cycles.append(path[cycle_start:] + [neighbor])
                elif neighbor not in visited:
                    visited.add(neighbor)
                    path.append(neighbor)
                    on_path.add(neighbor)
                    stack.append(iter(d for d in self._graph[neighbor] if d in self._graph))

        return cycles

    def validate(self) -> None:
        """Raise CycleDetectedError naming the first cycle, if any."""
        cycles = self.detect_cycles()
        if cycles:
            raise CycleDetectedError(cycles[0])

    def get_layers(self) -> Dict[str, int]:
        """
        Get layer (execution level) for each enabled unit.

        level(v) = 0 without dependencies, else 1 + max(level(dep)).
        Units in the same layer have no edge between them and can run in parallel.
        """
        layers: Dict[str, int] = {}
        for unit_id in self.topological_sort():
            deps = self.get_active_dependencies(unit_id)
            layers[unit_id] = 1 + max(layers[d] for d in deps) if deps else 0
        return layers

    def levels(self) -> List[List[str]]:
        """Parallel batches, each listed in topological order."""
        layers = self.get_layers()
        batches: Dict[int, List[str]] = defaultdict(list)
        for unit_id in self.topological_sort():
            batches[layers[unit_id]].append(unit_id)
        return [batches[level] for level in sorted(batches)]

    def dependency_chain(self, unit_id: str, target_id: str) -> List[str]:
        """Path of dependency edges from ``unit_id`` down to ``target_id``; empty if none."""
        path: List[str] = []

        def traverse(current: str) -> bool:
            path.append(current)
            if current == target_id:
                return True
            for dep in self.get_dependencies(current):
                if dep in self._graph and dep not in path and traverse(dep):
                    return True
            path.pop()
            return False

        if unit_id in self._graph and traverse(unit_id):
            return path
        return []

    def visualize_layers(self) -> str:
        """
        Visualize dependency graph as layers (execution levels).

        Units in the same layer can run in parallel.
        """
        lines = []
        for layer_num, layer_units in enumerate(self.levels()):
            if len(layer_units) == 1:
                lines.append(f"Layer {layer_num}: {layer_units[0]}")
            else:
                lines.append(f"Layer {layer_num}: {' ── '.join(layer_units)}")
        return "\n".join(lines)


def build_dependency_graph(
    units: Sequence[Unit],
    external: Optional[Set[str]] = None,
    extra_edges: Optional[Dict[str, Set[str]]] = None,
) -> DependencyGraph:
    """
    Build and validate a dependency graph.

    Args:
        units: Units in declaration order
        external: Ids that may be referenced without being nodes of this graph
            (cross-group module dependencies)
        extra_edges: Implied dependencies to add per unit

    Raises:
        ConfigurationError: a dependency names an unknown id
        CycleDetectedError: the graph has a cycle
    """
    external = external or set()
    extra_edges = extra_edges or {}
    known = {u.id for u in units}
    graph = DependencyGraph()

    for unit in units:
        unknown = [d for d in unit.dependencies if d not in known and d not in external]
        if unknown:
            raise ConfigurationError(
                f"Unit '{unit.id}' depends on unknown id(s): {', '.join(unknown)}",
                details={"unit": unit.id, "unknown": unknown},
            )
        deps = list(unit.dependencies)
        for implied in sorted(extra_edges.get(unit.id, ())):
            if implied not in deps:
                deps.append(implied)
        graph.add_unit(unit.id, deps, index=unit.index, enabled=unit.enabled)

    graph.validate()
    return graph


def build_group_graph(groups: Sequence[ModelGroup]) -> DependencyGraph:
    """
    Build the group-level graph.

    A module depending on a module of another group implies an edge from its
    owning group to that group.
    """
    owner = {m.id: g.id for g in groups for m in g.modules}
    implied: Dict[str, Set[str]] = defaultdict(set)
    for group in groups:
        for module in group.modules:
            for dep in module.dependencies:
                dep_group = owner.get(dep)
                if dep_group is not None and dep_group != group.id:
                    implied[group.id].add(dep_group)
    return build_dependency_graph(groups, extra_edges=implied)


def build_module_graph(group: ModelGroup, all_module_ids: Set[str]) -> DependencyGraph:
    """Build the module graph of one group; other groups' modules are external ids."""
    own = {m.id for m in group.modules}
    return build_dependency_graph(group.modules, external=all_module_ids - own)
