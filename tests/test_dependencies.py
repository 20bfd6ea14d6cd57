"""
Tests for dependency graph building, ordering, and levels.
"""

import pytest

from modelflow.core.dependencies import DependencyGraph, build_dependency_graph, build_group_graph, build_module_graph
from modelflow.core.units import ModelGroup, Module
from modelflow.exceptions import ConfigurationError, CycleDetectedError

from conftest import make_group


class TestTopologicalSort:
    """Deterministic ordering of enabled units."""

    def test_linear_chain(self):
        graph = build_group_graph(
            [make_group("econ"), make_group("fin", ["econ"]), make_group("risk", ["fin"])]
        )
        assert graph.topological_sort() == ["econ", "fin", "risk"]

    def test_ties_broken_by_declaration_index(self):
        groups = [make_group("b", index=0), make_group("a", index=1), make_group("c", ["a", "b"], index=2)]
        graph = build_group_graph(groups)
        assert graph.topological_sort() == ["b", "a", "c"]

    def test_execution_order_ranks_ties(self):
        groups = [make_group("b", index=0), make_group("a", index=1), make_group("c", ["a", "b"], index=2)]
        graph = build_group_graph(groups)
        graph.set_execution_order(["a", "b"])
        assert graph.topological_sort() == ["a", "b", "c"]

    def test_execution_order_never_overrides_edges(self):
        graph = build_group_graph([make_group("econ"), make_group("fin", ["econ"])])
        graph.set_execution_order(["fin", "econ"])
        assert graph.topological_sort() == ["econ", "fin"]

    def test_disabled_units_are_excluded_and_their_edges_ignored(self):
        groups = [make_group("econ", enabled=False), make_group("fin", ["econ"])]
        graph = build_group_graph(groups)
        assert graph.topological_sort() == ["fin"]
        assert graph.get_active_dependencies("fin") == []
        assert graph.get_dependencies("fin") == ["econ"]


class TestLevels:
    """Parallel execution levels."""

    def test_levels_of_diamond(self):
        groups = [
            make_group("econ", index=0),
            make_group("fin", ["econ"], index=1),
            make_group("credit", ["econ"], index=2),
            make_group("risk", ["fin", "credit"], index=3),
        ]
        graph = build_group_graph(groups)
        assert graph.levels() == [["econ"], ["fin", "credit"], ["risk"]]
        assert graph.get_layers() == {"econ": 0, "fin": 1, "credit": 1, "risk": 2}

    def test_visualize_layers(self):
        groups = [make_group("a", index=0), make_group("b", index=1), make_group("c", ["a", "b"], index=2)]
        text = build_group_graph(groups).visualize_layers()
        assert text.splitlines() == ["Layer 0: a ── b", "Layer 1: c"]


class TestValidation:
    """Unknown ids and cycles fail at build time."""

    def test_unknown_dependency(self):
        with pytest.raises(ConfigurationError, match="unknown id"):
            build_group_graph([make_group("fin", ["econ"])])

    def test_cycle_detected(self):
        with pytest.raises(CycleDetectedError) as exc_info:
            build_group_graph([make_group("a", ["b"]), make_group("b", ["a"])])
        members = exc_info.value.members
        assert members[0] == members[-1]
        assert set(members) == {"a", "b"}

    def test_self_cycle(self):
        graph = DependencyGraph()
        graph.add_unit("a", ["a"])
        assert graph.detect_cycles() == [["a", "a"]]

    def test_cycle_through_disabled_unit_still_detected(self):
        with pytest.raises(CycleDetectedError):
            build_group_graph([make_group("a", ["b"], enabled=False), make_group("b", ["a"])])


class TestQueries:
    """Dependents, transitive closure, and chains."""

    @pytest.fixture
    def graph(self):
        return build_group_graph(
            [make_group("econ"), make_group("fin", ["econ"]), make_group("risk", ["fin"]), make_group("other")]
        )

    def test_dependents(self, graph):
        assert graph.get_dependents("econ") == ["fin"]
        assert graph.transitive_dependents("econ") == {"fin", "risk"}
        assert graph.transitive_dependencies("risk") == {"econ", "fin"}

    def test_dependency_chain(self, graph):
        assert graph.dependency_chain("risk", "econ") == ["risk", "fin", "econ"]
        assert graph.dependency_chain("econ", "risk") == []
        assert graph.dependency_chain("other", "econ") == []

    def test_add_unit_replaces_edges(self):
        graph = DependencyGraph()
        graph.add_unit("a")
        graph.add_unit("b", ["a"])
        graph.add_unit("b", [])
        assert graph.get_dependents("a") == []


class TestModuleGraphs:
    """Module graphs and cross-group module dependencies."""

    def test_cross_group_module_dependency_implies_group_edge(self):
        econ = ModelGroup(id="econ", modules=[Module(id="gdp")], index=0)
        fin = ModelGroup(id="fin", modules=[Module(id="rates", dependencies=["gdp"])], index=1)
        graph = build_group_graph([econ, fin])
        assert graph.get_dependencies("fin") == ["econ"]
        assert graph.topological_sort() == ["econ", "fin"]

    def test_module_graph_treats_other_groups_as_external(self):
        fin = ModelGroup(
            id="fin",
            modules=[Module(id="rates", dependencies=["gdp"], index=0), Module(id="spreads", dependencies=["rates"], index=1)],
        )
        graph = build_module_graph(fin, {"gdp", "rates", "spreads"})
        assert graph.topological_sort() == ["rates", "spreads"]
        assert "gdp" not in graph
        assert graph.get_dependencies("rates") == ["gdp"]

    def test_module_graph_rejects_unknown_module(self):
        fin = ModelGroup(id="fin", modules=[Module(id="rates", dependencies=["missing"])])
        with pytest.raises(ConfigurationError):
            build_module_graph(fin, {"rates"})

    def test_build_dependency_graph_extra_edges(self):
        graph = build_dependency_graph([make_group("a"), make_group("b")], extra_edges={"b": {"a"}})
        assert graph.get_dependencies("b") == ["a"]
