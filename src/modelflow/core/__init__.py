"""
Core engine: units, dependency graphs, conditional rules, and the run lifecycle.
"""

from modelflow.core.dependencies import DependencyGraph, build_dependency_graph
from modelflow.core.engine import WorkflowEngine
from modelflow.core.units import ModelGroup, Module

__all__ = [
    "WorkflowEngine",
    "ModelGroup",
    "Module",
    "build_dependency_graph",
    "DependencyGraph",
]
