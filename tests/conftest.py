"""
Shared fixtures for Modelflow tests.
"""

import asyncio
import time

import pytest

from modelflow.core.engine import WorkflowEngine
from modelflow.core.execution.config import EngineConfig
from modelflow.core.types import Output, OutputValue
from modelflow.core.units import ModelGroup, Module


def make_group(group_id, dependencies=(), modules=(), outputs=(), **kwargs):
    """Build a ModelGroup with optional Module ids or Module objects."""
    built = [m if isinstance(m, Module) else Module(id=m, duration=0.0) for m in modules]
    group = ModelGroup(id=group_id, dependencies=list(dependencies), modules=built, **kwargs)
    for name, value in outputs:
        group.outputs.append(Output(name=name, default=OutputValue.from_python(value)))
    return group


def econ_fin_risk(**flags):
    """Econ (no deps) -> Fin -> Risk, each with one module."""
    groups = [
        make_group("econ", modules=["econ-gdp"], outputs=[("gdp_growth", 2.5)]),
        make_group("fin", dependencies=["econ"], modules=["fin-rates"]),
        make_group("risk", dependencies=["fin"], modules=["risk-var"]),
    ]
    for group in groups:
        for attr, value in flags.get(group.id, {}).items():
            setattr(group, attr, value)
    return groups


async def wait_until(predicate, timeout=5.0, interval=0.005):
    """Poll ``predicate`` on the loop until it holds."""
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not reached before timeout")
        await asyncio.sleep(interval)


@pytest.fixture
def fast_config():
    """Engine config with instant simulated work."""
    return EngineConfig(tick_interval=0.01, default_duration=0.0, max_workers=4)


@pytest.fixture
def build_engine(fast_config):
    """Factory building engines that are shut down after the test."""
    engines = []

    def _build(groups, **kwargs):
        kwargs.setdefault("config", fast_config)
        engine = WorkflowEngine(groups, **kwargs)
        engines.append(engine)
        return engine

    yield _build
    for engine in engines:
        engine.shutdown()
