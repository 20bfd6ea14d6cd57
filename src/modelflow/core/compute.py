"""
Compute functions: the opaque work behind each group and module.

The engine treats compute as a black box ``compute(request, inputs) -> outputs``.
Functions are registered with ``ComputeRegistry.register`` or the
``@registry.compute("unit-id")`` decorator, or referenced from config.yaml as
``"package.module:function"``. Units without a compute function get the
default compute, which returns their declared output values.
"""

import asyncio
import functools
import importlib
import inspect
import time
from collections.abc import Awaitable, Callable, Mapping
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any

from modelflow.core.types import OutputValue
from modelflow.exceptions import ConfigurationError, TypeMismatchError
from modelflow.utils.logging import get_logger

logger = get_logger("modelflow.compute")


@dataclass(frozen=True)
class ComputeRequest:
    """What a compute function is told about the unit it computes."""

    unit_id: str
    name: str
    kind: str  # "group" or "module"
    group_id: str | None = None
    declared: Mapping[str, Any] = field(default_factory=dict)  # output name -> declared value
    run_id: str | None = None
    iteration: int = 0


#: inputs map each dependency id to its outputs
ComputeInputs = Mapping[str, Mapping[str, OutputValue]]
ComputeFn = Callable[[ComputeRequest, ComputeInputs], Mapping[str, Any] | None | Awaitable[Mapping[str, Any] | None]]


def default_compute(request: ComputeRequest, inputs: ComputeInputs) -> dict[str, Any]:
    """Return the declared output values unchanged."""
    return {name: value for name, value in request.declared.items() if value is not None}


def _format_duration(elapsed: float) -> str:
    """Format duration in human-readable format."""
    if elapsed < 1.0:
        return f"{elapsed*1000:.0f}ms"
    elif elapsed < 60.0:
        return f"{elapsed:.2f}s"
    else:
        minutes = int(elapsed // 60)
        seconds = elapsed % 60
        return f"{minutes}m{seconds:.1f}s"


def import_reference(reference: str) -> ComputeFn:
    """
    Import a ``"package.module:function"`` reference.

    Raises:
        ConfigurationError: malformed reference, import failure, or not callable
    """
    module_name, sep, attr = reference.partition(":")
    if not sep or not module_name or not attr:
        raise ConfigurationError(f"Invalid compute reference '{reference}', expected 'package.module:function'")
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigurationError(f"Cannot import compute module '{module_name}': {e}") from None
    fn = module
    for part in attr.split("."):
        fn = getattr(fn, part, None)
        if fn is None:
            raise ConfigurationError(f"Compute function '{attr}' not found in '{module_name}'")
    if not callable(fn):
        raise ConfigurationError(f"Compute reference '{reference}' is not callable")
    return fn


def coerce_outputs(unit_id: str, result: Any) -> dict[str, OutputValue]:
    """
    Convert what a compute function returned into tagged output values.

    Raises:
        TypeMismatchError: result is not a mapping or holds unsupported values
    """
    if result is None:
        return {}
    if not isinstance(result, Mapping):
        raise TypeMismatchError(
            f"Compute for '{unit_id}' must return a mapping of outputs, got {type(result).__name__}"
        )
    return {str(name): OutputValue.from_python(value) for name, value in result.items()}


class ComputeRegistry:
    """Maps unit ids to compute functions."""

    def __init__(self, functions: Mapping[str, ComputeFn] | None = None):
        self._functions: dict[str, ComputeFn] = dict(functions or {})

    def register(self, unit_id: str, fn: ComputeFn) -> ComputeFn:
        self._functions[unit_id] = fn
        return fn

    def compute(self, unit_id: str) -> Callable[[ComputeFn], ComputeFn]:
        """
        Decorator registering a compute function for ``unit_id``.

        Examples:
            >>> registry = ComputeRegistry()
            >>> @registry.compute("econ-gdp")
            ... def gdp(request, inputs):
            ...     return {"gdp_growth": 2.1}
        """

        def decorator(fn: ComputeFn) -> ComputeFn:
            return self.register(unit_id, fn)

        return decorator

    def __contains__(self, unit_id: str) -> bool:
        return unit_id in self._functions

    def resolve(self, unit_id: str, reference: str | None = None) -> ComputeFn:
        """Registered function, else the config reference, else the default compute."""
        if unit_id in self._functions:
            return self._functions[unit_id]
        if reference:
            return self.register(unit_id, import_reference(reference))
        return default_compute

    async def invoke(
        self,
        fn: ComputeFn,
        request: ComputeRequest,
        inputs: ComputeInputs,
        pool: ThreadPoolExecutor | None = None,
    ) -> dict[str, OutputValue]:
        """
        Run a compute function and coerce its result.

        Coroutine functions are awaited on the loop; plain functions run in the
        thread pool so they never block scheduling.
        """
        start_time = time.time()
        logger.debug(f"Compute for '{request.unit_id}' started")
        if inspect.iscoroutinefunction(fn):
            result = await fn(request, inputs)
        else:
            loop = asyncio.get_running_loop()
            result = await loop.run_in_executor(pool, functools.partial(fn, request, inputs))
            if inspect.isawaitable(result):
                result = await result
        outputs = coerce_outputs(request.unit_id, result)
        logger.debug(f"Compute for '{request.unit_id}' finished in {_format_duration(time.time() - start_time)}")
        return outputs
