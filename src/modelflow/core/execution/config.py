"""
Configuration objects for execution components.

Built from the ``engine`` section of config.yaml so the orchestrator and unit
runner take one object instead of many parameters.
"""

import os
from dataclasses import dataclass
from typing import Any

from modelflow.core.types import ExecutionMode
from modelflow.exceptions import ConfigurationError
from modelflow.utils.logging import get_logger

logger = get_logger("modelflow.execution.config")

VALID_MODES = ("sequential", "parallel")


def determine_thread_pool_size(max_workers: int | str | None) -> int:
    """
    Determine thread pool size for synchronous compute functions.

    Args:
        max_workers: Configuration value - can be:
            - None or "auto": min(32, (CPU count * 2) + 4)
            - Integer: Use explicit value

    Returns:
        Integer thread pool size

    Raises:
        ConfigurationError: value is neither a positive integer nor "auto"
    """
    if max_workers is None or (isinstance(max_workers, str) and max_workers.lower() == "auto"):
        cpu_count = os.cpu_count()
        if cpu_count is None:
            logger.warning("Could not determine CPU count, defaulting to 8 workers")
            return 8
        return min(32, (cpu_count * 2) + 4)
    if isinstance(max_workers, int) and not isinstance(max_workers, bool):
        if max_workers <= 0:
            raise ConfigurationError(f"engine.max_workers must be positive, got {max_workers}")
        return max_workers
    raise ConfigurationError(
        f"engine.max_workers must be an integer or 'auto', got {type(max_workers).__name__}: {max_workers}"
    )


@dataclass
class EngineConfig:
    """Configuration for execution settings."""

    mode: ExecutionMode = "sequential"
    # None = no cap inside a parallel level
    max_parallel: int | None = None
    max_workers: int | str | None = "auto"
    # Seconds per simulated progress tick
    tick_interval: float = 0.05
    # Simulated seconds of work for a module without an explicit duration
    default_duration: float = 0.5

    def __post_init__(self) -> None:
        if self.mode not in VALID_MODES:
            raise ConfigurationError(f"engine.mode must be one of {VALID_MODES}, got '{self.mode}'")
        if self.max_parallel is not None and (not isinstance(self.max_parallel, int) or self.max_parallel <= 0):
            raise ConfigurationError(f"engine.max_parallel must be a positive integer or null, got {self.max_parallel}")
        if self.tick_interval <= 0:
            raise ConfigurationError(f"engine.tick_interval must be positive, got {self.tick_interval}")
        if self.default_duration < 0:
            raise ConfigurationError(f"engine.default_duration must not be negative, got {self.default_duration}")

    @property
    def parallel(self) -> bool:
        return self.mode == "parallel"

    @property
    def thread_pool_size(self) -> int:
        return determine_thread_pool_size(self.max_workers)

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> "EngineConfig":
        """Build from the full config dict (reads its ``engine`` section)."""
        engine = config.get("engine") or {}
        return cls(
            mode=engine.get("mode", "sequential"),
            max_parallel=engine.get("max_parallel"),
            max_workers=engine.get("max_workers", "auto"),
            tick_interval=float(engine.get("tick_interval", 0.05)),
            default_duration=float(engine.get("default_duration", 0.5)),
        )
