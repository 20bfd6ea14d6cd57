"""
Execution orchestration for one run pass.

Asks the Scheduler for ready groups and drives them through the UnitRunner,
one at a time in sequential mode or as gathered level batches in parallel
mode, waiting on the RunGate before anything new starts.
"""

import asyncio
import time
from collections.abc import Mapping

from modelflow.core.execution.config import EngineConfig
from modelflow.core.execution.coordinator import RunGate
from modelflow.core.execution.unit_runner import UnitRunner
from modelflow.core.scheduler import Scheduler
from modelflow.core.units import ModelGroup, UnitStatus
from modelflow.utils.logging import get_logger

logger = get_logger("modelflow.execution.execution_orchestrator")


class ExecutionOrchestrator:
    """
    Orchestrates the run loop.

    The loop stops when nothing is ready. A failed group only blocks its
    transitive dependents; the rest of the graph keeps progressing.
    """

    def __init__(
        self,
        runner: UnitRunner,
        scheduler: Scheduler,
        gate: RunGate,
        config: EngineConfig,
    ):
        self.runner = runner
        self.scheduler = scheduler
        self.gate = gate
        self.config = config
        self._semaphore: asyncio.Semaphore | None = None

    async def _run_bounded(self, group: ModelGroup) -> bool:
        if self._semaphore is None:
            return await self.runner.run_group(group, parallel=True)
        async with self._semaphore:
            return await self.runner.run_group(group, parallel=True)

    async def execute(self, groups: Mapping[str, ModelGroup], parallel: bool = False) -> bool:
        """
        Run ready groups until none is left.

        Args:
            groups: All groups of the workflow, keyed by id
            parallel: Run level batches concurrently instead of one group at a time

        Returns:
            True if the pass settled (every enabled, non-frozen group completed,
            failed, or skipped), False if it stalled on blocked groups
        """
        self._semaphore = asyncio.Semaphore(self.config.max_parallel) if self.config.max_parallel else None
        start_time = time.time()
        mode = "parallel" if parallel else "sequential"
        logger.info(f"Executing {len(groups)} groups in {mode} mode")

        while True:
            await self.gate.wait_open()
            if parallel:
                batch = self.scheduler.next_parallel_batch(groups)
                if not batch:
                    break
                logger.debug(f"Starting batch: {', '.join(batch)}")
                await asyncio.gather(*(self._run_bounded(groups[g]) for g in batch))
            else:
                group_id = self.scheduler.next_sequential(groups)
                if group_id is None:
                    break
                await self.runner.run_group(groups[group_id], parallel=False)

        skipped = self.scheduler.skipped(groups)
        if skipped:
            logger.info(f"Skipped by conditional rules: {', '.join(sorted(skipped))}")

        completed = sum(1 for g in groups.values() if g.status == UnitStatus.COMPLETED)
        failed = [g.id for g in groups.values() if g.status == UnitStatus.FAILED]
        parts = [f"{completed}/{len(groups)} groups completed"]
        if failed:
            parts.append(f"{len(failed)} failed ({', '.join(failed)})")
        logger.info(", ".join(parts) + f" in {time.time() - start_time:.2f}s")

        if self.scheduler.is_settled(groups):
            return True
        blocked = self.scheduler.blocked(groups)
        details = "; ".join(f"{g} <- {', '.join(deps) or '?'}" for g, deps in blocked.items())
        logger.warning(f"Run stalled with {len(blocked)} blocked group(s): {details}")
        return False
