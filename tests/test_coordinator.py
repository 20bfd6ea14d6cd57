"""
Tests for pausable simulated work and the run gate.
"""

import asyncio

import pytest

from modelflow.core.execution.coordinator import RunGate, TaskCoordinator, WorkState

from conftest import wait_until


class TestTaskCoordinator:
    """Simulated tasks advance in ticks and suspend on pause."""

    @pytest.mark.asyncio
    async def test_runs_to_completion(self):
        coordinator = TaskCoordinator(tick_interval=0.01)
        updates = []
        task = await coordinator.run("gdp", 0.03, lambda task_id, pct: updates.append((task_id, pct)))
        assert task.state == WorkState.DONE
        assert task.progress == 100.0
        assert updates[-1] == ("gdp", 100.0)
        assert coordinator.active() == []

    @pytest.mark.asyncio
    async def test_zero_duration_completes_immediately(self):
        coordinator = TaskCoordinator(tick_interval=0.01)
        task = await coordinator.run("gdp", 0.0)
        assert task.progress == 100.0

    @pytest.mark.asyncio
    async def test_pause_keeps_progress(self):
        coordinator = TaskCoordinator(tick_interval=0.01)
        running = asyncio.create_task(coordinator.run("gdp", 0.2))
        await wait_until(lambda: (coordinator.progress("gdp") or 0.0) > 0.0)

        assert coordinator.pause()
        await wait_until(lambda: coordinator.states().get("gdp") == WorkState.SUSPENDED)
        paused_at = coordinator.progress("gdp")
        await asyncio.sleep(0.05)
        assert coordinator.progress("gdp") == paused_at
        assert not running.done()

        assert coordinator.resume()
        task = await asyncio.wait_for(running, timeout=5)
        assert task.progress == 100.0

    def test_pause_and_resume_are_idempotent(self):
        coordinator = TaskCoordinator()
        assert coordinator.pause()
        assert not coordinator.pause()
        assert coordinator.resume()
        assert not coordinator.resume()

    def test_tick_interval_must_be_positive(self):
        with pytest.raises(ValueError):
            TaskCoordinator(tick_interval=0)


class TestRunGate:
    """Global pause plus a queue of breakpoint holds."""

    def test_holds_queue_in_order(self):
        gate = RunGate(TaskCoordinator())
        gate.hold("fin")
        gate.hold("credit")
        assert not gate.is_open()
        assert gate.paused_on_id == "fin"

        assert gate.release("fin")
        assert gate.paused_on_id == "credit"
        assert gate.release("credit")
        assert gate.is_open()

    def test_release_unknown_hold(self):
        gate = RunGate(TaskCoordinator())
        assert not gate.release("fin")

    def test_hold_does_not_suspend_work(self):
        coordinator = TaskCoordinator()
        gate = RunGate(coordinator)
        gate.hold("fin")
        assert not coordinator.is_paused()

    def test_resume_clears_pause_and_holds(self):
        coordinator = TaskCoordinator()
        gate = RunGate(coordinator)
        assert gate.pause()
        assert not gate.pause()
        gate.hold("fin")
        assert coordinator.is_paused()

        assert gate.resume()
        assert gate.is_open()
        assert gate.holds == []
        assert not coordinator.is_paused()
        assert not gate.resume()

    @pytest.mark.asyncio
    async def test_wait_open_blocks_until_released(self):
        gate = RunGate(TaskCoordinator())
        gate.hold("fin")
        waiter = asyncio.create_task(gate.wait_open())
        await asyncio.sleep(0.02)
        assert not waiter.done()
        gate.release("fin")
        await asyncio.wait_for(waiter, timeout=1)
