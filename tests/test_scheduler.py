from __future__ import annotations

import asyncio

import pytest

from jobhub.jobs.scheduler import DebouncedTrigger, PeriodicTask


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def test_periodic_task_runs_at_start_then_on_interval() -> None:
    runs: list[int] = []

    async def action() -> int:
        runs.append(1)
        return len(runs)

    task = PeriodicTask("sweep", 60.0, action)

    assert asyncio.run(task.run_if_due(0.0)) is True
    assert asyncio.run(task.run_if_due(59.0)) is False
    assert asyncio.run(task.run_if_due(60.0)) is True
    assert len(runs) == 2


def test_periodic_task_can_skip_the_startup_run() -> None:
    async def action() -> None:
        return None

    task = PeriodicTask("reaper", 15.0, action, run_at_start=False)

    assert asyncio.run(task.run_if_due(100.0)) is False
    assert asyncio.run(task.run_if_due(114.0)) is False
    assert asyncio.run(task.run_if_due(115.0)) is True


def test_failed_periodic_run_stays_due() -> None:
    calls: list[int] = []

    async def action() -> None:
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("database blip")

    task = PeriodicTask("sweep", 3600.0, action)

    with pytest.raises(RuntimeError):
        asyncio.run(task.run_if_due(0.0))
    assert task.last_run_at is None
    assert asyncio.run(task.run_if_due(1.0)) is True
    assert task.last_run_at == 1.0


def test_debounced_trigger_batches_after_first_notify() -> None:
    clock = FakeClock()
    batches: list[list[str]] = []

    async def action(keys: list[str]) -> None:
        batches.append(keys)

    trigger = DebouncedTrigger(1.0, action, clock=clock)
    trigger.notify("job-a")
    clock.now = 0.5
    trigger.notify("job-b")
    trigger.notify("job-a")

    clock.now = 0.9
    assert asyncio.run(trigger.drain_if_due()) == 0
    clock.now = 1.0
    assert asyncio.run(trigger.drain_if_due()) == 1
    clock.now = 1.5
    assert asyncio.run(trigger.drain_if_due()) == 1

    assert batches == [["job-a"], ["job-b"]]
    assert trigger.pending_keys == []


def test_failed_drain_is_retried_on_next_iteration() -> None:
    clock = FakeClock()
    batches: list[list[str]] = []

    async def action(keys: list[str]) -> None:
        batches.append(keys)
        if len(batches) == 1:
            raise RuntimeError("store unavailable")

    trigger = DebouncedTrigger(2.0, action, clock=clock)
    trigger.notify("job-a")
    trigger.notify("job-b")
    clock.now = 2.0

    with pytest.raises(RuntimeError):
        asyncio.run(trigger.drain_if_due())
    assert trigger.pending_keys == ["job-a", "job-b"]

    assert asyncio.run(trigger.drain_if_due()) == 2
    assert batches == [["job-a", "job-b"], ["job-a", "job-b"]]
