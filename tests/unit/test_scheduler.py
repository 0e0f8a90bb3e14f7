"""Scheduler tests."""

import asyncio

import pytest

from flowgate.scheduler import AsyncioScheduler, ManualScheduler


@pytest.mark.asyncio
async def test_manual_scheduler_runs_only_when_driven():
    scheduler = ManualScheduler()
    ran = []

    async def job():
        ran.append("job")

    scheduler.call_later("wf", 1.0, job)
    assert ran == []
    assert scheduler.pending() == ["wf"]

    assert await scheduler.run_until_idle() == 1
    assert ran == ["job"]
    assert scheduler.pending() == []


@pytest.mark.asyncio
async def test_manual_scheduler_replaces_and_cancels_per_key():
    scheduler = ManualScheduler()
    ran = []

    async def first():
        ran.append("first")

    async def second():
        ran.append("second")

    scheduler.call_later("wf", 1.0, first)
    scheduler.call_later("wf", 2.0, second)
    scheduler.call_later("other", 1.0, first)
    assert scheduler.cancel("other") is True
    assert scheduler.cancel("other") is False

    await scheduler.run_until_idle()
    assert ran == ["second"]
    assert scheduler.delays == [1.0, 2.0, 1.0]


@pytest.mark.asyncio
async def test_manual_scheduler_chains_continuations():
    scheduler = ManualScheduler()
    count = []

    async def tick():
        count.append(1)
        if len(count) < 3:
            scheduler.call_later("wf", 0.1, tick)

    scheduler.call_later("wf", 0.1, tick)
    assert await scheduler.run_until_idle() == 3


@pytest.mark.asyncio
async def test_asyncio_scheduler_fires_and_drains():
    scheduler = AsyncioScheduler()
    fired = asyncio.Event()

    async def job():
        fired.set()

    scheduler.call_later("wf", 0.01, job)
    assert scheduler.pending() == ["wf"]
    await scheduler.drain(timeout=2)

    assert fired.is_set()
    assert scheduler.pending() == []


@pytest.mark.asyncio
async def test_asyncio_scheduler_cancel():
    scheduler = AsyncioScheduler()
    ran = []

    async def job():
        ran.append(1)

    scheduler.call_later("wf", 0.05, job)
    assert scheduler.cancel("wf") is True
    await asyncio.sleep(0.1)
    assert ran == []


@pytest.mark.asyncio
async def test_asyncio_scheduler_logs_failed_continuation(caplog):
    scheduler = AsyncioScheduler()

    async def broken():
        raise RuntimeError("nope")

    scheduler.call_later("wf", 0, broken)
    await scheduler.drain(timeout=2)
    assert "Scheduled continuation failed" in caplog.text
