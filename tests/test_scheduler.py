from __future__ import annotations

import asyncio

import pytest

from modbridge.common.scheduler import ScheduledLoop


@pytest.mark.asyncio
async def test_loop_fires_repeatedly() -> None:
    calls = []

    async def tick() -> None:
        calls.append(asyncio.get_running_loop().time())

    loop = ScheduledLoop(0.02, tick, name="test")
    await loop.start()
    await asyncio.sleep(0.11)
    loop.stop()

    assert len(calls) >= 3
    assert loop.execution_count == len(calls)
    assert not loop.is_running


@pytest.mark.asyncio
async def test_first_run_waits_one_interval() -> None:
    calls = []

    async def tick() -> None:
        calls.append(1)

    loop = ScheduledLoop(0.2, tick)
    await loop.start()
    await asyncio.sleep(0.05)
    loop.stop()

    assert calls == []


@pytest.mark.asyncio
async def test_overrunning_callback_skips_intervals() -> None:
    active = 0
    peak = 0

    async def slow_tick() -> None:
        nonlocal active, peak
        active += 1
        peak = max(peak, active)
        await asyncio.sleep(0.05)
        active -= 1

    loop = ScheduledLoop(0.02, slow_tick, name="slow")
    await loop.start()
    await asyncio.sleep(0.2)
    loop.stop()

    assert peak == 1
    assert loop.skipped_count > 0


@pytest.mark.asyncio
async def test_callback_errors_do_not_stop_loop() -> None:
    calls = 0

    async def flaky() -> None:
        nonlocal calls
        calls += 1
        raise RuntimeError("boom")

    loop = ScheduledLoop(0.02, flaky, name="flaky")
    await loop.start()
    await asyncio.sleep(0.09)
    loop.stop()

    assert calls >= 2


@pytest.mark.asyncio
async def test_start_is_idempotent() -> None:
    async def tick() -> None:
        pass

    loop = ScheduledLoop(1.0, tick)
    await loop.start()
    task = loop._task
    await loop.start()

    assert loop._task is task
    loop.stop()
    assert loop.get_stats()["running"] is False
