from __future__ import annotations

import asyncio

import pytest

from gungnr_jobs.scheduler import AsyncioScheduler


@pytest.mark.asyncio
async def test_call_later_runs_callback_after_delay():
    scheduler = AsyncioScheduler()
    ran = asyncio.Event()

    async def _callback() -> None:
        ran.set()

    call = scheduler.call_later(0.01, _callback)
    assert not ran.is_set()

    await asyncio.wait_for(ran.wait(), timeout=1)
    assert call.fired is True


@pytest.mark.asyncio
async def test_cancel_before_delay_prevents_callback():
    scheduler = AsyncioScheduler()
    calls = []

    async def _callback() -> None:
        calls.append(1)

    call = scheduler.call_later(0.01, _callback)
    call.cancel()
    call.cancel()
    await asyncio.sleep(0.05)

    assert calls == []
    assert call.cancelled is True
    assert scheduler.pending_tasks == 0


@pytest.mark.asyncio
async def test_cancel_after_fire_leaves_running_callback_alone():
    scheduler = AsyncioScheduler()
    started = asyncio.Event()
    release = asyncio.Event()
    finished = []

    async def _callback() -> None:
        started.set()
        await release.wait()
        finished.append(True)

    call = scheduler.call_later(0, _callback)
    await asyncio.wait_for(started.wait(), timeout=1)

    call.cancel()
    release.set()
    await asyncio.sleep(0.01)

    assert call.cancelled is False
    assert finished == [True]


@pytest.mark.asyncio
async def test_aclose_cancels_running_callbacks():
    scheduler = AsyncioScheduler()
    started = asyncio.Event()

    async def _forever() -> None:
        started.set()
        await asyncio.sleep(3600)

    scheduler.call_later(0, _forever)
    await asyncio.wait_for(started.wait(), timeout=1)
    assert scheduler.pending_tasks == 1

    await scheduler.aclose()

    assert scheduler.pending_tasks == 0


@pytest.mark.asyncio
async def test_failing_callback_is_logged_not_raised(caplog):
    scheduler = AsyncioScheduler()
    done = asyncio.Event()

    async def _boom() -> None:
        done.set()
        raise RuntimeError("poll exploded")

    scheduler.call_later(0, _boom)
    await asyncio.wait_for(done.wait(), timeout=1)
    await asyncio.sleep(0.01)

    assert scheduler.pending_tasks == 0
    assert "poll exploded" in caplog.text
