"""Cancellable delayed calls for poll loops.

The poll controller never sleeps itself; it asks a scheduler to run the
next attempt later and keeps the returned handle so it can cancel it.
Tests swap in a scheduler that fires on demand.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Protocol, Set

log = logging.getLogger(__name__)

AsyncCallback = Callable[[], Awaitable[None]]


class ScheduledHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def call_later(self, delay_s: float, callback: AsyncCallback) -> ScheduledHandle: ...


class ScheduledCall:
    """Handle for one delayed callback.

    Cancelling before the delay elapses prevents the callback from running.
    Cancelling after it fired is a no-op; the running coroutine is left to
    finish on its own.
    """

    def __init__(self, callback: AsyncCallback) -> None:
        self.callback = callback
        self.cancelled = False
        self.fired = False
        self._timer: Optional[asyncio.TimerHandle] = None

    def cancel(self) -> None:
        if self.cancelled or self.fired:
            return
        self.cancelled = True
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None


class AsyncioScheduler:
    """Scheduler backed by the running event loop's ``call_later``."""

    def __init__(self) -> None:
        self._tasks: Set[asyncio.Task] = set()

    def call_later(self, delay_s: float, callback: AsyncCallback) -> ScheduledCall:
        loop = asyncio.get_running_loop()
        call = ScheduledCall(callback)
        call._timer = loop.call_later(max(0.0, delay_s), self._fire, call)
        return call

    def _fire(self, call: ScheduledCall) -> None:
        if call.cancelled:
            return
        call.fired = True
        call._timer = None
        task = asyncio.create_task(call.callback(), name="job-poll")
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log.error("scheduled_call_failed: %s", exc, exc_info=exc)

    @property
    def pending_tasks(self) -> int:
        return len(self._tasks)

    async def aclose(self) -> None:
        """Cancel callbacks that are still running and wait for them to unwind."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
