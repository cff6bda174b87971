"""Time sources and timer scheduling for the session manager.

The manager never calls ``time.time()`` or ``loop.call_later`` directly.  It
receives a ``Scheduler`` that provides the current time, one-shot timers and
fire-and-forget background work.  Production code uses ``AsyncioScheduler``;
tests and simulations use ``ManualScheduler`` and move time forward
explicitly, so idle-timeout behaviour is checked without sleeping.
"""

from __future__ import annotations

import asyncio
import dataclasses
import datetime
import heapq
import itertools
import logging
from typing import Any, Callable, Coroutine, Protocol

logger = logging.getLogger(__name__)


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def now(self) -> datetime.datetime: ...

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle: ...

    def spawn(self, coro: Coroutine[Any, Any, None]) -> None: ...


class AsyncioScheduler:
    """Wall-clock UTC time and timers on the running asyncio event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop
        self._tasks: set[asyncio.Task[None]] = set()

    def now(self) -> datetime.datetime:
        return datetime.datetime.now(datetime.UTC)

    def call_later(self, delay: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        return self._get_loop().call_later(max(0.0, delay), callback)

    def spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = self._get_loop().create_task(coro)
        # The loop only keeps weak references to tasks.
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Background session task failed", exc_info=task.exception())

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop


@dataclasses.dataclass
class ManualTimer:
    due: datetime.datetime
    callback: Callable[[], None]
    cancelled: bool = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Deterministic virtual clock.

    Time only moves when ``advance`` is called; due timers fire in order,
    including timers scheduled by other timers while advancing.  Spawned
    coroutines are queued until ``drain`` awaits them.
    """

    def __init__(self, start: datetime.datetime | None = None) -> None:
        if start is None:
            start = datetime.datetime.now(datetime.UTC).replace(microsecond=0)
        self._now = start
        self._timers: list[tuple[datetime.datetime, int, ManualTimer]] = []
        self._seq = itertools.count()
        self.pending: list[Coroutine[Any, Any, None]] = []

    def now(self) -> datetime.datetime:
        return self._now

    def call_later(self, delay: float, callback: Callable[[], None]) -> ManualTimer:
        timer = ManualTimer(
            due=self._now + datetime.timedelta(seconds=max(0.0, delay)),
            callback=callback,
        )
        heapq.heappush(self._timers, (timer.due, next(self._seq), timer))
        return timer

    def spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        self.pending.append(coro)

    @property
    def active_timers(self) -> list[ManualTimer]:
        return [timer for _, _, timer in self._timers if not timer.cancelled]

    def advance(self, seconds: float) -> None:
        target = self._now + datetime.timedelta(seconds=seconds)
        while self._timers and self._timers[0][0] <= target:
            due, _, timer = heapq.heappop(self._timers)
            if timer.cancelled:
                continue
            self._now = due
            timer.callback()
        self._now = target

    async def drain(self) -> None:
        while self.pending:
            await self.pending.pop(0)
