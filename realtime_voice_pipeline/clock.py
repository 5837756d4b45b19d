#!/usr/bin/env python3
"""
Schedulable deadlines for the silence window.

``LoopClock`` runs timers on the asyncio event loop. ``ManualClock`` is a virtual
clock that only moves when ``advance`` is called, so debounce behaviour can be
exercised without waiting on the wall clock.
"""

import asyncio
import heapq
import itertools
from typing import Callable, List, Optional, Protocol, Tuple


class TimerHandle(Protocol):
    def cancel(self) -> None: ...

    def cancelled(self) -> bool: ...

    def when(self) -> float: ...


class Clock(Protocol):
    def now(self) -> float: ...

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle: ...


class LoopClock:
    """Clock backed by the running event loop (``asyncio.TimerHandle``)."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        return self._loop or asyncio.get_running_loop()

    def now(self) -> float:
        return self.loop.time()

    def call_later(self, delay: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        return self.loop.call_later(delay, callback)


class ManualTimer:
    def __init__(self, deadline: float, callback: Callable[[], None]):
        self._deadline = deadline
        self._callback = callback
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    def cancelled(self) -> bool:
        return self._cancelled

    def when(self) -> float:
        return self._deadline

    def _run(self) -> None:
        if not self._cancelled:
            self._cancelled = True
            self._callback()


class ManualClock:
    """Virtual clock; timers fire synchronously inside ``advance``."""

    def __init__(self, start: float = 0.0):
        self._now = start
        self._seq = itertools.count()
        self._timers: List[Tuple[float, int, ManualTimer]] = []

    def now(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: Callable[[], None]) -> ManualTimer:
        timer = ManualTimer(self._now + max(0.0, delay), callback)
        heapq.heappush(self._timers, (timer.when(), next(self._seq), timer))
        return timer

    @property
    def pending(self) -> int:
        return sum(1 for _, _, t in self._timers if not t.cancelled())

    def advance(self, seconds: float) -> None:
        """Move time forward, firing every due timer in deadline order."""
        target = self._now + seconds
        while self._timers and self._timers[0][0] <= target:
            deadline, _, timer = heapq.heappop(self._timers)
            self._now = max(self._now, deadline)
            timer._run()
        self._now = target
