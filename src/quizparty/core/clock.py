"""Deferred calls and the pausable game timer.

All game transitions are synchronous. The only time-based behaviour is a
handful of deferred continuations (continue-choice prompt, click debounce) and
the one-second elapsed timer, all driven through a :class:`Scheduler`.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Protocol, Tuple

from .rulesets import TIMER_INTERVAL


class Handle(Protocol):
    """Cancellable reference to a scheduled call."""

    def cancel(self) -> None:
        ...


class Scheduler(Protocol):
    """Runs a callback once after ``delay`` seconds."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> Handle:
        ...


@dataclass
class _ManualHandle:
    due: float
    callback: Callable[[], None]
    cancelled: bool = False

    def cancel(self) -> None:
        self.cancelled = True


@dataclass
class ManualScheduler:
    """Virtual-time scheduler; time only moves when :meth:`advance` is called."""

    now: float = 0.0
    _queue: List[Tuple[float, int, _ManualHandle]] = field(default_factory=list)
    _counter: "itertools.count[int]" = field(default_factory=itertools.count)

    def call_later(self, delay: float, callback: Callable[[], None]) -> _ManualHandle:
        handle = _ManualHandle(due=self.now + max(0.0, delay), callback=callback)
        heapq.heappush(self._queue, (handle.due, next(self._counter), handle))
        return handle

    def advance(self, seconds: float) -> int:
        """Move time forward, running due callbacks in order; return how many ran."""
        target = self.now + seconds
        ran = 0
        while self._queue and self._queue[0][0] <= target:
            due, _, handle = heapq.heappop(self._queue)
            self.now = due
            if handle.cancelled:
                continue
            handle.callback()
            ran += 1
        self.now = target
        return ran

    @property
    def pending(self) -> int:
        return sum(1 for _, _, handle in self._queue if not handle.cancelled)


class AsyncioScheduler:
    """Scheduler backed by a running asyncio event loop."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self._loop = loop

    def call_later(self, delay: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(delay, callback)


class GameTimer:
    """Repeating one-second elapsed counter.

    ``start`` on a running timer and ``stop`` on a stopped one are no-ops. While
    paused the timer keeps ticking but does not accumulate.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        *,
        on_tick: Optional[Callable[[int], None]] = None,
        interval: float = TIMER_INTERVAL,
    ) -> None:
        self._scheduler = scheduler
        self._on_tick = on_tick
        self._interval = interval
        self._handle: Optional[Handle] = None
        self.elapsed = 0
        self.paused = False

    @property
    def running(self) -> bool:
        return self._handle is not None

    def start(self) -> None:
        if self._handle is not None:
            return
        self._schedule()

    def stop(self) -> None:
        if self._handle is None:
            return
        self._handle.cancel()
        self._handle = None

    def reset(self, elapsed: int = 0) -> None:
        self.stop()
        self.elapsed = elapsed
        self.paused = False

    def pause(self) -> None:
        self.paused = True

    def resume(self) -> None:
        self.paused = False

    def _schedule(self) -> None:
        self._handle = self._scheduler.call_later(self._interval, self._tick)

    def _tick(self) -> None:
        if self._handle is None:
            return
        self._schedule()
        if self.paused:
            return
        self.elapsed += 1
        if self._on_tick is not None:
            self._on_tick(self.elapsed)
