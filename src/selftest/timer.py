"""
Question Timer: session countdown and per-question elapsed time.

Timers never read the wall clock or sleep directly. They run on an injected
Scheduler so the engine behaves the same on an asyncio loop and under a
ManualScheduler that tests and simulations advance by hand.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
from collections.abc import Callable
from typing import Protocol

from loguru import logger


class TimerHandle(Protocol):
    """A scheduled callback that can be cancelled."""

    def cancel(self) -> None: ...

    @property
    def cancelled(self) -> bool: ...


class Scheduler(Protocol):
    """Monotonic clock plus callback scheduling."""

    def now(self) -> float:
        """Monotonic time in seconds."""
        ...

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle: ...

    def call_every(self, interval: float, callback: Callable[[], None]) -> TimerHandle: ...


# =============================================================================
# asyncio-backed scheduler
# =============================================================================


class _LoopHandle:
    """Repeating or one-shot callback on an asyncio loop."""

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        delay: float,
        callback: Callable[[], None],
        repeat: bool,
    ):
        self._loop = loop
        self._interval = delay
        self._callback = callback
        self._repeat = repeat
        self._cancelled = False
        self._deadline = loop.time() + delay
        self._handle = loop.call_at(self._deadline, self._run)

    def _run(self) -> None:
        if self._cancelled:
            return
        if self._repeat:
            # Anchor to the previous deadline so ticks don't drift
            self._deadline += self._interval
            self._handle = self._loop.call_at(self._deadline, self._run)
        else:
            self._cancelled = True
        self._callback()

    def cancel(self) -> None:
        self._cancelled = True
        self._handle.cancel()

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class AsyncioScheduler:
    """Scheduler running on the current asyncio event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None):
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def now(self) -> float:
        return self.loop.time()

    def call_later(self, delay: float, callback: Callable[[], None]) -> _LoopHandle:
        return _LoopHandle(self.loop, delay, callback, repeat=False)

    def call_every(self, interval: float, callback: Callable[[], None]) -> _LoopHandle:
        return _LoopHandle(self.loop, interval, callback, repeat=True)


# =============================================================================
# Manually advanced scheduler
# =============================================================================


class _ManualHandle:
    def __init__(self, deadline: float, interval: float | None, callback: Callable[[], None]):
        self.deadline = deadline
        self.interval = interval
        self.callback = callback
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class ManualScheduler:
    """
    Deterministic scheduler: time only moves when advance() is called.

    Callbacks fire in deadline order (ties in scheduling order), each one
    seeing now() equal to its own deadline.
    """

    def __init__(self, start: float = 0.0):
        self._now = start
        self._queue: list[tuple[float, int, _ManualHandle]] = []
        self._seq = itertools.count()

    def now(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: Callable[[], None]) -> _ManualHandle:
        handle = _ManualHandle(self._now + delay, None, callback)
        heapq.heappush(self._queue, (handle.deadline, next(self._seq), handle))
        return handle

    def call_every(self, interval: float, callback: Callable[[], None]) -> _ManualHandle:
        if interval <= 0:
            raise ValueError("interval must be positive")
        handle = _ManualHandle(self._now + interval, interval, callback)
        heapq.heappush(self._queue, (handle.deadline, next(self._seq), handle))
        return handle

    def advance(self, seconds: float) -> None:
        """Move time forward, firing every callback that falls due."""
        target = self._now + seconds
        while self._queue and self._queue[0][0] <= target:
            deadline, _, handle = heapq.heappop(self._queue)
            if handle.cancelled:
                continue
            self._now = deadline
            if handle.interval is not None:
                handle.deadline = deadline + handle.interval
                heapq.heappush(self._queue, (handle.deadline, next(self._seq), handle))
            else:
                handle.cancel()
            handle.callback()
        self._now = target

    @property
    def pending(self) -> int:
        """Number of live scheduled callbacks."""
        return sum(1 for _, _, handle in self._queue if not handle.cancelled)


# =============================================================================
# Session countdown
# =============================================================================


class SessionCountdown:
    """
    Whole-session countdown in whole seconds.

    Ticks once per second after start(); when the remaining time reaches zero
    it cancels itself and calls on_expire exactly once.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        total_seconds: int,
        on_expire: Callable[[], None],
        on_tick: Callable[[int], None] | None = None,
    ):
        if total_seconds <= 0:
            raise ValueError("countdown needs a positive duration")
        self._scheduler = scheduler
        self._remaining = total_seconds
        self._on_expire = on_expire
        self._on_tick = on_tick
        self._handle: TimerHandle | None = None
        self._expired = False

    @property
    def remaining_seconds(self) -> int:
        return self._remaining

    @property
    def expired(self) -> bool:
        return self._expired

    @property
    def running(self) -> bool:
        return self._handle is not None and not self._handle.cancelled

    def start(self) -> None:
        if self._handle is not None or self._expired:
            return
        self._handle = self._scheduler.call_every(1.0, self._tick)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()

    def _tick(self) -> None:
        if self._expired:
            return
        self._remaining -= 1
        if self._on_tick is not None:
            self._on_tick(self._remaining)
        if self._remaining <= 0:
            self._remaining = 0
            self._expired = True
            self.cancel()
            logger.info("Session countdown expired")
            self._on_expire()


# =============================================================================
# Per-question stopwatch
# =============================================================================


class QuestionStopwatch:
    """
    Elapsed time per question, measured from the first time it became current.

    Re-entering a question does not restart its measurement.
    """

    def __init__(self, scheduler: Scheduler):
        self._scheduler = scheduler
        self._entered_at: dict[str, float] = {}

    def enter(self, question_id: str) -> None:
        self._entered_at.setdefault(question_id, self._scheduler.now())

    def elapsed_ms(self, question_id: str) -> int:
        started = self._entered_at.get(question_id)
        if started is None:
            return 0
        return int(round((self._scheduler.now() - started) * 1000))

    def reset(self) -> None:
        self._entered_at.clear()
