# statechart/runtime/timers.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

import asyncio
import heapq
import itertools
import logging
import threading
import time
from typing import Callable, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)


class TimerHandle:
    """
    Represents one scheduled callback. Cancelling is idempotent and a
    cancelled handle never fires.
    """

    def __init__(self, deadline: float, cancel: Callable[[], None]) -> None:
        self._deadline = deadline
        self._cancel = cancel
        self._cancelled = False

    def cancel(self) -> None:
        if not self._cancelled:
            self._cancelled = True
            self._cancel()

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def deadline(self) -> float:
        """
        Point in time, on the owning clock, when the callback is due.
        """
        return self._deadline


class Clock:
    """
    Abstract time source used by interpreters for delayed events. Delays are
    in seconds.
    """

    def now(self) -> float:
        raise NotImplementedError()

    def schedule(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        """
        Run ``callback`` once after ``delay`` seconds.

        :return: A handle that can cancel the callback.
        """
        raise NotImplementedError()


class ThreadingClock(Clock):
    """Wall-clock timers on background threads (``threading.Timer``)."""

    def now(self) -> float:
        return time.monotonic()

    def schedule(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        timer = threading.Timer(max(delay, 0.0), callback)
        timer.daemon = True
        timer.start()
        return TimerHandle(self.now() + delay, timer.cancel)


class AsyncioClock(Clock):
    """Timers on an asyncio event loop (``loop.call_later``)."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def now(self) -> float:
        return self.loop.time()

    def schedule(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        handle = self.loop.call_later(max(delay, 0.0), callback)
        return TimerHandle(handle.when(), handle.cancel)


class SimulatedClock(Clock):
    """
    Manually advanced clock for tests and simulations. Callbacks run on the
    thread calling :meth:`advance`, in deadline order (ties in scheduling
    order).
    """

    def __init__(self, start: float = 0.0) -> None:
        self._now = start
        self._lock = threading.Lock()
        self._counter = itertools.count()
        self._heap: List[Tuple[float, int]] = []
        self._callbacks: Dict[int, Callable[[], None]] = {}

    def now(self) -> float:
        return self._now

    def schedule(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        with self._lock:
            deadline = self._now + max(delay, 0.0)
            key = next(self._counter)
            heapq.heappush(self._heap, (deadline, key))
            self._callbacks[key] = callback
        return TimerHandle(deadline, lambda: self._discard(key))

    def _discard(self, key: int) -> None:
        with self._lock:
            self._callbacks.pop(key, None)

    @property
    def pending(self) -> int:
        """Number of callbacks scheduled and not yet fired or cancelled."""
        with self._lock:
            return len(self._callbacks)

    def advance(self, seconds: float) -> None:
        """
        Move time forward, firing every callback that becomes due, including
        ones scheduled by callbacks fired along the way.
        """
        if seconds < 0:
            raise ValueError("Cannot move a clock backwards")
        target = self._now + seconds
        while True:
            with self._lock:
                while self._heap and self._heap[0][1] not in self._callbacks:
                    heapq.heappop(self._heap)
                if not self._heap or self._heap[0][0] > target:
                    break
                deadline, key = heapq.heappop(self._heap)
                callback = self._callbacks.pop(key)
                self._now = deadline
            logger.debug("Simulated clock firing callback due at %s", deadline)
            callback()
        self._now = target

    def set(self, timestamp: float) -> None:
        """Advance to an absolute time."""
        self.advance(timestamp - self._now)
