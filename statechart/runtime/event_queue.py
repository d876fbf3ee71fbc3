# statechart/runtime/event_queue.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

import threading
from collections import deque
from typing import Deque, Optional

from statechart.core.events import Event


class _QueueGuard:
    """
    Holds the queue lock for the duration of a ``with`` block.
    """

    def __init__(self, lock: threading.Lock) -> None:
        self._lock = lock

    def __enter__(self) -> None:
        self._lock.acquire()

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self._lock.release()


class EventQueue:
    """
    External events waiting for an interpreter, oldest first, plus the flag
    telling senders whether somebody is already draining them. A sender that
    wins :meth:`claim` drains with :meth:`next_or_release`; every other sender
    just appends. Checking for emptiness and dropping the flag happen under
    the same lock, so no event can slip in unnoticed between the two.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._events: Deque[Event] = deque()
        self._draining = False

    def enqueue(self, event: Event) -> None:
        """
        Append an event behind everything already waiting.

        :param event: The event to append.
        """
        with _QueueGuard(self._lock):
            self._events.append(event)

    def dequeue(self) -> Optional[Event]:
        """Pop the oldest waiting event; None when nothing is waiting."""
        with _QueueGuard(self._lock):
            return self._events.popleft() if self._events else None

    def claim(self) -> bool:
        """
        Try to become the drainer.

        :return: True if the caller now owns the queue and must drain it
                 with :meth:`next_or_release`; False if someone else does.
        """
        with _QueueGuard(self._lock):
            if self._draining:
                return False
            self._draining = True
            return True

    def next_or_release(self) -> Optional[Event]:
        """
        Drainer only: pop the oldest event, or drop the drain flag and return
        None once nothing is left.
        """
        with _QueueGuard(self._lock):
            if self._events:
                return self._events.popleft()
            self._draining = False
            return None

    def release(self) -> None:
        """Drop the drain flag while events may still be waiting, e.g. after an error."""
        with _QueueGuard(self._lock):
            self._draining = False

    def clear(self) -> None:
        """Discard every waiting event."""
        with _QueueGuard(self._lock):
            self._events.clear()

    @property
    def processing(self) -> bool:
        return self._draining

    def __len__(self) -> int:
        with _QueueGuard(self._lock):
            return len(self._events)
