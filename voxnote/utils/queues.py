"""Bounded hand-off queue used between the audio callback and recognition."""

from __future__ import annotations

import threading
from collections import deque
from typing import Deque, Generic, Optional, TypeVar

T = TypeVar("T")


class QueueClosed(Exception):
    """Raised by :meth:`DropOldestQueue.get` once the queue is closed and empty."""


class DropOldestQueue(Generic[T]):
    """Fixed-capacity FIFO whose ``put`` never blocks.

    When the queue is full the oldest item is discarded to make room, since
    live recognition gets more out of recent audio than stale audio.
    """

    def __init__(self, maxsize: int) -> None:
        if maxsize <= 0:
            raise ValueError("maxsize must be positive")
        self.maxsize = maxsize
        self._items: Deque[T] = deque()
        self._cond = threading.Condition()
        self._closed = False
        self.dropped = 0

    def put(self, item: T) -> bool:
        """Enqueue ``item``; return ``False`` if it was discarded because the queue is closed."""

        with self._cond:
            if self._closed:
                return False
            if len(self._items) >= self.maxsize:
                self._items.popleft()
                self.dropped += 1
            self._items.append(item)
            self._cond.notify()
            return True

    def get(self, timeout: Optional[float] = None) -> Optional[T]:
        """Return the oldest item, ``None`` on timeout, or raise ``QueueClosed``."""

        with self._cond:
            if not self._cond.wait_for(lambda: self._items or self._closed, timeout):
                return None
            if self._items:
                return self._items.popleft()
            raise QueueClosed()

    def close(self) -> None:
        """Refuse new items; consumers drain what is left, then see ``QueueClosed``."""

        with self._cond:
            self._closed = True
            self._cond.notify_all()

    def __len__(self) -> int:
        with self._cond:
            return len(self._items)


__all__ = ["DropOldestQueue", "QueueClosed"]
