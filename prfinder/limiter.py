"""
Process-wide request limiter.

A counting semaphore with a FIFO wait queue: acquire blocks while the
limiter is at capacity, release hands the slot to the oldest waiter.
Provider capacity is the real constraint, so one instance is shared by every
resolution run and injected wherever requests are made.
"""

import threading
from collections import deque
from contextlib import contextmanager
from typing import Callable, Optional


class RequestLimiter:
    def __init__(self, max_concurrent: int = 20):
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self.max_concurrent = max_concurrent
        self._active = 0
        self._waiters: deque = deque()
        self._lock = threading.Lock()

    def acquire(self, timeout: Optional[float] = None) -> bool:
        """Take a slot, waiting in arrival order. Returns False on timeout."""
        with self._lock:
            if self._active < self.max_concurrent and not self._waiters:
                self._active += 1
                return True
            ticket = threading.Event()
            self._waiters.append(ticket)

        if ticket.wait(timeout):
            return True

        with self._lock:
            # The slot may have been handed over between the timeout and the lock.
            if ticket.is_set():
                return True
            self._waiters.remove(ticket)
        return False

    def release(self) -> None:
        with self._lock:
            if self._waiters:
                # Slot passes straight to the oldest waiter; active count is unchanged.
                self._waiters.popleft().set()
                return
            if self._active == 0:
                raise RuntimeError("release() called more times than acquire()")
            self._active -= 1

    @contextmanager
    def slot(self):
        self.acquire()
        try:
            yield
        finally:
            self.release()

    def run(self, fn: Callable, *args, **kwargs):
        with self.slot():
            return fn(*args, **kwargs)

    @property
    def stats(self) -> dict:
        with self._lock:
            return {"active": self._active, "queued": len(self._waiters)}
