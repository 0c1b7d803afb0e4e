"""FIFO-fair counting semaphore used for the global and per-client permit pools"""
import itertools
import threading
from collections import deque
from typing import Optional

from mediafetch.errors import Cancelled

from .process_runner import CancelToken


class FairSemaphore:
    """
    Counting semaphore that grants permits in acquisition order.

    Waiters take a ticket and are served strictly by ticket number, so a
    steady stream of new arrivals cannot starve an earlier waiter. A waiter
    holding a cancel token gives up its place when the token is set.
    """

    poll_interval = 0.1

    def __init__(self, permits: int) -> None:
        if permits < 1:
            raise ValueError("permits must be >= 1")
        self._permits = permits
        self._available = permits
        self._cond = threading.Condition()
        self._queue: deque = deque()
        self._tickets = itertools.count()

    @property
    def permits(self) -> int:
        return self._permits

    @property
    def available(self) -> int:
        with self._cond:
            return self._available

    @property
    def waiting(self) -> int:
        with self._cond:
            return len(self._queue)

    def acquire(self, cancel_token: Optional[CancelToken] = None) -> None:
        """Block until a permit is granted. Raises Cancelled if the token is set first."""
        with self._cond:
            ticket = next(self._tickets)
            self._queue.append(ticket)
            try:
                while self._queue[0] != ticket or self._available == 0:
                    if cancel_token is not None and cancel_token.is_cancelled:
                        raise Cancelled("Cancelled while waiting for a download slot")
                    self._cond.wait(self.poll_interval if cancel_token is not None else None)
                self._available -= 1
            finally:
                self._queue.remove(ticket)
                # The next ticket may now be at the head with a permit free.
                self._cond.notify_all()

    def try_acquire(self) -> bool:
        """Take a permit only if one is free and nobody is queued ahead."""
        with self._cond:
            if self._queue or self._available == 0:
                return False
            self._available -= 1
            return True

    def wait_available(self, cancel_token: Optional[CancelToken] = None) -> None:
        """Block until a permit is free without taking it. Raises Cancelled if the token is set first."""
        with self._cond:
            while self._available == 0:
                if cancel_token is not None and cancel_token.is_cancelled:
                    raise Cancelled("Cancelled while waiting for a download slot")
                self._cond.wait(self.poll_interval if cancel_token is not None else None)

    def release(self) -> None:
        with self._cond:
            if self._available >= self._permits:
                raise ValueError("FairSemaphore released too many times")
            self._available += 1
            self._cond.notify_all()
