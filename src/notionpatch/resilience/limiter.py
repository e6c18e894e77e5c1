"""Sliding-window pacing for outgoing API calls.

Notion allows an average of three requests per second per integration.
Rather than rejecting excess calls, the limiter hands each caller the
earliest start time at which fewer than ``max_calls`` starts fall inside the
rolling window, and the caller suspends until then. Reservations are made in
call order, so waiting callers run first-come first-served.

The reservation book is guarded by a ``threading.Lock``; waiting happens
outside the lock.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Deque

logger = logging.getLogger(__name__)

Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[None]]


@dataclass
class SlidingWindowLimiter:
    """At most *max_calls* call starts in any *window_seconds* interval.

    Attributes:
        max_calls: Calls allowed per window
        window_seconds: Length of the rolling window
        clock: Monotonic time source (injectable for tests)
        sleep: Coroutine used to wait (injectable for tests)
    """

    max_calls: int = 3
    window_seconds: float = 1.0
    clock: Clock = time.monotonic
    sleep: Sleep = asyncio.sleep

    _starts: Deque[float] = field(default_factory=deque, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.max_calls < 1:
            raise ValueError("max_calls must be >= 1")
        if self.window_seconds <= 0:
            raise ValueError("window_seconds must be > 0")

    def _cleanup(self, now: float) -> None:
        cutoff = now - self.window_seconds
        while self._starts and self._starts[0] <= cutoff:
            self._starts.popleft()

    def reserve(self) -> float:
        """Book the next start slot and return how long to wait for it."""
        with self._lock:
            now = self.clock()
            self._cleanup(now)
            if len(self._starts) < self.max_calls:
                slot = now
            else:
                slot = max(now, self._starts[-self.max_calls] + self.window_seconds)
            self._starts.append(slot)
            return slot - now

    async def acquire(self, label: str = "call") -> float:
        """Wait until a call may start. Returns the seconds spent waiting."""
        delay = self.reserve()
        if delay > 0:
            logger.debug("Pacing %s: waiting %.3fs for rate-limit capacity.", label, delay)
            await self.sleep(delay)
        return delay

    @property
    def pending(self) -> int:
        """Reserved starts still inside the window (including future ones)."""
        with self._lock:
            self._cleanup(self.clock())
            return len(self._starts)
