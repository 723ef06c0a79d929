"""Sliding-window rate limiter for outbound API calls.

Keeps the timestamps of recent calls; once ``max_requests`` fall inside the
window, callers block until the oldest one ages out. Throttling is a wait,
never a dropped request.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from typing import Callable

logger = logging.getLogger(__name__)


class SlidingWindowRateLimiter:
    """Thread-safe sliding-window limiter.

    Usage:
        limiter = SlidingWindowRateLimiter(max_requests=5, window_seconds=1.0)
        limiter.acquire()   # blocks if needed, then records the call
        resp = httpx.get(...)
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_requests <= 0:
            raise ValueError("max_requests must be positive")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._sleep = sleep
        self._timestamps: deque[float] = deque()
        self._lock = threading.Lock()

    def _prune(self, now: float) -> None:
        cutoff = now - self.window_seconds
        while self._timestamps and self._timestamps[0] <= cutoff:
            self._timestamps.popleft()

    def can_make_request(self) -> bool:
        with self._lock:
            self._prune(self._clock())
            return len(self._timestamps) < self.max_requests

    def remaining_requests(self) -> int:
        with self._lock:
            self._prune(self._clock())
            return max(0, self.max_requests - len(self._timestamps))

    def seconds_until_next_slot(self) -> float:
        """0.0 if a slot is free, else time until the oldest call leaves the window."""
        with self._lock:
            return self._wait_time(self._clock())

    def _wait_time(self, now: float) -> float:
        self._prune(now)
        if len(self._timestamps) < self.max_requests:
            return 0.0
        return max(0.0, self._timestamps[0] + self.window_seconds - now)

    def record_request(self) -> None:
        with self._lock:
            self._timestamps.append(self._clock())

    def acquire(self) -> float:
        """Block until a slot is free, then record the call.

        Returns the total seconds spent waiting.
        """
        waited = 0.0
        while True:
            with self._lock:
                now = self._clock()
                wait = self._wait_time(now)
                if wait <= 0:
                    self._timestamps.append(now)
                    return waited
            logger.debug("Rate limit reached, sleeping %.3fs", wait)
            self._sleep(wait)
            waited += wait

    def reset(self) -> None:
        with self._lock:
            self._timestamps.clear()
