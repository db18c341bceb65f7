"""
TeamCity Pipeline Collector
Introductory remarks: This module is part of the teamcity-pipeline-collector codebase.

Token-bucket throttle shared by all requests sent to one TeamCity server.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from typing import Optional


class RateLimiter:
    """Allow at most ``max_calls`` requests per ``period_seconds``.

    The bucket starts full so a discovery walk can burst; afterwards each
    :meth:`acquire` waits until a token has been refilled. A limiter built
    with :meth:`unlimited` never waits.
    """

    def __init__(
        self,
        max_calls: int,
        period_seconds: float,
        *,
        time_fn: Optional[Callable[[], float]] = None,
        sleep_fn: Optional[Callable[[float], None]] = None,
    ) -> None:
        if max_calls <= 0:
            raise ValueError("max_calls must be positive.")
        if period_seconds <= 0:
            raise ValueError("period_seconds must be positive.")

        self._capacity = float(max_calls)
        self._seconds_per_token = float(period_seconds) / self._capacity
        self._clock = time_fn or time.monotonic
        self._sleep = sleep_fn or time.sleep
        self._enabled = True

        self._lock = threading.Lock()
        self._tokens = self._capacity
        self._updated_at = self._clock()

    @classmethod
    def per_second(cls, calls: int) -> "RateLimiter":
        """Build a limiter from a calls-per-second budget; ``<= 0`` disables it."""
        if calls <= 0:
            return cls.unlimited()
        return cls(max_calls=calls, period_seconds=1.0)

    @classmethod
    def unlimited(cls) -> "RateLimiter":
        limiter = cls(max_calls=1, period_seconds=1.0)
        limiter._enabled = False
        return limiter

    def acquire(self) -> None:
        """Block until a token is available, then consume it."""
        if not self._enabled:
            return
        while True:
            with self._lock:
                self._refill(self._clock())
                if self._tokens >= 1.0:
                    self._tokens -= 1.0
                    return
                wait_for = (1.0 - self._tokens) * self._seconds_per_token
            # Sleep without holding the lock so other workers can refill.
            self._sleep(wait_for)

    def _refill(self, now: float) -> None:
        elapsed = now - self._updated_at
        if elapsed <= 0:
            return
        self._tokens = min(
            self._capacity, self._tokens + elapsed / self._seconds_per_token
        )
        self._updated_at = now
