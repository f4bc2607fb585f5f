"""
Rate limiting for booking attempts.

The reservation path depends only on the ``RateLimiter`` protocol. The
in-memory implementation keeps a process-local fixed window per key, which is
fine for a single instance or development; several instances need a shared
backend (e.g. Redis) behind the same protocol.
"""

import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Protocol

from courtbook.core.config import settings


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    remaining: int
    reset_in: int  # seconds until the window resets


class RateLimiter(Protocol):
    def check_and_increment(self, key: str) -> RateLimitDecision:
        ...


@dataclass
class _Window:
    count: int
    reset_at: float


class InMemoryRateLimiter:
    """Fixed-window counter keyed by an arbitrary string (user id, email)."""

    def __init__(
        self,
        max_attempts: int,
        window_seconds: int,
        key_prefix: str = "",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_attempts = max_attempts
        self.window_seconds = window_seconds
        self.key_prefix = key_prefix
        self._clock = clock
        self._windows: Dict[str, _Window] = {}
        self._lock = threading.Lock()

    def _full_key(self, key: str) -> str:
        return f"{self.key_prefix}{key.lower()}"

    def check_and_increment(self, key: str) -> RateLimitDecision:
        now = self._clock()
        full_key = self._full_key(key)
        with self._lock:
            self._purge(now)
            window = self._windows.get(full_key)
            if window is None:
                window = _Window(count=0, reset_at=now + self.window_seconds)
                self._windows[full_key] = window

            reset_in = max(0, math.ceil(window.reset_at - now))
            if window.count >= self.max_attempts:
                return RateLimitDecision(allowed=False, remaining=0, reset_in=reset_in)

            window.count += 1
            return RateLimitDecision(
                allowed=True,
                remaining=self.max_attempts - window.count,
                reset_in=reset_in,
            )

    def reset(self, key: str) -> None:
        with self._lock:
            self._windows.pop(self._full_key(key), None)

    def _purge(self, now: float) -> None:
        expired = [k for k, w in self._windows.items() if w.reset_at <= now]
        for k in expired:
            del self._windows[k]


def format_rate_limit_message(decision: RateLimitDecision, action: str) -> str:
    minutes = max(1, math.ceil(decision.reset_in / 60))
    unit = "minute" if minutes == 1 else "minutes"
    return f"Too many {action} attempts. Please try again in {minutes} {unit}."


_booking_limiter: Optional[InMemoryRateLimiter] = None


def get_booking_rate_limiter() -> RateLimiter:
    """Process-wide limiter for booking attempts (FastAPI dependency)."""
    global _booking_limiter
    if _booking_limiter is None:
        _booking_limiter = InMemoryRateLimiter(
            max_attempts=settings.BOOKING_RATE_LIMIT,
            window_seconds=settings.BOOKING_RATE_WINDOW_SECONDS,
            key_prefix="booking:",
        )
    return _booking_limiter
