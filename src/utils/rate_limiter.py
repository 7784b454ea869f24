"""Request rate limiting for RPC clients."""

from __future__ import annotations

import asyncio
import time
from collections import deque
from dataclasses import dataclass
from threading import Lock
from typing import Callable


@dataclass
class RateLimitConfig:
    """Sliding-window limit: ``max_requests`` per ``time_window`` seconds."""

    max_requests: int
    time_window: float = 1.0

    def __post_init__(self) -> None:
        if self.max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if self.time_window <= 0:
            raise ValueError("time_window must be positive")

    @classmethod
    def per_second(cls, rate: float) -> "RateLimitConfig":
        """Build a config from a (possibly fractional) requests-per-second rate."""
        if rate >= 1:
            return cls(max_requests=int(rate), time_window=1.0)
        return cls(max_requests=1, time_window=1.0 / rate)


class _SlidingWindow:
    def __init__(self, config: RateLimitConfig, clock: Callable[[], float]) -> None:
        self.config = config
        self._clock = clock
        self._timestamps: deque[float] = deque()

    def try_acquire(self) -> float:
        """Record a request and return 0, or return the seconds to wait."""
        now = self._clock()
        cutoff = now - self.config.time_window
        while self._timestamps and self._timestamps[0] <= cutoff:
            self._timestamps.popleft()
        if len(self._timestamps) < self.config.max_requests:
            self._timestamps.append(now)
            return 0.0
        return max(0.0, self._timestamps[0] + self.config.time_window - now)

    def usage(self) -> int:
        return len(self._timestamps)


class RateLimiter:
    """Thread-safe blocking limiter for the synchronous RPC client."""

    def __init__(
        self,
        config: RateLimitConfig,
        time_provider: Callable[[], float] | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._window = _SlidingWindow(config, time_provider or time.monotonic)
        self._lock = Lock()
        self._sleep = sleep

    def acquire(self) -> None:
        while True:
            with self._lock:
                wait = self._window.try_acquire()
            if wait <= 0:
                return
            self._sleep(wait)

    def get_current_usage(self) -> tuple[int, int]:
        with self._lock:
            return self._window.usage(), self._window.config.max_requests


class AsyncRateLimiter:
    """Async limiter for the aiohttp RPC client."""

    def __init__(
        self,
        config: RateLimitConfig,
        time_provider: Callable[[], float] | None = None,
    ) -> None:
        self._window = _SlidingWindow(config, time_provider or time.monotonic)
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        while True:
            async with self._lock:
                wait = self._window.try_acquire()
            if wait <= 0:
                return
            await asyncio.sleep(wait)
