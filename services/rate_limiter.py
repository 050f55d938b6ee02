"""Minimum-interval pacing for sequential LLM calls."""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

logger = logging.getLogger("rate_limiter")


class MinIntervalRateLimiter:
    """Ensures at least `interval` seconds pass between consecutive acquisitions.

    The first acquisition never waits. `clock` and `sleep` are injectable so tests can
    drive the limiter without real timers.
    """

    def __init__(
        self,
        interval: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if interval < 0:
            raise ValueError("interval must be non-negative")
        self.interval = interval
        self._clock = clock
        self._sleep = sleep
        self._last: Optional[float] = None
        self._lock = asyncio.Lock()

    @classmethod
    def from_milliseconds(cls, interval_ms: int, **kwargs) -> "MinIntervalRateLimiter":
        return cls(max(0, interval_ms) / 1000.0, **kwargs)

    async def acquire(self) -> float:
        """Wait until the next call is allowed. Returns the time waited in seconds."""
        async with self._lock:
            waited = 0.0
            now = self._clock()
            if self._last is not None:
                remaining = self._last + self.interval - now
                if remaining > 0:
                    logger.debug(f"Pacing LLM call, waiting {remaining:.3f}s")
                    await self._sleep(remaining)
                    waited = remaining
                    now = self._clock()
            self._last = now
            return waited

    def reset(self) -> None:
        self._last = None
