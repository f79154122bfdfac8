"""
Token bucket rate limiter for batch sync.

The bucket starts full, so the first email of a run is processed
immediately; every further email waits for the next token.
"""

import asyncio
from time import monotonic
from typing import Awaitable, Callable


class RateLimiter:
    """
    Token bucket with capacity `capacity`, refilled at one token per
    `interval_seconds`.

    `clock` and `sleep` are injectable so tests can run without real waits.
    """

    def __init__(
        self,
        interval_seconds: float = 7.0,
        capacity: int = 1,
        clock: Callable[[], float] = monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.interval_seconds = max(interval_seconds, 0.0)
        self.capacity = capacity
        self._clock = clock
        self._sleep = sleep
        self._tokens = float(capacity)
        self._updated_at = clock()
        self._lock = asyncio.Lock()

    def _refill(self) -> None:
        now = self._clock()
        if self.interval_seconds == 0:
            self._tokens = float(self.capacity)
        else:
            elapsed = max(now - self._updated_at, 0.0)
            self._tokens = min(float(self.capacity), self._tokens + elapsed / self.interval_seconds)
        self._updated_at = now

    async def acquire(self) -> float:
        """
        Take one token, waiting for it if the bucket is empty.

        Returns:
            Seconds spent waiting
        """
        async with self._lock:
            self._refill()
            waited = 0.0
            if self._tokens < 1:
                waited = (1 - self._tokens) * self.interval_seconds
                await self._sleep(waited)
                self._refill()
                # A fake clock may not have moved during the sleep
                self._tokens = max(self._tokens, 1.0)
            self._tokens -= 1
            return waited
