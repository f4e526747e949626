"""
Rate limiter for outbound provider calls.

Bounds both the number of calls in flight and the spacing between call
starts. Usage:

    limiter = RateLimiter(max_concurrent=3, min_interval_ms=250)
    async with limiter:
        await do_request()
"""
import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional

logger = logging.getLogger("rate_limiter")


class RateLimiter:
    """Concurrency cap plus minimum spacing between acquisitions."""

    def __init__(
        self,
        max_concurrent: int = 3,
        min_interval_ms: int = 250,
        clock: Callable[[], float] = time.monotonic,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None
    ):
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self.max_concurrent = max_concurrent
        self.min_interval = max(min_interval_ms, 0) / 1000.0
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._spacing_lock = asyncio.Lock()
        self._last_start: Optional[float] = None
        self._clock = clock
        self._sleep = sleep or asyncio.sleep
        self._in_flight = 0

    async def acquire(self) -> None:
        await self._semaphore.acquire()
        try:
            async with self._spacing_lock:
                if self._last_start is not None:
                    wait = self._last_start + self.min_interval - self._clock()
                    if wait > 0:
                        await self._sleep(wait)
                self._last_start = self._clock()
        except BaseException:
            self._semaphore.release()
            raise
        self._in_flight += 1

    def release(self) -> None:
        self._in_flight -= 1
        self._semaphore.release()

    async def __aenter__(self) -> "RateLimiter":
        await self.acquire()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.release()

    def get_status(self) -> Dict[str, Any]:
        """Get limiter state for monitoring."""
        return {
            "max_concurrent": self.max_concurrent,
            "min_interval_ms": int(self.min_interval * 1000),
            "in_flight": self._in_flight
        }
