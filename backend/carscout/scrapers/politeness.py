"""Politeness primitives shared by crawl loops and batch processing.

RateLimiter spaces out fetches issued by one crawl run with a jittered
delay. ConcurrencySemaphore bounds how many tasks run at once.
Both are plain objects, constructed per run and passed in explicitly.
"""

import asyncio
import logging
import random
import time
from collections import deque
from typing import Awaitable, Callable, TypeVar

from carscout.errors import ConfigurationError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RateLimiter:
    """Jittered minimum spacing between consecutive calls.

    Every call draws a fresh delay from [min_delay_ms, max_delay_ms] and
    suspends until that much time has passed since the previous call.
    """

    def __init__(
        self,
        min_delay_ms: int = 750,
        max_delay_ms: int = 2500,
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if min_delay_ms < 0 or max_delay_ms < min_delay_ms:
            raise ConfigurationError(
                f"Invalid rate limit window: {min_delay_ms}-{max_delay_ms}ms"
            )
        self.min_delay_ms = min_delay_ms
        self.max_delay_ms = max_delay_ms
        self._rng = rng or random.Random()
        self._clock = clock
        self._sleep = sleep
        self._last_call: float | None = None
        self._lock = asyncio.Lock()

    async def wait_if_needed(self) -> float:
        """Wait out the remaining delay. Returns the seconds actually slept."""
        async with self._lock:
            delay = self._rng.uniform(self.min_delay_ms, self.max_delay_ms) / 1000
            slept = 0.0
            if self._last_call is not None:
                remaining = delay - (self._clock() - self._last_call)
                if remaining > 0:
                    await self._sleep(remaining)
                    slept = remaining
            self._last_call = self._clock()
            return slept


class ConcurrencySemaphore:
    """Runs at most `permits` tasks at once, admitting waiters in FIFO order.

    A released permit is handed straight to the oldest waiter so a newcomer
    can never jump the queue. The permit is released whether the task
    returns or raises.
    """

    def __init__(self, permits: int):
        if permits < 1:
            raise ConfigurationError(f"Semaphore needs at least one permit, got {permits}")
        self.permits = permits
        self._available = permits
        self._waiters: deque[asyncio.Future] = deque()
        self.in_flight = 0
        self.max_observed = 0

    @property
    def waiting(self) -> int:
        return sum(1 for fut in self._waiters if not fut.done())

    async def acquire(self, task: Callable[[], Awaitable[T]]) -> T:
        """Run `task()` once a permit is free and return its result."""
        await self._take_permit()
        self.in_flight += 1
        self.max_observed = max(self.max_observed, self.in_flight)
        try:
            return await task()
        finally:
            self.in_flight -= 1
            self._release_permit()

    async def _take_permit(self) -> None:
        if self._available > 0 and not self._waiters:
            self._available -= 1
            return

        fut = asyncio.get_running_loop().create_future()
        self._waiters.append(fut)
        try:
            await fut
        except asyncio.CancelledError:
            if fut.done() and not fut.cancelled():
                # Permit was handed over before the cancellation landed
                self._release_permit()
            elif fut in self._waiters:
                self._waiters.remove(fut)
            raise

    def _release_permit(self) -> None:
        while self._waiters:
            fut = self._waiters.popleft()
            if not fut.done():
                fut.set_result(None)
                return
        self._available += 1
