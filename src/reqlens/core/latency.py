"""Synthetic network latency applied before a request reaches its handler."""

import asyncio
import random
from collections.abc import Awaitable, Callable

Sleep = Callable[[float], Awaitable[None]]


class LatencyInjector:
    """Suspends one request for a random number of milliseconds.

    Only the awaiting request is suspended; other in-flight requests keep
    running on the event loop.

    Args:
        rng: Random source; seed it for reproducible delays.
        min_ms: Lower bound of the delay, inclusive.
        max_ms: Upper bound of the delay, inclusive.
        sleep: Async sleep taking seconds (default ``asyncio.sleep``).
    """

    def __init__(
        self,
        rng: random.Random,
        min_ms: int = 10,
        max_ms: int = 100,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        if min_ms < 0 or max_ms < 0:
            raise ValueError("Latency bounds must be non-negative")
        if min_ms > max_ms:
            raise ValueError(f"min_ms ({min_ms}) must not exceed max_ms ({max_ms})")
        self.rng = rng
        self.min_ms = min_ms
        self.max_ms = max_ms
        self._sleep = sleep

    def choose_delay(self) -> int:
        return self.rng.randint(self.min_ms, self.max_ms)

    async def inject(self) -> int:
        """Suspend for a freshly chosen delay and return it in milliseconds."""
        delay_ms = self.choose_delay()
        await self._sleep(delay_ms / 1000)
        return delay_ms
