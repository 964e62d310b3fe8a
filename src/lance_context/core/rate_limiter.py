"""Token bucket rate limiter for embedding backend requests.

Each backend instance owns one limiter. Tokens refill continuously at
``requests_per_second`` up to ``burst_capacity``. Callers that find the
bucket empty wait in a FIFO queue which is drained by a loop timer, so no
coroutine ever polls.
"""

import asyncio
import math
import time
from collections import deque
from collections.abc import Callable

from loguru import logger

# Absorbs float drift so that exactly one refilled token counts as one
_EPSILON = 1e-9


class RateLimiter:
    """Token bucket with a FIFO wait queue.

    Example:
        limiter = RateLimiter(requests_per_second=2, burst_capacity=1)
        await limiter.acquire()  # immediate
        await limiter.acquire()  # resolves ~500ms later
    """

    def __init__(
        self,
        requests_per_second: float = 5.0,
        burst_capacity: int = 10,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the limiter with a full bucket.

        Args:
            requests_per_second: Refill rate in tokens per second
            burst_capacity: Maximum tokens held at once
            clock: Monotonic time source in seconds (injectable for tests)
        """
        if requests_per_second <= 0:
            raise ValueError("requests_per_second must be positive")
        if burst_capacity < 1:
            raise ValueError("burst_capacity must be at least 1")

        self.requests_per_second = float(requests_per_second)
        self.burst_capacity = burst_capacity
        self._clock = clock
        self._tokens = float(burst_capacity)
        self._last_refill = clock()
        self._waiters: deque[asyncio.Future[None]] = deque()
        self._timer: asyncio.TimerHandle | None = None

    @classmethod
    def from_config(cls, config) -> "RateLimiter":
        return cls(config.requests_per_second, config.burst)

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._last_refill)
        self._last_refill = now
        self._tokens = min(
            float(self.burst_capacity), self._tokens + elapsed * self.requests_per_second
        )

    def _take(self) -> bool:
        if self._tokens + _EPSILON >= 1.0:
            self._tokens = max(0.0, self._tokens - 1.0)
            return True
        return False

    @property
    def available_tokens(self) -> int:
        """Whole tokens currently available (after refill)."""
        self._refill()
        return math.floor(self._tokens + _EPSILON)

    @property
    def queue_length(self) -> int:
        """Number of callers waiting in ``acquire()``."""
        return sum(1 for waiter in self._waiters if not waiter.done())

    def get_available_tokens(self) -> int:
        return self.available_tokens

    def get_queue_length(self) -> int:
        return self.queue_length

    def try_acquire(self) -> bool:
        """Take a token without waiting.

        Returns:
            True if a token was taken, False when the bucket is empty
        """
        self._refill()
        return self._take()

    async def acquire(self) -> None:
        """Take a token, waiting in arrival order if none is available."""
        self._refill()
        if not self._waiters and self._take():
            return

        loop = asyncio.get_running_loop()
        waiter: asyncio.Future[None] = loop.create_future()
        self._waiters.append(waiter)
        self._schedule(loop)

        try:
            await waiter
        except asyncio.CancelledError:
            if waiter in self._waiters:
                self._waiters.remove(waiter)
            raise

    def _schedule(self, loop: asyncio.AbstractEventLoop) -> None:
        if self._timer is not None:
            return
        missing = max(0.0, 1.0 - self._tokens)
        delay = missing / self.requests_per_second
        self._timer = loop.call_later(delay, self._drain)

    def _drain(self) -> None:
        self._timer = None
        self._refill()

        while self._waiters:
            waiter = self._waiters[0]
            if waiter.done():
                self._waiters.popleft()
                continue
            if not self._take():
                break
            self._waiters.popleft()
            waiter.set_result(None)

        if self._waiters:
            self._schedule(asyncio.get_running_loop())

    def reset(self) -> None:
        """Refill to burst capacity and release every waiting caller."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

        released = 0
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(None)
                released += 1

        self._tokens = float(self.burst_capacity)
        self._last_refill = self._clock()
        if released:
            logger.debug(f"Rate limiter reset released {released} waiting request(s)")
