"""Token bucket rate limiter for outbound request throttling."""

import asyncio
import time
from typing import Awaitable, Callable, Optional

from loguru import logger


class TokenBucket:
    """
    Token bucket algorithm implementation for rate limiting.

    Tokens refill continuously at a fixed rate. Requests consume tokens.
    If insufficient tokens are available, the caller must wait.

    Attributes:
        capacity: Maximum number of tokens the bucket can hold
        refill_rate: Tokens added per second
        tokens: Current number of tokens available
        last_refill: Clock reading at last token refill
    """

    def __init__(
        self,
        capacity: int,
        refill_rate: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize token bucket with capacity and refill rate.

        Args:
            capacity: Maximum tokens (burst size)
            refill_rate: Tokens per second (e.g., 1.0 = one request per second)
            clock: Monotonic clock, injectable for tests
        """
        self.capacity = capacity
        self.refill_rate = refill_rate
        self._clock = clock
        self.tokens = float(capacity)
        self.last_refill = clock()

        logger.debug(
            f"TokenBucket initialized: capacity={capacity}, "
            f"refill_rate={refill_rate}/s"
        )

    def _refill(self) -> None:
        """Refill tokens based on time elapsed since last refill."""
        now = self._clock()
        elapsed = now - self.last_refill

        tokens_to_add = elapsed * self.refill_rate
        self.tokens = min(self.capacity, self.tokens + tokens_to_add)
        self.last_refill = now

    def try_acquire(self, tokens: int = 1) -> bool:
        """
        Attempt to acquire tokens from the bucket without waiting.

        Args:
            tokens: Number of tokens to acquire

        Returns:
            True if tokens were acquired, False if insufficient tokens available
        """
        self._refill()

        if self.tokens >= tokens:
            self.tokens -= tokens
            return True
        return False

    def time_until_available(self, tokens: int = 1) -> float:
        """Seconds until ``tokens`` can be acquired."""
        self._refill()
        missing = tokens - self.tokens
        if missing <= 0:
            return 0.0
        return missing / self.refill_rate


class RateLimiter:
    """
    Async throttle spacing calls at least ``interval_seconds`` apart.

    Used by the citation service so bulk verification never hammers a council
    web server. An interval of zero disables waiting entirely, which is what
    tests inject.

    Usage:
        limiter = RateLimiter(interval_seconds=1.0)
        for url in urls:
            await limiter.acquire()
            await verify(url)
    """

    def __init__(
        self,
        interval_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize rate limiter.

        Args:
            interval_seconds: Minimum spacing between calls (defaults to settings)
            clock: Monotonic clock, injectable for tests
            sleep: Async sleep function, injectable for tests
        """
        if interval_seconds is None:
            from civic_pipeline.config.settings import settings
            interval_seconds = settings.verification_interval_seconds

        self.interval_seconds = interval_seconds
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self.bucket: Optional[TokenBucket] = None

        if interval_seconds > 0:
            self.bucket = TokenBucket(
                capacity=1,
                refill_rate=1.0 / interval_seconds,
                clock=clock,
            )

        logger.info(f"RateLimiter initialized: one call per {interval_seconds}s")

    async def acquire(self) -> float:
        """
        Wait until the next call is allowed.

        Returns:
            Total seconds spent waiting
        """
        if self.bucket is None:
            return 0.0

        waited = 0.0
        async with self._lock:
            while not self.bucket.try_acquire():
                delay = self.bucket.time_until_available()
                waited += delay
                await self._sleep(delay)
        return waited
