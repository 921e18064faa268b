"""
Outbound rate limiter.

A process-local token bucket gating every request the fetcher issues.
Callers await ``wait_for_slot()`` before touching the network.
"""

import asyncio
import time

import structlog

logger = structlog.get_logger()


class RateLimiter:
    """
    Token bucket limiter for outbound HTTP.

    - rate: tokens added per second
    - burst: bucket capacity (max requests fired back-to-back)
    """

    def __init__(self, rate: float = 5.0, burst: int | None = None):
        if rate <= 0:
            raise ValueError("rate must be positive")
        self.rate = rate
        self.burst = burst or max(1, int(rate))
        self._tokens = float(self.burst)
        self._updated = time.monotonic()
        self._lock = asyncio.Lock()
        self.log = logger.bind(component="RateLimiter")

    def _refill(self) -> None:
        now = time.monotonic()
        elapsed = now - self._updated
        self._tokens = min(self.burst, self._tokens + elapsed * self.rate)
        self._updated = now

    async def wait_for_slot(self) -> None:
        """Block until a request may be sent."""
        async with self._lock:
            self._refill()
            if self._tokens < 1:
                delay = (1 - self._tokens) / self.rate
                self.log.debug("Rate limit reached, waiting", delay=round(delay, 3))
                await asyncio.sleep(delay)
                self._refill()
            self._tokens -= 1
