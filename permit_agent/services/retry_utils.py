"""
Retry Utilities for Permit Agent.

Exponential backoff retry logic for HTTP requests and other transient
operations. Errors flagged ``is_retryable=False`` abort immediately.
"""

import asyncio
import contextlib
import random
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import httpx
import structlog

from permit_agent.core.errors import FetchError

logger = structlog.get_logger()

T = TypeVar("T")

# Exceptions that should trigger a retry
RETRYABLE_EXCEPTIONS = (
    httpx.TimeoutException,
    httpx.NetworkError,
    httpx.RemoteProtocolError,
    FetchError,
)

# HTTP status codes that warrant a retry
STATUS_REQUEST_TIMEOUT = 408
STATUS_TOO_MANY_REQUESTS = 429
STATUS_INTERNAL_SERVER_ERROR = 500
STATUS_BAD_GATEWAY = 502
STATUS_SERVICE_UNAVAILABLE = 503
STATUS_GATEWAY_TIMEOUT = 504

RETRYABLE_STATUS_CODES = {
    STATUS_REQUEST_TIMEOUT,
    STATUS_TOO_MANY_REQUESTS,
    STATUS_INTERNAL_SERVER_ERROR,
    STATUS_BAD_GATEWAY,
    STATUS_SERVICE_UNAVAILABLE,
    STATUS_GATEWAY_TIMEOUT,
}


def is_retryable(error: BaseException) -> bool:
    """Honour an explicit ``is_retryable`` flag, else retry transport errors."""
    flag = getattr(error, "is_retryable", None)
    if flag is not None:
        return bool(flag)
    return isinstance(error, RETRYABLE_EXCEPTIONS)


def backoff_delay(
    attempt: int,
    backoff_base: float,
    backoff_max: float,
    jitter: float,
) -> float:
    """Delay before the next attempt: base * 2^(attempt-1), capped, ±jitter."""
    delay = min(backoff_base * (2 ** (attempt - 1)), backoff_max)
    return delay * (1 + random.uniform(-jitter, jitter))


async def with_retries(
    func: Callable[..., Awaitable[T]],
    *args: Any,
    max_attempts: int = 3,
    backoff_base: float = 1.0,
    backoff_max: float = 30.0,
    jitter: float = 0.1,
    **kwargs: Any,
) -> T:
    """
    Execute an async function with exponential backoff retries.

    Args:
        func: Async function to call
        *args: Positional arguments for func
        max_attempts: Maximum number of attempts (default: 3)
        backoff_base: Base delay in seconds (default: 1.0)
        backoff_max: Maximum delay in seconds (default: 30.0)
        jitter: Random jitter factor (0.1 = ±10%)
        **kwargs: Keyword arguments for func

    Returns:
        Result from successful function call

    Raises:
        The first non-retryable exception, or the last one once all
        attempts are used up
    """
    log = logger.bind(func=getattr(func, "__name__", "call"), max_attempts=max_attempts)

    for attempt in range(1, max_attempts + 1):
        try:
            result = await func(*args, **kwargs)

            if isinstance(result, httpx.Response) and result.status_code in RETRYABLE_STATUS_CODES:
                retry_after = None
                if result.status_code == STATUS_TOO_MANY_REQUESTS:
                    retry_after_header = result.headers.get("retry-after")
                    if retry_after_header:
                        with contextlib.suppress(ValueError):
                            retry_after = min(float(retry_after_header), backoff_max)

                if attempt < max_attempts:
                    delay = retry_after or backoff_delay(attempt, backoff_base, backoff_max, jitter)
                    log.warning(
                        "Retrying due to HTTP status",
                        status=result.status_code,
                        attempt=attempt,
                        delay=round(delay, 2),
                    )
                    await asyncio.sleep(delay)
                    continue

            return result

        except Exception as e:
            if not is_retryable(e):
                log.debug("Non-retryable error", error=str(e), attempt=attempt)
                raise

            if attempt >= max_attempts:
                log.warning("All retry attempts failed", error=str(e), attempts=max_attempts)
                raise

            delay = backoff_delay(attempt, backoff_base, backoff_max, jitter)
            log.debug("Retry after exception", error=str(e), attempt=attempt, delay=round(delay, 2))
            await asyncio.sleep(delay)

    raise RuntimeError("Unexpected retry loop exit")
