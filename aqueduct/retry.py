"""Exponential backoff with jitter for Notion API calls.

Retries UpstreamError on transient statuses (429, 500, 502, 503, 504) and on
transport failures (status 0). Respects Retry-After. Logs each retry attempt.
"""

from __future__ import annotations

import functools
import logging
import random
import time
from typing import Any, Callable

from aqueduct.errors import UpstreamError

logger = logging.getLogger(__name__)

# Status 0 marks a transport failure (connect/read error)
RETRYABLE_STATUS_CODES = {0, 429, 500, 502, 503, 504}


def retry_upstream(
    max_retries: int | Callable[[], int] = 2,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    jitter: float = 0.3,
    sleep: Callable[[float], None] | None = None,
) -> Callable:
    """Decorator: retry a function raising UpstreamError with backoff + jitter.

    Args:
        max_retries: Maximum retry attempts, or a callable read on every call.
        base_delay: Initial delay in seconds.
        max_delay: Maximum delay cap in seconds.
        jitter: Jitter factor (0.0-1.0).
        sleep: Sleep function; defaults to time.sleep looked up at call time.
    """

    def decorator(fn: Callable) -> Callable:
        @functools.wraps(fn)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            retries = max_retries() if callable(max_retries) else max_retries
            do_sleep = sleep or time.sleep
            for attempt in range(retries + 1):
                try:
                    return fn(*args, **kwargs)
                except UpstreamError as e:
                    if e.status not in RETRYABLE_STATUS_CODES or attempt == retries:
                        raise
                    delay = compute_delay(attempt, base_delay, max_delay, jitter, e.retry_after)
                    logger.warning(
                        "Retry %d/%d for %s (HTTP %d), waiting %.1fs",
                        attempt + 1,
                        retries,
                        fn.__name__,
                        e.status,
                        delay,
                    )
                    do_sleep(delay)

        return wrapper

    return decorator


def compute_delay(
    attempt: int,
    base_delay: float,
    max_delay: float,
    jitter: float,
    retry_after: str | None = None,
) -> float:
    """Compute delay with exponential backoff + jitter, respecting Retry-After."""
    if retry_after:
        try:
            return min(float(retry_after), max_delay)
        except ValueError:
            pass

    delay = min(base_delay * (2**attempt), max_delay)
    jitter_amount = delay * jitter
    delay += random.uniform(-jitter_amount, jitter_amount)
    return max(0.1, delay)
