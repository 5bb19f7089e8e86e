"""Blocking fixed-window rate limiter over shared Redis counters.

Every outbound call acquires a slot on a named channel first:

- ``notion``   -- AQUEDUCT_NOTION_RPS requests per 1s window (default 3)
- ``external`` -- AQUEDUCT_EXTERNAL_RPM requests per 60s window (default 60)

``acquire()`` never fails for transient limiting. On denial it sleeps until
the window resets (at least 250ms) and asks again. Without Redis the limiter
is a no-op, and a Redis error lets the call through (fail-open).
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Protocol

import redis

from aqueduct.config import settings
from aqueduct.redis_client import get_redis

logger = logging.getLogger(__name__)

NOTION_CHANNEL = "notion"
EXTERNAL_CHANNEL = "external"

_KEY_PREFIX = "aqueduct:rl"
_GLOBAL_KEY = "global"
MIN_WAIT_MS = 250


@dataclass(frozen=True)
class ChannelQuota:
    """Requests allowed per fixed window."""

    limit: int
    window_ms: int


@dataclass(frozen=True)
class LimitDecision:
    """Result of one counter check."""

    granted: bool
    reset_at_ms: int | None = None
    remaining: int | None = None


class CounterBackend(Protocol):
    def try_acquire(self, channel: str, key: str, quota: ChannelQuota) -> LimitDecision:
        ...


def _now_ms() -> int:
    return int(time.time() * 1000)


class RedisFixedWindowCounter:
    """Fixed-window counter: one Redis key per (channel, key, window index)."""

    def __init__(self, client: redis.Redis, clock_ms: Callable[[], int] = _now_ms):
        self._redis = client
        self._clock_ms = clock_ms

    def try_acquire(self, channel: str, key: str, quota: ChannelQuota) -> LimitDecision:
        now = self._clock_ms()
        window = now // quota.window_ms
        redis_key = f"{_KEY_PREFIX}:{channel}:{key}:{window}"

        pipe = self._redis.pipeline()
        pipe.incr(redis_key)
        pipe.pexpire(redis_key, quota.window_ms)
        count, _ = pipe.execute()

        return LimitDecision(
            granted=int(count) <= quota.limit,
            reset_at_ms=(window + 1) * quota.window_ms,
            remaining=max(0, quota.limit - int(count)),
        )


def default_quotas() -> dict[str, ChannelQuota]:
    """Per-channel quotas from settings."""
    return {
        NOTION_CHANNEL: ChannelQuota(limit=settings.aqueduct_notion_rps, window_ms=1_000),
        EXTERNAL_CHANNEL: ChannelQuota(limit=settings.aqueduct_external_rpm, window_ms=60_000),
    }


class RateLimiter:
    """Acquire-or-wait over a counter backend. ``backend=None`` disables limiting."""

    def __init__(
        self,
        backend: CounterBackend | None,
        quotas: dict[str, ChannelQuota] | None = None,
        *,
        clock_ms: Callable[[], int] = _now_ms,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._backend = backend
        self._quotas = quotas if quotas is not None else default_quotas()
        self._clock_ms = clock_ms
        self._sleep = sleep

    @property
    def enabled(self) -> bool:
        return self._backend is not None

    def acquire(self, channel: str, key: str = _GLOBAL_KEY) -> None:
        """Block until ``channel`` has quota."""
        quota = self._quotas.get(channel)
        if quota is None:
            raise ValueError(f"Unknown rate-limit channel: {channel}")
        if self._backend is None:
            return

        while True:
            try:
                decision = self._backend.try_acquire(channel, key, quota)
            except redis.RedisError:
                logger.warning(
                    "Rate-limit backend unavailable for %s -- allowing call",
                    channel,
                    exc_info=True,
                )
                return
            if decision.granted:
                return

            now = self._clock_ms()
            reset_at = decision.reset_at_ms if decision.reset_at_ms is not None else now + 1000
            wait_ms = max(MIN_WAIT_MS, reset_at - now)
            logger.debug("Rate limited on %s, waiting %dms", channel, wait_ms)
            self._sleep(wait_ms / 1000)


_limiter: RateLimiter | None = None


def get_rate_limiter() -> RateLimiter:
    """Get or create the process-wide limiter (no-op without Redis)."""
    global _limiter
    if _limiter is None:
        client = get_redis()
        backend = RedisFixedWindowCounter(client) if client is not None else None
        if backend is None:
            logger.info("REDIS_URL not set -- outbound rate limiting disabled")
        _limiter = RateLimiter(backend)
    return _limiter


def throttle(channel: str) -> None:
    """Acquire a slot on ``channel`` with the process-wide limiter."""
    get_rate_limiter().acquire(channel)
