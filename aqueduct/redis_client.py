"""Shared Redis connection for rate-limit counters and the verification token.

Redis is optional. When ``REDIS_URL`` is unset, ``get_redis()`` returns None
and callers fall back to their no-op behavior (fail-open).
"""

from __future__ import annotations

import logging

import redis

from aqueduct.config import settings

logger = logging.getLogger(__name__)

_redis_client: redis.Redis | None = None


def get_redis() -> redis.Redis | None:
    """Get or create the singleton Redis client, or None if not configured."""
    global _redis_client
    if not settings.redis_url:
        return None
    if _redis_client is None:
        _redis_client = redis.from_url(
            settings.redis_url,
            password=settings.redis_token or None,
            decode_responses=True,
        )
    return _redis_client


def check_redis() -> bool:
    """Ping Redis. False when unconfigured or unreachable."""
    client = get_redis()
    if client is None:
        return False
    try:
        return bool(client.ping())
    except redis.RedisError:
        logger.warning("Redis ping failed", exc_info=True)
        return False
