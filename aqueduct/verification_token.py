"""One-time handoff of the Notion subscription verification token.

The webhook receiver stores the token when Notion sends the verification
handshake; an admin retrieves it exactly once through the admin endpoint.

Two keys:
- the token itself, 10 minute TTL
- a "used" marker, 10 minute TTL, set in the same transaction that deletes
  the token. SET NX on the marker means only one racing consumer wins.

Without Redis, store() is a no-op and consume() returns None.
"""

from __future__ import annotations

import logging

import redis

from aqueduct.redis_client import get_redis

logger = logging.getLogger(__name__)

TOKEN_KEY = "aqueduct:notion:verification_token"
USED_KEY = "aqueduct:notion:verification_token_used"
TOKEN_TTL_SECONDS = 10 * 60


class VerificationTokenChannel:
    """store()/consume() over a Redis client (None disables the channel)."""

    def __init__(self, client: redis.Redis | None):
        self._redis = client

    def store(self, token: str) -> None:
        if self._redis is None:
            return
        try:
            self._redis.set(TOKEN_KEY, token, ex=TOKEN_TTL_SECONDS)
            self._redis.delete(USED_KEY)
        except redis.RedisError:
            logger.warning("Failed to store verification token", exc_info=True)

    def consume(self) -> str | None:
        """Return the token once, then None until the next store()."""
        if self._redis is None:
            return None
        try:
            if self._redis.get(USED_KEY):
                return None
            token = self._redis.get(TOKEN_KEY)
            if not token:
                return None

            pipe = self._redis.pipeline(transaction=True)
            pipe.set(USED_KEY, "1", nx=True, ex=TOKEN_TTL_SECONDS)
            pipe.delete(TOKEN_KEY)
            won, _ = pipe.execute()
            if not won:
                return None
            return token
        except redis.RedisError:
            logger.warning("Verification token store unavailable", exc_info=True)
            return None


def get_token_channel() -> VerificationTokenChannel:
    return VerificationTokenChannel(get_redis())
