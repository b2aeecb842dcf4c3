"""Revoked access tokens, keyed by the token's ``jti`` claim.

Logout adds the jti here until the token would have expired anyway;
``require_user`` rejects any token whose jti is listed. Redis is used when
REDIS_URL is set so every API instance sees the same revocations.
"""

from __future__ import annotations

import time
from typing import Protocol, runtime_checkable

from marketplace.core.metrics import TOKEN_BLACKLIST_CHECKS
from marketplace.db.redis import redis_pool


@runtime_checkable
class TokenBlacklist(Protocol):
    async def revoke(self, jti: str, expires_at: float) -> None:
        """Blacklist a jti until ``expires_at`` (Unix seconds)."""
        ...

    async def is_revoked(self, jti: str) -> bool: ...


class InMemoryTokenBlacklist:
    """Per-process blacklist for tests and local dev."""

    def __init__(self) -> None:
        # jti -> expiry timestamp (Unix seconds)
        self._revoked: dict[str, float] = {}

    async def revoke(self, jti: str, expires_at: float) -> None:
        self._revoked[jti] = expires_at

    async def is_revoked(self, jti: str) -> bool:
        exp = self._revoked.get(jti)
        if exp is not None and exp < time.time():
            # expired tokens fail signature checks anyway
            del self._revoked[jti]
            exp = None
        revoked = exp is not None
        TOKEN_BLACKLIST_CHECKS.labels(result="revoked" if revoked else "valid").inc()
        return revoked


class RedisTokenBlacklist:
    _PREFIX = "marketplace:revoked-jti:"

    def __init__(self, redis_client) -> None:
        self._redis = redis_client

    async def revoke(self, jti: str, expires_at: float) -> None:
        ttl_seconds = int(expires_at - time.time())
        if ttl_seconds <= 0:
            return
        # SETEX stores value and TTL atomically.
        await self._redis.setex(f"{self._PREFIX}{jti}", ttl_seconds, "1")

    async def is_revoked(self, jti: str) -> bool:
        revoked = bool(await self._redis.exists(f"{self._PREFIX}{jti}"))
        TOKEN_BLACKLIST_CHECKS.labels(result="revoked" if revoked else "valid").inc()
        return revoked


if redis_pool is not None:
    token_blacklist: TokenBlacklist = RedisTokenBlacklist(redis_pool)
else:
    token_blacklist = InMemoryTokenBlacklist()
