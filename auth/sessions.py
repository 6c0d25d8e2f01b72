"""
auth/sessions.py -- Redis-backed session records.

One key per identity: session:<identity> -> the token most recently issued to
that identity. A new login overwrites the value (last writer wins), which
silently retires whatever token was there before. Logout deletes the key.

Expiry is Redis's job: every write sets EX ttl and Redis evicts the key on its
own. Nothing here polls or sweeps.

Usage:
    sessions = SessionStore(redis_client)
    await sessions.set("42", token)
    current = await sessions.get("42")   # str or None
    await sessions.delete("42")          # idempotent

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from redis.asyncio import Redis

from auth.tokens import DEFAULT_TTL_SECONDS

SESSION_KEY_PREFIX = "session:"


def session_key(identity: str) -> str:
    return f"{SESSION_KEY_PREFIX}{identity}"


class SessionStore:
    """Expiring identity -> token map.

    The Redis client must be created with decode_responses=True so get()
    returns str, matching what TokenIssuer.issue() produced.
    """

    def __init__(self, redis: Redis, ttl_seconds: int = DEFAULT_TTL_SECONDS) -> None:
        self._redis = redis
        self.ttl_seconds = ttl_seconds

    async def set(self, identity: str, token: str, ttl_seconds: int | None = None) -> None:
        """Store token as the current session for identity, replacing any previous one."""
        await self._redis.set(session_key(identity), token, ex=ttl_seconds or self.ttl_seconds)

    async def get(self, identity: str) -> str | None:
        """Return the live token for identity, or None if absent or expired."""
        return await self._redis.get(session_key(identity))

    async def delete(self, identity: str) -> bool:
        """Remove the session. Returns True if one existed; a missing key is not an error."""
        removed = await self._redis.delete(session_key(identity))
        return removed > 0

    async def ping(self) -> None:
        await self._redis.ping()
