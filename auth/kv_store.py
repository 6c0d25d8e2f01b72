"""
auth/kv_store.py -- Key-value UserStore backed by Redis.

Each user is one JSON value under user:<username>. There is no secondary
index and no numeric id: get_by_username() is a single GET and the username
is the user's identity.

create() writes with SET NX, so of two concurrent registrations for the same
name exactly one succeeds; the other gets UsernameTaken instead of silently
overwriting the first user's password hash.

Records written by earlier deployments stored the hash under "password";
get_by_username() still reads those.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone

from redis.asyncio import Redis

from auth.errors import UsernameTaken
from auth.hashing import PasswordHasher
from auth.models import User

logger = logging.getLogger("authority.auth.kv_store")

USER_KEY_PREFIX = "user:"


def user_key(username: str) -> str:
    return f"{USER_KEY_PREFIX}{username}"


class RedisUserStore:
    """Key-value UserStore. The Redis client is shared with SessionStore and owned by the app."""

    def __init__(self, redis: Redis, hasher: PasswordHasher) -> None:
        self._redis = redis
        self._hasher = hasher

    async def init(self) -> None:
        # Schemaless.
        return None

    async def get_by_username(self, username: str) -> User | None:
        raw = await self._redis.get(user_key(username))
        if raw is None:
            return None
        data = json.loads(raw)
        return User(
            username=data["username"],
            password_hash=data.get("password_hash") or data["password"],
            created_at=data.get("created_at"),
        )

    async def create(self, username: str, password: str) -> User:
        user = User(
            username=username,
            password_hash=await self._hasher.hash(password),
            created_at=datetime.now(timezone.utc).isoformat(),
        )
        record = json.dumps(
            {
                "username": user.username,
                "password_hash": user.password_hash,
                "created_at": user.created_at,
            }
        )
        created = await self._redis.set(user_key(username), record, nx=True)
        if not created:
            logger.warning("SET NX rejected duplicate username: %s", username)
            raise UsernameTaken()
        return user

    async def ping(self) -> None:
        await self._redis.ping()

    async def close(self) -> None:
        # The client belongs to the app lifespan, which closes it once for
        # both this store and SessionStore.
        return None
