"""
auth/hashing.py -- bcrypt password hashing.

Using bcrypt directly rather than passlib[bcrypt]: passlib's wrap-bug
detection feeds bcrypt 4.x+ a password longer than 72 bytes, which it rejects
with an explicit error.

bcrypt is deliberately CPU-heavy. The async methods push the work onto a
worker thread with asyncio.to_thread so one login does not stall every other
request on the event loop. The *_sync variants exist for startup code and
tests that are not running inside a loop.

Timing equalization: verify_dummy() runs a full bcrypt comparison against a
hash made once per hasher. AuthService calls it when the username does not
exist, so "no such user" costs the same as "wrong password".
"""

from __future__ import annotations

import asyncio
import logging

import bcrypt

logger = logging.getLogger("authority.auth.hashing")

DEFAULT_ROUNDS = 10

# bcrypt only looks at the first 72 bytes, and bcrypt>=5 raises on longer input.
MAX_PASSWORD_BYTES = 72


class PasswordHasher:
    """Salted one-way hashing with a fixed work factor.

    Usage:
        hasher = PasswordHasher()
        hashed = await hasher.hash("Passw0rd1")
        ok = await hasher.verify("Passw0rd1", hashed)
    """

    def __init__(self, rounds: int = DEFAULT_ROUNDS) -> None:
        self.rounds = rounds
        # Computed up front so the first unknown-user login is not slower
        # than later ones.
        self._dummy_hash = self.hash_sync("authority_timing_dummy")

    def hash_sync(self, plain: str) -> str:
        """Return a bcrypt hash of the given plaintext password."""
        salt = bcrypt.gensalt(rounds=self.rounds)
        return bcrypt.hashpw(plain.encode("utf-8"), salt).decode("utf-8")

    def verify_sync(self, plain: str, hashed: str) -> bool:
        """Return True if the plaintext password matches the bcrypt hash.

        checkpw compares in constant time. A malformed stored hash or an
        oversized candidate is a mismatch, not an error.
        """
        try:
            return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
        except ValueError:
            logger.warning("bcrypt rejected a hash comparison input")
            return False

    async def hash(self, plain: str) -> str:
        return await asyncio.to_thread(self.hash_sync, plain)

    async def verify(self, plain: str, hashed: str) -> bool:
        return await asyncio.to_thread(self.verify_sync, plain, hashed)

    async def verify_dummy(self, plain: str) -> None:
        """Burn one bcrypt comparison's worth of time. The result is discarded."""
        await self.verify(plain, self._dummy_hash)
