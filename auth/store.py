"""
auth/store.py -- User persistence: the UserStore contract, the relational
implementation, and the startup-time factory that picks a variant.

Pattern: Repository + Data Mapper. SqlUserStore is the repository;
_row_to_user is the mapper. Service and route code never touches SQL.

Two interchangeable stores satisfy UserStore:
  SqlUserStore   (this module)   -- SQLAlchemy Core over an AsyncEngine.
                                    Postgres via asyncpg, SQLite via aiosqlite.
  RedisUserStore (auth/kv_store) -- JSON records under user:<username>.

create_user_store() chooses one from Settings.datastore, once, at startup.
Nothing downstream branches on the variant.

Uniqueness:
  users.username carries a UNIQUE constraint. AuthService still checks for an
  existing user first (cheap, clear error on the common path), but the
  constraint is what actually stops two concurrent registrations of the same
  name. The loser's IntegrityError is mapped to UsernameTaken.

Security:
  All queries use bound parameters. No f-strings in SQL. create() takes the
  raw password and hashes it here, so callers cannot store an unhashed value
  by mistake.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Protocol

from redis.asyncio import Redis
from sqlalchemy import Column, Integer, MetaData, String, Table, Text, event, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from auth.errors import UsernameTaken
from auth.hashing import PasswordHasher
from auth.kv_store import RedisUserStore
from auth.models import User

if TYPE_CHECKING:
    from core.config import Settings

logger = logging.getLogger("authority.auth.store")

# ---------------------------------------------------------------------------
# Contract
# ---------------------------------------------------------------------------


class UserStore(Protocol):
    """Operations the auth core needs from a user backend."""

    async def init(self) -> None:
        """Prepare the backend (create schema). Idempotent."""

    async def get_by_username(self, username: str) -> User | None:
        """Exact, case-sensitive lookup. None if absent."""

    async def create(self, username: str, password: str) -> User:
        """Hash password and persist a new user. Raises UsernameTaken on duplicates."""

    async def ping(self) -> None:
        """Raise if the backend is unreachable."""

    async def close(self) -> None:
        """Release resources owned by the store."""


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(255), nullable=False, unique=True),
    Column("password_hash", Text, nullable=False),
    Column("created_at", String(32), nullable=False),
)


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers do not block during writes (SQLite only).

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.close()


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Relational repository
# ---------------------------------------------------------------------------


class SqlUserStore:
    """Relational UserStore.

    Usage:
        store = SqlUserStore("sqlite+aiosqlite:///./auth.db", PasswordHasher())
        await store.init()
        user = await store.create("alice", "Passw0rd1")
        same = await store.get_by_username("alice")
        await store.close()
    """

    def __init__(self, db_url: str, hasher: PasswordHasher, **engine_options) -> None:
        self._hasher = hasher
        self.engine: AsyncEngine = create_async_engine(db_url, **engine_options)
        if db_url.startswith("sqlite") and ":memory:" not in db_url:
            event.listen(self.engine.sync_engine, "connect", _set_wal_mode)

    async def init(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(_metadata.create_all)

    async def get_by_username(self, username: str) -> User | None:
        async with self.engine.connect() as conn:
            result = await conn.execute(_users.select().where(_users.c.username == username))
            row = result.fetchone()
        return _row_to_user(row) if row is not None else None

    async def create(self, username: str, password: str) -> User:
        """Insert a new user and return it with its assigned database ID.

        Raises UsernameTaken if the UNIQUE constraint rejects the insert.
        """
        password_hash = await self._hasher.hash(password)
        created_at = _now_iso()
        try:
            async with self.engine.begin() as conn:
                result = await conn.execute(
                    _users.insert().values(
                        username=username,
                        password_hash=password_hash,
                        created_at=created_at,
                    )
                )
        except IntegrityError as exc:
            logger.warning("Unique constraint rejected duplicate username: %s", username)
            raise UsernameTaken() from exc
        return User(
            id=result.inserted_primary_key[0],
            username=username,
            password_hash=password_hash,
            created_at=created_at,
        )

    async def count_users(self) -> int:
        async with self.engine.connect() as conn:
            result = await conn.execute(text("SELECT COUNT(*) FROM users"))
            return result.scalar() or 0

    async def ping(self) -> None:
        async with self.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

    async def close(self) -> None:
        await self.engine.dispose()


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        username=row.username,
        password_hash=row.password_hash,
        created_at=row.created_at,
    )


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def create_user_store(settings: Settings, redis: Redis, hasher: PasswordHasher) -> UserStore:
    """Build the user store selected by DATASTORE. Called once during startup."""
    if settings.datastore == "keyvalue":
        logger.info("User store: key-value (redis)")
        return RedisUserStore(redis, hasher)

    url = settings.sqlalchemy_url
    options: dict = {"echo": settings.sql_echo}
    if url.startswith("postgresql"):
        options.update(
            pool_size=settings.pgpool_max,
            max_overflow=0,
            pool_timeout=settings.pgpool_acquire / 1000,
            pool_pre_ping=True,
        )
    logger.info("User store: relational (%s)", url.split("://", 1)[0])
    return SqlUserStore(url, hasher, **options)
