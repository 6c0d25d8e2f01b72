"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, near-zero logic). Stores build these
records; the service and routes read them.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass
class User:
    """A registered account.

    id is assigned by the relational store and is None for users kept in the
    key-value store, where the username itself is the key.

    password_hash is always a bcrypt hash. Stores hash on create(); nothing
    outside a store ever sees or passes a raw password to persistence.
    """

    username: str
    password_hash: str
    id: int | None = None
    created_at: str | None = None

    @property
    def identity(self) -> str:
        """Normalized identity used for session keys and the token subject.

        Numeric id when the store assigns one, otherwise the username. Only one
        store variant is active per process, so the two forms never mix.
        """
        return str(self.id) if self.id is not None else self.username


@dataclass(frozen=True)
class TokenClaims:
    """Verified contents of a bearer token."""

    identity: str
    username: str
    issued_at: datetime
    expires_at: datetime


@dataclass(frozen=True)
class LoginResult:
    """Outcome of a successful login: the raw token plus its decoded claims."""

    token: str
    claims: TokenClaims
