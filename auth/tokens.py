"""
auth/tokens.py -- JWT issue and verify.

Security design decisions:
  python-jose with HS256. Tokens are signed with JWT_SECRET and carry the
  normalized identity (sub), username, issue time and expiry. A token is only
  half the story: AuthService also requires a matching live session, so a
  token can be revoked before exp by deleting or overwriting its session.

  verify() raises instead of returning None so callers can tell a forged or
  malformed token (InvalidSignature) from an honest one that aged out
  (TokenExpired). Both are InvalidToken to the client; the split is for logs.

  The secret is passed in by whoever builds the TokenIssuer (the app lifespan),
  never read from module globals, so tests can run several issuers side by side.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import secrets
from datetime import datetime, timedelta, timezone

from jose import ExpiredSignatureError, JWTError, jwt

from auth.errors import InvalidSignature, TokenExpired
from auth.models import TokenClaims

_ALGORITHM = "HS256"

DEFAULT_TTL_SECONDS = 3600


class TokenIssuer:
    """Creates and verifies signed, time-limited bearer tokens."""

    def __init__(self, secret: str, ttl_seconds: int = DEFAULT_TTL_SECONDS) -> None:
        if not secret:
            raise ValueError("A non-empty signing secret is required.")
        self._secret = secret
        self.ttl_seconds = ttl_seconds

    def issue(self, identity: str, username: str, now: datetime | None = None) -> str:
        """Encode a signed JWT for the given identity, expiring ttl_seconds from now.

        Args:
            identity: Normalized user identity (numeric id as str, or username).
            username: Username, carried for display and logging downstream.
            now:      Issue time override; tests use it to mint expired tokens.
        """
        issued_at = now or datetime.now(timezone.utc)
        payload = {
            "sub": identity,
            "username": username,
            "iat": int(issued_at.timestamp()),
            "exp": int((issued_at + timedelta(seconds=self.ttl_seconds)).timestamp()),
            # iat has one-second resolution; jti keeps two logins in the same
            # second from minting byte-identical tokens.
            "jti": secrets.token_hex(16),
        }
        return jwt.encode(payload, self._secret, algorithm=_ALGORITHM)

    def verify(self, token: str) -> TokenClaims:
        """Decode and verify a JWT.

        Raises:
            TokenExpired:     signature is good but exp is in the past.
            InvalidSignature: anything else -- bad signature, wrong algorithm,
                              malformed token, or missing identity claims.
        """
        try:
            payload = jwt.decode(token, self._secret, algorithms=[_ALGORITHM])
        except ExpiredSignatureError as exc:
            raise TokenExpired() from exc
        except JWTError as exc:
            raise InvalidSignature() from exc

        identity = payload.get("sub")
        username = payload.get("username")
        if not isinstance(identity, str) or not identity or not isinstance(username, str) or not username:
            raise InvalidSignature()
        return TokenClaims(
            identity=identity,
            username=username,
            issued_at=_from_timestamp(payload.get("iat")),
            expires_at=_from_timestamp(payload.get("exp")),
        )


def _from_timestamp(value) -> datetime:
    if not isinstance(value, (int, float)):
        raise InvalidSignature()
    return datetime.fromtimestamp(value, tz=timezone.utc)
