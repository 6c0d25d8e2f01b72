"""
auth/service.py -- Register / login / logout / authorize orchestration.

AuthService is the only place that combines the policy validator, hasher,
user store, token issuer and session store. Routes and the Access Guard call
one method each and let AuthError subclasses propagate to the API handlers.

State lives in the session store, not here: a token is honoured only while
session:<identity> holds exactly that token. Login overwrites the record
(older tokens stop working), logout deletes it, Redis expires it.

Error policy:
  Validation, policy, credential and token failures are raised directly with
  client-safe messages.
  Anything else that escapes a backend call (database down, Redis timeout,
  bcrypt failure) is logged with the operation and username and re-raised as
  StoreUnavailable. Raw passwords and tokens are never logged.

Timing:
  An unknown username still costs one bcrypt comparison (verify_dummy), so
  response time does not reveal which usernames exist.
"""

from __future__ import annotations

import hmac
import logging
from collections.abc import Iterator
from contextlib import contextmanager

from auth.errors import (
    AuthenticationFailed,
    AuthError,
    InvalidInput,
    InvalidSignature,
    MissingCredentials,
    SessionInvalid,
    StoreUnavailable,
    TokenExpired,
    UsernameTaken,
    WeakPassword,
)
from auth.hashing import MAX_PASSWORD_BYTES, PasswordHasher
from auth.models import LoginResult, TokenClaims, User
from auth.policy import describe_violations, validate_password
from auth.sessions import SessionStore
from auth.store import UserStore
from auth.tokens import TokenIssuer

logger = logging.getLogger("authority.auth.service")

MAX_USERNAME_LENGTH = 255


class AuthService:
    """Credential and session state machine.

    All collaborators are injected; the app lifespan builds one instance and
    shares it across requests.
    """

    def __init__(
        self,
        users: UserStore,
        sessions: SessionStore,
        tokens: TokenIssuer,
        hasher: PasswordHasher,
    ) -> None:
        self.users = users
        self.sessions = sessions
        self.tokens = tokens
        self.hasher = hasher

    # ------------------------------------------------------------------
    # Register
    # ------------------------------------------------------------------

    async def register(self, username: str, password: str) -> User:
        """Create a new account. No token is issued.

        Raises InvalidInput, WeakPassword, UsernameTaken, or StoreUnavailable.
        """
        username = _check_shape(username, password, operation="Registration")

        failed_rules = validate_password(password)
        if failed_rules:
            messages = describe_violations(failed_rules)
            logger.warning(
                "Password complexity validation failed for username %s: %s",
                username,
                " ".join(messages),
            )
            raise WeakPassword(failed_rules, details=messages)

        with _backend("register", username):
            existing = await self.users.get_by_username(username)
            if existing is not None:
                logger.warning("Attempt to register with an existing username: %s", username)
                raise UsernameTaken()
            # The store enforces uniqueness again atomically; a concurrent
            # registration that slipped past the check above still fails here.
            user = await self.users.create(username, password)

        logger.info("User registered successfully: %s", username)
        return user

    # ------------------------------------------------------------------
    # Login
    # ------------------------------------------------------------------

    async def login(self, username: str, password: str) -> LoginResult:
        """Verify credentials, issue a token, and make it the identity's current session.

        Raises InvalidInput, AuthenticationFailed, or StoreUnavailable.
        """
        username = _check_shape(username, password, operation="Login")

        with _backend("login", username):
            user = await self.users.get_by_username(username)
            if user is None:
                await self.hasher.verify_dummy(password)
                logger.warning("Login attempt for non-existent username: %s", username)
                raise AuthenticationFailed()

            if not await self.hasher.verify(password, user.password_hash):
                logger.warning("Invalid password attempt for username: %s", username)
                raise AuthenticationFailed()

            token = self.tokens.issue(user.identity, user.username)
            # Overwrites any previous session for this identity.
            await self.sessions.set(user.identity, token, self.tokens.ttl_seconds)

        logger.info("User logged in successfully: %s", username)
        return LoginResult(token=token, claims=self.tokens.verify(token))

    # ------------------------------------------------------------------
    # Logout
    # ------------------------------------------------------------------

    async def logout(self, token: str) -> TokenClaims:
        """Delete the session named by the token's identity. Idempotent.

        Only the signature and expiry are checked; logging out with a token that
        a newer login already superseded still clears the current session.

        Raises MissingCredentials, InvalidToken, or StoreUnavailable.
        """
        claims = self._verify(token, operation="Logout")
        with _backend("logout", claims.username):
            existed = await self.sessions.delete(claims.identity)
        if not existed:
            logger.info("Logout for %s found no active session", claims.username)
        logger.info("User logged out successfully: %s", claims.username)
        return claims

    # ------------------------------------------------------------------
    # Authorize (Access Guard)
    # ------------------------------------------------------------------

    async def authorize(self, token: str) -> TokenClaims:
        """Return the token's claims if it is authentic AND still the live session.

        Read-only: never touches the session record.

        Raises MissingCredentials, InvalidToken, SessionInvalid, or StoreUnavailable.
        """
        claims = self._verify(token, operation="Access")
        with _backend("authorize", claims.username):
            current = await self.sessions.get(claims.identity)
        if current is None or not hmac.compare_digest(current.encode("utf-8"), token.encode("utf-8")):
            logger.warning("Session token mismatch or expired for identity %s", claims.identity)
            raise SessionInvalid()
        return claims

    def _verify(self, token: str, operation: str) -> TokenClaims:
        if not token:
            logger.warning("%s attempt with missing or invalid authorization header", operation)
            raise MissingCredentials()
        try:
            return self.tokens.verify(token)
        except TokenExpired:
            logger.warning("%s rejected: token expired", operation)
            raise
        except InvalidSignature:
            logger.warning("%s rejected: token failed signature verification", operation)
            raise


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _check_shape(username: object, password: object, operation: str) -> str:
    """Presence/type checks shared by register and login. Returns the trimmed username.

    Surrounding whitespace is not part of a username: " alice " registers and
    logs in as "alice".
    """
    details: list[str] = []
    if not isinstance(username, str):
        details.append("Username must be a string")
    elif not username.strip():
        details.append("Username is required")
    elif len(username.strip()) > MAX_USERNAME_LENGTH:
        details.append(f"Username must be at most {MAX_USERNAME_LENGTH} characters")

    if not isinstance(password, str):
        details.append("Password must be a string")
    elif not password.strip():
        details.append("Password is required")
    elif len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        details.append(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")

    if details:
        logger.warning("%s validation failed: %s", operation, "; ".join(details))
        raise InvalidInput(details=details)
    return username.strip()


@contextmanager
def _backend(operation: str, username: str) -> Iterator[None]:
    """Translate unexpected backend failures into StoreUnavailable.

    AuthError subclasses pass through untouched; they are outcomes, not faults.
    """
    try:
        yield
    except AuthError:
        raise
    except Exception as exc:
        logger.error("%s error for username %s: %r", operation.capitalize(), username, exc)
        raise StoreUnavailable() from exc
