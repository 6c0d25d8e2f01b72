"""
auth/errors.py -- Exception taxonomy for the credential and session core.

Every failure the core can report is an AuthError subclass carrying a stable
machine-readable code, the HTTP status the API layer should use, and a
client-safe message. api/main.py registers one handler for the whole family,
so route code never builds error responses by hand.

StoreUnavailable is the only 5xx member. Its message is deliberately generic;
the underlying exception is chained (raise ... from exc) for the logs only.

Layer rule: no imports from api/ or core/. Pure Python.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for all errors raised by the auth core."""

    code: str = "auth_error"
    status_code: int = 400
    message: str = "Authentication error."

    def __init__(self, message: str | None = None, details: list[str] | None = None) -> None:
        self.message = message or self.message
        self.details = list(details) if details else []
        super().__init__(self.message)


# ---------------------------------------------------------------------------
# 400 -- client input
# ---------------------------------------------------------------------------


class InvalidInput(AuthError):
    code = "invalid_input"
    message = "Invalid input."


class WeakPassword(AuthError):
    """Password failed one or more complexity rules.

    rules holds the violated rule names (min, uppercase, ...); details holds
    the matching human-readable messages in the same order.
    """

    code = "weak_password"
    message = "Password does not meet complexity requirements."

    def __init__(self, rules: list[str], details: list[str] | None = None) -> None:
        self.rules = list(rules)
        super().__init__(details=details)


class UsernameTaken(AuthError):
    code = "username_taken"
    message = "Username already exists."


# ---------------------------------------------------------------------------
# 401 -- credentials, tokens, sessions
# ---------------------------------------------------------------------------


class AuthenticationFailed(AuthError):
    # Same message for unknown user and wrong password.
    code = "authentication_failed"
    status_code = 401
    message = "Authentication failed."


class MissingCredentials(AuthError):
    code = "missing_credentials"
    status_code = 401
    message = "Missing or invalid authorization header."


class InvalidToken(AuthError):
    """Token failed signature or expiry verification.

    Clients see one code for both cases; the subclasses exist so logs can
    tell a forged token from one that simply aged out.
    """

    code = "invalid_token"
    status_code = 401
    message = "Invalid token."


class InvalidSignature(InvalidToken):
    pass


class TokenExpired(InvalidToken):
    pass


class SessionInvalid(AuthError):
    code = "session_invalid"
    status_code = 401
    message = "Invalid or expired session."


# ---------------------------------------------------------------------------
# 500 -- backends
# ---------------------------------------------------------------------------


class StoreUnavailable(AuthError):
    code = "internal_error"
    status_code = 500
    message = "Internal server error."
