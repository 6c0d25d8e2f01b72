"""
auth/dependencies.py -- FastAPI Depends() helpers: the Access Guard.

A protected route declares `claims: TokenClaims = Depends(require_session)`.
The guard runs three checks in order and stops at the first failure:
  1. Authorization: Bearer <token> header present     -> else MissingCredentials
  2. Token signature and expiry verify                -> else InvalidToken
  3. session:<identity> holds exactly this token      -> else SessionInvalid

All three are 401s, rendered by the AuthError handler in api/main.py. On
success the verified claims are handed to the route; session state is not
modified by a read.

Layer rule: auth/dependencies.py may import from fastapi (for Depends/Request)
because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import Depends, Request

from auth.errors import MissingCredentials
from auth.models import TokenClaims
from auth.service import AuthService

_BEARER_PREFIX = "Bearer "


def get_auth_service(request: Request) -> AuthService:
    """Return the process-wide AuthService built in the app lifespan."""
    return request.app.state.auth_service


def get_bearer_token(request: Request) -> str:
    """Extract the token from the Authorization header.

    The scheme match is exact ("Bearer ", capital B, one space) and the token
    must be a single non-empty word.
    """
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith(_BEARER_PREFIX):
        raise MissingCredentials()
    token = auth_header[len(_BEARER_PREFIX) :].strip()
    if not token or " " in token:
        raise MissingCredentials()
    return token


async def require_session(
    token: str = Depends(get_bearer_token),
    service: AuthService = Depends(get_auth_service),
) -> TokenClaims:
    """Require a verified token backed by the live session. Raises 401 otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(claims: TokenClaims = Depends(require_session)): ...
    """
    return await service.authorize(token)
