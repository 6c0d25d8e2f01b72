"""
api/routes/auth.py -- Registration, login and logout endpoints.

Routes:
  POST /auth/register  -- create an account; no token issued
  POST /auth/login     -- password login; returns a bearer token
  POST /auth/logout    -- revoke the caller's session (Bearer token required)

Security:
  POST /login is rate-limited per client IP (LOGIN_RATE_LIMIT).
  Login responses carry Cache-Control: no-store so tokens are not cached.
  Wrong username and wrong password produce the same 401 body.

Handlers stay thin: AuthService raises AuthError subclasses and the handler
in api/main.py renders them, so no route builds an error body itself.
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter, login_limit
from api.models import CredentialsRequest, LoginResponse, MessageResponse
from auth.dependencies import get_auth_service, get_bearer_token
from auth.service import AuthService

# Auth policy:
# - POST /auth/register: public
# - POST /auth/login:    public, rate-limited
# - POST /auth/logout:   Bearer token (signature + expiry only; see AuthService.logout)
router = APIRouter()


@router.post("/auth/register", response_model=MessageResponse)
async def register(
    body: CredentialsRequest,
    service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Register a new user. Password must satisfy the complexity policy."""
    await service.register(body.username, body.password)
    return MessageResponse(message="User registered successfully.")


@router.post("/auth/login", response_model=LoginResponse)
@limiter.limit(login_limit)
async def login(
    request: Request,
    body: CredentialsRequest,
    service: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    """Authenticate with username and password; return a bearer token.

    The token becomes the user's only live session. Any token issued by an
    earlier login stops working from this point on.
    """
    result = await service.login(body.username, body.password)
    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(message="Authentication successful.", token=result.token).model_dump(),
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/auth/logout", response_model=MessageResponse)
async def logout(
    token: str = Depends(get_bearer_token),
    service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Delete the caller's session. Logging out twice is not an error."""
    await service.logout(token)
    return MessageResponse(message="Logout successful.")
