"""
API request and response models for the auth service REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Request models only enforce type (StrictStr, so 123 is not silently coerced to
"123"). Emptiness, length and password policy are AuthService's job, so the
same rules apply to any caller, not just HTTP.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, StrictStr

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class CredentialsRequest(BaseModel):
    """Request body for POST /auth/register and POST /auth/login."""

    username: StrictStr
    password: StrictStr


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class LoginResponse(BaseModel):
    """Response body for POST /auth/login."""

    model_config = ConfigDict(frozen=True)

    message: str
    token: str


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    details: Optional[list[str]] = None
    rules: Optional[list[str]] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /health. error is only set when status is DOWN."""

    model_config = ConfigDict(frozen=True)

    status: str = "OK"
    error: Optional[str] = None
