"""
api/main.py -- FastAPI application entry point for the auth service.

Run with:      python main.py serve
               uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. CORSMiddleware     -- adds CORS headers for configured origins
  2. SlowAPIMiddleware  -- global per-IP limit; /auth/login has its own tighter one
  3. log_requests       -- one log line per request with status and latency

Lifespan builds every shared handle once (Redis client, user store, session
store, token issuer, hasher, AuthService), stores them on app.state, and
releases them on shutdown. Nothing below reaches for a module-level client.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from redis.asyncio import Redis
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.auth import router as auth_router
from api.routes.protected import router as protected_router
from auth.errors import AuthError, WeakPassword
from auth.hashing import PasswordHasher
from auth.service import AuthService
from auth.sessions import SessionStore
from auth.store import create_user_store
from auth.tokens import TokenIssuer
from core.config import configure_logging, get_settings

__version__ = "1.0.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("authority.api")

# Read once at import: a missing JWT_SECRET or DATASTORE fails here, before
# the server binds a port.
_settings = get_settings()

# Codes whose 401 is about the bearer token rather than a password.
_BEARER_CODES = {"missing_credentials", "invalid_token", "session_invalid"}

# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build shared resources on startup and release them on shutdown.

    Startup order matters:
      1. Redis client -- sessions always live there, users too in keyvalue mode.
      2. User store   -- init() creates the users table for the relational variant.
      3. AuthService  -- wired from the pieces above.
    """
    settings = get_settings()
    configure_logging(settings)
    logger.info("Auth API starting up (datastore=%s)", settings.datastore)

    redis = Redis.from_url(settings.redis_url, decode_responses=True)
    hasher = PasswordHasher(rounds=settings.bcrypt_rounds)
    user_store = create_user_store(settings, redis, hasher)
    try:
        await user_store.init()
    except Exception:
        logger.exception("Error initializing the user store")
        await user_store.close()
        await redis.aclose()
        raise
    logger.info("User store ready")

    session_store = SessionStore(redis, ttl_seconds=settings.token_ttl_seconds)
    tokens = TokenIssuer(settings.jwt_secret.get_secret_value(), ttl_seconds=settings.token_ttl_seconds)

    app.state.redis = redis
    app.state.user_store = user_store
    app.state.session_store = session_store
    app.state.auth_service = AuthService(user_store, session_store, tokens, hasher)

    try:
        yield
    finally:
        await user_store.close()
        await redis.aclose()
        logger.info("Auth API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Auth API",
    description="Password authentication with revocable bearer-token sessions.",
    version=__version__,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
# ---------------------------------------------------------------------------

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter

# ---------------------------------------------------------------------------
# Request logging middleware
# ---------------------------------------------------------------------------


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, tags=["Auth"])
app.include_router(protected_router, tags=["Protected"])

# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Render any AuthError with its own status code and client-safe message.

    StoreUnavailable lands here too; its message is generic and the cause was
    already logged by AuthService.
    """
    detail = ErrorDetail(
        code=exc.code,
        message=exc.message,
        details=exc.details or None,
        rules=exc.rules if isinstance(exc, WeakPassword) else None,
    )
    response = JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=detail).model_dump(exclude_none=True),
    )
    if exc.code in _BEARER_CODES:
        response.headers["WWW-Authenticate"] = "Bearer"
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 400 invalid_input when the request body is missing, malformed, or mistyped."""
    details = [
        f"{'.'.join(str(part) for part in err.get('loc', ()) if part != 'body') or 'body'}: {err.get('msg', 'invalid')}"
        for err in exc.errors()
    ]
    logger.warning("Request validation failed on %s: %s", request.url.path, "; ".join(details))
    return JSONResponse(
        status_code=400,
        content=ErrorResponse(
            error=ErrorDetail(code="invalid_input", message="Invalid input.", details=details)
        ).model_dump(exclude_none=True),
    )


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded.

    Retry-After is the length of the window that was exhausted (900 s for the
    default 5/15minutes login limit).
    """
    retry_after = exc.limit.limit.get_expiry()
    response = JSONResponse(
        status_code=429,
        content=ErrorResponse(
            error=ErrorDetail(
                code="rate_limited",
                message="Too many requests, please try again later.",
            )
        ).model_dump(exclude_none=True),
    )
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Structured envelope for framework-raised errors (404, 405, ...)."""
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=ErrorDetail(
                code=f"http_{exc.status_code}",
                message=str(exc.detail),
            )
        ).model_dump(exclude_none=True),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception goes to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error=ErrorDetail(
                code="internal_error",
                message="Internal server error.",
            )
        ).model_dump(exclude_none=True),
    )


# ---------------------------------------------------------------------------
# Health endpoint
#
# Lives on the app itself and is exempt from rate limiting.
# ---------------------------------------------------------------------------


@app.get("/health", response_model=HealthResponse, tags=["Health"])
@limiter.exempt
async def health(request: Request) -> JSONResponse:
    """Report OK when both the user store and the session store answer.

    The DOWN body names the failing component only; driver error text stays
    in the log.
    """
    checks = (
        ("user store", request.app.state.user_store.ping),
        ("session store", request.app.state.session_store.ping),
    )
    for component, ping in checks:
        try:
            await ping()
        except Exception:
            logger.exception("Health check failed: %s unavailable", component)
            return JSONResponse(
                status_code=500,
                content=HealthResponse(status="DOWN", error=f"{component} unavailable").model_dump(),
            )
    return JSONResponse(status_code=200, content=HealthResponse().model_dump(exclude_none=True))
