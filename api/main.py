"""
api/main.py -- FastAPI application factory for Elewa.

Run with:      uvicorn asgi:app --reload

create_app(settings) builds every component from one explicit Settings
object and hangs it on app.state:
  app.state.settings       -- the Settings instance
  app.state.user_store     -- UserStore (opened in lifespan, closed on shutdown)
  app.state.token_issuer   -- TokenIssuer (read-only signing secret)
  app.state.auth_service   -- AuthService used by the route handlers

Middleware stack (outermost to innermost):
  1. log_requests          -- one INFO line per request with latency
  2. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  3. CORSMiddleware        -- adds CORS headers for allowed browser origins
  4. SlowAPIMiddleware     -- per-app limiter from api.limiter.build_limiter()

Every error leaves through the same ErrorResponse envelope.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.limiter import build_limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import build_router as build_auth_router
from api.routes.v1.users import router as users_router
from auth.errors import AuthError
from auth.passwords import PasswordHasher
from auth.service import AuthService
from auth.store import UserStore
from auth.tokens import TokenIssuer
from core.config import Settings

VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("elewa.api")


def _error_response(status_code: int, detail: ErrorDetail, headers: dict | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=detail).model_dump(exclude_none=True),
        headers=headers,
    )


def _field_name(loc: tuple) -> str:
    # ("body", "email") -> "email"; ("body",) -> "body"
    parts = [str(p) for p in loc if p != "body"]
    return ".".join(parts) or "body"


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def create_app(settings: Settings) -> FastAPI:
    """Build the ASGI app around an explicit Settings object."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Open the user store on startup and dispose of it on shutdown.

        Storage connection failures here are startup faults and are allowed
        to stop the process.
        """
        logger.info("Elewa API starting up")
        store = UserStore(settings)
        hasher = PasswordHasher(rounds=settings.bcrypt_rounds)
        app.state.user_store = store
        app.state.auth_service = AuthService(
            store,
            hasher,
            app.state.token_issuer,
            storage_timeout=settings.storage_timeout_seconds,
        )
        logger.info("Auth initialized (bcrypt rounds=%d)", settings.bcrypt_rounds)

        yield

        store.close()
        logger.info("Elewa API shutdown complete")

    app = FastAPI(
        title="Elewa API",
        description="User registration, login and token lifecycle for the Elewa store backend.",
        version=VERSION,
        lifespan=lifespan,
    )
    app.state.settings = settings
    # Built eagerly: validation needs nothing but the secret.
    app.state.token_issuer = TokenIssuer(settings)

    # -----------------------------------------------------------------------
    # Middleware stack -- Starlette makes the LAST registered middleware the
    # outermost, so register innermost first.
    # -----------------------------------------------------------------------

    app.add_middleware(SlowAPIMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST", "PATCH"],
        allow_headers=["Content-Type", "Authorization", "token"],
        max_age=3600,
    )
    app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.allowed_hosts)

    # SlowAPI looks for app.state.limiter by convention.
    limiter = build_limiter(settings)
    app.state.limiter = limiter

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

    # -----------------------------------------------------------------------
    # Routers
    # -----------------------------------------------------------------------

    app.include_router(build_auth_router(limiter), prefix="/api/v1", tags=["Auth"])
    app.include_router(users_router, prefix="/api/v1", tags=["Users"])

    # -----------------------------------------------------------------------
    # Exception handlers
    # -----------------------------------------------------------------------

    @app.exception_handler(AuthError)
    async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
        """Map the auth.errors taxonomy onto the error envelope.

        401s carry WWW-Authenticate so clients know to re-authenticate.
        """
        headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
        fields = getattr(exc, "fields", None) or None
        return _error_response(
            exc.status_code,
            ErrorDetail(code=exc.error_code, message=exc.message, detail=exc.detail, fields=fields),
            headers=headers,
        )

    @app.exception_handler(RateLimitExceeded)
    async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
        """Return 429 with a structured error when a rate limit is exceeded."""
        retry_after = int(getattr(exc, "retry_after", 60))
        return _error_response(
            429,
            ErrorDetail(code="rate_limited", message="Too many requests.", detail=str(exc)),
            headers={"Retry-After": str(retry_after)},
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        """Return 422 listing every offending field."""
        errors = exc.errors()
        fields = sorted({_field_name(tuple(err.get("loc", ()))) for err in errors})
        return _error_response(
            422,
            ErrorDetail(
                code="validation_error",
                message="Request validation failed.",
                detail="; ".join(f"{_field_name(tuple(e.get('loc', ())))}: {e.get('msg', '')}" for e in errors),
                fields=fields,
            ),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        """Return a structured error for FastAPI/Starlette HTTP exceptions (404 route, 405, ...)."""
        return _error_response(
            exc.status_code,
            ErrorDetail(code=f"http_{exc.status_code}", message=str(exc.detail)),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all for unexpected server errors.

        The raw exception goes to the log only, never to the response body.
        """
        logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
        return _error_response(
            500,
            ErrorDetail(code="internal_error", message="An unexpected error occurred."),
        )

    # -----------------------------------------------------------------------
    # Health -- defined here so it is reachable regardless of router state.
    # -----------------------------------------------------------------------

    @app.get("/api/v1/health", tags=["Health"])
    async def health(request: Request) -> HealthResponse:
        """Return liveness, version and a database check. No auth, no rate limit."""
        store: UserStore = request.app.state.user_store
        timeout = request.app.state.settings.storage_timeout_seconds
        try:
            db_ok = await asyncio.wait_for(asyncio.to_thread(store.ping), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("Health check: database ping timed out after %.1fs", timeout)
            db_ok = False
        return HealthResponse(
            status="healthy" if db_ok else "degraded",
            version=VERSION,
            components={"app": "ok", "database": "ok" if db_ok else "error"},
        )

    return app
