"""
api/routes/v1/auth.py -- Registration, login and token refresh endpoints.

Routes:
  POST /api/v1/auth/register  -- create account; returns user_id + token pair
  POST /api/v1/auth/login     -- email + password; rotates the stored pair
  POST /api/v1/auth/refresh   -- refresh token -> new pair (no password)
  GET  /api/v1/auth/me        -- claims of the presented access token (requires auth)

Security:
  Login answers unknown email and wrong password with the same
  invalid_credentials error; AuthService.login() also equalizes timing.
  Cache-Control: no-store on every response that carries tokens.
  Register and refresh are rate-limited per IP. Login is not.
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from slowapi import Limiter

from api.limiter import REFRESH_LIMIT, REGISTER_LIMIT
from api.models import (
    LoginRequest,
    LoginResponse,
    MeResponse,
    RefreshRequest,
    RegisterRequest,
    RegisterResponse,
    TokenResponse,
    UserResponse,
)
from auth.dependencies import current_claims, get_auth_service, require_claims
from auth.models import Claims
from auth.service import AuthService

# Auth policy:
# - POST /api/v1/auth/register: public
# - POST /api/v1/auth/login:    public
# - POST /api/v1/auth/refresh:  public -- the refresh token itself is the credential
# - GET  /api/v1/auth/me:       requires auth (require_claims)


def _expires_in(service: AuthService) -> int:
    return int(service.issuer.access_ttl.total_seconds())


def _no_store(status_code: int, content: dict) -> JSONResponse:
    resp = JSONResponse(status_code=status_code, content=content)
    resp.headers["Cache-Control"] = "no-store"
    return resp


async def register(
    request: Request,
    body: RegisterRequest,
    service: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    """Create an account and return its identifier with the first token pair.

    Neither the plaintext password nor its digest is ever echoed back.
    """
    user, pair = await service.register(
        first_name=body.first_name,
        last_name=body.last_name,
        email=body.email,
        phone=body.phone,
        password=body.password,
    )
    return _no_store(
        201,
        RegisterResponse(
            user_id=user.user_id,
            access_token=pair.access_token,
            refresh_token=pair.refresh_token,
            expires_in=_expires_in(service),
        ).model_dump(),
    )


async def login(
    body: LoginRequest,
    service: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    """Authenticate with email and password; issue and store a fresh pair."""
    user, pair = await service.login(body.email, body.password)
    return _no_store(
        200,
        LoginResponse(
            access_token=pair.access_token,
            refresh_token=pair.refresh_token,
            expires_in=_expires_in(service),
            user=UserResponse.from_user(user),
        ).model_dump(),
    )


async def refresh(
    request: Request,
    body: RefreshRequest,
    service: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    """Trade the refresh token on record for a new pair.

    A refresh token that has been superseded by a later login or refresh is
    rejected with token_superseded.
    """
    _user, pair = await service.refresh(body.refresh_token)
    return _no_store(
        200,
        TokenResponse(
            access_token=pair.access_token,
            refresh_token=pair.refresh_token,
            expires_in=_expires_in(service),
        ).model_dump(),
    )


async def me(claims: Claims = Depends(current_claims)) -> MeResponse:
    """Return identity information from the validated access token.

    require_claims runs as a route dependency first; this handler only reads
    what it left on request.state.
    """
    return MeResponse.from_claims(claims)


def build_router(limiter: Limiter) -> APIRouter:
    """Route table for /auth. Limited handlers are wrapped before they are routed."""
    router = APIRouter()
    router.add_api_route(
        "/auth/register",
        limiter.limit(REGISTER_LIMIT)(register),
        methods=["POST"],
        response_model=RegisterResponse,
        status_code=201,
    )
    router.add_api_route("/auth/login", login, methods=["POST"], response_model=LoginResponse)
    router.add_api_route(
        "/auth/refresh",
        limiter.limit(REFRESH_LIMIT)(refresh),
        methods=["POST"],
        response_model=TokenResponse,
    )
    router.add_api_route(
        "/auth/me",
        me,
        methods=["GET"],
        response_model=MeResponse,
        dependencies=[Depends(require_claims)],
    )
    return router
