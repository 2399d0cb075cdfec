"""
auth/dependencies.py -- FastAPI Depends() helpers that gate protected routes.

One request moves through:
  Unauthenticated -> TokenExtracted -> Validated -> Admitted
or stops at Rejected on the first failure. Rejection raises a TokenError
subclass, which api/main.py turns into a 401 before any handler body runs.

Token sources, checked in priority order:
  1. Authorization: Bearer <token>  -- standard API clients.
  2. token: <token>                 -- legacy header used by older clients.

No refresh happens here: an expired access token always rejects and the
client must call /auth/refresh or log in again.

require_claims is mounted router-wide (APIRouter(dependencies=[...])) and
stores the decoded Claims on request.state.claims. current_claims is what a
handler declares when it wants to read them.

Layer rule: auth/dependencies.py may import from fastapi because it is part
of the FastAPI dependency injection system. No imports from api/.
"""

from __future__ import annotations

from fastapi import Request

from auth.errors import MissingToken
from auth.models import Claims
from auth.service import AuthService
from auth.tokens import ACCESS, TokenIssuer

LEGACY_TOKEN_HEADER = "token"


def extract_token(request: Request) -> str | None:
    """Return the raw access token from the request headers, or None."""
    auth_header = request.headers.get("Authorization", "")
    if auth_header[:7].lower() == "bearer ":
        token = auth_header[7:].strip()
        if token:
            return token
    token = request.headers.get(LEGACY_TOKEN_HEADER, "").strip()
    return token or None


def require_claims(request: Request) -> Claims:
    """Admit the request or raise. Stores Claims on request.state.claims."""
    token = extract_token(request)
    if token is None:
        raise MissingToken()
    issuer: TokenIssuer = request.app.state.token_issuer
    claims = issuer.validate(token, expected_type=ACCESS)
    request.state.claims = claims
    return claims


def current_claims(request: Request) -> Claims:
    """Return claims set by require_claims, validating now if it has not run."""
    claims = getattr(request.state, "claims", None)
    if claims is None:
        claims = require_claims(request)
    return claims


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service
