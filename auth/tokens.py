"""
auth/tokens.py -- Access / refresh token issuance and validation.

Security design decisions:
  Format: python-jose JWS with HS256 (header.claims.signature). Validation is
       purely cryptographic plus a local clock comparison -- no storage round
       trip, so an access token stays valid until its own exp even after a
       newer pair has been issued. Tokens are superseded, never revoked.

  Claims: access tokens carry sub/user_id, email, first_name, last_name,
       type="access", iat, exp, jti. Refresh tokens carry only sub/user_id,
       type="refresh", iat, exp, jti. The type claim stops a refresh token
       from being accepted as an access token and vice versa. jti makes two
       pairs minted in the same second distinct.

  Failure kinds are kept apart so the API can answer precisely:
       MalformedToken   -- segments, base64 or JSON do not parse, or required
                           claims are missing / wrongly typed
       InvalidSignature -- header names another algorithm or the MAC does not
                           match
       ExpiredToken     -- signature fine, now > exp + leeway
       Signature is checked before expiry, so a forged expired token reports
       InvalidSignature.

  Secret: taken from the Settings object passed to TokenIssuer(). Read once at
       construction, never mutated -- safe for concurrent readers.

Layer rule: no imports from api/. Settings is imported for typing only.
"""

from __future__ import annotations

import logging
import secrets
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from jose import JWSError, JWTError, jws, jwt

from auth.errors import ExpiredToken, InvalidSignature, MalformedToken
from auth.models import Claims, TokenPair

if TYPE_CHECKING:
    from core.config import Settings

logger = logging.getLogger("elewa.auth")

ALGORITHM = "HS256"
ACCESS = "access"
REFRESH = "refresh"

_IDENTITY_CLAIMS = ("email", "first_name", "last_name")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenIssuer:
    """Mints and verifies signed token pairs.

    Usage:
        issuer = TokenIssuer(settings)
        pair = issuer.issue(user.user_id, user.email, user.first_name, user.last_name)
        claims = issuer.validate(pair.access_token)
        issuer.validate(pair.refresh_token, expected_type=REFRESH)

    clock is injectable so tests can move time forward without sleeping.
    """

    def __init__(self, settings: Settings, clock: Callable[[], datetime] | None = None) -> None:
        self._secret = settings.secret_key
        self.access_ttl = timedelta(seconds=settings.access_token_expire_seconds)
        self.refresh_ttl = timedelta(seconds=settings.refresh_token_expire_seconds)
        self._leeway = settings.token_leeway_seconds
        self._clock = clock or _utcnow

    # ------------------------------------------------------------------
    # Issue
    # ------------------------------------------------------------------

    def issue(self, user_id: str, email: str, first_name: str, last_name: str) -> TokenPair:
        """Return a fresh (access, refresh) pair for the given identity."""
        now = self._clock()
        access = self._encode(
            {
                "sub": user_id,
                "user_id": user_id,
                "email": email,
                "first_name": first_name,
                "last_name": last_name,
                "type": ACCESS,
            },
            now,
            self.access_ttl,
        )
        refresh = self._encode({"sub": user_id, "user_id": user_id, "type": REFRESH}, now, self.refresh_ttl)
        return TokenPair(access_token=access, refresh_token=refresh)

    def _encode(self, claims: dict, now: datetime, ttl: timedelta) -> str:
        payload = dict(claims)
        payload["iat"] = int(now.timestamp())
        payload["exp"] = int((now + ttl).timestamp())
        payload["jti"] = secrets.token_hex(8)
        return jwt.encode(payload, self._secret, algorithm=ALGORITHM)

    # ------------------------------------------------------------------
    # Validate
    # ------------------------------------------------------------------

    def validate(self, token: str, expected_type: str = ACCESS) -> Claims:
        """Verify token and return its Claims.

        Raises MalformedToken, InvalidSignature or ExpiredToken. A token of the
        wrong type (refresh presented where access is expected) is Malformed.
        """
        try:
            header = jwt.get_unverified_header(token)
            payload = jwt.get_unverified_claims(token)
        except (JWTError, AttributeError, TypeError) as exc:
            raise MalformedToken() from exc

        if header.get("alg") != ALGORITHM:
            raise InvalidSignature("Token is not signed with the expected algorithm.")

        # Structure already parsed above, so any JWS failure here is the MAC.
        try:
            jws.verify(token, self._secret, algorithms=[ALGORITHM])
        except JWSError as exc:
            raise InvalidSignature() from exc

        exp = payload.get("exp")
        user_id = payload.get("user_id")
        if not isinstance(exp, int) or isinstance(exp, bool) or not isinstance(user_id, str) or not user_id:
            raise MalformedToken("Token is missing required claims.")
        if payload.get("type") != expected_type:
            raise MalformedToken(f"Expected a {expected_type} token.")

        if self._clock().timestamp() > exp + self._leeway:
            raise ExpiredToken()

        identity: dict[str, str | None] = {name: None for name in _IDENTITY_CLAIMS}
        if expected_type == ACCESS:
            for name in _IDENTITY_CLAIMS:
                value = payload.get(name)
                if not isinstance(value, str):
                    raise MalformedToken("Token is missing required claims.")
                identity[name] = value

        return Claims(user_id=user_id, token_type=expected_type, expires_at=exp, **identity)
