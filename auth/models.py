"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and the service
do the work; api/models.py owns the HTTP contract.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class User:
    """A registered identity.

    hashed_password is always a bcrypt digest, never the plaintext.
    token / refresh_token hold the single live pair; each login or refresh
    overwrites them, so earlier tokens are superseded rather than revoked.
    """

    first_name: str
    last_name: str
    email: str
    phone: str
    hashed_password: str
    user_id: str = ""
    token: str | None = None
    refresh_token: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str


@dataclass(frozen=True)
class Claims:
    """Decoded payload of a verified token.

    Refresh tokens carry only user_id, so email and names are None there.
    Request-scoped: the middleware puts an access Claims on request.state and
    it is never persisted.
    """

    user_id: str
    token_type: str  # "access" or "refresh"
    expires_at: int  # unix seconds
    email: str | None = None
    first_name: str | None = None
    last_name: str | None = None
