"""
auth/service.py -- Registration, login, refresh and profile orchestration.

AuthService composes the three building blocks:
  PasswordHasher  -- digest / verify
  TokenIssuer     -- mint / validate token pairs
  UserStore       -- persistence, including update_tokens()

Concurrency:
  Every store call runs in a worker thread via asyncio.to_thread() and is
  bounded by asyncio.wait_for(timeout=storage_timeout). On timeout the await
  is cancelled and StorageTimeout raised, so no handler waits indefinitely.
  The same applies on early exits: wait_for owns the pending future.
  bcrypt also runs in a worker thread so it does not stall the event loop,
  but without a timeout (it is bounded CPU work).

Login never says whether the email exists: unknown email and wrong password
both raise InvalidCredentials, and both run one bcrypt check [timing].

Rotation: login and refresh both overwrite the stored pair. Earlier access
tokens keep validating cryptographically until their own exp; earlier
refresh tokens are rejected by refresh() because they no longer match the
stored value. The refresh write is conditional on the stored refresh token,
so two concurrent redemptions of one token produce exactly one new pair.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import asyncio
import hmac
import logging
import uuid
from collections.abc import Callable
from typing import Any, TypeVar

from auth.errors import (
    DuplicateCredential,
    InternalError,
    InvalidCredentials,
    StorageTimeout,
    SupersededToken,
    UserNotFound,
    ValidationError,
)
from auth.models import TokenPair, User
from auth.passwords import PasswordHasher
from auth.store import PROFILE_FIELDS, UserStore
from auth.tokens import REFRESH, TokenIssuer

logger = logging.getLogger("elewa.auth")

T = TypeVar("T")


class AuthService:
    def __init__(
        self,
        store: UserStore,
        hasher: PasswordHasher,
        issuer: TokenIssuer,
        storage_timeout: float = 10.0,
    ) -> None:
        self.store = store
        self.hasher = hasher
        self.issuer = issuer
        self.storage_timeout = storage_timeout

    async def _storage(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Run one blocking store call in a thread, bounded by storage_timeout."""
        try:
            return await asyncio.wait_for(asyncio.to_thread(fn, *args, **kwargs), timeout=self.storage_timeout)
        except asyncio.TimeoutError as exc:
            logger.warning("Storage call %s timed out after %.1fs", fn.__name__, self.storage_timeout)
            raise StorageTimeout() from exc

    async def _hash(self, plain: str) -> str:
        try:
            return await asyncio.to_thread(self.hasher.hash, plain)
        except Exception as exc:
            # A broken hashing runtime fails this request only.
            logger.exception("Password hashing failed")
            raise InternalError() from exc

    # ------------------------------------------------------------------
    # Register
    # ------------------------------------------------------------------

    async def register(
        self,
        *,
        first_name: str,
        last_name: str,
        email: str,
        phone: str,
        password: str,
    ) -> tuple[User, TokenPair]:
        """Create a user and its first token pair.

        Both uniqueness checks always run so the caller learns about an email
        and a phone conflict in one response. The INSERT still relies on the
        unique index for racing registrations.
        """
        email_taken, phone_taken = await asyncio.gather(
            self._storage(self.store.email_exists, email),
            self._storage(self.store.phone_exists, phone),
        )
        conflicts = [name for name, taken in (("email", email_taken), ("phone", phone_taken)) if taken]
        if conflicts:
            logger.warning("Registration rejected: duplicate %s", ", ".join(conflicts))
            raise DuplicateCredential(conflicts)

        hashed = await self._hash(password)
        user_id = uuid.uuid4().hex
        pair = self.issuer.issue(user_id, email, first_name, last_name)
        user = User(
            user_id=user_id,
            first_name=first_name,
            last_name=last_name,
            email=email,
            phone=phone,
            hashed_password=hashed,
            token=pair.access_token,
            refresh_token=pair.refresh_token,
        )
        try:
            await self._storage(self.store.create_user, user)
        except DuplicateCredential as exc:
            logger.warning("Registration lost insert race: duplicate %s", ", ".join(exc.fields))
            raise
        logger.info("Registered user %s", user_id)
        return user, pair

    # ------------------------------------------------------------------
    # Login / refresh
    # ------------------------------------------------------------------

    async def login(self, email: str, password: str) -> tuple[User, TokenPair]:
        """Verify credentials and rotate the stored token pair."""
        user = await self._storage(self.store.get_by_email, email)
        if user is None:
            # Equalize timing -- do NOT return before running bcrypt.
            await asyncio.to_thread(self.hasher.verify, password, self.hasher.dummy_hash)
            logger.warning("Login failed: bad credentials")
            raise InvalidCredentials()
        if not await asyncio.to_thread(self.hasher.verify, password, user.hashed_password):
            logger.warning("Login failed: bad credentials")
            raise InvalidCredentials()

        pair = await self._rotate(user)
        logger.info("Login: %s", user.user_id)
        return user, pair

    async def refresh(self, refresh_token: str) -> tuple[User, TokenPair]:
        """Exchange the current refresh token for a new pair. No password check."""
        claims = self.issuer.validate(refresh_token, expected_type=REFRESH)
        user = await self._storage(self.store.get_by_id, claims.user_id)
        if user is None:
            raise UserNotFound()
        if not user.refresh_token or not hmac.compare_digest(user.refresh_token, refresh_token):
            logger.warning("Refresh rejected for %s: token superseded", user.user_id)
            raise SupersededToken()

        try:
            pair = await self._rotate(user, expected_refresh=refresh_token)
        except SupersededToken:
            logger.warning("Refresh rejected for %s: token redeemed concurrently", user.user_id)
            raise
        logger.info("Refreshed tokens for %s", user.user_id)
        return user, pair

    async def _rotate(self, user: User, expected_refresh: str | None = None) -> TokenPair:
        pair = self.issuer.issue(user.user_id, user.email, user.first_name, user.last_name)
        await self._storage(
            self.store.update_tokens,
            user.user_id,
            pair.access_token,
            pair.refresh_token,
            expected_refresh=expected_refresh,
        )
        user.token = pair.access_token
        user.refresh_token = pair.refresh_token
        return pair

    # ------------------------------------------------------------------
    # Profile
    # ------------------------------------------------------------------

    async def get_user(self, user_id: str) -> User:
        user = await self._storage(self.store.get_by_id, user_id)
        if user is None:
            raise UserNotFound()
        return user

    async def list_users(self) -> list[User]:
        return await self._storage(self.store.list_users)

    async def update_profile(self, user_id: str, **fields: str | None) -> User:
        """Apply whitelisted profile changes and return the stored result.

        Raises ValidationError when nothing would change and UserNotFound when
        user_id matches no record.
        """
        updates = {k: v for k, v in fields.items() if v is not None}
        if not updates:
            raise ValidationError("No fields to update.", fields=sorted(PROFILE_FIELDS))
        if not await self._storage(self.store.update_profile, user_id, **updates):
            raise UserNotFound()
        logger.info("Updated profile %s (%s)", user_id, ", ".join(sorted(updates)))
        return await self.get_user(user_id)
