"""
auth/errors.py -- Exception taxonomy for the authentication subsystem.

Each class carries the HTTP status and the stable machine-readable error code
the API layer puts into the error envelope. Service and store code raise
these; api/main.py converts them into responses in one exception handler.

  validation_error      422  malformed or missing input, user-correctable
  duplicate_credential  409  email or phone already registered
  invalid_credentials   401  login failed (never says which factor)
  missing_token         401  no access token on a protected request
  malformed_token       401  token is not a parseable three-part JWS
  invalid_signature     401  MAC does not verify
  expired_token         401  past its exp claim
  token_superseded      401  refresh token is no longer the one on record
  user_not_found        404
  storage_error         500  safe to retry the whole request
  storage_timeout       504
  internal_error        500  e.g. hashing failure on one request

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for errors that map to a structured HTTP response."""

    status_code: int = 400
    error_code: str = "bad_request"

    def __init__(self, message: str, *, detail: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail


class ValidationError(AuthError):
    status_code = 422
    error_code = "validation_error"

    def __init__(self, message: str, *, fields: list[str] | None = None, detail: str | None = None) -> None:
        super().__init__(message, detail=detail)
        self.fields = fields or []


class DuplicateCredential(AuthError):
    """Email and/or phone already belong to another account.

    fields lists which of the two collided. The response never says which
    account holds them.
    """

    status_code = 409
    error_code = "duplicate_credential"

    def __init__(self, fields: list[str]) -> None:
        super().__init__(f"An account with that {' and '.join(fields)} already exists.")
        self.fields = fields


class InvalidCredentials(AuthError):
    status_code = 401
    error_code = "invalid_credentials"

    def __init__(self, message: str = "Invalid email or password.") -> None:
        super().__init__(message)


# ---------------------------------------------------------------------------
# Token failures
# ---------------------------------------------------------------------------


class TokenError(AuthError):
    """Base for every reason a presented token is rejected."""

    status_code = 401
    error_code = "invalid_token"


class MissingToken(TokenError):
    error_code = "missing_token"

    def __init__(self, message: str = "Authentication required.") -> None:
        super().__init__(message)


class MalformedToken(TokenError):
    error_code = "malformed_token"

    def __init__(self, message: str = "Token is malformed.") -> None:
        super().__init__(message)


class InvalidSignature(TokenError):
    error_code = "invalid_signature"

    def __init__(self, message: str = "Token signature is invalid.") -> None:
        super().__init__(message)


class ExpiredToken(TokenError):
    error_code = "expired_token"

    def __init__(self, message: str = "Token has expired.") -> None:
        super().__init__(message)


class SupersededToken(TokenError):
    error_code = "token_superseded"

    def __init__(self, message: str = "Refresh token has been superseded by a newer one.") -> None:
        super().__init__(message)


# ---------------------------------------------------------------------------
# Lookup / infrastructure
# ---------------------------------------------------------------------------


class UserNotFound(AuthError):
    status_code = 404
    error_code = "user_not_found"

    def __init__(self, message: str = "User not found.") -> None:
        super().__init__(message)


class StorageError(AuthError):
    status_code = 500
    error_code = "storage_error"

    def __init__(self, message: str = "Storage operation failed.", *, detail: str | None = None) -> None:
        super().__init__(message, detail=detail)


class StorageTimeout(StorageError):
    status_code = 504
    error_code = "storage_timeout"

    def __init__(self, message: str = "Storage operation timed out.") -> None:
        super().__init__(message)


class InternalError(AuthError):
    status_code = 500
    error_code = "internal_error"

    def __init__(self, message: str = "An unexpected error occurred.") -> None:
        super().__init__(message)
