"""
Unit tests for auth/tokens.py -- TokenIssuer issue / validate.

Covers:
- issued access token validates back to the identity it was minted for
- refresh tokens carry only user_id and are not interchangeable with access
- ExpiredToken once the clock passes exp (and leeway, when configured)
- InvalidSignature for a tampered signature, a foreign secret, or alg=none
- MalformedToken for junk input and missing claims
"""

from __future__ import annotations

import base64
import json

import pytest
from jose import jwt

from auth.errors import ExpiredToken, InvalidSignature, MalformedToken
from auth.tokens import ACCESS, REFRESH, TokenIssuer
from conftest import TEST_SECRET, FakeClock, make_settings

IDENTITY = ("u-123", "ada@example.com", "Ada", "Lovelace")


def _tamper_signature(token: str) -> str:
    header, payload, signature = token.split(".")
    first = "A" if signature[0] != "A" else "B"
    return ".".join([header, payload, first + signature[1:]])


def _b64(data: dict) -> str:
    return base64.urlsafe_b64encode(json.dumps(data).encode()).rstrip(b"=").decode()


# ---------------------------------------------------------------------------
# Round trip
# ---------------------------------------------------------------------------


def test_access_token_claims_match_identity(issuer: TokenIssuer, clock: FakeClock) -> None:
    pair = issuer.issue(*IDENTITY)
    claims = issuer.validate(pair.access_token)
    assert claims.user_id == "u-123"
    assert claims.email == "ada@example.com"
    assert claims.first_name == "Ada"
    assert claims.last_name == "Lovelace"
    assert claims.token_type == ACCESS
    assert claims.expires_at == int(clock.now.timestamp()) + 24 * 3600


def test_refresh_token_carries_only_user_id(issuer: TokenIssuer, clock: FakeClock) -> None:
    pair = issuer.issue(*IDENTITY)
    claims = issuer.validate(pair.refresh_token, expected_type=REFRESH)
    assert claims.user_id == "u-123"
    assert claims.email is None
    assert claims.first_name is None
    assert claims.expires_at == int(clock.now.timestamp()) + 168 * 3600


def test_token_types_are_not_interchangeable(issuer: TokenIssuer) -> None:
    pair = issuer.issue(*IDENTITY)
    with pytest.raises(MalformedToken):
        issuer.validate(pair.refresh_token)
    with pytest.raises(MalformedToken):
        issuer.validate(pair.access_token, expected_type=REFRESH)


def test_pairs_issued_in_same_instant_differ(issuer: TokenIssuer) -> None:
    first = issuer.issue(*IDENTITY)
    second = issuer.issue(*IDENTITY)
    assert first.access_token != second.access_token
    assert first.refresh_token != second.refresh_token


# ---------------------------------------------------------------------------
# Expiry
# ---------------------------------------------------------------------------


def test_access_token_expires_after_ttl(issuer: TokenIssuer, clock: FakeClock) -> None:
    pair = issuer.issue(*IDENTITY)
    clock.advance(hours=24)
    issuer.validate(pair.access_token)  # exactly at exp is still accepted
    clock.advance(seconds=1)
    with pytest.raises(ExpiredToken):
        issuer.validate(pair.access_token)
    # Refresh token lives longer.
    assert issuer.validate(pair.refresh_token, expected_type=REFRESH).user_id == "u-123"


def test_refresh_token_expires_after_ttl(issuer: TokenIssuer, clock: FakeClock) -> None:
    pair = issuer.issue(*IDENTITY)
    clock.advance(hours=168, seconds=1)
    with pytest.raises(ExpiredToken):
        issuer.validate(pair.refresh_token, expected_type=REFRESH)


def test_leeway_is_applied_only_when_configured(tmp_path) -> None:
    clock = FakeClock()
    lenient = TokenIssuer(make_settings(tmp_path, token_leeway_seconds=60), clock=clock)
    pair = lenient.issue(*IDENTITY)
    clock.advance(hours=24, seconds=30)
    assert lenient.validate(pair.access_token).user_id == "u-123"
    clock.advance(seconds=31)
    with pytest.raises(ExpiredToken):
        lenient.validate(pair.access_token)


# ---------------------------------------------------------------------------
# Signature
# ---------------------------------------------------------------------------


def test_tampered_signature_is_rejected(issuer: TokenIssuer) -> None:
    pair = issuer.issue(*IDENTITY)
    with pytest.raises(InvalidSignature):
        issuer.validate(_tamper_signature(pair.access_token))


def test_tampered_payload_is_rejected(issuer: TokenIssuer) -> None:
    """Swapping in a different claims segment keeps the structure valid but breaks the MAC."""
    pair = issuer.issue(*IDENTITY)
    header, _payload, signature = pair.access_token.split(".")
    forged_claims = _b64(
        {
            "user_id": "someone-else",
            "email": "x@example.com",
            "first_name": "X",
            "last_name": "Y",
            "type": ACCESS,
            "exp": 4102444800,
        }
    )
    with pytest.raises(InvalidSignature):
        issuer.validate(".".join([header, forged_claims, signature]))


def test_foreign_secret_is_rejected(tmp_path, issuer: TokenIssuer, clock: FakeClock) -> None:
    other = TokenIssuer(make_settings(tmp_path, secret_key="z" * 40), clock=clock)
    pair = other.issue(*IDENTITY)
    with pytest.raises(InvalidSignature):
        issuer.validate(pair.access_token)


def test_forged_and_expired_reports_signature(tmp_path, issuer: TokenIssuer, clock: FakeClock) -> None:
    """Signature is checked before expiry."""
    past = FakeClock(clock.now)
    past.advance(days=-30)
    other = TokenIssuer(make_settings(tmp_path, secret_key="z" * 40), clock=past)
    pair = other.issue(*IDENTITY)
    with pytest.raises(InvalidSignature):
        issuer.validate(pair.access_token)


def test_alg_none_is_rejected(issuer: TokenIssuer, clock: FakeClock) -> None:
    claims = {
        "user_id": "u-123",
        "email": "ada@example.com",
        "first_name": "Ada",
        "last_name": "Lovelace",
        "type": ACCESS,
        "exp": int(clock.now.timestamp()) + 3600,
    }
    token = f"{_b64({'alg': 'none', 'typ': 'JWT'})}.{_b64(claims)}."
    with pytest.raises(InvalidSignature):
        issuer.validate(token)


# ---------------------------------------------------------------------------
# Structure
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("token", ["", "not-a-token", "a.b.c", "###.###.###"])
def test_junk_is_malformed(issuer: TokenIssuer, token: str) -> None:
    with pytest.raises(MalformedToken):
        issuer.validate(token)


def test_missing_identity_claims_is_malformed(issuer: TokenIssuer, clock: FakeClock) -> None:
    token = jwt.encode(
        {"user_id": "u-123", "type": ACCESS, "exp": int(clock.now.timestamp()) + 3600},
        TEST_SECRET,
        algorithm="HS256",
    )
    with pytest.raises(MalformedToken):
        issuer.validate(token)


def test_missing_exp_is_malformed(issuer: TokenIssuer) -> None:
    token = jwt.encode({"user_id": "u-123", "type": REFRESH}, TEST_SECRET, algorithm="HS256")
    with pytest.raises(MalformedToken):
        issuer.validate(token, expected_type=REFRESH)
