"""Unit tests for auth/passwords.py -- bcrypt digest creation and verification."""

from auth.passwords import PasswordHasher


def test_verify_accepts_original_secret(hasher: PasswordHasher) -> None:
    digest = hasher.hash("s3cret-pass")
    assert hasher.verify("s3cret-pass", digest) is True


def test_verify_rejects_other_secret(hasher: PasswordHasher) -> None:
    digest = hasher.hash("s3cret-pass")
    assert hasher.verify("s3cret-pasS", digest) is False
    assert hasher.verify("", digest) is False


def test_digest_is_salted_and_embeds_cost(hasher: PasswordHasher) -> None:
    """Same input twice gives two different digests, both carrying $2b$04$."""
    first = hasher.hash("s3cret-pass")
    second = hasher.hash("s3cret-pass")
    assert first != second
    assert first.startswith("$2b$04$")
    assert "s3cret-pass" not in first


def test_verify_never_raises_on_bad_digest(hasher: PasswordHasher) -> None:
    assert hasher.verify("anything", "not-a-bcrypt-digest") is False
    assert hasher.verify("anything", "") is False


def test_verify_treats_oversize_password_as_mismatch(hasher: PasswordHasher) -> None:
    digest = hasher.hash("short-pass")
    assert hasher.verify("x" * 200, digest) is False


def test_dummy_hash_uses_configured_rounds() -> None:
    assert PasswordHasher(rounds=5).dummy_hash.startswith("$2b$05$")
