"""
auth/passwords.py -- Password digest creation and verification.

bcrypt is used directly (no passlib wrapper). The digest string embeds the
algorithm, cost factor and salt ("$2b$12$<salt><hash>"), so verification
needs nothing but the stored value.

bcrypt only looks at the first 72 bytes of a password and recent releases
raise ValueError above that. The API layer rejects longer passwords before
they reach hash(); verify() treats them as a mismatch.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import bcrypt

MAX_PASSWORD_BYTES = 72


class PasswordHasher:
    """Salted, cost-tunable one-way password hashing.

    Usage:
        hasher = PasswordHasher(rounds=settings.bcrypt_rounds)
        digest = hasher.hash("s3cret-pass")
        hasher.verify("s3cret-pass", digest)  # True
    """

    def __init__(self, rounds: int = 12) -> None:
        self.rounds = rounds
        # Verified against when the login email is unknown so both failure
        # paths cost one bcrypt check.
        self.dummy_hash: str = self.hash("elewa_timing_dummy")

    def hash(self, plain: str) -> str:
        """Return a bcrypt digest of plain. Raises only on a broken runtime or oversize input."""
        return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")

    def verify(self, plain: str, hashed: str) -> bool:
        """Return True if plain matches the digest. Never raises on mismatch."""
        try:
            return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
        except (ValueError, TypeError):
            return False
