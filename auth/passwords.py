"""Argon2 password hashing via argon2-cffi."""

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError


class PasswordVerifier:
    """Hash and verify passwords.

    argon2 compares digests in constant time. For unknown users the caller
    still calls `verify_dummy` so a missing account costs the same time as a
    wrong password.
    """

    def __init__(self, hasher: PasswordHasher | None = None):
        self._hasher = hasher or PasswordHasher()
        self._dummy_hash = self._hasher.hash("not-a-real-password")

    def hash(self, password: str) -> str:
        """Hash a plaintext password."""
        return self._hasher.hash(password)

    def verify(self, password_hash: str, password: str) -> bool:
        """True iff `password` matches `password_hash`."""
        try:
            return self._hasher.verify(password_hash, password)
        except (VerificationError, InvalidHashError):
            return False

    def verify_dummy(self, password: str) -> bool:
        """Burn one verification against a throwaway hash. Always False."""
        self.verify(self._dummy_hash, password)
        return False
