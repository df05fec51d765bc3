"""Argon2id password hashing."""
from __future__ import annotations

from argon2 import PasswordHasher
from argon2 import exceptions as argon_exc

_HASHER = PasswordHasher(
    time_cost=3,
    memory_cost=65536,
    parallelism=4,
    hash_len=32,
    salt_len=16,
)

# Verified against unknown usernames so both login failures cost the same.
DUMMY_HASH = _HASHER.hash("dummy-password-for-timing")


class Argon2PasswordHasher:
    def hash(self, password: str) -> str:
        return _HASHER.hash(password)

    def verify(self, password_hash: str, password: str) -> bool:
        try:
            return _HASHER.verify(password_hash, password)
        except (argon_exc.VerifyMismatchError, argon_exc.InvalidHashError, argon_exc.VerificationError):
            return False
