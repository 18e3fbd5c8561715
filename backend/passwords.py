"""
Argon2id password hashing and verification.
"""

from __future__ import annotations

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError
from argon2.low_level import Type

password_hasher = PasswordHasher(
    time_cost=2,
    memory_cost=19456,
    parallelism=1,
    hash_len=32,
    salt_len=16,
    type=Type.ID,
)


def hash_password(plaintext: str) -> str:
    if not plaintext:
        raise ValueError("Cannot hash an empty password.")
    return password_hasher.hash(plaintext)


def verify_password(password_hash: str, plaintext: str) -> bool:
    """
    Check ``plaintext`` against an encoded argon2 hash.

    The comparison happens inside argon2 in constant time. Any mismatch or
    malformed hash yields ``False`` instead of an exception.
    """
    try:
        return password_hasher.verify(password_hash, plaintext)
    except (VerifyMismatchError, VerificationError, InvalidHashError):
        return False


def needs_rehash(password_hash: str) -> bool:
    try:
        return password_hasher.check_needs_rehash(password_hash)
    except InvalidHashError:
        return False
