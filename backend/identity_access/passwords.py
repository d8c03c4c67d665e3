"""
Password hashing and temporary password generation.

Security:
- Hashes use bcrypt with a per-hash salt. The cost factor can be lowered via
  BCRYPT_ROUNDS for test runs; production keeps the library default (12).
- Plaintext passwords are never logged or stored.
"""
from __future__ import annotations

import os
import secrets
import string

import bcrypt

from .domain import MAX_PASSWORD_BYTES

TEMP_PASSWORD_LENGTH = 12
_TEMP_PASSWORD_ALPHABET = string.ascii_letters + string.digits


def _rounds() -> int:
    raw = (os.getenv("BCRYPT_ROUNDS") or "").strip()
    try:
        value = int(raw) if raw else 12
    except ValueError:
        return 12
    # bcrypt accepts 4..31
    return min(max(value, 4), 31)


def _encode(plaintext: str) -> bytes:
    if not isinstance(plaintext, str) or not plaintext:
        raise ValueError("invalid_password")
    encoded = plaintext.encode("utf-8")
    if len(encoded) > MAX_PASSWORD_BYTES:
        raise ValueError("password_too_long")
    return encoded


def hash_password(plaintext: str) -> str:
    """Return a bcrypt hash (ASCII) for the given plaintext."""
    return bcrypt.hashpw(_encode(plaintext), bcrypt.gensalt(rounds=_rounds())).decode("ascii")


def verify_password(plaintext: str, password_hash: str) -> bool:
    """Check plaintext against a stored bcrypt hash.

    Malformed hashes and over-long inputs count as a mismatch.
    """
    try:
        encoded = _encode(plaintext)
    except ValueError:
        return False
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(encoded, password_hash.encode("ascii"))
    except ValueError:
        return False


def generate_temporary_password(length: int = TEMP_PASSWORD_LENGTH) -> str:
    """Fixed-length alphanumeric secret from the OS CSPRNG (~71 bits at 12 chars)."""
    return "".join(secrets.choice(_TEMP_PASSWORD_ALPHABET) for _ in range(length))


__all__ = [
    "TEMP_PASSWORD_LENGTH",
    "hash_password",
    "verify_password",
    "generate_temporary_password",
]
