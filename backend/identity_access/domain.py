"""
Identity domain constants and simple helpers.

Why:
- Centralize roles and device-limit bounds to avoid drift between tools,
  services and the web layer.
- Keep terms aligned with the glossary (device identifier, eviction).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

# Keep roles minimal and explicit. Immutable to prevent accidental mutation.
ALLOWED_ROLES = frozenset({"student", "admin"})

DEFAULT_DEVICE_LIMIT = 2
MIN_DEVICE_LIMIT = 1
MAX_DEVICE_LIMIT = 5

MIN_PASSWORD_LENGTH = 6
# bcrypt only considers the first 72 bytes; longer inputs are rejected.
MAX_PASSWORD_BYTES = 72


@dataclass(frozen=True)
class Principal:
    """Authenticated caller as seen by the web adapter."""

    sub: str
    role: str
    device_id: Optional[str] = None


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def validate_device_limit(limit: int) -> int:
    if isinstance(limit, bool) or not isinstance(limit, int):
        raise ValueError("invalid_device_limit")
    if limit < MIN_DEVICE_LIMIT or limit > MAX_DEVICE_LIMIT:
        raise ValueError("invalid_device_limit")
    return limit


__all__ = [
    "ALLOWED_ROLES",
    "DEFAULT_DEVICE_LIMIT",
    "MIN_DEVICE_LIMIT",
    "MAX_DEVICE_LIMIT",
    "MIN_PASSWORD_LENGTH",
    "MAX_PASSWORD_BYTES",
    "Principal",
    "normalize_email",
    "validate_device_limit",
]
