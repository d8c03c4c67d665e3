"""
Shared authentication utilities.

Why:
    Avoid duplicating bearer-header parsing across the middleware and the
    logout handlers. The helper is framework-agnostic and pure: it accepts the
    raw header value and returns the token or None.
"""

from __future__ import annotations

from typing import Optional


def bearer_token_from_header(value: Optional[str]) -> Optional[str]:
    """Extract the token from an `Authorization: Bearer <token>` header.

    Returns None for a missing header, another scheme or an empty token; the
    caller treats all of these as unauthenticated.
    """
    if not value:
        return None
    scheme, _, token = value.strip().partition(" ")
    if scheme.lower() != "bearer":
        return None
    token = token.strip()
    return token or None
