"""
Bearer authentication: composes token verification with the registry's live
check.

Both layers must pass. Every failure (bad signature, expired, revoked,
evicted) yields `None`, so callers expose a single unauthenticated outcome.
"""
from __future__ import annotations

from typing import Optional
import logging

from .devices import DeviceRegistry
from .domain import Principal
from .tokens import SessionTokenError, SessionTokenIssuer

logger = logging.getLogger("resourcehub.identity_access")


def authenticate_bearer(token: Optional[str], *, issuer: SessionTokenIssuer, registry: DeviceRegistry) -> Optional[Principal]:
    if not token:
        return None
    try:
        claims = issuer.verify_signature_and_expiry(token)
    except SessionTokenError as exc:
        logger.debug("Session token rejected: %s", exc.code)
        return None
    sub = str(claims["sub"])
    role = str(claims["role"])
    if role != "student":
        return Principal(sub=sub, role=role)
    device_id = claims.get("device_id")
    if not registry.is_live(sub, device_id, token):
        logger.debug("Session token for student %s is no longer live", sub)
        return None
    return Principal(sub=sub, role=role, device_id=device_id)


__all__ = ["authenticate_bearer"]
