"""
Shared web helpers for the admin and student routers.

Keeps role checks, id validation and the private-cache JSON helpers in one
place so the routers cannot drift apart on status codes or cache headers.
"""
from __future__ import annotations

from typing import Optional, Tuple
from uuid import UUID

from fastapi import Request
from fastapi.responses import JSONResponse

from identity_access.stores import DuplicateEmailError

PRIVATE_CACHE_HEADERS = {"Cache-Control": "private, no-store"}

# Exceptions services raise for caller mistakes; anything else is a dependency failure.
DOMAIN_ERRORS = (DuplicateEmailError, PermissionError, ValueError, LookupError)


def _json_private(payload, *, status_code: int = 200) -> JSONResponse:
    """Return a JSONResponse with cache disabled for shared caches and browsers.

    Every payload here is role-scoped (tokens, temporary passwords, signed
    URLs), so respond with "private, no-store".
    """
    return JSONResponse(content=payload, status_code=status_code, headers=dict(PRIVATE_CACHE_HEADERS))


def _private_error(error: str, *, status_code: int, detail: Optional[str] = None) -> JSONResponse:
    payload = {"error": error}
    if detail:
        payload["detail"] = detail
    return _json_private(payload, status_code=status_code)


def _bad_request(detail: str) -> JSONResponse:
    return _private_error("bad_request", status_code=400, detail=detail)


def _not_found(detail: Optional[str] = None) -> JSONResponse:
    return _private_error("not_found", status_code=404, detail=detail)


def _forbidden(detail: Optional[str] = None) -> JSONResponse:
    return _private_error("forbidden", status_code=403, detail=detail)


def _server_error(detail: str = "internal_error") -> JSONResponse:
    return _private_error("server_error", status_code=500, detail=detail)


def _domain_error(exc: Exception) -> JSONResponse:
    """Map a service exception carrying a string code onto the error contract."""
    code = str(exc) or None
    if isinstance(exc, DuplicateEmailError):
        return _private_error("conflict", status_code=409, detail=exc.code)
    if isinstance(exc, PermissionError):
        return _forbidden(code)
    if isinstance(exc, ValueError):
        return _bad_request(code or "invalid_input")
    if isinstance(exc, LookupError):
        return _not_found(code)
    return _server_error()


def _require_role(request: Request, role: str) -> Tuple[Optional[dict], Optional[JSONResponse]]:
    """Return (user, error_response) ensuring the caller holds `role`."""
    user = getattr(request.state, "user", None)
    if not user:
        return None, _private_error("unauthenticated", status_code=401)
    if user.get("role") != role:
        return None, _forbidden()
    return user, None


def _require_admin(request: Request):
    return _require_role(request, "admin")


def _require_student(request: Request):
    return _require_role(request, "student")


def _is_uuid_like(value: str) -> bool:
    """Best-effort UUID format check without coercing FastAPI to return 422."""
    try:
        UUID(str(value))
    except (ValueError, TypeError):
        return False
    return True
