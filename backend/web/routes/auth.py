"""
Login and logout routes for admins and students (router-only module).

Why:
    Keep session endpoints in a dedicated router so the admin and student
    routers only deal with authenticated callers.

Notes:
    - Login bodies are validated by pydantic; malformed bodies surface as 400
      through the app's validation handler.
    - Unknown email and wrong password produce the same 401 so callers cannot
      probe which accounts exist.
    - Student logout revokes the device bound to the presented token; admin
      tokens are not device-bound, so admin logout is stateless.
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from identity_access.devices import DeviceStateConflict
from identity_access.sessions import InvalidCredentials

from .security import _bad_request, _json_private, _require_admin, _require_student, _server_error

try:
    from .. import wiring
except ImportError:
    import wiring  # type: ignore

auth_router = APIRouter(tags=["Auth"])
logger = logging.getLogger("resourcehub.web")


class AdminLoginPayload(BaseModel):
    email: str = Field(..., min_length=1, max_length=320)
    password: str = Field(..., min_length=1, max_length=512)


class StudentLoginPayload(BaseModel):
    email: str = Field(..., min_length=1, max_length=320)
    password: str = Field(..., min_length=1, max_length=512)
    deviceId: str = Field(..., min_length=1, max_length=200)


def _invalid_credentials():
    return _json_private({"error": "invalid_credentials", "message": "Invalid credentials"}, status_code=401)


@auth_router.post("/admin/login")
async def admin_login(payload: AdminLoginPayload):
    """Exchange admin credentials for a session token.

    Behavior:
        - 200 `{token}` on success
        - 401 `invalid_credentials` for unknown email or wrong password
    """
    try:
        issued = wiring.session_service().login_admin(payload.email, payload.password)
    except InvalidCredentials:
        return _invalid_credentials()
    return _json_private({"token": issued.token}, status_code=200)


@auth_router.post("/admin/logout")
async def admin_logout(request: Request):
    _user, error = _require_admin(request)
    if error:
        return error
    return _json_private({"message": "Logged out"}, status_code=200)


@auth_router.post("/student/login")
async def student_login(payload: StudentLoginPayload):
    """Log a student in on one device.

    Behavior:
        - 200 `{token, name, studentId, evictedDeviceIds}`; a new device beyond
          the limit evicts the oldest device(s) instead of failing
        - 400 `invalid_device_id` for a blank device identifier
        - 401 `invalid_credentials`
        - 500 when concurrent device updates keep conflicting
    """
    try:
        login = wiring.session_service().login_student(payload.email, payload.password, payload.deviceId)
    except InvalidCredentials:
        return _invalid_credentials()
    except ValueError as exc:
        return _bad_request(str(exc) or "invalid_input")
    except DeviceStateConflict:
        return _server_error("device_state_conflict")
    return _json_private(
        {
            "token": login.token,
            "name": login.name,
            "studentId": login.student_id,
            "evictedDeviceIds": list(login.evicted_device_ids),
        },
        status_code=200,
    )


@auth_router.post("/student/logout")
async def student_logout(request: Request):
    user, error = _require_student(request)
    if error:
        return error
    try:
        wiring.session_service().logout_student(user["sub"], user.get("device_id") or "")
    except LookupError:
        # Account removed meanwhile; nothing left to revoke.
        logger.info("Logout for unknown student %s", user["sub"])
    except DeviceStateConflict:
        return _server_error("device_state_conflict")
    return _json_private({"message": "Logged out"}, status_code=200)
