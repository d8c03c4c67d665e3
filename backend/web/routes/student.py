"""
Student API routes: own account, visible resources and resource access.

Why:
    Students see exactly the resources shared with at least one of their
    batches. Every direct access (signed URL or inline stream) re-checks
    membership through the access gate; listings are filtered by the same
    graph.

Status order for a single resource: malformed id (400) → missing (404) →
no shared batch (403) → not previewable (403) → storage failure (500).
"""
from __future__ import annotations

import logging
import re
from typing import Dict, Optional

from fastapi import APIRouter, Request
from fastapi.responses import Response, StreamingResponse
from pydantic import BaseModel, Field

from classroom.exports import password_reset_filename, render_password_reset_csv
from classroom.records import Resource

from .security import (
    DOMAIN_ERRORS,
    PRIVATE_CACHE_HEADERS,
    _bad_request,
    _domain_error,
    _is_uuid_like,
    _json_private,
    _require_student,
    _server_error,
)

try:
    from .. import wiring
    from ..storage_wiring import ensure_storage_adapter
except ImportError:
    import wiring  # type: ignore
    from storage_wiring import ensure_storage_adapter  # type: ignore

student_router = APIRouter(tags=["Student"])
logger = logging.getLogger("resourcehub.web.student")

_UNSAFE_FILENAME_CHARS = re.compile(r'[^A-Za-z0-9._ -]+')


class ChangePasswordPayload(BaseModel):
    oldPassword: str = Field(..., max_length=512)
    newPassword: str = Field(..., max_length=512)


def _serialize_resource(resource: Resource, *, url: Optional[str], previewable: bool) -> Dict[str, object]:
    return {
        "id": resource.id,
        "title": resource.title,
        "filename": resource.filename,
        "mimeType": resource.mime_type,
        "sizeBytes": resource.size_bytes,
        "createdAt": resource.created_at,
        "previewable": previewable,
        "url": url,
    }


def _inline_filename(resource: Resource) -> str:
    name = _UNSAFE_FILENAME_CHARS.sub("_", resource.filename or resource.title or "resource").strip() or "resource"
    return name[:150]


def _accessible_resource(student_id: str, resource_id: str):
    """Return (resource, error_response) after the 400/404/403 checks."""
    if not _is_uuid_like(resource_id):
        return None, _bad_request("invalid_resource_id")
    try:
        resource = wiring.resource_service().get_resource(resource_id)
        wiring.access_gate().ensure_access(student_id, resource_id)
    except DOMAIN_ERRORS as exc:
        return None, _domain_error(exc)
    return resource, None


@student_router.put("/student/change-password")
async def change_password(request: Request, payload: ChangePasswordPayload):
    user, error = _require_student(request)
    if error:
        return error
    try:
        wiring.credential_store().change_password(user["sub"], payload.oldPassword, payload.newPassword)
    except DOMAIN_ERRORS as exc:
        return _domain_error(exc)
    return _json_private({"message": "Password updated"}, status_code=200)


@student_router.post("/student/reset-password")
async def reset_own_password(request: Request):
    """Replace the caller's password with a temporary one, returned once as CSV."""
    user, error = _require_student(request)
    if error:
        return error
    try:
        student, password = wiring.credential_store().reset_password(user["sub"])
    except DOMAIN_ERRORS as exc:
        return _domain_error(exc)
    content = render_password_reset_csv([{"name": student.name, "email": student.email, "password": password}])
    headers = dict(PRIVATE_CACHE_HEADERS)
    headers["Content-Disposition"] = f'attachment; filename="{password_reset_filename(student.id)}"'
    return Response(content=content, media_type="text/csv", headers=headers)


@student_router.get("/student/resources")
async def list_my_resources(request: Request):
    """List resources shared with any of the caller's batches, with signed URLs."""
    user, error = _require_student(request)
    if error:
        return error
    ensure_storage_adapter()
    service = wiring.resource_service()
    visible = wiring.membership_graph().resources_visible_to(user["sub"])
    resources = service.resources_by_ids(visible)
    items = [
        _serialize_resource(r, url=url, previewable=service.is_previewable(r))
        for r, url in service.with_signed_urls(resources)
    ]
    return _json_private(items, status_code=200)


@student_router.get("/student/resource-encrypted/{resource_id}")
async def resource_signed_url(request: Request, resource_id: str):
    """Return a short-lived signed URL for one resource the caller may read."""
    user, error = _require_student(request)
    if error:
        return error
    resource, error = _accessible_resource(user["sub"], resource_id)
    if error:
        return error
    ensure_storage_adapter()
    service = wiring.resource_service()
    try:
        signed = service.signed_url(resource)
    except Exception as exc:
        logger.error("Signing URL for resource %s failed: %s", resource_id, exc.__class__.__name__)
        return _server_error("signed_url_failed")
    return _json_private(
        {"url": signed.get("url"), "expiresIn": service.settings.signed_url_ttl_seconds},
        status_code=200,
    )


@student_router.get("/student/resource/{resource_id}/file")
async def resource_inline_file(request: Request, resource_id: str):
    """Stream a previewable resource inline through the server."""
    user, error = _require_student(request)
    if error:
        return error
    resource, error = _accessible_resource(user["sub"], resource_id)
    if error:
        return error
    ensure_storage_adapter()
    try:
        preview = wiring.resource_service().open_preview(resource)
    except DOMAIN_ERRORS as exc:
        return _domain_error(exc)
    except Exception as exc:
        logger.error("Opening stream for resource %s failed: %s", resource_id, exc.__class__.__name__)
        return _server_error("stream_failed")
    headers = dict(PRIVATE_CACHE_HEADERS)
    headers["Content-Disposition"] = f'inline; filename="{_inline_filename(resource)}"'
    headers["X-Content-Type-Options"] = "nosniff"
    return StreamingResponse(preview.chunks, media_type=preview.mime_type, headers=headers)
