"""
Admin API routes: students, batches, memberships and resources.

Why:
    Admins enroll students, organise them into batches and distribute files
    to those batches. The adapter enforces the admin role and delegates to the
    identity and classroom services.

Notes:
    - Every response is private, no-store: payloads carry temporary passwords
      and signed URLs.
    - Ids in bodies and queries are validated as UUIDs before any lookup so a
      malformed id is a 400 rather than a 404 or a driver error.
    - Services raise ValueError/LookupError/PermissionError/DuplicateEmailError
      with string codes; these map to 400/404/403/409. Storage and device-state
      failures map to 500 without exposing detail.
"""
from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Set

from fastapi import APIRouter, File, Form, Request, UploadFile
from fastapi.responses import Response
from pydantic import BaseModel, EmailStr, Field
from pydantic.functional_validators import field_validator

from classroom.exports import password_reset_filename, render_password_reset_csv
from classroom.records import Batch, Resource
from identity_access.domain import validate_device_limit
from identity_access.stores import StudentRecord

from .security import (
    DOMAIN_ERRORS,
    PRIVATE_CACHE_HEADERS,
    _bad_request,
    _domain_error,
    _is_uuid_like,
    _json_private,
    _not_found,
    _require_admin,
    _server_error,
)

try:
    from .. import wiring
    from ..storage_wiring import ensure_storage_adapter
except ImportError:
    import wiring  # type: ignore
    from storage_wiring import ensure_storage_adapter  # type: ignore

admin_router = APIRouter(tags=["Admin"])
logger = logging.getLogger("resourcehub.web.admin")


# --- Request models -------------------------------------------------------------


class EnrollStudentPayload(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    email: EmailStr

    @field_validator("name")
    @classmethod
    def _strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("invalid_name")
        return v


class SetPasswordPayload(BaseModel):
    studentId: str
    newPassword: str = Field(..., max_length=512)


class SetDeviceLimitPayload(BaseModel):
    studentId: str
    deviceLimit: int


class CreateBatchPayload(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)


class BatchStudentPayload(BaseModel):
    batchId: str
    studentId: str


class AssignBatchesPayload(BaseModel):
    studentId: str
    batchIds: List[str] = Field(default_factory=list)


class BatchResourcePayload(BaseModel):
    batchId: str
    resourceId: str


class StudentIdPayload(BaseModel):
    studentId: str


class BatchIdPayload(BaseModel):
    batchId: str


class ResourceIdPayload(BaseModel):
    resourceId: str


# --- Serialization --------------------------------------------------------------


def _serialize_student(student: StudentRecord, batch_ids: Iterable[str]) -> Dict[str, object]:
    return {
        "id": student.id,
        "name": student.name,
        "email": student.email,
        "deviceLimit": student.device_limit,
        "activeDevices": list(student.active_devices),
        "batchIds": sorted(batch_ids),
        "createdAt": student.created_at,
    }


def _serialize_batch(batch: Batch) -> Dict[str, object]:
    return {"id": batch.id, "title": batch.title, "createdAt": batch.created_at}


def _serialize_resource(resource: Resource, *, batch_ids: Iterable[str], url: Optional[str] = None, with_url: bool = False) -> Dict[str, object]:
    out: Dict[str, object] = {
        "id": resource.id,
        "title": resource.title,
        "filename": resource.filename,
        "mimeType": resource.mime_type,
        "sizeBytes": resource.size_bytes,
        "createdAt": resource.created_at,
        "batchIds": sorted(batch_ids),
    }
    if with_url:
        out["url"] = url
    return out


def _invalid_ids(*pairs: tuple) -> Optional[Response]:
    """Return a 400 for the first (value, detail) pair that is not UUID-like."""
    for value, detail in pairs:
        if not _is_uuid_like(value):
            return _bad_request(detail)
    return None


def _csv_attachment(content: str, filename: str) -> Response:
    headers = dict(PRIVATE_CACHE_HEADERS)
    headers["Content-Disposition"] = f'attachment; filename="{filename}"'
    return Response(content=content, media_type="text/csv", headers=headers)


# --- Students -------------------------------------------------------------------


@admin_router.post("/admin/enroll-student")
async def enroll_student(request: Request, payload: EnrollStudentPayload):
    """Create a student with a generated temporary password.

    Behavior:
        - 201 `{id, name, email, password}`; the password is shown only here
        - 409 when the email is already registered
    """
    _user, error = _require_admin(request)
    if error:
        return error
    try:
        student, password = wiring.credential_store().enroll_student(payload.name, str(payload.email))
    except DOMAIN_ERRORS as exc:
        return _domain_error(exc)
    logger.info("Enrolled student %s", student.id)
    return _json_private(
        {"id": student.id, "name": student.name, "email": student.email, "password": password},
        status_code=201,
    )


@admin_router.put("/admin/set-student-password")
async def set_student_password(request: Request, payload: SetPasswordPayload):
    _user, error = _require_admin(request)
    if error:
        return error
    invalid = _invalid_ids((payload.studentId, "invalid_student_id"))
    if invalid:
        return invalid
    try:
        wiring.credential_store().set_password(payload.studentId, payload.newPassword)
    except DOMAIN_ERRORS as exc:
        return _domain_error(exc)
    return _json_private({"message": "Password updated"}, status_code=200)


@admin_router.put("/admin/set-student-device-limit")
async def set_student_device_limit(request: Request, payload: SetDeviceLimitPayload):
    """Change how many devices a student may hold at once.

    A lower limit does not evict existing devices; it applies on the next
    login from a new device.
    """
    _user, error = _require_admin(request)
    if error:
        return error
    invalid = _invalid_ids((payload.studentId, "invalid_student_id"))
    if invalid:
        return invalid
    try:
        limit = validate_device_limit(payload.deviceLimit)
        if not wiring.get_account_store().set_device_limit(payload.studentId, limit):
            return _not_found("student_not_found")
    except DOMAIN_ERRORS as exc:
        return _domain_error(exc)
    return _json_private({"studentId": payload.studentId, "deviceLimit": limit}, status_code=200)


@admin_router.get("/admin/students")
async def list_students(request: Request):
    _user, error = _require_admin(request)
    if error:
        return error
    memberships = wiring.get_classroom_repo().batch_ids_by_student()
    students = wiring.get_account_store().list_students()
    return _json_private([_serialize_student(s, memberships.get(s.id, set())) for s in students], status_code=200)


@admin_router.get("/admin/students-by-batch")
async def students_by_batch(request: Request, batch_id: Optional[str] = None):
    """List students of one batch, or all students when `batch_id` is absent."""
    _user, error = _require_admin(request)
    if error:
        return error
    memberships = wiring.get_classroom_repo().batch_ids_by_student()
    students = wiring.get_account_store().list_students()
    if batch_id is not None:
        invalid = _invalid_ids((batch_id, "invalid_batch_id"))
        if invalid:
            return invalid
        try:
            member_ids: Set[str] = wiring.membership_graph().students_in_batch(batch_id)
        except DOMAIN_ERRORS as exc:
            return _domain_error(exc)
        students = [s for s in students if s.id in member_ids]
    return _json_private([_serialize_student(s, memberships.get(s.id, set())) for s in students], status_code=200)


@admin_router.put("/admin/reset-password")
async def reset_password(request: Request, payload: StudentIdPayload):
    """Reset a student's password and return it once as a CSV attachment."""
    _user, error = _require_admin(request)
    if error:
        return error
    invalid = _invalid_ids((payload.studentId, "invalid_student_id"))
    if invalid:
        return invalid
    try:
        student, password = wiring.credential_store().reset_password(payload.studentId)
    except DOMAIN_ERRORS as exc:
        return _domain_error(exc)
    logger.info("Password reset for student %s", student.id)
    content = render_password_reset_csv([{"name": student.name, "email": student.email, "password": password}])
    return _csv_attachment(content, password_reset_filename(student.id))


# --- Batches & memberships ------------------------------------------------------


@admin_router.post("/admin/create-batch")
async def create_batch(request: Request, payload: CreateBatchPayload):
    _user, error = _require_admin(request)
    if error:
        return error
    try:
        batch = wiring.get_classroom_repo().create_batch(title=payload.title)
    except DOMAIN_ERRORS as exc:
        return _domain_error(exc)
    return _json_private(_serialize_batch(batch), status_code=201)


@admin_router.get("/admin/batches")
async def list_batches(request: Request):
    _user, error = _require_admin(request)
    if error:
        return error
    batches = wiring.get_classroom_repo().list_batches()
    return _json_private([_serialize_batch(b) for b in batches], status_code=200)


@admin_router.post("/admin/add-student-to-batch")
async def add_student_to_batch(request: Request, payload: BatchStudentPayload):
    _user, error = _require_admin(request)
    if error:
        return error
    invalid = _invalid_ids((payload.batchId, "invalid_batch_id"), (payload.studentId, "invalid_student_id"))
    if invalid:
        return invalid
    try:
        created = wiring.membership_graph().add_student_to_batch(payload.batchId, payload.studentId)
    except DOMAIN_ERRORS as exc:
        return _domain_error(exc)
    return _json_private(
        {"batchId": payload.batchId, "studentId": payload.studentId, "created": bool(created)},
        status_code=200,
    )


@admin_router.put("/admin/assign-batches")
async def assign_batches(request: Request, payload: AssignBatchesPayload):
    """Replace a student's batch memberships with exactly `batchIds`."""
    _user, error = _require_admin(request)
    if error:
        return error
    invalid = _invalid_ids((payload.studentId, "invalid_student_id"), *[(b, "invalid_batch_id") for b in payload.batchIds])
    if invalid:
        return invalid
    try:
        batch_ids = wiring.membership_graph().assign_student_to_batches(payload.studentId, payload.batchIds)
    except DOMAIN_ERRORS as exc:
        return _domain_error(exc)
    student = wiring.get_account_store().get_student(payload.studentId)
    if student is None:
        return _not_found("student_not_found")
    return _json_private(_serialize_student(student, batch_ids), status_code=200)


@admin_router.post("/admin/add-resource-to-batch")
async def add_resource_to_batch(request: Request, payload: BatchResourcePayload):
    _user, error = _require_admin(request)
    if error:
        return error
    invalid = _invalid_ids((payload.batchId, "invalid_batch_id"), (payload.resourceId, "invalid_resource_id"))
    if invalid:
        return invalid
    try:
        created = wiring.membership_graph().add_resource_to_batch(payload.batchId, payload.resourceId)
    except DOMAIN_ERRORS as exc:
        return _domain_error(exc)
    return _json_private(
        {"batchId": payload.batchId, "resourceId": payload.resourceId, "created": bool(created)},
        status_code=200,
    )


@admin_router.delete("/admin/delete-batch")
async def delete_batch(request: Request, payload: BatchIdPayload):
    """Delete a batch and every resource that belonged to it alone.

    Resources shared with another batch survive. Blob cleanup failures are
    logged and do not fail the request.
    """
    _user, error = _require_admin(request)
    if error:
        return error
    invalid = _invalid_ids((payload.batchId, "invalid_batch_id"))
    if invalid:
        return invalid
    ensure_storage_adapter()
    try:
        result = wiring.resource_service().delete_batch(payload.batchId)
    except DOMAIN_ERRORS as exc:
        return _domain_error(exc)
    except Exception as exc:
        logger.exception("Deleting batch %s failed: %s", payload.batchId, exc.__class__.__name__)
        return _server_error()
    return _json_private(
        {
            "batchId": result.batch_id,
            "deletedResourceIds": list(result.deleted_resource_ids),
            "removedStudentIds": sorted(result.removed_student_ids),
        },
        status_code=200,
    )


# --- Resources ------------------------------------------------------------------


@admin_router.post("/admin/upload")
async def upload_resource(
    request: Request,
    file: UploadFile = File(...),
    batchId: str = Form(...),
    title: Optional[str] = Form(default=None),
):
    """Upload a file into a batch.

    Behavior:
        - 201 with the resource on success
        - 400 for an empty or oversized file or an invalid title
        - 404 when the batch does not exist
        - 500 when blob storage or the record store fails
    """
    _user, error = _require_admin(request)
    if error:
        return error
    invalid = _invalid_ids((batchId, "invalid_batch_id"))
    if invalid:
        return invalid
    ensure_storage_adapter()
    service = wiring.resource_service()
    # Read one byte past the limit so oversize is detected without buffering everything.
    data = await file.read(service.settings.max_size_bytes + 1)
    try:
        resource = service.upload(
            batchId,
            data=data,
            filename=file.filename,
            mime_type=file.content_type,
            title=title,
        )
    except DOMAIN_ERRORS as exc:
        return _domain_error(exc)
    except Exception as exc:
        logger.warning("Upload into batch %s failed: %s", batchId, exc.__class__.__name__)
        return _server_error("upload_failed")
    finally:
        await file.close()
    return _json_private(_serialize_resource(resource, batch_ids=[batchId]), status_code=201)


@admin_router.get("/admin/resources")
async def list_resources(request: Request, batch_id: Optional[str] = None):
    """List resources (optionally of one batch) with short-lived signed URLs.

    A resource whose URL cannot be signed is still listed with `url: null`.
    """
    _user, error = _require_admin(request)
    if error:
        return error
    if batch_id is not None:
        invalid = _invalid_ids((batch_id, "invalid_batch_id"))
        if invalid:
            return invalid
    ensure_storage_adapter()
    service = wiring.resource_service()
    try:
        resources = service.list_resources(batch_id)
    except DOMAIN_ERRORS as exc:
        return _domain_error(exc)
    membership = wiring.membership_graph()
    items = [
        _serialize_resource(r, batch_ids=membership.batches_of_resource(r.id), url=url, with_url=True)
        for r, url in service.with_signed_urls(resources)
    ]
    return _json_private(items, status_code=200)


@admin_router.delete("/admin/delete-resource")
async def delete_resource(request: Request, payload: ResourceIdPayload):
    """Delete a resource's blob, then its record and batch links.

    A storage failure returns 500 and keeps the record so the call can be retried.
    """
    _user, error = _require_admin(request)
    if error:
        return error
    invalid = _invalid_ids((payload.resourceId, "invalid_resource_id"))
    if invalid:
        return invalid
    ensure_storage_adapter()
    try:
        wiring.resource_service().delete_resource(payload.resourceId)
    except DOMAIN_ERRORS as exc:
        return _domain_error(exc)
    except Exception as exc:
        logger.warning("Deleting resource %s failed: %s", payload.resourceId, exc.__class__.__name__)
        return _server_error("storage_delete_failed")
    return _json_private({"message": "Resource deleted", "resourceId": payload.resourceId}, status_code=200)
