"""Resource lifecycle service: records coupled 1:1 with blobs."""
from __future__ import annotations

import logging
import mimetypes
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Optional, Set, Tuple
from uuid import uuid4

from classroom.cascade import orphaned_resources
from classroom.ports import ClassroomRepoProtocol
from classroom.records import Resource
from classroom.storage import StorageAdapterProtocol
from storage.config import (
    PREVIEW_MIME_TYPES_DEFAULT,
    RESOURCES_BUCKET_DEFAULT,
    SIGNED_URL_TTL_DEFAULT,
)
from storage.keys import make_resource_key

logger = logging.getLogger("resourcehub.classroom")

_MAX_TITLE_LENGTH = 200


@dataclass
class ResourceSettings:
    """Configuration for uploaded resources."""

    storage_bucket: str = RESOURCES_BUCKET_DEFAULT
    max_size_bytes: int = 50 * 1024 * 1024
    signed_url_ttl_seconds: int = SIGNED_URL_TTL_DEFAULT
    preview_mime_types: Tuple[str, ...] = PREVIEW_MIME_TYPES_DEFAULT


@dataclass
class BatchDeletion:
    batch_id: str
    removed_student_ids: Set[str]
    deleted_resource_ids: List[str]
    # Keys whose blob could not be removed; left for the orphan scavenger.
    orphaned_keys: List[str] = field(default_factory=list)


@dataclass
class PreviewStream:
    resource: Resource
    mime_type: str
    chunks: Iterator[bytes]


def _normalize_mime(mime_type: Optional[str], filename: Optional[str]) -> str:
    value = (mime_type or "").split(";", 1)[0].strip().lower()
    if value and value != "application/octet-stream":
        return value
    guessed, _ = mimetypes.guess_type(filename or "")
    return (guessed or value or "application/octet-stream").lower()


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class ResourceLifecycleService:
    """Upload, list, stream and delete resources independent of web adapters."""

    repo: ClassroomRepoProtocol
    storage: StorageAdapterProtocol
    settings: ResourceSettings = field(default_factory=ResourceSettings)

    # --- Upload -----------------------------------------------------------------

    def upload(
        self,
        batch_id: str,
        *,
        data: bytes,
        filename: Optional[str],
        mime_type: Optional[str] = None,
        title: Optional[str] = None,
    ) -> Resource:
        """Store the blob, then the record linked to `batch_id`.

        Blob-first ordering means a record never points at a missing blob. A
        record failure after a stored blob leaves an orphan that is logged
        with its key for the scavenger.
        """
        if self.repo.get_batch(batch_id) is None:
            raise LookupError("batch_not_found")
        if not data:
            raise ValueError("empty_file")
        if len(data) > self.settings.max_size_bytes:
            raise ValueError("size_exceeded")
        original_name = (filename or "").strip() or None
        clean_title = (title or "").strip() or original_name
        if not clean_title or len(clean_title) > _MAX_TITLE_LENGTH:
            raise ValueError("invalid_title")
        mime = _normalize_mime(mime_type, original_name)
        key = make_resource_key(batch_id=batch_id, filename=original_name, epoch_ms=_now_ms(), uuid_hex=uuid4().hex)

        self.storage.put_object(bucket=self.settings.storage_bucket, key=key, body=data, content_type=mime)
        try:
            return self.repo.create_resource(
                batch_id=batch_id,
                title=clean_title,
                s3_key=key,
                filename=original_name,
                mime_type=mime,
                size_bytes=len(data),
            )
        except Exception:
            logger.exception("Stored blob %s but creating its record for batch %s failed; blob is orphaned", key, batch_id)
            raise

    # --- Reads ------------------------------------------------------------------

    def get_resource(self, resource_id: str) -> Resource:
        resource = self.repo.get_resource(resource_id)
        if resource is None:
            raise LookupError("resource_not_found")
        return resource

    def list_resources(self, batch_id: Optional[str] = None) -> List[Resource]:
        if batch_id is None:
            return self.repo.list_resources()
        if self.repo.get_batch(batch_id) is None:
            raise LookupError("batch_not_found")
        return self.repo.list_resources(self.repo.resource_ids_for_batches([batch_id]))

    def resources_by_ids(self, resource_ids: Iterable[str]) -> List[Resource]:
        ids = set(resource_ids)
        if not ids:
            return []
        return self.repo.list_resources(ids)

    def signed_url(self, resource: Resource) -> Dict[str, Any]:
        """Signed inline URL; failures propagate to the caller."""
        return self.storage.presign_download(
            bucket=self.settings.storage_bucket,
            key=resource.s3_key,
            expires_in=self.settings.signed_url_ttl_seconds,
            disposition="inline",
        )

    def with_signed_urls(self, resources: Iterable[Resource]) -> List[Tuple[Resource, Optional[str]]]:
        """Pair each resource with a signed URL, or None when signing fails."""
        out: List[Tuple[Resource, Optional[str]]] = []
        for resource in resources:
            try:
                url = self.signed_url(resource).get("url")
            except Exception as exc:
                logger.warning("Signing URL for resource %s failed: %s", resource.id, exc.__class__.__name__)
                url = None
            out.append((resource, url))
        return out

    def is_previewable(self, resource: Resource) -> bool:
        mime = _normalize_mime(resource.mime_type, resource.filename or resource.title or resource.s3_key)
        return mime in self.settings.preview_mime_types

    def open_preview(self, resource: Resource) -> PreviewStream:
        if not self.is_previewable(resource):
            raise PermissionError("not_previewable")
        mime = _normalize_mime(resource.mime_type, resource.filename or resource.title or resource.s3_key)
        chunks = self.storage.open_stream(bucket=self.settings.storage_bucket, key=resource.s3_key)
        return PreviewStream(resource=resource, mime_type=mime, chunks=chunks)

    # --- Deletion ---------------------------------------------------------------

    def delete_resource(self, resource_id: str) -> None:
        """Delete blob first, then the record and its edges.

        A failed blob delete leaves the record untouched so the call can be
        retried; success therefore means neither remains.
        """
        resource = self.get_resource(resource_id)
        try:
            self.storage.delete_object(bucket=self.settings.storage_bucket, key=resource.s3_key)
        except Exception:
            logger.exception("Failed deleting blob %s for resource %s", resource.s3_key, resource_id)
            raise
        if not self.repo.delete_resource(resource_id):
            raise LookupError("resource_not_found")

    def delete_batch(self, batch_id: str) -> BatchDeletion:
        """Remove the batch, its edges and every resource left without a batch.

        Orphans are computed from edges read after this call's own removals.
        Cleanup is best-effort: a failed blob delete is logged and the cascade
        continues.
        """
        if self.repo.get_batch(batch_id) is None:
            raise LookupError("batch_not_found")
        removed_students, removed_edges = self.repo.remove_batch_edges(batch_id)
        remaining = self.repo.resource_edges_for({res for _, res in removed_edges})
        orphans = orphaned_resources(remaining | removed_edges, removed_edges)

        deleted: List[str] = []
        failed_keys: List[str] = []
        for resource_id in sorted(orphans):
            resource = self.repo.get_resource(resource_id)
            if resource is None or not self.repo.delete_resource(resource_id):
                continue
            deleted.append(resource_id)
            try:
                self.storage.delete_object(bucket=self.settings.storage_bucket, key=resource.s3_key)
            except Exception:
                logger.exception(
                    "Blob cleanup failed for resource %s (key %s) while deleting batch %s; blob is orphaned",
                    resource_id,
                    resource.s3_key,
                    batch_id,
                )
                failed_keys.append(resource.s3_key)

        late = self.repo.resource_ids_for_batches([batch_id])
        if late:
            logger.warning(
                "Resources %s were linked to batch %s during its deletion and may be left without a batch",
                sorted(late),
                batch_id,
            )
        self.repo.delete_batch(batch_id)
        logger.info(
            "Deleted batch %s: %d student link(s), %d resource(s) removed",
            batch_id,
            len(removed_students),
            len(deleted),
        )
        return BatchDeletion(
            batch_id=batch_id,
            removed_student_ids=removed_students,
            deleted_resource_ids=deleted,
            orphaned_keys=failed_keys,
        )


__all__ = [
    "BatchDeletion",
    "PreviewStream",
    "ResourceLifecycleService",
    "ResourceSettings",
]
