"""Blob store interface for uploaded resources."""
from __future__ import annotations

from typing import Any, Dict, Iterator, List, Protocol


class StorageAdapterProtocol(Protocol):
    """Protocol describing the storage adapter used for resource blobs."""

    def put_object(self, *, bucket: str, key: str, body: bytes, content_type: str) -> None: ...

    def presign_download(self, *, bucket: str, key: str, expires_in: int, disposition: str) -> Dict[str, Any]: ...

    def delete_object(self, *, bucket: str, key: str) -> None: ...

    def open_stream(self, *, bucket: str, key: str) -> Iterator[bytes]: ...

    def list_objects(self, *, bucket: str, prefix: str) -> List[str]: ...


class NullStorageAdapter:
    """Fallback adapter that signals the storage backend is not configured."""

    def put_object(self, *, bucket: str, key: str, body: bytes, content_type: str) -> None:  # noqa: D401
        raise RuntimeError("storage_adapter_not_configured")

    def presign_download(self, *, bucket: str, key: str, expires_in: int, disposition: str) -> Dict[str, Any]:  # noqa: D401
        raise RuntimeError("storage_adapter_not_configured")

    def delete_object(self, *, bucket: str, key: str) -> None:  # noqa: D401
        raise RuntimeError("storage_adapter_not_configured")

    def open_stream(self, *, bucket: str, key: str) -> Iterator[bytes]:  # noqa: D401
        raise RuntimeError("storage_adapter_not_configured")

    def list_objects(self, *, bucket: str, prefix: str) -> List[str]:  # noqa: D401
        raise RuntimeError("storage_adapter_not_configured")


__all__ = ["StorageAdapterProtocol", "NullStorageAdapter"]
