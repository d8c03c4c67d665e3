"""
Supabase-backed storage adapter for resource blobs.

Wraps whatever `create_client(...)` returns; the adapter only touches the
bucket proxy, so tests pass a SimpleNamespace instead of the real client.
Bucket proxy calls used here:

- upload(path, body, file_options)
- create_signed_url(path, expires_in, options) returning a dict with the URL
  under `signedURL`, `signed_url` or `url` (sometimes nested in `data`)
- remove([path])
- list(path, options) returning entries; folder entries carry `id = None`

Blob bodies for inline preview are fetched over a signed URL with `requests`
and streamed in chunks.

Security:
- Construct the client with the Service Role key; the resources bucket is
  private and callers only ever see short-lived signed URLs.
"""
from __future__ import annotations

from typing import Any, Dict, Iterator, List, Optional
import logging
import os
from urllib.parse import urlparse as _urlparse, urlunparse as _urlunparse

import requests

from .storage import StorageAdapterProtocol

logger = logging.getLogger("resourcehub.storage")

_STREAM_CHUNK_BYTES = 64 * 1024
_LIST_PAGE_SIZE = 1000


class SupabaseStorageAdapter(StorageAdapterProtocol):
    """Storage adapter using a supabase client for Storage operations."""

    def __init__(self, client: Any, *, http: Any = None, stream_timeout: float = 10.0):
        # Duck-typed supabase client, e.g., from `supabase import create_client(...)`.
        self._client = client
        self._http = http or requests
        self._stream_timeout = stream_timeout

    # --- Helpers -----------------------------------------------------------------

    def _bucket(self, bucket: str) -> Any:
        """Return a bucket proxy from either supabase client or storage3 client.

        Supports two client shapes:
        - supabase.create_client(...): expose `.storage.from_(bucket)`
        - storage3 SyncStorageClient: expose `.from_(bucket)` directly
        """
        c = self._client
        storage = getattr(c, "storage", None)
        if storage is not None and hasattr(storage, "from_"):
            return storage.from_(bucket)
        if hasattr(c, "from_"):
            return c.from_(bucket)  # type: ignore[attr-defined]
        raise RuntimeError("invalid_supabase_client")

    @staticmethod
    def _first_key(d: Dict[str, Any], *keys: str) -> Any:
        for k in keys:
            if k in d and d[k] is not None:
                return d[k]
        return None

    @staticmethod
    def _norm_key(bucket: str, key: str) -> str:
        # Storage paths are relative to the bucket (storage3 prepends the bucket id).
        norm_key = (key or "").lstrip("/")
        prefix = f"{bucket}/"
        if norm_key.startswith(prefix):
            norm_key = norm_key[len(prefix):]
        return norm_key

    def _signed_url_from(self, res: Any) -> tuple[Optional[str], Any]:
        url = None
        expires_at = None
        if isinstance(res, dict):
            url = self._first_key(res, "url", "signed_url", "signedURL")
            expires_at = self._first_key(res, "expires_at", "expiresAt")
            data = res.get("data") if "data" in res else None
            if (url is None or expires_at is None) and isinstance(data, dict):
                url = url or self._first_key(data, "url", "signed_url", "signedURL")
                expires_at = expires_at or self._first_key(data, "expires_at", "expiresAt")
        elif isinstance(res, (list, tuple)) and res and isinstance(res[0], dict):
            # Some client versions return a (data, error) tuple
            url = self._first_key(res[0], "url", "signed_url", "signedURL")
            expires_at = self._first_key(res[0], "expires_at", "expiresAt")
        return (str(url) if url else None), expires_at

    # --- Protocol methods --------------------------------------------------------

    def put_object(self, *, bucket: str, key: str, body: bytes, content_type: str) -> None:
        """Upload a binary object.

        Passes content-type via options in both kebab and camel case to stay
        compatible across client versions. Propagates client exceptions.
        """
        b = self._bucket(bucket)
        opts = {"content-type": content_type, "contentType": content_type}
        b.upload(self._norm_key(bucket, key), body, opts)

    def presign_download(self, *, bucket: str, key: str, expires_in: int, disposition: str) -> Dict[str, Any]:
        b = self._bucket(bucket)
        norm_key = self._norm_key(bucket, key)
        # Servers may ignore the download hint; our API consumes only the URL + expiry.
        opts = {"download": None if disposition == "inline" else norm_key.split("/")[-1]}
        res = b.create_signed_url(norm_key, expires_in, opts)
        url, expires_at = self._signed_url_from(res)
        if not url:
            raise RuntimeError("failed_to_presign_download")
        return {"url": self._normalize_signed_url_host(url), "expires_at": expires_at}

    def delete_object(self, *, bucket: str, key: str) -> None:
        b = self._bucket(bucket)
        b.remove([self._norm_key(bucket, key)])

    def open_stream(self, *, bucket: str, key: str) -> Iterator[bytes]:
        """Stream an object through a short-lived signed URL.

        The GET is issued before returning, so HTTP errors surface to the
        caller ahead of any response bytes.
        """
        signed = self.presign_download(bucket=bucket, key=key, expires_in=60, disposition="inline")
        resp = self._http.get(signed["url"], stream=True, timeout=self._stream_timeout)
        try:
            resp.raise_for_status()
        except Exception:
            resp.close()
            raise
        return _iter_and_close(resp)

    def list_objects(self, *, bucket: str, prefix: str) -> List[str]:
        """Return every object key below `prefix`, descending into folders."""
        b = self._bucket(bucket)
        keys: List[str] = []
        pending = [self._norm_key(bucket, prefix).strip("/")]
        while pending:
            folder = pending.pop()
            offset = 0
            while True:
                entries = b.list(folder, {"limit": _LIST_PAGE_SIZE, "offset": offset}) or []
                for entry in entries:
                    name = entry.get("name") if isinstance(entry, dict) else None
                    if not name:
                        continue
                    path = f"{folder}/{name}" if folder else name
                    if entry.get("id") is None:
                        pending.append(path)
                    else:
                        keys.append(path)
                if len(entries) < _LIST_PAGE_SIZE:
                    break
                offset += _LIST_PAGE_SIZE
        return sorted(keys)

    # --- Local helpers ---------------------------------------------------------

    def _normalize_signed_url_host(self, url: str) -> str:
        """For local dev, rewrite the signed URL host to the SUPABASE_URL host.

        Only active with SUPABASE_REWRITE_SIGNED_URL_HOST=true. The token is
        path-bound, so swapping scheme/host/port keeps the signature valid.
        """
        if (os.getenv("SUPABASE_REWRITE_SIGNED_URL_HOST", "false") or "").lower() != "true":
            return url
        base = (os.getenv("SUPABASE_URL") or "").strip()
        if not base:
            return url
        src = _urlparse(url)
        dst = _urlparse(base)
        if not src.scheme or not src.netloc or not dst.netloc:
            return url
        path = src.path or "/"
        if path.startswith("/object/"):
            path = "/storage/v1" + path
        return _urlunparse((dst.scheme or src.scheme, dst.netloc, path, src.params, src.query, src.fragment))


def _iter_and_close(resp: Any) -> Iterator[bytes]:
    try:
        for chunk in resp.iter_content(chunk_size=_STREAM_CHUNK_BYTES):
            if chunk:
                yield chunk
    except requests.RequestException as exc:
        logger.error("Blob stream interrupted: %s", exc.__class__.__name__)
        raise
    finally:
        resp.close()


__all__ = ["SupabaseStorageAdapter"]
