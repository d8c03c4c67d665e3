"""
Helpers to generate standardized storage keys for resource blobs.

Why:
    Keep path shapes consistent and provide simple, testable sanitization that
    avoids path traversal and exotic characters while remaining
    human-readable.

Conventions:
    - Resources: batch/{batch}/{epoch_ms}-{uuid}{.ext}

Security:
    - Sanitization removes characters outside [A-Za-z0-9._-] from segments.
    - Filename extensions are lowercased and filtered to alphanumeric + dot.
    - The original filename never becomes part of the key; only its extension.
"""
from __future__ import annotations

import os
import re
import unicodedata

RESOURCE_KEY_PREFIX = "batch"

_SEGMENT_RE = re.compile(r"[^A-Za-z0-9._-]+")
_MAX_EXT_LENGTH = 10


def _sanitize_segment(value: str, *, fallback: str = "x") -> str:
    value = value or ""
    normalized = unicodedata.normalize("NFKD", value)
    ascii_value = normalized.encode("ascii", "ignore").decode("ascii")
    sanitized = _SEGMENT_RE.sub("-", ascii_value).strip("-_.")
    return sanitized or fallback


def _sanitize_ext_from_filename(filename: str | None, default_ext: str = "") -> str:
    if not filename:
        ext = default_ext
    else:
        _, ext = os.path.splitext(os.path.basename(filename))
    ext = (ext or default_ext or "").lower()
    # keep only alnum and dots; collapse invalids
    ext = "".join(ch for ch in ext if ch.isalnum() or ch == ".")
    if ext and not ext.startswith("."):
        ext = f".{ext}"
    if len(ext) > _MAX_EXT_LENGTH or ext == ".":
        return ""
    return ext


def make_resource_key(*, batch_id: str, filename: str | None, epoch_ms: int, uuid_hex: str) -> str:
    """Build a storage key for an uploaded resource.

    Returns: batch/{batch}/{epoch_ms}-{uuid}{.ext}
    """
    b = _sanitize_segment(batch_id, fallback="batch")
    ext = _sanitize_ext_from_filename(filename)
    hexpart = (uuid_hex or "").strip() or "file"
    return f"{RESOURCE_KEY_PREFIX}/{b}/{int(epoch_ms)}-{hexpart}{ext}"


_KEY_EPOCH_RE = re.compile(r"^(\d+)-")


def resource_key_epoch_ms(key: str) -> int | None:
    """Upload time embedded by `make_resource_key`, or None for foreign keys."""
    match = _KEY_EPOCH_RE.match(os.path.basename(key or ""))
    return int(match.group(1)) if match else None


__all__ = ["RESOURCE_KEY_PREFIX", "make_resource_key", "resource_key_epoch_ms"]
