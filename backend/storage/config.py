"""
Centralized storage configuration for the resources bucket and its policies.

Intent:
    Provide a single source of truth for the bucket name, upload size limit,
    signed-URL lifetime and previewable types, each with an environment
    override. Prevents drift between the web adapter and the tools.

Permissions:
    Pure configuration; no external calls or privileges required.
"""
from __future__ import annotations

import os
from typing import Tuple


RESOURCES_BUCKET_DEFAULT = "resources"
SIGNED_URL_TTL_DEFAULT = 300
PREVIEW_MIME_TYPES_DEFAULT: Tuple[str, ...] = ("application/pdf",)


def get_resources_bucket() -> str:
    """Return the configured resources bucket name.

    Env:
        RESOURCES_BUCKET – optional override; otherwise defaults to
        RESOURCES_BUCKET_DEFAULT.
    """
    return (os.getenv("RESOURCES_BUCKET") or RESOURCES_BUCKET_DEFAULT).strip()


def _parse_int_env(name: str, default: int, *, contract_max: int | None = None) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    if value <= 0:
        return default
    if isinstance(contract_max, int) and contract_max > 0:
        value = min(value, contract_max)
    return value


def get_resources_max_upload_bytes() -> int:
    """Maximum upload size for resources (default/clamped 50 MiB)."""
    contract_max = 50 * 1024 * 1024
    return _parse_int_env("RESOURCES_MAX_UPLOAD_BYTES", contract_max, contract_max=contract_max)


def get_signed_url_ttl_seconds() -> int:
    """Lifetime of signed download URLs (default 300s, clamped to one hour)."""
    return _parse_int_env("RESOURCES_SIGNED_URL_TTL_SECONDS", SIGNED_URL_TTL_DEFAULT, contract_max=3600)


def get_preview_mime_types() -> Tuple[str, ...]:
    """Comma-separated RESOURCES_PREVIEW_MIME_TYPES, defaulting to PDF only."""
    raw = (os.getenv("RESOURCES_PREVIEW_MIME_TYPES") or "").strip()
    if not raw:
        return PREVIEW_MIME_TYPES_DEFAULT
    types = tuple(t.strip().lower() for t in raw.split(",") if t.strip())
    return types or PREVIEW_MIME_TYPES_DEFAULT


__all__ = [
    "RESOURCES_BUCKET_DEFAULT",
    "SIGNED_URL_TTL_DEFAULT",
    "PREVIEW_MIME_TYPES_DEFAULT",
    "get_resources_bucket",
    "get_resources_max_upload_bytes",
    "get_signed_url_ttl_seconds",
    "get_preview_mime_types",
]
