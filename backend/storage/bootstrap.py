"""
Supabase Storage bootstrap for local and staging environments.

Intent:
    Make sure the private resources bucket exists when the app starts, so a
    fresh `supabase start` works without manual setup.

Security & Safety:
    - Opt-in via `AUTO_CREATE_STORAGE_BUCKETS=true`.
    - Requires the server-side `SUPABASE_SERVICE_ROLE_KEY`.
    - Idempotent: lists buckets first and creates only a missing one.
"""
from __future__ import annotations

import logging
import os

import requests

from .config import get_resources_bucket

_log = logging.getLogger("resourcehub.storage")

_TIMEOUT = (3, 10)


def _headers(key: str) -> dict:
    return {"apikey": key, "Authorization": f"Bearer {key}"}


def _bucket_names(base_url: str, key: str) -> set[str]:
    url = f"{base_url.rstrip('/')}/storage/v1/bucket"
    try:
        resp = requests.get(url, headers=_headers(key), timeout=_TIMEOUT)
        data = resp.json()
    except (requests.RequestException, ValueError) as exc:
        _log.warning("list buckets failed: error=%s", type(exc).__name__)
        return set()
    if not isinstance(data, list):
        return set()
    return {str(it.get("name") or it.get("id") or "") for it in data if isinstance(it, dict)}


def ensure_bucket(base_url: str, key: str, name: str) -> bool:
    """Create `name` as a private bucket unless it exists. Returns True when present afterwards."""
    if name in _bucket_names(base_url, key):
        return True
    url = f"{base_url.rstrip('/')}/storage/v1/bucket"
    try:
        resp = requests.post(url, headers=_headers(key), json={"name": name, "public": False}, timeout=_TIMEOUT)
    except requests.RequestException as exc:
        _log.warning("create bucket '%s' failed: error=%s", name, type(exc).__name__)
        return False
    if resp.status_code >= 300:
        _log.warning("create bucket '%s' failed: status=%s", name, resp.status_code)
        return False
    _log.info("created storage bucket '%s'", name)
    return True


def ensure_buckets_from_env() -> bool:
    if (os.getenv("AUTO_CREATE_STORAGE_BUCKETS", "false") or "").strip().lower() != "true":
        return False
    base = (os.getenv("SUPABASE_URL") or "").strip()
    key = (os.getenv("SUPABASE_SERVICE_ROLE_KEY") or "").strip()
    if not base or not key:
        return False
    return ensure_bucket(base, key, get_resources_bucket())


__all__ = ["ensure_bucket", "ensure_buckets_from_env"]
