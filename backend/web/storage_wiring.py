"""
Shared helper for wiring the Supabase-backed storage adapter.

Why:
    App startup may occur before Supabase is reachable locally, leaving the
    storage adapter unset. This module provides an idempotent helper that can
    be used at startup and lazily from routes to (re)attempt wiring when
    configuration is present.

Security:
    Requires SUPABASE_SERVICE_ROLE_KEY and SUPABASE_URL environment variables.
    The helper only wires server-side adapters; no secrets are exposed to clients.
"""
from __future__ import annotations

import logging
import os
from urllib.parse import urlparse as _urlparse

from classroom.storage import NullStorageAdapter
from classroom.storage_supabase import SupabaseStorageAdapter

try:
    from . import wiring as _wiring
except ImportError:
    import wiring as _wiring  # type: ignore

logger = logging.getLogger("resourcehub.web")


def _is_local_host(url: str) -> bool:
    host = (_urlparse(url).hostname or "").lower()
    return host in {"127.0.0.1", "localhost"}


def wire_supabase_adapter_if_configured() -> bool:
    """Attempt to wire the Supabase storage adapter.

    Behavior:
        - Returns True when wiring succeeds (adapter injected).
        - Returns False when not configured or any error occurs (keeps Null).
        - Safe and idempotent to call multiple times.
    """
    url = (os.getenv("SUPABASE_URL") or "").strip()
    key = (os.getenv("SUPABASE_SERVICE_ROLE_KEY") or "").strip()
    if not url or not key:
        return False

    adapter = None
    try:
        from supabase import create_client

        adapter = SupabaseStorageAdapter(create_client(url, key))
    except Exception as exc:
        logger.warning("Supabase client unavailable: %s: %s", exc.__class__.__name__, str(exc))

    if adapter is None:
        # Local `supabase start` issues non-JWT keys the client rejects; talk to
        # storage3 directly there (or anywhere when explicitly forced).
        force = (os.getenv("SUPABASE_FALLBACK_STORAGE3", "false") or "").lower() == "true"
        if not force and not _is_local_host(url):
            return False
        try:
            from storage3 import SyncStorageClient

            storage_url = f"{url.rstrip('/')}/storage/v1"
            headers = {"Authorization": f"Bearer {key}", "apikey": key}
            adapter = SupabaseStorageAdapter(SyncStorageClient(storage_url, headers))
        except Exception as exc:
            logger.warning("storage3 client unavailable: %s: %s", exc.__class__.__name__, str(exc))
            return False

    _wiring.set_storage_adapter(adapter)
    logger.info("Storage adapter wired: Supabase")

    from storage.bootstrap import ensure_buckets_from_env

    ensure_buckets_from_env()
    return True


def ensure_storage_adapter() -> None:
    """Lazily retry wiring when the adapter is still the Null placeholder."""
    if isinstance(_wiring.get_storage_adapter(), NullStorageAdapter):
        wire_supabase_adapter_if_configured()


__all__ = ["ensure_storage_adapter", "wire_supabase_adapter_if_configured"]
