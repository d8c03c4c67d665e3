"""
Process-wide wiring of stores, storage adapter and services.

Why:
    Routes and the auth middleware share one account store, one classroom
    repo and one storage adapter. Keeping the singletons here (instead of in
    each router) means the device registry consulted by the middleware is the
    same one login writes to.

Behavior:
    - `STORE_BACKEND=db` selects the Postgres stores; any other value, or
      running under pytest, selects the in-memory stores.
    - A DB store that cannot be constructed degrades to in-memory with a
      warning, matching local/offline development.
    - Tests swap implementations via `set_account_store`, `set_classroom_repo`
      and `set_storage_adapter`.
"""
from __future__ import annotations

import logging
import os
import sys
from typing import Optional

from classroom.access import AccessGate
from classroom.membership import MembershipGraph
from classroom.repo_memory import InMemoryClassroomRepo
from classroom.services.resources import ResourceLifecycleService, ResourceSettings
from classroom.storage import NullStorageAdapter, StorageAdapterProtocol
from identity_access.credentials import CredentialStore
from identity_access.devices import DeviceRegistry
from identity_access.domain import DEFAULT_DEVICE_LIMIT, MAX_DEVICE_LIMIT, MIN_DEVICE_LIMIT
from identity_access.sessions import SessionService
from identity_access.stores import InMemoryAccountStore
from identity_access.tokens import DEFAULT_SESSION_TTL_SECONDS, SessionTokenIssuer
from storage.config import (
    get_preview_mime_types,
    get_resources_bucket,
    get_resources_max_upload_bytes,
    get_signed_url_ttl_seconds,
)

logger = logging.getLogger("resourcehub.web")

DEV_JWT_SECRET = "resourcehub-dev-secret-change-me"

_ACCOUNT_STORE = None
_CLASSROOM_REPO = None
STORAGE_ADAPTER: StorageAdapterProtocol = NullStorageAdapter()


def _under_pytest() -> bool:
    return "pytest" in sys.modules or bool(os.getenv("PYTEST_CURRENT_TEST"))


def _use_db_backend() -> bool:
    return (not _under_pytest()) and (os.getenv("STORE_BACKEND", "memory") or "").strip().lower() == "db"


def _build_default_account_store():
    if not _use_db_backend():
        return InMemoryAccountStore()
    try:
        from identity_access.stores_db import DBAccountStore

        return DBAccountStore()
    except Exception as exc:  # pragma: no cover - exercised when DSN missing
        logger.warning("Account store unavailable (%s); using in-memory fallback", exc)
        return InMemoryAccountStore()


def _build_default_classroom_repo():
    if not _use_db_backend():
        return InMemoryClassroomRepo()
    try:
        from classroom.repo_db import DBClassroomRepo

        return DBClassroomRepo()
    except Exception as exc:  # pragma: no cover - exercised when DSN missing
        logger.warning("Classroom repo unavailable (%s); using in-memory fallback", exc)
        return InMemoryClassroomRepo()


def get_account_store():
    global _ACCOUNT_STORE
    if _ACCOUNT_STORE is None:
        _ACCOUNT_STORE = _build_default_account_store()
    return _ACCOUNT_STORE


def get_classroom_repo():
    global _CLASSROOM_REPO
    if _CLASSROOM_REPO is None:
        _CLASSROOM_REPO = _build_default_classroom_repo()
    return _CLASSROOM_REPO


def get_storage_adapter() -> StorageAdapterProtocol:
    return STORAGE_ADAPTER


def set_account_store(store) -> None:
    """Allow tests to swap the account store implementation."""
    global _ACCOUNT_STORE
    _ACCOUNT_STORE = store


def set_classroom_repo(repo) -> None:
    """Allow tests to swap the classroom repository implementation."""
    global _CLASSROOM_REPO
    _CLASSROOM_REPO = repo


def set_storage_adapter(adapter: Optional[StorageAdapterProtocol]) -> None:
    """Inject the blob adapter (Supabase in deployments, fakes in tests)."""
    global STORAGE_ADAPTER
    STORAGE_ADAPTER = adapter if adapter is not None else NullStorageAdapter()


# --- Settings -------------------------------------------------------------------


def _int_env(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r", name, raw)
        return default
    return value if value > 0 else default


def jwt_secret() -> str:
    return (os.getenv("RESOURCEHUB_JWT_SECRET") or "").strip() or DEV_JWT_SECRET


def session_ttl_seconds() -> int:
    return _int_env("RESOURCEHUB_SESSION_TTL_SECONDS", DEFAULT_SESSION_TTL_SECONDS)


def default_device_limit() -> int:
    limit = _int_env("RESOURCEHUB_DEFAULT_DEVICE_LIMIT", DEFAULT_DEVICE_LIMIT)
    return max(MIN_DEVICE_LIMIT, min(MAX_DEVICE_LIMIT, limit))


def resource_settings() -> ResourceSettings:
    return ResourceSettings(
        storage_bucket=get_resources_bucket(),
        max_size_bytes=get_resources_max_upload_bytes(),
        signed_url_ttl_seconds=get_signed_url_ttl_seconds(),
        preview_mime_types=get_preview_mime_types(),
    )


# --- Services -------------------------------------------------------------------
# Built per call from the current singletons so that swapped stores take effect
# immediately; the services themselves hold no state.


def token_issuer() -> SessionTokenIssuer:
    return SessionTokenIssuer(jwt_secret())


def device_registry() -> DeviceRegistry:
    return DeviceRegistry(get_account_store())


def credential_store() -> CredentialStore:
    return CredentialStore(get_account_store(), default_device_limit=default_device_limit())


def session_service() -> SessionService:
    return SessionService(
        credentials=credential_store(),
        registry=device_registry(),
        issuer=token_issuer(),
        ttl_seconds=session_ttl_seconds(),
    )


def membership_graph() -> MembershipGraph:
    return MembershipGraph(get_classroom_repo(), get_account_store())


def access_gate() -> AccessGate:
    return AccessGate(membership_graph())


def resource_service() -> ResourceLifecycleService:
    return ResourceLifecycleService(get_classroom_repo(), get_storage_adapter(), resource_settings())


__all__ = [
    "access_gate",
    "credential_store",
    "device_registry",
    "get_account_store",
    "get_classroom_repo",
    "get_storage_adapter",
    "membership_graph",
    "resource_service",
    "session_service",
    "set_account_store",
    "set_classroom_repo",
    "set_storage_adapter",
    "token_issuer",
]
