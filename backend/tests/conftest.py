"""
Pytest configuration for backend tests.

Why: Force AnyIO to use the asyncio backend and give every test a fresh set of
in-memory stores so logins, devices and batches never leak between cases.
"""
import os
import sys
from pathlib import Path

import pytest

# bcrypt's default cost makes every login ~250ms; tests only need valid hashes.
os.environ.setdefault("BCRYPT_ROUNDS", "4")

# Ensure modules in backend/ and backend/web are importable across tests
REPO_ROOT = Path(__file__).resolve().parents[2]
BACKEND_DIR = REPO_ROOT / "backend"
WEB_DIR = BACKEND_DIR / "web"
TESTS_DIR = BACKEND_DIR / "tests"
for p in (str(REPO_ROOT), str(BACKEND_DIR), str(WEB_DIR), str(TESTS_DIR)):
    if p not in sys.path:
        sys.path.insert(0, p)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def _clear_environment_toggles(monkeypatch: pytest.MonkeyPatch):
    """Keep env-driven behavior deterministic per test.

    Tests that need prod semantics or Supabase settings opt in explicitly.
    """
    for var in (
        "RESOURCEHUB_ENV",
        "RESOURCEHUB_JWT_SECRET",
        "RESOURCEHUB_DEFAULT_DEVICE_LIMIT",
        "RESOURCEHUB_SESSION_TTL_SECONDS",
        "RESOURCEHUB_ADMIN_EMAIL",
        "RESOURCEHUB_ADMIN_PASSWORD",
        "RESOURCES_BUCKET",
        "RESOURCES_MAX_UPLOAD_BYTES",
        "RESOURCES_SIGNED_URL_TTL_SECONDS",
        "RESOURCES_PREVIEW_MIME_TYPES",
        "SUPABASE_URL",
        "SUPABASE_SERVICE_ROLE_KEY",
        "AUTO_CREATE_STORAGE_BUCKETS",
        "STORE_BACKEND",
    ):
        monkeypatch.delenv(var, raising=False)
    yield


@pytest.fixture(autouse=True)
def fake_storage():
    """Fresh in-memory stores and a recording storage adapter for every test.

    Returns the FakeStorageAdapter so tests can inspect or fail blob calls.
    """
    import wiring  # type: ignore
    from classroom.repo_memory import InMemoryClassroomRepo
    from identity_access.stores import InMemoryAccountStore
    from utils.fakes import FakeStorageAdapter  # type: ignore

    adapter = FakeStorageAdapter()
    wiring.set_account_store(InMemoryAccountStore())
    wiring.set_classroom_repo(InMemoryClassroomRepo())
    wiring.set_storage_adapter(adapter)
    yield adapter
    wiring.set_storage_adapter(None)


@pytest.fixture(autouse=True)
def _reset_settings_environment_override():
    """Reset main.SETTINGS.override_environment between tests."""
    mod = sys.modules.get("main")
    if mod is not None and hasattr(mod, "SETTINGS"):
        mod.SETTINGS.override_environment(None)
    yield
