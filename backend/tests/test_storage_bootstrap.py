"""
Storage bootstrap: opt-in bucket creation, idempotency and HTTP timeouts.

Expected:
  - ensure_buckets_from_env does nothing unless AUTO_CREATE_STORAGE_BUCKETS=true.
  - An existing bucket is not recreated.
  - requests.get/post are called with conservative timeouts and network
    failures do not raise.
"""

from __future__ import annotations

import time
from types import SimpleNamespace

import pytest
import requests

from storage import bootstrap


def _enable(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("AUTO_CREATE_STORAGE_BUCKETS", "true")
    monkeypatch.setenv("SUPABASE_URL", "http://supabase.local:54321")
    monkeypatch.setenv("SUPABASE_SERVICE_ROLE_KEY", "srk")
    monkeypatch.setenv("RESOURCES_BUCKET", "resources")


def test_disabled_by_default(monkeypatch: pytest.MonkeyPatch):
    def _fail(*args, **kwargs):  # pragma: no cover - must not be called
        raise AssertionError("no HTTP expected")

    monkeypatch.setattr(requests, "get", _fail)
    assert bootstrap.ensure_buckets_from_env() is False


def test_existing_bucket_is_not_recreated(monkeypatch: pytest.MonkeyPatch):
    _enable(monkeypatch)
    posts = []
    monkeypatch.setattr(requests, "get", lambda *a, **kw: SimpleNamespace(json=lambda: [{"name": "resources"}]))
    monkeypatch.setattr(requests, "post", lambda *a, **kw: posts.append(kw))
    assert bootstrap.ensure_buckets_from_env() is True
    assert posts == []


def test_missing_bucket_is_created_private(monkeypatch: pytest.MonkeyPatch):
    _enable(monkeypatch)
    posts = []

    def _post(url, **kwargs):
        posts.append((url, kwargs))
        return SimpleNamespace(status_code=200)

    monkeypatch.setattr(requests, "get", lambda *a, **kw: SimpleNamespace(json=lambda: []))
    monkeypatch.setattr(requests, "post", _post)
    assert bootstrap.ensure_buckets_from_env() is True
    url, kwargs = posts[0]
    assert url == "http://supabase.local:54321/storage/v1/bucket"
    assert kwargs["json"] == {"name": "resources", "public": False}
    assert kwargs["headers"]["Authorization"] == "Bearer srk"


def test_timeouts(monkeypatch: pytest.MonkeyPatch) -> None:
    _enable(monkeypatch)
    calls: list[tuple[str, dict]] = []

    def _raise_timeout(*args, **kwargs):
        calls.append(("get", kwargs))
        raise requests.exceptions.ConnectTimeout("boom")

    def _raise_timeout_post(*args, **kwargs):
        calls.append(("post", kwargs))
        raise requests.exceptions.ReadTimeout("boom")

    monkeypatch.setattr(requests, "get", _raise_timeout, raising=True)
    monkeypatch.setattr(requests, "post", _raise_timeout_post, raising=True)

    t0 = time.time()
    ok = bootstrap.ensure_buckets_from_env()
    dt = time.time() - t0

    assert ok is False
    assert dt < 2.0
    kinds = [k for (k, _kw) in calls]
    assert "get" in kinds
    assert "post" in kinds
    # Every call must include a timeout tuple (connect, read)
    for _k, kw in calls:
        to = kw["timeout"]
        assert isinstance(to, tuple) and len(to) == 2
        assert to[0] <= 5 and to[1] <= 15
