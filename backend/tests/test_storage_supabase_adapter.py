"""
SupabaseStorageAdapter against duck-typed fake clients (supabase and storage3
shapes).
"""
from __future__ import annotations

from types import SimpleNamespace

import pytest
import requests

from classroom.storage_supabase import SupabaseStorageAdapter


class _FakeBucket:
    def __init__(self, signed=None, listing=None):
        self.uploads = []
        self.removed = []
        self.signed_calls = []
        self._signed = signed if signed is not None else {"signedURL": "http://kong:8000/storage/v1/object/sign/resources/k?token=t"}
        self._listing = listing or {}

    def upload(self, path, body, file_options):
        self.uploads.append((path, body, file_options))

    def create_signed_url(self, path, expires_in, options=None):
        self.signed_calls.append((path, expires_in, options))
        return self._signed

    def remove(self, paths):
        self.removed.extend(paths)

    def list(self, path, options):
        entries = self._listing.get(path, [])
        offset = options.get("offset", 0)
        return entries[offset:offset + options.get("limit", 1000)]


class _SupabaseClient:
    def __init__(self, bucket):
        self.storage = SimpleNamespace(from_=lambda _name: bucket)


class _Storage3Client:
    def __init__(self, bucket):
        self._bucket = bucket

    def from_(self, _name):
        return self._bucket


def test_put_object_strips_bucket_prefix_and_passes_content_type():
    bucket = _FakeBucket()
    adapter = SupabaseStorageAdapter(_SupabaseClient(bucket))
    adapter.put_object(bucket="resources", key="/resources/batch/b/1-a.pdf", body=b"x", content_type="application/pdf")
    path, body, opts = bucket.uploads[0]
    assert path == "batch/b/1-a.pdf"
    assert body == b"x"
    assert opts["content-type"] == "application/pdf"


def test_presign_download_accepts_client_response_shapes():
    for signed in (
        {"signedURL": "http://a/x"},
        {"data": {"signed_url": "http://a/x"}},
        [{"url": "http://a/x"}],
    ):
        adapter = SupabaseStorageAdapter(_Storage3Client(_FakeBucket(signed=signed)))
        res = adapter.presign_download(bucket="resources", key="k", expires_in=300, disposition="inline")
        assert res["url"] == "http://a/x"


def test_presign_inline_sends_no_download_hint():
    bucket = _FakeBucket()
    SupabaseStorageAdapter(_SupabaseClient(bucket)).presign_download(
        bucket="resources", key="batch/b/1-a.pdf", expires_in=120, disposition="inline"
    )
    assert bucket.signed_calls == [("batch/b/1-a.pdf", 120, {"download": None})]


def test_presign_without_url_raises():
    adapter = SupabaseStorageAdapter(_SupabaseClient(_FakeBucket(signed={"error": "nope"})))
    with pytest.raises(RuntimeError):
        adapter.presign_download(bucket="resources", key="k", expires_in=60, disposition="inline")


def test_signed_url_host_rewrite_for_local_dev(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("SUPABASE_REWRITE_SIGNED_URL_HOST", "true")
    monkeypatch.setenv("SUPABASE_URL", "http://127.0.0.1:54321")
    adapter = SupabaseStorageAdapter(_SupabaseClient(_FakeBucket(signed={"signedURL": "http://kong:8000/object/sign/resources/k?token=t"})))
    res = adapter.presign_download(bucket="resources", key="k", expires_in=60, disposition="inline")
    assert res["url"] == "http://127.0.0.1:54321/storage/v1/object/sign/resources/k?token=t"


def test_delete_object():
    bucket = _FakeBucket()
    SupabaseStorageAdapter(_SupabaseClient(bucket)).delete_object(bucket="resources", key="batch/b/1-a.pdf")
    assert bucket.removed == ["batch/b/1-a.pdf"]


def test_list_objects_descends_into_folders():
    listing = {
        "batch": [{"name": "b1", "id": None}, {"name": "b2", "id": None}],
        "batch/b1": [{"name": "1-a.pdf", "id": "x"}],
        "batch/b2": [{"name": "2-b.pdf", "id": "y"}, {"name": "3-c.pdf", "id": "z"}],
    }
    adapter = SupabaseStorageAdapter(_Storage3Client(_FakeBucket(listing=listing)))
    assert adapter.list_objects(bucket="resources", prefix="batch") == [
        "batch/b1/1-a.pdf",
        "batch/b2/2-b.pdf",
        "batch/b2/3-c.pdf",
    ]


class _FakeResponse:
    def __init__(self, chunks, status_ok=True):
        self._chunks = chunks
        self._ok = status_ok
        self.closed = False

    def raise_for_status(self):
        if not self._ok:
            raise requests.HTTPError("404")

    def iter_content(self, chunk_size):
        yield from self._chunks

    def close(self):
        self.closed = True


def test_open_stream_yields_chunks_and_closes():
    resp = _FakeResponse([b"ab", b"", b"cd"])
    http = SimpleNamespace(get=lambda url, stream, timeout: resp)
    adapter = SupabaseStorageAdapter(_SupabaseClient(_FakeBucket()), http=http)
    chunks = adapter.open_stream(bucket="resources", key="k")
    assert b"".join(chunks) == b"abcd"
    assert resp.closed is True


def test_open_stream_surfaces_http_errors_before_streaming():
    resp = _FakeResponse([], status_ok=False)
    http = SimpleNamespace(get=lambda url, stream, timeout: resp)
    adapter = SupabaseStorageAdapter(_SupabaseClient(_FakeBucket()), http=http)
    with pytest.raises(requests.HTTPError):
        adapter.open_stream(bucket="resources", key="k")
    assert resp.closed is True


def test_invalid_client_shape():
    adapter = SupabaseStorageAdapter(object())
    with pytest.raises(RuntimeError):
        adapter.delete_object(bucket="resources", key="k")
