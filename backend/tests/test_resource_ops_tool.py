"""
Operational CLI: admin seeding and the orphan scavenger, run against in-memory
stores and a recording storage adapter.
"""
from __future__ import annotations

import time

import pytest
from click.testing import CliRunner

from classroom.repo_memory import InMemoryClassroomRepo
from identity_access.stores import InMemoryAccountStore
from storage.config import get_resources_bucket
from storage.keys import make_resource_key
from tools import resource_ops
from utils.fakes import FakeStorageAdapter  # type: ignore


@pytest.fixture
def stores(monkeypatch: pytest.MonkeyPatch):
    accounts = InMemoryAccountStore()
    repo = InMemoryClassroomRepo()
    storage = FakeStorageAdapter()
    monkeypatch.setattr(resource_ops, "_build_account_store", lambda dsn: accounts)
    monkeypatch.setattr(resource_ops, "_build_classroom_repo", lambda dsn: repo)
    monkeypatch.setattr(resource_ops, "_build_storage_adapter", lambda: storage)
    return accounts, repo, storage


def _seed_orphans(repo: InMemoryClassroomRepo, storage: FakeStorageAdapter):
    """One linked resource, one resource without a batch, one stray blob."""
    bucket = get_resources_bucket()
    batch = repo.create_batch(title="Physics")
    kept = repo.create_resource(
        batch_id=batch.id, title="kept", s3_key=f"batch/{batch.id}/1-a.pdf",
        filename="kept.pdf", mime_type="application/pdf", size_bytes=3,
    )
    unlinked = repo.create_resource(
        batch_id=batch.id, title="unlinked", s3_key=f"batch/{batch.id}/2-b.pdf",
        filename="unlinked.pdf", mime_type="application/pdf", size_bytes=3,
    )
    repo.resource_edges.discard((batch.id, unlinked.id))
    storage.objects[(bucket, kept.s3_key)] = b"abc"
    storage.objects[(bucket, unlinked.s3_key)] = b"abc"
    storage.objects[(bucket, "batch/gone/3-c.pdf")] = b"abc"
    storage.objects[(bucket, "elsewhere/4-d.pdf")] = b"abc"
    return kept, unlinked


def test_create_admin_seeds_once(stores):
    accounts, _repo, _storage = stores
    runner = CliRunner()
    first = runner.invoke(resource_ops.cli, ["create-admin", "--email", " Owner@School.org ", "--password", "admin-secret-1"])
    second = runner.invoke(resource_ops.cli, ["create-admin", "--email", "other@school.org", "--password", "admin-secret-1"])
    assert first.exit_code == 0, first.output
    assert "Created admin owner@school.org" in first.output
    assert second.exit_code == 0
    assert "An admin already exists; nothing to do." in second.output
    assert accounts.count_admins() == 1


def test_create_admin_rejects_short_password(stores):
    result = CliRunner().invoke(resource_ops.cli, ["create-admin", "--email", "owner@school.org", "--password", "123"])
    assert result.exit_code != 0
    assert "Invalid admin credentials" in result.output


def test_find_orphaned_keys_respects_prefix(stores):
    _accounts, repo, storage = stores
    _seed_orphans(repo, storage)
    keys = resource_ops.find_orphaned_keys(repo, storage, bucket=get_resources_bucket(), prefix="batch")
    assert keys == ["batch/gone/3-c.pdf"]


def test_scavenge_dry_run_reports_without_deleting(stores):
    _accounts, repo, storage = stores
    _kept, unlinked = _seed_orphans(repo, storage)
    result = CliRunner().invoke(resource_ops.cli, ["scavenge-orphans"])
    assert result.exit_code == 0, result.output
    assert "orphaned blob: batch/gone/3-c.pdf" in result.output
    assert f"resource without batch: {unlinked.id}" in result.output
    assert "Found 1 orphaned blob(s) and 1 unlinked resource(s) (dry run)." in result.output
    assert storage.calls_named("delete_object") == []
    assert unlinked.id in repo.resources


def test_scavenge_delete_removes_blobs_and_unlinked_records(stores):
    _accounts, repo, storage = stores
    kept, unlinked = _seed_orphans(repo, storage)
    result = CliRunner().invoke(resource_ops.cli, ["scavenge-orphans", "--delete"])
    assert result.exit_code == 0, result.output
    assert "Deleted 2 item(s); 0 failure(s)." in result.output
    assert not storage.has_object("batch/gone/3-c.pdf")
    assert not storage.has_object(unlinked.s3_key)
    assert unlinked.id not in repo.resources
    assert storage.has_object(kept.s3_key)
    assert kept.id in repo.resources


def test_scavenge_delete_reports_failures(stores):
    _accounts, repo, storage = stores
    _kept, unlinked = _seed_orphans(repo, storage)
    storage.fail_delete = True
    result = CliRunner().invoke(resource_ops.cli, ["scavenge-orphans", "--delete"])
    assert result.exit_code == 1
    assert "Deleted 0 item(s); 2 failure(s)." in result.output
    assert unlinked.id in repo.resources


def test_find_orphaned_keys_skips_recent_uploads(stores):
    _accounts, repo, storage = stores
    bucket = get_resources_bucket()
    now_ms = 1_800_000_000_000
    fresh = make_resource_key(batch_id="b-1", filename="fresh.pdf", epoch_ms=now_ms - 5_000, uuid_hex="ab" * 16)
    stale = make_resource_key(batch_id="b-1", filename="stale.pdf", epoch_ms=now_ms - 7_200_000, uuid_hex="cd" * 16)
    for key in (fresh, stale, "batch/b-1/no-timestamp.pdf"):
        storage.objects[(bucket, key)] = b"abc"

    keys = resource_ops.find_orphaned_keys(
        repo, storage, bucket=bucket, prefix="batch", min_age_seconds=3600, now_ms=now_ms
    )
    assert keys == sorted([stale, "batch/b-1/no-timestamp.pdf"])


def test_scavenge_delete_leaves_in_flight_upload_blob(stores):
    _accounts, repo, storage = stores
    bucket = get_resources_bucket()
    batch = repo.create_batch(title="Physics")
    key = make_resource_key(batch_id=batch.id, filename="notes.pdf", epoch_ms=int(time.time() * 1000), uuid_hex="ab" * 16)
    storage.objects[(bucket, key)] = b"abc"

    result = CliRunner().invoke(resource_ops.cli, ["scavenge-orphans", "--delete"])
    assert result.exit_code == 0, result.output
    assert "orphaned blob" not in result.output
    assert storage.has_object(key)

    # The upload then writes its record, which must point at a stored blob.
    resource = repo.create_resource(
        batch_id=batch.id, title="notes", s3_key=key, filename="notes.pdf", mime_type="application/pdf", size_bytes=3,
    )
    assert storage.has_object(resource.s3_key)

    forced = CliRunner().invoke(resource_ops.cli, ["scavenge-orphans", "--min-age-seconds", "0"])
    assert "orphaned blob" not in forced.output
