"""Operational commands for ResourceHub deployments.

Why:
    Two chores need to run outside the web process: seeding an admin account on
    a fresh database, and reconciling blob storage with the resource records.
    An upload that stores its blob but fails to write the record (or a batch
    deletion whose blob cleanup fails) leaves an unreferenced blob behind; the
    web process only logs the key. `scavenge-orphans` finds those blobs again.

Usage:
    python -m tools.resource_ops create-admin --email admin@school.org
    python -m tools.resource_ops scavenge-orphans              # dry run
    python -m tools.resource_ops scavenge-orphans --delete --min-age-seconds 7200

Both commands talk to the Postgres stores (DATABASE_URL or --db-dsn); the
scavenger additionally needs SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY.
"""

from __future__ import annotations

import logging
import os
import time
from typing import List, Optional, Set

import click

from classroom.services.resources import ResourceLifecycleService, ResourceSettings
from classroom.storage_supabase import SupabaseStorageAdapter
from identity_access.credentials import CredentialStore
from storage.config import get_resources_bucket
from storage.keys import RESOURCE_KEY_PREFIX, resource_key_epoch_ms

logger = logging.getLogger("resourcehub.tools")


def _build_account_store(db_dsn: Optional[str]):
    from identity_access.stores_db import DBAccountStore

    try:
        return DBAccountStore(db_dsn)
    except RuntimeError as exc:
        raise click.ClickException(str(exc))


def _build_classroom_repo(db_dsn: Optional[str]):
    from classroom.repo_db import DBClassroomRepo

    try:
        return DBClassroomRepo(db_dsn)
    except RuntimeError as exc:
        raise click.ClickException(str(exc))


def _build_storage_adapter():
    url = (os.getenv("SUPABASE_URL") or "").strip()
    key = (os.getenv("SUPABASE_SERVICE_ROLE_KEY") or "").strip()
    if not url or not key:
        raise click.ClickException("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY are required")
    from supabase import create_client

    return SupabaseStorageAdapter(create_client(url, key))


def find_orphaned_keys(
    repo,
    storage,
    *,
    bucket: str,
    prefix: str,
    min_age_seconds: int = 0,
    now_ms: Optional[int] = None,
) -> List[str]:
    """Return blob keys under `prefix` that no resource record references.

    Uploads store the blob before the record, so a key newer than
    `min_age_seconds` may belong to an upload still in flight and is skipped.
    Keys without an embedded upload time were not written by an upload and
    are always eligible.
    """
    known: Set[str] = set(repo.list_storage_keys())
    stored = storage.list_objects(bucket=bucket, prefix=prefix)
    cutoff_ms = (now_ms if now_ms is not None else int(time.time() * 1000)) - min_age_seconds * 1000
    out: List[str] = []
    for key in stored:
        if key in known:
            continue
        uploaded_ms = resource_key_epoch_ms(key)
        if uploaded_ms is not None and uploaded_ms > cutoff_ms:
            logger.info("Skipping recent unreferenced blob %s", key)
            continue
        out.append(key)
    return sorted(out)


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
def cli() -> None:
    """ResourceHub maintenance commands."""


@cli.command("create-admin")
@click.option("--db-dsn", required=False, help="DSN for the ResourceHub database (defaults to DATABASE_URL).")
@click.option("--email", required=True, help="Admin login email.")
@click.option("--password", prompt=True, hide_input=True, confirmation_prompt=True, help="Admin password (prompted when omitted).")
def create_admin(db_dsn: Optional[str], email: str, password: str) -> None:
    """Create an admin account unless one already exists."""
    credentials = CredentialStore(_build_account_store(db_dsn))
    try:
        created = credentials.ensure_admin(email, password)
    except ValueError as exc:
        raise click.ClickException(f"Invalid admin credentials: {exc}")
    if created:
        click.echo(f"Created admin {email.strip().lower()}")
    else:
        click.echo("An admin already exists; nothing to do.")


@cli.command("scavenge-orphans")
@click.option("--db-dsn", required=False, help="DSN for the ResourceHub database (defaults to DATABASE_URL).")
@click.option("--bucket", default=None, help="Storage bucket (defaults to RESOURCES_BUCKET).")
@click.option("--prefix", default=RESOURCE_KEY_PREFIX, show_default=True, help="Only inspect keys below this prefix.")
@click.option("--delete", "delete_", is_flag=True, help="Delete what is found instead of only reporting it.")
@click.option(
    "--min-age-seconds",
    default=3600,
    show_default=True,
    type=click.IntRange(min=0),
    help="Leave unreferenced blobs younger than this alone; their upload may still be writing the record.",
)
def scavenge_orphans(
    db_dsn: Optional[str], bucket: Optional[str], prefix: str, delete_: bool, min_age_seconds: int
) -> None:
    """Report (or delete) blobs without a record and records without a batch."""
    repo = _build_classroom_repo(db_dsn)
    storage = _build_storage_adapter()
    bucket_name = bucket or get_resources_bucket()

    orphaned_keys = find_orphaned_keys(
        repo, storage, bucket=bucket_name, prefix=prefix, min_age_seconds=min_age_seconds
    )
    unlinked = sorted(repo.unlinked_resource_ids())
    for key in orphaned_keys:
        click.echo(f"orphaned blob: {key}")
    for resource_id in unlinked:
        click.echo(f"resource without batch: {resource_id}")

    if not delete_:
        click.echo(f"Found {len(orphaned_keys)} orphaned blob(s) and {len(unlinked)} unlinked resource(s) (dry run).")
        return

    failures = 0
    for key in orphaned_keys:
        try:
            storage.delete_object(bucket=bucket_name, key=key)
        except Exception as exc:
            failures += 1
            logger.warning("Deleting orphaned blob %s failed: %s", key, exc.__class__.__name__)
    service = ResourceLifecycleService(repo, storage, ResourceSettings(storage_bucket=bucket_name))
    for resource_id in unlinked:
        try:
            service.delete_resource(resource_id)
        except LookupError:
            continue
        except Exception as exc:
            failures += 1
            logger.warning("Deleting unlinked resource %s failed: %s", resource_id, exc.__class__.__name__)
    click.echo(
        f"Deleted {len(orphaned_keys) + len(unlinked) - failures} item(s); {failures} failure(s)."
    )
    if failures:
        raise click.ClickException("Some items could not be deleted; see log output")


if __name__ == "__main__":  # pragma: no cover - manual entry
    cli()
