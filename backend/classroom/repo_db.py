"""
Postgres-backed repository for the classroom context (batches, resources and
membership edges).

Design:
- Minimal psycopg3 usage; each call opens a short-lived connection.
- Returns the shared record dataclasses to keep the web adapter independent
  of the driver.
- Edge tables have composite primary keys; inserts use `on conflict do
  nothing` so duplicate edges are idempotent.
- `create_resource` inserts the record and its first edge in one transaction.
  A batch deleted in the meantime fails the foreign key and rolls both back.
"""
from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Set, Tuple
import os

try:
    import psycopg
    HAVE_PSYCOPG = True
except Exception:  # pragma: no cover - optional in some dev envs
    psycopg = None  # type: ignore
    HAVE_PSYCOPG = False

from .ports import ResourceEdge
from .records import Batch, Resource


def _dsn() -> str:
    candidates = [
        os.getenv("RESOURCEHUB_DATABASE_URL"),
        os.getenv("DATABASE_URL"),
        os.getenv("SUPABASE_DB_URL"),
    ]
    for dsn in candidates:
        if dsn:
            return dsn
    raise RuntimeError("Database DSN unavailable for DBClassroomRepo")


_TS_SQL = """to_char({col} at time zone 'utc', 'YYYY-MM-DD"T"HH24:MI:SS"+00:00"')"""

_BATCH_COLUMNS_SQL = "id::text, title, " + _TS_SQL.format(col="created_at")

_RESOURCE_COLUMNS_SQL = (
    "id::text, title, s3_key, filename, mime_type, size_bytes, " + _TS_SQL.format(col="created_at")
)


def _batch_row(row: Tuple) -> Batch:
    return Batch(id=row[0], title=row[1], created_at=row[2])


def _resource_row(row: Tuple) -> Resource:
    return Resource(
        id=row[0],
        title=row[1],
        s3_key=row[2],
        filename=row[3],
        mime_type=row[4],
        size_bytes=int(row[5]) if row[5] is not None else None,
        created_at=row[6],
    )


def _is_fk_violation(exc: Exception) -> bool:
    return getattr(exc, "sqlstate", None) == "23503"


class DBClassroomRepo:
    def __init__(self, dsn: Optional[str] = None) -> None:
        if not HAVE_PSYCOPG:
            raise RuntimeError("psycopg3 is required for DBClassroomRepo")
        self._dsn = dsn or _dsn()

    # --- Batches ----------------------------------------------------------------

    def create_batch(self, *, title: str) -> Batch:
        title = (title or "").strip()
        if not title or len(title) > 200:
            raise ValueError("invalid_title")
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(f"insert into public.batches (title) values (%s) returning {_BATCH_COLUMNS_SQL}", (title,))
                row = cur.fetchone()
                conn.commit()
        return _batch_row(row)

    def get_batch(self, batch_id: str) -> Optional[Batch]:
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(f"select {_BATCH_COLUMNS_SQL} from public.batches where id = %s", (batch_id,))
                row = cur.fetchone()
        return _batch_row(row) if row else None

    def list_batches(self) -> List[Batch]:
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(f"select {_BATCH_COLUMNS_SQL} from public.batches order by created_at, id")
                rows = cur.fetchall() or []
        return [_batch_row(r) for r in rows]

    def delete_batch(self, batch_id: str) -> bool:
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute("delete from public.batches where id = %s", (batch_id,))
                deleted = cur.rowcount == 1
                conn.commit()
        return deleted

    # --- Resources --------------------------------------------------------------

    def create_resource(
        self,
        *,
        batch_id: str,
        title: str,
        s3_key: str,
        filename: Optional[str],
        mime_type: Optional[str],
        size_bytes: Optional[int],
    ) -> Resource:
        try:
            with psycopg.connect(self._dsn) as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        f"""
                        insert into public.resources (title, s3_key, filename, mime_type, size_bytes)
                        values (%s, %s, %s, %s, %s)
                        returning {_RESOURCE_COLUMNS_SQL}
                        """,
                        (title, s3_key, filename, mime_type, size_bytes),
                    )
                    row = cur.fetchone()
                    cur.execute(
                        "insert into public.batch_resources (batch_id, resource_id) values (%s, %s)",
                        (batch_id, row[0]),
                    )
                    conn.commit()
        except Exception as exc:
            if _is_fk_violation(exc):
                raise LookupError("batch_not_found") from exc
            raise
        return _resource_row(row)

    def get_resource(self, resource_id: str) -> Optional[Resource]:
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(f"select {_RESOURCE_COLUMNS_SQL} from public.resources where id = %s", (resource_id,))
                row = cur.fetchone()
        return _resource_row(row) if row else None

    def list_resources(self, resource_ids: Optional[Iterable[str]] = None) -> List[Resource]:
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                if resource_ids is None:
                    cur.execute(f"select {_RESOURCE_COLUMNS_SQL} from public.resources order by created_at, id")
                else:
                    ids = sorted(set(resource_ids))
                    if not ids:
                        return []
                    cur.execute(
                        f"select {_RESOURCE_COLUMNS_SQL} from public.resources where id = any(%s::uuid[]) order by created_at, id",
                        (ids,),
                    )
                rows = cur.fetchall() or []
        return [_resource_row(r) for r in rows]

    def delete_resource(self, resource_id: str) -> bool:
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute("delete from public.batch_resources where resource_id = %s", (resource_id,))
                cur.execute("delete from public.resources where id = %s", (resource_id,))
                deleted = cur.rowcount == 1
                conn.commit()
        return deleted

    def list_storage_keys(self) -> Set[str]:
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute("select s3_key from public.resources")
                rows = cur.fetchall() or []
        return {r[0] for r in rows}

    def unlinked_resource_ids(self) -> Set[str]:
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    select r.id::text
                    from public.resources r
                    where not exists (select 1 from public.batch_resources br where br.resource_id = r.id)
                    """
                )
                rows = cur.fetchall() or []
        return {r[0] for r in rows}

    # --- Student edges ----------------------------------------------------------

    def add_student_edge(self, batch_id: str, student_id: str) -> bool:
        try:
            with psycopg.connect(self._dsn) as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        """
                        insert into public.batch_students (batch_id, student_id) values (%s, %s)
                        on conflict (batch_id, student_id) do nothing
                        """,
                        (batch_id, student_id),
                    )
                    created = cur.rowcount == 1
                    conn.commit()
        except Exception as exc:
            if _is_fk_violation(exc):
                raise LookupError("batch_not_found") from exc
            raise
        return created

    def replace_student_edges(self, student_id: str, batch_ids: Iterable[str]) -> None:
        wanted = sorted(set(batch_ids))
        try:
            with psycopg.connect(self._dsn) as conn:
                with conn.cursor() as cur:
                    # Serialize concurrent replacements for the same student.
                    cur.execute("select id from public.students where id = %s for update", (student_id,))
                    if cur.fetchone() is None:
                        raise LookupError("student_not_found")
                    cur.execute("delete from public.batch_students where student_id = %s", (student_id,))
                    if wanted:
                        cur.executemany(
                            "insert into public.batch_students (batch_id, student_id) values (%s, %s)",
                            [(b, student_id) for b in wanted],
                        )
                    conn.commit()
        except Exception as exc:
            if _is_fk_violation(exc):
                raise LookupError("batch_not_found") from exc
            raise

    def batch_ids_for_student(self, student_id: str) -> Set[str]:
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute("select batch_id::text from public.batch_students where student_id = %s", (student_id,))
                rows = cur.fetchall() or []
        return {r[0] for r in rows}

    def student_ids_for_batch(self, batch_id: str) -> Set[str]:
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute("select student_id::text from public.batch_students where batch_id = %s", (batch_id,))
                rows = cur.fetchall() or []
        return {r[0] for r in rows}

    def batch_ids_by_student(self) -> Dict[str, Set[str]]:
        out: Dict[str, Set[str]] = {}
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute("select student_id::text, batch_id::text from public.batch_students")
                rows = cur.fetchall() or []
        for student_id, batch_id in rows:
            out.setdefault(student_id, set()).add(batch_id)
        return out

    # --- Resource edges ---------------------------------------------------------

    def add_resource_edge(self, batch_id: str, resource_id: str) -> bool:
        try:
            with psycopg.connect(self._dsn) as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        """
                        insert into public.batch_resources (batch_id, resource_id) values (%s, %s)
                        on conflict (batch_id, resource_id) do nothing
                        """,
                        (batch_id, resource_id),
                    )
                    created = cur.rowcount == 1
                    conn.commit()
        except Exception as exc:
            if _is_fk_violation(exc):
                raise LookupError("not_found") from exc
            raise
        return created

    def batch_ids_for_resource(self, resource_id: str) -> Set[str]:
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute("select batch_id::text from public.batch_resources where resource_id = %s", (resource_id,))
                rows = cur.fetchall() or []
        return {r[0] for r in rows}

    def resource_ids_for_batches(self, batch_ids: Iterable[str]) -> Set[str]:
        ids = sorted(set(batch_ids))
        if not ids:
            return set()
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "select distinct resource_id::text from public.batch_resources where batch_id = any(%s::uuid[])",
                    (ids,),
                )
                rows = cur.fetchall() or []
        return {r[0] for r in rows}

    def resource_edges_for(self, resource_ids: Iterable[str]) -> Set[ResourceEdge]:
        ids = sorted(set(resource_ids))
        if not ids:
            return set()
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "select batch_id::text, resource_id::text from public.batch_resources where resource_id = any(%s::uuid[])",
                    (ids,),
                )
                rows = cur.fetchall() or []
        return {(r[0], r[1]) for r in rows}

    def remove_batch_edges(self, batch_id: str) -> Tuple[Set[str], Set[ResourceEdge]]:
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "delete from public.batch_students where batch_id = %s returning student_id::text",
                    (batch_id,),
                )
                students = {r[0] for r in (cur.fetchall() or [])}
                cur.execute(
                    "delete from public.batch_resources where batch_id = %s returning batch_id::text, resource_id::text",
                    (batch_id,),
                )
                edges = {(r[0], r[1]) for r in (cur.fetchall() or [])}
                conn.commit()
        return students, edges


__all__ = ["DBClassroomRepo", "HAVE_PSYCOPG"]
