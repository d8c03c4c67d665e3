"""
Database-backed account store for production use (Postgres/Supabase).

Why: The in-memory store is neither durable nor shared across instances. This
store persists admins, students and per-student device state in Postgres.

Concurrency:
- Device state (`active_devices`, `device_tokens`) and `device_limit` are
  guarded by an integer `version` column. `save_device_state` only writes
  when the version is unchanged, so two concurrent logins cannot both observe
  free room and both insert without eviction.
- Password updates are a single UPDATE statement and do not touch `version`.

Security:
- Only token fingerprints are stored, never raw session tokens.

Note: This module uses psycopg3. It is imported only when enabled via
`STORE_BACKEND=db`. Tests use the in-memory store or a fake psycopg.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple
import os

try:
    import psycopg
    from psycopg.types.json import Jsonb
    HAVE_PSYCOPG = True
except Exception:  # pragma: no cover - optional dependency in dev
    psycopg = None  # type: ignore
    Jsonb = None  # type: ignore
    UniqueViolation = None  # type: ignore
    HAVE_PSYCOPG = False
else:  # pragma: no cover - import errors handled above
    try:
        from psycopg.errors import UniqueViolation  # type: ignore
    except Exception:  # pragma: no cover - fallback when errors module unavailable
        UniqueViolation = None  # type: ignore

from .devices import DeviceState, DeviceToken
from .domain import DEFAULT_DEVICE_LIMIT, normalize_email, validate_device_limit
from .stores import AdminRecord, DuplicateEmailError, StudentRecord


def _dsn() -> str:
    candidates = [
        os.getenv("RESOURCEHUB_DATABASE_URL"),
        os.getenv("DATABASE_URL"),
        os.getenv("SUPABASE_DB_URL"),
    ]
    for dsn in candidates:
        if dsn:
            return dsn
    raise RuntimeError("Database DSN unavailable for DBAccountStore")


_STUDENT_COLUMNS_SQL = """
    id::text,
    name,
    email,
    password_hash,
    device_limit,
    active_devices,
    to_char(created_at at time zone 'utc', 'YYYY-MM-DD"T"HH24:MI:SS"+00:00"')
"""


def _student_row_to_record(row: Tuple) -> StudentRecord:
    devices = row[5] if isinstance(row[5], list) else []
    return StudentRecord(
        id=row[0],
        name=row[1],
        email=row[2],
        password_hash=row[3],
        device_limit=int(row[4]),
        active_devices=tuple(str(d) for d in devices),
        created_at=row[6],
    )


def _tokens_to_json(state: DeviceState) -> Dict[str, Dict[str, Any]]:
    return {d: {"fingerprint": t.fingerprint, "expires_at": t.expires_at} for d, t in state.tokens.items()}


def _state_from_row(limit: Any, devices: Any, tokens: Any) -> DeviceState:
    devices_list = [str(d) for d in devices] if isinstance(devices, list) else []
    tokens_map = tokens if isinstance(tokens, dict) else {}
    parsed = {}
    for device_id in devices_list:
        entry = tokens_map.get(device_id) or {}
        parsed[device_id] = DeviceToken(
            fingerprint=str(entry.get("fingerprint") or ""),
            expires_at=int(entry.get("expires_at") or 0),
        )
    return DeviceState(limit=int(limit), devices=tuple(devices_list), tokens=parsed)


class DBAccountStore:
    """Postgres-backed implementation of `AccountStoreProtocol`.

    Parameters
    ----------
    dsn:
        Psycopg3 connection string. Falls back to RESOURCEHUB_DATABASE_URL,
        DATABASE_URL or SUPABASE_DB_URL.
    """

    def __init__(self, dsn: Optional[str] = None) -> None:
        if not HAVE_PSYCOPG:
            raise RuntimeError("psycopg3 is required for DBAccountStore")
        self._dsn = dsn or _dsn()

    # --- Students ---------------------------------------------------------------

    def create_student(self, *, name: str, email: str, password_hash: str, device_limit: int = DEFAULT_DEVICE_LIMIT) -> StudentRecord:
        validate_device_limit(device_limit)
        try:
            with psycopg.connect(self._dsn) as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        f"""
                        insert into public.students (name, email, password_hash, device_limit)
                        values (%s, %s, %s, %s)
                        returning {_STUDENT_COLUMNS_SQL}
                        """,
                        (name, normalize_email(email), password_hash, device_limit),
                    )
                    row = cur.fetchone()
                    conn.commit()
        except Exception as exc:
            if UniqueViolation is not None and isinstance(exc, UniqueViolation):
                raise DuplicateEmailError() from exc
            raise
        return _student_row_to_record(row)

    def get_student(self, student_id: str) -> Optional[StudentRecord]:
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(f"select {_STUDENT_COLUMNS_SQL} from public.students where id = %s", (student_id,))
                row = cur.fetchone()
        return _student_row_to_record(row) if row else None

    def find_student_by_email(self, email: str) -> Optional[StudentRecord]:
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(f"select {_STUDENT_COLUMNS_SQL} from public.students where email = %s", (normalize_email(email),))
                row = cur.fetchone()
        return _student_row_to_record(row) if row else None

    def list_students(self) -> List[StudentRecord]:
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(f"select {_STUDENT_COLUMNS_SQL} from public.students order by created_at, id")
                rows = cur.fetchall() or []
        return [_student_row_to_record(r) for r in rows]

    def set_student_password_hash(self, student_id: str, password_hash: str) -> bool:
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "update public.students set password_hash = %s where id = %s",
                    (password_hash, student_id),
                )
                updated = cur.rowcount == 1
                conn.commit()
        return updated

    def set_device_limit(self, student_id: str, limit: int) -> bool:
        validate_device_limit(limit)
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                # Bump the version so an in-flight admission re-reads the limit.
                cur.execute(
                    "update public.students set device_limit = %s, version = version + 1 where id = %s",
                    (limit, student_id),
                )
                updated = cur.rowcount == 1
                conn.commit()
        return updated

    def load_device_state(self, student_id: str) -> Optional[Tuple[DeviceState, int]]:
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "select device_limit, active_devices, device_tokens, version from public.students where id = %s",
                    (student_id,),
                )
                row = cur.fetchone()
        if not row:
            return None
        return _state_from_row(row[0], row[1], row[2]), int(row[3])

    def save_device_state(self, student_id: str, state: DeviceState, *, expected_version: int) -> bool:
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    update public.students
                       set active_devices = %s,
                           device_tokens = %s,
                           version = version + 1
                     where id = %s
                       and version = %s
                    """,
                    (Jsonb(list(state.devices)), Jsonb(_tokens_to_json(state)), student_id, expected_version),
                )
                updated = cur.rowcount == 1
                conn.commit()
        return updated

    # --- Admins -----------------------------------------------------------------

    def create_admin(self, *, email: str, password_hash: str) -> AdminRecord:
        try:
            with psycopg.connect(self._dsn) as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        "insert into public.admins (email, password_hash) values (%s, %s) returning id::text, email, password_hash",
                        (normalize_email(email), password_hash),
                    )
                    row = cur.fetchone()
                    conn.commit()
        except Exception as exc:
            if UniqueViolation is not None and isinstance(exc, UniqueViolation):
                raise DuplicateEmailError() from exc
            raise
        return AdminRecord(id=row[0], email=row[1], password_hash=row[2])

    def find_admin_by_email(self, email: str) -> Optional[AdminRecord]:
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "select id::text, email, password_hash from public.admins where email = %s",
                    (normalize_email(email),),
                )
                row = cur.fetchone()
        return AdminRecord(id=row[0], email=row[1], password_hash=row[2]) if row else None

    def count_admins(self) -> int:
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute("select count(*) from public.admins")
                row = cur.fetchone()
        return int(row[0]) if row else 0


__all__ = ["DBAccountStore", "HAVE_PSYCOPG"]
