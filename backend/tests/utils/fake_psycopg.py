"""
Lightweight psycopg stand-in for unit tests.

Provides ``install_fake_psycopg`` which monkeypatches a target module so that
``psycopg.connect`` returns an in-memory account table. Designed to support the
subset of SQL used by DBAccountStore (students, device state, admins).
"""
from __future__ import annotations

from dataclasses import dataclass, field
import types
import uuid
from typing import Any, Dict, List, Optional


class FakeJsonb:
    """Minimal replacement for psycopg.types.json.Jsonb used in tests."""

    def __init__(self, obj: Any) -> None:
        self.obj = obj


class FakeUniqueViolation(Exception):
    pass


@dataclass
class _StudentRow:
    id: str
    name: str
    email: str
    password_hash: str
    device_limit: int
    active_devices: List[str] = field(default_factory=list)
    device_tokens: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    version: int = 0
    created_at: str = "2026-01-01T00:00:00+00:00"

    def as_record_row(self) -> tuple:
        return (
            self.id,
            self.name,
            self.email,
            self.password_hash,
            self.device_limit,
            list(self.active_devices),
            self.created_at,
        )


@dataclass
class FakeDatabase:
    students: Dict[str, _StudentRow] = field(default_factory=dict)
    admins: Dict[str, tuple] = field(default_factory=dict)
    commits: int = 0
    statements: List[str] = field(default_factory=list)

    def student_by_email(self, email: str) -> Optional[_StudentRow]:
        return next((s for s in self.students.values() if s.email == email), None)


def _unwrap(value: Any) -> Any:
    return getattr(value, "obj", value)


class _FakeCursor:
    def __init__(self, db: FakeDatabase) -> None:
        self._db = db
        self._row = None
        self._rows: List[tuple] = []
        self.rowcount = -1

    def execute(self, sql: str, params: tuple | list = ()) -> None:
        sql_low = " ".join((sql or "").lower().split())
        self._db.statements.append(sql_low)
        self._row, self._rows, self.rowcount = None, [], -1
        db = self._db

        if sql_low.startswith("insert into public.students"):
            name, email, password_hash, device_limit = params
            if db.student_by_email(email) is not None:
                raise FakeUniqueViolation("students_email_key")
            row = _StudentRow(id=str(uuid.uuid4()), name=name, email=email, password_hash=password_hash, device_limit=device_limit)
            db.students[row.id] = row
            self._row = row.as_record_row()
        elif sql_low.startswith("select device_limit, active_devices, device_tokens, version"):
            row = db.students.get(params[0])
            if row is not None:
                self._row = (row.device_limit, list(row.active_devices), dict(row.device_tokens), row.version)
        elif sql_low.startswith("select") and "from public.students where id" in sql_low:
            row = db.students.get(params[0])
            self._row = row.as_record_row() if row else None
        elif sql_low.startswith("select") and "from public.students where email" in sql_low:
            row = db.student_by_email(params[0])
            self._row = row.as_record_row() if row else None
        elif sql_low.startswith("select") and "from public.students order by" in sql_low:
            self._rows = [r.as_record_row() for r in db.students.values()]
        elif sql_low.startswith("update public.students set password_hash"):
            password_hash, student_id = params
            row = db.students.get(student_id)
            if row is not None:
                row.password_hash = password_hash
            self.rowcount = 1 if row else 0
        elif sql_low.startswith("update public.students set device_limit"):
            limit, student_id = params
            row = db.students.get(student_id)
            if row is not None:
                row.device_limit = limit
                row.version += 1
            self.rowcount = 1 if row else 0
        elif sql_low.startswith("update public.students set active_devices"):
            devices, tokens, student_id, expected_version = params
            row = db.students.get(student_id)
            if row is None or row.version != expected_version:
                self.rowcount = 0
            else:
                row.active_devices = list(_unwrap(devices))
                row.device_tokens = dict(_unwrap(tokens))
                row.version += 1
                self.rowcount = 1
        elif sql_low.startswith("insert into public.admins"):
            email, password_hash = params
            if email in db.admins:
                raise FakeUniqueViolation("admins_email_key")
            db.admins[email] = (str(uuid.uuid4()), email, password_hash)
            self._row = db.admins[email]
        elif sql_low.startswith("select id::text, email, password_hash from public.admins"):
            self._row = db.admins.get(params[0])
        elif sql_low.startswith("select count(*) from public.admins"):
            self._row = (len(db.admins),)
        else:
            raise AssertionError(f"Unexpected SQL in fake psycopg: {sql}")

    def fetchone(self):
        return self._row

    def fetchall(self):
        return list(self._rows)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False


class _FakeConn:
    def __init__(self, db: FakeDatabase) -> None:
        self._db = db

    def cursor(self):
        return _FakeCursor(self._db)

    def commit(self) -> None:
        self._db.commits += 1

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False


def install_fake_psycopg(monkeypatch, target_module) -> FakeDatabase:
    """
    Patch ``target_module`` so psycopg operations go against an in-memory database.

    Returns the FakeDatabase acting as the backing store.
    """
    db = FakeDatabase()

    def fake_connect(dsn: str, autocommit: bool | None = None):
        return _FakeConn(db)

    fake_psycopg = types.SimpleNamespace(connect=fake_connect)

    monkeypatch.setattr(target_module, "HAVE_PSYCOPG", True, raising=False)
    monkeypatch.setattr(target_module, "psycopg", fake_psycopg, raising=False)
    monkeypatch.setattr(target_module, "Jsonb", FakeJsonb, raising=False)
    monkeypatch.setattr(target_module, "UniqueViolation", FakeUniqueViolation, raising=False)
    return db


__all__ = ["FakeDatabase", "FakeJsonb", "FakeUniqueViolation", "install_fake_psycopg"]
