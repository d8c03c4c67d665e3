"""
DBClassroomRepo with a scripted psycopg stand-in: row mapping, idempotent edge
inserts and foreign-key violations surfacing as LookupError.
"""
from __future__ import annotations

import types

import pytest

from classroom import repo_db


class _FkViolation(Exception):
    sqlstate = "23503"


class _ScriptedCursor:
    def __init__(self, script, log):
        self._script = script
        self._log = log
        self._rows = []
        self.rowcount = -1

    def execute(self, sql, params=()):
        sql_low = " ".join(sql.lower().split())
        self._log.append((sql_low, params))
        for prefix, outcome in self._script:
            if sql_low.startswith(prefix):
                if isinstance(outcome, Exception):
                    raise outcome
                self._rows, self.rowcount = outcome
                return
        self._rows, self.rowcount = [], 0

    def executemany(self, sql, seq):
        for params in seq:
            self.execute(sql, params)

    def fetchone(self):
        return self._rows[0] if self._rows else None

    def fetchall(self):
        return list(self._rows)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False


def _install(monkeypatch, script):
    log = []

    class _Conn:
        def cursor(self):
            return _ScriptedCursor(script, log)

        def commit(self):
            log.append(("commit", ()))

        def __enter__(self):
            return self

        def __exit__(self, exc_type, exc, tb):
            return False

    monkeypatch.setattr(repo_db, "HAVE_PSYCOPG", True)
    monkeypatch.setattr(repo_db, "psycopg", types.SimpleNamespace(connect=lambda dsn: _Conn()))
    return repo_db.DBClassroomRepo("postgresql://fake/db"), log


def test_requires_psycopg(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(repo_db, "HAVE_PSYCOPG", False)
    with pytest.raises(RuntimeError):
        repo_db.DBClassroomRepo("postgresql://fake/db")


def test_create_batch_validates_title_before_sql(monkeypatch: pytest.MonkeyPatch):
    repo, log = _install(monkeypatch, [("insert into public.batches", ([("b-1", "Physics", "2026-01-01T00:00:00+00:00")], 1))])
    with pytest.raises(ValueError):
        repo.create_batch(title="   ")
    assert log == []
    batch = repo.create_batch(title=" Physics ")
    assert batch.id == "b-1" and batch.title == "Physics"
    assert log[0][1] == ("Physics",)


def test_edge_inserts_are_idempotent(monkeypatch: pytest.MonkeyPatch):
    repo, _log = _install(monkeypatch, [("insert into public.batch_students", ([], 0))])
    assert repo.add_student_edge("b-1", "s-1") is False


def test_foreign_key_violation_maps_to_lookup_error(monkeypatch: pytest.MonkeyPatch):
    repo, _log = _install(
        monkeypatch,
        [
            ("insert into public.batch_students", _FkViolation()),
            ("insert into public.resources", ([("r-1", "T", "k", "f.pdf", "application/pdf", 3, "ts")], 1)),
            ("insert into public.batch_resources", _FkViolation()),
        ],
    )
    with pytest.raises(LookupError, match="batch_not_found"):
        repo.add_student_edge("b-missing", "s-1")
    with pytest.raises(LookupError, match="batch_not_found"):
        repo.create_resource(batch_id="b-missing", title="T", s3_key="k", filename="f.pdf", mime_type="application/pdf", size_bytes=3)


def test_remove_batch_edges_returns_removed_rows(monkeypatch: pytest.MonkeyPatch):
    repo, log = _install(
        monkeypatch,
        [
            ("delete from public.batch_students", ([("s-1",), ("s-2",)], 2)),
            ("delete from public.batch_resources", ([("b-1", "r-1"), ("b-1", "r-2")], 2)),
        ],
    )
    students, edges = repo.remove_batch_edges("b-1")
    assert students == {"s-1", "s-2"}
    assert edges == {("b-1", "r-1"), ("b-1", "r-2")}
    assert log[-1] == ("commit", ())


def test_replace_student_edges_locks_student_row_first(monkeypatch: pytest.MonkeyPatch):
    repo, log = _install(monkeypatch, [("select id from public.students", ([("s-1",)], 1))])
    repo.replace_student_edges("s-1", ["b-2", "b-1", "b-2"])
    statements = [sql for sql, _ in log]
    assert statements[0].endswith("for update")
    assert statements[1].startswith("delete from public.batch_students")
    assert [params for sql, params in log if sql.startswith("insert")] == [("b-1", "s-1"), ("b-2", "s-1")]


def test_replace_student_edges_for_vanished_student(monkeypatch: pytest.MonkeyPatch):
    repo, log = _install(monkeypatch, [("select id from public.students", ([], 0))])
    with pytest.raises(LookupError, match="student_not_found"):
        repo.replace_student_edges("s-gone", ["b-1"])
    assert [sql for sql, _ in log if not sql.startswith("select")] == []


def test_list_resources_with_empty_ids_skips_query(monkeypatch: pytest.MonkeyPatch):
    repo, log = _install(monkeypatch, [])
    assert repo.list_resources([]) == []
    assert repo.resource_ids_for_batches([]) == set()
    assert log == []
