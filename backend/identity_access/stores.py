"""
In-memory account store for development and tests.

Why: Keep the web adapter and services runnable without Postgres. The
production counterpart lives in `stores_db.DBAccountStore` and follows the
same contract (`AccountStoreProtocol`).

Concurrency: A single lock guards the dictionaries. It is held only for the
duration of each dict operation, including the compare-and-set in
`save_device_state`; callers never hold it across I/O.
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Dict, List, Optional, Protocol, Tuple
import threading
import uuid

from .devices import DeviceState
from .domain import DEFAULT_DEVICE_LIMIT, normalize_email, validate_device_limit


class DuplicateEmailError(Exception):
    """Raised when an email is already registered."""

    def __init__(self, code: str = "email_taken"):
        super().__init__(code)
        self.code = code


@dataclass(frozen=True)
class StudentRecord:
    id: str
    name: str
    email: str
    password_hash: str
    device_limit: int
    active_devices: Tuple[str, ...]
    created_at: str


@dataclass(frozen=True)
class AdminRecord:
    id: str
    email: str
    password_hash: str


class AccountStoreProtocol(Protocol):
    """Persistence contract for admins, students and per-student device state."""

    def create_student(self, *, name: str, email: str, password_hash: str, device_limit: int = DEFAULT_DEVICE_LIMIT) -> StudentRecord: ...

    def get_student(self, student_id: str) -> Optional[StudentRecord]: ...

    def find_student_by_email(self, email: str) -> Optional[StudentRecord]: ...

    def list_students(self) -> List[StudentRecord]: ...

    def set_student_password_hash(self, student_id: str, password_hash: str) -> bool: ...

    def set_device_limit(self, student_id: str, limit: int) -> bool: ...

    def load_device_state(self, student_id: str) -> Optional[Tuple[DeviceState, int]]: ...

    def save_device_state(self, student_id: str, state: DeviceState, *, expected_version: int) -> bool: ...

    def create_admin(self, *, email: str, password_hash: str) -> AdminRecord: ...

    def find_admin_by_email(self, email: str) -> Optional[AdminRecord]: ...

    def count_admins(self) -> int: ...


def _iso_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


@dataclass
class _StudentRow:
    record: StudentRecord
    state: DeviceState
    version: int = 0


class InMemoryAccountStore:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._students: Dict[str, _StudentRow] = {}
        self._student_ids_by_email: Dict[str, str] = {}
        self._admins: Dict[str, AdminRecord] = {}

    # --- Students ---------------------------------------------------------------

    def create_student(self, *, name: str, email: str, password_hash: str, device_limit: int = DEFAULT_DEVICE_LIMIT) -> StudentRecord:
        email_norm = normalize_email(email)
        validate_device_limit(device_limit)
        with self._lock:
            if email_norm in self._student_ids_by_email:
                raise DuplicateEmailError()
            student_id = str(uuid.uuid4())
            record = StudentRecord(
                id=student_id,
                name=name,
                email=email_norm,
                password_hash=password_hash,
                device_limit=device_limit,
                active_devices=(),
                created_at=_iso_now(),
            )
            self._students[student_id] = _StudentRow(record=record, state=DeviceState(limit=device_limit))
            self._student_ids_by_email[email_norm] = student_id
            return record

    def get_student(self, student_id: str) -> Optional[StudentRecord]:
        with self._lock:
            row = self._students.get(student_id)
            return self._snapshot(row) if row else None

    def find_student_by_email(self, email: str) -> Optional[StudentRecord]:
        with self._lock:
            student_id = self._student_ids_by_email.get(normalize_email(email))
            row = self._students.get(student_id) if student_id else None
            return self._snapshot(row) if row else None

    def list_students(self) -> List[StudentRecord]:
        with self._lock:
            rows = [self._snapshot(r) for r in self._students.values()]
        return sorted(rows, key=lambda r: (r.created_at, r.id))

    def set_student_password_hash(self, student_id: str, password_hash: str) -> bool:
        with self._lock:
            row = self._students.get(student_id)
            if row is None:
                return False
            row.record = replace(row.record, password_hash=password_hash)
            return True

    def set_device_limit(self, student_id: str, limit: int) -> bool:
        validate_device_limit(limit)
        with self._lock:
            row = self._students.get(student_id)
            if row is None:
                return False
            row.record = replace(row.record, device_limit=limit)
            # Keep devices as they are; the next admission enforces the new limit.
            row.state = DeviceState(limit=limit, devices=row.state.devices, tokens=dict(row.state.tokens))
            row.version += 1
            return True

    def load_device_state(self, student_id: str) -> Optional[Tuple[DeviceState, int]]:
        with self._lock:
            row = self._students.get(student_id)
            if row is None:
                return None
            return row.state, row.version

    def save_device_state(self, student_id: str, state: DeviceState, *, expected_version: int) -> bool:
        with self._lock:
            row = self._students.get(student_id)
            if row is None or row.version != expected_version:
                return False
            row.state = state
            row.version += 1
            return True

    @staticmethod
    def _snapshot(row: _StudentRow) -> StudentRecord:
        return replace(row.record, active_devices=tuple(row.state.devices))

    # --- Admins -----------------------------------------------------------------

    def create_admin(self, *, email: str, password_hash: str) -> AdminRecord:
        email_norm = normalize_email(email)
        with self._lock:
            if email_norm in self._admins:
                raise DuplicateEmailError()
            rec = AdminRecord(id=str(uuid.uuid4()), email=email_norm, password_hash=password_hash)
            self._admins[email_norm] = rec
            return rec

    def find_admin_by_email(self, email: str) -> Optional[AdminRecord]:
        with self._lock:
            return self._admins.get(normalize_email(email))

    def count_admins(self) -> int:
        with self._lock:
            return len(self._admins)


__all__ = [
    "AccountStoreProtocol",
    "AdminRecord",
    "DuplicateEmailError",
    "InMemoryAccountStore",
    "StudentRecord",
]
