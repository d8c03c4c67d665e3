"""Credential checks and password changes for students and admins."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple, Union

from .domain import DEFAULT_DEVICE_LIMIT, MIN_PASSWORD_LENGTH, normalize_email
from .passwords import generate_temporary_password, hash_password, verify_password
from .stores import AccountStoreProtocol, AdminRecord, StudentRecord


class CredentialCheck(str, Enum):
    MATCH = "match"
    NO_MATCH = "no_match"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class CredentialResult:
    outcome: CredentialCheck
    account: Optional[Union[StudentRecord, AdminRecord]] = None


_DUMMY_HASH: Optional[str] = None


def _dummy_hash() -> str:
    # Unknown emails still pay for one bcrypt check so timing does not reveal them.
    global _DUMMY_HASH
    if _DUMMY_HASH is None:
        _DUMMY_HASH = hash_password("resourcehub-dummy-password")
    return _DUMMY_HASH


def _check(account, password: str) -> CredentialResult:
    if account is None:
        verify_password(password or "x", _dummy_hash())
        return CredentialResult(CredentialCheck.NOT_FOUND)
    if verify_password(password, account.password_hash):
        return CredentialResult(CredentialCheck.MATCH, account)
    return CredentialResult(CredentialCheck.NO_MATCH)


def validate_new_password(password: str) -> str:
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        raise ValueError("password_too_short")
    return password


@dataclass
class CredentialStore:
    accounts: AccountStoreProtocol
    default_device_limit: int = DEFAULT_DEVICE_LIMIT

    def enroll_student(self, name: str, email: str) -> Tuple[StudentRecord, str]:
        """Create a student with a generated temporary password.

        Returns the record and the plaintext password, which the caller hands
        out exactly once. Raises `DuplicateEmailError` for a taken email.
        """
        clean_name = (name or "").strip()
        if not clean_name:
            raise ValueError("invalid_name")
        if "@" not in normalize_email(email):
            raise ValueError("invalid_email")
        password = generate_temporary_password()
        record = self.accounts.create_student(
            name=clean_name,
            email=email,
            password_hash=hash_password(password),
            device_limit=self.default_device_limit,
        )
        return record, password

    def reset_password(self, student_id: str) -> Tuple[StudentRecord, str]:
        student = self.accounts.get_student(student_id)
        if student is None:
            raise LookupError("student_not_found")
        password = generate_temporary_password()
        self.set_password(student_id, password)
        return student, password

    def ensure_admin(self, email: str, password: str) -> bool:
        """Seed an admin when none exists. Returns True when one was created."""
        if self.accounts.count_admins() > 0:
            return False
        validate_new_password(password)
        self.accounts.create_admin(email=email, password_hash=hash_password(password))
        return True

    def verify_credentials(self, email: str, password: str) -> CredentialResult:
        return _check(self.accounts.find_student_by_email(email), password)

    def verify_admin_credentials(self, email: str, password: str) -> CredentialResult:
        return _check(self.accounts.find_admin_by_email(email), password)

    def set_password(self, student_id: str, password: str) -> None:
        """Hash and store a new password; the swap is a single store update."""
        validate_new_password(password)
        if not self.accounts.set_student_password_hash(student_id, hash_password(password)):
            raise LookupError("student_not_found")

    def change_password(self, student_id: str, old_password: str, new_password: str) -> None:
        student = self.accounts.get_student(student_id)
        if student is None:
            raise LookupError("student_not_found")
        validate_new_password(new_password)
        if not verify_password(old_password, student.password_hash):
            raise ValueError("invalid_old_password")
        self.set_password(student_id, new_password)


__all__ = [
    "CredentialCheck",
    "CredentialResult",
    "CredentialStore",
    "validate_new_password",
]
