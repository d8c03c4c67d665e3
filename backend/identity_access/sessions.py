"""
Login and logout orchestration.

Flow (student): verify credentials → mint a device-bound token → admit the
device in the registry with that token's fingerprint. Overflow never fails a
login; the registry evicts the oldest device instead.

Admins are not device-bound; their tokens are accepted on signature and
expiry alone and logout is stateless.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple
import logging

from .credentials import CredentialCheck, CredentialStore
from .devices import DeviceRegistry, DeviceToken
from .tokens import DEFAULT_SESSION_TTL_SECONDS, IssuedToken, SessionTokenIssuer

logger = logging.getLogger("resourcehub.identity_access")

MAX_DEVICE_ID_LENGTH = 200


class InvalidCredentials(Exception):
    """Unknown email or wrong password; callers must not tell them apart."""


@dataclass(frozen=True)
class StudentLogin:
    token: str
    student_id: str
    name: str
    device_id: str
    expires_at: int
    evicted_device_ids: Tuple[str, ...] = ()


def _normalize_device_id(device_id: str) -> str:
    value = (device_id or "").strip()
    if not value or len(value) > MAX_DEVICE_ID_LENGTH:
        raise ValueError("invalid_device_id")
    return value


@dataclass
class SessionService:
    credentials: CredentialStore
    registry: DeviceRegistry
    issuer: SessionTokenIssuer
    ttl_seconds: int = DEFAULT_SESSION_TTL_SECONDS

    def login_student(self, email: str, password: str, device_id: str) -> StudentLogin:
        device = _normalize_device_id(device_id)
        result = self.credentials.verify_credentials(email, password)
        if result.outcome is not CredentialCheck.MATCH or result.account is None:
            raise InvalidCredentials()
        student = result.account
        issued = self.issuer.issue(student.id, "student", device_id=device, ttl_seconds=self.ttl_seconds)
        admitted = self.registry.admit(student.id, device, DeviceToken.for_token(issued.token, issued.expires_at))
        if admitted.evicted:
            logger.info("Student %s logged in on a new device; evicted %d device(s)", student.id, len(admitted.evicted))
        return StudentLogin(
            token=issued.token,
            student_id=student.id,
            name=student.name,
            device_id=device,
            expires_at=issued.expires_at,
            evicted_device_ids=admitted.evicted,
        )

    def logout_student(self, student_id: str, device_id: str) -> None:
        self.registry.revoke(student_id, device_id)

    def login_admin(self, email: str, password: str) -> IssuedToken:
        result = self.credentials.verify_admin_credentials(email, password)
        if result.outcome is not CredentialCheck.MATCH or result.account is None:
            raise InvalidCredentials()
        return self.issuer.issue(result.account.id, "admin", ttl_seconds=self.ttl_seconds)


__all__ = ["InvalidCredentials", "SessionService", "StudentLogin"]
