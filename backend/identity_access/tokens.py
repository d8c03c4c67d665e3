"""
Session token issuing and verification for the identity_access bounded context.

Why: Keep cryptographic handling of session tokens outside the web adapter so
it can be unit tested independently of the device registry and of FastAPI.

Security: Tokens are HS256 JWTs signed with a server-side secret. Verification
pins the algorithm, requires `sub`, `role` and `exp`, and enforces
`now < exp` itself instead of relying on library defaults. Verification does
not consult the device registry; `authn.authenticate_bearer` composes both.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional
import time
import uuid

from jose import jwt
from jose.exceptions import JOSEError

from .domain import ALLOWED_ROLES

SESSION_TOKEN_ALGORITHM = "HS256"
DEFAULT_SESSION_TTL_SECONDS = 8 * 60 * 60


class SessionTokenError(Exception):
    """Raised when a session token fails verification."""

    def __init__(self, code: str):
        super().__init__(code)
        self.code = code


@dataclass(frozen=True)
class IssuedToken:
    token: str
    subject_id: str
    role: str
    device_id: Optional[str]
    expires_at: int


def _now() -> int:
    return int(time.time())


class SessionTokenIssuer:
    """Mint and verify signed session tokens.

    Parameters
    ----------
    secret:
        Signing secret (RESOURCEHUB_JWT_SECRET). Must be non-empty.
    clock:
        Returns the current unix time in seconds; injectable for tests.
    """

    def __init__(self, secret: str, *, algorithm: str = SESSION_TOKEN_ALGORITHM, clock: Callable[[], int] = _now) -> None:
        if not secret:
            raise ValueError("missing_signing_secret")
        self._secret = secret
        self._algorithm = algorithm
        self._clock = clock

    def issue(
        self,
        subject_id: str,
        role: str,
        *,
        device_id: Optional[str] = None,
        ttl_seconds: int = DEFAULT_SESSION_TTL_SECONDS,
    ) -> IssuedToken:
        if not subject_id:
            raise ValueError("invalid_subject")
        if role not in ALLOWED_ROLES:
            raise ValueError("invalid_role")
        if role == "student" and not device_id:
            raise ValueError("device_id_required")
        if ttl_seconds <= 0:
            raise ValueError("invalid_ttl")
        now = self._clock()
        expires_at = now + int(ttl_seconds)
        claims: Dict[str, Any] = {
            "sub": subject_id,
            "role": role,
            "iat": now,
            "exp": expires_at,
            # Two logins within the same second must still yield distinct tokens.
            "jti": uuid.uuid4().hex,
        }
        if device_id:
            claims["device_id"] = device_id
        token = jwt.encode(claims, self._secret, algorithm=self._algorithm)
        return IssuedToken(token=token, subject_id=subject_id, role=role, device_id=device_id, expires_at=expires_at)

    def verify_signature_and_expiry(self, token: str) -> Dict[str, Any]:
        """Return claims for an authentic, unexpired token.

        Raises
        ------
        SessionTokenError:
            `missing_token`, `invalid_token` (malformed, bad signature, wrong
            algorithm, missing claims) or `token_expired`.
        """
        if not token or not isinstance(token, str):
            raise SessionTokenError("missing_token")
        try:
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options={
                    "verify_signature": True,
                    "verify_aud": False,
                    "verify_exp": False,
                    "verify_iat": False,
                    "verify_nbf": False,
                },
            )
        except JOSEError as exc:
            raise SessionTokenError("invalid_token") from exc
        _validate_claims(claims, now=self._clock())
        return claims


def _validate_claims(claims: Dict[str, Any], *, now: int) -> None:
    sub = claims.get("sub")
    if not isinstance(sub, str) or not sub:
        raise SessionTokenError("invalid_token")
    role = claims.get("role")
    if role not in ALLOWED_ROLES:
        raise SessionTokenError("invalid_token")
    if role == "student":
        device_id = claims.get("device_id")
        if not isinstance(device_id, str) or not device_id:
            raise SessionTokenError("invalid_token")
    exp = claims.get("exp")
    if isinstance(exp, bool) or not isinstance(exp, (int, float)):
        raise SessionTokenError("invalid_token")
    if not now < exp:
        raise SessionTokenError("token_expired")


__all__ = [
    "DEFAULT_SESSION_TTL_SECONDS",
    "IssuedToken",
    "SESSION_TOKEN_ALGORITHM",
    "SessionTokenError",
    "SessionTokenIssuer",
]
