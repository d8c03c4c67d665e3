"""
Session tokens: signature, algorithm pinning, required claims and expiry.
"""
from __future__ import annotations

import pytest
from jose import jwt

from identity_access.tokens import SessionTokenError, SessionTokenIssuer

SECRET = "unit-test-secret-with-enough-length-123"


class _Clock:
    def __init__(self, now: int = 1_000) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now


def test_issue_and_verify_student_token():
    clock = _Clock()
    issuer = SessionTokenIssuer(SECRET, clock=clock)
    issued = issuer.issue("stu-1", "student", device_id="phone", ttl_seconds=60)
    assert issued.expires_at == 1_060
    claims = issuer.verify_signature_and_expiry(issued.token)
    assert claims["sub"] == "stu-1"
    assert claims["role"] == "student"
    assert claims["device_id"] == "phone"


def test_admin_token_has_no_device_binding():
    issuer = SessionTokenIssuer(SECRET, clock=_Clock())
    issued = issuer.issue("adm-1", "admin", ttl_seconds=60)
    claims = issuer.verify_signature_and_expiry(issued.token)
    assert claims["role"] == "admin"
    assert "device_id" not in claims


def test_two_tokens_in_same_second_differ():
    issuer = SessionTokenIssuer(SECRET, clock=_Clock())
    a = issuer.issue("stu-1", "student", device_id="phone")
    b = issuer.issue("stu-1", "student", device_id="phone")
    assert a.token != b.token


def test_expiry_is_strict():
    clock = _Clock()
    issuer = SessionTokenIssuer(SECRET, clock=clock)
    token = issuer.issue("stu-1", "student", device_id="phone", ttl_seconds=10).token
    clock.now = 1_009
    issuer.verify_signature_and_expiry(token)
    clock.now = 1_010
    with pytest.raises(SessionTokenError) as exc:
        issuer.verify_signature_and_expiry(token)
    assert exc.value.code == "token_expired"


def test_wrong_secret_and_garbage_are_invalid():
    token = SessionTokenIssuer(SECRET, clock=_Clock()).issue("adm-1", "admin").token
    other = SessionTokenIssuer("another-secret-also-long-enough-456", clock=_Clock())
    for candidate in (token, "not-a-jwt", token + "x"):
        with pytest.raises(SessionTokenError) as exc:
            other.verify_signature_and_expiry(candidate)
        assert exc.value.code == "invalid_token"


def test_missing_token():
    issuer = SessionTokenIssuer(SECRET)
    with pytest.raises(SessionTokenError) as exc:
        issuer.verify_signature_and_expiry("")
    assert exc.value.code == "missing_token"


def test_other_algorithm_is_rejected():
    forged = jwt.encode({"sub": "adm-1", "role": "admin", "exp": 10_000}, SECRET, algorithm="HS512")
    with pytest.raises(SessionTokenError):
        SessionTokenIssuer(SECRET, clock=_Clock()).verify_signature_and_expiry(forged)


@pytest.mark.parametrize(
    "claims",
    [
        {"role": "admin", "exp": 10_000},
        {"sub": "x", "role": "teacher", "exp": 10_000},
        {"sub": "x", "role": "student", "exp": 10_000},
        {"sub": "x", "role": "admin"},
    ],
)
def test_required_claims(claims):
    forged = jwt.encode(claims, SECRET, algorithm="HS256")
    with pytest.raises(SessionTokenError) as exc:
        SessionTokenIssuer(SECRET, clock=_Clock()).verify_signature_and_expiry(forged)
    assert exc.value.code == "invalid_token"


def test_issue_validates_inputs():
    issuer = SessionTokenIssuer(SECRET)
    with pytest.raises(ValueError):
        issuer.issue("stu-1", "student")
    with pytest.raises(ValueError):
        issuer.issue("stu-1", "teacher")
    with pytest.raises(ValueError):
        issuer.issue("", "admin")
    with pytest.raises(ValueError):
        SessionTokenIssuer("")
