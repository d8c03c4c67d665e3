"""
Per-student device registry: bounded FIFO of trusted devices and their live
session tokens.

Why:
    A bearer token stays cryptographically valid until it expires. The
    registry is the source of truth for whether a token is still the live one
    for its device, which makes logout and eviction effective immediately.

Design:
    - `admit_device`, `revoke_device` and `token_is_live` are pure functions
      over an immutable `DeviceState`; they hold the eviction rules and can be
      tested without a store.
    - `DeviceRegistry` applies a transition through the store's
      compare-and-set on a per-student version. A lost race re-reads and
      retries; no in-process lock is held across store I/O.

Security:
    Only a SHA-256 fingerprint of each token is kept. Comparison is constant
    time.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Callable, Dict, Mapping, Optional, Protocol, Tuple, TypeVar
import hashlib
import hmac
import logging
import time

logger = logging.getLogger("resourcehub.identity_access")

T = TypeVar("T")


def _now() -> int:
    return int(time.time())


def token_fingerprint(token: str) -> str:
    return hashlib.sha256((token or "").encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class DeviceToken:
    fingerprint: str
    expires_at: int

    @classmethod
    def for_token(cls, token: str, expires_at: int) -> "DeviceToken":
        return cls(fingerprint=token_fingerprint(token), expires_at=int(expires_at))


@dataclass(frozen=True)
class DeviceState:
    """Devices oldest-first plus one token entry per device."""

    limit: int
    devices: Tuple[str, ...] = ()
    tokens: Mapping[str, DeviceToken] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.limit < 1:
            raise ValueError("invalid_device_limit")
        if len(set(self.devices)) != len(self.devices):
            raise ValueError("duplicate_device")
        if set(self.devices) != set(self.tokens):
            raise ValueError("device_token_mismatch")


@dataclass(frozen=True)
class AdmitResult:
    admitted: bool
    evicted: Tuple[str, ...] = ()

    @property
    def evicted_device_id(self) -> Optional[str]:
        return self.evicted[0] if self.evicted else None


def admit_device(state: DeviceState, device_id: str, token: DeviceToken) -> Tuple[DeviceState, AdmitResult]:
    """Admit `device_id`, evicting the oldest devices when the limit is reached.

    A known device keeps its position and only gets its token replaced. A new
    device evicts from the front until there is room, so a limit lowered
    since the last admission is enforced here and never retroactively.
    """
    if not device_id:
        raise ValueError("invalid_device_id")
    tokens: Dict[str, DeviceToken] = dict(state.tokens)
    if device_id in state.devices:
        tokens[device_id] = token
        return replace(state, tokens=tokens), AdmitResult(admitted=True)

    devices = list(state.devices)
    evicted = []
    while devices and len(devices) >= state.limit:
        oldest = devices.pop(0)
        tokens.pop(oldest, None)
        evicted.append(oldest)
    devices.append(device_id)
    tokens[device_id] = token
    new_state = DeviceState(limit=state.limit, devices=tuple(devices), tokens=tokens)
    return new_state, AdmitResult(admitted=True, evicted=tuple(evicted))


def revoke_device(state: DeviceState, device_id: str) -> DeviceState:
    if device_id not in state.devices:
        return state
    tokens = {d: t for d, t in state.tokens.items() if d != device_id}
    devices = tuple(d for d in state.devices if d != device_id)
    return DeviceState(limit=state.limit, devices=devices, tokens=tokens)


def token_is_live(state: DeviceState, device_id: Optional[str], presented_token: str, *, now: int) -> bool:
    if not device_id or not presented_token:
        return False
    entry = state.tokens.get(device_id)
    if entry is None:
        return False
    if not hmac.compare_digest(entry.fingerprint, token_fingerprint(presented_token)):
        return False
    return now < entry.expires_at


class DeviceStateConflict(RuntimeError):
    """Raised when concurrent writers keep winning the compare-and-set."""


class DeviceStateStoreProtocol(Protocol):
    def load_device_state(self, student_id: str) -> Optional[Tuple[DeviceState, int]]: ...

    def save_device_state(self, student_id: str, state: DeviceState, *, expected_version: int) -> bool: ...


class DeviceRegistry:
    """Apply device transitions atomically per student."""

    def __init__(
        self,
        store: DeviceStateStoreProtocol,
        *,
        max_attempts: int = 5,
        clock: Callable[[], int] = _now,
    ) -> None:
        self._store = store
        self._max_attempts = max(1, int(max_attempts))
        self._clock = clock

    def _apply(self, student_id: str, transition: Callable[[DeviceState], Tuple[DeviceState, T]]) -> T:
        for attempt in range(1, self._max_attempts + 1):
            loaded = self._store.load_device_state(student_id)
            if loaded is None:
                raise LookupError("student_not_found")
            state, version = loaded
            new_state, outcome = transition(state)
            if new_state == state:
                return outcome
            if self._store.save_device_state(student_id, new_state, expected_version=version):
                return outcome
            logger.info(
                "Device state for student %s changed concurrently (attempt %d/%d); retrying",
                student_id,
                attempt,
                self._max_attempts,
            )
        logger.error("Giving up on device state update for student %s after %d attempts", student_id, self._max_attempts)
        raise DeviceStateConflict("device_state_conflict")

    def admit(self, student_id: str, device_id: str, token: DeviceToken) -> AdmitResult:
        return self._apply(student_id, lambda state: admit_device(state, device_id, token))

    def revoke(self, student_id: str, device_id: str) -> None:
        """Remove the device and its token. Absent devices are a no-op."""
        self._apply(student_id, lambda state: (revoke_device(state, device_id), None))

    def is_live(self, student_id: str, device_id: Optional[str], presented_token: str) -> bool:
        loaded = self._store.load_device_state(student_id)
        if loaded is None:
            return False
        state, _version = loaded
        return token_is_live(state, device_id, presented_token, now=self._clock())


__all__ = [
    "AdmitResult",
    "DeviceRegistry",
    "DeviceState",
    "DeviceStateConflict",
    "DeviceStateStoreProtocol",
    "DeviceToken",
    "admit_device",
    "revoke_device",
    "token_fingerprint",
    "token_is_live",
]
