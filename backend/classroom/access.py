"""Access gate for resource reads (signed URLs and inline preview)."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from .membership import MembershipGraph


def can_access(student_batches: Iterable[str], resource_batches: Iterable[str]) -> bool:
    """Allow iff the two batch sets intersect; an empty side always denies."""
    return not set(student_batches).isdisjoint(resource_batches)


@dataclass
class AccessGate:
    membership: MembershipGraph

    def can_access(self, student_id: str, resource_id: str) -> bool:
        # Read both sides on every call; decisions are never cached.
        return can_access(
            self.membership.batches_of_student(student_id),
            self.membership.batches_of_resource(resource_id),
        )

    def ensure_access(self, student_id: str, resource_id: str) -> None:
        if not self.can_access(student_id, resource_id):
            raise PermissionError("not_in_batch")


__all__ = ["AccessGate", "can_access"]
