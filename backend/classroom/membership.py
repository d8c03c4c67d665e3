"""
Membership graph: batch↔student and batch↔resource associations.

The edge tables are the single source of truth. A student's `batchIds` in API
payloads is read from the student edges, so the two can never disagree.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Set

from .ports import ClassroomRepoProtocol, StudentDirectory


@dataclass
class MembershipGraph:
    repo: ClassroomRepoProtocol
    students: StudentDirectory

    def _require_student(self, student_id: str) -> None:
        if self.students.get_student(student_id) is None:
            raise LookupError("student_not_found")

    def _require_batch(self, batch_id: str) -> None:
        if self.repo.get_batch(batch_id) is None:
            raise LookupError("batch_not_found")

    def assign_student_to_batches(self, student_id: str, batch_ids: Iterable[str]) -> Set[str]:
        """Replace the student's memberships with exactly `batch_ids` (last writer wins)."""
        self._require_student(student_id)
        wanted = {b for b in batch_ids if b}
        for batch_id in wanted:
            self._require_batch(batch_id)
        self.repo.replace_student_edges(student_id, wanted)
        return wanted

    def add_student_to_batch(self, batch_id: str, student_id: str) -> bool:
        """Idempotent upsert; returns False when the edge already existed."""
        self._require_batch(batch_id)
        self._require_student(student_id)
        return self.repo.add_student_edge(batch_id, student_id)

    def add_resource_to_batch(self, batch_id: str, resource_id: str) -> bool:
        self._require_batch(batch_id)
        if self.repo.get_resource(resource_id) is None:
            raise LookupError("resource_not_found")
        return self.repo.add_resource_edge(batch_id, resource_id)

    def resources_visible_to(self, student_id: str) -> Set[str]:
        batches = self.repo.batch_ids_for_student(student_id)
        if not batches:
            return set()
        return self.repo.resource_ids_for_batches(batches)

    def students_in_batch(self, batch_id: str) -> Set[str]:
        self._require_batch(batch_id)
        return self.repo.student_ids_for_batch(batch_id)

    def batches_of_student(self, student_id: str) -> Set[str]:
        return self.repo.batch_ids_for_student(student_id)

    def batches_of_resource(self, resource_id: str) -> Set[str]:
        return self.repo.batch_ids_for_resource(resource_id)


__all__ = ["MembershipGraph"]
