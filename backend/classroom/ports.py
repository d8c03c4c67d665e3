"""
Repository ports for the classroom context (batches, resources, membership
edges).

Keep these small and framework-agnostic so tests can supply simple fakes.
Edges are `(batch_id, student_id)` and `(batch_id, resource_id)` pairs; each
pair exists at most once.
"""
from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Protocol, Set, Tuple

from .records import Batch, Resource

ResourceEdge = Tuple[str, str]


class StudentDirectory(Protocol):
    """The slice of the account store the classroom needs."""

    def get_student(self, student_id: str) -> Optional[object]: ...


class ClassroomRepoProtocol(Protocol):
    # --- Batches ---
    def create_batch(self, *, title: str) -> Batch: ...

    def get_batch(self, batch_id: str) -> Optional[Batch]: ...

    def list_batches(self) -> List[Batch]: ...

    def delete_batch(self, batch_id: str) -> bool: ...

    # --- Resources ---
    def create_resource(
        self,
        *,
        batch_id: str,
        title: str,
        s3_key: str,
        filename: Optional[str],
        mime_type: Optional[str],
        size_bytes: Optional[int],
    ) -> Resource:
        """Create the record and its edge to `batch_id` together.

        Raises LookupError("batch_not_found") when the batch is gone.
        """
        ...

    def get_resource(self, resource_id: str) -> Optional[Resource]: ...

    def list_resources(self, resource_ids: Optional[Iterable[str]] = None) -> List[Resource]: ...

    def delete_resource(self, resource_id: str) -> bool:
        """Delete the record and all of its batch edges."""
        ...

    def list_storage_keys(self) -> Set[str]: ...

    def unlinked_resource_ids(self) -> Set[str]: ...

    # --- Student edges ---
    def add_student_edge(self, batch_id: str, student_id: str) -> bool: ...

    def replace_student_edges(self, student_id: str, batch_ids: Iterable[str]) -> None: ...

    def batch_ids_for_student(self, student_id: str) -> Set[str]: ...

    def student_ids_for_batch(self, batch_id: str) -> Set[str]: ...

    def batch_ids_by_student(self) -> Dict[str, Set[str]]: ...

    # --- Resource edges ---
    def add_resource_edge(self, batch_id: str, resource_id: str) -> bool: ...

    def batch_ids_for_resource(self, resource_id: str) -> Set[str]: ...

    def resource_ids_for_batches(self, batch_ids: Iterable[str]) -> Set[str]: ...

    def resource_edges_for(self, resource_ids: Iterable[str]) -> Set[ResourceEdge]: ...

    def remove_batch_edges(self, batch_id: str) -> Tuple[Set[str], Set[ResourceEdge]]:
        """Remove every edge of the batch; return (student ids, resource edges) removed."""
        ...


__all__ = ["ClassroomRepoProtocol", "ResourceEdge", "StudentDirectory"]
