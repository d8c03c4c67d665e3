"""
In-memory classroom repository for tests and offline development.

Mirrors `repo_db.DBClassroomRepo`. A single lock guards the dictionaries and
is held only for the duration of each call.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Set, Tuple
import threading
import uuid

from .ports import ResourceEdge
from .records import Batch, Resource


def _iso_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


class InMemoryClassroomRepo:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.batches: Dict[str, Batch] = {}
        self.resources: Dict[str, Resource] = {}
        self.student_edges: Set[Tuple[str, str]] = set()
        self.resource_edges: Set[ResourceEdge] = set()

    # --- Batches ----------------------------------------------------------------

    def create_batch(self, *, title: str) -> Batch:
        title = (title or "").strip()
        if not title or len(title) > 200:
            raise ValueError("invalid_title")
        batch = Batch(id=str(uuid.uuid4()), title=title, created_at=_iso_now())
        with self._lock:
            self.batches[batch.id] = batch
        return batch

    def get_batch(self, batch_id: str) -> Optional[Batch]:
        with self._lock:
            return self.batches.get(batch_id)

    def list_batches(self) -> List[Batch]:
        with self._lock:
            return sorted(self.batches.values(), key=lambda b: (b.created_at, b.id))

    def delete_batch(self, batch_id: str) -> bool:
        # Edges go with the batch, mirroring `on delete cascade` in Postgres.
        with self._lock:
            if self.batches.pop(batch_id, None) is None:
                return False
            self.student_edges = {e for e in self.student_edges if e[0] != batch_id}
            self.resource_edges = {e for e in self.resource_edges if e[0] != batch_id}
            return True

    # --- Resources --------------------------------------------------------------

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
        resource = Resource(
            id=str(uuid.uuid4()),
            title=title,
            s3_key=s3_key,
            filename=filename,
            mime_type=mime_type,
            size_bytes=size_bytes,
            created_at=_iso_now(),
        )
        with self._lock:
            if batch_id not in self.batches:
                raise LookupError("batch_not_found")
            self.resources[resource.id] = resource
            self.resource_edges.add((batch_id, resource.id))
        return resource

    def get_resource(self, resource_id: str) -> Optional[Resource]:
        with self._lock:
            return self.resources.get(resource_id)

    def list_resources(self, resource_ids: Optional[Iterable[str]] = None) -> List[Resource]:
        with self._lock:
            if resource_ids is None:
                items = list(self.resources.values())
            else:
                items = [self.resources[r] for r in set(resource_ids) if r in self.resources]
        return sorted(items, key=lambda r: (r.created_at, r.id))

    def delete_resource(self, resource_id: str) -> bool:
        with self._lock:
            if self.resources.pop(resource_id, None) is None:
                return False
            self.resource_edges = {e for e in self.resource_edges if e[1] != resource_id}
            return True

    def list_storage_keys(self) -> Set[str]:
        with self._lock:
            return {r.s3_key for r in self.resources.values()}

    def unlinked_resource_ids(self) -> Set[str]:
        with self._lock:
            linked = {res for _, res in self.resource_edges}
            return set(self.resources) - linked

    # --- Student edges ----------------------------------------------------------

    def add_student_edge(self, batch_id: str, student_id: str) -> bool:
        with self._lock:
            if batch_id not in self.batches:
                raise LookupError("batch_not_found")
            edge = (batch_id, student_id)
            if edge in self.student_edges:
                return False
            self.student_edges.add(edge)
            return True

    def replace_student_edges(self, student_id: str, batch_ids: Iterable[str]) -> None:
        wanted = set(batch_ids)
        with self._lock:
            missing = wanted - set(self.batches)
            if missing:
                raise LookupError("batch_not_found")
            kept = {e for e in self.student_edges if e[1] != student_id}
            self.student_edges = kept | {(b, student_id) for b in wanted}

    def batch_ids_for_student(self, student_id: str) -> Set[str]:
        with self._lock:
            return {b for b, s in self.student_edges if s == student_id}

    def student_ids_for_batch(self, batch_id: str) -> Set[str]:
        with self._lock:
            return {s for b, s in self.student_edges if b == batch_id}

    def batch_ids_by_student(self) -> Dict[str, Set[str]]:
        out: Dict[str, Set[str]] = {}
        with self._lock:
            for b, s in self.student_edges:
                out.setdefault(s, set()).add(b)
        return out

    # --- Resource edges ---------------------------------------------------------

    def add_resource_edge(self, batch_id: str, resource_id: str) -> bool:
        with self._lock:
            if batch_id not in self.batches:
                raise LookupError("batch_not_found")
            if resource_id not in self.resources:
                raise LookupError("resource_not_found")
            edge = (batch_id, resource_id)
            if edge in self.resource_edges:
                return False
            self.resource_edges.add(edge)
            return True

    def batch_ids_for_resource(self, resource_id: str) -> Set[str]:
        with self._lock:
            return {b for b, r in self.resource_edges if r == resource_id}

    def resource_ids_for_batches(self, batch_ids: Iterable[str]) -> Set[str]:
        wanted = set(batch_ids)
        with self._lock:
            return {r for b, r in self.resource_edges if b in wanted}

    def resource_edges_for(self, resource_ids: Iterable[str]) -> Set[ResourceEdge]:
        wanted = set(resource_ids)
        with self._lock:
            return {e for e in self.resource_edges if e[1] in wanted}

    def remove_batch_edges(self, batch_id: str) -> Tuple[Set[str], Set[ResourceEdge]]:
        with self._lock:
            removed_students = {s for b, s in self.student_edges if b == batch_id}
            removed_resources = {e for e in self.resource_edges if e[0] == batch_id}
            self.student_edges = {e for e in self.student_edges if e[0] != batch_id}
            self.resource_edges -= removed_resources
        return removed_students, removed_resources


__all__ = ["InMemoryClassroomRepo"]
