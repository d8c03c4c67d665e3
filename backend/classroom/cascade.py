"""Orphan detection for batch deletion, kept pure so it is testable without a store."""
from __future__ import annotations

from typing import Iterable, Set

from .ports import ResourceEdge


def orphaned_resources(edges_before: Iterable[ResourceEdge], edges_removed: Iterable[ResourceEdge]) -> Set[str]:
    """Resources touched by `edges_removed` that keep no batch edge afterwards.

    A resource linked to the deleted batch and to another batch survives.
    """
    removed = set(edges_removed)
    remaining = set(edges_before) - removed
    still_linked = {resource_id for _, resource_id in remaining}
    return {resource_id for _, resource_id in removed} - still_linked


__all__ = ["orphaned_resources"]
