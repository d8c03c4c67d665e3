"""Classroom records shared by the in-memory and Postgres repositories."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Batch:
    id: str
    title: str
    created_at: str


@dataclass(frozen=True)
class Resource:
    id: str
    title: str
    s3_key: str
    filename: Optional[str]
    mime_type: Optional[str]
    size_bytes: Optional[int]
    created_at: str


__all__ = ["Batch", "Resource"]
