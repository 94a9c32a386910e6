from __future__ import annotations

from datetime import datetime
from typing import TypedDict


# PUBLIC_INTERFACE
class TaskEntity(TypedDict):
    """
    The unit of synchronization as held by the record stores.

    Fields:
    - id: Opaque unique identifier (client- or server-assigned), immutable
    - title: Non-empty title
    - description: Free text, empty string when not provided
    - completed: Boolean completion flag
    - created_at: UTC creation timestamp, set once and never mutated locally
    - updated_at: UTC timestamp of the last write; the Last-Writer-Wins key
    - deleted: Tombstone flag; deleted records are retained, never removed
    """

    id: str
    title: str
    description: str
    completed: bool
    created_at: datetime
    updated_at: datetime
    deleted: bool
