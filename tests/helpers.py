from __future__ import annotations

from typing import Any, Dict

from tasksync.models import TaskEntity
from tasksync.repositories import InMemoryRepository
from tasksync.utils import parse_timestamp


def ts(value: str):
    return parse_timestamp(value)


def make_task(
    task_id: str = "a",
    updated_at: str = "2024-01-01T00:00:00Z",
    title: str = "x",
    created_at: str = "2024-01-01T00:00:00Z",
    **overrides: Any,
) -> TaskEntity:
    task: TaskEntity = {
        "id": task_id,
        "title": title,
        "description": "",
        "completed": False,
        "created_at": ts(created_at),
        "updated_at": ts(updated_at),
        "deleted": False,
    }
    task.update(overrides)  # type: ignore[typeddict-item]
    return task


def wire_task(
    task_id: str = "a",
    updated_at: str = "2024-01-01T00:00:00Z",
    title: str = "x",
    **overrides: Any,
) -> Dict[str, Any]:
    """A task as a client sends it over the wire (camelCase, text timestamps)."""
    task = {
        "id": task_id,
        "title": title,
        "description": "",
        "completed": False,
        "createdAt": "2024-01-01T00:00:00Z",
        "updatedAt": updated_at,
        "deleted": False,
    }
    task.update(overrides)
    return task


class FlakyRepository(InMemoryRepository):
    """In-memory store whose merge fails for chosen ids, standing in for a storage outage."""

    def __init__(self, failing_ids=("boom",)) -> None:
        super().__init__()
        self.failing_ids = set(failing_ids)

    def apply_remote(self, task):
        if task["id"] in self.failing_ids:
            raise RuntimeError("storage unavailable")
        return super().apply_remote(task)
