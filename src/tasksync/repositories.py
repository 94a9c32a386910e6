from __future__ import annotations

import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from functools import lru_cache
from threading import RLock
from typing import Any, Iterable, List, Mapping, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from .errors import ValidationError
from .models import TaskEntity
from .schemas import TaskCreate, TaskUpdate
from .settings import get_settings
from .utils import ensure_utc, utc_now

logger = logging.getLogger(__name__)

CreateInput = Union[TaskCreate, Mapping[str, Any]]
UpdateInput = Union[TaskUpdate, Mapping[str, Any]]


@dataclass(frozen=True)
class MergeResult:
    """
    Outcome of a Last-Writer-Wins merge.

    - applied: True when the incoming record became the stored record
    - resulting: the record current in the store after the merge
    """
    applied: bool
    resulting: TaskEntity


def coerce_create(data: CreateInput) -> TaskCreate:
    """Validate raw create input, raising our ValidationError on failure."""
    if isinstance(data, TaskCreate):
        return data
    try:
        return TaskCreate.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError("Invalid task creation input", e.errors()) from e


def coerce_update(data: UpdateInput) -> TaskUpdate:
    """Validate raw update input, raising our ValidationError on failure."""
    if isinstance(data, TaskUpdate):
        return data
    try:
        return TaskUpdate.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError("Invalid task update input", e.errors()) from e


def new_task_id() -> str:
    return uuid.uuid4().hex


def sort_for_listing(items: Iterable[TaskEntity]) -> List[TaskEntity]:
    """Order by updated_at descending; equal timestamps fall back to id so output is stable."""
    return sorted(items, key=lambda t: (t["updated_at"], t["id"]), reverse=True)


def _normalized(task: TaskEntity) -> TaskEntity:
    """Copy of a task with both timestamps as aware UTC."""
    out = task.copy()
    out["created_at"] = ensure_utc(task["created_at"])
    out["updated_at"] = ensure_utc(task["updated_at"])
    return out


def remote_wins(incoming: TaskEntity, existing: TaskEntity) -> bool:
    """
    Last-Writer-Wins decision. Strictly greater only: an equal timestamp keeps
    the existing record, so retransmitting a record never flips state.
    """
    return ensure_utc(incoming["updated_at"]) > ensure_utc(existing["updated_at"])


# PUBLIC_INTERFACE
class Repository(ABC):
    """Abstract record store contract shared by the task storage backends."""

    @abstractmethod
    def list(self, include_deleted: bool = False) -> List[TaskEntity]:
        """
        Return all tasks, newest updated_at first.
        Tombstoned tasks are included only when include_deleted is True.
        """

    @abstractmethod
    def get(self, task_id: str) -> Optional[TaskEntity]:
        """Return a task by id, or None if unknown or deleted."""

    @abstractmethod
    def create(self, data: CreateInput) -> TaskEntity:
        """Create a task with a fresh id and return it. Raises ValidationError on bad input."""

    @abstractmethod
    def local_update(
        self, task_id: str, data: UpdateInput, updated_at: Optional[datetime] = None
    ) -> Optional[TaskEntity]:
        """
        Apply a partial update. Return the updated task, or None if unknown or deleted.
        updated_at defaults to now; supplying it is reserved for merge-path callers.
        """

    @abstractmethod
    def local_delete(self, task_id: str) -> Optional[TaskEntity]:
        """Tombstone a task. Return the tombstone, or None if unknown or already deleted."""

    @abstractmethod
    def apply_remote(self, task: TaskEntity) -> MergeResult:
        """
        Merge a record from another source using Last-Writer-Wins:
        - unknown id: adopt the record verbatim
        - strictly newer updated_at: replace the stored record entirely
        - otherwise: keep the stored record
        """


class InMemoryRepository(Repository):
    """
    Thread-safe in-memory record store suitable for testing and default runtime.

    A single lock serializes every read-modify-write, which also gives the
    per-id mutual exclusion apply_remote requires.
    """

    def __init__(self, initial: Optional[Iterable[TaskEntity]] = None) -> None:
        self._lock = RLock()
        self._items: dict[str, TaskEntity] = {}
        for task in initial or ():
            self._items[task["id"]] = _normalized(task)

    def _now(self) -> datetime:
        return utc_now()

    def list(self, include_deleted: bool = False) -> List[TaskEntity]:
        with self._lock:
            items = [t for t in self._items.values() if include_deleted or not t["deleted"]]
            # Return copies to avoid external mutation
            return [t.copy() for t in sort_for_listing(items)]

    def get(self, task_id: str) -> Optional[TaskEntity]:
        with self._lock:
            item = self._items.get(task_id)
            if item is None or item["deleted"]:
                return None
            return item.copy()

    def create(self, data: CreateInput) -> TaskEntity:
        payload = coerce_create(data)
        now = self._now()
        entity: TaskEntity = {
            "id": new_task_id(),
            "title": payload.title,
            "description": payload.description or "",
            "completed": payload.completed,
            "created_at": now,
            "updated_at": now,
            "deleted": False,
        }
        with self._lock:
            self._items[entity["id"]] = entity
        logger.debug("Created task id=%s", entity["id"])
        return entity.copy()

    def local_update(
        self, task_id: str, data: UpdateInput, updated_at: Optional[datetime] = None
    ) -> Optional[TaskEntity]:
        patch = coerce_update(data)
        with self._lock:
            existing = self._items.get(task_id)
            if existing is None or existing["deleted"]:
                return None

            # Update only provided fields
            updated = existing.copy()
            if patch.title is not None:
                updated["title"] = patch.title
            if patch.description is not None:
                updated["description"] = patch.description
            if patch.completed is not None:
                updated["completed"] = patch.completed
            updated["updated_at"] = ensure_utc(updated_at) if updated_at else self._now()

            self._items[task_id] = updated
            return updated.copy()

    def local_delete(self, task_id: str) -> Optional[TaskEntity]:
        with self._lock:
            existing = self._items.get(task_id)
            if existing is None or existing["deleted"]:
                return None
            tombstone = existing.copy()
            tombstone["deleted"] = True
            tombstone["updated_at"] = self._now()
            self._items[task_id] = tombstone
            logger.debug("Tombstoned task id=%s", task_id)
            return tombstone.copy()

    def apply_remote(self, task: TaskEntity) -> MergeResult:
        incoming = _normalized(task)
        with self._lock:
            existing = self._items.get(incoming["id"])
            if existing is not None and not remote_wins(incoming, existing):
                return MergeResult(applied=False, resulting=existing.copy())
            self._items[incoming["id"]] = incoming
            return MergeResult(applied=True, resulting=incoming.copy())


@lru_cache(maxsize=1)
def _build_repository(backend: str, sqlite_db_path: str) -> Repository:
    if backend == "sqlite":
        from .db import SQLiteRepository

        return SQLiteRepository(sqlite_db_path)
    return InMemoryRepository()


# PUBLIC_INTERFACE
def get_repository() -> Repository:
    """
    Return the process-wide repository for the configured backend.
    - memory: InMemoryRepository
    - sqlite: SQLiteRepository at SQLITE_DB_PATH

    The instance is built once per (backend, path) so every request shares
    the same store.
    """
    settings = get_settings()
    return _build_repository(settings.persistence_backend, settings.sqlite_db_path)
