from __future__ import annotations

from typing import Any, List, Optional


class TaskSyncError(Exception):
    """Base class for errors raised by the task sync backend."""


# PUBLIC_INTERFACE
class ValidationError(TaskSyncError):
    """
    Malformed creation/update input (e.g. a blank title).

    Surfaced to the immediate caller and never retried. `detail` carries the
    underlying field errors when they are available.
    """

    def __init__(self, message: str, detail: Optional[List[Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail or []


# PUBLIC_INTERFACE
class NotFoundError(TaskSyncError):
    """An operation referenced an unknown (or tombstoned) task id."""

    def __init__(self, task_id: str) -> None:
        super().__init__(f"Task not found: {task_id}")
        self.task_id = task_id


# PUBLIC_INTERFACE
class ItemProcessingError(TaskSyncError):
    """
    Failure while applying a single sync item.

    Caught at the item boundary by the sync engine and recorded as the item's
    `reason`; it never escapes a batch.
    """

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


# PUBLIC_INTERFACE
class MalformedBatchError(TaskSyncError):
    """The submitted batch is not a sequence of items; rejected before any item runs."""
