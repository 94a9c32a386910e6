"""
Batch reconciliation of client task changes against the server of record.

A client that worked offline replays its queued operations as one batch.
Every item goes through the record store's Last-Writer-Wins merge, one at a
time and in submission order; a bad item is reported in its own result and
never stops the rest of the batch. The response carries the full non-deleted
server state, which the client treats as authoritative.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional

from pydantic import ValidationError as PydanticValidationError

from .errors import ItemProcessingError, MalformedBatchError
from .models import TaskEntity
from .repositories import MergeResult, Repository
from .schemas import TaskRecord

logger = logging.getLogger(__name__)

SUPPORTED_OPS = ("create", "update", "delete")

INVALID_TASK = "invalid_task"
UNSUPPORTED_OP = "unsupported_op"
UNKNOWN_ID = "unknown"


@dataclass
class SyncResult:
    """Outcome of one sync item; results are 1:1 and in order with the submitted items."""
    op: Optional[str]
    id: str
    applied: bool
    server_task: Optional[TaskEntity] = None
    reason: Optional[str] = None


@dataclass
class BatchOutcome:
    results: List[SyncResult] = field(default_factory=list)
    server_state: List[TaskEntity] = field(default_factory=list)


def _submitted_op(item: Any) -> Optional[str]:
    if isinstance(item, Mapping):
        op = item.get("op")
        if isinstance(op, str):
            return op
    return None


def _submitted_id(item: Any) -> Optional[str]:
    if isinstance(item, Mapping):
        task = item.get("task")
        if isinstance(task, Mapping):
            task_id = task.get("id")
            if isinstance(task_id, str) and task_id:
                return task_id
    return None


# PUBLIC_INTERFACE
class SyncService:
    """
    Reconciliation engine over a Repository.

    Operations:
    - submit_batch(items): apply client operations, return results + snapshot
    - get_snapshot(): current non-deleted server state
    """

    def __init__(self, repo: Repository) -> None:
        self._repo = repo

    # PUBLIC_INTERFACE
    def submit_batch(self, items: Any) -> BatchOutcome:
        """
        Process a batch of sync items using Last-Writer-Wins.

        For each item, in order:
        - create: applied through the merge; the client's id is kept even when
          the server already holds that id (LWW decides)
        - update: applied through the merge
        - delete: the submitted task is turned into a tombstone (deleted=True,
          submitted updatedAt kept as its LWW key) and merged
        - anything else: reported as unsupported_op

        Args:
            items: A list of {"op": ..., "task": {...}} mappings.

        Returns:
            BatchOutcome with one SyncResult per item and the non-deleted
            server state read after the last item.

        Raises:
            MalformedBatchError: items is not a list. Nothing is applied.
        """
        if not isinstance(items, list):
            raise MalformedBatchError(
                f"Sync batch must be a list of items, got {type(items).__name__}"
            )

        outcome = BatchOutcome()
        for index, item in enumerate(items):
            op = _submitted_op(item)
            task_id = _submitted_id(item) or UNKNOWN_ID
            try:
                result = self._process_item(op, item)
            except ItemProcessingError as e:
                logger.warning("Sync item %d rejected: op=%s id=%s reason=%s", index, op, task_id, e.reason)
                result = SyncResult(op=op, id=task_id, applied=False, reason=e.reason)
            except Exception as e:
                # One failing item never aborts the batch.
                logger.exception("Sync item %d failed: op=%s id=%s", index, op, task_id)
                result = SyncResult(op=op, id=task_id, applied=False, reason=f"exception:{e}")
            outcome.results.append(result)

        outcome.server_state = self._repo.list(include_deleted=False)
        applied = sum(1 for r in outcome.results if r.applied)
        logger.info(
            "Processed sync batch items=%d applied=%d server_tasks=%d",
            len(items),
            applied,
            len(outcome.server_state),
        )
        return outcome

    # PUBLIC_INTERFACE
    def get_snapshot(self) -> List[TaskEntity]:
        """Return every non-deleted task, newest first."""
        return self._repo.list(include_deleted=False)

    def _process_item(self, op: Optional[str], item: Any) -> SyncResult:
        if _submitted_id(item) is None:
            raise ItemProcessingError(INVALID_TASK)
        if op not in SUPPORTED_OPS:
            raise ItemProcessingError(UNSUPPORTED_OP)

        task = self._parse_task(item["task"])
        if op == "delete":
            task["deleted"] = True

        return self._to_result(op, self._repo.apply_remote(task))

    @staticmethod
    def _parse_task(raw: Any) -> TaskEntity:
        try:
            return TaskRecord.model_validate(raw).to_entity()
        except PydanticValidationError as e:
            logger.debug("Invalid sync task: %s", e.errors())
            raise ItemProcessingError(INVALID_TASK) from e

    @staticmethod
    def _to_result(op: str, merged: MergeResult) -> SyncResult:
        return SyncResult(
            op=op,
            id=merged.resulting["id"],
            applied=merged.applied,
            server_task=merged.resulting,
        )
