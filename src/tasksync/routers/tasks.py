from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Query, status

from ..errors import NotFoundError
from ..repositories import Repository, get_repository
from ..schemas import TaskCreate, TaskOut, TaskUpdate

router = APIRouter(
    prefix="/api/v1/tasks",
    tags=["tasks"],
)


def _get_repo(repo: Repository = Depends(get_repository)) -> Repository:
    """
    Dependency wrapper for repository to keep signatures clean.
    """
    return repo


# PUBLIC_INTERFACE
@router.post(
    "/",
    response_model=TaskOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create Task",
    description="Create a new Task with a server-assigned id and return it.",
    responses={
        201: {"description": "Task created successfully"},
        422: {"description": "Validation error"},
    },
)
def create_task(payload: TaskCreate, repo: Repository = Depends(_get_repo)) -> TaskOut:
    """
    Create a new Task.
    """
    created = repo.create(payload)
    return TaskOut(**created)  # type: ignore[arg-type]


# PUBLIC_INTERFACE
@router.get(
    "/",
    response_model=List[TaskOut],
    summary="List Tasks",
    description=(
        "List all tasks, most recently updated first.\n\n"
        "Query parameters:\n"
        "- include_deleted: also return tombstoned (soft-deleted) tasks"
    ),
    responses={200: {"description": "List retrieved successfully"}},
)
def list_tasks(
    include_deleted: bool = Query(False, description="Include soft-deleted tasks"),
    repo: Repository = Depends(_get_repo),
) -> List[TaskOut]:
    """
    List tasks.
    """
    return [TaskOut(**t) for t in repo.list(include_deleted=include_deleted)]  # type: ignore[arg-type]


# PUBLIC_INTERFACE
@router.get(
    "/{task_id}",
    response_model=TaskOut,
    summary="Get Task",
    description="Get a single Task by ID. Deleted tasks are reported as not found.",
    responses={
        200: {"description": "Task found"},
        404: {"description": "Task not found"},
    },
)
def get_task(task_id: str, repo: Repository = Depends(_get_repo)) -> TaskOut:
    item = repo.get(task_id)
    if not item:
        raise NotFoundError(task_id)
    return TaskOut(**item)  # type: ignore[arg-type]


# PUBLIC_INTERFACE
@router.patch(
    "/{task_id}",
    response_model=TaskOut,
    summary="Update Task",
    description="Partially update fields of a Task. updatedAt is set to the server time.",
    responses={
        200: {"description": "Task updated"},
        404: {"description": "Task not found"},
    },
)
def patch_task(task_id: str, payload: TaskUpdate, repo: Repository = Depends(_get_repo)) -> TaskOut:
    """
    Partial update of a Task.
    """
    updated = repo.local_update(task_id, payload)
    if not updated:
        raise NotFoundError(task_id)
    return TaskOut(**updated)  # type: ignore[arg-type]


# PUBLIC_INTERFACE
@router.delete(
    "/{task_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete Task",
    description="Soft-delete a Task. The tombstone is kept so it can win later sync merges.",
    responses={
        204: {"description": "Task deleted"},
        404: {"description": "Task not found"},
    },
)
def delete_task(task_id: str, repo: Repository = Depends(_get_repo)) -> None:
    """
    Delete a Task. Returns 204 on success, 404 if not found.
    """
    if not repo.local_delete(task_id):
        raise NotFoundError(task_id)
    return None
