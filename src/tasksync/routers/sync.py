from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends

from ..repositories import Repository, get_repository
from ..schemas import SnapshotResponse, SyncResponse, SyncResultOut, TaskOut
from ..sync import BatchOutcome, SyncService

router = APIRouter(
    prefix="/api/v1/sync",
    tags=["sync"],
)

_EXAMPLE_BATCH = [
    {
        "op": "create",
        "task": {
            "id": "5f1c9a6e-client-1",
            "title": "Buy groceries",
            "completed": False,
            "createdAt": "2024-01-01T00:00:00Z",
            "updatedAt": "2024-01-01T00:00:00Z",
        },
    },
    {"op": "delete", "task": {"id": "old-task", "title": "Old", "updatedAt": "2024-01-02T00:00:00Z"}},
]


def get_sync_service(repo: Repository = Depends(get_repository)) -> SyncService:
    """
    Dependency building the sync engine over the shared repository.
    """
    return SyncService(repo)


def _to_response(outcome: BatchOutcome) -> SyncResponse:
    results = [
        SyncResultOut(
            op=r.op,
            id=r.id,
            applied=r.applied,
            server_task=TaskOut(**r.server_task) if r.server_task else None,  # type: ignore[arg-type]
            reason=r.reason,
        )
        for r in outcome.results
    ]
    return SyncResponse(
        results=results,
        server_state=[TaskOut(**t) for t in outcome.server_state],  # type: ignore[arg-type]
    )


# PUBLIC_INTERFACE
@router.post(
    "/",
    response_model=SyncResponse,
    response_model_exclude_none=True,
    summary="Submit Sync Batch",
    description=(
        "Apply a batch of client operations using Last-Writer-Wins.\n\n"
        "The body is a JSON array of {op, task} items where op is one of "
        "create, update or delete. Every item gets a result in the same position; "
        "a failing item never aborts the batch. The response also carries the full "
        "non-deleted server state, which clients should treat as authoritative."
    ),
    responses={
        200: {"description": "Batch processed"},
        400: {"description": "Body is not an array of sync items"},
    },
)
def submit_batch(
    items: Any = Body(default=None, examples=[_EXAMPLE_BATCH]),
    service: SyncService = Depends(get_sync_service),
) -> SyncResponse:
    """
    Process a client sync batch.
    """
    return _to_response(service.submit_batch(items))


# PUBLIC_INTERFACE
@router.get(
    "/",
    response_model=SnapshotResponse,
    summary="Get Server Snapshot",
    description="Return all non-deleted tasks, e.g. for a client doing its initial pull.",
    responses={200: {"description": "Snapshot retrieved"}},
)
def get_snapshot(service: SyncService = Depends(get_sync_service)) -> SnapshotResponse:
    return SnapshotResponse(
        server_state=[TaskOut(**t) for t in service.get_snapshot()],  # type: ignore[arg-type]
    )
