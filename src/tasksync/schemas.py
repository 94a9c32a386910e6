from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .models import TaskEntity
from .utils import ensure_utc


def _validate_title(v: Optional[str]) -> str:
    """
    Internal helper enforcing a non-blank title of at most 200 characters.
    Returns the stripped title.
    """
    if v is None:
        raise ValueError("title is required")
    s = v.strip()
    if not (1 <= len(s) <= 200):
        raise ValueError("title length must be between 1 and 200 characters")
    return s


# PUBLIC_INTERFACE
class TaskCreate(BaseModel):
    """
    Schema for creating a new Task locally on the server.
    The server assigns the id and both timestamps.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "title": "Buy groceries",
                "description": "Milk, eggs, bread",
                "completed": False,
            }
        }
    )

    title: str = Field(..., description="Short title for the task", min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, description="Optional detailed description")
    completed: bool = Field(default=False, description="Completion status flag")

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        """
        Strip whitespace and enforce 1..200 length.
        """
        return _validate_title(v)


# PUBLIC_INTERFACE
class TaskUpdate(BaseModel):
    """
    Schema for a local partial update of an existing Task.
    All fields are optional; only provided fields will be updated.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "title": "Buy groceries and supplies",
                "completed": True,
            }
        }
    )

    title: Optional[str] = Field(default=None, description="Short title for the task", min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, description="Optional detailed description")
    completed: Optional[bool] = Field(default=None, description="Completion status flag")

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: Optional[str]) -> Optional[str]:
        """
        If title is provided, strip whitespace and enforce 1..200 length.
        """
        if v is None:
            return v
        return _validate_title(v)


# PUBLIC_INTERFACE
class TaskRecord(BaseModel):
    """
    A complete task record as submitted by a syncing client.

    Accepted verbatim by the merge path: the client id and timestamps are
    kept as sent (timestamps normalized to UTC). Field names are camelCase on
    the wire; snake_case names are accepted too.
    The title must not be blank but is kept unstripped.
    """

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "id": "5f1c9a6e-client-1",
                "title": "Buy groceries",
                "description": "",
                "completed": False,
                "createdAt": "2024-01-01T00:00:00Z",
                "updatedAt": "2024-01-02T08:30:00Z",
                "deleted": False,
            }
        },
    )

    id: str = Field(..., min_length=1, description="Client-assigned identifier")
    title: str = Field(..., description="Short title for the task")
    description: str = Field(default="", description="Detailed description")
    completed: bool = Field(default=False, description="Completion status flag")
    created_at: Optional[datetime] = Field(
        default=None,
        alias="createdAt",
        description="Creation timestamp; defaults to updatedAt when omitted",
    )
    updated_at: datetime = Field(..., alias="updatedAt", description="Last-Writer-Wins ordering key")
    deleted: bool = Field(default=False, description="Tombstone flag")

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("title must not be blank")
        return v

    @field_validator("description", mode="before")
    @classmethod
    def default_description(cls, v: Optional[str]) -> str:
        return "" if v is None else v

    @field_validator("created_at", "updated_at")
    @classmethod
    def normalize_timestamp(cls, v: Optional[datetime]) -> Optional[datetime]:
        return None if v is None else ensure_utc(v)

    # PUBLIC_INTERFACE
    def to_entity(self) -> TaskEntity:
        """Convert the submitted record into a store entity."""
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "completed": self.completed,
            "created_at": self.created_at or self.updated_at,
            "updated_at": self.updated_at,
            "deleted": self.deleted,
        }


# PUBLIC_INTERFACE
class TaskOut(BaseModel):
    """
    Schema returned by the API for a Task.
    """

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "id": "0b6f0f3c9a1e4a0c8d8f2f6d0f7e5b1a",
                "title": "Buy groceries",
                "description": "Milk, eggs, bread",
                "completed": False,
                "createdAt": "2025-01-25T10:15:30.123456Z",
                "updatedAt": "2025-01-26T09:00:00.000001Z",
                "deleted": False,
            }
        },
    )

    id: str = Field(..., description="Unique identifier of the task")
    title: str = Field(..., description="Short title for the task")
    description: str = Field(default="", description="Detailed description")
    completed: bool = Field(..., description="Completion status flag")
    created_at: datetime = Field(..., alias="createdAt", description="Creation timestamp (UTC)")
    updated_at: datetime = Field(..., alias="updatedAt", description="Last update timestamp (UTC)")
    deleted: bool = Field(default=False, description="Tombstone flag")


# PUBLIC_INTERFACE
class SyncResultOut(BaseModel):
    """
    Outcome of a single sync item, in the same position as the submitted item.
    """

    model_config = ConfigDict(populate_by_name=True)

    op: Optional[str] = Field(default=None, description="Operation as submitted (create, update, delete)")
    id: str = Field(..., description="Task id the item referred to, or 'unknown'")
    applied: bool = Field(..., description="True when the item changed server state")
    server_task: Optional[TaskOut] = Field(
        default=None, alias="serverTask", description="Authoritative record after the merge"
    )
    reason: Optional[str] = Field(default=None, description="Why the item was not applied, if it failed")


# PUBLIC_INTERFACE
class SyncResponse(BaseModel):
    """
    Response to a submitted batch: per-item results plus the full server snapshot.
    """

    model_config = ConfigDict(populate_by_name=True)

    results: List[SyncResultOut] = Field(..., description="One result per submitted item, in order")
    server_state: List[TaskOut] = Field(
        ..., alias="serverState", description="All non-deleted tasks after the batch"
    )


# PUBLIC_INTERFACE
class SnapshotResponse(BaseModel):
    """
    Current non-deleted server state, for clients pulling without pushing.
    """

    model_config = ConfigDict(populate_by_name=True)

    server_state: List[TaskOut] = Field(..., alias="serverState", description="All non-deleted tasks")
