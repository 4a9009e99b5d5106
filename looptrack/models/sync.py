"""Wire models for the delta sync protocol.

Field names travel in camelCase (``entityId``, ``clientTimestamp``, ``syncTimestamp``...)
because that is what the mobile client speaks; Python code uses snake_case.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, field_validator
from pydantic.alias_generators import to_camel

from looptrack.models.block import Block
from looptrack.models.task import Task
from looptrack.models.task_instance import TaskInstance


class SyncEntity(str, Enum):
    """Entity types a client may change."""
    BLOCK = "block"
    TASK = "task"
    TASK_INSTANCE = "task-instance"


class SyncAction(str, Enum):
    """Mutation kinds a client may request."""
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class _CamelModel(BaseModel):
    class Config:
        """Pydantic configuration."""
        alias_generator = to_camel
        populate_by_name = True


class SyncChange(_CamelModel):
    """One offline edit queued by the client. Applied, never stored.

    ``entity`` and ``action`` are kept as plain strings: an unknown value is a
    per-item failure reported by the change processor, not a malformed request.
    """

    entity: str = Field(..., description="block | task | task-instance")
    entity_id: str = Field(..., description="Entity UUID")
    action: str = Field(..., description="create | update | delete")
    data: Optional[Dict[str, Any]] = Field(None, description="Full entity (create) or changed fields (update)")
    client_timestamp: Optional[datetime] = Field(None, description="Client's local time of the edit")

    @field_validator("entity_id")
    @classmethod
    def _validate_entity_id(cls, v: str) -> str:
        try:
            uuid.UUID(v)
        except (ValueError, AttributeError, TypeError):
            raise ValueError("entityId must be a UUID")
        return v


class PushRequest(_CamelModel):
    """Body of ``POST /sync/push`` and ``POST /sync``."""

    last_sync_at: Optional[datetime] = Field(None, description="Client's last sync checkpoint")
    changes: List[SyncChange] = Field(default_factory=list, description="Changes made offline")


class PullResponse(_CamelModel):
    """Rows changed since the client's checkpoint."""

    blocks: List[Block] = Field(default_factory=list)
    tasks: List[Task] = Field(default_factory=list)
    task_instances: List[TaskInstance] = Field(default_factory=list)
    sync_timestamp: datetime = Field(..., description="Checkpoint the client stores for its next pull")
    has_more: bool = Field(False, description="Pagination flag; the whole result currently fits one page")


class SyncConflict(_CamelModel):
    """A pushed change that was not applied."""

    entity: str
    entity_id: str
    server_data: Optional[Dict[str, Any]] = None
    client_data: Optional[Dict[str, Any]] = None
    reason: Optional[str] = None


class PushResponse(_CamelModel):
    """Outcome of a push: ids applied and changes rejected."""

    applied: List[str] = Field(default_factory=list)
    conflicts: List[SyncConflict] = Field(default_factory=list)


class FullSyncResponse(_CamelModel):
    """Pull and push results of one round trip."""

    success: bool = True
    pull: PullResponse
    push: PushResponse
    server_timestamp: datetime


class DataCounts(_CamelModel):
    blocks: int = 0
    tasks: int = 0
    task_instances: int = 0


class SyncStatus(_CamelModel):
    """Sync checkpoint and row counts for a user."""

    last_sync_at: Optional[datetime] = None
    data_counts: DataCounts = Field(default_factory=DataCounts)
