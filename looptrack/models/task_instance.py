"""TaskInstance data model for looptrack."""

from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel


class InstanceStatus(str, Enum):
    """Status of one task occurrence."""
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    SKIPPED = "SKIPPED"
    MISSED = "MISSED"


class TaskInstance(BaseModel):
    """The materialized occurrence of a Task on one logical day.

    Unique per (task_id, date). `date` is the day at local midnight.
    """

    id: str = Field(..., description="Unique instance identifier (UUID)")
    task_id: str = Field(..., description="Task this occurrence belongs to")
    date: datetime = Field(..., description="Logical day, at local midnight")
    status: InstanceStatus = Field(InstanceStatus.PENDING, description="Occurrence status")
    notes: Optional[str] = Field(None, description="Free-form notes for this day")
    completed_at: Optional[datetime] = Field(None, description="When the occurrence was completed")
    created_at: datetime = Field(..., description="Instance creation timestamp")
    updated_at: datetime = Field(..., description="Server-side last modification timestamp")
    client_modified_at: Optional[datetime] = Field(
        None, description="Client timestamp of the last applied write"
    )

    class Config:
        """Pydantic configuration."""
        use_enum_values = True
        alias_generator = to_camel
        populate_by_name = True
