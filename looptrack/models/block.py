"""Block data model for looptrack."""

from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

from looptrack.models.constants import DEFAULT_BLOCK_ACTIVE_DAYS


class Block(BaseModel):
    """A named, ordered group of tasks (e.g. "Morning routine")."""

    id: str = Field(..., description="Unique block identifier (UUID)")
    user_id: str = Field(..., description="User ID who owns this block")
    name: str = Field(..., description="Grouping label")
    description: Optional[str] = Field(None, description="Free-form description")
    icon: Optional[str] = Field(None, description="Icon name")
    color: Optional[str] = Field(None, description="Display color")
    sort_order: int = Field(0, description="Position among the owner's blocks")
    is_archived: bool = Field(False, description="Archived (independent of deletion)")
    active_days: List[int] = Field(
        default_factory=lambda: list(DEFAULT_BLOCK_ACTIVE_DAYS),
        description="Active weekdays (0=Sun..6=Sat)",
    )
    reminder_enabled: bool = Field(False, description="Whether a daily reminder is sent")
    reminder_hour: Optional[int] = Field(None, ge=0, le=23, description="Local hour of the reminder")
    created_at: datetime = Field(..., description="Block creation timestamp")
    updated_at: datetime = Field(..., description="Server-side last modification timestamp")
    deleted_at: Optional[datetime] = Field(None, description="Soft-delete timestamp (null if active)")
    client_modified_at: Optional[datetime] = Field(
        None, description="Client timestamp of the last applied write"
    )

    class Config:
        """Pydantic configuration."""
        alias_generator = to_camel
        populate_by_name = True
