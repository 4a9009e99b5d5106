"""Task data model for looptrack."""

from datetime import date, datetime
from typing import List, Optional
from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

from looptrack.models.constants import DEFAULT_TASK_DAYS_OF_WEEK


class Task(BaseModel):
    """A habit: either a recurring "loop" on some weekdays, or a one-off with a due date."""

    id: str = Field(..., description="Unique task identifier (UUID)")
    user_id: str = Field(..., description="User ID who owns this task")
    block_id: Optional[str] = Field(None, description="Block this task is grouped under")
    title: str = Field(..., description="Task title")
    description: Optional[str] = Field(None, description="Task description")
    emoji: Optional[str] = Field(None, description="Display emoji")
    sort_order: int = Field(0, description="Position inside its block")
    is_archived: bool = Field(False, description="Archived (independent of deletion)")
    is_one_off: bool = Field(False, description="One-off task (single due date) instead of a loop")
    due_date: Optional[date] = Field(None, description="Due date for one-off tasks")
    days_of_week: List[int] = Field(
        default_factory=lambda: list(DEFAULT_TASK_DAYS_OF_WEEK),
        description="Active weekdays for loops (0=Sun..6=Sat)",
    )
    # Grace-period counters; advisory only, nothing enforces them yet.
    skip_days: int = Field(0, ge=0, description="Allowed skip days")
    reset_days: int = Field(0, ge=0, description="Days before the loop resets")
    created_at: datetime = Field(..., description="Task creation timestamp")
    updated_at: datetime = Field(..., description="Server-side last modification timestamp")
    deleted_at: Optional[datetime] = Field(None, description="Soft-delete timestamp (null if active)")
    client_modified_at: Optional[datetime] = Field(
        None, description="Client timestamp of the last applied write"
    )

    class Config:
        """Pydantic configuration."""
        alias_generator = to_camel
        populate_by_name = True
