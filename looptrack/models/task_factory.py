"""Entity creation factory for looptrack.

This module centralizes creation defaults so that rows created through sync and
through interactive actions always start from the same values.
"""

import uuid
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from looptrack.models.block import Block
from looptrack.models.task import Task
from looptrack.models.task_instance import InstanceStatus, TaskInstance
from looptrack.models.constants import (
    DEFAULT_BLOCK_ACTIVE_DAYS,
    DEFAULT_BLOCK_NAME,
    DEFAULT_RESET_DAYS,
    DEFAULT_SKIP_DAYS,
    DEFAULT_TASK_DAYS_OF_WEEK,
    DEFAULT_TASK_TITLE,
)


def create_task_defaults() -> Dict[str, Any]:
    """Get default task values as a dictionary.

    Returns:
        Dictionary with default task field values using constants
    """
    return {
        "title": DEFAULT_TASK_TITLE,
        "description": None,
        "emoji": None,
        "block_id": None,
        "sort_order": 0,
        "is_archived": False,
        "is_one_off": False,
        "due_date": None,
        "days_of_week": list(DEFAULT_TASK_DAYS_OF_WEEK),
        "skip_days": DEFAULT_SKIP_DAYS,
        "reset_days": DEFAULT_RESET_DAYS,
    }


def create_block_defaults() -> Dict[str, Any]:
    """Get default block values as a dictionary."""
    return {
        "name": DEFAULT_BLOCK_NAME,
        "description": None,
        "icon": None,
        "color": None,
        "sort_order": 0,
        "is_archived": False,
        "active_days": list(DEFAULT_BLOCK_ACTIVE_DAYS),
        "reminder_enabled": False,
        "reminder_hour": None,
    }


def create_task_base(
    user_id: str,
    fields: Dict[str, Any],
    task_id: Optional[str] = None,
    created_at: Optional[datetime] = None,
    client_modified_at: Optional[datetime] = None,
) -> Task:
    """Create a task with defaults, letting ``fields`` override them.

    Args:
        user_id: Owner of the task
        fields: Snake-case task fields; keys absent here take the defaults
        task_id: Client-chosen id (a fresh UUID if None)
        created_at: Client creation time (now if None)
        client_modified_at: Client timestamp of the write creating the row

    Returns:
        Task object with defaults applied
    """
    now = datetime.utcnow()
    values = {**create_task_defaults(), **fields}
    return Task(
        id=task_id or str(uuid.uuid4()),
        user_id=user_id,
        created_at=created_at or now,
        updated_at=now,
        client_modified_at=client_modified_at or now,
        **values,
    )


def create_block_base(
    user_id: str,
    fields: Dict[str, Any],
    block_id: Optional[str] = None,
    created_at: Optional[datetime] = None,
    client_modified_at: Optional[datetime] = None,
) -> Block:
    """Create a block with defaults, letting ``fields`` override them."""
    now = datetime.utcnow()
    values = {**create_block_defaults(), **fields}
    return Block(
        id=block_id or str(uuid.uuid4()),
        user_id=user_id,
        created_at=created_at or now,
        updated_at=now,
        client_modified_at=client_modified_at or now,
        **values,
    )


def create_instance_base(
    task_id: str,
    day: datetime,
    instance_id: Optional[str] = None,
    status: InstanceStatus = InstanceStatus.PENDING,
    notes: Optional[str] = None,
    completed_at: Optional[datetime] = None,
    client_modified_at: Optional[datetime] = None,
) -> TaskInstance:
    """Create a (not yet persisted) instance for ``task_id`` on the day starting at ``day``."""
    now = datetime.utcnow()
    return TaskInstance(
        id=instance_id or str(uuid.uuid4()),
        task_id=task_id,
        date=day,
        status=status,
        notes=notes,
        completed_at=completed_at,
        created_at=now,
        updated_at=now,
        client_modified_at=client_modified_at or now,
    )


def normalize_weekdays(days: List[Any]) -> List[int]:
    """Validate a weekday list (0=Sun..6=Sat), deduplicating but preserving order.

    Raises:
        ValueError: if any entry is not an int in 0..6
    """
    seen = set()
    out: List[int] = []
    for d in days:
        if isinstance(d, bool) or not isinstance(d, int) or d < 0 or d > 6:
            raise ValueError(f"invalid weekday: {d!r}")
        if d not in seen:
            seen.add(d)
            out.append(d)
    return out
