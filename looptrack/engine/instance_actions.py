"""Interactive task-instance actions (complete, skip, notes...).

Each action get-or-creates the (task, day) instance and recomputes the
owner's streak in the same transaction.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from looptrack.database.repository import TaskRepository
from looptrack.database.task_instance_repository import TaskInstanceRepository
from looptrack.database.user_repository import UserRepository
from looptrack.engine.dates import logical_today, to_midnight
from looptrack.engine.streak import mutate_with_streak
from looptrack.errors import NotFoundError
from looptrack.models.task_instance import InstanceStatus, TaskInstance

logger = logging.getLogger(__name__)


def _resolve_day(db: Session, user_id: str, day: Optional[date]) -> date:
    if day is not None:
        return day
    user = UserRepository(db).get(user_id)
    if user is None:
        raise NotFoundError(f"User {user_id} not found")
    return logical_today(user)


def _require_task(db: Session, user_id: str, task_id: str) -> None:
    if TaskRepository(db).get(user_id, task_id) is None:
        raise NotFoundError(f"Task {task_id} not found")


def _set_status(
    db: Session,
    user_id: str,
    task_id: str,
    day: Optional[date],
    patch: Dict[str, Any],
    *,
    must_exist: bool = False,
) -> TaskInstance:
    _require_task(db, user_id, task_id)
    day = _resolve_day(db, user_id, day)
    day_start = to_midnight(day)
    instances = TaskInstanceRepository(db)
    if must_exist and instances.get_for_day(task_id, day_start) is None:
        raise NotFoundError(f"No instance of task {task_id} on {day}")

    def mutation() -> TaskInstance:
        instance, _ = instances.upsert(task_id, day_start, patch, commit=False)
        return instance

    instance = mutate_with_streak(db, user_id, mutation)
    logger.info(f"Task {task_id} on {day} -> {instance.status}")
    return instance


def complete(
    db: Session, user_id: str, task_id: str, day: Optional[date] = None, notes: Optional[str] = None
) -> TaskInstance:
    patch: Dict[str, Any] = {"status": InstanceStatus.COMPLETED, "completed_at": datetime.utcnow()}
    if notes is not None:
        patch["notes"] = notes
    return _set_status(db, user_id, task_id, day, patch)


def uncomplete(db: Session, user_id: str, task_id: str, day: Optional[date] = None) -> TaskInstance:
    """Back to PENDING. The instance must already exist."""
    return _set_status(
        db, user_id, task_id, day, {"status": InstanceStatus.PENDING, "completed_at": None}, must_exist=True
    )


def skip(db: Session, user_id: str, task_id: str, day: Optional[date] = None) -> TaskInstance:
    return _set_status(db, user_id, task_id, day, {"status": InstanceStatus.SKIPPED, "completed_at": None})


def unskip(db: Session, user_id: str, task_id: str, day: Optional[date] = None) -> TaskInstance:
    return _set_status(db, user_id, task_id, day, {"status": InstanceStatus.PENDING}, must_exist=True)


def update_notes(
    db: Session, user_id: str, task_id: str, notes: Optional[str], day: Optional[date] = None
) -> TaskInstance:
    """Set the notes of the (task, day) instance, creating it PENDING if needed.

    A created PENDING instance changes the day's completion, so this goes
    through the streak update like the status actions.
    """
    return _set_status(db, user_id, task_id, day, {"notes": notes})


def get_instances_for_range(db: Session, user_id: str, start: date, end: date) -> List[TaskInstance]:
    """Instances of live tasks with start <= date <= end (both inclusive)."""
    if end < start:
        raise ValueError("end must not be before start")
    return TaskInstanceRepository(db).list_between(
        user_id, to_midnight(start), to_midnight(end + timedelta(days=1))
    )
