"""Repository for TaskInstance database operations.

Instances are derived data: created lazily on first interaction with a
(task, day) pair and hard-deleted. Reads only see instances of live tasks.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import asc
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from looptrack.database.models import TaskDB, TaskInstanceDB, enum_to_value
from looptrack.models.task_instance import TaskInstance
from looptrack.models.task_factory import create_instance_base

logger = logging.getLogger(__name__)

INSTANCE_MUTABLE_FIELDS = {"status", "notes", "completed_at"}


class TaskInstanceRepository:
    def __init__(self, db: Session):
        self.db = db

    def _owned(self, user_id: str):
        return (
            self.db.query(TaskInstanceDB)
            .join(TaskDB, TaskDB.id == TaskInstanceDB.task_id)
            .filter(TaskDB.user_id == user_id, TaskDB.deleted_at.is_(None))
        )

    def get(self, user_id: str, instance_id: str) -> Optional[TaskInstance]:
        row = self._owned(user_id).filter(TaskInstanceDB.id == instance_id).first()
        return row.to_pydantic() if row else None

    def get_for_day(self, task_id: str, day_start: datetime) -> Optional[TaskInstance]:
        row = (
            self.db.query(TaskInstanceDB)
            .filter(TaskInstanceDB.task_id == task_id, TaskInstanceDB.date == day_start)
            .first()
        )
        return row.to_pydantic() if row else None

    def list_between(self, user_id: str, start: datetime, end_exclusive: datetime) -> List[TaskInstance]:
        """Instances of the user's live tasks with start <= date < end_exclusive."""
        rows = (
            self._owned(user_id)
            .filter(TaskInstanceDB.date >= start, TaskInstanceDB.date < end_exclusive)
            .order_by(asc(TaskInstanceDB.date))
            .all()
        )
        return [r.to_pydantic() for r in rows]

    def changed_since(self, user_id: str, since: Optional[datetime]) -> List[TaskInstance]:
        query = self._owned(user_id)
        if since is not None:
            query = query.filter(TaskInstanceDB.updated_at > since)
        return [r.to_pydantic() for r in query.order_by(asc(TaskInstanceDB.updated_at)).all()]

    def count_for_user(self, user_id: str) -> int:
        return self._owned(user_id).count()

    def _apply(self, row: TaskInstanceDB, patch: Dict[str, Any], client_modified_at: Optional[datetime]) -> None:
        now = datetime.utcnow()
        for key, value in patch.items():
            if key == "status":
                value = enum_to_value(value)
            setattr(row, key, value)
        row.updated_at = now
        row.client_modified_at = client_modified_at or now

    def upsert(
        self,
        task_id: str,
        day_start: datetime,
        patch: Dict[str, Any],
        *,
        instance_id: Optional[str] = None,
        client_modified_at: Optional[datetime] = None,
        commit: bool = True,
    ) -> Tuple[TaskInstance, bool]:
        """Get-or-create the instance of `task_id` on `day_start` and merge `patch` into it.

        A uniqueness violation on (task_id, date) means another writer created the
        row first; that counts as already created and the patch is merged into it.

        Returns:
            (instance, created)

        Raises:
            ValueError: if `patch` has unknown keys, or `instance_id` is taken by another day
        """
        unknown = set(patch) - INSTANCE_MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Instance fields not writable: {sorted(unknown)}")

        created = False
        row = (
            self.db.query(TaskInstanceDB)
            .filter(TaskInstanceDB.task_id == task_id, TaskInstanceDB.date == day_start)
            .first()
        )
        if row is None:
            if instance_id and self.db.query(TaskInstanceDB.id).filter(TaskInstanceDB.id == instance_id).first():
                raise ValueError(f"Instance {instance_id} already exists for another day")
            row = TaskInstanceDB.from_pydantic(
                create_instance_base(task_id, day_start, instance_id=instance_id)
            )
            self._apply(row, patch, client_modified_at)
            self.db.add(row)
            try:
                self.db.flush()
                created = True
            except IntegrityError:
                self.db.rollback()
                logger.debug(f"Instance of task {task_id} on {day_start.date()} created concurrently; merging")
                row = (
                    self.db.query(TaskInstanceDB)
                    .filter(TaskInstanceDB.task_id == task_id, TaskInstanceDB.date == day_start)
                    .one()
                )
                self._apply(row, patch, client_modified_at)
        else:
            self._apply(row, patch, client_modified_at)

        try:
            if commit:
                self.db.commit()
                self.db.refresh(row)
            else:
                self.db.flush()
            logger.debug(f"{'Created' if created else 'Updated'} instance {row.id} of task {task_id} on {day_start.date()}")
            return row.to_pydantic(), created
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to upsert instance of task {task_id}: {type(e).__name__}: {str(e)}")
            raise

    def delete(self, user_id: str, instance_id: str, *, commit: bool = True) -> Optional[TaskInstance]:
        """Hard-delete an instance. Returns the deleted instance, or None if not found."""
        row = self._owned(user_id).filter(TaskInstanceDB.id == instance_id).first()
        if row is None:
            return None
        deleted = row.to_pydantic()
        try:
            self.db.delete(row)
            if commit:
                self.db.commit()
            else:
                self.db.flush()
            logger.debug(f"Deleted instance {instance_id}")
            return deleted
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to delete instance {instance_id}: {type(e).__name__}: {str(e)}")
            raise
