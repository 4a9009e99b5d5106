"""Repository layer for Task database operations."""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional
from sqlalchemy.orm import Session
from sqlalchemy import asc

from looptrack.models.task import Task
from looptrack.database.models import TaskDB

logger = logging.getLogger(__name__)

# Columns a client may write through update().
TASK_MUTABLE_FIELDS = {
    "title",
    "description",
    "emoji",
    "block_id",
    "sort_order",
    "is_archived",
    "is_one_off",
    "due_date",
    "days_of_week",
    "skip_days",
    "reset_days",
}


class TaskRepository:
    """Repository for Task database operations."""

    def __init__(self, db: Session):
        self.db = db

    def create(self, task: Task) -> Task:
        """Create a new task."""
        try:
            task_db = TaskDB.from_pydantic(task)
            self.db.add(task_db)
            self.db.commit()
            self.db.refresh(task_db)
            logger.debug(f"Created task {task.id}: {task.title[:50]}")
            return task_db.to_pydantic()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to create task {task.id}: {type(e).__name__}: {str(e)}")
            raise

    def get(self, user_id: str, task_id: str) -> Optional[Task]:
        """Get task by ID for a specific user."""
        task_db = self.db.query(TaskDB).filter(
            TaskDB.id == task_id,
            TaskDB.user_id == user_id,
            TaskDB.deleted_at.is_(None),
        ).first()
        return task_db.to_pydantic() if task_db else None

    def get_any(self, task_id: str) -> Optional[Task]:
        """Get a task by ID regardless of owner or deletion (id collision checks)."""
        task_db = self.db.query(TaskDB).filter(TaskDB.id == task_id).first()
        return task_db.to_pydantic() if task_db else None

    def changed_since(self, user_id: str, since: Optional[datetime]) -> List[Task]:
        """Live tasks modified strictly after `since` (all live tasks if None), oldest change first."""
        query = self.db.query(TaskDB).filter(
            TaskDB.user_id == user_id,
            TaskDB.deleted_at.is_(None),
        )
        if since is not None:
            query = query.filter(TaskDB.updated_at > since)
        return [t.to_pydantic() for t in query.order_by(asc(TaskDB.updated_at)).all()]

    def count_active(self, user_id: str) -> int:
        return self.db.query(TaskDB).filter(
            TaskDB.user_id == user_id,
            TaskDB.deleted_at.is_(None),
        ).count()

    def count_active_in_block(self, user_id: str, block_id: str) -> int:
        return self.db.query(TaskDB).filter(
            TaskDB.user_id == user_id,
            TaskDB.block_id == block_id,
            TaskDB.deleted_at.is_(None),
        ).count()

    def update(self, user_id: str, task_id: str, patch: Dict[str, Any], client_modified_at: Optional[datetime] = None) -> Task:
        """Merge `patch` into a live task. Keys absent from `patch` keep their value.

        Raises:
            ValueError: if the task does not exist for this user, or a key is not writable
        """
        unknown = set(patch) - TASK_MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Task fields not writable: {sorted(unknown)}")

        task_db = self.db.query(TaskDB).filter(
            TaskDB.id == task_id,
            TaskDB.user_id == user_id,
            TaskDB.deleted_at.is_(None),
        ).first()
        if not task_db:
            raise ValueError(f"Task {task_id} not found")

        now = datetime.utcnow()
        for key, value in patch.items():
            setattr(task_db, key, value)
        task_db.updated_at = now
        task_db.client_modified_at = client_modified_at or now

        try:
            self.db.commit()
            self.db.refresh(task_db)
            logger.debug(f"Updated task {task_id}: {sorted(patch)}")
            return task_db.to_pydantic()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to update task {task_id}: {type(e).__name__}: {str(e)}")
            raise

    def reassign_block(self, user_id: str, from_block_id: str, to_block_id: str, *, commit: bool = True) -> int:
        """Move every live task of one block to another. Returns the number of tasks moved.

        With commit=False the move is only flushed and commits with the caller's next write.
        """
        now = datetime.utcnow()
        try:
            affected = (
                self.db.query(TaskDB)
                .filter(
                    TaskDB.user_id == user_id,
                    TaskDB.block_id == from_block_id,
                    TaskDB.deleted_at.is_(None),
                )
                .update({TaskDB.block_id: to_block_id, TaskDB.updated_at: now}, synchronize_session=False)
            )
            if commit:
                self.db.commit()
            else:
                self.db.flush()
            logger.debug(f"Reassigned {affected} tasks from block {from_block_id} to {to_block_id}")
            return int(affected)
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to reassign tasks of block {from_block_id}: {type(e).__name__}: {str(e)}")
            raise

    def delete(self, user_id: str, task_id: str) -> bool:
        """Soft-delete a task by ID for a specific user."""
        task_db = self.db.query(TaskDB).filter(
            TaskDB.id == task_id,
            TaskDB.user_id == user_id,
            TaskDB.deleted_at.is_(None),
        ).first()
        if not task_db:
            return False

        try:
            now = datetime.utcnow()
            task_db.deleted_at = now
            task_db.updated_at = now
            self.db.commit()
            logger.debug(f"Soft-deleted task {task_id}")
            return True
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to soft-delete task {task_id}: {type(e).__name__}: {str(e)}")
            raise
