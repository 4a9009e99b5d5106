"""Change processor: applies one client-submitted SyncChange to the store.

Every failure that concerns only the change itself (unknown entity or action,
missing row, bad field value, strategy-detected conflict) is raised as
ChangeRejected so the orchestrator can record it and move on to the next
change. Store outages and missing users propagate.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Set, Tuple

from pydantic import ValidationError
from pydantic.alias_generators import to_snake
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from looptrack.database.block_repository import BLOCK_MUTABLE_FIELDS, BlockRepository
from looptrack.database.repository import TASK_MUTABLE_FIELDS, TaskRepository
from looptrack.database.task_instance_repository import TaskInstanceRepository
from looptrack.database.user_repository import UserRepository
from looptrack.engine.dates import logical_today, parse_day, parse_timestamp, to_midnight, to_naive_utc
from looptrack.engine.streak import mutate_with_streak
from looptrack.errors import ChangeRejected, StoreUnavailableError, StreakUpdateError
from looptrack.models.block import Block
from looptrack.models.sync import SyncAction, SyncChange, SyncEntity
from looptrack.models.task import Task
from looptrack.models.task_factory import create_block_base, create_task_base, normalize_weekdays
from looptrack.models.task_instance import InstanceStatus, TaskInstance
from looptrack.sync.conflicts import ConflictResolver, get_resolver

logger = logging.getLogger(__name__)

REASSIGN_KEY = "reassign_to_block_id"


def _dump(model) -> Dict[str, Any]:
    return model.model_dump(by_alias=True, mode="json")


class ChangeProcessor:
    """Applies changes for one owner.

    Args:
        db: Session the changes are written through
        user_id: Authenticated owner; every read and write is scoped to it
        resolver: Conflict strategy (SYNC_CONFLICT_STRATEGY if None)
        last_sync_at: The client's base version, from the push request
        today: Logical day used for streaks (the owner's logical today if None)
    """

    def __init__(
        self,
        db: Session,
        user_id: str,
        resolver: Optional[ConflictResolver] = None,
        *,
        last_sync_at: Optional[datetime] = None,
        today=None,
    ):
        self.db = db
        self.user_id = user_id
        self.resolver = resolver or get_resolver()
        self.last_sync_at = to_naive_utc(last_sync_at) if last_sync_at else None
        self.today = today
        self.blocks = BlockRepository(db)
        self.tasks = TaskRepository(db)
        self.instances = TaskInstanceRepository(db)
        self._handlers: Dict[Tuple[str, str], Callable[[SyncChange, Optional[datetime]], None]] = {
            (SyncEntity.BLOCK.value, SyncAction.CREATE.value): self._create_block,
            (SyncEntity.BLOCK.value, SyncAction.UPDATE.value): self._update_block,
            (SyncEntity.BLOCK.value, SyncAction.DELETE.value): self._delete_block,
            (SyncEntity.TASK.value, SyncAction.CREATE.value): self._create_task,
            (SyncEntity.TASK.value, SyncAction.UPDATE.value): self._update_task,
            (SyncEntity.TASK.value, SyncAction.DELETE.value): self._delete_task,
            (SyncEntity.TASK_INSTANCE.value, SyncAction.CREATE.value): self._upsert_instance,
            (SyncEntity.TASK_INSTANCE.value, SyncAction.UPDATE.value): self._upsert_instance,
            (SyncEntity.TASK_INSTANCE.value, SyncAction.DELETE.value): self._delete_instance,
        }

    def apply(self, change: SyncChange) -> None:
        """Apply one change.

        Raises:
            ChangeRejected: the change was not applied; the batch may continue
            StoreUnavailableError: the store failed; the request should be retried
            StreakUpdateError: the owner row vanished (instance changes only)
        """
        handler = self._handlers.get((change.entity, change.action))
        if handler is None:
            raise ChangeRejected(change.entity, change.entity_id, f"unsupported change {change.entity}/{change.action}")
        client_ts = to_naive_utc(change.client_timestamp) if change.client_timestamp else None
        try:
            handler(change, client_ts)
        except ChangeRejected:
            raise
        except OperationalError as e:
            self.db.rollback()
            raise StoreUnavailableError(f"Store unavailable: {type(e).__name__}") from e
        except (ValueError, ValidationError, IntegrityError) as e:
            self.db.rollback()
            raise ChangeRejected(change.entity, change.entity_id, str(e)) from e

    # -- helpers -------------------------------------------------------------

    def _fields(self, change: SyncChange, allowed: Set[str]) -> Dict[str, Any]:
        """Snake-case the writable keys of `data`; other keys (ids, server timestamps) are ignored."""
        out: Dict[str, Any] = {}
        for key, value in (change.data or {}).items():
            name = to_snake(key)
            if name in allowed:
                out[name] = value
        return out

    def _check_conflict(self, change: SyncChange, client_ts: Optional[datetime], row) -> None:
        reason = self.resolver.conflict_reason(
            client_timestamp=client_ts,
            row_client_modified_at=row.client_modified_at,
            row_updated_at=row.updated_at,
            last_sync_at=self.last_sync_at,
        )
        if reason:
            raise ChangeRejected(change.entity, change.entity_id, reason, server_data=_dump(row))

    def _existing_create(self, change: SyncChange, row) -> bool:
        """True when a create names a row this owner already has (idempotent no-op)."""
        if row is None:
            return False
        if row.user_id == self.user_id and row.deleted_at is None:
            logger.debug(f"{change.entity} {change.entity_id} already exists; create is a no-op")
            return True
        raise ChangeRejected(change.entity, change.entity_id, "id already in use")

    def _validated(self, model_cls, current, fields: Dict[str, Any]) -> Dict[str, Any]:
        """Validate `fields` against the model, returning the coerced values."""
        merged = model_cls.model_validate({**current.model_dump(), **fields})
        return {k: getattr(merged, k) for k in fields}

    def _require_block(self, change: SyncChange, block_id: Optional[str]) -> None:
        if block_id is not None and self.blocks.get(self.user_id, block_id) is None:
            raise ChangeRejected(change.entity, change.entity_id, f"block {block_id} not found")

    # -- blocks --------------------------------------------------------------

    def _create_block(self, change: SyncChange, client_ts: Optional[datetime]) -> None:
        if self._existing_create(change, self.blocks.get_any(change.entity_id)):
            return
        fields = self._fields(change, BLOCK_MUTABLE_FIELDS)
        if "active_days" in fields:
            fields["active_days"] = normalize_weekdays(fields["active_days"] or [])
        if fields.get("sort_order") is None:
            fields["sort_order"] = self.blocks.next_sort_order(self.user_id)
        block = create_block_base(self.user_id, fields, block_id=change.entity_id, client_modified_at=client_ts)
        self.blocks.create(block)

    def _update_block(self, change: SyncChange, client_ts: Optional[datetime]) -> None:
        current = self.blocks.get(self.user_id, change.entity_id)
        if current is None:
            raise ChangeRejected(change.entity, change.entity_id, "block not found")
        self._check_conflict(change, client_ts, current)
        fields = self._fields(change, BLOCK_MUTABLE_FIELDS)
        if "active_days" in fields:
            fields["active_days"] = normalize_weekdays(fields["active_days"] or [])
        self.blocks.update(self.user_id, change.entity_id, self._validated(Block, current, fields), client_ts)

    def _delete_block(self, change: SyncChange, client_ts: Optional[datetime]) -> None:
        current = self.blocks.get(self.user_id, change.entity_id)
        if current is None:
            if self._already_deleted(self.blocks.get_any(change.entity_id)):
                return
            raise ChangeRejected(change.entity, change.entity_id, "block not found")
        self._check_conflict(change, client_ts, current)

        if self.tasks.count_active_in_block(self.user_id, change.entity_id) > 0:
            target = (change.data or {}).get("reassignToBlockId") or (change.data or {}).get(REASSIGN_KEY)
            if not target or target == change.entity_id or self.blocks.get(self.user_id, target) is None:
                raise ChangeRejected(
                    change.entity,
                    change.entity_id,
                    "block still has tasks; give reassignToBlockId naming another block",
                    server_data=_dump(current),
                )
            # The move commits together with the delete below.
            self.tasks.reassign_block(self.user_id, change.entity_id, target, commit=False)
        if not self.blocks.delete(self.user_id, change.entity_id):
            self.db.rollback()
            raise ChangeRejected(change.entity, change.entity_id, "block not found")

    # -- tasks ---------------------------------------------------------------

    def _create_task(self, change: SyncChange, client_ts: Optional[datetime]) -> None:
        if self._existing_create(change, self.tasks.get_any(change.entity_id)):
            return
        fields = self._fields(change, TASK_MUTABLE_FIELDS)
        self._require_block(change, fields.get("block_id"))
        if "days_of_week" in fields:
            fields["days_of_week"] = normalize_weekdays(fields["days_of_week"] or [])
        task = create_task_base(self.user_id, fields, task_id=change.entity_id, client_modified_at=client_ts)
        self.tasks.create(task)

    def _update_task(self, change: SyncChange, client_ts: Optional[datetime]) -> None:
        current = self.tasks.get(self.user_id, change.entity_id)
        if current is None:
            raise ChangeRejected(change.entity, change.entity_id, "task not found")
        self._check_conflict(change, client_ts, current)
        fields = self._fields(change, TASK_MUTABLE_FIELDS)
        if "block_id" in fields:
            self._require_block(change, fields["block_id"])
        if "days_of_week" in fields:
            fields["days_of_week"] = normalize_weekdays(fields["days_of_week"] or [])
        self.tasks.update(self.user_id, change.entity_id, self._validated(Task, current, fields), client_ts)

    def _delete_task(self, change: SyncChange, client_ts: Optional[datetime]) -> None:
        current = self.tasks.get(self.user_id, change.entity_id)
        if current is None:
            if self._already_deleted(self.tasks.get_any(change.entity_id)):
                return
            raise ChangeRejected(change.entity, change.entity_id, "task not found")
        self._check_conflict(change, client_ts, current)
        self.tasks.delete(self.user_id, change.entity_id)

    def _already_deleted(self, row) -> bool:
        return row is not None and row.user_id == self.user_id and row.deleted_at is not None

    # -- task instances ------------------------------------------------------

    def _instance_patch(
        self, data: Dict[str, Any], existing: Optional[TaskInstance], client_ts: Optional[datetime]
    ) -> Dict[str, Any]:
        patch: Dict[str, Any] = {}
        if "notes" in data:
            patch["notes"] = data["notes"]
        if "status" in data:
            try:
                status = InstanceStatus(str(data["status"]).upper())
            except ValueError:
                raise ValueError(f"invalid status: {data['status']!r}")
            patch["status"] = status
            if status == InstanceStatus.COMPLETED:
                if existing is not None and existing.status == InstanceStatus.COMPLETED.value and existing.completed_at:
                    patch["completed_at"] = existing.completed_at
                else:
                    patch["completed_at"] = client_ts or datetime.utcnow()
            else:
                patch["completed_at"] = None
        if "completedAt" in data or "completed_at" in data:
            raw = data.get("completedAt", data.get("completed_at"))
            patch["completed_at"] = parse_timestamp(raw)
        return patch

    def _upsert_instance(self, change: SyncChange, client_ts: Optional[datetime]) -> None:
        data = change.data or {}
        stored = self.instances.get(self.user_id, change.entity_id)

        task_id = data.get("taskId") or data.get("task_id") or (stored.task_id if stored else None)
        if not task_id:
            raise ChangeRejected(change.entity, change.entity_id, "taskId is required")
        if self.tasks.get(self.user_id, task_id) is None:
            raise ChangeRejected(change.entity, change.entity_id, f"task {task_id} not found")

        day = parse_day(data.get("date"))
        if day is None:
            day = stored.date.date() if stored else self._today()
        day_start = to_midnight(day)

        existing = self.instances.get_for_day(task_id, day_start)
        if existing is not None:
            self._check_conflict(change, client_ts, existing)
        patch = self._instance_patch(data, existing, client_ts)

        def mutation() -> TaskInstance:
            instance, _ = self.instances.upsert(
                task_id,
                day_start,
                patch,
                instance_id=change.entity_id,
                client_modified_at=client_ts,
                commit=False,
            )
            return instance

        mutate_with_streak(self.db, self.user_id, mutation, today=self.today)

    def _delete_instance(self, change: SyncChange, client_ts: Optional[datetime]) -> None:
        stored = self.instances.get(self.user_id, change.entity_id)
        if stored is None:
            raise ChangeRejected(change.entity, change.entity_id, "task instance not found")
        self._check_conflict(change, client_ts, stored)
        mutate_with_streak(
            self.db,
            self.user_id,
            lambda: self.instances.delete(self.user_id, change.entity_id, commit=False),
            today=self.today,
        )

    def _today(self):
        if self.today is not None:
            return self.today
        user = UserRepository(self.db).get(self.user_id)
        if user is None:
            raise StreakUpdateError(self.user_id)
        return logical_today(user)
