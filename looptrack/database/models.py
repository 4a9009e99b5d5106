"""SQLAlchemy database models for looptrack."""

from datetime import datetime
from typing import Union, TypeVar, Type
import uuid
from sqlalchemy import Column, String, Integer, Boolean, Date, DateTime, JSON, ForeignKey, UniqueConstraint

from looptrack.database.database import Base
from looptrack.models.constants import (
    DEFAULT_BLOCK_ACTIVE_DAYS,
    DEFAULT_DAY_CUTOFF_HOUR,
    DEFAULT_TASK_DAYS_OF_WEEK,
    DEFAULT_TIMEZONE,
)
from looptrack.models.task_instance import InstanceStatus

T = TypeVar('T')


def enum_to_value(enum_obj: Union[str, T]) -> str:
    """Convert enum to string value (handles both enum and string).

    Args:
        enum_obj: Enum instance or string value

    Returns:
        String value of the enum, or the string itself if already a string
    """
    if hasattr(enum_obj, 'value'):
        return enum_obj.value
    return str(enum_obj)


def value_to_enum(value: str, enum_class: Type[T], default: T) -> T:
    """Convert string to enum with fallback to default.

    Args:
        value: String value to convert
        enum_class: Enum class to convert to
        default: Default enum value if conversion fails

    Returns:
        Enum instance, or default if conversion fails
    """
    if not value:
        return default
    try:
        return enum_class(value.upper())
    except (ValueError, AttributeError):
        return default


class UserDB(Base):
    """Database model for User, including the stored streak state."""

    __tablename__ = "users"

    id = Column(String, primary_key=True)

    # User profile
    email = Column(String, nullable=False, unique=True)
    name = Column(String, nullable=True)
    timezone = Column(String, nullable=False, default=DEFAULT_TIMEZONE)
    day_cutoff_hour = Column(Integer, nullable=False, default=DEFAULT_DAY_CUTOFF_HOUR)

    # Streak state (derived; rewritten by the streak engine)
    current_streak = Column(Integer, nullable=False, default=0)
    best_streak = Column(Integer, nullable=False, default=0)
    last_active_date = Column(Date, nullable=True)

    # Advances only on a completed push
    last_sync_at = Column(DateTime, nullable=True)

    # Timestamps
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_pydantic(self):
        """Convert database model to Pydantic model."""
        from looptrack.models.user import User
        return User(
            id=self.id,
            email=self.email,
            name=self.name,
            timezone=self.timezone or DEFAULT_TIMEZONE,
            day_cutoff_hour=self.day_cutoff_hour or 0,
            current_streak=self.current_streak or 0,
            best_streak=self.best_streak or 0,
            last_active_date=self.last_active_date,
            last_sync_at=self.last_sync_at,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

    @classmethod
    def from_pydantic(cls, user):
        """Create database model from Pydantic model."""
        return cls(
            id=user.id,
            email=user.email,
            name=user.name,
            timezone=user.timezone,
            day_cutoff_hour=user.day_cutoff_hour,
            current_streak=user.current_streak,
            best_streak=user.best_streak,
            last_active_date=user.last_active_date,
            last_sync_at=user.last_sync_at,
            created_at=user.created_at,
            updated_at=user.updated_at,
        )


class BlockDB(Base):
    """Database model for Block."""

    __tablename__ = "blocks"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    name = Column(String, nullable=False)
    description = Column(String, nullable=True)
    icon = Column(String, nullable=True)
    color = Column(String, nullable=True)
    sort_order = Column(Integer, nullable=False, default=0)
    is_archived = Column(Boolean, nullable=False, default=False)
    active_days = Column(JSON, nullable=False, default=lambda: list(DEFAULT_BLOCK_ACTIVE_DAYS))
    reminder_enabled = Column(Boolean, nullable=False, default=False)
    reminder_hour = Column(Integer, nullable=True)

    # Timestamps
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow, index=True)
    deleted_at = Column(DateTime, nullable=True, index=True)
    client_modified_at = Column(DateTime, nullable=True)

    def to_pydantic(self):
        """Convert database model to Pydantic model."""
        from looptrack.models.block import Block
        return Block(
            id=self.id,
            user_id=self.user_id,
            name=self.name,
            description=self.description,
            icon=self.icon,
            color=self.color,
            sort_order=self.sort_order or 0,
            is_archived=bool(self.is_archived),
            active_days=list(self.active_days or []),
            reminder_enabled=bool(self.reminder_enabled),
            reminder_hour=self.reminder_hour,
            created_at=self.created_at,
            updated_at=self.updated_at,
            deleted_at=self.deleted_at,
            client_modified_at=self.client_modified_at,
        )

    @classmethod
    def from_pydantic(cls, block):
        """Create database model from Pydantic model."""
        return cls(
            id=block.id,
            user_id=block.user_id,
            name=block.name,
            description=block.description,
            icon=block.icon,
            color=block.color,
            sort_order=block.sort_order,
            is_archived=block.is_archived,
            active_days=list(block.active_days),
            reminder_enabled=block.reminder_enabled,
            reminder_hour=block.reminder_hour,
            created_at=block.created_at,
            updated_at=block.updated_at,
            deleted_at=block.deleted_at,
            client_modified_at=block.client_modified_at,
        )


class TaskDB(Base):
    """Database model for Task."""

    __tablename__ = "tasks"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    # Non-owning reference: blocks are soft-deleted, so no cascade here.
    block_id = Column(String, ForeignKey("blocks.id", ondelete="SET NULL"), nullable=True, index=True)

    title = Column(String, nullable=False)
    description = Column(String, nullable=True)
    emoji = Column(String, nullable=True)
    sort_order = Column(Integer, nullable=False, default=0)
    is_archived = Column(Boolean, nullable=False, default=False)

    # One-off vs loop
    is_one_off = Column(Boolean, nullable=False, default=False)
    due_date = Column(Date, nullable=True)
    days_of_week = Column(JSON, nullable=False, default=lambda: list(DEFAULT_TASK_DAYS_OF_WEEK))
    skip_days = Column(Integer, nullable=False, default=0)
    reset_days = Column(Integer, nullable=False, default=0)

    # Timestamps
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow, index=True)
    deleted_at = Column(DateTime, nullable=True, index=True)
    client_modified_at = Column(DateTime, nullable=True)

    def to_pydantic(self):
        """Convert database model to Pydantic model."""
        from looptrack.models.task import Task
        return Task(
            id=self.id,
            user_id=self.user_id,
            block_id=self.block_id,
            title=self.title,
            description=self.description,
            emoji=self.emoji,
            sort_order=self.sort_order or 0,
            is_archived=bool(self.is_archived),
            is_one_off=bool(self.is_one_off),
            due_date=self.due_date,
            days_of_week=list(self.days_of_week or []),
            skip_days=self.skip_days or 0,
            reset_days=self.reset_days or 0,
            created_at=self.created_at,
            updated_at=self.updated_at,
            deleted_at=self.deleted_at,
            client_modified_at=self.client_modified_at,
        )

    @classmethod
    def from_pydantic(cls, task):
        """Create database model from Pydantic model."""
        return cls(
            id=task.id,
            user_id=task.user_id,
            block_id=task.block_id,
            title=task.title,
            description=task.description,
            emoji=task.emoji,
            sort_order=task.sort_order,
            is_archived=task.is_archived,
            is_one_off=task.is_one_off,
            due_date=task.due_date,
            days_of_week=list(task.days_of_week),
            skip_days=task.skip_days,
            reset_days=task.reset_days,
            created_at=task.created_at,
            updated_at=task.updated_at,
            deleted_at=task.deleted_at,
            client_modified_at=task.client_modified_at,
        )


class TaskInstanceDB(Base):
    """Database model for TaskInstance (one task on one logical day)."""

    __tablename__ = "task_instances"
    __table_args__ = (
        # Lazy get-or-create relies on this: concurrent first touches of the same
        # (task, day) collide here instead of producing two rows.
        UniqueConstraint("task_id", "date", name="uq_task_instance_task_date"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    task_id = Column(String, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)

    # Logical day at local midnight
    date = Column(DateTime, nullable=False, index=True)
    status = Column(String, nullable=False, default=InstanceStatus.PENDING.value)
    notes = Column(String, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    # Timestamps
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow, index=True)
    client_modified_at = Column(DateTime, nullable=True)

    def to_pydantic(self):
        """Convert database model to Pydantic model."""
        from looptrack.models.task_instance import TaskInstance
        return TaskInstance(
            id=self.id,
            task_id=self.task_id,
            date=self.date,
            status=value_to_enum(self.status, InstanceStatus, InstanceStatus.PENDING),
            notes=self.notes,
            completed_at=self.completed_at,
            created_at=self.created_at,
            updated_at=self.updated_at,
            client_modified_at=self.client_modified_at,
        )

    @classmethod
    def from_pydantic(cls, instance):
        """Create database model from Pydantic model."""
        return cls(
            id=instance.id,
            task_id=instance.task_id,
            date=instance.date,
            status=enum_to_value(instance.status),
            notes=instance.notes,
            completed_at=instance.completed_at,
            created_at=instance.created_at,
            updated_at=instance.updated_at,
            client_modified_at=instance.client_modified_at,
        )
