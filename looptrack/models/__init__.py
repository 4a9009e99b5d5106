"""Data models for looptrack."""

from looptrack.models.block import Block
from looptrack.models.task import Task
from looptrack.models.task_instance import TaskInstance, InstanceStatus
from looptrack.models.user import User, StreakState
from looptrack.models.insights import DayCompletion, DayStatus
from looptrack.models.sync import SyncChange, SyncEntity, SyncAction, PushRequest

__all__ = [
    "Block",
    "Task",
    "TaskInstance",
    "InstanceStatus",
    "User",
    "StreakState",
    "DayCompletion",
    "DayStatus",
    "SyncChange",
    "SyncEntity",
    "SyncAction",
    "PushRequest",
]
