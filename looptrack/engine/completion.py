"""Completion aggregation: totals and classification of one logical day.

Pure read + compute; nothing here writes.
"""

from collections import defaultdict
from datetime import date
from typing import Dict, Iterable, List

from sqlalchemy.orm import Session

from looptrack.database.task_instance_repository import TaskInstanceRepository
from looptrack.engine.dates import day_bounds, daterange, to_midnight
from looptrack.models.insights import DayCompletion, DayStatus
from looptrack.models.task_instance import InstanceStatus, TaskInstance


def round_percentage(numerator: int, denominator: int) -> int:
    """Percentage rounded half-up (12.5 -> 13), never banker's rounding."""
    if denominator <= 0:
        return 0
    return (200 * numerator + denominator) // (2 * denominator)


def classify(
    day: date,
    *,
    total: int,
    completed: int,
    skipped: int,
    pending: int = 0,
    missed: int = 0,
) -> DayCompletion:
    """Classify a day from its counts.

    Rules, in order:
    1. no instances at all -> no_tasks, 0%
    2. every instance skipped -> none, 0%
    3. otherwise percentage = completed / non-skipped, and 100 -> perfect, >0 -> partial, else none
    """
    non_skipped = total - skipped
    if total == 0:
        status, percentage = DayStatus.NO_TASKS, 0
    elif non_skipped == 0:
        status, percentage = DayStatus.NONE, 0
    else:
        percentage = round_percentage(completed, non_skipped)
        if percentage == 100:
            status = DayStatus.PERFECT
        elif percentage > 0:
            status = DayStatus.PARTIAL
        else:
            status = DayStatus.NONE
    return DayCompletion(
        date=day,
        total=total,
        pending=pending,
        completed=completed,
        skipped=skipped,
        missed=missed,
        percentage=percentage,
        status=status,
    )


def summarize(day: date, instances: Iterable[TaskInstance]) -> DayCompletion:
    counts = {s.value: 0 for s in InstanceStatus}
    for instance in instances:
        counts[instance.status] = counts.get(instance.status, 0) + 1
    return classify(
        day,
        total=sum(counts.values()),
        completed=counts[InstanceStatus.COMPLETED.value],
        skipped=counts[InstanceStatus.SKIPPED.value],
        pending=counts[InstanceStatus.PENDING.value],
        missed=counts[InstanceStatus.MISSED.value],
    )


def get_daily_completion(db: Session, user_id: str, day: date) -> DayCompletion:
    """Totals and classification of `day` ([midnight, next midnight)) for a user."""
    start, end = day_bounds(day)
    instances = TaskInstanceRepository(db).list_between(user_id, start, end)
    return summarize(day, instances)


def get_completions_between(db: Session, user_id: str, start: date, end_exclusive: date) -> Dict[date, DayCompletion]:
    """Completion of every day in [start, end_exclusive), from a single query.

    Days without instances are present and classified no_tasks.
    """
    if end_exclusive <= start:
        return {}
    instances = TaskInstanceRepository(db).list_between(user_id, to_midnight(start), to_midnight(end_exclusive))
    by_day: Dict[date, List[TaskInstance]] = defaultdict(list)
    for instance in instances:
        by_day[instance.date.date()].append(instance)
    return {day: summarize(day, by_day.get(day, [])) for day in daterange(start, end_exclusive)}


def get_completion_for_month(db: Session, user_id: str, year: int, month: int) -> Dict[date, DayCompletion]:
    start = date(year, month, 1)
    end = date(year + 1, 1, 1) if month == 12 else date(year, month + 1, 1)
    return get_completions_between(db, user_id, start, end)


def aggregate_percentage(completions: Iterable[DayCompletion]) -> int:
    """Completion percentage over several days, weighted by instance counts."""
    completed = 0
    non_skipped = 0
    for c in completions:
        completed += c.completed
        non_skipped += c.non_skipped
    return round_percentage(completed, non_skipped)
