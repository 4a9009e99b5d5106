"""Tests for the completion aggregator."""

from datetime import timedelta

from looptrack.engine.completion import (
    classify,
    get_completions_between,
    get_daily_completion,
    round_percentage,
)
from looptrack.models.insights import DayStatus
from looptrack.models.task_instance import InstanceStatus

from tests.conftest import MONDAY


class TestClassification:
    """Classification rules, applied in order."""

    def test_no_instances_is_no_tasks(self):
        c = classify(MONDAY, total=0, completed=0, skipped=0)
        assert c.status == DayStatus.NO_TASKS.value
        assert c.percentage == 0
        assert c.is_neutral

    def test_all_skipped_is_none_and_neutral(self):
        """Every instance skipped: status none, 0%, no effect on streaks."""
        c = classify(MONDAY, total=2, completed=0, skipped=2)
        assert c.status == DayStatus.NONE.value
        assert c.percentage == 0
        assert c.is_neutral

    def test_all_completed_is_perfect(self):
        c = classify(MONDAY, total=3, completed=2, skipped=1)
        assert c.status == DayStatus.PERFECT.value
        assert c.percentage == 100
        assert c.is_perfect

    def test_some_completed_is_partial(self):
        c = classify(MONDAY, total=3, completed=1, skipped=0, pending=2)
        assert c.status == DayStatus.PARTIAL.value
        assert c.percentage == 33

    def test_nothing_completed_is_none(self):
        c = classify(MONDAY, total=2, completed=0, skipped=0, pending=2)
        assert c.status == DayStatus.NONE.value
        assert not c.is_neutral

    def test_rounding_is_half_up(self):
        """1 of 8 is 12.5%, which rounds to 13."""
        assert round_percentage(1, 8) == 13
        assert round_percentage(2, 3) == 67
        assert round_percentage(0, 0) == 0

    def test_rounded_percentage_decides_perfect(self):
        """999 of 1000 rounds to 100 and is classified perfect."""
        c = classify(MONDAY, total=1000, completed=999, skipped=0)
        assert c.percentage == 100
        assert c.status == DayStatus.PERFECT.value


class TestDailyCompletion:
    """Aggregation over stored instances."""

    def test_counts_only_that_day(self, db_session, test_user_id, make_task, set_status):
        task_a = make_task()
        task_b = make_task()
        set_status(task_a.id, MONDAY, InstanceStatus.COMPLETED)
        set_status(task_b.id, MONDAY, InstanceStatus.PENDING)
        set_status(task_a.id, MONDAY + timedelta(days=1), InstanceStatus.COMPLETED)

        c = get_daily_completion(db_session, test_user_id, MONDAY)
        assert c.total == 2
        assert c.completed == 1
        assert c.pending == 1
        assert c.percentage == 50
        assert c.status == DayStatus.PARTIAL.value

    def test_ignores_other_users_and_deleted_tasks(
        self, db_session, test_user_id, other_user_id, make_task, set_status, task_repository
    ):
        mine = make_task()
        theirs = make_task(user_id=other_user_id)
        deleted = make_task()
        set_status(mine.id, MONDAY, InstanceStatus.COMPLETED)
        set_status(theirs.id, MONDAY, InstanceStatus.PENDING)
        set_status(deleted.id, MONDAY, InstanceStatus.PENDING)
        task_repository.delete(test_user_id, deleted.id)

        c = get_daily_completion(db_session, test_user_id, MONDAY)
        assert c.total == 1
        assert c.status == DayStatus.PERFECT.value

    def test_range_includes_empty_days(self, db_session, test_user_id, make_task, set_status):
        task = make_task()
        set_status(task.id, MONDAY, InstanceStatus.COMPLETED)

        days = get_completions_between(db_session, test_user_id, MONDAY, MONDAY + timedelta(days=3))
        assert list(days) == [MONDAY + timedelta(days=i) for i in range(3)]
        assert days[MONDAY].is_perfect
        assert days[MONDAY + timedelta(days=1)].status == DayStatus.NO_TASKS.value
