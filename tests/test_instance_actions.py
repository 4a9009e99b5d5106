"""Tests for interactive task-instance actions."""

import pytest
import uuid
from datetime import timedelta

from looptrack.engine import instance_actions
from looptrack.engine.completion import get_daily_completion
from looptrack.engine.dates import logical_today
from looptrack.errors import NotFoundError
from looptrack.models.task_instance import InstanceStatus

from tests.conftest import MONDAY


class TestActions:
    """complete / uncomplete / skip / unskip / notes."""

    def test_complete_creates_instance_and_updates_streak(
        self, db_session, test_user, test_user_id, make_task, user_repository
    ):
        task = make_task()
        today = logical_today(test_user)

        instance = instance_actions.complete(db_session, test_user_id, task.id, today, notes="done early")
        assert instance.status == InstanceStatus.COMPLETED.value
        assert instance.completed_at is not None
        assert instance.notes == "done early"

        user = user_repository.get(test_user_id)
        assert user.current_streak == 1
        assert user.last_active_date == today

    def test_complete_defaults_to_today(self, db_session, test_user, test_user_id, make_task):
        task = make_task()
        instance = instance_actions.complete(db_session, test_user_id, task.id)
        assert instance.date.date() == logical_today(test_user)

    def test_uncomplete_breaks_todays_streak(self, db_session, test_user, test_user_id, make_task, user_repository):
        task = make_task()
        today = logical_today(test_user)
        instance_actions.complete(db_session, test_user_id, task.id, today)
        instance = instance_actions.uncomplete(db_session, test_user_id, task.id, today)

        assert instance.status == InstanceStatus.PENDING.value
        assert instance.completed_at is None
        user = user_repository.get(test_user_id)
        assert user.current_streak == 0
        assert user.best_streak == 1

    def test_recomplete_restores_streak(self, db_session, test_user, test_user_id, make_task, user_repository):
        task = make_task()
        today = logical_today(test_user)
        instance_actions.complete(db_session, test_user_id, task.id, today)
        instance_actions.uncomplete(db_session, test_user_id, task.id, today)
        instance_actions.complete(db_session, test_user_id, task.id, today)
        assert user_repository.get(test_user_id).current_streak == 1

    def test_uncomplete_requires_existing_instance(self, db_session, test_user_id, make_task):
        task = make_task()
        with pytest.raises(NotFoundError):
            instance_actions.uncomplete(db_session, test_user_id, task.id, MONDAY)

    def test_skip_and_unskip(self, db_session, test_user_id, make_task):
        task = make_task()
        skipped = instance_actions.skip(db_session, test_user_id, task.id, MONDAY)
        assert skipped.status == InstanceStatus.SKIPPED.value
        unskipped = instance_actions.unskip(db_session, test_user_id, task.id, MONDAY)
        assert unskipped.status == InstanceStatus.PENDING.value
        assert unskipped.id == skipped.id

    def test_skipping_everything_today_is_neutral(self, db_session, test_user, test_user_id, make_task, user_repository):
        task = make_task()
        instance_actions.skip(db_session, test_user_id, task.id, logical_today(test_user))
        user = user_repository.get(test_user_id)
        assert user.current_streak == 0
        assert user.last_active_date is None

    def test_update_notes_keeps_status(self, db_session, test_user_id, make_task):
        task = make_task()
        instance_actions.complete(db_session, test_user_id, task.id, MONDAY)
        instance = instance_actions.update_notes(db_session, test_user_id, task.id, "felt great", MONDAY)
        assert instance.notes == "felt great"
        assert instance.status == InstanceStatus.COMPLETED.value

    def test_notes_on_untouched_task_updates_streak(
        self, db_session, test_user, test_user_id, make_task, user_repository
    ):
        """A note creates a PENDING instance, so today is no longer perfect."""
        done = make_task()
        untouched = make_task()
        today = logical_today(test_user)
        instance_actions.complete(db_session, test_user_id, done.id, today)
        assert user_repository.get(test_user_id).current_streak == 1

        instance = instance_actions.update_notes(db_session, test_user_id, untouched.id, "later", today)
        assert instance.status == InstanceStatus.PENDING.value
        assert get_daily_completion(db_session, test_user_id, today).percentage == 50
        user = user_repository.get(test_user_id)
        assert user.current_streak == 0
        assert user.best_streak == 1

    def test_unknown_task_is_not_found(self, db_session, test_user_id):
        with pytest.raises(NotFoundError):
            instance_actions.complete(db_session, test_user_id, str(uuid.uuid4()), MONDAY)

    def test_other_users_task_is_not_found(self, db_session, test_user_id, other_user_id, make_task):
        theirs = make_task(user_id=other_user_id)
        with pytest.raises(NotFoundError):
            instance_actions.skip(db_session, test_user_id, theirs.id, MONDAY)


class TestRange:
    def test_range_is_inclusive(self, db_session, test_user_id, make_task):
        task = make_task()
        for offset in range(4):
            instance_actions.skip(db_session, test_user_id, task.id, MONDAY + timedelta(days=offset))
        found = instance_actions.get_instances_for_range(
            db_session, test_user_id, MONDAY, MONDAY + timedelta(days=2)
        )
        assert len(found) == 3

    def test_reversed_range_is_rejected(self, db_session, test_user_id):
        with pytest.raises(ValueError):
            instance_actions.get_instances_for_range(db_session, test_user_id, MONDAY, MONDAY - timedelta(days=1))
