"""Tests for the streak engine."""

import random
import pytest
from datetime import date, timedelta

from looptrack.database.task_instance_repository import TaskInstanceRepository
from looptrack.engine.completion import classify
from looptrack.engine.dates import to_midnight
from looptrack.engine.streak import compute_streak, mutate_with_streak, update_user_streak
from looptrack.errors import StreakUpdateError
from looptrack.models.task_instance import InstanceStatus
from looptrack.models.user import StreakState

from tests.conftest import MONDAY

TUESDAY = MONDAY + timedelta(days=1)
WEDNESDAY = MONDAY + timedelta(days=2)


def perfect(day):
    return classify(day, total=1, completed=1, skipped=0)


def partial(day):
    return classify(day, total=2, completed=1, skipped=0, pending=1)


def empty(day):
    return classify(day, total=0, completed=0, skipped=0)


def all_skipped(day):
    return classify(day, total=1, completed=0, skipped=1)


def days(*completions):
    return {c.date: c for c in completions}


class TestComputeStreak:
    """Pure streak transitions."""

    def test_first_perfect_day_starts_streak(self):
        state = compute_streak(StreakState(), MONDAY, days(perfect(MONDAY)))
        assert state == StreakState(current_streak=1, best_streak=1, last_active_date=MONDAY)

    def test_consecutive_perfect_days_extend_streak(self):
        previous = StreakState(current_streak=1, best_streak=1, last_active_date=MONDAY)
        state = compute_streak(previous, TUESDAY, days(perfect(MONDAY), perfect(TUESDAY)))
        assert state.current_streak == 2
        assert state.best_streak == 2
        assert state.last_active_date == TUESDAY

    def test_empty_day_between_perfect_days_keeps_continuity(self):
        """Mon perfect, Tue without instances, Wed perfect -> 2."""
        previous = StreakState(current_streak=1, best_streak=1, last_active_date=MONDAY)
        state = compute_streak(previous, WEDNESDAY, days(perfect(MONDAY), empty(TUESDAY), perfect(WEDNESDAY)))
        assert state.current_streak == 2
        assert state.last_active_date == WEDNESDAY

    def test_all_skipped_day_between_perfect_days_keeps_continuity(self):
        previous = StreakState(current_streak=1, best_streak=1, last_active_date=MONDAY)
        state = compute_streak(
            previous, WEDNESDAY, days(perfect(MONDAY), all_skipped(TUESDAY), perfect(WEDNESDAY))
        )
        assert state.current_streak == 2

    def test_partial_day_in_gap_restarts_streak(self):
        """Streak 5, a partial day, then a perfect day -> 1, best stays 5."""
        previous = StreakState(current_streak=5, best_streak=5, last_active_date=MONDAY)
        state = compute_streak(
            previous, WEDNESDAY, days(perfect(MONDAY), partial(TUESDAY), perfect(WEDNESDAY))
        )
        assert state.current_streak == 1
        assert state.best_streak == 5
        assert state.last_active_date == WEDNESDAY

    def test_imperfect_today_breaks_streak_only(self):
        """current drops to 0; best and last active date are untouched."""
        previous = StreakState(current_streak=4, best_streak=6, last_active_date=MONDAY)
        state = compute_streak(previous, TUESDAY, days(perfect(MONDAY), partial(TUESDAY)))
        assert state == StreakState(current_streak=0, best_streak=6, last_active_date=MONDAY)

    def test_neutral_today_leaves_state_untouched(self):
        previous = StreakState(current_streak=4, best_streak=6, last_active_date=MONDAY)
        assert compute_streak(previous, TUESDAY, days(perfect(MONDAY), empty(TUESDAY))) == previous
        assert compute_streak(previous, TUESDAY, days(perfect(MONDAY), all_skipped(TUESDAY))) == previous

    def test_same_day_reevaluation_is_idempotent(self):
        """Running twice with unchanged inputs changes nothing the second time."""
        completions = days(perfect(MONDAY), perfect(TUESDAY))
        once = compute_streak(StreakState(current_streak=1, best_streak=1, last_active_date=MONDAY), TUESDAY, completions)
        twice = compute_streak(once, TUESDAY, completions)
        assert once == twice

    def test_yesterday_no_longer_perfect_leaves_count(self):
        """One day since last active but yesterday was later broken: count unchanged."""
        previous = StreakState(current_streak=3, best_streak=3, last_active_date=MONDAY)
        state = compute_streak(previous, TUESDAY, days(partial(MONDAY), perfect(TUESDAY)))
        assert state.current_streak == 3
        assert state.last_active_date == TUESDAY

    def test_today_perfect_again_after_break_recounts_run(self):
        """Perfect, broken, perfect again on the same day restores the run."""
        previous = StreakState(current_streak=0, best_streak=3, last_active_date=WEDNESDAY)
        state = compute_streak(
            previous, WEDNESDAY, days(perfect(MONDAY), empty(TUESDAY), perfect(WEDNESDAY))
        )
        assert state.current_streak == 2
        assert state.best_streak == 3

    def test_broken_state_recounts_when_yesterday_continues(self):
        """Stored 0 after a pending write, then today completes: the run is recounted."""
        previous = StreakState(current_streak=0, best_streak=2, last_active_date=TUESDAY)
        state = compute_streak(
            previous, WEDNESDAY, days(perfect(MONDAY), perfect(TUESDAY), perfect(WEDNESDAY))
        )
        assert state.current_streak == 3
        assert state.best_streak == 3

    def test_broken_state_recounts_across_neutral_gap(self):
        previous = StreakState(current_streak=0, best_streak=1, last_active_date=MONDAY)
        thursday = MONDAY + timedelta(days=3)
        completions = days(perfect(MONDAY), empty(TUESDAY), all_skipped(WEDNESDAY), perfect(thursday))
        state = compute_streak(previous, thursday, completions)
        assert state.current_streak == 2

    def test_long_gap_restarts(self):
        previous = StreakState(current_streak=2, best_streak=2, last_active_date=MONDAY)
        later = MONDAY + timedelta(days=10)
        completions = days(perfect(MONDAY), perfect(later))
        completions[MONDAY + timedelta(days=3)] = partial(MONDAY + timedelta(days=3))
        state = compute_streak(previous, later, completions)
        assert state.current_streak == 1

    def test_best_streak_never_decreases(self):
        """Random day sequences never lower best_streak, and best >= current always."""
        rng = random.Random(1234)
        state = StreakState()
        completions = {}
        best_seen = 0
        for offset in range(200):
            day = MONDAY + timedelta(days=offset)
            completions[day] = rng.choice([perfect, partial, empty, all_skipped])(day)
            for _ in range(rng.randint(1, 2)):
                state = compute_streak(state, day, completions)
                assert state.best_streak >= best_seen
                assert state.best_streak >= state.current_streak
                best_seen = state.best_streak


class TestUpdateUserStreak:
    """Streak recomputation against stored instances."""

    def test_monday_wednesday_scenario(self, db_session, test_user_id, make_task, set_status, user_repository):
        """Loop on Mon/Wed/Fri, Mon and Wed completed, Tue empty -> streak 2, last active Wed."""
        task = make_task(days_of_week=[1, 3, 5])
        set_status(task.id, MONDAY, InstanceStatus.COMPLETED)
        update_user_streak(db_session, test_user_id, today=MONDAY)
        set_status(task.id, WEDNESDAY, InstanceStatus.COMPLETED)
        state = update_user_streak(db_session, test_user_id, today=WEDNESDAY)

        assert state.current_streak == 2
        assert state.last_active_date == WEDNESDAY
        stored = user_repository.get(test_user_id)
        assert stored.current_streak == 2
        assert stored.best_streak == 2
        assert stored.last_active_date == WEDNESDAY

    def test_skipped_tuesday_scenario(self, db_session, test_user_id, make_task, set_status):
        loop = make_task(days_of_week=[1, 3, 5])
        tuesday_task = make_task(days_of_week=[2])
        set_status(loop.id, MONDAY, InstanceStatus.COMPLETED)
        update_user_streak(db_session, test_user_id, today=MONDAY)
        set_status(tuesday_task.id, TUESDAY, InstanceStatus.SKIPPED)
        update_user_streak(db_session, test_user_id, today=TUESDAY)
        set_status(loop.id, WEDNESDAY, InstanceStatus.COMPLETED)
        state = update_user_streak(db_session, test_user_id, today=WEDNESDAY)
        assert state.current_streak == 2

    def test_no_task_day_is_neutral(self, db_session, test_user_id, make_task, set_status):
        """Recomputing on a day without instances leaves the streak as it was."""
        task = make_task()
        set_status(task.id, MONDAY, InstanceStatus.COMPLETED)
        before = update_user_streak(db_session, test_user_id, today=MONDAY)
        after = update_user_streak(db_session, test_user_id, today=TUESDAY)
        assert after == before

    def test_repeated_invocation_is_idempotent(self, db_session, test_user_id, make_task, set_status):
        task = make_task()
        set_status(task.id, MONDAY, InstanceStatus.COMPLETED)
        first = update_user_streak(db_session, test_user_id, today=MONDAY)
        second = update_user_streak(db_session, test_user_id, today=MONDAY)
        assert first == second

    def test_missing_user_raises(self, db_session):
        with pytest.raises(StreakUpdateError):
            update_user_streak(db_session, "ghost-user", today=MONDAY)

    def test_pending_then_completed_today_keeps_the_run(self, db_session, test_user_id, make_task, set_status):
        """Five perfect days, then today is written PENDING before it is COMPLETED."""
        task = make_task()
        for offset in range(5):
            day = MONDAY + timedelta(days=offset)
            set_status(task.id, day, InstanceStatus.COMPLETED)
            update_user_streak(db_session, test_user_id, today=day)

        saturday = MONDAY + timedelta(days=5)
        set_status(task.id, saturday, InstanceStatus.PENDING)
        assert update_user_streak(db_session, test_user_id, today=saturday).current_streak == 0
        set_status(task.id, saturday, InstanceStatus.COMPLETED)
        state = update_user_streak(db_session, test_user_id, today=saturday)
        assert state.current_streak == 6
        assert state.best_streak == 6

    def test_pending_then_completed_after_yesterday(self, db_session, test_user_id, make_task, set_status):
        task = make_task()
        set_status(task.id, MONDAY, InstanceStatus.COMPLETED)
        update_user_streak(db_session, test_user_id, today=MONDAY)
        other = make_task()
        set_status(other.id, TUESDAY, InstanceStatus.PENDING)
        update_user_streak(db_session, test_user_id, today=TUESDAY)
        set_status(other.id, TUESDAY, InstanceStatus.COMPLETED)
        state = update_user_streak(db_session, test_user_id, today=TUESDAY)
        assert state.current_streak == 2
        assert state.last_active_date == TUESDAY


class TestMutateWithStreak:
    """Instance write and streak write commit together."""

    def test_mutation_and_streak_are_committed(self, db_session, test_user_id, make_task, user_repository):
        task = make_task()
        repo = TaskInstanceRepository(db_session)

        mutate_with_streak(
            db_session,
            test_user_id,
            lambda: repo.upsert(task.id, to_midnight(MONDAY), {"status": InstanceStatus.COMPLETED}, commit=False),
            today=MONDAY,
        )
        db_session.rollback()  # nothing pending may be lost

        assert repo.get_for_day(task.id, to_midnight(MONDAY)).status == InstanceStatus.COMPLETED.value
        assert user_repository.get(test_user_id).current_streak == 1

    def test_missing_user_still_commits_instance(self, db_session, make_task):
        """A streak failure surfaces, but the instance write survives."""
        task = make_task()
        repo = TaskInstanceRepository(db_session)

        with pytest.raises(StreakUpdateError):
            mutate_with_streak(
                db_session,
                "ghost-user",
                lambda: repo.upsert(task.id, to_midnight(MONDAY), {"status": InstanceStatus.COMPLETED}, commit=False),
                today=MONDAY,
            )
        db_session.rollback()
        assert repo.get_for_day(task.id, to_midnight(MONDAY)) is not None
