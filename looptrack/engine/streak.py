"""Streak engine.

Streak state lives on the user row (current_streak, best_streak,
last_active_date) and is recomputed after every task-instance mutation from
the completion of the user's logical today and the days before it.

A "neutral" day has no non-skipped instances: it neither breaks nor extends a
streak, so a perfect day after a run of neutral days continues the streak.
"""

import logging
from datetime import date, timedelta
from typing import Callable, Mapping, Optional, TypeVar

from sqlalchemy.orm import Session

from looptrack.database.user_repository import UserRepository
from looptrack.engine.completion import classify, get_completions_between
from looptrack.engine.dates import daterange, days_between, logical_today
from looptrack.errors import StreakUpdateError
from looptrack.models.insights import DayCompletion
from looptrack.models.user import StreakState
from looptrack.sync.locks import owner_locks

logger = logging.getLogger(__name__)

# How far back a broken streak is recounted once its run turns out to be intact.
RECOUNT_LOOKBACK_DAYS = 366

T = TypeVar("T")


def _completion(completions: Mapping[date, DayCompletion], day: date) -> DayCompletion:
    found = completions.get(day)
    if found is not None:
        return found
    return classify(day, total=0, completed=0, skipped=0)


def count_run_ending(day: date, completions: Mapping[date, DayCompletion]) -> int:
    """Number of perfect days in the run ending at `day`, bridging neutral days.

    Days absent from `completions` end the count.
    """
    count = 0
    cur = day
    while cur in completions:
        c = completions[cur]
        if c.is_perfect:
            count += 1
        elif not c.is_neutral:
            break
        cur -= timedelta(days=1)
    return count


def _continue(current: int, today: date, completions: Mapping[date, DayCompletion]) -> int:
    # A stored 0 means the run was broken earlier and may have been repaired since.
    if current == 0:
        return count_run_ending(today, completions)
    return current + 1


def compute_streak(
    previous: StreakState,
    today: date,
    completions: Mapping[date, DayCompletion],
) -> StreakState:
    """New streak state after re-evaluating `today`.

    `completions` must cover yesterday and today, and every day from
    `previous.last_active_date` to today when that is further back. When the
    stored streak is 0 it must reach back far enough to recount the run.
    """
    today_c = _completion(completions, today)

    if not today_c.is_perfect:
        if today_c.non_skipped > 0:
            return previous.model_copy(update={"current_streak": 0})
        return previous

    current = previous.current_streak
    last = previous.last_active_date
    if last is None:
        current = 1
    else:
        days = days_between(last, today)
        if days == 0:
            if current == 0:
                # Today was perfect, broken, and is perfect again.
                current = count_run_ending(today, completions)
        elif days == 1:
            if _completion(completions, today - timedelta(days=1)).is_perfect:
                current = _continue(current, today, completions)
        elif days > 1:
            bridged = all(
                _completion(completions, d).is_neutral
                for d in daterange(last + timedelta(days=1), today)
            )
            if bridged and _completion(completions, last).is_perfect:
                current = _continue(current, today, completions)
            else:
                current = 1

    return StreakState(
        current_streak=current,
        best_streak=max(previous.best_streak, current),
        last_active_date=today,
    )


def update_user_streak(
    db: Session,
    user_id: str,
    today: Optional[date] = None,
    *,
    commit: bool = True,
) -> StreakState:
    """Recompute and store a user's streak.

    The user row is read `FOR UPDATE`. With commit=False the write is only
    flushed, so the caller commits it together with the instance mutation.

    Raises:
        StreakUpdateError: if the user does not exist
    """
    users = UserRepository(db)
    with owner_locks.hold(user_id):
        user = users.get_for_update(user_id)
        if user is None:
            raise StreakUpdateError(user_id)

        today = today or logical_today(user)
        previous = user.streak
        start = today - timedelta(days=1)
        last = previous.last_active_date
        if last is not None and last < start:
            start = last
        if last is not None and previous.current_streak == 0:
            start = min(start, today - timedelta(days=RECOUNT_LOOKBACK_DAYS))

        completions = get_completions_between(db, user_id, start, today + timedelta(days=1))
        state = compute_streak(previous, today, completions)
        users.save_streak(user_id, state, commit=commit)
        if state != previous:
            logger.info(
                f"Streak for user {user_id} on {today}: {previous.current_streak} -> {state.current_streak} "
                f"(best {state.best_streak})"
            )
        return state


def mutate_with_streak(
    db: Session,
    user_id: str,
    mutation: Callable[[], T],
    *,
    today: Optional[date] = None,
) -> T:
    """Run an uncommitted instance mutation, then the streak update, then one commit.

    If the user row is missing the mutation is committed on its own and
    StreakUpdateError propagates.
    """
    with owner_locks.hold(user_id):
        try:
            result = mutation()
            update_user_streak(db, user_id, today=today, commit=False)
        except StreakUpdateError:
            db.commit()
            raise
        except Exception:
            db.rollback()
            raise
        db.commit()
        return result
