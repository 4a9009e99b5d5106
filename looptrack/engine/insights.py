"""Insights over a user's completion history: calendar, heatmap, streak info, averages."""

import logging
from collections import OrderedDict
from datetime import date, timedelta
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from looptrack.database.user_repository import UserRepository
from looptrack.engine.completion import (
    aggregate_percentage,
    get_completion_for_month,
    get_completions_between,
    get_daily_completion,
)
from looptrack.engine.dates import logical_today
from looptrack.errors import NotFoundError
from looptrack.models.constants import WEEKLY_AVERAGE_WINDOW_DAYS
from looptrack.models.insights import (
    CalendarDay,
    DayCompletion,
    HeatmapDay,
    InsightsSummary,
    StreakInfo,
    WeeklyAverage,
)
from looptrack.models.user import User

logger = logging.getLogger(__name__)


def _user(db: Session, user_id: str) -> User:
    user = UserRepository(db).get(user_id)
    if user is None:
        raise NotFoundError(f"User {user_id} not found")
    return user


def week_start(day: date) -> date:
    """Sunday on or before `day`."""
    return day - timedelta(days=(day.weekday() + 1) % 7)


def _count_perfect(completions: Dict[date, DayCompletion]) -> int:
    return sum(1 for c in completions.values() if c.is_perfect)


def get_daily(db: Session, user_id: str, day: Optional[date] = None) -> DayCompletion:
    if day is None:
        day = logical_today(_user(db, user_id))
    return get_daily_completion(db, user_id, day)


def get_calendar(db: Session, user_id: str, year: int, month: int) -> List[CalendarDay]:
    """One entry per day of the month, including days without tasks."""
    completions = get_completion_for_month(db, user_id, year, month)
    return [CalendarDay(day=d.day, **c.model_dump()) for d, c in completions.items()]


def get_heatmap(db: Session, user_id: str, year: int) -> List[HeatmapDay]:
    completions = get_completions_between(db, user_id, date(year, 1, 1), date(year + 1, 1, 1))
    return [HeatmapDay(date=d, percentage=c.percentage, status=c.status) for d, c in completions.items()]


def get_streak_info(db: Session, user_id: str, today: Optional[date] = None) -> StreakInfo:
    """Stored streak fields plus the number of perfect days so far this year."""
    user = _user(db, user_id)
    today = today or logical_today(user)
    completions = get_completions_between(db, user_id, date(today.year, 1, 1), today + timedelta(days=1))
    return StreakInfo(
        current_streak=user.current_streak,
        best_streak=user.best_streak,
        last_active_date=user.last_active_date,
        total_perfect_days=_count_perfect(completions),
    )


def get_weekly_averages(db: Session, user_id: str, today: Optional[date] = None) -> List[WeeklyAverage]:
    """Completion per week (weeks start on Sunday) over the last 12 weeks.

    Weeks without any instance are left out.
    """
    if today is None:
        today = logical_today(_user(db, user_id))
    start = today - timedelta(days=WEEKLY_AVERAGE_WINDOW_DAYS)
    completions = get_completions_between(db, user_id, start, today + timedelta(days=1))

    weeks: "OrderedDict[date, List[DayCompletion]]" = OrderedDict()
    for day, c in completions.items():
        if c.total == 0:
            continue
        weeks.setdefault(week_start(day), []).append(c)
    return [
        WeeklyAverage(week_start_date=ws, average=aggregate_percentage(days))
        for ws, days in sorted(weeks.items())
    ]


def get_summary(db: Session, user_id: str, today: Optional[date] = None) -> InsightsSummary:
    user = _user(db, user_id)
    today = today or logical_today(user)

    # One read of the whole year serves the monthly and yearly figures too.
    year_days = get_completions_between(db, user_id, date(today.year, 1, 1), date(today.year + 1, 1, 1))
    month_days = {d: c for d, c in year_days.items() if d.month == today.month}
    perfect_this_year = _count_perfect({d: c for d, c in year_days.items() if d <= today})
    perfect_this_month = _count_perfect({d: c for d, c in month_days.items() if d <= today})
    weekly = get_weekly_averages(db, user_id, today=today)
    weekly_average = (2 * sum(w.average for w in weekly) + len(weekly)) // (2 * len(weekly)) if weekly else 0

    streak = StreakInfo(
        current_streak=user.current_streak,
        best_streak=user.best_streak,
        last_active_date=user.last_active_date,
        total_perfect_days=perfect_this_year,
    )
    logger.debug(f"Built insights summary for user {user_id} as of {today}")
    return InsightsSummary(
        streak=streak,
        weekly_average=weekly_average,
        monthly_completion=aggregate_percentage(month_days.values()),
        yearly_completion=aggregate_percentage(year_days.values()),
        perfect_days_this_month=perfect_this_month,
        perfect_days_this_year=perfect_this_year,
        weekly_averages=weekly,
    )
