"""Completion and streak engines for looptrack."""

from looptrack.engine.completion import classify, get_daily_completion, get_completions_between
from looptrack.engine.streak import compute_streak, update_user_streak
from looptrack.engine.dates import logical_day, logical_today

__all__ = [
    "classify",
    "get_daily_completion",
    "get_completions_between",
    "compute_streak",
    "update_user_streak",
    "logical_day",
    "logical_today",
]
