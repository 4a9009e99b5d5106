"""Completion and insight models for looptrack."""

from datetime import date
from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel


class DayStatus(str, Enum):
    """Classification of one logical day."""
    PERFECT = "perfect"
    PARTIAL = "partial"
    NONE = "none"
    NO_TASKS = "no_tasks"


class _CamelModel(BaseModel):
    class Config:
        """Pydantic configuration."""
        use_enum_values = True
        alias_generator = to_camel
        populate_by_name = True


class DayCompletion(_CamelModel):
    """Totals and classification of the instances of one day."""

    date: date
    total: int = 0
    pending: int = 0
    completed: int = 0
    skipped: int = 0
    missed: int = 0
    percentage: int = Field(0, ge=0, le=100)
    status: DayStatus = DayStatus.NO_TASKS

    @property
    def non_skipped(self) -> int:
        return self.total - self.skipped

    @property
    def is_perfect(self) -> bool:
        return self.status == DayStatus.PERFECT

    @property
    def is_neutral(self) -> bool:
        """True when the day has no non-skipped instances and must not touch streaks."""
        return self.non_skipped == 0


class CalendarDay(DayCompletion):
    day: int = Field(..., ge=1, le=31)


class HeatmapDay(_CamelModel):
    date: date
    percentage: int = 0
    status: DayStatus = DayStatus.NO_TASKS


class StreakInfo(_CamelModel):
    current_streak: int = 0
    best_streak: int = 0
    last_active_date: Optional[date] = None
    total_perfect_days: int = 0


class WeeklyAverage(_CamelModel):
    week_start_date: date
    average: int = 0


class InsightsSummary(_CamelModel):
    streak: StreakInfo
    weekly_average: int = 0
    monthly_completion: int = 0
    yearly_completion: int = 0
    perfect_days_this_month: int = 0
    perfect_days_this_year: int = 0
    weekly_averages: List[WeeklyAverage] = Field(default_factory=list)
