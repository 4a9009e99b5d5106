"""User data model for looptrack."""

from datetime import date, datetime
from typing import Optional
from pydantic import BaseModel, Field

from looptrack.models.constants import DEFAULT_DAY_CUTOFF_HOUR, DEFAULT_TIMEZONE


class StreakState(BaseModel):
    """Stored streak fields of a user."""

    current_streak: int = Field(0, ge=0, description="Consecutive perfect days ending at last_active_date")
    best_streak: int = Field(0, ge=0, description="Highest current_streak ever reached")
    last_active_date: Optional[date] = Field(None, description="Last logical day that was perfect")


class User(BaseModel):
    """User model for looptrack."""

    id: str = Field(..., description="Unique user identifier")
    email: str = Field(..., description="User email address")
    name: Optional[str] = Field(None, description="User display name")
    timezone: str = Field(DEFAULT_TIMEZONE, description="IANA timezone name")
    day_cutoff_hour: int = Field(
        DEFAULT_DAY_CUTOFF_HOUR, ge=0, le=23, description="Local hour at which the logical day ends"
    )
    current_streak: int = Field(0, ge=0)
    best_streak: int = Field(0, ge=0)
    last_active_date: Optional[date] = None
    last_sync_at: Optional[datetime] = Field(None, description="Last successful push")
    created_at: datetime = Field(..., description="User creation timestamp")
    updated_at: datetime = Field(..., description="User last update timestamp")

    @property
    def streak(self) -> StreakState:
        return StreakState(
            current_streak=self.current_streak,
            best_streak=self.best_streak,
            last_active_date=self.last_active_date,
        )
