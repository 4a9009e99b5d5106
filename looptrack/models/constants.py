"""Constants for looptrack.

This module centralizes all magic numbers and default values used throughout the application.
"""

# Weekdays are numbered 0=Sunday .. 6=Saturday (wire format shared with the mobile client).
ALL_WEEKDAYS = [0, 1, 2, 3, 4, 5, 6]
WORKWEEK_DAYS = [1, 2, 3, 4, 5]

# Task defaults
DEFAULT_TASK_TITLE = "New Task"
DEFAULT_TASK_DAYS_OF_WEEK = WORKWEEK_DAYS
DEFAULT_SKIP_DAYS = 0
DEFAULT_RESET_DAYS = 0

# Block defaults
DEFAULT_BLOCK_NAME = "New Block"
DEFAULT_BLOCK_ACTIVE_DAYS = ALL_WEEKDAYS

# User defaults
DEFAULT_TIMEZONE = "UTC"
DEFAULT_DAY_CUTOFF_HOUR = 0

# Insights
WEEKLY_AVERAGE_WINDOW_DAYS = 84  # 12 weeks
