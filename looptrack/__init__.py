"""looptrack: offline-first habit loops with delta sync and streaks."""

__version__ = "0.1.0"
