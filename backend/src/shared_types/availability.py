"""
Shared types for availability-related functionality.

This module contains shared data classes used by the availability reader and
the queue manager to pass validated time ranges around.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta


@dataclass(frozen=True)
class TimeWindow:
    """
    A closed search window in UTC.

    Both bounds are timezone-aware; ``end`` is strictly after ``start``.
    """
    start: datetime
    end: datetime

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def overlaps(self, start_at: datetime, end_at: datetime) -> bool:
        """Check whether ``[start_at, end_at]`` intersects this window."""
        return start_at <= self.end and end_at >= self.start
