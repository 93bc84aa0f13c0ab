"""
Date calculation and manipulation service.
Handles calendar-day bucketing, rolling week/month windows and deadline math.
"""
from datetime import datetime, timedelta, date
from typing import Optional
import math

from study_guardian.constants import (
    TIMEFRAME_DAILY, TIMEFRAME_WEEKLY, TIMEFRAME_MONTHLY
)


class DateService:
    """Service for date-related operations"""

    @staticmethod
    def get_day_range(target_date: date) -> tuple[datetime, datetime]:
        """
        Get datetime range for a full day (midnight to midnight).

        Args:
            target_date: Date to get range for

        Returns:
            Tuple of (day_start, day_end) datetimes
        """
        day_start = datetime.combine(target_date, datetime.min.time())
        day_end = datetime.combine(target_date + timedelta(days=1), datetime.min.time())
        return day_start, day_end

    @staticmethod
    def week_start(day: date) -> date:
        """Monday of the ISO week containing `day`"""
        return day - timedelta(days=day.weekday())

    @staticmethod
    def month_start(day: date) -> date:
        return day.replace(day=1)

    @staticmethod
    def window_start(timeframe: str, day: date) -> Optional[date]:
        """
        First day of the rolling window for a timeframe.

        Returns None for alltime/none, which have no window.
        """
        if timeframe == TIMEFRAME_DAILY:
            return day
        if timeframe == TIMEFRAME_WEEKLY:
            return DateService.week_start(day)
        if timeframe == TIMEFRAME_MONTHLY:
            return DateService.month_start(day)
        return None

    @staticmethod
    def window_key(timeframe: str, day: date) -> str:
        """Stable label of the window containing `day` (e.g. 2026-W42)"""
        if timeframe == TIMEFRAME_DAILY:
            return day.isoformat()
        if timeframe == TIMEFRAME_WEEKLY:
            iso_year, iso_week, _ = day.isocalendar()
            return f"{iso_year}-W{iso_week:02d}"
        if timeframe == TIMEFRAME_MONTHLY:
            return f"{day.year}-{day.month:02d}"
        return ""

    @staticmethod
    def to_local_naive(value: Optional[datetime]) -> Optional[datetime]:
        """
        Convert an offset-aware datetime to naive server-local time.

        Stored datetimes are naive local time; clients often send UTC with a
        Z or +00:00 suffix. Naive values and None pass through unchanged.
        """
        if value is None or value.tzinfo is None:
            return value
        return value.astimezone().replace(tzinfo=None)

    @staticmethod
    def days_left(due: datetime, now: datetime) -> int:
        """Whole days until `due`, rounded up (0 or negative once passed)"""
        return math.ceil((due - now).total_seconds() / 86400)

    @staticmethod
    def days_between(earlier: date, later: date) -> int:
        return (later - earlier).days
