"""
Streak tracking service.
Counts consecutive calendar days with study activity on the rewards ledger.
"""
import logging
from datetime import date, timedelta
from typing import Optional

from study_guardian.models import UserRewards
from study_guardian.constants import (
    NOTIFICATION_STREAK_MILESTONE, NOTIFICATION_PERSONAL_BEST,
    STREAK_NOTIFICATION_MILESTONES, PERSONAL_BEST_MIN_STREAK
)

logger = logging.getLogger("study_guardian.streaks")


class StreakService:
    """Service for day-bucketed activity streaks. Mutates in memory, never commits."""

    def __init__(self, notification_service=None):
        self.notification_service = notification_service

    def record_activity(self, ledger: UserRewards, day: date) -> bool:
        """
        Count an activity on `day` towards the streak.

        Same day: no change. Day after the last activity: +1. Longer gap or
        first activity ever: the streak starts again at 1.

        Returns:
            True if the streak changed
        """
        last = ledger.last_activity_day

        if last is not None and day <= last:
            return False

        if last is not None and day - last == timedelta(days=1):
            ledger.current_streak = (ledger.current_streak or 0) + 1
        else:
            ledger.current_streak = 1

        previous_record = ledger.longest_streak or 0
        ledger.longest_streak = max(previous_record, ledger.current_streak)
        ledger.last_activity_day = day

        if ledger.current_streak in STREAK_NOTIFICATION_MILESTONES:
            self._notify_streak(ledger, day)
        if ledger.current_streak > previous_record >= PERSONAL_BEST_MIN_STREAK:
            self._notify_personal_best(ledger, day)
        return True

    def break_stale_streak(self, ledger: UserRewards, today: date) -> bool:
        """
        Zero the current streak when no activity happened yesterday or today.

        Safe to re-run: an already broken streak stays at 0.

        Returns:
            True if the streak was broken by this call
        """
        if not ledger.current_streak:
            return False
        if ledger.last_activity_day is not None and ledger.last_activity_day >= today - timedelta(days=1):
            return False

        logger.info(
            f"Breaking {ledger.current_streak}-day streak of user {ledger.user_id}, "
            f"last activity {ledger.last_activity_day}"
        )
        ledger.current_streak = 0
        return True

    @staticmethod
    def is_active(ledger: UserRewards, today: date) -> bool:
        last: Optional[date] = ledger.last_activity_day
        return bool(ledger.current_streak) and last is not None and last >= today - timedelta(days=1)

    def _notify_streak(self, ledger: UserRewards, day: date) -> None:
        if self.notification_service is None:
            return
        days = ledger.current_streak
        self.notification_service.queue(
            ledger.user_id,
            NOTIFICATION_STREAK_MILESTONE,
            f"{days}-Day Streak! 🔥",
            f"You have studied {days} days in a row. Keep it going!",
            dedupe_key=f"streak:{ledger.user_id}:{days}:{day.isoformat()}"
        )

    def _notify_personal_best(self, ledger: UserRewards, day: date) -> None:
        """Once per streak run, on the day it passes the previous record"""
        if self.notification_service is None:
            return
        days = ledger.current_streak
        run_start = day - timedelta(days=days - 1)
        self.notification_service.queue(
            ledger.user_id,
            NOTIFICATION_PERSONAL_BEST,
            "New Longest Streak! ⭐",
            f"You've set a new personal record: {days} days!",
            dedupe_key=f"personal_best:{ledger.user_id}:{run_start.isoformat()}"
        )
