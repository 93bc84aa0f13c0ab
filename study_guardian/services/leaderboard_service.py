"""
Leaderboard and rank projections over the rewards ledgers.
Read-only: nothing here mutates a ledger.

Weekly and monthly figures only count when the ledger's reset marker is the
current window start. A ledger nobody has touched since the window turned
reads as 0 even before the daily sweep rolls it over.
"""
from datetime import datetime, date
from typing import List, Optional
from sqlalchemy import case
from sqlalchemy.orm import Session

from study_guardian.models import UserRewards
from study_guardian.repositories.points_repository import UserRewardsRepository
from study_guardian.services.date_service import DateService
from study_guardian.services.points_service import PointsService, level_progress
from study_guardian.exceptions import RewardsProfileNotFoundException, ValidationException
from study_guardian.constants import (
    LEADERBOARD_ALLTIME, LEADERBOARD_WEEKLY, LEADERBOARD_MONTHLY,
    RECENT_POINTS_LIMIT
)


class LeaderboardService:
    """Service for leaderboard, rank and rewards profile reads"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = UserRewardsRepository(db)

    @staticmethod
    def points_column(window: str):
        """Ledger column ranked for a leaderboard window"""
        if window == LEADERBOARD_WEEKLY:
            return UserRewards.weekly_points
        if window == LEADERBOARD_MONTHLY:
            return UserRewards.monthly_points
        if window == LEADERBOARD_ALLTIME:
            return UserRewards.total_points
        raise ValidationException("window", f"unknown leaderboard window '{window}'")

    @staticmethod
    def _reset_marker(window: str):
        if window == LEADERBOARD_WEEKLY:
            return UserRewards.last_weekly_reset, DateService.week_start
        if window == LEADERBOARD_MONTHLY:
            return UserRewards.last_monthly_reset, DateService.month_start
        return None, None

    def points_expression(self, window: str, today: date):
        """SQL expression for a ledger's points in the current window"""
        column = self.points_column(window)
        marker, start_of = self._reset_marker(window)
        if marker is None:
            return column
        return case((marker == start_of(today), column), else_=0)

    def window_points(self, ledger: UserRewards, window: str, today: date) -> int:
        """Points of one loaded ledger in the current window"""
        column = self.points_column(window)
        marker, start_of = self._reset_marker(window)
        if marker is not None and getattr(ledger, marker.key) != start_of(today):
            return 0
        return getattr(ledger, column.key) or 0

    def get_leaderboard(self, window: str = LEADERBOARD_ALLTIME, limit: int = 100,
                        now: Optional[datetime] = None) -> List[dict]:
        """
        Top public ledgers for a window.

        Rank is the 1-based list position.
        """
        if limit <= 0:
            raise ValidationException("limit", "limit must be greater than 0")
        today = (now or datetime.now()).date()
        ledgers = self.repo.get_top(self.points_expression(window, today), limit, public_only=True)

        return [
            {
                "rank": position,
                "user_id": ledger.user_id,
                "display_name": ledger.display_name,
                "points": self.window_points(ledger, window, today),
                "current_level": ledger.current_level,
                "total_badges": ledger.total_badges
            }
            for position, ledger in enumerate(ledgers, start=1)
        ]

    def get_user_rank(self, user_id: int, window: str = LEADERBOARD_ALLTIME,
                      now: Optional[datetime] = None) -> dict:
        """
        Rank of one user across every ledger, public or not.

        rank = users with strictly more points + 1, so tied users share a
        rank and the following rank is skipped.
        """
        self.points_column(window)
        ledger = self.repo.get_by_user(user_id)
        if not ledger:
            raise RewardsProfileNotFoundException(user_id)

        today = (now or datetime.now()).date()
        points = self.window_points(ledger, window, today)
        rank = self.repo.count_above(self.points_expression(window, today), points) + 1
        return {"rank": rank, "points": points, "window": window}

    def get_rewards_profile(self, user_id: int, now: Optional[datetime] = None) -> dict:
        ledger = self.repo.get_by_user(user_id)
        if not ledger:
            raise RewardsProfileNotFoundException(user_id)
        today = (now or datetime.now()).date()

        return {
            "user_id": ledger.user_id,
            "total_points": ledger.total_points,
            "current_level": ledger.current_level,
            "level_progress": level_progress(ledger.total_points or 0, ledger.current_level or 1),
            "points_to_next_level": ledger.points_to_next_level,
            "weekly_points": self.window_points(ledger, LEADERBOARD_WEEKLY, today),
            "monthly_points": self.window_points(ledger, LEADERBOARD_MONTHLY, today),
            "lifetime_stats": {
                "sessions_completed": ledger.sessions_completed,
                "study_hours": ledger.study_hours,
                "goals_completed": ledger.goals_completed,
                "current_streak": ledger.current_streak,
                "longest_streak": ledger.longest_streak,
                "last_activity_day": ledger.last_activity_day,
            },
            "earned_rewards": [
                {
                    "reward_id": earned.reward_id,
                    "name": earned.reward.name if earned.reward else None,
                    "period_key": earned.period_key,
                    "earned_at": earned.earned_at,
                }
                for earned in ledger.earned_rewards
            ],
            "total_badges": ledger.total_badges,
            "is_public": ledger.is_public,
            "display_name": ledger.display_name,
            "recent_points": PointsService(self.db).get_recent_history(ledger, RECENT_POINTS_LIMIT),
        }

    def update_visibility(self, user_id: int, is_public: bool, display_name=None) -> UserRewards:
        """Opt in or out of the public leaderboard"""
        ledger = self.repo.get_by_user(user_id)
        if not ledger:
            raise RewardsProfileNotFoundException(user_id)
        ledger.is_public = is_public
        if display_name is not None:
            ledger.display_name = display_name
        self.repo.commit()
        return ledger
