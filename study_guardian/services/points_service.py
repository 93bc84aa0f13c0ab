"""
Points calculation service.
Handles the rewards ledger: point deltas, the level curve, rolling weekly and
monthly counters, and the session and goal completion awards.
"""
import logging
import math
from datetime import datetime, date
from typing import List, Optional
from sqlalchemy.orm import Session

from study_guardian.models import Goal, UserRewards, PointsLedgerEntry
from study_guardian.repositories.points_repository import UserRewardsRepository
from study_guardian.services.date_service import DateService
from study_guardian.exceptions import (
    RewardsProfileNotFoundException, ValidationException
)
from study_guardian.constants import (
    LEVEL_BASE_POINTS, LEVEL_GROWTH,
    SESSION_POINTS_PER_MINUTE, SESSION_BONUS_LONG_MINUTES, SESSION_BONUS_LONG,
    SESSION_BONUS_MEDIUM_MINUTES, SESSION_BONUS_MEDIUM,
    GOAL_POINTS_BASE, GOAL_POINTS_PER_TARGET, GOAL_PRIORITY_MULTIPLIER,
    POINTS_SOURCES, POINTS_SOURCE_SESSION, POINTS_SOURCE_GOAL,
    POINTS_SOURCE_BONUS, POINTS_SOURCE_PENALTY,
    NOTIFICATION_LEVEL_UP, RECENT_POINTS_LIMIT
)

logger = logging.getLogger("study_guardian.points")

# _CUMULATIVE[i] = total points needed to reach level i + 1
_CUMULATIVE = [0]


def level_step(level: int) -> int:
    """Points needed to go from `level` to `level + 1`"""
    return math.floor(LEVEL_BASE_POINTS * LEVEL_GROWTH ** (level - 1))


def cumulative_threshold(level: int) -> int:
    """Total points at which `level` is reached (level 1 starts at 0)"""
    while len(_CUMULATIVE) < level:
        _CUMULATIVE.append(_CUMULATIVE[-1] + level_step(len(_CUMULATIVE)))
    return _CUMULATIVE[level - 1]


def level_for(total_points: int) -> int:
    """
    Level reached with a given point total.

    Pure function of the total, read off the cumulative threshold table:
    100 points reach level 2, 220 level 3, 364 level 4 and so on.
    """
    level = 1
    while total_points >= cumulative_threshold(level + 1):
        level += 1
    return level


def level_progress(total_points: int, level: int) -> float:
    """Percentage of the way from `level` to the next one"""
    into_level = total_points - cumulative_threshold(level)
    return round(max(0, into_level) / level_step(level) * 100, 1)


class PointsService:
    """Service for points calculation and management"""

    def __init__(self, db: Session, notification_service=None):
        self.db = db
        self.repo = UserRewardsRepository(db)
        self.notification_service = notification_service
        self.date_service = DateService()

    def get_ledger(self, user_id: int) -> UserRewards:
        ledger = self.repo.get_by_user(user_id)
        if not ledger:
            raise RewardsProfileNotFoundException(user_id)
        return ledger

    def get_or_create_ledger(self, user_id: int, now: Optional[datetime] = None) -> UserRewards:
        """
        Get the user's ledger, creating it on first activity.

        The new ledger is added to the session but not committed.
        """
        ledger = self.repo.get_by_user(user_id)
        if ledger:
            return ledger

        today = (now or datetime.now()).date()
        ledger = UserRewards(
            user_id=user_id,
            total_points=0,
            current_level=1,
            points_to_next_level=level_step(1),
            weekly_points=0,
            monthly_points=0,
            last_weekly_reset=self.date_service.week_start(today),
            last_monthly_reset=self.date_service.month_start(today),
            sessions_completed=0,
            study_hours=0.0,
            goals_completed=0,
            current_streak=0,
            longest_streak=0,
            is_public=False
        )
        self.repo.add(ledger)
        self.repo.flush()
        logger.info(f"Created rewards ledger for user {user_id}")
        return ledger

    def roll_periods(self, ledger: UserRewards, day: date) -> bool:
        """
        Reset weekly and monthly counters when `day` is in a new window.

        Returns:
            True if any counter was reset
        """
        rolled = False
        week_start = self.date_service.week_start(day)
        if ledger.last_weekly_reset != week_start:
            ledger.weekly_points = 0
            ledger.last_weekly_reset = week_start
            rolled = True

        month_start = self.date_service.month_start(day)
        if ledger.last_monthly_reset != month_start:
            ledger.monthly_points = 0
            ledger.last_monthly_reset = month_start
            rolled = True
        return rolled

    def has_key(self, ledger: UserRewards, idempotency_key: str) -> bool:
        """True if a ledger entry with this key is pending or persisted"""
        if any(e.idempotency_key == idempotency_key for e in ledger.points_history):
            return True
        return self.repo.has_ledger_key(idempotency_key)

    def add_points(
        self,
        ledger: UserRewards,
        amount: int,
        reason: str,
        source: str,
        related_id: Optional[str] = None,
        idempotency_key: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> Optional[PointsLedgerEntry]:
        """
        Apply a signed point delta to the ledger.

        Positive amounts raise the total, weekly and monthly counters.
        Negative amounts (penalties) lower them, never below zero.

        Args:
            ledger: User's rewards ledger
            amount: Signed delta
            reason: Human readable reason
            source: One of POINTS_SOURCES
            related_id: Session, goal or reward the delta belongs to
            idempotency_key: Identity of the award; a second add with the
                same key is ignored
            now: Current time

        Returns:
            The history entry, or None if the key was already applied
        """
        if source not in POINTS_SOURCES:
            raise ValidationException("source", f"unknown points source '{source}'")

        now = now or datetime.now()
        if idempotency_key and self.has_key(ledger, idempotency_key):
            logger.debug(f"Skipping already applied points '{idempotency_key}'")
            return None

        self.roll_periods(ledger, now.date())

        ledger.total_points = max(0, (ledger.total_points or 0) + amount)
        ledger.weekly_points = max(0, (ledger.weekly_points or 0) + amount)
        ledger.monthly_points = max(0, (ledger.monthly_points or 0) + amount)

        entry = PointsLedgerEntry(
            amount=amount,
            reason=reason,
            source=source,
            related_id=str(related_id) if related_id is not None else None,
            idempotency_key=idempotency_key,
            created_at=now
        )
        ledger.points_history.append(entry)

        self.check_level_up(ledger)
        return entry

    def check_level_up(self, ledger: UserRewards) -> int:
        """
        Sync the stored level with the point total.

        The level never drops, even after a penalty.

        Returns:
            Number of levels gained
        """
        current = ledger.current_level or 1
        new_level = max(current, level_for(ledger.total_points or 0))
        gained = new_level - current

        ledger.current_level = new_level
        ledger.points_to_next_level = level_step(new_level)

        if gained > 0:
            logger.info(f"User {ledger.user_id} reached level {new_level}")
            if self.notification_service is not None:
                self.notification_service.queue(
                    ledger.user_id,
                    NOTIFICATION_LEVEL_UP,
                    "Level Up! ⭐",
                    f"You reached level {new_level}",
                    dedupe_key=f"level_up:{ledger.user_id}:{new_level}"
                )
        return gained

    @staticmethod
    def calculate_session_points(duration_seconds: int) -> int:
        """
        Points for a completed session.

        Two points per minute, plus 20 for sessions of an hour or more or 10
        for sessions of half an hour or more.
        """
        minutes = duration_seconds / 60
        points = math.floor(minutes * SESSION_POINTS_PER_MINUTE)
        if minutes >= SESSION_BONUS_LONG_MINUTES:
            points += SESSION_BONUS_LONG
        elif minutes >= SESSION_BONUS_MEDIUM_MINUTES:
            points += SESSION_BONUS_MEDIUM
        return points

    @staticmethod
    def calculate_goal_completion_points(goal: Goal) -> int:
        """Base 50, plus a per-type share of the target, scaled by priority"""
        points = GOAL_POINTS_BASE + GOAL_POINTS_PER_TARGET.get(goal.type, 0) * goal.target
        points *= GOAL_PRIORITY_MULTIPLIER.get(goal.priority, 1)
        return math.floor(points)

    def apply_session_stats(self, ledger: UserRewards, duration_seconds: int) -> None:
        ledger.sessions_completed = (ledger.sessions_completed or 0) + 1
        ledger.study_hours = round((ledger.study_hours or 0) + duration_seconds / 3600, 2)

    def award_session_points(
        self,
        ledger: UserRewards,
        session_id: str,
        duration_seconds: int,
        now: Optional[datetime] = None
    ) -> Optional[PointsLedgerEntry]:
        points = self.calculate_session_points(duration_seconds)
        return self.add_points(
            ledger,
            points,
            f"Completed a {duration_seconds // 60} minute study session",
            POINTS_SOURCE_SESSION,
            related_id=session_id,
            idempotency_key=f"session:{session_id}",
            now=now
        )

    def award_goal_completion(
        self,
        ledger: UserRewards,
        goal: Goal,
        now: Optional[datetime] = None
    ) -> Optional[PointsLedgerEntry]:
        """
        Award the goal completion points once per goal.

        Also counts the goal in the lifetime statistics.
        """
        entry = self.add_points(
            ledger,
            self.calculate_goal_completion_points(goal),
            f'Completed goal "{goal.title}"',
            POINTS_SOURCE_GOAL,
            related_id=goal.id,
            idempotency_key=f"goal:{goal.id}",
            now=now
        )
        if entry is not None:
            ledger.goals_completed = (ledger.goals_completed or 0) + 1
        return entry

    def award_bonus_points(
        self,
        user_id: int,
        amount: int,
        reason: str,
        now: Optional[datetime] = None
    ) -> UserRewards:
        """Grant bonus points to a user and commit"""
        if amount <= 0:
            raise ValidationException("amount", "bonus points must be greater than 0")
        ledger = self.get_or_create_ledger(user_id, now)
        self.add_points(ledger, amount, reason, POINTS_SOURCE_BONUS, now=now)
        self.repo.commit()
        return ledger

    def apply_penalty(
        self,
        user_id: int,
        amount: int,
        reason: str,
        now: Optional[datetime] = None
    ) -> UserRewards:
        """Deduct points from a user and commit. The total never goes below zero."""
        if amount <= 0:
            raise ValidationException("amount", "penalty must be greater than 0")
        ledger = self.get_ledger(user_id)
        self.add_points(ledger, -amount, reason, POINTS_SOURCE_PENALTY, now=now)
        self.repo.commit()
        return ledger

    def get_recent_history(
        self, ledger: UserRewards, limit: int = RECENT_POINTS_LIMIT
    ) -> List[PointsLedgerEntry]:
        return sorted(ledger.points_history, key=lambda e: e.id or 0, reverse=True)[:limit]
