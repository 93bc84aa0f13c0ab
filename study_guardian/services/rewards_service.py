"""
Rewards branch of activity processing.
Records a completed session on the user's ledger exactly once: stats, points,
streak and catalog matching, plus goal completion awards.
"""
import logging
from datetime import datetime
from typing import List, Optional
from sqlalchemy.orm import Session

from study_guardian.models import StudyActivity, UserRewards, Reward
from study_guardian.repositories.points_repository import (
    StudyActivityRepository, UserRewardsRepository
)
from study_guardian.repositories.goal_repository import GoalRepository
from study_guardian.services.notification_service import NotificationService
from study_guardian.services.points_service import PointsService
from study_guardian.services.streak_service import StreakService
from study_guardian.services.reward_catalog_service import RewardCatalogService
from study_guardian.constants import (
    CRITERIA_GOALS_COMPLETED, SUGGESTION_STREAK_START, SUGGESTION_STREAK_MAINTAIN,
    SUGGESTION_STREAK_WARNING, SUGGESTION_SESSION_LENGTH, SUGGESTION_PRIORITY_ORDER,
    FIRST_STREAK_BADGE_DAYS, SHORT_SESSION_MINUTES
)

logger = logging.getLogger("study_guardian.rewards")


class RewardsService:
    """Service composing the points ledger, streak tracker and catalog matcher"""

    def __init__(self, db: Session, notification_service: Optional[NotificationService] = None):
        self.db = db
        self.notification_service = notification_service or NotificationService(db)
        self.points_service = PointsService(db, self.notification_service)
        self.streak_service = StreakService(self.notification_service)
        self.catalog_service = RewardCatalogService(
            db, self.points_service, self.notification_service
        )
        self.activity_repo = StudyActivityRepository(db)
        self.goal_repo = GoalRepository(db)

    def record_session(
        self,
        user_id: int,
        session_id: str,
        duration_seconds: int,
        subject: Optional[str] = None,
        ended_at: Optional[datetime] = None,
        now: Optional[datetime] = None
    ) -> Optional[dict]:
        """
        Apply a completed session to the user's ledger and commit.

        A session id already recorded is skipped entirely.

        Returns:
            Summary of points and rewards, or None for an already recorded session
        """
        now = now or datetime.now()
        session_id = str(session_id)

        if self.activity_repo.get_by_session(session_id):
            logger.info(f"Session {session_id} already recorded, skipping rewards")
            return None

        day = (ended_at or now).date()
        ledger = self.points_service.get_or_create_ledger(user_id, now)
        level_before = ledger.current_level

        self.activity_repo.add(StudyActivity(
            user_id=user_id,
            session_id=session_id,
            subject=subject,
            duration_seconds=duration_seconds,
            day=day,
            ended_at=ended_at
        ))
        self.points_service.apply_session_stats(ledger, duration_seconds)
        entry = self.points_service.award_session_points(ledger, session_id, duration_seconds, now)
        self.streak_service.record_activity(ledger, day)
        goal_awards = self._award_completed_goals(ledger, now)
        earned = self.catalog_service.check_all_criteria(ledger, now)

        self.activity_repo.commit()

        return {
            "session_points": entry.amount if entry else 0,
            "goal_awards": goal_awards,
            "rewards_earned": [reward.name for reward in earned],
            "levels_gained": ledger.current_level - level_before,
            "current_streak": ledger.current_streak,
        }

    def reconcile_goal_awards(self, user_id: int, now: Optional[datetime] = None) -> int:
        """
        Award every completed goal of the user that has no completion award yet, and commit.

        Returns:
            Number of goals awarded
        """
        now = now or datetime.now()
        ledger = self.points_service.get_or_create_ledger(user_id, now)
        awarded = self._award_completed_goals(ledger, now)
        if awarded:
            self.catalog_service.check_eligible_rewards(ledger, CRITERIA_GOALS_COMPLETED, now=now)
        self.activity_repo.commit()
        return awarded

    def _award_completed_goals(self, ledger: UserRewards, now: datetime) -> int:
        awarded = 0
        for goal in self.goal_repo.get_completed_for_user(ledger.user_id):
            if self.points_service.award_goal_completion(ledger, goal, now) is not None:
                logger.info(f"Awarded completion of goal {goal.id} to user {ledger.user_id}")
                awarded += 1
        return awarded

    def check_rewards(self, user_id: int, now: Optional[datetime] = None) -> List[Reward]:
        """Re-run the catalog matcher for every criteria type and commit"""
        ledger = self.points_service.get_ledger(user_id)
        earned = self.catalog_service.check_all_criteria(ledger, now)
        self.activity_repo.commit()
        return earned

    def get_study_suggestions(self, user_id: int, now: Optional[datetime] = None) -> List[dict]:
        """
        Tips from the user's streak and session habits, most urgent first.

        A streak the daily sweep has not broken yet but that already lapsed
        counts as no streak. A user without a ledger gets the streak-start tip.
        """
        today = (now or datetime.now()).date()
        ledger = UserRewardsRepository(self.db).get_by_user(user_id)
        streak = 0
        if ledger is not None and StreakService.is_active(ledger, today):
            streak = ledger.current_streak

        suggestions = []
        if streak == 0:
            suggestions.append({
                "type": SUGGESTION_STREAK_START,
                "priority": "high",
                "title": "Start Your Streak!",
                "message": "Begin your study journey today. Even 15 minutes makes a difference!",
                "action": "start_session",
            })
        elif streak < FIRST_STREAK_BADGE_DAYS:
            days_to_go = FIRST_STREAK_BADGE_DAYS - streak
            suggestions.append({
                "type": SUGGESTION_STREAK_MAINTAIN,
                "priority": "medium",
                "title": f"{days_to_go} Days to {FIRST_STREAK_BADGE_DAYS}-Day Badge!",
                "message": f"Keep going! You're {days_to_go} days away from your first streak badge.",
                "action": "start_session",
            })

        if streak > 0 and ledger.last_activity_day < today:
            suggestions.append({
                "type": SUGGESTION_STREAK_WARNING,
                "priority": "critical",
                "title": "Don't Break Your Streak!",
                "message": f"Study today to maintain your {streak}-day streak!",
                "action": "start_session",
            })

        if ledger is not None and ledger.sessions_completed:
            average_minutes = (ledger.study_hours or 0) * 60 / ledger.sessions_completed
            if 0 < average_minutes < SHORT_SESSION_MINUTES:
                suggestions.append({
                    "type": SUGGESTION_SESSION_LENGTH,
                    "priority": "low",
                    "title": "Try Longer Sessions",
                    "message": "Your average session is short. Try 25-minute focused sessions!",
                    "action": "settings",
                })

        suggestions.sort(key=lambda s: SUGGESTION_PRIORITY_ORDER[s["priority"]])
        return suggestions
