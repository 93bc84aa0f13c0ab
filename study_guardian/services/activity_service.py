"""
Activity orchestrator.
Single entry point for a completed study session: fans the event out to the
goal branch and the rewards branch, then dispatches the resulting
notifications as one batch.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional
from sqlalchemy.orm import Session

from study_guardian.models import Goal
from study_guardian.repositories.goal_repository import GoalRepository
from study_guardian.repositories.base_repository import run_with_retry
from study_guardian.services.progress_service import ProgressService
from study_guardian.services.schedule_service import ScheduleService
from study_guardian.services.notification_service import (
    NotificationService, NotificationDelivery
)
from study_guardian.services.rewards_service import RewardsService
from study_guardian.services.date_service import DateService
from study_guardian.exceptions import ValidationException
from study_guardian.constants import (
    GOAL_STATUS_ACTIVE, GOAL_TYPE_HOURS, GOAL_TYPE_SESSIONS, GOAL_TYPE_STREAK,
    PROGRESS_SOURCE_SESSION
)

logger = logging.getLogger("study_guardian.activity")


@dataclass
class SessionCompleted:
    user_id: int
    session_id: str
    duration_seconds: int
    subject: Optional[str] = None
    ended_at: Optional[datetime] = None

    def __post_init__(self):
        self.ended_at = DateService.to_local_naive(self.ended_at)


@dataclass
class ActivityResult:
    """What one session event changed"""
    session_id: str
    goals_updated: List[int] = field(default_factory=list)
    goals_completed: List[int] = field(default_factory=list)
    milestones_completed: int = 0
    points_awarded: int = 0
    rewards_earned: List[str] = field(default_factory=list)
    notifications_dispatched: int = 0
    failed_branches: List[str] = field(default_factory=list)


class ActivityService:
    """Service orchestrating session-completed events"""

    def __init__(self, db: Session, delivery: Optional[NotificationDelivery] = None):
        self.db = db
        self.delivery = delivery
        self.goal_repo = GoalRepository(db)
        self.notification_service = NotificationService(db)
        self.progress_service = ProgressService()
        self.schedule_service = ScheduleService(self.notification_service)
        self.rewards_service = RewardsService(db, self.notification_service)

    @staticmethod
    def contribution_for(goal: Goal, duration_seconds: int) -> Optional[float]:
        """
        Progress a session contributes to a goal, in the goal's unit.

        Returns None for goal types that sessions do not feed.
        """
        if goal.type == GOAL_TYPE_HOURS:
            return round(duration_seconds / 3600, 2)
        if goal.type in (GOAL_TYPE_SESSIONS, GOAL_TYPE_STREAK):
            return 1
        return None

    @staticmethod
    def matches_subject(goal: Goal, subject: Optional[str]) -> bool:
        return not goal.linked_subjects or subject in goal.linked_subjects

    def handle_session_completed(
        self,
        event: SessionCompleted,
        now: Optional[datetime] = None
    ) -> ActivityResult:
        """
        Apply a completed session to every matching goal and to the rewards ledger.

        The two branches are independent: a failure in one is logged and
        reported in the result without undoing the other. Each is retried
        once after a concurrency conflict. Re-delivering the same session is
        a no-op in both branches.

        Raises:
            ValidationException: negative duration or missing session id
        """
        if not event.session_id:
            raise ValidationException("session_id", "session id is required")
        if event.duration_seconds is None or event.duration_seconds < 0:
            raise ValidationException("duration_seconds", "duration must not be negative")

        now = now or datetime.now()
        session_id = str(event.session_id)
        result = ActivityResult(session_id=session_id)
        logger.info(
            f"Session {session_id} completed by user {event.user_id}: "
            f"{event.duration_seconds}s, subject {event.subject}"
        )

        self._goal_branch(event, session_id, now, result)
        self._rewards_branch(event, session_id, now, result)

        try:
            batch = self.notification_service.dispatch_pending_for_user(
                event.user_id, self.delivery, now
            )
            result.notifications_dispatched = sum(1 for n in batch if n.sent)
        except Exception as e:
            self.db.rollback()
            logger.error(f"Dispatch after session {session_id} failed: {e}")
            result.failed_branches.append("notifications")

        return result

    def _goal_branch(self, event: SessionCompleted, session_id: str, now: datetime,
                     result: ActivityResult) -> None:
        try:
            goal_ids = [g.id for g in self.goal_repo.get_active_auto_progress(event.user_id)]
        except Exception as e:
            self.db.rollback()
            logger.error(f"Loading goals for session {session_id} failed: {e}")
            result.failed_branches.append("goals")
            return

        for goal_id in goal_ids:
            try:
                run_with_retry(
                    self.db,
                    lambda: self._apply_to_goal(goal_id, event, session_id, now, result),
                    f"goal {goal_id} progress for session {session_id}"
                )
            except Exception as e:
                self.db.rollback()
                logger.error(f"Goal {goal_id} progress for session {session_id} failed: {e}")
                result.failed_branches.append(f"goal:{goal_id}")

    def _apply_to_goal(self, goal_id: int, event: SessionCompleted, session_id: str,
                       now: datetime, result: ActivityResult) -> None:
        """One goal, one transaction"""
        goal = self.goal_repo.get_by_id(goal_id)
        if goal is None or goal.status != GOAL_STATUS_ACTIVE:
            return
        if not self.matches_subject(goal, event.subject):
            return

        amount = self.contribution_for(goal, event.duration_seconds)
        if not amount:
            return
        if self.goal_repo.has_session_contribution(goal.id, session_id):
            logger.info(f"Session {session_id} already applied to goal {goal.id}")
            return

        progress = self.progress_service.apply_progress(
            goal, amount, PROGRESS_SOURCE_SESSION,
            session_id=session_id,
            notes=f"Study session: {event.subject}" if event.subject else "Study session",
            now=now
        )
        self.notification_service.emit_milestone_notifications(goal)
        if progress.goal_completed:
            self.notification_service.emit_goal_completed(goal)
        self.schedule_service.check_schedule(goal, now)
        self.goal_repo.commit()

        result.goals_updated.append(goal_id)
        result.milestones_completed += len(progress.new_milestones)
        if progress.goal_completed:
            result.goals_completed.append(goal_id)
            logger.info(f"Goal {goal_id} completed by session {session_id}")

    def _rewards_branch(self, event: SessionCompleted, session_id: str, now: datetime,
                        result: ActivityResult) -> None:
        try:
            summary = run_with_retry(
                self.db,
                lambda: self.rewards_service.record_session(
                    event.user_id, session_id, event.duration_seconds,
                    subject=event.subject, ended_at=event.ended_at, now=now
                ),
                f"rewards for session {session_id}"
            )
        except Exception as e:
            self.db.rollback()
            logger.error(f"Rewards for session {session_id} failed: {e}")
            result.failed_branches.append("rewards")
            return

        if summary is None:
            return
        result.points_awarded = summary["session_points"]
        result.rewards_earned = summary["rewards_earned"]
