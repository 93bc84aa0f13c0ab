"""
Periodic sweeps.
Daily streak maintenance, schedule alerts and weekly summaries. Every step is
keyed so that re-running an interrupted sweep applies nothing twice.
"""
import logging
from datetime import datetime, timedelta
from typing import Optional
from sqlalchemy.orm import Session

from study_guardian.models import Goal, UserRewards
from study_guardian.repositories.goal_repository import GoalRepository
from study_guardian.repositories.points_repository import UserRewardsRepository
from study_guardian.repositories.base_repository import run_with_retry
from study_guardian.services.date_service import DateService
from study_guardian.services.progress_service import ProgressService
from study_guardian.services.schedule_service import ScheduleService
from study_guardian.services.points_service import PointsService
from study_guardian.services.streak_service import StreakService
from study_guardian.services.summary_service import SummaryService
from study_guardian.services.notification_service import (
    NotificationService, NotificationDelivery
)
from study_guardian.constants import (
    GOAL_STATUS_ACTIVE, GOAL_STATUS_PAUSED, GOAL_TYPE_STREAK,
    NOTIFICATION_WEEKLY_SUMMARY, TIMEFRAME_WEEKLY
)

logger = logging.getLogger("study_guardian.sweeps")


class SweepService:
    """Service running the scheduled sweeps over all users and goals"""

    def __init__(self, db: Session, delivery: Optional[NotificationDelivery] = None):
        self.db = db
        self.delivery = delivery
        self.goal_repo = GoalRepository(db)
        self.ledger_repo = UserRewardsRepository(db)
        self.notification_service = NotificationService(db)
        self.progress_service = ProgressService()
        self.schedule_service = ScheduleService(self.notification_service)
        self.points_service = PointsService(db, self.notification_service)
        self.streak_service = StreakService(self.notification_service)
        self.summary_service = SummaryService(db)

    def _run_step(self, operation, description: str) -> bool:
        """Run one keyed step in its own transaction; log and move on if it fails"""
        try:
            return bool(run_with_retry(self.db, operation, description))
        except Exception as e:
            self.db.rollback()
            logger.error(f"Sweep step {description} failed: {e}")
            return False

    def _dispatch_all(self, now: datetime) -> int:
        """Hand every unsent notification to delivery, one batch per user"""
        dispatched = 0
        user_ids = sorted({n.user_id for n in self.notification_service.repo.get_unsent()})
        for user_id in user_ids:
            try:
                batch = self.notification_service.dispatch_pending_for_user(user_id, self.delivery, now)
            except Exception as e:
                self.db.rollback()
                logger.error(f"Dispatch for user {user_id} failed: {e}")
                continue
            dispatched += sum(1 for n in batch if n.sent)
        return dispatched

    # Daily streak sweep

    def daily_streak_sweep(self, now: Optional[datetime] = None) -> dict:
        """
        Roll weekly/monthly windows, break stale streaks and reset lapsed streak goals.

        Returns:
            Counts of ledgers touched, streaks broken and goals reset
        """
        now = now or datetime.now()
        today = now.date()
        logger.info(f"Daily streak sweep for {today}")

        rolled = broken = 0
        ledger_ids = [ledger.id for ledger in self.ledger_repo.get_all()]
        for ledger_id in ledger_ids:
            outcome = {}
            self._run_step(
                lambda: self._sweep_ledger(ledger_id, today, outcome),
                f"streak check of ledger {ledger_id}"
            )
            rolled += outcome.get("rolled", 0)
            broken += outcome.get("broken", 0)

        reset = 0
        goal_ids = [goal.id for goal in self.goal_repo.get_active_streak_goals()]
        for goal_id in goal_ids:
            if self._run_step(
                lambda: self._sweep_streak_goal(goal_id, today),
                f"streak goal {goal_id}"
            ):
                reset += 1

        summary = {"ledgers_rolled": rolled, "streaks_broken": broken, "goals_reset": reset}
        logger.info(f"Daily streak sweep done: {summary}")
        return summary

    def _sweep_ledger(self, ledger_id: int, today, outcome: dict) -> None:
        ledger = self.db.get(UserRewards, ledger_id)
        if ledger is None:
            return
        rolled = self.points_service.roll_periods(ledger, today)
        broken = self.streak_service.break_stale_streak(ledger, today)
        if rolled or broken:
            self.ledger_repo.commit()
        outcome["rolled"] = int(rolled)
        outcome["broken"] = int(broken)

    @staticmethod
    def last_progress_day(goal: Goal):
        days = [entry.day for entry in goal.progress_history]
        return max(days) if days else None

    def _sweep_streak_goal(self, goal_id: int, today) -> bool:
        """
        Reset a streak goal whose last progress is older than yesterday.

        The goal drops to zero and is paused; history and completed milestones stay.
        """
        goal = self.goal_repo.get_by_id(goal_id)
        if goal is None or goal.status != GOAL_STATUS_ACTIVE or goal.type != GOAL_TYPE_STREAK:
            return False
        if not goal.current_progress:
            return False

        last_day = self.last_progress_day(goal)
        if last_day is not None and last_day >= today - timedelta(days=1):
            return False

        logger.info(f"Streak goal {goal.id} lapsed (last progress {last_day}), resetting")
        self.progress_service.reset_progress(goal, GOAL_STATUS_PAUSED)
        self.goal_repo.commit()
        return True

    # Schedule alert sweep

    def schedule_alert_sweep(self, now: Optional[datetime] = None) -> dict:
        """
        Schedule check for every active goal with a due date.

        Behind-schedule alerts are keyed per goal per day.
        """
        now = now or datetime.now()
        checked = overdue = 0

        goal_ids = [goal.id for goal in self.goal_repo.get_active_with_due_date()]
        for goal_id in goal_ids:
            if self._run_step(
                lambda: self._check_goal(goal_id, now),
                f"schedule check of goal {goal_id}"
            ):
                overdue += 1
            checked += 1

        dispatched = self._dispatch_all(now)
        summary = {"goals_checked": checked, "goals_overdue": overdue, "notifications_dispatched": dispatched}
        logger.info(f"Schedule alert sweep done: {summary}")
        return summary

    def _check_goal(self, goal_id: int, now: datetime) -> bool:
        goal = self.goal_repo.get_by_id(goal_id)
        if goal is None or goal.status != GOAL_STATUS_ACTIVE:
            return False
        self.schedule_service.check_schedule(goal, now)
        self.goal_repo.commit()
        return bool(goal.is_overdue)

    # Weekly summary sweep

    def weekly_summary_sweep(self, now: Optional[datetime] = None) -> dict:
        """
        Queue one weekly summary per active goal per ISO week and dispatch.
        """
        now = now or datetime.now()
        week_key = DateService.window_key(TIMEFRAME_WEEKLY, now.date())
        queued = 0

        for user_id in self.goal_repo.get_user_ids_with_active_goals():
            goal_ids = [g.id for g in self.goal_repo.get_for_user(user_id, GOAL_STATUS_ACTIVE)]
            for goal_id in goal_ids:
                if self._run_step(
                    lambda: self._queue_weekly_summary(goal_id, week_key, now),
                    f"weekly summary of goal {goal_id}"
                ):
                    queued += 1

        dispatched = self._dispatch_all(now)
        summary = {"summaries_queued": queued, "notifications_dispatched": dispatched}
        logger.info(f"Weekly summary sweep for {week_key} done: {summary}")
        return summary

    def _queue_weekly_summary(self, goal_id: int, week_key: str, now: datetime) -> bool:
        goal = self.goal_repo.get_by_id(goal_id)
        if goal is None:
            return False

        # Summarize the week that just ended
        weekly = self.summary_service.get_goal_progress_summary(goal, days=7, now=now - timedelta(days=1))
        message = (
            f'"{goal.title}": {weekly["total_progress"]:g} {goal.progress_unit} this week, '
            f'{goal.completion_rate:g}% complete overall'
        )
        if goal.is_overdue:
            message += ". You are behind schedule, check your catch-up suggestions"

        notification = self.notification_service.queue(
            goal.user_id,
            NOTIFICATION_WEEKLY_SUMMARY,
            "Your Weekly Progress 📊",
            message,
            goal=goal,
            dedupe_key=f"weekly_summary:{goal.id}:{week_key}"
        )
        if notification is None:
            return False
        self.goal_repo.commit()
        return True
