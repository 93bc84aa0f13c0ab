"""
Progress summaries.
Read-only figures over a goal's history and a user's active goals.
"""
import calendar
import math
from datetime import datetime, timedelta
from typing import List, Optional
from sqlalchemy.orm import Session

from study_guardian.models import Goal, Milestone
from study_guardian.repositories.goal_repository import GoalRepository
from study_guardian.repositories.points_repository import StudyActivityRepository
from study_guardian.services.date_service import DateService
from study_guardian.constants import (
    GOAL_STATUS_ACTIVE, GOAL_STATUS_COMPLETED,
    PROGRESS_SOURCE_SESSION, PROGRESS_SOURCE_MANUAL,
    GOAL_TYPE_HOURS, GOAL_TYPE_STREAK,
    RECOMMENDATION_LOOKBACK_DAYS, RECOMMENDATION_SUBJECT_LIMIT,
    RECOMMENDATION_WEEKS_PER_LOOKBACK, RECOMMENDATION_GROWTH, RECOMMENDATION_STREAK_TARGET
)


class SummaryService:
    """Service for goal and user progress summaries"""

    def __init__(self, db: Session):
        self.db = db
        self.goal_repo = GoalRepository(db)
        self.activity_repo = StudyActivityRepository(db)

    @staticmethod
    def _sum_between(goal: Goal, start, end, source: Optional[str] = None) -> float:
        return round(sum(
            entry.value for entry in goal.progress_history
            if start <= entry.day <= end and (source is None or entry.source == source)
        ), 4)

    @staticmethod
    def upcoming_milestones(goal: Goal, limit: int = 3) -> List[Milestone]:
        pending = [m for m in goal.milestones if not m.completed]
        return sorted(pending, key=lambda m: m.target)[:limit]

    def get_goal_progress_summary(self, goal: Goal, days: int = 7, now: Optional[datetime] = None) -> dict:
        """
        Progress over the last `days` days, today included.

        Args:
            goal: Goal to summarize
            days: Length of the window
            now: Current time

        Returns:
            Dict with totals by source, average per day and milestone counts
        """
        today = (now or datetime.now()).date()
        start = today - timedelta(days=days - 1)
        total = self._sum_between(goal, start, today)

        return {
            "goal_id": goal.id,
            "period_days": days,
            "total_progress": total,
            "from_sessions": self._sum_between(goal, start, today, PROGRESS_SOURCE_SESSION),
            "manual": self._sum_between(goal, start, today, PROGRESS_SOURCE_MANUAL),
            "average_per_day": round(total / days, 2) if days else 0,
            "current_progress": goal.current_progress,
            "target": goal.target,
            "completion_rate": goal.completion_rate,
            "milestones_completed": goal.completed_milestones_count,
            "milestones_total": len(goal.milestones),
            "upcoming_milestones": [
                {"id": m.id, "title": m.title, "target": m.target, "due_date": m.due_date}
                for m in self.upcoming_milestones(goal)
            ],
        }

    def get_weekly_progress(self, goal: Goal, now: Optional[datetime] = None) -> dict:
        """Progress in the current ISO week against the weekly share of the target"""
        today = (now or datetime.now()).date()
        week_start = DateService.week_start(today)
        week_end = week_start + timedelta(days=6)
        actual = self._sum_between(goal, week_start, week_end)
        return self._window_figures(goal, week_start, week_end, goal.weekly_target, actual, today)

    def get_monthly_progress(self, goal: Goal, now: Optional[datetime] = None) -> dict:
        today = (now or datetime.now()).date()
        month_start = DateService.month_start(today)
        days_in_month = calendar.monthrange(today.year, today.month)[1]
        month_end = month_start + timedelta(days=days_in_month - 1)
        daily = goal.daily_target
        target = daily * days_in_month if daily is not None else None
        actual = self._sum_between(goal, month_start, month_end)
        return self._window_figures(goal, month_start, month_end, target, actual, today)

    @staticmethod
    def _window_figures(goal: Goal, start, end, target, actual, today) -> dict:
        elapsed_days = max(1, DateService.days_between(start, min(today, end)) + 1)
        percentage = None
        if target:
            percentage = min(100, round(actual / target * 100))
        return {
            "goal_id": goal.id,
            "start": start,
            "end": end,
            "target": round(target, 2) if target is not None else None,
            "actual": actual,
            "percentage": percentage,
            "average_per_day": round(actual / elapsed_days, 2),
        }

    def get_user_summary(self, user_id: int, now: Optional[datetime] = None) -> dict:
        """Real-time overview of a user's goals"""
        goals = self.goal_repo.get_for_user(user_id)
        active = [g for g in goals if g.status == GOAL_STATUS_ACTIVE]
        completed = [g for g in goals if g.status == GOAL_STATUS_COMPLETED]

        overall = 0.0
        if active:
            overall = round(sum(g.completion_rate or 0 for g in active) / len(active), 1)

        upcoming = []
        for goal in active:
            for milestone in self.upcoming_milestones(goal, limit=1):
                upcoming.append({
                    "goal_id": goal.id,
                    "goal_title": goal.title,
                    "milestone_id": milestone.id,
                    "title": milestone.title,
                    "remaining": round(milestone.target - (goal.current_progress or 0), 2),
                })
        upcoming.sort(key=lambda m: m["remaining"])

        return {
            "user_id": user_id,
            "active_goals": len(active),
            "completed_goals": len(completed),
            "overall_completion": overall,
            "upcoming_milestones": upcoming[:5],
            "goals_needing_catch_up": [
                {"goal_id": g.id, "title": g.title, "completion_rate": g.completion_rate}
                for g in active if g.is_overdue
            ],
        }

    def recommend_goals(self, user_id: int, now: Optional[datetime] = None) -> List[dict]:
        """
        Goal ideas from the last 30 days of sessions.

        For each of the three most studied subjects: an hours goal 20% above
        the current weekly pace, and a 30-day streak goal. Sessions without a
        subject are not counted.
        """
        now = now or datetime.now()
        since = now.date() - timedelta(days=RECOMMENDATION_LOOKBACK_DAYS)
        rows = self.activity_repo.subject_totals(user_id, since, RECOMMENDATION_SUBJECT_LIMIT)

        recommendations = []
        for subject, sessions, seconds in rows:
            hours_per_week = (seconds or 0) / 3600 / RECOMMENDATION_WEEKS_PER_LOOKBACK
            recommendations.append({
                "type": GOAL_TYPE_HOURS,
                "title": f"Study {subject} for {math.ceil(hours_per_week)} hours weekly",
                "description": f"Based on your recent activity ({sessions} sessions in 30 days)",
                "suggested_target": math.ceil(hours_per_week * RECOMMENDATION_GROWTH),
                "suggested_period": "weekly",
                "linked_subjects": [subject],
                "category": "academic",
                "priority": "medium",
            })
            recommendations.append({
                "type": GOAL_TYPE_STREAK,
                "title": f"Maintain daily study streak for {subject}",
                "description": "Build consistency with daily study sessions",
                "suggested_target": RECOMMENDATION_STREAK_TARGET,
                "suggested_period": "monthly",
                "linked_subjects": [subject],
                "category": "academic",
                "priority": "high",
            })
        return recommendations
