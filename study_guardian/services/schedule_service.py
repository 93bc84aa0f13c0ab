"""
Schedule monitor.
Compares elapsed time against progress and generates catch-up suggestions
for goals that fall behind.
"""
import logging
import math
from datetime import datetime, timedelta
from typing import List, Optional

from study_guardian.models import Goal, CatchUpSuggestion
from study_guardian.services.date_service import DateService
from study_guardian.constants import (
    SCHEDULE_SLACK, OBSERVED_RATE_WINDOW_DAYS, HARD_GAP_RATIO,
    DEADLINE_EXTENSION_RATIO, FOCUSED_SESSION_MINUTES,
    GOAL_TYPE_TASKS, GOAL_TYPE_HOURS,
    SUGGESTION_INCREASE_DAILY, SUGGESTION_EXTEND_DEADLINE,
    SUGGESTION_BREAK_DOWN, SUGGESTION_SCHEDULE_SESSIONS
)

logger = logging.getLogger("study_guardian.schedule")


class ScheduleService:
    """Service for deadline tracking on a single goal. Mutates in memory, never commits."""

    def __init__(self, notification_service=None):
        self.notification_service = notification_service

    @staticmethod
    def time_fraction(goal: Goal, now: datetime) -> Optional[float]:
        """Share of the start..due window already elapsed, None without a window"""
        if not goal.due_date or not goal.start_date:
            return None
        total = (goal.due_date - goal.start_date).total_seconds()
        if total <= 0:
            return None
        elapsed = (now - goal.start_date).total_seconds()
        return max(0.0, elapsed / total)

    @staticmethod
    def progress_fraction(goal: Goal) -> float:
        if not goal.target:
            return 0.0
        return (goal.current_progress or 0) / goal.target

    def check_schedule(
        self, goal: Goal, now: Optional[datetime] = None
    ) -> Optional[List[CatchUpSuggestion]]:
        """
        Run a schedule check on a goal.

        When time runs ahead of progress by more than the slack the goal is
        flagged overdue and its suggestions are regenerated from scratch;
        otherwise the flag and the suggestions are cleared.

        Returns:
            The current suggestion list, or None when the goal has no due date
        """
        now = now or datetime.now()
        time_fraction = self.time_fraction(goal, now)
        if time_fraction is None:
            return None

        goal.last_schedule_check = now
        progress_fraction = self.progress_fraction(goal)

        if time_fraction > progress_fraction + SCHEDULE_SLACK:
            goal.is_overdue = True
            suggestions = self.generate_suggestions(goal, now)
            goal.catch_up_suggestions = suggestions
            logger.info(
                f"Goal {goal.id} behind schedule: time {time_fraction:.3f}, "
                f"progress {progress_fraction:.3f}, {len(suggestions)} suggestions"
            )
            if self.notification_service is not None:
                self.notification_service.emit_behind_schedule(goal, now)
        else:
            goal.is_overdue = False
            goal.catch_up_suggestions = []

        return goal.catch_up_suggestions

    def observed_daily_rate(self, goal: Goal, now: datetime) -> float:
        """Average daily progress over the trailing window, today included"""
        since = now.date() - timedelta(days=OBSERVED_RATE_WINDOW_DAYS - 1)
        total = sum(e.value for e in goal.progress_history if e.day >= since)
        return total / OBSERVED_RATE_WINDOW_DAYS

    def generate_suggestions(self, goal: Goal, now: datetime) -> List[CatchUpSuggestion]:
        """
        Build the catch-up suggestions for a goal, in priority order.

        Returns an empty list when the deadline has already passed.
        """
        days_left = DateService.days_left(goal.due_date, now)
        if days_left <= 0:
            return []

        remaining = max(0.0, goal.target - (goal.current_progress or 0))
        required = remaining / days_left
        observed = self.observed_daily_rate(goal, now)
        unit = goal.progress_unit

        suggestions = []

        if required > observed:
            hard = observed == 0 or required > observed * HARD_GAP_RATIO
            suggestions.append(CatchUpSuggestion(
                type=SUGGESTION_INCREASE_DAILY,
                suggestion=f"Increase daily effort to {required:.1f} {unit} per day",
                impact=f"Finishes {remaining:g} {unit} in the {days_left} days left",
                difficulty="hard" if hard else "medium",
                required_daily_rate=round(required, 2)
            ))

        window_days = max(1, (goal.due_date - goal.start_date).days)
        extension = math.ceil(window_days * DEADLINE_EXTENSION_RATIO)
        extended_rate = remaining / (days_left + extension)
        suggestions.append(CatchUpSuggestion(
            type=SUGGESTION_EXTEND_DEADLINE,
            suggestion=f"Extend the deadline by {extension} days",
            impact=f"Lowers the required pace to {extended_rate:.1f} {unit} per day",
            difficulty="easy",
            required_daily_rate=round(extended_rate, 2)
        ))

        if goal.type == GOAL_TYPE_TASKS:
            remaining_units = math.ceil(remaining)
            if remaining_units > len(goal.sub_tasks):
                suggestions.append(CatchUpSuggestion(
                    type=SUGGESTION_BREAK_DOWN,
                    suggestion="Break the remaining work into smaller sub-tasks",
                    impact=f"{remaining_units} units left across {len(goal.sub_tasks)} sub-tasks",
                    difficulty="easy",
                    required_daily_rate=round(required, 2)
                ))

        if goal.type == GOAL_TYPE_HOURS:
            sessions = math.ceil(remaining * 60 / FOCUSED_SESSION_MINUTES)
            suggestions.append(CatchUpSuggestion(
                type=SUGGESTION_SCHEDULE_SESSIONS,
                suggestion=f"Schedule {sessions} focused sessions of {FOCUSED_SESSION_MINUTES} minutes",
                impact=f"Covers the remaining {remaining:g} hours",
                difficulty="medium",
                required_daily_rate=round(required, 2)
            ))

        for position, suggestion in enumerate(suggestions):
            suggestion.position = position
        return suggestions
