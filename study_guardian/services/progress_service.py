"""
Progress ledger.
Owns a goal's numeric progress, its dated history and its completion state.
"""
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from study_guardian.models import Goal, GoalProgressEntry, Milestone
from study_guardian.exceptions import ValidationException
from study_guardian.services.milestone_service import MilestoneService
from study_guardian.constants import (
    GOAL_TYPE_TASKS, GOAL_STATUS_COMPLETED, GOAL_STATUS_CANCELLED,
    PROGRESS_SOURCES
)


@dataclass
class ProgressResult:
    """Outcome of one progress application"""
    entry: GoalProgressEntry
    amount: float
    new_milestones: List[Milestone] = field(default_factory=list)
    goal_completed: bool = False


class ProgressService:
    """Service for applying progress to a goal. Mutates in memory, never commits."""

    def __init__(self, milestone_service: Optional[MilestoneService] = None):
        self.milestone_service = milestone_service or MilestoneService()

    def apply_progress(
        self,
        goal: Goal,
        amount: float,
        source: str,
        session_id: Optional[str] = None,
        notes: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> ProgressResult:
        """
        Add a contribution to the goal.

        A contribution for the same (day, source, session) is merged into the
        existing history entry instead of creating a second one. Progress is
        capped at the target.

        Args:
            goal: Goal to update
            amount: Positive contribution in the goal's unit
            source: session, manual or system
            session_id: Originating session, if any
            notes: Free text stored on the entry
            now: Current time

        Returns:
            ProgressResult with the entry, newly completed milestones and
            whether this call completed the goal

        Raises:
            ValidationException: non-positive amount, unknown source or a
                cancelled goal
        """
        if amount is None or amount <= 0:
            raise ValidationException("amount", "progress amount must be greater than 0")
        if source not in PROGRESS_SOURCES:
            raise ValidationException("source", f"unknown progress source '{source}'")
        if goal.status == GOAL_STATUS_CANCELLED:
            raise ValidationException("status", "cannot add progress to a cancelled goal")

        now = now or datetime.now()
        today = now.date()
        session_key = str(session_id) if session_id is not None else ""

        entry = self._find_entry(goal, today, source, session_key)
        if entry is not None:
            entry.value = round(entry.value + amount, 4)
            if notes is not None:
                entry.notes = notes
        else:
            entry = GoalProgressEntry(
                day=today,
                value=amount,
                source=source,
                session_key=session_key,
                notes=notes
            )
            goal.progress_history.append(entry)

        goal.current_progress = min(
            round((goal.current_progress or 0) + amount, 4), goal.target
        )

        new_milestones = self.milestone_service.evaluate(goal, now)
        goal_completed = self.update_completion_rate(goal, now)

        return ProgressResult(
            entry=entry,
            amount=amount,
            new_milestones=new_milestones,
            goal_completed=goal_completed
        )

    def reset_progress(self, goal: Goal, status: Optional[str] = None) -> None:
        """
        Explicit reset to zero. History and completed milestones are kept.
        """
        goal.current_progress = 0
        goal.completion_rate = 0
        if status:
            goal.status = status

    def update_completion_rate(self, goal: Goal, now: Optional[datetime] = None) -> bool:
        """
        Recompute completion rate and complete the goal on reaching 100.

        Returns:
            True if this call transitioned the goal to completed
        """
        goal.completion_rate = self.calculate_completion_rate(goal)

        if goal.completion_rate >= 100 and goal.status != GOAL_STATUS_COMPLETED:
            goal.status = GOAL_STATUS_COMPLETED
            goal.completed_at = now or datetime.now()
            goal.current_progress = goal.target
            return True
        return False

    @staticmethod
    def calculate_completion_rate(goal: Goal) -> float:
        """
        Completion percentage, floored so 100 is only reached at the target.

        Task-type goals with sub-tasks count completed sub-tasks instead of
        numeric progress.
        """
        if goal.type == GOAL_TYPE_TASKS and goal.sub_tasks:
            done = sum(1 for t in goal.sub_tasks if t.completed)
            return float(math.floor(done / len(goal.sub_tasks) * 100))

        if not goal.target:
            return 0.0
        return float(min(100, math.floor((goal.current_progress or 0) / goal.target * 100)))

    @staticmethod
    def _find_entry(
        goal: Goal, day, source: str, session_key: str
    ) -> Optional[GoalProgressEntry]:
        for entry in goal.progress_history:
            if entry.day == day and entry.source == source and entry.session_key == session_key:
                return entry
        return None
