"""
Milestone evaluator.
Derives milestone completion from goal progress and handles the direct,
user-driven milestone and sub-task mutations.
"""
from datetime import datetime
from typing import List, Optional

from study_guardian.models import Goal, Milestone, SubTask
from study_guardian.exceptions import (
    MilestoneNotFoundException, SubTaskNotFoundException, ValidationException
)
from study_guardian.constants import TERMINAL_GOAL_STATUSES


class MilestoneService:
    """Service for milestones and sub-tasks. Mutates in memory, never commits."""

    def evaluate(self, goal: Goal, now: Optional[datetime] = None) -> List[Milestone]:
        """
        Mark every reached milestone as completed.

        Completion is terminal: a later progress reduction never unmarks it.

        Returns:
            Milestones completed by this call
        """
        now = now or datetime.now()
        progress = goal.current_progress or 0
        newly_completed = []

        for milestone in goal.milestones:
            if not milestone.completed and progress >= milestone.target:
                self._complete(milestone, now)
                newly_completed.append(milestone)

        return newly_completed

    def toggle_milestone(
        self,
        goal: Goal,
        milestone_id: int,
        now: Optional[datetime] = None
    ) -> tuple[Milestone, bool]:
        """
        Manually complete a milestone.

        Toggling an already completed milestone is a no-op because milestone
        completion never reverts.

        Returns:
            Tuple of (milestone, changed)
        """
        milestone = self._find_milestone(goal, milestone_id)
        if milestone.completed:
            return milestone, False

        self._complete(milestone, now or datetime.now())
        return milestone, True

    def toggle_sub_task(
        self,
        goal: Goal,
        subtask_id: int,
        now: Optional[datetime] = None
    ) -> SubTask:
        """Flip a sub-task between done and not done"""
        if goal.status in TERMINAL_GOAL_STATUSES:
            raise ValidationException("status", f"sub-tasks of a {goal.status} goal cannot change")

        sub_task = next((t for t in goal.sub_tasks if t.id == subtask_id), None)
        if sub_task is None:
            raise SubTaskNotFoundException(goal.id, subtask_id)

        if sub_task.completed:
            sub_task.completed = False
            sub_task.completed_at = None
        else:
            sub_task.completed = True
            sub_task.completed_at = now or datetime.now()
        return sub_task

    def add_milestone(
        self,
        goal: Goal,
        title: str,
        target: float,
        due_date: Optional[datetime] = None,
        description: Optional[str] = None,
        reward: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> Milestone:
        """Attach a milestone; one that is already reached completes immediately"""
        if target is None or target < 0:
            raise ValidationException("target", "milestone target must be zero or positive")

        milestone = Milestone(
            title=title,
            description=description,
            target=target,
            due_date=due_date,
            reward=reward,
            completed=False,
            notification_pending=False
        )
        goal.milestones.append(milestone)
        if (goal.current_progress or 0) >= target:
            self._complete(milestone, now or datetime.now())
        return milestone

    def add_sub_task(
        self,
        goal: Goal,
        title: str,
        description: Optional[str] = None,
        due_date: Optional[datetime] = None
    ) -> SubTask:
        if goal.status in TERMINAL_GOAL_STATUSES:
            raise ValidationException("status", f"a {goal.status} goal cannot take new sub-tasks")
        sub_task = SubTask(title=title, description=description, due_date=due_date, completed=False)
        goal.sub_tasks.append(sub_task)
        return sub_task

    def _complete(self, milestone: Milestone, now: datetime) -> None:
        milestone.completed = True
        milestone.completed_at = now
        milestone.notification_pending = True

    def _find_milestone(self, goal: Goal, milestone_id: int) -> Milestone:
        milestone = next((m for m in goal.milestones if m.id == milestone_id), None)
        if milestone is None:
            raise MilestoneNotFoundException(goal.id, milestone_id)
        return milestone
