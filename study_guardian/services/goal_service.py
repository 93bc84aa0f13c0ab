"""
Goal management service.
Handles the goal lifecycle and the direct user mutations: manual progress,
sub-task and milestone toggles.
"""
import logging
from datetime import datetime
from typing import List, Optional
from sqlalchemy.orm import Session

from study_guardian.models import Goal, Milestone, SubTask, Notification
from study_guardian.schemas import GoalCreate, GoalUpdate, MilestoneCreate, SubTaskCreate
from study_guardian.repositories.goal_repository import GoalRepository
from study_guardian.repositories.base_repository import run_with_retry
from study_guardian.services.milestone_service import MilestoneService
from study_guardian.services.progress_service import ProgressService, ProgressResult
from study_guardian.services.schedule_service import ScheduleService
from study_guardian.services.notification_service import (
    NotificationService, NotificationDelivery
)
from study_guardian.services.rewards_service import RewardsService
from study_guardian.exceptions import (
    GoalNotFoundException, AuthorizationException, ValidationException,
    StudyGuardianException
)
from study_guardian.constants import (
    GOAL_TYPES, GOAL_PERIODS, GOAL_CATEGORIES, GOAL_PRIORITIES, GOAL_STATUSES,
    GOAL_STATUS_ACTIVE, GOAL_STATUS_COMPLETED, GOAL_STATUS_CANCELLED,
    TERMINAL_GOAL_STATUSES, PROGRESS_SOURCE_MANUAL
)

logger = logging.getLogger("study_guardian.goals")

# Fields a user may change through update_goal
UPDATABLE_FIELDS = (
    "title", "description", "target", "period", "progress_unit", "category",
    "priority", "status", "start_date", "due_date",
    "auto_progress_from_sessions", "linked_subjects"
)


class GoalService:
    """Service for managing goals"""

    def __init__(self, db: Session, delivery: Optional[NotificationDelivery] = None):
        self.db = db
        self.goal_repo = GoalRepository(db)
        self.delivery = delivery
        self.notification_service = NotificationService(db)
        self.milestone_service = MilestoneService()
        self.progress_service = ProgressService(self.milestone_service)
        self.schedule_service = ScheduleService(self.notification_service)

    # Validation

    @staticmethod
    def _validate_choice(field: str, value, choices) -> None:
        if value not in choices:
            raise ValidationException(field, f"'{value}' is not one of {', '.join(choices)}")

    def _validate_goal(self, values: dict) -> None:
        """Check the invariants of a complete set of goal fields"""
        if values.get("target") is None or values["target"] <= 0:
            raise ValidationException("target", "target must be greater than 0")
        self._validate_choice("type", values.get("type"), GOAL_TYPES)
        self._validate_choice("period", values.get("period"), GOAL_PERIODS)
        self._validate_choice("category", values.get("category"), GOAL_CATEGORIES)
        self._validate_choice("priority", values.get("priority"), GOAL_PRIORITIES)
        self._validate_choice("status", values.get("status"), GOAL_STATUSES)

        start, due = values.get("start_date"), values.get("due_date")
        if start and due and due <= start:
            raise ValidationException("due_date", "due date must be after the start date")

    # Reads

    def get_goal(self, goal_id: int, user_id: int) -> Goal:
        """
        Get a goal owned by the user.

        Raises:
            GoalNotFoundException: no such goal
            AuthorizationException: the goal belongs to someone else
        """
        goal = self.goal_repo.get_by_id(goal_id)
        if not goal:
            raise GoalNotFoundException(goal_id)
        if goal.user_id != user_id:
            raise AuthorizationException(user_id, f"goal {goal_id}")
        return goal

    def get_goals(self, user_id: int, status: Optional[str] = None) -> List[Goal]:
        if status is not None:
            self._validate_choice("status", status, GOAL_STATUSES)
        return self.goal_repo.get_for_user(user_id, status)

    def get_notifications(self, user_id: int, limit: int = 50) -> List[Notification]:
        return self.notification_service.get_recent_for_user(user_id, limit)

    # Lifecycle

    def create_goal(self, user_id: int, goal_data: GoalCreate, now: Optional[datetime] = None) -> Goal:
        """Create a goal with its initial milestones and sub-tasks"""
        now = now or datetime.now()
        values = goal_data.model_dump(exclude={"milestones", "sub_tasks"})
        values["start_date"] = values.get("start_date") or now
        values["status"] = GOAL_STATUS_ACTIVE
        self._validate_goal(values)

        goal = Goal(
            user_id=user_id,
            current_progress=0.0,
            completion_rate=0.0,
            is_overdue=False,
            created_at=now,
            **values
        )
        for milestone in goal_data.milestones:
            self.milestone_service.add_milestone(goal, now=now, **milestone.model_dump())
        for sub_task in goal_data.sub_tasks:
            self.milestone_service.add_sub_task(goal, **sub_task.model_dump())

        goal = self.goal_repo.create(goal)
        logger.info(f"Created goal {goal.id} '{goal.title}' for user {user_id}")

        # milestones with a zero target are reached on creation
        if any(m.notification_pending for m in goal.milestones):
            self._after_mutation(goal, False, now)
        return goal

    def update_goal(
        self,
        goal_id: int,
        user_id: int,
        goal_update: GoalUpdate,
        now: Optional[datetime] = None
    ) -> Goal:
        """
        Update whitelisted goal fields.

        The merged result is validated before anything is applied. A completed
        or cancelled goal cannot change status or target. Setting the status
        to completed completes the goal as if its target had been reached.
        """
        now = now or datetime.now()
        goal = self.get_goal(goal_id, user_id)
        changes = {
            key: value
            for key, value in goal_update.model_dump(exclude_unset=True).items()
            if key in UPDATABLE_FIELDS
        }

        if goal.status in TERMINAL_GOAL_STATUSES:
            if "status" in changes and changes["status"] != goal.status:
                raise ValidationException("status", f"a {goal.status} goal cannot change status")
            if "target" in changes and changes["target"] != goal.target:
                raise ValidationException("target", f"the target of a {goal.status} goal is fixed")

        merged = {
            "target": goal.target, "type": goal.type, "period": goal.period,
            "category": goal.category, "priority": goal.priority, "status": goal.status,
            "start_date": goal.start_date, "due_date": goal.due_date,
        }
        merged.update(changes)
        self._validate_goal(merged)

        new_status = changes.pop("status", goal.status)
        completing = new_status == GOAL_STATUS_COMPLETED and goal.status != GOAL_STATUS_COMPLETED
        if completing and goal.sub_tasks and goal.completed_sub_tasks_count < len(goal.sub_tasks):
            raise ValidationException("status", "finish every sub-task before completing the goal")

        for key, value in changes.items():
            setattr(goal, key, value)

        goal_completed = False
        if completing:
            goal.current_progress = goal.target
            self.milestone_service.evaluate(goal, now)
            goal_completed = self.progress_service.update_completion_rate(goal, now)
        else:
            goal.status = new_status

        if not completing and goal.status not in TERMINAL_GOAL_STATUSES and "target" in changes:
            goal.current_progress = min(goal.current_progress or 0, goal.target)
            self.milestone_service.evaluate(goal, now)
            goal_completed = self.progress_service.update_completion_rate(goal, now)

        self._after_mutation(goal, goal_completed, now)
        return goal

    def delete_goal(self, goal_id: int, user_id: int, permanent: bool = False) -> Optional[Goal]:
        """
        Cancel a goal, or remove it with its history when `permanent`.

        Returns:
            The cancelled goal, or None after a permanent delete
        """
        goal = self.get_goal(goal_id, user_id)
        if permanent:
            self.goal_repo.delete(goal)
            logger.info(f"Permanently deleted goal {goal_id}")
            return None

        if goal.status != GOAL_STATUS_COMPLETED:
            goal.status = GOAL_STATUS_CANCELLED
        goal = self.goal_repo.update(goal)
        logger.info(f"Cancelled goal {goal_id}")
        return goal

    # Direct mutations

    def add_manual_progress(
        self,
        goal_id: int,
        user_id: int,
        amount: float,
        notes: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> ProgressResult:
        now = now or datetime.now()
        goal = self.get_goal(goal_id, user_id)
        result = self.progress_service.apply_progress(
            goal, amount, PROGRESS_SOURCE_MANUAL, notes=notes, now=now
        )
        self.schedule_service.check_schedule(goal, now)
        self._after_mutation(goal, result.goal_completed, now)
        return result

    def toggle_sub_task(
        self,
        goal_id: int,
        user_id: int,
        subtask_id: int,
        now: Optional[datetime] = None
    ) -> SubTask:
        now = now or datetime.now()
        goal = self.get_goal(goal_id, user_id)
        sub_task = self.milestone_service.toggle_sub_task(goal, subtask_id, now)
        goal_completed = self.progress_service.update_completion_rate(goal, now)
        self._after_mutation(goal, goal_completed, now)
        return sub_task

    def toggle_milestone(
        self,
        goal_id: int,
        user_id: int,
        milestone_id: int,
        now: Optional[datetime] = None
    ) -> Milestone:
        now = now or datetime.now()
        goal = self.get_goal(goal_id, user_id)
        milestone, changed = self.milestone_service.toggle_milestone(goal, milestone_id, now)
        if changed:
            self._after_mutation(goal, False, now)
        return milestone

    def add_milestone(
        self,
        goal_id: int,
        user_id: int,
        milestone_data: MilestoneCreate,
        now: Optional[datetime] = None
    ) -> Milestone:
        now = now or datetime.now()
        goal = self.get_goal(goal_id, user_id)
        milestone = self.milestone_service.add_milestone(goal, now=now, **milestone_data.model_dump())
        self._after_mutation(goal, False, now)
        return milestone

    def add_sub_task(self, goal_id: int, user_id: int, sub_task_data: SubTaskCreate) -> SubTask:
        goal = self.get_goal(goal_id, user_id)
        sub_task = self.milestone_service.add_sub_task(goal, **sub_task_data.model_dump())
        goal_completed = self.progress_service.update_completion_rate(goal)
        self._after_mutation(goal, goal_completed, datetime.now())
        return sub_task

    def get_catch_up_suggestions(self, goal_id: int, user_id: int, now: Optional[datetime] = None):
        """Run a fresh schedule check and return the suggestions"""
        now = now or datetime.now()
        goal = self.get_goal(goal_id, user_id)
        suggestions = self.schedule_service.check_schedule(goal, now)
        self.goal_repo.update(goal)
        return suggestions or []

    # Shared tail of every mutation

    def _after_mutation(self, goal: Goal, goal_completed: bool, now: datetime) -> None:
        """
        Queue the resulting notifications, commit the goal, then hand the
        completion award to the rewards ledger and dispatch.
        """
        self.notification_service.emit_milestone_notifications(goal)
        if goal_completed:
            self.notification_service.emit_goal_completed(goal)
            logger.info(f"Goal {goal.id} completed")
        self.goal_repo.update(goal)

        user_id = goal.user_id
        if goal_completed:
            self._award_completion(user_id, now)
        self.notification_service.dispatch_pending_for_user(user_id, self.delivery, now)

    def _award_completion(self, user_id: int, now: datetime) -> None:
        rewards_service = RewardsService(self.db, self.notification_service)
        try:
            run_with_retry(
                self.db,
                lambda: rewards_service.reconcile_goal_awards(user_id, now),
                f"goal completion award for user {user_id}"
            )
        except StudyGuardianException as e:
            # the next session event reconciles missing awards
            self.db.rollback()
            logger.error(f"Goal completion award failed for user {user_id}: {e}")
