"""
Goal repository - Data access layer for the Goal aggregate.
"""
from datetime import datetime
from typing import List, Optional
from sqlalchemy import and_

from study_guardian.models import Goal, GoalProgressEntry
from study_guardian.constants import (
    GOAL_STATUS_ACTIVE, GOAL_STATUS_COMPLETED, GOAL_TYPE_STREAK,
    PROGRESS_SOURCE_SESSION
)
from .base_repository import BaseRepository


class GoalRepository(BaseRepository):
    """Repository for Goal data access"""

    entity_name = "goal"

    def get_by_id(self, goal_id: int) -> Optional[Goal]:
        """Get goal by ID"""
        return self.db.query(Goal).filter(Goal.id == goal_id).first()

    def get_for_user(self, user_id: int, status: Optional[str] = None) -> List[Goal]:
        """Get a user's goals, newest first"""
        query = self.db.query(Goal).filter(Goal.user_id == user_id)
        if status:
            query = query.filter(Goal.status == status)
        return query.order_by(Goal.created_at.desc(), Goal.id.desc()).all()

    def get_active_auto_progress(self, user_id: int) -> List[Goal]:
        """Active goals of a user that take progress from sessions"""
        return self.db.query(Goal).filter(
            and_(
                Goal.user_id == user_id,
                Goal.status == GOAL_STATUS_ACTIVE,
                Goal.auto_progress_from_sessions == True
            )
        ).order_by(Goal.id).all()

    def get_active(self) -> List[Goal]:
        """All active goals across users"""
        return self.db.query(Goal).filter(
            Goal.status == GOAL_STATUS_ACTIVE
        ).order_by(Goal.id).all()

    def get_active_with_due_date(self) -> List[Goal]:
        return self.db.query(Goal).filter(
            and_(
                Goal.status == GOAL_STATUS_ACTIVE,
                Goal.due_date.isnot(None)
            )
        ).order_by(Goal.id).all()

    def get_active_streak_goals(self) -> List[Goal]:
        return self.db.query(Goal).filter(
            and_(
                Goal.status == GOAL_STATUS_ACTIVE,
                Goal.type == GOAL_TYPE_STREAK
            )
        ).order_by(Goal.id).all()

    def get_completed_for_user(self, user_id: int) -> List[Goal]:
        return self.db.query(Goal).filter(
            and_(
                Goal.user_id == user_id,
                Goal.status == GOAL_STATUS_COMPLETED
            )
        ).order_by(Goal.id).all()

    def count_completed_between(self, user_id: int, start: datetime, end: datetime) -> int:
        """Count goals a user completed in [start, end)"""
        return self.db.query(Goal).filter(
            and_(
                Goal.user_id == user_id,
                Goal.status == GOAL_STATUS_COMPLETED,
                Goal.completed_at >= start,
                Goal.completed_at < end
            )
        ).count()

    def has_session_contribution(self, goal_id: int, session_id: str) -> bool:
        """True if a session already contributed to the goal on any day"""
        return self.db.query(GoalProgressEntry).filter(
            and_(
                GoalProgressEntry.goal_id == goal_id,
                GoalProgressEntry.source == PROGRESS_SOURCE_SESSION,
                GoalProgressEntry.session_key == session_id
            )
        ).first() is not None

    def get_user_ids_with_active_goals(self) -> List[int]:
        rows = self.db.query(Goal.user_id).filter(
            Goal.status == GOAL_STATUS_ACTIVE
        ).distinct().order_by(Goal.user_id).all()
        return [row[0] for row in rows]

    def create(self, goal: Goal) -> Goal:
        """Create new goal"""
        self.db.add(goal)
        self.commit()
        self.db.refresh(goal)
        return goal

    def update(self, goal: Goal) -> Goal:
        """Persist changes to an existing goal"""
        self.commit()
        self.db.refresh(goal)
        return goal

    def delete(self, goal: Goal) -> None:
        """Delete a goal permanently"""
        self.db.delete(goal)
        self.commit()
