from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, Float, Date, ForeignKey,
    JSON, UniqueConstraint
)
from sqlalchemy.orm import relationship
from datetime import datetime
import math

from study_guardian.database import Base
from study_guardian.constants import PERIOD_DAYS


class Goal(Base):
    __tablename__ = "goals"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(String, nullable=True)
    type = Column(String, nullable=False)  # hours, sessions, tasks, streak, custom
    target = Column(Float, nullable=False)
    period = Column(String, nullable=False)  # daily .. yearly, lifetime
    category = Column(String, default="personal")
    priority = Column(String, default="medium")  # low, medium, high, critical
    status = Column(String, default="active", index=True)  # active, paused, completed, cancelled
    progress_unit = Column(String, nullable=False)

    # Progress tracking
    current_progress = Column(Float, default=0.0)
    completion_rate = Column(Float, default=0.0)  # 0-100
    completed_at = Column(DateTime, nullable=True)

    # Scheduling
    start_date = Column(DateTime, default=datetime.now)
    due_date = Column(DateTime, nullable=True)
    is_overdue = Column(Boolean, default=False)
    last_schedule_check = Column(DateTime, nullable=True)

    # Session integration
    auto_progress_from_sessions = Column(Boolean, default=True)
    linked_subjects = Column(JSON, default=list)  # empty = every subject counts

    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    # Optimistic concurrency
    version = Column(Integer, nullable=False)
    __mapper_args__ = {"version_id_col": version}

    progress_history = relationship(
        "GoalProgressEntry", back_populates="goal",
        cascade="all, delete-orphan", order_by="GoalProgressEntry.id"
    )
    milestones = relationship(
        "Milestone", back_populates="goal",
        cascade="all, delete-orphan", order_by="Milestone.id"
    )
    sub_tasks = relationship(
        "SubTask", back_populates="goal",
        cascade="all, delete-orphan", order_by="SubTask.id"
    )
    catch_up_suggestions = relationship(
        "CatchUpSuggestion", back_populates="goal",
        cascade="all, delete-orphan", order_by="CatchUpSuggestion.position"
    )
    notifications = relationship(
        "Notification", back_populates="goal",
        cascade="all, delete-orphan", order_by="Notification.id"
    )

    @property
    def progress_percentage(self) -> int:
        if not self.target:
            return 0
        return min(100, round((self.current_progress or 0) / self.target * 100))

    @property
    def days_remaining(self):
        if not self.due_date:
            return None
        delta = self.due_date - datetime.now()
        return math.ceil(delta.total_seconds() / 86400)

    @property
    def weekly_target(self):
        """Share of the target expected per week, None for lifetime goals"""
        days = PERIOD_DAYS.get(self.period)
        if not days:
            return None
        return self.target * 7 / days

    @property
    def daily_target(self):
        days = PERIOD_DAYS.get(self.period)
        if not days:
            return None
        return self.target / days

    @property
    def completed_milestones_count(self) -> int:
        return sum(1 for m in self.milestones if m.completed)

    @property
    def completed_sub_tasks_count(self) -> int:
        return sum(1 for t in self.sub_tasks if t.completed)


class GoalProgressEntry(Base):
    __tablename__ = "goal_progress_entries"
    __table_args__ = (
        UniqueConstraint("goal_id", "day", "source", "session_key", name="uq_progress_entry"),
    )

    id = Column(Integer, primary_key=True, index=True)
    goal_id = Column(Integer, ForeignKey("goals.id"), nullable=False, index=True)
    day = Column(Date, nullable=False, index=True)
    value = Column(Float, nullable=False)
    source = Column(String, nullable=False)  # session, manual, system
    session_key = Column(String, nullable=False, default="")  # "" when not tied to a session
    notes = Column(String, nullable=True)

    goal = relationship("Goal", back_populates="progress_history")

    @property
    def session_id(self):
        return self.session_key or None


class Milestone(Base):
    __tablename__ = "milestones"

    id = Column(Integer, primary_key=True, index=True)
    goal_id = Column(Integer, ForeignKey("goals.id"), nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(String, nullable=True)
    target = Column(Float, nullable=False)
    completed = Column(Boolean, default=False)
    completed_at = Column(DateTime, nullable=True)
    due_date = Column(DateTime, nullable=True)
    reward = Column(String, nullable=True)
    notification_pending = Column(Boolean, default=False)  # set on completion, cleared once emitted

    goal = relationship("Goal", back_populates="milestones")


class SubTask(Base):
    __tablename__ = "sub_tasks"

    id = Column(Integer, primary_key=True, index=True)
    goal_id = Column(Integer, ForeignKey("goals.id"), nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(String, nullable=True)
    completed = Column(Boolean, default=False)
    completed_at = Column(DateTime, nullable=True)
    due_date = Column(DateTime, nullable=True)

    goal = relationship("Goal", back_populates="sub_tasks")


class CatchUpSuggestion(Base):
    __tablename__ = "catch_up_suggestions"

    id = Column(Integer, primary_key=True, index=True)
    goal_id = Column(Integer, ForeignKey("goals.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False)  # priority order within one check
    type = Column(String, nullable=False)
    suggestion = Column(String, nullable=False)
    impact = Column(String, nullable=True)
    difficulty = Column(String, nullable=False)  # easy, medium, hard
    required_daily_rate = Column(Float, nullable=True)
    created_at = Column(DateTime, default=datetime.now)

    goal = relationship("Goal", back_populates="catch_up_suggestions")


class Notification(Base):
    """Outbox record. `sent` is the source of truth for delivery."""
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, nullable=False, index=True)
    goal_id = Column(Integer, ForeignKey("goals.id"), nullable=True, index=True)
    type = Column(String, nullable=False)
    title = Column(String, nullable=False)
    message = Column(String, nullable=False)
    dedupe_key = Column(String, nullable=True, unique=True)
    sent = Column(Boolean, default=False, index=True)
    sent_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.now)

    goal = relationship("Goal", back_populates="notifications")


class StudyActivity(Base):
    """One completed study session, recorded once per session id"""
    __tablename__ = "study_activities"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, nullable=False, index=True)
    session_id = Column(String, nullable=False, unique=True)
    subject = Column(String, nullable=True)
    duration_seconds = Column(Integer, nullable=False)
    day = Column(Date, nullable=False, index=True)
    ended_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.now)


class Reward(Base):
    """Static catalog entry (badge, achievement, ...)"""
    __tablename__ = "rewards"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False, unique=True)
    description = Column(String, nullable=False)
    type = Column(String, default="badge")  # badge, achievement, milestone, streak, bonus
    category = Column(String, default="study")
    icon = Column(String, nullable=True)
    points_value = Column(Integer, default=0)
    rarity = Column(String, default="common")

    # Criteria
    criteria_type = Column(String, nullable=False, index=True)
    threshold = Column(Float, nullable=False)
    timeframe = Column(String, default="alltime")  # daily, weekly, monthly, alltime, none

    is_active = Column(Boolean, default=True)
    is_recurring = Column(Boolean, default=False)
    display_order = Column(Integer, default=0)


class UserRewards(Base):
    __tablename__ = "user_rewards"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, nullable=False, unique=True, index=True)

    # Points and level
    total_points = Column(Integer, default=0, index=True)
    current_level = Column(Integer, default=1)
    points_to_next_level = Column(Integer, default=100)  # step size of the next level
    weekly_points = Column(Integer, default=0, index=True)
    monthly_points = Column(Integer, default=0, index=True)
    last_weekly_reset = Column(Date, nullable=True)  # Monday of the current week window
    last_monthly_reset = Column(Date, nullable=True)  # first day of the current month window

    # Lifetime statistics
    sessions_completed = Column(Integer, default=0)
    study_hours = Column(Float, default=0.0)
    goals_completed = Column(Integer, default=0)
    current_streak = Column(Integer, default=0)
    longest_streak = Column(Integer, default=0)
    last_activity_day = Column(Date, nullable=True)

    # Leaderboard preferences
    is_public = Column(Boolean, default=False)
    display_name = Column(String, nullable=True)

    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    version = Column(Integer, nullable=False)
    __mapper_args__ = {"version_id_col": version}

    points_history = relationship(
        "PointsLedgerEntry", back_populates="ledger",
        cascade="all, delete-orphan", order_by="PointsLedgerEntry.id"
    )
    earned_rewards = relationship(
        "EarnedReward", back_populates="ledger",
        cascade="all, delete-orphan", order_by="EarnedReward.id"
    )

    @property
    def total_badges(self) -> int:
        return len(self.earned_rewards)


class PointsLedgerEntry(Base):
    __tablename__ = "points_ledger"

    id = Column(Integer, primary_key=True, index=True)
    ledger_id = Column(Integer, ForeignKey("user_rewards.id"), nullable=False, index=True)
    amount = Column(Integer, nullable=False)  # signed delta
    reason = Column(String, nullable=False)
    source = Column(String, nullable=False)
    related_id = Column(String, nullable=True)
    idempotency_key = Column(String, nullable=True, unique=True)
    created_at = Column(DateTime, default=datetime.now, index=True)

    ledger = relationship("UserRewards", back_populates="points_history")


class EarnedReward(Base):
    __tablename__ = "earned_rewards"
    __table_args__ = (
        UniqueConstraint("ledger_id", "reward_id", "period_key", name="uq_earned_reward"),
    )

    id = Column(Integer, primary_key=True, index=True)
    ledger_id = Column(Integer, ForeignKey("user_rewards.id"), nullable=False, index=True)
    reward_id = Column(Integer, ForeignKey("rewards.id"), nullable=False)
    period_key = Column(String, nullable=False, default="")  # "" for one-time rewards
    earned_at = Column(DateTime, default=datetime.now)
    progress = Column(Integer, default=100)

    ledger = relationship("UserRewards", back_populates="earned_rewards")
    reward = relationship("Reward")
