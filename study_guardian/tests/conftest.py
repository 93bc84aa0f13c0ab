"""
Shared fixtures: in-memory database, fixed clock, goal and reward builders.
"""
import os
import tempfile

# Must be set before the application modules read them at import time
os.environ.setdefault("STUDY_GUARDIAN_DATABASE_URL", "sqlite://")
os.environ.setdefault("STUDY_GUARDIAN_LOG_DIR", tempfile.mkdtemp(prefix="study_guardian_logs_"))
os.environ.setdefault("STUDY_GUARDIAN_SCHEDULER_ENABLED", "false")
os.environ.setdefault("STUDY_GUARDIAN_API_KEY", "test-key")

import pytest
from datetime import datetime, timedelta
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from study_guardian.database import Base
from study_guardian import models  # noqa: F401  registers tables
from study_guardian.models import Goal, Milestone, SubTask, Reward


class RecordingDelivery:
    """Delivery collaborator that keeps every batch it was handed"""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.batches = []

    def deliver(self, notifications):
        if self.fail:
            raise RuntimeError("delivery unavailable")
        self.batches.append([(n.type, n.title) for n in notifications])

    @property
    def types(self):
        return [t for batch in self.batches for t, _ in batch]


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db_session(engine):
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def now():
    """Wednesday noon"""
    return datetime(2026, 10, 14, 12, 0, 0)


@pytest.fixture
def today(now):
    return now.date()


@pytest.fixture
def yesterday(today):
    return today - timedelta(days=1)


@pytest.fixture
def delivery():
    return RecordingDelivery()


@pytest.fixture
def failing_delivery():
    return RecordingDelivery(fail=True)


@pytest.fixture
def goal_factory(db_session, now):
    """Build and persist a goal; milestones and sub-tasks as lists of dicts/titles"""

    def create(milestones=(), sub_tasks=(), **overrides):
        values = {
            "user_id": 1,
            "title": "Read textbook",
            "type": "hours",
            "target": 10.0,
            "period": "weekly",
            "progress_unit": "hours",
            "priority": "medium",
            "category": "academic",
            "status": "active",
            "current_progress": 0.0,
            "completion_rate": 0.0,
            "is_overdue": False,
            "start_date": now - timedelta(days=1),
            "due_date": None,
            "auto_progress_from_sessions": True,
            "linked_subjects": [],
        }
        values.update(overrides)
        goal = Goal(**values)
        for milestone in milestones:
            goal.milestones.append(Milestone(completed=False, notification_pending=False, **milestone))
        for title in sub_tasks:
            goal.sub_tasks.append(SubTask(title=title, completed=False))
        db_session.add(goal)
        db_session.commit()
        db_session.refresh(goal)
        return goal

    return create


@pytest.fixture
def reward_factory(db_session):
    def create(**overrides):
        values = {
            "name": "Test Badge",
            "description": "Test reward",
            "type": "badge",
            "category": "study",
            "points_value": 10,
            "rarity": "common",
            "criteria_type": "sessions_count",
            "threshold": 1,
            "timeframe": "alltime",
            "is_active": True,
            "is_recurring": False,
            "display_order": 0,
        }
        values.update(overrides)
        reward = Reward(**values)
        db_session.add(reward)
        db_session.commit()
        db_session.refresh(reward)
        return reward

    return create
