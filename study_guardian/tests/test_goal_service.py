"""
Tests for GoalService.

Tests cover:
1. Goal creation and validation
2. Ownership checks
3. Update rules for active and terminal goals
4. Soft and permanent delete
5. Manual progress with completion award and notifications
6. Sub-task and milestone toggles
"""
import pytest
from datetime import timedelta

from study_guardian.models import Goal, GoalProgressEntry, UserRewards
from study_guardian.schemas import (
    GoalCreate, GoalUpdate, MilestoneCreate, SubTaskCreate
)
from study_guardian.services.goal_service import GoalService
from study_guardian.exceptions import (
    ValidationException, GoalNotFoundException, AuthorizationException
)


def goal_data(**overrides):
    values = {
        "title": "Linear algebra",
        "type": "hours",
        "target": 10,
        "period": "weekly",
        "progress_unit": "hours",
        "category": "academic",
    }
    values.update(overrides)
    return GoalCreate(**values)


class TestCreateGoal:
    """Tests for create_goal function"""

    def test_create_sets_initial_state(self, db_session, delivery, now):
        goal = GoalService(db_session, delivery).create_goal(1, goal_data(), now)

        assert goal.id is not None
        assert goal.status == "active"
        assert goal.current_progress == 0
        assert goal.completion_rate == 0
        assert goal.start_date == now
        assert goal.is_overdue is False

    def test_create_with_milestones_and_sub_tasks(self, db_session, now):
        data = goal_data(
            type="tasks", target=2, progress_unit="tasks",
            milestones=[MilestoneCreate(title="Half", target=1)],
            sub_tasks=[SubTaskCreate(title="Read"), SubTaskCreate(title="Write")]
        )

        goal = GoalService(db_session).create_goal(1, data, now)

        assert [m.title for m in goal.milestones] == ["Half"]
        assert [s.title for s in goal.sub_tasks] == ["Read", "Write"]

    @pytest.mark.parametrize("overrides", [
        {"target": 0},
        {"target": -5},
        {"type": "pages"},
        {"period": "fortnightly"},
        {"priority": "urgent"},
        {"category": "hobby"},
    ])
    def test_invalid_goal_rejected(self, db_session, now, overrides):
        with pytest.raises(ValidationException):
            GoalService(db_session).create_goal(1, goal_data(**overrides), now)

        assert db_session.query(Goal).count() == 0

    def test_due_date_must_follow_start(self, db_session, now):
        data = goal_data(start_date=now, due_date=now - timedelta(days=1))

        with pytest.raises(ValidationException) as exc:
            GoalService(db_session).create_goal(1, data, now)

        assert exc.value.field == "due_date"

    def test_zero_target_milestone_notifies_on_creation(self, db_session, delivery, now):
        data = goal_data(milestones=[MilestoneCreate(title="Started", target=0)])

        goal = GoalService(db_session, delivery).create_goal(1, data, now)

        assert goal.milestones[0].completed is True
        assert delivery.types == ["milestone_achieved"]


class TestOwnership:
    """Tests for get_goal function"""

    def test_missing_goal(self, db_session):
        with pytest.raises(GoalNotFoundException):
            GoalService(db_session).get_goal(404, 1)

    def test_other_users_goal(self, db_session, goal_factory):
        goal = goal_factory(user_id=1)

        with pytest.raises(AuthorizationException):
            GoalService(db_session).get_goal(goal.id, 2)

    def test_list_filters_by_status(self, db_session, goal_factory):
        goal_factory(title="a")
        goal_factory(title="b", status="paused")
        goal_factory(title="c", user_id=2)

        service = GoalService(db_session)

        assert len(service.get_goals(1)) == 2
        assert [g.title for g in service.get_goals(1, "paused")] == ["b"]

        with pytest.raises(ValidationException):
            service.get_goals(1, "archived")


class TestUpdateGoal:
    """Tests for update_goal function"""

    def test_update_fields(self, db_session, goal_factory, now):
        goal = goal_factory()

        updated = GoalService(db_session).update_goal(
            goal.id, 1, GoalUpdate(title="Calculus", priority="high"), now
        )

        assert updated.title == "Calculus"
        assert updated.priority == "high"

    def test_invalid_update_leaves_goal_untouched(self, db_session, goal_factory, now):
        goal = goal_factory(title="Keep")

        with pytest.raises(ValidationException):
            GoalService(db_session).update_goal(
                goal.id, 1, GoalUpdate(title="Changed", target=0), now
            )

        db_session.refresh(goal)
        assert goal.title == "Keep"

    def test_lowering_target_completes_goal(self, db_session, goal_factory, delivery, now):
        goal = goal_factory(target=10, current_progress=6, completion_rate=60)

        updated = GoalService(db_session, delivery).update_goal(
            goal.id, 1, GoalUpdate(target=5), now
        )

        assert updated.status == "completed"
        assert updated.current_progress == 5
        assert "goal_completed" in delivery.types

    def test_completed_goal_keeps_status_and_target(self, db_session, goal_factory, now):
        goal = goal_factory(status="completed", completed_at=now)
        service = GoalService(db_session)

        with pytest.raises(ValidationException):
            service.update_goal(goal.id, 1, GoalUpdate(status="active"), now)
        with pytest.raises(ValidationException):
            service.update_goal(goal.id, 1, GoalUpdate(target=99), now)

        renamed = service.update_goal(goal.id, 1, GoalUpdate(title="Done and dusted"), now)
        assert renamed.status == "completed"

    def test_completing_via_status(self, db_session, goal_factory, now):
        goal = goal_factory(target=8, current_progress=2)

        updated = GoalService(db_session).update_goal(goal.id, 1, GoalUpdate(status="completed"), now)

        assert updated.status == "completed"
        assert updated.completed_at == now
        assert updated.current_progress == 8
        assert updated.completion_rate == 100

    def test_completing_task_goal_requires_sub_tasks(self, db_session, goal_factory, now):
        goal = goal_factory(type="tasks", target=2, sub_tasks=["a", "b"])

        with pytest.raises(ValidationException):
            GoalService(db_session).update_goal(goal.id, 1, GoalUpdate(status="completed"), now)

    def test_pause_and_resume(self, db_session, goal_factory, now):
        goal = goal_factory()
        service = GoalService(db_session)

        assert service.update_goal(goal.id, 1, GoalUpdate(status="paused"), now).status == "paused"
        assert service.update_goal(goal.id, 1, GoalUpdate(status="active"), now).status == "active"


class TestDeleteGoal:
    """Tests for delete_goal function"""

    def test_soft_delete_cancels(self, db_session, goal_factory):
        goal = goal_factory()

        cancelled = GoalService(db_session).delete_goal(goal.id, 1)

        assert cancelled.status == "cancelled"
        assert db_session.query(Goal).count() == 1

    def test_soft_delete_keeps_completed_status(self, db_session, goal_factory, now):
        goal = goal_factory(status="completed", completed_at=now)

        assert GoalService(db_session).delete_goal(goal.id, 1).status == "completed"

    def test_permanent_delete_removes_history(self, db_session, goal_factory, now):
        goal = goal_factory(milestones=[{"title": "Half", "target": 5}])
        service = GoalService(db_session)
        service.add_manual_progress(goal.id, 1, 1, now=now)

        assert service.delete_goal(goal.id, 1, permanent=True) is None
        assert db_session.query(Goal).count() == 0
        assert db_session.query(GoalProgressEntry).count() == 0

    def test_delete_requires_owner(self, db_session, goal_factory):
        goal = goal_factory(user_id=1)

        with pytest.raises(AuthorizationException):
            GoalService(db_session).delete_goal(goal.id, 2)


class TestManualProgress:
    """Tests for add_manual_progress function"""

    def test_progress_recorded(self, db_session, goal_factory, now):
        goal = goal_factory(target=10)

        result = GoalService(db_session).add_manual_progress(goal.id, 1, 2, notes="ch. 3", now=now)

        assert result.amount == 2
        assert goal.current_progress == 2
        assert goal.progress_history[0].source == "manual"

    def test_completion_awards_goal_points_and_notifies(self, db_session, goal_factory, delivery, now):
        goal = goal_factory(type="sessions", target=5, progress_unit="sessions",
                            milestones=[{"title": "Halfway", "target": 2.5}])

        result = GoalService(db_session, delivery).add_manual_progress(goal.id, 1, 5, now=now)

        assert result.goal_completed is True
        ledger = db_session.query(UserRewards).filter(UserRewards.user_id == 1).one()
        assert ledger.total_points == 100
        assert ledger.goals_completed == 1
        assert ledger.points_history[0].idempotency_key == f"goal:{goal.id}"
        assert "milestone_achieved" in delivery.types
        assert "goal_completed" in delivery.types

    def test_completion_award_not_repeated(self, db_session, goal_factory, now):
        goal = goal_factory(target=2)
        service = GoalService(db_session)

        service.add_manual_progress(goal.id, 1, 2, now=now)
        service.add_manual_progress(goal.id, 1, 1, now=now)

        ledger = db_session.query(UserRewards).filter(UserRewards.user_id == 1).one()
        assert ledger.goals_completed == 1

    def test_invalid_amount(self, db_session, goal_factory, now):
        goal = goal_factory()

        with pytest.raises(ValidationException):
            GoalService(db_session).add_manual_progress(goal.id, 1, 0, now=now)

    def test_delivery_failure_does_not_undo_progress(self, db_session, goal_factory,
                                                     failing_delivery, now):
        goal = goal_factory(target=2)

        GoalService(db_session, failing_delivery).add_manual_progress(goal.id, 1, 2, now=now)

        db_session.refresh(goal)
        assert goal.status == "completed"
        assert all(not n.sent for n in goal.notifications)


class TestToggles:
    """Tests for sub-task and milestone toggles"""

    def test_last_sub_task_completes_goal(self, db_session, goal_factory, delivery, now):
        goal = goal_factory(type="tasks", target=2, progress_unit="tasks", sub_tasks=["a", "b"])
        service = GoalService(db_session, delivery)

        service.toggle_sub_task(goal.id, 1, goal.sub_tasks[0].id, now)
        assert goal.completion_rate == 50

        service.toggle_sub_task(goal.id, 1, goal.sub_tasks[1].id, now)

        assert goal.status == "completed"
        assert delivery.types.count("goal_completed") == 1

    def test_manual_milestone_toggle_notifies_once(self, db_session, goal_factory, delivery, now):
        goal = goal_factory(milestones=[{"title": "Outline done", "target": 8}])
        service = GoalService(db_session, delivery)
        milestone_id = goal.milestones[0].id

        service.toggle_milestone(goal.id, 1, milestone_id, now)
        service.toggle_milestone(goal.id, 1, milestone_id, now)

        assert delivery.types == ["milestone_achieved"]

    def test_add_milestone_and_sub_task(self, db_session, goal_factory, now):
        goal = goal_factory(type="tasks", target=3)
        service = GoalService(db_session)

        service.add_milestone(goal.id, 1, MilestoneCreate(title="First", target=1), now)
        service.add_sub_task(goal.id, 1, SubTaskCreate(title="Solve set 1"))

        assert len(goal.milestones) == 1
        assert len(goal.sub_tasks) == 1
