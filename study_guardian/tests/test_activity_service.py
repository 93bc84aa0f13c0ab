"""
Tests for ActivityService, the session-completed orchestrator.

Tests cover:
1. Session contribution per goal type and subject filtering
2. Rewards ledger updates
3. Exactly-once handling of redelivered sessions
4. Goal completion awards
5. Notification batching
6. Independence of the goal and rewards branches
"""
import pytest
from datetime import timedelta, timezone

from study_guardian.models import GoalProgressEntry, UserRewards, StudyActivity
from study_guardian.services.activity_service import ActivityService, SessionCompleted
from study_guardian.exceptions import ValidationException


def ledger_for(db_session, user_id=1):
    return db_session.query(UserRewards).filter(UserRewards.user_id == user_id).one()


class TestContribution:
    """Tests for contribution_for and matches_subject"""

    def test_hours_goal_gets_hours(self, db_session, goal_factory):
        goal = goal_factory(type="hours")
        assert ActivityService.contribution_for(goal, 3900) == 1.08

    @pytest.mark.parametrize("goal_type", ["sessions", "streak"])
    def test_count_goals_get_one(self, db_session, goal_factory, goal_type):
        goal = goal_factory(type=goal_type)
        assert ActivityService.contribution_for(goal, 3900) == 1

    @pytest.mark.parametrize("goal_type", ["tasks", "custom"])
    def test_other_goals_get_nothing(self, db_session, goal_factory, goal_type):
        goal = goal_factory(type=goal_type)
        assert ActivityService.contribution_for(goal, 3900) is None

    def test_subject_matching(self, db_session, goal_factory):
        linked = goal_factory(linked_subjects=["math"])
        unlinked = goal_factory(linked_subjects=[])

        assert ActivityService.matches_subject(linked, "math") is True
        assert ActivityService.matches_subject(linked, "physics") is False
        assert ActivityService.matches_subject(linked, None) is False
        assert ActivityService.matches_subject(unlinked, "anything") is True


class TestHandleSessionCompleted:
    """Tests for handle_session_completed function"""

    def test_sixty_five_minute_session(self, db_session, goal_factory, delivery, now):
        goal = goal_factory(type="hours", target=10)

        result = ActivityService(db_session, delivery).handle_session_completed(
            SessionCompleted(user_id=1, session_id="s-1", duration_seconds=3900, subject="math"),
            now
        )

        assert result.goals_updated == [goal.id]
        assert result.points_awarded == 150
        assert result.failed_branches == []

        db_session.refresh(goal)
        assert goal.current_progress == 1.08
        assert goal.progress_history[0].session_id == "s-1"
        assert goal.progress_history[0].source == "session"

        ledger = ledger_for(db_session)
        assert ledger.total_points == 150
        assert ledger.sessions_completed == 1
        assert ledger.study_hours == 1.08
        assert ledger.current_streak == 1
        assert ledger.current_level == 2

    def test_redelivery_is_a_noop(self, db_session, goal_factory, delivery, now):
        goal = goal_factory(type="hours", target=10)
        service = ActivityService(db_session, delivery)
        event = SessionCompleted(user_id=1, session_id="s-1", duration_seconds=3900)

        service.handle_session_completed(event, now)
        second = service.handle_session_completed(event, now + timedelta(minutes=5))

        assert second.goals_updated == []
        assert second.points_awarded == 0
        assert db_session.query(GoalProgressEntry).count() == 1
        assert db_session.query(StudyActivity).count() == 1

        db_session.refresh(goal)
        assert goal.current_progress == 1.08
        ledger = ledger_for(db_session)
        assert ledger.total_points == 150
        assert ledger.sessions_completed == 1

    def test_subject_filter_and_goal_eligibility(self, db_session, goal_factory, now):
        math_goal = goal_factory(linked_subjects=["math"])
        physics_goal = goal_factory(linked_subjects=["physics"])
        paused_goal = goal_factory(status="paused")
        manual_goal = goal_factory(auto_progress_from_sessions=False)
        task_goal = goal_factory(type="tasks", progress_unit="tasks")
        other_user_goal = goal_factory(user_id=2)

        result = ActivityService(db_session).handle_session_completed(
            SessionCompleted(user_id=1, session_id="s-1", duration_seconds=1800, subject="math"),
            now
        )

        assert result.goals_updated == [math_goal.id]
        for goal in (physics_goal, paused_goal, manual_goal, task_goal, other_user_goal):
            db_session.refresh(goal)
            assert goal.current_progress == 0

    def test_streak_and_sessions_goals_count_sessions(self, db_session, goal_factory, now):
        sessions_goal = goal_factory(type="sessions", target=5, progress_unit="sessions")
        streak_goal = goal_factory(type="streak", target=7, progress_unit="days")
        service = ActivityService(db_session)

        service.handle_session_completed(SessionCompleted(1, "a", 600), now)
        service.handle_session_completed(SessionCompleted(1, "b", 600), now)

        db_session.refresh(sessions_goal)
        db_session.refresh(streak_goal)
        assert sessions_goal.current_progress == 2
        assert streak_goal.current_progress == 2

    def test_completion_awards_goal_points(self, db_session, goal_factory, delivery, now):
        goal = goal_factory(type="sessions", target=1, progress_unit="sessions")

        result = ActivityService(db_session, delivery).handle_session_completed(
            SessionCompleted(user_id=1, session_id="s-1", duration_seconds=3900), now
        )

        assert result.goals_completed == [goal.id]
        db_session.refresh(goal)
        assert goal.status == "completed"
        assert goal.completed_at == now

        ledger = ledger_for(db_session)
        assert ledger.total_points == 150 + 60
        assert ledger.goals_completed == 1
        keys = [entry.idempotency_key for entry in ledger.points_history]
        assert keys == ["session:s-1", f"goal:{goal.id}"]

    def test_notifications_dispatched_as_one_batch(self, db_session, goal_factory, delivery, now):
        goal_factory(type="sessions", target=1, progress_unit="sessions",
                     milestones=[{"title": "Half", "target": 0.5}])

        result = ActivityService(db_session, delivery).handle_session_completed(
            SessionCompleted(user_id=1, session_id="s-1", duration_seconds=3900), now
        )

        assert len(delivery.batches) == 1
        assert set(delivery.types) == {"milestone_achieved", "goal_completed", "level_up"}
        assert result.notifications_dispatched == 3

    def test_streak_day_follows_session_end(self, db_session, now, yesterday):
        ended_at = now - timedelta(days=1)

        ActivityService(db_session).handle_session_completed(
            SessionCompleted(1, "late", 1200, ended_at=ended_at), now
        )

        assert ledger_for(db_session).last_activity_day == yesterday

    def test_aware_end_time_stored_as_local(self, db_session, now):
        ended_at = (now - timedelta(hours=2)).astimezone(timezone.utc)

        ActivityService(db_session).handle_session_completed(
            SessionCompleted(1, "utc", 1200, ended_at=ended_at), now
        )

        activity = db_session.query(StudyActivity).one()
        assert activity.ended_at == now - timedelta(hours=2)
        assert ledger_for(db_session).last_activity_day == now.date()

    def test_rewards_failure_keeps_goal_progress(self, db_session, goal_factory, now):
        goal = goal_factory(type="hours", target=10)
        service = ActivityService(db_session)

        def boom(*args, **kwargs):
            raise RuntimeError("ledger unavailable")

        service.rewards_service.record_session = boom

        result = service.handle_session_completed(SessionCompleted(1, "s-1", 3600), now)

        assert result.failed_branches == ["rewards"]
        assert result.goals_updated == [goal.id]
        db_session.refresh(goal)
        assert goal.current_progress == 1

    def test_goal_failure_keeps_rewards(self, db_session, goal_factory, now):
        goal = goal_factory(type="hours", target=10)
        service = ActivityService(db_session)

        def boom(*args, **kwargs):
            raise RuntimeError("goal store unavailable")

        service.progress_service.apply_progress = boom

        result = service.handle_session_completed(SessionCompleted(1, "s-1", 3600), now)

        assert result.failed_branches == [f"goal:{goal.id}"]
        assert result.points_awarded == 140
        assert ledger_for(db_session).total_points == 140

    def test_failed_branch_catches_up_on_redelivery(self, db_session, goal_factory, now):
        goal = goal_factory(type="hours", target=10)
        service = ActivityService(db_session)
        original = service.rewards_service.record_session

        def boom(*args, **kwargs):
            raise RuntimeError("ledger unavailable")

        event = SessionCompleted(1, "s-1", 3600)
        service.rewards_service.record_session = boom
        service.handle_session_completed(event, now)
        service.rewards_service.record_session = original
        result = service.handle_session_completed(event, now)

        assert result.goals_updated == []
        assert result.points_awarded == 140
        db_session.refresh(goal)
        assert goal.current_progress == 1

    @pytest.mark.parametrize("event", [
        SessionCompleted(1, "", 600),
        SessionCompleted(1, "s-1", -1),
    ])
    def test_invalid_events(self, db_session, now, event):
        with pytest.raises(ValidationException):
            ActivityService(db_session).handle_session_completed(event, now)
