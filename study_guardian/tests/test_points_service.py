"""
Tests for PointsService.

Tests cover:
1. Level curve (pure threshold table)
2. Session and goal completion point formulas
3. Ledger deltas, idempotency keys and penalties
4. Weekly and monthly rollover
"""
import pytest
from datetime import datetime, timedelta

from study_guardian.services.points_service import (
    PointsService, level_for, level_step, cumulative_threshold, level_progress
)
from study_guardian.services.notification_service import NotificationService
from study_guardian.models import Goal, Notification
from study_guardian.exceptions import RewardsProfileNotFoundException, ValidationException


class TestLevelCurve:
    """Tests for the level threshold table"""

    def test_step_sizes_grow_geometrically(self):
        assert [level_step(level) for level in range(1, 6)] == [100, 120, 144, 172, 207]

    def test_cumulative_thresholds(self):
        assert cumulative_threshold(1) == 0
        assert cumulative_threshold(2) == 100
        assert cumulative_threshold(3) == 220
        assert cumulative_threshold(4) == 364

    @pytest.mark.parametrize("total,expected", [
        (0, 1), (99, 1), (100, 2), (219, 2), (220, 3), (250, 3), (364, 4),
    ])
    def test_level_for_total(self, total, expected):
        assert level_for(total) == expected

    def test_250_points_from_level_one(self, db_session, now):
        """250 points lands on level 3 with the level-3 step as the next threshold"""
        service = PointsService(db_session)
        ledger = service.get_or_create_ledger(1, now)

        service.add_points(ledger, 250, "bulk", "bonus", now=now)

        assert ledger.current_level == 3
        assert ledger.points_to_next_level == 144

    def test_stored_level_matches_total_after_many_awards(self, db_session, now):
        """Level never drifts from the table however the total was built up"""
        service = PointsService(db_session)
        ledger = service.get_or_create_ledger(1, now)

        for amount in [7, 93, 1, 119, 40, 300, 12, 999, 5]:
            service.add_points(ledger, amount, "step", "bonus", now=now)
            assert ledger.current_level == level_for(ledger.total_points)
            assert ledger.points_to_next_level == level_step(ledger.current_level)
            assert cumulative_threshold(ledger.current_level) <= ledger.total_points
            assert ledger.total_points < cumulative_threshold(ledger.current_level + 1)

    def test_level_progress_percentage(self):
        assert level_progress(250, 3) == pytest.approx(20.8)
        assert level_progress(100, 2) == 0


class TestPointFormulas:
    """Tests for session and goal completion awards"""

    @pytest.mark.parametrize("minutes,expected", [
        (65, 150),   # 130 + 20
        (60, 140),   # 120 + 20
        (45, 100),   # 90 + 10
        (30, 70),    # 60 + 10
        (29, 58),    # no bonus
        (0, 0),
    ])
    def test_session_points(self, minutes, expected):
        assert PointsService.calculate_session_points(minutes * 60) == expected

    def test_partial_minutes_are_floored(self):
        # 10.5 minutes -> floor(21.0), 10.25 minutes -> floor(20.5)
        assert PointsService.calculate_session_points(630) == 21
        assert PointsService.calculate_session_points(615) == 20

    @pytest.mark.parametrize("goal_type,target,priority,expected", [
        ("hours", 10, "medium", 100),      # 50 + 5*10
        ("sessions", 5, "low", 100),       # 50 + 10*5
        ("streak", 7, "medium", 155),      # 50 + 15*7
        ("custom", 99, "medium", 50),
        ("hours", 10, "high", 150),        # 100 * 1.5
        ("hours", 3, "critical", 130),     # 65 * 2
        ("hours", 1.5, "high", 86),        # 57.5 * 1.5 = 86.25
    ])
    def test_goal_completion_points(self, goal_type, target, priority, expected):
        goal = Goal(type=goal_type, target=target, priority=priority)
        assert PointsService.calculate_goal_completion_points(goal) == expected


class TestLedger:
    """Tests for add_points and ledger lifecycle"""

    def test_ledger_created_lazily(self, db_session, now):
        service = PointsService(db_session)

        with pytest.raises(RewardsProfileNotFoundException):
            service.get_ledger(7)

        ledger = service.get_or_create_ledger(7, now)
        assert ledger.total_points == 0
        assert ledger.current_level == 1
        assert ledger.points_to_next_level == 100
        assert service.get_or_create_ledger(7, now) is ledger

    def test_add_points_updates_all_counters(self, db_session, now):
        service = PointsService(db_session)
        ledger = service.get_or_create_ledger(1, now)

        entry = service.add_points(ledger, 40, "Session", "session", related_id=12, now=now)

        assert ledger.total_points == 40
        assert ledger.weekly_points == 40
        assert ledger.monthly_points == 40
        assert entry.related_id == "12"
        assert ledger.points_history == [entry]

    def test_same_key_applies_once(self, db_session, now):
        service = PointsService(db_session)
        ledger = service.get_or_create_ledger(1, now)

        first = service.award_session_points(ledger, "abc", 3900, now)
        db_session.commit()
        second = service.award_session_points(ledger, "abc", 3900, now)

        assert first.amount == 150
        assert second is None
        assert ledger.total_points == 150
        assert len(ledger.points_history) == 1

    def test_goal_completion_award_once(self, db_session, goal_factory, now):
        goal = goal_factory(type="sessions", target=5, status="completed", completed_at=now)
        service = PointsService(db_session)
        ledger = service.get_or_create_ledger(1, now)

        service.award_goal_completion(ledger, goal, now)
        service.award_goal_completion(ledger, goal, now)

        assert ledger.total_points == 100
        assert ledger.goals_completed == 1

    def test_penalty_floors_total_at_zero(self, db_session, now):
        service = PointsService(db_session)
        ledger = service.get_or_create_ledger(1, now)
        service.add_points(ledger, 30, "Session", "session", now=now)
        db_session.commit()

        service.apply_penalty(1, 50, "Abandoned session", now=now)

        assert ledger.total_points == 0
        assert ledger.weekly_points == 0
        assert ledger.points_history[-1].amount == -50

    def test_penalty_keeps_level(self, db_session, now):
        service = PointsService(db_session)
        ledger = service.get_or_create_ledger(1, now)
        service.add_points(ledger, 230, "Sessions", "session", now=now)
        db_session.commit()

        service.apply_penalty(1, 200, "Correction", now=now)

        assert ledger.current_level == 3

    def test_bonus_requires_positive_amount(self, db_session, now):
        with pytest.raises(ValidationException):
            PointsService(db_session).award_bonus_points(1, 0, "nothing", now)

    def test_unknown_source_rejected(self, db_session, now):
        service = PointsService(db_session)
        ledger = service.get_or_create_ledger(1, now)
        with pytest.raises(ValidationException):
            service.add_points(ledger, 5, "?", "lottery", now=now)

    def test_level_up_queues_notification_once_per_level(self, db_session, now):
        notifications = NotificationService(db_session)
        service = PointsService(db_session, notifications)
        ledger = service.get_or_create_ledger(1, now)

        service.add_points(ledger, 150, "Sessions", "session", now=now)
        service.add_points(ledger, 10, "Sessions", "session", now=now)
        db_session.commit()

        level_ups = db_session.query(Notification).filter(Notification.type == "level_up").all()
        assert len(level_ups) == 1
        assert "level 2" in level_ups[0].message

    def test_recent_history_newest_first(self, db_session, now):
        service = PointsService(db_session)
        ledger = service.get_or_create_ledger(1, now)
        for amount in range(1, 13):
            service.add_points(ledger, amount, f"#{amount}", "bonus", now=now)
        db_session.commit()

        recent = service.get_recent_history(ledger)

        assert len(recent) == 10
        assert recent[0].amount == 12


class TestRollover:
    """Tests for weekly/monthly window resets"""

    def test_new_week_resets_weekly_points(self, db_session, now):
        service = PointsService(db_session)
        ledger = service.get_or_create_ledger(1, now)
        service.add_points(ledger, 50, "Session", "session", now=now)

        next_monday = now + timedelta(days=5)
        service.add_points(ledger, 10, "Session", "session", now=next_monday)

        assert ledger.weekly_points == 10
        assert ledger.monthly_points == 60
        assert ledger.total_points == 60

    def test_new_month_resets_monthly_points(self, db_session, now):
        service = PointsService(db_session)
        ledger = service.get_or_create_ledger(1, now)
        service.add_points(ledger, 50, "Session", "session", now=now)

        rolled = service.roll_periods(ledger, datetime(2026, 11, 2).date())

        assert rolled is True
        assert ledger.monthly_points == 0
        assert ledger.weekly_points == 0
        assert ledger.last_monthly_reset == datetime(2026, 11, 1).date()

    def test_same_window_does_not_reset(self, db_session, now):
        service = PointsService(db_session)
        ledger = service.get_or_create_ledger(1, now)
        service.add_points(ledger, 50, "Session", "session", now=now)

        assert service.roll_periods(ledger, now.date() + timedelta(days=1)) is False
        assert ledger.weekly_points == 50
