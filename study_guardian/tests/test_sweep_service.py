"""
Tests for SweepService.

Every sweep is re-run to check that nothing is applied twice.
"""
from datetime import date, datetime, timedelta

from study_guardian.models import Goal, GoalProgressEntry, Notification, UserRewards
from study_guardian.services.sweep_service import SweepService


def add_ledger(db_session, today, **overrides):
    values = {
        "user_id": 1,
        "total_points": 300,
        "weekly_points": 50,
        "monthly_points": 80,
        "last_weekly_reset": today - timedelta(days=today.weekday()),
        "last_monthly_reset": today.replace(day=1),
        "current_streak": 4,
        "longest_streak": 6,
        "last_activity_day": today - timedelta(days=1),
    }
    values.update(overrides)
    ledger = UserRewards(**values)
    db_session.add(ledger)
    db_session.commit()
    return ledger


def streak_goal(goal_factory, last_day, progress=3):
    goal = goal_factory(type="streak", target=30, progress_unit="days", current_progress=progress)
    if last_day is not None:
        goal.progress_history.append(
            GoalProgressEntry(day=last_day, value=1, source="session", session_key="x")
        )
    return goal


class TestDailyStreakSweep:
    """Tests for daily_streak_sweep function"""

    def test_active_streak_is_kept(self, db_session, now, today):
        ledger = add_ledger(db_session, today)

        summary = SweepService(db_session).daily_streak_sweep(now)

        assert summary["streaks_broken"] == 0
        db_session.refresh(ledger)
        assert ledger.current_streak == 4

    def test_stale_streak_broken_once(self, db_session, now, today):
        ledger = add_ledger(db_session, today, last_activity_day=today - timedelta(days=2))
        service = SweepService(db_session)

        first = service.daily_streak_sweep(now)
        second = service.daily_streak_sweep(now)

        assert first["streaks_broken"] == 1
        assert second["streaks_broken"] == 0
        db_session.refresh(ledger)
        assert ledger.current_streak == 0
        assert ledger.longest_streak == 6

    def test_windows_roll_over(self, db_session, today):
        ledger = add_ledger(db_session, today)
        service = SweepService(db_session)
        next_month = datetime(2026, 11, 2, 0, 5)

        summary = service.daily_streak_sweep(next_month)

        assert summary["ledgers_rolled"] == 1
        db_session.refresh(ledger)
        assert ledger.weekly_points == 0
        assert ledger.monthly_points == 0
        assert ledger.total_points == 300
        assert ledger.last_monthly_reset == date(2026, 11, 1)
        assert service.daily_streak_sweep(next_month)["ledgers_rolled"] == 0

    def test_lapsed_streak_goal_reset_and_paused(self, db_session, goal_factory, now, today):
        goal = streak_goal(goal_factory, today - timedelta(days=3))
        db_session.commit()

        summary = SweepService(db_session).daily_streak_sweep(now)

        assert summary["goals_reset"] == 1
        db_session.refresh(goal)
        assert goal.current_progress == 0
        assert goal.status == "paused"
        assert len(goal.progress_history) == 1

    def test_streak_goal_with_recent_progress_kept(self, db_session, goal_factory, now, yesterday):
        goal = streak_goal(goal_factory, yesterday)
        db_session.commit()

        summary = SweepService(db_session).daily_streak_sweep(now)

        assert summary["goals_reset"] == 0
        db_session.refresh(goal)
        assert goal.current_progress == 3
        assert goal.status == "active"

    def test_empty_streak_goal_left_alone(self, db_session, goal_factory, now):
        goal = streak_goal(goal_factory, None, progress=0)

        assert SweepService(db_session).daily_streak_sweep(now)["goals_reset"] == 0
        db_session.refresh(goal)
        assert goal.status == "active"

    def test_rerun_does_not_reset_twice(self, db_session, goal_factory, now, today):
        streak_goal(goal_factory, today - timedelta(days=3))
        db_session.commit()
        service = SweepService(db_session)

        service.daily_streak_sweep(now)

        assert service.daily_streak_sweep(now)["goals_reset"] == 0


class TestScheduleAlertSweep:
    """Tests for schedule_alert_sweep function"""

    def test_behind_goal_alerted_once_per_day(self, db_session, goal_factory, delivery, now):
        behind = goal_factory(
            target=20, current_progress=5,
            start_date=now - timedelta(days=5), due_date=now + timedelta(days=2)
        )
        goal_factory(
            target=20, current_progress=15,
            start_date=now - timedelta(days=5), due_date=now + timedelta(days=2)
        )
        goal_factory(due_date=None)
        service = SweepService(db_session, delivery)

        first = service.schedule_alert_sweep(now)
        second = service.schedule_alert_sweep(now + timedelta(hours=1))

        assert first == {"goals_checked": 2, "goals_overdue": 1, "notifications_dispatched": 1}
        assert second["notifications_dispatched"] == 0
        assert delivery.types == ["behind_schedule"]
        db_session.refresh(behind)
        assert behind.is_overdue is True
        assert len(behind.catch_up_suggestions) > 0

    def test_failed_delivery_retried_by_next_sweep(self, db_session, goal_factory,
                                                   failing_delivery, delivery, now):
        goal_factory(
            target=20, current_progress=5,
            start_date=now - timedelta(days=5), due_date=now + timedelta(days=2)
        )

        SweepService(db_session, failing_delivery).schedule_alert_sweep(now)
        summary = SweepService(db_session, delivery).schedule_alert_sweep(now)

        assert summary["notifications_dispatched"] == 1
        assert db_session.query(Notification).count() == 1


class TestWeeklySummarySweep:
    """Tests for weekly_summary_sweep function"""

    def test_one_summary_per_goal_per_week(self, db_session, goal_factory, delivery, now):
        goal = goal_factory(title="Read", target=10)
        goal.progress_history.append(
            GoalProgressEntry(day=now.date() - timedelta(days=2), value=2.5, source="manual", session_key="")
        )
        goal_factory(title="Write", user_id=2)
        goal_factory(title="Old", status="completed")
        db_session.commit()
        service = SweepService(db_session, delivery)

        first = service.weekly_summary_sweep(now)
        second = service.weekly_summary_sweep(now + timedelta(hours=3))

        assert first == {"summaries_queued": 2, "notifications_dispatched": 2}
        assert second == {"summaries_queued": 0, "notifications_dispatched": 0}
        summary = db_session.query(Notification).filter(Notification.goal_id == goal.id).one()
        assert summary.dedupe_key == f"weekly_summary:{goal.id}:2026-W42"
        assert "2.5 hours" in summary.message

    def test_next_week_gets_new_summary(self, db_session, goal_factory, now):
        goal_factory()
        service = SweepService(db_session)

        service.weekly_summary_sweep(now)
        summary = service.weekly_summary_sweep(now + timedelta(days=7))

        assert summary["summaries_queued"] == 1
        assert db_session.query(Goal).count() == 1
        assert db_session.query(Notification).count() == 2
