"""
Tests for RewardsService study suggestions.
"""
from datetime import timedelta

from study_guardian.models import UserRewards
from study_guardian.services.rewards_service import RewardsService


def add_ledger(db_session, **overrides):
    values = {
        "user_id": 1,
        "current_streak": 0,
        "longest_streak": 0,
        "sessions_completed": 4,
        "study_hours": 4.0,
    }
    values.update(overrides)
    ledger = UserRewards(**values)
    db_session.add(ledger)
    db_session.commit()
    return ledger


def suggestion_types(db_session, now):
    return [s["type"] for s in RewardsService(db_session).get_study_suggestions(1, now)]


class TestStudySuggestions:
    """Tests for get_study_suggestions function"""

    def test_no_ledger_gets_streak_start(self, db_session, now):
        assert suggestion_types(db_session, now) == ["streak_start"]

    def test_studied_today_maintain_only(self, db_session, now, today):
        add_ledger(db_session, current_streak=3, last_activity_day=today)

        suggestions = RewardsService(db_session).get_study_suggestions(1, now)

        assert [s["type"] for s in suggestions] == ["streak_maintain"]
        assert suggestions[0]["title"] == "4 Days to 7-Day Badge!"

    def test_not_yet_studied_today_warns_first(self, db_session, now, yesterday):
        add_ledger(db_session, current_streak=3, last_activity_day=yesterday)

        assert suggestion_types(db_session, now) == ["streak_warning", "streak_maintain"]

    def test_long_streak_only_warns(self, db_session, now, yesterday):
        add_ledger(db_session, current_streak=10, last_activity_day=yesterday)

        assert suggestion_types(db_session, now) == ["streak_warning"]

    def test_lapsed_streak_counts_as_none(self, db_session, now, today):
        """A streak the daily sweep has not zeroed yet"""
        add_ledger(db_session, current_streak=5, last_activity_day=today - timedelta(days=3))

        assert suggestion_types(db_session, now) == ["streak_start"]

    def test_short_sessions_suggest_longer_ones(self, db_session, now, today):
        add_ledger(db_session, current_streak=1, last_activity_day=today,
                   sessions_completed=6, study_hours=1.5)

        assert suggestion_types(db_session, now) == ["streak_maintain", "session_length"]
