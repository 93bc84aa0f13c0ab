"""
Reward catalog service.
Seeds the badge catalog, matches it against a user's statistics and awards
eligible rewards exactly once (once per window for recurring rewards).
"""
import logging
import math
from datetime import datetime
from typing import Dict, List, Optional
from sqlalchemy.orm import Session

from study_guardian.models import Reward, UserRewards, EarnedReward
from study_guardian.repositories.points_repository import (
    RewardRepository, StudyActivityRepository
)
from study_guardian.repositories.goal_repository import GoalRepository
from study_guardian.services.date_service import DateService
from study_guardian.constants import (
    CRITERIA_SESSIONS_COUNT, CRITERIA_STUDY_HOURS, CRITERIA_STREAK_DAYS,
    CRITERIA_GOALS_COMPLETED, TIMEFRAMES, TIMEFRAME_ALLTIME, TIMEFRAME_NONE,
    POINTS_SOURCE_ACHIEVEMENT, NOTIFICATION_REWARD_EARNED
)

logger = logging.getLogger("study_guardian.rewards")


DEFAULT_CATALOG = [
    # Streak badges
    {"name": "First Flame", "description": "Study for 3 consecutive days", "type": "badge",
     "category": "streak", "icon": "flame", "points_value": 25, "rarity": "common",
     "criteria_type": CRITERIA_STREAK_DAYS, "threshold": 3, "display_order": 1},
    {"name": "Week Warrior", "description": "Maintain a 7-day study streak", "type": "badge",
     "category": "streak", "icon": "flame", "points_value": 75, "rarity": "uncommon",
     "criteria_type": CRITERIA_STREAK_DAYS, "threshold": 7, "display_order": 2},
    {"name": "Fortnight Focus", "description": "Maintain a 14-day study streak", "type": "badge",
     "category": "streak", "icon": "flame", "points_value": 150, "rarity": "rare",
     "criteria_type": CRITERIA_STREAK_DAYS, "threshold": 14, "display_order": 3},
    {"name": "Monthly Master", "description": "Maintain a 30-day study streak", "type": "badge",
     "category": "streak", "icon": "trophy", "points_value": 300, "rarity": "epic",
     "criteria_type": CRITERIA_STREAK_DAYS, "threshold": 30, "display_order": 4},
    {"name": "Legendary Learner", "description": "Achieve a 100-day study streak", "type": "achievement",
     "category": "streak", "icon": "crown", "points_value": 1000, "rarity": "legendary",
     "criteria_type": CRITERIA_STREAK_DAYS, "threshold": 100, "display_order": 5},

    # Session badges
    {"name": "First Steps", "description": "Complete your first study session", "type": "badge",
     "category": "study", "icon": "star", "points_value": 10, "rarity": "common",
     "criteria_type": CRITERIA_SESSIONS_COUNT, "threshold": 1, "display_order": 10},
    {"name": "Getting Started", "description": "Complete 10 study sessions", "type": "badge",
     "category": "study", "icon": "star", "points_value": 50, "rarity": "common",
     "criteria_type": CRITERIA_SESSIONS_COUNT, "threshold": 10, "display_order": 11},
    {"name": "Dedicated Student", "description": "Complete 50 study sessions", "type": "badge",
     "category": "study", "icon": "award", "points_value": 150, "rarity": "uncommon",
     "criteria_type": CRITERIA_SESSIONS_COUNT, "threshold": 50, "display_order": 12},
    {"name": "Century Scholar", "description": "Complete 100 study sessions", "type": "achievement",
     "category": "study", "icon": "award", "points_value": 300, "rarity": "rare",
     "criteria_type": CRITERIA_SESSIONS_COUNT, "threshold": 100, "display_order": 13},
    {"name": "Master Scholar", "description": "Complete 500 study sessions", "type": "achievement",
     "category": "study", "icon": "trophy", "points_value": 750, "rarity": "epic",
     "criteria_type": CRITERIA_SESSIONS_COUNT, "threshold": 500, "display_order": 14},

    # Study hours badges
    {"name": "Hour Hero", "description": "Accumulate 1 hour of total study time", "type": "badge",
     "category": "study", "icon": "clock", "points_value": 20, "rarity": "common",
     "criteria_type": CRITERIA_STUDY_HOURS, "threshold": 1, "display_order": 20},
    {"name": "Time Investor", "description": "Accumulate 10 hours of study time", "type": "badge",
     "category": "study", "icon": "clock", "points_value": 100, "rarity": "uncommon",
     "criteria_type": CRITERIA_STUDY_HOURS, "threshold": 10, "display_order": 21},
    {"name": "Study Marathon", "description": "Accumulate 50 hours of study time", "type": "achievement",
     "category": "study", "icon": "target", "points_value": 250, "rarity": "rare",
     "criteria_type": CRITERIA_STUDY_HOURS, "threshold": 50, "display_order": 22},
    {"name": "Century Hours", "description": "Accumulate 100 hours of study time", "type": "achievement",
     "category": "study", "icon": "zap", "points_value": 500, "rarity": "epic",
     "criteria_type": CRITERIA_STUDY_HOURS, "threshold": 100, "display_order": 23},

    # Goal badges
    {"name": "Goal Getter", "description": "Complete your first goal", "type": "badge",
     "category": "goals", "icon": "target", "points_value": 25, "rarity": "common",
     "criteria_type": CRITERIA_GOALS_COMPLETED, "threshold": 1, "display_order": 30},
    {"name": "Goal Crusher", "description": "Complete 10 goals", "type": "badge",
     "category": "goals", "icon": "target", "points_value": 100, "rarity": "uncommon",
     "criteria_type": CRITERIA_GOALS_COMPLETED, "threshold": 10, "display_order": 31},
    {"name": "Ambitious Achiever", "description": "Complete 25 goals", "type": "achievement",
     "category": "goals", "icon": "award", "points_value": 250, "rarity": "rare",
     "criteria_type": CRITERIA_GOALS_COMPLETED, "threshold": 25, "display_order": 32},
    {"name": "Goal Legend", "description": "Complete 50 goals", "type": "achievement",
     "category": "goals", "icon": "trophy", "points_value": 500, "rarity": "epic",
     "criteria_type": CRITERIA_GOALS_COMPLETED, "threshold": 50, "display_order": 33},
]


class RewardCatalogService:
    """Service for matching the reward catalog against user statistics"""

    def __init__(self, db: Session, points_service, notification_service=None):
        self.db = db
        self.reward_repo = RewardRepository(db)
        self.activity_repo = StudyActivityRepository(db)
        self.goal_repo = GoalRepository(db)
        self.points_service = points_service
        self.notification_service = notification_service

    def seed_default_catalog(self) -> int:
        """
        Insert the default catalog entries that are missing, by name.

        Returns:
            Number of entries created
        """
        created = 0
        for data in DEFAULT_CATALOG:
            if self.reward_repo.get_by_name(data["name"]):
                continue
            self.reward_repo.add(Reward(timeframe=TIMEFRAME_ALLTIME, is_active=True,
                                        is_recurring=False, **data))
            created += 1
        self.reward_repo.commit()
        if created:
            logger.info(f"Seeded {created} catalog rewards")
        return created

    def stats_by_timeframe(
        self,
        ledger: UserRewards,
        criteria_type: str,
        now: Optional[datetime] = None
    ) -> Dict[str, float]:
        """
        Current value of one criteria for every timeframe.

        Windowed values come from recorded activity and completion dates;
        alltime and none use the lifetime statistics. Streaks have no window,
        so every timeframe sees the current streak.
        """
        now = now or datetime.now()
        today = now.date()
        stats = {}
        self.activity_repo.flush()

        for timeframe in TIMEFRAMES:
            start = DateService.window_start(timeframe, today)

            if criteria_type == CRITERIA_STREAK_DAYS:
                value = ledger.current_streak or 0
            elif start is None:
                value = self._lifetime_value(ledger, criteria_type)
            elif criteria_type == CRITERIA_SESSIONS_COUNT:
                value = self.activity_repo.count_between(ledger.user_id, start, today)
            elif criteria_type == CRITERIA_STUDY_HOURS:
                seconds = self.activity_repo.seconds_between(ledger.user_id, start, today)
                value = round(seconds / 3600, 2)
            elif criteria_type == CRITERIA_GOALS_COMPLETED:
                range_start, _ = DateService.get_day_range(start)
                _, range_end = DateService.get_day_range(today)
                value = self.goal_repo.count_completed_between(ledger.user_id, range_start, range_end)
            else:
                value = 0
            stats[timeframe] = value

        return stats

    @staticmethod
    def _lifetime_value(ledger: UserRewards, criteria_type: str) -> float:
        if criteria_type == CRITERIA_SESSIONS_COUNT:
            return ledger.sessions_completed or 0
        if criteria_type == CRITERIA_STUDY_HOURS:
            return ledger.study_hours or 0
        if criteria_type == CRITERIA_STREAK_DAYS:
            return ledger.current_streak or 0
        if criteria_type == CRITERIA_GOALS_COMPLETED:
            return ledger.goals_completed or 0
        return 0

    @staticmethod
    def period_key(reward: Reward, value: float, now: datetime) -> str:
        """
        Identity of one award of a reward.

        One-time rewards have a single award. Recurring windowed rewards can
        be earned once per window; recurring alltime rewards once per
        multiple of the threshold.
        """
        if not reward.is_recurring:
            return ""
        if reward.timeframe in (TIMEFRAME_ALLTIME, TIMEFRAME_NONE):
            return f"x{math.floor(value / reward.threshold)}"
        return DateService.window_key(reward.timeframe, now.date())

    @staticmethod
    def has_reward(ledger: UserRewards, reward_id: int, period_key: str = "") -> bool:
        return any(
            e.reward_id == reward_id and e.period_key == period_key
            for e in ledger.earned_rewards
        )

    def check_eligible_rewards(
        self,
        ledger: UserRewards,
        criteria_type: str,
        stats: Optional[Dict[str, float]] = None,
        now: Optional[datetime] = None
    ) -> List[Reward]:
        """
        Award every active reward of a criteria type whose threshold is met.

        Re-running with unchanged stats awards nothing.

        Args:
            ledger: User's rewards ledger
            criteria_type: Criteria to evaluate
            stats: Value per timeframe, computed when omitted
            now: Current time

        Returns:
            Rewards newly earned by this call
        """
        now = now or datetime.now()
        if stats is None:
            stats = self.stats_by_timeframe(ledger, criteria_type, now)

        newly_earned = []
        for reward in self.reward_repo.get_active_by_criteria(criteria_type):
            value = stats.get(reward.timeframe, stats.get(TIMEFRAME_ALLTIME, 0))
            if value < reward.threshold:
                continue

            period_key = self.period_key(reward, value, now)
            if self.has_reward(ledger, reward.id, period_key):
                continue

            self._award(ledger, reward, period_key, now)
            newly_earned.append(reward)

        return newly_earned

    def _award(self, ledger: UserRewards, reward: Reward, period_key: str, now: datetime) -> None:
        ledger.earned_rewards.append(EarnedReward(
            reward_id=reward.id,
            period_key=period_key,
            earned_at=now,
            progress=100
        ))
        award_key = f"reward:{ledger.user_id}:{reward.id}:{period_key}"
        self.points_service.add_points(
            ledger,
            reward.points_value,
            f"Earned reward: {reward.name}",
            POINTS_SOURCE_ACHIEVEMENT,
            related_id=reward.id,
            idempotency_key=award_key,
            now=now
        )
        logger.info(f"User {ledger.user_id} earned '{reward.name}' ({reward.points_value} points)")

        if self.notification_service is not None:
            self.notification_service.queue(
                ledger.user_id,
                NOTIFICATION_REWARD_EARNED,
                "Reward Earned! 🏅",
                f'You earned "{reward.name}": {reward.description}',
                dedupe_key=award_key
            )

    def check_all_criteria(self, ledger: UserRewards, now: Optional[datetime] = None) -> List[Reward]:
        """Run the matcher for every criteria type"""
        earned = []
        for criteria_type in (CRITERIA_SESSIONS_COUNT, CRITERIA_STUDY_HOURS,
                              CRITERIA_STREAK_DAYS, CRITERIA_GOALS_COMPLETED):
            earned.extend(self.check_eligible_rewards(ledger, criteria_type, now=now))
        return earned

    def get_rewards_progress(self, ledger: UserRewards, now: Optional[datetime] = None) -> List[dict]:
        """
        Progress towards every reward not yet held, closest first.

        Recurring rewards count as held only within the current window.
        """
        now = now or datetime.now()
        stats_cache = {}
        progress = []

        for reward in self.reward_repo.get_active():
            if reward.criteria_type not in stats_cache:
                stats_cache[reward.criteria_type] = self.stats_by_timeframe(
                    ledger, reward.criteria_type, now
                )
            stats = stats_cache[reward.criteria_type]
            value = stats.get(reward.timeframe, stats.get(TIMEFRAME_ALLTIME, 0))

            if reward.is_recurring and reward.timeframe in (TIMEFRAME_ALLTIME, TIMEFRAME_NONE):
                # next multiple of the threshold
                target = reward.threshold * (math.floor(value / reward.threshold) + 1)
            else:
                if self.has_reward(ledger, reward.id, self.period_key(reward, value, now)):
                    continue
                target = reward.threshold

            percent = min(round(value / target * 100), 100)
            progress.append({
                "reward": reward,
                "current_value": value,
                "target_value": target,
                "progress_percent": percent,
                "timeframe": reward.timeframe
            })

        progress.sort(key=lambda p: p["progress_percent"], reverse=True)
        return progress
