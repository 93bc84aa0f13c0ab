"""
Points repository - Data access layer for rewards models.
Handles queries for user ledgers, the reward catalog and recorded study activity.
"""
from datetime import date
from typing import List, Optional
from sqlalchemy import and_, func

from study_guardian.models import (
    UserRewards, PointsLedgerEntry, Reward, StudyActivity
)
from .base_repository import BaseRepository


class UserRewardsRepository(BaseRepository):
    """Repository for UserRewards data access"""

    entity_name = "rewards ledger"

    def get_by_user(self, user_id: int) -> Optional[UserRewards]:
        """Get a user's ledger"""
        return self.db.query(UserRewards).filter(UserRewards.user_id == user_id).first()

    def get_all(self) -> List[UserRewards]:
        return self.db.query(UserRewards).order_by(UserRewards.id).all()

    def get_top(self, points_expr, limit: int, public_only: bool = True) -> List[UserRewards]:
        """Ledgers sorted descending by a points column or expression"""
        query = self.db.query(UserRewards)
        if public_only:
            query = query.filter(UserRewards.is_public == True)
        return query.order_by(points_expr.desc(), UserRewards.id).limit(limit).all()

    def count_above(self, points_expr, points: int) -> int:
        """Number of ledgers with strictly more points"""
        return self.db.query(UserRewards).filter(points_expr > points).count()

    def has_ledger_key(self, idempotency_key: str) -> bool:
        return self.db.query(PointsLedgerEntry).filter(
            PointsLedgerEntry.idempotency_key == idempotency_key
        ).first() is not None


class RewardRepository(BaseRepository):
    """Repository for the static Reward catalog"""

    entity_name = "reward catalog"

    def get_active(self) -> List[Reward]:
        return self.db.query(Reward).filter(
            Reward.is_active == True
        ).order_by(Reward.display_order, Reward.id).all()

    def get_active_by_criteria(self, criteria_type: str) -> List[Reward]:
        return self.db.query(Reward).filter(
            and_(
                Reward.criteria_type == criteria_type,
                Reward.is_active == True
            )
        ).order_by(Reward.display_order, Reward.id).all()

    def get_by_name(self, name: str) -> Optional[Reward]:
        return self.db.query(Reward).filter(Reward.name == name).first()


class StudyActivityRepository(BaseRepository):
    """Repository for recorded study sessions"""

    entity_name = "study activity"

    def get_by_session(self, session_id: str) -> Optional[StudyActivity]:
        return self.db.query(StudyActivity).filter(
            StudyActivity.session_id == session_id
        ).first()

    def count_between(self, user_id: int, start: date, end: date) -> int:
        """Sessions recorded on days in [start, end]"""
        return self.db.query(StudyActivity).filter(
            and_(
                StudyActivity.user_id == user_id,
                StudyActivity.day >= start,
                StudyActivity.day <= end
            )
        ).count()

    def seconds_between(self, user_id: int, start: date, end: date) -> int:
        """Total studied seconds on days in [start, end]"""
        total = self.db.query(func.sum(StudyActivity.duration_seconds)).filter(
            and_(
                StudyActivity.user_id == user_id,
                StudyActivity.day >= start,
                StudyActivity.day <= end
            )
        ).scalar()
        return total or 0

    def subject_totals(self, user_id: int, since: date, limit: int) -> List[tuple]:
        """(subject, sessions, seconds) per subject since a day, busiest first"""
        sessions = func.count(StudyActivity.id)
        return self.db.query(
            StudyActivity.subject,
            sessions,
            func.sum(StudyActivity.duration_seconds)
        ).filter(
            and_(
                StudyActivity.user_id == user_id,
                StudyActivity.day >= since,
                StudyActivity.subject.isnot(None)
            )
        ).group_by(StudyActivity.subject).order_by(
            sessions.desc(), StudyActivity.subject
        ).limit(limit).all()
