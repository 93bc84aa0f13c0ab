"""
Notification repository - Data access layer for the notification outbox.
"""
from datetime import datetime
from typing import List, Optional
from sqlalchemy import and_

from study_guardian.models import Notification
from .base_repository import BaseRepository


class NotificationRepository(BaseRepository):
    """Repository for Notification data access"""

    entity_name = "notification"

    def get_by_dedupe_key(self, dedupe_key: str) -> Optional[Notification]:
        return self.db.query(Notification).filter(
            Notification.dedupe_key == dedupe_key
        ).first()

    def get_unsent_for_user(self, user_id: int) -> List[Notification]:
        return self.db.query(Notification).filter(
            and_(
                Notification.user_id == user_id,
                Notification.sent == False
            )
        ).order_by(Notification.id).all()

    def get_unsent(self) -> List[Notification]:
        return self.db.query(Notification).filter(
            Notification.sent == False
        ).order_by(Notification.id).all()

    def get_for_user(self, user_id: int, limit: int = 50) -> List[Notification]:
        return self.db.query(Notification).filter(
            Notification.user_id == user_id
        ).order_by(Notification.id.desc()).limit(limit).all()

    def mark_sent(self, notification_ids: List[int], sent_at: datetime) -> int:
        """
        Flip `sent` for the given notifications.

        Only rows still unsent are touched, so each flag flips exactly once.

        Returns:
            Number of rows flipped
        """
        if not notification_ids:
            return 0
        flipped = self.db.query(Notification).filter(
            and_(
                Notification.id.in_(notification_ids),
                Notification.sent == False
            )
        ).update({"sent": True, "sent_at": sent_at}, synchronize_session="fetch")
        return flipped
