"""
Notification emitter.
Turns ledger and monitor events into persisted outbox records and hands
unsent batches to an external delivery collaborator.
"""
import logging
from datetime import datetime
from typing import List, Optional, Protocol
from sqlalchemy.orm import Session

from study_guardian.models import Goal, Notification
from study_guardian.repositories.notification_repository import NotificationRepository
from study_guardian.constants import (
    NOTIFICATION_MILESTONE_ACHIEVED, NOTIFICATION_GOAL_COMPLETED,
    NOTIFICATION_BEHIND_SCHEDULE
)

logger = logging.getLogger("study_guardian.notifications")


class NotificationDelivery(Protocol):
    """Outbound channel (email, push, in-app). Raises on failure."""

    def deliver(self, notifications: List[Notification]) -> None:
        ...


class LoggingDelivery:
    """Default delivery: writes the batch to the log"""

    def deliver(self, notifications: List[Notification]) -> None:
        for notification in notifications:
            logger.info(
                f"Deliver to user {notification.user_id}: "
                f"[{notification.type}] {notification.title} - {notification.message}"
            )


class NotificationService:
    """Service for queueing and dispatching notifications"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = NotificationRepository(db)

    def queue(
        self,
        user_id: int,
        notification_type: str,
        title: str,
        message: str,
        goal: Optional[Goal] = None,
        dedupe_key: Optional[str] = None
    ) -> Optional[Notification]:
        """
        Append a notification to the outbox.

        Args:
            user_id: Recipient
            notification_type: One of the NOTIFICATION_* constants
            title: Short title
            message: Body text
            goal: Goal the notification belongs to, if any
            dedupe_key: Identity of the notification; a second queue with the
                same key is ignored

        Returns:
            The new notification, or None if the key was already queued
        """
        if dedupe_key:
            self.repo.flush()
            if self.repo.get_by_dedupe_key(dedupe_key):
                return None

        notification = Notification(
            user_id=user_id,
            type=notification_type,
            title=title,
            message=message,
            dedupe_key=dedupe_key,
            sent=False
        )
        if goal is not None:
            goal.notifications.append(notification)
        else:
            self.repo.add(notification)
        return notification

    def emit_milestone_notifications(self, goal: Goal) -> List[Notification]:
        """Queue one notification per milestone whose completion is still pending"""
        self.repo.flush()
        queued = []
        for milestone in goal.milestones:
            if not milestone.notification_pending:
                continue
            notification = self.queue(
                goal.user_id,
                NOTIFICATION_MILESTONE_ACHIEVED,
                "Milestone Achieved! 🎯",
                f'You reached "{milestone.title}" in "{goal.title}"',
                goal=goal,
                dedupe_key=f"milestone:{milestone.id}"
            )
            milestone.notification_pending = False
            if notification is not None:
                queued.append(notification)
        return queued

    def emit_goal_completed(self, goal: Goal) -> Optional[Notification]:
        return self.queue(
            goal.user_id,
            NOTIFICATION_GOAL_COMPLETED,
            "Goal Completed! 🏆",
            f'Congratulations! You completed "{goal.title}"',
            goal=goal,
            dedupe_key=f"goal_completed:{goal.id}"
        )

    def emit_behind_schedule(self, goal: Goal, now: datetime) -> Optional[Notification]:
        """At most one alert per goal per calendar day"""
        return self.queue(
            goal.user_id,
            NOTIFICATION_BEHIND_SCHEDULE,
            "Behind Schedule ⏰",
            f'"{goal.title}" is behind schedule. Check your catch-up suggestions.',
            goal=goal,
            dedupe_key=f"behind_schedule:{goal.id}:{now.date().isoformat()}"
        )

    def get_unsent_for_user(self, user_id: int) -> List[Notification]:
        self.repo.flush()
        return self.repo.get_unsent_for_user(user_id)

    def get_recent_for_user(self, user_id: int, limit: int = 50) -> List[Notification]:
        return self.repo.get_for_user(user_id, limit)

    def dispatch(
        self,
        notifications: List[Notification],
        delivery: Optional[NotificationDelivery] = None,
        now: Optional[datetime] = None
    ) -> int:
        """
        Hand one batch to the delivery collaborator and mark it sent.

        A failed delivery leaves every record unsent so the next dispatch
        picks it up again.

        Returns:
            Number of notifications marked sent
        """
        pending = [n for n in notifications if not n.sent]
        if not pending:
            return 0

        delivery = delivery or LoggingDelivery()
        now = now or datetime.now()

        try:
            delivery.deliver(pending)
        except Exception as e:
            logger.error(f"Notification delivery failed for {len(pending)} notifications: {e}")
            return 0

        flipped = self.repo.mark_sent([n.id for n in pending], now)
        self.repo.commit()
        logger.info(f"Dispatched {flipped} notifications")
        return flipped

    def dispatch_pending_for_user(
        self,
        user_id: int,
        delivery: Optional[NotificationDelivery] = None,
        now: Optional[datetime] = None
    ) -> List[Notification]:
        """Dispatch every unsent notification of one user as a single batch"""
        batch = self.get_unsent_for_user(user_id)
        self.dispatch(batch, delivery, now)
        return batch
