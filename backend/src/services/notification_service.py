"""
Notification store.

Durable per-user notifications: append-only creation, newest-first listing
and idempotent read marking. Live delivery is handled by
NotificationDispatcher, which always writes through this service first.
"""

import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from core.exceptions import NotFoundError
from models import Notification
from utils.datetime_utils import utc_now

logger = logging.getLogger(__name__)


class NotificationService:
    """Service for persisted in-app notifications."""

    @staticmethod
    def create(
        db: Session,
        user_id: int,
        title: str,
        message: str,
        link: Optional[str] = None
    ) -> Notification:
        """
        Persist a new unread notification for a user.

        The row is flushed so it has an id; committing is left to the caller
        so that a batch of notifications lands in one transaction.
        """
        notification = Notification(
            user_id=user_id,
            title=title,
            message=message,
            link=link,
            is_read=False,
            created_at=utc_now(),
        )
        db.add(notification)
        db.flush()
        return notification

    @staticmethod
    def list_for_user(db: Session, user_id: int, unread_only: bool = False) -> List[Notification]:
        """
        Notifications owned by the user, newest first.

        Args:
            db: Database session
            user_id: Owner of the notifications
            unread_only: If True, only return notifications not yet read
        """
        query = db.query(Notification).filter(Notification.user_id == user_id)
        if unread_only:
            query = query.filter(Notification.is_read == False)  # noqa: E712
        return query.order_by(Notification.created_at.desc(), Notification.id.desc()).all()

    @staticmethod
    def mark_read(db: Session, notification_id: int, user_id: Optional[int] = None) -> Notification:
        """
        Mark a notification as read.

        Idempotent: marking an already-read notification is a no-op.

        Args:
            db: Database session
            notification_id: Notification to mark
            user_id: If given, the notification must belong to this user

        Raises:
            NotFoundError: If the notification does not exist (or is not the user's)
        """
        query = db.query(Notification).filter(Notification.id == notification_id)
        if user_id is not None:
            query = query.filter(Notification.user_id == user_id)
        notification = query.first()
        if not notification:
            raise NotFoundError("Notification not found")

        if not notification.is_read:
            notification.is_read = True
            db.commit()
            logger.debug(f"Notification {notification_id} marked read")
        return notification
