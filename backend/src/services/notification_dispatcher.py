"""
Notification dispatcher.

Every notification is written to the notification store and committed before
live delivery is attempted. Live delivery is best effort: it is scheduled on
the event loop after the commit, never blocks the caller and never fails the
operation that produced the notification.
"""

import asyncio
import logging
import threading
import uuid
from typing import Any, Coroutine, Dict, List, Optional, Sequence, Set, Tuple, Union

from pydantic import BaseModel
from sqlalchemy.orm import Session

from core.constants import (
    EVENT_BROADCAST_NOTIFICATION,
    EVENT_NEW_NOTIFICATION,
    EVENT_ROLE_NOTIFICATION,
)
from models import Notification, User, UserStatus
from services.appointment_notification_builder import (
    AppointmentNotificationBuilder,
    NotificationRequest,
)
from services.connection_registry import ConnectionRegistry, get_connection_registry
from services.domain_events import DomainEvent
from services.notification_service import NotificationService
from utils.datetime_utils import to_iso_string, utc_now

logger = logging.getLogger(__name__)


class NotificationPayload(BaseModel):
    """Wire shape of a notification pushed over the real-time channel."""
    id: Union[int, str]
    title: str
    message: str
    link: Optional[str] = None
    isRead: bool
    createdAt: str


def notification_payload(notification: Notification) -> Dict[str, Any]:
    """Serialize a stored notification for the wire (link omitted when unset)."""
    payload = NotificationPayload(
        id=notification.id,
        title=notification.title,
        message=notification.message,
        link=notification.link,
        isRead=notification.is_read,
        createdAt=to_iso_string(notification.created_at),
    )
    return payload.model_dump(exclude_none=True)


# (user_id, event name, frame data)
Delivery = Tuple[int, str, Dict[str, Any]]


class NotificationDispatcher:
    """
    Persists notifications then pushes them to live sessions.

    Delivery runs as a task on the current event loop when called from
    async code, or is handed to the loop bound with bind_loop() when called
    from a worker thread (sync FastAPI endpoints). Without either, live
    delivery is skipped; the stored notification is still listed later.
    """

    def __init__(self, registry: Optional[ConnectionRegistry] = None):
        self.registry = registry or get_connection_registry()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._tasks: Set["asyncio.Task[None]"] = set()

    def bind_loop(self, loop: Optional[asyncio.AbstractEventLoop]) -> None:
        self._loop = loop

    def notify_user(
        self,
        db: Session,
        user_id: int,
        title: str,
        message: str,
        link: Optional[str] = None
    ) -> Notification:
        """
        Persist one notification for a user and push it if they are live.

        Raises:
            SQLAlchemyError: If the notification could not be stored
        """
        try:
            notification = NotificationService.create(db, user_id, title, message, link)
            payload = notification_payload(notification)
            db.commit()
        except Exception:
            db.rollback()
            raise

        self._schedule([(user_id, EVENT_NEW_NOTIFICATION, payload)])
        return notification

    def notify_role(
        self,
        db: Session,
        role: str,
        title: str,
        message: str,
        link: Optional[str] = None
    ) -> List[Notification]:
        """
        Persist one notification per active user with the role, then push
        a role_notification frame to each recipient that is live.
        """
        try:
            notifications, deliveries = self._persist_for_role(db, role, title, message, link)
            db.commit()
        except Exception:
            db.rollback()
            raise

        logger.info(f"Role notification '{title}' stored for {len(notifications)} {role.lower()} user(s)")
        self._schedule(deliveries)
        return notifications

    def broadcast(self, title: str, message: str, link: Optional[str] = None) -> Dict[str, Any]:
        """
        Push a notification to every live session.

        Broadcasts are not persisted; offline users never see them.
        """
        payload = NotificationPayload(
            id=uuid.uuid4().hex,
            title=title,
            message=message,
            link=link,
            isRead=False,
            createdAt=to_iso_string(utc_now()),
        ).model_dump(exclude_none=True)
        self._run(self._broadcast(payload))
        return payload

    def dispatch_events(self, db: Session, events: Sequence[DomainEvent]) -> List[Notification]:
        """
        Turn domain events into stored notifications and deliver them.

        All rows for all events are committed together; live delivery then
        follows the order the events and their requests were produced in.

        Returns:
            The stored notifications, in delivery order
        """
        if not events:
            return []

        notifications: List[Notification] = []
        deliveries: List[Delivery] = []
        try:
            for event in events:
                for request in AppointmentNotificationBuilder.build(db, event):
                    stored, pending = self._persist_request(db, request)
                    notifications.extend(stored)
                    deliveries.extend(pending)
            db.commit()
        except Exception:
            db.rollback()
            raise

        logger.info(f"Dispatched {len(events)} event(s) as {len(notifications)} notification(s)")
        self._schedule(deliveries)
        return notifications

    async def wait_for_pending(self) -> None:
        """Await deliveries started on the current loop (used at shutdown and in tests)."""
        while True:
            pending = [task for task in self._tasks if not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    def _persist_request(self, db: Session, request: NotificationRequest) -> Tuple[List[Notification], List[Delivery]]:
        if request.role is not None:
            return self._persist_for_role(db, request.role, request.title, request.message, request.link)

        if request.user_id is None:
            logger.warning(f"Notification request '{request.title}' has no recipient, skipping")
            return [], []

        notification = NotificationService.create(db, request.user_id, request.title, request.message, request.link)
        return [notification], [(request.user_id, EVENT_NEW_NOTIFICATION, notification_payload(notification))]

    def _persist_for_role(
        self,
        db: Session,
        role: str,
        title: str,
        message: str,
        link: Optional[str]
    ) -> Tuple[List[Notification], List[Delivery]]:
        users = db.query(User).filter(
            User.role == role,
            User.status == UserStatus.ACTIVE.value
        ).order_by(User.id).all()

        notifications: List[Notification] = []
        deliveries: List[Delivery] = []
        for user in users:
            notification = NotificationService.create(db, user.id, title, message, link)
            notifications.append(notification)
            deliveries.append((
                user.id,
                EVENT_ROLE_NOTIFICATION,
                {"role": role, "notification": notification_payload(notification)},
            ))
        return notifications, deliveries

    def _schedule(self, deliveries: List[Delivery]) -> None:
        if deliveries:
            self._run(self._deliver(deliveries))

    def _run(self, coro: Coroutine[Any, Any, None]) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        if loop is not None:
            task = loop.create_task(coro)
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            return

        if self._loop is not None and self._loop.is_running():
            asyncio.run_coroutine_threadsafe(coro, self._loop)
            return

        coro.close()
        logger.debug("No running event loop, live delivery skipped")

    async def _deliver(self, deliveries: List[Delivery]) -> None:
        for user_id, event, data in deliveries:
            try:
                await self.registry.send_to(user_id, event, data)
            except Exception:
                logger.exception(f"Live delivery of {event} to user {user_id} failed")

    async def _broadcast(self, payload: Dict[str, Any]) -> None:
        try:
            delivered = await self.registry.broadcast(EVENT_BROADCAST_NOTIFICATION, payload)
            logger.info(f"Broadcast '{payload['title']}' delivered to {delivered} session(s)")
        except Exception:
            logger.exception("Broadcast delivery failed")


# Global dispatcher instance
_notification_dispatcher: Optional[NotificationDispatcher] = None
_dispatcher_lock = threading.Lock()


def get_notification_dispatcher() -> NotificationDispatcher:
    """
    Get the global notification dispatcher instance.

    Returns:
        The process-wide dispatcher, bound to the global connection registry
    """
    global _notification_dispatcher
    if _notification_dispatcher is None:
        with _dispatcher_lock:
            if _notification_dispatcher is None:
                _notification_dispatcher = NotificationDispatcher()
    return _notification_dispatcher
