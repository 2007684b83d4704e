# pyright: reportMissingTypeStubs=false
"""
Real-time notification socket.

Clients connect to /ws/notifications?token=<jwt>. Frames in both directions
are JSON objects of the form {"event": <name>, "data": <payload>}.
"""

import logging
import uuid
from typing import Any, Dict, Optional

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect, status
from sqlalchemy.exc import SQLAlchemyError

from auth.dependencies import UserContext, authenticate_token
from core.constants import EVENT_CONNECTED, EVENT_NOTIFICATION_READ
from core.database import get_db_context
from core.exceptions import NotFoundError
from services import NotificationService, get_connection_registry
from utils.datetime_utils import to_iso_string, utc_now

logger = logging.getLogger(__name__)

router = APIRouter()


def _authenticate(token: Optional[str]) -> Optional[UserContext]:
    # Short-lived session so an idle socket never holds a pooled connection
    with get_db_context() as db:
        return authenticate_token(db, token)


def _handle_notification_read(user: UserContext, data: Any) -> None:
    notification_id = data.get("notificationId") if isinstance(data, dict) else data
    try:
        notification_id = int(notification_id)
    except (TypeError, ValueError):
        logger.warning(f"User {user.user_id} sent notification_read without a valid id: {data!r}")
        return

    try:
        with get_db_context() as db:
            NotificationService.mark_read(db, notification_id, user_id=user.user_id)
    except NotFoundError:
        logger.warning(f"User {user.user_id} tried to mark unknown notification {notification_id} read")
    except SQLAlchemyError:
        logger.exception(f"Failed to mark notification {notification_id} read for user {user.user_id}")


@router.websocket("/ws/notifications")
async def notifications_socket(
    websocket: WebSocket,
    token: Optional[str] = Query(None),
):
    """
    Authenticated notification channel.

    Rejects the handshake when the token is missing, invalid, or belongs to
    an inactive user. While connected, the session receives every live
    notification for its user; a newer connection for the same user
    supersedes this one.
    """
    user = _authenticate(token)
    if user is None:
        logger.info("Rejected notification socket: invalid or missing token")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()

    registry = get_connection_registry()
    session_id = uuid.uuid4().hex
    registry.register(user.user_id, session_id, websocket)

    try:
        await websocket.send_json({
            "event": EVENT_CONNECTED,
            "data": {
                "message": "Successfully connected to real-time notifications",
                "userId": user.user_id,
            },
        })

        while True:
            try:
                frame: Dict[str, Any] = await websocket.receive_json()
            except (ValueError, KeyError):
                # KeyError: binary frame with no text payload
                logger.warning(f"User {user.user_id} sent a non-JSON frame, ignoring")
                continue

            event = frame.get("event") if isinstance(frame, dict) else None
            if event == EVENT_NOTIFICATION_READ:
                _handle_notification_read(user, frame.get("data"))
            else:
                logger.debug(f"Ignoring unknown socket event {event!r} from user {user.user_id}")
    except WebSocketDisconnect:
        logger.info(f"Notification socket closed for user {user.user_id}")
    finally:
        registry.unregister(user.user_id, session_id)


@router.get("/api/websocket/status")
async def websocket_status() -> Dict[str, Any]:
    """Report how many users currently hold a live notification session."""
    return {
        "status": "ok",
        "connectedUsers": get_connection_registry().connected_count(),
        "timestamp": to_iso_string(utc_now()),
    }
