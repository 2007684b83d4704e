# pyright: reportMissingTypeStubs=false
"""
Notification API endpoints.

Users list and mark their own notifications; admins can broadcast a
transient message to every connected session.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from auth.dependencies import UserContext, get_current_user
from auth.permissions import require_admin
from core.constants import MAX_NOTE_LENGTH, MAX_STRING_LENGTH
from core.database import get_db
from services import NotificationService, get_notification_dispatcher
from services.notification_dispatcher import NotificationPayload, notification_payload

logger = logging.getLogger(__name__)

router = APIRouter()


class NotificationListResponse(BaseModel):
    """Response model for listing notifications."""
    notifications: List[NotificationPayload]
    unread_count: int


class BroadcastRequest(BaseModel):
    """Request model for a broadcast notification."""
    title: str = Field(..., min_length=1, max_length=MAX_STRING_LENGTH)
    message: str = Field(..., min_length=1, max_length=MAX_NOTE_LENGTH)
    link: Optional[str] = Field(None, max_length=MAX_STRING_LENGTH)


@router.get("", response_model=NotificationListResponse, response_model_exclude_none=True)
async def list_notifications(
    unread: bool = Query(False, description="Only return unread notifications"),
    current_user: UserContext = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """List the caller's notifications, newest first."""
    notifications = NotificationService.list_for_user(db, current_user.user_id, unread_only=unread)
    unread_count = sum(1 for n in notifications if not n.is_read)
    return NotificationListResponse(
        notifications=[NotificationPayload(**notification_payload(n)) for n in notifications],
        unread_count=unread_count,
    )


@router.patch("/{notification_id}/read", response_model=NotificationPayload, response_model_exclude_none=True)
async def mark_notification_read(
    notification_id: int,
    current_user: UserContext = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Mark one of the caller's notifications as read (idempotent)."""
    notification = NotificationService.mark_read(db, notification_id, user_id=current_user.user_id)
    return NotificationPayload(**notification_payload(notification))


@router.post("/broadcast", response_model=NotificationPayload, response_model_exclude_none=True)
async def broadcast_notification(
    request: BroadcastRequest,
    current_user: UserContext = Depends(require_admin()),
):
    """Push a notification to every live session. Broadcasts are not stored."""
    payload = get_notification_dispatcher().broadcast(request.title, request.message, request.link)
    logger.info(f"Admin {current_user.user_id} broadcast '{request.title}'")
    return NotificationPayload(**payload)
