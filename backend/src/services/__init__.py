"""
Services package for shared business logic.

This package contains service classes that encapsulate business logic
shared across the HTTP endpoints, the notification socket and the
scheduler.
"""

from .appointment_service import AppointmentService
from .billing_service import BillingService
from .notification_service import NotificationService
from .connection_registry import ConnectionRegistry, get_connection_registry
from .notification_dispatcher import NotificationDispatcher, get_notification_dispatcher
from .appointment_notification_builder import AppointmentNotificationBuilder

__all__ = [
    "AppointmentService",
    "BillingService",
    "NotificationService",
    "ConnectionRegistry",
    "get_connection_registry",
    "NotificationDispatcher",
    "get_notification_dispatcher",
    "AppointmentNotificationBuilder",
]
