"""
Domain events returned by the appointment state machine and the billing ledger.

Mutating services never notify anyone themselves. They return the list of
events describing what changed; NotificationDispatcher.dispatch_events turns
those into persisted notifications and live pushes.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union


@dataclass(frozen=True)
class AppointmentBooked:
    appointment_id: int
    occurred_at: datetime


@dataclass(frozen=True)
class AppointmentStatusChanged:
    appointment_id: int
    old_status: str
    new_status: str
    actor_role: str
    """Role of the user who requested the change (UserRole value)."""
    reason: Optional[str]
    occurred_at: datetime


@dataclass(frozen=True)
class BillAdded:
    appointment_id: int
    payment_id: int
    bill_id: int
    occurred_at: datetime


DomainEvent = Union[AppointmentBooked, AppointmentStatusChanged, BillAdded]
