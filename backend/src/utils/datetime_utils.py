"""
Datetime utilities for consistent timezone handling across the application.

Timestamps are stored timezone-aware in UTC. Business rules that depend on
the clinic's wall clock (business hours, "appointment is tomorrow") use the
clinic timezone configured by CLINIC_UTC_OFFSET_HOURS.
"""

import logging
import math
from datetime import datetime, timezone, timedelta, date, time
from typing import Optional

from core.config import CLINIC_UTC_OFFSET_HOURS

logger = logging.getLogger(__name__)

CLINIC_TZ = timezone(timedelta(hours=CLINIC_UTC_OFFSET_HOURS))


def utc_now() -> datetime:
    """Current UTC datetime (timezone-aware)."""
    return datetime.now(timezone.utc)


def clinic_now() -> datetime:
    """
    Get current datetime on the clinic's wall clock.

    Returns:
        Current datetime with the clinic timezone
    """
    return datetime.now(CLINIC_TZ)


def ensure_clinic_tz(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Ensure a datetime is timezone-aware in the clinic timezone.

    Naive datetimes are assumed to already be clinic wall-clock time.
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=CLINIC_TZ)
    return dt.astimezone(CLINIC_TZ)


def days_until(appointment_date: date, now: datetime) -> int:
    """
    Whole days from now until the start of the appointment day, rounded up.

    Same-day appointments later than midnight give 0, tomorrow gives 1.
    Past dates give zero or a negative number.
    """
    local_now = ensure_clinic_tz(now) or now
    day_start = datetime.combine(appointment_date, time.min, tzinfo=CLINIC_TZ)
    delta_days = (day_start - local_now).total_seconds() / 86400
    return math.ceil(delta_days)


def format_appointment_date(value: date) -> str:
    """
    Format a date for user-facing notification messages.

    Example: "Tuesday, October 20, 2026"
    """
    return f"{value:%A}, {value:%B} {value.day}, {value.year}"


def parse_time_slot(slot: str) -> time:
    """
    Parse an "HH:MM" time slot.

    Raises:
        ValueError: If the slot is not a valid 24-hour HH:MM string
    """
    try:
        parsed = datetime.strptime(slot.strip(), "%H:%M")
    except (AttributeError, ValueError) as e:
        raise ValueError(f"Invalid time slot (expected HH:MM): {slot}") from e
    return parsed.time()


def to_iso_string(dt: datetime) -> str:
    """Serialize a datetime as ISO-8601, treating naive values as UTC."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.isoformat()
