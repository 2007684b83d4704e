# pyright: reportUnknownMemberType=false
"""
Maps appointment and billing domain events to notification requests.

The order of the returned requests is the delivery order: the primary party
(patient or doctor) first, then any conditional admin fan-out.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session, joinedload

from core.constants import (
    BUSINESS_HOURS_END,
    BUSINESS_HOURS_START,
    DOCTOR_CANCELLATION_ALERT_DAYS,
    PATIENT_CANCELLATION_ALERT_DAYS,
    URGENT_APPOINTMENT_KEYWORDS,
)
from models import Appointment, AppointmentStatus, UserRole
from services.domain_events import (
    AppointmentBooked,
    AppointmentStatusChanged,
    BillAdded,
    DomainEvent,
)
from utils.datetime_utils import days_until, ensure_clinic_tz, format_appointment_date

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NotificationRequest:
    """
    One logical notification.

    Exactly one of user_id / role is set. Role requests fan out to every
    active user holding that role.
    """
    title: str
    message: str
    link: Optional[str] = None
    user_id: Optional[int] = None
    role: Optional[str] = None


def is_business_hours(now: datetime) -> bool:
    local_now = ensure_clinic_tz(now) or now
    return BUSINESS_HOURS_START <= local_now.hour <= BUSINESS_HOURS_END


def is_urgent_type(appointment_type: str) -> bool:
    lowered = (appointment_type or "").lower()
    return any(keyword in lowered for keyword in URGENT_APPOINTMENT_KEYWORDS)


class AppointmentNotificationBuilder:
    """Builds the notifications each domain event should produce."""

    @staticmethod
    def build(db: Session, event: DomainEvent) -> List[NotificationRequest]:
        appointment = db.query(Appointment).options(
            joinedload(Appointment.patient),
            joinedload(Appointment.doctor)
        ).filter(Appointment.id == event.appointment_id).first()
        if not appointment:
            logger.warning(f"Appointment {event.appointment_id} vanished before notifications were built")
            return []

        if isinstance(event, AppointmentBooked):
            return AppointmentNotificationBuilder._booked(appointment, event)
        if isinstance(event, AppointmentStatusChanged):
            if event.actor_role == UserRole.PATIENT.value:
                return AppointmentNotificationBuilder._changed_by_patient(appointment, event)
            return AppointmentNotificationBuilder._changed_by_clinic(appointment, event)
        if isinstance(event, BillAdded):
            return AppointmentNotificationBuilder._bill_added(appointment)

        logger.warning(f"No notification mapping for event {type(event).__name__}")
        return []

    @staticmethod
    def _booked(appointment: Appointment, event: AppointmentBooked) -> List[NotificationRequest]:
        patient = appointment.patient
        doctor = appointment.doctor
        date_str = format_appointment_date(appointment.appointment_date)

        requests = [
            NotificationRequest(
                user_id=doctor.user_id,
                title="🩺 New Appointment Request",
                message=(
                    f"{patient.full_name} has requested a {appointment.type} appointment on "
                    f"{date_str} at {appointment.time}. Please review and approve."
                ),
                link=f"/doctor/appointments/{appointment.id}",
            ),
            NotificationRequest(
                user_id=patient.user_id,
                title="📅 Appointment Request Submitted",
                message=(
                    f"Your {appointment.type} appointment with Dr. {doctor.name} on {date_str} at "
                    f"{appointment.time} has been submitted and is pending approval."
                ),
                link=f"/appointments/{appointment.id}",
            ),
        ]

        if is_business_hours(event.occurred_at) or is_urgent_type(appointment.type):
            requests.append(NotificationRequest(
                role=UserRole.ADMIN.value,
                title="📋 New Appointment Request",
                message=(
                    f"{patient.full_name} booked a {appointment.type} appointment with "
                    f"Dr. {doctor.name} for {date_str} at {appointment.time}."
                ),
                link="/admin/appointments",
            ))
        return requests

    @staticmethod
    def _changed_by_clinic(appointment: Appointment, event: AppointmentStatusChanged) -> List[NotificationRequest]:
        patient = appointment.patient
        doctor = appointment.doctor
        date_str = format_appointment_date(appointment.appointment_date)
        patient_link = "/appointments"

        if event.new_status == AppointmentStatus.SCHEDULED.value:
            return [
                NotificationRequest(
                    user_id=patient.user_id,
                    title="✅ Appointment Approved!",
                    message=(
                        f"Good news! Dr. {doctor.name} has approved your appointment. "
                        f"Your appointment is now confirmed."
                    ),
                    link=patient_link,
                ),
                NotificationRequest(
                    user_id=patient.user_id,
                    title="⏰ Appointment Reminder",
                    message=(
                        f"Don't forget! You have an appointment with Dr. {doctor.name} on "
                        f"{date_str} at {appointment.time}."
                    ),
                    link=patient_link,
                ),
            ]

        if event.new_status == AppointmentStatus.COMPLETED.value:
            return [NotificationRequest(
                user_id=patient.user_id,
                title="🏥 Appointment Completed",
                message=(
                    f"Your appointment with Dr. {doctor.name} has been marked as completed. "
                    f"Thank you for visiting us!"
                ),
                link=patient_link,
            )]

        if event.new_status == AppointmentStatus.CANCELLED.value:
            reason_text = f"Reason: {event.reason}" if event.reason else "Please contact us for rescheduling."
            requests = [NotificationRequest(
                user_id=patient.user_id,
                title="❌ Appointment Cancelled",
                message=f"Unfortunately, your appointment with Dr. {doctor.name} has been cancelled. {reason_text}",
                link=patient_link,
            )]
            if days_until(appointment.appointment_date, event.occurred_at) <= DOCTOR_CANCELLATION_ALERT_DAYS:
                admin_reason = f"Reason: {event.reason}" if event.reason else "No reason provided."
                requests.append(NotificationRequest(
                    role=UserRole.ADMIN.value,
                    title="🚨 Doctor Cancelled Appointment",
                    message=(
                        f"Dr. {doctor.name} cancelled appointment #{appointment.id} with "
                        f"{patient.full_name} on {date_str} at {appointment.time}. {admin_reason}"
                    ),
                    link=f"/admin/appointments/{appointment.id}",
                ))
            return requests

        return [NotificationRequest(
            user_id=patient.user_id,
            title="📋 Appointment Status Updated",
            message=f"Your appointment status was changed to {event.new_status}.",
            link=patient_link,
        )]

    @staticmethod
    def _changed_by_patient(appointment: Appointment, event: AppointmentStatusChanged) -> List[NotificationRequest]:
        if event.new_status != AppointmentStatus.CANCELLED.value:
            return []

        patient = appointment.patient
        doctor = appointment.doctor
        date_str = format_appointment_date(appointment.appointment_date)
        reason_text = f" Reason: {event.reason}" if event.reason else ""

        requests = [NotificationRequest(
            user_id=doctor.user_id,
            title="🚫 Appointment Cancelled by Patient",
            message=(
                f"{patient.full_name} has cancelled their appointment scheduled for "
                f"{date_str} at {appointment.time}.{reason_text}"
            ),
            link="/doctor/appointments",
        )]
        if days_until(appointment.appointment_date, event.occurred_at) <= PATIENT_CANCELLATION_ALERT_DAYS:
            requests.append(NotificationRequest(
                role=UserRole.ADMIN.value,
                title="⚠️ Urgent: Same-Day Appointment Cancellation",
                message=(
                    f"Patient {patient.full_name} cancelled appointment #{appointment.id} with "
                    f"Dr. {doctor.name} scheduled for {date_str} at {appointment.time}. "
                    f"Immediate attention may be required."
                ),
                link=f"/admin/appointments/{appointment.id}",
            ))
        return requests

    @staticmethod
    def _bill_added(appointment: Appointment) -> List[NotificationRequest]:
        return [NotificationRequest(
            user_id=appointment.patient.user_id,
            title="New Bill Generated",
            message="A new bill has been generated for your appointment.",
            link="/appointments",
        )]
