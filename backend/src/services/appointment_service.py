"""
Appointment service: booking and the appointment status state machine.

Every mutating operation returns the affected appointment together with the
domain events it produced. Notification side effects are the caller's job
(see NotificationDispatcher.dispatch_events), which keeps the lifecycle rules
testable without a notification sink.
"""

import logging
from datetime import date, datetime
from typing import Dict, FrozenSet, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session, joinedload

from core.exceptions import (
    ConcurrentModificationError,
    InvalidInputError,
    InvalidStatusError,
    InvalidTransitionError,
    NotFoundError,
    PermissionDeniedError,
    SlotConflictError,
)
from models import Appointment, AppointmentStatus, Doctor, Patient, UserRole
from services.domain_events import AppointmentBooked, AppointmentStatusChanged, DomainEvent
from utils.datetime_utils import clinic_now, parse_time_slot

logger = logging.getLogger(__name__)


TERMINAL_STATUSES: FrozenSet[AppointmentStatus] = frozenset({
    AppointmentStatus.COMPLETED,
    AppointmentStatus.CANCELLED,
})

# from-state -> allowed to-states, per acting role
PATIENT_TRANSITIONS: Dict[AppointmentStatus, FrozenSet[AppointmentStatus]] = {
    AppointmentStatus.PENDING: frozenset({AppointmentStatus.CANCELLED}),
}

CLINIC_TRANSITIONS: Dict[AppointmentStatus, FrozenSet[AppointmentStatus]] = {
    AppointmentStatus.PENDING: frozenset({
        AppointmentStatus.SCHEDULED,
        AppointmentStatus.COMPLETED,
        AppointmentStatus.CANCELLED,
    }),
    AppointmentStatus.SCHEDULED: frozenset({
        AppointmentStatus.SCHEDULED,
        AppointmentStatus.COMPLETED,
        AppointmentStatus.CANCELLED,
    }),
}

TRANSITION_TABLES: Dict[str, Dict[AppointmentStatus, FrozenSet[AppointmentStatus]]] = {
    UserRole.PATIENT.value: PATIENT_TRANSITIONS,
    UserRole.DOCTOR.value: CLINIC_TRANSITIONS,
    UserRole.ADMIN.value: CLINIC_TRANSITIONS,
}


def parse_status(value: str) -> AppointmentStatus:
    """
    Convert a requested status string into AppointmentStatus.

    Raises:
        InvalidStatusError: If the value is not a member of the enum
    """
    try:
        return AppointmentStatus(value)
    except ValueError:
        raise InvalidStatusError(f"Invalid status value: {value}")


def allowed_transitions(actor_role: str, current: AppointmentStatus) -> FrozenSet[AppointmentStatus]:
    """Statuses the given role may move an appointment to from `current`."""
    table = TRANSITION_TABLES.get(actor_role)
    if table is None:
        return frozenset()
    return table.get(current, frozenset())


class AppointmentService:
    """
    Service class for appointment operations.

    Contains the booking rules and the status lifecycle shared by the patient
    and doctor endpoints.
    """

    @staticmethod
    def book_appointment(
        db: Session,
        patient_user_id: int,
        doctor_id: int,
        appointment_date: date,
        time: str,
        appointment_type: str,
        note: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> Tuple[Appointment, List[DomainEvent]]:
        """
        Book a new appointment in PENDING status for the authenticated patient.

        The slot check runs inside the transaction and is backed by the
        partial unique index on (doctor_id, appointment_date, time), so a
        concurrent booking that slips past the check still fails cleanly.

        Args:
            db: Database session
            patient_user_id: User ID of the booking patient
            doctor_id: Doctor to book with
            appointment_date: Day of the appointment
            time: Time slot, HH:MM
            appointment_type: Free-text category (e.g. "urgent")
            note: Optional patient note
            now: Override for the current time (used by tests)

        Returns:
            Tuple of (appointment, [AppointmentBooked])

        Raises:
            NotFoundError: If the patient profile or doctor does not exist
            InvalidInputError: If the time slot or type is malformed
            SlotConflictError: If an active appointment already holds the slot
        """
        now = now or clinic_now()

        try:
            slot = parse_time_slot(time).strftime("%H:%M")
        except ValueError as e:
            raise InvalidInputError(str(e))

        if not appointment_type or not appointment_type.strip():
            raise InvalidInputError("Appointment type is required")

        patient = db.query(Patient).filter(Patient.user_id == patient_user_id).first()
        if not patient:
            raise NotFoundError("Patient profile not found")

        doctor = db.query(Doctor).filter(Doctor.id == doctor_id).first()
        if not doctor:
            raise NotFoundError("Doctor not found")

        existing = db.query(Appointment).filter(
            Appointment.doctor_id == doctor_id,
            Appointment.appointment_date == appointment_date,
            Appointment.time == slot,
            Appointment.status != AppointmentStatus.CANCELLED.value
        ).first()
        if existing:
            raise SlotConflictError("This time slot is already booked for the selected doctor")

        appointment = Appointment(
            patient_id=patient.id,
            doctor_id=doctor.id,
            appointment_date=appointment_date,
            time=slot,
            type=appointment_type.strip(),
            note=note,
            status=AppointmentStatus.PENDING.value,
        )
        db.add(appointment)

        try:
            db.commit()
        except IntegrityError as e:
            db.rollback()
            logger.info(
                f"Slot conflict on commit for doctor {doctor_id} at {appointment_date} {slot}: {e.orig}"
            )
            raise SlotConflictError("This time slot is already booked for the selected doctor")

        logger.info(
            f"Patient {patient.id} booked appointment {appointment.id} with doctor {doctor.id} "
            f"on {appointment_date} at {slot}"
        )
        return appointment, [AppointmentBooked(appointment_id=appointment.id, occurred_at=now)]

    @staticmethod
    def transition_status(
        db: Session,
        appointment_id: int,
        actor_user_id: int,
        actor_role: str,
        new_status: str,
        reason: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> Tuple[Appointment, List[DomainEvent]]:
        """
        Move an appointment to a new status.

        Validity comes from the per-role transition tables. Patients may
        only cancel their own PENDING appointments; doctors may move their
        own non-terminal appointments forward or cancel them; admins act on
        any appointment with the doctor's rules.

        Args:
            db: Database session
            appointment_id: Appointment to change
            actor_user_id: Authenticated user requesting the change
            actor_role: Role of that user (UserRole value)
            new_status: Requested status string
            reason: Optional reason stored on the appointment
            now: Override for the current time (used by tests)

        Returns:
            Tuple of (appointment, [AppointmentStatusChanged])

        Raises:
            InvalidStatusError: If new_status is not a valid status
            NotFoundError: If the appointment does not exist or is not the actor's
            PermissionDeniedError: If the role may never request this status
            InvalidTransitionError: If the lifecycle forbids the change
            ConcurrentModificationError: If another request holds the row lock
        """
        now = now or clinic_now()
        target = parse_status(new_status)

        if actor_role not in TRANSITION_TABLES:
            raise PermissionDeniedError("Role may not change appointment status")

        if actor_role == UserRole.PATIENT.value and target != AppointmentStatus.CANCELLED:
            raise PermissionDeniedError("Patients can only cancel appointments")

        try:
            appointment = db.query(Appointment).options(
                joinedload(Appointment.patient),
                joinedload(Appointment.doctor)
            ).filter(
                Appointment.id == appointment_id
            ).with_for_update(nowait=True, of=Appointment).first()
        except OperationalError:
            db.rollback()
            raise ConcurrentModificationError(
                "This appointment is being modified by another request, please retry"
            )

        if not appointment or not AppointmentService.is_party(appointment, actor_user_id, actor_role):
            db.rollback()
            raise NotFoundError("Appointment not found")

        current = AppointmentStatus(appointment.status)

        if target not in allowed_transitions(actor_role, current):
            db.rollback()
            if actor_role == UserRole.PATIENT.value:
                raise InvalidTransitionError("Only pending appointments can be cancelled")
            if current in TERMINAL_STATUSES:
                raise InvalidTransitionError(f"Appointment is already {current.value.lower()}")
            raise InvalidTransitionError(
                f"Cannot change appointment status from {current.value} to {target.value}"
            )

        appointment.status = target.value
        appointment.reason = reason
        db.commit()

        logger.info(
            f"Appointment {appointment.id} status {current.value} -> {target.value} "
            f"by {actor_role.lower()} {actor_user_id}"
        )
        event = AppointmentStatusChanged(
            appointment_id=appointment.id,
            old_status=current.value,
            new_status=target.value,
            actor_role=actor_role,
            reason=reason,
            occurred_at=now,
        )
        return appointment, [event]

    @staticmethod
    def is_party(appointment: Appointment, user_id: int, role: str) -> bool:
        """Whether the user may act on this appointment in the given role."""
        if role == UserRole.ADMIN.value:
            return True
        if role == UserRole.PATIENT.value:
            return appointment.patient is not None and appointment.patient.user_id == user_id
        if role == UserRole.DOCTOR.value:
            return appointment.doctor is not None and appointment.doctor.user_id == user_id
        return False

    @staticmethod
    def get_appointment(db: Session, appointment_id: int) -> Appointment:
        """
        Load an appointment with its patient and doctor.

        Raises:
            NotFoundError: If the appointment does not exist
        """
        appointment = db.query(Appointment).options(
            joinedload(Appointment.patient),
            joinedload(Appointment.doctor)
        ).filter(Appointment.id == appointment_id).first()
        if not appointment:
            raise NotFoundError("Appointment not found")
        return appointment

    @staticmethod
    def list_for_patient(db: Session, patient_user_id: int) -> List[Appointment]:
        """Appointments of the patient linked to the user, latest date first."""
        patient = db.query(Patient).filter(Patient.user_id == patient_user_id).first()
        if not patient:
            raise NotFoundError("Patient profile not found")
        return db.query(Appointment).options(
            joinedload(Appointment.doctor)
        ).filter(
            Appointment.patient_id == patient.id
        ).order_by(Appointment.appointment_date.desc(), Appointment.time.desc()).all()

    @staticmethod
    def list_for_doctor(db: Session, doctor_user_id: int) -> List[Appointment]:
        """Appointments of the doctor linked to the user, latest date first."""
        doctor = db.query(Doctor).filter(Doctor.user_id == doctor_user_id).first()
        if not doctor:
            raise NotFoundError("Doctor not found")
        return db.query(Appointment).options(
            joinedload(Appointment.patient)
        ).filter(
            Appointment.doctor_id == doctor.id
        ).order_by(Appointment.appointment_date.desc(), Appointment.time.desc()).all()

    @staticmethod
    def list_all(db: Session) -> List[Appointment]:
        """Every appointment in the clinic, latest date first (admin view)."""
        return db.query(Appointment).options(
            joinedload(Appointment.patient),
            joinedload(Appointment.doctor)
        ).order_by(Appointment.appointment_date.desc(), Appointment.time.desc()).all()
