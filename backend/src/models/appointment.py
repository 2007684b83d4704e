"""
Appointment model representing a booked slot between a patient and a doctor.

Appointments are created by patient bookings in PENDING status and only
change through AppointmentService.transition_status. They are never deleted.
"""

from datetime import date as date_type, datetime
from enum import Enum
from typing import Optional
from sqlalchemy import String, ForeignKey, Index, TIMESTAMP, Date, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.constants import MAX_NOTE_LENGTH
from core.database import Base


class AppointmentStatus(str, Enum):
    PENDING = "PENDING"
    SCHEDULED = "SCHEDULED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class Appointment(Base):
    """
    Appointment entity.

    At most one non-cancelled appointment may hold a (doctor, date, time)
    slot. The partial unique index below enforces this at the database level
    so two concurrent bookings cannot both succeed.
    """

    __tablename__ = "appointments"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)

    patient_id: Mapped[int] = mapped_column(ForeignKey("patients.id"))
    """Reference to the patient who booked this appointment."""

    doctor_id: Mapped[int] = mapped_column(ForeignKey("doctors.id"))
    """Reference to the doctor the appointment is booked with."""

    appointment_date: Mapped[date_type] = mapped_column(Date)
    time: Mapped[str] = mapped_column(String(5))
    """Time slot in 24-hour HH:MM format."""

    type: Mapped[str] = mapped_column(String(100))
    """Free-text category, e.g. "checkup" or "urgent"."""

    status: Mapped[str] = mapped_column(String(20), default=AppointmentStatus.PENDING.value)
    """Current status. One of AppointmentStatus values."""

    note: Mapped[Optional[str]] = mapped_column(String(MAX_NOTE_LENGTH), nullable=True)
    """Optional patient-provided note."""

    reason: Mapped[Optional[str]] = mapped_column(String(MAX_NOTE_LENGTH), nullable=True)
    """Reason given with the latest status change (usually a cancellation)."""

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)

    # Relationships
    patient = relationship("Patient", back_populates="appointments")
    doctor = relationship("Doctor", back_populates="appointments")
    payment = relationship("Payment", back_populates="appointment", uselist=False)
    """Invoice for this appointment (created lazily on the first bill line)."""

    __table_args__ = (
        Index('idx_appointments_patient', 'patient_id'),
        Index('idx_appointments_doctor', 'doctor_id'),
        Index('idx_appointments_status', 'status'),
        Index('idx_appointments_date', 'appointment_date'),
        Index(
            'uq_appointments_active_slot',
            'doctor_id', 'appointment_date', 'time',
            unique=True,
            postgresql_where=text("status <> 'CANCELLED'"),
            sqlite_where=text("status <> 'CANCELLED'"),
        ),
    )
