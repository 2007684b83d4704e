# pyright: reportMissingTypeStubs=false
"""
Appointment API endpoints.

Booking, listing and the patient / doctor status updates. Each mutation
dispatches the notifications its domain events produce after the change is
committed.
"""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from api.responses import AppointmentListResponse, AppointmentResponse
from auth.dependencies import UserContext, get_current_user
from auth.permissions import require_clinic_staff, require_patient
from core.constants import MAX_NOTE_LENGTH
from core.database import get_db
from core.exceptions import NotFoundError
from services import AppointmentService, get_notification_dispatcher

logger = logging.getLogger(__name__)

router = APIRouter()


# Request Models
class BookAppointmentRequest(BaseModel):
    """Request model for booking an appointment."""
    doctor_id: int
    appointment_date: date
    time: str = Field(..., description="Time slot in HH:MM (24-hour)")
    type: str = Field(..., min_length=1, max_length=100)
    note: Optional[str] = Field(None, max_length=MAX_NOTE_LENGTH)


class StatusUpdateRequest(BaseModel):
    """Request model for an appointment status change."""
    status: str = Field(..., description="PENDING, SCHEDULED, COMPLETED or CANCELLED")
    reason: Optional[str] = Field(None, max_length=MAX_NOTE_LENGTH)


# Endpoints
@router.post(
    "/appointments",
    response_model=AppointmentResponse,
    status_code=status.HTTP_201_CREATED
)
async def book_appointment(
    request: BookAppointmentRequest,
    current_user: UserContext = Depends(require_patient()),
    db: Session = Depends(get_db)
):
    """
    Book an appointment for the authenticated patient.

    The appointment starts as PENDING; the doctor, the patient and (during
    business hours or for urgent types) the admins are notified.
    """
    appointment, events = AppointmentService.book_appointment(
        db=db,
        patient_user_id=current_user.user_id,
        doctor_id=request.doctor_id,
        appointment_date=request.appointment_date,
        time=request.time,
        appointment_type=request.type,
        note=request.note,
    )
    get_notification_dispatcher().dispatch_events(db, events)
    return AppointmentResponse.from_model(appointment)


@router.get("/appointments", response_model=AppointmentListResponse)
async def list_appointments(
    current_user: UserContext = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """List the caller's appointments (all appointments for admins)."""
    if current_user.is_patient():
        appointments = AppointmentService.list_for_patient(db, current_user.user_id)
    elif current_user.is_doctor():
        appointments = AppointmentService.list_for_doctor(db, current_user.user_id)
    else:
        appointments = AppointmentService.list_all(db)

    return AppointmentListResponse(
        appointments=[AppointmentResponse.from_model(a) for a in appointments]
    )


@router.get("/appointments/{appointment_id}", response_model=AppointmentResponse)
async def get_appointment(
    appointment_id: int,
    current_user: UserContext = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Get one appointment the caller is a party to."""
    appointment = AppointmentService.get_appointment(db, appointment_id)
    if not AppointmentService.is_party(appointment, current_user.user_id, current_user.role):
        raise NotFoundError("Appointment not found")
    return AppointmentResponse.from_model(appointment)


@router.patch("/patient/appointments/{appointment_id}/status", response_model=AppointmentResponse)
async def update_status_as_patient(
    appointment_id: int,
    request: StatusUpdateRequest,
    current_user: UserContext = Depends(require_patient()),
    db: Session = Depends(get_db)
):
    """
    Patient status update.

    Patients may only cancel their own appointments, and only while PENDING.
    """
    appointment, events = AppointmentService.transition_status(
        db=db,
        appointment_id=appointment_id,
        actor_user_id=current_user.user_id,
        actor_role=current_user.role,
        new_status=request.status,
        reason=request.reason,
    )
    get_notification_dispatcher().dispatch_events(db, events)
    return AppointmentResponse.from_model(appointment)


@router.patch("/doctor/appointments/{appointment_id}/status", response_model=AppointmentResponse)
async def update_status_as_doctor(
    appointment_id: int,
    request: StatusUpdateRequest,
    current_user: UserContext = Depends(require_clinic_staff()),
    db: Session = Depends(get_db)
):
    """
    Doctor (or admin) status update: approve, complete or cancel.
    """
    appointment, events = AppointmentService.transition_status(
        db=db,
        appointment_id=appointment_id,
        actor_user_id=current_user.user_id,
        actor_role=current_user.role,
        new_status=request.status,
        reason=request.reason,
    )
    get_notification_dispatcher().dispatch_events(db, events)
    return AppointmentResponse.from_model(appointment)
