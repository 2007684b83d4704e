# pyright: reportMissingTypeStubs=false
"""
Billing API endpoints.

Service catalog, bill lines per appointment and the final bill summary.
Line and summary changes are restricted to the appointment's doctor and
admins; patients can read their own invoice.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from api.responses import (
    BillResponse,
    BillSummaryResponse,
    InvoiceResponse,
    ServiceListResponse,
    ServiceResponse,
)
from auth.dependencies import UserContext, get_current_user
from auth.permissions import require_clinic_staff
from core.database import get_db
from core.exceptions import NotFoundError
from models import Appointment
from services import AppointmentService, BillingService, get_notification_dispatcher
from utils.datetime_utils import utc_now

logger = logging.getLogger(__name__)

router = APIRouter()


# Request Models
class AddBillRequest(BaseModel):
    """Request model for adding a bill line."""
    service_id: int
    quantity: int = Field(1, description="Units billed, at least 1")
    service_date: Optional[datetime] = Field(None, description="Defaults to now")


class EditBillRequest(BaseModel):
    """Request model for a partial bill line update."""
    service_id: Optional[int] = None
    quantity: Optional[int] = None
    service_date: Optional[datetime] = None


class FinalBillRequest(BaseModel):
    """Request model for generating the final bill."""
    discount: Decimal = Field(Decimal("0"), description="Percentage between 0 and 100")
    bill_date: Optional[datetime] = Field(None, description="Defaults to now")


class EditFinalBillRequest(BaseModel):
    """Request model for editing the final bill summary."""
    discount: Optional[Decimal] = None
    bill_date: Optional[datetime] = None


def _get_accessible_appointment(db: Session, appointment_id: int, user: UserContext) -> Appointment:
    """Load the appointment, hiding it from users who are not a party to it."""
    appointment = AppointmentService.get_appointment(db, appointment_id)
    if not AppointmentService.is_party(appointment, user.user_id, user.role):
        raise NotFoundError("Appointment not found")
    return appointment


def _get_payment_id(db: Session, appointment_id: int) -> int:
    payment = BillingService.get_invoice(db, appointment_id)
    if not payment:
        raise NotFoundError("Payment not found")
    return payment.id


# Endpoints
@router.get("/services", response_model=ServiceListResponse)
async def list_services(
    current_user: UserContext = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """List the billable service catalog."""
    services = BillingService.list_services(db)
    return ServiceListResponse(services=[ServiceResponse.from_model(s) for s in services])


@router.get("/appointments/{appointment_id}/bills", response_model=InvoiceResponse)
async def get_bills(
    appointment_id: int,
    current_user: UserContext = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Get an appointment's bill lines and current summary."""
    _get_accessible_appointment(db, appointment_id, current_user)

    payment = BillingService.get_invoice(db, appointment_id)
    if not payment:
        return InvoiceResponse(appointment_id=appointment_id, bills=[], summary=None)

    summary = BillingService.get_summary(db, appointment_id)
    return InvoiceResponse(
        appointment_id=appointment_id,
        bills=[BillResponse.from_model(bill) for bill in payment.bills],
        summary=BillSummaryResponse.from_summary(summary),
    )


@router.post(
    "/appointments/{appointment_id}/bills",
    response_model=BillResponse,
    status_code=status.HTTP_201_CREATED
)
async def add_bill(
    appointment_id: int,
    request: AddBillRequest,
    current_user: UserContext = Depends(require_clinic_staff()),
    db: Session = Depends(get_db)
):
    """
    Add a bill line to an appointment.

    Creates the invoice on first use and notifies the patient.
    """
    _get_accessible_appointment(db, appointment_id, current_user)

    bill, events = BillingService.add_bill(
        db=db,
        appointment_id=appointment_id,
        service_id=request.service_id,
        quantity=request.quantity,
        service_date=request.service_date or utc_now(),
    )
    get_notification_dispatcher().dispatch_events(db, events)
    return BillResponse.from_model(bill)


@router.patch("/appointments/{appointment_id}/bills/{bill_id}", response_model=BillResponse)
async def edit_bill(
    appointment_id: int,
    bill_id: int,
    request: EditBillRequest,
    current_user: UserContext = Depends(require_clinic_staff()),
    db: Session = Depends(get_db)
):
    """Partially update a bill line. Allowed after the final bill is generated."""
    _get_accessible_appointment(db, appointment_id, current_user)

    bill = BillingService.edit_bill(
        db=db,
        payment_id=_get_payment_id(db, appointment_id),
        bill_id=bill_id,
        service_id=request.service_id,
        quantity=request.quantity,
        service_date=request.service_date,
    )
    return BillResponse.from_model(bill)


@router.delete(
    "/appointments/{appointment_id}/bills/{bill_id}",
    status_code=status.HTTP_204_NO_CONTENT
)
async def delete_bill(
    appointment_id: int,
    bill_id: int,
    current_user: UserContext = Depends(require_clinic_staff()),
    db: Session = Depends(get_db)
):
    """Remove a bill line and recompute the invoice total."""
    _get_accessible_appointment(db, appointment_id, current_user)

    BillingService.delete_bill(db, _get_payment_id(db, appointment_id), bill_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/appointments/{appointment_id}/final-bill", response_model=BillSummaryResponse)
async def generate_final_bill(
    appointment_id: int,
    request: FinalBillRequest,
    current_user: UserContext = Depends(require_clinic_staff()),
    db: Session = Depends(get_db)
):
    """Apply the discount and bill date and mark the invoice finalized."""
    _get_accessible_appointment(db, appointment_id, current_user)

    summary = BillingService.finalize(
        db=db,
        appointment_id=appointment_id,
        discount=request.discount,
        bill_date=request.bill_date or utc_now(),
    )
    return BillSummaryResponse.from_summary(summary)


@router.patch("/appointments/{appointment_id}/final-bill", response_model=BillSummaryResponse)
async def edit_final_bill(
    appointment_id: int,
    request: EditFinalBillRequest,
    current_user: UserContext = Depends(require_clinic_staff()),
    db: Session = Depends(get_db)
):
    """Edit the discount and/or bill date of the invoice summary."""
    _get_accessible_appointment(db, appointment_id, current_user)

    summary = BillingService.edit_final_summary(
        db=db,
        appointment_id=appointment_id,
        discount=request.discount,
        bill_date=request.bill_date,
    )
    return BillSummaryResponse.from_summary(summary)
