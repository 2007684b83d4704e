"""
Shared response models for API endpoints.

This module contains Pydantic response models that are shared across
multiple API endpoints to ensure consistency and reduce duplication.
"""

from datetime import datetime, date
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel

from models import Appointment, PatientBill, Service
from services.billing_service import BillSummary


class AppointmentResponse(BaseModel):
    """Response model for appointment information."""
    id: int
    patient_id: int
    patient_name: Optional[str] = None
    doctor_id: int
    doctor_name: Optional[str] = None
    appointment_date: date  # Serialized to YYYY-MM-DD in JSON
    time: str
    type: str
    status: str
    note: Optional[str] = None
    reason: Optional[str] = None
    created_at: datetime

    @classmethod
    def from_model(cls, appointment: Appointment) -> "AppointmentResponse":
        return cls(
            id=appointment.id,
            patient_id=appointment.patient_id,
            patient_name=appointment.patient.full_name if appointment.patient else None,
            doctor_id=appointment.doctor_id,
            doctor_name=appointment.doctor.name if appointment.doctor else None,
            appointment_date=appointment.appointment_date,
            time=appointment.time,
            type=appointment.type,
            status=appointment.status,
            note=appointment.note,
            reason=appointment.reason,
            created_at=appointment.created_at,
        )


class AppointmentListResponse(BaseModel):
    """Response model for listing appointments."""
    appointments: List[AppointmentResponse]


class ServiceResponse(BaseModel):
    """Response model for a billable service in the catalog."""
    id: int
    service_name: str
    description: Optional[str] = None
    price: Decimal

    @classmethod
    def from_model(cls, service: Service) -> "ServiceResponse":
        return cls(
            id=service.id,
            service_name=service.service_name,
            description=service.description,
            price=service.price,
        )


class ServiceListResponse(BaseModel):
    """Response model for listing services."""
    services: List[ServiceResponse]


class BillResponse(BaseModel):
    """Response model for one bill line."""
    id: int
    payment_id: int
    service_id: int
    service_name: Optional[str] = None
    service_date: datetime
    quantity: int
    unit_cost: Decimal
    total_cost: Decimal

    @classmethod
    def from_model(cls, bill: PatientBill) -> "BillResponse":
        return cls(
            id=bill.id,
            payment_id=bill.payment_id,
            service_id=bill.service_id,
            service_name=bill.service.service_name if bill.service else None,
            service_date=bill.service_date,
            quantity=bill.quantity,
            unit_cost=bill.unit_cost,
            total_cost=bill.total_cost,
        )


class BillSummaryResponse(BaseModel):
    """Response model for the invoice summary (final bill)."""
    payment_id: int
    appointment_id: int
    bill_date: datetime
    total_amount: Decimal
    discount: Decimal
    discount_amount: Decimal
    payable: Decimal
    finalized: bool

    @classmethod
    def from_summary(cls, summary: BillSummary) -> "BillSummaryResponse":
        return cls(
            payment_id=summary.payment.id,
            appointment_id=summary.payment.appointment_id,
            bill_date=summary.payment.bill_date,
            total_amount=summary.total_amount,
            discount=summary.discount,
            discount_amount=summary.discount_amount,
            payable=summary.payable,
            finalized=summary.payment.finalized,
        )


class InvoiceResponse(BaseModel):
    """Response model for an appointment's bills with the current summary."""
    appointment_id: int
    bills: List[BillResponse]
    summary: Optional[BillSummaryResponse] = None  # None until the first line is added
