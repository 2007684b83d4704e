"""
Payment (invoice) model: the per-appointment billing aggregate.

total_amount is a cached value derived from the bill lines. It is
recomputed by BillingService after every line mutation and must never be
written from user input.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from sqlalchemy import String, ForeignKey, TIMESTAMP, Boolean, Numeric, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.database import Base


class PaymentStatus(str, Enum):
    UNPAID = "UNPAID"
    PART = "PART"
    PAID = "PAID"


class Payment(Base):
    """
    Invoice for one appointment.

    Key features:
    - One-to-one with Appointment (unique appointment_id)
    - discount is a percentage in [0, 100], applied when presenting the payable amount
    - finalized marks the summary as settled; it does not lock the bill lines
    """

    __tablename__ = "payments"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)

    appointment_id: Mapped[int] = mapped_column(ForeignKey("appointments.id", ondelete="RESTRICT"), unique=True)
    patient_id: Mapped[int] = mapped_column(ForeignKey("patients.id"))

    bill_date: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True))
    payment_date: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True))

    discount: Mapped[Decimal] = mapped_column(Numeric(5, 2), default=Decimal("0"))
    total_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"))
    """Σ total_cost of the current bill lines."""

    amount_paid: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"))
    payment_method: Mapped[str] = mapped_column(String(20), default="CASH")
    status: Mapped[str] = mapped_column(String(20), default=PaymentStatus.UNPAID.value)
    finalized: Mapped[bool] = mapped_column(Boolean, default=False)

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)

    # Relationships
    appointment = relationship("Appointment", back_populates="payment")
    bills = relationship(
        "PatientBill",
        back_populates="payment",
        cascade="all, delete-orphan",
        order_by="PatientBill.id",
    )

    __table_args__ = (
        Index('idx_payments_patient', 'patient_id'),
    )
