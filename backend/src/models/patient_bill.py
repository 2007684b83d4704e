"""
PatientBill model: one line item on an appointment's invoice.
"""

from datetime import datetime
from decimal import Decimal
from sqlalchemy import ForeignKey, TIMESTAMP, Numeric, Integer, Index, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.database import Base


class PatientBill(Base):
    """
    Bill line referencing a catalog service.

    unit_cost is a snapshot of the service price taken when the line was
    created (or when its service was changed); total_cost = unit_cost * quantity.
    """

    __tablename__ = "patient_bills"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    payment_id: Mapped[int] = mapped_column(ForeignKey("payments.id", ondelete="CASCADE"))
    service_id: Mapped[int] = mapped_column(ForeignKey("services.id"))
    service_date: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True))
    quantity: Mapped[int] = mapped_column(Integer)
    unit_cost: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    total_cost: Mapped[Decimal] = mapped_column(Numeric(10, 2))

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)

    # Relationships
    payment = relationship("Payment", back_populates="bills")
    service = relationship("Service")

    __table_args__ = (
        Index('idx_patient_bills_payment', 'payment_id'),
        CheckConstraint('quantity >= 1', name='ck_patient_bills_quantity_positive'),
    )
