"""
Service catalog entry (name + unit price).

Bill lines copy the price at creation time, so later price changes never
rewrite existing bills.
"""

from decimal import Decimal
from typing import Optional
from sqlalchemy import String, Numeric
from sqlalchemy.orm import Mapped, mapped_column

from core.database import Base


class Service(Base):
    """Billable clinic service."""

    __tablename__ = "services"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    service_name: Mapped[str] = mapped_column(String(200))
    description: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2))
