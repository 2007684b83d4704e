"""
User model for every authenticated identity (patients, doctors, admins).

Role cohorts used for notification fan-out are resolved from this table.
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from sqlalchemy import String, TIMESTAMP, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.database import Base


class UserRole(str, Enum):
    PATIENT = "PATIENT"
    DOCTOR = "DOCTOR"
    ADMIN = "ADMIN"


class UserStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class User(Base):
    """Platform user. Profile data lives on Patient / Doctor."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)

    email: Mapped[str] = mapped_column(String(255), unique=True)
    role: Mapped[str] = mapped_column(String(20))
    """One of UserRole values."""

    status: Mapped[str] = mapped_column(String(20), default=UserStatus.ACTIVE.value)
    """Only ACTIVE users may open a live notification session."""

    first_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    last_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)

    # Relationships
    notifications = relationship("Notification", back_populates="user", cascade="all, delete-orphan")
    patient_profile = relationship("Patient", back_populates="user", uselist=False)
    doctor_profile = relationship("Doctor", back_populates="user", uselist=False)

    @property
    def is_active(self) -> bool:
        return self.status == UserStatus.ACTIVE.value

    __table_args__ = (
        Index('idx_users_role', 'role'),
    )
