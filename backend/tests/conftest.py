"""
Test configuration and shared fixtures for the clinic scheduling test suite.

Uses an in-memory SQLite database by default (set TEST_DATABASE_URL to run
against PostgreSQL). Each test gets a freshly created schema.
"""

import os

# Must be set before core.config is imported by anything below
os.environ["DATABASE_URL"] = os.getenv("TEST_DATABASE_URL", "sqlite://")
os.environ["DAILY_SUMMARY_ENABLED"] = "false"

import pytest
from datetime import datetime, timezone
from decimal import Decimal
from typing import Generator, Optional

from sqlalchemy.orm import Session, sessionmaker

from core.database import Base, engine
from models import (
    Doctor,
    Patient,
    Service,
    User,
    UserRole,
    UserStatus,
)
import services.connection_registry as connection_registry_module
import services.notification_dispatcher as notification_dispatcher_module


@pytest.fixture(scope="session")
def db_engine():
    """
    Database engine for the test session.

    This is the application's engine so that code paths opening their own
    sessions (scheduler jobs) see the same database.
    """
    yield engine
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(db_engine) -> Generator[Session, None, None]:
    """
    Provide a database session on a freshly created schema.

    Tables are dropped after the test, so commits made by the code under
    test never leak between tests.
    """
    Base.metadata.create_all(bind=db_engine)

    TestingSession = sessionmaker(
        bind=db_engine,
        autoflush=False,
        expire_on_commit=False,
    )
    session = TestingSession()

    yield session

    session.close()
    Base.metadata.drop_all(bind=db_engine)


@pytest.fixture(autouse=True)
def reset_notification_globals():
    """Give every test its own connection registry and dispatcher."""
    connection_registry_module._connection_registry = None
    notification_dispatcher_module._notification_dispatcher = None
    yield
    connection_registry_module._connection_registry = None
    notification_dispatcher_module._notification_dispatcher = None


# Helper functions for creating domain rows
def create_user(
    db_session: Session,
    email: str,
    role: UserRole,
    first_name: str = "Test",
    last_name: str = "User",
    status: UserStatus = UserStatus.ACTIVE
) -> User:
    """Create and commit a user with the given role."""
    user = User(
        email=email,
        role=role.value,
        status=status.value,
        first_name=first_name,
        last_name=last_name,
    )
    db_session.add(user)
    db_session.commit()
    return user


def create_patient(
    db_session: Session,
    first_name: str = "Jane",
    last_name: str = "Doe",
    email: Optional[str] = None
) -> Patient:
    """Create a patient user and its patient profile."""
    user = create_user(
        db_session,
        email=email or f"{first_name.lower()}.{last_name.lower()}@example.com",
        role=UserRole.PATIENT,
        first_name=first_name,
        last_name=last_name,
    )
    patient = Patient(
        user_id=user.id,
        first_name=first_name,
        last_name=last_name,
        phone="+15550100",
    )
    db_session.add(patient)
    db_session.commit()
    return patient


def create_doctor(
    db_session: Session,
    name: str = "Smith",
    specialization: str = "General Practice",
    email: Optional[str] = None
) -> Doctor:
    """Create a doctor user and its doctor profile."""
    user = create_user(
        db_session,
        email=email or f"dr.{name.lower()}@example.com",
        role=UserRole.DOCTOR,
        first_name=name,
        last_name="",
    )
    doctor = Doctor(user_id=user.id, name=name, specialization=specialization)
    db_session.add(doctor)
    db_session.commit()
    return doctor


def create_admin(
    db_session: Session,
    email: str = "admin@example.com",
    status: UserStatus = UserStatus.ACTIVE
) -> User:
    """Create an admin user."""
    return create_user(db_session, email=email, role=UserRole.ADMIN, first_name="Clinic", last_name="Admin", status=status)


def create_service(db_session: Session, name: str = "Consultation", price: str = "100.00") -> Service:
    """Create a catalog service with the given price."""
    service = Service(service_name=name, description=f"{name} service", price=Decimal(price))
    db_session.add(service)
    db_session.commit()
    return service


def service_time() -> datetime:
    """Fixed service timestamp used for bill lines."""
    return datetime(2026, 10, 19, 9, 30, tzinfo=timezone.utc)


@pytest.fixture
def patient(db_session: Session) -> Patient:
    return create_patient(db_session)


@pytest.fixture
def doctor(db_session: Session) -> Doctor:
    return create_doctor(db_session)


@pytest.fixture
def admin(db_session: Session) -> User:
    return create_admin(db_session)


@pytest.fixture
def consultation(db_session: Session) -> Service:
    return create_service(db_session, "Consultation", "100.00")
