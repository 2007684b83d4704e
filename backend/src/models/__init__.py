# Package initialization
# Import all models to ensure relationships are properly established
from .user import User, UserRole, UserStatus
from .patient import Patient
from .doctor import Doctor
from .service import Service
from .appointment import Appointment, AppointmentStatus
from .payment import Payment, PaymentStatus
from .patient_bill import PatientBill
from .notification import Notification

__all__ = [
    "User",
    "UserRole",
    "UserStatus",
    "Patient",
    "Doctor",
    "Service",
    "Appointment",
    "AppointmentStatus",
    "Payment",
    "PaymentStatus",
    "PatientBill",
    "Notification",
]
