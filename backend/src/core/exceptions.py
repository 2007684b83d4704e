"""
Domain error taxonomy.

Services raise these; the FastAPI exception handlers in main.py translate them
into JSON responses of the form {"detail": ..., "type": ...}.
"""

from fastapi import status


class DomainError(ValueError):
    """Base class for expected, user-facing failures."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    error_type: str = "domain_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(DomainError):
    """Appointment, invoice, service, bill line or notification is absent."""
    status_code = status.HTTP_404_NOT_FOUND
    error_type = "not_found"


class InvalidInputError(DomainError):
    """Malformed request values (negative quantity, discount out of range...)."""
    status_code = status.HTTP_400_BAD_REQUEST
    error_type = "invalid_input"


class InvalidStatusError(InvalidInputError):
    """Requested status is not a member of AppointmentStatus."""
    error_type = "invalid_status"


class InvalidTransitionError(DomainError):
    """Status change violates the appointment lifecycle."""
    status_code = status.HTTP_409_CONFLICT
    error_type = "invalid_transition"


class SlotConflictError(DomainError):
    """Doctor/date/time slot is already held by an active appointment."""
    status_code = status.HTTP_409_CONFLICT
    error_type = "slot_conflict"


class ConcurrentModificationError(DomainError):
    """Row is locked by another in-flight mutation."""
    status_code = status.HTTP_409_CONFLICT
    error_type = "concurrent_modification"


class UnauthorizedError(DomainError):
    """Missing or invalid identity."""
    status_code = status.HTTP_401_UNAUTHORIZED
    error_type = "unauthorized"


class PermissionDeniedError(DomainError):
    """Authenticated, but the role may not perform the operation."""
    status_code = status.HTTP_403_FORBIDDEN
    error_type = "permission_denied"
