# pyright: reportMissingTypeStubs=false
from fastapi import Depends, HTTPException, status

from auth.dependencies import UserContext, get_current_user
from models import UserRole


def require_roles(*roles: str, detail: str = "Access denied"):
    """
    Dependency that ensures the user holds one of the given roles.

    Args:
        roles: Accepted UserRole values
        detail: Error detail returned with the 403

    Returns:
        Dependency function that can be used with FastAPI Depends()
    """
    accepted = frozenset(roles)

    def dependency(current_user: UserContext = Depends(get_current_user)) -> UserContext:
        if current_user.role in accepted:
            return current_user

        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail
        )

    return dependency


def require_patient():
    """Dependency that ensures the user is a patient."""
    return require_roles(
        UserRole.PATIENT.value,
        detail="Access denied: Patient account required"
    )


def require_doctor():
    """Dependency that ensures the user is a doctor."""
    return require_roles(
        UserRole.DOCTOR.value,
        detail="Access denied: Doctor privileges required"
    )


def require_clinic_staff():
    """
    Dependency that ensures the user is a doctor or an admin.

    Admins act on appointments and invoices with the doctor's rules.
    """
    return require_roles(
        UserRole.DOCTOR.value,
        UserRole.ADMIN.value,
        detail="Access denied: Doctor or admin privileges required"
    )


def require_admin():
    """Dependency that ensures the user is an admin."""
    return require_roles(
        UserRole.ADMIN.value,
        detail="Access denied: Admin privileges required"
    )
