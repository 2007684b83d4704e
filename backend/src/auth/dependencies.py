# pyright: reportMissingTypeStubs=false
"""
Authentication dependencies for FastAPI.

Resolves the bearer JWT into a UserContext for HTTP endpoints; the same
resolution is used by the real-time notification socket.
"""

import logging
from typing import Optional
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from core.database import get_db
from core.exceptions import UnauthorizedError
from services.jwt_service import jwt_service, TokenPayload
from models import User, UserRole

logger = logging.getLogger(__name__)


class UserContext:
    """Authenticated user context extracted from JWT token."""

    def __init__(self, user_id: int, role: str, email: str):
        self.user_id = user_id
        self.role = role  # UserRole value
        self.email = email

    def is_patient(self) -> bool:
        return self.role == UserRole.PATIENT.value

    def is_doctor(self) -> bool:
        return self.role == UserRole.DOCTOR.value

    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value

    def __repr__(self) -> str:
        return f"UserContext(user_id={self.user_id}, role='{self.role}', email='{self.email}')"


# HTTP Bearer token security scheme
security = HTTPBearer(auto_error=False)


def get_token_payload(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> Optional[TokenPayload]:
    """Extract and validate JWT token payload."""
    if not credentials:
        return None

    token = credentials.credentials
    payload = jwt_service.verify_token(token)

    if not payload:
        return None

    return payload


def resolve_user_context(db: Session, payload: TokenPayload) -> UserContext:
    """
    Load the user a token refers to and build its context.

    The role comes from the database row, not the token, so a role change
    takes effect without reissuing tokens.

    Raises:
        UnauthorizedError: If the user does not exist or is inactive
    """
    user = db.query(User).filter(User.id == payload.user_id).first()
    if not user:
        raise UnauthorizedError("User not found")

    if not user.is_active:
        logger.info(f"Rejected token for inactive user {user.id}")
        raise UnauthorizedError("Account is inactive")

    return UserContext(user_id=user.id, role=user.role, email=user.email)


def authenticate_token(db: Session, token: Optional[str]) -> Optional[UserContext]:
    """
    Resolve a raw JWT string to a UserContext, or None when it is not valid.

    Used where no Authorization header is available (WebSocket query string).
    """
    if not token:
        return None

    payload = jwt_service.verify_token(token)
    if not payload:
        return None

    try:
        return resolve_user_context(db, payload)
    except UnauthorizedError:
        return None


def get_current_user(
    payload: Optional[TokenPayload] = Depends(get_token_payload),
    db: Session = Depends(get_db)
) -> UserContext:
    """Get authenticated user context from JWT token."""
    if not payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication credentials not provided"
        )

    return resolve_user_context(db, payload)
