"""
Test utilities for clinic scheduling tests.
"""

import jwt
from datetime import datetime, timedelta, timezone
from typing import Dict

from core.config import JWT_SECRET_KEY
from models import User


def create_jwt_token(user_id: int, role: str, email: str, expires_in: timedelta = timedelta(hours=1)) -> str:
    """Create a JWT access token for a user."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "role": role,
        "email": email,
        "exp": now + expires_in,
        "iat": now
    }
    return jwt.encode(payload, JWT_SECRET_KEY, algorithm="HS256")


def auth_headers(user: User) -> Dict[str, str]:
    """Authorization header for requests made as the given user."""
    token = create_jwt_token(user.id, user.role, user.email)
    return {"Authorization": f"Bearer {token}"}
