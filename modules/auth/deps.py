"""
Auth Module - Dependencies
===========================
FastAPI dependencies for user authentication and authorization.
These are injected into route handlers via Depends().
"""

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from config.database import get_db
from common.exceptions import AuthenticationError, AuthorizationError
from common.security import decode_token
from modules.user.models import User

bearer_scheme = HTTPBearer(auto_error=False)


def get_current_user(
    creds: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> User:
    """Resolve the bearer token to an active User. Raises 401 otherwise."""
    if not creds:
        raise AuthenticationError("Not authenticated")

    payload = decode_token(creds.credentials)
    if not payload:
        raise AuthenticationError("Invalid token")

    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        raise AuthenticationError("Invalid token")

    user = db.query(User).filter(User.id == user_id, User.is_active == True).first()  # noqa: E712
    if not user:
        raise AuthenticationError("User not found")
    return user


def require_admin(user: User = Depends(get_current_user)) -> User:
    """Only allow admin users. Raises 403 otherwise."""
    if not user.is_admin:
        raise AuthorizationError("Admin access required")
    return user
