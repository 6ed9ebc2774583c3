"""
Auth Module - Service Layer
============================
Registration and password login.
"""

import logging

from sqlalchemy.orm import Session

from common.exceptions import AuthenticationError, ConflictError
from common.security import hash_password, verify_password, create_access_token
from modules.user.models import User, UserRole

logger = logging.getLogger("mimis.auth")


class AuthService:

    def register(self, db: Session, email: str, password: str, full_name: str, phone_number: str = None) -> User:
        email = email.strip().lower()
        if db.query(User.id).filter(User.email == email).first():
            raise ConflictError("Email already registered")

        user = User(
            email=email,
            full_name=full_name.strip(),
            phone_number=phone_number,
            password_hash=hash_password(password),
            role=UserRole.USER.value,
        )
        db.add(user)
        db.flush()
        logger.info(f"User #{user.id} registered")
        return user

    def login(self, db: Session, email: str, password: str) -> str:
        user = db.query(User).filter(User.email == email.strip().lower()).first()
        if not user or not user.is_active or not verify_password(password, user.password_hash):
            raise AuthenticationError("Invalid credentials")
        return create_access_token(user.id, user.role)


auth_service = AuthService()
