"""
User Module - Models
=====================
Customer and admin accounts share one table; `role` decides admin access.
"""

import enum

from sqlalchemy import Column, Integer, String, Boolean, DateTime, true
from sqlalchemy.sql import func
from config.database import Base


class UserRole(str, enum.Enum):
    USER = "user"
    ADMIN = "admin"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    full_name = Column(String(200), nullable=False)
    phone_number = Column(String(32), nullable=True)
    password_hash = Column(String, nullable=False)
    role = Column(String(16), default=UserRole.USER.value, server_default=UserRole.USER.value, nullable=False)
    is_active = Column(Boolean, default=True, server_default=true(), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value
