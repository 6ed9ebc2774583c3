"""
Customer Module - Address Models
==================================
Saved delivery addresses. At most one default per user, enforced by a
partial unique index so concurrent writers cannot both win.
"""

from sqlalchemy import (
    Column, Integer, String, Boolean, ForeignKey, DateTime, Text, Float, Index, false, text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from config.database import Base


ADDRESS_LABELS = ("Home", "Work", "Other")


class Address(Base):
    __tablename__ = "addresses"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    label = Column(String(16), default="Home", nullable=False)
    street = Column(String, nullable=False)
    city = Column(String, nullable=False)
    state = Column(String, nullable=False)
    zip_code = Column(String(16), nullable=False)
    additional_info = Column(Text, nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    is_default = Column(Boolean, default=False, server_default=false(), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    user = relationship("User")

    __table_args__ = (
        Index(
            "uq_address_default_per_user", "user_id",
            unique=True,
            postgresql_where=text("is_default"),
            sqlite_where=text("is_default = 1"),
        ),
    )

    @property
    def full_address(self) -> str:
        parts = [self.street, self.city, self.state, self.zip_code]
        return ", ".join(p for p in parts if p)
