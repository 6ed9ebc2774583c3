"""
Review Module - Models
========================
Product reviews submitted from a delivered order. One review per
(product, order, user).
"""

from sqlalchemy import (
    Column, Integer, DateTime, ForeignKey, Text, Boolean, JSON, Index,
    UniqueConstraint, CheckConstraint, true,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from config.database import Base


MAX_COMMENT_LENGTH = 500


class Review(Base):
    __tablename__ = "reviews"

    id = Column(Integer, primary_key=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    rating = Column(Integer, nullable=False)  # 1-5
    comment = Column(Text, nullable=False)
    images = Column(JSON, nullable=False, default=list)   # list of image URLs
    is_verified_purchase = Column(Boolean, default=True, server_default=true(), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    # Relationships
    product = relationship("Product", foreign_keys=[product_id])
    user = relationship("User", foreign_keys=[user_id])

    __table_args__ = (
        UniqueConstraint("product_id", "order_id", "user_id", name="uq_review_product_order_user"),
        CheckConstraint("rating >= 1 AND rating <= 5", name="ck_review_rating"),
        Index("ix_review_product", "product_id"),
        Index("ix_review_user", "user_id"),
    )
