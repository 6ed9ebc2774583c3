"""
Catalog Module - Models
========================
Menu products. Price and availability are owned by catalog management;
the order core only reads them.
"""

from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, Numeric, Text, CheckConstraint, true,
)
from sqlalchemy.sql import func
from config.database import Base


class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=False, default="")
    category = Column(String(100), nullable=False, index=True)
    price = Column(Numeric(10, 2), nullable=False)
    image_url = Column(String, nullable=True)
    is_available = Column(Boolean, default=True, server_default=true(), nullable=False)

    # Aggregate rating, recomputed from reviews
    rating_average = Column(Numeric(3, 2), default=0, server_default="0", nullable=False)
    rating_count = Column(Integer, default=0, server_default="0", nullable=False)
    order_count = Column(Integer, default=0, server_default="0", nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_product_price"),
    )
