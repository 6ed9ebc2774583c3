"""
Order Module - Models
======================
Order with a price snapshot per item, an append-only status log and two
independent state axes (fulfilment status, payment status). Allowed moves on
each axis are listed in STATUS_TRANSITIONS / PAYMENT_TRANSITIONS.
"""

import enum
from sqlalchemy import (
    Column, Integer, String, Numeric, Text, ForeignKey, DateTime, CheckConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from config.database import Base


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    READY = "ready"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


STATUS_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED},
    OrderStatus.CONFIRMED: {OrderStatus.PREPARING, OrderStatus.CANCELLED},
    OrderStatus.PREPARING: {OrderStatus.READY, OrderStatus.CANCELLED},
    OrderStatus.READY: {OrderStatus.DELIVERED, OrderStatus.CANCELLED},
    OrderStatus.DELIVERED: set(),
    OrderStatus.CANCELLED: set(),
}

PAYMENT_TRANSITIONS = {
    PaymentStatus.PENDING: {PaymentStatus.COMPLETED, PaymentStatus.FAILED},
    PaymentStatus.FAILED: {PaymentStatus.PENDING, PaymentStatus.COMPLETED},
    PaymentStatus.COMPLETED: {PaymentStatus.REFUNDED},
    PaymentStatus.REFUNDED: set(),
}

# Statuses shown on the customer's "ongoing" tab
ONGOING_STATUSES = (OrderStatus.CONFIRMED, OrderStatus.PREPARING, OrderStatus.READY)


def can_transition(current: str, new: str) -> bool:
    try:
        return OrderStatus(new) in STATUS_TRANSITIONS[OrderStatus(current)]
    except ValueError:
        return False


def can_transition_payment(current: str, new: str) -> bool:
    try:
        return PaymentStatus(new) in PAYMENT_TRANSITIONS[PaymentStatus(current)]
    except ValueError:
        return False


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    order_number = Column(String(32), unique=True, nullable=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    total = Column(Numeric(10, 2), nullable=False)
    status = Column(String(16), default=OrderStatus.PENDING.value, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    # Delivery
    address_id = Column(Integer, ForeignKey("addresses.id", ondelete="SET NULL"), nullable=True)
    delivery_address = Column(Text, nullable=True)            # snapshot of address.full_address
    estimated_delivery_at = Column(DateTime(timezone=True), nullable=True)

    # Payment
    payment_status = Column(String(16), default=PaymentStatus.PENDING.value, nullable=False, index=True)
    payment_method = Column(String(32), nullable=True)        # card
    payment_intent_id = Column(String(255), unique=True, nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    refunded_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    user = relationship("User", foreign_keys=[user_id])
    address = relationship("Address", foreign_keys=[address_id])
    items = relationship(
        "OrderItem", back_populates="order", cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )
    status_logs = relationship(
        "OrderStatusLog", back_populates="order", cascade="all, delete-orphan",
        order_by="OrderStatusLog.id",
    )

    __table_args__ = (
        CheckConstraint("total >= 0", name="ck_order_total"),
    )

    @property
    def is_paid(self) -> bool:
        return self.payment_status == PaymentStatus.COMPLETED.value


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="RESTRICT"), nullable=False)
    quantity = Column(Integer, nullable=False)

    # Price snapshot at time of purchase
    price = Column(Numeric(10, 2), nullable=False)

    order = relationship("Order", back_populates="items")
    product = relationship("Product")

    __table_args__ = (
        CheckConstraint("quantity >= 1", name="ck_order_item_qty"),
    )


class OrderStatusLog(Base):
    """Append-only record of every fulfilment status change."""
    __tablename__ = "order_status_logs"

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(String(16), nullable=False)
    actor = Column(String(64), nullable=False)       # "user:<id>", "admin:<id>", "gateway", "system"
    note = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    order = relationship("Order", back_populates="status_logs")
