"""
Order Module - Schemas
========================
Request bodies and response shapes for the customer and admin order APIs.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from config.settings import STATUS_HISTORY_LIMIT
from common.helpers import line_total
from common.schemas import CamelModel


class CreateOrderPayload(CamelModel):
    address_id: Optional[int] = None


class PayOrderPayload(CamelModel):
    order_id: int


class StatusUpdatePayload(CamelModel):
    order_id: int
    status: str
    note: Optional[str] = None


class PaymentStatusPayload(CamelModel):
    payment_status: str


class OrderItemRead(CamelModel):
    product_id: int
    product_name: str
    quantity: int
    price: Decimal
    line_total: Decimal


class StatusLogRead(CamelModel):
    status: str
    actor: str
    note: Optional[str] = None
    created_at: Optional[datetime] = None


class CustomerRead(CamelModel):
    id: int
    full_name: str
    email: str


class OrderRead(CamelModel):
    id: int
    order_number: Optional[str] = None
    user_id: int
    items: List[OrderItemRead]
    total: Decimal
    status: str
    payment_status: str
    payment_method: Optional[str] = None
    address_id: Optional[int] = None
    delivery_address: Optional[str] = None
    estimated_delivery_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    refunded_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    status_history: List[StatusLogRead] = []
    customer: Optional[CustomerRead] = None


def serialize_order(order, history_limit: int = STATUS_HISTORY_LIMIT, include_customer: bool = False) -> dict:
    """Order as a camelCase dict; only the latest `history_limit` log entries are inlined."""
    logs = list(order.status_logs)[-history_limit:] if history_limit else []
    data = OrderRead(
        id=order.id,
        order_number=order.order_number,
        user_id=order.user_id,
        items=[
            OrderItemRead(
                product_id=it.product_id,
                product_name=it.product.name if it.product else "",
                quantity=it.quantity,
                price=it.price,
                line_total=line_total(it.price, it.quantity),
            )
            for it in order.items
        ],
        total=order.total,
        status=order.status,
        payment_status=order.payment_status,
        payment_method=order.payment_method,
        address_id=order.address_id,
        delivery_address=order.delivery_address,
        estimated_delivery_at=order.estimated_delivery_at,
        paid_at=order.paid_at,
        refunded_at=order.refunded_at,
        created_at=order.created_at,
        updated_at=order.updated_at,
        status_history=[StatusLogRead.model_validate(log) for log in logs],
        customer=CustomerRead.model_validate(order.user) if include_customer and order.user else None,
    )
    return data.model_dump(mode="json", by_alias=True)
