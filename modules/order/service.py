"""
Order Module - Service Layer
===============================
Order creation from the cart, status and payment-status transitions,
admin edits, queries, stale-order cleanup.

Every fulfilment status change goes through `_transition`, which checks
STATUS_TRANSITIONS and appends exactly one OrderStatusLog row.
"""

import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import asc, desc, or_
from sqlalchemy.orm import Session

from config.settings import ESTIMATED_DELIVERY_MINUTES
from common.exceptions import InvalidStateError, NotFoundError, ValidationError
from common.helpers import now_utc, money, line_total
from modules.cart.service import cart_service
from modules.catalog.service import catalog_service
from modules.customer.address_models import Address
from modules.customer.address_service import address_service
from modules.notification.models import NotificationKind
from modules.notification.service import notify_user
from modules.order.models import (
    Order, OrderItem, OrderStatusLog, OrderStatus, PaymentStatus,
    ONGOING_STATUSES, can_transition, can_transition_payment,
)
from modules.user.models import User

logger = logging.getLogger("mimis.order")

# Payment statuses an admin (or the gateway) may set explicitly
SETTABLE_PAYMENT_STATUSES = (PaymentStatus.PENDING, PaymentStatus.COMPLETED, PaymentStatus.FAILED)

# Fields accepted by admin_edit, as sent on the wire
ADMIN_EDITABLE_FIELDS = {"status", "deliveryAddress", "items"}

SORT_FIELDS = {
    "created_at": Order.created_at,
    "total": Order.total,
    "status": Order.status,
}


def user_actor(user_id: int) -> str:
    return f"user:{user_id}"


def admin_actor(user_id: int) -> str:
    return f"admin:{user_id}"


SYSTEM_ACTOR = "system"
GATEWAY_ACTOR = "gateway"


class OrderService:

    # ==========================================
    # Create
    # ==========================================

    def create_order(self, db: Session, user_id: int, address_id: Optional[int] = None) -> Order:
        """
        Create an order from the user's cart:
        1. Claim the cart atomically (lock + version swap); empty cart fails first
        2. Resolve the delivery address (explicit or default)
        3. Re-check every product still exists and is available
        4. Snapshot lines and total into a pending order
        Any failure after step 1 rolls the claim back with the transaction.
        """
        lines, total = cart_service.consume(db, user_id)

        address = self._resolve_address(db, user_id, address_id)

        products = catalog_service.get_products_map(db, [l.product_id for l in lines])
        for line in lines:
            product = products.get(line.product_id)
            if not product or not product.is_available:
                name = product.name if product else f"#{line.product_id}"
                raise InvalidStateError(f"Product {name} is no longer available")

        now = now_utc()
        order = Order(
            user_id=user_id,
            total=total,
            status=OrderStatus.PENDING.value,
            payment_status=PaymentStatus.PENDING.value,
            address_id=address.id,
            delivery_address=address.full_address,
            estimated_delivery_at=now + timedelta(minutes=ESTIMATED_DELIVERY_MINUTES),
            created_at=now,
            updated_at=now,
        )
        for line in lines:
            order.items.append(OrderItem(
                product_id=line.product_id,
                quantity=line.quantity,
                price=line.price,
            ))
        order.status_logs.append(OrderStatusLog(
            status=OrderStatus.PENDING.value,
            actor=user_actor(user_id),
            note="Order placed",
            created_at=now,
        ))
        db.add(order)
        db.flush()

        logger.info(f"Order #{order.id} created for user #{user_id}: {len(lines)} line(s), total {total}")
        notify_user(db, user_id, NotificationKind.ORDER_CREATED, self.order_payload(order))
        return order

    # ==========================================
    # Fulfilment status
    # ==========================================

    def update_status(
        self, db: Session, order_id: int, new_status: str, actor: str, note: Optional[str] = None,
    ) -> Order:
        new_status = self._parse_status(new_status)
        order = self.lock_order(db, order_id)
        self._transition(db, order, new_status, actor, note)
        db.flush()
        return order

    def cancel_by_user(self, db: Session, user_id: int, order_id: int) -> Order:
        order = self.get_for_user(db, user_id, order_id)
        if order.status != OrderStatus.PENDING.value:
            raise InvalidStateError("Only pending orders can be cancelled")
        return self.update_status(db, order.id, OrderStatus.CANCELLED.value, user_actor(user_id), "Cancelled by customer")

    def delete_order(self, db: Session, order_id: int):
        order = self.lock_order(db, order_id)
        if order.status != OrderStatus.PENDING.value:
            raise InvalidStateError("Can only delete pending orders")
        db.delete(order)
        db.flush()
        logger.info(f"Order #{order_id} deleted")

    # ==========================================
    # Payment status
    # ==========================================

    def update_payment_status(self, db: Session, order_id: int, new_status: str, actor: str) -> Order:
        """Admin entry point. Re-applying the current value is a no-op."""
        try:
            new_status = PaymentStatus(new_status)
        except ValueError:
            new_status = None
        if new_status not in SETTABLE_PAYMENT_STATUSES:
            raise ValidationError("Invalid payment status")

        order = self.lock_order(db, order_id)
        if order.payment_status == new_status.value:
            return order
        if not can_transition_payment(order.payment_status, new_status.value):
            raise InvalidStateError(
                f"Cannot change payment status from {order.payment_status} to {new_status.value}"
            )

        if new_status == PaymentStatus.COMPLETED:
            self.mark_paid(db, order, actor)
        elif new_status == PaymentStatus.FAILED:
            self.mark_payment_failed(db, order, actor)
        else:
            self.set_payment_status(order, new_status)
        db.flush()
        return order

    def mark_paid(self, db: Session, order: Order, actor: str, payment_method: str = "card") -> bool:
        """
        completed + confirmed + paid_at. Returns False without touching the
        order when it is already completed (duplicate webhook delivery).
        """
        if order.payment_status == PaymentStatus.COMPLETED.value:
            return False
        if not can_transition_payment(order.payment_status, PaymentStatus.COMPLETED.value):
            logger.warning(f"Order #{order.id}: ignoring payment success in state {order.payment_status}")
            return False

        self.set_payment_status(order, PaymentStatus.COMPLETED)
        order.paid_at = now_utc()
        order.payment_method = order.payment_method or payment_method

        if order.status == OrderStatus.PENDING.value:
            self._transition(db, order, OrderStatus.CONFIRMED, actor, "Payment received", notify=False)
        else:
            logger.warning(f"Order #{order.id} paid while {order.status}; status left unchanged")

        for item in order.items:
            if item.product is not None:
                item.product.order_count = (item.product.order_count or 0) + item.quantity

        db.flush()
        logger.info(f"Order #{order.id} paid ({actor})")
        notify_user(db, order.user_id, NotificationKind.PAYMENT_SUCCEEDED, self.order_payload(order))
        return True

    def mark_payment_failed(self, db: Session, order: Order, actor: str) -> bool:
        """Payment failed; fulfilment status is untouched. No-op unless payment is pending."""
        if order.payment_status != PaymentStatus.PENDING.value:
            return False
        self.set_payment_status(order, PaymentStatus.FAILED)
        db.flush()
        logger.info(f"Order #{order.id} payment failed ({actor})")
        notify_user(db, order.user_id, NotificationKind.PAYMENT_FAILED, self.order_payload(order))
        return True

    def mark_refunded(self, db: Session, order: Order, actor: str) -> Order:
        if not can_transition_payment(order.payment_status, PaymentStatus.REFUNDED.value):
            raise InvalidStateError("Only completed payments can be refunded")
        self.set_payment_status(order, PaymentStatus.REFUNDED)
        order.refunded_at = now_utc()
        if can_transition(order.status, OrderStatus.CANCELLED.value):
            self._transition(db, order, OrderStatus.CANCELLED, actor, "Payment refunded", notify=False)
        db.flush()
        notify_user(db, order.user_id, NotificationKind.PAYMENT_REFUNDED, self.order_payload(order))
        return order

    # ==========================================
    # Admin edit
    # ==========================================

    def admin_edit(self, db: Session, order_id: int, data: dict, actor: str) -> Order:
        """
        Edit an order's status, delivery address and/or items.
        Items are re-priced from the current catalog price.
        """
        unknown = set(data) - ADMIN_EDITABLE_FIELDS
        if unknown:
            raise ValidationError(f"Invalid fields: {', '.join(sorted(unknown))}")

        order = self.lock_order(db, order_id)

        if data.get("deliveryAddress") is not None:
            address = db.query(Address).filter(
                Address.id == data["deliveryAddress"],
                Address.user_id == order.user_id,
            ).first()
            if not address:
                raise NotFoundError("Address not found")
            order.address_id = address.id
            order.delivery_address = address.full_address

        if data.get("items") is not None:
            self._replace_items(db, order, data["items"])

        if data.get("status") is not None and data["status"] != order.status:
            self._transition(db, order, self._parse_status(data["status"]), actor, "Edited by admin")

        order.updated_at = now_utc()
        db.flush()
        logger.info(f"Order #{order.id} edited by {actor}: {', '.join(sorted(data))}")
        return order

    # ==========================================
    # Queries
    # ==========================================

    def get_order(self, db: Session, order_id: int) -> Order:
        order = db.query(Order).filter(Order.id == order_id).first()
        if not order:
            raise NotFoundError("Order not found")
        return order

    def get_for_user(self, db: Session, user_id: int, order_id: int) -> Order:
        order = db.query(Order).filter(Order.id == order_id, Order.user_id == user_id).first()
        if not order:
            raise NotFoundError("Order not found")
        return order

    def find_by_intent(self, db: Session, intent_id: str) -> Optional[Order]:
        return db.query(Order).filter(Order.payment_intent_id == intent_id).with_for_update().first()

    def list_for_user(self, db: Session, user_id: int, status: Optional[str] = None) -> List[Order]:
        q = db.query(Order).filter(Order.user_id == user_id)
        if status:
            q = q.filter(Order.status == self._parse_status(status).value)
        return q.order_by(desc(Order.created_at), desc(Order.id)).all()

    def list_paid(self, db: Session, user_id: int) -> List[Order]:
        return db.query(Order).filter(
            Order.user_id == user_id,
            Order.payment_status == PaymentStatus.COMPLETED.value,
        ).order_by(desc(Order.created_at), desc(Order.id)).all()

    def list_ongoing(self, db: Session, user_id: int) -> List[Order]:
        return db.query(Order).filter(
            Order.user_id == user_id,
            Order.status.in_([s.value for s in ONGOING_STATUSES]),
        ).order_by(desc(Order.created_at), desc(Order.id)).all()

    def list_orders(
        self, db: Session,
        status: Optional[str] = None,
        payment_status: Optional[str] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 10,
        sort: str = "-created_at",
    ) -> Tuple[List[Order], int]:
        """Admin order list with filters, search, pagination and sort."""
        q = db.query(Order)
        if status:
            q = q.filter(Order.status == self._parse_status(status).value)
        if payment_status:
            q = q.filter(Order.payment_status == payment_status)
        if date_from:
            q = q.filter(Order.created_at >= date_from)
        if date_to:
            q = q.filter(Order.created_at <= date_to)
        if search:
            term = f"%{search.strip()}%"
            q = q.join(User, User.id == Order.user_id).filter(or_(
                Order.order_number.ilike(term),
                User.full_name.ilike(term),
                User.email.ilike(term),
            ))

        field_name = sort.lstrip("-")
        column = SORT_FIELDS.get(field_name)
        if column is None:
            raise ValidationError(f"Invalid sort field: {field_name}")
        direction = desc if sort.startswith("-") else asc

        total = q.count()
        orders = (
            q.order_by(direction(column), direction(Order.id))
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return orders, total

    def status_history(self, db: Session, order_id: int, limit: Optional[int] = None) -> List[OrderStatusLog]:
        """Most recent `limit` entries (all when None), oldest first."""
        q = db.query(OrderStatusLog).filter(OrderStatusLog.order_id == order_id)
        if limit is None:
            return q.order_by(OrderStatusLog.id).all()
        rows = q.order_by(desc(OrderStatusLog.id)).limit(limit).all()
        return list(reversed(rows))

    # ==========================================
    # Cleanup (scheduler)
    # ==========================================

    def cancel_stale_orders(self, db: Session, ttl_minutes: int) -> int:
        """Cancel pending, unpaid orders older than `ttl_minutes`. 0 disables."""
        if ttl_minutes <= 0:
            return 0
        cutoff = now_utc() - timedelta(minutes=ttl_minutes)
        stale = db.query(Order).filter(
            Order.status == OrderStatus.PENDING.value,
            Order.payment_status != PaymentStatus.COMPLETED.value,
            Order.created_at < cutoff,
        ).with_for_update(skip_locked=True).all()

        for order in stale:
            self._transition(db, order, OrderStatus.CANCELLED, SYSTEM_ACTOR, "Payment not received in time")
        if stale:
            db.flush()
            logger.info(f"Cancelled {len(stale)} stale pending orders")
        return len(stale)

    # ==========================================
    # Serialization helper for notifications
    # ==========================================

    def order_payload(self, order: Order, **extra) -> dict:
        payload = {
            "order_id": order.id,
            "order_number": order.order_number,
            "total": money(order.total),
            "status": order.status,
            "payment_status": order.payment_status,
            "items": [
                {
                    "name": it.product.name if it.product else f"Product #{it.product_id}",
                    "quantity": it.quantity,
                    "price": money(it.price),
                }
                for it in order.items
            ],
            "estimated_delivery": (
                order.estimated_delivery_at.strftime("%H:%M") if order.estimated_delivery_at else None
            ),
        }
        payload.update(extra)
        return payload

    # ==========================================
    # Helpers
    # ==========================================

    def _transition(
        self, db: Session, order: Order, new_status: OrderStatus, actor: str,
        note: Optional[str] = None, notify: bool = True,
    ):
        if not can_transition(order.status, new_status.value):
            raise InvalidStateError(f"Cannot change order status from {order.status} to {new_status.value}")
        now = now_utc()
        order.status = new_status.value
        order.updated_at = now
        order.status_logs.append(OrderStatusLog(
            status=new_status.value, actor=actor, note=note, created_at=now,
        ))
        logger.info(f"Order #{order.id}: -> {new_status.value} by {actor}")
        if notify:
            notify_user(
                db, order.user_id, NotificationKind.ORDER_STATUS_CHANGED,
                self.order_payload(order, note=note),
            )

    def set_payment_status(self, order: Order, new_status: PaymentStatus):
        if not can_transition_payment(order.payment_status, new_status.value):
            raise InvalidStateError(
                f"Cannot change payment status from {order.payment_status} to {new_status.value}"
            )
        order.payment_status = new_status.value
        order.updated_at = now_utc()

    def _replace_items(self, db: Session, order: Order, items: list):
        if order.payment_status in (PaymentStatus.COMPLETED.value, PaymentStatus.REFUNDED.value):
            raise InvalidStateError("Cannot edit items of a paid order")
        if not isinstance(items, list) or not items:
            raise ValidationError("Order must contain at least one item")

        parsed = []
        for raw in items:
            if not isinstance(raw, dict):
                raise ValidationError("Invalid item")
            product_id = raw.get("productId", raw.get("product_id"))
            quantity = raw.get("quantity")
            if not isinstance(product_id, int) or not isinstance(quantity, int) or quantity < 1:
                raise ValidationError("Each item needs a productId and a quantity of at least 1")
            parsed.append((product_id, quantity))

        products = catalog_service.get_products_map(db, [pid for pid, _ in parsed])
        missing = [pid for pid, _ in parsed if pid not in products]
        if missing:
            raise NotFoundError(f"Product not found: {missing[0]}")

        order.items.clear()
        db.flush()
        total = Decimal("0")
        for product_id, quantity in parsed:
            price = money(products[product_id].price)
            order.items.append(OrderItem(product_id=product_id, quantity=quantity, price=price))
            total += line_total(price, quantity)
        order.total = money(total)

    def _resolve_address(self, db: Session, user_id: int, address_id: Optional[int]) -> Address:
        if address_id is not None:
            return address_service.get_address(db, user_id, address_id)
        address = address_service.get_default(db, user_id)
        if not address:
            raise ValidationError("Delivery address is required")
        return address

    def lock_order(self, db: Session, order_id: int) -> Order:
        order = db.query(Order).filter(Order.id == order_id).with_for_update().first()
        if not order:
            raise NotFoundError("Order not found")
        return order

    def _parse_status(self, value) -> OrderStatus:
        try:
            return OrderStatus(value)
        except ValueError:
            raise ValidationError(f"Invalid status: {value}")


# Singleton
order_service = OrderService()
