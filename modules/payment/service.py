"""
Payment Service
=================
Payment sessions (gateway intents), webhook processing, client-side
confirmation and admin refunds. The gateway is passed in by the caller
(routes take it from app.state.gateway).
"""

import logging
from typing import Any, Dict

from sqlalchemy.orm import Session

from config.settings import PAYMENT_CURRENCY
from common.exceptions import InvalidStateError, NotFoundError
from common.helpers import generate_order_number, to_minor_units, money
from modules.notification.models import NotificationKind
from modules.notification.service import notify_user
from modules.order.models import Order, OrderStatus, PaymentStatus
from modules.order.service import order_service, user_actor, GATEWAY_ACTOR
from modules.payment.gateways import BaseGateway

# Import gateway modules to trigger register_gateway() calls
import modules.payment.gateways.stripe    # noqa: F401

logger = logging.getLogger("mimis.payment")

EVENT_SUCCEEDED = "payment_intent.succeeded"
EVENT_FAILED = "payment_intent.payment_failed"

# Intent statuses that mean the attempt is over without a charge
FAILED_INTENT_STATUSES = ("requires_payment_method", "canceled")


class PaymentService:

    # ==========================================
    # 💳 Payment session
    # ==========================================

    def create_payment_session(self, db: Session, gateway: BaseGateway, order_id: int, user_id: int) -> Dict[str, Any]:
        order = self._locked_user_order(db, user_id, order_id)

        if order.payment_status == PaymentStatus.COMPLETED.value:
            raise InvalidStateError("Order is already paid")
        if order.payment_status == PaymentStatus.REFUNDED.value:
            raise InvalidStateError("Order has been refunded")
        if order.status == OrderStatus.CANCELLED.value:
            raise InvalidStateError("Order is cancelled")

        if not order.order_number:
            order.order_number = generate_order_number()

        amount_minor = to_minor_units(order.total)
        intent = gateway.create_intent(amount_minor, PAYMENT_CURRENCY, {
            "orderId": str(order.id),
            "orderNumber": order.order_number,
            "userId": str(user_id),
        })

        order.payment_intent_id = intent.id
        order.payment_method = "card"
        if order.payment_status == PaymentStatus.FAILED.value:
            # Retried attempt after a failed one
            order_service.set_payment_status(order, PaymentStatus.PENDING)
        db.flush()

        logger.info(f"Payment session for order #{order.id} ({order.order_number}): intent {intent.id}, {amount_minor}")
        notify_user(db, user_id, NotificationKind.PAYMENT_INITIATED, order_service.order_payload(order))

        return {
            "clientSecret": intent.client_secret,
            "paymentIntentId": intent.id,
            "orderId": order.id,
            "orderNumber": order.order_number,
            "amount": str(money(order.total)),
            "currency": PAYMENT_CURRENCY,
        }

    # ==========================================
    # 🔔 Webhook
    # ==========================================

    def handle_webhook(self, db: Session, gateway: BaseGateway, payload: bytes, signature: str) -> Dict[str, Any]:
        """
        Authenticate and apply a gateway event. Unknown event types and
        intents that match no order are acknowledged and ignored; repeated
        deliveries leave the order unchanged.
        """
        event = gateway.construct_event(payload, signature)

        if event.type not in (EVENT_SUCCEEDED, EVENT_FAILED):
            logger.info(f"Webhook {event.id}: ignoring event type {event.type}")
            return {"received": True}

        order = order_service.find_by_intent(db, event.object_id) if event.object_id else None
        if not order:
            logger.warning(f"Webhook {event.id}: no order for intent {event.object_id}")
            return {"received": True}

        if event.type == EVENT_SUCCEEDED:
            received = event.data.get("amount_received", event.data.get("amount"))
            if received is not None and received != to_minor_units(order.total):
                logger.warning(f"Order #{order.id}: gateway amount {received} != order total {order.total}")
            applied = order_service.mark_paid(db, order, GATEWAY_ACTOR)
        else:
            applied = order_service.mark_payment_failed(db, order, GATEWAY_ACTOR)

        if not applied:
            logger.info(f"Webhook {event.id}: {event.type} already applied to order #{order.id}")
        return {"received": True}

    # ==========================================
    # ✅ Client confirmation
    # ==========================================

    def confirm_payment(self, db: Session, gateway: BaseGateway, order_id: int, user_id: int) -> Order:
        """Re-check the intent with the gateway rather than trusting the client."""
        order = self._locked_user_order(db, user_id, order_id)
        if not order.payment_intent_id:
            raise InvalidStateError("No payment has been started for this order")
        if order.payment_status in (PaymentStatus.COMPLETED.value, PaymentStatus.REFUNDED.value):
            return order

        intent = gateway.retrieve_intent(order.payment_intent_id)
        if intent.status == "succeeded":
            order_service.mark_paid(db, order, user_actor(user_id))
        elif intent.status in FAILED_INTENT_STATUSES:
            order_service.mark_payment_failed(db, order, user_actor(user_id))
        else:
            logger.info(f"Order #{order.id}: intent {intent.id} still {intent.status}")
        db.flush()
        return order

    # ==========================================
    # ↩️ Refund (admin)
    # ==========================================

    def refund_order(self, db: Session, gateway: BaseGateway, order_id: int, actor: str) -> Order:
        order = order_service.lock_order(db, order_id)
        if order.payment_status != PaymentStatus.COMPLETED.value:
            raise InvalidStateError("Only completed payments can be refunded")

        if order.payment_intent_id:
            gateway.create_refund(order.payment_intent_id)
        else:
            logger.warning(f"Order #{order.id} has no payment intent; marking refunded without gateway call")

        order_service.mark_refunded(db, order, actor)
        logger.info(f"Order #{order.id} refunded by {actor}")
        return order

    # ==========================================
    # Private helpers
    # ==========================================

    def _locked_user_order(self, db: Session, user_id: int, order_id: int) -> Order:
        order = db.query(Order).filter(
            Order.id == order_id, Order.user_id == user_id,
        ).with_for_update().first()
        if not order:
            raise NotFoundError("Order not found")
        return order


# Singleton
payment_service = PaymentService()
