"""
Payment Routes
================
Payment intent creation, client confirmation, gateway webhook.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.orm import Session

from config.database import get_db
from modules.auth.deps import get_current_user
from modules.order.schemas import PayOrderPayload, serialize_order
from modules.payment.gateways import BaseGateway, get_active_gateway
from modules.payment.service import payment_service

router = APIRouter(prefix="/payments", tags=["payment"])


async def raw_body(request: Request) -> bytes:
    """Unparsed request body; the webhook signature covers the exact bytes."""
    return await request.body()


# ==========================================
# 💳 Create payment intent
# ==========================================

@router.post("/create-payment-intent")
def create_payment_intent(
    payload: PayOrderPayload,
    db: Session = Depends(get_db),
    gateway: BaseGateway = Depends(get_active_gateway),
    me=Depends(get_current_user),
):
    result = payment_service.create_payment_session(db, gateway, payload.order_id, me.id)
    db.commit()
    return result


# ==========================================
# ✅ Confirm (client returns from checkout)
# ==========================================

@router.post("/confirm")
def confirm_payment(
    payload: PayOrderPayload,
    db: Session = Depends(get_db),
    gateway: BaseGateway = Depends(get_active_gateway),
    me=Depends(get_current_user),
):
    order = payment_service.confirm_payment(db, gateway, payload.order_id, me.id)
    db.commit()
    db.refresh(order)
    return serialize_order(order)


# ==========================================
# 🔔 Webhook
# ==========================================

@router.post("/webhook")
def payment_webhook(
    body: bytes = Depends(raw_body),
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
    db: Session = Depends(get_db),
    gateway: BaseGateway = Depends(get_active_gateway),
):
    result = payment_service.handle_webhook(db, gateway, body, stripe_signature)
    db.commit()
    return result
