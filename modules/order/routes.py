"""
Order Routes (Customer)
=========================
Place an order from the cart, list/view own orders, pay, cancel.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from config.database import get_db
from modules.auth.deps import get_current_user
from modules.order.schemas import CreateOrderPayload, PayOrderPayload, serialize_order
from modules.order.service import order_service
from modules.payment.gateways import BaseGateway, get_active_gateway
from modules.payment.service import payment_service

router = APIRouter(prefix="/orders", tags=["orders"])


# ==========================================
# 🧾 Create
# ==========================================

@router.post("/create", status_code=201)
def create_order(
    payload: Optional[CreateOrderPayload] = None,
    db: Session = Depends(get_db),
    me=Depends(get_current_user),
):
    address_id = payload.address_id if payload else None
    order = order_service.create_order(db, me.id, address_id)
    db.commit()
    db.refresh(order)
    return serialize_order(order)


# ==========================================
# 📋 Lists
# ==========================================

@router.get("")
@router.get("/list")
def list_orders(
    status: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    me=Depends(get_current_user),
):
    return [serialize_order(o) for o in order_service.list_for_user(db, me.id, status)]


@router.get("/paid")
def list_paid_orders(db: Session = Depends(get_db), me=Depends(get_current_user)):
    return [serialize_order(o) for o in order_service.list_paid(db, me.id)]


@router.get("/ongoing")
def list_ongoing_orders(db: Session = Depends(get_db), me=Depends(get_current_user)):
    return [serialize_order(o) for o in order_service.list_ongoing(db, me.id)]


# ==========================================
# 💳 Pay (confirm with gateway)
# ==========================================

@router.post("/pay")
def pay_order(
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
# 🔍 Detail / cancel
# ==========================================

@router.get("/{order_id}")
def get_order(order_id: int, db: Session = Depends(get_db), me=Depends(get_current_user)):
    return serialize_order(order_service.get_for_user(db, me.id, order_id))


@router.post("/{order_id}/cancel")
def cancel_order(order_id: int, db: Session = Depends(get_db), me=Depends(get_current_user)):
    order = order_service.cancel_by_user(db, me.id, order_id)
    db.commit()
    db.refresh(order)
    return serialize_order(order)
