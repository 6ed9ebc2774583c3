"""
Order Module - Admin Routes
==============================
Order management for admin: list, stats, detail, history, status and
payment-status changes, edit, delete, refund.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.orm import Session

from config.settings import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from common.schemas import build_pagination
from modules.admin.dashboard_service import dashboard_service
from modules.auth.deps import require_admin
from config.database import get_db
from modules.order.schemas import (
    StatusLogRead, StatusUpdatePayload, PaymentStatusPayload, serialize_order,
)
from modules.order.service import order_service, admin_actor
from modules.payment.gateways import BaseGateway, get_active_gateway
from modules.payment.service import payment_service

router = APIRouter(prefix="/admin/orders", tags=["order-admin"])


@router.get("")
def admin_orders(
    status: Optional[str] = Query(None),
    payment_status: Optional[str] = Query(None, alias="paymentStatus"),
    date_from: Optional[datetime] = Query(None, alias="from"),
    date_to: Optional[datetime] = Query(None, alias="to"),
    search: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    sort: str = Query("-created_at"),
    db: Session = Depends(get_db),
    user=Depends(require_admin),
):
    orders, total = order_service.list_orders(
        db, status=status, payment_status=payment_status,
        date_from=date_from, date_to=date_to, search=search,
        page=page, limit=limit, sort=sort,
    )
    return {
        "items": [serialize_order(o, include_customer=True) for o in orders],
        "pagination": build_pagination(total, page, limit).model_dump(by_alias=True),
    }


@router.get("/stats")
def admin_order_stats(db: Session = Depends(get_db), user=Depends(require_admin)):
    return dashboard_service.get_order_stats(db)


@router.put("/status")
def update_order_status(
    payload: StatusUpdatePayload,
    db: Session = Depends(get_db),
    user=Depends(require_admin),
):
    order = order_service.update_status(db, payload.order_id, payload.status, admin_actor(user.id), payload.note)
    db.commit()
    db.refresh(order)
    return serialize_order(order, include_customer=True)


@router.get("/{order_id}")
def admin_order_detail(order_id: int, db: Session = Depends(get_db), user=Depends(require_admin)):
    return serialize_order(order_service.get_order(db, order_id), include_customer=True)


@router.get("/{order_id}/history")
def admin_order_history(order_id: int, db: Session = Depends(get_db), user=Depends(require_admin)):
    order = order_service.get_order(db, order_id)
    return [
        StatusLogRead.model_validate(log).model_dump(mode="json", by_alias=True)
        for log in order_service.status_history(db, order.id)
    ]


@router.put("/{order_id}")
def edit_order(
    order_id: int,
    payload: Dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    user=Depends(require_admin),
):
    """Edit status / deliveryAddress / items. Unknown fields are rejected."""
    order = order_service.admin_edit(db, order_id, payload, admin_actor(user.id))
    db.commit()
    db.refresh(order)
    return serialize_order(order, include_customer=True)


@router.put("/{order_id}/payment-status")
def update_payment_status(
    order_id: int,
    payload: PaymentStatusPayload,
    db: Session = Depends(get_db),
    user=Depends(require_admin),
):
    order = order_service.update_payment_status(db, order_id, payload.payment_status, admin_actor(user.id))
    db.commit()
    db.refresh(order)
    return serialize_order(order, include_customer=True)


@router.delete("/{order_id}")
def delete_order(order_id: int, db: Session = Depends(get_db), user=Depends(require_admin)):
    order_service.delete_order(db, order_id)
    db.commit()
    return {"message": "Order deleted successfully"}


@router.post("/{order_id}/refund")
def refund_order(
    order_id: int,
    db: Session = Depends(get_db),
    gateway: BaseGateway = Depends(get_active_gateway),
    user=Depends(require_admin),
):
    order = payment_service.refund_order(db, gateway, order_id, admin_actor(user.id))
    db.commit()
    db.refresh(order)
    return serialize_order(order, include_customer=True)
