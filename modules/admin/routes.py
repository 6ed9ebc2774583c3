"""
Admin Module - Dashboard & Logs Routes
========================================
Dashboard statistics + Request audit log viewer.
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func as sa_func
from sqlalchemy.orm import Session

from config.database import get_db
from config.settings import MAX_PAGE_SIZE
from common.schemas import CamelModel, build_pagination
from modules.admin.dashboard_service import dashboard_service
from modules.admin.models import RequestLog
from modules.auth.deps import require_admin
from modules.order.schemas import serialize_order

router = APIRouter(prefix="/admin", tags=["admin"])


class RequestLogRead(CamelModel):
    id: int
    method: str
    path: str
    query_string: Optional[str] = None
    status_code: int
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    user_type: str
    user_id: Optional[int] = None
    body_preview: Optional[str] = None
    response_time_ms: Optional[int] = None
    created_at: Optional[datetime] = None


# ==========================================
# 📊 Dashboard
# ==========================================

@router.get("/dashboard")
def admin_dashboard(
    days: int = Query(7, ge=1, le=90),
    db: Session = Depends(get_db),
    user=Depends(require_admin),
):
    stats = dashboard_service.get_overview_stats(db)
    recent_orders = dashboard_service.get_recent_orders(db, limit=8)
    return {
        "stats": stats,
        "orders": dashboard_service.get_order_stats(db, days=days),
        "recentOrders": [serialize_order(o, history_limit=0, include_customer=True) for o in recent_orders],
    }


# ==========================================
# 📋 Request Audit Log
# ==========================================

@router.get("/logs")
def admin_logs(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=MAX_PAGE_SIZE),
    method: Optional[str] = Query(None),
    status_group: Optional[str] = Query(None, alias="statusGroup"),
    path_search: Optional[str] = Query(None, alias="path"),
    user_type: Optional[str] = Query(None, alias="userType"),
    ip: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    user=Depends(require_admin),
):
    q = db.query(RequestLog)

    # Filters
    if method:
        q = q.filter(RequestLog.method == method.upper())
    if status_group:
        if status_group == "2xx":
            q = q.filter(RequestLog.status_code >= 200, RequestLog.status_code < 300)
        elif status_group == "3xx":
            q = q.filter(RequestLog.status_code >= 300, RequestLog.status_code < 400)
        elif status_group == "4xx":
            q = q.filter(RequestLog.status_code >= 400, RequestLog.status_code < 500)
        elif status_group == "5xx":
            q = q.filter(RequestLog.status_code >= 500)
    if path_search:
        q = q.filter(RequestLog.path.ilike(f"%{path_search}%"))
    if user_type:
        q = q.filter(RequestLog.user_type == user_type)
    if ip:
        q = q.filter(RequestLog.ip_address == ip)

    total = q.count()
    logs = (
        q.order_by(RequestLog.created_at.desc(), RequestLog.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    # Quick stats
    stats = {
        "total": db.query(sa_func.count(RequestLog.id)).scalar() or 0,
        "errors": db.query(sa_func.count(RequestLog.id)).filter(
            RequestLog.status_code >= 400
        ).scalar() or 0,
    }

    return {
        "items": [RequestLogRead.model_validate(log).model_dump(mode="json", by_alias=True) for log in logs],
        "pagination": build_pagination(total, page, limit).model_dump(by_alias=True),
        "stats": stats,
    }
