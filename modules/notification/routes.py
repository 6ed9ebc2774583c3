"""
Mimi's Kitchen - Notification Routes
======================================
Notification center, mark-read, unread count.
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from config.database import get_db
from common.schemas import CamelModel, build_pagination
from modules.auth.deps import get_current_user
from modules.notification.service import notification_service

router = APIRouter(prefix="/notifications", tags=["notifications"])


class NotificationRead(CamelModel):
    id: int
    kind: str
    title: str
    message: str
    order_id: Optional[int] = None
    is_read: bool
    created_at: Optional[datetime] = None


# ------------------------------------------------------------------
# GET /notifications - Notification center
# ------------------------------------------------------------------
@router.get("")
def notification_list(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    me=Depends(get_current_user),
):
    notifications, total = notification_service.list_notifications(db, me.id, page=page, per_page=limit)
    return {
        "items": [NotificationRead.model_validate(n).model_dump(by_alias=True) for n in notifications],
        "pagination": build_pagination(total, page, limit).model_dump(by_alias=True),
        "unreadCount": notification_service.get_unread_count(db, me.id),
    }


# ------------------------------------------------------------------
# PUT /notifications/read-all - mark all as read
# ------------------------------------------------------------------
@router.put("/read-all")
def mark_all_read(db: Session = Depends(get_db), me=Depends(get_current_user)):
    updated = notification_service.mark_all_read(db, me.id)
    db.commit()
    return {"success": True, "updated": updated, "unreadCount": 0}


# ------------------------------------------------------------------
# PUT /notifications/{id}/read - mark single as read
# ------------------------------------------------------------------
@router.put("/{notification_id}/read")
def mark_notification_read(
    notification_id: int,
    db: Session = Depends(get_db),
    me=Depends(get_current_user),
):
    notification_service.mark_as_read(db, me.id, notification_id)
    db.commit()
    return {"success": True, "unreadCount": notification_service.get_unread_count(db, me.id)}
