"""
Mimi's Kitchen - Notification Service
=======================================
Dispatcher for order and payment notifications: in-app row (written inside
a savepoint of the caller's transaction) + email (sent once the caller's
transaction commits). Failures are logged and never propagate to the
operation that triggered them.

Each application builds its own NotificationDispatcher around its Mailer
and attaches it to the Database session factory; services reach it through
the session they were given (notify_user(db, ...)).
"""

import logging
from typing import List, Optional, Tuple

from sqlalchemy import desc, event
from sqlalchemy.orm import Session

from config.settings import APP_NAME, PAYMENT_CURRENCY
from common.email import Mailer
from common.exceptions import NotFoundError
from common.templating import render_email
from modules.notification.models import Notification, NotificationKind
from modules.user.models import User

logger = logging.getLogger("mimis.notifications")

_OUTBOX_KEY = "notification_outbox"
DISPATCHER_KEY = "notification_dispatcher"

TITLES = {
    NotificationKind.ORDER_CREATED: "Order placed",
    NotificationKind.ORDER_STATUS_CHANGED: "Order update",
    NotificationKind.PAYMENT_INITIATED: "Payment started",
    NotificationKind.PAYMENT_SUCCEEDED: "Payment received",
    NotificationKind.PAYMENT_FAILED: "Payment failed",
    NotificationKind.PAYMENT_REFUNDED: "Payment refunded",
}


def _message(kind: NotificationKind, payload: dict) -> str:
    ref = payload.get("order_number") or f"#{payload.get('order_id')}"
    if kind == NotificationKind.ORDER_CREATED:
        return f"Your order {ref} has been placed."
    if kind == NotificationKind.ORDER_STATUS_CHANGED:
        return f"Your order {ref} is now {payload.get('status')}."
    if kind == NotificationKind.PAYMENT_INITIATED:
        return f"Payment for order {ref} has been initiated."
    if kind == NotificationKind.PAYMENT_SUCCEEDED:
        return f"Payment for order {ref} was successful."
    if kind == NotificationKind.PAYMENT_FAILED:
        return f"Payment for order {ref} failed. Please try again."
    return f"Payment for order {ref} has been refunded."


class NotificationDispatcher:

    def __init__(self, mailer: Optional[Mailer] = None):
        self.mailer = mailer

    # ------------------------------------------------------------------
    # Core: notify
    # ------------------------------------------------------------------

    def notify(self, db: Session, user_id: int, kind: str, payload: Optional[dict] = None) -> Optional[Notification]:
        """
        Fire-and-forget notification.

        Args:
            db: DB session (caller manages commit)
            user_id: Target user
            kind: NotificationKind value
            payload: order_id, order_number, total, status, items, note...

        Returns:
            Notification object or None if it could not be stored
        """
        payload = payload or {}
        try:
            kind = NotificationKind(kind)
        except ValueError:
            logger.error(f"Unknown notification kind '{kind}' for user #{user_id}")
            return None

        notif = None
        user = None
        try:
            with db.begin_nested():
                user = db.get(User, user_id)
                notif = Notification(
                    user_id=user_id,
                    kind=kind.value,
                    title=TITLES[kind],
                    message=_message(kind, payload),
                    order_id=payload.get("order_id"),
                )
                db.add(notif)
        except Exception:
            logger.exception(f"In-app notification '{kind.value}' failed for user #{user_id}")
            notif = None

        if user is not None and self.mailer is not None:
            try:
                context = dict(payload, name=user.full_name or user.email, app_name=APP_NAME)
                context.setdefault("currency", PAYMENT_CURRENCY)
                text = render_email(kind.value, context)
                db.info.setdefault(_OUTBOX_KEY, []).append(
                    (user.email, user.full_name or "", TITLES[kind], text, kind.value)
                )
            except Exception:
                logger.exception(f"Email render '{kind.value}' failed for user #{user_id}")

        return notif

    def deliver_outbox(self, db: Session):
        """Send emails queued by a transaction that has just committed."""
        outbox = db.info.pop(_OUTBOX_KEY, [])
        if not outbox or self.mailer is None:
            return
        for to_email, to_name, subject, text, category in outbox:
            try:
                self.mailer.send(to_email, subject, text, to_name=to_name, category=category)
            except Exception:
                logger.exception(f"Email '{subject}' to {to_email} failed")

    def discard_outbox(self, db: Session):
        dropped = db.info.pop(_OUTBOX_KEY, [])
        if dropped:
            logger.debug(f"Dropped {len(dropped)} queued email(s) after rollback")


class NotificationService:
    """In-app notification center queries."""

    def get_unread_count(self, db: Session, user_id: int) -> int:
        """Count of unread in-app notifications (for badge)."""
        return db.query(Notification).filter(
            Notification.user_id == user_id,
            Notification.is_read == False,  # noqa: E712
        ).count()

    def list_notifications(
        self, db: Session, user_id: int,
        page: int = 1, per_page: int = 20,
    ) -> Tuple[List[Notification], int]:
        """Paginated notification list for notification center."""
        q = db.query(Notification).filter(Notification.user_id == user_id)
        total = q.count()
        items = (
            q.order_by(desc(Notification.created_at), desc(Notification.id))
            .offset((page - 1) * per_page)
            .limit(per_page)
            .all()
        )
        return items, total

    def mark_as_read(self, db: Session, user_id: int, notification_id: int) -> bool:
        """Mark a single notification as read. Returns False if it already was."""
        notif = db.query(Notification).filter(
            Notification.id == notification_id,
            Notification.user_id == user_id,
        ).first()
        if not notif:
            raise NotFoundError("Notification not found")
        if not notif.is_read:
            notif.is_read = True
            db.flush()
            return True
        return False

    def mark_all_read(self, db: Session, user_id: int) -> int:
        """Mark all unread notifications as read. Returns count updated."""
        count = db.query(Notification).filter(
            Notification.user_id == user_id,
            Notification.is_read == False,  # noqa: E712
        ).update({"is_read": True}, synchronize_session=False)
        db.flush()
        return count


# In-app rows only, for sessions with no application dispatcher (scripts)
_IN_APP_ONLY = NotificationDispatcher()

# Singleton
notification_service = NotificationService()


def dispatcher_for(db: Session) -> NotificationDispatcher:
    return db.info.get(DISPATCHER_KEY) or _IN_APP_ONLY


def notify_user(db: Session, user_id: int, kind: str, payload: Optional[dict] = None) -> Optional[Notification]:
    return dispatcher_for(db).notify(db, user_id, kind, payload)


# ------------------------------------------------------------------
# Session hooks: emails leave only after the outer transaction commits
# ------------------------------------------------------------------

@event.listens_for(Session, "after_commit")
def _send_after_commit(session: Session):
    dispatcher_for(session).deliver_outbox(session)


@event.listens_for(Session, "after_transaction_end")
def _drop_on_rollback(session: Session, transaction):
    if transaction.parent is None and session.info.get(_OUTBOX_KEY):
        dispatcher_for(session).discard_outbox(session)
