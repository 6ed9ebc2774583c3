"""
Admin Dashboard Service
=========================
Aggregated statistics for the admin dashboard and the order stats endpoint.
"""

from collections import OrderedDict
from datetime import datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Dict, Any, List

from sqlalchemy.orm import Session
from sqlalchemy import func as sa_func

from common.helpers import now_utc, money
from modules.catalog.models import Product
from modules.order.models import Order, OrderStatus, PaymentStatus
from modules.user.models import User, UserRole


class DashboardService:

    def get_order_stats(self, db: Session, days: int = 7) -> Dict[str, Any]:
        """Counts by status and payment status, plus daily orders/revenue for the last `days` days."""
        by_status = {s.value: 0 for s in OrderStatus}
        for status, count in db.query(Order.status, sa_func.count(Order.id)).group_by(Order.status).all():
            by_status[status] = count

        by_payment = {s.value: 0 for s in PaymentStatus}
        for status, count in (
            db.query(Order.payment_status, sa_func.count(Order.id)).group_by(Order.payment_status).all()
        ):
            by_payment[status] = count

        return {
            "byStatus": by_status,
            "byPaymentStatus": by_payment,
            "daily": self.get_daily_orders(db, days),
        }

    def get_daily_orders(self, db: Session, days: int = 7) -> List[Dict[str, Any]]:
        """
        One row per calendar day (UTC), oldest first, including empty days.
        Revenue counts orders whose payment completed.
        """
        today = now_utc().date()
        start_day = today - timedelta(days=days - 1)
        buckets = OrderedDict(
            (start_day + timedelta(days=i), {"count": 0, "revenue": Decimal("0")})
            for i in range(days)
        )

        rows = (
            db.query(Order.created_at, Order.total, Order.payment_status)
            .filter(Order.created_at >= datetime.combine(start_day, time.min, tzinfo=timezone.utc))
            .all()
        )
        for created_at, total, payment_status in rows:
            if created_at.tzinfo is not None:
                created_at = created_at.astimezone(timezone.utc)
            bucket = buckets.get(created_at.date())
            if bucket is None:
                continue
            bucket["count"] += 1
            if payment_status == PaymentStatus.COMPLETED.value:
                bucket["revenue"] += money(total)

        return [
            {"date": day.isoformat(), "orders": b["count"], "revenue": str(money(b["revenue"]))}
            for day, b in buckets.items()
        ]

    def get_overview_stats(self, db: Session) -> Dict[str, Any]:
        """Key business metrics."""
        total_orders = db.query(Order).count()
        pending_orders = db.query(Order).filter(Order.status == OrderStatus.PENDING.value).count()
        delivered_orders = db.query(Order).filter(Order.status == OrderStatus.DELIVERED.value).count()

        # Revenue (paid and not cancelled)
        total_revenue = (
            db.query(sa_func.coalesce(sa_func.sum(Order.total), 0))
            .filter(
                Order.payment_status == PaymentStatus.COMPLETED.value,
                Order.status != OrderStatus.CANCELLED.value,
            )
            .scalar()
        )

        total_customers = db.query(User).filter(User.role == UserRole.USER.value).count()
        total_products = db.query(Product).filter(Product.is_available == True).count()  # noqa: E712

        return {
            "totalOrders": total_orders,
            "pendingOrders": pending_orders,
            "deliveredOrders": delivered_orders,
            "totalRevenue": str(money(total_revenue)),
            "totalCustomers": total_customers,
            "availableProducts": total_products,
        }

    def get_recent_orders(self, db: Session, limit: int = 8) -> List[Order]:
        """Most recent orders for dashboard feed."""
        return (
            db.query(Order)
            .order_by(Order.created_at.desc(), Order.id.desc())
            .limit(limit)
            .all()
        )


dashboard_service = DashboardService()
