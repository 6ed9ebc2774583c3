"""
Mimi's Kitchen API - Application Entry Point
==============================================
FastAPI app initialization, middleware, and router registration.
"""

import logging
import re
import time
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from config import settings
from config.database import Database
from config.log_config import setup_logging
from common.email import Mailer
from common.exceptions import register_exception_handlers
from common.helpers import now_utc
from common.security import decode_token
from modules.notification.service import DISPATCHER_KEY, NotificationDispatcher
from modules.payment.gateways import BaseGateway, build_gateway

scheduler_logger = logging.getLogger("mimis.scheduler")
request_logger = logging.getLogger("mimis.requests")

# ==========================================
# Import ALL models so Alembic/Base can see them
# ==========================================
from modules.user.models import User  # noqa: F401,E402
from modules.admin.models import RequestLog  # noqa: E402
from modules.customer.address_models import Address  # noqa: F401,E402
from modules.catalog.models import Product  # noqa: F401,E402
from modules.cart.models import Cart, CartItem  # noqa: F401,E402
from modules.order.models import Order, OrderItem, OrderStatusLog  # noqa: F401,E402
from modules.notification.models import Notification  # noqa: F401,E402
from modules.review.models import Review  # noqa: F401,E402

# ==========================================
# Import routers
# ==========================================
from modules.auth.routes import router as auth_router  # noqa: E402
from modules.catalog.routes import router as catalog_router  # noqa: E402
from modules.customer.routes import router as address_router  # noqa: E402
from modules.cart.routes import router as cart_router  # noqa: E402
from modules.order.routes import router as order_router  # noqa: E402
from modules.order.admin_routes import router as order_admin_router  # noqa: E402
from modules.payment.routes import router as payment_router  # noqa: E402
from modules.notification.routes import router as notification_router  # noqa: E402
from modules.review.routes import router as review_router  # noqa: E402
from modules.admin.routes import router as admin_router  # noqa: E402


# ==========================================
# Background Jobs
# ==========================================

def _cancel_stale_orders(database: Database):
    """Background job: cancel pending orders that were never paid."""
    db = database.session()
    try:
        from modules.order.service import order_service
        count = order_service.cancel_stale_orders(db, settings.PENDING_ORDER_TTL_MINUTES)
        if count:
            db.commit()
            scheduler_logger.info(f"Cancelled {count} stale orders")
    except Exception as e:
        db.rollback()
        scheduler_logger.error(f"Stale order cleanup error: {e}")
    finally:
        db.close()


def _cleanup_old_request_logs(database: Database):
    """Background job: delete request logs older than the retention window."""
    db = database.session()
    try:
        cutoff = now_utc() - timedelta(days=settings.REQUEST_LOG_RETENTION_DAYS)
        deleted = db.query(RequestLog).filter(RequestLog.created_at < cutoff).delete()
        if deleted:
            db.commit()
            scheduler_logger.info(f"Deleted {deleted} old request logs (>{settings.REQUEST_LOG_RETENTION_DAYS} days)")
    except Exception as e:
        db.rollback()
        scheduler_logger.error(f"Log cleanup error: {e}")
    finally:
        db.close()


def _build_gateway() -> BaseGateway:
    return build_gateway(
        settings.PAYMENT_GATEWAY,
        secret_key=settings.STRIPE_SECRET_KEY,
        webhook_secret=settings.STRIPE_WEBHOOK_SECRET,
        api_base=settings.STRIPE_API_BASE,
        tolerance=settings.WEBHOOK_TOLERANCE_SECONDS,
    )


# ==========================================
# Middleware helpers: Request Audit Log
# ==========================================

_SKIP_PATHS = ("/health", "/docs", "/openapi.json", "/favicon.ico")
_SENSITIVE_FIELDS = re.compile(
    r'("?(?:password|token|secret|client_?secret|card)"?\s*[:=]\s*)("[^"]*"|[^&,}\s]*)',
    re.IGNORECASE,
)


def _identify_user(request: Request):
    """Identify user from the bearer token without a DB query. Returns (user_type, user_id)."""
    auth = request.headers.get("authorization", "")
    if not auth.lower().startswith("bearer "):
        return "anonymous", None
    payload = decode_token(auth[7:].strip())
    if not payload:
        return "anonymous", None
    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        return "anonymous", None
    return ("admin" if payload.get("role") == "admin" else "user"), user_id


def _mask_body(raw: bytes, content_type: Optional[str]) -> Optional[str]:
    """Decode request body, mask sensitive fields, truncate."""
    if not raw:
        return None
    if "multipart/form-data" in (content_type or "").lower():
        return "[multipart/form-data]"
    text = raw[:10_000].decode("utf-8", errors="replace")
    text = _SENSITIVE_FIELDS.sub(lambda m: m.group(1) + '"***"', text)
    return text[:2000] or None


# ==========================================
# Create App
# ==========================================

def create_app(
    database: Optional[Database] = None,
    gateway: Optional[BaseGateway] = None,
    mailer: Optional[Mailer] = None,
    scheduler_enabled: bool = settings.SCHEDULER_ENABLED,
) -> FastAPI:
    """
    Build the application. Tests pass their own database, gateway and
    mailer; otherwise they are built from settings at startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(settings.LOG_LEVEL)

        db = database or Database(settings.DATABASE_URL, settings.DB_POOL_SIZE, settings.DB_MAX_OVERFLOW)
        # Auto-create any missing tables (safe for existing tables)
        db.create_all()
        app.state.db = db
        app.state.gateway = gateway or _build_gateway()
        app.state.mailer = mailer or Mailer()
        # Every session from this database reaches the dispatcher via session.info
        app.state.notifier = NotificationDispatcher(app.state.mailer)
        db.session_info[DISPATCHER_KEY] = app.state.notifier

        scheduler = None
        if scheduler_enabled:
            scheduler = BackgroundScheduler()
            scheduler.add_job(_cancel_stale_orders, "interval", seconds=60, id="stale_orders", args=[db])
            scheduler.add_job(_cleanup_old_request_logs, "interval", hours=6, id="log_cleanup", args=[db])
            scheduler.start()
            scheduler_logger.info("Background scheduler started (orders: 60s, logs: 6h)")

        yield

        if scheduler:
            scheduler.shutdown()
            scheduler_logger.info("Background scheduler stopped")
        db.session_info.pop(DISPATCHER_KEY, None)
        if gateway is None:
            app.state.gateway.close()
        if mailer is None:
            app.state.mailer.close()
        if database is None:
            db.dispose()

    app = FastAPI(
        title=settings.APP_NAME,
        description="Food ordering backend: cart, orders, payments, reviews",
        version=settings.APP_VERSION,
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url=None,
        lifespan=lifespan,
    )

    register_exception_handlers(app)

    if settings.CORS_ORIGINS:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.CORS_ORIGINS,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    # ==========================================
    # Middleware: Request Audit Log
    # ==========================================
    @app.middleware("http")
    async def request_audit_log(request: Request, call_next):
        """Log every HTTP request to the database for audit purposes."""
        path = request.url.path
        if not settings.REQUEST_LOG_ENABLED or any(path.startswith(p) for p in _SKIP_PATHS):
            return await call_next(request)

        start = time.time()

        # Read body before call_next (Starlette caches it for the route)
        body_preview = None
        if request.method in ("POST", "PUT", "PATCH"):
            body_preview = _mask_body(await request.body(), request.headers.get("content-type"))

        response = await call_next(request)

        elapsed_ms = int((time.time() - start) * 1000)
        user_type, user_id = _identify_user(request)

        # Separate session; a failed audit write never breaks the request
        log_db = request.app.state.db.session()
        try:
            log_db.add(RequestLog(
                method=request.method,
                path=path[:500],
                query_string=str(request.url.query)[:2000] if request.url.query else None,
                status_code=response.status_code,
                ip_address=(request.client.host if request.client else None),
                user_agent=(request.headers.get("user-agent") or "")[:500],
                user_type=user_type,
                user_id=user_id,
                body_preview=body_preview,
                response_time_ms=elapsed_ms,
            ))
            log_db.commit()
        except Exception as e:
            log_db.rollback()
            request_logger.warning(f"Request log write failed: {e}")
        finally:
            log_db.close()

        return response

    # ==========================================
    # Register Routers
    # ==========================================
    app.include_router(auth_router)
    app.include_router(catalog_router)
    app.include_router(address_router)
    app.include_router(cart_router)
    app.include_router(order_router)
    app.include_router(order_admin_router)
    app.include_router(payment_router)
    app.include_router(notification_router)
    app.include_router(review_router)
    app.include_router(admin_router)

    # ==========================================
    # Health check
    # ==========================================
    @app.get("/health")
    def health():
        return {"status": "ok", "version": settings.APP_VERSION}

    return app


app = create_app()
