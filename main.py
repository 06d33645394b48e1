"""
Mimasa Store - Application Entry Point
========================================
FastAPI app initialization, middleware, and router registration.
"""

import logging
import time as _time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from apscheduler.schedulers.background import BackgroundScheduler

from config import settings
from config.database import SessionLocal, Base, engine
from common.exceptions import StoreError

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

scheduler_logger = logging.getLogger("mimasa.scheduler")
http_logger = logging.getLogger("mimasa.http")


# ==========================================
# Import ALL models so Alembic/Base can see them
# ==========================================
from modules.catalog.models import Product  # noqa: F401,E402
from modules.cart.models import CartItem  # noqa: F401,E402
from modules.pricing.models import CartConfig  # noqa: F401,E402
from modules.checkout.models import CheckoutAttempt  # noqa: F401,E402
from modules.order.models import Order, OrderItem, OrderReconciliation  # noqa: F401,E402

# ==========================================
# Import routers
# ==========================================
from modules.auth.routes import router as auth_router  # noqa: E402
from modules.catalog.routes import router as catalog_router  # noqa: E402
from modules.catalog.admin_routes import router as catalog_admin_router  # noqa: E402
from modules.cart.routes import router as cart_router  # noqa: E402
from modules.checkout.routes import router as checkout_router  # noqa: E402
from modules.payment.routes import router as payment_router  # noqa: E402
from modules.order.admin_routes import router as order_admin_router  # noqa: E402
from modules.admin.routes import router as admin_settings_router  # noqa: E402


# ==========================================
# Background Scheduler
# ==========================================
def _expire_stale_checkouts():
    """Background job: fail checkouts stuck waiting for payment, every 60 seconds."""
    db = SessionLocal()
    try:
        from modules.checkout.service import checkout_orchestrator
        count = checkout_orchestrator.expire_stale(db)
        if count:
            scheduler_logger.info(f"Expired {count} stale checkouts")
    except Exception as e:
        db.rollback()
        scheduler_logger.error(f"Checkout expiry error: {e}")
    finally:
        db.close()


def _retry_reconciliations():
    """Background job: retry order writes for verified payments, every 5 minutes."""
    db = SessionLocal()
    try:
        from modules.checkout.service import checkout_orchestrator
        result = checkout_orchestrator.recover_pending(db)
        if result["resolved"] or result["failed"]:
            scheduler_logger.info(f"Reconciliation: {result['resolved']} resolved, {result['failed']} failing")
    except Exception as e:
        db.rollback()
        scheduler_logger.error(f"Reconciliation error: {e}")
    finally:
        db.close()


scheduler = BackgroundScheduler()


@asynccontextmanager
async def lifespan(app):
    # Auto-create any missing tables (safe for existing tables)
    Base.metadata.create_all(bind=engine)

    if settings.SCHEDULER_ENABLED:
        scheduler.add_job(_expire_stale_checkouts, 'interval', seconds=60, id='expire_checkouts')
        scheduler.add_job(_retry_reconciliations, 'interval', minutes=5, id='reconciliation')
        scheduler.start()
        scheduler_logger.info("Background scheduler started (checkouts: 60s, reconciliation: 5m)")
    yield
    if scheduler.running:
        scheduler.shutdown()
        scheduler_logger.info("Background scheduler stopped")


# ==========================================
# Create App
# ==========================================
app = FastAPI(
    title="Mimasa Store",
    description="Storefront, cart, Razorpay checkout and back office",
    version="1.0.0",
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url=None,
    lifespan=lifespan,
)


# ==========================================
# Exception handler: business errors → JSON
# ==========================================
@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    return JSONResponse(exc.to_dict(), status_code=exc.status_code)


# ==========================================
# Middleware: No-Cache for Admin responses
# ==========================================
_NO_CACHE_PREFIXES = ("/admin/", "/api/checkout")


@app.middleware("http")
async def no_cache_admin(request: Request, call_next):
    """Prevent caching of admin data and checkout state."""
    response = await call_next(request)
    path = request.url.path
    if any(path.startswith(p) for p in _NO_CACHE_PREFIXES):
        response.headers["Cache-Control"] = "no-cache, no-store, must-revalidate"
        response.headers["Pragma"] = "no-cache"
    return response


# ==========================================
# Middleware: Request Log
# ==========================================
_SKIP_PATHS = ("/health", "/favicon.ico")


@app.middleware("http")
async def request_logger(request: Request, call_next):
    """Log method, path, status and elapsed time for every request."""
    path = request.url.path
    if any(path.startswith(p) for p in _SKIP_PATHS):
        return await call_next(request)

    start = _time.time()
    response = await call_next(request)
    elapsed_ms = int((_time.time() - start) * 1000)
    http_logger.info(f"{request.method} {path} -> {response.status_code} ({elapsed_ms}ms)")
    return response


# ==========================================
# Register Routers
# ==========================================
app.include_router(auth_router)
app.include_router(catalog_router)
app.include_router(catalog_admin_router)
app.include_router(cart_router)
app.include_router(checkout_router)
app.include_router(payment_router)
app.include_router(order_admin_router)
app.include_router(admin_settings_router)


# ==========================================
# Health check
# ==========================================
@app.get("/health")
async def health():
    return {"status": "ok", "version": "1.0.0"}
