import asyncio
import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from marketplace.config import settings
from marketplace.database import create_db_and_tables
from marketplace.errors import MarketplaceError
from marketplace.notifications.live import registry
from marketplace.routes import (
    admin_orders,
    admin_payments,
    cart,
    checkout,
    coupons,
    health,
    notifications,
    orders,
    payments,
    realtime,
    store_orders,
)
from marketplace.utils.logging_config import RequestLoggingMiddleware, setup_logging

setup_logging(settings.log_level, settings.log_json)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Run DB creation ONLY in local
    if settings.env == "local":
        create_db_and_tables()
    registry.bind_loop(asyncio.get_running_loop())
    yield
    registry.clear()


app = FastAPI(title="Marketplace Order Fulfillment API", lifespan=lifespan)

app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(MarketplaceError)
async def marketplace_error_handler(request: Request, exc: MarketplaceError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.as_dict())


app.include_router(cart.router, prefix="/cart", tags=["Cart"])
app.include_router(checkout.router, prefix="/checkout", tags=["Checkout"])
app.include_router(coupons.router, prefix="/coupons", tags=["Coupons"])
app.include_router(orders.router, prefix="/orders", tags=["Orders"])
app.include_router(store_orders.router, prefix="/store/orders", tags=["Seller Orders"])
app.include_router(admin_orders.router, prefix="/admin/orders", tags=["Admin Orders"])
app.include_router(payments.router, prefix="/payments", tags=["Payments"])
app.include_router(admin_payments.router, prefix="/admin/payments", tags=["Admin Payments"])
app.include_router(notifications.router, prefix="/notifications", tags=["Notifications"])
app.include_router(realtime.router, tags=["Realtime"])
app.include_router(health.router, prefix="/health", tags=["Health"])

# locally stored payment slips
os.makedirs(settings.upload_dir, exist_ok=True)
app.mount("/uploads", StaticFiles(directory=settings.upload_dir), name="uploads")


@app.get("/")
def root():
    return {
        "cart": [
            "/cart", "/cart/add", "/cart/update/{line_id}",
            "/cart/remove/{line_id}", "/cart/clear", "/cart/reconcile"
        ],
        "checkout": ["/checkout"],
        "coupons": ["/coupons/mine", "/coupons/welcome", "/coupons/validate"],
        "orders": ["/orders", "/orders/{order_id}", "/orders/{order_id}/timeline"],
        "seller_orders": ["/store/orders", "/store/orders/{order_id}/status"],
        "admin_orders": ["/admin/orders", "/admin/orders/{order_id}/status"],
        "payments": [
            "/payments", "/payments/{payment_id}", "/payments/{payment_id}/promptpay",
            "/payments/{payment_id}/slip", "/payments/webhook"
        ],
        "admin_payments": [
            "/admin/payments", "/admin/payments/{payment_id}/approve",
            "/admin/payments/{payment_id}/reject"
        ],
        "notifications": [
            "/notifications", "/notifications/{notification_id}/read",
            "/notifications/read-all", "/notifications/admin/pending"
        ],
        "realtime": ["/ws/notifications?token=..."],
        "health": ["/health/check"],
    }
