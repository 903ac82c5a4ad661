"""
FastAPI application for the Delivery Dispatch Backend.

Run with ``uvicorn dispatch_backend.app.main:app``.
"""

import logging

from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from dispatch_backend.app.core.config import settings
from dispatch_backend.app.api.v1.router import router as api_v1_router
from dispatch_backend.app.db.session import engine, Base
from dispatch_backend.app.core.observability import ObservabilityMiddleware, configure_logging
from dispatch_backend.app.core.redis_client import close_redis, ping_redis
from dispatch_backend.app.core.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    stale_data_exception_handler,
    generic_exception_handler
)
from sqlalchemy.orm.exc import StaleDataError

# Import models to ensure they are registered with Base
from dispatch_backend.app.models.company import Company, Shop
from dispatch_backend.app.models.user import User
from dispatch_backend.app.models.vehicle import Vehicle
from dispatch_backend.app.models.order import Order
from dispatch_backend.app.models.trip import Trip
from dispatch_backend.app.models.payment import Payment
from dispatch_backend.app.models.notification import Notification
from dispatch_backend.app.models.audit_log import AuditLog

configure_logging()
logger = logging.getLogger("dispatch.app")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create missing tables on startup; release Redis and the pool on shutdown."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("%s %s started", settings.app_name, settings.api_version)
    yield
    await close_redis()
    await engine.dispose()
    logger.info("%s stopped", settings.app_name)


app = FastAPI(
    title=settings.app_name,
    version=settings.api_version,
    debug=settings.debug,
    description="Multi-tenant delivery dispatch: driver assignment, QR delivery confirmation and real-time updates",
    lifespan=lifespan,
)

app.add_middleware(ObservabilityMiddleware)

# Every error leaves the API in the same envelope
app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(StaleDataError, stale_data_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)


@app.get("/health", tags=["Health"])
async def health_check():
    """
    Liveness plus session store reachability.
    
    Without Redis no bearer token can be verified, so the service reports
    itself degraded rather than down.
    """
    redis_ok = await ping_redis()
    return {
        "status": "healthy" if redis_ok else "degraded",
        "app_name": settings.app_name,
        "version": settings.api_version,
        "redis": redis_ok,
    }


app.include_router(api_v1_router, prefix=f"/{settings.api_version}")


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": "Welcome to the Delivery Dispatch Backend API",
        "docs": "/docs",
        "health": "/health",
    }
