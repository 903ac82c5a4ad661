"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from dispatch_backend.app.api.v1.endpoints import (
    auth, manager_orders, manager_trips, customer_trips, driver_trips,
    notifications, realtime
)

router = APIRouter()

# Authentication endpoints
router.include_router(auth.router)

# Dispatch - manager side
router.include_router(manager_orders.router)
router.include_router(manager_trips.router)

# Delivery - customer and driver side
router.include_router(customer_trips.router)
router.include_router(driver_trips.router)

# Notifications and the real-time channel
router.include_router(notifications.router)
router.include_router(realtime.router)
