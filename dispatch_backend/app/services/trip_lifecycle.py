"""
Driver-side trip operations: history, the active trip, the offer pool
(open trips and declining them), start/cancel, GPS breadcrumbs and presence.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from dispatch_backend.app.core.exceptions import InvalidStateError, NotFoundError
from dispatch_backend.app.models.enums import DriverStatus
from dispatch_backend.app.models.notification import NotificationType
from dispatch_backend.app.models.order import Order
from dispatch_backend.app.models.order_enums import OrderStatus
from dispatch_backend.app.models.trip import Trip
from dispatch_backend.app.models.trip_enums import LiveStatus, TripStatus
from dispatch_backend.app.models.user import User
from dispatch_backend.app.schemas.realtime import RealtimeEvent
from dispatch_backend.app.services.audit import AuditAction, log_event
from dispatch_backend.app.services.dispatch import cancel_trip, load_open_trip
from dispatch_backend.app.services.notification_service import NotificationService
from dispatch_backend.app.services.realtime import ConnectionManager
from dispatch_backend.app.services.state_machine import (
    ACTIVE_TRIP_STATUSES,
    TERMINAL_ORDER_STATUSES,
    ensure_order_transition,
    ensure_trip_transition,
)
from dispatch_backend.app.services.timeline import append_timeline
from dispatch_backend.app.services.transactions import commit_or_conflict

logger = logging.getLogger("dispatch.trips")

# Statuses a driver may set through the status endpoint
DRIVER_SETTABLE_STATUSES = frozenset({TripStatus.IN_PROGRESS, TripStatus.CANCELLED})


async def list_driver_trips(
    db: AsyncSession,
    driver_id: int,
    status: Optional[TripStatus] = None,
    page: int = 1,
    page_size: int = 20
) -> Tuple[List[Trip], int]:
    """Trips of a driver, newest first, with the total count."""
    query = select(Trip).where(Trip.driver_id == driver_id)
    if status:
        query = query.where(Trip.status == status)

    count_result = await db.execute(select(func.count()).select_from(query.subquery()))
    total = count_result.scalar() or 0

    offset = (page - 1) * page_size
    result = await db.execute(
        query.order_by(Trip.created_at.desc(), Trip.id.desc()).offset(offset).limit(page_size)
    )
    return result.scalars().all(), total


async def get_active_trip(db: AsyncSession, driver_id: int) -> Optional[Trip]:
    result = await db.execute(
        select(Trip)
        .where(Trip.driver_id == driver_id, Trip.status.in_(ACTIVE_TRIP_STATUSES))
        .order_by(Trip.updated_at.desc(), Trip.id.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def list_open_trips(db: AsyncSession, current_user: dict) -> List[Trip]:
    """
    Pending trips the calling driver may accept, oldest first. Trips the
    driver already declined are left out.
    """
    company_id = current_user.get("company_id")
    if not company_id:
        return []
    query = select(Trip).where(Trip.company_id == company_id, Trip.status == TripStatus.PENDING)
    shop_id = current_user.get("shop_id")
    if shop_id is not None:
        query = query.where(or_(Trip.shop_id.is_(None), Trip.shop_id == shop_id))

    result = await db.execute(query.order_by(Trip.created_at, Trip.id))
    driver_id = current_user["user_id"]
    return [t for t in result.scalars().all() if driver_id not in (t.declined_driver_ids or [])]


async def decline_trip(db: AsyncSession, trip_id: int, current_user: dict) -> Trip:
    """
    Pass on an offered trip. The trip stays pending for the other drivers
    and disappears from the caller's open list.

    Raises:
        NotFoundError: If the trip is not in the driver's company
        ScopeViolationError: If it belongs to another shop than the driver's
        InvalidStateError: If the trip is not pending
    """
    driver_id = current_user["user_id"]
    trip = await load_open_trip(db, trip_id, current_user)

    declined = list(trip.declined_driver_ids or [])
    if driver_id not in declined:
        trip.declined_driver_ids = declined + [driver_id]
        await log_event(
            db=db,
            action=AuditAction.TRIP_DECLINED,
            actor_id=driver_id,
            actor_username=current_user.get("sub"),
            metadata={"trip_id": trip.id, "order_id": trip.order_id}
        )
        await commit_or_conflict(db)
        await db.refresh(trip)
        logger.info("Driver %s declined trip %s", driver_id, trip.id)
    return trip


async def _load_driver_trip(db: AsyncSession, trip_id: int, driver_id: int) -> Trip:
    result = await db.execute(
        select(Trip).where(Trip.id == trip_id, Trip.driver_id == driver_id).with_for_update()
    )
    trip = result.scalar_one_or_none()
    if not trip:
        raise NotFoundError("Trip", trip_id)
    return trip


async def _load_trip_order(db: AsyncSession, trip: Trip) -> Optional[Order]:
    if trip.order_id is None:
        return None
    result = await db.execute(select(Order).where(Order.id == trip.order_id).with_for_update())
    return result.scalar_one_or_none()


async def update_trip_status(
    db: AsyncSession,
    trip_id: int,
    target: TripStatus,
    current_user: dict,
    notifier: ConnectionManager,
    live_status: Optional[str] = None
) -> Trip:
    """
    Start (assigned -> in_progress) or cancel a trip as its driver. The
    linked order follows the trip; cancelling releases the driver.

    Delivery is not accepted here; it only happens through the QR scan.

    Raises:
        NotFoundError: If the trip is not assigned to the caller
        InvalidStateError: If the target status is not allowed
    """
    driver_id = current_user["user_id"]
    trip = await _load_driver_trip(db, trip_id, driver_id)

    if target == TripStatus.DELIVERED:
        raise InvalidStateError(
            "Deliveries are confirmed by scanning the customer's QR code",
            details={"trip_id": trip.id}
        )
    if target not in DRIVER_SETTABLE_STATUSES:
        raise InvalidStateError(
            f"Drivers cannot set trip status to {target.value}",
            details={"trip_id": trip.id}
        )
    ensure_trip_transition(trip.status, target)

    previous = trip.status
    order = await _load_trip_order(db, trip)
    now = datetime.now(timezone.utc)

    if target == TripStatus.IN_PROGRESS:
        trip.status = TripStatus.IN_PROGRESS
        trip.live_status = live_status or LiveStatus.ON_THE_WAY
        if trip.start_time is None:
            trip.start_time = now
        if order is not None and order.status != OrderStatus.IN_PROGRESS:
            ensure_order_transition(order.status, OrderStatus.IN_PROGRESS)
            order.status = OrderStatus.IN_PROGRESS
            append_timeline(order, "trip_started", {"by": driver_id, "tripId": trip.id})
    else:
        await cancel_trip(db, trip)
        if live_status:
            trip.live_status = live_status
        if order is not None and order.status not in TERMINAL_ORDER_STATUSES:
            ensure_order_transition(order.status, OrderStatus.CANCELLED)
            order.status = OrderStatus.CANCELLED
            append_timeline(order, "trip_cancelled", {"by": driver_id, "tripId": trip.id})

    await log_event(
        db=db,
        action=AuditAction.TRIP_STATUS_CHANGED,
        actor_id=driver_id,
        actor_username=current_user.get("sub"),
        target_user_id=trip.customer_id,
        metadata={"trip_id": trip.id, "from": previous.value, "to": target.value}
    )
    notification = None
    if trip.customer_id is not None:
        notification = await NotificationService.create_notification(
            db,
            user_id=trip.customer_id,
            title=trip.live_status,
            message=f"Trip #{trip.id}: {trip.live_status}",
            type=NotificationType.TRIP_UPDATE,
            metadata={"trip_id": trip.id, "order_id": trip.order_id}
        )

    await commit_or_conflict(db)
    await db.refresh(trip)

    logger.info("Trip %s moved %s -> %s by driver %s", trip.id, previous.value, target.value, driver_id)

    await notifier.emit_to_user(trip.customer_id, RealtimeEvent.TRIP_STATUS_UPDATE, {
        "tripId": trip.id,
        "orderId": trip.order_id,
        "status": trip.status.value,
        "liveStatus": trip.live_status,
    })
    if order is not None:
        await notifier.emit_to_user(trip.customer_id, RealtimeEvent.ORDER_STATUS_UPDATE, {
            "orderId": order.id,
            "status": order.status.value,
        })
    if notification is not None:
        await NotificationService.push(notifier, notification)

    return trip


async def record_location(
    db: AsyncSession,
    trip_id: int,
    lat: float,
    lng: float,
    current_user: dict,
    notifier: ConnectionManager
) -> Dict[str, Any]:
    """
    Append a breadcrumb to the trip's route history and move the driver's
    current position.

    Raises:
        NotFoundError: If the trip is not assigned to the caller
        InvalidStateError: If the trip is not assigned or in progress
    """
    driver_id = current_user["user_id"]
    trip = await _load_driver_trip(db, trip_id, driver_id)
    if trip.status not in ACTIVE_TRIP_STATUSES:
        raise InvalidStateError(
            "Trip is not active",
            details={"trip_id": trip.id, "trip_status": trip.status.value}
        )

    point = {"lat": lat, "lng": lng, "timestamp": datetime.now(timezone.utc).isoformat()}
    trip.route_history = list(trip.route_history or []) + [point]

    result = await db.execute(select(User).where(User.id == driver_id))
    driver = result.scalar_one()
    driver.current_lat = lat
    driver.current_lng = lng

    await commit_or_conflict(db)

    await notifier.emit_to_user(trip.customer_id, RealtimeEvent.TRIP_LOCATION_UPDATE, {
        "tripId": trip.id,
        "driverId": driver_id,
        **point,
    })
    return point


async def set_driver_presence(
    db: AsyncSession,
    current_user: dict,
    status: DriverStatus
) -> User:
    """
    Toggle a driver between online and offline.

    Raises:
        InvalidStateError: While the driver holds an assigned or in-progress trip
    """
    driver_id = current_user["user_id"]
    active = await get_active_trip(db, driver_id)
    if active is not None:
        raise InvalidStateError(
            "Finish or cancel your active trip first",
            details={"trip_id": active.id}
        )

    result = await db.execute(select(User).where(User.id == driver_id).with_for_update())
    driver = result.scalar_one()
    previous = driver.driver_status
    driver.driver_status = status
    driver.last_status_at = datetime.now(timezone.utc)

    await log_event(
        db=db,
        action=AuditAction.DRIVER_PRESENCE_CHANGED,
        actor_id=driver_id,
        actor_username=current_user.get("sub"),
        metadata={"from": previous.value, "to": status.value}
    )
    await commit_or_conflict(db)

    logger.info("Driver %s presence %s -> %s", driver_id, previous.value, status.value)
    return driver
