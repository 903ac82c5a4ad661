"""
Dispatch engine.

Binds a driver (and the vehicle the driver owns) to an order and creates
or re-targets the order's trip. The order, trip, driver, audit and
notification rows are written in one transaction; the Order, Trip and
User rows carry version counters, so a concurrent dispatch of the same
order or driver fails with a conflict instead of double-booking.
Real-time pushes are sent only after the commit and never fail the request.

An order can also be offered to the driver pool as a pending trip; a driver
that accepts it goes through the same binding step as a manager dispatch.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from dispatch_backend.app.core.exceptions import (
    DriverUnavailableError,
    InvalidStateError,
    NotFoundError,
    ScopeViolationError,
)
from dispatch_backend.app.core.guards import TenantScope, resolve_tenant_scope
from dispatch_backend.app.models.enums import DriverStatus, UserRole
from dispatch_backend.app.models.notification import NotificationType
from dispatch_backend.app.models.order import Order
from dispatch_backend.app.models.order_enums import OrderStatus
from dispatch_backend.app.models.trip import Trip
from dispatch_backend.app.models.trip_enums import LiveStatus, TripStatus
from dispatch_backend.app.models.user import User
from dispatch_backend.app.models.vehicle import Vehicle
from dispatch_backend.app.schemas.order import OrderResponse
from dispatch_backend.app.schemas.realtime import RealtimeEvent
from dispatch_backend.app.services.audit import AuditAction, log_event
from dispatch_backend.app.services.availability import (
    get_driver_vehicle,
    is_driver_available,
    list_available_drivers,
    release_driver,
    vehicle_summary,
)
from dispatch_backend.app.services.confirmation import generate_confirmation_code
from dispatch_backend.app.services.notification_service import NotificationService
from dispatch_backend.app.services.order_queries import build_order_response, load_scoped_order
from dispatch_backend.app.services.realtime import ConnectionManager
from dispatch_backend.app.services.state_machine import (
    ACTIVE_TRIP_STATUSES,
    TERMINAL_ORDER_STATUSES,
    TERMINAL_TRIP_STATUSES,
    ensure_order_transition,
    ensure_trip_transition,
)
from dispatch_backend.app.services.timeline import append_timeline
from dispatch_backend.app.services.transactions import commit_or_conflict
from dispatch_backend.app.services.trip_queries import load_scoped_trip

logger = logging.getLogger("dispatch.dispatch")


@dataclass
class AssignmentResult:
    order: OrderResponse
    trip: Trip
    confirmation_code: str


def map_link(location: Optional[Dict[str, Any]]) -> Optional[str]:
    if not location or location.get("lat") is None or location.get("lng") is None:
        return None
    return f"https://www.google.com/maps/search/?api=1&query={location['lat']},{location['lng']}"


def _with_map_link(location: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    return {**(location or {}), "mapLink": map_link(location)}


async def _load_order_trip(db: AsyncSession, order: Order) -> Optional[Trip]:
    if order.trip_id is not None:
        result = await db.execute(select(Trip).where(Trip.id == order.trip_id).with_for_update())
        trip = result.scalar_one_or_none()
        if trip is not None:
            return trip
    result = await db.execute(
        select(Trip)
        .where(Trip.order_id == order.id)
        .order_by(Trip.id.desc())
        .limit(1)
        .with_for_update()
    )
    return result.scalar_one_or_none()


async def assign_driver_to_order(
    db: AsyncSession,
    order_id: int,
    driver_id: int,
    current_user: dict,
    notifier: ConnectionManager
) -> AssignmentResult:
    """
    Dispatch a driver to an order.

    Steps:
    1. Resolve the caller's company (and shop) scope
    2. Load the order in scope and reject terminal orders
    3. Load the driver in scope and re-check availability
    4. Attach the driver's vehicle, if it owns one
    5. Create the trip, or re-target the existing one, with a fresh code
    6. Move order and driver to assigned / on_trip
    7. Commit once, then push to driver and customer

    Re-dispatching to the driver that already holds the trip skips the
    availability check and only re-issues the confirmation code.

    Raises:
        ScopeResolutionError: Caller has no company
        NotFoundError: Order or driver not found in the company
        ScopeViolationError: Order or driver belongs to another shop
        InvalidStateError: Order is delivered, completed or cancelled
        DriverUnavailableError: Driver is inactive or busy
        ConcurrencyConflictError: Another request changed the same rows first
    """
    scope = resolve_tenant_scope(current_user)

    order = await load_scoped_order(db, order_id, scope, for_update=True)
    _ensure_dispatchable(order)

    driver = await _lock_driver(db, driver_id, scope.company_id, scope.shop_id)

    trip = await _load_order_trip(db, order)
    same_driver = (
        trip is not None
        and trip.driver_id == driver.id
        and trip.status in ACTIVE_TRIP_STATUSES
    )
    if not same_driver:
        _ensure_available(driver)
    elif not driver.is_active:
        raise DriverUnavailableError(
            details={"driver_id": driver.id, "driver_status": driver.driver_status.value}
        )

    return await _bind_driver(db, order, trip, driver, current_user, notifier)


async def assign_driver_to_trip(
    db: AsyncSession,
    trip_id: int,
    driver_id: int,
    current_user: dict,
    notifier: ConnectionManager
) -> AssignmentResult:
    """
    Assign or re-assign the driver of a trip through its order.

    Raises:
        NotFoundError: Trip not found in the company
        ScopeViolationError: Trip belongs to another shop
        InvalidStateError: Trip is delivered or cancelled, or has no order
    """
    scope = resolve_tenant_scope(current_user)
    trip = await load_scoped_trip(db, trip_id, scope)
    if trip.status in TERMINAL_TRIP_STATUSES:
        raise InvalidStateError(
            f"Cannot change driver for a {trip.status.value} trip",
            details={"trip_id": trip.id, "trip_status": trip.status.value}
        )
    if trip.order_id is None:
        raise InvalidStateError("Trip has no order", details={"trip_id": trip.id})
    return await assign_driver_to_order(db, trip.order_id, driver_id, current_user, notifier)


async def offer_order(
    db: AsyncSession,
    order_id: int,
    current_user: dict,
    notifier: ConnectionManager
) -> Trip:
    """
    Open a pending order to the driver pool.

    Creates a pending trip without a driver. Drivers of the order's company
    (and shop) can then accept or decline it; a manager can still dispatch
    the order directly while the offer is open.

    Raises:
        InvalidStateError: If the order is not pending or already has a live trip
    """
    scope = resolve_tenant_scope(current_user)
    order = await load_scoped_order(db, order_id, scope, for_update=True)
    if order.status != OrderStatus.PENDING:
        raise InvalidStateError(
            "Only pending orders can be offered to drivers",
            details={"order_id": order.id, "order_status": order.status.value}
        )
    existing = await _load_order_trip(db, order)
    if existing is not None and existing.status not in TERMINAL_TRIP_STATUSES:
        raise InvalidStateError(
            "Order already has a live trip",
            details={"order_id": order.id, "trip_id": existing.id}
        )

    trip = _snapshot_trip(order)
    db.add(trip)
    await db.flush()

    order.trip_id = trip.id
    append_timeline(order, "offered_to_drivers", {"by": current_user["user_id"], "tripId": trip.id})
    await log_event(
        db=db,
        action=AuditAction.TRIP_OFFERED,
        actor_id=current_user["user_id"],
        actor_username=current_user.get("sub"),
        target_user_id=order.customer_id,
        metadata={"order_id": order.id, "trip_id": trip.id}
    )

    await commit_or_conflict(db)
    await db.refresh(trip)

    logger.info("Order %s offered to drivers as trip %s", order.id, trip.id)

    update = {
        "tripId": trip.id,
        "orderId": order.id,
        "status": trip.status.value,
        "liveStatus": trip.live_status,
    }
    await notifier.emit_to_user(order.customer_id, RealtimeEvent.TRIP_STATUS_UPDATE, update)
    for candidate in await list_available_drivers(db, TenantScope(order.company_id)):
        if not _may_take(candidate.shop_id, trip.shop_id):
            continue
        await notifier.emit_to_user(candidate.id, RealtimeEvent.TRIP_STATUS_UPDATE, {
            **update,
            "pickup": _with_map_link(trip.pickup_location),
            "dropoff": _with_map_link(trip.dropoff_location),
        })
    return trip


async def load_open_trip(db: AsyncSession, trip_id: int, current_user: dict) -> Trip:
    """
    Lock a pending trip that the calling driver may take.

    Raises:
        NotFoundError: If the trip is not in the driver's company
        ScopeViolationError: If it belongs to another shop than the driver's
        InvalidStateError: If the trip is no longer pending
    """
    result = await db.execute(
        select(Trip)
        .where(Trip.id == trip_id, Trip.company_id == current_user.get("company_id"))
        .with_for_update()
    )
    trip = result.scalar_one_or_none()
    if not trip:
        raise NotFoundError("Trip", trip_id)
    if not _may_take(current_user.get("shop_id"), trip.shop_id):
        raise ScopeViolationError("Trip belongs to another shop", details={"trip_id": trip.id})
    if trip.status != TripStatus.PENDING:
        raise InvalidStateError(
            "Trip is not available",
            details={"trip_id": trip.id, "trip_status": trip.status.value}
        )
    return trip


async def accept_trip(
    db: AsyncSession,
    trip_id: int,
    current_user: dict,
    notifier: ConnectionManager
) -> AssignmentResult:
    """
    Take an offered trip as the calling driver. Same effects as a manager
    dispatch; when two drivers accept at once only one commit succeeds.

    Raises:
        NotFoundError, ScopeViolationError, InvalidStateError: See ``load_open_trip``
        DriverUnavailableError: If the driver is busy or offline
        ConcurrencyConflictError: Another request changed the same rows first
    """
    trip = await load_open_trip(db, trip_id, current_user)
    if trip.order_id is None:
        raise InvalidStateError("Trip has no order", details={"trip_id": trip.id})
    result = await db.execute(select(Order).where(Order.id == trip.order_id).with_for_update())
    order = result.scalar_one()
    _ensure_dispatchable(order)

    driver = await _lock_driver(db, current_user["user_id"], trip.company_id)
    _ensure_available(driver)

    return await _bind_driver(db, order, trip, driver, current_user, notifier)


def _may_take(driver_shop_id: Optional[int], trip_shop_id: Optional[int]) -> bool:
    """Shop-bound drivers only see offers of their own shop or of no shop."""
    return driver_shop_id is None or trip_shop_id is None or driver_shop_id == trip_shop_id


def _ensure_dispatchable(order: Order) -> None:
    if order.status in TERMINAL_ORDER_STATUSES:
        raise InvalidStateError(
            f"Order is already {order.status.value}",
            details={"order_id": order.id, "order_status": order.status.value}
        )


def _ensure_available(driver: User) -> None:
    if not driver.is_active or not is_driver_available(driver):
        raise DriverUnavailableError(
            details={"driver_id": driver.id, "driver_status": driver.driver_status.value}
        )


async def _lock_driver(
    db: AsyncSession,
    driver_id: int,
    company_id: int,
    shop_id: Optional[int] = None
) -> User:
    result = await db.execute(
        select(User)
        .where(
            User.id == driver_id,
            User.role == UserRole.DRIVER,
            User.company_id == company_id,
        )
        .with_for_update()
    )
    driver = result.scalar_one_or_none()
    if not driver:
        raise NotFoundError("Driver", driver_id)
    if shop_id is not None and driver.shop_id != shop_id:
        raise ScopeViolationError(
            "Driver belongs to another shop",
            details={"driver_id": driver.id}
        )
    return driver


def _snapshot_trip(order: Order) -> Trip:
    """A pending, driverless trip carrying a copy of the order's cart and route."""
    return Trip(
        company_id=order.company_id,
        shop_id=order.shop_id,
        order_id=order.id,
        customer_id=order.customer_id,
        order_items=list(order.items or []),
        total_amount=order.subtotal,
        delivery_fee=order.delivery_fee,
        pickup_location=dict(order.pickup_location or {}),
        dropoff_location=dict(order.dropoff_location or {}),
        status=TripStatus.PENDING,
        live_status=LiveStatus.AWAITING_DRIVER,
        customer_confirmed=False,
        route_history=[],
        declined_driver_ids=[],
    )


async def _bind_driver(
    db: AsyncSession,
    order: Order,
    trip: Optional[Trip],
    driver: User,
    current_user: dict,
    notifier: ConnectionManager
) -> AssignmentResult:
    """Steps 4 to 7 of a dispatch, on rows the caller has already locked and checked."""
    ensure_order_transition(order.status, OrderStatus.ASSIGNED)
    if trip is not None:
        if trip.status in TERMINAL_TRIP_STATUSES:
            raise InvalidStateError(
                f"Trip is already {trip.status.value}",
                details={"trip_id": trip.id, "trip_status": trip.status.value}
            )
        ensure_trip_transition(trip.status, TripStatus.ASSIGNED)

    vehicle = await get_driver_vehicle(db, driver.id)
    vehicle_id = vehicle.id if vehicle else None
    code = generate_confirmation_code()
    now = datetime.now(timezone.utc)

    previous_driver_id = trip.driver_id if trip is not None else None
    if trip is None:
        trip = _snapshot_trip(order)
        db.add(trip)
    trip.driver_id = driver.id
    trip.vehicle_id = vehicle_id
    trip.status = TripStatus.ASSIGNED
    trip.live_status = LiveStatus.DRIVER_ASSIGNED
    trip.confirmation_code = code
    trip.customer_confirmed = False
    if trip.start_time is None:
        trip.start_time = now
    if trip.id is None:
        await db.flush()

    # A driver taking an offered trip dispatches itself
    accepted = current_user["user_id"] == driver.id

    order.driver_id = driver.id
    order.vehicle_id = vehicle_id
    order.trip_id = trip.id
    order.status = OrderStatus.ASSIGNED
    append_timeline(order, "driver_accepted" if accepted else "assigned_driver", {
        "by": current_user["user_id"],
        "driverId": driver.id,
        "tripId": trip.id,
    })

    driver.driver_status = DriverStatus.ON_TRIP
    driver.last_status_at = now

    await log_event(
        db=db,
        action=AuditAction.TRIP_ACCEPTED if accepted else AuditAction.DRIVER_ASSIGNED,
        actor_id=current_user["user_id"],
        actor_username=current_user.get("sub"),
        target_user_id=driver.id,
        target_username=driver.username,
        metadata={
            "order_id": order.id,
            "trip_id": trip.id,
            "vehicle_id": vehicle_id,
            "previous_driver_id": previous_driver_id,
        }
    )
    driver_notification = await NotificationService.create_notification(
        db,
        user_id=driver.id,
        title="Trip accepted" if accepted else "New delivery assigned",
        message=(
            f"You accepted order #{order.id}" if accepted
            else f"You have been assigned to order #{order.id}"
        ),
        type=NotificationType.ORDER_UPDATE,
        metadata={"order_id": order.id, "trip_id": trip.id}
    )
    customer_notification = await NotificationService.create_notification(
        db,
        user_id=order.customer_id,
        title="Driver assigned",
        message=f"{driver.name} is delivering your order #{order.id}",
        type=NotificationType.ORDER_UPDATE,
        metadata={"order_id": order.id, "trip_id": trip.id}
    )

    await commit_or_conflict(db)
    await db.refresh(order)
    await db.refresh(trip)

    logger.info(
        "Order %s dispatched to driver %s (trip %s, previous driver %s)",
        order.id, driver.id, trip.id, previous_driver_id
    )

    response = await build_order_response(db, order)
    await _push_assignment(notifier, response, trip, driver, vehicle, code)
    await NotificationService.push(notifier, driver_notification)
    await NotificationService.push(notifier, customer_notification)

    return AssignmentResult(order=response, trip=trip, confirmation_code=code)


async def _push_assignment(
    notifier: ConnectionManager,
    order: OrderResponse,
    trip: Trip,
    driver: User,
    vehicle: Optional[Vehicle],
    code: str
) -> None:
    customer = order.customer
    await notifier.emit_to_user(driver.id, RealtimeEvent.ORDER_ASSIGNED, {
        "orderId": order.id,
        "tripId": trip.id,
        "confirmationCode": code,
        "pickup": _with_map_link(trip.pickup_location),
        "dropoff": _with_map_link(trip.dropoff_location),
        "items": trip.order_items,
        "total": order.total,
        "customer": customer.model_dump() if customer else None,
    })
    summary = vehicle_summary(vehicle)
    await notifier.emit_to_user(order.customer_id, RealtimeEvent.ORDER_DRIVER_ASSIGNED, {
        "orderId": order.id,
        "tripId": trip.id,
        "trackingTripId": trip.id,
        "confirmationCode": code,
        "driver": {"id": driver.id, "name": driver.name, "phone": driver.phone},
        "vehicle": summary.model_dump() if summary else None,
    })


async def cancel_trip(db: AsyncSession, trip: Trip) -> None:
    """Cancel a live trip and release its driver, inside the caller's transaction."""
    ensure_trip_transition(trip.status, TripStatus.CANCELLED)
    trip.status = TripStatus.CANCELLED
    trip.live_status = LiveStatus.CANCELLED
    trip.end_time = datetime.now(timezone.utc)
    await release_driver(db, trip.driver_id)


async def update_order_status(
    db: AsyncSession,
    order_id: int,
    target: OrderStatus,
    current_user: dict,
    notifier: ConnectionManager,
    note: Optional[str] = None
) -> OrderResponse:
    """
    Manager-driven order transitions: complete a delivered order, or cancel
    one that is not finished yet. Cancelling also cancels the live trip and
    puts its driver back online.

    Raises:
        InvalidStateError: If the transition is not allowed
    """
    scope = resolve_tenant_scope(current_user)
    order = await load_scoped_order(db, order_id, scope, for_update=True)
    previous = order.status
    ensure_order_transition(previous, target)

    trip = None
    if target == OrderStatus.CANCELLED:
        trip = await _load_order_trip(db, order)
        if trip is not None and trip.status not in TERMINAL_TRIP_STATUSES:
            await cancel_trip(db, trip)
        else:
            trip = None

    order.status = target
    append_timeline(order, "status_changed", {
        "by": current_user["user_id"],
        "from": previous.value,
        "to": target.value,
        "note": note,
    })

    await log_event(
        db=db,
        action=AuditAction.ORDER_STATUS_CHANGED,
        actor_id=current_user["user_id"],
        actor_username=current_user.get("sub"),
        target_user_id=order.customer_id,
        metadata={"order_id": order.id, "from": previous.value, "to": target.value, "note": note}
    )
    notifications = [
        await NotificationService.create_notification(
            db,
            user_id=order.customer_id,
            title=f"Order {target.value}",
            message=f"Your order #{order.id} is now {target.value}",
            type=NotificationType.ORDER_UPDATE,
            metadata={"order_id": order.id}
        )
    ]
    if trip is not None and trip.driver_id is not None:
        notifications.append(await NotificationService.create_notification(
            db,
            user_id=trip.driver_id,
            title="Delivery cancelled",
            message=f"Order #{order.id} was cancelled",
            type=NotificationType.TRIP_UPDATE,
            metadata={"order_id": order.id, "trip_id": trip.id}
        ))

    await commit_or_conflict(db)
    await db.refresh(order)
    if trip is not None:
        await db.refresh(trip)

    logger.info("Order %s moved %s -> %s by user %s", order.id, previous.value, target.value, current_user["user_id"])

    update = {"orderId": order.id, "status": order.status.value}
    await notifier.emit_to_user(order.customer_id, RealtimeEvent.ORDER_STATUS_UPDATE, update)
    if order.driver_id is not None:
        await notifier.emit_to_user(order.driver_id, RealtimeEvent.ORDER_STATUS_UPDATE, update)
    if trip is not None:
        trip_update = {"tripId": trip.id, "status": trip.status.value, "liveStatus": trip.live_status}
        await notifier.emit_to_user(trip.customer_id, RealtimeEvent.TRIP_STATUS_UPDATE, trip_update)
        await notifier.emit_to_user(trip.driver_id, RealtimeEvent.TRIP_STATUS_UPDATE, trip_update)
    for notification in notifications:
        await NotificationService.push(notifier, notification)

    return await build_order_response(db, order)
