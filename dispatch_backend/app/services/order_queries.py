"""
Tenant-scoped order reads for the manager views.
"""

import math
from typing import Dict, Iterable, List, Optional

from sqlalchemy import select, func, or_, cast, String
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from dispatch_backend.app.core.exceptions import NotFoundError, ScopeViolationError
from dispatch_backend.app.core.guards import TenantScope
from dispatch_backend.app.models.order import Order
from dispatch_backend.app.models.order_enums import OrderStatus
from dispatch_backend.app.models.payment import Payment
from dispatch_backend.app.models.trip import Trip
from dispatch_backend.app.models.user import User
from dispatch_backend.app.models.vehicle import Vehicle
from dispatch_backend.app.schemas.common import UserSummary
from dispatch_backend.app.schemas.order import (
    OrderDetailResponse,
    OrderListResponse,
    OrderResponse,
    OrderTimelineResponse,
    PaymentResponse,
)
from dispatch_backend.app.schemas.trip import TripResponse
from dispatch_backend.app.services.availability import vehicle_summary
from dispatch_backend.app.services.timeline import sorted_timeline

LIKE_ESCAPE = "\\"


def like_pattern(search: str) -> str:
    """Substring pattern for ``LIKE`` with the wildcards in ``search`` taken literally."""
    term = search.strip().lower()
    for char in (LIKE_ESCAPE, "%", "_"):
        term = term.replace(char, LIKE_ESCAPE + char)
    return f"%{term}%"


def apply_scope(query, model, scope: TenantScope):
    """Restrict a query on ``model`` to the caller's company (and shop)."""
    query = query.where(model.company_id == scope.company_id)
    if scope.shop_id is not None:
        query = query.where(model.shop_id == scope.shop_id)
    return query


async def load_scoped_order(
    db: AsyncSession,
    order_id: int,
    scope: TenantScope,
    for_update: bool = False
) -> Order:
    """
    Load an order inside the caller's company.

    Raises:
        NotFoundError: If the order does not exist in the company
        ScopeViolationError: If it belongs to another shop of the company
    """
    query = select(Order).where(Order.id == order_id, Order.company_id == scope.company_id)
    if for_update:
        query = query.with_for_update()
    result = await db.execute(query)
    order = result.scalar_one_or_none()
    if not order:
        raise NotFoundError("Order", order_id)
    if scope.shop_id is not None and order.shop_id != scope.shop_id:
        raise ScopeViolationError(
            "Order belongs to another shop",
            details={"order_id": order_id}
        )
    return order


def _summary(user: Optional[User]) -> Optional[UserSummary]:
    if user is None:
        return None
    return UserSummary(id=user.id, name=user.name, phone=user.phone, email=user.email)


def _order_fields(order: Order) -> dict:
    return {
        "id": order.id,
        "company_id": order.company_id,
        "shop_id": order.shop_id,
        "customer_id": order.customer_id,
        "driver_id": order.driver_id,
        "vehicle_id": order.vehicle_id,
        "trip_id": order.trip_id,
        "status": order.status.value,
        "pickup_location": order.pickup_location,
        "dropoff_location": order.dropoff_location,
        "items": order.items or [],
        "subtotal": order.subtotal,
        "delivery_fee": order.delivery_fee,
        "total": order.total,
        "customer_notes": order.customer_notes,
        "timeline": order.timeline or [],
        "created_at": order.created_at,
        "updated_at": order.updated_at,
    }


async def build_order_responses(db: AsyncSession, orders: Iterable[Order]) -> List[OrderResponse]:
    """Serialize orders with customer, driver and vehicle summaries populated."""
    orders = list(orders)
    user_ids = {o.customer_id for o in orders} | {o.driver_id for o in orders if o.driver_id}
    vehicle_ids = {o.vehicle_id for o in orders if o.vehicle_id}

    users: Dict[int, User] = {}
    if user_ids:
        result = await db.execute(select(User).where(User.id.in_(user_ids)))
        users = {u.id: u for u in result.scalars().all()}
    vehicles: Dict[int, Vehicle] = {}
    if vehicle_ids:
        result = await db.execute(select(Vehicle).where(Vehicle.id.in_(vehicle_ids)))
        vehicles = {v.id: v for v in result.scalars().all()}

    return [
        OrderResponse(
            **_order_fields(order),
            customer=_summary(users.get(order.customer_id)),
            driver=_summary(users.get(order.driver_id)),
            vehicle=vehicle_summary(vehicles.get(order.vehicle_id)),
        )
        for order in orders
    ]


async def build_order_response(db: AsyncSession, order: Order) -> OrderResponse:
    return (await build_order_responses(db, [order]))[0]


async def list_orders(
    db: AsyncSession,
    scope: TenantScope,
    statuses: Optional[List[OrderStatus]] = None,
    search: Optional[str] = None,
    page: int = 1,
    limit: int = 20
) -> OrderListResponse:
    """
    Paginated order list, newest first.

    ``search`` matches the customer's name or phone, the driver's name and
    the pickup/dropoff addresses, case-insensitively.
    """
    query = apply_scope(select(Order), Order, scope)
    if statuses:
        query = query.where(Order.status.in_(statuses))
    if search:
        customer = aliased(User)
        driver = aliased(User)
        term = like_pattern(search)
        query = (
            query
            .join(customer, customer.id == Order.customer_id)
            .outerjoin(driver, driver.id == Order.driver_id)
            .where(or_(
                func.lower(customer.name).like(term, escape=LIKE_ESCAPE),
                func.lower(customer.phone).like(term, escape=LIKE_ESCAPE),
                func.lower(driver.name).like(term, escape=LIKE_ESCAPE),
                func.lower(cast(Order.pickup_location, String)).like(term, escape=LIKE_ESCAPE),
                func.lower(cast(Order.dropoff_location, String)).like(term, escape=LIKE_ESCAPE),
            ))
        )

    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar() or 0

    offset = (page - 1) * limit
    result = await db.execute(
        query.order_by(Order.created_at.desc(), Order.id.desc()).offset(offset).limit(limit)
    )
    orders = result.scalars().all()

    return OrderListResponse(
        orders=await build_order_responses(db, orders),
        total=total,
        page=page,
        limit=limit,
        total_pages=math.ceil(total / limit) if total else 0,
    )


async def get_order_trip(db: AsyncSession, order: Order) -> Optional[Trip]:
    if order.trip_id is not None:
        result = await db.execute(select(Trip).where(Trip.id == order.trip_id))
        trip = result.scalar_one_or_none()
        if trip is not None:
            return trip
    result = await db.execute(
        select(Trip).where(Trip.order_id == order.id).order_by(Trip.id.desc()).limit(1)
    )
    return result.scalar_one_or_none()


async def get_order_details(db: AsyncSession, order_id: int, scope: TenantScope) -> OrderDetailResponse:
    """Order with its trip and the latest payment recorded for that trip."""
    order = await load_scoped_order(db, order_id, scope)
    trip = await get_order_trip(db, order)

    payment = None
    if trip is not None:
        result = await db.execute(
            select(Payment)
            .where(Payment.trip_id == trip.id)
            .order_by(Payment.created_at.desc(), Payment.id.desc())
            .limit(1)
        )
        payment = result.scalar_one_or_none()

    return OrderDetailResponse(
        order=await build_order_response(db, order),
        trip=TripResponse.model_validate(trip) if trip else None,
        payment=PaymentResponse.model_validate(payment) if payment else None,
    )


async def get_order_timeline(db: AsyncSession, order_id: int, scope: TenantScope) -> OrderTimelineResponse:
    order = await load_scoped_order(db, order_id, scope)
    return OrderTimelineResponse(
        order_id=order.id,
        current_status=order.status.value,
        created_at=order.created_at,
        updated_at=order.updated_at,
        timeline=sorted_timeline(order),
    )
