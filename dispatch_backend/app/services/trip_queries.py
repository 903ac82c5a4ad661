"""
Read side of trips for company accounts and managers: scoped list, details,
timeline and a per-status summary.
"""

import math
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from dispatch_backend.app.core.exceptions import NotFoundError, ScopeViolationError
from dispatch_backend.app.core.guards import TenantScope
from dispatch_backend.app.models.order import Order
from dispatch_backend.app.models.payment import Payment
from dispatch_backend.app.models.trip import Trip
from dispatch_backend.app.models.trip_enums import TripStatus
from dispatch_backend.app.models.user import User
from dispatch_backend.app.models.vehicle import Vehicle
from dispatch_backend.app.schemas.common import UserSummary
from dispatch_backend.app.schemas.manager_trip import (
    ManagedTripDetailResponse,
    ManagedTripListResponse,
    ManagedTripResponse,
    TripSummaryResponse,
    TripTimelineResponse,
)
from dispatch_backend.app.schemas.order import PaymentResponse
from dispatch_backend.app.schemas.trip import TripResponse
from dispatch_backend.app.services.availability import vehicle_summary
from dispatch_backend.app.services.order_queries import apply_scope
from dispatch_backend.app.services.timeline import sorted_timeline


async def load_scoped_trip(
    db: AsyncSession,
    trip_id: int,
    scope: TenantScope,
    for_update: bool = False
) -> Trip:
    """
    Load a trip inside the caller's company.

    Raises:
        NotFoundError: If the trip does not exist in the company
        ScopeViolationError: If it belongs to another shop of the company
    """
    query = select(Trip).where(Trip.id == trip_id, Trip.company_id == scope.company_id)
    if for_update:
        query = query.with_for_update()
    trip = (await db.execute(query)).scalar_one_or_none()
    if not trip:
        raise NotFoundError("Trip", trip_id)
    if scope.shop_id is not None and trip.shop_id != scope.shop_id:
        raise ScopeViolationError(
            "Trip belongs to another shop",
            details={"trip_id": trip_id}
        )
    return trip


async def build_trip_responses(db: AsyncSession, trips: Iterable[Trip]) -> List[ManagedTripResponse]:
    trips = list(trips)
    user_ids = {t.driver_id for t in trips if t.driver_id} | {t.customer_id for t in trips if t.customer_id}
    vehicle_ids = {t.vehicle_id for t in trips if t.vehicle_id}

    users: Dict[int, User] = {}
    if user_ids:
        result = await db.execute(select(User).where(User.id.in_(user_ids)))
        users = {u.id: u for u in result.scalars().all()}
    vehicles: Dict[int, Vehicle] = {}
    if vehicle_ids:
        result = await db.execute(select(Vehicle).where(Vehicle.id.in_(vehicle_ids)))
        vehicles = {v.id: v for v in result.scalars().all()}

    def summary(user_id: Optional[int]) -> Optional[UserSummary]:
        user = users.get(user_id)
        return UserSummary.model_validate(user) if user else None

    return [
        ManagedTripResponse(
            **TripResponse.model_validate(trip).model_dump(),
            driver=summary(trip.driver_id),
            customer=summary(trip.customer_id),
            vehicle=vehicle_summary(vehicles.get(trip.vehicle_id)),
        )
        for trip in trips
    ]


async def list_trips(
    db: AsyncSession,
    scope: TenantScope,
    statuses: Optional[List[TripStatus]] = None,
    driver_id: Optional[int] = None,
    customer_id: Optional[int] = None,
    created_from: Optional[datetime] = None,
    created_to: Optional[datetime] = None,
    page: int = 1,
    limit: int = 20
) -> ManagedTripListResponse:
    """Paginated trip list, newest first."""
    query = apply_scope(select(Trip), Trip, scope)
    if statuses:
        query = query.where(Trip.status.in_(statuses))
    if driver_id is not None:
        query = query.where(Trip.driver_id == driver_id)
    if customer_id is not None:
        query = query.where(Trip.customer_id == customer_id)
    if created_from is not None:
        query = query.where(Trip.created_at >= created_from)
    if created_to is not None:
        query = query.where(Trip.created_at <= created_to)

    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar() or 0

    result = await db.execute(
        query.order_by(Trip.created_at.desc(), Trip.id.desc()).offset((page - 1) * limit).limit(limit)
    )
    trips = result.scalars().all()

    return ManagedTripListResponse(
        trips=await build_trip_responses(db, trips),
        total=total,
        page=page,
        limit=limit,
        total_pages=math.ceil(total / limit) if total else 0,
    )


async def get_trip_details(db: AsyncSession, trip_id: int, scope: TenantScope) -> ManagedTripDetailResponse:
    trip = await load_scoped_trip(db, trip_id, scope)
    result = await db.execute(
        select(Payment)
        .where(Payment.trip_id == trip.id)
        .order_by(Payment.created_at.desc(), Payment.id.desc())
        .limit(1)
    )
    payment = result.scalar_one_or_none()
    return ManagedTripDetailResponse(
        trip=(await build_trip_responses(db, [trip]))[0],
        payment=PaymentResponse.model_validate(payment) if payment else None,
    )


async def get_trip_timeline(db: AsyncSession, trip_id: int, scope: TenantScope) -> TripTimelineResponse:
    """Entries of the linked order's timeline, oldest first."""
    trip = await load_scoped_trip(db, trip_id, scope)
    timeline = []
    if trip.order_id is not None:
        order = await db.get(Order, trip.order_id)
        if order is not None:
            timeline = sorted_timeline(order)
    return TripTimelineResponse(
        trip_id=trip.id,
        order_id=trip.order_id,
        status=trip.status.value,
        created_at=trip.created_at,
        updated_at=trip.updated_at,
        timeline=timeline,
    )


async def summarize_trips(db: AsyncSession, scope: TenantScope) -> TripSummaryResponse:
    """Trip counts per status in the caller's scope; every status is present."""
    query = apply_scope(select(Trip.status, func.count(Trip.id)), Trip, scope).group_by(Trip.status)
    rows = (await db.execute(query)).all()

    summary = {status.value: 0 for status in TripStatus}
    for status, count in rows:
        summary[status.value] = count
    summary["total"] = sum(summary.values())
    return TripSummaryResponse(summary=summary)
