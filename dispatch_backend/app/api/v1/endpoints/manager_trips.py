"""
Manager trip endpoints: trip list, summary, details, timeline and driver
(re-)assignment at trip level.

Company accounts see every shop of their company, shop managers only
their shop.
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession

from dispatch_backend.app.db.session import get_db
from dispatch_backend.app.models.enums import UserRole
from dispatch_backend.app.models.trip_enums import TripStatus
from dispatch_backend.app.core.guards import require_role, resolve_tenant_scope
from dispatch_backend.app.api.v1.endpoints.manager_orders import parse_status_filter
from dispatch_backend.app.schemas.dispatch import AssignDriverRequest, AssignmentResponse
from dispatch_backend.app.schemas.manager_trip import (
    ManagedTripDetailResponse,
    ManagedTripListResponse,
    TripSummaryResponse,
    TripTimelineResponse,
)
from dispatch_backend.app.services.dispatch import assign_driver_to_trip
from dispatch_backend.app.services.realtime import ConnectionManager, get_notifier
from dispatch_backend.app.services.trip_queries import (
    get_trip_details,
    get_trip_timeline,
    list_trips,
    summarize_trips,
)

router = APIRouter(prefix="/manager/trips", tags=["Manager - Trips"])

manager_access = require_role([UserRole.MANAGER, UserRole.COMPANY])


@router.get("", response_model=ManagedTripListResponse)
async def list_company_trips(
    status: Optional[str] = Query(None, description="Comma-separated statuses"),
    driver_id: Optional[int] = Query(None, alias="driverId"),
    customer_id: Optional[int] = Query(None, alias="customerId"),
    created_from: Optional[datetime] = Query(None, alias="from"),
    created_to: Optional[datetime] = Query(None, alias="to"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: dict = Depends(manager_access),
    db: AsyncSession = Depends(get_db)
):
    """List trips in the caller's scope, newest first."""
    return await list_trips(
        db,
        resolve_tenant_scope(current_user),
        statuses=parse_status_filter(status, TripStatus, "trip"),
        driver_id=driver_id,
        customer_id=customer_id,
        created_from=created_from,
        created_to=created_to,
        page=page,
        limit=limit
    )


@router.get("/summary", response_model=TripSummaryResponse)
async def get_trip_summary(
    current_user: dict = Depends(manager_access),
    db: AsyncSession = Depends(get_db)
):
    """Trip counts per status."""
    return await summarize_trips(db, resolve_tenant_scope(current_user))


@router.get("/{trip_id}", response_model=ManagedTripDetailResponse)
async def get_trip(
    trip_id: int = Path(..., description="Trip ID"),
    current_user: dict = Depends(manager_access),
    db: AsyncSession = Depends(get_db)
):
    """Trip with driver, customer, vehicle and its latest payment."""
    return await get_trip_details(db, trip_id, resolve_tenant_scope(current_user))


@router.get("/{trip_id}/timeline", response_model=TripTimelineResponse)
async def get_timeline(
    trip_id: int = Path(..., description="Trip ID"),
    current_user: dict = Depends(manager_access),
    db: AsyncSession = Depends(get_db)
):
    return await get_trip_timeline(db, trip_id, resolve_tenant_scope(current_user))


@router.patch("/{trip_id}/assign-driver", response_model=AssignmentResponse)
async def assign_trip_driver(
    assignment: AssignDriverRequest,
    trip_id: int = Path(..., description="Trip ID"),
    current_user: dict = Depends(manager_access),
    db: AsyncSession = Depends(get_db),
    notifier: ConnectionManager = Depends(get_notifier)
):
    """
    Assign a driver to a pending trip, or hand a live trip to another
    driver. Runs the same checks and effects as dispatching its order.
    """
    result = await assign_driver_to_trip(
        db,
        trip_id=trip_id,
        driver_id=assignment.driver_id,
        current_user=current_user,
        notifier=notifier
    )
    return AssignmentResponse(
        order=result.order,
        trip_id=result.trip.id,
        tracking_trip_id=result.trip.id,
        confirmation_code=result.confirmation_code
    )
