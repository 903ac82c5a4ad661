"""
Manager order endpoints: listing, details, dispatch, offering to the
driver pool and status changes.

Available to company accounts (all shops) and managers (their shop, when
they have one).
"""

from enum import Enum
from typing import Optional, Type

from fastapi import APIRouter, Depends, HTTPException, Path, Query
from fastapi import status as status_codes
from sqlalchemy.ext.asyncio import AsyncSession

from dispatch_backend.app.db.session import get_db
from dispatch_backend.app.models.enums import UserRole
from dispatch_backend.app.models.order_enums import OrderStatus
from dispatch_backend.app.core.guards import require_role, find_tenant_scope, resolve_tenant_scope
from dispatch_backend.app.schemas.dispatch import (
    AssignDriverRequest,
    AssignmentResponse,
    AvailableDriversResponse,
)
from dispatch_backend.app.schemas.order import (
    OrderDetailResponse,
    OrderListResponse,
    OrderStatusResponse,
    OrderStatusUpdate,
    OrderTimelineResponse,
)
from dispatch_backend.app.services.availability import list_available_drivers
from dispatch_backend.app.schemas.manager_trip import TripOfferResponse
from dispatch_backend.app.schemas.trip import TripResponse
from dispatch_backend.app.services.dispatch import assign_driver_to_order, offer_order, update_order_status
from dispatch_backend.app.services.order_queries import get_order_details, get_order_timeline, list_orders
from dispatch_backend.app.services.realtime import ConnectionManager, get_notifier

router = APIRouter(prefix="/manager/orders", tags=["Manager - Orders"])

manager_access = require_role([UserRole.MANAGER, UserRole.COMPANY])


def parse_status_filter(status: Optional[str], status_enum: Type[Enum] = OrderStatus, label: str = "order"):
    """Comma-separated, case-insensitive status filter; unknown values are a 400."""
    if not status:
        return None
    statuses = []
    for value in status.split(","):
        value = value.strip().lower()
        if not value:
            continue
        try:
            statuses.append(status_enum(value))
        except ValueError:
            raise HTTPException(
                status_code=status_codes.HTTP_400_BAD_REQUEST,
                detail=f"Unknown {label} status: {value}"
            )
    return statuses


@router.get("", response_model=OrderListResponse)
async def list_company_orders(
    status: Optional[str] = Query(None, description="Comma-separated statuses"),
    search: Optional[str] = Query(None, max_length=100),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: dict = Depends(manager_access),
    db: AsyncSession = Depends(get_db)
):
    """List orders in the caller's scope, newest first."""
    scope = resolve_tenant_scope(current_user)
    return await list_orders(
        db,
        scope,
        statuses=parse_status_filter(status),
        search=search,
        page=page,
        limit=limit
    )


@router.get("/available-drivers", response_model=AvailableDriversResponse)
async def get_available_drivers(
    current_user: dict = Depends(manager_access),
    db: AsyncSession = Depends(get_db)
):
    """
    Drivers that can be dispatched right now, with their vehicles.
    
    Empty when the caller's company cannot be resolved.
    """
    scope = find_tenant_scope(current_user)
    if scope is None:
        return AvailableDriversResponse(drivers=[])
    return AvailableDriversResponse(drivers=await list_available_drivers(db, scope))


@router.get("/{order_id}", response_model=OrderDetailResponse)
async def get_order(
    order_id: int = Path(..., description="Order ID"),
    current_user: dict = Depends(manager_access),
    db: AsyncSession = Depends(get_db)
):
    """Order details with its trip and latest payment."""
    return await get_order_details(db, order_id, resolve_tenant_scope(current_user))


@router.get("/{order_id}/timeline", response_model=OrderTimelineResponse)
async def get_timeline(
    order_id: int = Path(..., description="Order ID"),
    current_user: dict = Depends(manager_access),
    db: AsyncSession = Depends(get_db)
):
    return await get_order_timeline(db, order_id, resolve_tenant_scope(current_user))


@router.patch("/{order_id}/assign-driver", response_model=AssignmentResponse)
async def assign_driver(
    assignment: AssignDriverRequest,
    order_id: int = Path(..., description="Order ID"),
    current_user: dict = Depends(manager_access),
    db: AsyncSession = Depends(get_db),
    notifier: ConnectionManager = Depends(get_notifier)
):
    """
    Dispatch a driver to an order.
    
    Validates:
    - Order is in scope and not delivered, completed or cancelled
    - Driver is in scope, active and not busy
    
    Creates the order's trip on first dispatch and re-targets it afterwards;
    a new confirmation code is issued every time.
    """
    result = await assign_driver_to_order(
        db,
        order_id=order_id,
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


@router.post("/{order_id}/offer", response_model=TripOfferResponse)
async def offer_to_drivers(
    order_id: int = Path(..., description="Order ID"),
    current_user: dict = Depends(manager_access),
    db: AsyncSession = Depends(get_db),
    notifier: ConnectionManager = Depends(get_notifier)
):
    """
    Offer a pending order to the drivers of its shop.
    
    Creates a pending trip that available drivers can accept or decline.
    The order can still be dispatched directly while the offer is open.
    """
    trip = await offer_order(db, order_id, current_user, notifier)
    return TripOfferResponse(trip=TripResponse.model_validate(trip))


@router.patch("/{order_id}/status", response_model=OrderStatusResponse)
async def change_order_status(
    update: OrderStatusUpdate,
    order_id: int = Path(..., description="Order ID"),
    current_user: dict = Depends(manager_access),
    db: AsyncSession = Depends(get_db),
    notifier: ConnectionManager = Depends(get_notifier)
):
    """Complete a delivered order, or cancel an unfinished one."""
    order = await update_order_status(
        db,
        order_id=order_id,
        target=OrderStatus(update.status),
        current_user=current_user,
        notifier=notifier,
        note=update.note
    )
    return OrderStatusResponse(order=order)
