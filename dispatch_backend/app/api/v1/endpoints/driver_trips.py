"""
Driver trip endpoints: trip history, the active trip, the offer pool
(open trips, accept, decline), start/cancel, location breadcrumbs, presence
and delivery confirmation by QR scan.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession

from dispatch_backend.app.db.session import get_db
from dispatch_backend.app.models.enums import DriverStatus, UserRole
from dispatch_backend.app.models.trip_enums import TripStatus
from dispatch_backend.app.core.dependencies import get_current_user
from dispatch_backend.app.core.guards import require_role
from dispatch_backend.app.schemas.manager_trip import OpenTripListResponse, TripAcceptResponse
from dispatch_backend.app.schemas.qr import ConfirmScanRequest, ConfirmScanResponse
from dispatch_backend.app.schemas.trip import (
    ActiveTripResponse,
    DriverPresenceResponse,
    DriverPresenceUpdate,
    LocationRecord,
    LocationRecordResponse,
    TripListResponse,
    TripResponse,
    TripStatusResponse,
    TripStatusUpdate,
)
from dispatch_backend.app.services.confirmation import confirm_delivery_by_scan
from dispatch_backend.app.services.dispatch import accept_trip
from dispatch_backend.app.services.realtime import ConnectionManager, get_notifier
from dispatch_backend.app.services.trip_lifecycle import (
    decline_trip,
    get_active_trip,
    list_driver_trips,
    list_open_trips,
    record_location,
    set_driver_presence,
    update_trip_status,
)

router = APIRouter(prefix="/driver", tags=["Driver - Trips"])

driver_access = require_role([UserRole.DRIVER])


@router.get("/trips", response_model=TripListResponse)
async def get_my_trips(
    status: Optional[TripStatus] = Query(None, description="Filter by trip status"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    current_user: dict = Depends(driver_access),
    db: AsyncSession = Depends(get_db)
):
    """Trip history of the calling driver, newest first."""
    trips, total = await list_driver_trips(db, current_user["user_id"], status, page, page_size)
    return TripListResponse(
        trips=[TripResponse.model_validate(t) for t in trips],
        total=total,
        page=page,
        page_size=page_size
    )


@router.get("/trips/active", response_model=ActiveTripResponse)
async def get_my_active_trip(
    current_user: dict = Depends(driver_access),
    db: AsyncSession = Depends(get_db)
):
    trip = await get_active_trip(db, current_user["user_id"])
    return ActiveTripResponse(trip=TripResponse.model_validate(trip) if trip else None)


@router.get("/trips/open", response_model=OpenTripListResponse)
async def get_open_trips(
    current_user: dict = Depends(driver_access),
    db: AsyncSession = Depends(get_db)
):
    """Offered trips the caller can still accept, oldest first."""
    trips = await list_open_trips(db, current_user)
    return OpenTripListResponse(trips=[TripResponse.model_validate(t) for t in trips])


@router.post("/trips/{trip_id}/accept", response_model=TripAcceptResponse)
async def accept_open_trip(
    trip_id: int = Path(..., description="Trip ID"),
    current_user: dict = Depends(driver_access),
    db: AsyncSession = Depends(get_db),
    notifier: ConnectionManager = Depends(get_notifier)
):
    """
    Take an offered trip.
    
    The caller must be available; the trip and its order move to assigned
    and the caller goes on_trip, exactly as in a manager dispatch.
    """
    result = await accept_trip(db, trip_id, current_user, notifier)
    return TripAcceptResponse(
        trip=TripResponse.model_validate(result.trip),
        order_id=result.order.id,
        confirmation_code=result.confirmation_code
    )


@router.post("/trips/{trip_id}/decline", response_model=TripStatusResponse)
async def decline_open_trip(
    trip_id: int = Path(..., description="Trip ID"),
    current_user: dict = Depends(driver_access),
    db: AsyncSession = Depends(get_db)
):
    """Pass on an offered trip; it stays open for the other drivers."""
    trip = await decline_trip(db, trip_id, current_user)
    return TripStatusResponse(message="Trip declined", trip=TripResponse.model_validate(trip))


@router.patch("/trips/{trip_id}/status", response_model=TripStatusResponse)
async def change_trip_status(
    update: TripStatusUpdate,
    trip_id: int = Path(..., description="Trip ID"),
    current_user: dict = Depends(driver_access),
    db: AsyncSession = Depends(get_db),
    notifier: ConnectionManager = Depends(get_notifier)
):
    """
    Start or cancel an assigned trip.
    
    Starting moves the trip and its order to in_progress, which is what
    makes QR confirmation possible. Cancelling releases the driver.
    """
    trip = await update_trip_status(
        db,
        trip_id=trip_id,
        target=TripStatus(update.status),
        current_user=current_user,
        notifier=notifier,
        live_status=update.live_status
    )
    return TripStatusResponse(
        message=f"Trip {trip.status.value}",
        trip=TripResponse.model_validate(trip)
    )


@router.post("/trips/{trip_id}/location", response_model=LocationRecordResponse)
async def post_location(
    location: LocationRecord,
    trip_id: int = Path(..., description="Trip ID"),
    current_user: dict = Depends(driver_access),
    db: AsyncSession = Depends(get_db),
    notifier: ConnectionManager = Depends(get_notifier)
):
    """Record a GPS breadcrumb for an active trip."""
    point = await record_location(db, trip_id, location.lat, location.lng, current_user, notifier)
    return LocationRecordResponse(trip_id=trip_id, point=point)


@router.patch("/presence", response_model=DriverPresenceResponse)
async def change_presence(
    update: DriverPresenceUpdate,
    current_user: dict = Depends(driver_access),
    db: AsyncSession = Depends(get_db)
):
    """Go online or offline. Refused while a trip is active."""
    driver = await set_driver_presence(db, current_user, DriverStatus(update.status))
    return DriverPresenceResponse(driver_id=driver.id, driver_status=driver.driver_status.value)


@router.post("/confirm-qr", response_model=ConfirmScanResponse)
async def confirm_qr(
    request: ConfirmScanRequest,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    notifier: ConnectionManager = Depends(get_notifier)
):
    """
    Confirm a delivery by scanning the customer's QR code.
    
    Any authenticated user reaches the handler so that a non-driver scan
    is reported as a permission error by the confirmation service.
    """
    confirmation = await confirm_delivery_by_scan(db, request.qr, current_user, notifier)
    order = confirmation.order
    return ConfirmScanResponse(
        trip_id=confirmation.trip.id,
        order_id=confirmation.trip.order_id,
        trip_status=confirmation.trip.status.value,
        order_status=order.status.value if order else None
    )
