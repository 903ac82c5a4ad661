"""
Customer trip endpoints: live trip view and the delivery QR.
"""

from fastapi import APIRouter, Depends, Path
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from dispatch_backend.app.db.session import get_db
from dispatch_backend.app.models.enums import UserRole
from dispatch_backend.app.models.trip import Trip
from dispatch_backend.app.core.exceptions import NotFoundError
from dispatch_backend.app.core.guards import require_role
from dispatch_backend.app.schemas.qr import QRIssueResponse
from dispatch_backend.app.schemas.trip import ActiveTripResponse, TripResponse
from dispatch_backend.app.services.confirmation import issue_trip_qr

router = APIRouter(prefix="/customer/trip", tags=["Customer - Trips"])

customer_access = require_role([UserRole.CUSTOMER])


@router.get("/{trip_id}", response_model=ActiveTripResponse)
async def get_my_trip(
    trip_id: int = Path(..., description="Trip ID"),
    current_user: dict = Depends(customer_access),
    db: AsyncSession = Depends(get_db)
):
    """Trip tracking view for the customer who owns it."""
    result = await db.execute(
        select(Trip).where(Trip.id == trip_id, Trip.customer_id == current_user["user_id"])
    )
    trip = result.scalar_one_or_none()
    if not trip:
        raise NotFoundError("Trip", trip_id)
    return ActiveTripResponse(trip=TripResponse.model_validate(trip))


@router.get("/{trip_id}/qr", response_model=QRIssueResponse)
async def get_trip_qr(
    trip_id: int = Path(..., description="Trip ID"),
    current_user: dict = Depends(customer_access),
    db: AsyncSession = Depends(get_db)
):
    """
    Signed delivery QR for the customer's active trip.
    
    The driver scans this code at handover. The confirmation code is
    returned for display only.
    """
    qr, trip = await issue_trip_qr(db, trip_id, current_user["user_id"])
    return QRIssueResponse(
        qr=qr,
        confirmation_code=trip.confirmation_code,
        trip_status=trip.status.value
    )
