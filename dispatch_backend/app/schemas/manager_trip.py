"""
Schemas for the company/manager trip views, the trip summary and the
driver offer pool.
"""

from pydantic import BaseModel
from datetime import datetime
from typing import Any, Dict, List, Optional

from dispatch_backend.app.schemas.common import UserSummary, VehicleSummary
from dispatch_backend.app.schemas.order import PaymentResponse
from dispatch_backend.app.schemas.trip import TripResponse


class ManagedTripResponse(TripResponse):
    """Trip with its parties populated."""
    driver: Optional[UserSummary] = None
    customer: Optional[UserSummary] = None
    vehicle: Optional[VehicleSummary] = None


class ManagedTripListResponse(BaseModel):
    ok: bool = True
    trips: List[ManagedTripResponse]
    total: int
    page: int
    limit: int
    total_pages: int


class ManagedTripDetailResponse(BaseModel):
    ok: bool = True
    trip: ManagedTripResponse
    payment: Optional[PaymentResponse] = None


class TripTimelineResponse(BaseModel):
    """History of a trip, taken from its order's timeline."""
    ok: bool = True
    trip_id: int
    order_id: Optional[int]
    status: str
    created_at: datetime
    updated_at: datetime
    timeline: List[Dict[str, Any]]


class TripSummaryResponse(BaseModel):
    ok: bool = True
    summary: Dict[str, int]


class TripOfferResponse(BaseModel):
    ok: bool = True
    message: str = "Order offered to drivers"
    trip: TripResponse


class OpenTripListResponse(BaseModel):
    ok: bool = True
    trips: List[TripResponse]


class TripAcceptResponse(BaseModel):
    ok: bool = True
    message: str = "Trip accepted"
    trip: TripResponse
    order_id: Optional[int]
    confirmation_code: str
