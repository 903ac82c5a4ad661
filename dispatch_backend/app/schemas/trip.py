"""
Trip schemas for driver and customer trip views.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from dispatch_backend.app.models.order_enums import PaymentStatus
from dispatch_backend.app.models.trip_enums import TripStatus


class TripResponse(BaseModel):
    """Schema for trip response."""
    id: int
    company_id: int
    shop_id: Optional[int]
    order_id: Optional[int]
    driver_id: Optional[int]
    customer_id: Optional[int]
    vehicle_id: Optional[int]
    order_items: List[Dict[str, Any]] = []
    total_amount: float
    delivery_fee: float
    payment_status: PaymentStatus
    pickup_location: Dict[str, Any]
    dropoff_location: Dict[str, Any]
    status: TripStatus
    live_status: str
    confirmation_code: Optional[str] = None
    customer_confirmed: bool
    confirmation_time: Optional[datetime]
    route_history: List[Dict[str, Any]] = []
    start_time: Optional[datetime]
    end_time: Optional[datetime]
    created_at: datetime
    updated_at: datetime
    
    class Config:
        from_attributes = True


class TripListResponse(BaseModel):
    """Schema for paginated trip list."""
    ok: bool = True
    trips: List[TripResponse]
    total: int
    page: int
    page_size: int


class ActiveTripResponse(BaseModel):
    ok: bool = True
    trip: Optional[TripResponse] = None


class TripStatusUpdate(BaseModel):
    """Driver-initiated trip transitions."""
    status: Literal["assigned", "in_progress", "delivered", "cancelled"]
    live_status: Optional[str] = Field(None, max_length=120)


class TripStatusResponse(BaseModel):
    ok: bool = True
    message: str
    trip: TripResponse


class LocationRecord(BaseModel):
    """Schema for recording a GPS breadcrumb."""
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class LocationRecordResponse(BaseModel):
    ok: bool = True
    trip_id: int
    point: Dict[str, Any]


class DriverPresenceUpdate(BaseModel):
    status: Literal["online", "offline"]


class DriverPresenceResponse(BaseModel):
    ok: bool = True
    driver_id: int
    driver_status: str
