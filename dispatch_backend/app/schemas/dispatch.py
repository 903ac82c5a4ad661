"""
Dispatch schemas: driver assignment and the available-driver roster.
"""

from pydantic import BaseModel, Field
from typing import List, Optional

from dispatch_backend.app.schemas.common import VehicleSummary
from dispatch_backend.app.schemas.order import OrderResponse


class AssignDriverRequest(BaseModel):
    """Schema for assigning a driver to an order."""
    driver_id: int = Field(..., alias="driverId", gt=0)

    class Config:
        populate_by_name = True


class AssignmentResponse(BaseModel):
    """Response after a successful dispatch."""
    ok: bool = True
    message: str = "Driver assigned"
    order: OrderResponse
    trip_id: int
    tracking_trip_id: int
    confirmation_code: str


class AvailableDriver(BaseModel):
    id: int
    name: str
    phone: Optional[str] = None
    email: Optional[str] = None
    shop_id: Optional[int] = None
    driver_status: str
    current_lat: Optional[float] = None
    current_lng: Optional[float] = None
    vehicle: Optional[VehicleSummary] = None


class AvailableDriversResponse(BaseModel):
    ok: bool = True
    drivers: List[AvailableDriver]
