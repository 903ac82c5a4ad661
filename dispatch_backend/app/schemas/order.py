"""
Order schemas for the manager order views.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from dispatch_backend.app.models.order_enums import PaymentStatus

from dispatch_backend.app.schemas.common import UserSummary, VehicleSummary
from dispatch_backend.app.schemas.trip import TripResponse


class OrderResponse(BaseModel):
    """Schema for order response, with populated parties."""
    id: int
    company_id: int
    shop_id: Optional[int]
    customer_id: int
    driver_id: Optional[int]
    vehicle_id: Optional[int]
    trip_id: Optional[int]
    status: str
    pickup_location: Optional[Dict[str, Any]]
    dropoff_location: Optional[Dict[str, Any]]
    items: List[Dict[str, Any]] = []
    subtotal: float
    delivery_fee: float
    total: float
    customer_notes: Optional[str] = None
    timeline: List[Dict[str, Any]] = []
    created_at: datetime
    updated_at: datetime
    customer: Optional[UserSummary] = None
    driver: Optional[UserSummary] = None
    vehicle: Optional[VehicleSummary] = None


class OrderListResponse(BaseModel):
    """Schema for paginated order list."""
    ok: bool = True
    orders: List[OrderResponse]
    total: int
    page: int
    limit: int
    total_pages: int


class PaymentResponse(BaseModel):
    id: int
    trip_id: Optional[int]
    amount: float
    method: str
    status: PaymentStatus
    paid_at: Optional[datetime]
    created_at: datetime
    
    class Config:
        from_attributes = True


class OrderDetailResponse(BaseModel):
    ok: bool = True
    order: OrderResponse
    trip: Optional[TripResponse] = None
    payment: Optional[PaymentResponse] = None


class OrderTimelineResponse(BaseModel):
    ok: bool = True
    order_id: int
    current_status: str
    created_at: datetime
    updated_at: datetime
    timeline: List[Dict[str, Any]]


class OrderStatusUpdate(BaseModel):
    """Statuses a manager may set directly; the rest follow dispatch and delivery."""
    status: Literal["completed", "cancelled"]
    note: Optional[str] = Field(None, max_length=500)


class OrderStatusResponse(BaseModel):
    ok: bool = True
    order: OrderResponse
