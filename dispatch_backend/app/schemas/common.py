"""
Shared response fragments (party summaries, locations).
"""

from pydantic import BaseModel, Field
from typing import Optional


class Location(BaseModel):
    """Pickup or dropoff point."""
    address: Optional[str] = None
    lat: Optional[float] = Field(None, ge=-90, le=90)
    lng: Optional[float] = Field(None, ge=-180, le=180)


class UserSummary(BaseModel):
    """Display fields of a driver, customer or company contact."""
    id: int
    name: str
    phone: Optional[str] = None
    email: Optional[str] = None
    
    class Config:
        from_attributes = True


class VehicleSummary(BaseModel):
    """Display fields of a vehicle."""
    id: int
    plate_number: str
    vehicle_type: Optional[str] = None
    brand: Optional[str] = None
    model: Optional[str] = None
    status: str
    
    class Config:
        from_attributes = True


class CompanySummary(BaseModel):
    id: int
    name: str
    
    class Config:
        from_attributes = True
