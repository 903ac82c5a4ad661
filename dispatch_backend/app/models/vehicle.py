"""
Vehicle database model.

Vehicles are owned by a single verified driver; dispatch looks up the
driver's vehicle and attaches it to the order and trip.
"""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Enum
from sqlalchemy.sql import func
from dispatch_backend.app.db.session import Base
from dispatch_backend.app.models.enums import VehicleStatus, enum_values


class Vehicle(Base):
    """Vehicle model."""
    __tablename__ = "vehicles"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    
    # Ownership
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    shop_id = Column(Integer, ForeignKey("shops.id"), nullable=True, index=True)
    driver_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    
    # Identification
    plate_number = Column(String(50), unique=True, nullable=False, index=True)
    vehicle_type = Column(String(50), nullable=True)  # e.g., "car", "motor"
    brand = Column(String(100), nullable=True)
    model = Column(String(100), nullable=True)
    
    status = Column(
        Enum(VehicleStatus, values_callable=enum_values),
        default=VehicleStatus.AVAILABLE,
        nullable=False
    )
    
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
    
    def __repr__(self):
        return f"<Vehicle(id={self.id}, plate='{self.plate_number}', driver_id={self.driver_id})>"
