"""
Trip database model.

A trip is the operational record of one delivery run. It is created the
first time a driver is dispatched to an order, or as a pending trip when
the order is offered to the driver pool, and updated in place on
re-assignment.
"""

from sqlalchemy import Column, Integer, Float, String, Boolean, ForeignKey, DateTime, Enum, JSON
from sqlalchemy.sql import func
from dispatch_backend.app.db.session import Base
from dispatch_backend.app.models.enums import enum_values
from dispatch_backend.app.models.order_enums import PaymentStatus
from dispatch_backend.app.models.trip_enums import TripStatus, LiveStatus


class Trip(Base):
    """
    Trip model.
    
    ``order_items`` is a snapshot of the order's items at dispatch time, not a
    live reference. ``route_history`` is the append-only driver breadcrumb
    trail [{lat, lng, timestamp}].
    """
    __tablename__ = "trips"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    
    # Ownership and parties
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    shop_id = Column(Integer, ForeignKey("shops.id"), nullable=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=True, index=True)
    driver_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    customer_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    vehicle_id = Column(Integer, ForeignKey("vehicles.id"), nullable=True, index=True)
    
    # Cart snapshot and money
    order_items = Column(JSON, nullable=False, default=list)
    total_amount = Column(Float, nullable=False, default=0)
    delivery_fee = Column(Float, nullable=False, default=0)
    payment_status = Column(
        Enum(PaymentStatus, values_callable=enum_values),
        default=PaymentStatus.UNPAID,
        nullable=False
    )
    
    # Locations
    pickup_location = Column(JSON, nullable=False)
    dropoff_location = Column(JSON, nullable=False)
    
    # Status
    status = Column(
        Enum(TripStatus, values_callable=enum_values),
        default=TripStatus.PENDING,
        nullable=False,
        index=True
    )
    live_status = Column(String(120), nullable=False, default=LiveStatus.DRIVER_ASSIGNED)
    
    # Delivery confirmation
    confirmation_code = Column(String(12), nullable=True)
    customer_confirmed = Column(Boolean, default=False, nullable=False)
    confirmation_time = Column(DateTime(timezone=True), nullable=True)
    
    # Tracking
    route_history = Column(JSON, nullable=False, default=list)
    
    # Drivers that passed on this trip while it was offered
    declined_driver_ids = Column(JSON, nullable=False, default=list)
    
    version = Column(Integer, nullable=False)
    
    # Timestamps
    start_time = Column(DateTime(timezone=True), nullable=True)
    end_time = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
    
    __mapper_args__ = {"version_id_col": version}
    
    def __repr__(self):
        return f"<Trip(id={self.id}, driver_id={self.driver_id}, status='{self.status.value}')>"
