"""
Order database model.

An order is a customer's delivery request for a company, optionally scoped
to one of its shops.
"""

from sqlalchemy import Column, Integer, Float, String, Text, DateTime, ForeignKey, Enum, JSON
from sqlalchemy.sql import func
from dispatch_backend.app.db.session import Base
from dispatch_backend.app.models.enums import enum_values
from dispatch_backend.app.models.order_enums import OrderStatus


class Order(Base):
    """
    Order model.
    
    JSON columns hold the document-shaped fields:
        pickup_location / dropoff_location: {address, lat, lng}
        items: [{product_id, name, price, quantity, subtotal}]
        timeline: append-only [{action, meta, timestamp}]
    JSON columns are replaced, never mutated in place, so changes are tracked.
    """
    __tablename__ = "orders"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    
    # Ownership
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    shop_id = Column(Integer, ForeignKey("shops.id"), nullable=True, index=True)
    customer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    
    # Dispatch
    driver_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    vehicle_id = Column(Integer, ForeignKey("vehicles.id"), nullable=True)
    # Back-reference only; trips.order_id carries the foreign key
    trip_id = Column(Integer, nullable=True, index=True)
    
    status = Column(
        Enum(OrderStatus, values_callable=enum_values),
        default=OrderStatus.PENDING,
        nullable=False,
        index=True
    )
    
    # Locations and cart snapshot
    pickup_location = Column(JSON, nullable=True)
    dropoff_location = Column(JSON, nullable=True)
    items = Column(JSON, nullable=False, default=list)
    
    # Pricing
    subtotal = Column(Float, nullable=False, default=0)
    delivery_fee = Column(Float, nullable=False, default=0)
    total = Column(Float, nullable=False, default=0)
    
    customer_notes = Column(Text, nullable=True)
    timeline = Column(JSON, nullable=False, default=list)
    
    version = Column(Integer, nullable=False)
    
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
    
    __mapper_args__ = {"version_id_col": version}
    
    def __repr__(self):
        return f"<Order(id={self.id}, company_id={self.company_id}, status='{self.status.value}')>"
