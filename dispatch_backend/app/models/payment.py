"""
Payment database model.

Payments are recorded outside the dispatch workflow; the manager order
view reads the latest payment linked to an order's trip.
"""

from sqlalchemy import Column, Integer, Float, String, DateTime, ForeignKey, Enum
from sqlalchemy.sql import func
from dispatch_backend.app.db.session import Base
from dispatch_backend.app.models.enums import enum_values
from dispatch_backend.app.models.order_enums import PaymentStatus


class Payment(Base):
    """Payment for a delivered trip."""
    __tablename__ = "payments"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    trip_id = Column(Integer, ForeignKey("trips.id"), nullable=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=True, index=True)
    customer_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    driver_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    
    amount = Column(Float, nullable=False)
    method = Column(String(30), nullable=False, default="cash")
    status = Column(
        Enum(PaymentStatus, values_callable=enum_values),
        default=PaymentStatus.PENDING,
        nullable=False
    )
    paid_at = Column(DateTime(timezone=True), nullable=True)
    
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    
    def __repr__(self):
        return f"<Payment(id={self.id}, trip_id={self.trip_id}, amount={self.amount})>"
