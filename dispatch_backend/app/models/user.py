"""
User database model.

Drivers, customers, managers, company accounts and the system owner are all
users; ``role`` decides which fields are meaningful.
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Enum, Float, ForeignKey
from sqlalchemy.sql import func
from dispatch_backend.app.db.session import Base
from dispatch_backend.app.models.enums import UserRole, DriverStatus, enum_values


class User(Base):
    """
    User model for authentication, tenancy and driver runtime state.
    
    ``version`` is an optimistic concurrency counter: two writers that loaded
    the same driver cannot both commit a status change.
    """
    __tablename__ = "users"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(150), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    username = Column(String(100), unique=True, index=True, nullable=False)
    phone = Column(String(50), unique=True, nullable=True)
    hashed_password = Column(String(255), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    
    role = Column(Enum(UserRole, values_callable=enum_values), nullable=False, index=True)
    
    # Tenancy - company / shop the user belongs to
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=True, index=True)
    shop_id = Column(Integer, ForeignKey("shops.id"), nullable=True, index=True)
    
    # Driver runtime state
    driver_status = Column(
        Enum(DriverStatus, values_callable=enum_values),
        default=DriverStatus.OFFLINE,
        nullable=False,
        index=True
    )
    last_status_at = Column(DateTime(timezone=True), nullable=True)
    current_lat = Column(Float, nullable=True)
    current_lng = Column(Float, nullable=True)
    
    version = Column(Integer, nullable=False)
    
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
    
    __mapper_args__ = {"version_id_col": version}
    
    def __repr__(self):
        return f"<User(id={self.id}, username='{self.username}', role='{self.role.value}')>"
