"""
Audit log model.

One row per login attempt, logout, dispatch, order or trip status change,
driver presence change and delivery confirmation. Actions are the
``AuditAction`` constants in ``services/audit.py``.
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON
from sqlalchemy.sql import func
from dispatch_backend.app.db.session import Base


class AuditLog(Base):
    __tablename__ = "audit_logs"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    
    # None for failed logins of unknown users
    actor_id = Column(Integer, index=True, nullable=True)
    actor_username = Column(String(100), nullable=True)
    
    action = Column(String(100), nullable=False, index=True)
    
    # Driver for dispatches, customer for status changes and deliveries
    target_user_id = Column(Integer, index=True, nullable=True)
    target_username = Column(String(100), nullable=True)
    
    # order_id, trip_id, from/to statuses, failure reasons
    meta_data = Column(JSON, nullable=True)
    ip_address = Column(String(50), nullable=True)
    
    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
    
    def __repr__(self):
        return f"<AuditLog(id={self.id}, action='{self.action}', actor={self.actor_id})>"
