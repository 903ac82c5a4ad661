"""
Persisted in-app notifications.

These rows are the durable record of what a user was told; the
``notification:new`` push is only a latency shortcut on top of them.
"""

import enum

from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, ForeignKey, JSON, Enum, Index
from sqlalchemy.sql import func
from dispatch_backend.app.db.session import Base
from dispatch_backend.app.models.enums import enum_values


class NotificationType(str, enum.Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ORDER_UPDATE = "order_update"  # dispatch and order status changes
    TRIP_UPDATE = "trip_update"  # trip start, cancellation and delivery


class Notification(Base):
    __tablename__ = "notifications"
    __table_args__ = (
        # Inbox and unread badge queries
        Index("ix_notifications_user_unread", "user_id", "is_read"),
    )
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    
    type = Column(Enum(NotificationType, values_callable=enum_values), default=NotificationType.INFO, nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    action_url = Column(String(255), nullable=True)
    # order_id / trip_id the notification refers to
    metadata_payload = Column(JSON, nullable=True)
    
    is_read = Column(Boolean, default=False, nullable=False)
    read_at = Column(DateTime(timezone=True), nullable=True)
    
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    
    def __repr__(self):
        return f"<Notification(id={self.id}, user={self.user_id}, type='{self.type}')>"
