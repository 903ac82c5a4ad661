"""
Real-time push envelope.
"""

import enum
from datetime import datetime, timezone
from pydantic import BaseModel, Field
from typing import Any, Dict


ENVELOPE_VERSION = 1


class RealtimeEvent(str, enum.Enum):
    """Every event name the server pushes."""
    ORDER_ASSIGNED = "order:assigned"
    ORDER_DRIVER_ASSIGNED = "order:driver_assigned"
    ORDER_STATUS_UPDATE = "order:status_update"
    TRIP_STATUS_UPDATE = "trip:status_update"
    TRIP_LOCATION_UPDATE = "trip:location_update"
    NOTIFICATION_NEW = "notification:new"
    SUPPORT_NEW = "support:new"
    CHAT_MANAGER_COMPANY = "chat:manager-company:newMessage"


class EventEnvelope(BaseModel):
    event: RealtimeEvent
    version: int = ENVELOPE_VERSION
    data: Dict[str, Any] = {}
    sent_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
