"""
Trip-related enumerations.
"""

import enum


class TripStatus(str, enum.Enum):
    """Trip status enumeration."""
    PENDING = "pending"  # Created without a driver
    ASSIGNED = "assigned"  # Driver assigned, not started
    IN_PROGRESS = "in_progress"  # Driver has started
    DELIVERED = "delivered"  # Customer QR scanned by the driver
    CANCELLED = "cancelled"  # Trip cancelled


class LiveStatus:
    """Default human-readable phase strings shown to customers."""
    AWAITING_DRIVER = "Waiting for a driver"
    DRIVER_ASSIGNED = "Driver Assigned"
    ON_THE_WAY = "On the way to customer"
    DELIVERED = "Delivered"
    CANCELLED = "Trip cancelled"
