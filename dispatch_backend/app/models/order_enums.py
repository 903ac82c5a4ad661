"""
Order-related enumerations.
"""

import enum


class OrderStatus(str, enum.Enum):
    """Order status enumeration."""
    PENDING = "pending"  # Placed by customer, no driver yet
    ASSIGNED = "assigned"  # Driver dispatched
    IN_PROGRESS = "in_progress"  # Driver started the trip
    DELIVERED = "delivered"  # Delivery confirmed by QR scan
    COMPLETED = "completed"  # Closed by the company
    CANCELLED = "cancelled"


class PaymentStatus(str, enum.Enum):
    """Payment status enumeration (trip and payment records)."""
    UNPAID = "unpaid"
    PENDING = "pending"
    PAID = "paid"
    REFUNDED = "refunded"
