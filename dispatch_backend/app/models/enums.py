"""
Enumerations for the delivery dispatch system.

Roles and status values are closed sets; string values are the ones stored
in the database and exchanged with clients.
"""

import enum


def enum_values(enum_cls):
    """Persist enum values (not member names) in SQLAlchemy ``Enum`` columns."""
    return [member.value for member in enum_cls]


class UserRole(str, enum.Enum):
    """
    User role enumeration.
    
    Roles:
        OWNER: System owner, platform-wide configuration
        COMPANY: Company account, owns shops, drivers and vehicles
        MANAGER: Company manager, optionally confined to one shop
        DRIVER: Delivers orders
        CUSTOMER: Places orders and confirms deliveries
    """
    OWNER = "owner"
    COMPANY = "company"
    MANAGER = "manager"
    DRIVER = "driver"
    CUSTOMER = "customer"


class DriverStatus(str, enum.Enum):
    """Runtime availability state of a driver."""
    OFFLINE = "offline"
    ONLINE = "online"
    WAITING = "waiting"
    ON_TRIP = "on_trip"
    BUSY = "busy"
    DELIVERING = "delivering"
    IN_PROGRESS = "in_progress"


class VehicleStatus(str, enum.Enum):
    """Vehicle status enumeration."""
    ACTIVE = "active"
    AVAILABLE = "available"
    IN_USE = "in_use"
    MAINTENANCE = "maintenance"
