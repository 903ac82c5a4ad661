"""
Driver availability.

A driver is available when the account is active, has the driver role and
its ``driver_status`` is not one of the busy states. Availability is always
read from the database; nothing is cached between calls.
"""

from datetime import datetime, timezone
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from dispatch_backend.app.core.guards import TenantScope
from dispatch_backend.app.models.enums import DriverStatus, UserRole
from dispatch_backend.app.models.user import User
from dispatch_backend.app.models.vehicle import Vehicle
from dispatch_backend.app.schemas.common import VehicleSummary
from dispatch_backend.app.schemas.dispatch import AvailableDriver


BUSY_DRIVER_STATUSES = frozenset({
    DriverStatus.ON_TRIP,
    DriverStatus.BUSY,
    DriverStatus.DELIVERING,
    DriverStatus.IN_PROGRESS,
})


def is_driver_available(driver: User) -> bool:
    """Availability predicate shared by the roster and the dispatch re-check."""
    return (
        driver.role == UserRole.DRIVER
        and driver.is_active
        and driver.driver_status not in BUSY_DRIVER_STATUSES
    )


async def get_driver_vehicle(db: AsyncSession, driver_id: int) -> Optional[Vehicle]:
    """Return the vehicle owned by a driver, if any."""
    result = await db.execute(
        select(Vehicle).where(Vehicle.driver_id == driver_id).order_by(Vehicle.id).limit(1)
    )
    return result.scalar_one_or_none()


async def list_available_drivers(db: AsyncSession, scope: TenantScope) -> List[AvailableDriver]:
    """
    List the available drivers of a company, narrowed to a shop if the
    scope carries one, each with the vehicle it owns (or None).
    """
    query = select(User).where(
        User.role == UserRole.DRIVER,
        User.company_id == scope.company_id,
        User.is_active == True,  # noqa: E712
        User.driver_status.notin_(BUSY_DRIVER_STATUSES),
    )
    if scope.shop_id is not None:
        query = query.where(User.shop_id == scope.shop_id)

    result = await db.execute(query.order_by(User.name, User.id))
    drivers = result.scalars().all()
    if not drivers:
        return []

    vehicles_result = await db.execute(
        select(Vehicle)
        .where(Vehicle.driver_id.in_([d.id for d in drivers]))
        .order_by(Vehicle.id)
    )
    vehicles: Dict[int, Vehicle] = {}
    for vehicle in vehicles_result.scalars().all():
        vehicles.setdefault(vehicle.driver_id, vehicle)

    roster = []
    for driver in drivers:
        vehicle = vehicles.get(driver.id)
        roster.append(AvailableDriver(
            id=driver.id,
            name=driver.name,
            phone=driver.phone,
            email=driver.email,
            shop_id=driver.shop_id,
            driver_status=driver.driver_status.value,
            current_lat=driver.current_lat,
            current_lng=driver.current_lng,
            vehicle=vehicle_summary(vehicle),
        ))
    return roster


def vehicle_summary(vehicle: Optional[Vehicle]) -> Optional[VehicleSummary]:
    if vehicle is None:
        return None
    return VehicleSummary(
        id=vehicle.id,
        plate_number=vehicle.plate_number,
        vehicle_type=vehicle.vehicle_type,
        brand=vehicle.brand,
        model=vehicle.model,
        status=vehicle.status.value,
    )


async def release_driver(db: AsyncSession, driver_id: Optional[int]) -> Optional[User]:
    """
    Put a driver back online after its trip ended. Runs inside the caller's
    transaction so the trip and the driver change commit together.
    """
    if driver_id is None:
        return None
    result = await db.execute(select(User).where(User.id == driver_id).with_for_update())
    driver = result.scalar_one_or_none()
    if driver is None:
        return None
    driver.driver_status = DriverStatus.ONLINE
    driver.last_status_at = datetime.now(timezone.utc)
    return driver
