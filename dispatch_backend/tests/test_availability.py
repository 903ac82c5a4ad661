"""
Tests for the driver availability roster.
"""

import pytest

from dispatch_backend.app.core.guards import TenantScope
from dispatch_backend.app.models.enums import DriverStatus, UserRole
from dispatch_backend.app.models.user import User
from dispatch_backend.app.services.availability import (
    BUSY_DRIVER_STATUSES,
    is_driver_available,
    list_available_drivers,
)


@pytest.mark.parametrize("status", list(DriverStatus))
def test_availability_predicate(status):
    driver = User(role=UserRole.DRIVER, is_active=True, driver_status=status)
    assert is_driver_available(driver) == (status not in BUSY_DRIVER_STATUSES)


def test_inactive_or_non_driver_never_available():
    assert not is_driver_available(User(role=UserRole.DRIVER, is_active=False, driver_status=DriverStatus.ONLINE))
    assert not is_driver_available(User(role=UserRole.CUSTOMER, is_active=True, driver_status=DriverStatus.ONLINE))


@pytest.mark.asyncio
async def test_roster_excludes_busy_and_inactive(db_session, factory):
    company = await factory.company()
    free = {}
    for status in (DriverStatus.OFFLINE, DriverStatus.ONLINE, DriverStatus.WAITING):
        free[status] = await factory.user(UserRole.DRIVER, company=company, driver_status=status)
    for status in BUSY_DRIVER_STATUSES:
        await factory.user(UserRole.DRIVER, company=company, driver_status=status)
    await factory.user(UserRole.DRIVER, company=company, driver_status=DriverStatus.ONLINE, is_active=False)

    roster = await list_available_drivers(db_session, TenantScope(company_id=company.id))

    assert {d.id for d in roster} == {d.id for d in free.values()}
    assert all(d.driver_status in ("offline", "online", "waiting") for d in roster)


@pytest.mark.asyncio
async def test_roster_is_tenant_scoped(db_session, factory):
    company = await factory.company("A")
    other = await factory.company("B")
    shop_one = await factory.shop(company)
    shop_two = await factory.shop(company)
    in_one = await factory.user(UserRole.DRIVER, company=company, shop=shop_one)
    in_two = await factory.user(UserRole.DRIVER, company=company, shop=shop_two)
    await factory.user(UserRole.DRIVER, company=other)

    company_wide = await list_available_drivers(db_session, TenantScope(company_id=company.id))
    assert {d.id for d in company_wide} == {in_one.id, in_two.id}

    shop_only = await list_available_drivers(
        db_session, TenantScope(company_id=company.id, shop_id=shop_one.id)
    )
    assert [d.id for d in shop_only] == [in_one.id]


@pytest.mark.asyncio
async def test_roster_attaches_owned_vehicle(db_session, factory):
    company = await factory.company()
    with_vehicle = await factory.user(UserRole.DRIVER, company=company, name="Alice")
    without_vehicle = await factory.user(UserRole.DRIVER, company=company, name="Bob")
    vehicle = await factory.vehicle(with_vehicle, plate="ABC-123")

    roster = {d.id: d for d in await list_available_drivers(db_session, TenantScope(company_id=company.id))}

    assert roster[with_vehicle.id].vehicle.id == vehicle.id
    assert roster[with_vehicle.id].vehicle.plate_number == "ABC-123"
    assert roster[without_vehicle.id].vehicle is None


@pytest.mark.asyncio
async def test_available_drivers_endpoint(client, tenant, auth_headers):
    response = await client.get(
        "/v1/manager/orders/available-drivers",
        headers=await auth_headers(tenant["manager"])
    )
    assert response.status_code == 200
    data = response.json()
    assert data["ok"] is True
    assert [d["id"] for d in data["drivers"]] == [tenant["driver"].id]
    assert data["drivers"][0]["vehicle"]["plate_number"] == tenant["vehicle"].plate_number


@pytest.mark.asyncio
async def test_available_drivers_empty_without_company(client, factory, auth_headers):
    """A manager with no company sees an empty roster rather than an error."""
    manager = await factory.user(UserRole.MANAGER)
    response = await client.get(
        "/v1/manager/orders/available-drivers",
        headers=await auth_headers(manager)
    )
    assert response.status_code == 200
    assert response.json()["drivers"] == []
