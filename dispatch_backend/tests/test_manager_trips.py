"""
Tests for the manager trip views and trip-level driver assignment.
"""

import pytest

from dispatch_backend.app.models.enums import DriverStatus, UserRole
from dispatch_backend.app.models.order_enums import PaymentStatus
from dispatch_backend.app.models.payment import Payment
from dispatch_backend.app.models.trip import Trip
from dispatch_backend.app.models.trip_enums import TripStatus
from dispatch_backend.app.models.user import User
from dispatch_backend.app.services.dispatch import assign_driver_to_order, offer_order


@pytest.fixture
async def dispatched(db_session, tenant, notifier, acting):
    return await assign_driver_to_order(
        db_session, tenant["order"].id, tenant["driver"].id, acting(tenant["manager"]), notifier
    )


@pytest.fixture
async def company_account(factory, tenant):
    return await factory.user(UserRole.COMPANY, company=tenant["company"])


@pytest.mark.asyncio
async def test_list_trips_in_shop_scope(client, db_session, factory, tenant, notifier, acting, auth_headers,
                                        dispatched, company_account):
    other_shop = await factory.shop(tenant["company"])
    other_order = await factory.order(tenant["company"], tenant["customer"], shop=other_shop)
    other_trip = await offer_order(db_session, other_order.id, acting(company_account), notifier)

    response = await client.get("/v1/manager/trips", headers=await auth_headers(tenant["manager"]))

    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 1
    trip = data["trips"][0]
    assert trip["id"] == dispatched.trip.id
    assert trip["driver"]["name"] == tenant["driver"].name
    assert trip["customer"]["name"] == tenant["customer"].name
    assert trip["vehicle"]["plate_number"] == tenant["vehicle"].plate_number

    response = await client.get("/v1/manager/trips", headers=await auth_headers(company_account))
    data = response.json()
    assert data["total"] == 2
    # Newest first
    assert [t["id"] for t in data["trips"]] == [other_trip.id, dispatched.trip.id]
    assert data["trips"][0]["driver"] is None


@pytest.mark.asyncio
async def test_list_trips_filters(client, factory, tenant, auth_headers, dispatched):
    headers = await auth_headers(tenant["manager"])

    response = await client.get("/v1/manager/trips", params={"status": "assigned"}, headers=headers)
    assert [t["id"] for t in response.json()["trips"]] == [dispatched.trip.id]

    response = await client.get("/v1/manager/trips", params={"status": "delivered,cancelled"}, headers=headers)
    assert response.json()["trips"] == []

    response = await client.get("/v1/manager/trips", params={"driverId": tenant["driver"].id}, headers=headers)
    assert response.json()["total"] == 1

    response = await client.get("/v1/manager/trips", params={"customerId": tenant["manager"].id}, headers=headers)
    assert response.json()["total"] == 0

    response = await client.get("/v1/manager/trips", params={"status": "bogus"}, headers=headers)
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_trip_summary_counts_every_status(client, db_session, factory, tenant, notifier, acting,
                                                auth_headers, dispatched):
    second = await factory.order(tenant["company"], tenant["customer"], shop=tenant["shop"])
    await offer_order(db_session, second.id, acting(tenant["manager"]), notifier)

    response = await client.get("/v1/manager/trips/summary", headers=await auth_headers(tenant["manager"]))

    assert response.status_code == 200
    assert response.json()["summary"] == {
        "pending": 1,
        "assigned": 1,
        "in_progress": 0,
        "delivered": 0,
        "cancelled": 0,
        "total": 2,
    }


@pytest.mark.asyncio
async def test_trip_details_with_payment(client, db_session, tenant, auth_headers, dispatched):
    db_session.add(Payment(
        company_id=tenant["company"].id,
        trip_id=dispatched.trip.id,
        order_id=tenant["order"].id,
        customer_id=tenant["customer"].id,
        driver_id=tenant["driver"].id,
        amount=27.0,
        status=PaymentStatus.PAID,
    ))
    await db_session.commit()

    response = await client.get(
        f"/v1/manager/trips/{dispatched.trip.id}", headers=await auth_headers(tenant["manager"])
    )

    assert response.status_code == 200
    data = response.json()
    assert data["trip"]["id"] == dispatched.trip.id
    assert data["trip"]["confirmation_code"] == dispatched.confirmation_code
    assert data["trip"]["driver"]["id"] == tenant["driver"].id
    assert data["payment"]["amount"] == 27.0


@pytest.mark.asyncio
async def test_trip_out_of_scope(client, db_session, factory, tenant, notifier, acting, auth_headers,
                                 company_account):
    other_shop = await factory.shop(tenant["company"])
    other_order = await factory.order(tenant["company"], tenant["customer"], shop=other_shop)
    other_trip = await offer_order(db_session, other_order.id, acting(company_account), notifier)
    headers = await auth_headers(tenant["manager"])

    response = await client.get(f"/v1/manager/trips/{other_trip.id}", headers=headers)
    assert response.status_code == 403
    assert response.json()["error_code"] == "ERR_SCOPE_002"

    response = await client.get("/v1/manager/trips/99999", headers=headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_trip_timeline(client, tenant, auth_headers, dispatched):
    response = await client.get(
        f"/v1/manager/trips/{dispatched.trip.id}/timeline", headers=await auth_headers(tenant["manager"])
    )

    assert response.status_code == 200
    data = response.json()
    assert data["trip_id"] == dispatched.trip.id
    assert data["order_id"] == tenant["order"].id
    assert data["status"] == "assigned"
    assert [e["action"] for e in data["timeline"]] == ["assigned_driver"]


@pytest.mark.asyncio
async def test_assign_driver_at_trip_level(client, factory, tenant, auth_headers, fetch, dispatched):
    replacement = await factory.user(
        UserRole.DRIVER, company=tenant["company"], shop=tenant["shop"], driver_status=DriverStatus.ONLINE
    )

    response = await client.patch(
        f"/v1/manager/trips/{dispatched.trip.id}/assign-driver",
        json={"driverId": replacement.id},
        headers=await auth_headers(tenant["manager"])
    )

    assert response.status_code == 200
    assert response.json()["trip_id"] == dispatched.trip.id
    trip = await fetch(Trip, dispatched.trip.id)
    assert trip.driver_id == replacement.id
    assert trip.status == TripStatus.ASSIGNED
    assert (await fetch(User, replacement.id)).driver_status == DriverStatus.ON_TRIP


@pytest.mark.asyncio
async def test_assign_driver_to_pending_trip(client, db_session, tenant, notifier, acting, auth_headers, fetch):
    trip = await offer_order(db_session, tenant["order"].id, acting(tenant["manager"]), notifier)
    trip_id = trip.id

    response = await client.patch(
        f"/v1/manager/trips/{trip_id}/assign-driver",
        json={"driverId": tenant["driver"].id},
        headers=await auth_headers(tenant["manager"])
    )

    assert response.status_code == 200
    stored = await fetch(Trip, trip_id)
    assert stored.status == TripStatus.ASSIGNED
    assert stored.driver_id == tenant["driver"].id


@pytest.mark.asyncio
async def test_assign_driver_to_cancelled_trip_rejected(client, tenant, auth_headers, dispatched):
    headers = await auth_headers(tenant["manager"])
    await client.patch(
        f"/v1/manager/orders/{tenant['order'].id}/status", json={"status": "cancelled"}, headers=headers
    )

    response = await client.patch(
        f"/v1/manager/trips/{dispatched.trip.id}/assign-driver",
        json={"driverId": tenant["driver"].id},
        headers=headers
    )

    assert response.status_code == 400
    assert response.json()["error"] == "Cannot change driver for a cancelled trip"


@pytest.mark.asyncio
async def test_manager_trip_routes_need_manager_role(client, tenant, auth_headers):
    for user in (tenant["driver"], tenant["customer"]):
        response = await client.get("/v1/manager/trips", headers=await auth_headers(user))
        assert response.status_code == 403
