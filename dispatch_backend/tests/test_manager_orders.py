"""
Tests for the manager order views and manager-driven status changes.
"""

import pytest

from dispatch_backend.app.models.enums import DriverStatus, UserRole
from dispatch_backend.app.models.order import Order
from dispatch_backend.app.models.order_enums import OrderStatus, PaymentStatus
from dispatch_backend.app.models.payment import Payment
from dispatch_backend.app.models.trip import Trip
from dispatch_backend.app.models.trip_enums import TripStatus
from dispatch_backend.app.models.user import User
from dispatch_backend.app.services.dispatch import assign_driver_to_order


@pytest.mark.asyncio
async def test_list_orders_in_shop_scope(client, factory, tenant, auth_headers):
    other_shop = await factory.shop(tenant["company"])
    await factory.order(tenant["company"], tenant["customer"], shop=other_shop)
    other_company = await factory.company("Other")
    await factory.order(other_company, tenant["customer"])

    response = await client.get("/v1/manager/orders", headers=await auth_headers(tenant["manager"]))

    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 1
    assert data["total_pages"] == 1
    assert data["orders"][0]["id"] == tenant["order"].id
    assert data["orders"][0]["customer"]["name"] == tenant["customer"].name
    assert data["orders"][0]["driver"] is None

    company_account = await factory.user(UserRole.COMPANY, company=tenant["company"])
    response = await client.get("/v1/manager/orders", headers=await auth_headers(company_account))
    assert response.json()["total"] == 2


@pytest.mark.asyncio
async def test_list_orders_newest_first_and_paged(client, factory, tenant, auth_headers):
    newer = await factory.order(tenant["company"], tenant["customer"], shop=tenant["shop"])
    headers = await auth_headers(tenant["manager"])

    response = await client.get("/v1/manager/orders", params={"limit": 1}, headers=headers)
    data = response.json()
    assert data["total"] == 2
    assert data["total_pages"] == 2
    assert [o["id"] for o in data["orders"]] == [newer.id]

    response = await client.get("/v1/manager/orders", params={"limit": 1, "page": 2}, headers=headers)
    assert [o["id"] for o in response.json()["orders"]] == [tenant["order"].id]


@pytest.mark.asyncio
async def test_list_orders_status_filter(client, factory, tenant, auth_headers):
    delivered = await factory.order(tenant["company"], tenant["customer"], shop=tenant["shop"], status=OrderStatus.DELIVERED)
    cancelled = await factory.order(tenant["company"], tenant["customer"], shop=tenant["shop"], status=OrderStatus.CANCELLED)
    headers = await auth_headers(tenant["manager"])

    response = await client.get("/v1/manager/orders", params={"status": "delivered, CANCELLED"}, headers=headers)
    assert sorted(o["id"] for o in response.json()["orders"]) == sorted([delivered.id, cancelled.id])

    response = await client.get("/v1/manager/orders", params={"status": "lost"}, headers=headers)
    assert response.status_code == 400
    assert response.json()["error_code"] == "ERR_BAD_REQUEST"


@pytest.mark.asyncio
async def test_list_orders_search(client, db_session, factory, tenant, notifier, acting, auth_headers):
    alice = await factory.user(UserRole.CUSTOMER, name="Alice Walker")
    alice_order = await factory.order(tenant["company"], alice, shop=tenant["shop"])
    await assign_driver_to_order(
        db_session, tenant["order"].id, tenant["driver"].id, acting(tenant["manager"]), notifier
    )
    headers = await auth_headers(tenant["manager"])

    async def search(term):
        response = await client.get("/v1/manager/orders", params={"search": term}, headers=headers)
        return [o["id"] for o in response.json()["orders"]]

    assert await search("alice") == [alice_order.id]
    assert await search(alice.phone) == [alice_order.id]
    assert await search(tenant["driver"].name.upper()) == [tenant["order"].id]
    assert sorted(await search("park ave")) == sorted([tenant["order"].id, alice_order.id])
    assert await search("nowhere") == []


@pytest.mark.asyncio
async def test_list_orders_search_treats_wildcards_literally(client, factory, tenant, auth_headers):
    grocer = await factory.user(UserRole.CUSTOMER, name="Fresh_Foods 100%")
    grocer_order = await factory.order(tenant["company"], grocer, shop=tenant["shop"])
    headers = await auth_headers(tenant["manager"])

    async def search(term):
        response = await client.get("/v1/manager/orders", params={"search": term}, headers=headers)
        return [o["id"] for o in response.json()["orders"]]

    assert await search("_") == [grocer_order.id]
    assert await search("%") == [grocer_order.id]
    assert await search("h_f") == [grocer_order.id]
    assert await search("fresh%100") == []


@pytest.mark.asyncio
async def test_order_details_with_trip_and_payment(client, db_session, tenant, notifier, acting, auth_headers):
    result = await assign_driver_to_order(
        db_session, tenant["order"].id, tenant["driver"].id, acting(tenant["manager"]), notifier
    )
    db_session.add(Payment(
        company_id=tenant["company"].id,
        trip_id=result.trip.id,
        order_id=tenant["order"].id,
        customer_id=tenant["customer"].id,
        driver_id=tenant["driver"].id,
        amount=27.0,
        status=PaymentStatus.PAID,
    ))
    await db_session.commit()

    response = await client.get(
        f"/v1/manager/orders/{tenant['order'].id}", headers=await auth_headers(tenant["manager"])
    )

    assert response.status_code == 200
    data = response.json()
    assert data["order"]["status"] == "assigned"
    assert data["trip"]["id"] == result.trip.id
    assert data["trip"]["confirmation_code"] == result.confirmation_code
    assert data["payment"]["status"] == "paid"
    assert data["payment"]["amount"] == 27.0


@pytest.mark.asyncio
async def test_order_details_before_dispatch(client, tenant, auth_headers):
    response = await client.get(
        f"/v1/manager/orders/{tenant['order'].id}", headers=await auth_headers(tenant["manager"])
    )
    assert response.json()["trip"] is None
    assert response.json()["payment"] is None


@pytest.mark.asyncio
async def test_order_details_out_of_scope(client, factory, tenant, auth_headers):
    other_shop = await factory.shop(tenant["company"])
    order = await factory.order(tenant["company"], tenant["customer"], shop=other_shop)
    headers = await auth_headers(tenant["manager"])

    response = await client.get(f"/v1/manager/orders/{order.id}", headers=headers)
    assert response.status_code == 403
    assert response.json()["error_code"] == "ERR_SCOPE_002"

    response = await client.get("/v1/manager/orders/9999", headers=headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_order_timeline(client, db_session, tenant, notifier, acting, auth_headers):
    await assign_driver_to_order(
        db_session, tenant["order"].id, tenant["driver"].id, acting(tenant["manager"]), notifier
    )

    response = await client.get(
        f"/v1/manager/orders/{tenant['order'].id}/timeline", headers=await auth_headers(tenant["manager"])
    )

    data = response.json()
    assert data["current_status"] == "assigned"
    assert [entry["action"] for entry in data["timeline"]] == ["assigned_driver"]
    assert data["timeline"][0]["meta"]["driverId"] == tenant["driver"].id


@pytest.mark.asyncio
async def test_complete_delivered_order(client, factory, tenant, auth_headers, fetch):
    order = await factory.order(tenant["company"], tenant["customer"], shop=tenant["shop"], status=OrderStatus.DELIVERED)

    response = await client.patch(
        f"/v1/manager/orders/{order.id}/status",
        json={"status": "completed", "note": "paid in cash"},
        headers=await auth_headers(tenant["manager"])
    )

    assert response.status_code == 200
    assert response.json()["order"]["status"] == "completed"
    entry = (await fetch(Order, order.id)).timeline[-1]
    assert entry["action"] == "status_changed"
    assert entry["meta"] == {"by": tenant["manager"].id, "from": "delivered", "to": "completed", "note": "paid in cash"}


@pytest.mark.asyncio
async def test_complete_requires_delivery(client, tenant, auth_headers):
    response = await client.patch(
        f"/v1/manager/orders/{tenant['order'].id}/status",
        json={"status": "completed"},
        headers=await auth_headers(tenant["manager"])
    )
    assert response.status_code == 400
    assert response.json()["error_code"] == "ERR_STATE_001"


@pytest.mark.asyncio
async def test_cancel_dispatched_order(client, db_session, tenant, notifier, acting, auth_headers, socket_factory, fetch):
    result = await assign_driver_to_order(
        db_session, tenant["order"].id, tenant["driver"].id, acting(tenant["manager"]), notifier
    )
    driver_socket = socket_factory()
    await notifier.connect(tenant["driver"].id, driver_socket)

    response = await client.patch(
        f"/v1/manager/orders/{tenant['order'].id}/status",
        json={"status": "cancelled"},
        headers=await auth_headers(tenant["manager"])
    )

    assert response.status_code == 200
    assert (await fetch(Trip, result.trip.id)).status == TripStatus.CANCELLED
    assert (await fetch(User, tenant["driver"].id)).driver_status == DriverStatus.ONLINE

    events = [message["event"] for message in driver_socket.sent]
    assert events == ["order:status_update", "trip:status_update", "notification:new"]


@pytest.mark.asyncio
async def test_cancelled_order_cannot_be_dispatched(client, tenant, auth_headers):
    headers = await auth_headers(tenant["manager"])
    await client.patch(f"/v1/manager/orders/{tenant['order'].id}/status", json={"status": "cancelled"}, headers=headers)

    response = await client.patch(
        f"/v1/manager/orders/{tenant['order'].id}/assign-driver",
        json={"driverId": tenant["driver"].id},
        headers=headers
    )
    assert response.status_code == 400
    assert response.json()["error"] == "Order is already cancelled"


@pytest.mark.asyncio
async def test_manager_routes_need_manager_role(client, tenant, auth_headers):
    for user in (tenant["driver"], tenant["customer"]):
        response = await client.get("/v1/manager/orders", headers=await auth_headers(user))
        assert response.status_code == 403
