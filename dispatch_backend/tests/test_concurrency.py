"""
Concurrency tests.

Orders, trips and users carry a version counter; a write based on a stale
read must be refused as a whole.
"""

import pytest
from sqlalchemy import select, func

from dispatch_backend.app.core.exceptions import ConcurrencyConflictError
from dispatch_backend.app.models.enums import DriverStatus
from dispatch_backend.app.models.order import Order
from dispatch_backend.app.models.order_enums import OrderStatus
from dispatch_backend.app.models.trip import Trip
from dispatch_backend.app.models.user import User
from dispatch_backend.app.services import dispatch as dispatch_service
from dispatch_backend.app.services.dispatch import assign_driver_to_order
from dispatch_backend.app.services.transactions import commit_or_conflict


def _race_on_driver(mocker, session_factory, driver_id):
    """Let another request take the driver right after the dispatcher has read it."""
    original = dispatch_service.get_driver_vehicle

    async def interleaved(db, requested_driver_id):
        async with session_factory() as other:
            driver = await other.get(User, driver_id)
            driver.driver_status = DriverStatus.ON_TRIP
            await other.commit()
        return await original(db, requested_driver_id)

    mocker.patch.object(dispatch_service, "get_driver_vehicle", side_effect=interleaved)


@pytest.mark.asyncio
async def test_stale_driver_aborts_assignment(db_session, tenant, notifier, acting, mocker, fetch, session_factory):
    # The rollback expires every instance held by db_session
    order_id, driver_id = tenant["order"].id, tenant["driver"].id
    manager = acting(tenant["manager"])
    _race_on_driver(mocker, session_factory, driver_id)

    with pytest.raises(ConcurrencyConflictError):
        await assign_driver_to_order(db_session, order_id, driver_id, manager, notifier)

    order = await fetch(Order, order_id)
    assert order.status == OrderStatus.PENDING
    assert order.driver_id is None
    assert order.timeline == []

    async with session_factory() as session:
        trips = (await session.execute(select(func.count(Trip.id)))).scalar()
    assert trips == 0


@pytest.mark.asyncio
async def test_conflict_http_shape(client, tenant, auth_headers, mocker, session_factory):
    _race_on_driver(mocker, session_factory, tenant["driver"].id)

    response = await client.patch(
        f"/v1/manager/orders/{tenant['order'].id}/assign-driver",
        json={"driverId": tenant["driver"].id},
        headers=await auth_headers(tenant["manager"])
    )

    assert response.status_code == 409
    assert response.json()["error_code"] == "ERR_CONFLICT_001"


@pytest.mark.asyncio
async def test_commit_or_conflict_on_stale_order(tenant, session_factory, fetch):
    order_id = tenant["order"].id
    async with session_factory() as first, session_factory() as second:
        mine = await first.get(Order, order_id)
        theirs = await second.get(Order, order_id)

        theirs.customer_notes = "leave at the door"
        await commit_or_conflict(second)

        mine.customer_notes = "ring twice"
        with pytest.raises(ConcurrencyConflictError):
            await commit_or_conflict(first)

    assert (await fetch(Order, order_id)).customer_notes == "leave at the door"


@pytest.mark.asyncio
async def test_version_increments_on_write(db_session, tenant, notifier, acting, fetch):
    before = (await fetch(Order, tenant["order"].id)).version

    await assign_driver_to_order(
        db_session, tenant["order"].id, tenant["driver"].id, acting(tenant["manager"]), notifier
    )

    assert (await fetch(Order, tenant["order"].id)).version == before + 1
