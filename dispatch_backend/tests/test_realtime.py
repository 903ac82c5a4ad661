"""
Tests for the real-time notifier and the WebSocket endpoint.
"""

import pytest
from fastapi import WebSocketDisconnect
from fastapi.testclient import TestClient

from dispatch_backend.app.core.jwt import create_access_token
from dispatch_backend.app.main import app
from dispatch_backend.app.schemas.realtime import RealtimeEvent
from dispatch_backend.app.services.realtime import ConnectionManager, user_channel


def test_user_channel_name():
    assert user_channel(42) == "user:42"


@pytest.mark.asyncio
async def test_emit_reaches_every_socket_of_user(socket_factory):
    manager = ConnectionManager()
    phone, tablet, other = socket_factory(), socket_factory(), socket_factory()
    await manager.connect(1, phone)
    await manager.connect(1, tablet)
    await manager.connect(2, other)

    delivered = await manager.emit_to_user(1, RealtimeEvent.ORDER_ASSIGNED, {"orderId": 9})

    assert delivered == 2
    assert len(phone.sent) == len(tablet.sent) == 1
    assert other.sent == []

    envelope = phone.sent[0]
    assert envelope["event"] == "order:assigned"
    assert envelope["version"] == 1
    assert envelope["data"] == {"orderId": 9}
    assert isinstance(envelope["sent_at"], str)


@pytest.mark.asyncio
async def test_emit_to_offline_user_is_noop():
    manager = ConnectionManager()
    assert await manager.emit_to_user(5, RealtimeEvent.NOTIFICATION_NEW, {}) == 0
    assert await manager.emit_to_user(None, RealtimeEvent.NOTIFICATION_NEW, {}) == 0


@pytest.mark.asyncio
async def test_dead_socket_is_dropped(socket_factory):
    manager = ConnectionManager()
    healthy, dead = socket_factory(), socket_factory(fail=True)
    await manager.connect(1, healthy)
    await manager.connect(1, dead)

    delivered = await manager.emit_to_user(1, RealtimeEvent.TRIP_STATUS_UPDATE, {"tripId": 1})

    assert delivered == 1
    assert manager.connection_count(1) == 1
    assert len(healthy.sent) == 1


@pytest.mark.asyncio
async def test_disconnect_removes_channel(socket_factory):
    manager = ConnectionManager()
    socket = socket_factory()
    await manager.connect(3, socket)
    await manager.disconnect(3, socket)
    await manager.disconnect(3, socket)

    assert manager.connection_count(3) == 0
    assert await manager.emit_to_user(3, RealtimeEvent.ORDER_STATUS_UPDATE, {}) == 0


@pytest.mark.asyncio
async def test_unserializable_payload_is_swallowed(socket_factory):
    manager = ConnectionManager()
    socket = socket_factory()
    await manager.connect(1, socket)

    assert await manager.emit_to_user(1, RealtimeEvent.SUPPORT_NEW, {"bad": object()}) == 0
    assert socket.sent == []


def test_websocket_rejects_bad_token():
    client = TestClient(app)
    with pytest.raises(WebSocketDisconnect) as exc_info:
        with client.websocket_connect("/v1/ws?token=not-a-jwt") as websocket:
            websocket.receive_json()
    assert exc_info.value.code == 1008


def test_websocket_rejects_token_without_session():
    token = create_access_token(data={"sub": "ghost", "user_id": 999, "role": "driver", "sid": "missing"})
    client = TestClient(app)
    with pytest.raises(WebSocketDisconnect) as exc_info:
        with client.websocket_connect(f"/v1/ws?token={token}") as websocket:
            websocket.receive_json()
    assert exc_info.value.code == 1008


@pytest.mark.asyncio
async def test_websocket_ping_pong(tenant, auth_headers, notifier):
    headers = await auth_headers(tenant["driver"])
    token = headers["Authorization"].split(" ", 1)[1]

    client = TestClient(app)
    with client.websocket_connect(f"/v1/ws?token={token}") as websocket:
        websocket.send_text("not json")
        websocket.send_json({"event": "ping"})
        assert websocket.receive_json() == {"event": "pong", "version": 1}
        assert notifier.connection_count(tenant["driver"].id) == 1

    assert notifier.connection_count(tenant["driver"].id) == 0


@pytest.mark.asyncio
async def test_websocket_rejects_deactivated_account(db_session, tenant, auth_headers, notifier):
    headers = await auth_headers(tenant["driver"])
    token = headers["Authorization"].split(" ", 1)[1]
    driver_id = tenant["driver"].id
    tenant["driver"].is_active = False
    await db_session.commit()

    client = TestClient(app)
    with pytest.raises(WebSocketDisconnect) as exc_info:
        with client.websocket_connect(f"/v1/ws?token={token}") as websocket:
            websocket.receive_json()
    assert exc_info.value.code == 1008
    assert notifier.connection_count(driver_id) == 0
