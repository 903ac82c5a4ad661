"""
Real-time WebSocket endpoint.

Clients connect to ``/ws?token=<jwt>``; the token's session must be active
and the account must still be enabled.
Each connection is registered on the user's channel and receives versioned
event envelopes until it disconnects.
"""

import json
import logging

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect, status
from sqlalchemy.ext.asyncio import AsyncSession

from dispatch_backend.app.core.dependencies import authenticate_token, load_active_user
from dispatch_backend.app.core.exceptions import AppException
from dispatch_backend.app.db.session import get_db
from dispatch_backend.app.schemas.realtime import ENVELOPE_VERSION
from dispatch_backend.app.services.realtime import ConnectionManager, get_notifier

logger = logging.getLogger("dispatch.realtime")

router = APIRouter(tags=["Realtime"])


@router.websocket("/ws")
async def realtime_socket(
    websocket: WebSocket,
    token: str = Query(""),
    notifier: ConnectionManager = Depends(get_notifier),
    db: AsyncSession = Depends(get_db)
):
    try:
        payload = await authenticate_token(token)
        await load_active_user(db, payload["user_id"])
    except AppException as e:
        logger.info("Rejected WebSocket connection: %s", e.message)
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    # The socket may stay open for hours; do not hold a connection for it
    await db.close()

    user_id = payload["user_id"]
    await websocket.accept()
    channel = await notifier.connect(user_id, websocket)
    logger.info("User %s connected on %s", user_id, channel)

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
            except ValueError:
                continue
            if isinstance(message, dict) and message.get("event") == "ping":
                await websocket.send_json({"event": "pong", "version": ENVELOPE_VERSION})
    except WebSocketDisconnect:
        pass
    finally:
        await notifier.disconnect(user_id, websocket)
        logger.info("User %s disconnected from %s", user_id, channel)
