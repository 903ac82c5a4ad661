"""
Real-time notifier.

Each authenticated WebSocket is registered on exactly one channel,
``user:<id>``. Pushes are best-effort and at-most-once: nothing is queued
for offline users and a failed send never reaches the caller. Every state
change is persisted first, so a client can always recover by refetching.
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import WebSocket
from fastapi.encoders import jsonable_encoder

from dispatch_backend.app.schemas.realtime import EventEnvelope, RealtimeEvent

logger = logging.getLogger("dispatch.realtime")


def user_channel(user_id: int) -> str:
    return f"user:{user_id}"


class ConnectionManager:
    """Tracks open WebSockets per user channel."""

    def __init__(self):
        # channel -> open sockets
        self._channels: Dict[str, List[WebSocket]] = {}

    async def connect(self, user_id: int, websocket: WebSocket) -> str:
        channel = user_channel(user_id)
        self._channels.setdefault(channel, []).append(websocket)
        logger.debug("Registered socket on %s", channel)
        return channel

    async def disconnect(self, user_id: int, websocket: WebSocket) -> None:
        channel = user_channel(user_id)
        sockets = self._channels.get(channel)
        if sockets is None:
            return
        remaining = [s for s in sockets if s is not websocket]
        if remaining:
            self._channels[channel] = remaining
        else:
            del self._channels[channel]

    def connection_count(self, user_id: int) -> int:
        return len(self._channels.get(user_channel(user_id), ()))

    async def emit_to_user(
        self,
        user_id: Optional[int],
        event: RealtimeEvent,
        data: Dict[str, Any]
    ) -> int:
        """
        Push an event to every socket of a user.

        Returns:
            Number of sockets the envelope was written to (0 if offline)
        """
        if user_id is None:
            return 0
        try:
            envelope = jsonable_encoder(EventEnvelope(event=event, data=data))
            sockets = list(self._channels.get(user_channel(user_id), ()))
        except Exception as e:
            logger.debug("Could not build %s push for user %s: %s", event, user_id, e)
            return 0

        delivered = 0
        for websocket in sockets:
            try:
                await websocket.send_json(envelope)
                delivered += 1
            except Exception as e:
                logger.debug("Dropping dead socket for user %s: %s", user_id, e)
                await self.disconnect(user_id, websocket)
        return delivered


notifier = ConnectionManager()


def get_notifier() -> ConnectionManager:
    """FastAPI dependency returning the process-wide notifier."""
    return notifier
