"""
Notification Service.

Handles creation and read state of persistent notifications. Rows are
added to the caller's transaction; the caller commits and may push the
committed row to the user afterwards.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func
from datetime import datetime, timezone
from typing import Optional, Dict, Any, List

from dispatch_backend.app.models.notification import Notification, NotificationType
from dispatch_backend.app.schemas.notification import NotificationResponse
from dispatch_backend.app.schemas.realtime import RealtimeEvent
from dispatch_backend.app.services.realtime import ConnectionManager

logger = logging.getLogger("dispatch.notifications")


class NotificationService:
    
    @staticmethod
    async def create_notification(
        db: AsyncSession,
        user_id: int,
        title: str,
        message: str,
        type: NotificationType = NotificationType.INFO,
        metadata: Optional[Dict[str, Any]] = None,
        action_url: Optional[str] = None
    ) -> Notification:
        """Create a single notification."""
        notif = Notification(
            user_id=user_id,
            type=type,
            title=title,
            message=message,
            action_url=action_url,
            metadata_payload=metadata,
            created_at=datetime.now(timezone.utc)
        )
        db.add(notif)  # Caller commits
        return notif

    @staticmethod
    async def push(notifier: ConnectionManager, notif: Notification) -> int:
        """Push a committed notification on the user's channel. Never raises."""
        try:
            data = NotificationResponse.model_validate(notif).model_dump()
        except Exception as e:
            logger.debug("Could not serialize notification %s: %s", notif.id, e)
            return 0
        return await notifier.emit_to_user(notif.user_id, RealtimeEvent.NOTIFICATION_NEW, data)

    @staticmethod
    async def list_for_user(
        db: AsyncSession,
        user_id: int,
        unread_only: bool = False,
        limit: int = 50
    ) -> List[Notification]:
        query = select(Notification).where(Notification.user_id == user_id)
        if unread_only:
            query = query.where(Notification.is_read == False)
        query = query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit)
        result = await db.execute(query)
        return result.scalars().all()

    @staticmethod
    async def unread_count(db: AsyncSession, user_id: int) -> int:
        result = await db.execute(
            select(func.count(Notification.id)).where(
                Notification.user_id == user_id,
                Notification.is_read == False
            )
        )
        return result.scalar() or 0

    @staticmethod
    async def mark_read(db: AsyncSession, notification_id: int, user_id: int) -> bool:
        """Mark a notification as read."""
        stmt = update(Notification).where(
            Notification.id == notification_id,
            Notification.user_id == user_id
        ).values(
            is_read=True,
            read_at=datetime.now(timezone.utc)
        )
        result = await db.execute(stmt)
        return result.rowcount > 0

    @staticmethod
    async def mark_all_read(db: AsyncSession, user_id: int) -> int:
        """Mark all notifications for user as read."""
        stmt = update(Notification).where(
            Notification.user_id == user_id,
            Notification.is_read == False
        ).values(
            is_read=True,
            read_at=datetime.now(timezone.utc)
        )
        result = await db.execute(stmt)
        return result.rowcount
