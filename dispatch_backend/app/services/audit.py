"""
Audit trail for logins and dispatch actions.

Dispatch-side records join the caller's transaction, so a status change
and the row describing it are committed (or rolled back) together. Login
records commit on their own because there is nothing else to commit.
"""

from typing import Optional, Dict, Any
from sqlalchemy.ext.asyncio import AsyncSession
from dispatch_backend.app.models.audit_log import AuditLog


class AuditAction:
    """Values stored in ``AuditLog.action``."""
    LOGIN_SUCCESS = "LOGIN_SUCCESS"
    LOGIN_FAILED = "LOGIN_FAILED"
    LOGOUT = "LOGOUT"
    
    DRIVER_ASSIGNED = "DRIVER_ASSIGNED"
    TRIP_OFFERED = "TRIP_OFFERED"
    TRIP_ACCEPTED = "TRIP_ACCEPTED"
    TRIP_DECLINED = "TRIP_DECLINED"
    ORDER_STATUS_CHANGED = "ORDER_STATUS_CHANGED"
    TRIP_STATUS_CHANGED = "TRIP_STATUS_CHANGED"
    DRIVER_PRESENCE_CHANGED = "DRIVER_PRESENCE_CHANGED"
    DELIVERY_CONFIRMED = "DELIVERY_CONFIRMED"


async def log_event(
    db: AsyncSession,
    action: str,
    actor_id: Optional[int] = None,
    actor_username: Optional[str] = None,
    target_user_id: Optional[int] = None,
    target_username: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
    ip_address: Optional[str] = None
) -> AuditLog:
    """
    Stage an audit row in ``db`` without flushing.

    Versioned rows changed by the same unit of work are only written at
    commit, where a concurrent change surfaces as a conflict.
    """
    entry = AuditLog(
        actor_id=actor_id,
        actor_username=actor_username,
        action=action,
        target_user_id=target_user_id,
        target_username=target_username,
        meta_data=metadata,
        ip_address=ip_address
    )
    db.add(entry)
    return entry


async def log_auth_event(
    db: AsyncSession,
    action: str,
    user_id: Optional[int],
    username: Optional[str],
    ip_address: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None
) -> AuditLog:
    """Record a login, failed login or logout and commit it immediately."""
    entry = await log_event(
        db=db,
        action=action,
        actor_id=user_id,
        actor_username=username,
        ip_address=ip_address,
        metadata=metadata
    )
    await db.commit()
    return entry
