"""
Session records stored in Redis.

Every issued JWT carries a session id (``sid``). A request is only accepted
while ``session:<sid>`` exists and points at the token's user, so logging out
(or deleting the key) invalidates the token before it expires.
"""

import logging
import uuid
from typing import Optional

from dispatch_backend.app.core import redis_client as redis_client_module
from dispatch_backend.app.core.config import settings
from dispatch_backend.app.core.exceptions import AuthenticationError

logger = logging.getLogger("dispatch.sessions")

# Redis key prefix for session records
SESSION_PREFIX = "session:"


def _session_key(session_id: str) -> str:
    return f"{SESSION_PREFIX}{session_id}"


async def create_session(user_id: int) -> str:
    """
    Create a session record for a user.
    
    Args:
        user_id: User the session belongs to
        
    Returns:
        The new session id
    """
    redis = await redis_client_module.get_redis()
    session_id = uuid.uuid4().hex
    ttl_seconds = settings.session_ttl_minutes * 60
    await redis.setex(_session_key(session_id), ttl_seconds, str(user_id))
    return session_id


async def is_session_active(session_id: Optional[str], user_id: int) -> bool:
    """
    Check that a session record exists and belongs to ``user_id``.
    
    Fails closed: if Redis cannot be reached the session is treated as
    unverifiable and the request is rejected.
    
    Raises:
        AuthenticationError: If the session store is unavailable
    """
    if not session_id:
        return False
    
    try:
        redis = await redis_client_module.get_redis()
        owner = await redis.get(_session_key(session_id))
    except Exception as e:
        logger.error("Session store unavailable: %s", e)
        raise AuthenticationError("Session could not be verified")
    
    if owner is None:
        return False
    if isinstance(owner, bytes):
        owner = owner.decode("utf-8")
    return owner == str(user_id)


async def revoke_session(session_id: str) -> bool:
    """
    Delete a session record (logout).
    
    Returns:
        True if a record was removed, False otherwise
    """
    try:
        redis = await redis_client_module.get_redis()
        removed = await redis.delete(_session_key(session_id))
        return removed > 0
    except Exception as e:
        logger.error("Error revoking session %s: %s", session_id, e)
        return False
