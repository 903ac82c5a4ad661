"""
Authentication dependencies for FastAPI.

This module provides dependencies for protecting routes with JWT + session authentication.
"""

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from dispatch_backend.app.core.jwt import decode_access_token
from dispatch_backend.app.core.session_store import is_session_active
from dispatch_backend.app.core.exceptions import AuthenticationError, ForbiddenError
from dispatch_backend.app.db.session import get_db
from dispatch_backend.app.models.user import User

# HTTP Bearer security scheme
security = HTTPBearer(auto_error=False)


async def authenticate_token(token: str) -> dict:
    """
    Validate a bearer token and its session record.
    
    Shared by HTTP requests and WebSocket connections.
    
    Raises:
        AuthenticationError: If the token is invalid or its session is gone
    """
    # 1. Decode and validate JWT
    payload = decode_access_token(token)
    if payload is None:
        raise AuthenticationError("Could not validate credentials")
    
    user_id = payload.get("user_id")
    if not user_id:
        raise AuthenticationError("Invalid token payload")
    
    # 2. The session this token was issued for must still be active
    if not await is_session_active(payload.get("sid"), user_id):
        raise AuthenticationError("Session expired or revoked")
    
    return payload


async def load_active_user(db: AsyncSession, user_id: int) -> User:
    """
    Reload the account behind a token.
    
    Raises:
        AuthenticationError: If the user no longer exists
        ForbiddenError: If the account is inactive
    """
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    
    if not user:
        raise AuthenticationError("User not found")
    
    if not user.is_active:
        raise ForbiddenError("User account is inactive")
    
    return user


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: AsyncSession = Depends(get_db)
) -> dict:
    """
    FastAPI dependency for JWT authentication.
    
    Security checks:
    1. Validates JWT token signature and expiry
    2. Checks the session record referenced by the token
    3. Verifies user is still active in database (real-time check)
    
    Returns:
        Decoded token payload enriched with the user's current
        ``company_id`` and ``shop_id``
        
    Raises:
        AuthenticationError: 401 if authentication fails for any reason
        ForbiddenError: 403 if the account is inactive
    """
    if credentials is None:
        raise AuthenticationError("Not authenticated")
    
    payload = await authenticate_token(credentials.credentials)
    
    # 3. Real-time database check: Verify user is still active
    user = await load_active_user(db, payload["user_id"])
    
    current_user = dict(payload)
    current_user["role"] = user.role.value
    current_user["company_id"] = user.company_id
    current_user["shop_id"] = user.shop_id
    return current_user
