"""
Bearer token encoding.

Access tokens are short-lived JWTs that carry the user's id, role and the
id of the Redis session they were issued for (``sid``). A token is only
honoured while that session exists, which is what makes logout effective.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any
from jose import JWTError, jwt
from dispatch_backend.app.core.config import settings

TOKEN_TYPE = "access"


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """
    Sign an access token.

    Args:
        data: Claims to embed; callers pass ``sub``, ``user_id``, ``role`` and ``sid``
        expires_delta: Lifetime override, defaults to ``access_token_expire_minutes``
    """
    now = datetime.now(timezone.utc)
    lifetime = expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    claims = {**data, "type": TOKEN_TYPE, "iat": now, "exp": now + lifetime}
    return jwt.encode(claims, settings.secret_key, algorithm=settings.algorithm)


def decode_access_token(token: str) -> Optional[Dict[str, Any]]:
    """
    Verify signature and expiry.

    Returns:
        The claims, or None for anything that is not a valid access token
    """
    if not token:
        return None
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        return None
    if payload.get("type", TOKEN_TYPE) != TOKEN_TYPE:
        return None
    return payload
