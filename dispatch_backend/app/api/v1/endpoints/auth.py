"""
Authentication endpoints: login, logout and the caller's profile.

Accounts are provisioned outside this service (``seed_users.py`` creates
the bootstrap ones). A login opens a Redis session and returns a JWT bound
to it; logout deletes the session.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, or_
from dispatch_backend.app.db.session import get_db
from dispatch_backend.app.models.user import User
from dispatch_backend.app.schemas.auth import UserLogin, TokenResponse, UserResponse, LogoutResponse
from dispatch_backend.app.core.security import verify_password
from dispatch_backend.app.core.jwt import create_access_token
from dispatch_backend.app.core.dependencies import get_current_user
from dispatch_backend.app.core.exceptions import AuthenticationError, ForbiddenError, NotFoundError
from dispatch_backend.app.core.session_store import create_session, revoke_session
from dispatch_backend.app.services.audit import log_auth_event, AuditAction

router = APIRouter(prefix="/auth", tags=["Authentication"])


def _client_ip(request: Request) -> Optional[str]:
    return request.client.host if request.client else None


async def _reject_login(
    db: AsyncSession,
    request: Request,
    login: str,
    user: Optional[User],
    reason: str
) -> None:
    await log_auth_event(
        db=db,
        action=AuditAction.LOGIN_FAILED,
        user_id=user.id if user else None,
        username=user.username if user else login,
        ip_address=_client_ip(request),
        metadata={"reason": reason}
    )


@router.post("/login", response_model=TokenResponse)
async def login(
    credentials: UserLogin,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    """
    Exchange a username (or email) and password for a bearer token.
    
    Unknown users and wrong passwords get the same 401; every failure is
    audited with its real reason.
    """
    result = await db.execute(
        select(User).where(
            or_(User.username == credentials.username, User.email == credentials.username)
        )
    )
    user = result.scalar_one_or_none()
    
    if not user:
        await _reject_login(db, request, credentials.username, None, "User not found")
        raise AuthenticationError("Invalid credentials")
    if not verify_password(credentials.password, user.hashed_password):
        await _reject_login(db, request, credentials.username, user, "Invalid password")
        raise AuthenticationError("Invalid credentials")
    if not user.is_active:
        await _reject_login(db, request, credentials.username, user, "Account is inactive")
        raise ForbiddenError("Inactive user account")
    
    session_id = await create_session(user.id)
    access_token = create_access_token(data={
        "sub": user.username,
        "user_id": user.id,
        "role": user.role.value,
        "sid": session_id,
    })
    
    await log_auth_event(
        db=db,
        action=AuditAction.LOGIN_SUCCESS,
        user_id=user.id,
        username=user.username,
        ip_address=_client_ip(request),
        metadata={"company_id": user.company_id, "shop_id": user.shop_id}
    )
    
    return TokenResponse(
        access_token=access_token,
        user_id=user.id,
        username=user.username,
        email=user.email,
        role=user.role,
        company_id=user.company_id,
        shop_id=user.shop_id
    )


@router.post("/logout", response_model=LogoutResponse)
async def logout(
    request: Request,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Delete the caller's session record; the token stops working immediately."""
    await revoke_session(current_user["sid"])
    await log_auth_event(
        db=db,
        action=AuditAction.LOGOUT,
        user_id=current_user["user_id"],
        username=current_user.get("sub"),
        ip_address=_client_ip(request)
    )
    return LogoutResponse()


@router.get("/me", response_model=UserResponse)
async def me(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    user = await db.get(User, current_user["user_id"])
    if not user:
        raise NotFoundError("User", current_user["user_id"])
    return UserResponse.model_validate(user)
