"""
Login, token and profile schemas.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional
from dispatch_backend.app.models.enums import DriverStatus, UserRole


class UserLogin(BaseModel):
    """Credentials for POST /auth/login; ``username`` may also be the email."""
    username: str = Field(..., min_length=1, max_length=255, description="Username or email")
    password: str = Field(..., min_length=1, max_length=128)


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user_id: int
    username: str
    email: str
    role: UserRole
    # Tenant placement, so clients can pick the right home screen
    company_id: Optional[int] = None
    shop_id: Optional[int] = None


class UserResponse(BaseModel):
    """The caller's own profile (GET /auth/me)."""
    id: int
    name: str
    email: str
    username: str
    phone: Optional[str] = None
    role: UserRole
    company_id: Optional[int] = None
    shop_id: Optional[int] = None
    driver_status: Optional[DriverStatus] = None
    is_active: bool
    created_at: datetime
    updated_at: datetime
    
    class Config:
        from_attributes = True


class LogoutResponse(BaseModel):
    ok: bool = True
    message: str = "Logged out"
