"""
Security guards for role-based access control and tenant scoping.
"""

from dataclasses import dataclass
from typing import List, Optional
from fastapi import Depends
from dispatch_backend.app.models.enums import UserRole
from dispatch_backend.app.core.dependencies import get_current_user
from dispatch_backend.app.core.exceptions import ForbiddenError, ScopeResolutionError


def require_role(allowed_roles: List[UserRole]):
    """
    Dependency factory for role-based access control.
    
    Usage:
        @router.get("/manager/orders")
        async def list_orders(current_user: dict = Depends(require_role([UserRole.MANAGER]))):
            ...
    
    Args:
        allowed_roles: List of UserRole enums that are allowed to access the endpoint
        
    Returns:
        FastAPI dependency function that validates user role
        
    Raises:
        ForbiddenError 403 if user role is not in allowed_roles
    """
    async def role_checker(current_user: dict = Depends(get_current_user)) -> dict:
        user_role_str = current_user.get("role")
        
        if not user_role_str:
            raise ForbiddenError("Role information missing from token")
        
        # Convert string role to UserRole enum
        try:
            user_role = UserRole(user_role_str)
        except ValueError:
            raise ForbiddenError("Invalid role in token")
        
        if user_role not in allowed_roles:
            raise ForbiddenError(
                f"Access denied. Required role: {', '.join([r.value for r in allowed_roles])}"
            )
        
        return current_user
    
    return role_checker


@dataclass(frozen=True)
class TenantScope:
    """Company (and optional shop) boundary of a manager or company caller."""
    company_id: int
    shop_id: Optional[int] = None


def _company_scope(current_user: dict) -> Optional[TenantScope]:
    company_id = current_user.get("company_id")
    if not company_id:
        return None
    return TenantScope(company_id=company_id)


def _manager_scope(current_user: dict) -> Optional[TenantScope]:
    company_id = current_user.get("company_id")
    if not company_id:
        return None
    return TenantScope(company_id=company_id, shop_id=current_user.get("shop_id"))


def _no_scope(current_user: dict) -> Optional[TenantScope]:
    return None


# Every role must appear here; a missing entry fails at import time below.
_SCOPE_RESOLVERS = {
    UserRole.COMPANY: _company_scope,
    UserRole.MANAGER: _manager_scope,
    UserRole.DRIVER: _no_scope,
    UserRole.CUSTOMER: _no_scope,
    UserRole.OWNER: _no_scope,
}

if set(_SCOPE_RESOLVERS) != set(UserRole):
    raise RuntimeError("tenant scope resolver missing for a role")


def find_tenant_scope(current_user: dict) -> Optional[TenantScope]:
    """
    Resolve the tenant scope of the caller, or None if it has none.
    
    - company: its company, all shops
    - manager: its company, narrowed to its shop when it has one
    - anyone else: no tenant scope
    """
    try:
        role = UserRole(current_user.get("role"))
    except ValueError:
        return None
    return _SCOPE_RESOLVERS[role](current_user)


def resolve_tenant_scope(current_user: dict) -> TenantScope:
    """
    Resolve the tenant scope of the caller.
    
    Raises:
        ScopeResolutionError: If the caller has no company
    """
    scope = find_tenant_scope(current_user)
    if scope is None:
        raise ScopeResolutionError()
    return scope
