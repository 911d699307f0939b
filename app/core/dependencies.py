"""
Core dependencies for route protection and permission checking
"""

from fastapi import Depends, HTTPException, Request, Security, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from app.database.supabase_client import get_supabase
from app.modules.auth.service import AuthService
from app.config.permissions_config import permissions_for_roles
from supabase import Client
from typing import List, Optional, Dict, Any
import logging

logger = logging.getLogger(__name__)

security = HTTPBearer()

MARKETPLACE_ROLES = ("buyer", "seller", "logistics", "admin")


def _get_request_cache(request: Request) -> Dict[str, Any]:
    """Return request-scoped cache for access data (profile, roles, permission_names)."""
    if not hasattr(request.state, "access_cache"):
        request.state.access_cache = {}
    return request.state.access_cache


def get_auth_service(supabase: Client = Depends(get_supabase)) -> AuthService:
    return AuthService(supabase)


def get_current_user_id(
    credentials: HTTPAuthorizationCredentials = Security(security),
    auth_service: AuthService = Depends(get_auth_service)
) -> dict:
    """Extract current user info from JWT token"""
    token = credentials.credentials
    user_data = auth_service.get_current_user(token)
    return user_data


def get_profile(user_id: str, supabase: Client, cache: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Return the user's profiles row ({} when missing). Uses request-scoped cache when provided."""
    if cache is not None and "profile" in cache:
        return cache["profile"]
    try:
        result = supabase.table("profiles")\
            .select("*")\
            .eq("id", user_id)\
            .maybe_single()\
            .execute()
        profile = (result.data if result else None) or {}
    except Exception as e:
        logger.error(f"Error getting profile for {user_id}: {e}")
        profile = {}
    if cache is not None:
        cache["profile"] = profile
    return profile


def get_company_capabilities(company_id: Optional[str], supabase: Client) -> Dict[str, Any]:
    """Return company_capabilities row for a company ({} when missing)."""
    if not company_id:
        return {}
    try:
        result = supabase.table("company_capabilities")\
            .select("*")\
            .eq("company_id", company_id)\
            .maybe_single()\
            .execute()
        return (result.data if result else None) or {}
    except Exception as e:
        logger.error(f"Error getting capabilities for company {company_id}: {e}")
        return {}


def is_admin(user_data: dict, supabase: Client, cache: Optional[Dict[str, Any]] = None) -> bool:
    """Admin if app_metadata says so (set server-side) or the profile carries is_admin."""
    app_metadata = user_data.get("app_metadata") or {}
    if app_metadata.get("type") in ("admin", "super_user"):
        return True
    return bool(get_profile(user_data["id"], supabase, cache).get("is_admin"))


def get_user_roles(user_data: dict, supabase: Client, cache: Optional[Dict[str, Any]] = None) -> List[str]:
    """Resolve marketplace roles from profile flags and company capabilities."""
    if cache is not None and "roles" in cache:
        return cache["roles"]
    roles = []
    if is_admin(user_data, supabase, cache):
        roles.append("admin")
    profile = get_profile(user_data["id"], supabase, cache)
    company_id = profile.get("company_id")
    capabilities = get_company_capabilities(company_id, supabase)
    if capabilities:
        if capabilities.get("can_buy"):
            roles.append("buyer")
        if capabilities.get("can_sell") and capabilities.get("sell_status") != "rejected":
            roles.append("seller")
        if capabilities.get("can_logistics") and capabilities.get("logistics_status") != "rejected":
            roles.append("logistics")
    else:
        # No capabilities row yet (or no company): buyer, so a first RFQ can create the company
        declared = profile.get("role") if company_id else None
        if declared == "hybrid":
            roles.extend(["buyer", "seller"])
        elif declared in ("seller", "logistics"):
            roles.append(declared)
        else:
            roles.append("buyer")
    if cache is not None:
        cache["roles"] = roles
    return roles


def get_user_permissions(user_data: dict, supabase: Client, cache: Optional[Dict[str, Any]] = None) -> List[str]:
    """Get all permissions for a user through their marketplace roles."""
    if cache is not None and "permission_names" in cache:
        return cache["permission_names"]
    names = permissions_for_roles(get_user_roles(user_data, supabase, cache))
    if cache is not None:
        cache["permission_names"] = names
    return names


def require_permission(required_permission: str):
    """Factory function to create permission check dependency"""
    def check_permission(
        request: Request,
        user_data: dict = Depends(get_current_user_id),
        supabase: Client = Depends(get_supabase)
    ) -> dict:
        """Dependency to check if user has required permission"""
        cache = _get_request_cache(request)
        if is_admin(user_data, supabase, cache):
            return user_data
        user_permissions = get_user_permissions(user_data, supabase, cache)
        if required_permission not in user_permissions:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Insufficient permissions. Required: {required_permission}"
            )
        return user_data
    return check_permission


def require_admin(
    request: Request,
    user_data: dict = Depends(get_current_user_id),
    supabase: Client = Depends(get_supabase)
) -> dict:
    """Only platform admins"""
    if not is_admin(user_data, supabase, _get_request_cache(request)):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )
    return user_data


def get_access_cache(request: Request) -> Dict[str, Any]:
    """Dependency that returns request-scoped access cache (populated by require_permission when used)."""
    return _get_request_cache(request)


def get_user_company_id(user_data: dict, supabase: Client, cache: Optional[Dict[str, Any]] = None) -> Optional[str]:
    return get_profile(user_data["id"], supabase, cache).get("company_id")


def require_company_id(user_data: dict, supabase: Client, cache: Optional[Dict[str, Any]] = None) -> str:
    company_id = get_user_company_id(user_data, supabase, cache)
    if not company_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="User must be associated with a company"
        )
    return company_id


def check_trade_access(
    trade_id: str,
    user_data: dict,
    supabase: Client,
    cache: Optional[Dict[str, Any]] = None,
    trade: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    """Allow admins and the trade's buyer or seller company. Returns the trade row."""
    if trade is None:
        result = supabase.table("trades")\
            .select("*")\
            .eq("id", trade_id)\
            .maybe_single()\
            .execute()
        trade = result.data if result else None
        if not trade:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Trade not found"
            )
    if is_admin(user_data, supabase, cache):
        return trade
    company_id = get_user_company_id(user_data, supabase, cache)
    if company_id and company_id in (trade.get("buyer_id"), trade.get("seller_id")):
        return trade
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail="You must be the buyer or seller on this trade to access it"
    )
