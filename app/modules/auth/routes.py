from fastapi import APIRouter, Depends, Request, Security
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from app.database.supabase_client import get_supabase
from app.modules.auth.schemas import (
    LoginRequest, RegisterRequest, TokenResponse, RegisterResponse,
    SetAdminRequest, MeResponse
)
from app.modules.auth.service import AuthService
from app.core.dependencies import (
    get_auth_service, get_current_user_id, get_profile, get_user_roles,
    get_user_permissions, require_admin, _get_request_cache
)
from supabase import Client
from typing import Dict

router = APIRouter(prefix="/auth", tags=["auth"])

security = HTTPBearer()


def get_current_token(
    credentials: HTTPAuthorizationCredentials = Security(security)
) -> str:
    """Extract JWT token from Authorization header"""
    return credentials.credentials


@router.post("/register", response_model=RegisterResponse, status_code=201)
async def register(
    register_data: RegisterRequest,
    service: AuthService = Depends(get_auth_service)
):
    """Register a new user"""
    return service.register(register_data)


@router.post("/login", response_model=TokenResponse)
async def login(
    login_data: LoginRequest,
    service: AuthService = Depends(get_auth_service)
):
    """Login and get access token"""
    return service.login(login_data)


@router.post("/logout", status_code=200)
async def logout(
    token: str = Depends(get_current_token),
    service: AuthService = Depends(get_auth_service)
):
    """Logout and invalidate token"""
    service.logout(token)
    return {"message": "Logged out successfully"}


@router.get("/me", response_model=MeResponse)
async def get_current_user(
    request: Request,
    current_user: Dict = Depends(get_current_user_id),
    supabase: Client = Depends(get_supabase),
):
    """Current user with resolved marketplace roles and permissions (for frontend UI)."""
    cache = _get_request_cache(request)
    profile = get_profile(current_user["id"], supabase, cache)
    return MeResponse(
        id=current_user["id"],
        email=current_user.get("email"),
        company_id=profile.get("company_id"),
        full_name=profile.get("full_name"),
        roles=get_user_roles(current_user, supabase, cache),
        permissions=get_user_permissions(current_user, supabase, cache),
    )


@router.post("/set-admin", status_code=200)
async def set_admin(
    request: SetAdminRequest,
    current_user: Dict = Depends(require_admin),
    service: AuthService = Depends(get_auth_service),
):
    """Grant or revoke platform admin (admins only)"""
    service.set_admin(request.user_id, request.is_admin)
    return {
        "message": f"User {request.user_id} admin status set to {request.is_admin}",
        "user_id": request.user_id,
        "is_admin": request.is_admin
    }
