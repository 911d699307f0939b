import hashlib
import logging
import time
from datetime import datetime, timezone
from supabase import Client
from app.modules.auth.schemas import LoginRequest, RegisterRequest, TokenResponse, RegisterResponse
from app.database.supabase_client import SupabaseClient
from app.config.settings import settings
from fastapi import HTTPException
from typing import Dict, Any, Optional

logger = logging.getLogger(__name__)

# Short-lived token -> user cache; parallel dashboard requests share one auth lookup
_AUTH_USER_CACHE: Dict[str, tuple] = {}
_AUTH_CACHE_TTL_SEC = 60
_AUTH_CACHE_MAX_SIZE = 500

# Capabilities granted at sign-up. Selling waits for admin approval.
ROLE_CAPABILITIES = {
    "buyer": {"can_buy": True, "can_sell": False, "can_logistics": False},
    "seller": {"can_buy": False, "can_sell": True, "can_logistics": False},
    "hybrid": {"can_buy": True, "can_sell": True, "can_logistics": False},
    "logistics": {"can_buy": False, "can_sell": False, "can_logistics": True},
}


def _token_key(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


def clear_auth_cache():
    _AUTH_USER_CACHE.clear()


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class AuthService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def register(self, register_data: RegisterRequest) -> RegisterResponse:
        """Sign up with Supabase Auth, write the profile and, when a company name is given, onboard the company."""
        try:
            metadata = {"role": register_data.role, "full_name": register_data.full_name}
            auth_response = self.supabase.auth.sign_up({
                "email": register_data.email,
                "password": register_data.password,
                "options": {"data": {k: v for k, v in metadata.items() if v}}
            })
            if not auth_response.user:
                raise HTTPException(status_code=400, detail="Failed to register user")

            user_id = auth_response.user.id
            email = auth_response.user.email or register_data.email
            company_id = None
            if register_data.company_name:
                company_id = self._onboard_company(user_id, register_data)
            self._write_profile(user_id, email, register_data, company_id)

            logger.info(f"Registered {register_data.role} user {user_id} (company {company_id})")
            return RegisterResponse(
                user_id=user_id,
                email=email,
                company_id=company_id,
                message="User registered successfully"
            )
        except HTTPException:
            raise
        except Exception as e:
            message = str(e).lower()
            if "already registered" in message or "already exists" in message:
                raise HTTPException(status_code=400, detail="User already exists")
            raise HTTPException(status_code=500, detail=f"Registration failed: {str(e)}")

    def _onboard_company(self, user_id: str, register_data: RegisterRequest) -> Optional[str]:
        try:
            company = self.supabase.table("companies").insert({
                "user_id": user_id,
                "company_name": register_data.company_name,
                "country": register_data.country,
                "verification_status": "PENDING",
                "created_at": _now()
            }).execute()
            company_id = company.data[0]["id"]
            capabilities = dict(ROLE_CAPABILITIES[register_data.role])
            if capabilities["can_sell"]:
                capabilities["sell_status"] = "pending"
            if capabilities["can_logistics"]:
                capabilities["logistics_status"] = "pending"
            self.supabase.table("company_capabilities").insert({"company_id": company_id, **capabilities}).execute()
            return company_id
        except Exception as e:
            # Without a company the first RFQ creates one
            logger.warning(f"Company onboarding failed for {user_id}: {e}")
            return None

    def _write_profile(self, user_id: str, email: str, register_data: RegisterRequest, company_id: Optional[str]):
        try:
            self.supabase.table("profiles").upsert({
                "id": user_id,
                "email": email,
                "full_name": register_data.full_name,
                "phone": register_data.phone,
                "role": register_data.role,
                "company_id": company_id,
                "is_admin": False,
                "created_at": _now(),
                "updated_at": _now()
            }).execute()
        except Exception as e:
            # A database trigger also creates the profile from auth.users
            logger.warning(f"Profile upsert failed for {user_id}: {e}")

    def login(self, login_data: LoginRequest) -> TokenResponse:
        try:
            auth_response = self.supabase.auth.sign_in_with_password({
                "email": login_data.email,
                "password": login_data.password
            })
            if not auth_response.user or not auth_response.session:
                raise HTTPException(status_code=401, detail="Invalid credentials")

            session = auth_response.session
            profile = self.supabase.table("profiles")\
                .select("company_id")\
                .eq("id", auth_response.user.id)\
                .maybe_single()\
                .execute()
            return TokenResponse(
                access_token=session.access_token,
                refresh_token=getattr(session, "refresh_token", None),
                expires_in=getattr(session, "expires_in", None),
                user_id=auth_response.user.id,
                email=auth_response.user.email or login_data.email,
                company_id=((profile.data if profile else None) or {}).get("company_id")
            )
        except HTTPException:
            raise
        except Exception as e:
            message = str(e).lower()
            if "invalid" in message or "credentials" in message:
                raise HTTPException(status_code=401, detail="Invalid email or password")
            raise HTTPException(status_code=500, detail=f"Login failed: {str(e)}")

    def get_current_user(self, token: str) -> Dict[str, Any]:
        key = _token_key(token)
        cached = _AUTH_USER_CACHE.get(key)
        if cached and time.monotonic() < cached[1]:
            return cached[0]
        _AUTH_USER_CACHE.pop(key, None)

        try:
            user_response = self.supabase.auth.get_user(jwt=token)
        except Exception as e:
            logger.info(f"Token rejected by Supabase Auth: {e}")
            raise HTTPException(status_code=401, detail="Invalid or expired token")
        if not user_response or not user_response.user:
            raise HTTPException(status_code=401, detail="Invalid or expired token")

        user = user_response.user
        user_data = {
            "id": user.id,
            "email": user.email,
            "user_metadata": user.user_metadata or {},
            "app_metadata": user.app_metadata or {},
        }
        if len(_AUTH_USER_CACHE) < _AUTH_CACHE_MAX_SIZE:
            _AUTH_USER_CACHE[key] = (user_data, time.monotonic() + _AUTH_CACHE_TTL_SEC)
        return user_data

    def logout(self, token: str) -> bool:
        """Tokens are stateless JWTs; this ends the Supabase session and drops the cached user."""
        _AUTH_USER_CACHE.pop(_token_key(token), None)
        try:
            self.supabase.auth.sign_out()
            return True
        except Exception as e:
            logger.warning(f"Logout failed: {e}")
            return False

    def set_admin(self, user_id: str, is_admin: bool = True) -> bool:
        """Platform admin flag, kept in app_metadata and on the profile"""
        if not settings.supabase_service_role_key:
            raise HTTPException(status_code=500, detail="Service role key not configured")
        try:
            admin_client = SupabaseClient.get_service_client()
            response = admin_client.auth.admin.update_user_by_id(
                user_id,
                {"app_metadata": {"type": "admin"} if is_admin else {}}
            )
            if not response.user:
                raise HTTPException(status_code=404, detail="User not found")
            admin_client.table("profiles")\
                .update({"is_admin": is_admin, "updated_at": _now()})\
                .eq("id", user_id)\
                .execute()
            clear_auth_cache()
            return True
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=f"Failed to update admin status: {str(e)}")
