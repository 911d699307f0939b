from supabase import Client
from app.modules.companies.schemas import (
    CompanyCreate, CompanyUpdate, CompanyResponse, CompanyPublicProfile,
    CapabilitiesResponse, CapabilitiesRequest, CapabilityReview
)
from typing import Optional, Dict, Any
from fastapi import HTTPException
from datetime import datetime, timezone
import logging

logger = logging.getLogger(__name__)


def _is_duplicate_key(error: Exception) -> bool:
    message = str(error).lower()
    return "23505" in message or "duplicate key" in message or "unique constraint" in message


class CompanyService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def _find_owned_company_id(self, user_id: str) -> Optional[str]:
        result = self.supabase.table("companies")\
            .select("id")\
            .eq("user_id", user_id)\
            .limit(1)\
            .execute()
        return result.data[0]["id"] if result.data else None

    def _link_profile(self, user_id: str, company_id: str):
        try:
            self.supabase.table("profiles")\
                .upsert({"id": user_id, "company_id": company_id}, on_conflict="id")\
                .execute()
        except Exception as e:
            logger.warning(f"Failed to link profile {user_id} to company {company_id}: {e}")

    def ensure_company_for_user(self, user_data: Dict[str, Any], profile: Optional[Dict[str, Any]] = None) -> str:
        """Return the user's company id, creating a minimal buyer company when none exists.

        Safe against concurrent first requests: a duplicate-key insert falls back to
        reading the row the other request created.
        """
        if profile and profile.get("company_id"):
            return profile["company_id"]
        user_id = user_data["id"]
        email = user_data.get("email")
        try:
            company_id = self._find_owned_company_id(user_id)
            if not company_id:
                name = f"Company - {email.split('@')[0]}" if email else f"Company - {user_id[:8]}"
                try:
                    result = self.supabase.table("companies").insert({
                        "user_id": user_id,
                        "company_name": name,
                        "owner_email": email,
                        "email": email,
                        "role": "buyer",
                        "business_type": "buyer",
                        "verified": False,
                        "verification_status": "unverified",
                        "created_at": datetime.now(timezone.utc).isoformat()
                    }).execute()
                    company_id = result.data[0]["id"] if result.data else None
                    if company_id:
                        self._init_capabilities(company_id, "buyer")
                        logger.info(f"Created minimal company {company_id} for user {user_id}")
                except Exception as e:
                    if not _is_duplicate_key(e):
                        raise
                    logger.warning(f"Company for user {user_id} created concurrently, re-reading")
                    company_id = self._find_owned_company_id(user_id)
            if not company_id:
                raise HTTPException(status_code=500, detail="Could not resolve a company for this user")
            self._link_profile(user_id, company_id)
            return company_id
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def _init_capabilities(self, company_id: str, role: str):
        can_sell = role in ("seller", "hybrid")
        can_logistics = role == "logistics"
        try:
            self.supabase.table("company_capabilities").upsert({
                "company_id": company_id,
                "can_buy": role in ("buyer", "hybrid"),
                "can_sell": can_sell,
                "sell_status": "pending" if can_sell else "disabled",
                "can_logistics": can_logistics,
                "logistics_status": "pending" if can_logistics else "disabled",
            }, on_conflict="company_id").execute()
        except Exception as e:
            logger.warning(f"Failed to initialise capabilities for company {company_id}: {e}")

    def create_company(self, company_data: CompanyCreate, user_data: Dict[str, Any]) -> CompanyResponse:
        """Explicit onboarding. One owned company per user."""
        try:
            if self._find_owned_company_id(user_data["id"]):
                raise HTTPException(status_code=409, detail="User already owns a company")
            now = datetime.now(timezone.utc).isoformat()
            insert_data = company_data.model_dump()
            insert_data.update({
                "user_id": user_data["id"],
                "owner_email": user_data.get("email"),
                "verified": False,
                "verification_status": "unverified",
                "created_at": now,
                "updated_at": now
            })
            result = self.supabase.table("companies").insert(insert_data).execute()
            if not result.data:
                raise HTTPException(status_code=500, detail="Failed to create company")
            company = result.data[0]
            self._init_capabilities(company["id"], company_data.role)
            self._link_profile(user_data["id"], company["id"])
            return CompanyResponse(**company)
        except HTTPException:
            raise
        except Exception as e:
            if _is_duplicate_key(e):
                raise HTTPException(status_code=409, detail="User already owns a company")
            raise HTTPException(status_code=500, detail=str(e))

    def get_company(self, company_id: str) -> CompanyResponse:
        try:
            result = self.supabase.table("companies")\
                .select("*")\
                .eq("id", company_id)\
                .maybe_single()\
                .execute()
            if not result or not result.data:
                raise HTTPException(status_code=404, detail="Company not found")
            return CompanyResponse(**result.data)
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def get_public_profile(self, company_id: str) -> CompanyPublicProfile:
        company = self.get_company(company_id)
        try:
            products = self.supabase.table("products")\
                .select("id", count="exact")\
                .eq("company_id", company_id)\
                .eq("status", "active")\
                .execute()
            product_count = products.count if products.count is not None else len(products.data or [])
        except Exception as e:
            logger.warning(f"Product count failed for company {company_id}: {e}")
            product_count = 0
        return CompanyPublicProfile(
            id=company.id,
            company_name=company.company_name,
            country=company.country,
            city=company.city,
            description=company.description,
            website=company.website,
            logo_url=company.logo_url,
            verified=company.verified,
            product_count=product_count
        )

    def update_company(self, company_id: str, company_data: CompanyUpdate) -> CompanyResponse:
        try:
            update_data = company_data.model_dump(exclude_unset=True)
            if not update_data:
                return self.get_company(company_id)
            update_data["updated_at"] = datetime.now(timezone.utc).isoformat()
            result = self.supabase.table("companies")\
                .update(update_data)\
                .eq("id", company_id)\
                .execute()
            if not result.data:
                raise HTTPException(status_code=404, detail="Company not found")
            return CompanyResponse(**result.data[0])
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def get_capabilities(self, company_id: str) -> CapabilitiesResponse:
        try:
            result = self.supabase.table("company_capabilities")\
                .select("*")\
                .eq("company_id", company_id)\
                .maybe_single()\
                .execute()
            if not result or not result.data:
                return CapabilitiesResponse(company_id=company_id)
            return CapabilitiesResponse(**result.data)
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def request_capabilities(self, company_id: str, request: CapabilitiesRequest) -> CapabilitiesResponse:
        """Enabling selling or logistics puts the capability into review; disabling is immediate."""
        try:
            current = self.get_capabilities(company_id)
            update_data: Dict[str, Any] = {"company_id": company_id}
            if request.can_buy is not None:
                update_data["can_buy"] = request.can_buy
            if request.can_sell is not None:
                update_data["can_sell"] = request.can_sell
                if not request.can_sell:
                    update_data["sell_status"] = "disabled"
                elif current.sell_status in ("disabled", "rejected"):
                    update_data["sell_status"] = "pending"
            if request.can_logistics is not None:
                update_data["can_logistics"] = request.can_logistics
                if not request.can_logistics:
                    update_data["logistics_status"] = "disabled"
                elif current.logistics_status in ("disabled", "rejected"):
                    update_data["logistics_status"] = "pending"
            update_data["updated_at"] = datetime.now(timezone.utc).isoformat()
            result = self.supabase.table("company_capabilities")\
                .upsert(update_data, on_conflict="company_id")\
                .execute()
            if not result.data:
                raise HTTPException(status_code=500, detail="Failed to update capabilities")
            return CapabilitiesResponse(**result.data[0])
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def review_capability(self, company_id: str, review: CapabilityReview) -> CapabilitiesResponse:
        """Admin decision on a pending sell or logistics request"""
        try:
            column = f"{review.capability}_status"
            result = self.supabase.table("company_capabilities")\
                .update({column: review.status, "updated_at": datetime.now(timezone.utc).isoformat()})\
                .eq("company_id", company_id)\
                .execute()
            if not result.data:
                raise HTTPException(status_code=404, detail="Company capabilities not found")
            return CapabilitiesResponse(**result.data[0])
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))
