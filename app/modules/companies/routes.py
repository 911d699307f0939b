from fastapi import APIRouter, Depends
from app.database.supabase_client import get_supabase
from app.modules.companies.schemas import (
    CompanyCreate, CompanyUpdate, CompanyResponse, CompanyPublicProfile,
    CapabilitiesResponse, CapabilitiesRequest, CapabilityReview
)
from app.modules.companies.service import CompanyService
from app.core.dependencies import (
    require_permission, require_admin, get_current_user_id, get_access_cache, require_company_id
)
from supabase import Client
from typing import Dict

router = APIRouter(prefix="/companies", tags=["companies"])


def get_company_service(supabase: Client = Depends(get_supabase)) -> CompanyService:
    return CompanyService(supabase)


@router.post("", response_model=CompanyResponse, status_code=201)
async def create_company(
    company_data: CompanyCreate,
    user_data: Dict = Depends(get_current_user_id),
    service: CompanyService = Depends(get_company_service)
):
    """Onboard the current user's company"""
    return service.create_company(company_data, user_data)


@router.get("/me", response_model=CompanyResponse)
async def get_my_company(
    user_data: Dict = Depends(require_permission("companies:read")),
    service: CompanyService = Depends(get_company_service),
    supabase: Client = Depends(get_supabase),
    cache: Dict = Depends(get_access_cache)
):
    return service.get_company(require_company_id(user_data, supabase, cache))


@router.patch("/me", response_model=CompanyResponse)
async def update_my_company(
    company_data: CompanyUpdate,
    user_data: Dict = Depends(require_permission("companies:update")),
    service: CompanyService = Depends(get_company_service),
    supabase: Client = Depends(get_supabase),
    cache: Dict = Depends(get_access_cache)
):
    return service.update_company(require_company_id(user_data, supabase, cache), company_data)


@router.get("/me/capabilities", response_model=CapabilitiesResponse)
async def get_my_capabilities(
    user_data: Dict = Depends(require_permission("companies:read")),
    service: CompanyService = Depends(get_company_service),
    supabase: Client = Depends(get_supabase),
    cache: Dict = Depends(get_access_cache)
):
    return service.get_capabilities(require_company_id(user_data, supabase, cache))


@router.patch("/me/capabilities", response_model=CapabilitiesResponse)
async def request_capabilities(
    request: CapabilitiesRequest,
    user_data: Dict = Depends(require_permission("companies:update")),
    service: CompanyService = Depends(get_company_service),
    supabase: Client = Depends(get_supabase),
    cache: Dict = Depends(get_access_cache)
):
    """Enable buying, or request selling / logistics (reviewed by an admin)"""
    return service.request_capabilities(require_company_id(user_data, supabase, cache), request)


@router.post("/{company_id}/capabilities/review", response_model=CapabilitiesResponse)
async def review_capability(
    company_id: str,
    review: CapabilityReview,
    user_data: Dict = Depends(require_admin),
    service: CompanyService = Depends(get_company_service)
):
    return service.review_capability(company_id, review)


@router.get("/{company_id}", response_model=CompanyPublicProfile)
async def get_company_profile(
    company_id: str,
    user_data: Dict = Depends(get_current_user_id),
    service: CompanyService = Depends(get_company_service)
):
    """Public company profile"""
    return service.get_public_profile(company_id)
