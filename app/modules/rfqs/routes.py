from fastapi import APIRouter, Depends, Query
from app.database.supabase_client import get_supabase, get_service_supabase
from app.modules.rfqs.schemas import RfqCreate, RfqResponse
from app.modules.rfqs.service import RfqService
from app.modules.trades.schemas import KernelDecision
from app.core.dependencies import require_permission, get_access_cache, get_profile, check_trade_access
from supabase import Client
from typing import List, Dict, Optional

router = APIRouter(prefix="/rfqs", tags=["rfqs"])


def get_rfq_service(supabase: Client = Depends(get_supabase)) -> RfqService:
    return RfqService(supabase)


@router.post("", response_model=RfqResponse, status_code=201)
async def create_rfq(
    form: RfqCreate,
    user_data: Dict = Depends(require_permission("rfqs:create")),
    service: RfqService = Depends(get_rfq_service),
    supabase: Client = Depends(get_supabase),
    cache: Dict = Depends(get_access_cache)
):
    """Post an RFQ. Creates the buyer company on first use."""
    return service.create_rfq(form, user_data, get_profile(user_data["id"], supabase, cache))


@router.get("", response_model=List[RfqResponse])
async def list_open_rfqs(
    country: Optional[str] = None,
    min_budget: Optional[float] = Query(None, ge=0),
    max_budget: Optional[float] = Query(None, ge=0),
    search: Optional[str] = Query(None, max_length=100),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    user_data: Dict = Depends(require_permission("rfqs:read")),
    service: RfqService = Depends(get_rfq_service)
):
    """Open RFQs for suppliers to quote on"""
    return service.list_open_rfqs(country, min_budget, max_budget, search, limit, offset)


@router.get("/{rfq_id}", response_model=RfqResponse)
async def get_rfq(
    rfq_id: str,
    user_data: Dict = Depends(require_permission("rfqs:read")),
    service: RfqService = Depends(get_rfq_service)
):
    return service.get_rfq(rfq_id)


@router.post("/{rfq_id}/close", response_model=KernelDecision)
async def close_rfq(
    rfq_id: str,
    user_data: Dict = Depends(require_permission("rfqs:update")),
    supabase: Client = Depends(get_supabase),
    service_supabase: Client = Depends(get_service_supabase),
    cache: Dict = Depends(get_access_cache)
):
    check_trade_access(rfq_id, user_data, supabase, cache)
    return RfqService(service_supabase).close_rfq(rfq_id, user_data, cache)
