from fastapi import APIRouter, Depends, HTTPException, Query
from app.database.supabase_client import get_supabase, get_service_supabase
from app.modules.escrow.schemas import (
    EscrowCreate, EscrowFund, EscrowRelease, EscrowRefund,
    EscrowResponse, EscrowActionResult, CommissionBreakdown
)
from app.modules.escrow.service import EscrowService
from app.modules.escrow.commission import calculate_commission, disclosure_message, waiver
from app.core.dependencies import require_permission, check_trade_access, get_access_cache
from supabase import Client
from typing import Dict, Literal, Optional

router = APIRouter(prefix="/escrow", tags=["escrow"])


def get_escrow_service(supabase: Client = Depends(get_service_supabase)) -> EscrowService:
    return EscrowService(supabase)


@router.get("/commission", response_model=CommissionBreakdown)
async def preview_commission(
    deal_value: float = Query(..., gt=0),
    deal_type: Literal["standard", "assisted"] = "standard",
    currency: str = "USD",
    waiver_reason: Optional[str] = None,
    user_data: Dict = Depends(require_permission("escrow:read"))
):
    """Success fee breakdown and buyer disclosure for a deal value"""
    return CommissionBreakdown(
        **calculate_commission(deal_value, deal_type, currency),
        disclosure=disclosure_message(deal_value, deal_type, currency),
        waiver=waiver(waiver_reason)
    )


@router.post("", response_model=EscrowResponse, status_code=201)
async def create_escrow(
    request: EscrowCreate,
    user_data: Dict = Depends(require_permission("escrow:create")),
    service: EscrowService = Depends(get_escrow_service),
    supabase: Client = Depends(get_supabase),
    cache: Dict = Depends(get_access_cache)
):
    trade = check_trade_access(request.trade_id, user_data, supabase, cache)
    return service.create_escrow(request, trade, user_data["id"])


@router.get("/trade/{trade_id}", response_model=EscrowResponse)
async def get_escrow_for_trade(
    trade_id: str,
    user_data: Dict = Depends(require_permission("escrow:read")),
    service: EscrowService = Depends(get_escrow_service),
    supabase: Client = Depends(get_supabase),
    cache: Dict = Depends(get_access_cache)
):
    check_trade_access(trade_id, user_data, supabase, cache)
    escrow = service.get_escrow_for_trade(trade_id)
    if not escrow:
        raise HTTPException(status_code=404, detail="No escrow for this trade")
    return escrow


@router.post("/{escrow_id}/fund", response_model=EscrowResponse)
async def fund_escrow(
    escrow_id: str,
    body: EscrowFund,
    user_data: Dict = Depends(require_permission("escrow:fund")),
    service: EscrowService = Depends(get_escrow_service),
    supabase: Client = Depends(get_supabase),
    cache: Dict = Depends(get_access_cache)
):
    """Record an offline (bank transfer) funding. Card payments are funded by the payment webhook."""
    escrow = service.load(escrow_id)
    check_trade_access(escrow["trade_id"], user_data, supabase, cache)
    return service.fund_escrow(escrow_id, body.payment_reference, body.payment_method, user_data["id"])


@router.post("/{escrow_id}/release", response_model=EscrowActionResult)
async def release_escrow(
    escrow_id: str,
    body: EscrowRelease,
    user_data: Dict = Depends(require_permission("escrow:release")),
    service: EscrowService = Depends(get_escrow_service)
):
    return service.release_escrow(escrow_id, body.reason, body.deal_type, body.waiver_reason, user_data["id"])


@router.post("/{escrow_id}/refund", response_model=EscrowActionResult)
async def refund_escrow(
    escrow_id: str,
    body: EscrowRefund,
    user_data: Dict = Depends(require_permission("escrow:refund")),
    service: EscrowService = Depends(get_escrow_service)
):
    return service.refund_escrow(escrow_id, body.reason, user_data["id"])
