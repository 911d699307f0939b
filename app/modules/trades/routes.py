from fastapi import APIRouter, Depends, Query
from app.database.supabase_client import get_supabase, get_service_supabase
from app.modules.trades.schemas import (
    TradeCreate, TradeResponse, TransitionRequest, TradeTransitionFunctionRequest,
    KernelDecision, ConsensusRequest, ConsensusStatus, TradeStateInfo
)
from app.modules.trades.service import TradeKernelService
from app.modules.trades.state_machine import TradeState, STATE_ORDER, STATE_LABELS, allowed_next_states
from app.modules.companies.service import CompanyService
from app.core.dependencies import (
    require_permission, check_trade_access, get_access_cache, get_profile,
    get_user_company_id, is_admin
)
from supabase import Client
from typing import List, Dict, Optional

router = APIRouter(prefix="/trades", tags=["trades"])
functions_router = APIRouter(prefix="/functions", tags=["functions"])


def get_trade_service(supabase: Client = Depends(get_supabase)) -> TradeKernelService:
    return TradeKernelService(supabase)


def get_kernel_service(supabase: Client = Depends(get_service_supabase)) -> TradeKernelService:
    """Kernel writes run with the service role; the kernel enforces roles itself."""
    return TradeKernelService(supabase)


@router.get("/states", response_model=List[TradeStateInfo])
async def list_trade_states():
    """Kernel states in display order, plus disputed"""
    states = STATE_ORDER + [TradeState.DISPUTED]
    return [
        TradeStateInfo(value=s.value, label=STATE_LABELS[s], next_states=[n.value for n in allowed_next_states(s)])
        for s in states
    ]


@router.get("", response_model=List[TradeResponse])
async def list_trades(
    status: Optional[str] = None,
    trade_type: Optional[str] = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    user_data: Dict = Depends(require_permission("trades:read")),
    service: TradeKernelService = Depends(get_trade_service),
    supabase: Client = Depends(get_supabase),
    cache: Dict = Depends(get_access_cache)
):
    """Trades of the current user's company (all trades for admins)"""
    if is_admin(user_data, supabase, cache):
        return service.list_trades(None, status, trade_type, limit, offset)
    company_id = get_user_company_id(user_data, supabase, cache)
    if not company_id:
        return []
    return service.list_trades(company_id, status, trade_type, limit, offset)


@router.post("", response_model=TradeResponse, status_code=201)
async def create_trade(
    trade_data: TradeCreate,
    user_data: Dict = Depends(require_permission("trades:create")),
    service: TradeKernelService = Depends(get_trade_service),
    supabase: Client = Depends(get_supabase),
    cache: Dict = Depends(get_access_cache)
):
    """Open a trade as buyer. The buyer company is created on first use."""
    profile = get_profile(user_data["id"], supabase, cache)
    company_id = CompanyService(supabase).ensure_company_for_user(user_data, profile)
    return service.create_trade(trade_data, user_data["id"], company_id)


@router.get("/{trade_id}", response_model=TradeResponse)
async def get_trade(
    trade_id: str,
    user_data: Dict = Depends(require_permission("trades:read")),
    supabase: Client = Depends(get_supabase),
    cache: Dict = Depends(get_access_cache)
):
    return TradeResponse(**check_trade_access(trade_id, user_data, supabase, cache))


@router.post("/{trade_id}/transition", response_model=KernelDecision)
async def transition_trade(
    trade_id: str,
    request: TransitionRequest,
    user_data: Dict = Depends(require_permission("trades:transition")),
    service: TradeKernelService = Depends(get_kernel_service),
    cache: Dict = Depends(get_access_cache)
):
    """Ask the kernel to move the trade. A refusal is a BLOCK decision with a reason_code."""
    return service.transition(trade_id, request.next_state, request.metadata, request.dry_run, user_data, cache)


@router.get("/{trade_id}/next-action", response_model=KernelDecision)
async def get_next_action(
    trade_id: str,
    user_data: Dict = Depends(require_permission("trades:read")),
    service: TradeKernelService = Depends(get_kernel_service),
    cache: Dict = Depends(get_access_cache)
):
    return service.get_next_action(trade_id, user_data, cache)


@router.post("/{trade_id}/consensus", response_model=KernelDecision)
async def request_consensus(
    trade_id: str,
    request: ConsensusRequest,
    user_data: Dict = Depends(require_permission("trades:sign")),
    service: TradeKernelService = Depends(get_kernel_service),
    cache: Dict = Depends(get_access_cache)
):
    """Record a consensus signature for a party (BUYER, SELLER, PROTOCOL, LOGISTICS, AI)"""
    return service.request_consensus(trade_id, request.party, user_data, cache)


@router.get("/{trade_id}/consensus", response_model=ConsensusStatus)
async def check_consensus(
    trade_id: str,
    user_data: Dict = Depends(require_permission("trades:read")),
    service: TradeKernelService = Depends(get_trade_service),
    supabase: Client = Depends(get_supabase),
    cache: Dict = Depends(get_access_cache)
):
    check_trade_access(trade_id, user_data, supabase, cache)
    return service.check_consensus(trade_id)


@functions_router.post("/trade-transition", response_model=KernelDecision)
async def trade_transition_function(
    request: TradeTransitionFunctionRequest,
    user_data: Dict = Depends(require_permission("trades:transition")),
    service: TradeKernelService = Depends(get_kernel_service),
    cache: Dict = Depends(get_access_cache)
):
    """Function-style entry point: {tradeId, nextState, metadata, dry_run}"""
    return service.transition(
        request.trade_id, request.next_state, request.metadata, request.dry_run, user_data, cache
    )
