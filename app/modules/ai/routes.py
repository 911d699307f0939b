from fastapi import APIRouter, Depends, HTTPException
from app.database.supabase_client import get_supabase, get_service_supabase
from app.modules.ai.schemas import (
    AnalyzeQuoteRequest, MatchmakerRequest, MatchmakerResponse, FraudEvalRequest, FraudEvaluation,
    DisputeResolverRequest, DisputeResolution, LogisticsTrackerRequest, DelayRisk
)
from app.modules.ai.service import KoniAIService
from app.core.dependencies import require_permission, check_trade_access, get_access_cache
from supabase import Client
from typing import Dict, Any

functions_router = APIRouter(prefix="/functions", tags=["functions"])


def get_koniai_service(supabase: Client = Depends(get_service_supabase)) -> KoniAIService:
    return KoniAIService(supabase)


@functions_router.post("/koniai-analyze-quote")
async def analyze_quote(
    request: AnalyzeQuoteRequest,
    user_data: Dict = Depends(require_permission("ai:use")),
    service: KoniAIService = Depends(get_koniai_service)
) -> Dict[str, Any]:
    """Compare supplier quotes and recommend one"""
    return await service.analyze_quotes(request)


@functions_router.post("/koniai-matchmaker", response_model=MatchmakerResponse)
async def matchmaker(
    request: MatchmakerRequest,
    user_data: Dict = Depends(require_permission("ai:use")),
    service: KoniAIService = Depends(get_koniai_service),
    supabase: Client = Depends(get_supabase),
    cache: Dict = Depends(get_access_cache)
):
    """Match an RFQ with approved suppliers and notify them"""
    rfq = check_trade_access(request.rfq_id, user_data, supabase, cache)
    if rfq.get("trade_type") != "rfq":
        raise HTTPException(status_code=404, detail="RFQ not found")
    return await service.match_suppliers(rfq)


@functions_router.post("/koniai-fraud-eval", response_model=FraudEvaluation)
async def fraud_eval(
    request: FraudEvalRequest,
    user_data: Dict = Depends(require_permission("ai:evaluate")),
    service: KoniAIService = Depends(get_koniai_service)
):
    return await service.evaluate_fraud(request.company_id)


@functions_router.post("/koniai-dispute-resolver", response_model=DisputeResolution)
async def dispute_resolver(
    request: DisputeResolverRequest,
    user_data: Dict = Depends(require_permission("ai:use")),
    service: KoniAIService = Depends(get_koniai_service),
    supabase: Client = Depends(get_supabase),
    cache: Dict = Depends(get_access_cache)
):
    trade = check_trade_access(request.trade_id, user_data, supabase, cache)
    return await service.resolve_dispute(trade)


@functions_router.post("/koniai-logistics-tracker", response_model=DelayRisk)
async def logistics_tracker(
    request: LogisticsTrackerRequest,
    user_data: Dict = Depends(require_permission("ai:use")),
    service: KoniAIService = Depends(get_koniai_service),
    supabase: Client = Depends(get_supabase),
    cache: Dict = Depends(get_access_cache)
):
    """Predict delivery delay risk for one shipment"""
    result = service.supabase.table("shipments")\
        .select("*")\
        .eq("id", request.shipment_id)\
        .maybe_single()\
        .execute()
    if not result or not result.data:
        raise HTTPException(status_code=404, detail="Shipment not found")
    check_trade_access(result.data["trade_id"], user_data, supabase, cache)
    return await service.predict_delay(result.data)
