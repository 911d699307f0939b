from fastapi import APIRouter, Depends
from app.database.supabase_client import get_supabase
from app.modules.shipments.schemas import (
    ShipmentCreate, ShipmentStatusUpdate, ShipmentResponse, ShipmentTracking,
    DispatchRequest, DispatchResult, LogisticsAcceptRequest, LogisticsAcceptResponse
)
from app.modules.shipments.service import ShipmentService
from app.modules.shipments.dispatch import LogisticsDispatcher
from app.core.dependencies import require_permission, check_trade_access, get_access_cache, get_user_company_id
from supabase import Client
from typing import Dict

router = APIRouter(prefix="/shipments", tags=["shipments"])
functions_router = APIRouter(prefix="/functions", tags=["functions"])


def get_shipment_service(supabase: Client = Depends(get_supabase)) -> ShipmentService:
    return ShipmentService(supabase)


def _check_shipment_access(shipment: ShipmentResponse, user_data: Dict, supabase: Client, cache: Dict):
    """Logistics company assigned to the shipment, or a party to its trade."""
    company_id = get_user_company_id(user_data, supabase, cache)
    if company_id and shipment.logistics_company_id == company_id:
        return
    check_trade_access(shipment.trade_id, user_data, supabase, cache)


@router.post("", response_model=ShipmentResponse, status_code=201)
async def create_shipment(
    shipment_data: ShipmentCreate,
    user_data: Dict = Depends(require_permission("shipments:create")),
    service: ShipmentService = Depends(get_shipment_service),
    supabase: Client = Depends(get_supabase),
    cache: Dict = Depends(get_access_cache)
):
    """Create the shipment for a trade"""
    check_trade_access(shipment_data.trade_id, user_data, supabase, cache)
    return service.create_shipment(shipment_data, user_data["id"])


@router.get("/trade/{trade_id}", response_model=ShipmentResponse)
async def get_trade_shipment(
    trade_id: str,
    user_data: Dict = Depends(require_permission("shipments:read")),
    service: ShipmentService = Depends(get_shipment_service),
    supabase: Client = Depends(get_supabase),
    cache: Dict = Depends(get_access_cache)
):
    shipment = service.get_shipment_by_trade(trade_id)
    _check_shipment_access(shipment, user_data, supabase, cache)
    return shipment


@router.get("/trade/{trade_id}/tracking", response_model=ShipmentTracking)
async def get_trade_tracking(
    trade_id: str,
    user_data: Dict = Depends(require_permission("shipments:read")),
    service: ShipmentService = Depends(get_shipment_service),
    supabase: Client = Depends(get_supabase),
    cache: Dict = Depends(get_access_cache)
):
    """Shipment with its logistics milestones"""
    tracking = service.tracking(trade_id)
    _check_shipment_access(tracking.shipment, user_data, supabase, cache)
    return tracking


@router.post("/trade/{trade_id}/dispatch", response_model=DispatchResult)
async def dispatch_trade_pickup(
    trade_id: str,
    dispatch_request: DispatchRequest,
    user_data: Dict = Depends(require_permission("shipments:update")),
    supabase: Client = Depends(get_supabase),
    cache: Dict = Depends(get_access_cache)
):
    """Re-run provider matching for a pickup (e.g. after a failed dispatch)"""
    check_trade_access(trade_id, user_data, supabase, cache)
    result = LogisticsDispatcher(supabase).dispatch(trade_id, **dispatch_request.model_dump(exclude={"pickup_window_end"}))
    return DispatchResult(**result)


@router.get("/{shipment_id}", response_model=ShipmentResponse)
async def get_shipment(
    shipment_id: str,
    user_data: Dict = Depends(require_permission("shipments:read")),
    service: ShipmentService = Depends(get_shipment_service),
    supabase: Client = Depends(get_supabase),
    cache: Dict = Depends(get_access_cache)
):
    shipment = service.get_shipment(shipment_id)
    _check_shipment_access(shipment, user_data, supabase, cache)
    return shipment


@router.patch("/{shipment_id}/status", response_model=ShipmentResponse)
async def update_shipment_status(
    shipment_id: str,
    update: ShipmentStatusUpdate,
    user_data: Dict = Depends(require_permission("shipments:update")),
    service: ShipmentService = Depends(get_shipment_service),
    supabase: Client = Depends(get_supabase),
    cache: Dict = Depends(get_access_cache)
):
    """Record a logistics milestone"""
    shipment = service.get_shipment(shipment_id)
    _check_shipment_access(shipment, user_data, supabase, cache)
    return service.update_status(shipment_id, update, user_data["id"])


@functions_router.post("/logistics-accept", response_model=LogisticsAcceptResponse)
async def logistics_accept_function(
    request: LogisticsAcceptRequest,
    user_data: Dict = Depends(require_permission("shipments:accept")),
    supabase: Client = Depends(get_supabase)
):
    """A logistics provider accepts or declines a pickup request; first acceptance wins"""
    pickup_time = request.estimated_pickup_time.isoformat() if request.estimated_pickup_time else None
    result = LogisticsDispatcher(supabase).respond(
        request.trade_id, request.provider_id, request.response, pickup_time
    )
    return LogisticsAcceptResponse(**result)
