from fastapi import APIRouter, Depends, Query, Request
from app.database.supabase_client import get_supabase
from app.modules.trade_events.schemas import TradeEventResponse, TradeEventStream
from app.modules.trade_events.service import TradeEventService
from app.core.dependencies import require_permission, check_trade_access, get_access_cache
from supabase import Client
from typing import List, Dict, Optional

router = APIRouter(prefix="/trades", tags=["trade-events"])


def get_trade_event_service(supabase: Client = Depends(get_supabase)) -> TradeEventService:
    return TradeEventService(supabase)


@router.get("/{trade_id}/events", response_model=List[TradeEventResponse])
async def get_trade_ledger(
    trade_id: str,
    limit: int = Query(200, ge=1, le=1000),
    user_data: Dict = Depends(require_permission("trades:read")),
    service: TradeEventService = Depends(get_trade_event_service),
    supabase: Client = Depends(get_supabase),
    cache: Dict = Depends(get_access_cache)
):
    """Immutable event ledger, newest first"""
    check_trade_access(trade_id, user_data, supabase, cache)
    return service.ledger(trade_id, limit)


@router.get("/{trade_id}/timeline", response_model=List[TradeEventResponse])
async def get_trade_timeline(
    trade_id: str,
    user_data: Dict = Depends(require_permission("trades:read")),
    service: TradeEventService = Depends(get_trade_event_service),
    supabase: Client = Depends(get_supabase),
    cache: Dict = Depends(get_access_cache)
):
    """Event timeline, oldest first"""
    check_trade_access(trade_id, user_data, supabase, cache)
    return service.timeline(trade_id)


@router.get("/{trade_id}/events/stream", response_model=TradeEventStream)
async def stream_trade_events(
    trade_id: str,
    since: Optional[str] = None,
    user_data: Dict = Depends(require_permission("trades:read")),
    service: TradeEventService = Depends(get_trade_event_service),
    supabase: Client = Depends(get_supabase),
    cache: Dict = Depends(get_access_cache)
):
    """Events recorded after `since`. Pass the returned cursor back as `since` on the next poll."""
    check_trade_access(trade_id, user_data, supabase, cache)
    events = service.stream(trade_id, since)
    cursor = since
    if events and events[-1].created_at:
        cursor = events[-1].created_at.isoformat()
    return TradeEventStream(trade_id=trade_id, since=since, events=events, cursor=cursor)
