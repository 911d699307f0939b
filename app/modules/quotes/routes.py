from fastapi import APIRouter, Depends
from app.database.supabase_client import get_supabase, get_service_supabase
from app.modules.quotes.schemas import QuoteCreate, QuoteReject, QuoteResponse, QuoteSelection
from app.modules.quotes.service import QuoteService
from app.core.dependencies import (
    require_permission, require_company_id, get_user_company_id, get_access_cache, is_admin
)
from supabase import Client
from typing import List, Dict

router = APIRouter(tags=["quotes"])


def get_quote_service(supabase: Client = Depends(get_supabase)) -> QuoteService:
    return QuoteService(supabase)


@router.post("/rfqs/{rfq_id}/quotes", response_model=QuoteResponse, status_code=201)
async def submit_quote(
    rfq_id: str,
    form: QuoteCreate,
    user_data: Dict = Depends(require_permission("quotes:create")),
    service: QuoteService = Depends(get_quote_service),
    supabase: Client = Depends(get_supabase),
    cache: Dict = Depends(get_access_cache)
):
    """Submit the current supplier company's quote on an open RFQ"""
    company_id = require_company_id(user_data, supabase, cache)
    return service.submit_quote(rfq_id, form, user_data["id"], company_id)


@router.get("/rfqs/{rfq_id}/quotes", response_model=List[QuoteResponse])
async def list_quotes(
    rfq_id: str,
    user_data: Dict = Depends(require_permission("quotes:read")),
    service: QuoteService = Depends(get_quote_service),
    supabase: Client = Depends(get_supabase),
    cache: Dict = Depends(get_access_cache)
):
    """The buyer sees every quote; a supplier sees only its own"""
    rfq = service.load_rfq(rfq_id)
    company_id = get_user_company_id(user_data, supabase, cache)
    if is_admin(user_data, supabase, cache) or (company_id and company_id == rfq.get("buyer_id")):
        return service.list_quotes(rfq_id)
    if not company_id:
        return []
    return service.list_quotes(rfq_id, company_id)


@router.post("/quotes/{quote_id}/select", response_model=QuoteSelection)
async def select_quote(
    quote_id: str,
    user_data: Dict = Depends(require_permission("quotes:select")),
    supabase: Client = Depends(get_supabase),
    service_supabase: Client = Depends(get_service_supabase),
    cache: Dict = Depends(get_access_cache)
):
    admin = is_admin(user_data, supabase, cache)
    company_id = get_user_company_id(user_data, supabase, cache)
    return QuoteService(service_supabase).select_quote(quote_id, user_data, company_id, admin, cache)


@router.post("/quotes/{quote_id}/reject", response_model=QuoteResponse)
async def reject_quote(
    quote_id: str,
    body: QuoteReject,
    user_data: Dict = Depends(require_permission("quotes:select")),
    service: QuoteService = Depends(get_quote_service),
    supabase: Client = Depends(get_supabase),
    cache: Dict = Depends(get_access_cache)
):
    admin = is_admin(user_data, supabase, cache)
    company_id = get_user_company_id(user_data, supabase, cache)
    return service.reject_quote(quote_id, user_data, company_id, admin, body.reason)
