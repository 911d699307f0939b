import hmac
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from supabase import Client

from app.config.settings import settings
from app.core.dependencies import require_permission, require_company_id, get_access_cache, check_trade_access
from app.core.limiter import limiter
from app.database.supabase_client import get_supabase, get_service_supabase
from app.modules.payments.schemas import PaymentLinkRequest, PaymentLinkResponse, WebhookAck
from app.modules.payments.service import PaymentService
from typing import Dict

logger = logging.getLogger(__name__)

functions_router = APIRouter(prefix="/functions", tags=["functions"])
webhooks_router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@functions_router.post("/generate-payment-link", response_model=PaymentLinkResponse)
async def generate_payment_link(
    request: PaymentLinkRequest,
    user_data: Dict = Depends(require_permission("payments:create")),
    supabase: Client = Depends(get_supabase),
    service_supabase: Client = Depends(get_service_supabase),
    cache: Dict = Depends(get_access_cache)
):
    """Create a Flutterwave hosted payment link. Trade payments can only be made by the trade's buyer."""
    company_id = require_company_id(user_data, supabase, cache)
    if request.trade_id:
        trade = check_trade_access(request.trade_id, user_data, supabase, cache)
        if trade.get("buyer_id") != company_id:
            raise HTTPException(status_code=403, detail="Only the buying company can pay for this trade")
    return await PaymentService(service_supabase).generate_payment_link(request, user_data["id"], company_id)


def verify_flutterwave_hash(received: str) -> None:
    if not settings.flutterwave_webhook_hash:
        raise HTTPException(status_code=503, detail="Webhook not configured")
    if not received or not hmac.compare_digest(received, settings.flutterwave_webhook_hash):
        logger.error("Flutterwave webhook with invalid verif-hash")
        raise HTTPException(status_code=401, detail="Invalid signature")


@webhooks_router.post("/flutterwave", response_model=WebhookAck)
@limiter.exempt
async def flutterwave_webhook(
    request: Request,
    supabase: Client = Depends(get_service_supabase)
):
    """Flutterwave payment events. Charges are re-verified with Flutterwave before anything is updated."""
    verify_flutterwave_hash(request.headers.get("verif-hash", ""))
    try:
        payload = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON body")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Invalid JSON body")
    return await PaymentService(supabase).handle_flutterwave_event(payload)
