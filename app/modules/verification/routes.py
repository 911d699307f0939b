import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from supabase import Client

from app.core.dependencies import (
    require_permission, require_company_id, get_user_company_id, get_access_cache, is_admin
)
from app.core.limiter import limiter
from app.database.supabase_client import get_supabase, get_service_supabase
from app.modules.verification import smile_id
from app.modules.verification.schemas import (
    SmileVerifyRequest, SmileVerifyResponse, ExtractRequest, ExtractResponse,
    FinalizeRequest, FinalizeResponse, SmileCallbackResult
)
from app.modules.verification.service import VerificationService
from typing import Dict

logger = logging.getLogger(__name__)

functions_router = APIRouter(prefix="/functions", tags=["functions"])
webhooks_router = APIRouter(prefix="/webhooks", tags=["webhooks"])


def get_verification_service(supabase: Client = Depends(get_service_supabase)) -> VerificationService:
    return VerificationService(supabase)


@functions_router.post("/smile-id-verify", response_model=SmileVerifyResponse)
async def smile_id_verify(
    request: SmileVerifyRequest,
    user_data: Dict = Depends(require_permission("verification:submit")),
    service: VerificationService = Depends(get_verification_service),
    supabase: Client = Depends(get_supabase),
    cache: Dict = Depends(get_access_cache)
):
    """Submit a KYB (business) or KYC (identity) job to Smile ID"""
    if request.verification_type == "business":
        company_id = require_company_id(user_data, supabase, cache)
        return await service.verify_business(request, company_id, user_data["id"])
    return await service.verify_identity(request, user_data["id"])


@functions_router.post("/verify_extract", response_model=ExtractResponse)
async def verify_extract(
    request: ExtractRequest,
    user_data: Dict = Depends(require_permission("verification:submit")),
    service: VerificationService = Depends(get_verification_service),
    supabase: Client = Depends(get_supabase),
    cache: Dict = Depends(get_access_cache)
):
    if request.company_id and not is_admin(user_data, supabase, cache):
        if get_user_company_id(user_data, supabase, cache) != request.company_id:
            raise HTTPException(status_code=403, detail="You can only submit documents for your own company")
    return await service.extract_document(request)


@functions_router.post("/verify_finalize", response_model=FinalizeResponse)
async def verify_finalize(
    request: FinalizeRequest,
    user_data: Dict = Depends(require_permission("verification:finalize")),
    service: VerificationService = Depends(get_verification_service)
):
    """Admin decision on a company's verification"""
    return service.finalize(request, user_data["id"])


@webhooks_router.post("/smile-id", response_model=SmileCallbackResult)
@limiter.exempt
async def smile_id_callback(
    request: Request,
    service: VerificationService = Depends(get_verification_service)
):
    """Smile ID job results. Signed with HMAC-SHA256 over the raw body."""
    secret = smile_id.webhook_secret()
    if not secret:
        raise HTTPException(status_code=503, detail="Webhook not configured")

    raw_body = await request.body()
    try:
        payload = json.loads(raw_body)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON body")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Invalid JSON body")

    signature = request.headers.get("x-smile-signature") or payload.get("signature")
    timestamp = request.headers.get("x-smile-timestamp") or payload.get("timestamp")
    if not signature or not timestamp:
        raise HTTPException(status_code=401, detail="Missing signature")
    if not smile_id.timestamp_is_recent(timestamp):
        logger.error("Smile ID callback outside the replay window")
        raise HTTPException(status_code=401, detail="Stale callback")
    if not smile_id.callback_signature_valid(raw_body, signature, secret):
        logger.error("Smile ID callback with invalid signature")
        raise HTTPException(status_code=401, detail="Invalid signature")
    return service.handle_callback(payload)
