from fastapi import APIRouter, Depends, HTTPException, Query
from app.database.supabase_client import get_supabase, get_service_supabase
from app.modules.notifications.schemas import (
    SendEmailRequest, SendEmailResponse, SmsRequest, SmsResponse,
    DispatchRunResult, NotificationResponse
)
from app.modules.notifications.service import NotificationService
from app.modules.notifications import channels
from app.modules.notifications.dispatcher import process_dispatch_queue
from app.core.dependencies import require_permission
from supabase import Client
from typing import List, Dict

router = APIRouter(prefix="/notifications", tags=["notifications"])
functions_router = APIRouter(prefix="/functions", tags=["functions"])


def get_notification_service(supabase: Client = Depends(get_supabase)) -> NotificationService:
    return NotificationService(supabase)


@router.get("", response_model=List[NotificationResponse])
async def list_notifications(
    unread_only: bool = False,
    limit: int = Query(50, ge=1, le=200),
    user_data: Dict = Depends(require_permission("notifications:read")),
    service: NotificationService = Depends(get_notification_service)
):
    return service.list_for_user(user_data["id"], unread_only, limit)


@router.post("/read-all")
async def mark_all_read(
    user_data: Dict = Depends(require_permission("notifications:read")),
    service: NotificationService = Depends(get_notification_service)
):
    return {"updated": service.mark_all_read(user_data["id"])}


@router.post("/{notification_id}/read", response_model=NotificationResponse)
async def mark_read(
    notification_id: str,
    user_data: Dict = Depends(require_permission("notifications:read")),
    service: NotificationService = Depends(get_notification_service)
):
    return service.mark_read(notification_id, user_data["id"])


@functions_router.post("/send-email", response_model=SendEmailResponse)
async def send_email_function(
    request: SendEmailRequest,
    user_data: Dict = Depends(require_permission("notifications:send"))
):
    """Send a transactional email through Resend"""
    return await channels.send_email(request.to, request.subject, request.html, request.from_)


@functions_router.post("/sms-notification", response_model=SmsResponse)
async def sms_notification_function(
    request: SmsRequest,
    user_data: Dict = Depends(require_permission("notifications:send")),
    supabase: Client = Depends(get_service_supabase)
):
    """Send an SMS through Africa's Talking (simulated when no API key is configured)"""
    service = NotificationService(supabase)
    metadata = {**request.metadata, "requested_by": user_data["id"]}
    try:
        result = await channels.send_sms(request.to, request.message, request.sender_id)
    except HTTPException as e:
        service.log_sms(request.to, request.message, "failed", request.event_type, metadata={**metadata, "error": e.detail})
        raise
    service.log_sms(
        request.to, request.message, result["status"], request.event_type,
        provider_message_id=result.get("message_id"), cost=result.get("cost"), metadata=metadata
    )
    return SmsResponse(**result)


@functions_router.post("/notification-sender", response_model=DispatchRunResult)
async def notification_sender_function(
    user_data: Dict = Depends(require_permission("notifications:dispatch")),
    supabase: Client = Depends(get_service_supabase)
):
    """Drain one batch of the dispatch_notifications queue"""
    return await process_dispatch_queue(supabase)
