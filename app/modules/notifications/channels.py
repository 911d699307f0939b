"""Outbound email (Resend) and SMS (Africa's Talking) senders."""
import logging
from typing import List, Optional, Union, Dict, Any

import httpx
from fastapi import HTTPException

from app.config.settings import settings
from app.core import http_client

logger = logging.getLogger(__name__)

RESEND_URL = "https://api.resend.com/emails"
AT_LIVE_URL = "https://api.africastalking.com/version1/messaging"
AT_SANDBOX_URL = "https://api.sandbox.africastalking.com/version1/messaging"


def _africastalking_url() -> str:
    return AT_SANDBOX_URL if settings.africastalking_username == "sandbox" else AT_LIVE_URL


async def send_email(to: Union[str, List[str]], subject: str, html: str, from_: Optional[str] = None) -> Dict[str, Any]:
    """POST to Resend. Returns {success, id}; vendor errors keep the vendor's status code."""
    if not settings.resend_api_key:
        raise HTTPException(status_code=503, detail="Email service not configured")
    recipients = to if isinstance(to, list) else [to]
    try:
        response = await http_client.http.post(
            RESEND_URL,
            headers={"Authorization": f"Bearer {settings.resend_api_key}"},
            json={
                "from": from_ or settings.email_from,
                "to": [str(r) for r in recipients],
                "subject": subject,
                "html": html,
            },
            timeout=15,
        )
    except httpx.HTTPError as e:
        logger.error(f"Resend request failed: {e}")
        raise HTTPException(status_code=502, detail="Email provider unreachable")

    data = http_client.safe_json(response)
    if response.status_code >= 400:
        logger.error(f"Resend rejected email ({response.status_code}): {data}")
        raise HTTPException(
            status_code=response.status_code,
            detail=data.get("message") or data.get("error") or "Failed to send email"
        )
    return {"success": True, "id": data.get("id")}


async def send_sms(to: str, message: str, sender_id: Optional[str] = None) -> Dict[str, Any]:
    """POST to Africa's Talking. Without an API key the message is logged and reported as simulated."""
    if not settings.africastalking_api_key:
        logger.info(f"SMS not configured, simulating send to {to}: {message[:60]}")
        return {"success": True, "status": "simulated", "message": "SMS provider not configured; message logged"}

    form = {
        "username": settings.africastalking_username,
        "to": to,
        "message": message,
    }
    sender = sender_id or settings.africastalking_sender_id
    if sender:
        form["from"] = sender
    try:
        response = await http_client.http.post(
            _africastalking_url(),
            headers={"apiKey": settings.africastalking_api_key, "Accept": "application/json"},
            data=form,
            timeout=15,
        )
    except httpx.HTTPError as e:
        logger.error(f"Africa's Talking request failed: {e}")
        raise HTTPException(status_code=502, detail="SMS provider unreachable")

    data = http_client.safe_json(response)
    if response.status_code >= 400:
        logger.error(f"Africa's Talking rejected SMS ({response.status_code}): {data}")
        raise HTTPException(status_code=response.status_code, detail=data.get("message") or "Failed to send SMS")

    recipients = (data.get("SMSMessageData") or {}).get("Recipients") or []
    if not recipients:
        summary = (data.get("SMSMessageData") or {}).get("Message") or "SMS not accepted"
        raise HTTPException(status_code=502, detail=summary)
    first = recipients[0]
    # 100 Processed, 101 Sent, 102 Queued
    if first.get("statusCode") not in (100, 101, 102):
        raise HTTPException(status_code=502, detail=f"SMS rejected: {first.get('status')}")
    return {
        "success": True,
        "status": "sent",
        "message_id": first.get("messageId"),
        "cost": first.get("cost"),
    }
