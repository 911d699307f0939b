import logging
from datetime import datetime, timezone
from typing import Dict, Any

from fastapi import HTTPException
from supabase import Client

from app.modules.notifications import channels

logger = logging.getLogger(__name__)

BATCH_SIZE = 10


async def _deliver(notification: Dict[str, Any]) -> str:
    """Send one queued message and return the delivery status to record (sent or simulated)."""
    channel = notification.get("notification_type")
    recipient = notification.get("recipient")
    if not recipient:
        raise ValueError("Recipient missing")
    if channel in ("sms", "whatsapp"):
        # WhatsApp requests go out over SMS
        result = await channels.send_sms(recipient, notification.get("message_body") or "")
        return result.get("status") or "sent"
    if channel == "email":
        await channels.send_email(
            recipient,
            notification.get("subject") or "Afrikoni notification",
            notification.get("message_body") or "",
        )
        return "sent"
    raise ValueError(f"Unsupported notification type: {channel}")


async def process_dispatch_queue(supabase: Client, batch_size: int = BATCH_SIZE) -> Dict[str, Any]:
    """Send up to batch_size pending dispatch_notifications.

    Each row ends up sent, failed or simulated (no SMS provider configured).
    """
    try:
        pending = supabase.table("dispatch_notifications")\
            .select("*")\
            .eq("status", "pending")\
            .order("created_at")\
            .limit(batch_size)\
            .execute()
    except Exception as e:
        logger.error(f"Failed to fetch pending notifications: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    rows = pending.data or []
    if not rows:
        return {"success": True, "processed": 0, "message": "No pending notifications", "results": []}

    logger.info(f"Processing {len(rows)} dispatch notification(s)")
    results = []
    for notification in rows:
        now = datetime.now(timezone.utc).isoformat()
        try:
            status = await _deliver(notification)
            supabase.table("dispatch_notifications")\
                .update({"status": status, "sent_at": now})\
                .eq("id", notification["id"])\
                .execute()
            results.append({"id": notification["id"], "success": True, "status": status})
        except Exception as e:
            error = e.detail if isinstance(e, HTTPException) else str(e)
            logger.error(f"Dispatch notification {notification['id']} failed: {error}")
            try:
                supabase.table("dispatch_notifications")\
                    .update({"status": "failed", "sent_at": now, "error_message": str(error)})\
                    .eq("id", notification["id"])\
                    .execute()
            except Exception as update_error:
                logger.error(f"Could not mark notification {notification['id']} failed: {update_error}")
            results.append({"id": notification["id"], "success": False, "status": "failed", "error": str(error)})

    sent = sum(1 for r in results if r["status"] == "sent")
    simulated = sum(1 for r in results if r["status"] == "simulated")
    return {
        "success": True,
        "processed": len(results),
        "sent": sent,
        "simulated": simulated,
        "failed": len(results) - sent - simulated,
        "results": results,
    }
