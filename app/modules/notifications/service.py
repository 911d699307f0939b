from supabase import Client
from app.modules.notifications.schemas import NotificationResponse
from typing import List, Optional, Dict, Any
from fastapi import HTTPException
from datetime import datetime, timezone
import logging

logger = logging.getLogger(__name__)


class NotificationService:
    """In-app notifications. The notify_* helpers are side effects and never raise."""

    def __init__(self, supabase: Client):
        self.supabase = supabase

    def notify_user(
        self,
        user_id: str,
        title: str,
        message: str,
        notification_type: str = "system",
        link: Optional[str] = None,
        company_id: Optional[str] = None,
        related_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> bool:
        try:
            self.supabase.table("notifications").insert({
                "user_id": user_id,
                "company_id": company_id,
                "title": title,
                "message": message,
                "type": notification_type,
                "link": link,
                "related_id": related_id,
                "read": False,
                "metadata": metadata or {},
                "created_at": datetime.now(timezone.utc).isoformat()
            }).execute()
            return True
        except Exception as e:
            logger.warning(f"Notification for user {user_id} not created: {e}")
            return False

    def notify_company(
        self,
        company_id: str,
        title: str,
        message: str,
        notification_type: str = "system",
        link: Optional[str] = None,
        related_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> int:
        """One notification per member of the company. Returns how many were created."""
        try:
            members = self.supabase.table("profiles")\
                .select("id")\
                .eq("company_id", company_id)\
                .execute()
        except Exception as e:
            logger.warning(f"Could not load members of company {company_id}: {e}")
            return 0
        created = 0
        for member in members.data or []:
            if self.notify_user(member["id"], title, message, notification_type, link, company_id, related_id, metadata):
                created += 1
        return created

    def list_for_user(self, user_id: str, unread_only: bool = False, limit: int = 50) -> List[NotificationResponse]:
        try:
            query = self.supabase.table("notifications")\
                .select("*")\
                .eq("user_id", user_id)
            if unread_only:
                query = query.eq("read", False)
            result = query.order("created_at", desc=True).limit(limit).execute()
            return [NotificationResponse(**n) for n in result.data or []]
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def mark_read(self, notification_id: str, user_id: str) -> NotificationResponse:
        try:
            result = self.supabase.table("notifications")\
                .update({"read": True})\
                .eq("id", notification_id)\
                .eq("user_id", user_id)\
                .execute()
            if not result.data:
                raise HTTPException(status_code=404, detail="Notification not found")
            return NotificationResponse(**result.data[0])
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def mark_all_read(self, user_id: str) -> int:
        try:
            result = self.supabase.table("notifications")\
                .update({"read": True})\
                .eq("user_id", user_id)\
                .eq("read", False)\
                .execute()
            return len(result.data or [])
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def log_sms(self, recipient: str, message: str, status: str, event_type: Optional[str] = None,
                provider_message_id: Optional[str] = None, cost: Optional[str] = None,
                metadata: Optional[Dict[str, Any]] = None):
        try:
            self.supabase.table("sms_logs").insert({
                "recipient": recipient,
                "message": message,
                "event_type": event_type,
                "status": status,
                "provider_message_id": provider_message_id,
                "cost": cost,
                "metadata": metadata or {},
                "created_at": datetime.now(timezone.utc).isoformat()
            }).execute()
        except Exception as e:
            logger.warning(f"sms_logs insert failed: {e}")
