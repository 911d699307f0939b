from enum import Enum
from supabase import Client
from app.modules.trade_events.schemas import TradeEventResponse
from typing import List, Optional, Dict, Any
from fastapi import HTTPException
from datetime import datetime, timezone
import logging

logger = logging.getLogger(__name__)


class TradeEventType(str, Enum):
    STATE_TRANSITION = "state_transition"

    RFQ_CREATED = "rfq_created"
    RFQ_PUBLISHED = "rfq_published"
    RFQ_CLOSED = "rfq_closed"

    QUOTE_RECEIVED = "quote_received"
    QUOTE_SELECTED = "quote_selected"
    QUOTE_REJECTED = "quote_rejected"

    CONTRACT_GENERATED = "contract_generated"
    CONTRACT_SIGNED = "contract_signed"

    ESCROW_CREATED = "escrow_created"
    ESCROW_FUNDED = "escrow_funded"
    PAYMENT_RELEASED = "payment_released"
    REFUND_INITIATED = "refund_initiated"
    PAYMENT_CONFIRMED = "payment_confirmed"
    PAYMENT_REFUNDED = "payment_refunded"

    SHIPMENT_CREATED = "shipment_created"
    PICKUP_SCHEDULED = "pickup_scheduled"
    PICKUP_CONFIRMED = "pickup_confirmed"
    IN_TRANSIT = "in_transit"
    DELIVERY_SCHEDULED = "delivery_scheduled"
    DELIVERED = "delivered"
    DELIVERY_ACCEPTED = "delivery_accepted"
    DISPATCH_FAILED = "dispatch_failed"
    LOGISTICS_ASSIGNED = "logistics_assigned"

    DISPUTE_CREATED = "dispute_created"
    DISPUTE_RESOLVED = "dispute_resolved"

    COMPLIANCE_CHECK_PASSED = "compliance_check_passed"
    COMPLIANCE_CHECK_FAILED = "compliance_check_failed"

    SUPPLIER_NOTIFIED = "supplier_notified"
    CONSENSUS_SIGNED = "consensus_signed"

    ERROR_OCCURRED = "error_occurred"
    AUTOMATION_TRIGGERED = "automation_triggered"


EVENT_TYPES = {e.value for e in TradeEventType}


class TradeEventService:
    """Append-only access to the trade_events ledger.

    No update or delete method exists; corrections are recorded as new events.
    """

    def __init__(self, supabase: Client):
        self.supabase = supabase

    def emit(
        self,
        trade_id: str,
        event_type: str,
        payload: Optional[Dict[str, Any]] = None,
        actor_user_id: Optional[str] = None,
        actor_role: Optional[str] = None,
        status_from: Optional[str] = None,
        status_to: Optional[str] = None,
        decision: Optional[str] = None,
        run_automations: bool = True,
    ) -> Dict[str, Any]:
        """Append an event, then run enabled automation rules for its type."""
        event_type = getattr(event_type, "value", event_type)
        if event_type not in EVENT_TYPES:
            raise HTTPException(status_code=400, detail=f"Unknown trade event type: {event_type}")
        try:
            result = self.supabase.table("trade_events").insert({
                "trade_id": trade_id,
                "event_type": event_type,
                "status_from": status_from,
                "status_to": status_to,
                "actor_user_id": actor_user_id,
                "actor_role": actor_role,
                "decision": decision,
                "payload": payload or {},
                "created_at": datetime.now(timezone.utc).isoformat()
            }).execute()
            if not result.data:
                raise HTTPException(status_code=500, detail="Failed to record trade event")
            event = result.data[0]
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Failed to emit {event_type} for trade {trade_id}: {e}")
            raise HTTPException(status_code=500, detail=str(e))

        if run_automations:
            self._run_automations(trade_id, event_type, payload or {})
        return event

    def try_emit(self, trade_id: str, event_type: str, **kwargs) -> Optional[Dict[str, Any]]:
        """emit() for side-effect events that must never fail the caller."""
        try:
            return self.emit(trade_id, event_type, **kwargs)
        except Exception as e:
            logger.warning(f"Non-blocking event {event_type} for trade {trade_id} not recorded: {e}")
            return None

    def _run_automations(self, trade_id: str, event_type: str, payload: Dict[str, Any]) -> int:
        """Execute enabled automation_rules for event_type. Failures are logged only."""
        executed = 0
        try:
            rules = self.supabase.table("automation_rules")\
                .select("*")\
                .eq("trigger_event", event_type)\
                .eq("enabled", True)\
                .execute()
            for rule in rules.data or []:
                action = rule.get("action")
                if action == "send_notification":
                    self._notify_parties(trade_id, event_type, rule)
                    executed += 1
                    self.emit(
                        trade_id,
                        TradeEventType.AUTOMATION_TRIGGERED,
                        payload={"rule_id": rule.get("id"), "action": action, "trigger_event": event_type},
                        actor_role="system",
                        run_automations=False,
                    )
                else:
                    logger.info(f"Skipping automation {rule.get('id')}: unsupported action {action}")
        except Exception as e:
            logger.error(f"Automation run failed for {event_type} on trade {trade_id}: {e}")
        return executed

    def _notify_parties(self, trade_id: str, event_type: str, rule: Dict[str, Any]):
        from app.modules.notifications.service import NotificationService

        trade = self.supabase.table("trades")\
            .select("id, title, buyer_id, seller_id")\
            .eq("id", trade_id)\
            .maybe_single()\
            .execute()
        if not trade or not trade.data:
            return
        recipients = rule.get("recipients") or ["buyer", "seller"]
        template = rule.get("message_template") or "Trade update: {event_type}"
        message = template.format(event_type=event_type, trade_id=trade_id)
        notifications = NotificationService(self.supabase)
        for party in recipients:
            company_id = trade.data.get(f"{party}_id")
            if company_id:
                notifications.notify_company(
                    company_id,
                    title=trade.data.get("title") or "Trade update",
                    message=message,
                    notification_type="trade",
                    link=f"/trades/{trade_id}",
                    metadata={"trade_id": trade_id, "event_type": event_type},
                )

    def ledger(self, trade_id: str, limit: int = 200) -> List[TradeEventResponse]:
        """Events for a trade, newest first"""
        try:
            result = self.supabase.table("trade_events")\
                .select("*")\
                .eq("trade_id", trade_id)\
                .order("created_at", desc=True)\
                .limit(limit)\
                .execute()
            return [TradeEventResponse(**e) for e in result.data or []]
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def timeline(self, trade_id: str) -> List[TradeEventResponse]:
        """Events for a trade, oldest first"""
        try:
            result = self.supabase.table("trade_events")\
                .select("*")\
                .eq("trade_id", trade_id)\
                .order("created_at")\
                .execute()
            return [TradeEventResponse(**e) for e in result.data or []]
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def stream(self, trade_id: str, since: Optional[str] = None, limit: int = 100) -> List[TradeEventResponse]:
        """Events strictly after `since` (ISO timestamp), oldest first. Clients poll with the last created_at."""
        try:
            query = self.supabase.table("trade_events")\
                .select("*")\
                .eq("trade_id", trade_id)
            if since:
                query = query.gt("created_at", since)
            result = query.order("created_at").limit(limit).execute()
            return [TradeEventResponse(**e) for e in result.data or []]
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))
