import re
from supabase import Client
from app.database.supabase_client import like_contains
from app.modules.rfqs.schemas import RfqCreate, RfqResponse
from app.modules.trades.schemas import TradeCreate, KernelDecision
from app.modules.trades.service import TradeKernelService
from app.modules.trades.state_machine import TradeState
from app.modules.trade_events.service import TradeEventService, TradeEventType
from app.modules.companies.service import CompanyService
from app.modules.notifications.service import NotificationService
from typing import List, Optional, Dict, Any
from fastapi import HTTPException
from datetime import datetime, time, timezone
import logging

logger = logging.getLogger(__name__)

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")


def sanitize_text(value: Optional[str]) -> Optional[str]:
    """Drop control characters (newlines and tabs are kept) and trim."""
    if value is None:
        return None
    return _CONTROL_CHARS.sub("", value).strip()


class RfqService:
    def __init__(self, supabase: Client):
        self.supabase = supabase
        self.kernel = TradeKernelService(supabase)
        self.events = TradeEventService(supabase)

    def create_rfq(self, form: RfqCreate, user_data: Dict[str, Any], profile: Optional[Dict[str, Any]] = None) -> RfqResponse:
        title = sanitize_text(form.title)
        description = sanitize_text(form.description)
        if not title or not description:
            raise HTTPException(
                status_code=400,
                detail="Please fill in all required fields (title, description, quantity)"
            )
        company_id = CompanyService(self.supabase).ensure_company_for_user(user_data, profile)
        expires_at = None
        if form.closing_date:
            expires_at = datetime.combine(form.closing_date, time.max, tzinfo=timezone.utc).isoformat()

        trade = self.kernel.create_trade(
            TradeCreate(
                trade_type="rfq",
                title=title,
                description=description,
                category_id=form.category_id,
                quantity=form.quantity,
                quantity_unit=sanitize_text(form.unit) or "pieces",
                target_price=form.target_price,
                currency=form.currency,
                status=TradeState.RFQ_OPEN.value,
                delivery_location=sanitize_text(form.delivery_location),
                destination_country=sanitize_text(form.target_country),
                expires_at=expires_at,
                metadata={
                    "target_city": sanitize_text(form.target_city),
                    "attachments": [a for a in form.attachments if isinstance(a, str) and a.strip()],
                },
            ),
            user_data["id"],
            company_id,
        )
        NotificationService(self.supabase).notify_company(
            company_id,
            title="RFQ Created",
            message=f'Your RFQ "{title}" is now live',
            notification_type="rfq",
            link=f"/dashboard/rfqs/{trade['id']}",
            related_id=trade["id"],
        )
        return RfqResponse(**trade)

    def list_open_rfqs(
        self,
        country: Optional[str] = None,
        min_budget: Optional[float] = None,
        max_budget: Optional[float] = None,
        search: Optional[str] = None,
        limit: int = 50,
        offset: int = 0
    ) -> List[RfqResponse]:
        try:
            query = self.supabase.table("trades")\
                .select("*")\
                .eq("trade_type", "rfq")\
                .eq("status", TradeState.RFQ_OPEN.value)
            if country:
                query = query.eq("destination_country", country)
            if min_budget is not None:
                query = query.gte("target_price", min_budget)
            if max_budget is not None:
                query = query.lte("target_price", max_budget)
            if search:
                query = query.ilike("title", like_contains(sanitize_text(search)))
            result = query.order("created_at", desc=True).limit(limit).offset(offset).execute()
            now = datetime.now(timezone.utc)
            rfqs = []
            for row in result.data or []:
                rfq = RfqResponse(**row)
                if rfq.expires_at and rfq.expires_at.tzinfo and rfq.expires_at < now:
                    continue
                rfqs.append(rfq)
            return rfqs
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def get_rfq(self, rfq_id: str) -> RfqResponse:
        try:
            result = self.supabase.table("trades")\
                .select("*")\
                .eq("id", rfq_id)\
                .eq("trade_type", "rfq")\
                .maybe_single()\
                .execute()
            if not result or not result.data:
                raise HTTPException(status_code=404, detail="RFQ not found")
            quotes = self.supabase.table("quotes")\
                .select("id", count="exact")\
                .eq("trade_id", rfq_id)\
                .execute()
            quote_count = quotes.count if quotes.count is not None else len(quotes.data or [])
            return RfqResponse(**result.data, quote_count=quote_count)
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def close_rfq(self, rfq_id: str, user_data: Dict[str, Any], cache: Optional[Dict[str, Any]] = None) -> KernelDecision:
        self.get_rfq(rfq_id)
        decision = self.kernel.transition(rfq_id, TradeState.CLOSED.value, {"closed_reason": "buyer_closed"}, user_data=user_data, cache=cache)
        if decision.success:
            self._sync_mirror(rfq_id, "closed")
            self.events.try_emit(
                rfq_id, TradeEventType.RFQ_CLOSED,
                payload={"reason": "buyer_closed"}, actor_user_id=user_data["id"]
            )
        return decision

    def _sync_mirror(self, rfq_id: str, status: str):
        try:
            self.supabase.table("rfqs").update({"status": status}).eq("id", rfq_id).execute()
        except Exception as e:
            logger.warning(f"rfqs mirror status update failed for {rfq_id}: {e}")

    def expire_overdue_rfqs(self) -> int:
        """Close open RFQs whose expires_at has passed. Returns how many were closed."""
        now = datetime.now(timezone.utc).isoformat()
        result = self.supabase.table("trades")\
            .select("id, status, metadata")\
            .eq("trade_type", "rfq")\
            .eq("status", TradeState.RFQ_OPEN.value)\
            .lt("expires_at", now)\
            .execute()
        closed = 0
        for trade in result.data or []:
            try:
                updated = self.supabase.table("trades")\
                    .update({
                        "status": TradeState.CLOSED.value,
                        "updated_at": now,
                        "metadata": {
                            **(trade.get("metadata") or {}),
                            "previous_state": TradeState.RFQ_OPEN.value,
                            "closed_reason": "expired"
                        }
                    })\
                    .eq("id", trade["id"])\
                    .eq("status", TradeState.RFQ_OPEN.value)\
                    .execute()
                if not updated.data:
                    continue
                self._sync_mirror(trade["id"], "closed")
                self.events.emit(
                    trade["id"],
                    TradeEventType.RFQ_CLOSED,
                    payload={"reason": "expired"},
                    actor_role="system",
                    status_from=TradeState.RFQ_OPEN.value,
                    status_to=TradeState.CLOSED.value,
                )
                closed += 1
            except Exception as e:
                logger.error(f"Failed to expire RFQ {trade['id']}: {e}")
        return closed
