from supabase import Client
from app.modules.quotes.schemas import QuoteCreate, QuoteResponse, QuoteSelection
from app.modules.trades.service import TradeKernelService
from app.modules.trades.state_machine import TradeState
from app.modules.trade_events.service import TradeEventService, TradeEventType
from app.modules.notifications.service import NotificationService
from app.modules.companies.service import _is_duplicate_key
from typing import List, Optional, Dict, Any
from fastapi import HTTPException
from datetime import datetime, timezone
import logging

logger = logging.getLogger(__name__)


class QuoteService:
    def __init__(self, supabase: Client):
        self.supabase = supabase
        self.events = TradeEventService(supabase)
        self.notifications = NotificationService(supabase)

    def load_rfq(self, rfq_id: str) -> Dict[str, Any]:
        result = self.supabase.table("trades")\
            .select("*")\
            .eq("id", rfq_id)\
            .maybe_single()\
            .execute()
        if not result or not result.data:
            raise HTTPException(status_code=404, detail="RFQ not found")
        return result.data

    def _load_quote(self, quote_id: str) -> Dict[str, Any]:
        result = self.supabase.table("quotes")\
            .select("*")\
            .eq("id", quote_id)\
            .maybe_single()\
            .execute()
        if not result or not result.data:
            raise HTTPException(status_code=404, detail="Quote not found")
        return result.data

    def submit_quote(self, rfq_id: str, form: QuoteCreate, user_id: str, supplier_company_id: str) -> QuoteResponse:
        """Quote on an open RFQ. One quote per supplier company per RFQ."""
        try:
            rfq = self.load_rfq(rfq_id)
            if rfq.get("status") != TradeState.RFQ_OPEN.value:
                raise HTTPException(status_code=400, detail="RFQ is not open for quotes")
            if rfq.get("buyer_id") == supplier_company_id:
                raise HTTPException(status_code=400, detail="You cannot quote on your own RFQ")

            existing = self.supabase.table("quotes")\
                .select("id")\
                .eq("trade_id", rfq_id)\
                .eq("supplier_company_id", supplier_company_id)\
                .execute()
            if existing.data:
                raise HTTPException(status_code=409, detail="Your company has already quoted on this RFQ")

            now = datetime.now(timezone.utc).isoformat()
            payload = form.model_dump(mode="json")
            payload.update({
                "trade_id": rfq_id,
                "supplier_company_id": supplier_company_id,
                "submitted_by": user_id,
                "status": "submitted",
                "created_at": now,
                "updated_at": now,
            })
            try:
                result = self.supabase.table("quotes").insert(payload).execute()
            except Exception as e:
                if _is_duplicate_key(e):
                    raise HTTPException(status_code=409, detail="Your company has already quoted on this RFQ")
                raise
            if not result.data:
                raise HTTPException(status_code=500, detail="Failed to submit quote")
            quote = result.data[0]

            self.events.try_emit(
                rfq_id,
                TradeEventType.QUOTE_RECEIVED,
                payload={
                    "quote_id": quote["id"],
                    "supplier_company_id": supplier_company_id,
                    "total_price": quote.get("total_price"),
                    "currency": quote.get("currency"),
                },
                actor_user_id=user_id,
                actor_role="seller",
            )
            if rfq.get("buyer_id"):
                self.notifications.notify_company(
                    rfq["buyer_id"],
                    title="New quote received",
                    message=f'A supplier quoted {quote.get("currency")} {quote.get("total_price")} on "{rfq.get("title")}"',
                    notification_type="quote",
                    link=f"/dashboard/rfqs/{rfq_id}",
                    related_id=quote["id"],
                )
            return QuoteResponse(**quote)
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def list_quotes(self, rfq_id: str, supplier_company_id: Optional[str] = None) -> List[QuoteResponse]:
        """All quotes on an RFQ, or only one supplier's when supplier_company_id is given."""
        try:
            query = self.supabase.table("quotes")\
                .select("*")\
                .eq("trade_id", rfq_id)
            if supplier_company_id:
                query = query.eq("supplier_company_id", supplier_company_id)
            result = query.order("created_at").execute()
            return [QuoteResponse(**q) for q in result.data or []]
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def _require_buyer(self, rfq: Dict[str, Any], company_id: Optional[str], admin: bool):
        if not admin and (not company_id or rfq.get("buyer_id") != company_id):
            raise HTTPException(status_code=403, detail="Only the buyer can decide on quotes")

    def _set_status(self, quote_id: str, status: str) -> Dict[str, Any]:
        result = self.supabase.table("quotes")\
            .update({"status": status, "updated_at": datetime.now(timezone.utc).isoformat()})\
            .eq("id", quote_id)\
            .execute()
        if not result.data:
            raise HTTPException(status_code=500, detail="Failed to update quote")
        return result.data[0]

    def select_quote(
        self,
        quote_id: str,
        user_data: Dict[str, Any],
        company_id: Optional[str],
        admin: bool = False,
        cache: Optional[Dict[str, Any]] = None
    ) -> QuoteSelection:
        """Accept one quote: the RFQ moves to quoted, then the quote is selected and the rest rejected.

        Nothing is written when the kernel refuses the move.
        """
        try:
            quote = self._load_quote(quote_id)
            rfq = self.load_rfq(quote["trade_id"])
            self._require_buyer(rfq, company_id, admin)
            if quote.get("status") != "submitted":
                raise HTTPException(status_code=400, detail=f"Quote is already {quote.get('status')}")

            kernel = TradeKernelService(self.supabase)
            check = kernel.transition(rfq["id"], TradeState.QUOTED.value, dry_run=True, user_data=user_data, cache=cache)
            if not check.success:
                return QuoteSelection(quote=QuoteResponse(**quote), decision=check)

            decision = kernel.transition(
                rfq["id"], TradeState.QUOTED.value, {"selected_quote_id": quote_id},
                user_data=user_data, cache=cache
            )
            if not decision.success:
                return QuoteSelection(quote=QuoteResponse(**quote), decision=decision)

            selected = self._set_status(quote_id, "selected")
            for other in self.list_quotes(rfq["id"]):
                if other.id != quote_id and other.status == "submitted":
                    self._set_status(other.id, "rejected")

            self.supabase.table("trades")\
                .update({
                    "seller_id": quote["supplier_company_id"],
                    "total_value": quote.get("total_price"),
                    "currency": quote.get("currency") or rfq.get("currency"),
                    "updated_at": datetime.now(timezone.utc).isoformat()
                })\
                .eq("id", rfq["id"])\
                .execute()

            self.events.try_emit(
                rfq["id"],
                TradeEventType.QUOTE_SELECTED,
                payload={
                    "quote_id": quote_id,
                    "supplier_company_id": quote["supplier_company_id"],
                    "total_price": quote.get("total_price"),
                },
                actor_user_id=user_data["id"],
                actor_role="admin" if admin else "buyer",
            )
            self.notifications.notify_company(
                quote["supplier_company_id"],
                title="Your quote was accepted",
                message=f'The buyer accepted your quote on "{rfq.get("title")}"',
                notification_type="quote",
                link=f"/dashboard/trades/{rfq['id']}",
                related_id=quote_id,
            )
            return QuoteSelection(quote=QuoteResponse(**selected), decision=decision)
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def reject_quote(
        self,
        quote_id: str,
        user_data: Dict[str, Any],
        company_id: Optional[str],
        admin: bool = False,
        reason: Optional[str] = None
    ) -> QuoteResponse:
        try:
            quote = self._load_quote(quote_id)
            rfq = self.load_rfq(quote["trade_id"])
            self._require_buyer(rfq, company_id, admin)
            if quote.get("status") != "submitted":
                raise HTTPException(status_code=400, detail=f"Quote is already {quote.get('status')}")

            rejected = self._set_status(quote_id, "rejected")
            self.events.try_emit(
                rfq["id"],
                TradeEventType.QUOTE_REJECTED,
                payload={"quote_id": quote_id, "reason": reason},
                actor_user_id=user_data["id"],
                actor_role="admin" if admin else "buyer",
            )
            self.notifications.notify_company(
                quote["supplier_company_id"],
                title="Quote not selected",
                message=reason or f'Your quote on "{rfq.get("title")}" was declined',
                notification_type="quote",
                related_id=quote_id,
            )
            return QuoteResponse(**rejected)
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))
