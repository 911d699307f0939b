from supabase import Client
from app.modules.dashboard.schemas import DashboardStats, EscrowTotals
from app.modules.trades.state_machine import TradeState
from typing import Dict, Any, List
from fastapi import HTTPException
import logging

logger = logging.getLogger(__name__)

INACTIVE_STATES = {TradeState.DRAFT.value, TradeState.SETTLED.value, TradeState.CLOSED.value}

ESCROW_BUCKETS = {"funded": "held", "disputed": "held", "released": "released", "refunded": "refunded", "pending": "pending"}


class DashboardService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def company_stats(self, company_id: str) -> DashboardStats:
        """company_dashboard_stats RPC, aggregated here when the RPC is missing or fails."""
        try:
            result = self.supabase.rpc("company_dashboard_stats", {"p_company_id": company_id}).execute()
            data = result.data[0] if isinstance(result.data, list) and result.data else result.data
            if not isinstance(data, dict):
                raise ValueError("empty RPC result")
            return DashboardStats(**{**data, "company_id": company_id, "source": "rpc"})
        except Exception as e:
            logger.warning(f"company_dashboard_stats unavailable for {company_id}, aggregating: {e}")
        try:
            return self._aggregate(company_id)
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def _company_rows(self, table: str, columns: str, company_id: str) -> List[Dict[str, Any]]:
        """Rows where the company is buyer or seller, without duplicates."""
        rows: Dict[str, Dict[str, Any]] = {}
        for column in ("buyer_id", "seller_id"):
            result = self.supabase.table(table)\
                .select(columns)\
                .eq(column, company_id)\
                .execute()
            for row in result.data or []:
                rows[row["id"]] = row
        return list(rows.values())

    def _aggregate(self, company_id: str) -> DashboardStats:
        trades = self._company_rows("trades", "id, status, trade_type, buyer_id", company_id)
        by_status: Dict[str, int] = {}
        for trade in trades:
            by_status[trade.get("status")] = by_status.get(trade.get("status"), 0) + 1

        my_open_rfqs = [
            t["id"] for t in trades
            if t.get("buyer_id") == company_id and t.get("status") == TradeState.RFQ_OPEN.value
        ]
        received = 0
        if my_open_rfqs:
            quotes = self.supabase.table("quotes")\
                .select("id")\
                .in_("trade_id", my_open_rfqs)\
                .eq("status", "submitted")\
                .execute()
            received = len(quotes.data or [])
        sent = self.supabase.table("quotes")\
            .select("id")\
            .eq("supplier_company_id", company_id)\
            .eq("status", "submitted")\
            .execute()

        totals = EscrowTotals()
        for escrow in self._company_rows("escrows", "id, status, amount", company_id):
            bucket = ESCROW_BUCKETS.get(escrow.get("status"))
            if bucket:
                setattr(totals, bucket, getattr(totals, bucket) + float(escrow.get("amount") or 0))

        return DashboardStats(
            company_id=company_id,
            trades_by_status=by_status,
            active_trades=sum(n for s, n in by_status.items() if s not in INACTIVE_STATES),
            open_rfqs=len(my_open_rfqs),
            pending_quotes_received=received,
            pending_quotes_sent=len(sent.data or []),
            escrow_totals=totals,
            source="aggregate"
        )
