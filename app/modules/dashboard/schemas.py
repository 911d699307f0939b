from pydantic import BaseModel
from typing import Dict


class EscrowTotals(BaseModel):
    held: float = 0.0
    released: float = 0.0
    refunded: float = 0.0
    pending: float = 0.0


class DashboardStats(BaseModel):
    company_id: str
    trades_by_status: Dict[str, int] = {}
    active_trades: int = 0
    open_rfqs: int = 0
    pending_quotes_received: int = 0
    pending_quotes_sent: int = 0
    escrow_totals: EscrowTotals = EscrowTotals()
    source: str = "rpc"
