from supabase import Client
from app.modules.escrow.schemas import EscrowCreate, EscrowResponse, EscrowActionResult
from app.modules.escrow.commission import calculate_commission, waiver, HIGH_VALUE_RATE
from app.modules.trade_events.service import TradeEventService, TradeEventType
from app.modules.shipments.service import ShipmentService
from typing import Optional, Dict, Any, Tuple
from fastapi import HTTPException
from datetime import datetime, timedelta, timezone
import logging

logger = logging.getLogger(__name__)

ESCROW_TTL_DAYS = 30


def _now() -> datetime:
    return datetime.now(timezone.utc)


class EscrowService:
    """Escrow lifecycle: pending -> funded -> released | refunded.

    Money stays locked until the shipment is delivered and the buyer has
    accepted it. Every step appends to the trade ledger.
    """

    def __init__(self, supabase: Client):
        self.supabase = supabase
        self.events = TradeEventService(supabase)

    def load(self, escrow_id: str) -> Dict[str, Any]:
        result = self.supabase.table("escrows")\
            .select("*")\
            .eq("id", escrow_id)\
            .maybe_single()\
            .execute()
        if not result or not result.data:
            raise HTTPException(status_code=404, detail="Escrow not found")
        return result.data

    def _transition(self, escrow: Dict[str, Any], expected_status: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        """Update only while the escrow is still in expected_status."""
        result = self.supabase.table("escrows")\
            .update({**changes, "updated_at": _now().isoformat()})\
            .eq("id", escrow["id"])\
            .eq("status", expected_status)\
            .execute()
        if not result.data:
            raise HTTPException(status_code=409, detail="Escrow was modified by another request")
        return result.data[0]

    def create_escrow(self, request: EscrowCreate, trade: Dict[str, Any], user_id: str) -> EscrowResponse:
        try:
            amount = request.amount if request.amount is not None else trade.get("total_value")
            if not amount or amount <= 0:
                raise HTTPException(status_code=400, detail="Escrow amount must be greater than 0")

            existing = self.supabase.table("escrows")\
                .select("id, status")\
                .eq("trade_id", trade["id"])\
                .in_("status", ["pending", "funded", "disputed"])\
                .execute()
            if existing.data:
                raise HTTPException(status_code=409, detail="An active escrow already exists for this trade")

            now = _now()
            result = self.supabase.table("escrows").insert({
                "trade_id": trade["id"],
                "buyer_id": trade.get("buyer_id"),
                "seller_id": trade.get("seller_id"),
                "amount": amount,
                "balance": amount,
                "currency": request.currency or trade.get("currency") or "USD",
                "payment_method": request.payment_method,
                "status": "pending",
                "created_at": now.isoformat(),
                "updated_at": now.isoformat(),
                "expires_at": (now + timedelta(days=ESCROW_TTL_DAYS)).isoformat()
            }).execute()
            if not result.data:
                raise HTTPException(status_code=500, detail="Failed to create escrow")
            escrow = result.data[0]

            self.events.try_emit(
                trade["id"],
                TradeEventType.ESCROW_CREATED,
                payload={"escrow_id": escrow["id"], "amount": amount, "currency": escrow.get("currency")},
                actor_user_id=user_id,
            )
            return EscrowResponse(**escrow)
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def fund_escrow(
        self,
        escrow_id: str,
        payment_reference: Optional[str] = None,
        payment_method: Optional[str] = None,
        actor_user_id: Optional[str] = None,
        amount: Optional[float] = None
    ) -> EscrowResponse:
        """Mark a pending escrow funded. amount is what was actually received and becomes the balance."""
        try:
            escrow = self.load(escrow_id)
            if escrow.get("status") != "pending":
                raise HTTPException(status_code=400, detail=f"Cannot fund escrow in {escrow.get('status')} status")
            balance = amount if amount is not None else escrow.get("amount")
            changes = {
                "status": "funded",
                "balance": balance,
                "funded_at": _now().isoformat(),
                "payment_reference": payment_reference,
            }
            if payment_method:
                changes["payment_method"] = payment_method
            funded = self._transition(escrow, "pending", changes)

            self.events.try_emit(
                escrow["trade_id"],
                TradeEventType.ESCROW_FUNDED,
                payload={
                    "escrow_id": escrow_id,
                    "payment_reference": payment_reference,
                    "amount": balance,
                    "currency": escrow.get("currency")
                },
                actor_user_id=actor_user_id,
                actor_role=None if actor_user_id else "system",
            )
            return EscrowResponse(**funded)
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def release_conditions(self, trade_id: str) -> Tuple[bool, Optional[str]]:
        """(ok, reason). Delivery confirmed and buyer acceptance are both required."""
        shipment = ShipmentService(self.supabase).find_by_trade(trade_id)
        if not shipment or shipment.get("status") != "delivered":
            return False, "Shipment not marked delivered"
        trade = self.supabase.table("trades")\
            .select("metadata")\
            .eq("id", trade_id)\
            .maybe_single()\
            .execute()
        metadata = (trade.data or {}).get("metadata") if trade else None
        if not (metadata or {}).get("buyer_accepted"):
            return False, "Buyer has not accepted delivery"
        return True, None

    def release_escrow(
        self,
        escrow_id: str,
        reason: str = "delivery_accepted",
        deal_type: str = "standard",
        waiver_reason: Optional[str] = None,
        actor_user_id: Optional[str] = None
    ) -> EscrowActionResult:
        try:
            escrow = self.load(escrow_id)
            if escrow.get("status") != "funded":
                raise HTTPException(status_code=400, detail="Escrow must be funded to release")
            ok, why = self.release_conditions(escrow["trade_id"])
            if not ok:
                raise HTTPException(status_code=400, detail=f"Cannot release escrow: {why}")

            amount = escrow.get("balance") or escrow.get("amount") or 0
            released = self._transition(escrow, "funded", {
                "status": "released",
                "balance": 0,
                "released_at": _now().isoformat(),
                "release_reason": reason,
            })
            payment = self._record_movement(escrow, "payments", {
                "escrow_id": escrow_id,
                "trade_id": escrow["trade_id"],
                "recipient_id": escrow.get("seller_id"),
                "amount": amount,
                "currency": escrow.get("currency"),
                "payment_type": "escrow_release",
                "reason": reason,
                "status": "processing",
                "created_at": _now().isoformat()
            }, "funded")
            commission = self._record_commission(escrow, amount, deal_type, waiver_reason)

            self.events.try_emit(
                escrow["trade_id"],
                TradeEventType.PAYMENT_RELEASED,
                payload={
                    "escrow_id": escrow_id,
                    "payment_id": payment["id"],
                    "amount": amount,
                    "reason": reason
                },
                actor_user_id=actor_user_id,
            )
            return EscrowActionResult(
                escrow=EscrowResponse(**released),
                payment=payment,
                commission=commission
            )
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def _record_movement(self, escrow: Dict[str, Any], table: str, row: Dict[str, Any], previous_status: str) -> Dict[str, Any]:
        """Insert the payout or refund row for an escrow that already left previous_status.

        If the insert fails the escrow goes back to previous_status with its old balance.
        """
        try:
            result = self.supabase.table(table).insert(row).execute()
            if result.data:
                return result.data[0]
            error = "no row returned"
        except Exception as e:
            error = str(e)
        logger.error(f"{table} row for escrow {escrow['id']} not recorded ({error}); restoring {previous_status}")
        self.supabase.table("escrows")\
            .update({
                "status": previous_status,
                "balance": escrow.get("balance"),
                "updated_at": _now().isoformat()
            })\
            .eq("id", escrow["id"])\
            .execute()
        raise HTTPException(status_code=500, detail=f"Failed to record {table[:-1]}")

    def _record_commission(
        self,
        escrow: Dict[str, Any],
        amount: float,
        deal_type: str,
        waiver_reason: Optional[str]
    ) -> Dict[str, Any]:
        breakdown = calculate_commission(amount, deal_type, escrow.get("currency") or "USD")
        waived = waiver(waiver_reason)
        try:
            self.supabase.table("commissions").insert({
                "trade_id": escrow["trade_id"],
                "escrow_id": escrow["id"],
                "deal_value": amount,
                "commission_rate": breakdown["rate"],
                "commission_amount": breakdown["commission_amount"],
                "currency": breakdown["currency"],
                "deal_type": "high_value" if breakdown["rate"] == HIGH_VALUE_RATE else deal_type,
                "status": "waived" if waived["should_waive"] else "earned",
                "waiver_reason": waived["reason"],
                "recorded_at": _now().isoformat()
            }).execute()
        except Exception as e:
            logger.warning(f"Commission for escrow {escrow['id']} not recorded: {e}")
        return {**breakdown, "waiver": waived}

    def refund_escrow(self, escrow_id: str, reason: str = "dispute_lost_by_seller", actor_user_id: Optional[str] = None) -> EscrowActionResult:
        try:
            escrow = self.load(escrow_id)
            status = escrow.get("status")
            if status not in ("funded", "disputed"):
                raise HTTPException(status_code=400, detail="Cannot refund escrow in this status")

            amount = escrow.get("balance") or escrow.get("amount") or 0
            refunded = self._transition(escrow, status, {
                "status": "refunded",
                "balance": 0,
                "refunded_at": _now().isoformat(),
            })
            refund = self._record_movement(escrow, "refunds", {
                "escrow_id": escrow_id,
                "trade_id": escrow["trade_id"],
                "recipient_id": escrow.get("buyer_id"),
                "amount": amount,
                "currency": escrow.get("currency"),
                "reason": reason,
                "status": "processing",
                "created_at": _now().isoformat()
            }, status)
            self.events.try_emit(
                escrow["trade_id"],
                TradeEventType.REFUND_INITIATED,
                payload={"escrow_id": escrow_id, "refund_id": refund["id"], "amount": amount, "reason": reason},
                actor_user_id=actor_user_id,
            )
            return EscrowActionResult(escrow=EscrowResponse(**refunded), refund=refund)
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def get_escrow_for_trade(self, trade_id: str) -> Optional[EscrowResponse]:
        """Most recent escrow of the trade, None when there is none."""
        try:
            result = self.supabase.table("escrows")\
                .select("*")\
                .eq("trade_id", trade_id)\
                .order("created_at", desc=True)\
                .limit(1)\
                .execute()
            return EscrowResponse(**result.data[0]) if result.data else None
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))
