from supabase import Client
from app.config.settings import settings
from app.core.dependencies import get_profile, is_admin
from app.modules.trades.schemas import TradeCreate, TradeResponse, KernelDecision, ConsensusStatus
from app.modules.trades.state_machine import (
    TradeState, ActorRole, TERMINAL_STATES,
    parse_state, allowed_next_states, is_valid_transition, resolve_actor_role, role_allows,
    can_sign, merge_signatures, validate_consensus, build_signature, generate_trade_dna,
)
from app.modules.trade_events.service import TradeEventService, TradeEventType
from app.modules.shipments.service import ShipmentService
from app.modules.shipments.dispatch import LogisticsDispatcher
from typing import List, Optional, Dict, Any
from fastapi import HTTPException
from datetime import datetime, timezone
import logging

logger = logging.getLogger(__name__)

KERNEL_VERSION = "2026.1"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _block(reason: str, reason_code: str, required_actions: Optional[List[str]] = None) -> KernelDecision:
    return KernelDecision(
        success=False,
        decision="BLOCK",
        reason=reason,
        reason_code=reason_code,
        required_actions=required_actions or []
    )


class TradeKernelService:
    def __init__(self, supabase: Client):
        self.supabase = supabase
        self.events = TradeEventService(supabase)

    def _load_trade(self, trade_id: str) -> Dict[str, Any]:
        result = self.supabase.table("trades")\
            .select("*")\
            .eq("id", trade_id)\
            .maybe_single()\
            .execute()
        if not result or not result.data:
            raise HTTPException(status_code=404, detail="Trade not found")
        return result.data

    def get_trade(self, trade_id: str) -> TradeResponse:
        try:
            return TradeResponse(**self._load_trade(trade_id))
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def list_trades(
        self,
        company_id: Optional[str] = None,
        status: Optional[str] = None,
        trade_type: Optional[str] = None,
        limit: int = 50,
        offset: int = 0
    ) -> List[TradeResponse]:
        """Trades where the company is buyer or seller; all trades when company_id is None (admin)."""
        try:
            columns = ("buyer_id", "seller_id") if company_id else (None,)
            rows: Dict[str, Dict[str, Any]] = {}
            for column in columns:
                query = self.supabase.table("trades").select("*")
                if column:
                    query = query.eq(column, company_id)
                if status:
                    query = query.eq("status", status)
                if trade_type:
                    query = query.eq("trade_type", trade_type)
                result = query.order("created_at", desc=True).limit(limit + offset).execute()
                for row in result.data or []:
                    rows[row["id"]] = row
            ordered = sorted(rows.values(), key=lambda r: r.get("created_at") or "", reverse=True)
            return [TradeResponse(**r) for r in ordered[offset:offset + limit]]
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def create_trade(self, trade_data: TradeCreate, user_id: str, buyer_company_id: str) -> Dict[str, Any]:
        """Insert a kernel trade. RFQ trades are mirrored into the rfqs table under the same id."""
        try:
            status = trade_data.status or (
                TradeState.RFQ_OPEN.value if trade_data.trade_type == "rfq" else TradeState.DRAFT.value
            )
            if parse_state(status) is None:
                raise HTTPException(status_code=400, detail=f"Unknown trade status: {status}")
            now = _now()
            payload = trade_data.model_dump(exclude={"status", "metadata"})
            payload.update({
                "buyer_id": buyer_company_id,
                "created_by": user_id,
                "status": status,
                "metadata": {
                    **trade_data.metadata,
                    "created_at_platform": now,
                    "kernel_version": KERNEL_VERSION
                },
                "created_at": now,
                "updated_at": now,
            })
            result = self.supabase.table("trades").insert(payload).execute()
            if not result.data:
                raise HTTPException(status_code=500, detail="Failed to create trade")
            trade = result.data[0]

            if trade_data.trade_type == "rfq":
                self._mirror_rfq(trade, trade_data, user_id)
                self.events.try_emit(
                    trade["id"],
                    TradeEventType.RFQ_CREATED,
                    payload={"title": trade.get("title"), "quantity": trade.get("quantity")},
                    actor_user_id=user_id,
                    actor_role=ActorRole.BUYER.value,
                )
            return trade
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def _mirror_rfq(self, trade: Dict[str, Any], trade_data: TradeCreate, user_id: str):
        """Legacy rfqs row with the trade's id. A failed mirror is logged, not raised."""
        status = trade["status"]
        try:
            self.supabase.table("rfqs").insert({
                "id": trade["id"],
                "buyer_company_id": trade["buyer_id"],
                "buyer_user_id": user_id,
                "category_id": trade_data.category_id,
                "title": trade_data.title,
                "description": trade_data.description,
                "quantity": trade_data.quantity,
                "unit": trade_data.quantity_unit or "pieces",
                "target_price": trade_data.target_price,
                "status": "open" if status == TradeState.RFQ_OPEN.value else status,
                "expires_at": trade_data.expires_at,
                "metadata": trade["metadata"],
            }).execute()
        except Exception as e:
            logger.error(f"rfqs mirror insert failed for trade {trade['id']}: {e}")

    def _actor_profile(self, user_data: Dict[str, Any], cache: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        profile = dict(get_profile(user_data["id"], self.supabase, cache))
        if is_admin(user_data, self.supabase, cache):
            profile["is_admin"] = True
        return profile

    def transition(
        self,
        trade_id: str,
        next_state: Optional[str],
        metadata: Optional[Dict[str, Any]] = None,
        dry_run: bool = False,
        user_data: Optional[Dict[str, Any]] = None,
        cache: Optional[Dict[str, Any]] = None
    ) -> KernelDecision:
        """Validate and apply a state change. Refusals come back as BLOCK decisions, not errors."""
        metadata = dict(metadata or {})
        try:
            trade = self._load_trade(trade_id)
            current = parse_state(trade.get("status"), TradeState.DRAFT)
            if current is None:
                return _block(f"Trade has unknown status {trade.get('status')}", "UNKNOWN_STATE")

            desired = None
            if next_state:
                desired = parse_state(next_state)
                if desired is None:
                    return _block(f"Unknown target state {next_state}", "ILLEGAL_TRANSITION")
            elif dry_run:
                options = allowed_next_states(current)
                desired = options[0] if options else None
            if desired is None:
                if current in TERMINAL_STATES:
                    return _block("Trade is closed", "TERMINAL_STATE")
                return _block("next_state is required", "NEXT_STATE_REQUIRED")

            profile = self._actor_profile(user_data, cache)
            role = resolve_actor_role(profile, trade)
            if role is ActorRole.UNKNOWN:
                return _block("Actor not authorized", "ACTOR_UNAUTHORIZED")

            new_signatures = [
                s for s in metadata.get("signatures") or []
                if s not in ((trade.get("metadata") or {}).get("signatures") or [])
            ]
            forbidden = [s for s in new_signatures if not can_sign(role, s)]
            if forbidden:
                return _block(f"Role {role.value} cannot add these signatures", "ROLE_FORBIDDEN", forbidden)

            recording_only = desired == current
            if recording_only:
                if not new_signatures:
                    return _block(f"Trade is already {current.value}", "ILLEGAL_TRANSITION")
            else:
                if not role_allows(role, desired):
                    return _block(f"Role {role.value} may not move a trade to {desired.value}", "ROLE_FORBIDDEN")
                if not is_valid_transition(current, desired):
                    return _block(f"Illegal transition from {current.value} to {desired.value}", "ILLEGAL_TRANSITION")
                entry_block = self._check_entry_conditions(trade, desired)
                if entry_block:
                    return entry_block

            if desired is TradeState.SETTLED and not recording_only:
                consensus = validate_consensus(trade.get("metadata"), metadata)
                if not consensus.compliant:
                    return _block("3-Key Consensus Required", "CONSENSUS_REQUIRED", consensus.missing)

            if dry_run:
                return KernelDecision(success=True, decision="ALLOW", next_state=desired.value)

            if desired is TradeState.SETTLED and not recording_only:
                return self._settle(trade, current, metadata, user_data["id"], role)

            if desired is TradeState.ACCEPTED and not recording_only:
                metadata.setdefault("buyer_accepted", True)
                metadata.setdefault("accepted_at", _now())

            updated = self._commit(trade, current, desired, metadata, user_data["id"])
            if updated is None:
                return _block("Trade was modified by another request; reload and retry", "CONCURRENT_MODIFICATION")
            if not recording_only:
                self._run_side_effects(trade, desired, metadata)

            self.events.emit(
                trade_id,
                TradeEventType.CONSENSUS_SIGNED if recording_only else TradeEventType.STATE_TRANSITION,
                payload=metadata,
                actor_user_id=user_data["id"],
                actor_role=role.value,
                status_from=current.value,
                status_to=desired.value,
                decision="ALLOW",
            )
            return KernelDecision(success=True, decision="ALLOW", next_state=desired.value, trade=updated)
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Kernel transition failed for trade {trade_id}: {e}")
            raise HTTPException(status_code=500, detail=str(e))

    def _check_entry_conditions(self, trade: Dict[str, Any], desired: TradeState) -> Optional[KernelDecision]:
        if desired is TradeState.ESCROW_FUNDED:
            result = self.supabase.table("escrows")\
                .select("id")\
                .eq("trade_id", trade["id"])\
                .eq("status", "funded")\
                .execute()
            if not result.data:
                return _block("Escrow must be funded first", "ESCROW_NOT_FUNDED", ["fund_escrow"])
        if desired is TradeState.DELIVERED:
            if not ShipmentService(self.supabase).find_by_trade(trade["id"]):
                return _block("No shipment exists for this trade", "SHIPMENT_MISSING", ["create_shipment"])
        return None

    def _run_side_effects(self, trade: Dict[str, Any], desired: TradeState, metadata: Dict[str, Any]):
        """Dispatch and shipment bookkeeping for a committed transition. Failures are logged, never raised."""
        trade_id = trade["id"]
        shipments = ShipmentService(self.supabase)
        if desired is TradeState.PICKUP_SCHEDULED:
            try:
                shipments.ensure_shipment(trade_id, destination=trade.get("delivery_location"))
                result = LogisticsDispatcher(self.supabase).dispatch(
                    trade_id,
                    pickup_city=metadata.get("pickup_city") or (trade.get("metadata") or {}).get("pickup_city"),
                    cargo_type=metadata.get("cargo_type") or trade.get("title"),
                    pickup_country=metadata.get("pickup_country") or "Nigeria",
                    weight_kg=metadata.get("weight_kg"),
                    volume_m3=metadata.get("volume_m3"),
                    pickup_window_start=metadata.get("pickup_window_start"),
                )
                if not result.get("success"):
                    logger.warning(f"Dispatch failed for trade {trade_id}: {result.get('error')}")
                    self.events.try_emit(
                        trade_id, TradeEventType.DISPATCH_FAILED,
                        payload={"error": result.get("error")}, actor_role="system"
                    )
            except Exception as e:
                logger.error(f"Pickup side effects failed for trade {trade_id}: {e}")
                self.events.try_emit(
                    trade_id, TradeEventType.DISPATCH_FAILED,
                    payload={"error": str(e)}, actor_role="system"
                )
        elif desired is TradeState.IN_TRANSIT:
            try:
                shipments.set_status_for_trade(trade_id, "in_transit")
            except Exception as e:
                logger.error(f"Shipment in_transit update failed for trade {trade_id}: {e}")
        elif desired is TradeState.DELIVERED:
            try:
                shipments.set_status_for_trade(trade_id, "delivered")
            except Exception as e:
                logger.error(f"Shipment delivered update failed for trade {trade_id}: {e}")

    def _commit(
        self,
        trade: Dict[str, Any],
        current: TradeState,
        desired: TradeState,
        metadata: Dict[str, Any],
        user_id: str
    ) -> Optional[Dict[str, Any]]:
        """Conditional update: applies only while the row still has the status that was read."""
        existing = trade.get("metadata") or {}
        dna = generate_trade_dna(trade["id"], current.value, desired.value, user_id, metadata, settings.hash_salt)
        update_data = {
            "status": desired.value,
            "updated_at": _now(),
            "metadata": {
                **existing,
                **metadata,
                "signatures": merge_signatures(existing.get("signatures"), metadata.get("signatures")),
                "trade_dna": dna,
                "previous_state": current.value
            }
        }
        query = self.supabase.table("trades").update(update_data).eq("id", trade["id"])
        if trade.get("status") is None:
            query = query.is_("status", "null")
        else:
            query = query.eq("status", trade["status"])
        result = query.execute()
        return result.data[0] if result.data else None

    def _settle(
        self,
        trade: Dict[str, Any],
        current: TradeState,
        metadata: Dict[str, Any],
        user_id: str,
        role: ActorRole
    ) -> KernelDecision:
        trade_id = trade["id"]
        try:
            result = self.supabase.rpc("kernel_settle_trade", {
                "p_trade_id": trade_id,
                "p_user_id": user_id,
                "p_metadata": metadata
            }).execute()
            settled = result.data[0] if isinstance(result.data, list) and result.data else result.data
            settlement = {"method": "rpc"}
        except Exception as e:
            logger.warning(f"kernel_settle_trade unavailable for trade {trade_id}, settling directly: {e}")
            settled = self._commit(trade, current, TradeState.SETTLED, metadata, user_id)
            if settled is None:
                return _block("Trade was modified by another request; reload and retry", "CONCURRENT_MODIFICATION")
            settlement = {"method": "direct", "escrow_released": self._release_escrow_on_settlement(trade_id)}

        self.events.emit(
            trade_id,
            TradeEventType.STATE_TRANSITION,
            payload=metadata,
            actor_user_id=user_id,
            actor_role=role.value,
            status_from=current.value,
            status_to=TradeState.SETTLED.value,
            decision="ALLOW",
        )
        return KernelDecision(
            success=True,
            decision="ALLOW",
            next_state=TradeState.SETTLED.value,
            trade=settled if isinstance(settled, dict) else None,
            settlement=settlement
        )

    def _release_escrow_on_settlement(self, trade_id: str) -> bool:
        now = _now()
        result = self.supabase.table("escrows")\
            .update({"status": "released", "balance": 0, "released_at": now, "updated_at": now})\
            .eq("trade_id", trade_id)\
            .eq("status", "funded")\
            .execute()
        if result.data:
            self.events.try_emit(
                trade_id,
                TradeEventType.PAYMENT_RELEASED,
                payload={"escrow_id": result.data[0]["id"], "amount": result.data[0].get("amount"), "via": "settlement"},
                actor_role="system",
            )
            return True
        return False

    def request_consensus(
        self,
        trade_id: str,
        party: str,
        user_data: Dict[str, Any],
        cache: Optional[Dict[str, Any]] = None
    ) -> KernelDecision:
        """Sign for a party by recording its signature through a same-state transition."""
        trade = self._load_trade(trade_id)
        signature = build_signature(party, trade_id)
        return self.transition(
            trade_id,
            trade.get("status") or TradeState.DRAFT.value,
            {"signatures": [signature], "consensus_event": f"{party.upper()}_SIGNED"},
            user_data=user_data,
            cache=cache
        )

    def check_consensus(self, trade_id: str) -> ConsensusStatus:
        try:
            trade = self._load_trade(trade_id)
            check = validate_consensus(trade.get("metadata"), None)
            sigs = check.signatures
            return ConsensusStatus(
                trade_id=trade_id,
                buyer_signed=any(s.startswith("BUYER_SIG_") for s in sigs),
                seller_signed=any(s.startswith("SELLER_SIG_") for s in sigs),
                logistics_signed=any(s.startswith("LOGISTICS_ORACLE_") for s in sigs),
                ai_signed=any(s.startswith("AI_SENTINEL_") for s in sigs),
                consensus_reached=check.compliant,
                missing=check.missing,
                signatures=sigs
            )
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def get_next_action(
        self,
        trade_id: str,
        user_data: Dict[str, Any],
        cache: Optional[Dict[str, Any]] = None
    ) -> KernelDecision:
        """Dry-run toward the first allowed successor state."""
        return self.transition(trade_id, None, dry_run=True, user_data=user_data, cache=cache)
