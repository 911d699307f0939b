import secrets
import string
from supabase import Client
from app.modules.shipments.schemas import ShipmentCreate, ShipmentStatusUpdate, ShipmentResponse, ShipmentTracking
from app.modules.trade_events.service import TradeEventService, TradeEventType
from typing import Optional, Dict, Any
from fastapi import HTTPException
from datetime import datetime, timezone
import logging

logger = logging.getLogger(__name__)

SHIPMENT_STATUSES = ("pending", "picked_up", "in_transit", "customs_hold", "out_for_delivery", "delivered")

# Ledger event recorded when a shipment enters a status
SHIPMENT_EVENTS = {
    "pending": TradeEventType.SHIPMENT_CREATED,
    "picked_up": TradeEventType.PICKUP_CONFIRMED,
    "in_transit": TradeEventType.IN_TRANSIT,
    "customs_hold": TradeEventType.COMPLIANCE_CHECK_FAILED,
    "out_for_delivery": TradeEventType.DELIVERY_SCHEDULED,
    "delivered": TradeEventType.DELIVERED,
}

TRACKING_EVENT_TYPES = sorted({e.value for e in SHIPMENT_EVENTS.values()} | {
    TradeEventType.PICKUP_SCHEDULED.value,
    TradeEventType.DISPATCH_FAILED.value,
    TradeEventType.DELIVERY_ACCEPTED.value,
})

_TRACKING_ALPHABET = string.ascii_uppercase + string.digits


def generate_tracking_number() -> str:
    return "AFK-" + "".join(secrets.choice(_TRACKING_ALPHABET) for _ in range(8))


class ShipmentService:
    def __init__(self, supabase: Client):
        self.supabase = supabase
        self.events = TradeEventService(supabase)

    def find_by_trade(self, trade_id: str) -> Optional[Dict[str, Any]]:
        result = self.supabase.table("shipments")\
            .select("*")\
            .eq("trade_id", trade_id)\
            .maybe_single()\
            .execute()
        return result.data if result else None

    def ensure_shipment(self, trade_id: str, **fields) -> Dict[str, Any]:
        """Return the trade's shipment, creating a pending one when none exists."""
        existing = self.find_by_trade(trade_id)
        if existing:
            return existing
        now = datetime.now(timezone.utc).isoformat()
        insert_data = {
            "trade_id": trade_id,
            "status": "pending",
            "tracking_number": generate_tracking_number(),
            "metadata": {},
            "created_at": now,
            "updated_at": now,
        }
        insert_data.update({k: v for k, v in fields.items() if v is not None})
        result = self.supabase.table("shipments").insert(insert_data).execute()
        if not result.data:
            raise HTTPException(status_code=500, detail="Failed to create shipment")
        shipment = result.data[0]
        self.events.try_emit(
            trade_id,
            TradeEventType.SHIPMENT_CREATED,
            payload={"shipment_id": shipment["id"], "tracking_number": shipment["tracking_number"]},
            actor_role="system",
        )
        return shipment

    def create_shipment(self, shipment_data: ShipmentCreate, user_id: str) -> ShipmentResponse:
        try:
            if self.find_by_trade(shipment_data.trade_id):
                raise HTTPException(status_code=409, detail="Trade already has a shipment")
            shipment = self.ensure_shipment(
                shipment_data.trade_id,
                carrier=shipment_data.carrier,
                logistics_company_id=shipment_data.logistics_company_id,
                origin=shipment_data.origin,
                destination=shipment_data.destination,
                estimated_delivery=shipment_data.estimated_delivery,
                metadata={**shipment_data.metadata, "created_by": user_id},
            )
            return ShipmentResponse(**shipment)
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def get_shipment(self, shipment_id: str) -> ShipmentResponse:
        try:
            result = self.supabase.table("shipments")\
                .select("*")\
                .eq("id", shipment_id)\
                .maybe_single()\
                .execute()
            if not result or not result.data:
                raise HTTPException(status_code=404, detail="Shipment not found")
            return ShipmentResponse(**result.data)
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def get_shipment_by_trade(self, trade_id: str) -> ShipmentResponse:
        try:
            shipment = self.find_by_trade(trade_id)
            if not shipment:
                raise HTTPException(status_code=404, detail="No shipment for this trade")
            return ShipmentResponse(**shipment)
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def set_status_for_trade(self, trade_id: str, status: str):
        """Kernel side effect: move the trade's shipment without emitting a shipment event."""
        update_data = {"status": status, "updated_at": datetime.now(timezone.utc).isoformat()}
        if status == "delivered":
            update_data["delivered_at"] = update_data["updated_at"]
        self.supabase.table("shipments").update(update_data).eq("trade_id", trade_id).execute()

    def update_status(self, shipment_id: str, update: ShipmentStatusUpdate, user_id: str) -> ShipmentResponse:
        try:
            current = self.get_shipment(shipment_id)
            if update.status == current.status and not update.current_location:
                return current
            now = datetime.now(timezone.utc).isoformat()
            update_data = {"status": update.status, "updated_at": now}
            if update.current_location:
                update_data["current_location"] = update.current_location
            if update.status == "delivered":
                update_data["delivered_at"] = now

            result = self.supabase.table("shipments")\
                .update(update_data)\
                .eq("id", shipment_id)\
                .execute()
            if not result.data:
                raise HTTPException(status_code=404, detail="Shipment not found")

            if update.status != current.status:
                self.events.try_emit(
                    current.trade_id,
                    SHIPMENT_EVENTS[update.status],
                    payload={
                        "shipment_id": shipment_id,
                        "status_from": current.status,
                        "status_to": update.status,
                        "location": update.current_location,
                        "note": update.note,
                    },
                    actor_user_id=user_id,
                )
            return ShipmentResponse(**result.data[0])
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def tracking(self, trade_id: str) -> ShipmentTracking:
        """Shipment plus its logistics events from the trade ledger, oldest first."""
        shipment = self.get_shipment_by_trade(trade_id)
        try:
            result = self.supabase.table("trade_events")\
                .select("*")\
                .eq("trade_id", trade_id)\
                .in_("event_type", TRACKING_EVENT_TYPES)\
                .order("created_at")\
                .execute()
            return ShipmentTracking(shipment=shipment, events=result.data or [])
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))
