import logging
from datetime import datetime, timezone
from typing import List, Optional, Dict, Any
from fastapi import HTTPException
from supabase import Client
from app.modules.shipments.service import ShipmentService
from app.modules.trade_events.service import TradeEventType

logger = logging.getLogger(__name__)

MAX_PROVIDERS = 5


def determine_vehicle_types(cargo_type: str, weight_kg: Optional[float] = None, volume_m3: Optional[float] = None) -> List[str]:
    cargo = (cargo_type or "").lower()
    if weight_kg and weight_kg > 5000:
        return ["truck", "container"]
    if volume_m3 and volume_m3 > 10:
        return ["truck", "container"]
    if "container" in cargo or "bulk" in cargo:
        return ["container"]
    if "heavy" in cargo or "machinery" in cargo:
        return ["truck"]
    return ["van", "truck"]


def build_pickup_message(
    provider_name: str,
    pickup_city: str,
    cargo_type: str,
    trade_id: str,
    pickup_window_start: Optional[str] = None,
) -> str:
    window = "ASAP"
    if pickup_window_start:
        try:
            window = datetime.fromisoformat(pickup_window_start.replace("Z", "+00:00")).strftime("%d %b %Y %H:%M UTC")
        except ValueError:
            window = pickup_window_start
    return (
        "Afrikoni Pickup Request\n\n"
        f"Hello {provider_name},\n\n"
        f"Location: {pickup_city}\n"
        f"Cargo: {cargo_type}\n"
        f"Window: {window}\n\n"
        f"Trade ID: {trade_id[:8]}\n\n"
        "Reply YES to accept this job.\n"
        "First responder gets the assignment.\n\n"
        "- Afrikoni Logistics"
    )


class LogisticsDispatcher:
    """Matches available logistics providers in the pickup city and queues pickup requests.

    Messages are queued in dispatch_notifications and delivered by the
    notification-sender function, so dispatch itself never calls a vendor.
    """

    def __init__(self, supabase: Client):
        self.supabase = supabase

    def _log(self, trade_id: str, event_type: str, payload: Dict[str, Any], **columns):
        try:
            self.supabase.table("dispatch_events").insert({
                "trade_id": trade_id,
                "event_type": event_type,
                "payload": payload,
                **columns
            }).execute()
        except Exception as e:
            logger.error(f"Failed to log dispatch event {event_type} for trade {trade_id}: {e}")

    def dispatch(
        self,
        trade_id: str,
        pickup_city: Optional[str],
        cargo_type: Optional[str],
        pickup_country: str = "Nigeria",
        weight_kg: Optional[float] = None,
        volume_m3: Optional[float] = None,
        pickup_window_start: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Returns {success, trade_id, providers_notified, providers, message|error}. Never raises."""
        if not trade_id or not pickup_city or not cargo_type:
            return {
                "success": False,
                "trade_id": trade_id,
                "error": "Missing required fields: trade_id, pickup_city, cargo_type"
            }
        try:
            self._log(trade_id, "DISPATCH_REQUESTED", {
                "pickup_city": pickup_city,
                "pickup_country": pickup_country,
                "cargo_type": cargo_type,
                "weight_kg": weight_kg,
                "volume_m3": volume_m3,
            })
            vehicle_types = determine_vehicle_types(cargo_type, weight_kg, volume_m3)
            result = self.supabase.table("logistics_providers")\
                .select("*")\
                .eq("city", pickup_city)\
                .eq("is_available", True)\
                .eq("is_verified", True)\
                .order("response_score", desc=True)\
                .order("last_active_at", desc=True)\
                .limit(MAX_PROVIDERS)\
                .execute()
            matched = [
                p for p in result.data or []
                if any(v in (p.get("vehicle_types") or []) for v in vehicle_types)
            ]
            if not matched:
                self._log(trade_id, "DISPATCH_FAILED", {
                    "reason": "No providers available",
                    "pickup_city": pickup_city,
                    "required_vehicle_types": vehicle_types,
                })
                return {
                    "success": False,
                    "trade_id": trade_id,
                    "error": f"No logistics providers available in {pickup_city}"
                }

            notified = []
            for provider in matched:
                channel = "whatsapp" if provider.get("whatsapp") else "sms"
                self.supabase.table("dispatch_notifications").insert({
                    "trade_id": trade_id,
                    "provider_id": provider["id"],
                    "notification_type": channel,
                    "recipient": provider.get("whatsapp") or provider.get("phone"),
                    "message_body": build_pickup_message(
                        provider.get("provider_name") or "partner",
                        pickup_city,
                        cargo_type,
                        trade_id,
                        pickup_window_start,
                    ),
                    "status": "pending"
                }).execute()
                self._log(trade_id, "PROVIDER_NOTIFIED", {
                    "provider_id": provider["id"],
                    "provider_name": provider.get("provider_name"),
                    "notification_type": channel,
                })
                notified.append({
                    "provider_id": provider["id"],
                    "provider_name": provider.get("provider_name"),
                    "notified": True
                })

            logger.info(f"Dispatch for trade {trade_id}: {len(notified)} provider(s) notified")
            return {
                "success": True,
                "trade_id": trade_id,
                "providers_notified": len(notified),
                "providers": notified,
                "message": f"Dispatched to {len(notified)} logistics providers in {pickup_city}"
            }
        except Exception as e:
            logger.error(f"Dispatch failed for trade {trade_id}: {e}")
            self._log(trade_id, "DISPATCH_FAILED", {"error": str(e)})
            return {"success": False, "trade_id": trade_id, "error": str(e)}

    def _load(self, table: str, row_id: str, label: str) -> Dict[str, Any]:
        result = self.supabase.table(table)\
            .select("*")\
            .eq("id", row_id)\
            .maybe_single()\
            .execute()
        if not result or not result.data:
            raise HTTPException(status_code=404, detail=f"{label} not found")
        return result.data

    def _provider_stats(self, provider_id: str, accepted: bool):
        try:
            self.supabase.rpc("update_provider_stats", {
                "p_provider_id": provider_id,
                "p_accepted": accepted
            }).execute()
        except Exception as e:
            logger.warning(f"Could not update stats for provider {provider_id}: {e}")

    def respond(
        self,
        trade_id: str,
        provider_id: str,
        response: str,
        estimated_pickup_time: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Record a provider's answer to a pickup request.

        The first provider to accept gets the job: the shipment is claimed with an
        update filtered on an empty logistics_provider_id, and anyone arriving after
        that gets a 409. Declines only touch the dispatch log and provider stats.
        """
        try:
            trade = self._load("trades", trade_id, "Trade")
            provider = self._load("logistics_providers", provider_id, "Logistics provider")
            now = datetime.now(timezone.utc).isoformat()

            if response == "reject":
                self._log(trade_id, "PROVIDER_REJECTED", {"rejected_at": now}, provider_id=provider_id)
                self._provider_stats(provider_id, accepted=False)
                return {
                    "success": True,
                    "trade_id": trade_id,
                    "provider_id": provider_id,
                    "message": "Rejection recorded"
                }

            shipments = ShipmentService(self.supabase)
            shipment = shipments.find_by_trade(trade_id)
            if shipment and shipment.get("logistics_provider_id"):
                self._log(trade_id, "PROVIDER_ACCEPTED", {
                    "result": "job_already_assigned",
                    "assigned_to": shipment["logistics_provider_id"],
                }, provider_id=provider_id)
                raise HTTPException(status_code=409, detail="Job already assigned to another provider")

            if shipment is None:
                shipment = shipments.ensure_shipment(
                    trade_id,
                    logistics_provider_id=provider_id,
                    pickup_scheduled_at=estimated_pickup_time,
                )
                claimed = shipment.get("logistics_provider_id") == provider_id
            else:
                result = self.supabase.table("shipments")\
                    .update({
                        "logistics_provider_id": provider_id,
                        "status": "assigned",
                        "pickup_scheduled_at": estimated_pickup_time,
                        "updated_at": now
                    })\
                    .eq("id", shipment["id"])\
                    .is_("logistics_provider_id", "null")\
                    .execute()
                claimed = bool(result.data)
            if not claimed:
                self._log(trade_id, "PROVIDER_ACCEPTED", {"result": "race_condition_lost"}, provider_id=provider_id)
                raise HTTPException(status_code=409, detail="Job was just assigned to another provider")

            self.supabase.table("logistics_providers")\
                .update({"is_available": False, "last_active_at": now})\
                .eq("id", provider_id)\
                .execute()
            self._provider_stats(provider_id, accepted=True)
            self._log(trade_id, "SHIPMENT_ASSIGNED", {
                "assigned_at": now,
                "estimated_pickup_time": estimated_pickup_time,
            }, provider_id=provider_id, shipment_id=shipment["id"])

            metadata = {
                **(trade.get("metadata") or {}),
                "logistics_provider_id": provider_id,
                "shipment_assigned_at": now
            }
            self.supabase.table("trades").update({"metadata": metadata}).eq("id", trade_id).execute()
            shipments.events.try_emit(
                trade_id,
                TradeEventType.LOGISTICS_ASSIGNED,
                payload={
                    "shipment_id": shipment["id"],
                    "provider_id": provider_id,
                    "provider_name": provider.get("provider_name"),
                    "estimated_pickup_time": estimated_pickup_time,
                },
                actor_role="logistics",
            )
            logger.info(f"Pickup for trade {trade_id} assigned to provider {provider_id}")
            return {
                "success": True,
                "trade_id": trade_id,
                "provider_id": provider_id,
                "shipment_id": shipment["id"],
                "message": "Pickup assigned successfully",
                "next_step": "Proceed to pickup location"
            }
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))
