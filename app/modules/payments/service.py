import logging
import secrets
import time
from datetime import datetime, timedelta, timezone
from typing import Dict, Any, Optional

import httpx
from fastapi import HTTPException
from supabase import Client

from app.config.settings import settings
from app.core import http_client
from app.modules.escrow.commission import STANDARD_RATE
from app.modules.escrow.schemas import EscrowCreate
from app.modules.escrow.service import EscrowService
from app.modules.notifications.service import NotificationService
from app.modules.payments.schemas import PaymentLinkRequest, PaymentLinkResponse
from app.modules.trade_events.service import TradeEventService, TradeEventType
from app.modules.trades.state_machine import TradeState

logger = logging.getLogger(__name__)

FLUTTERWAVE_API = "https://api.flutterwave.com/v3"
AMOUNT_TOLERANCE = 0.01
SUBSCRIPTION_PERIOD_DAYS = 30

TRANSACTION_TYPES = {
    "sample": "sample_payment",
    "subscription": "subscription",
    "verification": "verification_fee",
    "order": "order_payment",
}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def generate_tx_ref(order_type: str) -> str:
    """AFR-<TYPE>-<epoch ms>-<random>"""
    return f"AFR-{order_type.upper()}-{int(time.time() * 1000)}-{secrets.token_hex(3)}"


def _flutterwave_headers() -> Dict[str, str]:
    if not settings.flutterwave_secret_key:
        raise HTTPException(status_code=503, detail="Flutterwave not configured")
    return {"Authorization": f"Bearer {settings.flutterwave_secret_key}"}


class PaymentService:
    def __init__(self, supabase: Client):
        self.supabase = supabase
        self.events = TradeEventService(supabase)

    async def generate_payment_link(
        self,
        request: PaymentLinkRequest,
        user_id: str,
        company_id: str
    ) -> PaymentLinkResponse:
        headers = _flutterwave_headers()
        tx_ref = generate_tx_ref(request.order_type)
        base_url = request.redirect_url or settings.frontend_url
        description = f"Payment for {request.order_type}"
        if request.trade_id:
            description += f" - Trade {request.trade_id}"

        payload = {
            "tx_ref": tx_ref,
            "amount": request.amount,
            "currency": request.currency,
            "redirect_url": f"{base_url}/payment/callback?provider=flutterwave&tx_ref={tx_ref}",
            "payment_options": "card,banktransfer,ussd,mobilemoney,mpesa",
            "customer": {
                "email": request.customer_email,
                "name": request.customer_name or request.customer_email,
                "phonenumber": request.customer_phone or "",
            },
            "customizations": {
                "title": "Afrikoni Payment",
                "description": description,
                "logo": "https://afrikoni.com/logo.png",
            },
            "meta": {
                **request.metadata,
                "user_id": user_id,
                "company_id": company_id,
                "trade_id": request.trade_id,
                "order_type": request.order_type,
            },
        }
        try:
            response = await http_client.http.post(
                f"{FLUTTERWAVE_API}/payments", headers=headers, json=payload, timeout=20
            )
        except httpx.HTTPError as e:
            logger.error(f"Flutterwave request failed: {e}")
            raise HTTPException(status_code=502, detail="Payment provider unreachable")

        data = http_client.safe_json(response)
        link = (data.get("data") or {}).get("link")
        if response.status_code >= 400 or data.get("status") != "success" or not link:
            logger.error(f"Flutterwave rejected payment link ({response.status_code}): {data}")
            raise HTTPException(
                status_code=response.status_code if response.status_code >= 400 else 400,
                detail=data.get("message") or "Failed to initialize payment"
            )

        self._record_billing(request, user_id, company_id, tx_ref, (data.get("data") or {}).get("id"))
        if request.order_type == "order" and request.trade_id:
            self._record_escrow_payment(request, tx_ref)
        return PaymentLinkResponse(payment_url=link, transaction_ref=tx_ref)

    def _record_billing(self, request: PaymentLinkRequest, user_id: str, company_id: str, tx_ref: str, flw_id):
        try:
            self.supabase.table("billing_history").insert({
                "user_id": user_id,
                "company_id": company_id,
                "amount": request.amount,
                "currency": request.currency,
                "payment_method": "flutterwave",
                "payment_provider": "flutterwave",
                "provider_reference": tx_ref,
                "transaction_type": TRANSACTION_TYPES[request.order_type],
                "related_order_id": request.trade_id,
                "status": "pending",
                "description": f"Flutterwave payment initiated for {request.order_type}",
                "metadata": {
                    **request.metadata,
                    "flutterwave_tx_ref": tx_ref,
                    "flutterwave_id": flw_id,
                    "customer_email": request.customer_email,
                },
            }).execute()
        except Exception as e:
            logger.error(f"Billing record for {tx_ref} not created: {e}")

    def _record_escrow_payment(self, request: PaymentLinkRequest, tx_ref: str):
        try:
            trade = self.supabase.table("trades")\
                .select("id, buyer_id, seller_id")\
                .eq("id", request.trade_id)\
                .maybe_single()\
                .execute()
            if not trade or not trade.data:
                logger.warning(f"Payment link for unknown trade {request.trade_id}")
                return
            self.supabase.table("escrow_payments").insert({
                "trade_id": request.trade_id,
                "buyer_company_id": trade.data.get("buyer_id"),
                "seller_company_id": trade.data.get("seller_id"),
                "amount": request.amount,
                "currency": request.currency,
                "commission_rate": float(STANDARD_RATE),
                "provider_reference": tx_ref,
                "status": "pending",
            }).execute()
        except Exception as e:
            logger.error(f"escrow_payments row for {tx_ref} not created: {e}")

    def _already_processed(self, tx_ref: str, event: str, status: str = "verified") -> bool:
        result = self.supabase.table("payment_webhook_log")\
            .select("id")\
            .eq("tx_ref", tx_ref)\
            .eq("event", event)\
            .eq("status", status)\
            .limit(1)\
            .execute()
        return bool(result.data)

    def _log_webhook(self, tx_ref: Optional[str], event: str, status: str, data: Dict[str, Any]):
        try:
            self.supabase.table("payment_webhook_log").insert({
                "tx_ref": tx_ref,
                "flw_ref": data.get("flw_ref"),
                "event": event,
                "status": status,
                "amount": data.get("amount"),
                "currency": data.get("currency"),
                "payload": data,
                "created_at": _now(),
            }).execute()
        except Exception as e:
            logger.warning(f"payment_webhook_log insert failed for {tx_ref}: {e}")

    def _set_billing_status(self, tx_ref: str, status: str):
        try:
            self.supabase.table("billing_history")\
                .update({"status": status})\
                .eq("provider_reference", tx_ref)\
                .in_("status", ["pending", "processing", "initiated"])\
                .execute()
        except Exception as e:
            logger.warning(f"billing_history update failed for {tx_ref}: {e}")

    async def verify_transaction(self, transaction_id) -> Dict[str, Any]:
        """Ask Flutterwave for the authoritative state of a transaction."""
        try:
            response = await http_client.http.get(
                f"{FLUTTERWAVE_API}/transactions/{transaction_id}/verify",
                headers=_flutterwave_headers(),
                timeout=20,
            )
        except httpx.HTTPError as e:
            logger.error(f"Flutterwave verify failed for {transaction_id}: {e}")
            raise HTTPException(status_code=502, detail="Payment provider unreachable")
        return http_client.safe_json(response)

    async def handle_flutterwave_event(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        event = payload.get("event") or ""
        data = payload.get("data") or {}
        logger.info(f"Flutterwave webhook: {event} tx_ref={data.get('tx_ref')}")

        if event == "charge.completed":
            return await self._handle_charge(event, data)
        if event == "transfer.completed":
            return self._handle_transfer(event, data)
        if event == "refund.completed":
            return self._handle_refund(event, data)

        self._log_webhook(data.get("tx_ref"), event, "ignored", data)
        return {"success": True, "event": event, "message": "Event acknowledged"}

    async def _handle_charge(self, event: str, data: Dict[str, Any]) -> Dict[str, Any]:
        tx_ref = data.get("tx_ref")
        if not tx_ref or not data.get("id"):
            raise HTTPException(status_code=400, detail="tx_ref and id are required")
        if self._already_processed(tx_ref, event):
            logger.info(f"Duplicate webhook ignored: {event} tx_ref={tx_ref}")
            return {"success": True, "event": event, "message": "Duplicate webhook ignored"}

        verification = await self.verify_transaction(data["id"])
        verified = verification.get("data") or {}
        if verification.get("status") != "success" or verified.get("status") != "successful":
            logger.error(f"Transaction verification failed for {tx_ref}: {verification.get('message')}")
            self._log_webhook(tx_ref, event, "verification_failed", data)
            raise HTTPException(status_code=400, detail="Transaction verification failed")

        tx_ref = verified.get("tx_ref") or tx_ref
        meta = verified.get("meta") or data.get("meta") or {}

        trade = None
        if meta.get("trade_id"):
            trade = self._load_trade(meta["trade_id"])
            mismatch = self._payment_mismatch(trade, tx_ref, verified) if trade else None
            if mismatch:
                logger.error(f"Payment {tx_ref} for trade {trade['id']} rejected: {mismatch}")
                self._log_webhook(tx_ref, event, "verification_failed", {**verified, "reason": mismatch})
                self._set_billing_status(tx_ref, "failed")
                self.events.try_emit(
                    trade["id"],
                    TradeEventType.ERROR_OCCURRED,
                    payload={"source": "flutterwave_webhook", "tx_ref": tx_ref, "reason": mismatch},
                    actor_role="system",
                )
                raise HTTPException(status_code=400, detail=mismatch)

        self._set_billing_status(tx_ref, "completed")
        self._log_webhook(tx_ref, event, "verified", verified)

        if trade:
            self._confirm_trade_payment(trade, tx_ref, verified, meta.get("user_id"))
        elif meta.get("trade_id"):
            logger.error(f"Verified payment {tx_ref} references unknown trade {meta['trade_id']}")
        if meta.get("subscription_plan") and meta.get("company_id"):
            self._activate_subscription(meta, verified)
        if meta.get("order_type") == "verification" and meta.get("company_id"):
            self._complete_verification_purchase(meta, verified, tx_ref)
        return {"success": True, "event": event, "message": "Payment confirmed"}

    def _load_trade(self, trade_id: str) -> Optional[Dict[str, Any]]:
        result = self.supabase.table("trades")\
            .select("*")\
            .eq("id", trade_id)\
            .maybe_single()\
            .execute()
        return result.data if result else None

    def _expected_payment(self, trade: Dict[str, Any], tx_ref: str) -> Optional[Dict[str, Any]]:
        """What the buyer owes: the pending escrow, else the trade value, else the payment intent."""
        escrow = self.supabase.table("escrows")\
            .select("amount, currency")\
            .eq("trade_id", trade["id"])\
            .eq("status", "pending")\
            .order("created_at", desc=True)\
            .limit(1)\
            .execute()
        if escrow.data:
            return escrow.data[0]
        if trade.get("total_value"):
            return {"amount": trade["total_value"], "currency": trade.get("currency")}
        intent = self.supabase.table("escrow_payments")\
            .select("amount, currency")\
            .eq("provider_reference", tx_ref)\
            .maybe_single()\
            .execute()
        return intent.data if intent else None

    def _payment_mismatch(self, trade: Dict[str, Any], tx_ref: str, verified: Dict[str, Any]) -> Optional[str]:
        expected = self._expected_payment(trade, tx_ref)
        if not expected:
            return None
        currency = (verified.get("currency") or "").upper()
        if expected.get("currency") and currency != str(expected["currency"]).upper():
            return f"Payment currency {currency or 'unknown'} does not match {expected['currency']}"
        paid = float(verified.get("amount") or 0)
        owed = float(expected.get("amount") or 0)
        if paid + AMOUNT_TOLERANCE < owed:
            return f"Payment of {paid:.2f} is short of {owed:.2f}"
        return None

    def _confirm_trade_payment(self, trade: Dict[str, Any], tx_ref: str, verified: Dict[str, Any], user_id: Optional[str]):
        """Fund the trade's escrow with the verified amount, move escrow_required trades to escrow_funded."""
        trade_id = trade["id"]
        paid = float(verified.get("amount") or 0)
        escrows = EscrowService(self.supabase)
        escrow = escrows.get_escrow_for_trade(trade_id)
        if escrow is None or escrow.status in ("released", "refunded"):
            escrow = escrows.create_escrow(
                EscrowCreate(
                    trade_id=trade_id,
                    amount=paid,
                    currency=verified.get("currency"),
                    payment_method="flutterwave"
                ),
                trade,
                user_id
            )
        if escrow.status == "pending":
            escrows.fund_escrow(escrow.id, verified.get("flw_ref"), "flutterwave", amount=paid)
        else:
            logger.warning(f"Escrow {escrow.id} for trade {trade_id} is {escrow.status}; not funding again")

        try:
            self.supabase.table("escrow_payments")\
                .update({"status": "held"})\
                .eq("provider_reference", tx_ref)\
                .execute()
        except Exception as e:
            logger.warning(f"escrow_payments update failed for {tx_ref}: {e}")

        moved = self.supabase.table("trades")\
            .update({
                "status": TradeState.ESCROW_FUNDED.value,
                "updated_at": _now(),
                "metadata": {
                    **(trade.get("metadata") or {}),
                    "previous_state": TradeState.ESCROW_REQUIRED.value,
                    "payment_reference": verified.get("flw_ref"),
                }
            })\
            .eq("id", trade_id)\
            .eq("status", TradeState.ESCROW_REQUIRED.value)\
            .execute()
        if moved.data:
            self.events.try_emit(
                trade_id,
                TradeEventType.STATE_TRANSITION,
                payload={"via": "flutterwave_webhook", "tx_ref": tx_ref},
                actor_role="system",
                status_from=TradeState.ESCROW_REQUIRED.value,
                status_to=TradeState.ESCROW_FUNDED.value,
                decision="ALLOW",
            )

        self.events.try_emit(
            trade_id,
            TradeEventType.PAYMENT_CONFIRMED,
            payload={
                "amount": verified.get("amount"),
                "currency": verified.get("currency"),
                "flw_ref": verified.get("flw_ref"),
                "payment_type": verified.get("payment_type"),
            },
            actor_user_id=user_id,
        )
        if user_id:
            NotificationService(self.supabase).notify_user(
                user_id,
                title="Escrow Funded",
                message=f"Your payment of {verified.get('currency')} {verified.get('amount')} is secured in escrow. The supplier has been notified.",
                notification_type="payment_confirmed",
                related_id=trade_id,
                metadata={"trade_id": trade_id, "amount": verified.get("amount")},
            )

    def _record_revenue(self, company_id: str, transaction_type: str, verified: Dict[str, Any], description: str):
        try:
            self.supabase.table("revenue_transactions").insert({
                "transaction_type": transaction_type,
                "amount": verified.get("amount"),
                "currency": verified.get("currency"),
                "company_id": company_id,
                "description": description,
                "status": "completed",
                "processed_at": _now(),
                "metadata": {"tx_ref": verified.get("tx_ref"), "flw_ref": verified.get("flw_ref")},
            }).execute()
        except Exception as e:
            logger.warning(f"revenue_transactions insert failed for {company_id}: {e}")

    def _activate_subscription(self, meta: Dict[str, Any], verified: Dict[str, Any]):
        """Replace the company's active subscription with the paid plan for one billing period."""
        company_id = meta["company_id"]
        plan = str(meta["subscription_plan"])
        now = datetime.now(timezone.utc)
        try:
            self.supabase.table("subscriptions")\
                .update({"status": "cancelled", "updated_at": now.isoformat()})\
                .eq("company_id", company_id)\
                .eq("status", "active")\
                .execute()
            self.supabase.table("subscriptions").insert({
                "company_id": company_id,
                "plan_type": plan,
                "monthly_price": verified.get("amount"),
                "status": "active",
                "current_period_start": now.isoformat(),
                "current_period_end": (now + timedelta(days=SUBSCRIPTION_PERIOD_DAYS)).isoformat(),
                "payment_method": "flutterwave",
                "payment_id": verified.get("flw_ref"),
            }).execute()
            logger.info(f"Subscription {plan} activated for company {company_id}")
        except Exception as e:
            logger.error(f"Subscription activation failed for company {company_id}: {e}")
            return

        self._record_revenue(company_id, "subscription", verified, f"{plan} subscription - Monthly (Flutterwave)")
        if meta.get("user_id"):
            NotificationService(self.supabase).notify_user(
                meta["user_id"],
                title=f"{plan.capitalize()} Plan Activated",
                message=f"Your {plan} subscription is now active. Enjoy enhanced visibility and features.",
                notification_type="subscription_activated",
                company_id=company_id,
                metadata={"plan": plan, "amount": verified.get("amount")},
            )

    def _complete_verification_purchase(self, meta: Dict[str, Any], verified: Dict[str, Any], tx_ref: str):
        """Paid fast-track verification: close the purchase and queue the company for review."""
        company_id = meta["company_id"]
        payment = {
            "tx_ref": tx_ref,
            "flw_ref": verified.get("flw_ref"),
            "amount": verified.get("amount"),
            "currency": verified.get("currency"),
            "payment_type": verified.get("payment_type"),
        }
        try:
            purchase_id = meta.get("verification_purchase_id")
            if not purchase_id:
                latest = self.supabase.table("verification_purchases")\
                    .select("id")\
                    .eq("company_id", company_id)\
                    .eq("purchase_type", "fast_track")\
                    .in_("status", ["pending", "initiated"])\
                    .order("created_at", desc=True)\
                    .limit(1)\
                    .execute()
                purchase_id = latest.data[0]["id"] if latest.data else None
            if purchase_id:
                self.supabase.table("verification_purchases")\
                    .update({
                        "status": "completed",
                        "lifecycle_state": "payment_confirmed",
                        "payment_method": "flutterwave",
                        "payment_id": tx_ref,
                        "processed_at": _now(),
                        "updated_at": _now(),
                        "metadata": payment,
                    })\
                    .eq("id", purchase_id)\
                    .execute()
            else:
                logger.warning(f"No open verification purchase for company {company_id} (tx_ref {tx_ref})")

            self.supabase.table("companies")\
                .update({"verification_status": "PENDING", "verified": False, "updated_at": _now()})\
                .eq("id", company_id)\
                .execute()

            verification_meta = {
                "payment_tx_ref": tx_ref,
                "payment_amount": verified.get("amount"),
                "payment_currency": verified.get("currency"),
            }
            existing = self.supabase.table("verifications")\
                .select("id")\
                .eq("company_id", company_id)\
                .limit(1)\
                .execute()
            if existing.data:
                self.supabase.table("verifications")\
                    .update({"status": "pending", "updated_at": _now(), "metadata": verification_meta})\
                    .eq("id", existing.data[0]["id"])\
                    .execute()
            else:
                self.supabase.table("verifications").insert({
                    "company_id": company_id,
                    "status": "pending",
                    "verification_type": "business",
                    "metadata": verification_meta,
                }).execute()
        except Exception as e:
            logger.error(f"Verification purchase for company {company_id} not completed: {e}")
            return

        self._record_revenue(company_id, "verification_fee", verified, "Fast-track verification fee (Flutterwave)")

    def _handle_transfer(self, event: str, data: Dict[str, Any]) -> Dict[str, Any]:
        """Seller payout finished: accepted trades become settled."""
        transfer_ref = data.get("tx_ref") or data.get("reference") or data.get("flw_ref")
        if not transfer_ref:
            raise HTTPException(status_code=400, detail="Transfer reference is required")
        if self._already_processed(transfer_ref, event, "transfer_completed"):
            return {"success": True, "event": event, "message": "Duplicate transfer webhook ignored"}
        self._log_webhook(transfer_ref, event, "transfer_completed", data)

        trade_id = (data.get("meta") or {}).get("trade_id")
        if trade_id:
            try:
                self.supabase.table("payments")\
                    .update({"status": "completed", "provider_reference": transfer_ref})\
                    .eq("trade_id", trade_id)\
                    .eq("payment_type", "escrow_release")\
                    .eq("status", "processing")\
                    .execute()
            except Exception as e:
                logger.warning(f"Payout row for trade {trade_id} not completed: {e}")

            moved = self.supabase.table("trades")\
                .update({"status": TradeState.SETTLED.value, "updated_at": _now()})\
                .eq("id", trade_id)\
                .eq("status", TradeState.ACCEPTED.value)\
                .execute()
            if moved.data:
                self.events.try_emit(
                    trade_id,
                    TradeEventType.STATE_TRANSITION,
                    payload={"via": "flutterwave_transfer", "transfer_ref": transfer_ref},
                    actor_role="system",
                    status_from=TradeState.ACCEPTED.value,
                    status_to=TradeState.SETTLED.value,
                    decision="ALLOW",
                )
            self.events.try_emit(
                trade_id,
                TradeEventType.PAYMENT_RELEASED,
                payload={
                    "transfer_ref": transfer_ref,
                    "amount": data.get("amount"),
                    "currency": data.get("currency"),
                    "flw_ref": data.get("flw_ref"),
                },
                actor_role="system",
            )
        return {"success": True, "event": event, "message": "Transfer recorded"}

    def _handle_refund(self, event: str, data: Dict[str, Any]) -> Dict[str, Any]:
        tx_ref = data.get("tx_ref")
        if tx_ref and self._already_processed(tx_ref, event, "refunded"):
            return {"success": True, "event": event, "message": "Duplicate refund webhook ignored"}
        self._log_webhook(tx_ref, event, "refunded", data)

        meta = data.get("meta") or {}
        trade_id = meta.get("trade_id")
        if trade_id:
            try:
                self.supabase.table("refunds")\
                    .update({"status": "completed"})\
                    .eq("trade_id", trade_id)\
                    .eq("status", "processing")\
                    .execute()
            except Exception as e:
                logger.warning(f"Refund row for trade {trade_id} not completed: {e}")
            self.events.try_emit(
                trade_id,
                TradeEventType.PAYMENT_REFUNDED,
                payload={"amount": data.get("amount"), "currency": data.get("currency"), "flw_ref": data.get("flw_ref")},
                actor_role="system",
            )
        if meta.get("user_id"):
            NotificationService(self.supabase).notify_user(
                meta["user_id"],
                title="Refund Processed",
                message=f"Your refund of {data.get('currency')} {data.get('amount')} has been processed.",
                notification_type="payment_refunded",
                related_id=trade_id,
                metadata={"amount": data.get("amount"), "currency": data.get("currency")},
            )
        return {"success": True, "event": event, "message": "Refund recorded"}
