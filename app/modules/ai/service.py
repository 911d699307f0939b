import json
import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Dict, Any, List, Optional

from fastapi import HTTPException
from pydantic import ValidationError
from supabase import Client

from app.modules.ai import gemini
from app.modules.ai.schemas import (
    AnalyzeQuoteRequest, MatchmakerResponse, SupplierMatch, FraudEvaluation,
    DisputeVerdict, DisputeResolution, DelayRisk
)
from app.modules.notifications.service import NotificationService
from app.modules.shipments.service import ShipmentService
from app.modules.trade_events.service import TradeEventService, TradeEventType

logger = logging.getLogger(__name__)

OVERDUE_REFUND_DAYS = 14
MOVEMENT_WINDOW_DAYS = 7
MOVEMENT_EVENTS = ["pickup_confirmed", "in_transit", "delivery_scheduled", "delivered"]
JUDGEABLE_DISPUTE_STATUSES = ["open", "pending_info", "in_review"]
MAX_MATCHES = 5

ANALYST_PROMPT = """You are KoniAI+, an expert trade analyst for the Afrikoni B2B marketplace. Your role is to help buyers make informed decisions by analyzing supplier quotes.

ANALYSIS FRAMEWORK:
1. Price Analysis: Compare unit prices, total costs, and value for money
2. Delivery Assessment: Lead times, reliability indicators
3. Quality Indicators: Certifications, supplier history, verification status
4. Risk Assessment: Payment terms, supplier location, verification status
5. Overall Recommendation: Best option based on buyer's priorities

Verified suppliers on Afrikoni have passed KYC/KYB checks. Consider total landed cost, not just unit price. Afrikoni escrow is available for payment security.

Buyer's priority: {priority}
{constraints}
Respond ONLY with valid JSON with the keys "analysis" (price_comparison, delivery_comparison, quality_comparison, risk_assessment), "recommendation" (best_overall, reasoning, confidence, runner_up, runner_up_reason), "insights", "warnings" and "negotiation_opportunities". Refer to quotes as "Quote N"."""

FRAUD_PROMPT = """You are the Risk Evaluator for Afrikoni.
Analyze the provided data (activity logs, company profile, trade history) to identify fraud indicators.
CHECK FOR:
- Synthetic identity patterns (generic emails, missing physical presence).
- Shell company markers (no trading history but high-value RFQs).
- Velocity anomalies (unusually high action count in short timeframes).
- Document inconsistencies.
OUTPUT SCHEMA:
{"fraud_score": number 0-100, "risk_level": "low" | "medium" | "high" | "critical", "risk_factors": string[], "summary": string, "ai_confidence": number 0-1}
Return ONLY valid JSON."""


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def quote_summary(request: AnalyzeQuoteRequest) -> str:
    lines = []
    for i, q in enumerate(request.quotes, start=1):
        lines.append(
            f"Quote {i}:\n"
            f"- Supplier: {q.supplier_name} ({q.supplier_country or 'Unknown location'})\n"
            f"- Unit Price: {q.currency} {q.unit_price}\n"
            f"- Total Price: {q.currency} {q.total_price}\n"
            f"- Quantity: {q.quantity}\n"
            f"- Delivery: {q.delivery_days} days\n"
            f"- Payment Terms: {q.payment_terms or 'Not specified'}\n"
            f"- Certifications: {q.quality_certification or 'None specified'}\n"
            f"- Supplier Rating: {f'{q.supplier_rating}/5' if q.supplier_rating else 'New supplier'}\n"
            f"- Verification: {q.verification_status or 'Unverified'}"
        )
    return "\n\n".join(lines)


def quote_index(label: Any) -> Optional[int]:
    """'Quote 2' -> 1"""
    digits = re.sub(r"\D", "", str(label or ""))
    return int(digits) - 1 if digits else None


def policy_verdict(days_overdue: int, has_recent_movement: bool) -> bool:
    """Refund is owed when delivery is over two weeks late and nothing has moved for a week."""
    return days_overdue > OVERDUE_REFUND_DAYS and not has_recent_movement


class KoniAIService:
    def __init__(self, supabase: Client):
        self.supabase = supabase
        self.events = TradeEventService(supabase)

    async def analyze_quotes(self, request: AnalyzeQuoteRequest) -> Dict[str, Any]:
        if not request.quotes:
            raise HTTPException(status_code=400, detail="No quotes provided for analysis")
        prefs = request.preferences
        constraints = []
        if prefs.max_delivery_days:
            constraints.append(f"Max acceptable delivery: {prefs.max_delivery_days} days")
        if prefs.require_verified:
            constraints.append("Buyer prefers verified suppliers only")
        rfq = request.rfq
        prompt = "\n".join(filter(None, [
            "Analyze these quotes for this RFQ:",
            f"RFQ: {rfq.title}",
            f"Requested Quantity: {rfq.quantity}",
            f"Budget: Up to {rfq.budget_max}" if rfq.budget_max else None,
            f"Desired Delivery: {rfq.delivery_timeline}" if rfq.delivery_timeline else None,
            f"Quality Requirements: {rfq.quality_requirements}" if rfq.quality_requirements else None,
            "",
            "QUOTES TO ANALYZE:",
            quote_summary(request),
        ]))
        analysis = await gemini.generate_json(
            prompt,
            ANALYST_PROMPT.format(priority=prefs.priority, constraints="\n".join(constraints)),
            temperature=0.2,
        )
        if not isinstance(analysis, dict):
            raise HTTPException(status_code=502, detail="Failed to process AI response")

        recommendation = analysis.get("recommendation")
        if isinstance(recommendation, dict) and recommendation.get("best_overall"):
            index = quote_index(recommendation["best_overall"])
            if index is not None and 0 <= index < len(request.quotes):
                recommendation["best_overall_id"] = request.quotes[index].id
        analysis["analyzed_at"] = _now().isoformat()
        analysis["quotes_analyzed"] = len(request.quotes)
        return analysis

    def _approved_suppliers(self, limit: int = 50) -> List[Dict[str, Any]]:
        caps = self.supabase.table("company_capabilities")\
            .select("company_id")\
            .eq("can_sell", True)\
            .eq("sell_status", "approved")\
            .limit(limit)\
            .execute()
        ids = [c["company_id"] for c in caps.data or []]
        if not ids:
            return []
        companies = self.supabase.table("companies")\
            .select("id, company_name, description, country, city")\
            .in_("id", ids)\
            .execute()
        return companies.data or []

    async def match_suppliers(self, rfq: Dict[str, Any]) -> MatchmakerResponse:
        suppliers = [s for s in self._approved_suppliers() if s["id"] != rfq.get("buyer_id")]
        if not suppliers:
            return MatchmakerResponse(matches_found=0, notified=0)

        supplier_list = "\n".join(
            f"- ID: {s['id']}, Name: {s.get('company_name')}, Desc: {s.get('description')}, Country: {s.get('country')}"
            for s in suppliers
        )
        system = (
            "You are the KoniAI Trade Matchmaker for Afrikoni. Match a buyer's Request for Quote "
            "with the most relevant suppliers from the provided list.\n"
            f"RFQ Details:\n- Title: {rfq.get('title')}\n- Description: {rfq.get('description')}\n"
            f"- Destination: {rfq.get('destination_country') or 'Unspecified'}\n"
            f"Suppliers List:\n{supplier_list}\n"
            f"Select the TOP {MAX_MATCHES} most relevant suppliers. Consider product relevance, geographic "
            "proximity and company capabilities.\nOutput ONLY a JSON array of objects: "
            '[{"supplier_id": "UUID", "reason": "Short explanation", "relevance_score": 0.0-1.0}]'
        )
        raw = await gemini.generate_json("Perform the matching logic.", system, temperature=0.1)
        if isinstance(raw, dict):
            raw = raw.get("matches") or []
        if not isinstance(raw, list):
            raise HTTPException(status_code=502, detail="Failed to process AI response")

        known = {s["id"] for s in suppliers}
        matches = []
        for item in raw:
            try:
                match = SupplierMatch(**item)
            except (TypeError, ValidationError):
                continue
            if match.supplier_id in known:
                matches.append(match)
        matches = matches[:MAX_MATCHES]

        notified = 0
        notifications = NotificationService(self.supabase)
        for match in matches:
            created = notifications.notify_company(
                match.supplier_id,
                title="New trade opportunity",
                message=f'An RFQ matching your products was posted: "{rfq.get("title")}" '
                        f"(relevance {round(match.relevance_score * 100)}%)",
                notification_type="rfq_match",
                link=f"/dashboard/rfqs/{rfq['id']}",
                related_id=rfq["id"],
            )
            queued = self._queue_whatsapp(rfq, match)
            if created or queued:
                notified += 1
                self.events.try_emit(
                    rfq["id"],
                    TradeEventType.SUPPLIER_NOTIFIED,
                    payload={
                        "supplier_id": match.supplier_id,
                        "match_score": match.relevance_score,
                        "reason": match.reason,
                        "notification_channel": "whatsapp" if queued else "in_app",
                    },
                    actor_role="system",
                )
        return MatchmakerResponse(matches_found=len(matches), notified=notified, matches=matches)

    def _queue_whatsapp(self, rfq: Dict[str, Any], match: SupplierMatch) -> bool:
        try:
            profile = self.supabase.table("profiles")\
                .select("id, phone")\
                .eq("company_id", match.supplier_id)\
                .limit(1)\
                .execute()
            phone = (profile.data or [{}])[0].get("phone")
            if not phone:
                return False
            self.supabase.table("dispatch_notifications").insert({
                "trade_id": rfq["id"],
                "notification_type": "whatsapp",
                "recipient": phone,
                "message_body": (
                    f"New Trade Opportunity! An RFQ matching your products was just posted on Afrikoni. "
                    f"Product: {rfq.get('title')}. Relevance: {round(match.relevance_score * 100)}%. "
                    f"Reason: {match.reason}"
                ),
                "status": "pending",
                "created_at": _now().isoformat(),
            }).execute()
            return True
        except Exception as e:
            logger.warning(f"Match notification for supplier {match.supplier_id} not queued: {e}")
            return False

    async def evaluate_fraud(self, company_id: str) -> FraudEvaluation:
        company = self.supabase.table("companies")\
            .select("*")\
            .eq("id", company_id)\
            .maybe_single()\
            .execute()
        if not company or not company.data:
            raise HTTPException(status_code=404, detail="Company not found")
        company = company.data

        trades = []
        for column in ("buyer_id", "seller_id"):
            result = self.supabase.table("trades")\
                .select("id, status, total_value, created_at")\
                .eq(column, company_id)\
                .limit(10)\
                .execute()
            trades.extend(result.data or [])
        try:
            logs = self.supabase.table("activity_logs")\
                .select("*")\
                .eq("company_id", company_id)\
                .order("created_at", desc=True)\
                .limit(50)\
                .execute().data or []
        except Exception as e:
            logger.warning(f"activity_logs unavailable for fraud evaluation: {e}")
            logs = []

        dataset = {
            "company": company,
            "recent_logs": logs,
            "trade_history": trades,
            "timestamp": _now().isoformat(),
        }
        raw = await gemini.generate_json(
            f"DATASET TO ANALYZE:\n{json.dumps(dataset, indent=2, default=str)}",
            FRAUD_PROMPT,
            temperature=0.1,
        )
        try:
            evaluation = FraudEvaluation(**raw)
        except (TypeError, ValidationError) as e:
            logger.error(f"Fraud evaluation output rejected: {e}")
            raise HTTPException(status_code=502, detail="Failed to process AI response")

        status = company.get("verification_status")
        if evaluation.fraud_score < 20 and evaluation.ai_confidence > 0.9 and status == "pending":
            status = "verified"
            evaluation.auto_promoted = True
            logger.info(f"Company {company_id} auto-promoted to verified after fraud evaluation")
        evaluation.new_status = status

        now = _now().isoformat()
        self.supabase.table("companies").update({
            "ai_fraud_score": evaluation.fraud_score,
            "risk_level": evaluation.risk_level,
            "last_fraud_check_at": now,
            "verification_status": status,
        }).eq("id", company_id).execute()
        try:
            self.supabase.table("fraud_evaluations").insert({
                "company_id": company_id,
                "fraud_score": evaluation.fraud_score,
                "risk_level": evaluation.risk_level,
                "risk_factors": evaluation.risk_factors,
                "summary": evaluation.summary,
                "ai_confidence": evaluation.ai_confidence,
                "auto_promoted": evaluation.auto_promoted,
                "created_at": now,
            }).execute()
        except Exception as e:
            logger.warning(f"fraud_evaluations insert failed for {company_id}: {e}")
        return evaluation

    def _has_recent_movement(self, trade_id: str) -> bool:
        since = (_now() - timedelta(days=MOVEMENT_WINDOW_DAYS)).isoformat()
        result = self.supabase.table("trade_events")\
            .select("id")\
            .eq("trade_id", trade_id)\
            .in_("event_type", MOVEMENT_EVENTS)\
            .gte("created_at", since)\
            .limit(1)\
            .execute()
        return bool(result.data)

    async def resolve_dispute(self, trade: Dict[str, Any]) -> DisputeResolution:
        """Policy decides REFUND_BUYER; the model only explains. A failed model call keeps the policy verdict."""
        trade_id = trade["id"]
        shipment = ShipmentService(self.supabase).find_by_trade(trade_id)
        if not shipment:
            raise HTTPException(status_code=400, detail="No shipment available for analysis")

        estimated = _parse_time(shipment.get("estimated_delivery"))
        days_overdue = max(0, (_now() - estimated).days) if estimated else 0
        moving = self._has_recent_movement(trade_id)
        policy_refund = policy_verdict(days_overdue, moving)

        prompt = (
            "You are the KoniAI Dispute Advisor. Analyze this trade dispute and provide a narrative reasoning.\n"
            f"POLICY RULE: If shipment is > {OVERDUE_REFUND_DAYS} days overdue AND no tracking updates for "
            f"> {MOVEMENT_WINDOW_DAYS} days, it is a REFUND.\n"
            f"Case Details:\n- Overdue: {days_overdue} days\n"
            f"- Last Update: {'Recent' if moving else 'None in 7 days'}\n"
            f"- Trade: {trade.get('currency')} {trade.get('total_value')}\n"
            'Output JSON ONLY: {"verdict": "REFUND_BUYER" | "WAIT_FOR_SELLER" | "MANUAL_REVIEW", '
            '"confidence": number, "reasoning": "narrative explanation", '
            '"recommended_action": "next steps", "missing_evidence": ["..."]}'
        )
        try:
            raw = await gemini.generate_json(prompt, temperature=0.0)
            if isinstance(raw, dict) and raw.get("verdict") not in ("REFUND_BUYER", "WAIT_FOR_SELLER", "MANUAL_REVIEW"):
                raw["verdict"] = "MANUAL_REVIEW"
            verdict = DisputeVerdict(**raw)
        except (HTTPException, TypeError, ValidationError) as e:
            logger.warning(f"Dispute AI unavailable for trade {trade_id}, using policy result: {e}")
            verdict = DisputeVerdict(
                verdict="MANUAL_REVIEW",
                reasoning="AI analysis unavailable. Policy engine fallback used.",
                recommended_action="Escalate to human support for manual verification.",
            )

        if policy_refund:
            verdict.verdict = "REFUND_BUYER"
            verdict.reasoning = f"[POLICY TRIGGERED] {verdict.reasoning}"

        try:
            self.supabase.table("disputes").update({
                "ai_verdict": verdict.model_dump(),
                "ai_judged_at": _now().isoformat(),
                "status": "resolved_refund_pending" if verdict.verdict == "REFUND_BUYER" else "escalated_to_admin",
                "updated_at": _now().isoformat(),
            }).eq("trade_id", trade_id).in_("status", JUDGEABLE_DISPUTE_STATUSES).execute()
        except Exception as e:
            logger.warning(f"Dispute record for trade {trade_id} not updated: {e}")

        return DisputeResolution(
            policy_triggered=policy_refund,
            days_overdue=days_overdue,
            has_recent_movement=moving,
            verdict=verdict,
        )

    async def predict_delay(self, shipment: Dict[str, Any]) -> DelayRisk:
        created = _parse_time(shipment.get("created_at")) or _now()
        hours = (_now() - created).total_seconds() / 3600
        prompt = (
            "You are the KoniAI Logistics Risk Engine. Analyze the following shipment for potential delays "
            "based on the current status and regional logistics knowledge.\n"
            f"- Origin: {shipment.get('origin') or 'Unknown'}\n"
            f"- Destination: {shipment.get('destination') or 'Unknown'}\n"
            f"- Carrier: {shipment.get('carrier') or 'Unknown'}\n"
            f"- Current Status: {shipment.get('status')}\n"
            f"- Location: {shipment.get('current_location') or 'Unknown'}\n"
            f"- Hours in Transit: {hours:.1f}\n"
            'If the shipment is held at customs, assume High risk for West Africa.\n'
            'Output JSON ONLY: {"risk_level": "High|Medium|Low", "reason": "Short explanation", '
            '"estimated_delay_hours": number}'
        )
        raw = await gemini.generate_json(prompt, temperature=0.1)
        try:
            risk = DelayRisk(
                shipment_id=shipment["id"],
                tracking_number=shipment.get("tracking_number"),
                status=shipment.get("status"),
                **raw
            )
        except (TypeError, ValidationError) as e:
            logger.error(f"Delay prediction output rejected: {e}")
            raise HTTPException(status_code=502, detail="Failed to process AI response")

        if risk.risk_level == "High":
            logger.warning(f"High delay risk for shipment {shipment.get('tracking_number')}: {risk.reason}")
            self.events.try_emit(
                shipment["trade_id"],
                TradeEventType.ERROR_OCCURRED,
                payload={
                    "kind": "delay_risk",
                    "shipment_id": shipment["id"],
                    "reason": risk.reason,
                    "estimated_delay_hours": risk.estimated_delay_hours,
                },
                actor_role="system",
            )
        return risk
