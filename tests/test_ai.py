from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from fastapi import HTTPException

from app.config.settings import settings
from app.core import http_client
from app.modules.ai import gemini
from app.modules.ai.service import KoniAIService, policy_verdict, quote_index
from tests.conftest import SELLER_COMPANY, SELLER_USER


def _gemini_reply(text, status=200):
    return httpx.Response(status, json={"candidates": [{"content": {"parts": [{"text": text}]}}]})


@pytest.fixture
def gemini_http(monkeypatch):
    monkeypatch.setattr(settings, "gemini_api_key", "test-gemini-key")
    fake = MagicMock()
    fake.post = AsyncMock()
    monkeypatch.setattr(http_client, "http", fake)
    return fake


def test_quote_index():
    assert quote_index("Quote 2") == 1
    assert quote_index("quote 10") == 9
    assert quote_index("best") is None
    assert quote_index(None) is None


def test_policy_verdict():
    assert policy_verdict(15, False) is True
    assert policy_verdict(14, False) is False
    assert policy_verdict(30, True) is False


def test_strip_fences():
    assert gemini.strip_fences('```json\n{"a": 1}\n```') == '{"a": 1}'


async def test_generate_json_parses_fenced_reply(gemini_http):
    gemini_http.post.return_value = _gemini_reply('```json\n{"ok": true}\n```')
    assert await gemini.generate_json("hi", "system") == {"ok": True}

    body = gemini_http.post.call_args.kwargs["json"]
    assert body["generationConfig"]["response_mime_type"] == "application/json"
    assert body["system_instruction"]["parts"][0]["text"] == "system"
    assert gemini_http.post.call_args.kwargs["headers"]["x-goog-api-key"] == "test-gemini-key"


async def test_generate_json_errors(gemini_http, monkeypatch):
    gemini_http.post.return_value = _gemini_reply("not json at all")
    with pytest.raises(HTTPException) as exc:
        await gemini.generate_json("hi")
    assert exc.value.status_code == 502

    gemini_http.post.return_value = httpx.Response(429, json={"error": {"message": "Quota exceeded"}})
    with pytest.raises(HTTPException) as exc:
        await gemini.generate_json("hi")
    assert exc.value.status_code == 429
    assert exc.value.detail == "Quota exceeded"

    monkeypatch.setattr(settings, "gemini_api_key", None)
    with pytest.raises(HTTPException) as exc:
        await gemini.generate_json("hi")
    assert exc.value.status_code == 503


def test_analyze_quotes_maps_recommendation_to_quote_id(buyer_client, monkeypatch):
    monkeypatch.setattr(gemini, "generate_json", AsyncMock(return_value={
        "analysis": {"price_comparison": "Quote 2 is cheaper"},
        "recommendation": {"best_overall": "Quote 2", "reasoning": "Lowest landed cost", "confidence": 0.8},
        "insights": [], "warnings": [], "negotiation_opportunities": [],
    }))
    response = buyer_client.post("/api/v1/functions/koniai-analyze-quote", json={
        "rfq": {"title": "Cocoa beans", "quantity": 500},
        "quotes": [
            {"id": "q-a", "supplier_name": "Accra Cocoa", "unit_price": 42, "total_price": 21000},
            {"id": "q-b", "supplier_name": "Abidjan Beans", "unit_price": 39, "total_price": 19500},
        ],
        "preferences": {"priority": "price"},
    })
    assert response.status_code == 200
    body = response.json()
    assert body["recommendation"]["best_overall_id"] == "q-b"
    assert body["quotes_analyzed"] == 2


def test_analyze_quotes_requires_quotes(buyer_client):
    response = buyer_client.post("/api/v1/functions/koniai-analyze-quote", json={"rfq": {"title": "Cocoa"}})
    assert response.status_code == 400


def test_matchmaker_notifies_known_suppliers(buyer_client, db, make_trade, monkeypatch):
    rfq = make_trade("rfq_open", seller_id=None, description="Fermented cocoa beans")
    monkeypatch.setattr(gemini, "generate_json", AsyncMock(return_value=[
        {"supplier_id": SELLER_COMPANY, "reason": "Cocoa exporter", "relevance_score": 0.92},
        {"supplier_id": "company-made-up", "reason": "Hallucinated", "relevance_score": 0.99},
    ]))

    response = buyer_client.post("/api/v1/functions/koniai-matchmaker", json={"rfq_id": rfq["id"]})

    assert response.status_code == 200
    body = response.json()
    assert body["matches_found"] == 1
    assert body["notified"] == 1
    assert db.rows("notifications", user_id=SELLER_USER["id"], related_id=rfq["id"])
    event = db.rows("trade_events", trade_id=rfq["id"], event_type="supplier_notified")[0]
    assert event["payload"]["notification_channel"] == "in_app"


async def test_matchmaker_queues_whatsapp_when_phone_known(db, make_trade, monkeypatch):
    db.tables["profiles"][1]["phone"] = "+233200000000"
    rfq = make_trade("rfq_open", seller_id=None)
    monkeypatch.setattr(gemini, "generate_json", AsyncMock(return_value={
        "matches": [{"supplier_id": SELLER_COMPANY, "reason": "Cocoa", "relevance_score": 0.5}]
    }))

    result = await KoniAIService(db).match_suppliers(rfq)

    assert result.notified == 1
    queued = db.rows("dispatch_notifications", trade_id=rfq["id"])[0]
    assert queued["notification_type"] == "whatsapp"
    assert queued["recipient"] == "+233200000000"
    assert "Relevance: 50%" in queued["message_body"]


def test_fraud_eval_is_admin_only(buyer_client):
    response = buyer_client.post("/api/v1/functions/koniai-fraud-eval", json={"company_id": "company-buyer"})
    assert response.status_code == 403


def test_fraud_eval_auto_promotes_clean_pending_company(admin_client, db, monkeypatch):
    db.seed("companies", {"id": "company-new", "company_name": "Kigali Coffee", "verification_status": "pending"})
    monkeypatch.setattr(gemini, "generate_json", AsyncMock(return_value={
        "fraud_score": 8, "risk_level": "low", "risk_factors": [], "summary": "Clean", "ai_confidence": 0.95,
    }))

    response = admin_client.post("/api/v1/functions/koniai-fraud-eval", json={"company_id": "company-new"})

    assert response.status_code == 200
    assert response.json()["auto_promoted"] is True
    company = db.rows("companies", id="company-new")[0]
    assert company["verification_status"] == "verified"
    assert company["ai_fraud_score"] == 8
    assert db.rows("fraud_evaluations", company_id="company-new")


def test_fraud_eval_rejects_malformed_output(admin_client, monkeypatch):
    monkeypatch.setattr(gemini, "generate_json", AsyncMock(return_value={"fraud_score": 500}))
    response = admin_client.post("/api/v1/functions/koniai-fraud-eval", json={"company_id": "company-buyer"})
    assert response.status_code == 502


def test_dispute_policy_overrides_unavailable_model(buyer_client, db, make_trade, monkeypatch):
    monkeypatch.setattr(settings, "gemini_api_key", None)
    trade = make_trade("disputed")
    overdue = (datetime.now(timezone.utc) - timedelta(days=30)).isoformat()
    db.seed("shipments", {"id": "shp-d", "trade_id": trade["id"], "status": "in_transit", "estimated_delivery": overdue})
    db.seed("disputes", {"id": "d-1", "trade_id": trade["id"], "status": "open"})

    response = buyer_client.post("/api/v1/functions/koniai-dispute-resolver", json={"trade_id": trade["id"]})

    assert response.status_code == 200
    body = response.json()
    assert body["policy_triggered"] is True
    assert body["days_overdue"] >= 29
    assert body["verdict"]["verdict"] == "REFUND_BUYER"
    assert body["verdict"]["reasoning"].startswith("[POLICY TRIGGERED]")
    assert db.rows("disputes", id="d-1")[0]["status"] == "resolved_refund_pending"


def test_dispute_with_recent_movement_follows_model(buyer_client, db, make_trade, monkeypatch):
    trade = make_trade("disputed")
    overdue = (datetime.now(timezone.utc) - timedelta(days=30)).isoformat()
    db.seed("shipments", {"id": "shp-m", "trade_id": trade["id"], "status": "in_transit", "estimated_delivery": overdue})
    db.seed("trade_events", {
        "id": "ev-1", "trade_id": trade["id"], "event_type": "in_transit",
        "created_at": datetime.now(timezone.utc).isoformat(),
    })
    monkeypatch.setattr(gemini, "generate_json", AsyncMock(return_value={
        "verdict": "WAIT_FOR_SELLER", "confidence": 0.7, "reasoning": "Cargo is moving",
    }))

    body = buyer_client.post("/api/v1/functions/koniai-dispute-resolver", json={"trade_id": trade["id"]}).json()
    assert body["policy_triggered"] is False
    assert body["verdict"]["verdict"] == "WAIT_FOR_SELLER"


def test_dispute_without_shipment(buyer_client, make_trade):
    trade = make_trade("disputed")
    response = buyer_client.post("/api/v1/functions/koniai-dispute-resolver", json={"trade_id": trade["id"]})
    assert response.status_code == 400


def test_high_delay_risk_is_logged(seller_client, db, make_trade, monkeypatch):
    trade = make_trade("in_transit")
    db.seed("shipments", {
        "id": "shp-r", "trade_id": trade["id"], "status": "in_transit", "tracking_number": "AFK-1",
        "current_location": "Apapa customs", "created_at": datetime.now(timezone.utc).isoformat(),
    })
    monkeypatch.setattr(gemini, "generate_json", AsyncMock(return_value={
        "risk_level": "High", "reason": "Held at customs", "estimated_delay_hours": 72,
    }))

    response = seller_client.post("/api/v1/functions/koniai-logistics-tracker", json={"shipment_id": "shp-r"})

    assert response.status_code == 200
    assert response.json()["risk_level"] == "High"
    event = db.rows("trade_events", trade_id=trade["id"], event_type="error_occurred")[0]
    assert event["payload"]["kind"] == "delay_risk"


def test_logistics_tracker_unknown_shipment(seller_client):
    response = seller_client.post("/api/v1/functions/koniai-logistics-tracker", json={"shipment_id": "nope"})
    assert response.status_code == 404
