import pytest
from fastapi import HTTPException

from app.modules.trades.schemas import TradeCreate
from app.modules.trades.service import TradeKernelService
from app.modules.trade_events.service import TradeEventService
from tests.conftest import BUYER_USER, SELLER_USER, ADMIN_USER, BUYER_COMPANY


@pytest.fixture
def kernel(db):
    return TradeKernelService(db)


def test_buyer_contracts_quoted_trade(db, kernel, make_trade):
    trade = make_trade("quoted")
    decision = kernel.transition(trade["id"], "contracted", {"terms": "FOB Tema"}, user_data=BUYER_USER)

    assert decision.success
    assert decision.decision == "ALLOW"
    assert decision.next_state == "contracted"
    stored = db.rows("trades", id=trade["id"])[0]
    assert stored["status"] == "contracted"
    assert stored["metadata"]["previous_state"] == "quoted"
    assert stored["metadata"]["terms"] == "FOB Tema"
    assert stored["metadata"]["trade_dna"].startswith("AFK-DNA-")

    events = db.rows("trade_events", trade_id=trade["id"], event_type="state_transition")
    assert len(events) == 1
    assert events[0]["status_from"] == "quoted"
    assert events[0]["status_to"] == "contracted"
    assert events[0]["actor_role"] == "buyer"


def test_seller_cannot_contract(db, kernel, make_trade):
    trade = make_trade("quoted")
    decision = kernel.transition(trade["id"], "contracted", user_data=SELLER_USER)
    assert decision.decision == "BLOCK"
    assert decision.reason_code == "ROLE_FORBIDDEN"
    assert db.rows("trades", id=trade["id"])[0]["status"] == "quoted"


def test_outsider_is_unauthorized(db, kernel, make_trade):
    db.seed("profiles", {"id": "user-other", "company_id": "company-other", "is_admin": False})
    trade = make_trade("quoted")
    decision = kernel.transition(trade["id"], "contracted", user_data={"id": "user-other", "app_metadata": {}})
    assert decision.reason_code == "ACTOR_UNAUTHORIZED"


def test_illegal_jump_is_blocked(kernel, make_trade):
    trade = make_trade("rfq_open")
    decision = kernel.transition(trade["id"], "contracted", user_data=BUYER_USER)
    assert decision.reason_code == "ILLEGAL_TRANSITION"


def test_unknown_target_state(kernel, make_trade):
    trade = make_trade("rfq_open")
    decision = kernel.transition(trade["id"], "shipped", user_data=BUYER_USER)
    assert decision.reason_code == "ILLEGAL_TRANSITION"


def test_missing_trade_is_404(kernel):
    with pytest.raises(HTTPException) as exc:
        kernel.transition("missing", "quoted", user_data=BUYER_USER)
    assert exc.value.status_code == 404


def test_escrow_funded_requires_funded_escrow(db, kernel, make_trade):
    trade = make_trade("escrow_required")
    decision = kernel.transition(trade["id"], "escrow_funded", user_data=BUYER_USER)
    assert decision.reason_code == "ESCROW_NOT_FUNDED"
    assert decision.required_actions == ["fund_escrow"]

    db.seed("escrows", {"id": "esc-1", "trade_id": trade["id"], "status": "funded", "amount": 20000})
    decision = kernel.transition(trade["id"], "escrow_funded", user_data=BUYER_USER)
    assert decision.success


def test_delivery_requires_shipment(db, kernel, make_trade):
    trade = make_trade("in_transit")
    decision = kernel.transition(trade["id"], "delivered", user_data=SELLER_USER)
    assert decision.reason_code == "SHIPMENT_MISSING"

    db.seed("shipments", {"id": "shp-1", "trade_id": trade["id"], "status": "in_transit"})
    decision = kernel.transition(trade["id"], "delivered", user_data=SELLER_USER)
    assert decision.success
    assert db.rows("shipments", id="shp-1")[0]["status"] == "delivered"


def test_acceptance_records_buyer_acceptance(db, kernel, make_trade):
    trade = make_trade("delivered")
    decision = kernel.transition(trade["id"], "accepted", user_data=BUYER_USER)
    assert decision.success
    assert db.rows("trades", id=trade["id"])[0]["metadata"]["buyer_accepted"] is True


def test_dry_run_changes_nothing(db, kernel, make_trade):
    trade = make_trade("quoted")
    decision = kernel.transition(trade["id"], "contracted", dry_run=True, user_data=BUYER_USER)
    assert decision.success
    assert decision.next_state == "contracted"
    assert decision.trade is None
    assert db.rows("trades", id=trade["id"])[0]["status"] == "quoted"
    assert db.rows("trade_events", trade_id=trade["id"]) == []


def test_next_action_suggests_first_successor(kernel, make_trade):
    trade = make_trade("quoted")
    decision = kernel.get_next_action(trade["id"], BUYER_USER)
    assert decision.success
    assert decision.next_state == "contracted"


def test_closed_trade_is_terminal(kernel, make_trade):
    trade = make_trade("closed")
    decision = kernel.transition(trade["id"], None, user_data=BUYER_USER)
    assert decision.reason_code == "TERMINAL_STATE"


def test_next_state_required(kernel, make_trade):
    trade = make_trade("quoted")
    decision = kernel.transition(trade["id"], None, user_data=BUYER_USER)
    assert decision.reason_code == "NEXT_STATE_REQUIRED"


def test_concurrent_modification_is_blocked(db, kernel, make_trade, monkeypatch):
    trade = make_trade("contracted")
    stale = {**trade, "status": "quoted"}
    monkeypatch.setattr(kernel, "_load_trade", lambda trade_id: dict(stale))

    decision = kernel.transition(trade["id"], "contracted", user_data=BUYER_USER)
    assert decision.reason_code == "CONCURRENT_MODIFICATION"
    assert db.rows("trades", id=trade["id"])[0]["status"] == "contracted"


def test_settlement_needs_three_keys(kernel, make_trade):
    trade = make_trade("accepted")
    decision = kernel.transition(trade["id"], "settled", user_data=BUYER_USER)
    assert decision.reason_code == "CONSENSUS_REQUIRED"
    assert set(decision.required_actions) == {"AI_SENTINEL_SIG", "LOGISTICS_ORACLE_SIG", "BUYER_SIG"}


def test_settlement_falls_back_to_direct_commit(db, kernel, make_trade):
    trade = make_trade("accepted", metadata={"signatures": ["BUYER_SIG_k1_abcd"]})
    db.seed("escrows", {"id": "esc-9", "trade_id": trade["id"], "status": "funded", "amount": 20000, "balance": 20000})

    decision = kernel.transition(
        trade["id"], "settled",
        {"signatures": ["AI_SENTINEL_SIG_k2_abcd", "LOGISTICS_ORACLE_SIG_k3_abcd"]},
        user_data=ADMIN_USER,
    )
    assert decision.success
    assert decision.settlement == {"method": "direct", "escrow_released": True}
    assert db.rows("trades", id=trade["id"])[0]["status"] == "settled"
    assert db.rows("escrows", id="esc-9")[0]["status"] == "released"
    assert db.rows("trade_events", trade_id=trade["id"], event_type="payment_released")


def test_settlement_uses_rpc_when_available(db, kernel, make_trade):
    trade = make_trade("accepted")
    calls = []

    def settle(p_trade_id, p_user_id, p_metadata):
        calls.append(p_trade_id)
        return [{"id": p_trade_id, "status": "settled"}]

    db.rpcs["kernel_settle_trade"] = settle
    decision = kernel.transition(
        trade["id"], "settled",
        {"signatures": ["BUYER_SIG_a_abcd", "AI_SENTINEL_SIG_b_abcd", "LOGISTICS_ORACLE_SIG_c_abcd"]},
        user_data=ADMIN_USER,
    )
    assert decision.success
    assert decision.settlement == {"method": "rpc"}
    assert calls == [trade["id"]]


def test_buyer_cannot_forge_seller_signature(kernel, make_trade):
    trade = make_trade("accepted")
    decision = kernel.transition(
        trade["id"], "accepted", {"signatures": ["SELLER_SIG_x_abcd"]}, user_data=BUYER_USER
    )
    assert decision.reason_code == "ROLE_FORBIDDEN"
    assert decision.required_actions == ["SELLER_SIG_x_abcd"]


def test_request_consensus_records_signature_without_moving(db, kernel, make_trade):
    trade = make_trade("accepted")
    decision = kernel.request_consensus(trade["id"], "buyer", BUYER_USER)

    assert decision.success
    stored = db.rows("trades", id=trade["id"])[0]
    assert stored["status"] == "accepted"
    assert stored["metadata"]["signatures"][0].startswith("BUYER_SIG_")
    assert stored["metadata"]["consensus_event"] == "BUYER_SIGNED"
    timestamp = stored["metadata"]["signatures"][0][len("BUYER_SIG_"):].rsplit("_", 1)[0]
    assert timestamp == timestamp.upper()
    assert db.rows("trade_events", trade_id=trade["id"], event_type="consensus_signed")

    status = kernel.check_consensus(trade["id"])
    assert status.buyer_signed
    assert not status.consensus_reached


def test_same_state_without_new_signature_is_illegal(kernel, make_trade):
    trade = make_trade("accepted")
    decision = kernel.transition(trade["id"], "accepted", user_data=BUYER_USER)
    assert decision.reason_code == "ILLEGAL_TRANSITION"


def test_pickup_creates_shipment(db, kernel, make_trade):
    trade = make_trade("production", delivery_location="Lagos")
    decision = kernel.transition(trade["id"], "pickup_scheduled", {"pickup_city": "Kumasi"}, user_data=SELLER_USER)
    assert decision.success
    shipments = db.rows("shipments", trade_id=trade["id"])
    assert len(shipments) == 1
    assert shipments[0]["tracking_number"]


def test_lost_race_runs_no_pickup_side_effects(db, kernel, make_trade, monkeypatch):
    trade = make_trade("disputed")
    stale = {**trade, "status": "production"}
    monkeypatch.setattr(kernel, "_load_trade", lambda trade_id: dict(stale))

    decision = kernel.transition(trade["id"], "pickup_scheduled", {"pickup_city": "Kumasi"}, user_data=SELLER_USER)

    assert decision.reason_code == "CONCURRENT_MODIFICATION"
    assert db.rows("shipments", trade_id=trade["id"]) == []
    assert db.rows("dispatch_events", trade_id=trade["id"]) == []
    assert db.rows("dispatch_notifications", trade_id=trade["id"]) == []


def test_create_rfq_trade_mirrors_rfq_row(db, kernel):
    trade = kernel.create_trade(
        TradeCreate(title="Cashew nuts", quantity=20, quantity_unit="tons"),
        BUYER_USER["id"], BUYER_COMPANY
    )
    assert trade["status"] == "rfq_open"
    assert trade["metadata"]["kernel_version"]
    mirror = db.rows("rfqs", id=trade["id"])
    assert mirror and mirror[0]["status"] == "open"
    assert db.rows("trade_events", trade_id=trade["id"], event_type="rfq_created")


def test_ledger_is_append_only(db):
    events = TradeEventService(db)
    assert not hasattr(events, "update")
    assert not hasattr(events, "delete")
    with pytest.raises(HTTPException) as exc:
        events.emit("t-1", "made_up_event")
    assert exc.value.status_code == 400


def test_automation_rules_notify_parties(db, make_trade):
    trade = make_trade("quoted")
    db.seed("automation_rules", {
        "id": "rule-1", "trigger_event": "quote_selected", "enabled": True,
        "action": "send_notification", "recipients": ["seller"],
        "message_template": "Update on {trade_id}: {event_type}",
    })
    TradeEventService(db).emit(trade["id"], "quote_selected", payload={"quote_id": "q1"})

    notes = db.rows("notifications", user_id=SELLER_USER["id"])
    assert len(notes) == 1
    assert notes[0]["message"] == f"Update on {trade['id']}: quote_selected"
    assert db.rows("trade_events", trade_id=trade["id"], event_type="automation_triggered")


def test_transition_endpoint(buyer_client, make_trade):
    trade = make_trade("quoted")
    response = buyer_client.post(f"/api/v1/trades/{trade['id']}/transition", json={"next_state": "contracted"})
    assert response.status_code == 200
    assert response.json()["decision"] == "ALLOW"


def test_trade_transition_function_accepts_camel_case(seller_client, make_trade):
    trade = make_trade("quoted")
    response = seller_client.post(
        "/api/v1/functions/trade-transition",
        json={"tradeId": trade["id"], "nextState": "contracted"},
    )
    assert response.status_code == 200
    assert response.json()["reason_code"] == "ROLE_FORBIDDEN"
