from app.modules.dashboard.service import DashboardService
from tests.conftest import BUYER_COMPANY, SELLER_COMPANY


def test_stats_from_rpc(buyer_client, db):
    db.rpcs["company_dashboard_stats"] = lambda p_company_id: [{
        "trades_by_status": {"rfq_open": 2},
        "active_trades": 2,
        "open_rfqs": 2,
        "pending_quotes_received": 3,
        "pending_quotes_sent": 0,
        "escrow_totals": {"held": 0, "released": 0, "refunded": 0, "pending": 0},
    }]

    response = buyer_client.get("/api/v1/dashboard/stats")

    assert response.status_code == 200
    body = response.json()
    assert body["source"] == "rpc"
    assert body["company_id"] == BUYER_COMPANY
    assert body["pending_quotes_received"] == 3


def test_stats_aggregate_when_rpc_missing(db, make_trade):
    rfq = make_trade("rfq_open", seller_id=None)
    make_trade("rfq_open", seller_id=None, buyer_id=SELLER_COMPANY)
    funded = make_trade("escrow_funded")
    make_trade("settled")
    db.seed(
        "quotes",
        {"id": "q1", "trade_id": rfq["id"], "supplier_company_id": SELLER_COMPANY, "status": "submitted"},
        {"id": "q2", "trade_id": rfq["id"], "supplier_company_id": "company-x", "status": "rejected"},
    )
    db.seed(
        "escrows",
        {"id": "e1", "trade_id": funded["id"], "buyer_id": BUYER_COMPANY, "seller_id": SELLER_COMPANY, "status": "funded", "amount": 20000},
        {"id": "e2", "trade_id": "old", "buyer_id": BUYER_COMPANY, "seller_id": SELLER_COMPANY, "status": "released", "amount": 5000},
    )

    stats = DashboardService(db).company_stats(BUYER_COMPANY)

    assert stats.source == "aggregate"
    assert stats.trades_by_status == {"rfq_open": 1, "escrow_funded": 1, "settled": 1}
    assert stats.active_trades == 2
    assert stats.open_rfqs == 1
    assert stats.pending_quotes_received == 1
    assert stats.pending_quotes_sent == 0
    assert stats.escrow_totals.held == 20000
    assert stats.escrow_totals.released == 5000


def test_supplier_sees_quotes_sent(db, make_trade):
    rfq = make_trade("rfq_open", seller_id=None)
    db.seed("quotes", {"id": "q1", "trade_id": rfq["id"], "supplier_company_id": SELLER_COMPANY, "status": "submitted"})

    stats = DashboardService(db).company_stats(SELLER_COMPANY)

    assert stats.pending_quotes_sent == 1
    assert stats.open_rfqs == 0
    assert stats.trades_by_status == {}


def test_stats_need_a_company(as_user, db):
    db.seed("profiles", {"id": "user-solo", "company_id": None, "is_admin": False})
    client = as_user({"id": "user-solo", "email": "solo@example.com", "app_metadata": {}})
    assert client.get("/api/v1/dashboard/stats").status_code == 400
