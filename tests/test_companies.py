import pytest

from app.modules.companies.service import CompanyService
from tests.conftest import BUYER_COMPANY, SELLER_COMPANY

NEW_USER = {"id": "user-new", "email": "amina@kanograins.ng", "app_metadata": {}}


@pytest.fixture
def companies(db):
    db.seed("profiles", {"id": NEW_USER["id"], "company_id": None, "is_admin": False})
    return CompanyService(db)


class TestLazyCompany:
    def test_creates_minimal_buyer_company(self, db, companies):
        company_id = companies.ensure_company_for_user(NEW_USER)

        company = db.rows("companies", id=company_id)[0]
        assert company["company_name"] == "Company - amina"
        assert company["user_id"] == NEW_USER["id"]
        assert company["verification_status"] == "unverified"
        capabilities = db.rows("company_capabilities", company_id=company_id)[0]
        assert capabilities["can_buy"] is True
        assert capabilities["can_sell"] is False
        assert capabilities["sell_status"] == "disabled"
        assert db.rows("profiles", id=NEW_USER["id"])[0]["company_id"] == company_id

    def test_second_call_reuses_company(self, db, companies):
        first = companies.ensure_company_for_user(NEW_USER)
        db.rows("profiles", id=NEW_USER["id"])[0]["company_id"] = None

        assert companies.ensure_company_for_user(NEW_USER) == first
        assert len(db.rows("companies", user_id=NEW_USER["id"])) == 1

    def test_linked_profile_short_circuits(self, db, companies):
        assert companies.ensure_company_for_user(NEW_USER, {"company_id": BUYER_COMPANY}) == BUYER_COMPANY
        assert db.rows("companies", user_id=NEW_USER["id"]) == []

    def test_name_falls_back_to_user_id(self, db, companies):
        company_id = companies.ensure_company_for_user({"id": "user-new", "email": None})
        assert db.rows("companies", id=company_id)[0]["company_name"] == "Company - user-new"

    def test_concurrent_insert_reads_the_winner(self, db, companies, monkeypatch):
        db.seed("companies", {"id": "company-winner", "user_id": NEW_USER["id"], "company_name": "Company - amina"})
        real_find = CompanyService._find_owned_company_id
        lookups = []

        def find(self, user_id):
            lookups.append(user_id)
            return None if len(lookups) == 1 else real_find(self, user_id)

        real_table = db.table

        def table(name):
            query = real_table(name)
            if name == "companies":
                def duplicate():
                    raise Exception('duplicate key value violates unique constraint "companies_user_id_key"')
                query._execute_insert = duplicate
            return query

        monkeypatch.setattr(CompanyService, "_find_owned_company_id", find)
        monkeypatch.setattr(db, "table", table)

        assert companies.ensure_company_for_user(NEW_USER) == "company-winner"
        assert len(db.rows("companies", user_id=NEW_USER["id"])) == 1
        assert db.rows("profiles", id=NEW_USER["id"])[0]["company_id"] == "company-winner"

    def test_me_without_company_is_a_bad_request(self, db, as_user):
        db.seed("profiles", {"id": NEW_USER["id"], "company_id": None, "is_admin": False})
        client = as_user(NEW_USER)
        response = client.get("/api/v1/companies/me")
        assert response.status_code == 400


class TestOnboarding:
    def test_seller_onboarding_requests_review(self, db, as_user, companies):
        client = as_user(NEW_USER)
        response = client.post("/api/v1/companies", json={
            "company_name": "Kano Grains", "country": "Nigeria", "role": "seller"
        })

        assert response.status_code == 201
        company_id = response.json()["id"]
        capabilities = db.rows("company_capabilities", company_id=company_id)[0]
        assert capabilities["can_sell"] is True
        assert capabilities["sell_status"] == "pending"
        assert db.rows("profiles", id=NEW_USER["id"])[0]["company_id"] == company_id

    def test_one_company_per_owner(self, as_user, companies):
        client = as_user(NEW_USER)
        assert client.post("/api/v1/companies", json={"company_name": "Kano Grains"}).status_code == 201
        assert client.post("/api/v1/companies", json={"company_name": "Kano Grains 2"}).status_code == 409

    def test_update_my_company(self, db, buyer_client):
        response = buyer_client.patch("/api/v1/companies/me", json={"city": "Lagos", "website": "https://lagosfoods.ng"})
        assert response.status_code == 200
        assert db.rows("companies", id=BUYER_COMPANY)[0]["city"] == "Lagos"

    def test_public_profile_counts_active_products(self, db, buyer_client):
        db.seed(
            "products",
            {"id": "p1", "company_id": SELLER_COMPANY, "name": "Cocoa", "status": "active"},
            {"id": "p2", "company_id": SELLER_COMPANY, "name": "Nibs", "status": "draft"},
        )
        response = buyer_client.get(f"/api/v1/companies/{SELLER_COMPANY}")
        assert response.status_code == 200
        assert response.json()["product_count"] == 1
        assert "owner_email" not in response.json()


class TestCapabilities:
    def test_requesting_sell_puts_it_in_review(self, db, buyer_client):
        response = buyer_client.patch("/api/v1/companies/me/capabilities", json={"can_sell": True})

        assert response.status_code == 200
        assert response.json()["can_sell"] is True
        assert response.json()["sell_status"] == "pending"
        assert response.json()["can_buy"] is True

    def test_disabling_is_immediate(self, db, seller_client):
        response = seller_client.patch("/api/v1/companies/me/capabilities", json={"can_sell": False})
        assert response.json()["sell_status"] == "disabled"

    def test_approved_status_survives_a_repeat_request(self, seller_client):
        response = seller_client.patch("/api/v1/companies/me/capabilities", json={"can_sell": True})
        assert response.json()["sell_status"] == "approved"

    def test_admin_approves_logistics(self, db, admin_client):
        db.rows("company_capabilities", company_id=BUYER_COMPANY)[0].update({"can_logistics": True, "logistics_status": "pending"})

        response = admin_client.post(f"/api/v1/companies/{BUYER_COMPANY}/capabilities/review", json={
            "capability": "logistics", "status": "approved"
        })

        assert response.status_code == 200
        assert response.json()["logistics_status"] == "approved"

    def test_rejected_seller_loses_seller_permissions(self, admin_client, seller_client):
        response = admin_client.post(f"/api/v1/companies/{SELLER_COMPANY}/capabilities/review", json={
            "capability": "sell", "status": "rejected"
        })
        assert response.status_code == 200

        assert seller_client.post("/api/v1/products", json={"name": "Cocoa beans"}).status_code == 403

    def test_rejected_request_can_be_resubmitted(self, db, seller_client):
        db.rows("company_capabilities", company_id=SELLER_COMPANY)[0]["sell_status"] = "rejected"
        response = seller_client.patch("/api/v1/companies/me/capabilities", json={"can_sell": True})
        assert response.json()["sell_status"] == "pending"

    def test_only_admins_review(self, seller_client):
        response = seller_client.post(f"/api/v1/companies/{SELLER_COMPANY}/capabilities/review", json={
            "capability": "sell", "status": "approved"
        })
        assert response.status_code == 403

    def test_review_unknown_company(self, admin_client):
        response = admin_client.post("/api/v1/companies/company-ghost/capabilities/review", json={
            "capability": "sell", "status": "approved"
        })
        assert response.status_code == 404

    @pytest.mark.parametrize("body", [
        {"capability": "buy", "status": "approved"},
        {"capability": "sell", "status": "pending"},
    ])
    def test_review_body_is_validated(self, admin_client, body):
        response = admin_client.post(f"/api/v1/companies/{SELLER_COMPANY}/capabilities/review", json=body)
        assert response.status_code == 422
