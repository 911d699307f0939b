import base64
import hashlib
import hmac
import json
import time
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from app.config.settings import settings
from app.core import http_client
from app.modules.verification import smile_id
from tests.conftest import BUYER_COMPANY, BUYER_USER

SECRET = "smile-webhook-secret"


class TestSmileHelpers:
    def test_request_signature(self):
        expected = base64.b64encode(
            hmac.new(b"key", b"2026-01-01T00:00:00+00:00123sid_request", hashlib.sha256).digest()
        ).decode()
        assert smile_id.request_signature("2026-01-01T00:00:00+00:00", "123", "key") == expected

    def test_status_for_result_code(self):
        assert smile_id.status_for_result_code("0100") == "VERIFIED"
        assert smile_id.status_for_result_code("0102") == "VERIFIED"
        assert smile_id.status_for_result_code("0213") == "REJECTED"
        assert smile_id.status_for_result_code("1022") == "REJECTED"
        assert smile_id.status_for_result_code("0812") == "REQUIRES_REVIEW"
        assert smile_id.status_for_result_code(None) == "REQUIRES_REVIEW"

    def test_business_id_type(self):
        assert smile_id.business_id_type("ng") == "CAC"
        assert smile_id.business_id_type("FR") == "BUSINESS_REGISTRATION"

    def test_strip_data_url(self):
        assert smile_id.strip_data_url("data:image/png;base64,AAAA") == "AAAA"
        assert smile_id.strip_data_url("AAAA") == "AAAA"

    def test_callback_signature_formats(self):
        body = b'{"a": 1}'
        digest = hmac.new(SECRET.encode(), body, hashlib.sha256).digest()
        assert smile_id.callback_signature_valid(body, digest.hex(), SECRET)
        assert smile_id.callback_signature_valid(body, f"sha256={digest.hex()}", SECRET)
        assert smile_id.callback_signature_valid(body, base64.b64encode(digest).decode(), SECRET)
        assert not smile_id.callback_signature_valid(body, "00" * 32, SECRET)
        assert not smile_id.callback_signature_valid(b'{"a": 2}', digest.hex(), SECRET)

    def test_timestamp_window(self):
        now = datetime.now(timezone.utc)
        assert smile_id.timestamp_is_recent(str(int(now.timestamp())))
        assert smile_id.timestamp_is_recent(str(int(now.timestamp() * 1000)))
        assert smile_id.timestamp_is_recent(now.isoformat())
        assert not smile_id.timestamp_is_recent((now - timedelta(minutes=20)).isoformat())
        assert not smile_id.timestamp_is_recent("yesterday")


@pytest.fixture
def smile(monkeypatch):
    monkeypatch.setattr(settings, "smile_id_partner_id", "1234")
    monkeypatch.setattr(settings, "smile_id_api_key", "smile-api-key")
    monkeypatch.setattr(settings, "smile_id_webhook_secret", SECRET)
    fake = MagicMock()
    fake.post = AsyncMock(return_value=httpx.Response(200, json={"success": True, "smile_job_id": "0000123"}))
    monkeypatch.setattr(http_client, "http", fake)
    return fake


def test_business_verification_submits_signed_job(buyer_client, db, smile):
    response = buyer_client.post("/api/v1/functions/smile-id-verify", json={
        "verification_type": "business",
        "country_code": "ng",
        "company_name": "Lagos Foods Ltd",
        "registration_number": "RC123456",
        "registration_certificate": "data:image/jpeg;base64,QUJD",
    })

    assert response.status_code == 200
    body = response.json()
    assert body["job_id"].startswith(f"afrikoni_biz_{BUYER_COMPANY}_")
    assert body["smile_job_id"] == "0000123"

    url = smile.post.call_args.args[0]
    sent = smile.post.call_args.kwargs["json"]
    assert url.endswith("/business_verification")
    assert sent["partner_id"] == "1234"
    assert sent["signature"] == smile_id.request_signature(sent["timestamp"], "1234", "smile-api-key")
    assert sent["id_info"]["id_type"] == "CAC"
    assert sent["images"][0]["image"] == "QUJD"

    company = db.rows("companies", id=BUYER_COMPANY)[0]
    assert company["verification_status"] == "IN_PROGRESS"
    assert company["smile_id_job_id"] == body["job_id"]
    assert db.rows("verification_jobs", job_id=body["job_id"])[0]["status"] == "IN_PROGRESS"
    assert db.rows("activity_logs", entity_id=BUYER_COMPANY, action="VERIFICATION_INITIATED")


def test_identity_verification_does_not_store_id_number(buyer_client, db, smile):
    response = buyer_client.post("/api/v1/functions/smile-id-verify", json={
        "verification_type": "identity",
        "country_code": "KE",
        "id_type": "NATIONAL_ID",
        "id_number": "12345678",
        "personal_info": {"first_name": "Wanjiru", "last_name": "Kamau"},
    })

    assert response.status_code == 200
    job_id = response.json()["job_id"]
    assert smile.post.call_args.args[0].endswith("/id_verification")
    assert db.rows("profiles", id=BUYER_USER["id"])[0]["kyc_status"] == "IN_PROGRESS"
    job = db.rows("verification_jobs", job_id=job_id)[0]
    assert job["request_payload"]["id_info"]["id_number"] is None


def test_business_verification_requires_registration_number(buyer_client, smile):
    response = buyer_client.post("/api/v1/functions/smile-id-verify", json={
        "verification_type": "business", "country_code": "NG",
    })
    assert response.status_code == 400
    smile.post.assert_not_called()


def test_verification_not_configured(buyer_client, monkeypatch):
    monkeypatch.setattr(settings, "smile_id_partner_id", None)
    response = buyer_client.post("/api/v1/functions/smile-id-verify", json={
        "verification_type": "business", "country_code": "NG", "registration_number": "RC1",
    })
    assert response.status_code == 503


def _signed_post(client, payload, secret=SECRET, timestamp=None):
    raw = json.dumps(payload).encode()
    signature = hmac.new(secret.encode(), raw, hashlib.sha256).hexdigest()
    headers = {
        "content-type": "application/json",
        "x-smile-signature": signature,
        "x-smile-timestamp": timestamp or str(int(time.time())),
    }
    return client.post("/api/v1/webhooks/smile-id", content=raw, headers=headers)


def test_business_callback_verifies_company(anon_client, db, smile):
    job_id = f"afrikoni_biz_{BUYER_COMPANY}_1"
    db.tables["companies"][0]["smile_id_job_id"] = job_id
    db.seed("verification_jobs", {"id": "vj1", "job_id": job_id, "status": "IN_PROGRESS"})

    response = _signed_post(anon_client, {
        "PartnerParams": {"job_id": job_id},
        "Result": {"ResultCode": "0100", "ResultText": "Business Verified"},
    })

    assert response.status_code == 200
    assert response.json() == {
        "success": True, "type": "business_verification", "entity_id": BUYER_COMPANY, "status": "VERIFIED"
    }
    company = db.rows("companies", id=BUYER_COMPANY)[0]
    assert company["verified"] is True
    assert company["verification_result_code"] == "0100"
    assert db.rows("verification_jobs", job_id=job_id)[0]["status"] == "VERIFIED"
    assert db.rows("notifications", user_id=BUYER_USER["id"], title="Company verified")


def test_identity_callback_rejects_profile(anon_client, db, smile):
    job_id = f"afrikoni_kyc_{BUYER_USER['id']}_1"
    db.tables["profiles"][0]["smile_id_job_id"] = job_id

    response = _signed_post(anon_client, {
        "PartnerParams": {"job_id": job_id},
        "Result": {"ResultCode": "1013", "ResultText": "ID number not found"},
    })

    assert response.status_code == 200
    assert response.json()["status"] == "REJECTED"
    assert db.rows("profiles", id=BUYER_USER["id"])[0]["kyc_status"] == "REJECTED"


def test_callback_for_unknown_job(anon_client, smile):
    response = _signed_post(anon_client, {"PartnerParams": {"job_id": "afrikoni_biz_x_1"}, "ResultCode": "0100"})
    assert response.status_code == 404


def test_callback_with_bad_signature(anon_client, db, smile):
    db.tables["companies"][0]["smile_id_job_id"] = "afrikoni_biz_company-buyer_1"
    response = _signed_post(anon_client, {"PartnerParams": {"job_id": "afrikoni_biz_company-buyer_1"}}, secret="wrong")
    assert response.status_code == 401
    assert db.rows("companies", id=BUYER_COMPANY)[0]["verification_status"] == "PENDING"


def test_stale_callback(anon_client, smile):
    stale = str(int(time.time()) - 3600)
    response = _signed_post(anon_client, {"PartnerParams": {"job_id": "afrikoni_biz_x_1"}}, timestamp=stale)
    assert response.status_code == 401


def test_callback_without_secret(anon_client, monkeypatch):
    monkeypatch.setattr(settings, "smile_id_webhook_secret", None)
    monkeypatch.setattr(settings, "smile_id_api_key", None)
    response = _signed_post(anon_client, {"PartnerParams": {"job_id": "afrikoni_biz_x_1"}})
    assert response.status_code == 503


def test_finalize_is_admin_only(buyer_client, admin_client, db):
    payload = {"company_id": BUYER_COMPANY, "status": "VERIFIED", "notes": "Documents match"}
    assert buyer_client.post("/api/v1/functions/verify_finalize", json=payload).status_code == 403

    response = admin_client.post("/api/v1/functions/verify_finalize", json=payload)
    assert response.status_code == 200
    assert response.json()["notified"] == 1
    company = db.rows("companies", id=BUYER_COMPANY)[0]
    assert company["verification_status"] == "VERIFIED"
    assert company["verified_at"]
    assert db.rows("activity_logs", action="VERIFICATION_FINALIZED")


def test_finalize_unknown_company(admin_client):
    response = admin_client.post("/api/v1/functions/verify_finalize", json={"company_id": "nope", "status": "REJECTED"})
    assert response.status_code == 404


def test_extract_falls_back_to_manual_review(buyer_client, monkeypatch):
    monkeypatch.setattr(settings, "gemini_api_key", None)
    response = buyer_client.post("/api/v1/functions/verify_extract", json={
        "document_type": "business_registration", "text": "Certificate of incorporation RC123456",
    })
    assert response.status_code == 200
    body = response.json()
    assert body["requires_manual_review"] is True
    assert body["issues"] == ["Automatic extraction unavailable"]


def test_extract_flags_low_confidence(buyer_client, db, monkeypatch):
    monkeypatch.setattr(
        "app.modules.verification.service.generate_json",
        AsyncMock(return_value={"fields": {"registration_number": "RC123456"}, "confidence": 0.55, "issues": []}),
    )
    response = buyer_client.post("/api/v1/functions/verify_extract", json={
        "image_base64": "data:image/jpeg;base64,QUJD", "company_id": BUYER_COMPANY,
    })
    body = response.json()
    assert body["fields"] == {"registration_number": "RC123456"}
    assert body["confidence"] == 0.55
    assert body["requires_manual_review"] is True
    assert db.rows("activity_logs", entity_id=BUYER_COMPANY, action="DOCUMENT_EXTRACTED")


def test_extract_for_another_company_is_forbidden(buyer_client):
    response = buyer_client.post("/api/v1/functions/verify_extract", json={
        "text": "Certificate", "company_id": "company-seller",
    })
    assert response.status_code == 403


def test_extract_needs_content(buyer_client):
    assert buyer_client.post("/api/v1/functions/verify_extract", json={}).status_code == 400
