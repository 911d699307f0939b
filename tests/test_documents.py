from unittest.mock import MagicMock

import pytest

from app.config.settings import settings
from app.modules.documents.service import safe_file_name
from tests.conftest import BUYER_COMPANY, SELLER_COMPANY, BUYER_USER

PDF = b"%PDF-1.4 commercial invoice"


def _upload(client, trade_id, doc_type="invoice", content=PDF, name="Invoice 001.pdf", content_type="application/pdf"):
    return client.post(
        f"/api/v1/trades/{trade_id}/documents",
        data={"doc_type": doc_type},
        files={"file": (name, content, content_type)},
    )


def test_safe_file_name():
    assert safe_file_name("../../etc/passwd") == "passwd"
    assert safe_file_name("Invoice 001 (final).pdf") == "Invoice_001_final_.pdf"
    assert safe_file_name("") == "document"


def test_upload_to_supabase_storage(buyer_client, db, make_trade):
    trade = make_trade("contracted")
    response = _upload(buyer_client, trade["id"])

    assert response.status_code == 201
    body = response.json()
    assert body["doc_type"] == "invoice"
    assert body["company_id"] == BUYER_COMPANY
    assert body["uploaded_by"] == BUYER_USER["id"]
    assert body["size_bytes"] == len(PDF)
    assert body["file_path"].startswith(f"{trade['id']}/invoice/")
    assert body["file_path"].endswith("_Invoice_001.pdf")
    assert body["download_url"].startswith("https://storage.test/trade-documents/")
    assert db.storage.files[("trade-documents", body["file_path"])] == PDF


def test_upload_rejects_unsupported_type(buyer_client, make_trade):
    trade = make_trade("contracted")
    response = _upload(buyer_client, trade["id"], name="run.sh", content=b"echo", content_type="text/x-shellscript")
    assert response.status_code == 400


def test_upload_rejects_empty_file(buyer_client, make_trade):
    trade = make_trade("contracted")
    assert _upload(buyer_client, trade["id"], content=b"").status_code == 400


def test_upload_rejects_unknown_doc_type(buyer_client, make_trade):
    trade = make_trade("contracted")
    assert _upload(buyer_client, trade["id"], doc_type="selfie").status_code == 422


def test_outsider_cannot_upload(as_user, db, make_trade):
    db.seed("profiles", {"id": "user-out", "company_id": "company-out", "is_admin": False})
    db.seed("company_capabilities", {"company_id": "company-out", "can_buy": True, "can_sell": False})
    trade = make_trade("contracted")
    client = as_user({"id": "user-out", "email": "out@example.com", "app_metadata": {}})
    assert _upload(client, trade["id"]).status_code == 403


def test_list_documents_filters_by_type(buyer_client, seller_client, make_trade):
    trade = make_trade("contracted")
    _upload(buyer_client, trade["id"], doc_type="invoice")
    _upload(seller_client, trade["id"], doc_type="certificate", name="phyto.pdf")

    everything = buyer_client.get(f"/api/v1/trades/{trade['id']}/documents").json()
    assert {d["doc_type"] for d in everything} == {"invoice", "certificate"}

    certificates = seller_client.get(f"/api/v1/trades/{trade['id']}/documents", params={"doc_type": "certificate"}).json()
    assert [d["company_id"] for d in certificates] == [SELLER_COMPANY]


def test_only_uploading_company_deletes(buyer_client, seller_client, db, make_trade):
    trade = make_trade("contracted")
    document = _upload(buyer_client, trade["id"]).json()
    url = f"/api/v1/trades/{trade['id']}/documents/{document['id']}"

    assert seller_client.delete(url).status_code == 403
    assert buyer_client.delete(url).status_code == 200
    assert db.rows("trade_documents", id=document["id"]) == []
    assert ("trade-documents", document["file_path"]) not in db.storage.files


def test_delete_document_of_another_trade(buyer_client, make_trade):
    trade = make_trade("contracted")
    other = make_trade("contracted")
    document = _upload(buyer_client, trade["id"]).json()
    response = buyer_client.delete(f"/api/v1/trades/{other['id']}/documents/{document['id']}")
    assert response.status_code == 404


def test_upload_to_s3_when_configured(buyer_client, db, make_trade, monkeypatch):
    monkeypatch.setattr(settings, "aws_access_key_id", "AKIA-TEST")
    monkeypatch.setattr(settings, "aws_secret_access_key", "secret")
    monkeypatch.setattr(settings, "s3_bucket_name", "afrikoni-docs")
    s3 = MagicMock()
    s3.generate_presigned_url.return_value = "https://afrikoni-docs.s3.amazonaws.com/signed"
    monkeypatch.setattr("app.modules.documents.storage.boto3.client", lambda *args, **kwargs: s3)

    trade = make_trade("contracted")
    response = _upload(buyer_client, trade["id"], doc_type="bill_of_lading", name="bl.pdf")

    assert response.status_code == 201
    body = response.json()
    assert body["file_path"].startswith(f"s3://afrikoni-docs/trade-documents/{trade['id']}/bill_of_lading/")
    assert body["download_url"] == "https://afrikoni-docs.s3.amazonaws.com/signed"
    put = s3.put_object.call_args.kwargs
    assert put["Bucket"] == "afrikoni-docs"
    assert put["ServerSideEncryption"] == "AES256"
    assert put["ContentType"] == "application/pdf"
    assert db.storage.files == {}
