"""Smile ID request signing, submission and callback verification."""
import base64
import hashlib
import hmac
import logging
import re
from datetime import datetime, timezone
from typing import Dict, Any, Optional

import httpx
from fastapi import HTTPException

from app.config.settings import settings
from app.core import http_client

logger = logging.getLogger(__name__)

BUSINESS_JOB_TYPE = 7
ENHANCED_KYC_JOB_TYPE = 5
REPLAY_WINDOW_SECONDS = 15 * 60

BUSINESS_ID_TYPES = {
    "NG": "CAC", "ZA": "CIPC", "KE": "BRS", "GH": "RGD", "EG": "GAFI",
    "MA": "RC", "TZ": "BRELA", "UG": "URSB", "RW": "RDB", "ET": "MoTI",
    "CI": "RC", "SN": "NINEA", "CM": "RC", "ZM": "PACRA", "ZW": "ZIA",
    "MW": "RG", "BW": "CIPA", "NA": "BIPA", "MU": "CBRD", "AO": "IRSEA",
}

_DATA_URL_PREFIX = re.compile(r"^data:image/\w+;base64,")


def business_id_type(country_code: str) -> str:
    return BUSINESS_ID_TYPES.get(country_code.upper(), "BUSINESS_REGISTRATION")


def strip_data_url(image: str) -> str:
    return _DATA_URL_PREFIX.sub("", image)


def request_signature(timestamp: str, partner_id: str, api_key: str) -> str:
    """Smile ID signature: base64 HMAC-SHA256 of timestamp + partner id + "sid_request"."""
    digest = hmac.new(
        api_key.encode(),
        f"{timestamp}{partner_id}sid_request".encode(),
        hashlib.sha256,
    ).digest()
    return base64.b64encode(digest).decode()


def status_for_result_code(code: Optional[str]) -> str:
    """0100-0102 verified; 02xx and 1xxx rejected; anything else goes to review."""
    code = code or ""
    if code in ("0100", "0101", "0102"):
        return "VERIFIED"
    if code.startswith("02") or code.startswith("1"):
        return "REJECTED"
    return "REQUIRES_REVIEW"


def _normalize(signature: str) -> str:
    signature = signature.strip()
    return signature[7:] if signature.lower().startswith("sha256=") else signature


def callback_signature_valid(raw_body: bytes, signature: str, secret: str) -> bool:
    """HMAC-SHA256 of the raw body, accepted as hex or base64, with an optional sha256= prefix."""
    digest = hmac.new(secret.encode(), raw_body, hashlib.sha256).digest()
    provided = _normalize(signature)
    hex_ok = hmac.compare_digest(provided.encode(), digest.hex().encode())
    b64_ok = hmac.compare_digest(provided.encode(), base64.b64encode(digest))
    return hex_ok or b64_ok


def timestamp_is_recent(value: str, window_seconds: int = REPLAY_WINDOW_SECONDS) -> bool:
    """Accepts epoch seconds, epoch milliseconds or an ISO timestamp."""
    value = str(value).strip()
    if value.isdigit():
        number = int(value)
        ts = number / 1000 if number > 1_000_000_000_000 else number
    else:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return False
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        ts = parsed.timestamp()
    return abs(datetime.now(timezone.utc).timestamp() - ts) <= window_seconds


def webhook_secret() -> Optional[str]:
    return settings.smile_id_webhook_secret or settings.smile_id_api_key


async def submit_job(endpoint: str, payload: Dict[str, Any]) -> Dict[str, Any]:
    """POST a signed job to Smile ID. endpoint is business_verification or id_verification."""
    if not settings.smile_id_partner_id or not settings.smile_id_api_key:
        raise HTTPException(status_code=503, detail="Verification service not configured")
    timestamp = datetime.now(timezone.utc).isoformat()
    body = {
        **payload,
        "partner_id": settings.smile_id_partner_id,
        "timestamp": timestamp,
        "signature": request_signature(timestamp, settings.smile_id_partner_id, settings.smile_id_api_key),
        "callback_url": settings.smile_id_callback_url,
        "source_sdk": "afrikoni_api",
        "source_sdk_version": "1.0.0",
    }
    try:
        response = await http_client.http.post(
            f"{settings.smile_id_base_url.rstrip('/')}/{endpoint}",
            json=body,
            timeout=30,
        )
    except httpx.HTTPError as e:
        logger.error(f"Smile ID request failed: {e}")
        raise HTTPException(status_code=502, detail="Verification provider unreachable")

    data = http_client.safe_json(response)
    if response.status_code >= 400:
        logger.error(f"Smile ID rejected job ({response.status_code}): {data}")
        raise HTTPException(
            status_code=response.status_code,
            detail=data.get("error") or data.get("message") or "Verification request failed"
        )
    return data
