"""Gemini generateContent client for the KoniAI assistants.

Every call asks for a JSON response. Missing configuration is a 503, an
unreachable or failing vendor a 502 (vendor 4xx/5xx status is kept), and a
reply that is not JSON a 502.
"""
import json
import logging
import re
from typing import Any, Dict, List, Optional

import httpx
from fastapi import HTTPException

from app.config.settings import settings
from app.core import http_client

logger = logging.getLogger(__name__)

GEMINI_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"

_FENCE = re.compile(r"```(?:json)?")


def strip_fences(text: str) -> str:
    return _FENCE.sub("", text or "").strip()


def extract_text(data: dict) -> str:
    candidates = data.get("candidates") or []
    if not candidates:
        return ""
    parts = (candidates[0].get("content") or {}).get("parts") or []
    return "".join(p.get("text", "") for p in parts if isinstance(p, dict))


async def generate_json(
    prompt: str,
    system_instruction: Optional[str] = None,
    temperature: float = 0.1,
    model: Optional[str] = None,
    inline_data: Optional[List[Dict[str, str]]] = None
) -> Any:
    if not settings.gemini_api_key:
        raise HTTPException(status_code=503, detail="AI service not configured")

    body = {
        "contents": [{"role": "user", "parts": [{"text": prompt}] + [{"inline_data": d} for d in inline_data or []]}],
        "generationConfig": {"response_mime_type": "application/json", "temperature": temperature},
    }
    if system_instruction:
        body["system_instruction"] = {"parts": [{"text": system_instruction}]}

    try:
        response = await http_client.http.post(
            GEMINI_URL.format(model=model or settings.gemini_model),
            headers={"x-goog-api-key": settings.gemini_api_key},
            json=body,
            timeout=60,
        )
    except httpx.HTTPError as e:
        logger.error(f"Gemini request failed: {e}")
        raise HTTPException(status_code=502, detail="AI service temporarily unavailable")

    data = http_client.safe_json(response)
    if response.status_code >= 400:
        message = (data.get("error") or {}).get("message") if isinstance(data.get("error"), dict) else data.get("message")
        logger.error(f"Gemini error ({response.status_code}): {message}")
        raise HTTPException(status_code=response.status_code, detail=message or "AI service error")

    text = strip_fences(extract_text(data))
    if not text:
        raise HTTPException(status_code=502, detail="No response from AI service")
    try:
        return json.loads(text)
    except ValueError:
        logger.error(f"Gemini returned non-JSON output: {text[:200]}")
        raise HTTPException(status_code=502, detail="Failed to process AI response")
