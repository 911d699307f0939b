"""Shared outbound HTTP client for vendor APIs.

One module-level httpx.AsyncClient with connection pooling, used by every
vendor proxy (Resend, Africa's Talking, OpenWeatherMap, Flutterwave, Gemini,
Smile ID). Per-request timeouts can be overridden:

    from app.core.http_client import http
    resp = await http.post(url, json=payload, timeout=15)
"""
import httpx

_LIMITS = httpx.Limits(
    max_connections=50,
    max_keepalive_connections=20,
    keepalive_expiry=30,
)

http = httpx.AsyncClient(
    timeout=30,
    limits=_LIMITS,
    follow_redirects=False,
)


async def close_client():
    """Shut down the shared client. Called from app shutdown."""
    try:
        await http.aclose()
    except RuntimeError:
        pass


def safe_json(response: httpx.Response) -> dict:
    """Vendor error bodies are not always JSON; fall back to the status line."""
    try:
        data = response.json()
    except ValueError:
        return {"message": f"HTTP {response.status_code}: {response.reason_phrase}"}
    return data if isinstance(data, dict) else {"data": data}
