import logging
from typing import Any, Dict

import httpx
from fastapi import HTTPException

from app.config.settings import settings
from app.core import http_client

logger = logging.getLogger(__name__)

OPENWEATHER_BASE_URL = "https://api.openweathermap.org/data/2.5"

FRIENDLY_ERRORS = {
    401: "Invalid API key. Please check weather configuration.",
    404: "Location not found. Please verify coordinates.",
    429: "Rate limit exceeded. Please try again later.",
}


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_coordinates(lat: Any, lon: Any) -> None:
    if lat is None or lon is None:
        raise HTTPException(status_code=400, detail="Missing required fields: lat, lon")
    if not _is_number(lat) or not _is_number(lon):
        raise HTTPException(status_code=400, detail="Invalid coordinates: lat and lon must be numbers")
    if not -90 <= lat <= 90 or not -180 <= lon <= 180:
        raise HTTPException(
            status_code=400,
            detail="Invalid coordinates: lat must be -90 to 90, lon must be -180 to 180"
        )


async def get_forecast(lat: Any, lon: Any) -> Dict[str, Any]:
    """5-day / 3-hour OpenWeatherMap forecast in metric units."""
    validate_coordinates(lat, lon)
    if not settings.openweather_api_key:
        raise HTTPException(status_code=503, detail="OpenWeather API key not configured")

    try:
        response = await http_client.http.get(
            f"{OPENWEATHER_BASE_URL}/forecast",
            params={"lat": lat, "lon": lon, "appid": settings.openweather_api_key, "units": "metric"},
            timeout=15,
        )
    except httpx.HTTPError as e:
        logger.error(f"OpenWeatherMap request failed: {e}")
        raise HTTPException(status_code=502, detail="Weather service unreachable")

    data = http_client.safe_json(response)
    if response.status_code >= 400:
        message = FRIENDLY_ERRORS.get(response.status_code) or data.get("message") or f"HTTP {response.status_code}"
        logger.warning(f"OpenWeatherMap error ({response.status_code}) for {lat},{lon}: {data.get('message')}")
        raise HTTPException(status_code=response.status_code, detail=message)
    return data
