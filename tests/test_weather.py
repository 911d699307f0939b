from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from app.config.settings import settings
from app.core import http_client

FORECAST = {"cod": "200", "city": {"name": "Kumasi"}, "list": [{"dt": 1767225600, "main": {"temp": 29.4}}]}


@pytest.fixture
def openweather(monkeypatch):
    monkeypatch.setattr(settings, "openweather_api_key", "owm-key")
    fake = MagicMock()
    fake.get = AsyncMock(return_value=httpx.Response(200, json=FORECAST))
    monkeypatch.setattr(http_client, "http", fake)
    return fake


def test_forecast(buyer_client, openweather):
    response = buyer_client.post("/api/v1/functions/get-weather", json={"lat": 6.69, "lon": -1.62})

    assert response.status_code == 200
    assert response.json() == {"success": True, "data": FORECAST}
    assert openweather.get.call_args.args[0].endswith("/forecast")
    assert openweather.get.call_args.kwargs["params"] == {
        "lat": 6.69, "lon": -1.62, "appid": "owm-key", "units": "metric"
    }


@pytest.mark.parametrize("body, detail", [
    ({"lat": 6.69}, "Missing required fields: lat, lon"),
    ({"lat": "6.69", "lon": -1.62}, "Invalid coordinates: lat and lon must be numbers"),
    ({"lat": True, "lon": -1.62}, "Invalid coordinates: lat and lon must be numbers"),
    ({"lat": 91, "lon": 0}, "Invalid coordinates: lat must be -90 to 90, lon must be -180 to 180"),
    ({"lat": 0, "lon": -181}, "Invalid coordinates: lat must be -90 to 90, lon must be -180 to 180"),
])
def test_bad_coordinates(buyer_client, openweather, body, detail):
    response = buyer_client.post("/api/v1/functions/get-weather", json=body)
    assert response.status_code == 400
    assert response.json()["detail"] == detail
    openweather.get.assert_not_called()


def test_not_configured(buyer_client, monkeypatch):
    monkeypatch.setattr(settings, "openweather_api_key", None)
    response = buyer_client.post("/api/v1/functions/get-weather", json={"lat": 0, "lon": 0})
    assert response.status_code == 503


def test_vendor_error_is_friendly(buyer_client, openweather):
    openweather.get.return_value = httpx.Response(401, json={"cod": 401, "message": "Invalid API key"})
    response = buyer_client.post("/api/v1/functions/get-weather", json={"lat": 0, "lon": 0})
    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid API key. Please check weather configuration."


def test_vendor_unreachable(buyer_client, openweather):
    openweather.get.side_effect = httpx.ConnectError("connection refused")
    response = buyer_client.post("/api/v1/functions/get-weather", json={"lat": 0, "lon": 0})
    assert response.status_code == 502


def test_requires_login(anon_client):
    assert anon_client.post("/api/v1/functions/get-weather", json={"lat": 0, "lon": 0}).status_code == 401
