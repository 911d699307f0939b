from fastapi import APIRouter, Depends
from app.modules.weather.schemas import WeatherRequest, WeatherResponse
from app.modules.weather.service import get_forecast
from app.core.dependencies import get_current_user_id
from typing import Dict

functions_router = APIRouter(prefix="/functions", tags=["functions"])


@functions_router.post("/get-weather", response_model=WeatherResponse)
async def get_weather(
    request: WeatherRequest,
    user_data: Dict = Depends(get_current_user_id)
):
    """Weather forecast for a location; keeps the OpenWeatherMap key server-side"""
    return WeatherResponse(data=await get_forecast(request.lat, request.lon))
