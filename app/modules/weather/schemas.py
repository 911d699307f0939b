from pydantic import BaseModel
from typing import Any, Dict, Optional


class WeatherRequest(BaseModel):
    # Checked by the service so bad coordinates are a 400, not a 422
    lat: Optional[Any] = None
    lon: Optional[Any] = None


class WeatherResponse(BaseModel):
    success: bool = True
    data: Dict[str, Any]
