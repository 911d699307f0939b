from pydantic import BaseModel, Field
from typing import Optional, Dict, Any, List, Literal
from datetime import datetime

ShipmentStatus = Literal["pending", "picked_up", "in_transit", "customs_hold", "out_for_delivery", "delivered"]


class ShipmentCreate(BaseModel):
    trade_id: str
    carrier: Optional[str] = None
    logistics_company_id: Optional[str] = None
    origin: Optional[str] = None
    destination: Optional[str] = None
    estimated_delivery: Optional[str] = None
    metadata: Dict[str, Any] = {}


class ShipmentStatusUpdate(BaseModel):
    status: ShipmentStatus
    current_location: Optional[str] = None
    note: Optional[str] = Field(None, max_length=500)


class ShipmentResponse(BaseModel):
    id: str
    trade_id: str
    status: str
    tracking_number: Optional[str] = None
    carrier: Optional[str] = None
    logistics_company_id: Optional[str] = None
    logistics_provider_id: Optional[str] = None
    pickup_scheduled_at: Optional[datetime] = None
    origin: Optional[str] = None
    destination: Optional[str] = None
    current_location: Optional[str] = None
    estimated_delivery: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    metadata: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ShipmentTracking(BaseModel):
    shipment: ShipmentResponse
    events: List[Dict[str, Any]]


class DispatchRequest(BaseModel):
    pickup_city: str = Field(..., min_length=1)
    cargo_type: str = Field(..., min_length=1)
    pickup_country: str = "Nigeria"
    weight_kg: Optional[float] = None
    volume_m3: Optional[float] = None
    pickup_window_start: Optional[str] = None
    pickup_window_end: Optional[str] = None


class DispatchResult(BaseModel):
    success: bool
    trade_id: str
    providers_notified: int = 0
    providers: List[Dict[str, Any]] = []
    message: Optional[str] = None
    error: Optional[str] = None


class LogisticsAcceptRequest(BaseModel):
    trade_id: str = Field(..., min_length=1)
    provider_id: str = Field(..., min_length=1)
    response: Literal["accept", "reject"]
    estimated_pickup_time: Optional[datetime] = None


class LogisticsAcceptResponse(BaseModel):
    success: bool
    trade_id: str
    provider_id: str
    message: str
    shipment_id: Optional[str] = None
    next_step: Optional[str] = None
