from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import date, datetime


class RfqCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1, max_length=5000)
    quantity: float = Field(..., ge=1)
    unit: str = "pieces"
    target_price: Optional[float] = Field(None, ge=0)
    currency: str = "USD"
    category_id: Optional[str] = None
    delivery_location: Optional[str] = None
    target_country: Optional[str] = None
    target_city: Optional[str] = None
    closing_date: Optional[date] = None
    attachments: List[str] = []


class RfqResponse(BaseModel):
    id: str
    title: Optional[str] = None
    description: Optional[str] = None
    buyer_id: Optional[str] = None
    category_id: Optional[str] = None
    quantity: Optional[float] = None
    quantity_unit: Optional[str] = None
    target_price: Optional[float] = None
    currency: Optional[str] = None
    status: Optional[str] = None
    delivery_location: Optional[str] = None
    destination_country: Optional[str] = None
    expires_at: Optional[datetime] = None
    metadata: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None
    quote_count: int = 0

    class Config:
        from_attributes = True
