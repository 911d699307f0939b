from pydantic import BaseModel, Field
from typing import Optional, Literal
from datetime import date, datetime
from app.modules.trades.schemas import KernelDecision

QuoteStatus = Literal["submitted", "selected", "rejected"]


class QuoteCreate(BaseModel):
    unit_price: float = Field(..., gt=0)
    total_price: float = Field(..., gt=0)
    currency: str = "USD"
    lead_time_days: int = Field(..., ge=1)
    delivery_terms: Optional[str] = None
    notes: Optional[str] = Field(None, max_length=2000)
    valid_until: Optional[date] = None


class QuoteReject(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class QuoteResponse(BaseModel):
    id: str
    trade_id: str
    supplier_company_id: Optional[str] = None
    submitted_by: Optional[str] = None
    unit_price: Optional[float] = None
    total_price: Optional[float] = None
    currency: Optional[str] = None
    lead_time_days: Optional[int] = None
    delivery_terms: Optional[str] = None
    notes: Optional[str] = None
    valid_until: Optional[date] = None
    status: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class QuoteSelection(BaseModel):
    quote: QuoteResponse
    decision: KernelDecision
