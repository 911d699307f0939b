from pydantic import BaseModel, Field
from typing import Optional, List, Literal, Dict, Any
from datetime import datetime


class EscrowCreate(BaseModel):
    trade_id: str
    amount: Optional[float] = Field(None, gt=0)
    currency: Optional[str] = None
    payment_method: str = "bank_transfer"


class EscrowFund(BaseModel):
    payment_reference: Optional[str] = None
    payment_method: Optional[str] = None


class EscrowRelease(BaseModel):
    reason: str = "delivery_accepted"
    deal_type: Literal["standard", "assisted"] = "standard"
    waiver_reason: Optional[str] = None


class EscrowRefund(BaseModel):
    reason: str = "dispute_lost_by_seller"


class EscrowResponse(BaseModel):
    id: str
    trade_id: str
    buyer_id: Optional[str] = None
    seller_id: Optional[str] = None
    amount: Optional[float] = None
    balance: Optional[float] = None
    currency: Optional[str] = None
    payment_method: Optional[str] = None
    payment_reference: Optional[str] = None
    status: Optional[str] = None
    expires_at: Optional[datetime] = None
    funded_at: Optional[datetime] = None
    released_at: Optional[datetime] = None
    refunded_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class EscrowActionResult(BaseModel):
    escrow: EscrowResponse
    payment: Optional[Dict[str, Any]] = None
    refund: Optional[Dict[str, Any]] = None
    commission: Optional[Dict[str, Any]] = None


class CommissionBreakdown(BaseModel):
    deal_value: float
    currency: str
    rate: int
    commission_amount: float
    net_payout_to_supplier: float
    minimum_applied: bool
    deal_type: str
    disclosure: Optional[Dict[str, Any]] = None
    waiver: Optional[Dict[str, Any]] = None
