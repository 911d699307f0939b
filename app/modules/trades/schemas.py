from pydantic import BaseModel, Field
from typing import Optional, Dict, Any, List, Literal
from datetime import datetime


class TradeCreate(BaseModel):
    trade_type: Literal["rfq", "direct", "order"] = "rfq"
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    seller_id: Optional[str] = None
    category_id: Optional[str] = None
    product_id: Optional[str] = None
    quantity: Optional[float] = None
    quantity_unit: Optional[str] = "pieces"
    target_price: Optional[float] = None
    currency: str = "USD"
    status: Optional[str] = None
    delivery_location: Optional[str] = None
    destination_country: Optional[str] = None
    expires_at: Optional[str] = None
    metadata: Dict[str, Any] = {}


class TradeResponse(BaseModel):
    id: str
    trade_type: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    buyer_id: Optional[str] = None
    seller_id: Optional[str] = None
    created_by: Optional[str] = None
    category_id: Optional[str] = None
    product_id: Optional[str] = None
    quantity: Optional[float] = None
    quantity_unit: Optional[str] = None
    target_price: Optional[float] = None
    total_value: Optional[float] = None
    currency: Optional[str] = None
    status: Optional[str] = None
    delivery_location: Optional[str] = None
    expires_at: Optional[datetime] = None
    metadata: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class TransitionRequest(BaseModel):
    next_state: Optional[str] = None
    metadata: Dict[str, Any] = {}
    dry_run: bool = False


class TradeTransitionFunctionRequest(BaseModel):
    """Body of the trade-transition function endpoint (camelCase keys accepted)."""
    trade_id: str = Field(..., alias="tradeId")
    next_state: Optional[str] = Field(None, alias="nextState")
    metadata: Dict[str, Any] = {}
    dry_run: bool = False

    class Config:
        populate_by_name = True


class KernelDecision(BaseModel):
    success: bool
    decision: Literal["ALLOW", "BLOCK"]
    reason: Optional[str] = None
    reason_code: Optional[str] = None
    required_actions: List[str] = []
    next_state: Optional[str] = None
    trade: Optional[Dict[str, Any]] = None
    settlement: Optional[Dict[str, Any]] = None


class ConsensusRequest(BaseModel):
    party: str = Field(..., min_length=1)


class ConsensusStatus(BaseModel):
    trade_id: str
    buyer_signed: bool
    seller_signed: bool
    logistics_signed: bool
    ai_signed: bool
    consensus_reached: bool
    missing: List[str] = []
    signatures: List[str] = []


class TradeStateInfo(BaseModel):
    value: str
    label: str
    next_states: List[str]
