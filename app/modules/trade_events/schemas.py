from pydantic import BaseModel
from typing import Optional, Dict, Any, List
from datetime import datetime


class TradeEventResponse(BaseModel):
    id: str
    trade_id: str
    event_type: str
    status_from: Optional[str] = None
    status_to: Optional[str] = None
    actor_user_id: Optional[str] = None
    actor_role: Optional[str] = None
    decision: Optional[str] = None
    payload: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class TradeEventStream(BaseModel):
    trade_id: str
    since: Optional[str] = None
    events: List[TradeEventResponse]
    cursor: Optional[str] = None
