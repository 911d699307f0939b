from pydantic import BaseModel, Field
from typing import Optional, List, Literal, Dict, Any


class QuoteForAnalysis(BaseModel):
    id: str
    supplier_name: str
    supplier_country: Optional[str] = None
    unit_price: float
    total_price: float
    currency: str = "USD"
    quantity: Optional[float] = None
    delivery_days: Optional[int] = None
    payment_terms: Optional[str] = None
    quality_certification: Optional[str] = None
    supplier_rating: Optional[float] = None
    verification_status: Optional[str] = None


class RfqBrief(BaseModel):
    title: str
    quantity: Optional[float] = None
    budget_max: Optional[float] = None
    delivery_timeline: Optional[str] = None
    quality_requirements: Optional[str] = None


class AnalysisPreferences(BaseModel):
    priority: Literal["price", "quality", "delivery", "balanced"] = "balanced"
    max_delivery_days: Optional[int] = None
    require_verified: bool = False


class AnalyzeQuoteRequest(BaseModel):
    quotes: List[QuoteForAnalysis] = []
    rfq: RfqBrief
    preferences: AnalysisPreferences = AnalysisPreferences()


class MatchmakerRequest(BaseModel):
    rfq_id: str = Field(..., min_length=1)


class SupplierMatch(BaseModel):
    supplier_id: str
    reason: Optional[str] = None
    relevance_score: float = 0.0


class MatchmakerResponse(BaseModel):
    success: bool = True
    matches_found: int
    notified: int
    matches: List[SupplierMatch] = []


class FraudEvalRequest(BaseModel):
    company_id: str = Field(..., min_length=1)


class FraudEvaluation(BaseModel):
    fraud_score: float = Field(..., ge=0, le=100)
    risk_level: Literal["low", "medium", "high", "critical"]
    risk_factors: List[str] = []
    summary: Optional[str] = None
    ai_confidence: float = 0.0
    auto_promoted: bool = False
    new_status: Optional[str] = None


class DisputeResolverRequest(BaseModel):
    trade_id: str = Field(..., min_length=1)


class DisputeVerdict(BaseModel):
    verdict: Literal["REFUND_BUYER", "WAIT_FOR_SELLER", "MANUAL_REVIEW"]
    confidence: float = 0.0
    reasoning: str = ""
    recommended_action: str = ""
    missing_evidence: List[str] = []


class DisputeResolution(BaseModel):
    success: bool = True
    policy_triggered: bool
    days_overdue: int
    has_recent_movement: bool
    verdict: DisputeVerdict


class LogisticsTrackerRequest(BaseModel):
    shipment_id: str = Field(..., min_length=1)


class DelayRisk(BaseModel):
    shipment_id: str
    tracking_number: Optional[str] = None
    status: Optional[str] = None
    risk_level: Literal["High", "Medium", "Low"]
    reason: str = ""
    estimated_delay_hours: float = 0
    details: Optional[Dict[str, Any]] = None
