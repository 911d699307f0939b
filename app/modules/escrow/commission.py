"""Platform success fee. Charged only on completed deals."""
from typing import Dict, Any, Optional

STANDARD_RATE = 8
ASSISTED_RATE = 12
HIGH_VALUE_RATE = 5
HIGH_VALUE_THRESHOLD = 50000
MINIMUM_COMMISSION = 50

WAIVER_REASONS = {
    "FIRST_DEAL": "First deal with this supplier",
    "HIGH_VOLUME": "High volume buyer (10+ deals)",
    "STRATEGIC": "Strategic partnership",
    "DISPUTE_RESOLUTION": "Dispute resolution goodwill",
    "TEST_ORDER": "Test order (sample)",
}


def commission_rate(deal_value: float, deal_type: str = "standard") -> int:
    if deal_type == "assisted":
        return ASSISTED_RATE
    if deal_value >= HIGH_VALUE_THRESHOLD:
        return HIGH_VALUE_RATE
    return STANDARD_RATE


def calculate_commission(deal_value: float, deal_type: str = "standard", currency: str = "USD") -> Dict[str, Any]:
    rate = commission_rate(deal_value, deal_type)
    commission = max(deal_value * rate / 100, MINIMUM_COMMISSION)
    return {
        "deal_value": deal_value,
        "currency": currency,
        "rate": rate,
        "commission_amount": round(commission, 2),
        "net_payout_to_supplier": round(deal_value - commission, 2),
        "minimum_applied": commission == MINIMUM_COMMISSION,
        "deal_type": deal_type,
    }


def disclosure_message(deal_value: float, deal_type: str = "standard", currency: str = "USD") -> Dict[str, Any]:
    """Buyer-facing explanation of the fee"""
    c = calculate_commission(deal_value, deal_type, currency)
    fee = f"{currency} {c['commission_amount']:.2f}"
    return {
        "title": "Success Fee",
        "message": f"Afrikoni earns a {c['rate']}% success fee ({fee}) only if this deal completes successfully.",
        "disclaimer": "No upfront cost to you. We only succeed when you succeed.",
        "breakdown": [
            f"Deal value: {currency} {deal_value:.2f}",
            f"Afrikoni fee: {c['rate']}% ({fee})",
            f"Paid to supplier: {currency} {deal_value - c['commission_amount']:.2f}",
        ],
    }


def waiver(reason: Optional[str]) -> Dict[str, Any]:
    label = WAIVER_REASONS.get(reason) if reason else None
    return {"should_waive": label is not None, "reason": label}
