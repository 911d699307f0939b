from pydantic import BaseModel, Field, EmailStr, field_validator
from typing import Optional, Dict, Any, Literal

SUPPORTED_CURRENCIES = (
    "NGN", "KES", "GHS", "ZAR", "TZS", "UGX", "RWF",
    "ZMW", "XOF", "XAF", "USD", "EUR", "GBP",
)


class PaymentLinkRequest(BaseModel):
    amount: float = Field(..., gt=0)
    currency: str = Field(..., min_length=3, max_length=3)
    order_type: Literal["order", "sample", "subscription", "verification"] = Field(..., alias="orderType")
    customer_email: EmailStr = Field(..., alias="customerEmail")
    customer_name: Optional[str] = Field(None, alias="customerName")
    customer_phone: Optional[str] = Field(None, alias="customerPhone")
    trade_id: Optional[str] = Field(None, alias="tradeId")
    metadata: Dict[str, Any] = {}
    redirect_url: Optional[str] = Field(None, alias="redirectUrl")

    @field_validator("currency")
    @classmethod
    def currency_supported(cls, v: str) -> str:
        v = v.upper()
        if v not in SUPPORTED_CURRENCIES:
            raise ValueError(f"Currency {v} not supported. Supported: {', '.join(SUPPORTED_CURRENCIES)}")
        return v

    class Config:
        populate_by_name = True


class PaymentLinkResponse(BaseModel):
    success: bool = True
    payment_url: str = Field(..., alias="paymentUrl")
    transaction_ref: str = Field(..., alias="transactionRef")
    message: str = "Payment initialized successfully"

    class Config:
        populate_by_name = True


class WebhookAck(BaseModel):
    success: bool = True
    message: Optional[str] = None
    event: Optional[str] = None
