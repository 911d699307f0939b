from pydantic import BaseModel, EmailStr, Field
from typing import Optional, Literal
from datetime import datetime

CapabilityStatus = Literal["disabled", "pending", "approved", "rejected"]


class CompanyCreate(BaseModel):
    company_name: str = Field(..., min_length=1, max_length=200)
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    country: Optional[str] = None
    city: Optional[str] = None
    description: Optional[str] = None
    website: Optional[str] = None
    business_type: Optional[str] = None
    role: Literal["buyer", "seller", "hybrid", "logistics"] = "buyer"


class CompanyUpdate(BaseModel):
    company_name: Optional[str] = Field(None, min_length=1, max_length=200)
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    country: Optional[str] = None
    city: Optional[str] = None
    description: Optional[str] = None
    website: Optional[str] = None
    logo_url: Optional[str] = None
    business_type: Optional[str] = None


class CompanyResponse(BaseModel):
    id: str
    user_id: Optional[str] = None
    company_name: str
    owner_email: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    country: Optional[str] = None
    city: Optional[str] = None
    description: Optional[str] = None
    website: Optional[str] = None
    logo_url: Optional[str] = None
    role: Optional[str] = None
    business_type: Optional[str] = None
    verified: Optional[bool] = False
    verification_status: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CompanyPublicProfile(BaseModel):
    id: str
    company_name: str
    country: Optional[str] = None
    city: Optional[str] = None
    description: Optional[str] = None
    website: Optional[str] = None
    logo_url: Optional[str] = None
    verified: Optional[bool] = False
    product_count: int = 0


class CapabilitiesResponse(BaseModel):
    company_id: str
    can_buy: bool = True
    can_sell: bool = False
    sell_status: str = "disabled"
    can_logistics: bool = False
    logistics_status: str = "disabled"

    class Config:
        from_attributes = True


class CapabilitiesRequest(BaseModel):
    can_buy: Optional[bool] = None
    can_sell: Optional[bool] = None
    can_logistics: Optional[bool] = None


class CapabilityReview(BaseModel):
    capability: Literal["sell", "logistics"]
    status: Literal["approved", "rejected"]
