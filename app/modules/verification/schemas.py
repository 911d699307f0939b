from pydantic import BaseModel, Field, field_validator
from typing import Optional, Dict, Any, Literal, List

VerificationStatus = Literal["PENDING", "IN_PROGRESS", "VERIFIED", "REJECTED", "REQUIRES_REVIEW"]


class PersonalInfo(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    dob: Optional[str] = None


class SmileVerifyRequest(BaseModel):
    """Business (KYB) when registration_number is given, identity (KYC) when id_type/id_number are."""
    verification_type: Literal["business", "identity"]
    country_code: str = Field(..., min_length=2, max_length=2)
    company_name: Optional[str] = None
    registration_number: Optional[str] = None
    registration_certificate: Optional[str] = None
    id_type: Optional[str] = None
    id_number: Optional[str] = None
    personal_info: PersonalInfo = PersonalInfo()
    selfie_image: Optional[str] = None

    @field_validator("country_code")
    @classmethod
    def upper_country(cls, v: str) -> str:
        return v.upper()


class SmileVerifyResponse(BaseModel):
    success: bool = True
    job_id: str
    verification_type: str
    status: str = "IN_PROGRESS"
    message: str
    smile_job_id: Optional[str] = None


class ExtractRequest(BaseModel):
    document_type: Literal[
        "business_registration", "tax_certificate", "national_id", "passport", "utility_bill", "other"
    ] = "business_registration"
    image_base64: Optional[str] = None
    mime_type: str = "image/jpeg"
    text: Optional[str] = Field(None, max_length=20000)
    company_id: Optional[str] = None


class ExtractResponse(BaseModel):
    success: bool = True
    document_type: str
    fields: Dict[str, Any] = {}
    confidence: float = 0.0
    requires_manual_review: bool = False
    issues: List[str] = []


class FinalizeRequest(BaseModel):
    company_id: str
    status: Literal["VERIFIED", "REJECTED", "REQUIRES_REVIEW"]
    notes: Optional[str] = Field(None, max_length=2000)


class FinalizeResponse(BaseModel):
    success: bool = True
    company_id: str
    status: str
    notified: int = 0


class SmileCallbackResult(BaseModel):
    success: bool = True
    type: Literal["business_verification", "identity_verification"]
    entity_id: str
    status: str
