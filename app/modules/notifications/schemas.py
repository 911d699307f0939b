import re
from pydantic import BaseModel, EmailStr, Field, field_validator
from typing import Optional, Dict, Any, List, Union
from datetime import datetime

PHONE_PATTERN = re.compile(r"^\+?[1-9]\d{7,14}$")


def normalize_phone(value: str) -> str:
    return re.sub(r"[\s\-().]", "", value or "")


class SendEmailRequest(BaseModel):
    to: Union[EmailStr, List[EmailStr]]
    subject: str = Field(..., min_length=1, max_length=998)
    html: str = Field(..., min_length=1)
    from_: Optional[str] = Field(None, alias="from")

    class Config:
        populate_by_name = True


class SendEmailResponse(BaseModel):
    success: bool
    id: Optional[str] = None


class SmsRequest(BaseModel):
    to: str
    message: str = Field(..., max_length=1600)
    sender_id: Optional[str] = Field(None, alias="senderId")
    event_type: Optional[str] = Field(None, alias="eventType")
    metadata: Dict[str, Any] = {}

    class Config:
        populate_by_name = True

    @field_validator("to")
    @classmethod
    def check_phone(cls, v: str) -> str:
        phone = normalize_phone(v)
        if not PHONE_PATTERN.match(phone):
            raise ValueError("Phone number must be in international format, e.g. +2348012345678")
        return phone if phone.startswith("+") else f"+{phone}"

    @field_validator("message")
    @classmethod
    def check_message(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Message cannot be empty")
        return v.strip()


class SmsResponse(BaseModel):
    success: bool
    status: str
    message_id: Optional[str] = None
    cost: Optional[str] = None
    message: Optional[str] = None


class DispatchRunResult(BaseModel):
    success: bool
    processed: int
    sent: int = 0
    simulated: int = 0
    failed: int = 0
    message: Optional[str] = None
    results: List[Dict[str, Any]] = []


class NotificationResponse(BaseModel):
    id: str
    user_id: Optional[str] = None
    company_id: Optional[str] = None
    title: str
    message: str
    type: Optional[str] = None
    link: Optional[str] = None
    related_id: Optional[str] = None
    read: bool = False
    metadata: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
