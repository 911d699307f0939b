from pydantic import BaseModel, EmailStr, Field
from typing import Optional, List, Literal


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None
    user_id: str
    email: str
    company_id: Optional[str] = None


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8)
    full_name: Optional[str] = None
    phone: Optional[str] = None
    role: Literal["buyer", "seller", "hybrid", "logistics"] = "buyer"
    company_name: Optional[str] = Field(None, max_length=200)
    country: Optional[str] = None


class RegisterResponse(BaseModel):
    user_id: str
    email: str
    company_id: Optional[str] = None
    message: str


class SetAdminRequest(BaseModel):
    user_id: str
    is_admin: bool = True


class MeResponse(BaseModel):
    id: str
    email: Optional[str] = None
    company_id: Optional[str] = None
    full_name: Optional[str] = None
    roles: List[str] = []
    permissions: List[str] = []
