from pydantic import BaseModel, Field, model_validator
from typing import Optional, List, Literal
from datetime import datetime


class ProductCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    category_id: Optional[str] = None
    country_of_origin: Optional[str] = None
    price_min: Optional[float] = Field(None, ge=0)
    price_max: Optional[float] = Field(None, ge=0)
    currency: str = "USD"
    moq: Optional[float] = Field(None, gt=0)
    unit: str = "pieces"
    images: List[str] = []
    status: Literal["draft", "active", "archived"] = "active"

    @model_validator(mode="after")
    def check_price_range(self):
        if self.price_min is not None and self.price_max is not None and self.price_min > self.price_max:
            raise ValueError("price_min cannot exceed price_max")
        return self


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    category_id: Optional[str] = None
    country_of_origin: Optional[str] = None
    price_min: Optional[float] = Field(None, ge=0)
    price_max: Optional[float] = Field(None, ge=0)
    currency: Optional[str] = None
    moq: Optional[float] = Field(None, gt=0)
    unit: Optional[str] = None
    images: Optional[List[str]] = None
    status: Optional[Literal["draft", "active", "archived"]] = None


class ProductResponse(BaseModel):
    id: str
    company_id: str
    name: str
    description: Optional[str] = None
    category_id: Optional[str] = None
    country_of_origin: Optional[str] = None
    price_min: Optional[float] = None
    price_max: Optional[float] = None
    currency: Optional[str] = None
    moq: Optional[float] = None
    unit: Optional[str] = None
    images: Optional[List[str]] = None
    status: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
