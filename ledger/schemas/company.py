"""Company Schemas"""
from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional


class CompanyCreate(BaseModel):
    """Request schema for registering a company"""
    name: str = Field(..., min_length=1, max_length=150)
    description: Optional[str] = Field(None, max_length=500)
    currency: str = Field("USD", min_length=3, max_length=3, description="ISO 4217 currency code")


class CompanyResponse(BaseModel):
    id: int
    name: str
    description: Optional[str]
    currency: str
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True
