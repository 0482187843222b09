"""Account Schemas - Request/Response Models"""
from pydantic import BaseModel, Field, validator
from decimal import Decimal
from datetime import datetime
from typing import Optional, List

from ledger.models import AccountType
from ledger.schemas.common import check_amount


class AccountCreate(BaseModel):
    """Request schema for creating an account"""
    company_id: int = Field(..., description="Owning company")
    account_name: str = Field(..., min_length=1, max_length=150)
    account_type: str = Field(..., description="asset, liability, equity, revenue or expense")
    opening_balance: Decimal = Field(Decimal("0"), description="Balance before any transaction")
    description: Optional[str] = Field(None, max_length=500)
    account_code: Optional[str] = Field(None, max_length=20, description="Generated when omitted")
    parent_account_id: Optional[int] = None
    is_contra: bool = False
    investor_name: Optional[str] = Field(None, max_length=150)
    ownership_percentage: Optional[Decimal] = Field(None, gt=0, le=100)

    @validator('opening_balance')
    def validate_opening_balance(cls, v):
        return check_amount(v, positive=False)


class AccountUpdate(BaseModel):
    """Request schema for updating an account; only the fields sent are changed"""
    account_name: Optional[str] = Field(None, max_length=150)
    account_code: Optional[str] = Field(None, max_length=20)
    account_type: Optional[str] = None
    description: Optional[str] = Field(None, max_length=500)
    parent_account_id: Optional[int] = None
    is_contra: Optional[bool] = None
    is_active: Optional[bool] = None
    investor_name: Optional[str] = Field(None, max_length=150)
    ownership_percentage: Optional[Decimal] = Field(None, gt=0, le=100)


class AccountResponse(BaseModel):
    """Response schema for an account"""
    id: int
    company_id: int
    parent_account_id: Optional[int]
    account_code: str
    account_name: str
    account_type: AccountType
    description: Optional[str]
    is_contra: bool
    is_active: bool
    opening_balance: Decimal
    current_balance: Decimal
    investor_name: Optional[str]
    ownership_percentage: Optional[Decimal]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class AccountBalance(BaseModel):
    """Resulting balance of an account touched by a posting"""
    id: int
    account_code: str
    account_name: str
    account_type: AccountType
    current_balance: Decimal

    class Config:
        from_attributes = True


class AccountTreeNode(BaseModel):
    account: AccountResponse
    children: List["AccountTreeNode"] = []
