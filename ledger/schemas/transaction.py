"""Transaction Schemas - Request/Response Models"""
from pydantic import BaseModel, Field, validator
from decimal import Decimal
from datetime import date, datetime
from typing import Optional, List

from ledger.models import TransactionKind, TransactionStatus
from ledger.schemas.common import check_amount


class LineRequest(BaseModel):
    """One leg of a journal entry"""
    account_id: int
    debit_amount: Decimal = Field(Decimal("0"), ge=0)
    credit_amount: Decimal = Field(Decimal("0"), ge=0)
    description: Optional[str] = Field(None, max_length=500)

    @validator('debit_amount', 'credit_amount')
    def validate_amount(cls, v):
        return check_amount(v, positive=False)


class SimpleTransactionCreate(BaseModel):
    """Request schema for a single-account debit or credit"""
    company_id: int
    account_id: int
    amount: Decimal = Field(..., gt=0, description="Amount (must be positive)")
    type: str = Field(..., description="debit or credit")
    description: str = Field(..., min_length=1, max_length=500)
    transaction_date: date = Field(default_factory=date.today)
    contra_account_id: Optional[int] = Field(None, description="Defaults to the suspense account")

    @validator('amount')
    def validate_amount(cls, v):
        return check_amount(v)


class JournalEntryCreate(BaseModel):
    """Request schema for a multi-line journal entry"""
    company_id: int
    description: str = Field(..., min_length=1, max_length=500)
    transaction_date: date = Field(default_factory=date.today)
    external_source: Optional[str] = Field(None, max_length=150)
    status: str = Field("posted", description="posted, or draft to defer posting")
    lines: List[LineRequest] = Field(..., min_length=1)

    @validator('status')
    def validate_status(cls, v):
        if v not in (TransactionStatus.POSTED.value, TransactionStatus.DRAFT.value):
            raise ValueError('Status must be posted or draft')
        return v


class TransactionUpdate(BaseModel):
    """Request schema for updating a transaction; only the fields sent are changed"""
    company_id: int
    description: Optional[str] = Field(None, max_length=500)
    transaction_date: Optional[date] = None
    external_source: Optional[str] = Field(None, max_length=150)
    status: Optional[str] = None
    lines: Optional[List[LineRequest]] = None


class VoidRequest(BaseModel):
    company_id: int
    reason: Optional[str] = Field(None, max_length=500)


class LiabilityCreate(BaseModel):
    """Request schema for a liability together with the asset it financed"""
    company_id: int
    liability_name: str = Field(..., min_length=1, max_length=100)
    liability_type: str = Field(..., description="loan, equipment, tools, vehicle, credit_line, mortgage or other")
    amount: Decimal = Field(..., gt=0)
    interest_rate: Optional[Decimal] = Field(None, ge=0)
    description: str = Field(..., min_length=1, max_length=500)
    transaction_date: date = Field(default_factory=date.today)

    @validator('amount')
    def validate_amount(cls, v):
        return check_amount(v)


class MicroTransactionCreate(BaseModel):
    """Request schema for a small transfer between two accounts"""
    company_id: int
    from_account_id: int
    to_account_id: int
    amount: Decimal = Field(..., gt=0)
    description: str = Field(..., min_length=1, max_length=500)
    transaction_date: date = Field(default_factory=date.today)

    @validator('amount')
    def validate_amount(cls, v):
        return check_amount(v)


class ExternalInvestmentCreate(BaseModel):
    """Request schema for an investor buying into the company"""
    company_id: int
    investor_name: str = Field(..., min_length=1, max_length=150)
    amount: Decimal = Field(..., gt=0)
    ownership_percentage: Decimal = Field(..., gt=0, le=100)
    target_asset_id: int = Field(..., description="Asset account receiving the investment")
    description: str = Field(..., min_length=1, max_length=500)
    transaction_date: date = Field(default_factory=date.today)

    @validator('amount')
    def validate_amount(cls, v):
        return check_amount(v)


class InvestorExitCreate(BaseModel):
    """Request schema for buying out an investor"""
    company_id: int
    investor_name: str = Field(..., min_length=1, max_length=150)
    buyout_amount: Decimal = Field(..., gt=0)
    asset_account_id: Optional[int] = Field(None, description="Defaults to the first active asset account")
    description: str = Field(..., min_length=1, max_length=500)
    transaction_date: date = Field(default_factory=date.today)

    @validator('buyout_amount')
    def validate_amount(cls, v):
        return check_amount(v)


class ProfitDistributionCreate(BaseModel):
    """Request schema for distributing profit across equity stakes"""
    company_id: int
    total_profit: Decimal = Field(..., gt=0)
    source_account_id: Optional[int] = Field(None, description="Defaults to the income summary account")
    description: str = Field(..., min_length=1, max_length=500)
    transaction_date: date = Field(default_factory=date.today)

    @validator('total_profit')
    def validate_amount(cls, v):
        return check_amount(v)


class AssetProtectionCreate(BaseModel):
    """Request schema for setting company assets aside for investors"""
    company_id: int
    amount: Decimal = Field(..., gt=0)
    asset_account_id: Optional[int] = Field(None, description="Defaults to the first active asset account")
    description: str = Field(..., min_length=1, max_length=500)
    transaction_date: date = Field(default_factory=date.today)

    @validator('amount')
    def validate_amount(cls, v):
        return check_amount(v)


class TransactionLineResponse(BaseModel):
    id: int
    account_id: int
    description: Optional[str]
    debit_amount: Decimal
    credit_amount: Decimal

    class Config:
        from_attributes = True


class TransactionResponse(BaseModel):
    """Response schema for a transaction with its lines"""
    id: int
    company_id: int
    period_id: int
    transaction_number: str
    transaction_kind: TransactionKind
    status: TransactionStatus
    transaction_date: date
    description: str
    total_amount: Decimal
    external_source: Optional[str]
    replaces_transaction_id: Optional[int]
    void_reason: Optional[str]
    created_at: datetime
    posted_at: Optional[datetime]
    voided_at: Optional[datetime]
    lines: List[TransactionLineResponse]

    class Config:
        from_attributes = True
