"""Pydantic Schemas for Request/Response Validation"""
from ledger.schemas.common import ApiResponse
from ledger.schemas.company import CompanyCreate, CompanyResponse
from ledger.schemas.account import (
    AccountCreate,
    AccountUpdate,
    AccountResponse,
    AccountBalance,
    AccountTreeNode,
)
from ledger.schemas.period import PeriodResponse
from ledger.schemas.transaction import (
    LineRequest,
    SimpleTransactionCreate,
    JournalEntryCreate,
    TransactionUpdate,
    VoidRequest,
    LiabilityCreate,
    MicroTransactionCreate,
    ExternalInvestmentCreate,
    InvestorExitCreate,
    ProfitDistributionCreate,
    AssetProtectionCreate,
    TransactionResponse,
)

__all__ = [
    "ApiResponse",
    "CompanyCreate",
    "CompanyResponse",
    "AccountCreate",
    "AccountUpdate",
    "AccountResponse",
    "AccountBalance",
    "AccountTreeNode",
    "PeriodResponse",
    "LineRequest",
    "SimpleTransactionCreate",
    "JournalEntryCreate",
    "TransactionUpdate",
    "VoidRequest",
    "LiabilityCreate",
    "MicroTransactionCreate",
    "ExternalInvestmentCreate",
    "InvestorExitCreate",
    "ProfitDistributionCreate",
    "AssetProtectionCreate",
    "TransactionResponse",
]
