from sqlalchemy import (
    Column, Integer, String, Numeric, Boolean, DateTime, ForeignKey, Enum, Index, UniqueConstraint,
)
from sqlalchemy.sql import func
import enum
from ledger.database import Base


class AccountType(str, enum.Enum):
    """Account Types"""
    ASSET = "ASSET"
    LIABILITY = "LIABILITY"
    EQUITY = "EQUITY"
    REVENUE = "REVENUE"
    EXPENSE = "EXPENSE"


# Leading letter of generated account codes
ACCOUNT_CODE_PREFIXES = {
    AccountType.ASSET: "A",
    AccountType.LIABILITY: "L",
    AccountType.EQUITY: "E",
    AccountType.REVENUE: "R",
    AccountType.EXPENSE: "X",
}

# Types whose stored balance grows with debits
DEBIT_NORMAL_TYPES = frozenset({AccountType.ASSET, AccountType.EXPENSE})


class Account(Base):
    """Account Model

    A node of a company's chart of accounts.
    current_balance is opening_balance plus the signed sum of every posted
    transaction line touching the account, maintained incrementally.
    """
    __tablename__ = "accounts"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    parent_account_id = Column(Integer, ForeignKey("accounts.id"))

    account_code = Column(String(20), nullable=False)
    account_name = Column(String(150), nullable=False)
    account_type = Column(Enum(AccountType), nullable=False)
    description = Column(String(500))

    is_contra = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    opening_balance = Column(Numeric(precision=20, scale=2), default=0, nullable=False)
    current_balance = Column(Numeric(precision=20, scale=2), default=0, nullable=False)

    # Set on equity accounts that represent an investor stake
    investor_name = Column(String(150))
    ownership_percentage = Column(Numeric(precision=7, scale=4))

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint('company_id', 'account_code', name='uq_company_account_code'),
        Index('idx_account_company_type', 'company_id', 'account_type'),
        Index('idx_account_investor', 'company_id', 'investor_name'),
    )

    __mapper_args__ = {"eager_defaults": True}

    @property
    def increases_on_debit(self) -> bool:
        """True when a debit raises the stored balance"""
        debit_normal = self.account_type in DEBIT_NORMAL_TYPES
        return debit_normal != bool(self.is_contra)

    def __repr__(self):
        return f"<Account(id={self.id}, code='{self.account_code}', type={self.account_type}, balance={self.current_balance})>"
