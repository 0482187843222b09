"""Transaction Model - Header of a double-entry posting"""
from sqlalchemy import (
    Column, Integer, String, Numeric, Date, DateTime, ForeignKey, Enum, Index, UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import enum
from ledger.database import Base


class TransactionKind(str, enum.Enum):
    """Operation that produced the transaction

    The value doubles as the transaction_number prefix
    """
    JOURNAL = "JRN"                  # Explicit multi-leg journal entry
    SIMPLE = "TRX"                   # Single account debit/credit
    LIABILITY = "LIAB"               # Liability with its financed asset
    MICRO = "MICRO"                  # Small transfer between two accounts
    EXTERNAL_INVESTMENT = "EXT"      # Investor buy-in
    INVESTOR_EXIT = "EXIT"           # Investor buyout
    PROFIT_DISTRIBUTION = "PROF"     # Profit split across investor stakes
    ASSET_PROTECTION = "PROT"        # Investor asset protection reserve


class TransactionStatus(str, enum.Enum):
    """Transaction Status"""
    DRAFT = "draft"
    POSTED = "posted"
    VOID = "void"


class Transaction(Base):
    """Transaction Model

    Owns its transaction lines. Balances are only affected while the
    transaction is posted.
    """
    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False)
    period_id = Column(Integer, ForeignKey("accounting_periods.id"), nullable=False)

    transaction_number = Column(String(30), nullable=False)
    transaction_kind = Column(Enum(TransactionKind), nullable=False)
    status = Column(Enum(TransactionStatus), default=TransactionStatus.DRAFT, nullable=False)

    transaction_date = Column(Date, nullable=False)
    description = Column(String(500), nullable=False)
    total_amount = Column(Numeric(precision=20, scale=2), nullable=False)
    external_source = Column(String(150))

    replaces_transaction_id = Column(Integer, ForeignKey("transactions.id"))
    void_reason = Column(String(500))

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
    posted_at = Column(DateTime(timezone=True))
    voided_at = Column(DateTime(timezone=True))

    lines = relationship(
        "TransactionLine",
        back_populates="transaction",
        cascade="all, delete-orphan",
        order_by="TransactionLine.id",
        lazy="selectin",
    )

    __table_args__ = (
        UniqueConstraint('company_id', 'transaction_number', name='uq_company_transaction_number'),
        Index('idx_transaction_company_date', 'company_id', 'transaction_date'),
        Index('idx_transaction_status', 'company_id', 'status'),
    )

    __mapper_args__ = {"eager_defaults": True}

    @property
    def total_debits(self):
        return sum((line.debit_amount for line in self.lines), 0)

    @property
    def total_credits(self):
        return sum((line.credit_amount for line in self.lines), 0)

    def __repr__(self):
        return f"<Transaction(id={self.id}, number='{self.transaction_number}', amount={self.total_amount}, status={self.status})>"
