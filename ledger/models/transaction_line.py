from sqlalchemy import Column, Integer, String, Numeric, ForeignKey, Index, CheckConstraint
from sqlalchemy.orm import relationship
import enum
from ledger.database import Base


class EntrySide(str, enum.Enum):
    """Side of a single-account entry"""
    DEBIT = "debit"
    CREDIT = "credit"


class TransactionLine(Base):
    """Transaction Line Model

    One leg of a posting: exactly one of debit_amount / credit_amount is nonzero.
    Deleted together with its transaction.
    """
    __tablename__ = "transaction_lines"

    id = Column(Integer, primary_key=True, index=True)
    transaction_id = Column(Integer, ForeignKey("transactions.id", ondelete="CASCADE"), nullable=False)
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False)
    description = Column(String(500))

    debit_amount = Column(Numeric(precision=20, scale=2), default=0, nullable=False)
    credit_amount = Column(Numeric(precision=20, scale=2), default=0, nullable=False)

    transaction = relationship("Transaction", back_populates="lines")

    __table_args__ = (
        CheckConstraint('debit_amount >= 0 AND credit_amount >= 0', name='ck_line_amounts_positive'),
        Index('idx_line_transaction', 'transaction_id'),
        Index('idx_line_account', 'account_id'),
    )

    def __repr__(self):
        return f"<TransactionLine(id={self.id}, account_id={self.account_id}, debit={self.debit_amount}, credit={self.credit_amount})>"
