from sqlalchemy import Column, Integer, String, Boolean, Date, DateTime, ForeignKey, Index, UniqueConstraint
from sqlalchemy.sql import func
from ledger.database import Base


class AccountingPeriod(Base):
    """Accounting Period Model

    Date range bucket that transactions are assigned to.
    Periods are created lazily by the period resolver and never deleted.
    """
    __tablename__ = "accounting_periods"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False)
    period_name = Column(String(50), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    is_closed = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint('company_id', 'start_date', 'end_date', name='uq_company_period_range'),
        Index('idx_period_company_dates', 'company_id', 'start_date', 'end_date'),
    )

    __mapper_args__ = {"eager_defaults": True}

    def __repr__(self):
        return f"<AccountingPeriod(id={self.id}, {self.start_date}..{self.end_date}, closed={self.is_closed})>"
