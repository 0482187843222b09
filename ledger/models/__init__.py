"""Database Models"""
from ledger.models.company import Company
from ledger.models.account import Account, AccountType
from ledger.models.accounting_period import AccountingPeriod
from ledger.models.transaction import Transaction, TransactionKind, TransactionStatus
from ledger.models.transaction_line import TransactionLine, EntrySide

__all__ = [
    "Company",
    "Account",
    "AccountType",
    "AccountingPeriod",
    "Transaction",
    "TransactionKind",
    "TransactionStatus",
    "TransactionLine",
    "EntrySide",
]
