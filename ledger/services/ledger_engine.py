"""
Ledger Engine

Validates balanced legs, persists a transaction header with its lines and
applies the signed balance delta of every leg to its account. Reversal,
void and correction are exact mirrors of the posting step.
"""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, and_, or_, exists
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional, List, Dict, Iterable, Tuple
import logging
import secrets

from ledger.config import settings
from ledger.models import (
    Account,
    AccountType,
    Transaction,
    TransactionKind,
    TransactionLine,
    TransactionStatus,
)
from ledger.models.account import DEBIT_NORMAL_TYPES
from ledger.services.account_registry import AccountRegistry
from ledger.services.company_service import CompanyService
from ledger.services.errors import Conflict, InvalidState, NotFound, UnbalancedEntry, ValidationError
from ledger.services.period_resolver import PeriodResolver
from ledger.utils.money import ZERO, to_money

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Leg:
    """One (account, debit-or-credit) entry of a posting"""

    account_id: int
    debit: Decimal = ZERO
    credit: Decimal = ZERO
    description: Optional[str] = None

    @classmethod
    def debit_of(cls, account_id: int, amount, description: Optional[str] = None) -> "Leg":
        return cls(account_id=account_id, debit=to_money(amount), description=description)

    @classmethod
    def credit_of(cls, account_id: int, amount, description: Optional[str] = None) -> "Leg":
        return cls(account_id=account_id, credit=to_money(amount), description=description)

    @property
    def amount(self) -> Decimal:
        return self.debit or self.credit

    def key(self) -> Tuple:
        return (self.account_id, to_money(self.debit), to_money(self.credit))


def signed_delta(account_type: AccountType, is_contra: bool, debit, credit) -> Decimal:
    """
    Balance change caused by a line on an account of this type.

    ASSET/EXPENSE: debit +, credit -.  LIABILITY/EQUITY/REVENUE: credit +, debit -.
    A contra account follows the opposite rule of its type.
    """
    net = to_money(debit) - to_money(credit)
    debit_normal = (account_type in DEBIT_NORMAL_TYPES) != bool(is_contra)
    return net if debit_normal else -net


def validate_legs(legs: Iterable[Leg], epsilon: Decimal = None) -> Tuple[List[Leg], Decimal]:
    """
    Normalise legs to cents and check the double-entry rules.

    Returns the legs and the posting total (sum of debits).
    """
    epsilon = settings.BALANCE_EPSILON if epsilon is None else epsilon
    legs = list(legs or [])
    if not legs:
        raise ValidationError("Transaction must have at least one line")

    normalized = []
    total_debits = ZERO
    total_credits = ZERO
    for leg in legs:
        try:
            debit = to_money(leg.debit)
            credit = to_money(leg.credit)
        except ValueError as e:
            raise ValidationError(str(e))

        if debit < 0 or credit < 0:
            raise ValidationError("Line amounts cannot be negative")
        if debit > 0 and credit > 0:
            raise ValidationError("Each line can only have either a debit or credit amount, not both")
        if debit == 0 and credit == 0:
            raise ValidationError("Each line must have either a debit or credit amount greater than zero")

        normalized.append(Leg(leg.account_id, debit, credit, leg.description))
        total_debits += debit
        total_credits += credit

    if abs(total_debits - total_credits) > epsilon:
        raise UnbalancedEntry(
            f"Transaction must balance: debits {total_debits} != credits {total_credits}"
        )

    return normalized, total_debits


def legs_of(transaction: Transaction) -> List[Leg]:
    return [
        Leg(line.account_id, to_money(line.debit_amount), to_money(line.credit_amount), line.description)
        for line in transaction.lines
    ]


class LedgerEngine:
    """Ledger Engine - every balance change in the system goes through here"""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.accounts = AccountRegistry(db)
        self.periods = PeriodResolver(db)
        self.companies = CompanyService(db)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _candidate_number(self, kind: TransactionKind, on: date, attempt: int) -> str:
        # Widen the random suffix once the short space starts colliding
        width = 3 if attempt < settings.TRANSACTION_NUMBER_ATTEMPTS // 2 else 6
        suffix = str(secrets.randbelow(10 ** width - 1) + 1).zfill(width)
        return f"{kind.value}{on.strftime('%Y%m%d')}{suffix}"

    async def _number_taken(self, company_id: int, number: str) -> bool:
        stmt = select(exists().where(
            and_(
                Transaction.company_id == company_id,
                Transaction.transaction_number == number,
            )
        ))
        return bool(await self.db.scalar(stmt))

    async def _insert(self, company_id: int, kind: TransactionKind, transaction_date: date, build) -> Transaction:
        """
        Insert a header built by build(number) under a unique transaction number.

        Each attempt runs in a savepoint so a concurrent writer taking the
        same number only costs a retry.
        """
        for attempt in range(settings.TRANSACTION_NUMBER_ATTEMPTS):
            number = self._candidate_number(kind, transaction_date, attempt)
            if await self._number_taken(company_id, number):
                continue

            transaction = build(number)
            try:
                async with self.db.begin_nested():
                    self.db.add(transaction)
            except IntegrityError:
                logger.warning(f"Transaction number {number} taken concurrently, retrying")
                continue
            return transaction

        raise Conflict(f"Could not allocate a transaction number for {kind.value} on {transaction_date}")

    async def _apply(self, company_id: int, legs: List[Leg], direction: int, active_only: bool) -> List[Account]:
        """
        Apply (direction=1) or reverse (direction=-1) the balance effect of legs.

        Deltas are aggregated per account and applied in ascending id order.
        """
        accounts = await self.accounts.lock_accounts(
            company_id, [leg.account_id for leg in legs], active_only=active_only
        )

        deltas: Dict[int, Decimal] = {}
        for leg in legs:
            account = accounts[leg.account_id]
            delta = signed_delta(account.account_type, account.is_contra, leg.debit, leg.credit)
            deltas[leg.account_id] = deltas.get(leg.account_id, ZERO) + delta * direction

        for account_id in sorted(deltas):
            if deltas[account_id]:
                await self.accounts.adjust_balance(account_id, deltas[account_id])

        touched = [accounts[i] for i in sorted(accounts)]
        await self.accounts.refresh(touched)
        return touched

    def _build_lines(self, legs: List[Leg], description: str) -> List[TransactionLine]:
        return [
            TransactionLine(
                account_id=leg.account_id,
                description=leg.description or description,
                debit_amount=leg.debit,
                credit_amount=leg.credit,
            )
            for leg in legs
        ]

    async def _create(
        self,
        company_id: int,
        transaction_date: date,
        description: str,
        legs: Iterable[Leg],
        status: TransactionStatus,
        external_source: Optional[str],
        kind: TransactionKind,
        replaces_transaction_id: Optional[int] = None,
    ) -> Transaction:
        await self.companies.get_company(company_id)

        description = (description or "").strip()
        if not description:
            raise ValidationError("Description is required")
        if not isinstance(transaction_date, date):
            raise ValidationError("Transaction date is required")

        legs, total = validate_legs(legs)

        # Validates ownership and activity of every account up front
        await self.accounts.lock_accounts(company_id, [leg.account_id for leg in legs], active_only=True)
        period = await self.periods.resolve_open(company_id, transaction_date)

        posted = status == TransactionStatus.POSTED
        now = datetime.now(timezone.utc)

        def build(number: str) -> Transaction:
            transaction = Transaction(
                company_id=company_id,
                period_id=period.id,
                transaction_number=number,
                transaction_kind=kind,
                status=status,
                transaction_date=transaction_date,
                description=description,
                total_amount=total,
                external_source=external_source,
                replaces_transaction_id=replaces_transaction_id,
                posted_at=now if posted else None,
            )
            transaction.lines = self._build_lines(legs, description)
            return transaction

        transaction = await self._insert(company_id, kind, transaction_date, build)

        if posted:
            await self._apply(company_id, legs, 1, active_only=True)

        logger.info(
            f"{status.value.capitalize()} {transaction.transaction_number} for company {company_id}: "
            f"{len(legs)} lines, total {total}"
        )
        return transaction

    # ------------------------------------------------------------------
    # Posting
    # ------------------------------------------------------------------

    async def post_entry(
        self,
        company_id: int,
        transaction_date: date,
        description: str,
        legs: Iterable[Leg],
        external_source: Optional[str] = None,
        kind: TransactionKind = TransactionKind.JOURNAL,
        replaces_transaction_id: Optional[int] = None,
    ) -> Transaction:
        """Persist a balanced transaction as posted and apply its balance deltas"""
        return await self._create(
            company_id,
            transaction_date,
            description,
            legs,
            TransactionStatus.POSTED,
            external_source,
            kind,
            replaces_transaction_id,
        )

    async def create_draft(
        self,
        company_id: int,
        transaction_date: date,
        description: str,
        legs: Iterable[Leg],
        external_source: Optional[str] = None,
        kind: TransactionKind = TransactionKind.JOURNAL,
    ) -> Transaction:
        """Persist a balanced transaction as draft; balances are untouched"""
        return await self._create(
            company_id,
            transaction_date,
            description,
            legs,
            TransactionStatus.DRAFT,
            external_source,
            kind,
        )

    async def post_draft(self, company_id: int, transaction_id: int) -> Transaction:
        transaction = await self.get_entry(company_id, transaction_id, for_update=True)
        if transaction.status != TransactionStatus.DRAFT:
            raise InvalidState(f"Transaction {transaction.transaction_number} is already {transaction.status.value}")

        legs, _ = validate_legs(legs_of(transaction))
        await self.periods.resolve_open(company_id, transaction.transaction_date)

        await self._apply(company_id, legs, 1, active_only=True)
        transaction.status = TransactionStatus.POSTED
        transaction.posted_at = datetime.now(timezone.utc)
        await self.db.flush()

        logger.info(f"Posted draft {transaction.transaction_number}")
        return transaction

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_entry(self, company_id: int, transaction_id: int, for_update: bool = False) -> Transaction:
        stmt = select(Transaction).where(
            and_(
                Transaction.id == transaction_id,
                Transaction.company_id == company_id,
            )
        ).options(selectinload(Transaction.lines)).execution_options(populate_existing=True)
        if for_update:
            stmt = stmt.with_for_update()

        result = await self.db.execute(stmt)
        transaction = result.scalar_one_or_none()

        if not transaction:
            raise NotFound(f"Transaction {transaction_id} not found")

        return transaction

    async def list_entries(
        self,
        company_id: int,
        status=None,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        account_id: Optional[int] = None,
        search: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[Transaction]:
        stmt = select(Transaction).where(Transaction.company_id == company_id)

        if status is not None:
            try:
                status = TransactionStatus(status)
            except ValueError:
                raise ValidationError(f"Invalid status '{status}'")
            stmt = stmt.where(Transaction.status == status)
        if from_date is not None:
            stmt = stmt.where(Transaction.transaction_date >= from_date)
        if to_date is not None:
            stmt = stmt.where(Transaction.transaction_date <= to_date)
        if account_id is not None:
            stmt = stmt.where(Transaction.lines.any(TransactionLine.account_id == account_id))
        if search:
            pattern = f"%{search}%"
            stmt = stmt.where(
                or_(
                    Transaction.transaction_number.like(pattern),
                    Transaction.description.like(pattern),
                    Transaction.external_source.like(pattern),
                )
            )

        stmt = stmt.order_by(
            Transaction.transaction_date.desc(), Transaction.id.desc()
        ).limit(limit).offset(offset)

        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Reversal, void, correction
    # ------------------------------------------------------------------

    async def reverse_entry(self, company_id: int, transaction_id: int) -> List[Account]:
        """
        Delete a transaction, first undoing its balance effect if posted.

        Returns the touched accounts with their resulting balances.
        """
        transaction = await self.get_entry(company_id, transaction_id, for_update=True)
        if transaction.status == TransactionStatus.VOID:
            raise InvalidState(f"Transaction {transaction.transaction_number} is void and already reversed")

        touched = []
        if transaction.status == TransactionStatus.POSTED:
            touched = await self._apply(company_id, legs_of(transaction), -1, active_only=False)

        number = transaction.transaction_number
        await self.db.delete(transaction)
        await self.db.flush()

        logger.info(f"Deleted {number} for company {company_id}, reversed {len(touched)} account balances")
        return touched

    async def void_entry(self, company_id: int, transaction_id: int, reason: Optional[str] = None) -> Transaction:
        """posted -> void: reverse the balance effect but keep the rows"""
        transaction = await self.get_entry(company_id, transaction_id, for_update=True)
        if transaction.status != TransactionStatus.POSTED:
            raise InvalidState(
                f"Only posted transactions can be voided; {transaction.transaction_number} is {transaction.status.value}"
            )

        await self._apply(company_id, legs_of(transaction), -1, active_only=False)
        transaction.status = TransactionStatus.VOID
        transaction.voided_at = datetime.now(timezone.utc)
        transaction.void_reason = reason
        await self.db.flush()

        logger.info(f"Voided {transaction.transaction_number}: {reason or 'no reason given'}")
        return transaction

    async def update_entry(
        self,
        company_id: int,
        transaction_id: int,
        description: Optional[str] = None,
        transaction_date: Optional[date] = None,
        external_source: Optional[str] = None,
        legs: Optional[Iterable[Leg]] = None,
        status=None,
    ) -> Transaction:
        """
        Change a transaction.

        Drafts are rewritten in place. Posted transactions are immutable: a
        change voids the original and posts a corrected replacement, so the
        net balance effect is new minus original. An update that changes
        nothing returns the transaction untouched.
        """
        transaction = await self.get_entry(company_id, transaction_id, for_update=True)

        if transaction.status == TransactionStatus.VOID:
            raise InvalidState(f"Transaction {transaction.transaction_number} is void and cannot be changed")

        content_changed = any(v is not None for v in (description, transaction_date, external_source, legs))

        if status is not None:
            try:
                status = TransactionStatus(status)
            except ValueError:
                raise ValidationError(f"Invalid status '{status}'")
            if status != transaction.status:
                if content_changed:
                    raise ValidationError("Change the status separately from other fields")
                if status == TransactionStatus.POSTED:
                    return await self.post_draft(company_id, transaction_id)
                if status == TransactionStatus.VOID:
                    return await self.void_entry(company_id, transaction_id, "Voided by update")
                raise InvalidState(f"Cannot move a {transaction.status.value} transaction back to {status.value}")

        new_description = transaction.description if description is None else description.strip()
        new_date = transaction.transaction_date if transaction_date is None else transaction_date
        new_source = transaction.external_source if external_source is None else external_source
        current_legs = legs_of(transaction)
        new_legs = current_legs if legs is None else list(legs)

        if not new_description:
            raise ValidationError("Description cannot be empty")

        unchanged = (
            new_description == transaction.description
            and new_date == transaction.transaction_date
            and new_source == transaction.external_source
            and sorted(leg.key() for leg in new_legs) == sorted(leg.key() for leg in current_legs)
        )
        if unchanged:
            return transaction

        if transaction.status == TransactionStatus.DRAFT:
            new_legs, total = validate_legs(new_legs)
            await self.accounts.lock_accounts(company_id, [leg.account_id for leg in new_legs], active_only=True)
            period = await self.periods.resolve_open(company_id, new_date)

            transaction.description = new_description
            transaction.transaction_date = new_date
            transaction.external_source = new_source
            transaction.period_id = period.id
            transaction.total_amount = total
            transaction.lines = self._build_lines(new_legs, new_description)
            await self.db.flush()

            logger.info(f"Updated draft {transaction.transaction_number}")
            return transaction

        # Posted: validate the replacement before touching the original
        validate_legs(new_legs)
        await self.void_entry(company_id, transaction_id, "Corrected by update")
        replacement = await self.post_entry(
            company_id,
            new_date,
            new_description,
            new_legs,
            external_source=new_source,
            kind=transaction.transaction_kind,
            replaces_transaction_id=transaction.id,
        )

        logger.info(f"Corrected {transaction.transaction_number} with {replacement.transaction_number}")
        return replacement
