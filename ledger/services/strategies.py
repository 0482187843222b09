from sqlalchemy.ext.asyncio import AsyncSession
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Optional, List
import logging

from ledger.config import settings
from ledger.models import Account, AccountType, EntrySide, Transaction, TransactionKind
from ledger.services.account_registry import AccountRegistry, validate_ownership
from ledger.services.errors import Conflict, NotFound, ValidationError
from ledger.services.ledger_engine import LedgerEngine, Leg
from ledger.utils.money import ZERO, to_money, split_amount

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")

# Free-text liability types mapped onto the supported ones
LIABILITY_TYPE_ALIASES = {
    "tractor": "equipment",
    "machinery": "equipment",
    "car": "vehicle",
    "truck": "vehicle",
    "building": "mortgage",
}

LIABILITY_TYPES = ("loan", "equipment", "tools", "vehicle", "credit_line", "mortgage", "other")

# Valid (from, to) account type pairs for micro-transactions.
# Value flows from the credited account to the debited one.
MICRO_TRANSACTION_PAIRS = {
    (AccountType.ASSET, AccountType.EXPENSE): "Pay small expense",
    (AccountType.ASSET, AccountType.LIABILITY): "Pay down small debt",
    (AccountType.EXPENSE, AccountType.ASSET): "Refund small expense",
    (AccountType.LIABILITY, AccountType.ASSET): "Receive small payment",
}


def normalize_liability_type(value: str) -> str:
    liability_type = (value or "").strip().lower()
    liability_type = LIABILITY_TYPE_ALIASES.get(liability_type, liability_type)
    if liability_type not in LIABILITY_TYPES:
        raise ValidationError(f"Invalid liability type. Valid types: {', '.join(LIABILITY_TYPES)}")
    return liability_type


def require_positive(amount, label: str = "Amount") -> Decimal:
    try:
        amount = to_money(amount)
    except ValueError:
        raise ValidationError(f"{label} must be a number")
    if amount <= 0:
        raise ValidationError(f"{label} must be greater than 0")
    return amount


def require_text(value: Optional[str], label: str) -> str:
    value = (value or "").strip()
    if not value:
        raise ValidationError(f"Field '{label}' is required")
    return value


@dataclass
class PostingResult:
    """Outcome of a strategy: the posted transaction, the accounts it touched and extra detail"""
    transaction: Transaction
    account_ids: List[int]
    details: dict = field(default_factory=dict)


class TransactionStrategies:
    """
    Transaction-Type Strategies - domain operations expressed as balanced postings.

    Each strategy computes its legs and hands them to the ledger engine,
    which owns validation and every balance change.
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self.engine = LedgerEngine(db)
        self.accounts = AccountRegistry(db)

    async def _control_account(self, company_id: int, name: str, description: str) -> Account:
        return await self.accounts.get_or_create(company_id, name, AccountType.EQUITY, description)

    async def _asset_account(self, company_id: int, account_id: Optional[int]) -> Account:
        if account_id is None:
            return await self.accounts.default_asset_account(company_id)

        account = await self.accounts.get_account(company_id, account_id, active_only=True)
        if account.account_type != AccountType.ASSET:
            raise NotFound(f"Asset account {account_id} not found")
        return account

    async def simple_entry(
        self,
        company_id: int,
        account_id: int,
        amount,
        side,
        transaction_date: date,
        description: str,
        contra_account_id: Optional[int] = None,
    ) -> PostingResult:
        """
        Single-account debit or credit.

        The other side goes to contra_account_id when given, otherwise to the
        company's suspense control account.
        """
        amount = require_positive(amount)
        try:
            side = EntrySide(str(side).lower())
        except ValueError:
            raise ValidationError("Invalid transaction type")

        account = await self.accounts.get_account(company_id, account_id, active_only=True)

        if contra_account_id is None:
            contra = await self._control_account(
                company_id,
                settings.SUSPENSE_ACCOUNT_NAME,
                "Contra side of single-account entries",
            )
        else:
            contra = await self.accounts.get_account(company_id, contra_account_id, active_only=True)
        if contra.id == account.id:
            raise ValidationError("Contra account must differ from the entry account")

        if side == EntrySide.DEBIT:
            legs = [Leg.debit_of(account.id, amount), Leg.credit_of(contra.id, amount)]
        else:
            legs = [Leg.credit_of(account.id, amount), Leg.debit_of(contra.id, amount)]

        transaction = await self.engine.post_entry(
            company_id, transaction_date, description, legs, kind=TransactionKind.SIMPLE
        )
        return PostingResult(transaction, [account.id, contra.id], {"type": side.value})

    async def create_liability(
        self,
        company_id: int,
        liability_name: str,
        liability_type: str,
        amount,
        transaction_date: date,
        description: str,
        interest_rate=None,
    ) -> PostingResult:
        """Liability with the asset it financed: debit asset, credit liability"""
        liability_name = require_text(liability_name, "liability_name")
        liability_type = normalize_liability_type(liability_type)
        amount = require_positive(amount)

        liability_description = description
        if interest_rate:
            liability_description = f"{description} ({Decimal(str(interest_rate))}% interest)"

        label = liability_type.capitalize()
        liability_account = await self.accounts.get_or_create(
            company_id, f"{liability_name} - {label}", AccountType.LIABILITY, liability_description
        )
        asset_account = await self.accounts.get_or_create(
            company_id, f"{label} - {liability_name}", AccountType.ASSET, description
        )

        legs = [
            Leg.debit_of(asset_account.id, amount, f"{description} (asset received)"),
            Leg.credit_of(liability_account.id, amount, f"{description} (liability created)"),
        ]
        transaction = await self.engine.post_entry(
            company_id,
            transaction_date,
            description,
            legs,
            external_source=liability_name,
            kind=TransactionKind.LIABILITY,
        )

        return PostingResult(
            transaction,
            [asset_account.id, liability_account.id],
            {
                "liability_type": liability_type,
                "asset_account_id": asset_account.id,
                "liability_account_id": liability_account.id,
                "asset_account_name": asset_account.account_name,
                "liability_account_name": liability_account.account_name,
            },
        )

    async def micro_transaction(
        self,
        company_id: int,
        from_account_id: int,
        to_account_id: int,
        amount,
        transaction_date: date,
        description: str,
    ) -> PostingResult:
        """Small transfer between two accounts: credit the source, debit the destination"""
        amount = require_positive(amount)
        if from_account_id == to_account_id:
            raise ValidationError("Source and destination accounts must differ")

        try:
            from_account = await self.accounts.get_account(company_id, from_account_id, active_only=True)
            to_account = await self.accounts.get_account(company_id, to_account_id, active_only=True)
        except NotFound:
            raise NotFound("One or both accounts not found")

        pair = (from_account.account_type, to_account.account_type)
        label = MICRO_TRANSACTION_PAIRS.get(pair)
        if label is None:
            valid = ", ".join(f"{a.value}->{b.value}" for a, b in MICRO_TRANSACTION_PAIRS)
            raise ValidationError(f"Invalid account pair for micro-transaction. Valid pairs: {valid}")

        legs = [
            Leg.credit_of(from_account.id, amount, f"{description} (payment from {from_account.account_name})"),
            Leg.debit_of(to_account.id, amount, f"{description} (payment to {to_account.account_name})"),
        ]
        transaction = await self.engine.post_entry(
            company_id, transaction_date, description, legs, kind=TransactionKind.MICRO
        )

        return PostingResult(
            transaction,
            [from_account.id, to_account.id],
            {
                "transaction_type": label,
                "from_account_id": from_account.id,
                "to_account_id": to_account.id,
            },
        )

    async def external_investment(
        self,
        company_id: int,
        investor_name: str,
        amount,
        ownership_percentage,
        target_asset_id: int,
        transaction_date: date,
        description: str,
    ) -> PostingResult:
        """
        Investor buy-in: debit the receiving asset, credit the investor's equity stake.

        A returning investor's stake is topped up; total ownership across
        active stakes may not exceed 100%.
        """
        investor_name = require_text(investor_name, "investor_name")
        amount = require_positive(amount)
        ownership = validate_ownership(ownership_percentage)
        if ownership is None:
            raise ValidationError("Field 'ownership_percentage' is required")

        try:
            target = await self._asset_account(company_id, target_asset_id)
        except NotFound:
            raise NotFound("Target asset account not found")

        stakes = await self.accounts.investor_equity_accounts(company_id)
        held = sum((Decimal(s.ownership_percentage) for s in stakes), Decimal("0"))
        if held + ownership > HUNDRED:
            raise ValidationError(
                f"Ownership would exceed 100% ({held}% already held, {ownership}% requested)"
            )

        equity = next((s for s in stakes if s.investor_name == investor_name), None)
        if equity is None:
            equity = await self.accounts.create_account(
                company_id,
                f"{investor_name} - Equity Stake",
                AccountType.EQUITY,
                0,
                description,
                investor_name=investor_name,
                ownership_percentage=ownership,
            )
        else:
            equity.ownership_percentage = Decimal(equity.ownership_percentage) + ownership
            await self.db.flush()

        legs = [
            Leg.debit_of(target.id, amount, f"{description} (investment from {investor_name})"),
            Leg.credit_of(equity.id, amount, f"{description} (equity stake created)"),
        ]
        transaction = await self.engine.post_entry(
            company_id,
            transaction_date,
            description,
            legs,
            external_source=investor_name,
            kind=TransactionKind.EXTERNAL_INVESTMENT,
        )

        return PostingResult(
            transaction,
            [target.id, equity.id],
            {
                "investor_name": investor_name,
                "asset_account_id": target.id,
                "equity_account_id": equity.id,
                "ownership_percentage": Decimal(equity.ownership_percentage),
            },
        )

    async def investor_exit(
        self,
        company_id: int,
        investor_name: str,
        buyout_amount,
        transaction_date: date,
        description: str,
        asset_account_id: Optional[int] = None,
    ) -> PostingResult:
        """
        Investor buyout: the stake is debited to zero, the company asset is
        credited by the buyout and the difference goes to retained earnings.
        The stake account is then deactivated.
        """
        investor_name = require_text(investor_name, "investor_name")
        buyout = require_positive(buyout_amount, "Buyout amount")

        stakes = await self.accounts.investor_equity_accounts(company_id, investor_name=investor_name)
        if not stakes:
            raise NotFound("Investor equity account not found")
        equity = stakes[0]

        stake = to_money(equity.current_balance)
        if stake <= 0:
            raise Conflict(f"Investor equity account for {investor_name} is already at zero")

        asset = await self._asset_account(company_id, asset_account_id)

        legs = [
            Leg.debit_of(equity.id, stake, f"{description} ({investor_name} stake buyout)"),
            Leg.credit_of(asset.id, buyout, f"{description} (cash paid to {investor_name})"),
        ]
        account_ids = [equity.id, asset.id]

        difference = stake - buyout
        if difference:
            retained = await self._control_account(
                company_id,
                settings.RETAINED_EARNINGS_ACCOUNT_NAME,
                "Undistributed profit and buyout differences",
            )
            memo = f"{description} (buyout difference)"
            if difference > 0:
                legs.append(Leg.credit_of(retained.id, difference, memo))
            else:
                legs.append(Leg.debit_of(retained.id, -difference, memo))
            account_ids.append(retained.id)

        previous_ownership = equity.ownership_percentage
        transaction = await self.engine.post_entry(
            company_id,
            transaction_date,
            description,
            legs,
            external_source=investor_name,
            kind=TransactionKind.INVESTOR_EXIT,
        )

        equity.is_active = False
        equity.ownership_percentage = None
        await self.db.flush()

        logger.info(f"Investor {investor_name} exited company {company_id}: stake {stake}, buyout {buyout}")
        return PostingResult(
            transaction,
            account_ids,
            {
                "investor_name": investor_name,
                "equity_account_id": equity.id,
                "asset_account_id": asset.id,
                "previous_balance": stake,
                "ownership_percentage": previous_ownership,
                "buyout_amount": buyout,
                "buyout_difference": difference,
            },
        )

    async def profit_distribution(
        self,
        company_id: int,
        total_profit,
        transaction_date: date,
        description: str,
        source_account_id: Optional[int] = None,
    ) -> PostingResult:
        """
        Split a profit across every equity stake by ownership percentage.

        The credits always sum exactly to total_profit and are never negative.
        The unowned share goes to retained earnings, and leftover cents go to
        the shares that lost the most in rounding. The debit side is source_account_id or the
        income summary control account.
        """
        total = require_positive(total_profit, "Total profit")

        stakes = await self.accounts.investor_equity_accounts(company_id)
        if not stakes:
            raise ValidationError("No equity accounts with ownership percentages found")

        percentages = [Decimal(s.ownership_percentage) for s in stakes]
        owned = sum(percentages, Decimal("0"))
        if owned > HUNDRED:
            raise ValidationError(f"Ownership percentages total {owned}%, more than 100%")

        # The unowned share is one more weight, so every part comes from one split
        unowned = HUNDRED - owned
        if unowned > 0:
            parts = split_amount(total, percentages + [unowned])
            shares, remainder = parts[:-1], parts[-1]
        else:
            shares, remainder = split_amount(total, percentages), ZERO

        retained = None
        if remainder > 0:
            retained = await self._control_account(
                company_id,
                settings.RETAINED_EARNINGS_ACCOUNT_NAME,
                "Undistributed profit and buyout differences",
            )

        if source_account_id is None:
            source = await self._control_account(
                company_id,
                settings.INCOME_SUMMARY_ACCOUNT_NAME,
                "Profit available for distribution",
            )
        else:
            source = await self.accounts.get_account(company_id, source_account_id, active_only=True)
        if any(s.id == source.id for s in stakes):
            raise ValidationError("Profit cannot be distributed from an investor's own stake")

        legs = [Leg.debit_of(source.id, total, f"{description} (profit distributed)")]
        for stake, pct, share in zip(stakes, percentages, shares):
            if share > 0:
                legs.append(Leg.credit_of(
                    stake.id, share, f"{description} ({stake.investor_name or stake.account_name} - {pct.quantize(Decimal('0.01'))}%)"
                ))
        if retained is not None:
            legs.append(Leg.credit_of(retained.id, remainder, f"{description} (undistributed share)"))

        transaction = await self.engine.post_entry(
            company_id, transaction_date, description, legs, kind=TransactionKind.PROFIT_DISTRIBUTION
        )

        refreshed = {a.id: a for a in await self.accounts.get_many(
            company_id, [source.id] + [s.id for s in stakes] + ([retained.id] if retained else [])
        )}
        distributions = [
            {
                "account_id": stake.id,
                "account_name": stake.account_name,
                "investor_name": stake.investor_name,
                "ownership_percentage": pct,
                "distribution_amount": share,
                "new_balance": to_money(refreshed[stake.id].current_balance),
            }
            for stake, pct, share in zip(stakes, percentages, shares)
        ]
        if retained is not None:
            distributions.append({
                "account_id": retained.id,
                "account_name": retained.account_name,
                "investor_name": None,
                "ownership_percentage": None,
                "distribution_amount": remainder,
                "new_balance": to_money(refreshed[retained.id].current_balance),
            })

        return PostingResult(
            transaction,
            list(refreshed),
            {
                "total_profit": total,
                "source_account_id": source.id,
                "distributions": distributions,
                "total_distributed": sum((d["distribution_amount"] for d in distributions), ZERO),
            },
        )

    async def investor_asset_protection(
        self,
        company_id: int,
        amount,
        transaction_date: date,
        description: str,
        asset_account_id: Optional[int] = None,
    ) -> PostingResult:
        """
        Set company assets aside for investors: credit the company asset and
        debit every investor stake in proportion to its share of total
        investor equity (current balances, not ownership percentages).
        """
        amount = require_positive(amount)

        stakes = [
            s for s in await self.accounts.investor_equity_accounts(company_id, named_only=True)
            if to_money(s.current_balance) > 0
        ]
        if not stakes:
            raise ValidationError("No investor equity accounts with a positive balance found")

        balances = [to_money(s.current_balance) for s in stakes]
        portions = split_amount(amount, balances)
        total_equity = sum(balances, ZERO)

        asset = await self._asset_account(company_id, asset_account_id)

        legs = [Leg.credit_of(asset.id, amount, f"{description} (investor asset protection - cash reserve)")]
        for stake, portion in zip(stakes, portions):
            if portion > 0:
                legs.append(Leg.debit_of(
                    stake.id, portion, f"{description} (asset protection - {stake.account_name} stake reduction)"
                ))

        transaction = await self.engine.post_entry(
            company_id, transaction_date, description, legs, kind=TransactionKind.ASSET_PROTECTION
        )

        return PostingResult(
            transaction,
            [asset.id] + [s.id for s in stakes],
            {
                "total_protection_amount": amount,
                "total_investor_equity": total_equity,
                "asset_account_id": asset.id,
                "protection_per_account": [
                    {
                        "account_id": stake.id,
                        "investor_name": stake.investor_name,
                        "ownership_percentage": Decimal(stake.ownership_percentage),
                        "protection_amount": portion,
                    }
                    for stake, portion in zip(stakes, portions)
                ],
            },
        )
