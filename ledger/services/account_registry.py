from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, and_, exists
from sqlalchemy.exc import IntegrityError
from decimal import Decimal
from typing import Optional, List, Dict, Iterable
import logging

from ledger.models import Account, AccountType, TransactionLine
from ledger.models.account import ACCOUNT_CODE_PREFIXES
from ledger.services.company_service import CompanyService
from ledger.services.errors import Conflict, InvalidState, NotFound, ValidationError
from ledger.utils.money import to_money

logger = logging.getLogger(__name__)

CODE_WIDTH = 3
CODE_ATTEMPTS = 5

UPDATABLE_FIELDS = (
    "account_code",
    "account_name",
    "account_type",
    "description",
    "parent_account_id",
    "is_contra",
    "is_active",
    "investor_name",
    "ownership_percentage",
)


def parse_account_type(value) -> AccountType:
    """Accept an AccountType or its name in any case"""
    if isinstance(value, AccountType):
        return value
    try:
        return AccountType(str(value).strip().upper())
    except ValueError:
        valid = ", ".join(t.value.lower() for t in AccountType)
        raise ValidationError(f"Invalid account type '{value}'. Valid types: {valid}")


def validate_ownership(percentage) -> Optional[Decimal]:
    if percentage is None:
        return None
    percentage = Decimal(str(percentage))
    if percentage <= 0 or percentage > 100:
        raise ValidationError("Ownership percentage must be between 0 and 100")
    return percentage


class AccountRegistry:
    """Account Registry - chart of accounts and balance mutation primitives"""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.companies = CompanyService(db)

    async def generate_code(self, company_id: int, account_type) -> str:
        """
        Next code for (company, type): prefix + (max numeric suffix + 1).
        Inactive accounts are included so codes are never handed out twice.
        """
        account_type = parse_account_type(account_type)
        prefix = ACCOUNT_CODE_PREFIXES[account_type]

        stmt = select(Account.account_code).where(
            and_(
                Account.company_id == company_id,
                Account.account_code.like(f"{prefix}%"),
            )
        )
        result = await self.db.execute(stmt)

        highest = 0
        for code in result.scalars().all():
            suffix = code[len(prefix):]
            if suffix.isdigit():
                highest = max(highest, int(suffix))

        return f"{prefix}{str(highest + 1).zfill(CODE_WIDTH)}"

    async def code_exists(self, company_id: int, account_code: str) -> bool:
        stmt = select(exists().where(
            and_(
                Account.company_id == company_id,
                Account.account_code == account_code,
            )
        ))
        return bool(await self.db.scalar(stmt))

    async def create_account(
        self,
        company_id: int,
        name: str,
        account_type,
        opening_balance=0,
        description: Optional[str] = None,
        investor_name: Optional[str] = None,
        ownership_percentage=None,
        is_contra: bool = False,
        parent_account_id: Optional[int] = None,
        account_code: Optional[str] = None,
    ) -> Account:
        """
        Create an account with current_balance initialised to the opening balance.

        A positive opening balance for an EXPENSE account is stored negative.
        """
        await self.companies.get_company(company_id)

        name = (name or "").strip()
        if not name:
            raise ValidationError("Account name is required")

        account_type = parse_account_type(account_type)
        opening = to_money(opening_balance)
        if account_type == AccountType.EXPENSE and opening > 0:
            opening = -opening

        ownership = validate_ownership(ownership_percentage)
        if ownership is not None and account_type != AccountType.EQUITY:
            raise ValidationError("Only equity accounts can carry an ownership percentage")

        if parent_account_id is not None:
            await self.get_account(company_id, parent_account_id)

        if account_code:
            account_code = account_code.strip().upper()
            if await self.code_exists(company_id, account_code):
                raise Conflict(f"Account code '{account_code}' already exists")

        generated = not account_code
        for attempt in range(CODE_ATTEMPTS):
            code = account_code or await self.generate_code(company_id, account_type)
            account = Account(
                company_id=company_id,
                account_code=code,
                account_name=name,
                account_type=account_type,
                description=description,
                is_contra=bool(is_contra),
                is_active=True,
                opening_balance=opening,
                current_balance=opening,
                investor_name=investor_name,
                ownership_percentage=ownership,
                parent_account_id=parent_account_id,
            )
            try:
                async with self.db.begin_nested():
                    self.db.add(account)
            except IntegrityError:
                # Another writer took the same code
                if not generated:
                    raise Conflict(f"Account code '{code}' already exists")
                logger.warning(f"Account code {code} taken concurrently, retrying ({attempt + 1})")
                continue

            logger.info(f"Created account {account.id} {code} '{name}' ({account_type.value}) opening={opening}")
            return account

        raise Conflict(f"Could not allocate an account code for {account_type.value}")

    async def get_account(self, company_id: int, account_id: int, active_only: bool = False) -> Account:
        stmt = select(Account).where(
            and_(
                Account.id == account_id,
                Account.company_id == company_id,
            )
        ).execution_options(populate_existing=True)
        if active_only:
            stmt = stmt.where(Account.is_active == True)

        result = await self.db.execute(stmt)
        account = result.scalar_one_or_none()

        if not account:
            raise NotFound(f"Account {account_id} not found")

        return account

    async def get_many(self, company_id: int, account_ids: Iterable[int]) -> List[Account]:
        """Fresh reads of several accounts, ordered by id"""
        ids = sorted(set(account_ids))
        if not ids:
            return []
        stmt = select(Account).where(
            and_(
                Account.id.in_(ids),
                Account.company_id == company_id,
            )
        ).order_by(Account.id).execution_options(populate_existing=True)

        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def list_accounts(
        self,
        company_id: int,
        account_type=None,
        include_inactive: bool = False,
    ) -> List[Account]:
        stmt = select(Account).where(Account.company_id == company_id)
        if account_type is not None:
            stmt = stmt.where(Account.account_type == parse_account_type(account_type))
        if not include_inactive:
            stmt = stmt.where(Account.is_active == True)

        result = await self.db.execute(stmt.order_by(Account.account_code))
        return list(result.scalars().all())

    async def account_tree(self, company_id: int, include_inactive: bool = False) -> List[dict]:
        """Chart of accounts nested by parent_account_id"""
        accounts = await self.list_accounts(company_id, include_inactive=include_inactive)

        nodes = {a.id: {"account": a, "children": []} for a in accounts}
        roots = []
        for account in accounts:
            node = nodes[account.id]
            parent = nodes.get(account.parent_account_id)
            if parent is not None:
                parent["children"].append(node)
            else:
                roots.append(node)
        return roots

    async def find_by_name(self, company_id: int, name: str, account_type) -> Optional[Account]:
        stmt = select(Account).where(
            and_(
                Account.company_id == company_id,
                Account.account_name == name,
                Account.account_type == parse_account_type(account_type),
                Account.is_active == True,
            )
        ).order_by(Account.id).limit(1)

        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_or_create(
        self,
        company_id: int,
        name: str,
        account_type,
        description: Optional[str] = None,
    ) -> Account:
        """Reuse the active account with this name and type, or create it at zero"""
        account = await self.find_by_name(company_id, name, account_type)
        if account:
            return account
        return await self.create_account(company_id, name, account_type, 0, description)

    async def default_asset_account(self, company_id: int) -> Account:
        """Company cash account: the first active asset by code"""
        stmt = select(Account).where(
            and_(
                Account.company_id == company_id,
                Account.account_type == AccountType.ASSET,
                Account.is_active == True,
            )
        ).order_by(Account.account_code).limit(1)

        result = await self.db.execute(stmt)
        account = result.scalar_one_or_none()

        if not account:
            raise NotFound(f"Company {company_id} has no active asset account")

        return account

    async def investor_equity_accounts(
        self, company_id: int, named_only: bool = False, investor_name: Optional[str] = None
    ) -> List[Account]:
        """
        Active equity accounts holding an ownership percentage.

        With investor_name, returns that investor's active equity accounts
        whatever their ownership.
        """
        stmt = select(Account).where(
            and_(
                Account.company_id == company_id,
                Account.account_type == AccountType.EQUITY,
                Account.is_active == True,
            )
        )
        if investor_name is not None:
            stmt = stmt.where(Account.investor_name == investor_name)
        else:
            stmt = stmt.where(
                and_(
                    Account.ownership_percentage.isnot(None),
                    Account.ownership_percentage > 0,
                )
            )
        if named_only:
            stmt = stmt.where(Account.investor_name.isnot(None))

        result = await self.db.execute(stmt.order_by(Account.id))
        return list(result.scalars().all())

    async def has_lines(self, account_id: int) -> bool:
        stmt = select(exists().where(TransactionLine.account_id == account_id))
        return bool(await self.db.scalar(stmt))

    async def has_children(self, account_id: int) -> bool:
        stmt = select(exists().where(Account.parent_account_id == account_id))
        return bool(await self.db.scalar(stmt))

    async def _would_create_cycle(self, account_id: int, parent_id: int) -> bool:
        current = parent_id
        seen = set()
        while current is not None and current not in seen:
            if current == account_id:
                return True
            seen.add(current)
            current = await self.db.scalar(
                select(Account.parent_account_id).where(Account.id == current)
            )
        return False

    async def update_account(self, company_id: int, account_id: int, **fields) -> Account:
        account = await self.get_account(company_id, account_id)

        unknown = set(fields) - set(UPDATABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")
        if not fields:
            raise ValidationError("No fields to update")

        if "account_name" in fields:
            name = (fields["account_name"] or "").strip()
            if not name:
                raise ValidationError("Account name cannot be empty")
            fields["account_name"] = name

        if "account_code" in fields:
            code = (fields["account_code"] or "").strip().upper()
            if not code:
                raise ValidationError("Account code cannot be empty")
            if code != account.account_code and await self.code_exists(company_id, code):
                raise Conflict(f"Account code '{code}' already exists")
            fields["account_code"] = code

        sign_changes = False
        if "account_type" in fields:
            new_type = parse_account_type(fields["account_type"])
            fields["account_type"] = new_type
            sign_changes = new_type != account.account_type
        if "is_contra" in fields:
            fields["is_contra"] = bool(fields["is_contra"])
            sign_changes = sign_changes or fields["is_contra"] != account.is_contra
        if sign_changes and await self.has_lines(account_id):
            raise InvalidState("Cannot change account type when account has transactions")

        if "ownership_percentage" in fields:
            fields["ownership_percentage"] = validate_ownership(fields["ownership_percentage"])
            target_type = fields.get("account_type", account.account_type)
            if fields["ownership_percentage"] is not None and target_type != AccountType.EQUITY:
                raise ValidationError("Only equity accounts can carry an ownership percentage")

        parent_id = fields.get("parent_account_id")
        if parent_id is not None and parent_id != account.parent_account_id:
            if parent_id == account_id:
                raise ValidationError("An account cannot be its own parent")
            await self.get_account(company_id, parent_id)
            if await self._would_create_cycle(account_id, parent_id):
                raise ValidationError("Cannot create circular reference in account hierarchy")

        for field, value in fields.items():
            setattr(account, field, value)
        await self.db.flush()
        await self.db.refresh(account)

        logger.info(f"Updated account {account_id}: {', '.join(sorted(fields))}")
        return account

    async def lock_accounts(
        self,
        company_id: int,
        account_ids: Iterable[int],
        active_only: bool = False,
    ) -> Dict[int, Account]:
        """
        Lock accounts for a posting.

        DEADLOCK AVOIDANCE: rows are always locked in ascending id order.
        Missing or foreign accounts raise NotFound, and so do inactive ones
        when active_only is set.
        """
        ids = sorted(set(account_ids))
        stmt = select(Account).where(
            and_(
                Account.id.in_(ids),
                Account.company_id == company_id,
            )
        ).with_for_update().order_by(Account.id).execution_options(populate_existing=True)

        result = await self.db.execute(stmt)
        accounts = {a.id: a for a in result.scalars().all()}
        if active_only:
            accounts = {i: a for i, a in accounts.items() if a.is_active}

        missing = [i for i in ids if i not in accounts]
        if missing:
            raise NotFound(f"Account(s) not found: {', '.join(map(str, missing))}")

        return accounts

    async def adjust_balance(self, account_id: int, signed_delta) -> Decimal:
        """Atomic increment: balance = balance + delta, evaluated by the database"""
        delta = to_money(signed_delta)
        stmt = (
            update(Account)
            .where(Account.id == account_id)
            .values(current_balance=Account.current_balance + delta)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        if result.rowcount == 0:
            raise NotFound(f"Account {account_id} not found")

        balance = await self.db.scalar(
            select(Account.current_balance).where(Account.id == account_id)
        )
        return to_money(balance)

    async def refresh(self, accounts: Iterable[Account]) -> None:
        """Reload balances changed behind the ORM's back by adjust_balance"""
        ids = [a.id for a in accounts]
        if ids:
            await self.db.execute(
                select(Account).where(Account.id.in_(ids)).execution_options(populate_existing=True)
            )

    async def soft_delete(self, company_id: int, account_id: int) -> Account:
        account = await self.get_account(company_id, account_id)

        if await self.has_lines(account_id):
            raise Conflict("Cannot delete account with existing transactions. Consider deactivating it instead.")
        if await self.has_children(account_id):
            raise Conflict("Cannot delete account with child accounts")

        account.is_active = False
        await self.db.flush()
        await self.db.refresh(account)

        logger.info(f"Soft-deleted account {account_id} {account.account_code}")
        return account
