"""AccountRegistry tests"""
from decimal import Decimal

import pytest

from ledger.models import AccountType
from ledger.services.account_registry import AccountRegistry
from ledger.services.errors import Conflict, InvalidState, NotFound, ValidationError
from ledger.services.ledger_engine import LedgerEngine, Leg


class TestAccountCreation:
    """Codes, opening balances and validation"""

    @pytest.mark.asyncio
    async def test_generated_codes_follow_type_prefix(self, db, company):
        registry = AccountRegistry(db)

        cash = await registry.create_account(company.id, "Cash", "asset")
        bank = await registry.create_account(company.id, "Bank", AccountType.ASSET)
        loan = await registry.create_account(company.id, "Loan", "LIABILITY")
        fuel = await registry.create_account(company.id, "Fuel", "expense")

        assert cash.account_code == "A001"
        assert bank.account_code == "A002"
        assert loan.account_code == "L001"
        assert fuel.account_code == "X001"

    @pytest.mark.asyncio
    async def test_codes_are_not_reused_after_soft_delete(self, db, company):
        registry = AccountRegistry(db)
        first = await registry.create_account(company.id, "Petty Cash", AccountType.ASSET)
        await registry.soft_delete(company.id, first.id)

        second = await registry.create_account(company.id, "Bank", AccountType.ASSET)

        assert first.account_code == "A001"
        assert second.account_code == "A002"

    @pytest.mark.asyncio
    async def test_current_balance_starts_at_opening(self, db, company):
        account = await AccountRegistry(db).create_account(
            company.id, "Cash", AccountType.ASSET, Decimal("1500.50")
        )
        assert account.opening_balance == Decimal("1500.50")
        assert account.current_balance == Decimal("1500.50")

    @pytest.mark.asyncio
    async def test_positive_expense_opening_is_stored_negative(self, db, company):
        account = await AccountRegistry(db).create_account(
            company.id, "Rent", AccountType.EXPENSE, Decimal("300.00")
        )
        assert account.opening_balance == Decimal("-300.00")
        assert account.current_balance == Decimal("-300.00")

    @pytest.mark.asyncio
    async def test_explicit_duplicate_code_conflicts(self, db, company):
        registry = AccountRegistry(db)
        await registry.create_account(company.id, "Cash", AccountType.ASSET, account_code="1000")

        with pytest.raises(Conflict):
            await registry.create_account(company.id, "Bank", AccountType.ASSET, account_code="1000")

    @pytest.mark.asyncio
    async def test_invalid_type_rejected(self, db, company):
        with pytest.raises(ValidationError):
            await AccountRegistry(db).create_account(company.id, "Mystery", "cosmic")

    @pytest.mark.asyncio
    async def test_ownership_only_on_equity(self, db, company):
        with pytest.raises(ValidationError):
            await AccountRegistry(db).create_account(
                company.id, "Cash", AccountType.ASSET, ownership_percentage=Decimal("10")
            )

    @pytest.mark.asyncio
    async def test_unknown_company_not_found(self, db):
        with pytest.raises(NotFound):
            await AccountRegistry(db).create_account(999, "Cash", AccountType.ASSET)


class TestAccountLookup:
    """Reads, ownership scope and the account tree"""

    @pytest.mark.asyncio
    async def test_account_of_other_company_not_found(self, db, company, chart):
        from ledger.services.company_service import CompanyService

        other = await CompanyService(db).create_company("Other Co")

        with pytest.raises(NotFound):
            await AccountRegistry(db).get_account(other.id, chart["cash"].id)

    @pytest.mark.asyncio
    async def test_list_filters_by_type(self, db, company, chart):
        assets = await AccountRegistry(db).list_accounts(company.id, AccountType.ASSET)
        assert {a.account_name for a in assets} == {"Cash", "Bank"}

    @pytest.mark.asyncio
    async def test_investor_equity_by_name(self, db, company, chart):
        registry = AccountRegistry(db)
        alice = await registry.create_account(
            company.id, "Alice - Equity Stake", AccountType.EQUITY,
            investor_name="Alice", ownership_percentage=Decimal("20"),
        )
        await registry.create_account(
            company.id, "Bob - Equity Stake", AccountType.EQUITY,
            investor_name="Bob", ownership_percentage=Decimal("30"),
        )

        found = await registry.investor_equity_accounts(company.id, investor_name="Alice")
        assert [a.id for a in found] == [alice.id]
        assert await registry.investor_equity_accounts(company.id, investor_name="Nobody") == []

        # Owner capital has no ownership percentage, so it is not a stake
        stakes = await registry.investor_equity_accounts(company.id)
        assert {a.investor_name for a in stakes} == {"Alice", "Bob"}

    @pytest.mark.asyncio
    async def test_tree_nests_children(self, db, company, chart):
        registry = AccountRegistry(db)
        child = await registry.create_account(
            company.id, "Till", AccountType.ASSET, parent_account_id=chart["cash"].id
        )

        roots = await registry.account_tree(company.id)
        cash_node = next(n for n in roots if n["account"].id == chart["cash"].id)

        assert [c["account"].id for c in cash_node["children"]] == [child.id]
        assert child.id not in {n["account"].id for n in roots}

    @pytest.mark.asyncio
    async def test_get_or_create_reuses_active_account(self, db, company):
        registry = AccountRegistry(db)
        first = await registry.get_or_create(company.id, "Suspense", AccountType.EQUITY)
        second = await registry.get_or_create(company.id, "Suspense", AccountType.EQUITY)

        assert first.id == second.id
        assert first.current_balance == Decimal("0")


class TestAccountUpdate:
    """Field updates and their guards"""

    @pytest.mark.asyncio
    async def test_rename(self, db, company, chart):
        account = await AccountRegistry(db).update_account(
            company.id, chart["cash"].id, account_name="Main Cash"
        )
        assert account.account_name == "Main Cash"

    @pytest.mark.asyncio
    async def test_type_change_allowed_without_lines(self, db, company, chart):
        account = await AccountRegistry(db).update_account(
            company.id, chart["bank"].id, account_type="liability"
        )
        assert account.account_type == AccountType.LIABILITY

    @pytest.mark.asyncio
    async def test_type_change_refused_with_lines(self, db, company, chart, today):
        await LedgerEngine(db).post_entry(
            company.id, today, "Sale",
            [Leg.debit_of(chart["cash"].id, 100), Leg.credit_of(chart["sales"].id, 100)],
        )

        with pytest.raises(InvalidState):
            await AccountRegistry(db).update_account(
                company.id, chart["cash"].id, account_type="expense"
            )

    @pytest.mark.asyncio
    async def test_code_collision_conflicts(self, db, company, chart):
        with pytest.raises(Conflict):
            await AccountRegistry(db).update_account(
                company.id, chart["cash"].id, account_code=chart["bank"].account_code
            )

    @pytest.mark.asyncio
    async def test_parent_cycle_rejected(self, db, company, chart):
        registry = AccountRegistry(db)
        child = await registry.create_account(
            company.id, "Till", AccountType.ASSET, parent_account_id=chart["cash"].id
        )

        with pytest.raises(ValidationError):
            await registry.update_account(company.id, chart["cash"].id, parent_account_id=child.id)

    @pytest.mark.asyncio
    async def test_balance_is_not_updatable(self, db, company, chart):
        with pytest.raises(ValidationError):
            await AccountRegistry(db).update_account(
                company.id, chart["cash"].id, current_balance=Decimal("1")
            )


class TestSoftDelete:
    """Deletion only deactivates, and only unused leaf accounts"""

    @pytest.mark.asyncio
    async def test_unused_account_is_deactivated(self, db, company, chart):
        registry = AccountRegistry(db)
        account = await registry.soft_delete(company.id, chart["bank"].id)

        assert account.is_active is False
        remaining = await registry.list_accounts(company.id, AccountType.ASSET)
        assert chart["bank"].id not in {a.id for a in remaining}

    @pytest.mark.asyncio
    async def test_account_with_lines_conflicts(self, db, company, chart, today):
        await LedgerEngine(db).post_entry(
            company.id, today, "Sale",
            [Leg.debit_of(chart["cash"].id, 100), Leg.credit_of(chart["sales"].id, 100)],
        )

        with pytest.raises(Conflict):
            await AccountRegistry(db).soft_delete(company.id, chart["cash"].id)

    @pytest.mark.asyncio
    async def test_account_with_children_conflicts(self, db, company, chart):
        registry = AccountRegistry(db)
        await registry.create_account(
            company.id, "Till", AccountType.ASSET, parent_account_id=chart["cash"].id
        )

        with pytest.raises(Conflict):
            await registry.soft_delete(company.id, chart["cash"].id)


class TestBalancePrimitives:
    """Locking and atomic increments"""

    @pytest.mark.asyncio
    async def test_adjust_balance_increments(self, db, company, chart):
        registry = AccountRegistry(db)
        balance = await registry.adjust_balance(chart["cash"].id, Decimal("-250.25"))
        assert balance == Decimal("9749.75")

    @pytest.mark.asyncio
    async def test_lock_missing_account_not_found(self, db, company, chart):
        with pytest.raises(NotFound):
            await AccountRegistry(db).lock_accounts(company.id, [chart["cash"].id, 9999])

    @pytest.mark.asyncio
    async def test_lock_active_only_skips_inactive(self, db, company, chart):
        registry = AccountRegistry(db)
        await registry.soft_delete(company.id, chart["bank"].id)

        with pytest.raises(NotFound):
            await registry.lock_accounts(company.id, [chart["bank"].id], active_only=True)
        locked = await registry.lock_accounts(company.id, [chart["bank"].id])
        assert list(locked) == [chart["bank"].id]
