"""TransactionStrategies tests, including the worked examples"""
from decimal import Decimal

import pytest

from ledger.config import settings
from ledger.models import AccountType, TransactionKind
from ledger.services.account_registry import AccountRegistry
from ledger.services.errors import Conflict, NotFound, ValidationError
from ledger.services.ledger_engine import LedgerEngine
from ledger.services.strategies import TransactionStrategies, normalize_liability_type


async def balance(db, company_id, account_id) -> Decimal:
    account = await AccountRegistry(db).get_account(company_id, account_id)
    return Decimal(account.current_balance)


async def invest(db, company_id, target_id, today, name, amount, pct):
    return await TransactionStrategies(db).external_investment(
        company_id, name, Decimal(amount), Decimal(pct), target_id, today, f"{name} buys in"
    )


class TestSimpleEntry:
    """Single-account debit/credit"""

    @pytest.mark.asyncio
    async def test_contra_defaults_to_suspense(self, db, company, chart, today):
        result = await TransactionStrategies(db).simple_entry(
            company.id, chart["cash"].id, Decimal("200.00"), "debit", today, "Found cash"
        )

        suspense = await AccountRegistry(db).find_by_name(
            company.id, settings.SUSPENSE_ACCOUNT_NAME, AccountType.EQUITY
        )
        assert suspense is not None
        assert result.transaction.transaction_kind == TransactionKind.SIMPLE
        assert result.transaction.transaction_number.startswith("TRX")
        assert await balance(db, company.id, chart["cash"].id) == Decimal("10200.00")
        assert await balance(db, company.id, suspense.id) == Decimal("200.00")

    @pytest.mark.asyncio
    async def test_explicit_contra(self, db, company, chart, today):
        await TransactionStrategies(db).simple_entry(
            company.id, chart["cash"].id, 100, "credit", today, "Bank transfer",
            contra_account_id=chart["bank"].id,
        )
        assert await balance(db, company.id, chart["cash"].id) == Decimal("9900.00")
        assert await balance(db, company.id, chart["bank"].id) == Decimal("100.00")

    @pytest.mark.asyncio
    async def test_invalid_side(self, db, company, chart, today):
        with pytest.raises(ValidationError):
            await TransactionStrategies(db).simple_entry(
                company.id, chart["cash"].id, 100, "sideways", today, "?"
            )

    @pytest.mark.asyncio
    async def test_non_positive_amount(self, db, company, chart, today):
        with pytest.raises(ValidationError):
            await TransactionStrategies(db).simple_entry(
                company.id, chart["cash"].id, 0, "debit", today, "Nothing"
            )


class TestLiability:
    """Liability creation"""

    def test_alias_table(self):
        assert normalize_liability_type("Tractor") == "equipment"
        assert normalize_liability_type("truck") == "vehicle"
        assert normalize_liability_type("building") == "mortgage"
        assert normalize_liability_type("loan") == "loan"
        with pytest.raises(ValidationError):
            normalize_liability_type("spaceship")

    @pytest.mark.asyncio
    async def test_existing_accounts_are_reused(self, db, company, chart, today):
        strategies = TransactionStrategies(db)
        first = await strategies.create_liability(company.id, "Bank Loan", "loan", 1000, today, "Draw 1")
        second = await strategies.create_liability(company.id, "Bank Loan", "loan", 500, today, "Draw 2")

        liability_id = first.details["liability_account_id"]
        assert second.details["liability_account_id"] == liability_id
        assert await balance(db, company.id, liability_id) == Decimal("1500.00")
        assert first.transaction.external_source == "Bank Loan"
        assert first.transaction.transaction_number.startswith("LIAB")


class TestMicroTransaction:
    """Micro-transactions between fixed type pairs"""

    @pytest.mark.asyncio
    async def test_pay_down_small_debt(self, db, company, chart, today):
        result = await TransactionStrategies(db).micro_transaction(
            company.id, chart["cash"].id, chart["payable"].id, 100, today, "Supplier"
        )
        assert result.details["transaction_type"] == "Pay down small debt"
        assert await balance(db, company.id, chart["cash"].id) == Decimal("9900.00")
        assert await balance(db, company.id, chart["payable"].id) == Decimal("400.00")

    @pytest.mark.asyncio
    async def test_invalid_pair(self, db, company, chart, today):
        with pytest.raises(ValidationError):
            await TransactionStrategies(db).micro_transaction(
                company.id, chart["cash"].id, chart["bank"].id, 10, today, "Asset to asset"
            )

    @pytest.mark.asyncio
    async def test_same_account(self, db, company, chart, today):
        with pytest.raises(ValidationError):
            await TransactionStrategies(db).micro_transaction(
                company.id, chart["cash"].id, chart["cash"].id, 10, today, "Loop"
            )

    @pytest.mark.asyncio
    async def test_unknown_account(self, db, company, chart, today):
        with pytest.raises(NotFound):
            await TransactionStrategies(db).micro_transaction(
                company.id, chart["cash"].id, 9999, 10, today, "Nowhere"
            )


class TestExternalInvestment:
    """Investor buy-ins"""

    @pytest.mark.asyncio
    async def test_creates_stake_and_funds_asset(self, db, company, chart, today):
        result = await invest(db, company.id, chart["bank"].id, today, "Alice", "5000", "25")

        stake = await AccountRegistry(db).get_account(company.id, result.details["equity_account_id"])
        assert stake.account_type == AccountType.EQUITY
        assert stake.account_name == "Alice - Equity Stake"
        assert stake.investor_name == "Alice"
        assert Decimal(stake.ownership_percentage) == Decimal("25")
        assert Decimal(stake.current_balance) == Decimal("5000.00")
        assert await balance(db, company.id, chart["bank"].id) == Decimal("5000.00")

    @pytest.mark.asyncio
    async def test_returning_investor_tops_up(self, db, company, chart, today):
        first = await invest(db, company.id, chart["bank"].id, today, "Alice", "5000", "25")
        second = await invest(db, company.id, chart["bank"].id, today, "Alice", "1000", "5")

        assert second.details["equity_account_id"] == first.details["equity_account_id"]
        assert second.details["ownership_percentage"] == Decimal("30")

    @pytest.mark.asyncio
    async def test_ownership_cannot_exceed_100(self, db, company, chart, today):
        await invest(db, company.id, chart["bank"].id, today, "Alice", "5000", "70")

        with pytest.raises(ValidationError):
            await invest(db, company.id, chart["bank"].id, today, "Bob", "5000", "40")

    @pytest.mark.asyncio
    async def test_target_must_be_asset(self, db, company, chart, today):
        with pytest.raises(NotFound):
            await invest(db, company.id, chart["sales"].id, today, "Alice", "5000", "25")


class TestInvestorExit:
    """Investor buyouts"""

    @pytest.mark.asyncio
    async def test_buyout_above_stake_debits_retained_earnings(self, db, company, chart, today):
        result = await invest(db, company.id, chart["bank"].id, today, "Alice", "1000", "10")
        stake_id = result.details["equity_account_id"]

        exit_result = await TransactionStrategies(db).investor_exit(
            company.id, "Alice", Decimal("1200"), today, "Premium buyout", asset_account_id=chart["cash"].id
        )

        retained = await AccountRegistry(db).find_by_name(
            company.id, settings.RETAINED_EARNINGS_ACCOUNT_NAME, AccountType.EQUITY
        )
        assert exit_result.details["buyout_difference"] == Decimal("-200.00")
        assert await balance(db, company.id, retained.id) == Decimal("-200.00")
        assert await balance(db, company.id, stake_id) == Decimal("0.00")
        assert await balance(db, company.id, chart["cash"].id) == Decimal("8800.00")

    @pytest.mark.asyncio
    async def test_unknown_investor(self, db, company, chart, today):
        with pytest.raises(NotFound):
            await TransactionStrategies(db).investor_exit(company.id, "Nobody", 100, today, "Exit")

    @pytest.mark.asyncio
    async def test_zero_stake_conflicts(self, db, company, chart, today):
        await AccountRegistry(db).create_account(
            company.id, "Carol - Equity Stake", AccountType.EQUITY,
            investor_name="Carol", ownership_percentage=Decimal("5"),
        )

        with pytest.raises(Conflict):
            await TransactionStrategies(db).investor_exit(company.id, "Carol", 100, today, "Exit")


class TestProfitDistribution:
    """Profit split by ownership"""

    @pytest.mark.asyncio
    async def test_unowned_share_goes_to_retained_earnings(self, db, company, chart, today):
        await invest(db, company.id, chart["bank"].id, today, "Alice", "1000", "30")

        result = await TransactionStrategies(db).profit_distribution(
            company.id, Decimal("1000"), today, "Q1 profit"
        )

        amounts = [d["distribution_amount"] for d in result.details["distributions"]]
        assert sorted(amounts) == [Decimal("300.00"), Decimal("700.00")]
        assert result.details["total_distributed"] == Decimal("1000.00")

        income_summary = await AccountRegistry(db).find_by_name(
            company.id, settings.INCOME_SUMMARY_ACCOUNT_NAME, AccountType.EQUITY
        )
        assert await balance(db, company.id, income_summary.id) == Decimal("-1000.00")

    @pytest.mark.asyncio
    async def test_rounding_cent_goes_to_largest_rounding_loss(self, db, company, chart, today):
        for name, pct in (("Alice", "33.3333"), ("Bob", "33.3333"), ("Carol", "33.3334")):
            await invest(db, company.id, chart["bank"].id, today, name, "100", pct)

        result = await TransactionStrategies(db).profit_distribution(
            company.id, Decimal("100.00"), today, "Profit", source_account_id=chart["capital"].id
        )

        amounts = {d["investor_name"]: d["distribution_amount"] for d in result.details["distributions"]}
        assert sum(amounts.values()) == Decimal("100.00")
        assert amounts["Carol"] == Decimal("33.34")
        assert await balance(db, company.id, chart["capital"].id) == Decimal("9900.00")

    @pytest.mark.asyncio
    async def test_rounding_up_never_overdraws_retained_share(self, db, company, chart, today):
        # 0.045 + 0.045 + 0.005 each round up; the split must still total 0.10
        for name, pct in (("Alice", "45"), ("Bob", "45"), ("Carol", "5")):
            await invest(db, company.id, chart["bank"].id, today, name, "100", pct)

        result = await TransactionStrategies(db).profit_distribution(
            company.id, Decimal("0.10"), today, "Small profit", source_account_id=chart["capital"].id
        )

        amounts = [d["distribution_amount"] for d in result.details["distributions"]]
        assert all(a >= 0 for a in amounts)
        assert sum(amounts) == Decimal("0.10")
        assert result.details["total_distributed"] == Decimal("0.10")
        assert await balance(db, company.id, chart["capital"].id) == Decimal("9999.90")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "percentages, total",
        [
            (["45", "45", "5"], "0.10"),
            (["45", "45", "5"], "0.01"),
            (["33.3333", "33.3333", "33.3334"], "0.05"),
            (["10"] * 10, "0.05"),
            (["10"] * 9, "0.07"),
            (["60", "40"], "1000"),
            (["12.5", "12.5", "25"], "999.99"),
            (["70", "29.5"], "123.45"),
            (["99.99"], "0.03"),
            (["1"], "0.01"),
        ],
    )
    async def test_distribution_always_sums_to_profit(self, db, company, chart, today, percentages, total):
        for i, pct in enumerate(percentages):
            await invest(db, company.id, chart["bank"].id, today, f"Investor {i}", "100", pct)

        result = await TransactionStrategies(db).profit_distribution(
            company.id, Decimal(total), today, "Profit", source_account_id=chart["capital"].id
        )

        distributions = result.details["distributions"]
        assert result.details["total_distributed"] == Decimal(total)
        assert sum(d["distribution_amount"] for d in distributions) == Decimal(total)
        assert all(d["distribution_amount"] >= 0 for d in distributions)

        lines = result.transaction.lines
        assert sum(Decimal(l.debit_amount) for l in lines) == Decimal(total)
        assert sum(Decimal(l.credit_amount) for l in lines) == Decimal(total)
        assert await balance(db, company.id, chart["capital"].id) == Decimal("10000.00") - Decimal(total)

    @pytest.mark.asyncio
    async def test_no_stakes(self, db, company, chart, today):
        with pytest.raises(ValidationError):
            await TransactionStrategies(db).profit_distribution(company.id, 100, today, "Profit")


class TestAssetProtection:
    """Investor asset protection"""

    @pytest.mark.asyncio
    async def test_split_by_equity_balance(self, db, company, chart, today):
        alice = await invest(db, company.id, chart["bank"].id, today, "Alice", "3000", "30")
        bob = await invest(db, company.id, chart["bank"].id, today, "Bob", "1000", "60")

        result = await TransactionStrategies(db).investor_asset_protection(
            company.id, Decimal("400"), today, "Reserve", asset_account_id=chart["bank"].id
        )

        portions = {p["investor_name"]: p["protection_amount"] for p in result.details["protection_per_account"]}
        # Weighted by balance (3000 vs 1000), not by ownership percentage
        assert portions == {"Alice": Decimal("300.00"), "Bob": Decimal("100.00")}
        assert await balance(db, company.id, alice.details["equity_account_id"]) == Decimal("2700.00")
        assert await balance(db, company.id, bob.details["equity_account_id"]) == Decimal("900.00")
        assert await balance(db, company.id, chart["bank"].id) == Decimal("3600.00")

    @pytest.mark.asyncio
    async def test_no_investors(self, db, company, chart, today):
        with pytest.raises(ValidationError):
            await TransactionStrategies(db).investor_asset_protection(company.id, 100, today, "Reserve")


class TestScenarios:
    """End-to-end examples"""

    @pytest.mark.asyncio
    async def test_expense_opening_balance_is_negative(self, db, company):
        rent = await AccountRegistry(db).create_account(company.id, "Rent", AccountType.EXPENSE, 500)
        assert Decimal(rent.current_balance) == Decimal("-500.00")

    @pytest.mark.asyncio
    async def test_liability_with_alias_type(self, db, company, today):
        result = await TransactionStrategies(db).create_liability(
            company.id, "Truck Loan", "tractor", Decimal("10000"), today, "Tractor financing"
        )

        assert result.details["liability_type"] == "equipment"
        assert result.details["liability_account_name"] == "Truck Loan - Equipment"
        assert result.details["asset_account_name"] == "Equipment - Truck Loan"

        lines = {line.account_id: line for line in result.transaction.lines}
        asset_line = lines[result.details["asset_account_id"]]
        liability_line = lines[result.details["liability_account_id"]]
        assert asset_line.debit_amount == Decimal("10000.00")
        assert liability_line.credit_amount == Decimal("10000.00")

        assert await balance(db, company.id, result.details["asset_account_id"]) == Decimal("10000.00")
        assert await balance(db, company.id, result.details["liability_account_id"]) == Decimal("10000.00")

    @pytest.mark.asyncio
    async def test_micro_transaction_moves_expense_toward_zero(self, db, company, today):
        registry = AccountRegistry(db)
        cash = await registry.create_account(company.id, "Cash", AccountType.ASSET, 1000)
        fuel = await registry.create_account(company.id, "Fuel", AccountType.EXPENSE, 200)

        await TransactionStrategies(db).micro_transaction(company.id, cash.id, fuel.id, 50, today, "Diesel")

        assert await balance(db, company.id, cash.id) == Decimal("950.00")
        assert await balance(db, company.id, fuel.id) == Decimal("-150.00")

    @pytest.mark.asyncio
    async def test_profit_split_sixty_forty(self, db, company, chart, today):
        alice = await invest(db, company.id, chart["bank"].id, today, "Alice", "6000", "60")
        bob = await invest(db, company.id, chart["bank"].id, today, "Bob", "4000", "40")

        result = await TransactionStrategies(db).profit_distribution(
            company.id, Decimal("1000"), today, "Annual profit"
        )

        amounts = {d["investor_name"]: d["distribution_amount"] for d in result.details["distributions"]}
        assert amounts == {"Alice": Decimal("600.00"), "Bob": Decimal("400.00")}
        assert await balance(db, company.id, alice.details["equity_account_id"]) == Decimal("6600.00")
        assert await balance(db, company.id, bob.details["equity_account_id"]) == Decimal("4400.00")

    @pytest.mark.asyncio
    async def test_delete_reverses_asset_debit(self, db, company, chart, today):
        result = await TransactionStrategies(db).simple_entry(
            company.id, chart["cash"].id, 200, "debit", today, "Deposit"
        )
        assert await balance(db, company.id, chart["cash"].id) == Decimal("10200.00")

        engine = LedgerEngine(db)
        await engine.reverse_entry(company.id, result.transaction.id)

        assert await balance(db, company.id, chart["cash"].id) == Decimal("10000.00")
        with pytest.raises(NotFound):
            await engine.get_entry(company.id, result.transaction.id)

    @pytest.mark.asyncio
    async def test_investor_exit_pays_buyout_not_stake(self, db, company, chart, today):
        result = await invest(db, company.id, chart["bank"].id, today, "Alice", "5000", "50")
        stake_id = result.details["equity_account_id"]
        assert await balance(db, company.id, chart["bank"].id) == Decimal("5000.00")

        await TransactionStrategies(db).investor_exit(
            company.id, "Alice", Decimal("4000"), today, "Alice exits", asset_account_id=chart["bank"].id
        )

        stake = await AccountRegistry(db).get_account(company.id, stake_id)
        assert Decimal(stake.current_balance) == Decimal("0.00")
        assert stake.is_active is False
        assert stake.ownership_percentage is None
        assert await balance(db, company.id, chart["bank"].id) == Decimal("1000.00")

        retained = await AccountRegistry(db).find_by_name(
            company.id, settings.RETAINED_EARNINGS_ACCOUNT_NAME, AccountType.EQUITY
        )
        assert await balance(db, company.id, retained.id) == Decimal("1000.00")
