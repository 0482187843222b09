from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from datetime import date
from typing import Optional, Iterable, List
import logging

from ledger.database import get_db, atomic
from ledger.schemas import (
    ApiResponse,
    AccountBalance,
    LineRequest,
    SimpleTransactionCreate,
    JournalEntryCreate,
    TransactionUpdate,
    VoidRequest,
    LiabilityCreate,
    MicroTransactionCreate,
    ExternalInvestmentCreate,
    InvestorExitCreate,
    ProfitDistributionCreate,
    AssetProtectionCreate,
    TransactionResponse,
)
from ledger.models import Transaction
from ledger.services.account_registry import AccountRegistry
from ledger.services.ledger_engine import LedgerEngine, Leg, legs_of
from ledger.services.strategies import TransactionStrategies, PostingResult

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/transactions", tags=["Transactions"])


def _legs(lines: List[LineRequest]) -> List[Leg]:
    return [
        Leg(line.account_id, line.debit_amount, line.credit_amount, line.description)
        for line in lines
    ]


async def _balances(db: AsyncSession, company_id: int, account_ids: Iterable[int]) -> List[AccountBalance]:
    accounts = await AccountRegistry(db).get_many(company_id, account_ids)
    return [AccountBalance.model_validate(a) for a in accounts]


async def _posting_data(db: AsyncSession, company_id: int, transaction: Transaction, account_ids) -> dict:
    return {
        "transaction": TransactionResponse.model_validate(transaction),
        "balances": await _balances(db, company_id, account_ids),
    }


async def _strategy_data(db: AsyncSession, company_id: int, result: PostingResult) -> dict:
    data = await _posting_data(db, company_id, result.transaction, result.account_ids)
    data.update(result.details)
    return data


# ----------------------------------------------------------------------
# Generic entries
# ----------------------------------------------------------------------

@router.post("", response_model=ApiResponse, status_code=status.HTTP_201_CREATED)
async def create_transaction(request: SimpleTransactionCreate, db: AsyncSession = Depends(get_db)):
    """
    Debit or credit a single account

    The balancing leg goes to contra_account_id, or to the company's
    suspense account when none is given.

    Example:
    ```
    POST /api/v1/transactions
    Body: {
        "company_id": 1,
        "account_id": 3,
        "amount": 250.00,
        "type": "debit",
        "description": "Feed purchase",
        "transaction_date": "2024-03-15"
    }
    ```
    """
    strategies = TransactionStrategies(db)
    async with atomic(db):
        result = await strategies.simple_entry(
            company_id=request.company_id,
            account_id=request.account_id,
            amount=request.amount,
            side=request.type,
            transaction_date=request.transaction_date,
            description=request.description,
            contra_account_id=request.contra_account_id,
        )
        data = await _strategy_data(db, request.company_id, result)

    return ApiResponse(message="Transaction created successfully", data=data)


@router.post("/journal", response_model=ApiResponse, status_code=status.HTTP_201_CREATED)
async def create_journal_entry(request: JournalEntryCreate, db: AsyncSession = Depends(get_db)):
    """
    Record a balanced multi-line journal entry

    With status "draft" the entry is stored without touching balances and
    can be posted later through /transactions/{id}/post.
    """
    engine = LedgerEngine(db)
    legs = _legs(request.lines)
    async with atomic(db):
        if request.status == "draft":
            transaction = await engine.create_draft(
                request.company_id,
                request.transaction_date,
                request.description,
                legs,
                external_source=request.external_source,
            )
        else:
            transaction = await engine.post_entry(
                request.company_id,
                request.transaction_date,
                request.description,
                legs,
                external_source=request.external_source,
            )
        data = await _posting_data(db, request.company_id, transaction, [leg.account_id for leg in legs])

    return ApiResponse(message="Journal entry recorded successfully", data=data)


@router.get("", response_model=ApiResponse)
async def list_transactions(
    company_id: int = Query(...),
    status_filter: Optional[str] = Query(None, alias="status"),
    from_date: Optional[date] = Query(None),
    to_date: Optional[date] = Query(None),
    account_id: Optional[int] = Query(None),
    search: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    """List transactions, newest first"""
    transactions = await LedgerEngine(db).list_entries(
        company_id,
        status=status_filter,
        from_date=from_date,
        to_date=to_date,
        account_id=account_id,
        search=search,
        limit=limit,
        offset=offset,
    )
    return ApiResponse(
        message="Transactions retrieved successfully",
        data=[TransactionResponse.model_validate(t) for t in transactions],
    )


@router.get("/{transaction_id}", response_model=ApiResponse)
async def get_transaction(
    transaction_id: int,
    company_id: int = Query(...),
    db: AsyncSession = Depends(get_db),
):
    transaction = await LedgerEngine(db).get_entry(company_id, transaction_id)
    return ApiResponse(
        message="Transaction retrieved successfully",
        data=TransactionResponse.model_validate(transaction),
    )


@router.put("/{transaction_id}", response_model=ApiResponse)
async def update_transaction(
    transaction_id: int,
    request: TransactionUpdate,
    db: AsyncSession = Depends(get_db),
):
    """
    Update a transaction

    Drafts are edited in place. A posted transaction is voided and a
    corrected replacement is posted; the response carries the replacement.
    """
    engine = LedgerEngine(db)
    legs = _legs(request.lines) if request.lines is not None else None
    async with atomic(db):
        original = await engine.get_entry(request.company_id, transaction_id)
        account_ids = {leg.account_id for leg in legs_of(original)}

        transaction = await engine.update_entry(
            request.company_id,
            transaction_id,
            description=request.description,
            transaction_date=request.transaction_date,
            external_source=request.external_source,
            legs=legs,
            status=request.status,
        )
        account_ids.update(leg.account_id for leg in legs_of(transaction))
        data = await _posting_data(db, request.company_id, transaction, account_ids)

    return ApiResponse(message="Transaction updated successfully", data=data)


@router.delete("/{transaction_id}", response_model=ApiResponse)
async def delete_transaction(
    transaction_id: int,
    company_id: int = Query(...),
    db: AsyncSession = Depends(get_db),
):
    """Delete a transaction, reversing its balance effect if it was posted"""
    engine = LedgerEngine(db)
    async with atomic(db):
        touched = await engine.reverse_entry(company_id, transaction_id)
        balances = [AccountBalance.model_validate(a) for a in touched]

    return ApiResponse(
        message="Transaction deleted successfully",
        data={"id": transaction_id, "balances": balances},
    )


@router.post("/{transaction_id}/post", response_model=ApiResponse)
async def post_transaction(
    transaction_id: int,
    company_id: int = Query(...),
    db: AsyncSession = Depends(get_db),
):
    engine = LedgerEngine(db)
    async with atomic(db):
        transaction = await engine.post_draft(company_id, transaction_id)
        data = await _posting_data(
            db, company_id, transaction, [leg.account_id for leg in legs_of(transaction)]
        )

    return ApiResponse(message="Transaction posted successfully", data=data)


@router.post("/{transaction_id}/void", response_model=ApiResponse)
async def void_transaction(
    transaction_id: int,
    request: VoidRequest,
    db: AsyncSession = Depends(get_db),
):
    """Void a posted transaction: balances are reversed, the record is kept"""
    engine = LedgerEngine(db)
    async with atomic(db):
        transaction = await engine.void_entry(request.company_id, transaction_id, request.reason)
        data = await _posting_data(
            db, request.company_id, transaction, [leg.account_id for leg in legs_of(transaction)]
        )

    return ApiResponse(message="Transaction voided successfully", data=data)


# ----------------------------------------------------------------------
# Domain transactions
# ----------------------------------------------------------------------

@router.post("/liability", response_model=ApiResponse, status_code=status.HTTP_201_CREATED)
async def create_liability(request: LiabilityCreate, db: AsyncSession = Depends(get_db)):
    """
    Record a liability and the asset it financed

    Example:
    ```
    POST /api/v1/transactions/liability
    Body: {
        "company_id": 1,
        "liability_name": "John Deere 5075E",
        "liability_type": "tractor",
        "amount": 45000.00,
        "interest_rate": 4.5,
        "description": "Tractor financing"
    }
    ```
    """
    strategies = TransactionStrategies(db)
    async with atomic(db):
        result = await strategies.create_liability(
            company_id=request.company_id,
            liability_name=request.liability_name,
            liability_type=request.liability_type,
            amount=request.amount,
            transaction_date=request.transaction_date,
            description=request.description,
            interest_rate=request.interest_rate,
        )
        data = await _strategy_data(db, request.company_id, result)

    return ApiResponse(message="Liability created successfully", data=data)


@router.post("/micro-transaction", response_model=ApiResponse, status_code=status.HTTP_201_CREATED)
async def create_micro_transaction(request: MicroTransactionCreate, db: AsyncSession = Depends(get_db)):
    strategies = TransactionStrategies(db)
    async with atomic(db):
        result = await strategies.micro_transaction(
            company_id=request.company_id,
            from_account_id=request.from_account_id,
            to_account_id=request.to_account_id,
            amount=request.amount,
            transaction_date=request.transaction_date,
            description=request.description,
        )
        data = await _strategy_data(db, request.company_id, result)

    return ApiResponse(message="Micro-transaction created successfully", data=data)


@router.post("/external-investment", response_model=ApiResponse, status_code=status.HTTP_201_CREATED)
async def create_external_investment(request: ExternalInvestmentCreate, db: AsyncSession = Depends(get_db)):
    """Investor buys into the company: asset debited, investor equity stake credited"""
    strategies = TransactionStrategies(db)
    async with atomic(db):
        result = await strategies.external_investment(
            company_id=request.company_id,
            investor_name=request.investor_name,
            amount=request.amount,
            ownership_percentage=request.ownership_percentage,
            target_asset_id=request.target_asset_id,
            transaction_date=request.transaction_date,
            description=request.description,
        )
        data = await _strategy_data(db, request.company_id, result)

    return ApiResponse(message="External investment recorded successfully", data=data)


@router.post("/investor-exit", response_model=ApiResponse, status_code=status.HTTP_201_CREATED)
async def create_investor_exit(request: InvestorExitCreate, db: AsyncSession = Depends(get_db)):
    """Buy out an investor; the stake account is closed"""
    strategies = TransactionStrategies(db)
    async with atomic(db):
        result = await strategies.investor_exit(
            company_id=request.company_id,
            investor_name=request.investor_name,
            buyout_amount=request.buyout_amount,
            transaction_date=request.transaction_date,
            description=request.description,
            asset_account_id=request.asset_account_id,
        )
        data = await _strategy_data(db, request.company_id, result)

    return ApiResponse(message="Investor exit processed successfully", data=data)


@router.post("/profit-distribution", response_model=ApiResponse, status_code=status.HTTP_201_CREATED)
async def create_profit_distribution(request: ProfitDistributionCreate, db: AsyncSession = Depends(get_db)):
    """Split a profit across equity stakes by ownership percentage"""
    strategies = TransactionStrategies(db)
    async with atomic(db):
        result = await strategies.profit_distribution(
            company_id=request.company_id,
            total_profit=request.total_profit,
            transaction_date=request.transaction_date,
            description=request.description,
            source_account_id=request.source_account_id,
        )
        data = await _strategy_data(db, request.company_id, result)

    return ApiResponse(message="Profit distributed successfully", data=data)


@router.post("/investor-asset-protection", response_model=ApiResponse, status_code=status.HTTP_201_CREATED)
async def create_investor_asset_protection(request: AssetProtectionCreate, db: AsyncSession = Depends(get_db)):
    """Set company assets aside for investors in proportion to their equity"""
    strategies = TransactionStrategies(db)
    async with atomic(db):
        result = await strategies.investor_asset_protection(
            company_id=request.company_id,
            amount=request.amount,
            transaction_date=request.transaction_date,
            description=request.description,
            asset_account_id=request.asset_account_id,
        )
        data = await _strategy_data(db, request.company_id, result)

    return ApiResponse(message="Investor asset protection recorded successfully", data=data)
