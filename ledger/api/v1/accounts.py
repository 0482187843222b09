from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
import logging

from ledger.database import get_db, atomic
from ledger.schemas import (
    ApiResponse,
    AccountCreate,
    AccountUpdate,
    AccountResponse,
    AccountTreeNode,
)
from ledger.services.account_registry import AccountRegistry

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/accounts", tags=["Accounts"])


def _tree_node(node: dict) -> AccountTreeNode:
    return AccountTreeNode(
        account=AccountResponse.model_validate(node["account"]),
        children=[_tree_node(child) for child in node["children"]],
    )


@router.post("", response_model=ApiResponse, status_code=status.HTTP_201_CREATED)
async def create_account(request: AccountCreate, db: AsyncSession = Depends(get_db)):
    """
    Create an account in a company's chart of accounts

    The account code is generated from the type when omitted (A001, L001, ...).
    A positive opening balance on an expense account is stored negative.

    Example:
    ```
    POST /api/v1/accounts
    Body: {
        "company_id": 1,
        "account_name": "Cash",
        "account_type": "asset",
        "opening_balance": 1000.00
    }
    ```
    """
    registry = AccountRegistry(db)
    async with atomic(db):
        account = await registry.create_account(
            company_id=request.company_id,
            name=request.account_name,
            account_type=request.account_type,
            opening_balance=request.opening_balance,
            description=request.description,
            investor_name=request.investor_name,
            ownership_percentage=request.ownership_percentage,
            is_contra=request.is_contra,
            parent_account_id=request.parent_account_id,
            account_code=request.account_code,
        )

    return ApiResponse(
        message="Account created successfully",
        data=AccountResponse.model_validate(account),
    )


@router.get("", response_model=ApiResponse)
async def list_accounts(
    company_id: int = Query(...),
    account_type: Optional[str] = Query(None),
    include_inactive: bool = Query(False),
    db: AsyncSession = Depends(get_db),
):
    accounts = await AccountRegistry(db).list_accounts(
        company_id, account_type=account_type, include_inactive=include_inactive
    )
    return ApiResponse(
        message="Accounts retrieved successfully",
        data=[AccountResponse.model_validate(a) for a in accounts],
    )


@router.get("/tree", response_model=ApiResponse)
async def account_tree(
    company_id: int = Query(...),
    include_inactive: bool = Query(False),
    db: AsyncSession = Depends(get_db),
):
    """Chart of accounts nested by parent account"""
    roots = await AccountRegistry(db).account_tree(company_id, include_inactive=include_inactive)
    return ApiResponse(
        message="Account tree retrieved successfully",
        data=[_tree_node(node) for node in roots],
    )


@router.get("/{account_id}", response_model=ApiResponse)
async def get_account(
    account_id: int,
    company_id: int = Query(...),
    db: AsyncSession = Depends(get_db),
):
    account = await AccountRegistry(db).get_account(company_id, account_id)
    return ApiResponse(
        message="Account retrieved successfully",
        data=AccountResponse.model_validate(account),
    )


@router.put("/{account_id}", response_model=ApiResponse)
async def update_account(
    account_id: int,
    request: AccountUpdate,
    company_id: int = Query(...),
    db: AsyncSession = Depends(get_db),
):
    """
    Update account fields

    Changing the type (or contra flag) of an account that already has
    transactions is refused.
    """
    registry = AccountRegistry(db)
    async with atomic(db):
        account = await registry.update_account(
            company_id, account_id, **request.model_dump(exclude_unset=True)
        )

    return ApiResponse(
        message="Account updated successfully",
        data=AccountResponse.model_validate(account),
    )


@router.delete("/{account_id}", response_model=ApiResponse)
async def delete_account(
    account_id: int,
    company_id: int = Query(...),
    db: AsyncSession = Depends(get_db),
):
    """Soft delete: the account is deactivated, never removed"""
    registry = AccountRegistry(db)
    async with atomic(db):
        account = await registry.soft_delete(company_id, account_id)

    return ApiResponse(
        message="Account deleted successfully",
        data={"id": account.id, "is_active": account.is_active},
    )
