from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from ledger.database import get_db, atomic
from ledger.schemas import ApiResponse, PeriodResponse
from ledger.services.period_resolver import PeriodResolver

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/periods", tags=["Accounting Periods"])


@router.get("", response_model=ApiResponse)
async def list_periods(company_id: int = Query(...), db: AsyncSession = Depends(get_db)):
    periods = await PeriodResolver(db).list_periods(company_id)
    return ApiResponse(
        message="Accounting periods retrieved successfully",
        data=[PeriodResponse.model_validate(p) for p in periods],
    )


@router.post("/{period_id}/close", response_model=ApiResponse)
async def close_period(
    period_id: int,
    company_id: int = Query(...),
    db: AsyncSession = Depends(get_db),
):
    """Close a period; postings dated inside it are refused afterwards"""
    resolver = PeriodResolver(db)
    async with atomic(db):
        period = await resolver.close_period(company_id, period_id)

    return ApiResponse(
        message="Accounting period closed",
        data=PeriodResponse.model_validate(period),
    )
