from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from ledger.database import get_db, atomic
from ledger.schemas import ApiResponse, CompanyCreate, CompanyResponse
from ledger.services.company_service import CompanyService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/companies", tags=["Companies"])


@router.post("", response_model=ApiResponse, status_code=status.HTTP_201_CREATED)
async def create_company(request: CompanyCreate, db: AsyncSession = Depends(get_db)):
    """
    Register a company

    Example:
    ```
    POST /api/v1/companies
    Body: {"name": "Green Acres Farm", "currency": "USD"}
    ```
    """
    service = CompanyService(db)
    async with atomic(db):
        company = await service.create_company(
            name=request.name,
            description=request.description,
            currency=request.currency,
        )

    return ApiResponse(
        message="Company created successfully",
        data=CompanyResponse.model_validate(company),
    )


@router.get("", response_model=ApiResponse)
async def list_companies(
    include_inactive: bool = Query(False),
    db: AsyncSession = Depends(get_db),
):
    companies = await CompanyService(db).list_companies(include_inactive=include_inactive)
    return ApiResponse(
        message="Companies retrieved successfully",
        data=[CompanyResponse.model_validate(c) for c in companies],
    )


@router.get("/{company_id}", response_model=ApiResponse)
async def get_company(company_id: int, db: AsyncSession = Depends(get_db)):
    company = await CompanyService(db).get_company(company_id, active_only=False)
    return ApiResponse(
        message="Company retrieved successfully",
        data=CompanyResponse.model_validate(company),
    )
