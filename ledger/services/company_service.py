from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from typing import List, Optional
import logging

from ledger.models import Company
from ledger.services.errors import NotFound, ValidationError

logger = logging.getLogger(__name__)


class CompanyService:
    """Company Service - owner scope checks for every mutating call"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_company(
        self,
        name: str,
        description: Optional[str] = None,
        currency: str = "USD",
    ) -> Company:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Company name is required")

        company = Company(
            name=name,
            description=description,
            currency=(currency or "USD").upper(),
            is_active=True,
        )
        self.db.add(company)
        await self.db.flush()

        logger.info(f"Created company {company.id} '{company.name}'")
        return company

    async def get_company(self, company_id: int, active_only: bool = True) -> Company:
        stmt = select(Company).where(Company.id == company_id)
        if active_only:
            stmt = stmt.where(Company.is_active == True)

        result = await self.db.execute(stmt)
        company = result.scalar_one_or_none()

        if not company:
            raise NotFound(f"Company {company_id} not found")

        return company

    async def list_companies(self, include_inactive: bool = False) -> List[Company]:
        stmt = select(Company).order_by(Company.name)
        if not include_inactive:
            stmt = stmt.where(Company.is_active == True)

        result = await self.db.execute(stmt)
        return list(result.scalars().all())
