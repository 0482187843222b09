from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, and_
from sqlalchemy.exc import IntegrityError
from datetime import date
from typing import List
import logging

from ledger.models import AccountingPeriod
from ledger.services.errors import InvalidState, NotFound

logger = logging.getLogger(__name__)


class PeriodResolver:
    """
    Period Resolver - maps a transaction date to its accounting period.

    Posting date determines the period; when no period covers the date a
    same-day period is created on the fly.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _find_covering(self, company_id: int, on: date):
        stmt = select(AccountingPeriod).where(
            and_(
                AccountingPeriod.company_id == company_id,
                AccountingPeriod.start_date <= on,
                AccountingPeriod.end_date >= on,
            )
        ).order_by(AccountingPeriod.start_date.desc(), AccountingPeriod.id).limit(1)

        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def resolve(self, company_id: int, on: date) -> AccountingPeriod:
        period = await self._find_covering(company_id, on)
        if period:
            return period

        period = AccountingPeriod(
            company_id=company_id,
            period_name=on.strftime("%B %Y"),
            start_date=on,
            end_date=on,
            is_closed=False,
        )
        try:
            async with self.db.begin_nested():
                self.db.add(period)
        except IntegrityError:
            # Lost the check-then-insert race: the concurrent writer's row wins
            logger.info(f"Period for company {company_id} on {on} created concurrently, re-reading")
            period = await self._find_covering(company_id, on)
            if period is None:
                raise
            return period

        logger.info(f"Created period {period.id} for company {company_id} on {on}")
        return period

    async def resolve_period(self, company_id: int, on: date) -> int:
        """Id of the period covering the date, creating one if needed"""
        period = await self.resolve(company_id, on)
        return period.id

    async def resolve_open(self, company_id: int, on: date) -> AccountingPeriod:
        """Covering period, refusing closed ones"""
        period = await self.resolve(company_id, on)
        if period.is_closed:
            raise InvalidState(f"Accounting period '{period.period_name}' is closed for {on.isoformat()}")
        return period

    async def list_periods(self, company_id: int) -> List[AccountingPeriod]:
        stmt = select(AccountingPeriod).where(
            AccountingPeriod.company_id == company_id
        ).order_by(AccountingPeriod.start_date, AccountingPeriod.id)

        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def close_period(self, company_id: int, period_id: int) -> AccountingPeriod:
        stmt = select(AccountingPeriod).where(
            and_(
                AccountingPeriod.id == period_id,
                AccountingPeriod.company_id == company_id,
            )
        ).with_for_update()

        result = await self.db.execute(stmt)
        period = result.scalar_one_or_none()

        if not period:
            raise NotFound(f"Accounting period {period_id} not found")
        if period.is_closed:
            raise InvalidState(f"Accounting period '{period.period_name}' is already closed")

        period.is_closed = True
        await self.db.flush()

        logger.info(f"Closed period {period_id} for company {company_id}")
        return period
