"""Accounting Period Schemas"""
from pydantic import BaseModel
from datetime import date, datetime


class PeriodResponse(BaseModel):
    id: int
    company_id: int
    period_name: str
    start_date: date
    end_date: date
    is_closed: bool
    created_at: datetime

    class Config:
        from_attributes = True
