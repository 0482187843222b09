"""Shared schema pieces: response envelope and amount checks"""
from pydantic import BaseModel
from decimal import Decimal
from typing import Any, Optional


def check_amount(v: Optional[Decimal], positive: bool = True) -> Optional[Decimal]:
    if v is None:
        return v
    if positive and v <= 0:
        raise ValueError('Amount must be greater than 0')
    # Ensure max 2 decimal places
    if v.as_tuple().exponent < -2:
        raise ValueError('Amount cannot have more than 2 decimal places')
    return v


class ApiResponse(BaseModel):
    """Success envelope returned by every endpoint"""
    success: bool = True
    message: str
    data: Optional[Any] = None
