"""Pydantic schemas for settlements."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel

from budget.core.schemas import ORMModel


class SettlementResult(BaseModel):
    """Who owes whom for one period, phrased for the requesting member."""
    amount: Decimal
    owed_by_user_id: Optional[str] = None
    owed_by_first_name: Optional[str] = None
    owed_to_user_id: Optional[str] = None
    owed_to_first_name: Optional[str] = None
    message: str
    is_settled: bool
    month: int
    year: int


class SettlementRecord(ORMModel):
    """Schema for a stored settlement."""
    id: str
    household_id: str
    month: int
    year: int
    amount: Decimal
    paid_by_user_id: str
    paid_to_user_id: str
    paid_at: datetime
