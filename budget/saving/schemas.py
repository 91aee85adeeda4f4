"""Pydantic schemas for savings."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from budget.core.schemas import ORMModel


class SavingChange(BaseModel):
    """Amount to add or withdraw; month and year default to the current period."""
    amount: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    month: Optional[int] = Field(default=None, ge=1, le=12)
    year: Optional[int] = None
    reduces_from_salary: Optional[bool] = None


class Saving(ORMModel):
    """Schema for saving response."""
    id: str
    user_id: str
    household_id: str
    amount: Decimal
    month: int
    year: int
    is_shared: bool
    reduces_from_salary: bool
    created_at: datetime
    updated_at: datetime
