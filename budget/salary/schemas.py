"""Pydantic schemas for salary data validation."""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from budget.core.schemas import ORMModel


class SalaryUpsert(BaseModel):
    default_amount: Decimal = Field(ge=0, max_digits=12, decimal_places=2)
    current_amount: Decimal = Field(ge=0, max_digits=12, decimal_places=2)
    month: Optional[int] = Field(default=None, ge=1, le=12)
    year: Optional[int] = None


class Salary(ORMModel):
    """Schema for salary response."""
    id: str
    user_id: str
    household_id: str
    default_amount: Decimal
    current_amount: Decimal
    month: int
    year: int
