"""Pydantic schemas for expense data validation."""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, model_validator

from budget.core.schemas import ORMModel
from budget.expense.amortization import normalize_schedule
from budget.expense.models import (
    ExpenseCategory,
    ExpenseFrequency,
    ExpenseType,
    InstallmentFrequency,
    PaymentStatus,
    YearlyPaymentStrategy,
)

# Fields an expense can be created with or changed through an update
EXPENSE_FIELDS = (
    "name",
    "amount",
    "category",
    "frequency",
    "yearly_payment_strategy",
    "installment_frequency",
    "installment_count",
    "payment_month",
    "month",
    "year",
)

# Columns an update may change but never clear
REQUIRED_FIELDS = ("name", "amount", "category")


def check_schedule(values: Dict[str, Any]) -> None:
    """Raise ValueError if the active schedule shape is missing a field it needs."""
    category = values.get("category")
    strategy = values.get("yearly_payment_strategy")
    if category == ExpenseCategory.ONE_TIME:
        if values.get("month") is None or values.get("year") is None:
            raise ValueError("One-time expenses need a month and a year")
        if strategy == YearlyPaymentStrategy.INSTALLMENTS and (
            not values.get("installment_count") or values.get("installment_frequency") is None
        ):
            raise ValueError("One-time installments need an installment count and frequency")
        return
    if values.get("frequency") is None:
        raise ValueError("Recurring expenses need a frequency")
    if (
        values.get("frequency") == ExpenseFrequency.YEARLY
        and strategy == YearlyPaymentStrategy.FULL
        and values.get("payment_month") is None
    ):
        raise ValueError("Yearly full payments need a payment month")


class ExpenseBase(BaseModel):
    """Base expense schema."""
    name: str = Field(min_length=1, max_length=100)
    amount: Decimal = Field(ge=0, max_digits=12, decimal_places=2)
    category: ExpenseCategory
    frequency: Optional[ExpenseFrequency] = None
    yearly_payment_strategy: Optional[YearlyPaymentStrategy] = None
    installment_frequency: Optional[InstallmentFrequency] = None
    installment_count: Optional[int] = Field(default=None, ge=1)
    payment_month: Optional[int] = Field(default=None, ge=1, le=12)
    month: Optional[int] = Field(default=None, ge=1, le=12)
    year: Optional[int] = None


class ExpenseCreate(ExpenseBase):
    """Schema for expense creation. Irrelevant schedule fields are cleared."""
    paid_by_user_id: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def normalize(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("category") is not None:
            check_schedule(data)
            data = normalize_schedule(data)
        return data


class ExpenseUpdate(BaseModel):
    """Schema for expense update; only fields that were sent are applied."""
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    amount: Optional[Decimal] = Field(default=None, ge=0, max_digits=12, decimal_places=2)
    category: Optional[ExpenseCategory] = None
    frequency: Optional[ExpenseFrequency] = None
    yearly_payment_strategy: Optional[YearlyPaymentStrategy] = None
    installment_frequency: Optional[InstallmentFrequency] = None
    installment_count: Optional[int] = Field(default=None, ge=1)
    payment_month: Optional[int] = Field(default=None, ge=1, le=12)
    month: Optional[int] = Field(default=None, ge=1, le=12)
    year: Optional[int] = None
    paid_by_user_id: Optional[str] = None

    @model_validator(mode="after")
    def reject_cleared_required(self) -> "ExpenseUpdate":
        cleared = [f for f in REQUIRED_FIELDS if f in self.model_fields_set and getattr(self, f) is None]
        if cleared:
            raise ValueError(f"{', '.join(cleared)} cannot be empty")
        return self

    def changes(self) -> Dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class Expense(ORMModel):
    """Schema for expense response."""
    id: str
    household_id: str
    created_by_id: str
    type: ExpenseType
    name: str
    amount: Decimal
    category: ExpenseCategory
    frequency: Optional[ExpenseFrequency] = None
    yearly_payment_strategy: Optional[YearlyPaymentStrategy] = None
    installment_frequency: Optional[InstallmentFrequency] = None
    installment_count: Optional[int] = None
    payment_month: Optional[int] = None
    month: Optional[int] = None
    year: Optional[int] = None
    paid_by_user_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class PaymentStatusRecord(ORMModel):
    """Schema for a payment-status marker."""
    id: str
    expense_id: str
    month: int
    year: int
    status: PaymentStatus
    paid_at: Optional[datetime] = None
    paid_by_id: str


class RecurringOverrideRecord(ORMModel):
    id: str
    expense_id: str
    month: int
    year: int
    skipped: bool
