"""Pydantic schemas for dashboard read models."""

from decimal import Decimal
from typing import List

from pydantic import BaseModel

from budget.settlement.schemas import SettlementResult


class MemberIncome(BaseModel):
    user_id: str
    first_name: str
    last_name: str = ""
    default_salary: Decimal
    current_salary: Decimal


class MemberExpenseSummary(BaseModel):
    user_id: str
    first_name: str
    last_name: str = ""
    personal_expenses_total: Decimal
    remaining_expenses: Decimal


class ExpenseSummary(BaseModel):
    """Expense totals of one period; ``remaining`` leaves out PAID expenses."""
    personal_expenses: List[MemberExpenseSummary]
    shared_expenses_total: Decimal
    remaining_shared_expenses: Decimal
    total_household_expenses: Decimal
    remaining_household_expenses: Decimal


class MemberSavings(BaseModel):
    user_id: str
    first_name: str
    last_name: str = ""
    personal_savings: Decimal
    shared_savings: Decimal
    remaining_budget: Decimal


class SavingsSummary(BaseModel):
    members: List[MemberSavings]
    total_personal_savings: Decimal
    total_shared_savings: Decimal
    total_savings: Decimal
    total_remaining_budget: Decimal


class Dashboard(BaseModel):
    """Schema for the household overview of one period."""
    income: List[MemberIncome]
    total_default_income: Decimal
    total_current_income: Decimal
    expenses: ExpenseSummary
    savings: SavingsSummary
    settlement: SettlementResult
    pending_approvals_count: int
    month: int
    year: int


class PeriodSnapshot(BaseModel):
    """Income, expense and savings figures of one period."""
    income: List[MemberIncome]
    total_default_income: Decimal
    total_current_income: Decimal
    expenses: ExpenseSummary
    savings: SavingsSummary


class YearlyAverage(PeriodSnapshot):
    """
    Per-metric averages over a trailing window.

    Each figure is averaged only over the months where it was non-zero.
    """
    months: int
    start_month: int
    start_year: int
    end_month: int
    end_year: int


class SavingsHistoryItem(BaseModel):
    month: int
    year: int
    personal_savings: Decimal
    shared_savings: Decimal
