"""
Amortization of expense schedules.

``monthly_amount`` maps an expense schedule and a target month to the amount
due in that month. It is pure and does not round, except for one-time
installments whose per-installment amount is defined in cents. Callers round
once at aggregation time so fractions such as ``amount / 12`` do not compound.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional, Protocol

from budget.core.money import ZERO, round_money, to_decimal
from budget.core.period import Period
from budget.expense.models import (
    ExpenseCategory,
    ExpenseFrequency,
    InstallmentFrequency,
    YearlyPaymentStrategy,
)

STEP_MONTHS = {
    InstallmentFrequency.MONTHLY: 1,
    InstallmentFrequency.QUARTERLY: 3,
    InstallmentFrequency.SEMI_ANNUAL: 6,
}

INSTALLMENTS_PER_YEAR = {
    InstallmentFrequency.MONTHLY: 12,
    InstallmentFrequency.QUARTERLY: 4,
    InstallmentFrequency.SEMI_ANNUAL: 2,
}


class ExpenseSchedule(Protocol):
    amount: Any
    category: ExpenseCategory
    frequency: Optional[ExpenseFrequency]
    yearly_payment_strategy: Optional[YearlyPaymentStrategy]
    installment_frequency: Optional[InstallmentFrequency]
    installment_count: Optional[int]
    payment_month: Optional[int]
    month: Optional[int]
    year: Optional[int]
    created_at: datetime


def step_months(frequency: Optional[InstallmentFrequency]) -> int:
    return STEP_MONTHS.get(frequency, 1)


def is_installment_month(month: int, anchor_month: int, step: int) -> bool:
    """E.g. anchor 2 with step 3 gives Feb, May, Aug, Nov."""
    return (month - anchor_month) % step == 0


def one_time_installment_amount(expense: ExpenseSchedule, period: Period) -> Decimal:
    """Per-installment amount if ``period`` is one of the installment dates, else 0."""
    count = expense.installment_count
    step = step_months(expense.installment_frequency)
    start = Period(year=expense.year, month=expense.month)

    diff = period.index - start.index
    if diff < 0 or diff % step != 0 or diff // step >= count:
        return ZERO
    return round_money(to_decimal(expense.amount) / count)


def monthly_amount(expense: ExpenseSchedule, period: Period) -> Decimal:
    """Amount of ``expense`` due in ``period``; never negative."""
    amount = to_decimal(expense.amount)

    if expense.category == ExpenseCategory.ONE_TIME:
        if (
            expense.yearly_payment_strategy == YearlyPaymentStrategy.INSTALLMENTS
            and expense.installment_count
            and expense.installment_frequency
        ):
            return one_time_installment_amount(expense, period)
        if expense.month == period.month and expense.year == period.year:
            return amount
        return ZERO

    if expense.frequency == ExpenseFrequency.YEARLY:
        if expense.yearly_payment_strategy == YearlyPaymentStrategy.FULL:
            return amount if expense.payment_month == period.month else ZERO

        if expense.yearly_payment_strategy == YearlyPaymentStrategy.INSTALLMENTS:
            frequency = expense.installment_frequency
            if frequency not in (InstallmentFrequency.QUARTERLY, InstallmentFrequency.SEMI_ANNUAL):
                return amount / 12
            # Cadence is anchored to the month the expense was created in
            anchor = expense.created_at.month
            if is_installment_month(period.month, anchor, STEP_MONTHS[frequency]):
                return amount / INSTALLMENTS_PER_YEAR[frequency]
            return ZERO

        return amount / 12

    return amount


SCHEDULE_FIELDS = (
    "frequency",
    "yearly_payment_strategy",
    "installment_frequency",
    "installment_count",
    "payment_month",
    "month",
    "year",
)


def relevant_schedule_fields(category, frequency, strategy) -> set:
    """Schedule fields that the (category, frequency, strategy) shape reads."""
    if category == ExpenseCategory.ONE_TIME:
        if strategy == YearlyPaymentStrategy.INSTALLMENTS:
            return {"yearly_payment_strategy", "installment_frequency", "installment_count", "month", "year"}
        return {"yearly_payment_strategy", "month", "year"}
    if frequency == ExpenseFrequency.YEARLY:
        if strategy == YearlyPaymentStrategy.FULL:
            return {"frequency", "yearly_payment_strategy", "payment_month"}
        if strategy == YearlyPaymentStrategy.INSTALLMENTS:
            return {"frequency", "yearly_payment_strategy", "installment_frequency"}
        return {"frequency"}
    return {"frequency"}


def normalize_schedule(values: Dict[str, Any]) -> Dict[str, Any]:
    """Return ``values`` with schedule fields outside the active shape set to None."""
    keep = relevant_schedule_fields(
        values.get("category"),
        values.get("frequency"),
        values.get("yearly_payment_strategy"),
    )
    normalized = dict(values)
    for field in SCHEDULE_FIELDS:
        if field not in keep:
            normalized[field] = None
    return normalized
