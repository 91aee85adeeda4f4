"""
Household aggregation for one period.

Pure functions over rows already loaded by the caller. ``monthly_amount``
results are summed unrounded and every reported figure is rounded once,
to cents, here.
"""

from decimal import Decimal
from typing import Any, Iterable, List, Optional, Sequence, Set, TypeVar

from pydantic import BaseModel

from budget.core.money import ZERO, money_sum, round_money, to_decimal
from budget.core.period import Period
from budget.dashboard.schemas import (
    ExpenseSummary,
    MemberExpenseSummary,
    MemberIncome,
    MemberSavings,
    PeriodSnapshot,
    SavingsSummary,
)
from budget.expense.amortization import monthly_amount
from budget.expense.models import ExpenseType
from budget.household.schemas import MemberInfo

ModelT = TypeVar("ModelT", bound=BaseModel)


def income_summary(members: List[MemberInfo], salaries: Iterable[Any]) -> List[MemberIncome]:
    """Default and current salary per member; 0 without a salary row."""
    by_user = {s.user_id: s for s in salaries}
    income = []
    for member in members:
        salary = by_user.get(member.user_id)
        income.append(
            MemberIncome(
                user_id=member.user_id,
                first_name=member.first_name,
                last_name=member.last_name,
                default_salary=round_money(salary.default_amount if salary else ZERO),
                current_salary=round_money(salary.current_amount if salary else ZERO),
            )
        )
    return income


def expense_summary(
    members: List[MemberInfo],
    expenses: Iterable[Any],
    period: Period,
    paid_ids: Optional[Set[str]] = None,
    skipped_ids: Optional[Set[str]] = None,
) -> ExpenseSummary:
    paid_ids = paid_ids or set()
    skipped_ids = skipped_ids or set()
    counted = [e for e in expenses if e.id not in skipped_ids]

    def due(rows) -> Decimal:
        return money_sum(monthly_amount(e, period) for e in rows)

    personal = []
    for member in members:
        own = [e for e in counted if e.type == ExpenseType.PERSONAL and e.created_by_id == member.user_id]
        personal.append(
            MemberExpenseSummary(
                user_id=member.user_id,
                first_name=member.first_name,
                last_name=member.last_name,
                personal_expenses_total=round_money(due(own)),
                remaining_expenses=round_money(due(e for e in own if e.id not in paid_ids)),
            )
        )

    shared = [e for e in counted if e.type == ExpenseType.SHARED]
    shared_total = round_money(due(shared))
    shared_remaining = round_money(due(e for e in shared if e.id not in paid_ids))

    household_total = round_money(money_sum(p.personal_expenses_total for p in personal) + shared_total)
    household_remaining = round_money(money_sum(p.remaining_expenses for p in personal) + shared_remaining)

    return ExpenseSummary(
        personal_expenses=personal,
        shared_expenses_total=shared_total,
        remaining_shared_expenses=shared_remaining,
        total_household_expenses=household_total,
        remaining_household_expenses=household_remaining,
    )


def savings_summary(
    income: List[MemberIncome],
    expenses: ExpenseSummary,
    savings: Iterable[Any],
) -> SavingsSummary:
    """
    Savings per member and the budget left after expenses and savings.

    remaining = current salary - personal expenses - shared expenses / members
                - savings that reduce from salary
    """
    count = max(len(income), 1)
    shared_share = expenses.shared_expenses_total / count
    personal_totals = {p.user_id: p.personal_expenses_total for p in expenses.personal_expenses}
    records = {(s.user_id, bool(s.is_shared)): s for s in savings}

    members = []
    for member in income:
        personal_record = records.get((member.user_id, False))
        shared_record = records.get((member.user_id, True))
        personal_amount = to_decimal(personal_record.amount) if personal_record else ZERO
        shared_amount = to_decimal(shared_record.amount) if shared_record else ZERO

        deduction = ZERO
        for record, amount in ((personal_record, personal_amount), (shared_record, shared_amount)):
            if record is None or record.reduces_from_salary is not False:
                deduction += amount

        remaining = (
            member.current_salary
            - personal_totals.get(member.user_id, ZERO)
            - shared_share
            - deduction
        )
        members.append(
            MemberSavings(
                user_id=member.user_id,
                first_name=member.first_name,
                last_name=member.last_name,
                personal_savings=round_money(personal_amount),
                shared_savings=round_money(shared_amount),
                remaining_budget=round_money(remaining),
            )
        )

    total_personal = round_money(money_sum(m.personal_savings for m in members))
    total_shared = round_money(money_sum(m.shared_savings for m in members))
    return SavingsSummary(
        members=members,
        total_personal_savings=total_personal,
        total_shared_savings=total_shared,
        total_savings=round_money(total_personal + total_shared),
        total_remaining_budget=round_money(money_sum(m.remaining_budget for m in members)),
    )


def period_snapshot(
    members: List[MemberInfo],
    period: Period,
    expenses: Iterable[Any],
    salaries: Iterable[Any] = (),
    savings: Iterable[Any] = (),
    paid_ids: Optional[Set[str]] = None,
    skipped_ids: Optional[Set[str]] = None,
) -> PeriodSnapshot:
    income = income_summary(members, salaries)
    expense_totals = expense_summary(members, expenses, period, paid_ids, skipped_ids)
    return PeriodSnapshot(
        income=income,
        total_default_income=round_money(money_sum(m.default_salary for m in income)),
        total_current_income=round_money(money_sum(m.current_salary for m in income)),
        expenses=expense_totals,
        savings=savings_summary(income, expense_totals, savings),
    )


def average_nonzero(values: Iterable[Any]) -> Decimal:
    """Mean of the non-zero values, 0 if there are none."""
    nonzero = [to_decimal(v) for v in values if v]
    if not nonzero:
        return round_money(ZERO)
    return round_money(money_sum(nonzero) / len(nonzero))


def average_models(items: Sequence[ModelT]) -> ModelT:
    """
    Field-wise ``average_nonzero`` over models of the same shape.

    Nested models and lists of models are averaged element by element;
    other fields are taken from the first item.
    """
    first = items[0]
    values = {}
    for name in type(first).model_fields:
        column = [getattr(item, name) for item in items]
        sample = column[0]
        if isinstance(sample, Decimal):
            values[name] = average_nonzero(column)
        elif isinstance(sample, BaseModel):
            values[name] = average_models(column)
        elif isinstance(sample, list) and sample and isinstance(sample[0], BaseModel):
            values[name] = [average_models(list(group)) for group in zip(*column)]
        else:
            values[name] = sample
    return type(first).model_validate(values)
