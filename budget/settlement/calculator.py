"""
Settlement between household members.

Each member should carry ``amount / member_count`` of every shared expense.
An expense with ``paid_by_user_id`` is credited entirely to that member;
one without is split equally, so it never moves the balance. The member
with a positive balance is owed that amount by the member with a negative
one. Only the first creditor and first debtor are paired, which settles a
two-member household exactly.
"""

from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Set

from budget.core.money import ZERO, format_money, round_money
from budget.core.period import Period
from budget.expense.amortization import ExpenseSchedule, monthly_amount
from budget.household.schemas import MemberInfo
from budget.settlement.schemas import SettlementResult

BALANCED_MESSAGE = "All shared expenses are balanced, no settlement needed."


def member_balances(
    members: List[MemberInfo],
    shared_expenses: Iterable[ExpenseSchedule],
    period: Period,
    skipped_ids: Optional[Set[str]] = None,
) -> Dict[str, Decimal]:
    """Rounded ``paid - fair share`` per member; positive means owed money."""
    skipped_ids = skipped_ids or set()
    count = max(len(members), 1)
    paid = {m.user_id: ZERO for m in members}
    fair_share = {m.user_id: ZERO for m in members}

    for expense in shared_expenses:
        if expense.id in skipped_ids:
            continue
        amount = monthly_amount(expense, period)
        share = amount / count

        if expense.paid_by_user_id:
            # Payers who left the household are ignored
            if expense.paid_by_user_id in paid:
                paid[expense.paid_by_user_id] += amount
        else:
            for user_id in paid:
                paid[user_id] += share

        for user_id in fair_share:
            fair_share[user_id] += share

    return {user_id: round_money(paid[user_id] - fair_share[user_id]) for user_id in paid}


def settlement_message(debtor: MemberInfo, creditor: MemberInfo, amount: Decimal, requesting_user_id: str, symbol: str = "€") -> str:
    money = format_money(amount, symbol)
    if debtor.user_id == requesting_user_id:
        return f"You owe {creditor.first_name} {money}"
    if creditor.user_id == requesting_user_id:
        return f"{debtor.first_name} owes you {money}"
    return f"{debtor.first_name} owes {creditor.first_name} {money}"


def calculate_settlement(
    members: List[MemberInfo],
    shared_expenses: Iterable[ExpenseSchedule],
    requesting_user_id: str,
    period: Period,
    skipped_ids: Optional[Set[str]] = None,
    is_settled: bool = False,
    currency_symbol: str = "€",
) -> SettlementResult:
    """Compute the settlement for ``period``. ``is_settled`` is passed through."""
    balances = member_balances(members, shared_expenses, period, skipped_ids)
    creditor = next((m for m in members if balances[m.user_id] > 0), None)
    debtor = next((m for m in members if balances[m.user_id] < 0), None)

    if creditor is None or debtor is None:
        return SettlementResult(
            amount=round_money(ZERO),
            message=BALANCED_MESSAGE,
            is_settled=is_settled,
            month=period.month,
            year=period.year,
        )

    amount = balances[creditor.user_id]
    return SettlementResult(
        amount=amount,
        owed_by_user_id=debtor.user_id,
        owed_by_first_name=debtor.first_name,
        owed_to_user_id=creditor.user_id,
        owed_to_first_name=creditor.first_name,
        message=settlement_message(debtor, creditor, amount, requesting_user_id, currency_symbol),
        is_settled=is_settled,
        month=period.month,
        year=period.year,
    )
