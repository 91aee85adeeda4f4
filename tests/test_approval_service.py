from decimal import Decimal

import pytest

from budget.approval.models import ApprovalAction, ApprovalStatus
from budget.approval.repository import ApprovalRepository
from budget.approval.service import ApprovalService
from budget.core.exceptions import (
    APPROVAL_ALREADY_REVIEWED,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from budget.core.period import Period
from budget.expense.models import ExpenseType
from budget.expense.repository import ExpenseRepository
from budget.expense.schemas import ExpenseCreate, ExpenseUpdate
from budget.expense.service import SharedExpenseService
from budget.saving.repository import SavingRepository
from budget.saving.schemas import SavingChange
from budget.saving.service import SavingsLedger

MARCH = Period(2026, 3)


def rent():
    return ExpenseCreate(name="Rent", amount=Decimal("800"), category="RECURRING", frequency="MONTHLY")


async def shared_names(session, household_id):
    rows = await ExpenseRepository(session).list_for_household(household_id, type=ExpenseType.SHARED)
    return [e.name for e in rows]


async def accepted_rent(session, clock, household):
    approval = await SharedExpenseService(session, clock=clock).propose_create(household.alex, rent())
    await ApprovalService(session, clock=clock).accept(household.sam, approval.id)
    rows = await ExpenseRepository(session).list_for_household(household.id, type=ExpenseType.SHARED)
    return rows[0].id


@pytest.mark.asyncio
async def test_accept_create_inserts_shared_expense(session, clock, household):
    approval = await SharedExpenseService(session, clock=clock).propose_create(household.alex, rent())
    assert approval.status == ApprovalStatus.PENDING
    assert approval.action == ApprovalAction.CREATE
    assert await shared_names(session, household.id) == []

    result = await ApprovalService(session, clock=clock).accept(household.sam, approval.id, "Fine by me")

    assert result.status == ApprovalStatus.ACCEPTED
    assert result.reviewed_by_id == household.sam
    assert result.message == "Fine by me"
    assert result.reviewed_at == clock.now()
    rows = await ExpenseRepository(session).list_for_household(household.id, type=ExpenseType.SHARED)
    assert [e.name for e in rows] == ["Rent"]
    assert rows[0].created_by_id == household.alex
    assert rows[0].amount == Decimal("800")


@pytest.mark.asyncio
async def test_self_review_is_forbidden(session, clock, household):
    approval = await SharedExpenseService(session, clock=clock).propose_create(household.alex, rent())
    service = ApprovalService(session, clock=clock)

    with pytest.raises(ForbiddenError):
        await service.accept(household.alex, approval.id)
    with pytest.raises(ForbiddenError):
        await service.reject(household.alex, approval.id, "No")

    pending = await service.list_pending(household.sam)
    assert [a.id for a in pending] == [approval.id]


@pytest.mark.asyncio
async def test_reject_has_no_side_effects(session, clock, household):
    approval = await SharedExpenseService(session, clock=clock).propose_create(household.alex, rent())

    result = await ApprovalService(session, clock=clock).reject(household.sam, approval.id, "Too expensive")

    assert result.status == ApprovalStatus.REJECTED
    assert result.message == "Too expensive"
    assert await shared_names(session, household.id) == []


@pytest.mark.asyncio
async def test_only_requester_can_cancel(session, clock, household):
    approval = await SharedExpenseService(session, clock=clock).propose_create(household.alex, rent())
    service = ApprovalService(session, clock=clock)

    with pytest.raises(ForbiddenError) as excinfo:
        await service.cancel(household.sam, approval.id)
    assert excinfo.value.kind == "forbidden"

    result = await service.cancel(household.alex, approval.id)
    assert result.status == ApprovalStatus.CANCELLED
    assert result.message == "Cancelled by requester"
    assert await shared_names(session, household.id) == []


@pytest.mark.asyncio
async def test_terminal_approvals_cannot_transition_again(session, clock, household):
    approval = await SharedExpenseService(session, clock=clock).propose_create(household.alex, rent())
    service = ApprovalService(session, clock=clock)
    await service.reject(household.sam, approval.id, "No")

    with pytest.raises(ConflictError) as excinfo:
        await service.accept(household.sam, approval.id)
    assert excinfo.value.message == APPROVAL_ALREADY_REVIEWED
    with pytest.raises(ConflictError):
        await service.reject(household.sam, approval.id, "Still no")
    with pytest.raises(ConflictError):
        await service.cancel(household.alex, approval.id)

    assert await shared_names(session, household.id) == []


@pytest.mark.asyncio
async def test_approval_from_another_household_is_not_found(session, clock, household):
    approval = await SharedExpenseService(session, clock=clock).propose_create(household.alex, rent())
    service = ApprovalService(session, clock=clock)

    with pytest.raises(NotFoundError):
        await service.accept(household.kim, approval.id)
    with pytest.raises(NotFoundError):
        await service.accept(household.lou, approval.id)
    with pytest.raises(NotFoundError):
        await service.accept(household.sam, "missing")


@pytest.mark.asyncio
async def test_accept_update_and_delete(session, clock, household):
    expense_id = await accepted_rent(session, clock, household)
    shared = SharedExpenseService(session, clock=clock)
    approvals = ApprovalService(session, clock=clock)

    update = await shared.propose_update(household.sam, expense_id, ExpenseUpdate(amount=Decimal("850")))
    assert update.proposed_data == {"amount": "850"}
    await approvals.accept(household.alex, update.id)
    assert (await shared.get(household.alex, expense_id)).amount == Decimal("850")

    delete = await shared.propose_delete(household.alex, expense_id)
    assert delete.proposed_data is None
    await approvals.accept(household.sam, delete.id)
    with pytest.raises(NotFoundError):
        await shared.get(household.alex, expense_id)
    assert await shared_names(session, household.id) == []


@pytest.mark.asyncio
async def test_accept_skip_and_unskip_month(session, clock, household):
    expense_id = await accepted_rent(session, clock, household)
    shared = SharedExpenseService(session, clock=clock)
    approvals = ApprovalService(session, clock=clock)

    skip = await shared.propose_skip_month(household.alex, expense_id, month=4, year=2026)
    assert skip.proposed_data == {"month": 4, "year": 2026}
    await approvals.accept(household.sam, skip.id)
    assert await shared.get_skip_statuses(household.alex, month=4, year=2026) == [expense_id]
    assert await shared.get_skip_statuses(household.alex) == []

    unskip = await shared.propose_unskip_month(household.sam, expense_id, month=4, year=2026)
    await approvals.accept(household.alex, unskip.id)
    assert await shared.get_skip_statuses(household.alex, month=4, year=2026) == []


@pytest.mark.asyncio
async def test_stale_accept_loses_to_committed_accept(session, other_session, clock, household):
    approval = await SharedExpenseService(session, clock=clock).propose_create(household.alex, rent())
    approval_id = approval.id

    # First reviewer reads the approval while it is still pending
    stale = await ApprovalRepository(session).get_or_fail(approval_id, household.id)
    assert stale.status == ApprovalStatus.PENDING

    # Second reviewer accepts and commits in the meantime
    winner = await ApprovalService(other_session, clock=clock).accept(household.sam, approval_id)
    assert winner.status == ApprovalStatus.ACCEPTED

    with pytest.raises(ConflictError) as excinfo:
        await ApprovalService(session, clock=clock).commit_acceptance(stale, household.sam)
    assert excinfo.value.message == APPROVAL_ALREADY_REVIEWED

    assert await shared_names(session, household.id) == ["Rent"]


@pytest.mark.asyncio
async def test_stale_cancel_after_accept_does_not_apply_twice(session, other_session, clock, household):
    ledger = SavingsLedger(session, clock=clock)
    await ledger.add_shared(household.sam, SavingChange(amount=Decimal("100")))
    approval = await ledger.request_shared_withdrawal(household.sam, SavingChange(amount=Decimal("40")))
    approval_id = approval.id

    stale = await ApprovalRepository(session).get_or_fail(approval_id, household.id)
    await ApprovalService(other_session, clock=clock).accept(household.alex, approval_id)

    with pytest.raises(ConflictError):
        await ApprovalService(session, clock=clock).commit_acceptance(stale, household.alex)

    saving = await SavingRepository(session).get(household.sam, MARCH, True)
    assert saving.amount == Decimal("60")


@pytest.mark.asyncio
async def test_withdrawal_accepted_after_balance_dropped_rolls_back(session, clock, household):
    ledger = SavingsLedger(session, clock=clock)
    approvals = ApprovalService(session, clock=clock)
    await ledger.add_shared(household.sam, SavingChange(amount=Decimal("100")))

    big = await ledger.request_shared_withdrawal(household.sam, SavingChange(amount=Decimal("80")))
    small = await ledger.request_shared_withdrawal(household.sam, SavingChange(amount=Decimal("50")))
    big_id = big.id
    await approvals.accept(household.alex, small.id)

    with pytest.raises(ValidationError):
        await approvals.accept(household.alex, big_id)

    still_pending = await ApprovalRepository(session).get_or_fail(big_id, household.id)
    assert still_pending.status == ApprovalStatus.PENDING
    assert still_pending.reviewed_by_id is None
    saving = await SavingRepository(session).get(household.sam, MARCH, True)
    assert saving.amount == Decimal("50")


@pytest.mark.asyncio
async def test_pending_and_history_listing(session, clock, household):
    shared = SharedExpenseService(session, clock=clock)
    service = ApprovalService(session, clock=clock)
    first = await shared.propose_create(household.alex, rent())
    second = await shared.propose_create(household.sam, rent())
    third = await shared.propose_create(household.alex, rent())

    await service.accept(household.sam, first.id)
    await service.reject(household.alex, second.id, "Duplicate")

    pending = await service.list_pending(household.alex)
    assert [a.id for a in pending] == [third.id]

    history = await service.list_history(household.sam)
    assert {a.id for a in history} == {first.id, second.id}
    rejected = await service.list_history(household.sam, status=ApprovalStatus.REJECTED)
    assert [a.id for a in rejected] == [second.id]


@pytest.mark.asyncio
async def test_second_proposal_for_same_expense_conflicts(session, clock, household):
    expense_id = await accepted_rent(session, clock, household)
    shared = SharedExpenseService(session, clock=clock)

    await shared.propose_delete(household.alex, expense_id)
    with pytest.raises(ConflictError):
        await shared.propose_update(household.sam, expense_id, ExpenseUpdate(name="Flat"))
