from decimal import Decimal

import pydantic
import pytest

from budget.approval.models import ApprovalAction
from budget.approval.service import ApprovalService
from budget.core.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from budget.expense.models import ExpenseCategory, ExpenseFrequency, PaymentStatus
from budget.expense.schemas import ExpenseCreate, ExpenseUpdate
from budget.expense.service import ExpensePaymentService, PersonalExpenseService, SharedExpenseService


def gym():
    return ExpenseCreate(name="Gym", amount=Decimal("49.99"), category="RECURRING", frequency="MONTHLY")


def laptop():
    return ExpenseCreate(name="Laptop", amount=Decimal("1200"), category="ONE_TIME", month=5, year=2026)


@pytest.mark.asyncio
async def test_personal_create_list_and_filter(session, clock, household):
    service = PersonalExpenseService(session, clock=clock)
    created = await service.create(household.alex, gym())
    await service.create(household.alex, laptop())
    await service.create(household.sam, gym())

    assert created.type == "PERSONAL"
    assert created.created_by_id == household.alex
    assert created.household_id == household.id

    mine = await service.list(household.alex)
    assert sorted(e.name for e in mine) == ["Gym", "Laptop"]
    one_time = await service.list(household.alex, category=ExpenseCategory.ONE_TIME)
    assert [e.name for e in one_time] == ["Laptop"]
    monthly = await service.list(household.alex, frequency=ExpenseFrequency.MONTHLY)
    assert [e.name for e in monthly] == ["Gym"]


@pytest.mark.asyncio
async def test_personal_expense_readable_by_household_only(session, clock, household):
    service = PersonalExpenseService(session, clock=clock)
    created = await service.create(household.alex, gym())

    assert (await service.get(household.sam, created.id)).name == "Gym"
    with pytest.raises(NotFoundError):
        await service.get(household.kim, created.id)


@pytest.mark.asyncio
async def test_only_creator_mutates_personal_expense(session, clock, household):
    service = PersonalExpenseService(session, clock=clock)
    created = await service.create(household.alex, gym())

    with pytest.raises(ForbiddenError):
        await service.update(household.sam, created.id, ExpenseUpdate(amount=Decimal("1")))
    with pytest.raises(ForbiddenError):
        await service.delete(household.sam, created.id)

    updated = await service.update(household.alex, created.id, ExpenseUpdate(amount=Decimal("59.99")))
    assert updated.amount == Decimal("59.99")

    await service.delete(household.alex, created.id)
    with pytest.raises(NotFoundError):
        await service.get(household.alex, created.id)
    assert await service.list(household.alex) == []


@pytest.mark.asyncio
async def test_update_renormalizes_schedule(session, clock, household):
    service = PersonalExpenseService(session, clock=clock)
    created = await service.create(household.alex, laptop())

    updated = await service.update(
        household.alex,
        created.id,
        ExpenseUpdate(category=ExpenseCategory.RECURRING, frequency=ExpenseFrequency.MONTHLY),
    )

    assert updated.category == ExpenseCategory.RECURRING
    assert updated.month is None
    assert updated.year is None


@pytest.mark.asyncio
async def test_update_rejects_incomplete_schedule(session, clock, household):
    service = PersonalExpenseService(session, clock=clock)
    created = await service.create(household.alex, gym())

    with pytest.raises(ValidationError):
        await service.update(household.alex, created.id, ExpenseUpdate(category=ExpenseCategory.ONE_TIME))


@pytest.mark.asyncio
async def test_personal_skip_only_for_recurring(session, clock, household):
    service = PersonalExpenseService(session, clock=clock)
    recurring = await service.create(household.alex, gym())
    one_time = await service.create(household.alex, laptop())

    override = await service.skip_month(household.alex, recurring.id)
    assert override.skipped is True
    assert (override.month, override.year) == (3, 2026)
    override = await service.unskip_month(household.alex, recurring.id)
    assert override.skipped is False

    with pytest.raises(ValidationError) as excinfo:
        await service.skip_month(household.alex, one_time.id)
    assert excinfo.value.message == "Only recurring expenses can have overrides"


@pytest.mark.asyncio
async def test_shared_proposal_payer_must_be_member(session, clock, household):
    shared = SharedExpenseService(session, clock=clock)
    data = ExpenseCreate(
        name="Power", amount=Decimal("120"), category="RECURRING", frequency="MONTHLY", paid_by_user_id=household.kim
    )
    with pytest.raises(NotFoundError) as excinfo:
        await shared.propose_create(household.alex, data)
    assert excinfo.value.message == "The specified payer is not a member of this household"

    data.paid_by_user_id = household.sam
    approval = await shared.propose_create(household.alex, data)
    assert approval.action == ApprovalAction.CREATE
    assert approval.proposed_data["paid_by_user_id"] == household.sam
    assert approval.proposed_data["amount"] == "120"


@pytest.mark.asyncio
async def test_shared_expense_appears_only_after_acceptance(session, clock, household):
    shared = SharedExpenseService(session, clock=clock)
    approval = await shared.propose_create(household.sam, gym())
    assert await shared.list(household.alex) == []

    await ApprovalService(session, clock=clock).accept(household.alex, approval.id)

    listed = await shared.list(household.alex)
    assert [e.name for e in listed] == ["Gym"]
    assert listed[0].type == "SHARED"
    assert (await shared.get(household.sam, listed[0].id)).created_by_id == household.sam


@pytest.mark.asyncio
async def test_unskip_requires_active_skip(session, clock, household):
    shared = SharedExpenseService(session, clock=clock)
    approval = await shared.propose_create(household.sam, gym())
    await ApprovalService(session, clock=clock).accept(household.alex, approval.id)
    expense_id = (await shared.list(household.alex))[0].id

    with pytest.raises(ValidationError):
        await shared.propose_unskip_month(household.alex, expense_id)


@pytest.mark.asyncio
async def test_proposals_on_personal_expense_are_not_found(session, clock, household):
    personal = await PersonalExpenseService(session, clock=clock).create(household.alex, gym())
    shared = SharedExpenseService(session, clock=clock)

    with pytest.raises(NotFoundError):
        await shared.propose_delete(household.alex, personal.id)


@pytest.mark.asyncio
async def test_pending_skip_blocks_delete_proposal(session, clock, household):
    shared = SharedExpenseService(session, clock=clock)
    approval = await shared.propose_create(household.sam, gym())
    await ApprovalService(session, clock=clock).accept(household.alex, approval.id)
    expense_id = (await shared.list(household.alex))[0].id

    await shared.propose_skip_month(household.alex, expense_id)
    with pytest.raises(ConflictError) as excinfo:
        await shared.propose_delete(household.sam, expense_id)
    assert excinfo.value.message == "There is already a pending approval for this expense"


@pytest.mark.asyncio
async def test_payment_status_lifecycle(session, clock, household):
    expense = await PersonalExpenseService(session, clock=clock).create(household.alex, gym())
    payments = ExpensePaymentService(session, clock=clock)

    with pytest.raises(NotFoundError):
        await payments.undo_paid(household.alex, expense.id)

    paid = await payments.mark_paid(household.sam, expense.id)
    assert paid.status == PaymentStatus.PAID
    assert paid.paid_by_id == household.sam
    assert paid.paid_at is not None

    undone = await payments.undo_paid(household.alex, expense.id)
    assert undone.status == PaymentStatus.PENDING
    assert undone.paid_at is None
    assert undone.id == paid.id

    await payments.cancel(household.alex, expense.id, month=4, year=2026)
    statuses = await payments.list_statuses(household.alex, expense.id)
    assert [(s.month, s.status) for s in statuses] == [(4, PaymentStatus.CANCELLED), (3, PaymentStatus.PENDING)]

    with pytest.raises(NotFoundError):
        await payments.mark_paid(household.kim, expense.id)


@pytest.mark.parametrize("field", ["name", "amount", "category"])
def test_update_schema_rejects_clearing_required_fields(field):
    with pytest.raises(pydantic.ValidationError):
        ExpenseUpdate(**{field: None})
    assert ExpenseUpdate(frequency=None).changes() == {"frequency": None}


def cleared(field):
    # Bypasses schema validation, like a payload built without it
    return ExpenseUpdate.model_construct(_fields_set={field}, **{field: None})


@pytest.mark.asyncio
async def test_personal_update_cannot_clear_required_fields(session, clock, household):
    service = PersonalExpenseService(session, clock=clock)
    created = await service.create(household.alex, gym())

    with pytest.raises(ValidationError) as excinfo:
        await service.update(household.alex, created.id, cleared("name"))
    assert excinfo.value.message == "name cannot be empty"

    assert (await service.get(household.alex, created.id)).name == "Gym"


@pytest.mark.asyncio
async def test_update_proposal_cannot_clear_required_fields(session, clock, household):
    shared = SharedExpenseService(session, clock=clock)
    approvals = ApprovalService(session, clock=clock)
    approval = await shared.propose_create(household.sam, gym())
    await approvals.accept(household.alex, approval.id)
    expense_id = (await shared.list(household.alex))[0].id

    with pytest.raises(ValidationError):
        await shared.propose_update(household.alex, expense_id, cleared("amount"))
    assert await approvals.list_pending(household.sam) == []

    # Nothing pending is left behind to block the next proposal
    update = await shared.propose_update(household.alex, expense_id, ExpenseUpdate(amount=Decimal("55")))
    await approvals.accept(household.sam, update.id)
    assert (await shared.get(household.alex, expense_id)).amount == Decimal("55")
