"""
Expense services.

Personal expenses are changed directly by their creator. Shared expenses
are only ever changed through approvals: the ``propose_*`` methods store a
PENDING approval and ``ApprovalService.accept`` applies it.
"""

from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from budget.approval.models import ApprovalAction
from budget.approval.repository import ApprovalRepository
from budget.approval.schemas import (
    Approval,
    CreateExpenseProposal,
    SkipMonthProposal,
    UnskipMonthProposal,
    UpdateExpenseProposal,
    dump_proposal,
)
from budget.core.cache import CacheFacade, CacheKeys, NullCache, invalidate_approvals
from budget.core.database import transaction
from budget.core.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from budget.core.logger import get_logger
from budget.core.period import Clock, resolve_period
from budget.expense import schemas
from budget.expense.models import Expense, ExpenseCategory, ExpenseFrequency, ExpenseType, PaymentStatus
from budget.expense.repository import ExpenseRepository
from budget.household.repository import HouseholdRepository

logger = get_logger(__name__)

PENDING_APPROVAL_EXISTS = "There is already a pending approval for this expense"


def check_merged_schedule(expense: Expense, changes: Dict[str, Any]) -> None:
    """
    Validate the schedule an update would produce.

    Raises:
        ValidationError: If the update clears a required column or the
            resulting schedule is missing a required field
    """
    cleared = [f for f in schemas.REQUIRED_FIELDS if f in changes and changes[f] is None]
    if cleared:
        logger.warning("required_field_cleared", expense_id=expense.id, fields=cleared)
        raise ValidationError(f"{', '.join(cleared)} cannot be empty")

    merged = {field: getattr(expense, field) for field in schemas.EXPENSE_FIELDS}
    merged.update(changes)
    try:
        schemas.check_schedule(merged)
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc


class _ExpenseServiceBase:
    def __init__(
        self,
        session: AsyncSession,
        cache: Optional[CacheFacade] = None,
        clock: Optional[Clock] = None,
    ):
        self.session = session
        self.households = HouseholdRepository(session)
        self.expenses = ExpenseRepository(session)
        self.approvals = ApprovalRepository(session)
        self.cache = cache or NullCache()
        self.keys = CacheKeys()
        self.clock = clock or Clock()

    async def _invalidate_household(self, household_id: str) -> None:
        await self.cache.invalidate_prefix(self.keys.household_prefix(household_id))


class PersonalExpenseService(_ExpenseServiceBase):
    """Direct CRUD on the caller's own personal expenses."""

    async def list(
        self,
        user_id: str,
        category: Optional[ExpenseCategory] = None,
        frequency: Optional[ExpenseFrequency] = None,
    ) -> List[schemas.Expense]:
        logger.debug("list_personal_expenses", user_id=user_id)
        membership = await self.households.require_membership(user_id)
        rows = await self.expenses.list_for_household(
            membership.household_id,
            type=ExpenseType.PERSONAL,
            created_by_id=user_id,
            category=category,
            frequency=frequency,
        )
        return [schemas.Expense.model_validate(e) for e in rows]

    async def get(self, user_id: str, expense_id: str) -> schemas.Expense:
        """Any member may read a personal expense of their household."""
        logger.debug("get_personal_expense", user_id=user_id, expense_id=expense_id)
        membership = await self.households.require_membership(user_id)
        expense = await self.expenses.get_or_fail(expense_id, membership.household_id, ExpenseType.PERSONAL)
        return schemas.Expense.model_validate(expense)

    async def create(self, user_id: str, data: schemas.ExpenseCreate) -> schemas.Expense:
        logger.info("create_personal_expense", user_id=user_id, name=data.name)
        async with transaction(self.session):
            membership = await self.households.require_membership(user_id)
            fields = data.model_dump(exclude={"paid_by_user_id"})
            expense = await self.expenses.create(membership.household_id, user_id, ExpenseType.PERSONAL, fields)
        logger.info("personal_expense_created", expense_id=expense.id, user_id=user_id)
        await self._invalidate_household(membership.household_id)
        return schemas.Expense.model_validate(expense)

    async def update(self, user_id: str, expense_id: str, data: schemas.ExpenseUpdate) -> schemas.Expense:
        """
        Raises:
            NotFoundError: If the expense is not a personal expense of the household
            ForbiddenError: If the user did not create it
            ValidationError: If the resulting schedule is incomplete
        """
        logger.info("update_personal_expense", user_id=user_id, expense_id=expense_id)
        async with transaction(self.session):
            membership, expense = await self._owned(user_id, expense_id, "modify")
            changes = {k: v for k, v in data.changes().items() if k != "paid_by_user_id"}
            check_merged_schedule(expense, changes)
            await self.expenses.apply_changes(expense, changes)
        await self._invalidate_household(membership.household_id)
        return schemas.Expense.model_validate(expense)

    async def delete(self, user_id: str, expense_id: str) -> None:
        logger.info("delete_personal_expense", user_id=user_id, expense_id=expense_id)
        async with transaction(self.session):
            membership, expense = await self._owned(user_id, expense_id, "delete")
            await self.expenses.soft_delete(expense)
        await self._invalidate_household(membership.household_id)

    async def skip_month(
        self, user_id: str, expense_id: str, month: Optional[int] = None, year: Optional[int] = None
    ) -> schemas.RecurringOverrideRecord:
        return await self._set_skipped(user_id, expense_id, month, year, True)

    async def unskip_month(
        self, user_id: str, expense_id: str, month: Optional[int] = None, year: Optional[int] = None
    ) -> schemas.RecurringOverrideRecord:
        return await self._set_skipped(user_id, expense_id, month, year, False)

    async def _set_skipped(
        self, user_id: str, expense_id: str, month: Optional[int], year: Optional[int], skipped: bool
    ) -> schemas.RecurringOverrideRecord:
        logger.info("set_personal_skip", user_id=user_id, expense_id=expense_id, skipped=skipped)
        period = resolve_period(month, year, self.clock)
        async with transaction(self.session):
            membership, expense = await self._owned(user_id, expense_id, "modify")
            if expense.category != ExpenseCategory.RECURRING:
                logger.warning("override_on_non_recurring", expense_id=expense_id)
                raise ValidationError("Only recurring expenses can have overrides")
            override = await self.expenses.set_skipped(expense.id, period, skipped)
        await self._invalidate_household(membership.household_id)
        return schemas.RecurringOverrideRecord.model_validate(override)

    async def _owned(self, user_id: str, expense_id: str, verb: str):
        membership = await self.households.require_membership(user_id)
        expense = await self.expenses.get_or_fail(expense_id, membership.household_id, ExpenseType.PERSONAL)
        if expense.created_by_id != user_id:
            logger.warning("personal_expense_not_owned", user_id=user_id, expense_id=expense_id)
            raise ForbiddenError(f"You can only {verb} your own personal expenses")
        return membership, expense


class SharedExpenseService(_ExpenseServiceBase):
    """Reads of shared expenses and proposals to change them."""

    async def list(
        self,
        user_id: str,
        category: Optional[ExpenseCategory] = None,
        frequency: Optional[ExpenseFrequency] = None,
    ) -> List[schemas.Expense]:
        logger.debug("list_shared_expenses", user_id=user_id)
        membership = await self.households.require_membership(user_id)
        household_id = membership.household_id
        filter_hash = self.keys.hash_params({"category": category, "frequency": frequency})

        async def fetch():
            rows = await self.expenses.list_for_household(
                household_id, type=ExpenseType.SHARED, category=category, frequency=frequency
            )
            return [schemas.Expense.model_validate(e) for e in rows]

        return await self.cache.get_or_set(
            self.keys.shared_expenses(household_id, filter_hash), self.keys.expenses_ttl, fetch
        )

    async def get(self, user_id: str, expense_id: str) -> schemas.Expense:
        logger.debug("get_shared_expense", user_id=user_id, expense_id=expense_id)
        membership = await self.households.require_membership(user_id)
        expense = await self.expenses.get_or_fail(expense_id, membership.household_id, ExpenseType.SHARED)
        return schemas.Expense.model_validate(expense)

    async def get_skip_statuses(self, user_id: str, month: Optional[int] = None, year: Optional[int] = None) -> List[str]:
        """Ids of shared expenses skipped in the period."""
        membership = await self.households.require_membership(user_id)
        period = resolve_period(month, year, self.clock)
        skipped = await self.expenses.skipped_expense_ids(membership.household_id, period, type=ExpenseType.SHARED)
        return sorted(skipped)

    async def propose_create(self, user_id: str, data: schemas.ExpenseCreate) -> Approval:
        """
        Raises:
            NotFoundError: If the user has no household or the payer is not a member
        """
        logger.info("propose_create_shared_expense", user_id=user_id, name=data.name)
        async with transaction(self.session):
            membership = await self.households.require_membership(user_id)
            if data.paid_by_user_id:
                await self.households.ensure_member(data.paid_by_user_id, membership.household_id)
            proposal = CreateExpenseProposal.model_validate(data.model_dump())
            approval = await self.approvals.create(
                household_id=membership.household_id,
                action=ApprovalAction.CREATE,
                requested_by_id=user_id,
                proposed_data=dump_proposal(proposal),
            )
        return await self._created(approval)

    async def propose_update(self, user_id: str, expense_id: str, data: schemas.ExpenseUpdate) -> Approval:
        """
        Raises:
            NotFoundError: If the expense or the payer is not in the household
            ConflictError: If the expense already has a pending approval
            ValidationError: If the resulting schedule is incomplete
        """
        logger.info("propose_update_shared_expense", user_id=user_id, expense_id=expense_id)
        async with transaction(self.session):
            membership, expense = await self._proposable(user_id, expense_id)
            changes = data.changes()
            if changes.get("paid_by_user_id"):
                await self.households.ensure_member(changes["paid_by_user_id"], membership.household_id)
            check_merged_schedule(expense, changes)
            proposal = UpdateExpenseProposal(**changes)
            approval = await self.approvals.create(
                household_id=membership.household_id,
                action=ApprovalAction.UPDATE,
                requested_by_id=user_id,
                expense_id=expense_id,
                proposed_data=dump_proposal(proposal),
            )
        return await self._created(approval)

    async def propose_delete(self, user_id: str, expense_id: str) -> Approval:
        logger.info("propose_delete_shared_expense", user_id=user_id, expense_id=expense_id)
        async with transaction(self.session):
            membership, _ = await self._proposable(user_id, expense_id)
            approval = await self.approvals.create(
                household_id=membership.household_id,
                action=ApprovalAction.DELETE,
                requested_by_id=user_id,
                expense_id=expense_id,
            )
        return await self._created(approval)

    async def propose_skip_month(
        self, user_id: str, expense_id: str, month: Optional[int] = None, year: Optional[int] = None
    ) -> Approval:
        logger.info("propose_skip_shared_expense", user_id=user_id, expense_id=expense_id)
        period = resolve_period(month, year, self.clock)
        async with transaction(self.session):
            membership, _ = await self._proposable(user_id, expense_id)
            proposal = SkipMonthProposal(month=period.month, year=period.year)
            approval = await self.approvals.create(
                household_id=membership.household_id,
                action=ApprovalAction.SKIP_MONTH,
                requested_by_id=user_id,
                expense_id=expense_id,
                proposed_data=dump_proposal(proposal),
            )
        return await self._created(approval)

    async def propose_unskip_month(
        self, user_id: str, expense_id: str, month: Optional[int] = None, year: Optional[int] = None
    ) -> Approval:
        """
        Raises:
            ValidationError: If the expense is not skipped in the period
        """
        logger.info("propose_unskip_shared_expense", user_id=user_id, expense_id=expense_id)
        period = resolve_period(month, year, self.clock)
        async with transaction(self.session):
            membership, _ = await self._proposable(user_id, expense_id)
            override = await self.expenses.get_override(expense_id, period)
            if override is None or not override.skipped:
                logger.warning("no_active_skip", expense_id=expense_id, period=str(period))
                raise ValidationError("This expense is not currently skipped for the specified month")
            proposal = UnskipMonthProposal(month=period.month, year=period.year)
            approval = await self.approvals.create(
                household_id=membership.household_id,
                action=ApprovalAction.UNSKIP_MONTH,
                requested_by_id=user_id,
                expense_id=expense_id,
                proposed_data=dump_proposal(proposal),
            )
        return await self._created(approval)

    async def _proposable(self, user_id: str, expense_id: str):
        membership = await self.households.require_membership(user_id)
        expense = await self.expenses.get_or_fail(expense_id, membership.household_id, ExpenseType.SHARED)
        if await self.approvals.has_pending_for_expense(expense_id):
            logger.warning("pending_approval_exists", expense_id=expense_id)
            raise ConflictError(PENDING_APPROVAL_EXISTS)
        return membership, expense

    async def _created(self, approval) -> Approval:
        logger.info("approval_created", approval_id=approval.id, action=approval.action.value)
        await invalidate_approvals(self.cache, approval.household_id)
        return Approval.model_validate(approval)


class ExpensePaymentService(_ExpenseServiceBase):
    """Per-period payment markers. Any member may set them on any household expense."""

    async def mark_paid(
        self, user_id: str, expense_id: str, month: Optional[int] = None, year: Optional[int] = None
    ) -> schemas.PaymentStatusRecord:
        return await self._set_status(user_id, expense_id, month, year, PaymentStatus.PAID)

    async def cancel(
        self, user_id: str, expense_id: str, month: Optional[int] = None, year: Optional[int] = None
    ) -> schemas.PaymentStatusRecord:
        return await self._set_status(user_id, expense_id, month, year, PaymentStatus.CANCELLED)

    async def undo_paid(
        self, user_id: str, expense_id: str, month: Optional[int] = None, year: Optional[int] = None
    ) -> schemas.PaymentStatusRecord:
        """
        Raises:
            NotFoundError: If the expense has no payment status for the period
        """
        logger.info("undo_paid", user_id=user_id, expense_id=expense_id)
        period = resolve_period(month, year, self.clock)
        async with transaction(self.session):
            membership = await self.households.require_membership(user_id)
            await self.expenses.get_or_fail(expense_id, membership.household_id)
            if await self.expenses.get_payment_status(expense_id, period) is None:
                logger.warning("payment_status_not_found", expense_id=expense_id, period=str(period))
                raise NotFoundError("No payment status found for this expense and period")
            record = await self.expenses.set_payment_status(expense_id, period, PaymentStatus.PENDING, user_id)
        await self._invalidate_household(membership.household_id)
        return schemas.PaymentStatusRecord.model_validate(record)

    async def list_statuses(self, user_id: str, expense_id: str) -> List[schemas.PaymentStatusRecord]:
        logger.debug("list_payment_statuses", user_id=user_id, expense_id=expense_id)
        membership = await self.households.require_membership(user_id)
        await self.expenses.get_or_fail(expense_id, membership.household_id)
        rows = await self.expenses.list_payment_statuses(expense_id)
        return [schemas.PaymentStatusRecord.model_validate(r) for r in rows]

    async def _set_status(
        self, user_id: str, expense_id: str, month: Optional[int], year: Optional[int], status: PaymentStatus
    ) -> schemas.PaymentStatusRecord:
        logger.info("set_payment_status", user_id=user_id, expense_id=expense_id, status=status.value)
        period = resolve_period(month, year, self.clock)
        async with transaction(self.session):
            membership = await self.households.require_membership(user_id)
            await self.expenses.get_or_fail(expense_id, membership.household_id)
            record = await self.expenses.set_payment_status(expense_id, period, status, user_id)
        await self._invalidate_household(membership.household_id)
        return schemas.PaymentStatusRecord.model_validate(record)
