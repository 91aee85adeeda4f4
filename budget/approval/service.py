"""
Approval workflow.

An approval starts PENDING and ends ACCEPTED, REJECTED or CANCELLED exactly
once. Every transition goes through ``ApprovalRepository.transition``, a
conditional UPDATE on the PENDING state, so of several concurrent
accept/reject/cancel calls only one changes the row; the others get
``ConflictError``. Acceptance applies the requested change inside the same
transaction as the status change, so a failed change leaves the approval
PENDING.
"""

from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from budget.approval import schemas
from budget.approval.models import ApprovalAction, ApprovalStatus, ExpenseApproval
from budget.approval.repository import ApprovalRepository
from budget.core.cache import CacheFacade, CacheKeys, NullCache, invalidate_approvals
from budget.core.database import transaction
from budget.core.exceptions import APPROVAL_ALREADY_REVIEWED, ConflictError, ForbiddenError
from budget.core.logger import get_logger
from budget.core.period import Clock
from budget.expense.models import ExpenseType
from budget.expense.repository import ExpenseRepository
from budget.household.repository import HouseholdRepository
from budget.saving.repository import SavingRepository
from budget.saving.service import debit_balance

logger = get_logger(__name__)

CANCELLED_MESSAGE = "Cancelled by requester"


class ApprovalService:
    """Review, cancel and list change requests of a household."""

    def __init__(
        self,
        session: AsyncSession,
        cache: Optional[CacheFacade] = None,
        clock: Optional[Clock] = None,
    ):
        self.session = session
        self.households = HouseholdRepository(session)
        self.approvals = ApprovalRepository(session)
        self.expenses = ExpenseRepository(session)
        self.savings = SavingRepository(session)
        self.cache = cache or NullCache()
        self.keys = CacheKeys()
        self.clock = clock or Clock()

    async def list_pending(self, user_id: str) -> List[schemas.Approval]:
        logger.debug("list_pending_approvals", user_id=user_id)
        membership = await self.households.require_membership(user_id)

        async def fetch():
            rows = await self.approvals.list_pending(membership.household_id)
            return [schemas.Approval.model_validate(a) for a in rows]

        return await self.cache.get_or_set(
            self.keys.pending_approvals(membership.household_id), self.keys.summary_ttl, fetch
        )

    async def list_history(self, user_id: str, status: Optional[ApprovalStatus] = None) -> List[schemas.Approval]:
        """Reviewed and cancelled approvals, newest first, optionally of one status."""
        logger.debug("list_approval_history", user_id=user_id, status=status)
        membership = await self.households.require_membership(user_id)
        if status == ApprovalStatus.PENDING:
            status = None

        async def fetch():
            rows = await self.approvals.list_history(membership.household_id, status)
            return [schemas.Approval.model_validate(a) for a in rows]

        key = self.keys.approval_history(membership.household_id, status.value if status else None)
        return await self.cache.get_or_set(key, self.keys.summary_ttl, fetch)

    async def accept(self, user_id: str, approval_id: str, message: Optional[str] = None) -> schemas.Approval:
        """
        Accept a pending approval and apply its change.

        Raises:
            NotFoundError: If the user has no household or the approval is not in it
            ConflictError: If the approval is no longer pending
            ForbiddenError: If the reviewer requested the approval
            ValidationError: If a savings withdrawal is no longer covered
        """
        logger.info("accept_approval", approval_id=approval_id, user_id=user_id)
        membership = await self.households.require_membership(user_id)
        approval = await self.approvals.get_or_fail(approval_id, membership.household_id)
        self._ensure_pending(approval)
        self._ensure_reviewer(approval, user_id)
        return await self.commit_acceptance(approval, user_id, message)

    async def commit_acceptance(
        self, approval: ExpenseApproval, reviewer_id: str, message: Optional[str] = None
    ) -> schemas.Approval:
        """
        Transition a previously read approval to ACCEPTED and apply its change.

        ``approval`` may be stale; the conditional update decides whether this
        call wins.
        """
        action = approval.action
        async with transaction(self.session):
            won = await self.approvals.transition(
                approval.id, ApprovalStatus.ACCEPTED, reviewer_id, message, self.clock.now()
            )
            if not won:
                logger.warning("approval_transition_lost", approval_id=approval.id, target="ACCEPTED")
                raise ConflictError(APPROVAL_ALREADY_REVIEWED)
            await self._apply(approval)

        logger.info("approval_accepted", approval_id=approval.id, action=action.value)
        await self.cache.invalidate_prefix(self.keys.household_prefix(approval.household_id))
        return schemas.Approval.model_validate(await self.approvals.refresh(approval))

    async def reject(self, user_id: str, approval_id: str, message: str) -> schemas.Approval:
        """
        Reject a pending approval with a reason. Nothing else changes.

        Raises:
            NotFoundError: If the user has no household or the approval is not in it
            ConflictError: If the approval is no longer pending
            ForbiddenError: If the reviewer requested the approval
        """
        logger.info("reject_approval", approval_id=approval_id, user_id=user_id)
        membership = await self.households.require_membership(user_id)
        approval = await self.approvals.get_or_fail(approval_id, membership.household_id)
        self._ensure_pending(approval)
        self._ensure_reviewer(approval, user_id)
        return await self._close(approval, ApprovalStatus.REJECTED, user_id, message)

    async def cancel(self, user_id: str, approval_id: str) -> schemas.Approval:
        """
        Withdraw one's own pending approval.

        Raises:
            NotFoundError: If the user has no household or the approval is not in it
            ConflictError: If the approval is no longer pending
            ForbiddenError: If the user is not the requester
        """
        logger.info("cancel_approval", approval_id=approval_id, user_id=user_id)
        membership = await self.households.require_membership(user_id)
        approval = await self.approvals.get_or_fail(approval_id, membership.household_id)
        self._ensure_pending(approval)
        if approval.requested_by_id != user_id:
            logger.warning("non_requester_cancel", approval_id=approval_id, user_id=user_id)
            raise ForbiddenError("Only the requester can cancel their own approval")
        return await self._close(approval, ApprovalStatus.CANCELLED, user_id, CANCELLED_MESSAGE)

    async def _close(
        self, approval: ExpenseApproval, status: ApprovalStatus, user_id: str, message: Optional[str]
    ) -> schemas.Approval:
        async with transaction(self.session):
            won = await self.approvals.transition(approval.id, status, user_id, message, self.clock.now())
            if not won:
                logger.warning("approval_transition_lost", approval_id=approval.id, target=status.value)
                raise ConflictError(APPROVAL_ALREADY_REVIEWED)

        logger.info("approval_closed", approval_id=approval.id, status=status.value)
        await invalidate_approvals(self.cache, approval.household_id)
        return schemas.Approval.model_validate(await self.approvals.refresh(approval))

    async def _apply(self, approval: ExpenseApproval) -> None:
        proposal = schemas.parse_proposal(approval.action, approval.proposed_data)

        if approval.action == ApprovalAction.CREATE:
            fields = proposal.model_dump(exclude={"action"})
            await self.expenses.create(
                approval.household_id, approval.requested_by_id, ExpenseType.SHARED, fields
            )
        elif approval.action == ApprovalAction.UPDATE:
            expense = await self.expenses.get_or_fail(approval.expense_id, approval.household_id, ExpenseType.SHARED)
            await self.expenses.apply_changes(expense, proposal.changes())
        elif approval.action == ApprovalAction.DELETE:
            expense = await self.expenses.get_or_fail(approval.expense_id, approval.household_id, ExpenseType.SHARED)
            await self.expenses.soft_delete(expense)
        elif approval.action == ApprovalAction.WITHDRAW_SAVINGS:
            # The balance may have moved since the request was made
            await debit_balance(self.savings, approval.requested_by_id, proposal.period, True, proposal.amount)
        elif approval.action in (ApprovalAction.SKIP_MONTH, ApprovalAction.UNSKIP_MONTH):
            await self.expenses.get_or_fail(approval.expense_id, approval.household_id, ExpenseType.SHARED)
            skipped = approval.action == ApprovalAction.SKIP_MONTH
            await self.expenses.set_skipped(approval.expense_id, proposal.period, skipped)

    @staticmethod
    def _ensure_pending(approval: ExpenseApproval) -> None:
        if approval.status != ApprovalStatus.PENDING:
            logger.warning("approval_not_pending", approval_id=approval.id, status=approval.status.value)
            raise ConflictError(APPROVAL_ALREADY_REVIEWED)

    @staticmethod
    def _ensure_reviewer(approval: ExpenseApproval, user_id: str) -> None:
        if approval.requested_by_id == user_id:
            logger.warning("self_review_attempt", approval_id=approval.id, user_id=user_id)
            raise ForbiddenError("You cannot review your own approval")
