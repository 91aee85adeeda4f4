"""Repository for approval operations."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import Select, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from budget.approval.models import ApprovalAction, ApprovalStatus, ExpenseApproval, TERMINAL_STATUSES
from budget.core.exceptions import NotFoundError
from budget.core.logger import get_logger

logger = get_logger(__name__)


class ApprovalRepository:
    """Repository for approval operations."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session."""
        self.session = session

    @staticmethod
    def _select() -> Select:
        # Status changes through conditional UPDATE statements
        return select(ExpenseApproval).execution_options(populate_existing=True)

    async def create(
        self,
        household_id: str,
        action: ApprovalAction,
        requested_by_id: str,
        expense_id: Optional[str] = None,
        proposed_data: Optional[Dict[str, Any]] = None,
    ) -> ExpenseApproval:
        approval = ExpenseApproval(
            household_id=household_id,
            action=action,
            status=ApprovalStatus.PENDING,
            requested_by_id=requested_by_id,
            expense_id=expense_id,
            proposed_data=proposed_data,
        )
        self.session.add(approval)
        await self.session.flush()
        return approval

    async def get_or_fail(self, approval_id: str, household_id: str) -> ExpenseApproval:
        """
        Get an approval inside the household.

        Raises:
            NotFoundError: If it does not exist or belongs to another household
        """
        result = await self.session.execute(
            self._select().where(
                ExpenseApproval.id == approval_id,
                ExpenseApproval.household_id == household_id,
            )
        )
        approval = result.scalar_one_or_none()
        if approval is None:
            logger.warning("approval_not_found", approval_id=approval_id)
            raise NotFoundError("Approval not found")
        return approval

    async def list_pending(self, household_id: str) -> List[ExpenseApproval]:
        result = await self.session.execute(
            self._select()
            .where(
                ExpenseApproval.household_id == household_id,
                ExpenseApproval.status == ApprovalStatus.PENDING,
            )
            .order_by(ExpenseApproval.created_at.desc())
        )
        return list(result.scalars().all())

    async def list_history(self, household_id: str, status: Optional[ApprovalStatus] = None) -> List[ExpenseApproval]:
        statuses = [status] if status is not None else list(TERMINAL_STATUSES)
        result = await self.session.execute(
            self._select()
            .where(
                ExpenseApproval.household_id == household_id,
                ExpenseApproval.status.in_(statuses),
            )
            .order_by(ExpenseApproval.created_at.desc())
        )
        return list(result.scalars().all())

    async def count_pending(self, household_id: str, exclude_requested_by: Optional[str] = None) -> int:
        query = select(func.count(ExpenseApproval.id)).where(
            ExpenseApproval.household_id == household_id,
            ExpenseApproval.status == ApprovalStatus.PENDING,
        )
        if exclude_requested_by is not None:
            query = query.where(ExpenseApproval.requested_by_id != exclude_requested_by)
        result = await self.session.execute(query)
        return result.scalar_one()

    async def has_pending_for_expense(self, expense_id: str) -> bool:
        result = await self.session.execute(
            select(ExpenseApproval.id).where(
                ExpenseApproval.expense_id == expense_id,
                ExpenseApproval.status == ApprovalStatus.PENDING,
            ).limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def transition(
        self,
        approval_id: str,
        status: ApprovalStatus,
        reviewed_by_id: str,
        message: Optional[str],
        reviewed_at: datetime,
    ) -> bool:
        """
        Move a PENDING approval to ``status``.

        The status guard and the write are one conditional UPDATE. Returns
        False when no row was still PENDING, i.e. another reviewer or the
        requester got there first.
        """
        result = await self.session.execute(
            update(ExpenseApproval)
            .where(
                ExpenseApproval.id == approval_id,
                ExpenseApproval.status == ApprovalStatus.PENDING,
            )
            .values(
                status=status,
                reviewed_by_id=reviewed_by_id,
                message=message,
                reviewed_at=reviewed_at,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def refresh(self, approval: ExpenseApproval) -> ExpenseApproval:
        await self.session.refresh(approval)
        return approval
