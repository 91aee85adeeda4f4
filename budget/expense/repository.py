"""Repository for expense operations.

Every read goes through ``_active`` so soft-deleted rows never leak into
listings, lookups or the engine inputs.
"""

from typing import Any, Dict, List, Optional, Set

from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession

from budget.core.exceptions import NotFoundError
from budget.core.logger import get_logger
from budget.core.period import Period, utcnow
from budget.expense.amortization import normalize_schedule
from budget.expense.models import (
    Expense,
    ExpenseCategory,
    ExpenseFrequency,
    ExpensePaymentStatus,
    ExpenseType,
    PaymentStatus,
    RecurringOverride,
)

logger = get_logger(__name__)


class ExpenseRepository:
    """Repository for expense, payment-status and override rows."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session."""
        self.session = session

    @staticmethod
    def _active() -> Select:
        return select(Expense).where(Expense.deleted_at.is_(None))

    async def get(self, expense_id: str, household_id: str, type: Optional[ExpenseType] = None) -> Optional[Expense]:
        query = self._active().where(Expense.id == expense_id, Expense.household_id == household_id)
        if type is not None:
            query = query.where(Expense.type == type)
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def get_or_fail(self, expense_id: str, household_id: str, type: Optional[ExpenseType] = None) -> Expense:
        """
        Find an active expense inside the household.

        Missing, deleted and foreign-household expenses are reported alike.
        """
        expense = await self.get(expense_id, household_id, type)
        if expense is None:
            label = type.value.capitalize() + " expense" if type else "Expense"
            logger.warning("expense_not_found", expense_id=expense_id, household_id=household_id)
            raise NotFoundError(f"{label} not found")
        return expense

    async def list_for_household(
        self,
        household_id: str,
        type: Optional[ExpenseType] = None,
        created_by_id: Optional[str] = None,
        category: Optional[ExpenseCategory] = None,
        frequency: Optional[ExpenseFrequency] = None,
    ) -> List[Expense]:
        query = self._active().where(Expense.household_id == household_id)
        if type is not None:
            query = query.where(Expense.type == type)
        if created_by_id is not None:
            query = query.where(Expense.created_by_id == created_by_id)
        if category is not None:
            query = query.where(Expense.category == category)
        if frequency is not None:
            query = query.where(Expense.frequency == frequency)
        result = await self.session.execute(query.order_by(Expense.created_at.desc(), Expense.id))
        return list(result.scalars().all())

    async def create(
        self,
        household_id: str,
        created_by_id: str,
        type: ExpenseType,
        fields: Dict[str, Any],
    ) -> Expense:
        """Stage a new expense in the current transaction."""
        expense = Expense(
            household_id=household_id,
            created_by_id=created_by_id,
            type=type,
            **normalize_schedule(fields),
        )
        self.session.add(expense)
        await self.session.flush()
        return expense

    async def apply_changes(self, expense: Expense, changes: Dict[str, Any]) -> Expense:
        """Apply a partial update and re-normalize the schedule shape."""
        for field, value in changes.items():
            setattr(expense, field, value)
        current = {
            "category": expense.category,
            "frequency": expense.frequency,
            "yearly_payment_strategy": expense.yearly_payment_strategy,
            "installment_frequency": expense.installment_frequency,
            "installment_count": expense.installment_count,
            "payment_month": expense.payment_month,
            "month": expense.month,
            "year": expense.year,
        }
        for field, value in normalize_schedule(current).items():
            setattr(expense, field, value)
        expense.updated_at = utcnow()
        await self.session.flush()
        return expense

    async def soft_delete(self, expense: Expense) -> Expense:
        expense.deleted_at = utcnow()
        await self.session.flush()
        return expense

    # Payment status

    async def get_payment_status(self, expense_id: str, period: Period) -> Optional[ExpensePaymentStatus]:
        result = await self.session.execute(
            select(ExpensePaymentStatus).where(
                ExpensePaymentStatus.expense_id == expense_id,
                ExpensePaymentStatus.month == period.month,
                ExpensePaymentStatus.year == period.year,
            )
        )
        return result.scalar_one_or_none()

    async def set_payment_status(
        self, expense_id: str, period: Period, status: PaymentStatus, user_id: str
    ) -> ExpensePaymentStatus:
        record = await self.get_payment_status(expense_id, period)
        if record is None:
            record = ExpensePaymentStatus(
                expense_id=expense_id,
                month=period.month,
                year=period.year,
                paid_by_id=user_id,
            )
            self.session.add(record)
        record.status = status
        record.paid_by_id = user_id
        record.paid_at = utcnow() if status == PaymentStatus.PAID else None
        await self.session.flush()
        return record

    async def list_payment_statuses(self, expense_id: str) -> List[ExpensePaymentStatus]:
        result = await self.session.execute(
            select(ExpensePaymentStatus)
            .where(ExpensePaymentStatus.expense_id == expense_id)
            .order_by(ExpensePaymentStatus.year.desc(), ExpensePaymentStatus.month.desc())
        )
        return list(result.scalars().all())

    async def paid_expense_ids(self, household_id: str, period: Period) -> Set[str]:
        result = await self.session.execute(
            select(ExpensePaymentStatus.expense_id)
            .join(Expense, Expense.id == ExpensePaymentStatus.expense_id)
            .where(
                Expense.household_id == household_id,
                Expense.deleted_at.is_(None),
                ExpensePaymentStatus.month == period.month,
                ExpensePaymentStatus.year == period.year,
                ExpensePaymentStatus.status == PaymentStatus.PAID,
            )
        )
        return set(result.scalars().all())

    # Skips

    async def get_override(self, expense_id: str, period: Period) -> Optional[RecurringOverride]:
        result = await self.session.execute(
            select(RecurringOverride).where(
                RecurringOverride.expense_id == expense_id,
                RecurringOverride.month == period.month,
                RecurringOverride.year == period.year,
            )
        )
        return result.scalar_one_or_none()

    async def set_skipped(self, expense_id: str, period: Period, skipped: bool) -> RecurringOverride:
        """Create or update the override row for the period."""
        override = await self.get_override(expense_id, period)
        if override is None:
            override = RecurringOverride(expense_id=expense_id, month=period.month, year=period.year)
            self.session.add(override)
        override.skipped = skipped
        override.updated_at = utcnow()
        await self.session.flush()
        return override

    async def skipped_expense_ids(
        self, household_id: str, period: Period, type: Optional[ExpenseType] = None
    ) -> Set[str]:
        query = (
            select(RecurringOverride.expense_id)
            .join(Expense, Expense.id == RecurringOverride.expense_id)
            .where(
                Expense.household_id == household_id,
                Expense.deleted_at.is_(None),
                RecurringOverride.month == period.month,
                RecurringOverride.year == period.year,
                RecurringOverride.skipped.is_(True),
            )
        )
        if type is not None:
            query = query.where(Expense.type == type)
        result = await self.session.execute(query)
        return set(result.scalars().all())
