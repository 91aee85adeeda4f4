"""Repository for savings balances."""

from decimal import Decimal
from typing import List, Optional

from sqlalchemy import Select, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from budget.core.period import Period, utcnow
from budget.saving.models import Saving


class SavingRepository:
    """Repository for savings balances."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session."""
        self.session = session

    @staticmethod
    def _select() -> Select:
        # Balances move through UPDATE statements, not the identity map
        return select(Saving).execution_options(populate_existing=True)

    async def get(self, user_id: str, period: Period, is_shared: bool) -> Optional[Saving]:
        result = await self.session.execute(
            self._select().where(
                Saving.user_id == user_id,
                Saving.month == period.month,
                Saving.year == period.year,
                Saving.is_shared == is_shared,
            )
        )
        return result.scalar_one_or_none()

    async def list_for_user(self, user_id: str, period: Period) -> List[Saving]:
        result = await self.session.execute(
            self._select()
            .where(Saving.user_id == user_id, Saving.month == period.month, Saving.year == period.year)
            .order_by(Saving.is_shared)
        )
        return list(result.scalars().all())

    async def list_for_household(self, household_id: str, period: Period) -> List[Saving]:
        result = await self.session.execute(
            self._select()
            .where(Saving.household_id == household_id, Saving.month == period.month, Saving.year == period.year)
            .order_by(Saving.user_id, Saving.is_shared)
        )
        return list(result.scalars().all())

    async def list_for_household_range(self, household_id: str, start: Period, end: Period) -> List[Saving]:
        """Savings rows of every period from ``start`` to ``end`` inclusive."""
        index = Saving.year * 12 + Saving.month
        result = await self.session.execute(
            self._select().where(
                Saving.household_id == household_id,
                index >= start.index,
                index <= end.index,
            )
        )
        return list(result.scalars().all())

    async def add(
        self,
        user_id: str,
        household_id: str,
        period: Period,
        is_shared: bool,
        amount: Decimal,
        reduces_from_salary: Optional[bool] = None,
    ) -> Saving:
        """Create the balance for the key, or increment it if it exists."""
        saving = await self.get(user_id, period, is_shared)
        if saving is None:
            saving = Saving(
                user_id=user_id,
                household_id=household_id,
                month=period.month,
                year=period.year,
                is_shared=is_shared,
                amount=amount,
                reduces_from_salary=True if reduces_from_salary is None else reduces_from_salary,
            )
            self.session.add(saving)
            await self.session.flush()
            return saving

        values = {"amount": Saving.amount + amount, "updated_at": utcnow()}
        if reduces_from_salary is not None:
            values["reduces_from_salary"] = reduces_from_salary
        await self.session.execute(
            update(Saving)
            .where(Saving.id == saving.id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        await self.session.refresh(saving)
        return saving

    async def debit(self, saving_id: str, amount: Decimal) -> bool:
        """
        Decrement the balance if it still covers ``amount``.

        Returns False when the balance is now smaller than ``amount``.
        """
        result = await self.session.execute(
            update(Saving)
            .where(Saving.id == saving_id, Saving.amount >= amount)
            .values(amount=Saving.amount - amount, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
