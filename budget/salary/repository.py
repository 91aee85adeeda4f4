"""Repository for salary operations."""

from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from budget.core.period import Period
from budget.salary.models import Salary


class SalaryRepository:
    """Repository for salary operations."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session."""
        self.session = session

    async def get(self, user_id: str, period: Period) -> Optional[Salary]:
        result = await self.session.execute(
            select(Salary).where(
                Salary.user_id == user_id,
                Salary.month == period.month,
                Salary.year == period.year,
            )
        )
        return result.scalar_one_or_none()

    async def upsert_salary(
        self,
        user_id: str,
        household_id: str,
        default_amount: Decimal,
        current_amount: Decimal,
        period: Period,
    ) -> Salary:
        """Create or overwrite the member's salary for the period."""
        salary = await self.get(user_id, period)
        if salary is None:
            salary = Salary(user_id=user_id, household_id=household_id, month=period.month, year=period.year)
            self.session.add(salary)
        salary.default_amount = default_amount
        salary.current_amount = current_amount
        await self.session.flush()
        return salary

    async def list_for_period(self, household_id: str, period: Period) -> List[Salary]:
        result = await self.session.execute(
            select(Salary).where(
                Salary.household_id == household_id,
                Salary.month == period.month,
                Salary.year == period.year,
            )
        )
        return list(result.scalars().all())

    async def list_for_range(self, household_id: str, start: Period, end: Period) -> List[Salary]:
        """Salaries of the household for every period in ``[start, end]``."""
        index = Salary.year * 12 + Salary.month
        result = await self.session.execute(
            select(Salary).where(
                Salary.household_id == household_id,
                index >= start.index,
                index <= end.index,
            )
        )
        return list(result.scalars().all())
