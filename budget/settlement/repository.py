"""Repository for settlement records."""

from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from budget.core.period import Period, utcnow
from budget.settlement.models import Settlement


class SettlementRepository:
    """Repository for settlement records."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session."""
        self.session = session

    async def get_for_period(self, household_id: str, period: Period) -> Optional[Settlement]:
        result = await self.session.execute(
            select(Settlement).where(
                Settlement.household_id == household_id,
                Settlement.month == period.month,
                Settlement.year == period.year,
            )
        )
        return result.scalar_one_or_none()

    async def create(
        self,
        household_id: str,
        period: Period,
        amount: Decimal,
        paid_by_user_id: str,
        paid_to_user_id: str,
    ) -> Settlement:
        settlement = Settlement(
            household_id=household_id,
            month=period.month,
            year=period.year,
            amount=amount,
            paid_by_user_id=paid_by_user_id,
            paid_to_user_id=paid_to_user_id,
            paid_at=utcnow(),
        )
        self.session.add(settlement)
        await self.session.flush()
        return settlement
