"""Salary service: each member's default and current income per period."""

from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from budget.core.cache import CacheFacade, CacheKeys, NullCache
from budget.core.database import transaction
from budget.core.exceptions import NotFoundError
from budget.core.logger import get_logger
from budget.core.period import Clock, resolve_period
from budget.household.repository import HouseholdRepository
from budget.salary import schemas
from budget.salary.repository import SalaryRepository

logger = get_logger(__name__)


class SalaryService:
    """
    Members set their own salary; everyone in the household can read all of them.

    Month and year default to the clock's current period.
    """

    def __init__(
        self,
        session: AsyncSession,
        cache: Optional[CacheFacade] = None,
        clock: Optional[Clock] = None,
    ):
        self.session = session
        self.households = HouseholdRepository(session)
        self.salaries = SalaryRepository(session)
        self.cache = cache or NullCache()
        self.keys = CacheKeys()
        self.clock = clock or Clock()

    async def upsert_my_salary(self, user_id: str, data: schemas.SalaryUpsert) -> schemas.Salary:
        """
        Create or overwrite the caller's salary for the period.

        Raises:
            NotFoundError: If the user has no household
        """
        logger.info("upsert_salary", user_id=user_id)
        period = resolve_period(data.month, data.year, self.clock)
        async with transaction(self.session):
            membership = await self.households.require_membership(user_id)
            salary = await self.salaries.upsert_salary(
                user_id,
                membership.household_id,
                data.default_amount,
                data.current_amount,
                period,
            )
        logger.info("salary_upserted", salary_id=salary.id, user_id=user_id, period=str(period))
        await self.cache.invalidate_prefix(self.keys.household_prefix(membership.household_id))
        return schemas.Salary.model_validate(salary)

    async def get_my_salary(
        self, user_id: str, month: Optional[int] = None, year: Optional[int] = None
    ) -> schemas.Salary:
        """
        Raises:
            NotFoundError: If the user has no household or no salary for the period
        """
        logger.debug("get_my_salary", user_id=user_id)
        await self.households.require_membership(user_id)
        period = resolve_period(month, year, self.clock)
        salary = await self.salaries.get(user_id, period)
        if salary is None:
            logger.warning("salary_not_found", user_id=user_id, period=str(period))
            raise NotFoundError("No salary record found for this month")
        return schemas.Salary.model_validate(salary)

    async def get_household_salaries(
        self, user_id: str, month: Optional[int] = None, year: Optional[int] = None
    ) -> List[schemas.Salary]:
        logger.debug("get_household_salaries", user_id=user_id)
        membership = await self.households.require_membership(user_id)
        period = resolve_period(month, year, self.clock)

        async def fetch():
            rows = await self.salaries.list_for_period(membership.household_id, period)
            return [schemas.Salary.model_validate(s) for s in rows]

        return await self.cache.get_or_set(
            self.keys.salaries(membership.household_id, period), self.keys.summary_ttl, fetch
        )
