"""Repository for household membership lookups."""

from typing import List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from budget.core.exceptions import NotFoundError
from budget.core.logger import get_logger
from budget.household.models import HouseholdMember, User
from budget.household import schemas

logger = get_logger(__name__)


class HouseholdRepository:
    """Resolves which household a user acts in and who else is in it."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session."""
        self.session = session

    async def require_membership(self, user_id: str) -> schemas.Membership:
        """
        Resolve the user's household membership.

        Raises:
            NotFoundError: If the user belongs to no household
        """
        result = await self.session.execute(
            select(HouseholdMember).where(HouseholdMember.user_id == user_id)
        )
        membership = result.scalar_one_or_none()
        if membership is None:
            logger.warning("user_not_in_household", user_id=user_id)
            raise NotFoundError("You must be in a household to manage expenses")
        return schemas.Membership.model_validate(membership)

    async def list_members(self, household_id: str) -> List[schemas.MemberInfo]:
        """Members ordered by join time, with names."""
        result = await self.session.execute(
            select(HouseholdMember.user_id, User.first_name, User.last_name)
            .join(User, User.id == HouseholdMember.user_id)
            .where(HouseholdMember.household_id == household_id)
            .order_by(HouseholdMember.joined_at, HouseholdMember.user_id)
        )
        return [
            schemas.MemberInfo(user_id=row.user_id, first_name=row.first_name, last_name=row.last_name)
            for row in result.all()
        ]

    async def ensure_member(self, user_id: str, household_id: str) -> None:
        """
        Check that ``user_id`` belongs to ``household_id``.

        Raises:
            NotFoundError: If the user is not a member of that household
        """
        result = await self.session.execute(
            select(HouseholdMember.household_id).where(HouseholdMember.user_id == user_id)
        )
        found = result.scalar_one_or_none()
        if found != household_id:
            logger.warning("payer_not_in_household", user_id=user_id, household_id=household_id)
            raise NotFoundError("The specified payer is not a member of this household")
