"""Pydantic schemas for household membership."""

from budget.core.schemas import ORMModel
from budget.household.models import HouseholdRole


class Membership(ORMModel):
    """Resolved membership of the acting user."""
    user_id: str
    household_id: str
    role: HouseholdRole


class MemberInfo(ORMModel):
    """Household member with display names."""
    user_id: str
    first_name: str
    last_name: str = ""
