"""Household membership models for the database."""

import enum

from sqlalchemy import Column, DateTime, Enum, ForeignKey, Integer, String

from budget.core.database import Base
from budget.core.ids import new_id
from budget.core.period import utcnow


class HouseholdRole(str, enum.Enum):
    OWNER = "OWNER"
    MEMBER = "MEMBER"


class User(Base):
    """A person who can belong to at most one household."""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=new_id)
    email = Column(String(255), unique=True, nullable=False)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False, default="")
    created_at = Column(DateTime, nullable=False, default=utcnow)


class Household(Base):
    __tablename__ = "households"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(100), nullable=False)
    max_members = Column(Integer, nullable=False, default=2)
    created_at = Column(DateTime, nullable=False, default=utcnow)


class HouseholdMember(Base):
    """Membership row; ``user_id`` is unique so a user has one household."""
    __tablename__ = "household_members"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id"), unique=True, nullable=False)
    household_id = Column(String(36), ForeignKey("households.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(Enum(HouseholdRole, name="household_role"), nullable=False, default=HouseholdRole.MEMBER)
    joined_at = Column(DateTime, nullable=False, default=utcnow)
