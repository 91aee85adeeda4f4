"""Saving model for the database."""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, Numeric, String, UniqueConstraint

from budget.core.database import Base
from budget.core.ids import new_id
from budget.core.period import utcnow


class Saving(Base):
    """Savings balance for one member, period and pot (personal or shared)."""
    __tablename__ = "savings"
    __table_args__ = (UniqueConstraint("user_id", "month", "year", "is_shared"),)

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    household_id = Column(String(36), ForeignKey("households.id", ondelete="CASCADE"), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    month = Column(Integer, nullable=False)
    year = Column(Integer, nullable=False)
    is_shared = Column(Boolean, nullable=False, default=False)
    reduces_from_salary = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
