"""Settlement model for the database."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String, UniqueConstraint

from budget.core.database import Base
from budget.core.ids import new_id
from budget.core.period import utcnow


class Settlement(Base):
    """Audit record of a paid monthly settlement. One per household and period."""
    __tablename__ = "settlements"
    __table_args__ = (UniqueConstraint("household_id", "month", "year"),)

    id = Column(String(36), primary_key=True, default=new_id)
    household_id = Column(String(36), ForeignKey("households.id", ondelete="CASCADE"), nullable=False, index=True)
    month = Column(Integer, nullable=False)
    year = Column(Integer, nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    paid_by_user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    paid_to_user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    paid_at = Column(DateTime, nullable=False, default=utcnow)
