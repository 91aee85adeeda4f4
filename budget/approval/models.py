"""Approval model for the database."""

import enum

from sqlalchemy import JSON, Column, DateTime, Enum, ForeignKey, Index, String, Text

from budget.core.database import Base
from budget.core.ids import new_id
from budget.core.period import utcnow


class ApprovalAction(str, enum.Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    WITHDRAW_SAVINGS = "WITHDRAW_SAVINGS"
    SKIP_MONTH = "SKIP_MONTH"
    UNSKIP_MONTH = "UNSKIP_MONTH"


class ApprovalStatus(str, enum.Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


TERMINAL_STATUSES = (ApprovalStatus.ACCEPTED, ApprovalStatus.REJECTED, ApprovalStatus.CANCELLED)


class ExpenseApproval(Base):
    """
    A change request awaiting a second member's review.

    ``status`` leaves PENDING exactly once; the repository only changes it
    through a conditional update on the PENDING state.
    """
    __tablename__ = "expense_approvals"
    __table_args__ = (Index("ix_expense_approvals_household_status", "household_id", "status"),)

    id = Column(String(36), primary_key=True, default=new_id)
    household_id = Column(String(36), ForeignKey("households.id", ondelete="CASCADE"), nullable=False)
    action = Column(Enum(ApprovalAction, name="approval_action"), nullable=False)
    status = Column(Enum(ApprovalStatus, name="approval_status"), nullable=False, default=ApprovalStatus.PENDING)
    requested_by_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    expense_id = Column(String(36), ForeignKey("expenses.id", ondelete="SET NULL"), nullable=True)
    proposed_data = Column(JSON, nullable=True)
    reviewed_by_id = Column(String(36), ForeignKey("users.id"), nullable=True)
    message = Column(Text, nullable=True)
    reviewed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
