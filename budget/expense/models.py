"""Expense models for the database."""

import enum

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)

from budget.core.database import Base
from budget.core.ids import new_id
from budget.core.period import utcnow


class ExpenseType(str, enum.Enum):
    PERSONAL = "PERSONAL"
    SHARED = "SHARED"


class ExpenseCategory(str, enum.Enum):
    RECURRING = "RECURRING"
    ONE_TIME = "ONE_TIME"


class ExpenseFrequency(str, enum.Enum):
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"


class YearlyPaymentStrategy(str, enum.Enum):
    FULL = "FULL"
    INSTALLMENTS = "INSTALLMENTS"


class InstallmentFrequency(str, enum.Enum):
    MONTHLY = "MONTHLY"
    QUARTERLY = "QUARTERLY"
    SEMI_ANNUAL = "SEMI_ANNUAL"


class PaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    CANCELLED = "CANCELLED"


class Expense(Base):
    """A recurring or one-off cost. Never hard-deleted: see ``deleted_at``."""
    __tablename__ = "expenses"

    id = Column(String(36), primary_key=True, default=new_id)
    household_id = Column(String(36), ForeignKey("households.id", ondelete="CASCADE"), nullable=False, index=True)
    created_by_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    type = Column(Enum(ExpenseType, name="expense_type"), nullable=False)
    name = Column(String(100), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    category = Column(Enum(ExpenseCategory, name="expense_category"), nullable=False)
    frequency = Column(Enum(ExpenseFrequency, name="expense_frequency"), nullable=True)
    yearly_payment_strategy = Column(Enum(YearlyPaymentStrategy, name="yearly_payment_strategy"), nullable=True)
    installment_frequency = Column(Enum(InstallmentFrequency, name="installment_frequency"), nullable=True)
    installment_count = Column(Integer, nullable=True)
    payment_month = Column(Integer, nullable=True)
    month = Column(Integer, nullable=True)
    year = Column(Integer, nullable=True)
    # NULL means split equally among members
    paid_by_user_id = Column(String(36), ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
    deleted_at = Column(DateTime, nullable=True)


class ExpensePaymentStatus(Base):
    """Whether one period's installment of an expense was paid."""
    __tablename__ = "expense_payment_statuses"
    __table_args__ = (UniqueConstraint("expense_id", "month", "year"),)

    id = Column(String(36), primary_key=True, default=new_id)
    expense_id = Column(String(36), ForeignKey("expenses.id", ondelete="CASCADE"), nullable=False, index=True)
    month = Column(Integer, nullable=False)
    year = Column(Integer, nullable=False)
    status = Column(Enum(PaymentStatus, name="payment_status"), nullable=False, default=PaymentStatus.PENDING)
    paid_at = Column(DateTime, nullable=True)
    paid_by_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)


class RecurringOverride(Base):
    """Per-period skip flag for an expense."""
    __tablename__ = "recurring_overrides"
    __table_args__ = (UniqueConstraint("expense_id", "month", "year"),)

    id = Column(String(36), primary_key=True, default=new_id)
    expense_id = Column(String(36), ForeignKey("expenses.id", ondelete="CASCADE"), nullable=False, index=True)
    month = Column(Integer, nullable=False)
    year = Column(Integer, nullable=False)
    skipped = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
