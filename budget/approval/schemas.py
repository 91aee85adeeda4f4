"""Pydantic schemas for approvals and their proposed changes.

The stored ``proposed_data`` is keyed by the approval's ``action`` column.
``parse_proposal`` turns it back into one variant of ``Proposal``, each
variant carrying only the fields its action needs.
"""

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter

from budget.approval.models import ApprovalAction, ApprovalStatus
from budget.core.period import Period
from budget.core.schemas import ORMModel
from budget.expense.schemas import ExpenseCreate, ExpenseUpdate


class CreateExpenseProposal(ExpenseCreate):
    action: Literal["CREATE"] = "CREATE"


class UpdateExpenseProposal(ExpenseUpdate):
    action: Literal["UPDATE"] = "UPDATE"

    def changes(self) -> Dict[str, Any]:
        return self.model_dump(exclude_unset=True, exclude={"action"})


class DeleteExpenseProposal(BaseModel):
    action: Literal["DELETE"] = "DELETE"


class PeriodProposal(BaseModel):
    month: int = Field(ge=1, le=12)
    year: int

    @property
    def period(self) -> Period:
        return Period(year=self.year, month=self.month)


class WithdrawSavingsProposal(PeriodProposal):
    action: Literal["WITHDRAW_SAVINGS"] = "WITHDRAW_SAVINGS"
    amount: Decimal = Field(gt=0, max_digits=12, decimal_places=2)


class SkipMonthProposal(PeriodProposal):
    action: Literal["SKIP_MONTH"] = "SKIP_MONTH"


class UnskipMonthProposal(PeriodProposal):
    action: Literal["UNSKIP_MONTH"] = "UNSKIP_MONTH"


Proposal = Annotated[
    Union[
        CreateExpenseProposal,
        UpdateExpenseProposal,
        DeleteExpenseProposal,
        WithdrawSavingsProposal,
        SkipMonthProposal,
        UnskipMonthProposal,
    ],
    Field(discriminator="action"),
]

_proposal_adapter = TypeAdapter(Proposal)


def parse_proposal(action: ApprovalAction, data: Optional[Dict[str, Any]]):
    return _proposal_adapter.validate_python({**(data or {}), "action": ApprovalAction(action).value})


def dump_proposal(proposal: BaseModel) -> Optional[Dict[str, Any]]:
    """JSON-safe payload for storage, without the action tag."""
    data = proposal.model_dump(mode="json", exclude_unset=True, exclude={"action"})
    if isinstance(proposal, CreateExpenseProposal):
        # Creation payloads are complete, defaults included
        data = proposal.model_dump(mode="json", exclude={"action"})
    return data or None


class Approval(ORMModel):
    """Schema for approval response."""
    id: str
    household_id: str
    action: ApprovalAction
    status: ApprovalStatus
    requested_by_id: str
    expense_id: Optional[str] = None
    proposed_data: Optional[Dict[str, Any]] = None
    reviewed_by_id: Optional[str] = None
    message: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    created_at: datetime
