"""Typed failures surfaced by the budget services."""

APPROVAL_ALREADY_REVIEWED = "This approval has already been reviewed or cancelled"


class BudgetError(Exception):
    """Base exception for budget operations.

    ``kind`` is stable and machine-checkable; ``message`` is for humans.
    """

    kind = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(BudgetError):
    """Entity missing, or owned by another household."""

    kind = "not_found"


class ConflictError(BudgetError):
    """State changed under the caller or a unique period record already exists."""

    kind = "conflict"


class ForbiddenError(BudgetError):
    """Actor is not allowed to perform the transition."""

    kind = "forbidden"


class ValidationError(BudgetError):
    """Request is well-formed but cannot be applied to current balances."""

    kind = "validation"
