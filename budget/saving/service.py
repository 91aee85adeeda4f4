"""Savings ledger: personal and shared balances per member and period."""

from decimal import Decimal
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from budget.approval.models import ApprovalAction
from budget.approval.repository import ApprovalRepository
from budget.approval.schemas import Approval, WithdrawSavingsProposal, dump_proposal
from budget.core.cache import CacheFacade, CacheKeys, NullCache, invalidate_approvals
from budget.core.database import transaction
from budget.core.exceptions import ValidationError
from budget.core.logger import get_logger
from budget.core.period import Clock, Period, resolve_period
from budget.household.repository import HouseholdRepository
from budget.saving import schemas
from budget.saving.repository import SavingRepository

logger = get_logger(__name__)


async def debit_balance(
    savings: SavingRepository, user_id: str, period: Period, is_shared: bool, amount: Decimal
) -> None:
    """
    Withdraw ``amount`` from one balance.

    Raises:
        ValidationError: If the balance does not exist or no longer covers the amount
    """
    saving = await savings.get(user_id, period, is_shared)
    if saving is None or not await savings.debit(saving.id, amount):
        available = saving.amount if saving is not None else Decimal("0")
        logger.warning(
            "insufficient_savings",
            user_id=user_id,
            period=str(period),
            is_shared=is_shared,
            requested=str(amount),
            available=str(available),
        )
        raise ValidationError(f"Insufficient savings: {available} available, {amount} requested")


class SavingsLedger:
    """
    Add and withdraw operations on savings balances.

    Personal balances and shared contributions change immediately. Taking
    money out of the shared pot only creates a WITHDRAW_SAVINGS approval;
    the balance is debited when another member accepts it.
    """

    def __init__(
        self,
        session: AsyncSession,
        cache: Optional[CacheFacade] = None,
        clock: Optional[Clock] = None,
    ):
        self.session = session
        self.households = HouseholdRepository(session)
        self.savings = SavingRepository(session)
        self.approvals = ApprovalRepository(session)
        self.cache = cache or NullCache()
        self.keys = CacheKeys()
        self.clock = clock or Clock()

    async def get_my_savings(self, user_id: str, month: Optional[int] = None, year: Optional[int] = None) -> List[schemas.Saving]:
        logger.debug("get_my_savings", user_id=user_id)
        await self.households.require_membership(user_id)
        period = resolve_period(month, year, self.clock)
        return [schemas.Saving.model_validate(s) for s in await self.savings.list_for_user(user_id, period)]

    async def get_household_savings(
        self, user_id: str, month: Optional[int] = None, year: Optional[int] = None
    ) -> List[schemas.Saving]:
        logger.debug("get_household_savings", user_id=user_id)
        membership = await self.households.require_membership(user_id)
        period = resolve_period(month, year, self.clock)

        async def fetch():
            rows = await self.savings.list_for_household(membership.household_id, period)
            return [schemas.Saving.model_validate(s) for s in rows]

        return await self.cache.get_or_set(
            self.keys.savings(membership.household_id, period), self.keys.summary_ttl, fetch
        )

    async def add_personal(self, user_id: str, change: schemas.SavingChange) -> schemas.Saving:
        return await self._add(user_id, change, is_shared=False)

    async def add_shared(self, user_id: str, change: schemas.SavingChange) -> schemas.Saving:
        return await self._add(user_id, change, is_shared=True)

    async def withdraw_personal(self, user_id: str, change: schemas.SavingChange) -> schemas.Saving:
        logger.info("withdraw_personal_saving", user_id=user_id, amount=str(change.amount))
        period = resolve_period(change.month, change.year, self.clock)
        async with transaction(self.session):
            membership = await self.households.require_membership(user_id)
            await debit_balance(self.savings, user_id, period, False, change.amount)
            saving = await self.savings.get(user_id, period, False)
            await self.session.refresh(saving)
        await self.cache.invalidate_prefix(self.keys.household_prefix(membership.household_id))
        return schemas.Saving.model_validate(saving)

    async def request_shared_withdrawal(self, user_id: str, change: schemas.SavingChange) -> Approval:
        """
        Propose taking ``change.amount`` out of the user's shared savings.

        Raises:
            ValidationError: If the shared balance does not cover the amount today
        """
        logger.info("request_shared_withdrawal", user_id=user_id, amount=str(change.amount))
        period = resolve_period(change.month, change.year, self.clock)
        async with transaction(self.session):
            membership = await self.households.require_membership(user_id)
            saving = await self.savings.get(user_id, period, True)
            available = saving.amount if saving is not None else Decimal("0")
            if available < change.amount:
                logger.warning("insufficient_shared_savings", user_id=user_id, available=str(available))
                raise ValidationError(f"Insufficient savings: {available} available, {change.amount} requested")

            proposal = WithdrawSavingsProposal(amount=change.amount, month=period.month, year=period.year)
            approval = await self.approvals.create(
                household_id=membership.household_id,
                action=ApprovalAction.WITHDRAW_SAVINGS,
                requested_by_id=user_id,
                proposed_data=dump_proposal(proposal),
            )
        logger.info("approval_created", approval_id=approval.id, action=approval.action.value)
        await invalidate_approvals(self.cache, membership.household_id)
        return Approval.model_validate(approval)

    async def _add(self, user_id: str, change: schemas.SavingChange, is_shared: bool) -> schemas.Saving:
        logger.info("add_saving", user_id=user_id, amount=str(change.amount), is_shared=is_shared)
        period = resolve_period(change.month, change.year, self.clock)
        async with transaction(self.session):
            membership = await self.households.require_membership(user_id)
            saving = await self.savings.add(
                user_id,
                membership.household_id,
                period,
                is_shared,
                change.amount,
                change.reduces_from_salary,
            )
        await self.cache.invalidate_prefix(self.keys.household_prefix(membership.household_id))
        return schemas.Saving.model_validate(saving)
