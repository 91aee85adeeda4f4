"""Dashboard read models and the settlement audit write."""

from collections import defaultdict
from typing import Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from budget.approval.repository import ApprovalRepository
from budget.core.cache import CacheFacade, CacheKeys, NullCache
from budget.core.config import Settings, get_settings
from budget.core.database import transaction
from budget.core.exceptions import ConflictError, ValidationError
from budget.core.logger import get_logger
from budget.core.money import money_sum, round_money
from budget.core.period import Clock, Period, resolve_period
from budget.dashboard import aggregator
from budget.dashboard.schemas import (
    Dashboard,
    PeriodSnapshot,
    SavingsHistoryItem,
    SavingsSummary,
    YearlyAverage,
)
from budget.expense.models import ExpenseType
from budget.expense.repository import ExpenseRepository
from budget.household.repository import HouseholdRepository
from budget.household.schemas import MemberInfo
from budget.salary.repository import SalaryRepository
from budget.saving.repository import SavingRepository
from budget.settlement.calculator import calculate_settlement
from budget.settlement.repository import SettlementRepository
from budget.settlement.schemas import SettlementRecord, SettlementResult

logger = get_logger(__name__)

SETTLEMENT_EXISTS = "Settlement has already been marked as paid for this month"


class DashboardService:
    """
    Household overview for a period.

    Every read resolves the caller's household first; a caller without one
    gets ``NotFoundError``. Month and year default to the clock's current
    period.
    """

    def __init__(
        self,
        session: AsyncSession,
        cache: Optional[CacheFacade] = None,
        clock: Optional[Clock] = None,
        settings: Optional[Settings] = None,
    ):
        self.session = session
        self.settings = settings or get_settings()
        self.households = HouseholdRepository(session)
        self.expenses = ExpenseRepository(session)
        self.salaries = SalaryRepository(session)
        self.savings_repo = SavingRepository(session)
        self.approvals = ApprovalRepository(session)
        self.settlements = SettlementRepository(session)
        self.cache = cache or NullCache()
        self.keys = CacheKeys(self.settings)
        self.clock = clock or Clock()

    async def overview(self, user_id: str, month: Optional[int] = None, year: Optional[int] = None) -> Dashboard:
        logger.debug("get_dashboard_overview", user_id=user_id)
        membership = await self.households.require_membership(user_id)
        household_id = membership.household_id
        period = resolve_period(month, year, self.clock)

        async def fetch():
            members = await self.households.list_members(household_id)
            snapshot = await self._snapshot(household_id, members, period)
            settlement = await self._settlement(household_id, members, user_id, period)
            pending = await self.approvals.count_pending(household_id, exclude_requested_by=user_id)
            return Dashboard(
                **dict(snapshot),
                settlement=settlement,
                pending_approvals_count=pending,
                month=period.month,
                year=period.year,
            )

        return await self.cache.get_or_set(
            self.keys.dashboard(household_id, period, user_id), self.keys.summary_ttl, fetch
        )

    async def savings(self, user_id: str, month: Optional[int] = None, year: Optional[int] = None) -> SavingsSummary:
        logger.debug("get_savings_summary", user_id=user_id)
        membership = await self.households.require_membership(user_id)
        household_id = membership.household_id
        period = resolve_period(month, year, self.clock)

        async def fetch():
            members = await self.households.list_members(household_id)
            snapshot = await self._snapshot(household_id, members, period)
            return snapshot.savings

        return await self.cache.get_or_set(
            self.keys.savings_summary(household_id, period), self.keys.summary_ttl, fetch
        )

    async def settlement(self, user_id: str, month: Optional[int] = None, year: Optional[int] = None) -> SettlementResult:
        logger.debug("get_settlement", user_id=user_id)
        membership = await self.households.require_membership(user_id)
        household_id = membership.household_id
        period = resolve_period(month, year, self.clock)

        async def fetch():
            members = await self.households.list_members(household_id)
            return await self._settlement(household_id, members, user_id, period)

        return await self.cache.get_or_set(
            self.keys.settlement(household_id, period, user_id), self.keys.settlement_ttl, fetch
        )

    async def mark_settlement_paid(
        self, user_id: str, month: Optional[int] = None, year: Optional[int] = None
    ) -> SettlementRecord:
        """
        Record that the period's settlement was paid.

        Raises:
            NotFoundError: If the user has no household
            ConflictError: If the period already has a settlement record
            ValidationError: If nothing is owed
        """
        logger.info("mark_settlement_paid", user_id=user_id)
        membership = await self.households.require_membership(user_id)
        household_id = membership.household_id
        period = resolve_period(month, year, self.clock)

        try:
            async with transaction(self.session):
                if await self.settlements.get_for_period(household_id, period) is not None:
                    logger.warning("settlement_already_paid", household_id=household_id, period=str(period))
                    raise ConflictError(SETTLEMENT_EXISTS)

                members = await self.households.list_members(household_id)
                result = await self._settlement(household_id, members, user_id, period)
                if result.amount == 0:
                    logger.warning("settlement_not_needed", household_id=household_id, period=str(period))
                    raise ValidationError("No settlement needed: shared expenses are balanced")

                record = await self.settlements.create(
                    household_id,
                    period,
                    result.amount,
                    paid_by_user_id=result.owed_by_user_id,
                    paid_to_user_id=result.owed_to_user_id,
                )
        except IntegrityError as exc:
            # Another member recorded the same period concurrently
            logger.warning("settlement_already_paid", household_id=household_id, period=str(period))
            raise ConflictError(SETTLEMENT_EXISTS) from exc

        logger.info("settlement_recorded", settlement_id=record.id, household_id=household_id)
        await self.cache.invalidate_prefix(self.keys.household_prefix(household_id))
        return SettlementRecord.model_validate(record)

    async def yearly_average(
        self, user_id: str, month: Optional[int] = None, year: Optional[int] = None
    ) -> YearlyAverage:
        """Average the period figures over the trailing window ending at the period."""
        logger.debug("get_yearly_average", user_id=user_id)
        membership = await self.households.require_membership(user_id)
        household_id = membership.household_id
        end = resolve_period(month, year, self.clock)

        async def fetch():
            members = await self.households.list_members(household_id)
            periods = end.trailing(self.settings.AVERAGE_WINDOW_MONTHS)
            expenses = await self.expenses.list_for_household(household_id)
            salaries = _by_period(await self.salaries.list_for_range(household_id, periods[0], end))
            savings = _by_period(await self.savings_repo.list_for_household_range(household_id, periods[0], end))

            snapshots = []
            for period in periods:
                snapshots.append(
                    aggregator.period_snapshot(
                        members,
                        period,
                        expenses,
                        salaries.get(period, []),
                        savings.get(period, []),
                        await self.expenses.paid_expense_ids(household_id, period),
                        await self.expenses.skipped_expense_ids(household_id, period),
                    )
                )

            average = aggregator.average_models(snapshots)
            return YearlyAverage(
                **dict(average),
                months=len(periods),
                start_month=periods[0].month,
                start_year=periods[0].year,
                end_month=end.month,
                end_year=end.year,
            )

        return await self.cache.get_or_set(
            self.keys.yearly_average(household_id, end), self.keys.summary_ttl, fetch
        )

    async def savings_history(
        self, user_id: str, month: Optional[int] = None, year: Optional[int] = None
    ) -> List[SavingsHistoryItem]:
        """Household personal and shared savings per month, oldest first."""
        logger.debug("get_savings_history", user_id=user_id)
        membership = await self.households.require_membership(user_id)
        end = resolve_period(month, year, self.clock)
        periods = end.trailing(self.settings.AVERAGE_WINDOW_MONTHS)

        rows = _by_period(
            await self.savings_repo.list_for_household_range(membership.household_id, periods[0], end)
        )
        history = []
        for period in periods:
            records = rows.get(period, [])
            history.append(
                SavingsHistoryItem(
                    month=period.month,
                    year=period.year,
                    personal_savings=round_money(money_sum(s.amount for s in records if not s.is_shared)),
                    shared_savings=round_money(money_sum(s.amount for s in records if s.is_shared)),
                )
            )
        return history

    async def _snapshot(self, household_id: str, members: List[MemberInfo], period: Period) -> PeriodSnapshot:
        return aggregator.period_snapshot(
            members,
            period,
            await self.expenses.list_for_household(household_id),
            await self.salaries.list_for_period(household_id, period),
            await self.savings_repo.list_for_household(household_id, period),
            await self.expenses.paid_expense_ids(household_id, period),
            await self.expenses.skipped_expense_ids(household_id, period),
        )

    async def _settlement(
        self, household_id: str, members: List[MemberInfo], user_id: str, period: Period
    ) -> SettlementResult:
        shared = await self.expenses.list_for_household(household_id, type=ExpenseType.SHARED)
        skipped = await self.expenses.skipped_expense_ids(household_id, period, type=ExpenseType.SHARED)
        existing = await self.settlements.get_for_period(household_id, period)
        return calculate_settlement(
            members,
            shared,
            user_id,
            period,
            skipped_ids=skipped,
            is_settled=existing is not None,
            currency_symbol=self.settings.CURRENCY_SYMBOL,
        )


def _by_period(rows) -> Dict[Period, list]:
    grouped = defaultdict(list)
    for row in rows:
        grouped[Period(year=row.year, month=row.month)].append(row)
    return grouped
