"""Script to seed a demo two-member household into the database."""

import asyncio
from datetime import datetime
from decimal import Decimal

from sqlalchemy import delete

from budget.approval.models import ExpenseApproval
from budget.approval.service import ApprovalService
from budget.core.database import transaction
from budget.core.init_db import get_db, init_db
from budget.core.logger import get_logger
from budget.dashboard.service import DashboardService
from budget.expense.models import Expense, ExpensePaymentStatus, RecurringOverride
from budget.expense.schemas import ExpenseCreate
from budget.expense.service import PersonalExpenseService, SharedExpenseService
from budget.household.models import Household, HouseholdMember, HouseholdRole, User
from budget.salary.models import Salary
from budget.salary.schemas import SalaryUpsert
from budget.salary.service import SalaryService
from budget.saving.models import Saving
from budget.saving.schemas import SavingChange
from budget.saving.service import SavingsLedger
from budget.settlement.models import Settlement

logger = get_logger(__name__)


async def seed_data():
    """Seed demo data into the database."""
    await init_db()

    async for db in get_db():
        # Clear existing data
        async with transaction(db):
            for model in (
                Settlement,
                ExpenseApproval,
                ExpensePaymentStatus,
                RecurringOverride,
                Expense,
                Saving,
                Salary,
                HouseholdMember,
                Household,
                User,
            ):
                await db.execute(delete(model))

        # Create household and members
        async with transaction(db):
            alex = User(email="alex@example.com", first_name="Alex", last_name="Doe")
            sam = User(email="sam@example.com", first_name="Sam", last_name="Smith")
            household = Household(name="Alex & Sam")
            db.add_all([alex, sam, household])
            await db.flush()
            db.add_all([
                HouseholdMember(
                    user_id=alex.id,
                    household_id=household.id,
                    role=HouseholdRole.OWNER,
                    joined_at=datetime(2024, 1, 1),
                ),
                HouseholdMember(
                    user_id=sam.id,
                    household_id=household.id,
                    role=HouseholdRole.MEMBER,
                    joined_at=datetime(2024, 1, 2),
                ),
            ])

        # Salaries
        salaries = SalaryService(db)
        await salaries.upsert_my_salary(alex.id, SalaryUpsert(default_amount=Decimal("4000"), current_amount=Decimal("4000")))
        await salaries.upsert_my_salary(sam.id, SalaryUpsert(default_amount=Decimal("3200"), current_amount=Decimal("3400")))

        # Personal expenses
        personal = PersonalExpenseService(db)
        await personal.create(alex.id, ExpenseCreate(
            name="Gym membership", amount=Decimal("49.99"), category="RECURRING", frequency="MONTHLY",
        ))
        await personal.create(sam.id, ExpenseCreate(
            name="Car insurance", amount=Decimal("720"), category="RECURRING", frequency="YEARLY",
            yearly_payment_strategy="INSTALLMENTS", installment_frequency="QUARTERLY",
        ))

        # Shared expenses go through approvals
        shared = SharedExpenseService(db)
        approvals = ApprovalService(db)
        rent = await shared.propose_create(alex.id, ExpenseCreate(
            name="Rent", amount=Decimal("800"), category="RECURRING", frequency="MONTHLY",
        ))
        electricity = await shared.propose_create(alex.id, ExpenseCreate(
            name="Electricity", amount=Decimal("120"), category="RECURRING", frequency="MONTHLY",
            paid_by_user_id=alex.id,
        ))
        await approvals.accept(sam.id, rent.id, "Looks right")
        await approvals.accept(sam.id, electricity.id)

        # Savings
        ledger = SavingsLedger(db)
        await ledger.add_personal(alex.id, SavingChange(amount=Decimal("500")))
        await ledger.add_shared(sam.id, SavingChange(amount=Decimal("200")))

        settlement = await DashboardService(db).settlement(alex.id)
        logger.info("demo_household_seeded", household_id=household.id, settlement=settlement.message)


if __name__ == "__main__":
    asyncio.run(seed_data())
