from datetime import datetime
from types import SimpleNamespace

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine

import budget.approval.models
import budget.expense.models
import budget.salary.models
import budget.saving.models
import budget.settlement.models
from budget.core.database import DatabaseManager, transaction
from budget.core.period import FixedClock
from budget.household.models import Household, HouseholdMember, HouseholdRole, User


@pytest.fixture
def clock():
    return FixedClock(datetime(2026, 3, 15, 9, 30))


@pytest_asyncio.fixture
async def db_manager(tmp_path):
    # A file, not :memory:, so separate sessions see each other's commits
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'budget.db'}")
    manager = DatabaseManager(engine)
    await manager.create_schema()
    yield manager
    await manager.dispose()


@pytest_asyncio.fixture
async def session(db_manager):
    async with db_manager.get_db() as session:
        yield session


@pytest_asyncio.fixture
async def other_session(db_manager):
    async with db_manager.get_db() as session:
        yield session


@pytest_asyncio.fixture
async def household(session):
    """Alex and Sam share a household; Kim lives elsewhere; Lou has none."""
    alex = User(email="alex@example.com", first_name="Alex", last_name="Doe")
    sam = User(email="sam@example.com", first_name="Sam", last_name="Smith")
    kim = User(email="kim@example.com", first_name="Kim")
    lou = User(email="lou@example.com", first_name="Lou")
    home = Household(name="Alex & Sam")
    elsewhere = Household(name="Kim's place")

    async with transaction(session):
        session.add_all([alex, sam, kim, lou, home, elsewhere])
        await session.flush()
        session.add_all([
            HouseholdMember(user_id=alex.id, household_id=home.id, role=HouseholdRole.OWNER, joined_at=datetime(2025, 1, 1)),
            HouseholdMember(user_id=sam.id, household_id=home.id, joined_at=datetime(2025, 1, 2)),
            HouseholdMember(user_id=kim.id, household_id=elsewhere.id, role=HouseholdRole.OWNER),
        ])

    return SimpleNamespace(
        id=home.id,
        other_id=elsewhere.id,
        alex=alex.id,
        sam=sam.id,
        kim=kim.id,
        lou=lou.id,
    )
