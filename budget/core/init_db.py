"""Database initialization and session dependency."""

from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession

from budget.core.database import DatabaseManager
# Import all models to ensure they're registered
import budget.household.models
import budget.expense.models
import budget.salary.models
import budget.saving.models
import budget.approval.models
import budget.settlement.models

# Create a single instance of DatabaseManager
db_manager = DatabaseManager()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield a database session for one unit of work."""
    async with db_manager.get_db() as session:
        yield session


async def init_db() -> None:
    """Create all tables."""
    await db_manager.create_schema()
