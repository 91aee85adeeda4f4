from datetime import datetime
from decimal import Decimal

import pytest

from budget.core.config import Settings
from budget.core.exceptions import ConflictError, NotFoundError
from budget.core.money import format_money, money_sum, round_money
from budget.core.period import FixedClock, Period, resolve_period


def test_period_shift_crosses_year_boundaries():
    assert Period(2026, 1).shift(-1) == Period(2025, 12)
    assert Period(2025, 12).shift(1) == Period(2026, 1)
    assert Period(2026, 3).shift(-15) == Period(2024, 12)


def test_trailing_is_oldest_first():
    periods = Period(2026, 2).trailing(3)
    assert periods == [Period(2025, 12), Period(2026, 1), Period(2026, 2)]
    assert periods == sorted(periods)


def test_period_rejects_invalid_month():
    with pytest.raises(ValueError):
        Period(2026, 13)


def test_resolve_period_fills_missing_parts_from_clock():
    clock = FixedClock(datetime(2026, 3, 15))
    assert resolve_period(clock=clock) == Period(2026, 3)
    assert resolve_period(month=7, clock=clock) == Period(2026, 7)
    assert resolve_period(year=2025, clock=clock) == Period(2025, 3)


def test_round_money_is_half_up():
    assert round_money(Decimal("0.005")) == Decimal("0.01")
    assert round_money(Decimal("-0.005")) == Decimal("-0.01")
    assert round_money(0.1) == Decimal("0.10")
    assert money_sum([Decimal("0.1"), 0.2, "0.3"]) == Decimal("0.6")
    assert format_money(Decimal("60"), "$") == "$60.00"


def test_errors_carry_a_stable_kind():
    assert NotFoundError("gone").kind == "not_found"
    assert NotFoundError("gone").message == "gone"
    assert ConflictError("late").kind == "conflict"
    assert str(ConflictError("late")) == "late"


def test_database_urls():
    settings = Settings(DB_USER="app", DB_PASSWORD="secret", DB_HOST="db", DB_PORT=3307, DB_NAME="budget")
    assert settings.async_db_url == "mysql+aiomysql://app:secret@db:3307/budget"
    assert settings.sync_db_url == "mysql+pymysql://app:secret@db:3307/budget"

    explicit = Settings(DB_URL="mysql+aiomysql://u:p@h/db")
    assert explicit.async_db_url == "mysql+aiomysql://u:p@h/db"
    assert explicit.sync_db_url == "mysql+pymysql://u:p@h/db"
