"""Calendar periods and the injectable clock."""

from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import List, Optional


@dataclass(frozen=True, order=True)
class Period:
    """A calendar month. Ordering follows ``(year, month)``."""

    year: int
    month: int

    def __post_init__(self):
        if not 1 <= self.month <= 12:
            raise ValueError(f"month must be between 1 and 12, got {self.month}")

    @property
    def index(self) -> int:
        return self.year * 12 + self.month

    def shift(self, months: int) -> "Period":
        zero_based = self.year * 12 + (self.month - 1) + months
        return Period(year=zero_based // 12, month=zero_based % 12 + 1)

    def trailing(self, count: int) -> List["Period"]:
        """The ``count`` periods ending at this one, oldest first."""
        return [self.shift(-offset) for offset in range(count - 1, -1, -1)]

    def __str__(self) -> str:
        return f"{self.month:02d}/{self.year}"


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Clock:
    """Wall-clock source. Replace with ``FixedClock`` to pin the current period."""

    def now(self) -> datetime:
        return utcnow()

    def today(self) -> date:
        return self.now().date()

    def current_period(self) -> Period:
        today = self.today()
        return Period(year=today.year, month=today.month)


class FixedClock(Clock):
    def __init__(self, moment: datetime):
        self._moment = moment

    def now(self) -> datetime:
        return self._moment


def resolve_period(
    month: Optional[int] = None,
    year: Optional[int] = None,
    clock: Optional[Clock] = None,
) -> Period:
    """Fill a missing month or year from the clock's current period."""
    current = (clock or Clock()).current_period()
    return Period(
        year=year if year is not None else current.year,
        month=month if month is not None else current.month,
    )
