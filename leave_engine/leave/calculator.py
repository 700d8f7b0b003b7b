"""Business-day calculator for leave requests.

Counts Monday–Friday dates in an inclusive range. Public holidays are not
excluded unless the caller passes them in (see ``HolidayProvider``).
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import AbstractSet
from zoneinfo import ZoneInfo

from leave_engine.common.constants import HALF_DAY, TIMEZONE

# Saturday (5) and Sunday (6)
WEEKEND_DAYS = frozenset({5, 6})


def local_today() -> date:
    """Today in the company timezone; cycle years and "today" views use this."""
    return datetime.now(ZoneInfo(TIMEZONE)).date()


def working_days(
    start: date,
    end: date,
    is_half_day: bool = False,
    holidays: AbstractSet[date] = frozenset(),
) -> Decimal:
    """Return the number of working days between *start* and *end* inclusive.

    A half-day request is always worth exactly 0.5 regardless of the dates.
    An inverted range (start after end) counts as zero.
    """
    if is_half_day:
        return HALF_DAY
    if start > end:
        return Decimal("0")

    count = 0
    current = start
    while current <= end:
        if current.weekday() not in WEEKEND_DAYS and current not in holidays:
            count += 1
        current += timedelta(days=1)
    return Decimal(count)
