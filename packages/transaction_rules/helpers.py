"""Date helpers callable by name from inside a rule condition.

Every helper works on the UTC calendar representation of its argument so that
rule results do not depend on the timezone of the machine evaluating them.
Accepted inputs are aware ``datetime`` values (converted to UTC), naive
``datetime`` values (taken to already be UTC), plain ``date`` values and
ISO-8601 strings such as ``"2025-10-04T10:00:00Z"``.
"""

from __future__ import annotations

import math
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta
from enum import Enum
from typing import Any


class HelperResult(Enum):
    NUMBER = "number"
    BOOLEAN = "boolean"


def as_utc(value: Any) -> datetime:
    """Return ``value`` as an aware UTC ``datetime``.

    Raises ``TypeError`` for unsupported types and ``ValueError`` for strings
    that are not ISO-8601 timestamps.
    """

    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=UTC)
    if isinstance(value, str):
        return as_utc(datetime.fromisoformat(value.strip()))
    raise TypeError(f"expected a date, got {type(value).__name__}")


def day_of_week(value: Any) -> int:
    """0 for Sunday through 6 for Saturday."""
    return (as_utc(value).weekday() + 1) % 7


def month(value: Any) -> int:
    return as_utc(value).month


def year(value: Any) -> int:
    return as_utc(value).year


def day(value: Any) -> int:
    return as_utc(value).day


def is_weekend(value: Any) -> bool:
    return day_of_week(value) in (0, 6)


def week_number(value: Any) -> int:
    """ISO-8601 week number.

    The date is moved to the Thursday of its Monday-based week; the week number
    is then counted from January 1st of that Thursday's year.
    """

    d = as_utc(value).date()
    thursday = d + timedelta(days=4 - d.isoweekday())
    year_start = date(thursday.year, 1, 1)
    return math.ceil(((thursday - year_start).days + 1) / 7)


@dataclass(frozen=True, slots=True)
class Helper:
    name: str
    func: Callable[[Any], int | bool]
    result: HelperResult


# Names are part of the rule language and keep its camelCase spelling.
HELPERS: Mapping[str, Helper] = {
    h.name: h
    for h in (
        Helper("dayOfWeek", day_of_week, HelperResult.NUMBER),
        Helper("month", month, HelperResult.NUMBER),
        Helper("year", year, HelperResult.NUMBER),
        Helper("day", day, HelperResult.NUMBER),
        Helper("isWeekend", is_weekend, HelperResult.BOOLEAN),
        Helper("getWeekNumber", week_number, HelperResult.NUMBER),
    )
}


__all__ = [
    "HELPERS",
    "Helper",
    "HelperResult",
    "as_utc",
    "day",
    "day_of_week",
    "is_weekend",
    "month",
    "week_number",
    "year",
]
