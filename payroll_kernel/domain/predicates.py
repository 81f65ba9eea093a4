"""
Shared validation predicates (``payroll_kernel.domain.predicates``).

Small pure functions composed by the per-kind validators.  None of them
raise; each answers a single question about a value.
"""

from __future__ import annotations

import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

# Area/Location, optionally with a further sub-location
# (Africa/Cairo, America/Argentina/Buenos_Aires, Etc/GMT+2).
_TIMEZONE_PATTERN = re.compile(r"^[A-Za-z]+(?:/[A-Za-z0-9_+\-]+)+$")


def at_least(value: Decimal, floor: Decimal | int) -> bool:
    return value >= Decimal(floor)


def within_range(value: Decimal, low: Decimal | int, high: Decimal | int) -> bool:
    """Inclusive on both ends."""
    return Decimal(low) <= value <= Decimal(high)


def is_percentage(value: Decimal) -> bool:
    return within_range(value, 0, 100)


def ranges_overlap(
    new_min: Decimal,
    new_max: Decimal,
    existing_min: Decimal,
    existing_max: Decimal,
) -> bool:
    """Inclusive interval intersection: sharing a boundary value overlaps."""
    return new_min <= existing_max and new_max >= existing_min


def within_length(value: str | None, limit: int) -> bool:
    """True for None or a string of at most ``limit`` characters."""
    return value is None or len(value) <= limit


def is_blank(value: str | None) -> bool:
    return value is None or not value.strip()


def matches_timezone(value: str | None) -> bool:
    return value is not None and bool(_TIMEZONE_PATTERN.match(value))


def normalize_key(value: str) -> str:
    """Case- and whitespace-insensitive key used for uniqueness checks."""
    return " ".join(value.split()).casefold()


def to_decimal(value: Any) -> Decimal | None:
    """Coerce ``value`` to Decimal, or None if it is not numeric."""
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, str):
        try:
            result = Decimal(value.strip())
        except InvalidOperation:
            return None
        return result if result.is_finite() else None
    return None


def parse_date_value(value: Any) -> date | None:
    """Parse ISO dates and datetimes; None if the value is not a date."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            return date.fromisoformat(text)
        except ValueError:
            pass
        try:
            return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
        except ValueError:
            return None
    return None
