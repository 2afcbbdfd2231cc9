"""Money and time primitives.

Money is always an ``int`` of minor currency units (cents). Timestamps are
``int`` nanoseconds since the Unix epoch in UTC. The helpers here convert at
the edges (CLI input, printed reports) so the rest of the package never
handles floats for stored values.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from decimal import Decimal
from typing import Optional, Tuple

from . import log


NANOS_PER_MICROSECOND = 1_000
NANOS_PER_SECOND = 1_000_000_000
NANOS_PER_DAY = 86_400 * NANOS_PER_SECOND
MINOR_UNITS_PER_MAJOR = 100

EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


def to_timestamp(moment: datetime) -> int:
    """Convert a datetime into integer nanoseconds since the epoch.

    Naive datetimes are interpreted as UTC. The arithmetic stays in integers
    so the result is exact to the microsecond.
    """

    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    delta = moment - EPOCH
    seconds = delta.days * 86_400 + delta.seconds
    return seconds * NANOS_PER_SECOND + delta.microseconds * NANOS_PER_MICROSECOND


def from_timestamp(timestamp: int) -> datetime:
    """Convert nanoseconds since the epoch into an aware UTC datetime."""

    return EPOCH + timedelta(microseconds=timestamp // NANOS_PER_MICROSECOND)


def parse_timestamp(text: str) -> int:
    """Parse an ISO 8601 date or datetime string into a timestamp.

    Args:
        text (str): Value such as ``"2025-03-01"`` or
            ``"2025-03-01T12:30:00+02:00"``. Values without an offset are
            taken as UTC.

    Returns:
        int: Nanoseconds since the epoch.

    Raises:
        ValueError: If ``text`` is not a valid ISO 8601 value.
    """

    try:
        moment = datetime.fromisoformat(text.strip())
    except ValueError as exc:
        log.error("Unable to parse date '%s'", text)
        raise ValueError(f"Invalid date: {text!r}") from exc
    return to_timestamp(moment)


def parse_end_timestamp(text: str) -> int:
    """Parse the inclusive upper bound of a date range.

    A bare date such as ``"2025-03-31"`` covers that whole day, so it maps to
    the last nanosecond before the following midnight. Values with a time
    part are taken as given.
    """

    timestamp = parse_timestamp(text)
    if len(text.strip()) > 10:
        return timestamp
    return day_start(timestamp) + NANOS_PER_DAY - 1


def month_bounds(year: int, month: int) -> Tuple[int, int]:
    """Return the inclusive ``(start, end)`` timestamps of a calendar month.

    ``end`` is one nanosecond before the first instant of the following
    month, which suits the inclusive date filters of the calculators.
    """

    if not 1 <= month <= 12:
        raise ValueError(f"Month must be between 1 and 12, got {month}")
    start = datetime(year, month, 1, tzinfo=UTC)
    if month == 12:
        following = datetime(year + 1, 1, 1, tzinfo=UTC)
    else:
        following = datetime(year, month + 1, 1, tzinfo=UTC)
    return to_timestamp(start), to_timestamp(following) - 1


def day_start(timestamp: int) -> int:
    return timestamp - timestamp % NANOS_PER_DAY


def format_timestamp(timestamp: int) -> str:
    return from_timestamp(timestamp).strftime("%Y-%m-%d")


def format_currency(amount: int | Decimal) -> str:
    """Render minor units as a dollar string, e.g. ``1234 -> "$12.34"``."""

    major = Decimal(amount) / MINOR_UNITS_PER_MAJOR
    if major < 0:
        return f"-${-major:,.2f}"
    return f"${major:,.2f}"


def format_percent(percent: float) -> str:
    return f"{percent:g}%"


def require_positive_quantity(quantity: int) -> None:
    """Validate that a quantity is a strictly positive integer.

    Raises:
        ValueError: If ``quantity`` is zero, negative, or not an integer.
    """

    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        log.error("Quantity validation failed: %s", quantity)
        raise ValueError("Quantity must be a whole number greater than zero")


def require_nonnegative_money(amount: int) -> None:
    """Validate that a monetary value is a nonnegative integer of minor units.

    Raises:
        ValueError: If ``amount`` is negative or not an integer.
    """

    if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
        log.error("Monetary value validation failed: %s", amount)
        raise ValueError("Amount must be zero or a positive number of minor units")


def require_percent(percent: Optional[float]) -> None:
    """Validate a commission percentage is within ``[0, 100]``."""

    if percent is None:
        return
    if not 0 <= percent <= 100:
        log.error("Commission percentage validation failed: %s", percent)
        raise ValueError("Commission percentage must be between 0 and 100")
