"""Settlement lock checks for transaction writes.

Consignments, sales, returns, and payouts dated inside a closed settlement
period are rejected. Adjustments are never checked: they are how a closed
period gets corrected.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

from . import log
from .errors import LockedPeriodError
from .settlement import SettlementPeriod
from .units import format_timestamp


@dataclass(frozen=True)
class LockCheckResult:
    """Outcome of :func:`check_lock`."""

    locked: bool
    reason: Optional[str] = None
    period: Optional[SettlementPeriod] = None


def lock_message(period: SettlementPeriod) -> str:
    return (
        "This date falls within closed settlement period "
        f"#{period.period_id} ({format_timestamp(period.start_date)} - "
        f"{format_timestamp(period.end_date)}). Transactions in closed periods "
        "cannot be added or edited; record an adjustment instead."
    )


def check_lock(date: int, closed_periods: Iterable[SettlementPeriod]) -> LockCheckResult:
    """Decide whether a write dated ``date`` is permitted.

    The date is locked when some closed period satisfies
    ``start_date <= date <= end_date``. Periods are scanned in the order
    given and only the first match is reported, so overlapping periods are
    harmless. Periods that are not closed are skipped.
    """

    for period in closed_periods:
        if not period.is_closed:
            continue
        if period.covers(date):
            return LockCheckResult(locked=True, reason=lock_message(period), period=period)
    return LockCheckResult(locked=False)


def ensure_unlocked(date: int, closed_periods: Iterable[SettlementPeriod]) -> None:
    """Raise when ``date`` falls inside a closed period.

    Raises:
        LockedPeriodError: Carrying the matching period and a message that
            points the user at adjustments.
    """

    result = check_lock(date, closed_periods)
    if result.locked:
        log.warning("Rejected write dated %s: %s", date, result.reason)
        raise LockedPeriodError(result.reason or "Date is locked", period=result.period)
