"""Settlement period state machine.

A period is created ``open`` with an opening snapshot of every rep's balance
as of its start date, and moves to ``closed`` exactly once, capturing the
closing snapshot at that moment. There is no reopening and no deletion; a
closed period is never modified again.

The functions here are pure: they take the period and a
:class:`LedgerSnapshot` and return a new frozen :class:`SettlementPeriod`.
Persisting the result is the caller's job (see
:mod:`consignflow.core_logic`).
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Iterable, List, Mapping, Optional, Sequence, Tuple

from . import log
from .calculations import RepBalance, balances_by_rep, compute_balances
from .commission import CommissionSettings
from .constants import SettlementStatus
from .data_manager import AdjustmentRow, ConsignmentRow, PayoutRow, ProductRow, RepRow, ReturnRow, SaleRow
from .errors import AlreadyClosedError, InvalidRangeError, PeriodNotFoundError


@dataclass(frozen=True)
class LedgerSnapshot:
    """A consistent view of every record list, read once per operation."""

    reps: Sequence[RepRow] = ()
    products: Sequence[ProductRow] = ()
    consignments: Sequence[ConsignmentRow] = ()
    sales: Sequence[SaleRow] = ()
    returns: Sequence[ReturnRow] = ()
    payouts: Sequence[PayoutRow] = ()
    adjustments: Sequence[AdjustmentRow] = ()


@dataclass(frozen=True)
class SettlementPeriod:
    """A date range whose balances are snapshotted when it opens and closes."""

    period_id: int
    start_date: int
    end_date: int
    status: SettlementStatus = SettlementStatus.OPEN
    statement_ids: Tuple[int, ...] = ()
    opening_balances: Mapping[int, RepBalance] = field(default_factory=dict)
    closing_balances: Mapping[int, RepBalance] = field(default_factory=dict)

    @property
    def is_closed(self) -> bool:
        return self.status is SettlementStatus.CLOSED

    def covers(self, date: int) -> bool:
        """Return whether ``date`` lies in ``[start_date, end_date]``."""

        return self.start_date <= date <= self.end_date


def snapshot_balances(
    ledger: LedgerSnapshot,
    commission_settings: Optional[CommissionSettings],
    *,
    start_date: Optional[int] = None,
    end_date: Optional[int] = None,
) -> Mapping[int, RepBalance]:
    """Run the balance calculator over ``ledger`` and index it by rep id."""

    return balances_by_rep(
        compute_balances(
            ledger.reps,
            ledger.sales,
            ledger.returns,
            ledger.payouts,
            ledger.products,
            commission_settings,
            start_date=start_date,
            end_date=end_date,
        )
    )


def create_settlement_period(
    period_id: int,
    start_date: int,
    end_date: int,
    ledger: LedgerSnapshot,
    commission_settings: Optional[CommissionSettings] = None,
) -> SettlementPeriod:
    """Create an open period and capture its opening balances.

    Opening balances cover every record strictly before ``start_date`` with
    no lower bound. Timestamps are integers, so "before" is the inclusive
    bound ``start_date - 1``.

    Args:
        period_id (int): Identifier issued by the store.
        start_date (int): First covered instant, in nanoseconds.
        end_date (int): Last covered instant, in nanoseconds.
        ledger (LedgerSnapshot): Records to snapshot.
        commission_settings (CommissionSettings | None): Rates to apply.

    Returns:
        SettlementPeriod: New period in ``open`` status.

    Raises:
        InvalidRangeError: If ``start_date >= end_date``.
    """

    if start_date >= end_date:
        log.warning(
            "Rejected settlement period with start %s not before end %s",
            start_date,
            end_date,
        )
        raise InvalidRangeError(start_date, end_date)

    opening = snapshot_balances(ledger, commission_settings, end_date=start_date - 1)
    log.info(
        "Created settlement period %s (%s..%s) with %d opening balances",
        period_id,
        start_date,
        end_date,
        len(opening),
    )
    return SettlementPeriod(
        period_id=period_id,
        start_date=start_date,
        end_date=end_date,
        status=SettlementStatus.OPEN,
        opening_balances=opening,
    )


def close_settlement_period(
    period: SettlementPeriod,
    ledger: LedgerSnapshot,
    commission_settings: Optional[CommissionSettings] = None,
) -> SettlementPeriod:
    """Close ``period`` and capture its closing balances.

    Closing balances are cumulative: every record up to and including
    ``end_date``, with no lower bound. The snapshot is taken once and never
    recomputed.

    Raises:
        AlreadyClosedError: If ``period`` is already closed.
    """

    if period.is_closed:
        log.warning("Settlement period %s is already closed", period.period_id)
        raise AlreadyClosedError(period.period_id)

    closing = snapshot_balances(ledger, commission_settings, end_date=period.end_date)
    log.info(
        "Closed settlement period %s with %d closing balances",
        period.period_id,
        len(closing),
    )
    return replace(period, status=SettlementStatus.CLOSED, closing_balances=closing)


def find_period(periods: Iterable[SettlementPeriod], period_id: int) -> SettlementPeriod:
    """Return the period with ``period_id``.

    Raises:
        PeriodNotFoundError: If no period has that id.
    """

    for period in periods:
        if period.period_id == period_id:
            return period
    log.warning("Settlement period lookup failed for id '%s'", period_id)
    raise PeriodNotFoundError(period_id)


def close_period_by_id(
    periods: Iterable[SettlementPeriod],
    period_id: int,
    ledger: LedgerSnapshot,
    commission_settings: Optional[CommissionSettings] = None,
) -> SettlementPeriod:
    """Look up ``period_id`` and close it.

    Raises:
        PeriodNotFoundError: If the id is unknown.
        AlreadyClosedError: If the period is already closed.
    """

    return close_settlement_period(find_period(periods, period_id), ledger, commission_settings)


def list_periods(
    periods: Iterable[SettlementPeriod],
    status: Optional[SettlementStatus] = None,
) -> List[SettlementPeriod]:
    """Return periods, optionally only those in ``status``."""

    return [period for period in periods if status is None or period.status is status]


def closed_periods(periods: Iterable[SettlementPeriod]) -> List[SettlementPeriod]:
    return list_periods(periods, SettlementStatus.CLOSED)


def periods_for_rep(periods: Iterable[SettlementPeriod], rep_id: int) -> List[SettlementPeriod]:
    """Return periods where ``rep_id`` appears in either balance snapshot."""

    return [
        period
        for period in periods
        if rep_id in period.opening_balances or rep_id in period.closing_balances
    ]
