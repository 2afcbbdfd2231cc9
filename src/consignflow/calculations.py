"""Balance and inventory calculators.

Both calculators are pure functions over snapshots of the transaction lists.
They never raise on dangling references: an unknown product prices at zero
and an unknown name renders as ``"Unknown"`` so reporting keeps working on
partially inconsistent data.

Money arithmetic stays in integer minor units. The commission step is the
only place fractions appear; it is carried out in :class:`~decimal.Decimal`
so the result of ``net_sales * rate / 100`` is not compounded with binary
floating error downstream.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterable, List, Mapping, Optional, Protocol, Sequence, Tuple, TypeVar

from . import log
from .commission import CommissionSettings, resolve_commission
from .constants import UNKNOWN_NAME
from .data_manager import ConsignmentRow, PayoutRow, ProductRow, RepRow, ReturnRow, SaleRow


HUNDRED = Decimal(100)


@dataclass(frozen=True)
class RepBalance:
    """Aggregated position of one rep over a date window."""

    rep_id: int
    rep_name: str
    total_sales: int = 0
    total_returns: int = 0
    total_payouts: int = 0
    commission: Decimal = Decimal(0)
    amount_owed: Decimal = Decimal(0)

    @property
    def net_sales(self) -> int:
        return self.total_sales - self.total_returns


@dataclass(frozen=True)
class InventoryItem:
    """Net quantity of a product currently held by a rep."""

    rep_id: int
    rep_name: str
    product_id: int
    product_name: str
    quantity: int


class _Dated(Protocol):
    rep_id: int
    date: int


DatedT = TypeVar("DatedT", bound=_Dated)


def in_window(date: int, start_date: Optional[int] = None, end_date: Optional[int] = None) -> bool:
    """Return whether ``date`` lies in ``[start_date, end_date]``.

    Both bounds are inclusive and a ``None`` bound is unbounded on that side.
    """

    if start_date is not None and date < start_date:
        return False
    if end_date is not None and date > end_date:
        return False
    return True


def filter_records(
    records: Iterable[DatedT],
    *,
    rep_id: Optional[int] = None,
    start_date: Optional[int] = None,
    end_date: Optional[int] = None,
) -> List[DatedT]:
    """Keep records for ``rep_id`` (any rep when ``None``) inside the window."""

    return [
        record
        for record in records
        if (rep_id is None or record.rep_id == rep_id)
        and in_window(record.date, start_date, end_date)
    ]


def commission_amount(net_sales: int, rate: float) -> Decimal:
    """Return ``net_sales * rate / 100`` as a Decimal."""

    return Decimal(net_sales) * Decimal(str(rate)) / HUNDRED


def return_value(returned: ReturnRow, prices: Mapping[int, int]) -> int:
    """Value a return at the current catalog price; unknown products count as 0."""

    price = prices.get(returned.product_id)
    if price is None:
        log.debug(
            "Return %s references unknown product %s; valuing at 0",
            returned.return_id,
            returned.product_id,
        )
        return 0
    return price * returned.quantity


def compute_balances(
    reps: Sequence[RepRow],
    sales: Sequence[SaleRow],
    returns: Sequence[ReturnRow],
    payouts: Sequence[PayoutRow],
    products: Sequence[ProductRow],
    commission_settings: Optional[CommissionSettings] = None,
    start_date: Optional[int] = None,
    end_date: Optional[int] = None,
) -> List[RepBalance]:
    """Compute one :class:`RepBalance` per rep, in the order ``reps`` is given.

    Per rep, over records inside the inclusive ``[start_date, end_date]``
    window:

    * ``total_sales`` sums ``unit_price * quantity`` using the price captured
      on each sale.
    * ``total_returns`` sums ``current catalog price * quantity``; a return
      whose product no longer resolves is valued at ``0``.
    * ``total_payouts`` sums payout amounts.
    * ``commission = (total_sales - total_returns) * rate / 100`` with the rate
      from :func:`~consignflow.commission.resolve_commission`.
    * ``amount_owed = commission - total_payouts``. Neither value is clamped;
      negative results mean returns exceeded sales or the rep was overpaid.

    Args:
        reps (Sequence[RepRow]): Every rep that should appear in the result.
        sales (Sequence[SaleRow]): Sale records of all reps.
        returns (Sequence[ReturnRow]): Return records of all reps.
        payouts (Sequence[PayoutRow]): Payout records of all reps.
        products (Sequence[ProductRow]): Catalog used to price returns.
        commission_settings (CommissionSettings | None): Rates to apply; the
            defaults are used when ``None``.
        start_date (int | None): Inclusive lower bound in nanoseconds.
        end_date (int | None): Inclusive upper bound in nanoseconds.

    Returns:
        list[RepBalance]: Balances in rep order; reps without matching
            records get all-zero balances.
    """

    prices = {product.product_id: product.price for product in products}
    sales_by_rep = _group_by_rep(filter_records(sales, start_date=start_date, end_date=end_date))
    returns_by_rep = _group_by_rep(filter_records(returns, start_date=start_date, end_date=end_date))
    payouts_by_rep = _group_by_rep(filter_records(payouts, start_date=start_date, end_date=end_date))

    balances: List[RepBalance] = []
    for rep in reps:
        total_sales = sum(sale.unit_price * sale.quantity for sale in sales_by_rep.get(rep.rep_id, ()))
        total_returns = sum(return_value(returned, prices) for returned in returns_by_rep.get(rep.rep_id, ()))
        total_payouts = sum(payout.amount for payout in payouts_by_rep.get(rep.rep_id, ()))

        rate = resolve_commission(rep.rep_id, commission_settings)
        commission = commission_amount(total_sales - total_returns, rate)
        balances.append(
            RepBalance(
                rep_id=rep.rep_id,
                rep_name=rep.rep_name,
                total_sales=total_sales,
                total_returns=total_returns,
                total_payouts=total_payouts,
                commission=commission,
                amount_owed=commission - total_payouts,
            )
        )

    log.debug(
        "Computed balances for %d reps (window %s..%s)",
        len(balances),
        start_date,
        end_date,
    )
    return balances


def balances_by_rep(balances: Iterable[RepBalance]) -> Dict[int, RepBalance]:
    """Index a balance list by rep id."""

    return {balance.rep_id: balance for balance in balances}


def compute_inventory(
    reps: Sequence[RepRow],
    consignments: Sequence[ConsignmentRow],
    sales: Sequence[SaleRow],
    returns: Sequence[ReturnRow],
    products: Sequence[ProductRow],
    start_date: Optional[int] = None,
    end_date: Optional[int] = None,
) -> List[InventoryItem]:
    """Compute on-hand quantity per ``(rep, product)`` pair.

    Consignments inside the window add to the pair's quantity. Sales and
    returns inside the window subtract from it, but only when the pair has
    already been created by a consignment; a sale or return with no prior
    consignment for its pair is ignored rather than opening a negative entry.
    Pairs that net to exactly zero are dropped. Negative results are kept so
    the inconsistency stays visible.

    Returns:
        list[InventoryItem]: Items in the order their pair was first consigned.
    """

    rep_names = {rep.rep_id: rep.rep_name for rep in reps}
    product_names = {product.product_id: product.product_name for product in products}
    quantities: Dict[Tuple[int, int], int] = {}

    for consignment in filter_records(consignments, start_date=start_date, end_date=end_date):
        key = (consignment.rep_id, consignment.product_id)
        quantities[key] = quantities.get(key, 0) + consignment.quantity

    skipped = 0
    for outgoing in (
        *filter_records(sales, start_date=start_date, end_date=end_date),
        *filter_records(returns, start_date=start_date, end_date=end_date),
    ):
        key = (outgoing.rep_id, outgoing.product_id)
        if key not in quantities:
            skipped += 1
            continue
        quantities[key] -= outgoing.quantity

    if skipped:
        log.debug("Ignored %d sale/return records with no prior consignment", skipped)

    return [
        InventoryItem(
            rep_id=rep_id,
            rep_name=rep_names.get(rep_id, UNKNOWN_NAME),
            product_id=product_id,
            product_name=product_names.get(product_id, UNKNOWN_NAME),
            quantity=quantity,
        )
        for (rep_id, product_id), quantity in quantities.items()
        if quantity != 0
    ]


def _group_by_rep(records: Iterable[DatedT]) -> Mapping[int, List[DatedT]]:
    grouped: Dict[int, List[DatedT]] = {}
    for record in records:
        grouped.setdefault(record.rep_id, []).append(record)
    return grouped
