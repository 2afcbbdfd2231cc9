"""Business logic layer for the consignment ledger.

This module orchestrates the record store, the commission settings, and the
settlement engine. It consumes the Data Access Layer (DAL) for all I/O while
ensuring every mutation passes through the domain rules: references must
resolve, quantities and amounts must be sane, and transaction writes dated
inside a closed settlement period are refused.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from openpyxl.workbook import Workbook

from . import commission, data_manager, locking, log, settlement
from .calculations import InventoryItem, RepBalance, compute_balances, compute_inventory, filter_records, return_value
from .commission import CommissionSettings, resolve_commission
from .constants import EXPECTED_SCHEMA_VERSION, UNKNOWN_NAME, SettlementStatus, SheetName, SnapshotKind
from .errors import (
    AlreadyClosedError,
    BusinessRuleViolation,
    InvalidRangeError,
    LockedPeriodError,
    MissingReferenceError,
    PeriodNotFoundError,
)
from .locking import LockCheckResult
from .settlement import LedgerSnapshot, SettlementPeriod
from .units import (
    month_bounds,
    require_nonnegative_money,
    require_percent,
    require_positive_quantity,
    to_timestamp,
)


__all__ = [
    "AlreadyClosedError",
    "BusinessRuleViolation",
    "InvalidRangeError",
    "LockedPeriodError",
    "MissingReferenceError",
    "PeriodNotFoundError",
]


@dataclass(frozen=True)
class RuntimeContext:
    """Container for configuration and workbook references used by the BLL."""

    settings: data_manager.ConfigSettings
    workbook: Workbook
    _cache: Dict[str, Dict[str, Any]] = field(default_factory=dict, repr=False, compare=False)


@dataclass(frozen=True)
class ConsignmentCommand:
    """User intent for handing stock to a rep."""

    rep_id: int
    product_id: int
    quantity: int
    date: Optional[int] = None


@dataclass(frozen=True)
class SaleCommand:
    """User intent for recording a rep's sale.

    ``unit_price`` defaults to the product's catalog price at recording time.
    """

    rep_id: int
    product_id: int
    quantity: int
    unit_price: Optional[int] = None
    date: Optional[int] = None


@dataclass(frozen=True)
class ReturnCommand:
    """User intent for recording goods handed back to the owner."""

    rep_id: int
    product_id: int
    quantity: int
    date: Optional[int] = None


@dataclass(frozen=True)
class PayoutCommand:
    """User intent for recording cash paid to a rep."""

    rep_id: int
    amount: int
    date: Optional[int] = None
    notes: str = ""


@dataclass(frozen=True)
class AdjustmentCommand:
    """User intent for a signed manual balance correction."""

    rep_id: int
    amount: int
    notes: str
    date: Optional[int] = None


@dataclass(frozen=True)
class RepStatement:
    """Monthly statement for one rep.

    ``return_values`` lines up with ``returns`` and prices each return at the
    current catalog price, so the lines add up to ``balance.total_returns``.
    """

    rep: data_manager.RepRow
    start_date: int
    end_date: int
    commission_rate: float
    balance: RepBalance
    sales: Sequence[data_manager.SaleRow]
    returns: Sequence[data_manager.ReturnRow]
    payouts: Sequence[data_manager.PayoutRow]
    adjustments: Sequence[data_manager.AdjustmentRow]
    return_values: Sequence[int] = ()

    @property
    def total_adjustments(self) -> int:
        return sum(adjustment.amount for adjustment in self.adjustments)

    @property
    def net_due(self) -> Decimal:
        """Amount owed for the month once adjustments are applied."""

        return self.balance.amount_owed + self.total_adjustments


# Cache bucket name -> (DAL iterator name, id attribute on the row).
_RECORD_SOURCES: Mapping[str, tuple[str, str]] = {
    "products": ("iter_products", "product_id"),
    "reps": ("iter_reps", "rep_id"),
    "consignments": ("iter_consignments", "consignment_id"),
    "sales": ("iter_sales", "sale_id"),
    "returns": ("iter_returns", "return_id"),
    "payouts": ("iter_payouts", "payout_id"),
    "adjustments": ("iter_adjustments", "adjustment_id"),
}


def _resolve_timestamp(candidate: Optional[int]) -> int:
    """Return ``candidate`` or, when ``None``, the current UTC time in nanoseconds."""

    return candidate if candidate is not None else to_timestamp(datetime.now(UTC))


def _get_cache_bucket(context: RuntimeContext, name: str) -> Dict[str, Any]:
    """Return a mutable cache bucket dedicated to the supplied name.

    Buckets are plain dictionaries holding precomputed query results so
    repeated reads do not rescan the workbook.
    """

    bucket = context._cache.get(name)
    if bucket is None:
        log.debug("Initializing cache bucket '%s'", name)
        bucket = {}
        context._cache[name] = bucket
    return bucket


def _invalidate_cache(context: RuntimeContext, *names: str) -> None:
    """Evict one or more cache buckets after mutating workbook state.

    Missing buckets are ignored so callers can request targeted invalidation
    without checking first.
    """

    if not names:
        return

    log.debug("Invalidating cache buckets: %s", ", ".join(names))

    for name in names:
        context._cache.pop(name, None)


def _ensure_records_cache(context: RuntimeContext, name: str) -> Dict[str, Any]:
    """Populate the ``all`` list and ``by_id`` index of a record bucket on demand."""

    bucket = _get_cache_bucket(context, name)
    if "all" not in bucket:
        iterator_name, id_attribute = _RECORD_SOURCES[name]
        iterator: Callable[[Workbook], Any] = getattr(data_manager, iterator_name)
        records = list(iterator(context.workbook))
        bucket["all"] = records
        bucket["by_id"] = {getattr(record, id_attribute): record for record in records}
        log.debug("Populated %s cache with %d entries", name, len(records))
    return bucket


def _ensure_periods_cache(context: RuntimeContext) -> Dict[str, Any]:
    """Hydrate settlement periods together with their balance snapshots.

    Snapshot rows are grouped by period and snapshot kind. Rep names come
    from the current ``Reps`` sheet; a rep missing from it keeps its id with
    an ``"Unknown"`` name.
    """

    bucket = _get_cache_bucket(context, "periods")
    if "all" not in bucket:
        rep_names = {rep.rep_id: rep.rep_name for rep in list_reps(context)}
        snapshots: Dict[tuple[int, str], Dict[int, RepBalance]] = {}
        for row in data_manager.iter_period_balances(context.workbook):
            snapshots.setdefault((row.period_id, row.snapshot), {})[row.rep_id] = _balance_from_row(row, rep_names)

        periods: List[SettlementPeriod] = []
        for row in data_manager.iter_settlement_periods(context.workbook):
            periods.append(
                SettlementPeriod(
                    period_id=row.period_id,
                    start_date=row.start_date,
                    end_date=row.end_date,
                    status=SettlementStatus(row.status),
                    statement_ids=row.statement_ids,
                    opening_balances=snapshots.get((row.period_id, SnapshotKind.OPENING.value), {}),
                    closing_balances=snapshots.get((row.period_id, SnapshotKind.CLOSING.value), {}),
                )
            )
        bucket["all"] = periods
        bucket["by_id"] = {period.period_id: period for period in periods}
        log.debug("Populated settlement period cache with %d entries", len(periods))
    return bucket


def _balance_from_row(row: data_manager.PeriodBalanceRow, rep_names: Mapping[int, str]) -> RepBalance:
    return RepBalance(
        rep_id=row.rep_id,
        rep_name=rep_names.get(row.rep_id, UNKNOWN_NAME),
        total_sales=row.total_sales,
        total_returns=row.total_returns,
        total_payouts=row.total_payouts,
        commission=row.commission,
        amount_owed=row.amount_owed,
    )


def _balance_rows(period_id: int, kind: SnapshotKind, balances: Mapping[int, RepBalance]) -> List[data_manager.PeriodBalanceRow]:
    return [
        data_manager.PeriodBalanceRow(
            period_id=period_id,
            snapshot=kind.value,
            rep_id=balance.rep_id,
            total_sales=balance.total_sales,
            total_returns=balance.total_returns,
            total_payouts=balance.total_payouts,
            commission=balance.commission,
            amount_owed=balance.amount_owed,
        )
        for balance in balances.values()
    ]


def load_runtime_context(config_path: Optional[Path] = None) -> RuntimeContext:
    """Load configuration settings and a live workbook for the BLL.

    Args:
        config_path (Path | None): Optional override path for the configuration
            file. When omitted the data layer performs its upward search from
            the current working directory.

    Returns:
        RuntimeContext: Context bundling settings, workbook, and an empty
            cache.

    Raises:
        FileNotFoundError: If the configuration file or workbook cannot be
            located.
        KeyError: When mandatory configuration options are missing.
    """
    located_config = data_manager.find_config_file(config_path)
    resolved_config = Path(located_config).expanduser().resolve()
    parser = data_manager.read_config(resolved_config)
    settings = data_manager.parse_settings(parser, base_path=resolved_config.parent)
    workbook = data_manager.open_workbook(settings.data_file)
    log.info("Loaded runtime context for workbook '%s'", settings.data_file)
    return RuntimeContext(settings=settings, workbook=workbook)


def ensure_schema_version(context: RuntimeContext) -> None:
    """Validate workbook compatibility before mutating state.

    Raises:
        RuntimeError: If the schema version declared in the configuration does
            not match ``EXPECTED_SCHEMA_VERSION``.
    """
    if context.settings.schema_version != EXPECTED_SCHEMA_VERSION:
        log.error(
            "Workbook schema mismatch: expected %s, found %s",
            EXPECTED_SCHEMA_VERSION,
            context.settings.schema_version,
        )
        raise RuntimeError(
            "Workbook schema mismatch: expected %s, found %s"
            % (EXPECTED_SCHEMA_VERSION, context.settings.schema_version)
        )

    log.debug("Schema version '%s' validated", context.settings.schema_version)


def list_products(context: RuntimeContext) -> List[data_manager.ProductRow]:
    """Return a copy of the cached product catalog in sheet order."""
    return list(_ensure_records_cache(context, "products")["all"])


def list_reps(context: RuntimeContext) -> List[data_manager.RepRow]:
    """Return a copy of the cached rep list in sheet order."""
    return list(_ensure_records_cache(context, "reps")["all"])


def _list_rep_records(context: RuntimeContext, name: str, rep_id: Optional[int]) -> List[Any]:
    records = _ensure_records_cache(context, name)["all"]
    if rep_id is None:
        return list(records)
    return [record for record in records if record.rep_id == rep_id]


def list_consignments(context: RuntimeContext, *, rep_id: Optional[int] = None) -> List[data_manager.ConsignmentRow]:
    return _list_rep_records(context, "consignments", rep_id)


def list_sales(context: RuntimeContext, *, rep_id: Optional[int] = None) -> List[data_manager.SaleRow]:
    return _list_rep_records(context, "sales", rep_id)


def list_returns(context: RuntimeContext, *, rep_id: Optional[int] = None) -> List[data_manager.ReturnRow]:
    return _list_rep_records(context, "returns", rep_id)


def list_payouts(context: RuntimeContext, *, rep_id: Optional[int] = None) -> List[data_manager.PayoutRow]:
    return _list_rep_records(context, "payouts", rep_id)


def list_adjustments(context: RuntimeContext, *, rep_id: Optional[int] = None) -> List[data_manager.AdjustmentRow]:
    return _list_rep_records(context, "adjustments", rep_id)


def get_product(context: RuntimeContext, product_id: int) -> data_manager.ProductRow:
    """Resolve a product record by its identifier.

    Raises:
        MissingReferenceError: If ``product_id`` is absent from the workbook.
    """
    cache = _ensure_records_cache(context, "products")
    try:
        return cache["by_id"][product_id]
    except KeyError as exc:
        log.warning("Product lookup failed for id '%s'", product_id)
        raise MissingReferenceError(f"Unknown product id: {product_id}") from exc


def get_rep(context: RuntimeContext, rep_id: int) -> data_manager.RepRow:
    """Resolve a rep record by its identifier.

    Raises:
        MissingReferenceError: If ``rep_id`` cannot be located.
    """
    cache = _ensure_records_cache(context, "reps")
    try:
        return cache["by_id"][rep_id]
    except KeyError as exc:
        log.warning("Rep lookup failed for id '%s'", rep_id)
        raise MissingReferenceError(f"Unknown rep id: {rep_id}") from exc


def load_ledger(context: RuntimeContext) -> LedgerSnapshot:
    """Read every record list once into a :class:`LedgerSnapshot`."""
    return LedgerSnapshot(
        reps=tuple(list_reps(context)),
        products=tuple(list_products(context)),
        consignments=tuple(list_consignments(context)),
        sales=tuple(list_sales(context)),
        returns=tuple(list_returns(context)),
        payouts=tuple(list_payouts(context)),
        adjustments=tuple(list_adjustments(context)),
    )


def get_commission_settings(context: RuntimeContext) -> CommissionSettings:
    """Return commission settings, loading them from disk on first access."""
    bucket = _get_cache_bucket(context, "commission")
    if "settings" not in bucket:
        bucket["settings"] = data_manager.load_commission_settings(context.settings.commission_file)
    return bucket["settings"]


def _store_commission_settings(context: RuntimeContext, updated: CommissionSettings) -> CommissionSettings:
    data_manager.save_commission_settings(context.settings.commission_file, updated)
    _get_cache_bucket(context, "commission")["settings"] = updated
    return updated


def set_default_commission(context: RuntimeContext, percent: float) -> CommissionSettings:
    """Validate and persist a new default commission percentage.

    Raises:
        ValueError: If ``percent`` is outside ``[0, 100]``.
    """
    require_percent(percent)
    updated = commission.set_default_commission(get_commission_settings(context), percent)
    _store_commission_settings(context, updated)
    log.info("Default commission set to %s%%", percent)
    return updated


def set_rep_override(context: RuntimeContext, rep_id: int, percent: Optional[float]) -> CommissionSettings:
    """Validate and persist a per-rep commission override.

    ``percent=None`` removes the override so the rep reverts to the default.

    Raises:
        MissingReferenceError: If ``rep_id`` is unknown.
        ValueError: If ``percent`` is outside ``[0, 100]``.
    """
    get_rep(context, rep_id)
    require_percent(percent)
    updated = commission.set_rep_override(get_commission_settings(context), rep_id, percent)
    _store_commission_settings(context, updated)
    if percent is None:
        log.info("Cleared commission override for rep '%s'", rep_id)
    else:
        log.info("Commission override for rep '%s' set to %s%%", rep_id, percent)
    return updated


def add_product(context: RuntimeContext, *, product_name: str, price: int) -> data_manager.ProductRow:
    """Register a catalog product with the next sequential id.

    Raises:
        ValueError: If the name is blank or the price is negative.
    """
    name = product_name.strip()
    if not name:
        raise ValueError("Product name must not be empty")
    require_nonnegative_money(price)

    record = data_manager.ProductRow(
        product_id=data_manager.next_id(context.workbook, SheetName.PRODUCTS.value),
        product_name=name,
        price=price,
    )
    data_manager.append_product(context.workbook, record)
    _invalidate_cache(context, "products")
    log.info("Added product '%s' (id=%s, price=%s)", record.product_name, record.product_id, record.price)
    return record


def add_rep(context: RuntimeContext, *, rep_name: str) -> data_manager.RepRow:
    """Register a sales rep with the next sequential id.

    Raises:
        ValueError: If the name is blank.
    """
    name = rep_name.strip()
    if not name:
        raise ValueError("Rep name must not be empty")

    record = data_manager.RepRow(
        rep_id=data_manager.next_id(context.workbook, SheetName.REPS.value),
        rep_name=name,
    )
    data_manager.append_rep(context.workbook, record)
    _invalidate_cache(context, "reps", "periods")
    log.info("Added rep '%s' (id=%s)", record.rep_name, record.rep_id)
    return record


def ensure_date_unlocked(context: RuntimeContext, date: int) -> None:
    """Refuse a transaction write dated inside a closed settlement period.

    Raises:
        LockedPeriodError: If ``date`` is covered by a closed period.
    """
    locking.ensure_unlocked(date, settlement.closed_periods(list_settlement_periods(context)))


def record_consignment(context: RuntimeContext, command: ConsignmentCommand) -> data_manager.ConsignmentRow:
    """Validate and append a consignment.

    Raises:
        MissingReferenceError: If the rep or product is unknown.
        ValueError: If the quantity is not a positive integer.
        LockedPeriodError: If the date falls in a closed settlement period.
    """
    get_rep(context, command.rep_id)
    get_product(context, command.product_id)
    require_positive_quantity(command.quantity)
    date = _resolve_timestamp(command.date)
    ensure_date_unlocked(context, date)

    record = data_manager.ConsignmentRow(
        consignment_id=data_manager.next_id(context.workbook, SheetName.CONSIGNMENTS.value),
        rep_id=command.rep_id,
        product_id=command.product_id,
        quantity=command.quantity,
        date=date,
    )
    data_manager.append_consignment(context.workbook, record)
    _invalidate_cache(context, "consignments")
    log.info(
        "Recorded consignment '%s' of product '%s' to rep '%s' (quantity=%s)",
        record.consignment_id,
        record.product_id,
        record.rep_id,
        record.quantity,
    )
    return record


def record_sale(context: RuntimeContext, command: SaleCommand) -> data_manager.SaleRow:
    """Validate and append a sale.

    When ``command.unit_price`` is ``None`` the product's current catalog
    price is captured on the sale; later price changes do not affect it.

    Raises:
        MissingReferenceError: If the rep or product is unknown.
        ValueError: If quantity or unit price validation fails.
        LockedPeriodError: If the date falls in a closed settlement period.
    """
    get_rep(context, command.rep_id)
    product = get_product(context, command.product_id)
    require_positive_quantity(command.quantity)
    unit_price = product.price if command.unit_price is None else command.unit_price
    require_nonnegative_money(unit_price)
    date = _resolve_timestamp(command.date)
    ensure_date_unlocked(context, date)

    record = data_manager.SaleRow(
        sale_id=data_manager.next_id(context.workbook, SheetName.SALES.value),
        rep_id=command.rep_id,
        product_id=command.product_id,
        quantity=command.quantity,
        unit_price=unit_price,
        date=date,
    )
    data_manager.append_sale(context.workbook, record)
    _invalidate_cache(context, "sales")
    log.info(
        "Recorded sale '%s' by rep '%s' (product=%s, quantity=%s, unit_price=%s)",
        record.sale_id,
        record.rep_id,
        record.product_id,
        record.quantity,
        record.unit_price,
    )
    return record


def record_return(context: RuntimeContext, command: ReturnCommand) -> data_manager.ReturnRow:
    """Validate and append a return.

    Raises:
        MissingReferenceError: If the rep or product is unknown.
        ValueError: If the quantity is not a positive integer.
        LockedPeriodError: If the date falls in a closed settlement period.
    """
    get_rep(context, command.rep_id)
    get_product(context, command.product_id)
    require_positive_quantity(command.quantity)
    date = _resolve_timestamp(command.date)
    ensure_date_unlocked(context, date)

    record = data_manager.ReturnRow(
        return_id=data_manager.next_id(context.workbook, SheetName.RETURNS.value),
        rep_id=command.rep_id,
        product_id=command.product_id,
        quantity=command.quantity,
        date=date,
    )
    data_manager.append_return(context.workbook, record)
    _invalidate_cache(context, "returns")
    log.info(
        "Recorded return '%s' from rep '%s' (product=%s, quantity=%s)",
        record.return_id,
        record.rep_id,
        record.product_id,
        record.quantity,
    )
    return record


def record_payout(context: RuntimeContext, command: PayoutCommand) -> data_manager.PayoutRow:
    """Validate and append a payout.

    Raises:
        MissingReferenceError: If the rep is unknown.
        ValueError: If the amount is negative.
        LockedPeriodError: If the date falls in a closed settlement period.
    """
    get_rep(context, command.rep_id)
    require_nonnegative_money(command.amount)
    date = _resolve_timestamp(command.date)
    ensure_date_unlocked(context, date)

    record = data_manager.PayoutRow(
        payout_id=data_manager.next_id(context.workbook, SheetName.PAYOUTS.value),
        rep_id=command.rep_id,
        amount=command.amount,
        date=date,
        notes=command.notes or "",
    )
    data_manager.append_payout(context.workbook, record)
    _invalidate_cache(context, "payouts")
    log.info("Recorded payout '%s' to rep '%s' (amount=%s)", record.payout_id, record.rep_id, record.amount)
    return record


def record_adjustment(context: RuntimeContext, command: AdjustmentCommand) -> data_manager.AdjustmentRow:
    """Append a signed balance adjustment.

    Adjustments are the sanctioned way to correct a closed period, so they are
    accepted on any date, including dates inside closed settlement periods.

    Raises:
        MissingReferenceError: If the rep is unknown.
        ValueError: If ``amount`` is not an integer or ``notes`` is blank.
    """
    get_rep(context, command.rep_id)
    if isinstance(command.amount, bool) or not isinstance(command.amount, int):
        raise ValueError("Adjustment amount must be a whole number of minor units")
    notes = (command.notes or "").strip()
    if not notes:
        raise ValueError("Please provide a reason for this adjustment")
    date = _resolve_timestamp(command.date)

    record = data_manager.AdjustmentRow(
        adjustment_id=data_manager.next_id(context.workbook, SheetName.ADJUSTMENTS.value),
        rep_id=command.rep_id,
        amount=command.amount,
        date=date,
        notes=notes,
    )
    data_manager.append_adjustment(context.workbook, record)
    _invalidate_cache(context, "adjustments")
    log.info(
        "Recorded adjustment '%s' for rep '%s' (amount=%s)",
        record.adjustment_id,
        record.rep_id,
        record.amount,
    )
    return record


def calculate_rep_balances(
    context: RuntimeContext,
    *,
    start_date: Optional[int] = None,
    end_date: Optional[int] = None,
) -> List[RepBalance]:
    """Compute every rep's balance over an optional inclusive window."""
    ledger = load_ledger(context)
    return compute_balances(
        ledger.reps,
        ledger.sales,
        ledger.returns,
        ledger.payouts,
        ledger.products,
        get_commission_settings(context),
        start_date=start_date,
        end_date=end_date,
    )


def calculate_inventory(
    context: RuntimeContext,
    *,
    start_date: Optional[int] = None,
    end_date: Optional[int] = None,
) -> List[InventoryItem]:
    """Compute on-hand quantities per rep and product over an optional window."""
    ledger = load_ledger(context)
    return compute_inventory(
        ledger.reps,
        ledger.consignments,
        ledger.sales,
        ledger.returns,
        ledger.products,
        start_date=start_date,
        end_date=end_date,
    )


def build_statement(context: RuntimeContext, rep_id: int, year: int, month: int) -> RepStatement:
    """Assemble a monthly statement for one rep.

    The statement window is the whole calendar month in UTC. It carries the
    rep's balance for the month, the individual sale, return, payout, and
    adjustment lines dated inside it, and the effective commission rate.

    Raises:
        MissingReferenceError: If ``rep_id`` is unknown.
        ValueError: If ``month`` is not between 1 and 12.
    """
    rep = get_rep(context, rep_id)
    start_date, end_date = month_bounds(year, month)
    ledger = load_ledger(context)
    settings = get_commission_settings(context)
    (balance,) = compute_balances(
        [rep],
        ledger.sales,
        ledger.returns,
        ledger.payouts,
        ledger.products,
        settings,
        start_date=start_date,
        end_date=end_date,
    )
    window = {"rep_id": rep_id, "start_date": start_date, "end_date": end_date}
    returns = filter_records(ledger.returns, **window)
    prices = {product.product_id: product.price for product in ledger.products}
    statement = RepStatement(
        rep=rep,
        start_date=start_date,
        end_date=end_date,
        commission_rate=resolve_commission(rep_id, settings),
        balance=balance,
        sales=filter_records(ledger.sales, **window),
        returns=returns,
        payouts=filter_records(ledger.payouts, **window),
        adjustments=filter_records(ledger.adjustments, **window),
        return_values=[return_value(returned, prices) for returned in returns],
    )
    log.info("Built statement for rep '%s' for %04d-%02d", rep_id, year, month)
    return statement


def list_settlement_periods(
    context: RuntimeContext,
    *,
    status: Optional[SettlementStatus] = None,
    rep_id: Optional[int] = None,
) -> List[SettlementPeriod]:
    """List settlement periods, optionally filtered by status and rep."""
    periods = settlement.list_periods(_ensure_periods_cache(context)["all"], status)
    if rep_id is not None:
        periods = settlement.periods_for_rep(periods, rep_id)
    return periods


def get_settlement_period(context: RuntimeContext, period_id: int) -> SettlementPeriod:
    """Resolve a settlement period by id.

    Raises:
        PeriodNotFoundError: If ``period_id`` is unknown.
    """
    return settlement.find_period(_ensure_periods_cache(context)["all"], period_id)


def open_settlement_period(context: RuntimeContext, start_date: int, end_date: int) -> SettlementPeriod:
    """Create an open settlement period and store its opening snapshot.

    Raises:
        InvalidRangeError: If ``start_date >= end_date``. Nothing is written.
    """
    period_id = data_manager.next_id(context.workbook, SheetName.SETTLEMENT_PERIODS.value)
    period = settlement.create_settlement_period(
        period_id,
        start_date,
        end_date,
        load_ledger(context),
        get_commission_settings(context),
    )
    data_manager.append_settlement_period(
        context.workbook,
        data_manager.SettlementPeriodRow(
            period_id=period.period_id,
            start_date=period.start_date,
            end_date=period.end_date,
            status=period.status.value,
            statement_ids=period.statement_ids,
        ),
    )
    data_manager.append_period_balances(
        context.workbook,
        _balance_rows(period.period_id, SnapshotKind.OPENING, period.opening_balances),
    )
    _invalidate_cache(context, "periods")
    return period


def close_settlement_period(context: RuntimeContext, period_id: int) -> SettlementPeriod:
    """Close a settlement period and store its closing snapshot.

    The period is re-read from the workbook cache first, so a second close of
    the same id observes the stored ``closed`` status and fails.

    Raises:
        PeriodNotFoundError: If ``period_id`` is unknown.
        AlreadyClosedError: If the period is already closed.
    """
    period = get_settlement_period(context, period_id)
    closed = settlement.close_settlement_period(
        period,
        load_ledger(context),
        get_commission_settings(context),
    )
    data_manager.append_period_balances(
        context.workbook,
        _balance_rows(closed.period_id, SnapshotKind.CLOSING, closed.closing_balances),
    )
    data_manager.update_settlement_status(context.workbook, closed.period_id, closed.status.value)
    _invalidate_cache(context, "periods")
    return closed


def check_transaction_lock(context: RuntimeContext, date: int) -> LockCheckResult:
    """Report whether a transaction dated ``date`` would be accepted."""
    return locking.check_lock(date, settlement.closed_periods(list_settlement_periods(context)))


def persist_context(context: RuntimeContext) -> None:
    """Persist any in-memory workbook changes to the configured data file."""
    data_manager.save_workbook(
        context.workbook,
        destination=context.settings.data_file,
    )
    log.info("Persisted workbook '%s'", context.settings.data_file)


def refresh_context(context: RuntimeContext) -> RuntimeContext:
    """Reload the workbook to discard unsaved modifications.

    Raises:
        FileNotFoundError: If the backing workbook cannot be reloaded.
    """
    workbook = data_manager.refresh_workbook(context.settings.data_file)
    log.info("Reloaded workbook '%s'", context.settings.data_file)
    return RuntimeContext(settings=context.settings, workbook=workbook)
