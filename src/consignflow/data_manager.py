"""Data access layer for the consignment ledger.

This module provides low-level helpers that read from and write to the
consignment workbook and the commission settings file. Business logic belongs
elsewhere.

The public API is designed around four responsibilities:

1. Configuration handling: finding and parsing ``config.ini``.
2. Workbook lifecycle: opening, validating, and persisting the Excel file.
3. Sheet operations: loading structured records, appending rows with
   sequential identifiers, and updating individual cells.
4. Commission settings: reading and writing the settings document wholesale.
"""


from __future__ import annotations

import configparser
import json
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping, Optional, Sequence, Tuple, TypeVar

from openpyxl.workbook import Workbook
import openpyxl

from . import log
from .commission import CommissionSettings, settings_from_document, settings_to_document
from .constants import COMMISSION_SETTINGS_KEY, SheetName


CONFIG_FILE_NAME = "config.ini"
DEFAULT_COMMISSION_FILE_NAME = "commission_settings.json"

PRODUCTS_SHEET = SheetName.PRODUCTS.value
REPS_SHEET = SheetName.REPS.value
CONSIGNMENTS_SHEET = SheetName.CONSIGNMENTS.value
SALES_SHEET = SheetName.SALES.value
RETURNS_SHEET = SheetName.RETURNS.value
PAYOUTS_SHEET = SheetName.PAYOUTS.value
ADJUSTMENTS_SHEET = SheetName.ADJUSTMENTS.value
SETTLEMENT_PERIODS_SHEET = SheetName.SETTLEMENT_PERIODS.value
PERIOD_BALANCES_SHEET = SheetName.PERIOD_BALANCES.value

# Column order per sheet. The first column of every entity sheet is its id.
SHEET_COLUMNS: Mapping[str, Sequence[str]] = {
    PRODUCTS_SHEET: ["ProductID", "ProductName", "Price"],
    REPS_SHEET: ["RepID", "RepName"],
    CONSIGNMENTS_SHEET: ["ConsignmentID", "RepID", "ProductID", "Quantity", "Date"],
    SALES_SHEET: ["SaleID", "RepID", "ProductID", "Quantity", "UnitPrice", "Date"],
    RETURNS_SHEET: ["ReturnID", "RepID", "ProductID", "Quantity", "Date"],
    PAYOUTS_SHEET: ["PayoutID", "RepID", "Amount", "Date", "Notes"],
    ADJUSTMENTS_SHEET: ["AdjustmentID", "RepID", "Amount", "Date", "Notes"],
    SETTLEMENT_PERIODS_SHEET: ["PeriodID", "StartDate", "EndDate", "Status", "StatementIDs"],
    PERIOD_BALANCES_SHEET: [
        "PeriodID",
        "Snapshot",
        "RepID",
        "TotalSales",
        "TotalReturns",
        "TotalPayouts",
        "Commission",
        "AmountOwed",
    ],
}


@dataclass(frozen=True)
class ConfigSettings:
    """Typed representation of the ``config.ini`` settings we care about."""

    data_file: Path
    business_name: str
    schema_version: str
    commission_file: Path


@dataclass(frozen=True)
class ProductRow:
    """In-memory view of a row from the ``Products`` sheet."""

    product_id: int
    product_name: str
    price: int


@dataclass(frozen=True)
class RepRow:
    """In-memory view of a row from the ``Reps`` sheet."""

    rep_id: int
    rep_name: str


@dataclass(frozen=True)
class ConsignmentRow:
    """Goods handed to a rep; increases the rep's held inventory."""

    consignment_id: int
    rep_id: int
    product_id: int
    quantity: int
    date: int


@dataclass(frozen=True)
class SaleRow:
    """A sale by a rep at the unit price captured when it was recorded."""

    sale_id: int
    rep_id: int
    product_id: int
    quantity: int
    unit_price: int
    date: int


@dataclass(frozen=True)
class ReturnRow:
    """Goods given back to the owner; valued at the current catalog price."""

    return_id: int
    rep_id: int
    product_id: int
    quantity: int
    date: int


@dataclass(frozen=True)
class PayoutRow:
    """Cash already paid to a rep."""

    payout_id: int
    rep_id: int
    amount: int
    date: int
    notes: str


@dataclass(frozen=True)
class AdjustmentRow:
    """Signed manual correction to a rep's balance."""

    adjustment_id: int
    rep_id: int
    amount: int
    date: int
    notes: str


@dataclass(frozen=True)
class SettlementPeriodRow:
    """In-memory view of a row from the ``SettlementPeriods`` sheet."""

    period_id: int
    start_date: int
    end_date: int
    status: str
    statement_ids: Tuple[int, ...] = ()


@dataclass(frozen=True)
class PeriodBalanceRow:
    """One rep's balance inside an opening or closing period snapshot."""

    period_id: int
    snapshot: str
    rep_id: int
    total_sales: int
    total_returns: int
    total_payouts: int
    commission: Decimal
    amount_owed: Decimal


RowT = TypeVar("RowT")


def find_config_file(explicit_path: Optional[Path] = None) -> Path:
    """Locate the configuration file that controls how the data layer behaves.

    If the caller provides ``explicit_path`` the value is returned immediately
    without any verification, which allows the caller to deliberately target a
    non-standard location. When no explicit path is given the function walks up
    from the current working directory toward the filesystem root looking for a
    file named ``CONFIG_FILE_NAME``. The first match that exists on disk is
    considered authoritative.

    Args:
        explicit_path (Path | None): Optional path to use instead of performing
            the upward search.

    Returns:
        Path: The path provided by the caller or the discovered configuration
            file.

    Raises:
        FileNotFoundError: If the search exhausts all parent directories without
            finding ``CONFIG_FILE_NAME``.
    """

    if explicit_path:
        return explicit_path

    current = Path.cwd()
    for directory in (current, *current.parents):
        candidate = directory / CONFIG_FILE_NAME
        if candidate.exists():
            return candidate

    raise FileNotFoundError(
        f"Configuration file not found: {CONFIG_FILE_NAME}")


def read_config(config_path: Path) -> configparser.ConfigParser:
    """Load ``config.ini`` and return a populated ``ConfigParser`` instance.

    Args:
        config_path (Path): Path to the configuration file, relative or
            absolute. ``~`` is expanded.

    Returns:
        configparser.ConfigParser: Parser containing the raw configuration.
            Validation of required entries happens in :func:`parse_settings`.

    Raises:
        FileNotFoundError: If ``config_path`` does not exist.
    """

    config_path = config_path.expanduser().resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    parser = configparser.ConfigParser()
    parser.read(config_path)
    return parser


def _anchor_path(raw: str, base_path: Optional[Path]) -> Path:
    path = Path(raw).expanduser()
    if not path.is_absolute():
        if base_path is None:
            base_path = Path.cwd()
        path = (base_path / path).resolve()
    return path


def parse_settings(parser: configparser.ConfigParser, *, base_path: Optional[Path] = None) -> ConfigSettings:
    """Convert a ``ConfigParser`` into strongly typed :class:`ConfigSettings`.

    The ``[System]`` section is mandatory. ``[Commission] SettingsFile`` is
    optional and defaults to ``DEFAULT_COMMISSION_FILE_NAME``. Relative paths
    are anchored to ``base_path`` (normally the directory holding the config
    file) or to the current working directory as a fallback.

    Args:
        parser (configparser.ConfigParser): Parsed configuration data.
        base_path (Path | None): Directory used to resolve relative paths.

    Returns:
        ConfigSettings: Immutable settings with resolved file paths.

    Raises:
        KeyError: If one of the required ``[System]`` options is missing.
    """

    try:
        data_file_raw = parser.get("System", "DataFile")
        business_name = parser.get("System", "BusinessName")
        schema_version = parser.get("System", "SchemaVersion")
    except (configparser.NoSectionError, configparser.NoOptionError) as exc:
        raise KeyError(f"Missing required configuration entry: {exc}") from exc

    commission_raw = parser.get(
        "Commission",
        "SettingsFile",
        fallback=DEFAULT_COMMISSION_FILE_NAME,
    )

    return ConfigSettings(
        data_file=_anchor_path(data_file_raw, base_path),
        business_name=business_name,
        schema_version=schema_version,
        commission_file=_anchor_path(commission_raw, base_path),
    )


def open_workbook(data_file: Path) -> Workbook:
    """Open the consignment workbook and return a live ``openpyxl`` workbook.

    Args:
        data_file (Path): Filesystem path to the workbook.

    Returns:
        Workbook: ``openpyxl`` workbook instance backed by the provided file.

    Raises:
        FileNotFoundError: If ``data_file`` does not exist.
    """

    data_file = Path(data_file).expanduser().resolve()
    if not data_file.exists():
        raise FileNotFoundError(f"Workbook not found: {data_file}")

    return openpyxl.load_workbook(data_file)


def save_workbook(workbook: Workbook, destination: Path) -> None:
    """Persist the workbook to disk, creating parent directories on demand."""

    dest = Path(destination).expanduser().resolve()
    dest.parent.mkdir(parents=True, exist_ok=True)
    workbook.save(dest)


def refresh_workbook(data_file: Path) -> Workbook:
    """Reload the workbook from disk, discarding any unsaved in-memory changes."""

    return open_workbook(data_file)


def _iter_sheet(workbook: Workbook, sheet_name: str, deserializer: Callable[[Sequence[object]], RowT]) -> Iterable[RowT]:
    sheet = workbook[sheet_name]
    width = len(SHEET_COLUMNS[sheet_name])
    for raw in sheet.iter_rows(min_row=2, max_col=width, values_only=True):
        # skip fully empty rows
        if any(cell is not None for cell in raw):
            yield deserializer(raw)


def iter_products(workbook: Workbook) -> Iterable[ProductRow]:
    """Iterate over product records stored on the ``Products`` worksheet."""

    return _iter_sheet(workbook, PRODUCTS_SHEET, deserialize_product)


def iter_reps(workbook: Workbook) -> Iterable[RepRow]:
    """Iterate over rep records stored on the ``Reps`` worksheet."""

    return _iter_sheet(workbook, REPS_SHEET, deserialize_rep)


def iter_consignments(workbook: Workbook) -> Iterable[ConsignmentRow]:
    return _iter_sheet(workbook, CONSIGNMENTS_SHEET, deserialize_consignment)


def iter_sales(workbook: Workbook) -> Iterable[SaleRow]:
    return _iter_sheet(workbook, SALES_SHEET, deserialize_sale)


def iter_returns(workbook: Workbook) -> Iterable[ReturnRow]:
    return _iter_sheet(workbook, RETURNS_SHEET, deserialize_return)


def iter_payouts(workbook: Workbook) -> Iterable[PayoutRow]:
    return _iter_sheet(workbook, PAYOUTS_SHEET, deserialize_payout)


def iter_adjustments(workbook: Workbook) -> Iterable[AdjustmentRow]:
    return _iter_sheet(workbook, ADJUSTMENTS_SHEET, deserialize_adjustment)


def iter_settlement_periods(workbook: Workbook) -> Iterable[SettlementPeriodRow]:
    return _iter_sheet(workbook, SETTLEMENT_PERIODS_SHEET, deserialize_settlement_period)


def iter_period_balances(workbook: Workbook) -> Iterable[PeriodBalanceRow]:
    return _iter_sheet(workbook, PERIOD_BALANCES_SHEET, deserialize_period_balance)


def next_id(workbook: Workbook, sheet_name: str) -> int:
    """Return the next sequential identifier for ``sheet_name``.

    Identifiers start at ``0`` and are always one greater than the largest id
    already present, so a deleted trailing row never causes an id to be handed
    out twice within the same workbook history.

    Args:
        workbook (Workbook): Workbook containing the sheet.
        sheet_name (str): Entity sheet whose first column holds the id.

    Returns:
        int: Identifier to assign to the next appended row.
    """

    sheet = workbook[sheet_name]
    highest = -1
    for (raw_id,) in sheet.iter_rows(min_row=2, max_col=1, values_only=True):
        if raw_id is None:
            continue
        highest = max(highest, _to_int(raw_id))
    return highest + 1


def append_product(workbook: Workbook, record: ProductRow) -> None:
    """Append a product record to the ``Products`` worksheet."""

    workbook[PRODUCTS_SHEET].append(serialize_product(record))


def append_rep(workbook: Workbook, record: RepRow) -> None:
    """Append a rep record to the ``Reps`` worksheet."""

    workbook[REPS_SHEET].append(serialize_rep(record))


def append_consignment(workbook: Workbook, record: ConsignmentRow) -> None:
    workbook[CONSIGNMENTS_SHEET].append(serialize_consignment(record))


def append_sale(workbook: Workbook, record: SaleRow) -> None:
    workbook[SALES_SHEET].append(serialize_sale(record))


def append_return(workbook: Workbook, record: ReturnRow) -> None:
    workbook[RETURNS_SHEET].append(serialize_return(record))


def append_payout(workbook: Workbook, record: PayoutRow) -> None:
    workbook[PAYOUTS_SHEET].append(serialize_payout(record))


def append_adjustment(workbook: Workbook, record: AdjustmentRow) -> None:
    workbook[ADJUSTMENTS_SHEET].append(serialize_adjustment(record))


def append_settlement_period(workbook: Workbook, record: SettlementPeriodRow) -> None:
    workbook[SETTLEMENT_PERIODS_SHEET].append(serialize_settlement_period(record))


def append_period_balances(workbook: Workbook, records: Iterable[PeriodBalanceRow]) -> int:
    """Append snapshot rows to the ``PeriodBalances`` worksheet.

    Args:
        workbook (Workbook): Workbook containing the balances sheet.
        records (Iterable[PeriodBalanceRow]): Rows of a single snapshot.

    Returns:
        int: Number of rows written.
    """

    sheet = workbook[PERIOD_BALANCES_SHEET]
    written = 0
    for record in records:
        sheet.append(serialize_period_balance(record))
        written += 1
    return written


def update_row(workbook: Workbook, sheet_name: str, key_column: str, key_value: object, *, field_values: Mapping[str, Any]) -> None:
    """Update selected columns for the row whose ``key_column`` equals ``key_value``.

    Only the specified fields are modified, leaving other columns untouched.

    Args:
        workbook (Workbook): Workbook containing ``sheet_name``.
        sheet_name (str): Worksheet to modify.
        key_column (str): Header title of the identifying column.
        key_value (object): Identifier of the target row.
        field_values (Mapping[str, Any]): Column names mapped to new values.

    Raises:
        KeyError: If the row or any referenced column cannot be found.
    """

    row_index = locate_row(workbook, sheet_name, key_column, key_value)
    if row_index is None:
        raise KeyError(f"Row not found in {sheet_name}: {key_column}={key_value}")

    sheet = workbook[sheet_name]
    header_map = {cell.value: idx + 1 for idx, cell in enumerate(sheet[1])}

    for field_name, value in field_values.items():
        if field_name not in header_map:
            raise KeyError(f"Unknown {sheet_name} field: {field_name}")
        sheet.cell(row=row_index, column=header_map[field_name], value=value)


def update_settlement_status(workbook: Workbook, period_id: int, status: str) -> None:
    """Overwrite the ``Status`` cell of a settlement period row."""

    update_row(
        workbook,
        SETTLEMENT_PERIODS_SHEET,
        "PeriodID",
        period_id,
        field_values={"Status": status},
    )


def locate_row(workbook: Workbook, sheet_name: str, key_column: str, key_value: object) -> Optional[int]:
    """Find a row by matching a key value within the specified worksheet.

    Args:
        workbook (Workbook): Workbook providing access to ``sheet_name``.
        sheet_name (str): Name of the worksheet to search.
        key_column (str): Header title identifying the lookup column.
        key_value (object): Value to match within the key column.

    Returns:
        int | None: 1-based Excel row index of the first match, otherwise
            ``None``.

    Raises:
        KeyError: If ``key_column`` is not present in the worksheet header.
    """

    sheet = workbook[sheet_name]
    header_map = {cell.value: idx + 1 for idx, cell in enumerate(sheet[1])}
    if key_column not in header_map:
        raise KeyError(f"Unknown column: {key_column}")

    key_col_index = header_map[key_column]

    for row_idx, row in enumerate(sheet.iter_rows(min_row=2, values_only=True), start=2):
        if row[key_col_index - 1] == key_value:
            return row_idx

    return None


def load_commission_settings(settings_file: Path) -> CommissionSettings:
    """Read the commission settings document, falling back to defaults.

    The file holds a single JSON object keyed by ``COMMISSION_SETTINGS_KEY``.
    A missing file is the normal first-run state and yields the defaults. An
    unreadable or malformed file is logged and also yields the defaults so
    that reporting stays available.

    Args:
        settings_file (Path): Location of the JSON document.

    Returns:
        CommissionSettings: Parsed settings or the defaults.
    """

    path = Path(settings_file).expanduser().resolve()
    if not path.exists():
        log.debug("No commission settings at '%s'; using defaults", path)
        return CommissionSettings()

    try:
        document = json.loads(path.read_text(encoding="utf-8"))
        payload = document.get(COMMISSION_SETTINGS_KEY) if isinstance(document, dict) else None
        if not isinstance(payload, dict):
            raise ValueError(f"missing '{COMMISSION_SETTINGS_KEY}' object")
        return settings_from_document(payload)
    except (OSError, TypeError, ValueError) as exc:
        log.warning("Failed to load commission settings from '%s': %s", path, exc)
        return CommissionSettings()


def save_commission_settings(settings_file: Path, settings: CommissionSettings) -> None:
    """Write the whole commission settings document to ``settings_file``."""

    path = Path(settings_file).expanduser().resolve()
    path.parent.mkdir(parents=True, exist_ok=True)
    document = {COMMISSION_SETTINGS_KEY: settings_to_document(settings)}
    path.write_text(json.dumps(document, indent=2, sort_keys=True), encoding="utf-8")


def serialize_product(record: ProductRow) -> list[object]:
    """Return ``[ProductID, ProductName, Price]``."""

    return [record.product_id, record.product_name, record.price]


def serialize_rep(record: RepRow) -> list[object]:
    """Return ``[RepID, RepName]``."""

    return [record.rep_id, record.rep_name]


def serialize_consignment(record: ConsignmentRow) -> list[object]:
    return [record.consignment_id, record.rep_id, record.product_id, record.quantity, record.date]


def serialize_sale(record: SaleRow) -> list[object]:
    return [
        record.sale_id,
        record.rep_id,
        record.product_id,
        record.quantity,
        record.unit_price,
        record.date,
    ]


def serialize_return(record: ReturnRow) -> list[object]:
    return [record.return_id, record.rep_id, record.product_id, record.quantity, record.date]


def serialize_payout(record: PayoutRow) -> list[object]:
    return [record.payout_id, record.rep_id, record.amount, record.date, record.notes]


def serialize_adjustment(record: AdjustmentRow) -> list[object]:
    return [record.adjustment_id, record.rep_id, record.amount, record.date, record.notes]


def serialize_settlement_period(record: SettlementPeriodRow) -> list[object]:
    """Return the period row; statement ids are stored comma separated."""

    statement_ids = ",".join(str(value) for value in record.statement_ids) or None
    return [record.period_id, record.start_date, record.end_date, record.status, statement_ids]


def serialize_period_balance(record: PeriodBalanceRow) -> list[object]:
    """Return the snapshot row with commission and amount owed as exact text.

    Numeric cells come back from openpyxl as floats, which would round the
    stored snapshot on reload.
    """

    return [
        record.period_id,
        record.snapshot,
        record.rep_id,
        record.total_sales,
        record.total_returns,
        record.total_payouts,
        str(record.commission),
        str(record.amount_owed),
    ]


def _to_int(raw: object, default: int = 0) -> int:
    """Coerce a cell value into ``int``; Excel may hand back floats or text."""

    if raw is None or raw == "":
        return default
    if isinstance(raw, int) and not isinstance(raw, bool):
        return raw
    return int(Decimal(str(raw)))


def _to_decimal(raw: object) -> Decimal:
    return Decimal(str(raw)) if raw is not None else Decimal("0")


def _to_text(raw: object) -> str:
    return str(raw) if raw is not None else ""


def deserialize_product(raw_row: Sequence[object]) -> ProductRow:
    """Convert a raw worksheet row into a strongly typed product record.

    A blank price reads as ``0`` and a blank name as an empty string.
    """

    product_id, product_name, price = raw_row[:3]
    return ProductRow(
        product_id=_to_int(product_id),
        product_name=_to_text(product_name),
        price=_to_int(price),
    )


def deserialize_rep(raw_row: Sequence[object]) -> RepRow:
    rep_id, rep_name = raw_row[:2]
    return RepRow(rep_id=_to_int(rep_id), rep_name=_to_text(rep_name))


def deserialize_consignment(raw_row: Sequence[object]) -> ConsignmentRow:
    consignment_id, rep_id, product_id, quantity, date = raw_row[:5]
    return ConsignmentRow(
        consignment_id=_to_int(consignment_id),
        rep_id=_to_int(rep_id),
        product_id=_to_int(product_id),
        quantity=_to_int(quantity),
        date=_to_int(date),
    )


def deserialize_sale(raw_row: Sequence[object]) -> SaleRow:
    sale_id, rep_id, product_id, quantity, unit_price, date = raw_row[:6]
    return SaleRow(
        sale_id=_to_int(sale_id),
        rep_id=_to_int(rep_id),
        product_id=_to_int(product_id),
        quantity=_to_int(quantity),
        unit_price=_to_int(unit_price),
        date=_to_int(date),
    )


def deserialize_return(raw_row: Sequence[object]) -> ReturnRow:
    return_id, rep_id, product_id, quantity, date = raw_row[:5]
    return ReturnRow(
        return_id=_to_int(return_id),
        rep_id=_to_int(rep_id),
        product_id=_to_int(product_id),
        quantity=_to_int(quantity),
        date=_to_int(date),
    )


def deserialize_payout(raw_row: Sequence[object]) -> PayoutRow:
    payout_id, rep_id, amount, date, notes = raw_row[:5]
    return PayoutRow(
        payout_id=_to_int(payout_id),
        rep_id=_to_int(rep_id),
        amount=_to_int(amount),
        date=_to_int(date),
        notes=_to_text(notes),
    )


def deserialize_adjustment(raw_row: Sequence[object]) -> AdjustmentRow:
    adjustment_id, rep_id, amount, date, notes = raw_row[:5]
    return AdjustmentRow(
        adjustment_id=_to_int(adjustment_id),
        rep_id=_to_int(rep_id),
        amount=_to_int(amount),
        date=_to_int(date),
        notes=_to_text(notes),
    )


def deserialize_settlement_period(raw_row: Sequence[object]) -> SettlementPeriodRow:
    """Convert a raw worksheet row into a settlement period record.

    ``StatementIDs`` is a comma separated list; a single id may come back
    from Excel as a number rather than text.
    """

    period_id, start_date, end_date, status, statement_raw = raw_row[:5]
    statement_ids: Tuple[int, ...] = ()
    if statement_raw not in (None, ""):
        statement_ids = tuple(
            _to_int(part) for part in str(statement_raw).split(",") if part.strip()
        )
    return SettlementPeriodRow(
        period_id=_to_int(period_id),
        start_date=_to_int(start_date),
        end_date=_to_int(end_date),
        status=_to_text(status),
        statement_ids=statement_ids,
    )


def deserialize_period_balance(raw_row: Sequence[object]) -> PeriodBalanceRow:
    (
        period_id,
        snapshot,
        rep_id,
        total_sales,
        total_returns,
        total_payouts,
        commission,
        amount_owed,
    ) = raw_row[:8]
    return PeriodBalanceRow(
        period_id=_to_int(period_id),
        snapshot=_to_text(snapshot),
        rep_id=_to_int(rep_id),
        total_sales=_to_int(total_sales),
        total_returns=_to_int(total_returns),
        total_payouts=_to_int(total_payouts),
        commission=_to_decimal(commission),
        amount_owed=_to_decimal(amount_owed),
    )
