"""CSV export of balance and inventory reports."""

from __future__ import annotations

import csv
import io
from pathlib import Path
from typing import Iterable, List, Sequence

from . import log
from .calculations import InventoryItem, RepBalance
from .units import format_currency


BALANCE_HEADERS = ["Rep", "Total Sales", "Total Returns", "Total Payouts", "Commission", "Amount Owed"]
INVENTORY_HEADERS = ["Rep", "Product", "Quantity"]


def generate_csv(headers: Sequence[str], rows: Iterable[Sequence[object]]) -> str:
    """Render ``headers`` and ``rows`` as CSV text.

    Cells containing commas, quotes, or newlines are quoted with embedded
    quotes doubled. Lines are separated by ``\\n`` and there is no trailing
    newline after the last row.
    """

    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(headers)
    writer.writerows(rows)
    return buffer.getvalue().rstrip("\n")


def balances_to_rows(balances: Iterable[RepBalance]) -> List[List[str]]:
    return [
        [
            balance.rep_name,
            format_currency(balance.total_sales),
            format_currency(balance.total_returns),
            format_currency(balance.total_payouts),
            format_currency(balance.commission),
            format_currency(balance.amount_owed),
        ]
        for balance in balances
    ]


def inventory_to_rows(items: Iterable[InventoryItem]) -> List[List[object]]:
    return [[item.rep_name, item.product_name, item.quantity] for item in items]


def write_csv(path: Path, headers: Sequence[str], rows: Iterable[Sequence[object]]) -> Path:
    """Write a CSV report to ``path``, creating parent directories.

    Returns:
        Path: The resolved destination.
    """

    destination = Path(path).expanduser().resolve()
    destination.parent.mkdir(parents=True, exist_ok=True)
    destination.write_text(generate_csv(headers, rows), encoding="utf-8")
    log.info("Exported report to '%s'", destination)
    return destination
