"""Enumerations and fixed values shared across the consignment ledger.

Keeps the identifiers the workbook store, the settlement engine, and the CLI
agree on in one place.
"""

from __future__ import annotations

from enum import Enum


# Central schema version expected by all layers when validating workbooks.
EXPECTED_SCHEMA_VERSION = "1.0.0"

DEFAULT_COMMISSION_PERCENT = 30.0

# Key under which the commission settings document is stored.
COMMISSION_SETTINGS_KEY = "consignflow_commission_settings"

UNKNOWN_NAME = "Unknown"


class SettlementStatus(str, Enum):
    """Lifecycle states of a settlement period."""

    OPEN = "open"
    CLOSED = "closed"


class SnapshotKind(str, Enum):
    """Which balance snapshot a ``PeriodBalances`` row belongs to."""

    OPENING = "opening"
    CLOSING = "closing"


class SheetName(str, Enum):
    """Enumerate the workbook sheet names managed by the DAL."""

    PRODUCTS = "Products"
    REPS = "Reps"
    CONSIGNMENTS = "Consignments"
    SALES = "Sales"
    RETURNS = "Returns"
    PAYOUTS = "Payouts"
    ADJUSTMENTS = "Adjustments"
    SETTLEMENT_PERIODS = "SettlementPeriods"
    PERIOD_BALANCES = "PeriodBalances"


__all__ = [
    "COMMISSION_SETTINGS_KEY",
    "DEFAULT_COMMISSION_PERCENT",
    "EXPECTED_SCHEMA_VERSION",
    "SettlementStatus",
    "SheetName",
    "SnapshotKind",
    "UNKNOWN_NAME",
]
