"""Typed failures raised by the settlement and ledger engine."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .settlement import SettlementPeriod


class BusinessRuleViolation(Exception):
    """Raised when a requested operation violates a domain constraint."""


class MissingReferenceError(BusinessRuleViolation):
    """Raised when a referenced product, rep, or period is unknown."""


class PeriodNotFoundError(MissingReferenceError):
    """Raised when a settlement period id does not exist."""

    def __init__(self, period_id: int) -> None:
        super().__init__(f"Unknown settlement period id: {period_id}")
        self.period_id = period_id


class InvalidRangeError(BusinessRuleViolation):
    """Raised when a settlement period does not end after it starts."""

    def __init__(self, start_date: int, end_date: int) -> None:
        super().__init__(
            f"Settlement period end ({end_date}) must be after its start ({start_date})"
        )
        self.start_date = start_date
        self.end_date = end_date


class AlreadyClosedError(BusinessRuleViolation):
    """Raised when closing a settlement period that is already closed."""

    def __init__(self, period_id: int) -> None:
        super().__init__(f"Settlement period {period_id} is already closed")
        self.period_id = period_id


class LockedPeriodError(BusinessRuleViolation):
    """Raised when a write targets a date inside a closed settlement period."""

    def __init__(self, message: str, period: Optional["SettlementPeriod"] = None) -> None:
        super().__init__(message)
        self.period = period


__all__ = [
    "AlreadyClosedError",
    "BusinessRuleViolation",
    "InvalidRangeError",
    "LockedPeriodError",
    "MissingReferenceError",
    "PeriodNotFoundError",
]
