"""Exceptions raised to callers that misuse the engine.

Data-quality problems (unparseable dates, unknown reference ids, empty
collections) never raise; they are skipped, labelled, or treated as zero.
Only programming errors on the caller's side surface as exceptions.
"""

from __future__ import annotations


class LedgerUsageError(ValueError):
    """Raised when a caller passes arguments outside the supported domain."""


class InvalidPeriodError(LedgerUsageError):
    """Raised for an out-of-range year, month, week, or inverted date range."""


class UnsupportedCurrencyError(LedgerUsageError):
    """Raised when a currency discriminator is neither local nor foreign."""


__all__ = [
    "LedgerUsageError",
    "InvalidPeriodError",
    "UnsupportedCurrencyError",
]
