"""Enumerations shared across the movement ledger modules.

Centralises domain constants so that the data access layer (DAL), the engine
modules, the business logic layer (BLL), and the CLI rely on a single source
of truth for critical identifiers.
"""

from __future__ import annotations

from enum import Enum


# Central schema version expected by all layers when validating snapshots.
EXPECTED_SCHEMA_VERSION = "1.0.0"


class Currency(str, Enum):
    """Enumerate the two amount columns every cash movement carries."""

    LOCAL = "local"
    FOREIGN = "foreign"


class SourceKind(str, Enum):
    """Enumerate the record collections that feed the cash book."""

    SALE = "SALE"
    COST = "COST"
    MANUAL = "MANUAL"

    @property
    def precedence(self) -> int:
        """Same-day ordering rank: sales, then costs, then manual entries."""
        return _SOURCE_PRECEDENCE[self]


_SOURCE_PRECEDENCE = {
    SourceKind.SALE: 0,
    SourceKind.COST: 1,
    SourceKind.MANUAL: 2,
}


class EntryKind(str, Enum):
    """Enumerate the direction of a manual cash book entry."""

    CREDIT = "CREDIT"
    DEBIT = "DEBIT"


class MovementType(str, Enum):
    """Enumerate the inventory movement types recorded by the write path."""

    OPENING = "OPENING"
    IN = "IN"
    OUT = "OUT"
    ADJUSTMENT = "ADJUSTMENT"


class PeriodKind(str, Enum):
    """Enumerate the period filters supported by the inventory overview."""

    ALL = "ALL"
    YEAR = "YEAR"
    MONTH = "MONTH"
    WEEK = "WEEK"
    CUSTOM = "CUSTOM"


class SheetName(str, Enum):
    """Enumerate the snapshot workbook sheet names read by the DAL."""

    SALES = "Sales"
    COSTS = "Costs"
    MANUAL_ENTRIES = "ManualEntries"
    INVENTORY = "Inventory"
    PRODUCTS = "Products"
    ACTIVITY_TYPES = "ActivityTypes"
    EXPENSE_TYPES = "ExpenseTypes"


UNKNOWN_PRODUCT_LABEL = "Unknown Product"
UNKNOWN_ACTIVITY_LABEL = "Unknown Activity"
UNKNOWN_EXPENSE_LABEL = "Unknown Expense"
MANUAL_ENTRY_LABEL = "Manual Entry"


__all__ = [
    "EXPECTED_SCHEMA_VERSION",
    "Currency",
    "SourceKind",
    "EntryKind",
    "MovementType",
    "PeriodKind",
    "SheetName",
    "UNKNOWN_PRODUCT_LABEL",
    "UNKNOWN_ACTIVITY_LABEL",
    "UNKNOWN_EXPENSE_LABEL",
    "MANUAL_ENTRY_LABEL",
]
