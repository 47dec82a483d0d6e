"""Immutable record types consumed and produced by the engine.

Input records mirror what the write-path forms append to the document store:
sales, costs, manual cash book entries, and inventory movements. Their
``date`` stays raw because different write paths encode it differently; the
engine decodes it through :func:`movement_ledger.temporal.normalize`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping, Optional

from .constants import (
    MANUAL_ENTRY_LABEL,
    UNKNOWN_ACTIVITY_LABEL,
    UNKNOWN_EXPENSE_LABEL,
    UNKNOWN_PRODUCT_LABEL,
    Currency,
    EntryKind,
    MovementType,
    SourceKind,
)
from .errors import UnsupportedCurrencyError


ZERO = Decimal("0")


def to_decimal(value: Any) -> Decimal:
    """Coerce a stored amount into a finite :class:`~decimal.Decimal`.

    Blank, non-numeric, and non-finite values count as zero, matching how the
    write path treats amounts it could not parse.
    """
    if value is None or isinstance(value, bool):
        return ZERO
    if not isinstance(value, Decimal):
        try:
            value = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            return ZERO
    return value if value.is_finite() else ZERO


def resolve_currency(value: Currency | str) -> Currency:
    """Coerce a currency discriminator into :class:`Currency`.

    Raises:
        UnsupportedCurrencyError: If ``value`` is neither ``"local"`` nor
            ``"foreign"``.
    """
    if isinstance(value, Currency):
        return value
    try:
        return Currency(str(value).strip().lower())
    except ValueError as exc:
        raise UnsupportedCurrencyError(f"Unsupported currency: {value!r}") from exc


@dataclass(frozen=True)
class MovementRecord:
    """Shared shape of every record that moves cash."""

    id: str
    date: Any
    amount_local: Decimal = ZERO
    amount_foreign: Decimal = ZERO
    exchange_rate: Optional[Decimal] = None

    def amount_in(self, currency: Currency) -> Decimal:
        """Return the amount recorded in the requested currency column."""
        if currency is Currency.LOCAL:
            return to_decimal(self.amount_local)
        return to_decimal(self.amount_foreign)


@dataclass(frozen=True)
class SaleRecord(MovementRecord):
    """A sale; always contributes cash in."""

    product_id: Optional[str] = None
    activity_type_id: Optional[str] = None
    channel: Optional[str] = None


@dataclass(frozen=True)
class CostRecord(MovementRecord):
    """A cost; always contributes cash out."""

    expense_type_id: Optional[str] = None
    activity_type_id: Optional[str] = None


@dataclass(frozen=True)
class ManualEntry(MovementRecord):
    """A hand-entered cash book line; direction depends on ``entry_kind``."""

    description: str = ""
    entry_kind: EntryKind = EntryKind.DEBIT


@dataclass(frozen=True)
class InventoryMovement:
    """A stock movement carrying the post-movement quantity snapshot."""

    id: str
    date: Any
    movement_type: MovementType
    product_id: Optional[str] = None
    product_code: Optional[str] = None
    initial_quantity: Decimal = ZERO
    quantity_moved: Decimal = ZERO
    remaining_quantity: Decimal = ZERO


@dataclass(frozen=True)
class ProductRecord:
    """Master-data view of a product used by the inventory overview."""

    product_id: str
    product_code: Optional[str] = None
    name: Optional[str] = None
    product_type: Optional[str] = None


@dataclass(frozen=True)
class LedgerEntry:
    """One balance-annotated line of a generated cash book."""

    date: datetime
    source_kind: SourceKind
    reference: str
    description: str
    cash_in: Decimal
    cash_out: Decimal
    exchange_rate: Optional[Decimal]
    amount_local: Decimal
    amount_foreign: Decimal
    balance: Decimal = ZERO


@dataclass(frozen=True)
class FallbackLabels:
    """Labels substituted when a master-data lookup misses."""

    product: str = UNKNOWN_PRODUCT_LABEL
    activity: str = UNKNOWN_ACTIVITY_LABEL
    expense: str = UNKNOWN_EXPENSE_LABEL
    manual: str = MANUAL_ENTRY_LABEL


@dataclass(frozen=True)
class MasterDataLookups:
    """Read-only id to display-name maps used only for descriptions."""

    products: Mapping[str, str] = field(default_factory=dict)
    activity_types: Mapping[str, str] = field(default_factory=dict)
    expense_types: Mapping[str, str] = field(default_factory=dict)

    def product_name(self, product_id: Optional[str]) -> Optional[str]:
        return _lookup(self.products, product_id)

    def activity_name(self, activity_type_id: Optional[str]) -> Optional[str]:
        return _lookup(self.activity_types, activity_type_id)

    def expense_name(self, expense_type_id: Optional[str]) -> Optional[str]:
        return _lookup(self.expense_types, expense_type_id)


def _lookup(mapping: Mapping[str, str], key: Optional[str]) -> Optional[str]:
    if key is None:
        return None
    name = mapping.get(key)
    return name or None


__all__ = [
    "ZERO",
    "to_decimal",
    "resolve_currency",
    "MovementRecord",
    "SaleRecord",
    "CostRecord",
    "ManualEntry",
    "InventoryMovement",
    "ProductRecord",
    "LedgerEntry",
    "FallbackLabels",
    "MasterDataLookups",
]
