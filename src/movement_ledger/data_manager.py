"""Data access layer for the movement ledger.

This module reads an exported snapshot workbook (``ledger_snapshot.xlsx``)
holding the record collections the engine consumes. It never writes records:
the collections are append-only and owned by the write path.

The public API is designed around three responsibilities:

1. Configuration handling: finding and parsing ``config.ini``.
2. Workbook lifecycle: opening the snapshot file.
3. Sheet operations: streaming rows as typed records and master-data maps.
"""


from __future__ import annotations

import configparser
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Dict, Iterable, Iterator, Optional, Sequence

from openpyxl.workbook import Workbook
import openpyxl

from . import log
from .constants import Currency, EntryKind, MovementType, SheetName
from .records import (
    CostRecord,
    InventoryMovement,
    ManualEntry,
    ProductRecord,
    SaleRecord,
    resolve_currency,
    to_decimal,
)


CONFIG_FILE_NAME = "config.ini"
SALES_SHEET = SheetName.SALES.value
COSTS_SHEET = SheetName.COSTS.value
MANUAL_ENTRIES_SHEET = SheetName.MANUAL_ENTRIES.value
INVENTORY_SHEET = SheetName.INVENTORY.value
PRODUCTS_SHEET = SheetName.PRODUCTS.value
ACTIVITY_TYPES_SHEET = SheetName.ACTIVITY_TYPES.value
EXPENSE_TYPES_SHEET = SheetName.EXPENSE_TYPES.value


@dataclass(frozen=True)
class ConfigSettings:
    """Typed representation of the ``config.ini`` settings we care about."""

    data_file: Path
    business_name: str
    schema_version: str
    default_currency: Currency
    local_currency_code: str
    foreign_currency_code: str

    def currency_code(self, currency: Currency) -> str:
        """Return the display code configured for ``currency``."""
        if currency is Currency.LOCAL:
            return self.local_currency_code
        return self.foreign_currency_code


def find_config_file(explicit_path: Optional[Path] = None) -> Path:
    """Locate the configuration file that controls how the data layer behaves.

    If the caller provides ``explicit_path`` the value is returned immediately
    without any verification. Otherwise the function walks up from the
    current working directory toward the filesystem root looking for a file
    named ``CONFIG_FILE_NAME``; the first match is authoritative.

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
    for p in (current, *current.parents):
        candidate = p / CONFIG_FILE_NAME
        if candidate.exists():
            return candidate

    raise FileNotFoundError(
        f"Configuration file not found: {CONFIG_FILE_NAME}")


def read_config(config_path: Path) -> configparser.ConfigParser:
    """Load ``config.ini`` and return a populated ``ConfigParser`` instance.

    Validation of required entries happens in :func:`parse_settings`.

    Raises:
        FileNotFoundError: If ``config_path`` does not exist after expansion and
            resolution.
    """

    config_path = config_path.expanduser().resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    parser = configparser.ConfigParser()
    parser.read(config_path)
    return parser


def parse_settings(parser: configparser.ConfigParser, *, base_path: Optional[Path] = None) -> ConfigSettings:
    """Convert a ``ConfigParser`` into strongly typed :class:`ConfigSettings`.

    ``[System]`` entries are required. The ``[Currency]`` section is optional
    and defaults to reporting in the local currency with ``FC``/``USD``
    display codes.

    Args:
        parser (configparser.ConfigParser): Parsed configuration data.
        base_path (Path | None): Directory used to anchor a relative
            ``DataFile``. Defaults to :func:`Path.cwd` when omitted.

    Returns:
        ConfigSettings: Immutable settings with a resolved data file path.

    Raises:
        KeyError: If a required section or option is missing.
        UnsupportedCurrencyError: If ``Currency.Default`` is not ``local`` or
            ``foreign``.
    """

    try:
        data_file_raw = parser.get("System", "DataFile")
        business_name = parser.get("System", "BusinessName")
        schema_version = parser.get("System", "SchemaVersion")
    except (configparser.NoSectionError, configparser.NoOptionError) as exc:
        raise KeyError(f"Missing required configuration entry: {exc}") from exc

    default_currency = resolve_currency(parser.get("Currency", "Default", fallback=Currency.LOCAL.value))
    local_code = parser.get("Currency", "LocalCode", fallback="FC")
    foreign_code = parser.get("Currency", "ForeignCode", fallback="USD")

    data_file_path = Path(data_file_raw)
    if not data_file_path.is_absolute():
        if base_path is None:
            base_path = Path.cwd()
        data_file_path = (base_path / data_file_path).resolve()

    return ConfigSettings(
        data_file=data_file_path,
        business_name=business_name,
        schema_version=schema_version,
        default_currency=default_currency,
        local_currency_code=local_code,
        foreign_currency_code=foreign_code,
    )


def open_workbook(data_file: Path) -> Workbook:
    """Open the snapshot workbook with cached formula values.

    Raises:
        FileNotFoundError: If ``data_file`` does not exist after expansion and
            resolution.
    """

    data_file = Path(data_file).expanduser().resolve()
    if not data_file.exists():
        raise FileNotFoundError(f"Workbook not found: {data_file}")

    return openpyxl.load_workbook(data_file, data_only=True)


def iter_rows(workbook: Workbook, sheet_name: str) -> Iterator[tuple[object, ...]]:
    """Yield the non-empty data rows of a sheet, skipping the header.

    A sheet missing from the snapshot is treated as an empty collection.
    """

    if sheet_name not in workbook.sheetnames:
        log.warning("Snapshot workbook has no '%s' sheet; treating it as empty", sheet_name)
        return
    sheet = workbook[sheet_name]
    for raw in sheet.iter_rows(min_row=2, values_only=True):
        # skip fully empty rows
        if any(cell is not None for cell in raw):
            yield raw


def iter_sales(workbook: Workbook) -> Iterable[SaleRecord]:
    """Stream sale records from the ``Sales`` worksheet."""

    for raw in iter_rows(workbook, SALES_SHEET):
        yield deserialize_sale(raw)


def iter_costs(workbook: Workbook) -> Iterable[CostRecord]:
    """Stream cost records from the ``Costs`` worksheet."""

    for raw in iter_rows(workbook, COSTS_SHEET):
        yield deserialize_cost(raw)


def iter_manual_entries(workbook: Workbook) -> Iterable[ManualEntry]:
    """Stream manual cash book entries from the ``ManualEntries`` worksheet."""

    for raw in iter_rows(workbook, MANUAL_ENTRIES_SHEET):
        yield deserialize_manual_entry(raw)


def iter_inventory_movements(workbook: Workbook) -> Iterable[InventoryMovement]:
    """Stream inventory movements from the ``Inventory`` worksheet.

    Rows keep their sheet order, which is the insertion order the stock
    resolver uses to break ties between movements sharing a timestamp.
    """

    for raw in iter_rows(workbook, INVENTORY_SHEET):
        yield deserialize_inventory_movement(raw)


def iter_products(workbook: Workbook) -> Iterable[ProductRecord]:
    """Stream product master data from the ``Products`` worksheet."""

    for raw in iter_rows(workbook, PRODUCTS_SHEET):
        yield deserialize_product(raw)


def load_name_map(workbook: Workbook, sheet_name: str) -> Dict[str, str]:
    """Read a two-column ``id -> name`` master-data sheet into a dict.

    Rows without an id or a name are ignored so lookups miss cleanly and the
    engine substitutes its fallback label.
    """

    names: Dict[str, str] = {}
    for raw in iter_rows(workbook, sheet_name):
        key, name = _cells(raw, 2)
        if key is None or name is None:
            continue
        names[str(key).strip()] = str(name).strip()
    return names


def product_name_map(products: Iterable[ProductRecord]) -> Dict[str, str]:
    """Map product ids to their display label (code first, then name)."""

    names: Dict[str, str] = {}
    for product in products:
        label = product.product_code or product.name
        if label:
            names[product.product_id] = label
    return names


def deserialize_sale(raw_row: Sequence[object]) -> SaleRecord:
    """Convert a raw ``Sales`` row into a :class:`SaleRecord`.

    Columns: ``SaleID, Date, ProductID, ActivityTypeID, Channel, AmountLocal,
    AmountForeign, ExchangeRate``. The date stays raw; the engine decodes it.
    """

    (
        sale_id,
        date_raw,
        product_id,
        activity_type_id,
        channel,
        amount_local,
        amount_foreign,
        exchange_rate,
    ) = _cells(raw_row, 8)
    return SaleRecord(
        id=str(sale_id),
        date=date_raw,
        amount_local=to_decimal(amount_local),
        amount_foreign=to_decimal(amount_foreign),
        exchange_rate=_optional_decimal(exchange_rate),
        product_id=_optional_text(product_id),
        activity_type_id=_optional_text(activity_type_id),
        channel=_optional_text(channel),
    )


def deserialize_cost(raw_row: Sequence[object]) -> CostRecord:
    """Convert a raw ``Costs`` row into a :class:`CostRecord`.

    Columns: ``CostID, Date, ExpenseTypeID, ActivityTypeID, AmountLocal,
    AmountForeign, ExchangeRate``.
    """

    (
        cost_id,
        date_raw,
        expense_type_id,
        activity_type_id,
        amount_local,
        amount_foreign,
        exchange_rate,
    ) = _cells(raw_row, 7)
    return CostRecord(
        id=str(cost_id),
        date=date_raw,
        amount_local=to_decimal(amount_local),
        amount_foreign=to_decimal(amount_foreign),
        exchange_rate=_optional_decimal(exchange_rate),
        expense_type_id=_optional_text(expense_type_id),
        activity_type_id=_optional_text(activity_type_id),
    )


def deserialize_manual_entry(raw_row: Sequence[object]) -> ManualEntry:
    """Convert a raw ``ManualEntries`` row into a :class:`ManualEntry`.

    Columns: ``EntryID, Date, Description, EntryKind, AmountLocal,
    AmountForeign, ExchangeRate``. A blank or unknown kind is read as
    ``DEBIT``, the default the entry form applies.
    """

    (
        entry_id,
        date_raw,
        description,
        kind_raw,
        amount_local,
        amount_foreign,
        exchange_rate,
    ) = _cells(raw_row, 7)
    kind_text = str(kind_raw).strip().upper() if kind_raw is not None else ""
    try:
        entry_kind = EntryKind(kind_text)
    except ValueError:
        log.warning("Manual entry '%s' has unknown kind %r; reading it as DEBIT", entry_id, kind_raw)
        entry_kind = EntryKind.DEBIT
    return ManualEntry(
        id=str(entry_id),
        date=date_raw,
        amount_local=to_decimal(amount_local),
        amount_foreign=to_decimal(amount_foreign),
        exchange_rate=_optional_decimal(exchange_rate),
        description=str(description) if description is not None else "",
        entry_kind=entry_kind,
    )


def deserialize_inventory_movement(raw_row: Sequence[object]) -> InventoryMovement:
    """Convert a raw ``Inventory`` row into an :class:`InventoryMovement`.

    Columns: ``MovementID, Date, MovementType, ProductID, ProductCode,
    InitialQuantity, QuantityMoved, RemainingQuantity``.

    Raises:
        ValueError: If the movement type is not one the write path produces.
    """

    (
        movement_id,
        date_raw,
        type_raw,
        product_id,
        product_code,
        initial_quantity,
        quantity_moved,
        remaining_quantity,
    ) = _cells(raw_row, 8)
    type_text = str(type_raw).strip().upper() if type_raw is not None else ""
    try:
        movement_type = MovementType(type_text)
    except ValueError as exc:
        raise ValueError(f"Movement '{movement_id}' has unknown movement type: {type_raw!r}") from exc
    return InventoryMovement(
        id=str(movement_id),
        date=date_raw,
        movement_type=movement_type,
        product_id=_optional_text(product_id),
        product_code=_optional_text(product_code),
        initial_quantity=to_decimal(initial_quantity),
        quantity_moved=to_decimal(quantity_moved),
        remaining_quantity=to_decimal(remaining_quantity),
    )


def deserialize_product(raw_row: Sequence[object]) -> ProductRecord:
    """Convert a raw ``Products`` row into a :class:`ProductRecord`.

    Columns: ``ProductID, ProductCode, ProductName, ProductType``.
    """

    product_id, product_code, name, product_type = _cells(raw_row, 4)
    return ProductRecord(
        product_id=str(product_id),
        product_code=_optional_text(product_code),
        name=_optional_text(name),
        product_type=_optional_text(product_type),
    )


def _cells(raw_row: Sequence[object], width: int) -> tuple[object, ...]:
    cells = tuple(raw_row[:width])
    return cells + (None,) * (width - len(cells))


def _optional_text(value: object) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _optional_decimal(value: object) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    return to_decimal(value)
