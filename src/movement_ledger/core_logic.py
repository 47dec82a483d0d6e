"""Business logic layer for the movement ledger.

This module wires the snapshot workbook loaded by the Data Access Layer (DAL)
to the pure engine modules. It owns the report control flow: opening balance
first, then the month's ledger seeded with it, then the derived summaries.
Stock resolution runs independently of the ledger path.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from openpyxl.workbook import Workbook

from . import cash_book, data_manager, log, stock
from .constants import EXPECTED_SCHEMA_VERSION, Currency, PeriodKind, SourceKind
from .records import (
    CostRecord,
    InventoryMovement,
    LedgerEntry,
    ManualEntry,
    MasterDataLookups,
    ProductRecord,
    SaleRecord,
    resolve_currency,
)
from .temporal import is_valid


@dataclass(frozen=True)
class RuntimeContext:
    """Container for configuration and workbook references used by the BLL."""

    settings: data_manager.ConfigSettings
    workbook: Workbook
    _cache: Dict[str, Any] = field(default_factory=dict, repr=False, compare=False)


@dataclass(frozen=True)
class CashBookReport:
    """Everything the cash book report shows for one month and currency."""

    year: int
    month: int
    currency: Currency
    opening_balance: Decimal
    entries: List[LedgerEntry]
    summary: cash_book.LedgerSummary
    daily: List[cash_book.DailySummary]
    by_source: Dict[SourceKind, cash_book.SourceSummary]
    diagnostics: cash_book.LedgerDiagnostics


@dataclass(frozen=True)
class InventoryOverview:
    """Stock figures for the inventory dashboard."""

    stock_by_product: Dict[str, Decimal]
    total_remaining: Decimal
    movements_in_period: int
    type_total: Optional[Decimal] = None
    inconsistent_movements: List[str] = field(default_factory=list)
    undated_movements: List[str] = field(default_factory=list)


def _cached(context: RuntimeContext, name: str, loader: Callable[[Workbook], Any]) -> Any:
    """Return a cached snapshot collection, loading it on first access.

    Snapshot collections never change for the lifetime of a context, so each
    one is read from the workbook at most once. A fresh snapshot means a fresh
    context (see :func:`refresh_context`).
    """

    if name not in context._cache:
        value = loader(context.workbook)
        if not isinstance(value, dict):
            value = list(value)
        context._cache[name] = value
        log.debug("Populated '%s' cache with %d entries", name, len(value))
    return context._cache[name]


def load_runtime_context(config_path: Optional[Path] = None) -> RuntimeContext:
    """Load configuration settings and the snapshot workbook for the BLL.

    Args:
        config_path (Path | None): Optional override path for the configuration
            file. When omitted the data layer performs its upward search from
            the current working directory.

    Returns:
        RuntimeContext: Context with immutable settings, the opened workbook,
            and an empty cache store.

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
    log.info("Loaded runtime context for snapshot '%s'", settings.data_file)
    return RuntimeContext(settings=settings, workbook=workbook)


def refresh_context(context: RuntimeContext) -> RuntimeContext:
    """Reopen the snapshot workbook so later reports see newer records.

    Raises:
        FileNotFoundError: If the snapshot can no longer be found.
    """
    workbook = data_manager.open_workbook(context.settings.data_file)
    log.info("Reloaded snapshot '%s'", context.settings.data_file)
    return RuntimeContext(settings=context.settings, workbook=workbook)


def ensure_schema_version(context: RuntimeContext) -> None:
    """Validate snapshot compatibility before computing reports.

    Raises:
        RuntimeError: If the schema version declared in the configuration does
            not match ``EXPECTED_SCHEMA_VERSION``.
    """
    if context.settings.schema_version != EXPECTED_SCHEMA_VERSION:
        log.error(
            "Snapshot schema mismatch: expected %s, found %s",
            EXPECTED_SCHEMA_VERSION,
            context.settings.schema_version,
        )
        raise RuntimeError(
            "Snapshot schema mismatch: expected %s, found %s"
            % (EXPECTED_SCHEMA_VERSION, context.settings.schema_version)
        )

    log.debug("Schema version '%s' validated", context.settings.schema_version)


def list_sales(context: RuntimeContext) -> List[SaleRecord]:
    """Return a copy of the cached sales collection in sheet order."""
    return list(_cached(context, "sales", data_manager.iter_sales))


def list_costs(context: RuntimeContext) -> List[CostRecord]:
    """Return a copy of the cached costs collection in sheet order."""
    return list(_cached(context, "costs", data_manager.iter_costs))


def list_manual_entries(context: RuntimeContext) -> List[ManualEntry]:
    """Return a copy of the cached manual entries in sheet order."""
    return list(_cached(context, "manual_entries", data_manager.iter_manual_entries))


def list_movements(context: RuntimeContext) -> List[InventoryMovement]:
    """Return a copy of the cached inventory movements in insertion order."""
    return list(_cached(context, "movements", data_manager.iter_inventory_movements))


def list_products(context: RuntimeContext) -> List[ProductRecord]:
    """Return a copy of the cached product master data."""
    return list(_cached(context, "products", data_manager.iter_products))


def load_lookups(context: RuntimeContext) -> MasterDataLookups:
    """Assemble the master-data name maps used for ledger descriptions."""
    products = _cached(context, "product_names", lambda _: data_manager.product_name_map(list_products(context)))
    activity_types = _cached(
        context,
        "activity_type_names",
        lambda workbook: data_manager.load_name_map(workbook, data_manager.ACTIVITY_TYPES_SHEET),
    )
    expense_types = _cached(
        context,
        "expense_type_names",
        lambda workbook: data_manager.load_name_map(workbook, data_manager.EXPENSE_TYPES_SHEET),
    )
    return MasterDataLookups(products=products, activity_types=activity_types, expense_types=expense_types)


def _report_currency(context: RuntimeContext, currency: Optional[Currency | str]) -> Currency:
    return resolve_currency(currency) if currency is not None else context.settings.default_currency


def build_cash_book(
    context: RuntimeContext,
    year: int,
    month: int,
    currency: Optional[Currency | str] = None,
) -> CashBookReport:
    """Produce the monthly cash book report from the loaded snapshot.

    The opening balance is always computed from the full history first and
    then handed to the ledger generator, so the report's first balance and
    the carried-forward figure agree by construction.

    Args:
        context (RuntimeContext): Runtime context providing the snapshot.
        year (int): Target year.
        month (int): Target month, 0-indexed.
        currency (Currency | str | None): Report currency. Defaults to the
            configured ``Currency.Default``.

    Returns:
        CashBookReport: Opening balance, entries, summary, breakdowns, and
            partition diagnostics.

    Raises:
        InvalidPeriodError: If ``year`` or ``month`` is out of range.
        UnsupportedCurrencyError: If ``currency`` is not recognized.
    """
    selected = _report_currency(context, currency)
    sales = list_sales(context)
    costs = list_costs(context)
    manual_entries = list_manual_entries(context)

    opening = cash_book.opening_balance(sales, costs, manual_entries, year, month, selected)
    entries = cash_book.generate_ledger(
        sales,
        costs,
        manual_entries,
        year,
        month,
        selected,
        opening,
        load_lookups(context),
    )
    report = CashBookReport(
        year=year,
        month=month,
        currency=selected,
        opening_balance=opening,
        entries=entries,
        summary=cash_book.summarize(entries),
        daily=cash_book.summarize_by_day(entries),
        by_source=cash_book.summarize_by_source(entries),
        diagnostics=cash_book.ledger_diagnostics(sales, costs, manual_entries, year, month),
    )
    log.info(
        "Built cash book for %04d-%02d (%s): %d entries, closing balance %s",
        year,
        month + 1,
        selected.value,
        len(entries),
        entries[-1].balance if entries else opening,
    )
    return report


def opening_balance(
    context: RuntimeContext,
    year: int,
    month: int,
    currency: Optional[Currency | str] = None,
) -> Decimal:
    """Return the balance carried into a month without building the ledger."""
    selected = _report_currency(context, currency)
    balance = cash_book.opening_balance(
        list_sales(context),
        list_costs(context),
        list_manual_entries(context),
        year,
        month,
        selected,
    )
    log.info("Opening balance for %04d-%02d (%s): %s", year, month + 1, selected.value, balance)
    return balance


def resolve_stock(context: RuntimeContext, product_id: str, exclude_id: Optional[str] = None) -> Decimal:
    """Resolve current stock for a product from the movement snapshot.

    When the product exists in master data its code is matched too, so
    movements recorded against either reference are considered.
    """
    products = {product.product_id: product for product in list_products(context)}
    product = products.get(product_id)
    product_code = product.product_code if product is not None else None
    quantity = stock.current_stock(product_id, list_movements(context), exclude_id, product_code=product_code)
    log.info("Resolved stock for product '%s': %s", product_id, quantity)
    return quantity


def inventory_overview(
    context: RuntimeContext,
    period: Optional[stock.PeriodFilter] = None,
    *,
    product_type: Optional[str] = None,
    type_contains: bool = False,
) -> InventoryOverview:
    """Summarize stock for the inventory dashboard.

    Per-product stock is always current; ``period`` narrows only the
    remaining-inventory total and the movement count. Movements recorded
    against a product code are folded into the product's id so the total and
    the per-product figures agree.
    """
    products = list_products(context)
    movements = list_movements(context)
    type_total = None
    if product_type is not None:
        type_total = stock.total_stock_for_type(products, movements, product_type, contains=type_contains)
    if period is not None and period.kind is PeriodKind.MONTH:
        movement_count = stock.count_movements_in_month(movements, period.year, period.month)
    else:
        movement_count = len(stock.movements_in_period(movements, period))
    undated = [movement.id for movement in movements if not is_valid(movement.date)]
    if undated:
        log.warning("Found %d inventory movements with invalid dates", len(undated))
    return InventoryOverview(
        stock_by_product=stock.stock_by_product(products, movements),
        total_remaining=stock.total_remaining_inventory(movements, period, stock.product_aliases(products)),
        movements_in_period=movement_count,
        type_total=type_total,
        inconsistent_movements=stock.find_inconsistent_snapshots(movements),
        undated_movements=undated,
    )
