"""Monthly cash book derived from sales, costs, and manual entries.

The cash book is never stored. Each call rebuilds it from the full record
snapshot supplied by the caller:

1. :func:`opening_balance` scans every record dated before the month.
2. :func:`generate_ledger` selects the month's records, orders them by
   ``(date, source precedence, input position)`` and folds the running
   balance starting from the opening balance.
3. :func:`summarize` and the breakdown helpers derive report figures from the
   generated entries.

Records with undecodable dates are skipped everywhere and counted in
:class:`LedgerDiagnostics`. Lookup misses fall back to
:class:`~movement_ledger.records.FallbackLabels`.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, replace
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from . import log
from .constants import Currency, EntryKind, SourceKind
from .errors import InvalidPeriodError, LedgerUsageError, UnsupportedCurrencyError
from .records import (
    ZERO,
    CostRecord,
    FallbackLabels,
    LedgerEntry,
    ManualEntry,
    MasterDataLookups,
    MovementRecord,
    SaleRecord,
    resolve_currency,
    to_decimal,
)
from .temporal import in_month, month_start, normalize, validate_period


@dataclass(frozen=True)
class LedgerSummary:
    """Aggregate figures derived from a generated ledger."""

    opening_balance: Decimal = ZERO
    total_cash_in: Decimal = ZERO
    total_cash_out: Decimal = ZERO
    closing_balance: Decimal = ZERO
    net_flow: Decimal = ZERO


@dataclass(frozen=True)
class DailySummary:
    """Cash movement for one calendar day of a ledger."""

    day: date
    cash_in: Decimal
    cash_out: Decimal
    entry_count: int
    balance: Decimal


@dataclass(frozen=True)
class SourceSummary:
    """Cash movement contributed by one source kind."""

    cash_in: Decimal = ZERO
    cash_out: Decimal = ZERO
    count: int = 0


@dataclass(frozen=True)
class SourceDiagnostics:
    """How the records of one collection were partitioned for a month."""

    processed: int = 0
    invalid_date: int = 0
    outside_period: int = 0
    included: int = 0


@dataclass(frozen=True)
class LedgerDiagnostics:
    """Per-source partition counts for a generated ledger."""

    sales: SourceDiagnostics = SourceDiagnostics()
    costs: SourceDiagnostics = SourceDiagnostics()
    manual_entries: SourceDiagnostics = SourceDiagnostics()

    @property
    def invalid_dates(self) -> int:
        return self.sales.invalid_date + self.costs.invalid_date + self.manual_entries.invalid_date

    @property
    def included(self) -> int:
        return self.sales.included + self.costs.included + self.manual_entries.included


@dataclass(frozen=True)
class BalanceCheckpoint:
    """Materialized opening balance of a month in one currency."""

    year: int
    month: int
    currency: Currency
    balance: Decimal

    @property
    def cutoff(self) -> datetime:
        return month_start(self.year, self.month)


_Sources = Tuple[Tuple[SourceKind, Optional[Iterable[MovementRecord]]], ...]


def _sources(
    sales: Optional[Iterable[SaleRecord]],
    costs: Optional[Iterable[CostRecord]],
    manual_entries: Optional[Iterable[ManualEntry]],
) -> _Sources:
    return (
        (SourceKind.SALE, sales),
        (SourceKind.COST, costs),
        (SourceKind.MANUAL, manual_entries),
    )


def _cash_flow(source_kind: SourceKind, record: MovementRecord, currency: Currency) -> Tuple[Decimal, Decimal]:
    """Split a record's amount into ``(cash_in, cash_out)``.

    Exactly one side is non-zero. A negative stored amount is reported as its
    magnitude on the opposite side, which leaves the balance effect unchanged.
    """
    amount = record.amount_in(currency)
    if source_kind is SourceKind.SALE:
        inflow = True
    elif source_kind is SourceKind.COST:
        inflow = False
    else:
        inflow = getattr(record, "entry_kind", None) == EntryKind.CREDIT
    if amount < ZERO:
        amount, inflow = -amount, not inflow
    return (amount, ZERO) if inflow else (ZERO, amount)


def _describe(
    source_kind: SourceKind,
    record: MovementRecord,
    lookups: MasterDataLookups,
    labels: FallbackLabels,
) -> str:
    if source_kind is SourceKind.SALE:
        product = lookups.product_name(getattr(record, "product_id", None)) or labels.product
        activity = lookups.activity_name(getattr(record, "activity_type_id", None)) or labels.activity
        channel = getattr(record, "channel", None)
        suffix = f" ({channel})" if channel else ""
        return f"{product} - {activity}{suffix}"
    if source_kind is SourceKind.COST:
        expense = lookups.expense_name(getattr(record, "expense_type_id", None)) or labels.expense
        activity = lookups.activity_name(getattr(record, "activity_type_id", None)) or labels.activity
        return f"{expense} - {activity}"
    return getattr(record, "description", None) or labels.manual


def _select_month(
    records: Optional[Iterable[MovementRecord]],
    year: int,
    month: int,
) -> Tuple[List[Tuple[int, datetime, MovementRecord]], SourceDiagnostics]:
    selected: List[Tuple[int, datetime, MovementRecord]] = []
    processed = invalid = outside = 0
    for position, record in enumerate(records or ()):
        if record is None:
            continue
        processed += 1
        instant = normalize(record.date)
        if instant is None:
            invalid += 1
            log.debug("Skipping record '%s' with invalid date %r", record.id, record.date)
            continue
        if not in_month(instant, year, month):
            outside += 1
            continue
        selected.append((position, instant, record))
    diagnostics = SourceDiagnostics(
        processed=processed,
        invalid_date=invalid,
        outside_period=outside,
        included=len(selected),
    )
    return selected, diagnostics


def _coerce_balance(value: Any) -> Decimal:
    """Convert a caller-supplied balance, rejecting values that are not numbers."""
    if isinstance(value, Decimal):
        converted = value
    elif isinstance(value, (int, float, str)) and not isinstance(value, bool):
        try:
            converted = Decimal(str(value).strip())
        except InvalidOperation as exc:
            raise LedgerUsageError(f"Opening balance must be numeric, got {value!r}") from exc
    else:
        raise LedgerUsageError(f"Opening balance must be numeric, got {value!r}")
    if not converted.is_finite():
        raise LedgerUsageError(f"Opening balance must be finite, got {value!r}")
    return converted


def _net_between(
    sources: _Sources,
    currency: Currency,
    *,
    start: Optional[datetime],
    end: datetime,
) -> Decimal:
    balance = ZERO
    for source_kind, records in sources:
        for record in records or ():
            if record is None:
                continue
            instant = normalize(record.date)
            if instant is None or instant >= end:
                continue
            if start is not None and instant < start:
                continue
            cash_in, cash_out = _cash_flow(source_kind, record, currency)
            balance += cash_in - cash_out
    return balance


def opening_balance(
    sales: Optional[Iterable[SaleRecord]],
    costs: Optional[Iterable[CostRecord]],
    manual_entries: Optional[Iterable[ManualEntry]],
    year: int,
    month: int,
    currency: Currency | str,
) -> Decimal:
    """Net balance carried into a month from every earlier record.

    Args:
        sales (Iterable[SaleRecord] | None): Full sales history.
        costs (Iterable[CostRecord] | None): Full costs history.
        manual_entries (Iterable[ManualEntry] | None): Full manual entry
            history.
        year (int): Target year.
        month (int): Target month, 0-indexed.
        currency (Currency | str): Amount column to sum.

    Returns:
        Decimal: Sales and manual credits minus costs and manual debits, over
            records dated strictly before the first instant of the month.

    Raises:
        InvalidPeriodError: If ``year`` or ``month`` is out of range.
        UnsupportedCurrencyError: If ``currency`` is not recognized.
    """
    currency = resolve_currency(currency)
    cutoff = month_start(year, month)
    balance = _net_between(_sources(sales, costs, manual_entries), currency, start=None, end=cutoff)
    log.debug("Opening balance for %04d-%02d (%s): %s", year, month + 1, currency.value, balance)
    return balance


def make_checkpoint(
    sales: Optional[Iterable[SaleRecord]],
    costs: Optional[Iterable[CostRecord]],
    manual_entries: Optional[Iterable[ManualEntry]],
    year: int,
    month: int,
    currency: Currency | str,
) -> BalanceCheckpoint:
    """Materialize the opening balance of a month for later reuse."""
    currency = resolve_currency(currency)
    balance = opening_balance(sales, costs, manual_entries, year, month, currency)
    return BalanceCheckpoint(year=year, month=month, currency=currency, balance=balance)


def opening_balance_from_checkpoint(
    checkpoint: BalanceCheckpoint,
    sales: Optional[Iterable[SaleRecord]],
    costs: Optional[Iterable[CostRecord]],
    manual_entries: Optional[Iterable[ManualEntry]],
    year: int,
    month: int,
    currency: Optional[Currency | str] = None,
) -> Decimal:
    """Opening balance of a month, applying only records after a checkpoint.

    The result equals :func:`opening_balance` for the same snapshot as long
    as no record dated before the checkpoint month changed since the
    checkpoint was taken.

    Raises:
        InvalidPeriodError: If the checkpoint month lies after the target.
        UnsupportedCurrencyError: If ``currency`` differs from the
            checkpoint's currency.
    """
    if currency is not None and resolve_currency(currency) is not checkpoint.currency:
        raise UnsupportedCurrencyError(
            f"Checkpoint currency {checkpoint.currency.value!r} does not match {currency!r}"
        )
    target = month_start(year, month)
    if checkpoint.cutoff > target:
        raise InvalidPeriodError(
            f"Checkpoint {checkpoint.year:04d}-{checkpoint.month + 1:02d} is after "
            f"{year:04d}-{month + 1:02d}"
        )
    delta = _net_between(
        _sources(sales, costs, manual_entries),
        checkpoint.currency,
        start=checkpoint.cutoff,
        end=target,
    )
    return checkpoint.balance + delta


def ledger_diagnostics(
    sales: Optional[Iterable[SaleRecord]],
    costs: Optional[Iterable[CostRecord]],
    manual_entries: Optional[Iterable[ManualEntry]],
    year: int,
    month: int,
) -> LedgerDiagnostics:
    """Count how each collection partitions for a 0-indexed month."""
    validate_period(year, month)
    _, sales_diagnostics = _select_month(sales, year, month)
    _, costs_diagnostics = _select_month(costs, year, month)
    _, manual_diagnostics = _select_month(manual_entries, year, month)
    return LedgerDiagnostics(
        sales=sales_diagnostics,
        costs=costs_diagnostics,
        manual_entries=manual_diagnostics,
    )


def generate_ledger(
    sales: Optional[Iterable[SaleRecord]],
    costs: Optional[Iterable[CostRecord]],
    manual_entries: Optional[Iterable[ManualEntry]],
    year: int,
    month: int,
    currency: Currency | str,
    opening_balance: Any = ZERO,
    lookups: Optional[MasterDataLookups] = None,
    *,
    labels: Optional[FallbackLabels] = None,
) -> List[LedgerEntry]:
    """Build the ordered, balance-annotated cash book for one month.

    Args:
        sales (Iterable[SaleRecord] | None): Sales snapshot; cash in.
        costs (Iterable[CostRecord] | None): Costs snapshot; cash out.
        manual_entries (Iterable[ManualEntry] | None): Manual entries; cash in
            for credits, cash out for debits.
        year (int): Target year.
        month (int): Target month, 0-indexed.
        currency (Currency | str): Amount column used for ``cash_in`` and
            ``cash_out``.
        opening_balance (Decimal): Balance before the first entry, normally
            the result of :func:`opening_balance`.
        lookups (MasterDataLookups | None): Master-data names used to build
            descriptions.
        labels (FallbackLabels | None): Labels used when a lookup misses.

    Returns:
        list[LedgerEntry]: New entries sorted by date, then SALE before COST
            before MANUAL, then input position, each carrying the running
            balance after it.

    Raises:
        InvalidPeriodError: If ``year`` or ``month`` is out of range.
        UnsupportedCurrencyError: If ``currency`` is not recognized.
        LedgerUsageError: If ``opening_balance`` is not a finite number.
    """
    currency = resolve_currency(currency)
    validate_period(year, month)
    opening = _coerce_balance(opening_balance)
    lookups = lookups or MasterDataLookups()
    labels = labels or FallbackLabels()

    pending: List[Tuple[datetime, int, int, LedgerEntry]] = []
    partition: Dict[SourceKind, SourceDiagnostics] = {}
    for source_kind, records in _sources(sales, costs, manual_entries):
        selected, partition[source_kind] = _select_month(records, year, month)
        for position, instant, record in selected:
            cash_in, cash_out = _cash_flow(source_kind, record, currency)
            exchange_rate = to_decimal(record.exchange_rate) if record.exchange_rate is not None else None
            entry = LedgerEntry(
                date=instant,
                source_kind=source_kind,
                reference=str(record.id),
                description=_describe(source_kind, record, lookups, labels),
                cash_in=cash_in,
                cash_out=cash_out,
                exchange_rate=exchange_rate or None,
                amount_local=record.amount_in(Currency.LOCAL),
                amount_foreign=record.amount_in(Currency.FOREIGN),
            )
            pending.append((instant, source_kind.precedence, position, entry))

    pending.sort(key=lambda item: item[:3])

    running = opening
    entries: List[LedgerEntry] = []
    for *_, entry in pending:
        running = running + entry.cash_in - entry.cash_out
        entries.append(replace(entry, balance=running))

    diagnostics = LedgerDiagnostics(
        sales=partition[SourceKind.SALE],
        costs=partition[SourceKind.COST],
        manual_entries=partition[SourceKind.MANUAL],
    )
    log.debug(
        "Generated %d ledger entries for %04d-%02d (%s): %s",
        len(entries),
        year,
        month + 1,
        currency.value,
        diagnostics,
    )
    if diagnostics.invalid_dates:
        log.warning(
            "Skipped %d records with invalid dates while generating %04d-%02d",
            diagnostics.invalid_dates,
            year,
            month + 1,
        )
    return entries


def summarize(entries: Sequence[LedgerEntry]) -> LedgerSummary:
    """Derive totals and balances from a generated ledger.

    ``opening_balance`` here is reconstructed from the first entry and is a
    convenience for display; :func:`opening_balance` stays authoritative.
    """
    if not entries:
        return LedgerSummary()

    total_cash_in = sum((entry.cash_in for entry in entries), ZERO)
    total_cash_out = sum((entry.cash_out for entry in entries), ZERO)
    first = entries[0]
    return LedgerSummary(
        opening_balance=first.balance - first.cash_in + first.cash_out,
        total_cash_in=total_cash_in,
        total_cash_out=total_cash_out,
        closing_balance=entries[-1].balance,
        net_flow=total_cash_in - total_cash_out,
    )


def summarize_by_day(entries: Sequence[LedgerEntry]) -> List[DailySummary]:
    """Group a ledger by calendar day, keeping the day's closing balance."""
    days: Dict[date, Dict[str, Any]] = {}
    for entry in entries:
        bucket = days.setdefault(
            entry.date.date(),
            {"cash_in": ZERO, "cash_out": ZERO, "entry_count": 0, "balance": entry.balance},
        )
        bucket["cash_in"] += entry.cash_in
        bucket["cash_out"] += entry.cash_out
        bucket["entry_count"] += 1
        bucket["balance"] = entry.balance
    return [DailySummary(day=day, **days[day]) for day in sorted(days)]


def summarize_by_source(entries: Iterable[LedgerEntry]) -> Dict[SourceKind, SourceSummary]:
    """Total cash in, cash out, and entry count per source kind."""
    totals: Dict[SourceKind, List[Any]] = defaultdict(lambda: [ZERO, ZERO, 0])
    for entry in entries:
        bucket = totals[entry.source_kind]
        bucket[0] += entry.cash_in
        bucket[1] += entry.cash_out
        bucket[2] += 1
    return {
        kind: SourceSummary(*totals[kind]) if kind in totals else SourceSummary()
        for kind in SourceKind
    }


__all__ = [
    "LedgerSummary",
    "DailySummary",
    "SourceSummary",
    "SourceDiagnostics",
    "LedgerDiagnostics",
    "BalanceCheckpoint",
    "opening_balance",
    "make_checkpoint",
    "opening_balance_from_checkpoint",
    "ledger_diagnostics",
    "generate_ledger",
    "summarize",
    "summarize_by_day",
    "summarize_by_source",
]
