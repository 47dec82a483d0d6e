"""Latest-wins stock resolution over the inventory movement log.

Every movement written by the inventory forms embeds the quantity left after
it was applied (``remaining_quantity``). Current stock is therefore the
snapshot stored on the chronologically latest movement for a product; deltas
are never replayed. :func:`remaining_after` documents the write-time rule the
snapshots follow so audits can flag rows that break it.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta
from decimal import Decimal
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from . import log
from .constants import MovementType, PeriodKind
from .errors import InvalidPeriodError
from .records import ZERO, InventoryMovement, ProductRecord
from .temporal import in_month, normalize, validate_period


@dataclass(frozen=True)
class PeriodFilter:
    """Time window used to narrow movements before resolving stock.

    ``month`` is 0-indexed. ``week`` counts Sunday-based weeks from the week
    containing the first day of the month. ``start``/``end`` bound a
    ``CUSTOM`` window by calendar day, both inclusive; a missing bound leaves
    that side open.
    """

    kind: PeriodKind = PeriodKind.ALL
    year: Optional[int] = None
    month: Optional[int] = None
    week: Optional[int] = None
    start: Optional[date] = None
    end: Optional[date] = None

    def __post_init__(self) -> None:
        try:
            object.__setattr__(self, "kind", PeriodKind(self.kind))
        except ValueError as exc:
            raise InvalidPeriodError(f"Unsupported period kind: {self.kind!r}") from exc
        if self.kind in (PeriodKind.MONTH, PeriodKind.WEEK):
            validate_period(self.year, self.month)  # type: ignore[arg-type]
        elif self.kind is PeriodKind.YEAR:
            validate_period(self.year, 0)  # type: ignore[arg-type]
        if self.kind is PeriodKind.WEEK:
            if not isinstance(self.week, int) or isinstance(self.week, bool) or not 1 <= self.week <= 6:
                raise InvalidPeriodError(f"Week must be an integer between 1 and 6, got {self.week!r}")
        if self.kind is PeriodKind.CUSTOM and self.start and self.end and self.start > self.end:
            raise InvalidPeriodError(f"Custom range starts after it ends: {self.start} > {self.end}")

    @classmethod
    def for_year(cls, year: int) -> "PeriodFilter":
        return cls(kind=PeriodKind.YEAR, year=year)

    @classmethod
    def for_month(cls, year: int, month: int) -> "PeriodFilter":
        return cls(kind=PeriodKind.MONTH, year=year, month=month)

    @classmethod
    def for_week(cls, year: int, month: int, week: int) -> "PeriodFilter":
        return cls(kind=PeriodKind.WEEK, year=year, month=month, week=week)

    @classmethod
    def custom(cls, start: Optional[date], end: Optional[date]) -> "PeriodFilter":
        return cls(kind=PeriodKind.CUSTOM, start=start, end=end)

    def contains(self, instant: datetime) -> bool:
        """Return ``True`` when the UTC ``instant`` lies inside the window."""
        if self.kind is PeriodKind.YEAR:
            return instant.year == self.year
        if self.kind is PeriodKind.MONTH:
            return in_month(instant, self.year, self.month)  # type: ignore[arg-type]
        if self.kind is PeriodKind.WEEK:
            week_start = self._week_start()
            return week_start <= instant < week_start + timedelta(days=7)
        if self.kind is PeriodKind.CUSTOM:
            if self.start is not None and instant < _day_start(self.start):
                return False
            if self.end is not None and instant >= _day_start(self.end) + timedelta(days=1):
                return False
            return True
        return True

    def _week_start(self) -> datetime:
        first = datetime(self.year, self.month + 1, 1, tzinfo=UTC)  # type: ignore[operator]
        # Weeks start on Sunday; weekday() counts from Monday.
        offset = (first.weekday() + 1) % 7
        return first + timedelta(days=(self.week - 1) * 7 - offset)  # type: ignore[operator]


def _day_start(day: date) -> datetime:
    return datetime(day.year, day.month, day.day, tzinfo=UTC)


def remaining_after(movement_type: MovementType, initial_quantity: Decimal, quantity_moved: Decimal) -> Decimal:
    """Return the snapshot a writer must store for a new movement.

    Args:
        movement_type (MovementType): Kind of movement being written.
        initial_quantity (Decimal): Stock on hand before the movement.
        quantity_moved (Decimal): Magnitude entered on the form. For
            ``OPENING`` it is the opening quantity and for ``ADJUSTMENT`` it is
            the absolute quantity counted.

    Returns:
        Decimal: Quantity left after the movement.
    """
    if movement_type is MovementType.IN:
        return initial_quantity + quantity_moved
    if movement_type is MovementType.OUT:
        return initial_quantity - quantity_moved
    return quantity_moved


def find_inconsistent_snapshots(movements: Optional[Iterable[InventoryMovement]]) -> List[str]:
    """List ids of movements whose stored snapshot breaks the write-time rule."""
    inconsistent: List[str] = []
    for movement in movements or ():
        if movement is None:
            continue
        expected = remaining_after(movement.movement_type, movement.initial_quantity, movement.quantity_moved)
        if movement.remaining_quantity != expected:
            inconsistent.append(movement.id)
    if inconsistent:
        log.warning("Found %d inventory movements with inconsistent snapshots", len(inconsistent))
    return inconsistent


def latest_movement(
    product_id: Optional[str],
    movements: Optional[Iterable[InventoryMovement]],
    exclude_id: Optional[str] = None,
    *,
    product_code: Optional[str] = None,
) -> Optional[InventoryMovement]:
    """Select the chronologically latest movement referencing a product.

    A movement references the product when either its ``product_id`` or its
    ``product_code`` equals the requested id or code. Movements with
    undecodable dates are ignored. On equal instants the movement seen last in
    ``movements`` wins.

    Args:
        product_id (str | None): Internal product identifier.
        movements (Iterable[InventoryMovement] | None): Movement history in
            insertion order.
        exclude_id (str | None): Movement to leave out, typically the one
            being edited.
        product_code (str | None): Optional human-readable product code.

    Returns:
        InventoryMovement | None: Latest matching movement, if any.
    """
    keys = _match_keys(product_id, product_code)
    if not keys:
        return None

    latest: Optional[InventoryMovement] = None
    latest_instant: Optional[datetime] = None
    for movement in movements or ():
        if movement is None:
            continue
        if exclude_id is not None and movement.id == exclude_id:
            continue
        if not _references(movement, keys):
            continue
        instant = normalize(movement.date)
        if instant is None:
            log.debug("Skipping movement '%s' with invalid date %r", movement.id, movement.date)
            continue
        if latest_instant is None or instant >= latest_instant:
            latest, latest_instant = movement, instant
    return latest


def current_stock(
    product_id: Optional[str],
    movements: Optional[Iterable[InventoryMovement]],
    exclude_id: Optional[str] = None,
    *,
    product_code: Optional[str] = None,
) -> Decimal:
    """Return the on-hand quantity of a product, ``0`` without history."""
    latest = latest_movement(product_id, movements, exclude_id, product_code=product_code)
    if latest is None:
        return ZERO
    log.debug(
        "Resolved stock for '%s' from movement '%s': %s",
        product_id,
        latest.id,
        latest.remaining_quantity,
    )
    return latest.remaining_quantity


def movements_in_period(
    movements: Optional[Iterable[InventoryMovement]],
    period: Optional[PeriodFilter] = None,
) -> List[InventoryMovement]:
    """Return movements with a decodable date inside ``period``, in input order."""
    period = period or PeriodFilter()
    selected: List[InventoryMovement] = []
    for movement in movements or ():
        if movement is None:
            continue
        instant = normalize(movement.date)
        if instant is not None and period.contains(instant):
            selected.append(movement)
    return selected


def latest_movements_by_product(
    movements: Optional[Iterable[InventoryMovement]],
    period: Optional[PeriodFilter] = None,
    aliases: Optional[Mapping[str, str]] = None,
) -> Dict[str, InventoryMovement]:
    """Map each product key to its latest movement inside ``period``.

    The product key is the movement's ``product_id``, falling back to its
    ``product_code``. ``aliases`` maps product codes to product ids so rows
    that reference the same product either way share one key. Movements
    referencing neither are ignored.
    """
    aliases = aliases or {}
    latest: Dict[str, InventoryMovement] = {}
    instants: Dict[str, datetime] = {}
    for movement in movements_in_period(movements, period):
        key = _product_key(movement)
        if key is None:
            continue
        key = aliases.get(key, key)
        instant = normalize(movement.date)
        if key not in instants or instant >= instants[key]:  # type: ignore[operator]
            latest[key] = movement
            instants[key] = instant  # type: ignore[assignment]
    return latest


def total_remaining_inventory(
    movements: Optional[Iterable[InventoryMovement]],
    period: Optional[PeriodFilter] = None,
    aliases: Optional[Mapping[str, str]] = None,
) -> Decimal:
    """Sum the latest snapshot of every product active inside ``period``."""
    latest = latest_movements_by_product(movements, period, aliases)
    return sum((movement.remaining_quantity for movement in latest.values()), ZERO)


def product_aliases(products: Iterable[ProductRecord]) -> Dict[str, str]:
    """Map each product code in master data to its product id."""
    aliases: Dict[str, str] = {}
    for product in products:
        for code in _match_keys(product.product_code):
            aliases[code] = product.product_id.strip()
    return aliases


def stock_by_product(
    products: Iterable[ProductRecord],
    movements: Sequence[InventoryMovement],
) -> Dict[str, Decimal]:
    """Resolve current stock for every product in master data."""
    return {
        product.product_id: current_stock(product.product_id, movements, product_code=product.product_code)
        for product in products
    }


def total_stock_for_type(
    products: Iterable[ProductRecord],
    movements: Sequence[InventoryMovement],
    product_type: str,
    *,
    contains: bool = False,
) -> Decimal:
    """Sum current stock across products of one type (case-insensitive).

    With ``contains`` a product matches when its type includes
    ``product_type``, so ``"packaging"`` covers ``"Packaging - Boxes"``.
    """
    wanted = product_type.strip().lower()
    matching = []
    for product in products:
        kind = (product.product_type or "").strip().lower()
        if kind == wanted or (contains and wanted in kind):
            matching.append(product)
    return sum(stock_by_product(matching, movements).values(), ZERO)


def count_movements_in_month(
    movements: Optional[Iterable[InventoryMovement]],
    year: int,
    month: int,
) -> int:
    """Count movements dated inside a 0-indexed month."""
    return len(movements_in_period(movements, PeriodFilter.for_month(year, month)))


def _match_keys(*candidates: Optional[str]) -> set[str]:
    return {candidate.strip() for candidate in candidates if candidate and candidate.strip()}


def _references(movement: InventoryMovement, keys: set[str]) -> bool:
    for reference in (movement.product_id, movement.product_code):
        if reference and reference.strip() in keys:
            return True
    return False


def _product_key(movement: InventoryMovement) -> Optional[str]:
    for reference in (movement.product_id, movement.product_code):
        if reference and reference.strip():
            return reference.strip()
    return None


__all__ = [
    "PeriodFilter",
    "remaining_after",
    "find_inconsistent_snapshots",
    "latest_movement",
    "current_stock",
    "movements_in_period",
    "latest_movements_by_product",
    "total_remaining_inventory",
    "product_aliases",
    "stock_by_product",
    "total_stock_for_type",
    "count_movements_in_month",
]
