"""Unit tests for latest-wins stock resolution and the inventory overview helpers."""

from __future__ import annotations

from datetime import UTC, date, datetime
from decimal import Decimal

import pytest

from movement_ledger import stock
from movement_ledger.constants import MovementType, PeriodKind
from movement_ledger.errors import InvalidPeriodError
from movement_ledger.records import InventoryMovement, ProductRecord


def _movement(
    movement_id,
    when,
    remaining,
    *,
    product_id="P1",
    product_code=None,
    movement_type=MovementType.ADJUSTMENT,
    initial="0",
    moved=None,
):
    return InventoryMovement(
        id=movement_id,
        date=when,
        movement_type=movement_type,
        product_id=product_id,
        product_code=product_code,
        initial_quantity=Decimal(initial),
        quantity_moved=Decimal(moved if moved is not None else remaining),
        remaining_quantity=Decimal(remaining),
    )


@pytest.fixture
def history():
    """Three movements for one product, stored out of chronological order."""

    return [
        _movement("M2", datetime(2024, 2, 1), "25"),
        _movement("M3", "2024-03-01T09:00:00Z", "7"),
        _movement("M1", {"seconds": int(datetime(2024, 1, 1, tzinfo=UTC).timestamp())}, "10"),
    ]


# ---------------------------------------------------------------------------
# current_stock
# ---------------------------------------------------------------------------


def test_current_stock_returns_latest_snapshot(history):
    """The chronologically latest movement's remaining quantity should win."""

    assert stock.current_stock("P1", history) == Decimal("7")


def test_current_stock_excluding_latest_returns_previous_snapshot(history):
    """Excluding the latest movement should expose the previous snapshot."""

    assert stock.current_stock("P1", history, exclude_id="M3") == Decimal("25")


def test_current_stock_without_history_is_zero(history):
    """Unknown products and empty histories should resolve to zero."""

    assert stock.current_stock("P-missing", history) == Decimal("0")
    assert stock.current_stock("P1", []) == Decimal("0")
    assert stock.current_stock("P1", None) == Decimal("0")
    assert stock.current_stock(None, history) == Decimal("0")


def test_current_stock_does_not_replay_deltas():
    """Stored snapshots should be trusted even when deltas disagree."""

    movements = [
        _movement("M1", "2024-01-01", "10", movement_type=MovementType.OPENING),
        _movement("M2", "2024-01-02", "99", movement_type=MovementType.IN, initial="10", moved="5"),
    ]
    assert stock.current_stock("P1", movements) == Decimal("99")


def test_current_stock_matches_product_code():
    """Movements recorded against the product code should be considered."""

    movements = [
        _movement("M1", "2024-01-01", "4", product_id="P1"),
        _movement("M2", "2024-01-05", "3", product_id=None, product_code="SKU-1"),
    ]
    assert stock.current_stock("P1", movements, product_code="SKU-1") == Decimal("3")
    assert stock.current_stock("SKU-1", movements) == Decimal("3")
    assert stock.current_stock("P1", movements) == Decimal("4")


def test_current_stock_ignores_surrounding_whitespace():
    """Reference comparison should ignore whitespace around ids."""

    movements = [_movement("M1", "2024-01-01", "6", product_id=" P1 ")]
    assert stock.current_stock("P1 ", movements) == Decimal("6")


def test_current_stock_skips_invalid_dates():
    """Movements with undecodable dates should never win."""

    movements = [
        _movement("M1", "2024-01-01", "12"),
        _movement("M2", "garbage", "1"),
        _movement("M3", None, "2"),
    ]
    assert stock.current_stock("P1", movements) == Decimal("12")


def test_current_stock_tie_resolves_to_last_seen():
    """Movements sharing an instant should resolve to the one seen last."""

    movements = [
        _movement("M1", "2024-01-01T10:00:00", "5"),
        _movement("M2", datetime(2024, 1, 1, 10, 0), "8"),
    ]
    assert stock.current_stock("P1", movements) == Decimal("8")
    assert stock.current_stock("P1", list(reversed(movements))) == Decimal("5")


def test_current_stock_leaves_input_untouched(history):
    """The resolver should not reorder or mutate its input."""

    snapshot = list(history)
    stock.current_stock("P1", history)
    assert history == snapshot


def test_latest_movement_returns_record(history):
    """latest_movement should expose the winning movement itself."""

    assert stock.latest_movement("P1", history).id == "M3"
    assert stock.latest_movement("P1", history, "M3").id == "M2"
    assert stock.latest_movement("", history) is None


# ---------------------------------------------------------------------------
# Write-time rule
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "movement_type, expected",
    [
        (MovementType.OPENING, Decimal("4")),
        (MovementType.IN, Decimal("14")),
        (MovementType.OUT, Decimal("6")),
        (MovementType.ADJUSTMENT, Decimal("4")),
    ],
)
def test_remaining_after_follows_write_rule(movement_type, expected):
    """remaining_after should apply the rule each movement type stores."""

    assert stock.remaining_after(movement_type, Decimal("10"), Decimal("4")) == expected


def test_find_inconsistent_snapshots_flags_rule_violations(caplog):
    """Movements whose snapshot disagrees with the rule should be listed."""

    movements = [
        _movement("OK", "2024-01-01", "15", movement_type=MovementType.IN, initial="10", moved="5"),
        _movement("BAD", "2024-01-02", "20", movement_type=MovementType.OUT, initial="15", moved="5"),
        None,
    ]
    with caplog.at_level("WARNING", logger="movement_ledger"):
        assert stock.find_inconsistent_snapshots(movements) == ["BAD"]
    assert "inconsistent snapshots" in caplog.text


# ---------------------------------------------------------------------------
# Period filters
# ---------------------------------------------------------------------------


def test_period_filter_defaults_to_all():
    """A default filter should accept every instant."""

    period = stock.PeriodFilter()
    assert period.kind is PeriodKind.ALL
    assert period.contains(datetime(1999, 1, 1, tzinfo=UTC))


def test_period_filter_coerces_string_kind():
    """A kind given as a string should be coerced to PeriodKind."""

    period = stock.PeriodFilter(kind="YEAR", year=2024)
    assert period.kind is PeriodKind.YEAR


def test_period_filter_year_and_month():
    """Year and month filters should bucket by UTC calendar."""

    instant = datetime(2024, 3, 31, 23, 59, tzinfo=UTC)
    assert stock.PeriodFilter.for_year(2024).contains(instant)
    assert not stock.PeriodFilter.for_year(2023).contains(instant)
    assert stock.PeriodFilter.for_month(2024, 2).contains(instant)
    assert not stock.PeriodFilter.for_month(2024, 3).contains(instant)


def test_period_filter_week_uses_sunday_based_weeks():
    """Week 1 should start on the Sunday on or before the first of the month."""

    # March 1st 2024 is a Friday, so week 1 spans Feb 25th to Mar 2nd.
    week_one = stock.PeriodFilter.for_week(2024, 2, 1)
    week_two = stock.PeriodFilter.for_week(2024, 2, 2)

    assert week_one.contains(datetime(2024, 2, 25, tzinfo=UTC))
    assert week_one.contains(datetime(2024, 3, 2, 23, 59, tzinfo=UTC))
    assert not week_one.contains(datetime(2024, 3, 3, tzinfo=UTC))
    assert week_two.contains(datetime(2024, 3, 3, tzinfo=UTC))
    assert week_two.contains(datetime(2024, 3, 9, 23, 59, 59, tzinfo=UTC))


def test_period_filter_custom_range_is_inclusive_by_day():
    """Custom ranges should include both boundary days entirely."""

    period = stock.PeriodFilter.custom(date(2024, 3, 1), date(2024, 3, 31))
    assert period.contains(datetime(2024, 3, 1, tzinfo=UTC))
    assert period.contains(datetime(2024, 3, 31, 23, 59, tzinfo=UTC))
    assert not period.contains(datetime(2024, 4, 1, tzinfo=UTC))
    assert not period.contains(datetime(2024, 2, 29, 23, 59, tzinfo=UTC))


def test_period_filter_custom_range_with_open_bound():
    """A missing bound should leave that side of the range open."""

    period = stock.PeriodFilter.custom(None, date(2024, 1, 1))
    assert period.contains(datetime(1990, 1, 1, tzinfo=UTC))
    assert not period.contains(datetime(2024, 1, 2, tzinfo=UTC))


@pytest.mark.parametrize(
    "kwargs",
    [
        {"kind": "DECADE"},
        {"kind": PeriodKind.MONTH, "year": 2024, "month": 12},
        {"kind": PeriodKind.YEAR, "year": None},
        {"kind": PeriodKind.WEEK, "year": 2024, "month": 0, "week": 7},
        {"kind": PeriodKind.WEEK, "year": 2024, "month": 0, "week": None},
        {"kind": PeriodKind.CUSTOM, "start": date(2024, 2, 1), "end": date(2024, 1, 1)},
    ],
)
def test_period_filter_rejects_invalid_configuration(kwargs):
    """Malformed period filters should raise InvalidPeriodError."""

    with pytest.raises(InvalidPeriodError):
        stock.PeriodFilter(**kwargs)


# ---------------------------------------------------------------------------
# Inventory overview helpers
# ---------------------------------------------------------------------------


@pytest.fixture
def catalog():
    return [
        ProductRecord("P1", "SKU-1", "Rice", "Food"),
        ProductRecord("P2", "SKU-2", "Soap", "hygiene"),
        ProductRecord("P3", None, "Oil", "food"),
    ]


@pytest.fixture
def mixed_movements():
    return [
        _movement("A1", "2024-01-10", "10", product_id="P1"),
        _movement("A2", "2024-02-10", "6", product_id="P1"),
        _movement("B1", "2024-01-15", "3", product_id=None, product_code="SKU-2"),
        _movement("C1", "2024-02-20", "8", product_id="P3"),
        _movement("X1", "bad date", "100", product_id="P3"),
        _movement("Z1", "2024-02-01", "50", product_id=None),
    ]


def test_movements_in_period_keeps_input_order(mixed_movements):
    """movements_in_period should filter without reordering."""

    selected = stock.movements_in_period(mixed_movements, stock.PeriodFilter.for_month(2024, 1))
    assert [movement.id for movement in selected] == ["A2", "C1", "Z1"]


def test_latest_movements_by_product_falls_back_to_code(mixed_movements):
    """Products should be keyed by id, falling back to the product code."""

    latest = stock.latest_movements_by_product(mixed_movements)
    assert {key: movement.id for key, movement in latest.items()} == {
        "P1": "A2",
        "SKU-2": "B1",
        "P3": "C1",
    }


def test_total_remaining_inventory_honours_period(mixed_movements):
    """The total should sum latest snapshots of products active in the period."""

    assert stock.total_remaining_inventory(mixed_movements) == Decimal("17")
    assert stock.total_remaining_inventory(mixed_movements, stock.PeriodFilter.for_month(2024, 0)) == Decimal("13")


def test_stock_by_product_uses_codes(catalog, mixed_movements):
    """Per-product stock should match movements recorded by id or code."""

    assert stock.stock_by_product(catalog, mixed_movements) == {
        "P1": Decimal("6"),
        "P2": Decimal("3"),
        "P3": Decimal("8"),
    }


def test_total_stock_for_type_is_case_insensitive(catalog, mixed_movements):
    """Product types should be compared case-insensitively."""

    assert stock.total_stock_for_type(catalog, mixed_movements, "FOOD") == Decimal("14")
    assert stock.total_stock_for_type(catalog, mixed_movements, "toys") == Decimal("0")


def test_product_aliases_map_codes_to_ids(catalog):
    """Only products with a code should contribute an alias."""

    assert stock.product_aliases(catalog) == {"SKU-1": "P1", "SKU-2": "P2"}


def test_total_remaining_inventory_folds_code_references_into_ids(catalog):
    """A product referenced by id and by code should count once, from its latest snapshot."""

    movements = [
        _movement("M1", "2024-01-10", "10", product_id="P1"),
        _movement("M2", "2024-02-10", "4", product_id=None, product_code="SKU-1"),
    ]
    aliases = stock.product_aliases(catalog)

    latest = stock.latest_movements_by_product(movements, aliases=aliases)
    assert {key: movement.id for key, movement in latest.items()} == {"P1": "M2"}
    total = stock.total_remaining_inventory(movements, aliases=aliases)
    assert total == Decimal("4")
    assert total == sum(stock.stock_by_product(catalog[:1], movements).values())


def test_total_stock_for_type_can_match_by_substring():
    """contains=True should match every type that includes the requested text."""

    products = [
        ProductRecord("B1", None, "Boxes", "Packaging - Boxes"),
        ProductRecord("B2", None, "Bags", "packaging"),
        ProductRecord("F1", None, "Flour", "Food"),
    ]
    movements = [
        _movement("M1", "2024-01-01", "5", product_id="B1"),
        _movement("M2", "2024-01-01", "7", product_id="B2"),
        _movement("M3", "2024-01-01", "9", product_id="F1"),
    ]

    assert stock.total_stock_for_type(products, movements, "packaging") == Decimal("7")
    assert stock.total_stock_for_type(products, movements, "Packaging", contains=True) == Decimal("12")


def test_count_movements_in_month(mixed_movements):
    """Only validly dated movements inside the month should be counted."""

    assert stock.count_movements_in_month(mixed_movements, 2024, 0) == 2
    assert stock.count_movements_in_month(mixed_movements, 2024, 1) == 3
