"""Command-line entry points for the movement ledger.

All orchestration in this module is limited to argparse wiring, translating
command-line arguments into engine parameters, and printing the resulting
reports. Every command is read-only: the snapshot workbook is never written.
Keeping the CLI thin ensures the same parser configuration can be reused by
tests, scripts, or any alternative front-end.
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Iterable, Mapping, MutableMapping, Optional, Sequence

from . import core_logic, log
from .constants import Currency, SourceKind
from .errors import InvalidPeriodError, LedgerUsageError
from .records import resolve_currency
from .stock import PeriodFilter


@dataclass(frozen=True)
class CommandSpec:
    """Describe how a CLI sub-command is configured and executed."""

    name: str
    help_text: str
    register: Callable[[argparse._SubParsersAction[argparse.ArgumentParser]], argparse.ArgumentParser]
    execute: Callable[[core_logic.RuntimeContext, argparse.Namespace], int]


def build_parser() -> argparse.ArgumentParser:
    """Construct the top-level CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="ledger-cli",
        description="Read-only cash book and stock reports over a ledger snapshot.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Optional path to config.ini (defaults to ./config.ini).",
    )
    return parser


def configure_subcommands(
    parser: argparse.ArgumentParser,
) -> Mapping[str, CommandSpec]:
    """Wire all CLI sub-commands onto the supplied parser."""
    subparsers = parser.add_subparsers(dest="command", required=True, title="commands")
    read_specs = register_read_commands(subparsers)
    return build_command_table(read_specs.values())


def register_read_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare the report commands."""
    specs = {
        "cash-book": register_cash_book_command(subparsers),
        "opening-balance": register_opening_balance_command(subparsers),
        "stock": register_stock_command(subparsers),
        "inventory": register_inventory_command(subparsers),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def _add_period_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--year", type=int, required=True)
    parser.add_argument("--month", type=int, required=True, help="Calendar month, 1-12.")
    parser.add_argument(
        "--currency",
        choices=[member.value for member in Currency],
        default=None,
        help="Report currency (defaults to [Currency] Default in config.ini).",
    )


def register_cash_book_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``cash-book``."""
    name = "cash-book"
    help_text = "Display the cash book for one month."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        _add_period_arguments(parser)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_cash_book)


def register_opening_balance_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``opening-balance``."""
    name = "opening-balance"
    help_text = "Display the balance carried into a month."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        _add_period_arguments(parser)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_opening_balance)


def register_stock_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``stock``."""
    name = "stock"
    help_text = "Display the current stock of one product."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--product-id", required=True)
        parser.add_argument(
            "--exclude-id",
            default=None,
            help="Movement to ignore, e.g. the one being edited.",
        )
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_stock)


def register_inventory_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``inventory``."""
    name = "inventory"
    help_text = "Display stock for every product and the remaining inventory total."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--product-type", default=None)
        parser.add_argument(
            "--type-contains",
            action="store_true",
            help="Match every product type containing --product-type, e.g. packaging.",
        )
        parser.add_argument("--year", type=int, default=None)
        parser.add_argument("--month", type=int, default=None, help="Calendar month, 1-12 (requires --year).")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_inventory)


def load_runtime_context(config_path: Optional[Path] = None) -> core_logic.RuntimeContext:
    """Resolve the runtime context for CLI operations."""
    target = Path(config_path) if config_path is not None else Path.cwd() / "config.ini"
    return core_logic.load_runtime_context(target)


def dispatch_command(
    context: core_logic.RuntimeContext,
    args: argparse.Namespace,
    command_table: Mapping[str, CommandSpec],
) -> int:
    """Dispatch the parsed arguments to the configured executor."""
    if not hasattr(args, "command") or args.command is None:
        raise KeyError("No command specified")
    spec = command_table.get(args.command)
    if spec is None:
        raise KeyError(f"Unknown command: {args.command}")
    return spec.execute(context, args)


def build_command_table(
    specs: Iterable[CommandSpec],
) -> MutableMapping[str, CommandSpec]:
    """Build an index of command specifications keyed by command name."""
    table: Dict[str, CommandSpec] = {}
    for spec in specs:
        if spec.name in table:
            raise ValueError(f"Duplicate command name: {spec.name}")
        table[spec.name] = spec
    return table


def translate_month(month: int) -> int:
    """Convert a calendar month (1-12) into the engine's 0-indexed month."""
    if isinstance(month, bool) or not isinstance(month, int) or not 1 <= month <= 12:
        raise InvalidPeriodError(f"Month must be between 1 and 12, got {month!r}")
    return month - 1


def translate_period(args: argparse.Namespace) -> tuple[int, int, Optional[Currency]]:
    """Translate CLI args into ``(year, month, currency)`` engine parameters."""
    currency = resolve_currency(args.currency) if getattr(args, "currency", None) else None
    return args.year, translate_month(args.month), currency


def translate_inventory_period(args: argparse.Namespace) -> Optional[PeriodFilter]:
    """Translate ``--year``/``--month`` into a :class:`PeriodFilter`."""
    year = getattr(args, "year", None)
    month = getattr(args, "month", None)
    if year is None:
        if month is not None:
            raise LedgerUsageError("--month requires --year")
        return None
    if month is None:
        return PeriodFilter.for_year(year)
    return PeriodFilter.for_month(year, translate_month(month))


def _currency_label(context: core_logic.RuntimeContext, currency: Currency) -> str:
    return context.settings.currency_code(currency)


def run_cash_book(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Print the monthly cash book."""
    year, month, currency = translate_period(args)
    report = core_logic.build_cash_book(context, year, month, currency)
    code = _currency_label(context, report.currency)

    print(f"{context.settings.business_name} - cash book {year:04d}-{month + 1:02d} ({code})")
    print(f"Opening balance: {report.opening_balance}")
    for entry in report.entries:
        print(
            f"{entry.date:%Y-%m-%d %H:%M} | {entry.source_kind.value:<6} | {entry.reference} | "
            f"{entry.description} | in {entry.cash_in} | out {entry.cash_out} | balance {entry.balance}"
        )
    if not report.entries:
        print("No entries for this month.")

    for day in report.daily:
        print(f"{day.day:%Y-%m-%d}: in {day.cash_in}, out {day.cash_out}, {day.entry_count} entries, balance {day.balance}")
    for kind in SourceKind:
        breakdown = report.by_source[kind]
        print(f"{kind.value}: in {breakdown.cash_in}, out {breakdown.cash_out}, {breakdown.count} entries")

    summary = report.summary
    print(f"Total cash in: {summary.total_cash_in}")
    print(f"Total cash out: {summary.total_cash_out}")
    print(f"Net flow: {summary.net_flow}")
    print(f"Closing balance: {summary.closing_balance if report.entries else report.opening_balance}")
    if report.diagnostics.invalid_dates:
        print(f"Skipped {report.diagnostics.invalid_dates} records with invalid dates.")
    return 0


def run_opening_balance(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Print the balance carried into a month."""
    year, month, currency = translate_period(args)
    selected = currency or context.settings.default_currency
    balance = core_logic.opening_balance(context, year, month, selected)
    print(f"Opening balance {year:04d}-{month + 1:02d}: {balance} {_currency_label(context, selected)}")
    return 0


def run_stock(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Print the current stock of one product."""
    quantity = core_logic.resolve_stock(context, args.product_id, getattr(args, "exclude_id", None))
    print(f"{args.product_id}: {quantity}")
    return 0


def run_inventory(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Print the inventory overview."""
    period = translate_inventory_period(args)
    overview = core_logic.inventory_overview(
        context,
        period,
        product_type=getattr(args, "product_type", None),
        type_contains=getattr(args, "type_contains", False),
    )
    for product_id, quantity in sorted(overview.stock_by_product.items()):
        print(f"{product_id}: {quantity}")
    print(f"Remaining inventory: {overview.total_remaining}")
    print(f"Movements in period: {overview.movements_in_period}")
    if overview.type_total is not None:
        print(f"Stock for type '{args.product_type}': {overview.type_total}")
    if overview.inconsistent_movements:
        print(f"Inconsistent snapshots: {', '.join(overview.inconsistent_movements)}")
    if overview.undated_movements:
        print(f"Movements with invalid dates: {', '.join(overview.undated_movements)}")
    return 0


def handle_cli_error(error: Exception) -> int:
    """Convert raised exceptions into user-friendly exit codes."""
    if isinstance(error, LedgerUsageError):
        log.error("%s", error)
        return 2
    if isinstance(error, FileNotFoundError):
        log.error("%s", error)
        return 3
    log.error("%s", error)
    return 1


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point that orchestrates parsing and execution."""
    parser = build_parser()
    command_table = configure_subcommands(parser)
    args = parser.parse_args(argv)
    try:
        context = load_runtime_context(getattr(args, "config", None))
        core_logic.ensure_schema_version(context)
        return dispatch_command(context, args, command_table)
    except Exception as error:  # pragma: no cover - centralised error handler tested separately
        return handle_cli_error(error)
