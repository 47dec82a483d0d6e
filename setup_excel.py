"""Utility for initializing an empty ledger snapshot workbook.

The module doubles as a script (``python setup_excel.py``) and as a library
used by tests or other tooling. The export job that fills the snapshot uses
the same sheet layout, so the column lists below are the contract the data
access layer reads.
"""

from __future__ import annotations

import argparse
import configparser
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Sequence
import sys

import openpyxl
from openpyxl.styles import Font

# Column order must match the deserializers in movement_ledger.data_manager
SHEET_COLUMNS: Mapping[str, Sequence[str]] = {
    "Sales": [
        "SaleID",
        "Date",
        "ProductID",
        "ActivityTypeID",
        "Channel",
        "AmountLocal",
        "AmountForeign",
        "ExchangeRate",
    ],
    "Costs": [
        "CostID",
        "Date",
        "ExpenseTypeID",
        "ActivityTypeID",
        "AmountLocal",
        "AmountForeign",
        "ExchangeRate",
    ],
    "ManualEntries": [
        "EntryID",
        "Date",
        "Description",
        "EntryKind",
        "AmountLocal",
        "AmountForeign",
        "ExchangeRate",
    ],
    "Inventory": [
        "MovementID",
        "Date",
        "MovementType",
        "ProductID",
        "ProductCode",
        "InitialQuantity",
        "QuantityMoved",
        "RemainingQuantity",
    ],
    "Products": [
        "ProductID",
        "ProductCode",
        "ProductName",
        "ProductType",
    ],
    "ActivityTypes": [
        "ActivityTypeID",
        "ActivityName",
    ],
    "ExpenseTypes": [
        "ExpenseTypeID",
        "ExpenseName",
    ],
}

CONFIG_FILE = "config.ini"


@dataclass(frozen=True)
class SetupSettings:
    """Configuration values used during setup."""

    data_file: Path


def load_settings(config_path: Path) -> SetupSettings:
    """Read ``config.ini`` and produce :class:`SetupSettings`.

    A relative ``DataFile`` is resolved against the config file's directory,
    the same way the data access layer resolves it.
    """

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    parser = configparser.ConfigParser()
    parser.read(config_path)

    try:
        data_file_raw = parser.get("System", "DataFile")
    except (configparser.NoSectionError, configparser.NoOptionError) as exc:
        raise KeyError(f"Missing required configuration entry: {exc}") from exc

    data_file_path = Path(data_file_raw)
    if not data_file_path.is_absolute():
        data_file_path = (config_path.parent / data_file_path).resolve()

    return SetupSettings(data_file=data_file_path)


def create_snapshot_workbook(
    destination: Path,
    *,
    sheet_columns: Mapping[str, Sequence[str]] = SHEET_COLUMNS,
    overwrite: bool = False,
) -> Path:
    """Create an empty snapshot workbook with bold header rows.

    Raises:
        FileExistsError: If ``destination`` exists and ``overwrite`` is
            ``False``.
    """

    destination = destination.expanduser().resolve()
    if destination.exists() and not overwrite:
        raise FileExistsError(
            f"Refusing to overwrite existing snapshot workbook: {destination}"
        )

    destination.parent.mkdir(parents=True, exist_ok=True)

    workbook = openpyxl.Workbook()

    # Drop the default sheet so only the snapshot sheets remain.
    if workbook.active and workbook.active.title == "Sheet":
        workbook.remove(workbook.active)

    bold_font = Font(bold=True)

    for sheet_name, columns in sheet_columns.items():
        worksheet = workbook.create_sheet(title=sheet_name)
        for column_index, column_name in enumerate(columns, start=1):
            cell = worksheet.cell(row=1, column=column_index)
            cell.value = column_name
            cell.font = bold_font

    workbook.save(destination)
    return destination


def run_from_config(config_path: Path, *, overwrite: bool = False) -> Path:
    """Create the snapshot workbook named by ``config.ini``."""

    settings = load_settings(config_path)
    return create_snapshot_workbook(settings.data_file, overwrite=overwrite)


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments for the setup script."""

    parser = argparse.ArgumentParser(description="Initialize an empty ledger snapshot workbook")
    parser.add_argument(
        "--config",
        default=CONFIG_FILE,
        help="Path to configuration file (default: config.ini)",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Overwrite the target workbook if it already exists.",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for the CLI script."""

    args = parse_args(argv)
    config_path = Path(args.config).expanduser().resolve()

    print("--- Ledger Snapshot Setup ---")
    print(f"Using configuration: {config_path}")

    try:
        output_path = run_from_config(config_path, overwrite=args.force)
    except (FileNotFoundError, KeyError) as exc:
        print(f"\n[ERROR] {exc}")
        return 1
    except FileExistsError as exc:
        print(f"\n[ERROR] {exc}")
        print("Run with --force to overwrite the existing file if appropriate.")
        return 1
    except OSError as exc:
        print(f"\n[ERROR] Unable to write workbook: {exc}")
        return 1

    print(f"\n[SUCCESS] Created snapshot workbook at '{output_path}'.")
    return 0


if __name__ == "__main__":  # pragma: no cover - exercised via manual runs
    sys.exit(main())
