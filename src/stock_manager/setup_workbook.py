"""Utility for initializing the stock manager snapshot workbook.

The module doubles as a script (``stock-setup``) and as a library used by
tests or other tooling, so the bootstrap logic is the same on every path.
"""

from __future__ import annotations

import argparse
import sys
from decimal import Decimal
from pathlib import Path
from typing import Mapping, Sequence

from . import data_manager, log
from .constants import ProductCategory
from .store import EntityStore

CONFIG_FILE = data_manager.CONFIG_FILE_NAME

# Starter catalogue for demos and manual testing.
DEMO_PRODUCTS: Sequence[Mapping[str, object]] = (
    {
        "name": "Organic Whole Milk",
        "category": ProductCategory.DAIRY.value,
        "price": Decimal("399.00"),
        "stock_quantity": 42,
        "items_sold": 86,
        "description": "Farm fresh organic whole milk",
        "sku": "PRD001",
    },
    {
        "name": "Fresh French Baguette",
        "category": ProductCategory.BAKERY.value,
        "price": Decimal("249.00"),
        "stock_quantity": 8,
        "items_sold": 54,
        "description": "Freshly baked French baguette",
        "sku": "PRD002",
    },
    {
        "name": "Organic Banana Bunch",
        "category": ProductCategory.PRODUCE.value,
        "price": Decimal("129.00"),
        "stock_quantity": 124,
        "items_sold": 210,
        "description": "Organic banana bunch",
        "sku": "PRD003",
    },
    {
        "name": "Premium Ground Beef",
        "category": ProductCategory.MEAT.value,
        "price": Decimal("699.00"),
        "stock_quantity": 32,
        "items_sold": 45,
        "description": "Premium ground beef, 1lb package",
        "sku": "PRD004",
    },
    {
        "name": "Sparkling Water 12-Pack",
        "category": ProductCategory.BEVERAGES.value,
        "price": Decimal("99.00"),
        "stock_quantity": 5,
        "items_sold": 78,
        "description": "12-pack of sparkling water",
        "sku": "PRD005",
    },
)


def seed_demo_products(store: EntityStore, products: Sequence[Mapping[str, object]] = DEMO_PRODUCTS) -> int:
    """Insert the demo catalogue into ``store`` and return how many were added."""

    for product in products:
        store.create_product(**product)
    return len(products)


def create_master_workbook(
    destination: Path,
    *,
    overwrite: bool = False,
    with_demo_data: bool = False,
) -> Path:
    """Create the snapshot workbook at ``destination``.

    When ``overwrite`` is ``False`` (the default) this function raises
    ``FileExistsError`` if the target already exists.
    """

    destination = Path(destination).expanduser().resolve()
    if destination.exists() and not overwrite:
        raise FileExistsError(f"Refusing to overwrite existing workbook: {destination}")

    workbook = data_manager.new_workbook()
    if with_demo_data:
        store = EntityStore()
        seed_demo_products(store)
        data_manager.write_store(workbook, store)

    data_manager.save_workbook(workbook, destination)
    log.info("Created workbook '%s' (demo data: %s)", destination, with_demo_data)
    return destination


def run_from_config(config_path: Path, *, overwrite: bool = False, with_demo_data: bool = False) -> Path:
    """Create the workbook named by ``DataFile`` in ``config_path``."""

    config_path = Path(config_path).expanduser().resolve()
    parser = data_manager.read_config(config_path)
    settings = data_manager.parse_settings(parser, base_path=config_path.parent)
    return create_master_workbook(settings.data_file, overwrite=overwrite, with_demo_data=with_demo_data)


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments for the setup script."""

    parser = argparse.ArgumentParser(prog="stock-setup", description="Initialize the stock manager workbook")
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
    parser.add_argument(
        "--demo-data",
        action="store_true",
        help="Seed the workbook with a small demo catalogue.",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for the setup script."""

    args = parse_args(argv)
    config_path = Path(args.config).expanduser().resolve()

    print("--- Stock Manager Setup ---")
    print(f"Using configuration: {config_path}")

    try:
        output_path = run_from_config(config_path, overwrite=args.force, with_demo_data=args.demo_data)
    except (FileNotFoundError, KeyError) as exc:
        print(f"\n[ERROR] {exc}")
        return 1
    except FileExistsError as exc:
        print(f"\n[ERROR] {exc}")
        print("Run with --force to overwrite the existing file if appropriate.")
        return 1
    except (PermissionError, OSError) as exc:
        print(f"\n[ERROR] Unable to write workbook: {exc}")
        return 1

    print(f"\n[SUCCESS] Created workbook at '{output_path}'.")
    return 0


if __name__ == "__main__":  # pragma: no cover - exercised via manual runs
    sys.exit(main())
