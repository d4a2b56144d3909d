"""Data access layer for the stock manager.

This module owns everything that touches disk. Business rules live in the
store and the ledger.

The public API covers three responsibilities:

1. Configuration handling: finding and parsing ``config.ini``.
2. Workbook lifecycle: opening and persisting the Excel snapshot.
3. Sheet conversion: turning worksheet rows into store records and writing
   the store back, including the id counters so identifiers survive restarts.
"""

from __future__ import annotations

import configparser
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Dict, Iterable, Optional, Sequence

import openpyxl
from openpyxl.styles import Font
from openpyxl.workbook import Workbook
from openpyxl.worksheet.worksheet import Worksheet

from . import log
from .constants import LOW_STOCK_THRESHOLD, PRICE_QUANTUM, SheetName, TransactionType, UserRole
from .store import EntityStore, Product, Transaction, User


CONFIG_FILE_NAME = "config.ini"
PRODUCTS_SHEET = SheetName.PRODUCTS.value
TRANSACTIONS_SHEET = SheetName.TRANSACTIONS.value
USERS_SHEET = SheetName.USERS.value
COUNTERS_SHEET = SheetName.COUNTERS.value

SHEET_COLUMNS: Dict[str, Sequence[str]] = {
    PRODUCTS_SHEET: [
        "ProductID",
        "Name",
        "Category",
        "Price",
        "StockQuantity",
        "ItemsSold",
        "Description",
        "SKU",
    ],
    TRANSACTIONS_SHEET: [
        "TransactionID",
        "ProductID",
        "Quantity",
        "Type",
        "TotalPrice",
        "Timestamp",
    ],
    USERS_SHEET: [
        "UserID",
        "Username",
        "PasswordHash",
        "Email",
        "Role",
    ],
    COUNTERS_SHEET: [
        "Entity",
        "NextID",
    ],
}

EXPORT_COLUMNS: Sequence[str] = [
    "ID",
    "SKU",
    "Name",
    "Category",
    "Price",
    "Stock Quantity",
    "Items Sold",
    "Description",
]


@dataclass(frozen=True)
class ConfigSettings:
    """Typed representation of the ``config.ini`` settings we care about."""

    data_file: Path
    store_name: str
    schema_version: str
    admin_username: str
    admin_password: str = field(repr=False)
    admin_email: Optional[str] = None
    low_stock_threshold: int = LOW_STOCK_THRESHOLD


def find_config_file(explicit_path: Optional[Path] = None) -> Path:
    """Locate the configuration file.

    An explicit path is returned as-is. Otherwise the search walks from the
    current working directory up to the filesystem root and returns the first
    ``config.ini`` it finds.

    Raises:
        FileNotFoundError: If no parent directory holds ``CONFIG_FILE_NAME``.
    """

    if explicit_path:
        return explicit_path

    current = Path.cwd()
    for p in (current, *current.parents):
        candidate = p / CONFIG_FILE_NAME
        if candidate.exists():
            return candidate

    raise FileNotFoundError(f"Configuration file not found: {CONFIG_FILE_NAME}")


def read_config(config_path: Path) -> configparser.ConfigParser:
    """Load ``config.ini`` into a ``ConfigParser``.

    Raises:
        FileNotFoundError: If ``config_path`` does not exist.
    """

    config_path = Path(config_path).expanduser().resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    parser = configparser.ConfigParser()
    parser.read(config_path, encoding="utf-8")
    return parser


def parse_settings(parser: configparser.ConfigParser, *, base_path: Optional[Path] = None) -> ConfigSettings:
    """Convert a ``ConfigParser`` into :class:`ConfigSettings`.

    Relative ``DataFile`` entries are anchored to ``base_path`` (normally the
    directory holding the config file), falling back to the working
    directory. The ``[Inventory]`` section and ``Admin.Email`` are optional.

    Raises:
        KeyError: If a required section or option is missing.
        ValueError: If ``LowStockThreshold`` is not a non-negative integer.
    """

    try:
        data_file_raw = parser.get("System", "DataFile")
        store_name = parser.get("System", "StoreName")
        schema_version = parser.get("System", "SchemaVersion")
        admin_username = parser.get("Admin", "Username")
        admin_password = parser.get("Admin", "Password")
    except (configparser.NoSectionError, configparser.NoOptionError) as exc:
        raise KeyError(f"Missing required configuration entry: {exc}") from exc

    admin_email = parser.get("Admin", "Email", fallback="").strip() or None
    low_stock_threshold = parser.getint("Inventory", "LowStockThreshold", fallback=LOW_STOCK_THRESHOLD)
    if low_stock_threshold < 0:
        raise ValueError("LowStockThreshold must be zero or positive")

    data_file_path = Path(data_file_raw).expanduser()
    if not data_file_path.is_absolute():
        if base_path is None:
            base_path = Path.cwd()
        data_file_path = (base_path / data_file_path).resolve()

    return ConfigSettings(
        data_file=data_file_path,
        store_name=store_name,
        schema_version=schema_version,
        admin_username=admin_username,
        admin_password=admin_password,
        admin_email=admin_email,
        low_stock_threshold=low_stock_threshold,
    )


def open_workbook(data_file: Path) -> Workbook:
    """Open the snapshot workbook.

    Raises:
        FileNotFoundError: If ``data_file`` does not exist.
    """

    data_file = Path(data_file).expanduser().resolve()
    if not data_file.exists():
        raise FileNotFoundError(f"Workbook not found: {data_file}")

    return openpyxl.load_workbook(data_file)


def save_workbook(workbook: Workbook, destination: Path) -> None:
    """Persist the workbook, creating parent directories on demand."""

    dest = Path(destination).expanduser().resolve()
    dest.parent.mkdir(parents=True, exist_ok=True)
    workbook.save(dest)


def new_workbook() -> Workbook:
    """Create an in-memory workbook with every sheet and a bold header row."""

    workbook = openpyxl.Workbook()
    if workbook.active is not None and workbook.active.title == "Sheet":
        workbook.remove(workbook.active)

    for sheet_name in SHEET_COLUMNS:
        _reset_sheet(workbook, sheet_name)
    return workbook


def _iter_rows(workbook: Workbook, sheet_name: str) -> Iterable[Sequence[object]]:
    sheet = workbook[sheet_name]
    for raw in sheet.iter_rows(min_row=2, values_only=True):
        # skip fully empty rows
        if any(cell is not None for cell in raw):
            yield raw


def iter_products(workbook: Workbook) -> Iterable[Product]:
    """Yield products from the ``Products`` sheet in row order."""

    for raw in _iter_rows(workbook, PRODUCTS_SHEET):
        yield deserialize_product(raw)


def iter_transactions(workbook: Workbook) -> Iterable[Transaction]:
    """Yield transactions from the ``Transactions`` sheet in row order."""

    for raw in _iter_rows(workbook, TRANSACTIONS_SHEET):
        yield deserialize_transaction(raw)


def iter_users(workbook: Workbook) -> Iterable[User]:
    """Yield users from the ``Users`` sheet in row order."""

    for raw in _iter_rows(workbook, USERS_SHEET):
        yield deserialize_user(raw)


def read_counters(workbook: Workbook) -> Dict[str, int]:
    """Read the next-id counters; a workbook without the sheet yields ``{}``."""

    if COUNTERS_SHEET not in workbook.sheetnames:
        return {}
    return {str(entity): int(next_id) for entity, next_id, *_ in _iter_rows(workbook, COUNTERS_SHEET)}


def load_store(workbook: Workbook) -> EntityStore:
    """Build an :class:`EntityStore` from a snapshot workbook."""

    store = EntityStore.from_records(
        iter_products(workbook),
        iter_transactions(workbook),
        iter_users(workbook),
        read_counters(workbook),
    )
    log.info("Loaded store snapshot (counters=%s)", store.counters())
    return store


def write_store(workbook: Workbook, store: EntityStore) -> None:
    """Replace every data sheet in ``workbook`` with the store's contents.

    The store lock is held while reading so the snapshot is consistent.
    """

    with store.locked():
        rows = {
            PRODUCTS_SHEET: [serialize_product(product) for product in store.get_all_products()],
            TRANSACTIONS_SHEET: [serialize_transaction(transaction) for transaction in store.get_all_transactions()],
            USERS_SHEET: [serialize_user(user) for user in store.get_all_users()],
            COUNTERS_SHEET: [[entity, next_id] for entity, next_id in store.counters().items()],
        }

    for sheet_name, sheet_rows in rows.items():
        sheet = _reset_sheet(workbook, sheet_name)
        for row in sheet_rows:
            sheet.append(row)
    log.debug("Wrote store snapshot into workbook")


def _reset_sheet(workbook: Workbook, sheet_name: str) -> Worksheet:
    # recreate in place so stale rows never survive a shorter snapshot
    index = None
    if sheet_name in workbook.sheetnames:
        index = workbook.sheetnames.index(sheet_name)
        workbook.remove(workbook[sheet_name])
    sheet = workbook.create_sheet(title=sheet_name, index=index)
    bold_font = Font(bold=True)
    for column_index, column_name in enumerate(SHEET_COLUMNS[sheet_name], start=1):
        cell = sheet.cell(row=1, column=column_index)
        cell.value = column_name
        cell.font = bold_font
    return sheet


def export_products(products: Iterable[Product], destination: Path) -> Path:
    """Write a stock listing workbook with one row per product.

    Prices are written with two decimals and blank descriptions as empty
    cells.

    Returns:
        Path: The resolved destination.
    """

    workbook = openpyxl.Workbook()
    sheet = workbook.active
    sheet.title = "Stock Overview"
    sheet.append(list(EXPORT_COLUMNS))
    for cell in sheet[1]:
        cell.font = Font(bold=True)
    count = 0
    for product in products:
        sheet.append(
            [
                product.product_id,
                product.sku,
                product.name,
                product.category,
                product.price,
                product.stock_quantity,
                product.items_sold,
                product.description or "",
            ]
        )
        sheet.cell(row=sheet.max_row, column=5).number_format = "0.00"
        count += 1

    dest = Path(destination).expanduser().resolve()
    save_workbook(workbook, dest)
    log.info("Exported %d products to '%s'", count, dest)
    return dest


def serialize_product(record: Product) -> list[object]:
    """Convert a product into the ``Products`` column order."""

    return [
        record.product_id,
        record.name,
        record.category,
        record.price,
        record.stock_quantity,
        record.items_sold,
        record.description,
        record.sku,
    ]


def serialize_transaction(record: Transaction) -> list[object]:
    """Convert a transaction into the ``Transactions`` column order.

    Timestamps are stored as ISO-8601 text so the timezone survives.
    """

    return [
        record.transaction_id,
        record.product_id,
        record.quantity,
        record.transaction_type.value,
        record.total_price,
        record.timestamp.isoformat(),
    ]


def serialize_user(record: User) -> list[object]:
    """Convert a user into the ``Users`` column order."""

    return [
        record.user_id,
        record.username,
        record.password_hash,
        record.email,
        record.role.value,
    ]


def _to_decimal(raw: object) -> Decimal:
    return Decimal(str(raw)).quantize(PRICE_QUANTUM) if raw is not None else Decimal("0.00")


def deserialize_product(raw_row: Sequence[object]) -> Product:
    """Convert a raw ``Products`` row into a :class:`Product`.

    Excel hands numbers back as floats or ints, so prices go through ``str``
    before becoming a :class:`~decimal.Decimal` and ids are coerced to
    ``int``.
    """

    product_id, name, category, price, stock_quantity, items_sold, description, sku = raw_row[:8]
    return Product(
        product_id=int(product_id),
        name=str(name),
        category=str(category),
        price=_to_decimal(price),
        stock_quantity=int(stock_quantity or 0),
        items_sold=int(items_sold or 0),
        description=str(description) if description is not None else None,
        sku=str(sku),
    )


def deserialize_transaction(raw_row: Sequence[object]) -> Transaction:
    """Convert a raw ``Transactions`` row into a :class:`Transaction`."""

    transaction_id, product_id, quantity, transaction_type, total_price, timestamp = raw_row[:6]
    if isinstance(timestamp, datetime):
        moment = timestamp
    else:
        moment = datetime.fromisoformat(str(timestamp))
    return Transaction(
        transaction_id=int(transaction_id),
        product_id=int(product_id),
        quantity=int(quantity),
        transaction_type=TransactionType(str(transaction_type)),
        total_price=_to_decimal(total_price),
        timestamp=moment,
    )


def deserialize_user(raw_row: Sequence[object]) -> User:
    """Convert a raw ``Users`` row into a :class:`User`."""

    user_id, username, password_hash, email, role = raw_row[:5]
    return User(
        user_id=int(user_id),
        username=str(username),
        password_hash=str(password_hash),
        email=str(email) if email else None,
        role=UserRole(str(role)) if role else UserRole.USER,
    )
