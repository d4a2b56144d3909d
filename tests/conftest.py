"""Shared pytest fixtures and utilities for the stock manager tests."""

from __future__ import annotations

import sys
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from pathlib import Path
from typing import Callable, Iterator

import pytest

# Ensure source packages are importable without installation.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"

if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from stock_manager import auth, constants, ledger, runtime  # noqa: E402
from stock_manager.setup_workbook import create_master_workbook  # noqa: E402
from stock_manager.store import EntityStore, Product  # noqa: E402

ADMIN_USERNAME = "admin"
ADMIN_PASSWORD = "admin-secret"
_CONFIG_TEMPLATE = (
    "[System]\n"
    "DataFile = {data_file}\n"
    "StoreName = {store_name}\n"
    "SchemaVersion = {schema_version}\n\n"
    "[Inventory]\n"
    "LowStockThreshold = {low_stock_threshold}\n\n"
    "[Admin]\n"
    "Username = {admin_username}\n"
    "Password = {admin_password}\n"
    "Email = admin@example.com\n"
)


@dataclass(frozen=True)
class ConfigBundle:
    """Container bundling together config metadata for tests."""

    directory: Path
    config_path: Path
    workbook_path: Path
    schema_version: str
    store_name: str


@pytest.fixture(scope="session", autouse=True)
def _restore_sys_path() -> Iterator[None]:
    """Ensure sys.path modifications are undone after the test session."""

    original = sys.path.copy()
    try:
        yield
    finally:
        sys.path[:] = original


@pytest.fixture(autouse=True)
def _fast_bcrypt(monkeypatch: pytest.MonkeyPatch) -> None:
    """Use the cheapest bcrypt cost so hashing does not dominate the suite."""

    monkeypatch.setattr(auth, "BCRYPT_ROUNDS", 4)


@pytest.fixture
def store() -> EntityStore:
    """Return an empty entity store."""

    return EntityStore()


@pytest.fixture
def milk(store: EntityStore) -> Product:
    """Create the reference milk product used across ledger scenarios."""

    return store.create_product(
        "Milk",
        constants.ProductCategory.DAIRY.value,
        Decimal("48.50"),
        stock_quantity=100,
        sku="SKU1",
    )


@pytest.fixture
def at() -> Callable[..., datetime]:
    """Build UTC timestamps tersely: ``at(2024, 5, 1, 9)``."""

    def _build(year: int, month: int, day: int, hour: int = 12) -> datetime:
        return datetime(year, month, day, hour, tzinfo=UTC)

    return _build


@pytest.fixture
def sell(store: EntityStore) -> Callable[..., ledger.LedgerEntry]:
    """Shortcut for recording a transaction against the ``store`` fixture."""

    def _record(product_id: int, quantity: int, kind: str = "sale", timestamp: datetime | None = None):
        return ledger.record_transaction(store, ledger.TransactionCommand(product_id, quantity, kind, timestamp))

    return _record


@pytest.fixture
def workbook_factory(tmp_path: Path) -> Callable[..., Path]:
    """Factory that creates an initialized workbook in a temp folder."""

    def _create_workbook(
        *,
        subdir: str | None = None,
        filename: str = "stock_data.xlsx",
        with_demo_data: bool = False,
    ) -> Path:
        base_dir = tmp_path if subdir is None else tmp_path / subdir
        base_dir.mkdir(parents=True, exist_ok=True)
        workbook_path = base_dir / filename
        create_master_workbook(workbook_path, overwrite=True, with_demo_data=with_demo_data)
        return workbook_path

    return _create_workbook


@pytest.fixture
def config_factory(tmp_path: Path, workbook_factory: Callable[..., Path]) -> Callable[..., ConfigBundle]:
    """Provide a callable that creates config/workbook bundles on demand."""

    def _create_config(
        *,
        make_relative: bool = False,
        store_name: str = "Test Market",
        schema_version: str = constants.EXPECTED_SCHEMA_VERSION,
        low_stock_threshold: int = constants.LOW_STOCK_THRESHOLD,
        with_demo_data: bool = False,
    ) -> ConfigBundle:
        bundle_dir_name = f"bundle_{uuid.uuid4().hex}"
        bundle_dir = tmp_path / bundle_dir_name
        bundle_dir.mkdir(parents=True, exist_ok=True)
        workbook_path = workbook_factory(subdir=bundle_dir_name, with_demo_data=with_demo_data)
        data_file_entry = workbook_path.name if make_relative else str(workbook_path)
        config_path = bundle_dir / "config.ini"
        config_path.write_text(
            _CONFIG_TEMPLATE.format(
                data_file=data_file_entry,
                store_name=store_name,
                schema_version=schema_version,
                low_stock_threshold=low_stock_threshold,
                admin_username=ADMIN_USERNAME,
                admin_password=ADMIN_PASSWORD,
            )
        )
        return ConfigBundle(
            directory=bundle_dir,
            config_path=config_path,
            workbook_path=workbook_path,
            schema_version=schema_version,
            store_name=store_name,
        )

    return _create_config


@pytest.fixture
def config_file(config_factory: Callable[..., ConfigBundle]) -> Path:
    """Convenience fixture returning only the config path."""

    return config_factory().config_path


@pytest.fixture
def runtime_context(config_file: Path) -> runtime.RuntimeContext:
    """Load the runtime context for tests through the public API."""

    context = runtime.load_runtime_context(config_file)
    runtime.ensure_schema_version(context)
    return context
