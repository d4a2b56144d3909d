"""Runtime context for the stock manager.

Bundles the parsed settings, the open snapshot workbook, and the in-memory
:class:`~stock_manager.store.EntityStore` loaded from it. Front-ends load a
context once, run the store, ledger, or analytics operations against
``context.store``, and persist the context when they have written something.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from openpyxl.workbook import Workbook

from . import data_manager, log
from .constants import EXPECTED_SCHEMA_VERSION
from .store import EntityStore


@dataclass(frozen=True)
class RuntimeContext:
    """Container for configuration, workbook, and store."""

    settings: data_manager.ConfigSettings
    workbook: Workbook
    store: EntityStore


def load_runtime_context(config_path: Optional[Path] = None) -> RuntimeContext:
    """Load configuration, open the workbook, and rebuild the store.

    Args:
        config_path (Path | None): Optional explicit path to ``config.ini``.
            When omitted the data layer searches upward from the working
            directory.

    Returns:
        RuntimeContext: Context ready for store, ledger, and analytics calls.

    Raises:
        FileNotFoundError: If the configuration file or workbook is missing.
        KeyError: When mandatory configuration options are missing.
    """
    located_config = data_manager.find_config_file(config_path)
    resolved_config = Path(located_config).expanduser().resolve()
    parser = data_manager.read_config(resolved_config)
    settings = data_manager.parse_settings(parser, base_path=resolved_config.parent)
    workbook = data_manager.open_workbook(settings.data_file)
    store = data_manager.load_store(workbook)
    log.info("Loaded runtime context for workbook '%s'", settings.data_file)
    return RuntimeContext(settings=settings, workbook=workbook, store=store)


def ensure_schema_version(context: RuntimeContext) -> None:
    """Refuse to work on a workbook written for another layout.

    Raises:
        RuntimeError: If the configured schema version differs from
            ``EXPECTED_SCHEMA_VERSION``.
    """
    if context.settings.schema_version != EXPECTED_SCHEMA_VERSION:
        log.error(
            "Workbook schema mismatch: expected %s, found %s",
            EXPECTED_SCHEMA_VERSION,
            context.settings.schema_version,
        )
        raise RuntimeError(
            "Workbook schema mismatch: expected %s, found %s"
            % (EXPECTED_SCHEMA_VERSION, context.settings.schema_version)
        )

    log.debug("Schema version '%s' validated", context.settings.schema_version)


def persist_context(context: RuntimeContext) -> None:
    """Write the store into the workbook and save it to the configured path."""
    data_manager.write_store(context.workbook, context.store)
    data_manager.save_workbook(context.workbook, destination=context.settings.data_file)
    log.info("Persisted workbook '%s'", context.settings.data_file)


def refresh_context(context: RuntimeContext) -> RuntimeContext:
    """Reload the workbook from disk, discarding unsaved store changes.

    Raises:
        FileNotFoundError: If the backing workbook cannot be reloaded.
    """
    workbook = data_manager.open_workbook(context.settings.data_file)
    store = data_manager.load_store(workbook)
    log.info("Reloaded workbook '%s'", context.settings.data_file)
    return RuntimeContext(settings=context.settings, workbook=workbook, store=store)
