"""Tests for package-level setup: the shared logger and distribution metadata."""

from __future__ import annotations

import logging
import tomllib
from logging.handlers import RotatingFileHandler

import pytest

import stock_manager

from conftest import PROJECT_ROOT


@pytest.fixture
def fresh_logger(tmp_path):
    """Configure a throwaway logger writing under ``tmp_path``."""

    log_file = tmp_path / "logs" / "stock_manager.log"
    logger = stock_manager._configure_logging(f"stock_manager.tests.{tmp_path.name}", log_file)
    yield logger, log_file
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)


# ---------------------------------------------------------------------------
# Package logger
# ---------------------------------------------------------------------------


def test_package_exposes_shared_logger():
    """Modules share the configured ``stock_manager`` logger."""

    assert stock_manager.log is logging.getLogger("stock_manager")
    assert stock_manager.log.level == logging.INFO
    assert any(isinstance(handler, logging.StreamHandler) for handler in stock_manager.log.handlers)


def test_configure_logging_writes_rotating_file(fresh_logger):
    """Records land in the rotating file using the package format."""

    logger, log_file = fresh_logger
    logger.info("Recorded sale %s", 7)
    for handler in logger.handlers:
        handler.flush()

    (file_handler,) = [handler for handler in logger.handlers if isinstance(handler, RotatingFileHandler)]
    assert file_handler.maxBytes == stock_manager.LOG_MAX_BYTES
    assert file_handler.backupCount == stock_manager.LOG_BACKUP_COUNT
    assert " | INFO | Recorded sale 7" in log_file.read_text(encoding="utf-8")


def test_configure_logging_is_idempotent(fresh_logger):
    """Configuring the same logger twice does not duplicate handlers."""

    logger, log_file = fresh_logger
    handlers = list(logger.handlers)

    assert stock_manager._configure_logging(logger.name, log_file) is logger
    assert logger.handlers == handlers


def test_configure_logging_survives_unwritable_log_location(tmp_path, capsys):
    """An unusable log path falls back to stderr only."""

    blocker = tmp_path / "not-a-directory"
    blocker.write_text("")
    logger = stock_manager._configure_logging("stock_manager.tests.unwritable", blocker / "stock_manager.log")
    try:
        assert [type(handler) for handler in logger.handlers] == [logging.StreamHandler]
        assert "log file" in capsys.readouterr().err
    finally:
        for handler in list(logger.handlers):
            logger.removeHandler(handler)


# ---------------------------------------------------------------------------
# Distribution metadata
# ---------------------------------------------------------------------------


def test_pyproject_readme_is_the_project_readme():
    """The long description comes from README.md, which exists."""

    metadata = tomllib.loads((PROJECT_ROOT / "pyproject.toml").read_text(encoding="utf-8"))["project"]

    assert metadata["readme"] == "README.md"
    assert (PROJECT_ROOT / metadata["readme"]).is_file()
    assert metadata["version"] == stock_manager.__version__
