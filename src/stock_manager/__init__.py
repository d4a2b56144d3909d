"""Supermarket stock manager.

Importing the package sets up the shared ``stock_manager`` logger that every
module writes through: a rotating file under ``<project>/.logs`` plus stderr.
The inventory core lives in :mod:`stock_manager.store`,
:mod:`stock_manager.ledger` and :mod:`stock_manager.analytics`; the
``stock-cli`` and ``stock-setup`` entry points sit on top of them.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path


__version__ = "0.1.0"

PROJECT_ROOT = Path(__file__).resolve().parents[2]
LOG_DIR = PROJECT_ROOT / ".logs"
LOG_FILE = LOG_DIR / "stock_manager.log"
LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_MAX_BYTES = 1_000_000
LOG_BACKUP_COUNT = 5


def _configure_logging(name: str = __name__, log_file: Path = LOG_FILE) -> logging.Logger:
    """Attach the file and stderr handlers to logger ``name`` once.

    A log file that cannot be opened only costs the file handler; the
    stderr handler is always installed.
    """

    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    logger.setLevel(logging.INFO)
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    try:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=LOG_MAX_BYTES,
            backupCount=LOG_BACKUP_COUNT,
            encoding="utf-8",
        )
    except OSError as exc:
        print(f"Warning: stock manager log file '{log_file}' is unavailable: {exc}", file=sys.stderr)
    else:
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    return logger


log = _configure_logging()
log.info("Stock manager %s logging to %s", __version__, LOG_FILE)
