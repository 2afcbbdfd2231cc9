"""Consignment ledger with settlement periods, backed by an Excel workbook.

Importing the package sets up the shared ``consignflow`` logger. Log files go
to ``$CONSIGNFLOW_LOG_DIR`` when set, otherwise to ``.logs/`` under the
current working directory, which is where ``config.ini`` normally lives.
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Mapping, Optional


LOG_DIR_ENV = "CONSIGNFLOW_LOG_DIR"
LOG_FILE_NAME = "consignflow.log"
LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def resolve_log_file(environ: Optional[Mapping[str, str]] = None) -> Path:
    """Return the rotating log file location for this process."""

    environ = os.environ if environ is None else environ
    configured = environ.get(LOG_DIR_ENV)
    log_dir = Path(configured).expanduser() if configured else Path.cwd() / ".logs"
    return log_dir / LOG_FILE_NAME


def configure_logging(name: str = __name__, log_file: Optional[Path] = None) -> logging.Logger:
    """Attach file and stderr handlers to the ``name`` logger once.

    A log file that cannot be created is reported on stderr; console logging
    keeps working.
    """

    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    logger.setLevel(logging.INFO)
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    log_file = resolve_log_file() if log_file is None else log_file

    try:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(log_file, maxBytes=1_000_000, backupCount=5, encoding="utf-8")
    except OSError as exc:
        print(f"Warning: consignflow is logging to stderr only, '{log_file}' is unusable: {exc}", file=sys.stderr)
    else:
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)
    return logger


log = configure_logging()
