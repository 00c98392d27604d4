"""Logging setup for command-line runs.

Modules log through ``logging.getLogger(__name__)``; this module only
decides where those records go.
"""

from __future__ import annotations

import logging
import sys
from datetime import date
from pathlib import Path

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def log_file_path(log_dir: str | Path, prefix: str, today: date | None = None) -> Path:
    """Return ``<log_dir>/sync-<prefix>-YYYY-MM-DD.log``."""
    stamp = (today or date.today()).isoformat()
    return Path(log_dir) / f"sync-{prefix}-{stamp}.log"


def configure_logging(
    verbose: bool = False,
    log_dir: str | Path | None = None,
    prefix: str = "run",
) -> Path | None:
    """Configure the root logger for one run.

    Args:
        verbose: Log DEBUG to the console instead of INFO.
        log_dir: Directory for a dated log file.  ``None`` or empty means
            console only.
        prefix: Run name used in the log file name.

    Returns:
        The log file path, or ``None`` when logging to the console only.
    """
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    log_path = None
    if log_dir:
        log_path = log_file_path(log_dir, prefix)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    for noisy in ("urllib3", "requests"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
    return log_path
