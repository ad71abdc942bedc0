"""Logging setup for the client: one file under <home>/logs."""

from __future__ import annotations

import logging
from pathlib import Path

from .config import LOG_DIR

LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"


def setup_logging(home: Path, level: str = "INFO") -> Path:
    """Attach a file handler for the emotionaid logger tree.

    Calling it again for the same file does not add a second handler.

    Returns:
        Path of the log file.
    """
    log_dir = home / LOG_DIR
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "emotionaid.log"

    logger = logging.getLogger("emotionaid")
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in logger.handlers:
        if isinstance(handler, logging.FileHandler) and Path(handler.baseFilename) == log_file.resolve():
            return log_file

    handler = logging.FileHandler(log_file, encoding="utf-8")
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
    return log_file
