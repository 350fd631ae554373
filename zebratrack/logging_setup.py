from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from .config import Settings

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_HANDLER_MARK = "_zebratrack_handler"


def setup_logging(settings: Settings, *, console: bool = True) -> Path:
    """Attach the rotating log file (and optionally stderr) to the package logger."""
    level = getattr(logging, settings.log_level, logging.INFO)
    logfile = settings.resolved_log_file
    logfile.parent.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger("zebratrack")
    logger.setLevel(level)
    for handler in list(logger.handlers):
        if getattr(handler, _HANDLER_MARK, False):
            logger.removeHandler(handler)
            handler.close()

    formatter = logging.Formatter(LOG_FORMAT, DATE_FORMAT)

    # File: rotate at 5MB, keep 7 backups
    fh = RotatingFileHandler(logfile, maxBytes=5_000_000, backupCount=7, encoding="utf-8")
    fh.setFormatter(formatter)
    fh.setLevel(level)
    setattr(fh, _HANDLER_MARK, True)
    logger.addHandler(fh)

    if console:
        # Console only shows warnings; normal output belongs to the CLI
        ch = logging.StreamHandler(sys.stderr)
        ch.setFormatter(formatter)
        ch.setLevel(max(level, logging.WARNING))
        setattr(ch, _HANDLER_MARK, True)
        logger.addHandler(ch)

    logger.debug("Logging initialized at %s; file: %s", settings.log_level, logfile)
    return logfile


__all__ = ["setup_logging", "LOG_FORMAT"]
