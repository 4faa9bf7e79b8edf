"""Logging setup for hwtop."""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(level: str = "INFO", log_file: str | Path | None = None, console: bool = True) -> None:
    """
    Configure the root logger.

    Args:
        level: Level name, e.g. "INFO".
        log_file: Rotating log file to write to. When given, console output
            is not used.
        console: Log to stderr when no file is given. The TUI passes False so
            log lines never land on the screen.
    """
    level_num = getattr(logging, level.upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(level_num)
    root.handlers.clear()

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    handler: logging.Handler
    if log_file is not None:
        path = Path(log_file).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(path, maxBytes=5_000_000, backupCount=3, encoding="utf-8")
    elif console:
        handler = logging.StreamHandler(stream=sys.stderr)
    else:
        handler = logging.NullHandler()

    handler.setLevel(level_num)
    handler.setFormatter(formatter)
    root.addHandler(handler)

    # paramiko logs every transport negotiation step at INFO/DEBUG
    logging.getLogger("paramiko").setLevel(max(level_num, logging.WARNING))
