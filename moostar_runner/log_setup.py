"""
Moostar Runner: logging setup for drivers

Library modules only call logging.getLogger(__name__); nothing is configured
on import. A driver calls setup_logging() once to get a rich console handler
and, when log_dir is given, a timestamped log file with every record.

Log files: ``<log_dir>/<name>_YYYYMMDD_HHMMSS.log``
"""

from __future__ import annotations
import logging
from datetime import datetime
from pathlib import Path
from typing import Iterable, Optional

from rich.console import Console
from rich.logging import RichHandler

# Loggers used by the library packages
LIBRARY_LOGGERS = ("moostar_compiler", "moostar_runner")

FILE_FORMAT = "%(asctime)s | %(levelname)-7s | %(name)s | %(funcName)s:%(lineno)d | %(message)s"


def setup_logging(
    name: str = "moostar",
    console_level: int = logging.WARNING,
    log_dir: Optional[Path] = None,
    extra_loggers: Iterable[str] = LIBRARY_LOGGERS,
) -> logging.Logger:
    """Configure and return the driver logger.

    The same handlers are attached to the library loggers so compile
    warnings, faults and step traces reach the console (and file).
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    handlers = []

    # ── File handler: captures everything (DEBUG+) ──
    log_file = None
    if log_dir is not None:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        ts = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_file = log_dir / f"{name}_{ts}.log"
        fh = logging.FileHandler(str(log_file), encoding="utf-8")
        fh.setLevel(logging.DEBUG)
        fh.setFormatter(logging.Formatter(FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        handlers.append(fh)

    # ── Console handler: only important stuff (WARNING+ default) ──
    ch = RichHandler(
        console=Console(stderr=True),
        level=console_level,
        show_time=True,
        show_path=False,
        markup=False,
        rich_tracebacks=True,
    )
    handlers.append(ch)

    for logger_name in (name, *extra_loggers):
        target = logging.getLogger(logger_name)
        target.setLevel(logging.DEBUG if log_file else console_level)
        for handler in handlers:
            target.addHandler(handler)

    if log_file is not None:
        logger.info("Logger initialized: %s", name)
        logger.info("Log file: %s", log_file)
        logger.info("Console level: %s", logging.getLevelName(console_level))
    return logger
